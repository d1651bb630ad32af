"""
海图图层存储

工作图层集合的状态容器。查询是当前快照的纯函数；命令先发布乐观快照，
再持久化，任何持久化失败都会丢弃乐观状态并从存储重新加载全部图层。
"""

import logging
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict

from ..database.models import ChartCustomMetadata, ChartSourceQuery
from ..database.repository import (
    ChartSourceRepository,
    ChartLayerRepository,
    get_source_repository,
    get_layer_repository
)
from ..utils.bounds import BBox, BoundsAnalysis, antimeridian_center_and_span
from ..utils.viewport import Viewport
from .chart_layers import ChartLayer, build_chart_layers
from .custom_metadata import EffectiveMetadata
from .layer_state import (
    LayerChange,
    find_layer,
    repair_single_selection,
    plan_toggle,
    plan_opacity,
    plan_z_order,
    plan_metadata,
    plan_metadata_reset
)
from .visibility import filter_visible_layers

logger = logging.getLogger(__name__)

Subscriber = Callable[["LayerSnapshot"], None]

# 读取全部海图，目录规模很小
ALL_SOURCES = ChartSourceQuery(limit=10000)


class LayerSnapshot(BaseModel):
    """某一时刻图层集合的不可变视图"""
    model_config = ConfigDict(frozen=True)

    layers: Tuple[ChartLayer, ...] = ()
    error: Optional[str] = None
    version: int = 0
    loaded: bool = False

    def to_dict(self):
        return {
            "version": self.version,
            "loaded": self.loaded,
            "error": self.error,
            "total": len(self.layers),
            "enabled": [layer.chart_id for layer in self.layers if layer.enabled],
            "layers": [layer.to_dict() for layer in self.layers]
        }


class ChartLayerStore:
    """工作海图图层集合

    变更由宿主的事件循环串行执行，存储本身不加锁。
    """

    def __init__(self, source_repository: ChartSourceRepository, layer_repository: ChartLayerRepository):
        """初始化图层存储

        Args:
            source_repository: 海图源数据访问
            layer_repository: 图层状态和自定义元数据访问
        """
        self.source_repository = source_repository
        self.layer_repository = layer_repository
        self._snapshot = LayerSnapshot()
        self._subscribers: List[Subscriber] = []

    # ---- 快照与订阅 ----

    @property
    def snapshot(self) -> LayerSnapshot:
        return self._snapshot

    @property
    def layers(self) -> Tuple[ChartLayer, ...]:
        return self._snapshot.layers

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """注册回调，每次发布快照时调用

        Returns:
            取消订阅的函数
        """
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _publish(self, layers: Iterable[ChartLayer], error: Optional[str] = None, loaded: bool = True) -> LayerSnapshot:
        self._snapshot = LayerSnapshot(
            layers=tuple(layers),
            error=error,
            version=self._snapshot.version + 1,
            loaded=loaded
        )
        for callback in list(self._subscribers):
            try:
                callback(self._snapshot)
            except Exception as e:
                logger.error(f"图层快照订阅者执行失败: {e}")
        return self._snapshot

    # ---- 加载 ----

    async def reload(
        self,
        error: Optional[str] = None,
        fallback_layers: Optional[Sequence[ChartLayer]] = None
    ) -> LayerSnapshot:
        """从存储重建图层集合

        对加载的状态执行单选修复。修复后的快照发布后，再尽力持久化降级的
        图层。

        Args:
            error: 新快照上携带的错误信息（命令失败后设置）
            fallback_layers: 读取存储失败时发布的图层，默认为当前图层

        Returns:
            发布的快照
        """
        try:
            sources = await self.source_repository.list_sources(ALL_SOURCES)
            states = await self.layer_repository.get_layer_states()
            customs = await self.layer_repository.get_all_custom_metadata()
        except Exception as e:
            message = f"加载海图图层失败: {e}"
            logger.error(message)
            if error:
                message = f"{error}; {message}"
            layers = self._snapshot.layers if fallback_layers is None else fallback_layers
            return self._publish(layers, error=message, loaded=self._snapshot.loaded)

        layers, demoted = repair_single_selection(build_chart_layers(sources, states, customs))
        snapshot = self._publish(layers, error=error)
        logger.info(f"海图图层加载完成: 共 {len(layers)} 个图层，"
                    f"{sum(1 for layer in layers if layer.enabled)} 个已启用")

        if demoted:
            try:
                await self.layer_repository.save_layer_states(demoted)
            except Exception as e:
                logger.warning(f"无法持久化降级图层 {[state.chart_id for state in demoted]}: {e}")

        return snapshot

    load = reload

    # ---- 查询 ----

    def get_layer(self, chart_id: str) -> ChartLayer:
        return find_layer(self.layers, chart_id)

    def enabled_layer(self) -> Optional[ChartLayer]:
        for layer in self.layers:
            if layer.enabled:
                return layer
        return None

    def visible_layers(self, viewport: Optional[Viewport], zoom: float) -> List[ChartLayer]:
        return filter_visible_layers(self.layers, viewport, zoom)

    def effective_metadata(self, chart_id: str) -> EffectiveMetadata:
        layer = self.get_layer(chart_id)
        return EffectiveMetadata(
            name=layer.name,
            description=layer.description,
            min_zoom=layer.min_zoom,
            max_zoom=layer.max_zoom
        )

    def zoom_to(self, chart_id: str) -> Optional[BBox]:
        """交给地图导航的取景框，没有范围的海图返回 None"""
        return self.get_layer(chart_id).zoom_bounds

    def zoom_center(self, chart_id: str) -> Optional[Tuple[float, float]]:
        """跨经线海图的 (中心经度, 总跨度)，其他海图返回 None

        宿主可以用它把地图中心放在海图上，缩放框本身不保留方向。
        """
        layer = self.get_layer(chart_id)
        if layer.bounds is None or not layer.bounds_case.crosses_antimeridian:
            return None
        west, south, east, north = layer.bounds
        analysis = BoundsAnalysis(case=layer.bounds_case, west=west, south=south, east=east, north=north)
        return antimeridian_center_and_span(analysis)

    # ---- 命令 ----

    async def _run(self, change: LayerChange) -> LayerSnapshot:
        previous = self.layers
        self._publish(change.apply())
        try:
            await change.commit(self.layer_repository)
        except Exception as e:
            return await self.rollback(change, e, previous)

        logger.info(f"图层变更已提交: {change.description}")
        return self._snapshot

    async def rollback(self, change: LayerChange, exc: Exception, previous: Sequence[ChartLayer]) -> LayerSnapshot:
        """丢弃暂定变更并从存储重新加载

        存储也无法读取时，恢复变更前的图层。
        """
        message = f"{change.description} 失败: {exc}"
        logger.error(message)
        return await self.reload(error=message, fallback_layers=previous)

    async def toggle(self, chart_id: str) -> LayerSnapshot:
        """切换图层，启用时禁用其他所有图层"""
        return await self._run(plan_toggle(self.layers, chart_id))

    async def set_opacity(self, chart_id: str, opacity: float) -> LayerSnapshot:
        return await self._run(plan_opacity(self.layers, chart_id, opacity))

    async def set_z_order(self, chart_id: str, z_order: int) -> LayerSnapshot:
        return await self._run(plan_z_order(self.layers, chart_id, z_order))

    async def set_metadata(self, metadata: ChartCustomMetadata) -> LayerSnapshot:
        """替换图层的全部四个覆盖"""
        return await self._run(plan_metadata(self.layers, metadata))

    async def reset_metadata(self, chart_id: str) -> LayerSnapshot:
        """一次写入清除图层的全部覆盖"""
        return await self._run(plan_metadata_reset(self.layers, chart_id))

    async def remove(self, chart_ids: Iterable[str]) -> LayerSnapshot:
        """从目录删除海图及其图层状态

        Args:
            chart_ids: 要删除的海图

        Returns:
            重新加载后的快照
        """
        error = None
        for chart_id in chart_ids:
            try:
                await self.source_repository.delete(chart_id)
                await self.layer_repository.delete_layer_state(chart_id)
                logger.info(f"海图已删除: {chart_id}")
            except Exception as e:
                error = f"删除海图 {chart_id} 失败: {e}"
                logger.error(error)
                break
        return await self.reload(error=error)


# 全局图层存储实例，首次使用时创建
layer_store: Optional[ChartLayerStore] = None


async def get_layer_store() -> ChartLayerStore:
    """获取海图图层存储

    用于依赖注入

    Returns:
        海图图层存储
    """
    global layer_store
    if layer_store is None:
        layer_store = ChartLayerStore(
            await get_source_repository(),
            await get_layer_repository()
        )
    return layer_store
