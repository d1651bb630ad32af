"""
图层状态协调

保证同一时刻最多只有一个海图图层处于启用状态。每次变更都在这里规划为
一个 LayerChange：一个暂定的图层元组，加上使其持久化的写操作。图层存储
先发布暂定元组再提交，外部不会看到只应用了一半的状态。
"""

import logging
from typing import List, Optional, Sequence, Tuple

from ..database.models import ChartLayerState, ChartCustomMetadata
from ..database.repository import ChartLayerRepository
from .chart_layers import ChartLayer, sort_by_z_order, with_custom_metadata
from .custom_metadata import cleared_overrides

logger = logging.getLogger(__name__)

Layers = Tuple[ChartLayer, ...]


class ChartLayerNotFoundError(LookupError):
    """命令指定的海图不在图层集合中时抛出"""

    def __init__(self, chart_id: str):
        super().__init__(f"海图图层不存在: {chart_id}")
        self.chart_id = chart_id


class LayerChange:
    """对图层集合的暂定变更

    apply() 返回下一个图层元组；commit() 按顺序执行写操作，第一个失败的
    写操作会中止提交并向上抛出。
    """

    def __init__(
        self,
        description: str,
        layers: Sequence[ChartLayer],
        state_writes: Optional[List[ChartLayerState]] = None,
        metadata_write: Optional[ChartCustomMetadata] = None,
        metadata_reset: bool = False
    ):
        self.description = description
        self.layers: Layers = tuple(layers)
        self.state_writes = state_writes or []
        self.metadata_write = metadata_write
        self.metadata_reset = metadata_reset

    def apply(self) -> Layers:
        return self.layers

    async def commit(self, repository: ChartLayerRepository) -> None:
        for state in self.state_writes:
            await repository.save_layer_state(state)

        if self.metadata_write is not None:
            chart_id = self.metadata_write.chart_id
            if self.metadata_reset:
                await repository.clear_custom_metadata(chart_id)
            else:
                layer = find_layer(self.layers, chart_id)
                await repository.save_custom_metadata(self.metadata_write, layer.to_state())

    def __repr__(self):
        return f"LayerChange({self.description!r}, writes={len(self.state_writes)})"


def find_layer(layers: Sequence[ChartLayer], chart_id: str) -> ChartLayer:
    for layer in layers:
        if layer.chart_id == chart_id:
            return layer
    raise ChartLayerNotFoundError(chart_id)


def enabled_layers(layers: Sequence[ChartLayer]) -> List[ChartLayer]:
    return [layer for layer in layers if layer.enabled]


def repair_single_selection(layers: Sequence[ChartLayer]) -> Tuple[Layers, List[ChartLayerState]]:
    """只保留第一个启用的图层，其余降级为禁用

    Args:
        layers: 加载后的图层，按迭代顺序

    Returns:
        (修复后的图层, 需要持久化的降级图层状态)
    """
    repaired = []
    demoted = []
    keeper = None

    for layer in layers:
        if layer.enabled and keeper is None:
            keeper = layer.chart_id
        elif layer.enabled:
            layer = layer.model_copy(update={"enabled": False})
            demoted.append(layer.to_state())
        repaired.append(layer)

    if demoted:
        logger.info(f"已修复单选状态: 保留 {keeper}，"
                    f"禁用 {[state.chart_id for state in demoted]}")

    return tuple(repaired), demoted


def plan_toggle(layers: Sequence[ChartLayer], chart_id: str) -> LayerChange:
    """切换一个图层；启用它时禁用其他所有图层

    Args:
        layers: 当前图层
        chart_id: 要切换的海图

    Returns:
        LayerChange，持久化被切换的图层，启用时还持久化之前启用的每个图层
    """
    target = find_layer(layers, chart_id)
    new_enabled = not target.enabled
    previously_enabled = [layer.chart_id for layer in layers if layer.enabled and layer.chart_id != chart_id]

    next_layers = []
    writes = []
    for layer in layers:
        if layer.chart_id == chart_id:
            layer = layer.model_copy(update={"enabled": new_enabled})
            writes.insert(0, layer.to_state())
        elif new_enabled and layer.enabled:
            layer = layer.model_copy(update={"enabled": False})
            writes.append(layer.to_state())
        next_layers.append(layer)

    description = f"{'启用' if new_enabled else '禁用'} {chart_id}"
    if new_enabled and previously_enabled:
        description += f"，禁用 {', '.join(previously_enabled)}"

    return LayerChange(description, next_layers, state_writes=writes)


def _replace(layers: Sequence[ChartLayer], chart_id: str, **update) -> Tuple[List[ChartLayer], ChartLayer]:
    find_layer(layers, chart_id)
    next_layers = []
    changed = None
    for layer in layers:
        if layer.chart_id == chart_id:
            layer = layer.model_copy(update=update)
            changed = layer
        next_layers.append(layer)
    return next_layers, changed


def plan_opacity(layers: Sequence[ChartLayer], chart_id: str, opacity: float) -> LayerChange:
    """设置单个图层的透明度，限制在 [0, 1]"""
    clamped = max(0.0, min(1.0, float(opacity)))
    next_layers, changed = _replace(layers, chart_id, opacity=clamped)
    return LayerChange(f"设置透明度 {chart_id}={clamped}", next_layers, state_writes=[changed.to_state()])


def plan_z_order(layers: Sequence[ChartLayer], chart_id: str, z_order: int) -> LayerChange:
    """调整单个图层的叠放顺序"""
    next_layers, changed = _replace(layers, chart_id, z_order=int(z_order))
    return LayerChange(
        f"设置叠放顺序 {chart_id}={z_order}",
        sort_by_z_order(next_layers),
        state_writes=[changed.to_state()]
    )


def plan_metadata(layers: Sequence[ChartLayer], custom: ChartCustomMetadata) -> LayerChange:
    """替换单个图层的全部四个覆盖"""
    find_layer(layers, custom.chart_id)
    next_layers = [
        with_custom_metadata(layer, custom) if layer.chart_id == custom.chart_id else layer
        for layer in layers
    ]
    return LayerChange(f"更新元数据 {custom.chart_id}", next_layers, metadata_write=custom)


def plan_metadata_reset(layers: Sequence[ChartLayer], chart_id: str) -> LayerChange:
    """一次清除单个图层的全部覆盖"""
    cleared = cleared_overrides(chart_id)
    change = plan_metadata(layers, cleared)
    change.description = f"重置元数据 {chart_id}"
    change.metadata_reset = True
    return change
