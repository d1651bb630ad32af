"""
海图图层组装

按 chart_id 把三条独立记录合并为工作用的 ChartLayer 集合：源元数据、
持久化的图层状态和自定义元数据。每次刷新时整体重建。
"""

import logging
import re
from typing import Dict, Iterable, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from ..database.models import ChartSource, ChartLayerState, ChartCustomMetadata
from ..utils.bounds import (
    BBox,
    BoundsCase,
    analyze_bounds_string,
    resolve_render_bounds,
    calculate_zoom_bounds
)
from .custom_metadata import apply_overrides, merge_overrides

logger = logging.getLogger(__name__)

# 从未持久化过的海图的默认值
DEFAULT_ENABLED = True
DEFAULT_OPACITY = 1.0
DEFAULT_Z_ORDER = 0
DEFAULT_FORMAT = "png"

VECTOR_FORMATS = {"pbf", "mvt"}
RNC_CHART_ID = re.compile(r"^[A-Z]{2}\d{4,6}$")


class ChartLayer(BaseModel):
    """呈现给地图和图层列表的海图

    不可变；状态变化通过 model_copy 生成新实例。bounds 是带分类标记的
    规范矩形，跨经线时保持源经度顺序。
    """
    model_config = ConfigDict(frozen=True)

    chart_id: str
    name: str
    description: Optional[str] = None
    format: str = DEFAULT_FORMAT
    tile_type: Literal["raster", "vector"] = "raster"
    enabled: bool = DEFAULT_ENABLED
    opacity: float = Field(DEFAULT_OPACITY, ge=0.0, le=1.0)
    z_order: int = DEFAULT_Z_ORDER
    bounds_case: Optional[BoundsCase] = None
    bounds: Optional[Tuple[float, float, float, float]] = None
    render_bounds: Optional[Tuple[float, float, float, float]] = None
    zoom_bounds: Optional[Tuple[float, float, float, float]] = None
    min_zoom: Optional[int] = None
    max_zoom: Optional[int] = None

    source_name: str
    source_description: Optional[str] = None
    source_min_zoom: Optional[int] = None
    source_max_zoom: Optional[int] = None

    custom_name: Optional[str] = None
    custom_description: Optional[str] = None
    custom_min_zoom: Optional[int] = None
    custom_max_zoom: Optional[int] = None

    def to_state(self) -> ChartLayerState:
        """图层中可持久化的部分"""
        return ChartLayerState(
            chart_id=self.chart_id,
            enabled=self.enabled,
            opacity=self.opacity,
            z_order=self.z_order
        )

    def custom_metadata(self) -> ChartCustomMetadata:
        """按存储形式返回覆盖字段"""
        return ChartCustomMetadata(
            chart_id=self.chart_id,
            custom_name=self.custom_name,
            custom_description=self.custom_description,
            custom_min_zoom=self.custom_min_zoom,
            custom_max_zoom=self.custom_max_zoom
        )

    def to_dict(self) -> Dict:
        """供工具和资源使用的 JSON 友好字典"""
        data = self.model_dump(mode="json")
        data["chart_kind"] = chart_kind(self)
        data["short_name"] = short_display_name(self)
        return data


def tile_type_for_format(format: Optional[str]) -> str:
    """pbf/mvt 瓦片为矢量，其余为栅格"""
    if not format:
        return "raster"
    return "vector" if format.lower() in VECTOR_FORMATS else "raster"


def chart_kind(layer: ChartLayer) -> str:
    """由栅格航海图转换而来的海图为 'rnc'，否则为 'mbtiles'"""
    if layer.format.lower() in VECTOR_FORMATS:
        return "mbtiles"
    if RNC_CHART_ID.match(layer.chart_id):
        return "rnc"
    return "mbtiles"


def short_display_name(layer: ChartLayer) -> str:
    """紧凑海图列表中使用的简称"""
    if len(layer.chart_id) <= 10:
        return layer.chart_id
    return layer.chart_id[:8] + "..."


def build_chart_layer(
    source: ChartSource,
    state: Optional[ChartLayerState] = None,
    custom: Optional[ChartCustomMetadata] = None
) -> ChartLayer:
    """把一幅海图的三条记录合并为 ChartLayer

    Args:
        source: 源元数据
        state: 持久化的图层状态，从未保存过的海图为 None
        custom: 自定义元数据覆盖

    Returns:
        ChartLayer
    """
    effective = apply_overrides(source, custom)

    bounds: Optional[BBox] = None
    render_bounds: Optional[BBox] = None
    zoom_bounds: Optional[BBox] = None
    bounds_case: Optional[BoundsCase] = None

    analysis = analyze_bounds_string(source.bounds)
    if analysis is not None:
        bounds_case = analysis.case
        bounds = analysis.as_tuple()
        render_bounds = resolve_render_bounds(analysis)
        zoom_bounds = calculate_zoom_bounds(analysis)
        if bounds_case.crosses_antimeridian:
            logger.info(f"海图 {source.chart_id} 跨越180度经线 ({bounds_case.value})，"
                        f"不设渲染范围，缩放范围 {zoom_bounds}")
    elif source.bounds:
        logger.warning(f"海图 {source.chart_id} 的范围不可用: {source.bounds!r}")

    return ChartLayer(
        chart_id=source.chart_id,
        name=effective.name,
        description=effective.description,
        format=source.format or DEFAULT_FORMAT,
        tile_type=tile_type_for_format(source.format),
        enabled=state.enabled if state else DEFAULT_ENABLED,
        opacity=state.opacity if state else DEFAULT_OPACITY,
        z_order=state.z_order if state else DEFAULT_Z_ORDER,
        bounds_case=bounds_case,
        bounds=bounds,
        render_bounds=render_bounds,
        zoom_bounds=zoom_bounds,
        min_zoom=effective.min_zoom,
        max_zoom=effective.max_zoom,
        source_name=source.name,
        source_description=source.description,
        source_min_zoom=source.min_zoom,
        source_max_zoom=source.max_zoom,
        custom_name=custom.custom_name if custom else None,
        custom_description=custom.custom_description if custom else None,
        custom_min_zoom=custom.custom_min_zoom if custom else None,
        custom_max_zoom=custom.custom_max_zoom if custom else None
    )


def with_custom_metadata(layer: ChartLayer, custom: ChartCustomMetadata) -> ChartLayer:
    """替换覆盖字段并重新计算有效值后的图层"""
    effective = merge_overrides(
        custom,
        layer.source_name,
        layer.source_description,
        layer.source_min_zoom,
        layer.source_max_zoom
    )
    return layer.model_copy(update={
        "name": effective.name,
        "description": effective.description,
        "min_zoom": effective.min_zoom,
        "max_zoom": effective.max_zoom,
        "custom_name": custom.custom_name,
        "custom_description": custom.custom_description,
        "custom_min_zoom": custom.custom_min_zoom,
        "custom_max_zoom": custom.custom_max_zoom
    })


def sort_by_z_order(layers: Iterable[ChartLayer]) -> List[ChartLayer]:
    """稳定排序，最底层在前"""
    return sorted(layers, key=lambda layer: layer.z_order)


def build_chart_layers(
    sources: Iterable[ChartSource],
    states: Iterable[ChartLayerState],
    customs: Iterable[ChartCustomMetadata]
) -> List[ChartLayer]:
    """构建工作图层集合

    Args:
        sources: 按目录顺序排列的海图源
        states: 持久化的图层状态
        customs: 持久化的自定义元数据

    Returns:
        按 z_order 排序的图层，相同时按目录顺序
    """
    state_map = {state.chart_id: state for state in states}
    custom_map = {custom.chart_id: custom for custom in customs}

    layers = [
        build_chart_layer(source, state_map.get(source.chart_id), custom_map.get(source.chart_id))
        for source in sources
    ]
    return sort_by_z_order(layers)


def filter_layers_by_text(layers: Iterable[ChartLayer], text: Optional[str]) -> List[ChartLayer]:
    """按名称或海图标识做不区分大小写的子串匹配，空文本保留全部"""
    layers = list(layers)
    if not text or not text.strip():
        return layers
    needle = text.strip().lower()
    return [
        layer for layer in layers
        if needle in layer.name.lower() or needle in layer.chart_id.lower()
    ]
