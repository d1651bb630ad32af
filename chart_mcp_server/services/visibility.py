"""
图层可见性过滤

挑选与当前视口和缩放级别相关的海图并排序。只读，从不修改图层。
"""

import logging
from typing import Iterable, List, Optional

from ..utils.bounds import BoundsCase
from ..utils.viewport import Viewport, bounds_overlap
from .chart_layers import ChartLayer

logger = logging.getLogger(__name__)

ZOOM_BUFFER = 2
DEFAULT_MIN_ZOOM = 0
DEFAULT_MAX_ZOOM = 22
# 没有最大缩放级别的海图的排序键
DEFAULT_SORT_MAX_ZOOM = 18


def has_bounds(layer: ChartLayer) -> bool:
    return any(box is not None for box in (layer.render_bounds, layer.bounds, layer.zoom_bounds))


def layer_overlaps_viewport(layer: ChartLayer, viewport: Viewport) -> bool:
    """判断图层是否与视口相交

    渲染范围不跨经线，按普通矩形判断；跨经线的海图用带分类标记的规范
    矩形判断，即海图自身的覆盖范围。缩放范围只在没有范围分析结果时兜底，
    它的半跨度有上限，可能小于海图实际覆盖。
    """
    if layer.render_bounds is not None:
        return bounds_overlap(layer.render_bounds, BoundsCase.NORMAL, viewport)
    if layer.bounds is not None:
        return bounds_overlap(layer.bounds, layer.bounds_case, viewport)
    if layer.zoom_bounds is not None:
        return bounds_overlap(layer.zoom_bounds, layer.bounds_case, viewport)
    return False


def in_zoom_range(layer: ChartLayer, zoom: float) -> bool:
    """缩放级别是否落在按 ZOOM_BUFFER 放宽后的图层缩放范围内"""
    min_zoom = layer.min_zoom if layer.min_zoom is not None else DEFAULT_MIN_ZOOM
    max_zoom = layer.max_zoom if layer.max_zoom is not None else DEFAULT_MAX_ZOOM
    return min_zoom - ZOOM_BUFFER <= zoom <= max_zoom + ZOOM_BUFFER


def filter_visible_layers(
    layers: Iterable[ChartLayer],
    viewport: Optional[Viewport],
    zoom: float
) -> List[ChartLayer]:
    """给定视口和缩放级别下要呈现的海图

    Args:
        layers: 工作图层集合
        viewport: 当前视口，地图尚未就绪时为 None
        zoom: 当前缩放级别

    Returns:
        符合条件的图层，最精细（最大缩放级别最高）的在前
    """
    candidates = [layer for layer in layers if has_bounds(layer)]

    if viewport is None:
        overlapping = candidates
    else:
        overlapping = []
        for layer in candidates:
            if layer_overlaps_viewport(layer, viewport):
                overlapping.append(layer)
            else:
                logger.debug(f"海图 {layer.chart_id}: 已排除，与视口 {viewport.as_tuple()} 不相交")

    visible = []
    for layer in overlapping:
        if in_zoom_range(layer, zoom):
            visible.append(layer)
        else:
            logger.debug(f"海图 {layer.chart_id}: 已排除，缩放级别 {zoom:.1f} 不在 "
                         f"[{layer.min_zoom}-{layer.max_zoom}] 内")

    # sorted() 是稳定排序，最大缩放级别相同的保持输入顺序
    return sorted(
        visible,
        key=lambda layer: layer.max_zoom if layer.max_zoom is not None else DEFAULT_SORT_MAX_ZOOM,
        reverse=True
    )
