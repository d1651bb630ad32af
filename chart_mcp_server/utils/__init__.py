"""
工具模块

范围解析与分类、缩放/渲染矩形推导以及视口相交判断
"""

from .bounds import (
    BBox,
    BoundsCase,
    BoundsAnalysis,
    parse_bounds,
    analyze_bounds,
    analyze_bounds_string,
    resolve_render_bounds,
    calculate_zoom_bounds,
    antimeridian_center_and_span
)
from .viewport import Viewport, bounds_overlap

__all__ = [
    'BBox',
    'BoundsCase',
    'BoundsAnalysis',
    'parse_bounds',
    'analyze_bounds',
    'analyze_bounds_string',
    'resolve_render_bounds',
    'calculate_zoom_bounds',
    'antimeridian_center_and_span',
    'Viewport',
    'bounds_overlap'
]
