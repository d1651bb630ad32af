"""
海图范围工具

解析海图元数据中的 "minLon,minLat,maxLon,maxLat" 范围字符串，对结果分类
（正常、颠倒、两个方向的跨180度经线），并推导交给地图组件的两个矩形：

- 渲染范围：渲染器的硬约束，只用于不跨180度经线的矩形
- 缩放范围："缩放到海图" 时的取景框，所有范围可解析的海图都有
"""

import logging
import math
from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)

BBox = Tuple[float, float, float, float]

# 超过180度宽的缩放框没有取景意义
ZOOM_HALF_SPAN_CAP = 90.0


class BoundsCase(str, Enum):
    """海图原始经度对的解读方式"""
    NORMAL = "normal"
    INVERTED = "inverted"
    ANTIMERIDIAN_EAST_TO_WEST = "antimeridian_east_to_west"
    ANTIMERIDIAN_WEST_TO_EAST = "antimeridian_west_to_east"

    @property
    def crosses_antimeridian(self) -> bool:
        return self in (
            BoundsCase.ANTIMERIDIAN_EAST_TO_WEST,
            BoundsCase.ANTIMERIDIAN_WEST_TO_EAST,
        )


class BoundsAnalysis(BaseModel):
    """带分类标记的规范矩形

    两种跨180度经线的情况下，west/east 保持源范围的原始顺序。
    """
    model_config = ConfigDict(frozen=True)

    case: BoundsCase
    west: float
    south: float
    east: float
    north: float

    def as_tuple(self) -> BBox:
        return (self.west, self.south, self.east, self.north)


def wrap_longitude(lon: float) -> float:
    """把溢出不足一圈的经度折回 [-180, 180]"""
    if lon > 180:
        return lon - 360
    if lon < -180:
        return lon + 360
    return lon


def parse_bounds(raw: Optional[str]) -> Optional[BBox]:
    """把范围字符串解析为四个浮点数

    Args:
        raw: "minLon,minLat,maxLon,maxLat" 字符串，或 None

    Returns:
        (min_lon, min_lat, max_lon, max_lat)，海图没有可用范围时返回 None
    """
    if raw is None:
        return None
    if not isinstance(raw, str) or not raw.strip():
        logger.debug(f"范围值为空: {raw!r}")
        return None

    parts = raw.split(",")
    if len(parts) != 4:
        logger.warning(f"忽略分段数为 {len(parts)} 的范围: {raw!r}")
        return None

    values = []
    for part in parts:
        try:
            value = float(part)
        except ValueError:
            logger.warning(f"忽略非数值范围: {raw!r}")
            return None
        if not math.isfinite(value):
            logger.warning(f"忽略非有限值范围: {raw!r}")
            return None
        values.append(value)

    return (values[0], values[1], values[2], values[3])


def analyze_bounds(min_lon: float, min_lat: float, max_lon: float, max_lat: float) -> BoundsAnalysis:
    """对原始范围分类并构建规范矩形

    规则按优先级依次判断：

    1. minLon 为正且 maxLon 为负：覆盖范围向东穿过 +180/-180
    2. minLon 为负、maxLon 为正且字面跨度超过180度：只有反方向环绕才说得通
    3. 其余 minLon > maxLon 的情况：交换两个经度
    4. 其他情况按原样使用

    真正跨度超过180度但不跨经线的海图会被当作规则2处理，这个阈值有意保留。

    Args:
        min_lon: 存储的西经度
        min_lat: 南纬度
        max_lon: 存储的东经度
        max_lat: 北纬度

    Returns:
        带分类标记和规范矩形的 BoundsAnalysis
    """
    if min_lon > 0 and max_lon < 0:
        case = BoundsCase.ANTIMERIDIAN_EAST_TO_WEST
    elif min_lon < 0 and max_lon > 0 and (max_lon - min_lon) > 180:
        case = BoundsCase.ANTIMERIDIAN_WEST_TO_EAST
    elif min_lon > max_lon:
        return BoundsAnalysis(
            case=BoundsCase.INVERTED,
            west=max_lon,
            south=min_lat,
            east=min_lon,
            north=max_lat,
        )
    else:
        case = BoundsCase.NORMAL

    return BoundsAnalysis(case=case, west=min_lon, south=min_lat, east=max_lon, north=max_lat)


def analyze_bounds_string(raw: Optional[str]) -> Optional[BoundsAnalysis]:
    """一步完成解析和分类，字符串不可用时返回 None"""
    parsed = parse_bounds(raw)
    if parsed is None:
        return None
    return analyze_bounds(*parsed)


def resolve_render_bounds(analysis: BoundsAnalysis) -> Optional[BBox]:
    """可以作为硬约束交给渲染器的矩形

    渲染器假定 west < east 且不环绕，跨经线的海图不加任何约束。
    """
    if analysis.case.crosses_antimeridian:
        return None
    return analysis.as_tuple()


def antimeridian_center_and_span(analysis: BoundsAnalysis) -> Optional[Tuple[float, float]]:
    """跨经线海图的真实中心经度和总经度跨度

    Args:
        analysis: 海图范围分析结果

    Returns:
        (center, total_span)，单位为度；不跨经线时返回 None
    """
    west, east = analysis.west, analysis.east

    if analysis.case == BoundsCase.ANTIMERIDIAN_EAST_TO_WEST:
        east_side_span = 180 - west
        west_side_span = 180 + east
        total_span = east_side_span + west_side_span
        center = 180 - west_side_span / 2 + east_side_span / 2
        if center > 180:
            center -= 360
        return center, total_span

    if analysis.case == BoundsCase.ANTIMERIDIAN_WEST_TO_EAST:
        west_side_span = 180 + west
        east_side_span = 180 - east
        total_span = west_side_span + east_side_span
        center = -180 + west_side_span / 2 - east_side_span / 2
        if center < -180:
            center += 360
        return center, total_span

    return None


def calculate_zoom_bounds(analysis: BoundsAnalysis) -> BBox:
    """缩放到海图时的取景框

    不跨经线的海图直接用规范矩形。跨经线的海图以真实中心为轴取对称框，
    半跨度上限为 ZOOM_HALF_SPAN_CAP。很宽的跨经线海图取景较粗，这个框从不
    用作渲染约束或可见性判断。

    Args:
        analysis: 海图范围分析结果

    Returns:
        (west, south, east, north)，且 west <= east
    """
    center_span = antimeridian_center_and_span(analysis)
    if center_span is None:
        return analysis.as_tuple()

    center, total_span = center_span
    half_span = min(total_span / 2, ZOOM_HALF_SPAN_CAP)
    zoom_west = wrap_longitude(center - half_span)
    zoom_east = wrap_longitude(center + half_span)

    logger.debug(
        f"{analysis.case.value} 海图缩放范围: 中心={center:.3f}, "
        f"跨度={total_span:.3f} -> [{zoom_west:.3f}, {zoom_east:.3f}]"
    )
    return (
        min(zoom_west, zoom_east),
        analysis.south,
        max(zoom_west, zoom_east),
        analysis.north,
    )
