"""
视口相交判断

判断海图矩形是否与可见地图区域相交。视口总是来自渲染端，不跨经线；
海图矩形可能跨180度经线。
"""

import logging
import math
from typing import Optional, Sequence

from pydantic import BaseModel, ConfigDict

from .bounds import BoundsCase

logger = logging.getLogger(__name__)


class Viewport(BaseModel):
    """可见地图矩形（度），west < east"""
    model_config = ConfigDict(frozen=True)

    west: float
    south: float
    east: float
    north: float

    def as_tuple(self):
        return (self.west, self.south, self.east, self.north)


def _rect_overlap(west: float, south: float, east: float, north: float, viewport: Viewport) -> bool:
    # 严格比较：边相接也算相交
    return not (
        east < viewport.west
        or west > viewport.east
        or north < viewport.south
        or south > viewport.north
    )


def bounds_overlap(
    chart_bounds: Sequence[float],
    case: Optional[BoundsCase],
    viewport: Viewport,
) -> bool:
    """判断海图矩形是否与视口相交

    跨经线的海图在180度经线处拆成 [较大经度, 180] 和 [-180, 较小经度] 两段，
    任一段相交即算相交。跨经线顺序的东到西形式和按 min/max 排列的西到东形式
    都适用。

    Args:
        chart_bounds: (west, south, east, north)
        case: 海图范围分类，None 按正常处理
        viewport: 当前地图视口

    Returns:
        海图有任何部分可见时返回 True。任一侧含非有限值时返回 False。
    """
    west, south, east, north = chart_bounds
    values = (west, south, east, north) + viewport.as_tuple()
    if not all(math.isfinite(v) for v in values):
        logger.warning(f"相交判断收到无效范围: 海图={tuple(chart_bounds)}, 视口={viewport.as_tuple()}")
        return False

    if case is None or not case.crosses_antimeridian:
        return _rect_overlap(west, south, east, north, viewport)

    high = max(west, east)
    low = min(west, east)
    return (
        _rect_overlap(high, south, 180.0, north, viewport)
        or _rect_overlap(-180.0, south, low, north, viewport)
    )
