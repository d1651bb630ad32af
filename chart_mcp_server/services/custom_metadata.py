"""
自定义元数据覆盖

把用户覆盖合并到源元数据上。每个字段独立处理，覆盖为 None 时回退到源值。
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict

from ..database.models import ChartSource, ChartCustomMetadata


class EffectiveMetadata(BaseModel):
    """应用覆盖后的元数据"""
    model_config = ConfigDict(frozen=True)

    name: str
    description: Optional[str] = None
    min_zoom: Optional[int] = None
    max_zoom: Optional[int] = None


def _pick(override, source):
    return override if override is not None else source


def merge_overrides(
    custom: Optional[ChartCustomMetadata],
    name: str,
    description: Optional[str],
    min_zoom: Optional[int],
    max_zoom: Optional[int]
) -> EffectiveMetadata:
    """逐字段把覆盖应用到源值上

    Args:
        custom: 用户覆盖，海图没有覆盖时为 None
        name: 源名称
        description: 源描述
        min_zoom: 源最小缩放级别
        max_zoom: 源最大缩放级别

    Returns:
        EffectiveMetadata
    """
    if custom is None:
        return EffectiveMetadata(name=name, description=description, min_zoom=min_zoom, max_zoom=max_zoom)

    return EffectiveMetadata(
        name=_pick(custom.custom_name, name),
        description=_pick(custom.custom_description, description),
        min_zoom=_pick(custom.custom_min_zoom, min_zoom),
        max_zoom=_pick(custom.custom_max_zoom, max_zoom),
    )


def apply_overrides(source: ChartSource, custom: Optional[ChartCustomMetadata]) -> EffectiveMetadata:
    """海图源的有效元数据"""
    return merge_overrides(custom, source.name, source.description, source.min_zoom, source.max_zoom)


def cleared_overrides(chart_id: str) -> ChartCustomMetadata:
    """所有字段都已清除的覆盖记录"""
    return ChartCustomMetadata(chart_id=chart_id)
