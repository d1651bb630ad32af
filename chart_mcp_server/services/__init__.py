"""
服务模块

海图图层组装、可见性过滤、单选状态协调、自定义元数据覆盖以及图层存储
"""

from .chart_layers import ChartLayer, build_chart_layer, build_chart_layers, filter_layers_by_text
from .custom_metadata import EffectiveMetadata, apply_overrides
from .visibility import filter_visible_layers
from .layer_state import ChartLayerNotFoundError, LayerChange, repair_single_selection, plan_toggle
from .layer_store import ChartLayerStore, LayerSnapshot, get_layer_store
from .mbtiles import ChartImportError, import_mbtiles_chart

__all__ = [
    'ChartLayer',
    'build_chart_layer',
    'build_chart_layers',
    'filter_layers_by_text',
    'EffectiveMetadata',
    'apply_overrides',
    'filter_visible_layers',
    'ChartLayerNotFoundError',
    'LayerChange',
    'repair_single_selection',
    'plan_toggle',
    'ChartLayerStore',
    'LayerSnapshot',
    'get_layer_store',
    'ChartImportError',
    'import_mbtiles_chart'
]
