"""
数据库模块

提供海图源和海图图层状态的连接管理、数据模型和数据访问
"""

from .models import (
    ChartSource,
    ChartLayerState,
    ChartCustomMetadata,
    ChartSourceQuery
)
from .connection import (
    DatabaseManager,
    db_manager,
    get_db_manager,
    init_database,
    close_database
)
from .repository import (
    ChartSourceRepository,
    ChartLayerRepository,
    get_source_repository,
    get_layer_repository
)

__all__ = [
    # 数据模型
    'ChartSource',
    'ChartLayerState',
    'ChartCustomMetadata',
    'ChartSourceQuery',

    # 数据库连接
    'DatabaseManager',
    'db_manager',
    'get_db_manager',
    'init_database',
    'close_database',

    # 数据访问
    'ChartSourceRepository',
    'ChartLayerRepository',
    'get_source_repository',
    'get_layer_repository'
]
