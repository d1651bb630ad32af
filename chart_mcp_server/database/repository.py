"""
海图数据访问层

提供海图源、海图图层状态和自定义元数据的 CRUD 操作接口
"""

from datetime import datetime
from typing import Iterable, List, Optional
import logging

from .models import ChartSource, ChartLayerState, ChartCustomMetadata, ChartSourceQuery
from .connection import DatabaseManager, get_db_manager

logger = logging.getLogger(__name__)

# 写入图层状态并保留自定义元数据列
UPSERT_LAYER_STATE_SQL = """
INSERT INTO chart_layers (chart_id, enabled, opacity, z_order)
VALUES (?, ?, ?, ?)
ON CONFLICT(chart_id) DO UPDATE SET
    enabled = excluded.enabled,
    opacity = excluded.opacity,
    z_order = excluded.z_order
"""


def _state_params(state: ChartLayerState) -> tuple:
    return (state.chart_id, 1 if state.enabled else 0, state.opacity, state.z_order)


class ChartSourceRepository:
    """海图源数据访问层

    存储已安装海图的源元数据
    """

    def __init__(self, db_manager: DatabaseManager):
        """初始化仓储

        Args:
            db_manager: 数据库管理器
        """
        self.db_manager = db_manager

    async def upsert(self, source: ChartSource) -> ChartSource:
        """插入海图源，已存在相同标识时替换

        Args:
            source: 海图源元数据

        Returns:
            已存储的海图源
        """
        existing = await self.get_by_id(source.chart_id)
        now = datetime.now()
        stored = source.model_copy(update={
            "created_at": existing.created_at if existing else now,
            "updated_at": now
        })

        # ON CONFLICT 保留 rowid，目录顺序由 rowid 决定
        sql = """
        INSERT INTO chart_sources (
            chart_id, name, format, bounds, min_zoom, max_zoom,
            description, file_path, created_at, updated_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(chart_id) DO UPDATE SET
            name = excluded.name,
            format = excluded.format,
            bounds = excluded.bounds,
            min_zoom = excluded.min_zoom,
            max_zoom = excluded.max_zoom,
            description = excluded.description,
            file_path = excluded.file_path,
            updated_at = excluded.updated_at
        """

        data_dict = stored.to_dict()
        params = (
            data_dict['chart_id'],
            data_dict['name'],
            data_dict['format'],
            data_dict['bounds'],
            data_dict['min_zoom'],
            data_dict['max_zoom'],
            data_dict['description'],
            data_dict['file_path'],
            data_dict['created_at'],
            data_dict['updated_at']
        )

        try:
            await self.db_manager.execute_update(sql, params)
            logger.info(f"海图源已{'更新' if existing else '创建'}: {stored.chart_id}")
            return stored
        except Exception as e:
            logger.error(f"保存海图源失败: {e}")
            raise

    async def get_by_id(self, chart_id: str) -> Optional[ChartSource]:
        """根据标识获取海图源

        Args:
            chart_id: 海图标识

        Returns:
            海图源，不存在时返回 None
        """
        sql = "SELECT * FROM chart_sources WHERE chart_id = ?"
        result = await self.db_manager.fetch_one(sql, (chart_id,))

        if result:
            return ChartSource.from_dict(result)
        return None

    def _build_where(self, query: ChartSourceQuery):
        where_conditions = []
        params = []

        if query.text and query.text.strip():
            where_conditions.append("(LOWER(name) LIKE ? OR LOWER(chart_id) LIKE ?)")
            pattern = f"%{query.text.strip().lower()}%"
            params.extend([pattern, pattern])

        where = ""
        if where_conditions:
            where = " WHERE " + " AND ".join(where_conditions)
        return where, params

    async def list_sources(self, query: Optional[ChartSourceQuery] = None) -> List[ChartSource]:
        """按目录顺序（插入顺序）列出海图源

        Args:
            query: 查询参数

        Returns:
            海图源列表
        """
        query = query or ChartSourceQuery()
        where, params = self._build_where(query)

        sql = "SELECT * FROM chart_sources" + where + " ORDER BY rowid ASC LIMIT ? OFFSET ?"
        params.extend([query.limit, query.offset])

        results = await self.db_manager.fetch_all(sql, tuple(params))
        return [ChartSource.from_dict(result) for result in results]

    async def count(self, query: Optional[ChartSourceQuery] = None) -> int:
        """统计符合条件的海图源数量"""
        query = query or ChartSourceQuery()
        where, params = self._build_where(query)

        sql = "SELECT COUNT(*) as count FROM chart_sources" + where
        result = await self.db_manager.fetch_one(sql, tuple(params))
        return result['count'] if result else 0

    async def delete(self, chart_id: str) -> bool:
        """删除海图源

        Args:
            chart_id: 海图标识

        Returns:
            删除成功返回 True，不存在返回 False
        """
        sql = "DELETE FROM chart_sources WHERE chart_id = ?"

        try:
            affected_rows = await self.db_manager.execute_update(sql, (chart_id,))
            if affected_rows > 0:
                logger.info(f"海图源已删除: {chart_id}")
                return True
            else:
                logger.warning(f"海图源不存在: {chart_id}")
                return False
        except Exception as e:
            logger.error(f"删除海图源失败: {e}")
            raise


class ChartLayerRepository:
    """海图图层数据访问层

    持久化图层状态和自定义元数据，两者都存放在以 chart_id 为键的
    chart_layers 表中
    """

    def __init__(self, db_manager: DatabaseManager):
        """初始化仓储

        Args:
            db_manager: 数据库管理器
        """
        self.db_manager = db_manager

    async def save_layer_state(self, state: ChartLayerState) -> None:
        """插入或更新单个图层的状态，保留其自定义元数据

        Args:
            state: 要持久化的图层状态
        """
        try:
            await self.db_manager.execute_update(UPSERT_LAYER_STATE_SQL, _state_params(state))
            logger.debug(f"图层状态已保存: {state.chart_id} enabled={state.enabled} "
                         f"opacity={state.opacity} z_order={state.z_order}")
        except Exception as e:
            logger.error(f"保存图层状态失败 {state.chart_id}: {e}")
            raise

    async def save_layer_states(self, states: Iterable[ChartLayerState]) -> None:
        """在一个事务中写入多个图层状态，每个图层一行

        Args:
            states: 要持久化的图层状态
        """
        states = list(states)
        if not states:
            return

        try:
            await self.db_manager.execute_many(UPSERT_LAYER_STATE_SQL, [_state_params(state) for state in states])
            logger.debug(f"批量保存图层状态: {[state.chart_id for state in states]}")
        except Exception as e:
            logger.error(f"批量保存图层状态失败: {e}")
            raise

    async def get_layer_states(self) -> List[ChartLayerState]:
        """获取所有图层状态，按 z_order 排序

        Returns:
            图层状态列表
        """
        sql = "SELECT chart_id, enabled, opacity, z_order FROM chart_layers ORDER BY z_order ASC"
        results = await self.db_manager.fetch_all(sql)
        return [ChartLayerState.from_dict(result) for result in results]

    async def get_layer_state(self, chart_id: str) -> Optional[ChartLayerState]:
        """获取单个图层的状态

        Args:
            chart_id: 海图标识

        Returns:
            图层状态，从未保存时返回 None
        """
        sql = "SELECT chart_id, enabled, opacity, z_order FROM chart_layers WHERE chart_id = ?"
        result = await self.db_manager.fetch_one(sql, (chart_id,))

        if result:
            return ChartLayerState.from_dict(result)
        return None

    async def delete_layer_state(self, chart_id: str) -> bool:
        """删除图层的状态行（连同其自定义元数据）

        Args:
            chart_id: 海图标识

        Returns:
            删除了记录时返回 True
        """
        sql = "DELETE FROM chart_layers WHERE chart_id = ?"

        try:
            affected_rows = await self.db_manager.execute_update(sql, (chart_id,))
            return affected_rows > 0
        except Exception as e:
            logger.error(f"删除图层状态失败 {chart_id}: {e}")
            raise

    async def save_custom_metadata(self, metadata: ChartCustomMetadata, state: ChartLayerState) -> None:
        """写入图层的全部四个覆盖列

        图层从未持久化时，先用 `state` 创建状态行；已有的行保留原状态。

        Args:
            metadata: 要存储的覆盖，None 值清除对应覆盖
            state: 图层当前状态，仅在缺少记录时使用
        """
        insert_sql = """
        INSERT OR IGNORE INTO chart_layers (chart_id, enabled, opacity, z_order)
        VALUES (?, ?, ?, ?)
        """
        update_sql = """
        UPDATE chart_layers SET custom_name = ?, custom_description = ?,
            custom_min_zoom = ?, custom_max_zoom = ?
        WHERE chart_id = ?
        """

        conn = await self.db_manager.connect()
        try:
            await conn.execute(insert_sql, _state_params(state))
            await conn.execute(update_sql, (
                metadata.custom_name,
                metadata.custom_description,
                metadata.custom_min_zoom,
                metadata.custom_max_zoom,
                metadata.chart_id
            ))
            await conn.commit()
            logger.info(f"自定义元数据已保存: {metadata.chart_id}")
        except Exception as e:
            logger.error(f"保存自定义元数据失败 {metadata.chart_id}: {e}")
            await conn.rollback()
            raise

    async def clear_custom_metadata(self, chart_id: str) -> bool:
        """用一条语句清除图层的全部四个覆盖

        Args:
            chart_id: 海图标识

        Returns:
            图层有记录可清除时返回 True
        """
        sql = """
        UPDATE chart_layers SET custom_name = NULL, custom_description = NULL,
            custom_min_zoom = NULL, custom_max_zoom = NULL
        WHERE chart_id = ?
        """

        try:
            affected_rows = await self.db_manager.execute_update(sql, (chart_id,))
            logger.info(f"自定义元数据已重置: {chart_id}")
            return affected_rows > 0
        except Exception as e:
            logger.error(f"重置自定义元数据失败 {chart_id}: {e}")
            raise

    async def get_custom_metadata(self, chart_id: str) -> Optional[ChartCustomMetadata]:
        """获取单个图层的覆盖

        Args:
            chart_id: 海图标识

        Returns:
            自定义元数据，图层没有记录时返回 None
        """
        sql = """
        SELECT chart_id, custom_name, custom_description, custom_min_zoom, custom_max_zoom
        FROM chart_layers WHERE chart_id = ?
        """
        result = await self.db_manager.fetch_one(sql, (chart_id,))

        if result:
            return ChartCustomMetadata(**result)
        return None

    async def get_all_custom_metadata(self) -> List[ChartCustomMetadata]:
        """获取至少有一个覆盖的所有图层的覆盖

        Returns:
            自定义元数据列表
        """
        sql = """
        SELECT chart_id, custom_name, custom_description, custom_min_zoom, custom_max_zoom
        FROM chart_layers
        WHERE custom_name IS NOT NULL OR custom_description IS NOT NULL
            OR custom_min_zoom IS NOT NULL OR custom_max_zoom IS NOT NULL
        """
        results = await self.db_manager.fetch_all(sql)
        return [ChartCustomMetadata(**result) for result in results]


async def get_source_repository() -> ChartSourceRepository:
    """获取海图源仓储实例

    用于依赖注入

    Returns:
        海图源仓储实例
    """
    db_manager = await get_db_manager()
    return ChartSourceRepository(db_manager)


async def get_layer_repository() -> ChartLayerRepository:
    """获取海图图层仓储实例

    用于依赖注入

    Returns:
        海图图层仓储实例
    """
    db_manager = await get_db_manager()
    return ChartLayerRepository(db_manager)
