"""
数据库连接管理模块

负责 SQLite 数据库的连接管理、表结构初始化和基础查询操作，
存储海图源和海图图层状态
"""

import aiosqlite
import logging
from pathlib import Path
from typing import Optional
import asyncio

logger = logging.getLogger(__name__)

# chart_layers 首个版本之后新增的自定义元数据列
CUSTOM_METADATA_COLUMNS = {
    "custom_name": "TEXT",
    "custom_description": "TEXT",
    "custom_min_zoom": "INTEGER",
    "custom_max_zoom": "INTEGER",
}


class DatabaseManager:
    """数据库管理器

    负责 SQLite 连接、表结构初始化和基础操作
    """

    def __init__(self, db_path: str = "data/chart_layers.db"):
        """初始化数据库管理器

        Args:
            db_path: 数据库文件路径
        """
        self.db_path = Path(db_path)
        self._connection: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()

        # 确保数据目录存在
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    async def connect(self) -> aiosqlite.Connection:
        """获取数据库连接

        Returns:
            数据库连接对象
        """
        async with self._lock:
            if self._connection is None:
                self._connection = await aiosqlite.connect(
                    self.db_path,
                    check_same_thread=False
                )
                await self._connection.execute("PRAGMA foreign_keys = ON")
                await self._connection.commit()
                logger.info(f"数据库连接已建立: {self.db_path}")

            return self._connection

    async def close(self):
        """关闭数据库连接"""
        async with self._lock:
            if self._connection:
                await self._connection.close()
                self._connection = None
                logger.info("数据库连接已关闭")

    async def initialize_database(self):
        """创建表和索引，并迁移旧版表结构"""
        conn = await self.connect()

        create_sources_sql = """
        CREATE TABLE IF NOT EXISTS chart_sources (
            chart_id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            format TEXT,
            bounds TEXT,
            min_zoom INTEGER,
            max_zoom INTEGER,
            description TEXT,
            file_path TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );
        """

        create_layers_sql = """
        CREATE TABLE IF NOT EXISTS chart_layers (
            chart_id TEXT PRIMARY KEY,
            enabled INTEGER NOT NULL DEFAULT 1,
            opacity REAL NOT NULL DEFAULT 1.0,
            z_order INTEGER NOT NULL DEFAULT 0
        );
        """

        create_indexes_sql = [
            "CREATE INDEX IF NOT EXISTS idx_chart_sources_name ON chart_sources(name);",
            "CREATE INDEX IF NOT EXISTS idx_chart_layers_z_order ON chart_layers(z_order);"
        ]

        try:
            await conn.execute(create_sources_sql)
            await conn.execute(create_layers_sql)
            await self._migrate_custom_metadata_columns(conn)

            for index_sql in create_indexes_sql:
                await conn.execute(index_sql)

            await conn.commit()
            logger.info("海图数据库表结构初始化完成")

        except Exception as e:
            logger.error(f"数据库初始化失败: {e}")
            await conn.rollback()
            raise

    async def _migrate_custom_metadata_columns(self, conn: aiosqlite.Connection):
        """为旧版 chart_layers 表补充缺失的自定义元数据列

        Args:
            conn: 数据库连接
        """
        cursor = await conn.execute("PRAGMA table_info(chart_layers);")
        columns = await cursor.fetchall()
        column_names = {col[1] for col in columns}

        for column, column_type in CUSTOM_METADATA_COLUMNS.items():
            if column not in column_names:
                await conn.execute(f"ALTER TABLE chart_layers ADD COLUMN {column} {column_type}")
                logger.info(f"已添加列 chart_layers.{column}")

    async def execute_query(self, sql: str, params: tuple = ()) -> aiosqlite.Cursor:
        """执行查询语句

        Args:
            sql: SQL 语句
            params: 查询参数

        Returns:
            查询结果游标
        """
        conn = await self.connect()
        return await conn.execute(sql, params)

    async def execute_many(self, sql: str, params_list: list) -> None:
        """在一个事务中按每组参数执行同一语句

        Args:
            sql: SQL 语句
            params_list: 参数元组列表
        """
        conn = await self.connect()
        try:
            await conn.executemany(sql, params_list)
            await conn.commit()
        except Exception:
            await conn.rollback()
            raise

    async def fetch_one(self, sql: str, params: tuple = ()) -> Optional[dict]:
        """获取单条记录

        Args:
            sql: SQL 查询语句
            params: 查询参数

        Returns:
            记录字典，未找到时返回 None
        """
        cursor = await self.execute_query(sql, params)
        row = await cursor.fetchone()

        if row:
            columns = [description[0] for description in cursor.description]
            return dict(zip(columns, row))

        return None

    async def fetch_all(self, sql: str, params: tuple = ()) -> list[dict]:
        """获取所有记录

        Args:
            sql: SQL 查询语句
            params: 查询参数

        Returns:
            记录字典列表
        """
        cursor = await self.execute_query(sql, params)
        rows = await cursor.fetchall()

        if rows:
            columns = [description[0] for description in cursor.description]
            return [dict(zip(columns, row)) for row in rows]

        return []

    async def execute_update(self, sql: str, params: tuple = ()) -> int:
        """执行写语句并提交

        Args:
            sql: SQL 语句
            params: 语句参数

        Returns:
            受影响的行数
        """
        conn = await self.connect()
        cursor = await conn.execute(sql, params)
        await conn.commit()
        return cursor.rowcount


# 全局数据库管理器实例
db_manager = DatabaseManager()


async def get_db_manager() -> DatabaseManager:
    """获取数据库管理器实例

    用于依赖注入

    Returns:
        数据库管理器实例
    """
    return db_manager


async def init_database():
    """初始化数据库

    在应用启动时调用
    """
    await db_manager.initialize_database()


async def close_database():
    """关闭数据库连接

    在应用关闭时调用
    """
    await db_manager.close()
