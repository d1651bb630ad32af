"""
MBTiles 海图导入

读取 .mbtiles 文件的 metadata 表并把海图登记到源目录，海图标识为文件名
（不含扩展名）。
"""

import logging
from pathlib import Path
from typing import Dict, Optional

import aiosqlite

from ..database.models import ChartSource
from ..database.repository import ChartSourceRepository

logger = logging.getLogger(__name__)

MBTILES_SUFFIX = ".mbtiles"


class ChartImportError(Exception):
    """海图文件无法读取时抛出"""


def _to_int(value: Optional[str]) -> Optional[int]:
    if value is None or not str(value).strip():
        return None
    try:
        return int(float(value))
    except (ValueError, OverflowError):
        logger.warning(f"忽略无效的缩放级别: {value!r}")
        return None


async def read_mbtiles_metadata(path: Path) -> Dict[str, str]:
    """读取 name/value 形式的 metadata 表

    Args:
        path: .mbtiles 文件

    Returns:
        元数据字典

    Raises:
        ChartImportError: 文件不存在或不是 MBTiles 数据库
    """
    if not path.is_file():
        raise ChartImportError(f"海图文件不存在: {path}")

    try:
        async with aiosqlite.connect(f"{path.resolve().as_uri()}?mode=ro", uri=True) as conn:
            cursor = await conn.execute("SELECT name, value FROM metadata")
            rows = await cursor.fetchall()
    except aiosqlite.Error as e:
        raise ChartImportError(f"无法读取 MBTiles 文件 {path}: {e}") from e

    return {str(name): value for name, value in rows}


def source_from_metadata(chart_id: str, metadata: Dict[str, str], file_path: Optional[str] = None) -> ChartSource:
    """把 MBTiles 元数据键映射为 ChartSource"""
    return ChartSource(
        chart_id=chart_id,
        name=metadata.get("name") or chart_id,
        format=metadata.get("format"),
        bounds=metadata.get("bounds"),
        min_zoom=_to_int(metadata.get("minzoom")),
        max_zoom=_to_int(metadata.get("maxzoom")),
        description=metadata.get("description"),
        file_path=file_path
    )


async def import_mbtiles_chart(path: str, repository: ChartSourceRepository) -> ChartSource:
    """把 .mbtiles 文件登记为海图源

    Args:
        path: 文件路径
        repository: 海图源仓储

    Returns:
        已存储的海图源
    """
    file_path = Path(path).expanduser()
    if file_path.suffix.lower() != MBTILES_SUFFIX:
        raise ChartImportError(f"不是 MBTiles 文件: {path}")

    metadata = await read_mbtiles_metadata(file_path)
    source = source_from_metadata(file_path.stem, metadata, str(file_path.resolve()))
    logger.info(f"正在从 {file_path} 导入海图 {source.chart_id}")
    return await repository.upsert(source)
