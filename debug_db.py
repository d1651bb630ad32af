"""
调试脚本 - 查看海图数据库中的表和内容
"""

import asyncio
import aiosqlite
from pathlib import Path

from chart_mcp_server.utils.bounds import analyze_bounds_string


async def show_database_tables():
    """显示海图数据库中的所有表"""
    db_path = Path("data/chart_layers.db")

    if not db_path.exists():
        print(f"数据库文件不存在: {db_path}")
        return

    async with aiosqlite.connect(db_path) as conn:
        cursor = await conn.execute("""
            SELECT name FROM sqlite_master
            WHERE type='table'
            ORDER BY name
        """)
        tables = await cursor.fetchall()

        print(f"数据库中的表 ({len(tables)} 个):")
        print("=" * 80)

        for (table_name,) in tables:
            await show_table_details(conn, table_name)


async def show_table_details(conn, table_name):
    """显示单个表的行数和内容"""
    print(f"\n表名: {table_name}")
    print("-" * 60)

    cursor = await conn.execute(f"SELECT COUNT(*) FROM {table_name}")
    count = (await cursor.fetchone())[0]
    print(f"记录数: {count}")

    if count > 0:
        print("\n数据内容:")

        if table_name == 'chart_sources':
            await show_chart_sources_data(conn)
        else:
            await show_all_table_data(conn, table_name)
    else:
        print("表为空")

    print("\n" + "=" * 80)


async def show_chart_sources_data(conn):
    """显示海图源及其范围分类"""
    cursor = await conn.execute("""
        SELECT chart_id, name, format, bounds
        FROM chart_sources
        ORDER BY rowid
    """)
    rows = await cursor.fetchall()

    print(f"{'#':<4} {'海图标识':<20} {'格式':<8} {'范围类型':<28} {'范围'}")
    print("-" * 100)

    for i, (chart_id, name, format, bounds) in enumerate(rows, 1):
        analysis = analyze_bounds_string(bounds)
        case = analysis.case.value if analysis else "-"
        chart_id_short = chart_id[:18] + ".." if len(chart_id) > 20 else chart_id

        print(f"{i:<4} {chart_id_short:<20} {str(format):<8} {case:<28} {bounds}")


async def show_all_table_data(conn, table_name):
    """显示其他表的前几行"""
    cursor = await conn.execute(f"PRAGMA table_info({table_name})")
    columns = await cursor.fetchall()
    column_names = [col[1] for col in columns]

    cursor = await conn.execute(f"SELECT * FROM {table_name} LIMIT 10")
    rows = await cursor.fetchall()

    header = " | ".join(f"{col:15}" for col in column_names)
    print(f"  {header}")
    print(f"  {'-' * len(header)}")

    for row in rows:
        row_data = " | ".join(f"{str(val)[:15]:15}" for val in row)
        print(f"  {row_data}")


if __name__ == "__main__":
    asyncio.run(show_database_tables())
