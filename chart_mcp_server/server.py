"""
海图图层 MCP 服务器主模块

海图库的 FastMCP 服务器。启动时把各子服务器（工具和资源）导入到同一个应用中。
"""

import logging
from contextlib import asynccontextmanager
from fastmcp import FastMCP

from .database import init_database, close_database
from .services.layer_store import get_layer_store

# 导入子服务器模块
from .tools.chart_tools import chart_server
from .resources.layer_registry import layer_registry_server

logger = logging.getLogger(__name__)

# 全局标志，防止重复导入和重复清理
_servers_imported = False
_cleanup_done = False


async def cleanup_resources():
    """清理资源"""
    global _cleanup_done

    if _cleanup_done:
        logger.info("资源已清理，跳过重复清理")
        return

    logger.info("正在清理资源...")

    try:
        await close_database()
        _cleanup_done = True
        logger.info("资源清理完成")

    except Exception as e:
        logger.error(f"资源清理过程中出现错误: {e}")


async def import_all_servers(app: FastMCP):
    """导入所有子服务器"""
    global _servers_imported

    if _servers_imported:
        logger.info("子服务器已导入，跳过重复导入")
        return

    logger.info("正在组合子服务器...")

    try:
        await app.import_server(chart_server, prefix="charts")      # 海图工具
        await app.import_server(layer_registry_server)              # 图层注册表资源（无前缀）

        _servers_imported = True

        logger.info("海图 MCP 服务器组合完成:")
        logger.info("- 海图工具 (charts_*)")
        logger.info("- 图层注册表资源 (chart://)")

    except Exception as e:
        logger.error(f"导入子服务器失败: {e}")
        # 标记为已尝试，重启时不再重试
        _servers_imported = True
        raise


@asynccontextmanager
async def lifespan(app):
    """服务器生命周期管理"""

    logger.info("正在初始化海图 MCP 服务器...")

    try:
        await import_all_servers(app)

        await init_database()
        logger.info("数据库初始化完成")

        # 首次加载会执行单选修复
        store = await get_layer_store()
        snapshot = await store.reload()
        if snapshot.error:
            logger.error(f"首次加载海图图层失败: {snapshot.error}")

        logger.info("海图 MCP 服务器启动完成")

        yield

    except Exception as e:
        logger.error(f"服务器启动失败: {e}")
        raise
    finally:
        logger.info("正在关闭海图 MCP 服务器...")
        await cleanup_resources()


mcp = FastMCP(name="海图图层", lifespan=lifespan)


def get_chart_mcp_server() -> FastMCP:
    """获取海图 MCP 服务器实例

    用于依赖注入

    Returns:
        FastMCP: 海图 MCP 服务器实例
    """
    return mcp
