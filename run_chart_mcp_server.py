"""海图图层 MCP 服务器启动脚本

以独立进程启动海图 MCP 服务器，使用 HTTP Streamable 传输
"""

import logging
import sys
import os
import uvicorn
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from chart_mcp_server.server import mcp

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout),
        logging.FileHandler('chart_mcp_server.log', encoding='utf-8')
    ]
)

logger = logging.getLogger(__name__)

HOST = "127.0.0.1"
PORT = 3031


def main():
    """主函数"""
    logger.info("正在启动海图 MCP 服务器...")

    cors_middleware = [
        Middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["*"],
        ),
    ]

    http_app = mcp.http_app(middleware=cors_middleware)

    logger.info(f"服务器将在 http://{HOST}:{PORT}/mcp 上运行")

    try:
        uvicorn.run(
            http_app,
            host=HOST,
            port=PORT,
            log_level="info"
        )
    finally:
        logger.info("服务器已停止")
        os._exit(0)  # 确保残留线程不会阻止进程退出


if __name__ == "__main__":
    main()
