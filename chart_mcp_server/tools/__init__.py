"""工具模块

海图图层服务器的 MCP 工具
"""

from .chart_tools import chart_server

__all__ = [
    "chart_server"
]
