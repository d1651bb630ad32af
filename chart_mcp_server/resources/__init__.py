"""资源模块

海图图层服务器的 MCP 资源：
- layer_registry: 海图图层列表和单个图层详情
"""

from .layer_registry import layer_registry_server

__all__ = [
    'layer_registry_server',      # 海图图层注册表
]
