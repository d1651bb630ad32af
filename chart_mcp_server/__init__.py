"""
海图图层 MCP 服务器

管理地理配准的海图图层库：范围分类（包括跨180度经线的海图）、视口与缩放
级别过滤，以及单一激活图层
"""

__version__ = "0.1.0"
