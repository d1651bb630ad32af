"""海图工具模块

管理海图库的工具：导入海图、按当前视口列出和过滤图层、切换激活海图、
透明度和叠放顺序、元数据覆盖以及缩放到海图
"""

import logging
from typing import Dict, Any, Optional, List
from fastmcp import FastMCP, Context
from pydantic import Field
from typing_extensions import Annotated

from ..database import ChartSource
from ..services.chart_service import (
    import_chart_files,
    register_chart_source,
    list_chart_layers,
    visible_chart_layers,
    toggle_chart_layer,
    set_chart_layer_opacity,
    set_chart_layer_z_order,
    update_chart_metadata,
    reset_chart_metadata,
    zoom_to_chart,
    remove_chart_layers,
    refresh_chart_layers
)
from ..utils.viewport import Viewport

logger = logging.getLogger(__name__)

# 海图工具服务器
chart_server = FastMCP(name="海图图层")


@chart_server.tool
async def import_chart_file(
    paths: Annotated[List[str], Field(description=".mbtiles 海图文件路径列表")],
    ctx: Context = None
) -> Dict[str, Any]:
    """导入海图文件

    读取每个 MBTiles 文件的元数据（名称、格式、范围、缩放级别）并把海图
    加入海图库。重复导入会更新源元数据，保留图层状态和覆盖。

    Args:
        paths: 海图文件路径
        ctx: MCP 上下文

    Returns:
        每个文件的导入结果
    """
    return await import_chart_files(paths, ctx)


@chart_server.tool
async def register_chart(
    chart_id: Annotated[str, Field(description="海图标识")],
    name: Annotated[str, Field(description="海图名称")],
    format: Annotated[Optional[str], Field(description="瓦片格式，例如 png、jpg、pbf")] = None,
    bounds: Annotated[Optional[str], Field(description="minLon,minLat,maxLon,maxLat，单位为度")] = None,
    min_zoom: Annotated[Optional[int], Field(description="最小缩放级别")] = None,
    max_zoom: Annotated[Optional[int], Field(description="最大缩放级别")] = None,
    description: Annotated[Optional[str], Field(description="海图描述")] = None,
    ctx: Context = None
) -> Dict[str, Any]:
    """登记来自外部目录的海图元数据

    Args:
        chart_id: 海图标识
        name: 海图名称
        format: 瓦片格式
        bounds: 范围字符串
        min_zoom: 最小缩放级别
        max_zoom: 最大缩放级别
        description: 描述
        ctx: MCP 上下文

    Returns:
        登记后的图层
    """
    source = ChartSource(
        chart_id=chart_id,
        name=name,
        format=format,
        bounds=bounds,
        min_zoom=min_zoom,
        max_zoom=max_zoom,
        description=description
    )
    return await register_chart_source(source, ctx)


@chart_server.tool
async def list_layers(
    text: Annotated[Optional[str], Field(description="按海图名称或标识过滤（子串，不区分大小写）")] = None,
    ctx: Context = None
) -> Dict[str, Any]:
    """按叠放顺序列出海图图层（最底层在前）

    Args:
        text: 可选的名称/标识过滤
        ctx: MCP 上下文

    Returns:
        带状态、范围和有效元数据的海图图层
    """
    return await list_chart_layers(text, ctx)


@chart_server.tool
async def visible_layers(
    zoom: Annotated[float, Field(description="当前地图缩放级别")],
    west: Annotated[Optional[float], Field(description="视口西边经度")] = None,
    south: Annotated[Optional[float], Field(description="视口南边纬度")] = None,
    east: Annotated[Optional[float], Field(description="视口东边经度")] = None,
    north: Annotated[Optional[float], Field(description="视口北边纬度")] = None
) -> Dict[str, Any]:
    """与当前地图视图相关的海图

    保留与视口相交（考虑180度经线）且缩放范围放宽两级后包含当前缩放级别
    的海图，最精细的海图在前。视口不完整时返回所有有范围的海图。

    Returns:
        排好序的海图图层
    """
    viewport = None
    if None not in (west, south, east, north):
        viewport = Viewport(west=west, south=south, east=east, north=north)
    return await visible_chart_layers(zoom, viewport)


@chart_server.tool
async def toggle_chart(
    chart_id: Annotated[str, Field(description="海图标识")],
    ctx: Context = None
) -> Dict[str, Any]:
    """显示或隐藏海图

    同一时刻只显示一幅海图：显示一幅海图会隐藏之前显示的海图。

    Args:
        chart_id: 海图标识
        ctx: MCP 上下文

    Returns:
        切换结果和已启用的海图标识
    """
    return await toggle_chart_layer(chart_id, ctx)


@chart_server.tool
async def set_chart_opacity(
    chart_id: Annotated[str, Field(description="海图标识")],
    opacity: Annotated[float, Field(description="透明度，0 到 1 之间")]
) -> Dict[str, Any]:
    """设置海图透明度（限制在 0..1）"""
    return await set_chart_layer_opacity(chart_id, opacity)


@chart_server.tool
async def set_chart_z_order(
    chart_id: Annotated[str, Field(description="海图标识")],
    z_order: Annotated[int, Field(description="叠放顺序，越大越靠上")]
) -> Dict[str, Any]:
    """调整海图的叠放顺序"""
    return await set_chart_layer_z_order(chart_id, z_order)


@chart_server.tool
async def update_metadata(
    chart_id: Annotated[str, Field(description="海图标识")],
    custom_name: Annotated[Optional[str], Field(description="显示名称覆盖")] = None,
    custom_description: Annotated[Optional[str], Field(description="描述覆盖")] = None,
    custom_min_zoom: Annotated[Optional[int], Field(description="最小缩放级别覆盖")] = None,
    custom_max_zoom: Annotated[Optional[int], Field(description="最大缩放级别覆盖")] = None,
    ctx: Context = None
) -> Dict[str, Any]:
    """覆盖海图元数据

    四个覆盖一次写入；省略的字段回退到海图文件中的值。

    Returns:
        更新结果和图层的有效元数据
    """
    return await update_chart_metadata(
        chart_id,
        custom_name=custom_name,
        custom_description=custom_description,
        custom_min_zoom=custom_min_zoom,
        custom_max_zoom=custom_max_zoom,
        ctx=ctx
    )


@chart_server.tool
async def reset_metadata(
    chart_id: Annotated[str, Field(description="海图标识")]
) -> Dict[str, Any]:
    """清除海图的全部元数据覆盖"""
    return await reset_chart_metadata(chart_id)


@chart_server.tool
async def zoom_to(
    chart_id: Annotated[str, Field(description="海图标识")]
) -> Dict[str, Any]:
    """框住海图的取景框 [west, south, east, north]

    同时返回中心 [经度, 纬度] 和经度跨度。跨180度经线的海图，取景框不保留
    方向，应以返回的中心定位地图。
    """
    return await zoom_to_chart(chart_id)


@chart_server.tool
async def remove_charts(
    chart_ids: Annotated[List[str], Field(description="要删除的海图标识")],
    ctx: Context = None
) -> Dict[str, Any]:
    """从海图库删除海图及其图层状态"""
    return await remove_chart_layers(chart_ids, ctx)


@chart_server.tool
async def refresh_layers() -> Dict[str, Any]:
    """从数据库重新加载所有海图图层"""
    return await refresh_chart_layers()
