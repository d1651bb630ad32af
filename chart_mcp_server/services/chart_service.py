"""
海图服务模块

向 MCP 客户端提供的海图库操作。每个函数都返回带 "status" 键的结果字典；
客户端可以处理的错误写在字典里，不抛出异常。
"""

import logging
from typing import List, Dict, Any, Optional

from fastmcp import Context
from pydantic import ValidationError

from ..database import ChartSource, ChartCustomMetadata
from ..utils.viewport import Viewport
from .chart_layers import filter_layers_by_text
from .layer_state import ChartLayerNotFoundError
from .layer_store import ChartLayerStore, LayerSnapshot, get_layer_store
from .mbtiles import ChartImportError, import_mbtiles_chart

logger = logging.getLogger(__name__)


def _not_found(chart_id: str) -> Dict[str, Any]:
    return {
        "status": "failed",
        "error": "chart_not_found",
        "message": f"海图图层不存在: {chart_id}",
        "chart_id": chart_id
    }


def _snapshot_result(snapshot: LayerSnapshot, chart_id: Optional[str] = None) -> Dict[str, Any]:
    """图层命令的结果；持久化失败时 status 为 failed"""
    result = {
        "status": "failed" if snapshot.error else "success",
        "enabled": [layer.chart_id for layer in snapshot.layers if layer.enabled],
        "version": snapshot.version
    }
    if snapshot.error:
        result["error"] = "persistence_failed"
        result["message"] = snapshot.error
    if chart_id is not None:
        result["chart_id"] = chart_id
        for layer in snapshot.layers:
            if layer.chart_id == chart_id:
                result["layer"] = layer.to_dict()
                break
    return result


async def _store(store: Optional[ChartLayerStore]) -> ChartLayerStore:
    store = store or await get_layer_store()
    if not store.snapshot.loaded:
        await store.reload()
    return store


async def import_chart_files(
    paths: List[str],
    ctx: Context = None,
    store: Optional[ChartLayerStore] = None
) -> Dict[str, Any]:
    """把 .mbtiles 文件导入海图库

    Args:
        paths: 文件路径列表
        ctx: MCP 上下文
        store: 图层存储，默认使用全局实例

    Returns:
        每个文件的结果和汇总
    """
    if ctx:
        await ctx.info(f"正在导入 {len(paths)} 个海图文件")

    store = await _store(store)
    imported = []
    errors = []

    for path in paths:
        try:
            source = await import_mbtiles_chart(path, store.source_repository)
            imported.append({"chart_id": source.chart_id, "name": source.name, "path": path})
        except (ChartImportError, ValidationError) as e:
            error_msg = f"导入 {path} 失败: {e}"
            logger.error(error_msg)
            errors.append(error_msg)

    snapshot = await store.reload()

    if ctx:
        await ctx.info(f"已导入 {len(imported)}/{len(paths)} 个海图文件")

    return {
        "status": "success" if not errors else ("partial" if imported else "failed"),
        "imported": imported,
        "errors": errors,
        "total_layers": len(snapshot.layers)
    }


async def register_chart_source(
    source: ChartSource,
    ctx: Context = None,
    store: Optional[ChartLayerStore] = None
) -> Dict[str, Any]:
    """登记来自外部目录的海图源元数据"""
    store = await _store(store)
    stored = await store.source_repository.upsert(source)
    await store.reload()

    if ctx:
        await ctx.info(f"海图已登记: {stored.chart_id}")

    layer = store.get_layer(stored.chart_id)
    return {"status": "success", "chart_id": stored.chart_id, "layer": layer.to_dict()}


async def list_chart_layers(
    text: Optional[str] = None,
    ctx: Context = None,
    store: Optional[ChartLayerStore] = None
) -> Dict[str, Any]:
    """按叠放顺序列出海图图层，可按名称或标识过滤"""
    store = await _store(store)
    layers = filter_layers_by_text(store.layers, text)

    if ctx:
        await ctx.info(f"在 {len(store.layers)} 个海图图层中找到 {len(layers)} 个")

    return {
        "status": "success",
        "total": len(store.layers),
        "count": len(layers),
        "filter": text,
        "error": store.snapshot.error,
        "layers": [layer.to_dict() for layer in layers]
    }


async def visible_chart_layers(
    zoom: float,
    viewport: Optional[Viewport] = None,
    store: Optional[ChartLayerStore] = None
) -> Dict[str, Any]:
    """与视口和缩放级别相关的海图，最精细的在前"""
    store = await _store(store)
    layers = store.visible_layers(viewport, zoom)
    return {
        "status": "success",
        "zoom": zoom,
        "viewport": viewport.as_tuple() if viewport else None,
        "count": len(layers),
        "layers": [layer.to_dict() for layer in layers]
    }


async def toggle_chart_layer(
    chart_id: str,
    ctx: Context = None,
    store: Optional[ChartLayerStore] = None
) -> Dict[str, Any]:
    """切换海图；启用一个会禁用其他所有海图"""
    store = await _store(store)
    try:
        snapshot = await store.toggle(chart_id)
    except ChartLayerNotFoundError:
        return _not_found(chart_id)

    if ctx and snapshot.error:
        await ctx.error(snapshot.error)
    return _snapshot_result(snapshot, chart_id)


async def set_chart_layer_opacity(
    chart_id: str,
    opacity: float,
    store: Optional[ChartLayerStore] = None
) -> Dict[str, Any]:
    store = await _store(store)
    try:
        snapshot = await store.set_opacity(chart_id, opacity)
    except ChartLayerNotFoundError:
        return _not_found(chart_id)
    return _snapshot_result(snapshot, chart_id)


async def set_chart_layer_z_order(
    chart_id: str,
    z_order: int,
    store: Optional[ChartLayerStore] = None
) -> Dict[str, Any]:
    store = await _store(store)
    try:
        snapshot = await store.set_z_order(chart_id, z_order)
    except ChartLayerNotFoundError:
        return _not_found(chart_id)
    return _snapshot_result(snapshot, chart_id)


async def update_chart_metadata(
    chart_id: str,
    custom_name: Optional[str] = None,
    custom_description: Optional[str] = None,
    custom_min_zoom: Optional[int] = None,
    custom_max_zoom: Optional[int] = None,
    ctx: Context = None,
    store: Optional[ChartLayerStore] = None
) -> Dict[str, Any]:
    """替换海图的元数据覆盖

    四个字段一起写入；None 清除对应覆盖。
    """
    try:
        metadata = ChartCustomMetadata(
            chart_id=chart_id,
            custom_name=custom_name,
            custom_description=custom_description,
            custom_min_zoom=custom_min_zoom,
            custom_max_zoom=custom_max_zoom
        )
    except ValidationError as e:
        logger.warning(f"海图 {chart_id} 的元数据无效: {e}")
        return {
            "status": "failed",
            "error": "invalid_metadata",
            "message": str(e),
            "chart_id": chart_id
        }

    store = await _store(store)
    try:
        snapshot = await store.set_metadata(metadata)
    except ChartLayerNotFoundError:
        return _not_found(chart_id)

    if ctx:
        await ctx.info(f"元数据已更新: {chart_id}")
    return _snapshot_result(snapshot, chart_id)


async def reset_chart_metadata(
    chart_id: str,
    store: Optional[ChartLayerStore] = None
) -> Dict[str, Any]:
    """清除海图的全部覆盖，恢复源元数据"""
    store = await _store(store)
    try:
        snapshot = await store.reset_metadata(chart_id)
    except ChartLayerNotFoundError:
        return _not_found(chart_id)
    return _snapshot_result(snapshot, chart_id)


async def zoom_to_chart(
    chart_id: str,
    store: Optional[ChartLayerStore] = None
) -> Dict[str, Any]:
    """框住海图的取景框

    跨经线的海图还返回真实中心 [经度, 纬度] 和总经度跨度。
    """
    store = await _store(store)
    try:
        layer = store.get_layer(chart_id)
    except ChartLayerNotFoundError:
        return _not_found(chart_id)

    if layer.zoom_bounds is None:
        return {
            "status": "failed",
            "error": "no_bounds",
            "message": f"海图没有可用范围: {chart_id}",
            "chart_id": chart_id
        }

    west, south, east, north = layer.zoom_bounds
    result = {
        "status": "success",
        "chart_id": chart_id,
        "bounds": [west, south, east, north],
        "bounds_case": layer.bounds_case.value if layer.bounds_case else None,
        "center": [(west + east) / 2, (south + north) / 2],
        "span": east - west
    }

    center_span = store.zoom_center(chart_id)
    if center_span is not None:
        center, span = center_span
        result["center"] = [center, (south + north) / 2]
        result["span"] = span

    return result


async def remove_chart_layers(
    chart_ids: List[str],
    ctx: Context = None,
    store: Optional[ChartLayerStore] = None
) -> Dict[str, Any]:
    """删除海图及其图层状态"""
    if ctx:
        await ctx.info(f"正在删除 {len(chart_ids)} 幅海图")

    store = await _store(store)
    known = {layer.chart_id for layer in store.layers}
    missing = [chart_id for chart_id in chart_ids if chart_id not in known]
    snapshot = await store.remove([chart_id for chart_id in chart_ids if chart_id in known])

    remaining = {layer.chart_id for layer in snapshot.layers}
    result = _snapshot_result(snapshot)
    result["removed"] = [chart_id for chart_id in chart_ids if chart_id in known and chart_id not in remaining]
    result["not_found"] = missing
    return result


async def refresh_chart_layers(store: Optional[ChartLayerStore] = None) -> Dict[str, Any]:
    """从存储重新加载所有图层"""
    store = store or await get_layer_store()
    snapshot = await store.reload()
    result = _snapshot_result(snapshot)
    result["total"] = len(snapshot.layers)
    return result
