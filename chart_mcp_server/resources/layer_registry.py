"""
海图图层注册表资源

基于图层存储的只读数据端点：整个图层集合，以及单个图层及其有效元数据
"""

import json
import logging
from datetime import datetime
from typing import Dict, Any

from fastmcp import FastMCP, Context

from ..services.layer_state import ChartLayerNotFoundError
from ..services.layer_store import get_layer_store

logger = logging.getLogger(__name__)

# 图层注册表服务器
layer_registry_server = FastMCP("海图图层注册表")


@layer_registry_server.resource("chart://layers")
async def layers_list(ctx: Context = None) -> Dict[str, Any]:
    """海图图层列表资源

    Returns:
        当前图层快照
    """
    store = await get_layer_store()
    if not store.snapshot.loaded:
        await store.reload()

    result = store.snapshot.to_dict()
    result["timestamp"] = datetime.now().isoformat()
    return result


@layer_registry_server.resource("chart://layers/{chart_id}")
async def layer_detail(chart_id: str) -> str:
    """单个海图图层的详细信息

    Args:
        chart_id: 海图标识

    Returns:
        JSON 字符串格式的图层详情
    """
    store = await get_layer_store()
    if not store.snapshot.loaded:
        await store.reload()

    try:
        layer = store.get_layer(chart_id)
    except ChartLayerNotFoundError:
        logger.warning(f"请求了不存在的海图图层资源: {chart_id}")
        return json.dumps({
            "error": f"海图 '{chart_id}' 不存在",
            "chart_id": chart_id,
            "suggestions": [layer.chart_id for layer in store.layers[:10]],
            "total_available": len(store.layers)
        }, ensure_ascii=False, indent=2)

    detail = layer.to_dict()
    detail["effective_metadata"] = store.effective_metadata(chart_id).model_dump()
    detail["has_overrides"] = layer.custom_metadata().has_overrides()
    return json.dumps(detail, ensure_ascii=False, indent=2)
