"""
海图图层数据模型

与持久化存储交换的记录：海图源元数据、每幅海图的图层状态
（启用/透明度/叠放顺序）以及用户对源元数据的覆盖。
"""

from datetime import datetime
from typing import Optional, Dict, Any
from pydantic import BaseModel, Field, field_validator, model_validator


class ChartSource(BaseModel):
    """已安装海图的源元数据

    对引擎只读；来自海图文件（MBTiles 的 metadata 表）或外部目录。
    """
    chart_id: str = Field(..., description="海图标识")
    name: str = Field(..., description="源文件中的海图名称")
    format: Optional[str] = Field(None, description="瓦片格式（png、jpg、pbf 等）")
    bounds: Optional[str] = Field(None, description="minLon,minLat,maxLon,maxLat")
    min_zoom: Optional[int] = Field(None, description="最小缩放级别")
    max_zoom: Optional[int] = Field(None, description="最大缩放级别")
    description: Optional[str] = Field(None, description="海图描述")
    file_path: Optional[str] = Field(None, description="海图文件路径")
    created_at: datetime = Field(default_factory=datetime.now, description="创建时间")
    updated_at: datetime = Field(default_factory=datetime.now, description="更新时间")

    @field_validator('chart_id')
    @classmethod
    def validate_chart_id(cls, v):
        """海图标识不能为空"""
        if not v or not v.strip():
            raise ValueError('chart_id 不能为空')
        return v.strip()

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典格式，用于数据库存储"""
        return {
            "chart_id": self.chart_id,
            "name": self.name,
            "format": self.format,
            "bounds": self.bounds,
            "min_zoom": self.min_zoom,
            "max_zoom": self.max_zoom,
            "description": self.description,
            "file_path": self.file_path,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat()
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChartSource":
        """从数据库行创建实例"""
        data = dict(data)
        if isinstance(data.get('created_at'), str):
            data['created_at'] = datetime.fromisoformat(data['created_at'])
        if isinstance(data.get('updated_at'), str):
            data['updated_at'] = datetime.fromisoformat(data['updated_at'])

        return cls(**data)


class ChartLayerState(BaseModel):
    """持久化的图层状态，是图层中唯一在重启后保留的部分"""
    chart_id: str = Field(..., description="海图标识")
    enabled: bool = Field(..., description="图层是否显示")
    opacity: float = Field(1.0, ge=0.0, le=1.0, description="图层透明度")
    z_order: int = Field(0, description="叠放顺序，越大越靠上")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChartLayerState":
        """从数据库行创建实例（enabled 以 0/1 存储）"""
        return cls(
            chart_id=data['chart_id'],
            enabled=bool(data['enabled']),
            opacity=data['opacity'],
            z_order=data['z_order']
        )


class ChartCustomMetadata(BaseModel):
    """用户对源元数据的覆盖，None 表示使用源值"""
    chart_id: str = Field(..., description="海图标识")
    custom_name: Optional[str] = Field(None, description="名称覆盖")
    custom_description: Optional[str] = Field(None, description="描述覆盖")
    custom_min_zoom: Optional[int] = Field(None, ge=0, le=30, description="最小缩放覆盖")
    custom_max_zoom: Optional[int] = Field(None, ge=0, le=30, description="最大缩放覆盖")

    @field_validator('custom_name', 'custom_description')
    @classmethod
    def blank_to_none(cls, v):
        """空白文本清除覆盖"""
        if v is not None and not v.strip():
            return None
        return v

    @model_validator(mode='after')
    def validate_zoom_range(self):
        """两个缩放覆盖都给出时，最小值不能大于最大值"""
        if (self.custom_min_zoom is not None and self.custom_max_zoom is not None
                and self.custom_min_zoom > self.custom_max_zoom):
            raise ValueError('custom_min_zoom 不能大于 custom_max_zoom')
        return self

    def has_overrides(self) -> bool:
        return any(v is not None for v in (
            self.custom_name,
            self.custom_description,
            self.custom_min_zoom,
            self.custom_max_zoom
        ))


class ChartSourceQuery(BaseModel):
    """海图源列表查询参数"""
    text: Optional[str] = Field(None, description="海图名称或标识的子串")
    limit: int = Field(default=1000, ge=1, le=10000, description="返回数量限制")
    offset: int = Field(default=0, ge=0, description="偏移量")
