import pytest
import pytest_asyncio
from typing import AsyncGenerator, Optional

from chart_mcp_server.database import (
    ChartSource,
    ChartLayerState,
    DatabaseManager,
    ChartSourceRepository,
    ChartLayerRepository
)
from chart_mcp_server.services.chart_layers import ChartLayer, build_chart_layer
from chart_mcp_server.services.layer_store import ChartLayerStore


# ==========================================
# HELPERS
# ==========================================

def make_source(
    chart_id: str,
    bounds: Optional[str] = "-10,-10,10,10",
    min_zoom: Optional[int] = None,
    max_zoom: Optional[int] = None,
    name: Optional[str] = None,
    format: Optional[str] = "png",
    description: Optional[str] = None
) -> ChartSource:
    return ChartSource(
        chart_id=chart_id,
        name=name or f"Chart {chart_id}",
        format=format,
        bounds=bounds,
        min_zoom=min_zoom,
        max_zoom=max_zoom,
        description=description
    )


def make_layer(
    chart_id: str,
    enabled: bool = False,
    z_order: int = 0,
    **source_kwargs
) -> ChartLayer:
    state = ChartLayerState(chart_id=chart_id, enabled=enabled, opacity=1.0, z_order=z_order)
    return build_chart_layer(make_source(chart_id, **source_kwargs), state)


# ==========================================
# FIXTURES
# ==========================================

@pytest_asyncio.fixture
async def db_manager(tmp_path) -> AsyncGenerator[DatabaseManager, None]:
    """Initialized database in a temporary directory."""
    manager = DatabaseManager(str(tmp_path / "data" / "charts.db"))
    await manager.initialize_database()
    yield manager
    await manager.close()


@pytest.fixture
def source_repository(db_manager: DatabaseManager) -> ChartSourceRepository:
    return ChartSourceRepository(db_manager)


@pytest.fixture
def layer_repository(db_manager: DatabaseManager) -> ChartLayerRepository:
    return ChartLayerRepository(db_manager)


@pytest.fixture
def store(source_repository: ChartSourceRepository, layer_repository: ChartLayerRepository) -> ChartLayerStore:
    """Unloaded store over the temporary database."""
    return ChartLayerStore(source_repository, layer_repository)


@pytest_asyncio.fixture
async def three_charts(source_repository: ChartSourceRepository) -> list:
    """Three charts registered in catalog order A, B, C."""
    sources = [
        make_source("A", bounds="-10,-10,10,10", min_zoom=4, max_zoom=10),
        make_source("B", bounds="0,0,20,20", min_zoom=8, max_zoom=14),
        make_source("C", bounds="175,-10,-175,10", min_zoom=6, max_zoom=12),
    ]
    for source in sources:
        await source_repository.upsert(source)
    return sources
