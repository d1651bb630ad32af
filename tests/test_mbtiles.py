import aiosqlite
import pytest
import pytest_asyncio

from chart_mcp_server.services.mbtiles import (
    ChartImportError,
    import_mbtiles_chart,
    read_mbtiles_metadata,
    source_from_metadata
)


# ==========================================
# FIXTURES
# ==========================================

async def write_mbtiles(path, metadata: dict) -> None:
    async with aiosqlite.connect(path) as conn:
        await conn.execute("CREATE TABLE metadata (name TEXT, value TEXT)")
        await conn.executemany("INSERT INTO metadata VALUES (?, ?)", list(metadata.items()))
        await conn.commit()


@pytest_asyncio.fixture
async def harbour_chart(tmp_path):
    path = tmp_path / "US5CA12M.mbtiles"
    await write_mbtiles(path, {
        "name": "San Francisco Bay",
        "format": "png",
        "bounds": "-122.6,37.4,-122.1,38.0",
        "minzoom": "9",
        "maxzoom": "16",
        "description": "Harbour chart"
    })
    return path


class TestReadMetadata:

    @pytest.mark.asyncio
    async def test_reads_metadata_table(self, harbour_chart) -> None:
        metadata = await read_mbtiles_metadata(harbour_chart)
        assert metadata["name"] == "San Francisco Bay"
        assert metadata["maxzoom"] == "16"

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(ChartImportError):
            await read_mbtiles_metadata(tmp_path / "nope.mbtiles")

    @pytest.mark.asyncio
    async def test_file_without_metadata_table(self, tmp_path) -> None:
        path = tmp_path / "empty.mbtiles"
        async with aiosqlite.connect(path) as conn:
            await conn.execute("CREATE TABLE tiles (zoom_level INTEGER)")
            await conn.commit()

        with pytest.raises(ChartImportError):
            await read_mbtiles_metadata(path)


class TestSourceFromMetadata:

    def test_maps_keys(self) -> None:
        source = source_from_metadata("NZ614", {
            "name": "Tasman",
            "format": "pbf",
            "bounds": "165,-48,-175,-34",
            "minzoom": "4",
            "maxzoom": "12.0"
        })
        assert (source.name, source.format, source.min_zoom, source.max_zoom) == ("Tasman", "pbf", 4, 12)

    def test_missing_name_falls_back_to_id(self) -> None:
        source = source_from_metadata("NZ614", {"maxzoom": "abc"})
        assert source.name == "NZ614"
        assert source.max_zoom is None

    def test_infinite_zoom_values_ignored(self) -> None:
        source = source_from_metadata("X", {"name": "X", "maxzoom": "inf", "minzoom": "-inf"})
        assert source.max_zoom is None
        assert source.min_zoom is None

    def test_nan_zoom_value_ignored(self) -> None:
        assert source_from_metadata("X", {"maxzoom": "nan"}).max_zoom is None


class TestImportChart:

    @pytest.mark.asyncio
    async def test_import_registers_source(self, harbour_chart, source_repository) -> None:
        source = await import_mbtiles_chart(str(harbour_chart), source_repository)

        assert source.chart_id == "US5CA12M"
        stored = await source_repository.get_by_id("US5CA12M")
        assert stored.bounds == "-122.6,37.4,-122.1,38.0"
        assert (stored.min_zoom, stored.max_zoom) == (9, 16)
        assert stored.file_path == str(harbour_chart.resolve())

    @pytest.mark.asyncio
    async def test_rejects_other_suffixes(self, tmp_path, source_repository) -> None:
        path = tmp_path / "chart.sqlite"
        await write_mbtiles(path, {"name": "x"})
        with pytest.raises(ChartImportError):
            await import_mbtiles_chart(str(path), source_repository)
