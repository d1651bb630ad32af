import pytest
from unittest.mock import AsyncMock, patch

from chart_mcp_server.database import ChartCustomMetadata, ChartLayerState
from chart_mcp_server.services.layer_state import ChartLayerNotFoundError
from chart_mcp_server.services.layer_store import ChartLayerStore


def enabled_ids(store: ChartLayerStore) -> list:
    return [layer.chart_id for layer in store.layers if layer.enabled]


class TestLoad:

    @pytest.mark.asyncio
    async def test_new_charts_default_enabled_and_get_repaired(self, store, layer_repository, three_charts) -> None:
        snapshot = await store.load()

        assert snapshot.loaded
        assert snapshot.error is None
        assert enabled_ids(store) == ["A"]
        # Demotions are persisted
        states = {state.chart_id: state.enabled for state in await layer_repository.get_layer_states()}
        assert states == {"B": False, "C": False}

    @pytest.mark.asyncio
    async def test_repair_of_persisted_multi_selection(self, store, layer_repository, three_charts) -> None:
        for chart_id in ("A", "B", "C"):
            await layer_repository.save_layer_state(ChartLayerState(chart_id=chart_id, enabled=True))

        await store.reload()
        assert enabled_ids(store) == ["A"]
        assert (await layer_repository.get_layer_state("C")).enabled is False

    @pytest.mark.asyncio
    async def test_repair_survives_failed_demotion_write(self, store, layer_repository, three_charts) -> None:
        with patch.object(layer_repository, "save_layer_states", AsyncMock(side_effect=RuntimeError("locked"))):
            snapshot = await store.reload()

        assert snapshot.error is None
        assert enabled_ids(store) == ["A"]

    @pytest.mark.asyncio
    async def test_demotions_written_in_one_batch(self, store, layer_repository, three_charts) -> None:
        batch = AsyncMock()
        single = AsyncMock()
        with patch.object(layer_repository, "save_layer_states", batch), \
                patch.object(layer_repository, "save_layer_state", single):
            await store.reload()

        batch.assert_awaited_once()
        assert [state.chart_id for state in batch.await_args.args[0]] == ["B", "C"]
        single.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_layers_in_z_order(self, store, layer_repository, three_charts) -> None:
        await layer_repository.save_layer_state(ChartLayerState(chart_id="A", enabled=False, z_order=5))
        await store.reload()
        assert [layer.chart_id for layer in store.layers] == ["B", "C", "A"]

    @pytest.mark.asyncio
    async def test_failed_read_keeps_previous_layers(self, store, source_repository, three_charts) -> None:
        await store.reload()
        before = store.layers

        with patch.object(source_repository, "list_sources", AsyncMock(side_effect=RuntimeError("gone"))):
            snapshot = await store.reload()

        assert snapshot.layers == before
        assert "gone" in snapshot.error

    @pytest.mark.asyncio
    async def test_subscribers_see_every_snapshot(self, store, three_charts) -> None:
        seen = []
        unsubscribe = store.subscribe(lambda snapshot: seen.append(snapshot.version))

        await store.reload()
        await store.toggle("B")
        unsubscribe()
        await store.toggle("B")

        assert len(seen) == 2
        assert seen == sorted(seen)


class TestToggle:

    @pytest.mark.asyncio
    async def test_toggle_persists_single_selection(self, store, source_repository, layer_repository,
                                                    three_charts) -> None:
        await store.load()
        snapshot = await store.toggle("C")

        assert snapshot.error is None
        assert enabled_ids(store) == ["C"]

        fresh = ChartLayerStore(source_repository, layer_repository)
        await fresh.load()
        assert [layer.chart_id for layer in fresh.layers if layer.enabled] == ["C"]

    @pytest.mark.asyncio
    async def test_optimistic_state_published_before_write(self, store, layer_repository, three_charts) -> None:
        await store.load()
        observed = []
        original = layer_repository.save_layer_state

        async def recording_save(state):
            observed.append(enabled_ids(store))
            await original(state)

        with patch.object(layer_repository, "save_layer_state", side_effect=recording_save):
            await store.toggle("B")

        assert observed[0] == ["B"]

    @pytest.mark.asyncio
    async def test_failed_write_reverts_to_persisted_state(self, store, layer_repository, three_charts) -> None:
        await store.load()
        assert enabled_ids(store) == ["A"]

        with patch.object(layer_repository, "save_layer_state", AsyncMock(side_effect=RuntimeError("disk full"))):
            snapshot = await store.toggle("B")

        assert "disk full" in snapshot.error
        assert enabled_ids(store) == ["A"]
        assert store.snapshot.loaded

    @pytest.mark.asyncio
    async def test_unreadable_store_after_failed_write_restores_previous_layers(
            self, store, source_repository, layer_repository, three_charts) -> None:
        await store.load()
        before = store.layers

        with patch.object(layer_repository, "save_layer_state", AsyncMock(side_effect=RuntimeError("disk full"))), \
                patch.object(source_repository, "list_sources", AsyncMock(side_effect=RuntimeError("gone"))):
            snapshot = await store.toggle("B")

        assert snapshot.layers == before
        assert enabled_ids(store) == ["A"]
        assert "disk full" in snapshot.error
        assert "gone" in snapshot.error
        assert snapshot.loaded

    @pytest.mark.asyncio
    async def test_unknown_chart_raises(self, store, three_charts) -> None:
        await store.load()
        version = store.snapshot.version
        with pytest.raises(ChartLayerNotFoundError):
            await store.toggle("missing")
        assert store.snapshot.version == version


class TestOpacityAndZOrder:

    @pytest.mark.asyncio
    async def test_opacity_clamped_and_persisted(self, store, layer_repository, three_charts) -> None:
        await store.load()
        await store.set_opacity("B", 3)

        assert store.get_layer("B").opacity == 1.0
        await store.set_opacity("B", 0.25)
        assert (await layer_repository.get_layer_state("B")).opacity == pytest.approx(0.25)

    @pytest.mark.asyncio
    async def test_z_order_moves_layer(self, store, three_charts) -> None:
        await store.load()
        await store.set_z_order("A", 10)
        assert [layer.chart_id for layer in store.layers] == ["B", "C", "A"]

    @pytest.mark.asyncio
    async def test_failed_opacity_write_reverts(self, store, layer_repository, three_charts) -> None:
        await store.load()
        with patch.object(layer_repository, "save_layer_state", AsyncMock(side_effect=RuntimeError("io"))):
            snapshot = await store.set_opacity("A", 0.1)

        assert snapshot.error is not None
        assert store.get_layer("A").opacity == 1.0


class TestMetadata:

    @pytest.mark.asyncio
    async def test_overrides_then_reset(self, store, source_repository, layer_repository, three_charts) -> None:
        await store.load()
        await store.set_metadata(ChartCustomMetadata(
            chart_id="B",
            custom_name="Approach",
            custom_min_zoom=6,
            custom_max_zoom=18
        ))

        effective = store.effective_metadata("B")
        assert (effective.name, effective.min_zoom, effective.max_zoom) == ("Approach", 6, 18)

        # Survives a reload
        fresh = ChartLayerStore(source_repository, layer_repository)
        await fresh.load()
        assert fresh.effective_metadata("B").name == "Approach"

        await store.reset_metadata("B")
        effective = store.effective_metadata("B")
        assert (effective.name, effective.min_zoom, effective.max_zoom) == ("Chart B", 8, 14)
        assert not (await layer_repository.get_custom_metadata("B")).has_overrides()

    @pytest.mark.asyncio
    async def test_metadata_changes_visibility(self, store, three_charts) -> None:
        await store.load()
        assert "B" not in [layer.chart_id for layer in store.visible_layers(None, 18)]

        await store.set_metadata(ChartCustomMetadata(chart_id="B", custom_max_zoom=18))
        assert "B" in [layer.chart_id for layer in store.visible_layers(None, 18)]

    @pytest.mark.asyncio
    async def test_failed_metadata_write_reverts(self, store, layer_repository, three_charts) -> None:
        await store.load()
        with patch.object(layer_repository, "save_custom_metadata", AsyncMock(side_effect=RuntimeError("io"))):
            snapshot = await store.set_metadata(ChartCustomMetadata(chart_id="A", custom_name="Lost"))

        assert snapshot.error is not None
        assert store.get_layer("A").name == "Chart A"


class TestQueries:

    @pytest.mark.asyncio
    async def test_zoom_to(self, store, three_charts) -> None:
        await store.load()
        assert store.zoom_to("A") == (-10, -10, 10, 10)

        west, south, east, north = store.zoom_to("C")
        assert (west, east) == (pytest.approx(-175), pytest.approx(175))

    @pytest.mark.asyncio
    async def test_zoom_center_only_for_crossing_charts(self, store, three_charts) -> None:
        await store.load()
        assert store.zoom_center("A") is None

        center, span = store.zoom_center("C")
        assert abs(center) == pytest.approx(180)
        assert span == pytest.approx(10)

    @pytest.mark.asyncio
    async def test_enabled_layer(self, store, three_charts) -> None:
        await store.load()
        assert store.enabled_layer().chart_id == "A"
        await store.toggle("A")
        assert store.enabled_layer() is None

    @pytest.mark.asyncio
    async def test_remove(self, store, layer_repository, three_charts) -> None:
        await store.load()
        await store.remove(["B"])

        assert [layer.chart_id for layer in store.layers] == ["A", "C"]
        assert await layer_repository.get_layer_state("B") is None
