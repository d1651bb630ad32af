import pytest

from chart_mcp_server.services.visibility import filter_visible_layers, in_zoom_range
from chart_mcp_server.utils.viewport import Viewport

from .conftest import make_layer


def ids(layers) -> list:
    return [layer.chart_id for layer in layers]


class TestZoomRange:

    @pytest.mark.parametrize("zoom, visible", [
        (10, True),
        (14, True),
        (8, True),
        (16, True),
        (7.9, False),
        (16.1, False),
    ])
    def test_buffer_of_two_levels(self, zoom, visible) -> None:
        layer = make_layer("A", min_zoom=10, max_zoom=14)
        assert in_zoom_range(layer, zoom) is visible
        assert (ids(filter_visible_layers([layer], None, zoom)) == ["A"]) is visible

    def test_missing_zoom_metadata_uses_defaults(self) -> None:
        layer = make_layer("A")
        assert in_zoom_range(layer, -2)
        assert in_zoom_range(layer, 24)
        assert not in_zoom_range(layer, 24.5)


class TestFilterVisibleLayers:

    def test_without_viewport_keeps_every_bounded_chart(self) -> None:
        layers = [
            make_layer("A", bounds="-10,-10,10,10"),
            make_layer("B", bounds="100,10,120,20"),
            make_layer("C", bounds="175,-10,-175,10"),
        ]
        assert sorted(ids(filter_visible_layers(layers, None, 10))) == ["A", "B", "C"]

    @pytest.mark.parametrize("bounds", [None, "", "1,2,3", "a,b,c,d"])
    def test_charts_without_usable_bounds_are_excluded(self, bounds) -> None:
        layers = [make_layer("A", bounds=bounds), make_layer("B")]
        assert ids(filter_visible_layers(layers, None, 10)) == ["B"]

    def test_viewport_excludes_charts_elsewhere(self) -> None:
        layers = [
            make_layer("A", bounds="-10,-10,10,10"),
            make_layer("B", bounds="100,10,120,20"),
        ]
        view = Viewport(west=-5, south=-5, east=5, north=5)
        assert ids(filter_visible_layers(layers, view, 10)) == ["A"]

    def test_inverted_chart_uses_swapped_rectangle(self) -> None:
        layers = [make_layer("A", bounds="30,0,10,5")]
        view = Viewport(west=15, south=1, east=20, north=2)
        assert ids(filter_visible_layers(layers, view, 10)) == ["A"]

    def test_antimeridian_chart_visible_on_either_side(self) -> None:
        layers = [make_layer("A", bounds="175,-10,-175,10")]
        east_side = Viewport(west=176, south=-5, east=179, north=5)
        west_side = Viewport(west=-179, south=-5, east=-176, north=5)
        elsewhere = Viewport(west=0, south=-5, east=10, north=5)

        assert ids(filter_visible_layers(layers, east_side, 10)) == ["A"]
        assert ids(filter_visible_layers(layers, west_side, 10)) == ["A"]
        assert filter_visible_layers(layers, elsewhere, 10) == []

    def test_west_to_east_crossing_chart(self) -> None:
        layers = [make_layer("A", bounds="-174.55,-20,175.53,-10")]
        view = Viewport(west=177, south=-16, east=179, north=-14)
        assert ids(filter_visible_layers(layers, view, 10)) == ["A"]

    def test_wide_crossing_chart_visible_inside_its_coverage(self) -> None:
        # Covers 340 degrees; the zoom box is capped far narrower than that
        layer = make_layer("W", bounds="10,-10,-10,10")
        assert layer.bounds == (10, -10, -10, 10)

        inside = Viewport(west=20, south=-5, east=30, north=5)
        far_side = Viewport(west=-120, south=-5, east=-100, north=5)
        gap = Viewport(west=-5, south=-5, east=5, north=5)

        assert ids(filter_visible_layers([layer], inside, 10)) == ["W"]
        assert ids(filter_visible_layers([layer], far_side, 10)) == ["W"]
        assert filter_visible_layers([layer], gap, 10) == []

    def test_most_detailed_first(self) -> None:
        layers = [
            make_layer("coarse", max_zoom=8),
            make_layer("default"),
            make_layer("fine", max_zoom=20),
        ]
        # A chart without max zoom sorts as 18; the zoom filter uses 22
        assert ids(filter_visible_layers(layers, None, 5)) == ["fine", "default", "coarse"]

    def test_equal_max_zoom_keeps_incoming_order(self) -> None:
        layers = [make_layer(chart_id, max_zoom=12) for chart_id in ("C", "A", "B")]
        assert ids(filter_visible_layers(layers, None, 10)) == ["C", "A", "B"]

    def test_input_is_not_modified(self) -> None:
        layers = [make_layer("A", max_zoom=8), make_layer("B", max_zoom=12)]
        before = list(layers)
        filter_visible_layers(layers, None, 8)
        assert layers == before

    def test_enabled_state_is_irrelevant(self) -> None:
        layers = [make_layer("A", enabled=False), make_layer("B", enabled=True)]
        assert sorted(ids(filter_visible_layers(layers, None, 10))) == ["A", "B"]
