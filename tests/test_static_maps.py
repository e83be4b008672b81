import numpy as np
import pandas as pd
import pytest
from matplotlib.backends.backend_agg import FigureCanvasAgg
from matplotlib.colors import to_hex, to_rgba

from analysis.static_maps import (
    assign_fill_colors,
    density_grid,
    render_boundaries,
    render_choropleth,
    render_city_markers,
    render_density_surface,
)
from processing.join import join_population
from processing.models import CityPoint, ColorScale

SCALE = ColorScale()

CITIES = [
    CityPoint("Auckland", -36.8485, 174.7633, 1657200),
    CityPoint("Wellington", -41.2865, 174.7762, 215400),
]


def _pixels(fig) -> np.ndarray:
    canvas = FigureCanvasAgg(fig)
    canvas.draw()
    return np.asarray(canvas.buffer_rgba()).copy()


class TestAssignFillColors:
    def test_ends_of_range_use_end_stops(self):
        fills = assign_fill_colors(pd.Series([10.0, 20.0, 30.0]), SCALE)

        assert fills[0] == to_hex(SCALE.stops[0])
        assert fills[-1] == to_hex(SCALE.stops[-1])

    def test_nulls_get_missing_color(self):
        fills = assign_fill_colors(pd.Series([1.0, None, 3.0]), SCALE)
        assert fills[1] == to_hex(SCALE.missing_color)

    def test_out_of_range_values_are_clipped(self):
        scale = ColorScale(vmin=0.0, vmax=10.0)
        fills = assign_fill_colors(pd.Series([-5.0, 0.0, 10.0, 50.0]), scale)

        assert fills[0] == fills[1] == to_hex(scale.stops[0])
        assert fills[2] == fills[3] == to_hex(scale.stops[-1])

    def test_single_value_does_not_fail(self):
        fills = assign_fill_colors(pd.Series([42.0]), SCALE)
        assert fills == [to_hex(SCALE.stops[0])]

    def test_all_null(self):
        fills = assign_fill_colors(pd.Series([None, None], dtype="float64"), SCALE)
        assert fills == [to_hex(SCALE.missing_color)] * 2


class TestRenderChoropleth:
    def test_missing_regions_drawn_in_missing_color(self, boundaries, population):
        joined, _ = join_population(boundaries, population)
        fig = render_choropleth(joined, "log_population", SCALE, dpi=40)

        facecolors = fig.axes[0].collections[0].get_facecolor()
        assert len(facecolors) == 3
        assert np.allclose(facecolors[1], to_rgba(SCALE.missing_color))
        assert not np.allclose(facecolors[0], to_rgba(SCALE.missing_color))

    def test_colorbar_added_when_range_is_valid(self, boundaries, population):
        joined, _ = join_population(boundaries, population)
        fig = render_choropleth(joined, "population", SCALE, label="Population", dpi=40)
        assert len(fig.axes) == 2

    def test_all_null_renders_without_legend(self, boundaries, population):
        joined, _ = join_population(boundaries, population.iloc[0:0])
        fig = render_choropleth(joined, "log_population", SCALE, dpi=40)

        assert len(fig.axes) == 1
        facecolors = fig.axes[0].collections[0].get_facecolor()
        for color in facecolors:
            assert np.allclose(color, to_rgba(SCALE.missing_color))

    def test_rendering_is_deterministic(self, boundaries, population):
        joined, _ = join_population(boundaries, population)
        first = _pixels(render_choropleth(joined, "log_population", SCALE, title="t", dpi=40))
        second = _pixels(render_choropleth(joined, "log_population", SCALE, title="t", dpi=40))

        assert first.shape == second.shape
        assert np.array_equal(first, second)

    def test_note_is_drawn(self, boundaries, population):
        joined, _ = join_population(boundaries, population)
        fig = render_choropleth(joined, "population", SCALE, note="1 territories without data", dpi=40)
        assert "1 territories without data" in [t.get_text() for t in fig.texts]


def test_render_boundaries_has_one_patch_per_territory(boundaries):
    fig = render_boundaries(boundaries, title="Outlines", dpi=40)

    ax = fig.axes[0]
    assert len(ax.collections[0].get_paths()) == 3
    assert not ax.axison


def test_render_city_markers_places_each_city(boundaries):
    fig = render_city_markers(boundaries, CITIES, title="Cities", dpi=40)

    ax = fig.axes[0]
    offsets = ax.collections[-1].get_offsets()
    assert np.allclose(offsets, [[c.lng, c.lat] for c in CITIES])
    assert [t.get_text() for t in ax.texts] == ["Auckland", "Wellington"]


def test_render_city_markers_reprojects_outlines(boundaries):
    projected = boundaries.to_crs("EPSG:2193")
    fig = render_city_markers(projected, CITIES, dpi=40)

    xmin, xmax = fig.axes[0].get_xlim()
    assert 170 < xmin < xmax < 180


class TestDensityGrid:
    def test_shape_and_normalization(self):
        xs, ys, density = density_grid(CITIES, (172.0, -44.0, 176.0, -36.0), bandwidth=0.5, grid_size=25)

        assert density.shape == (25, 25)
        assert len(xs) == len(ys) == 25
        assert density.max() == pytest.approx(1.0)
        assert density.min() >= 0.0

    def test_peak_is_near_largest_city(self):
        xs, ys, density = density_grid(CITIES, (172.0, -44.0, 176.0, -36.0), bandwidth=0.3, grid_size=81)
        row, col = np.unravel_index(np.argmax(density), density.shape)

        assert xs[col] == pytest.approx(174.7633, abs=0.1)
        assert ys[row] == pytest.approx(-36.8485, abs=0.2)

    def test_no_cities_gives_zeros(self):
        _, _, density = density_grid([], (0.0, 0.0, 1.0, 1.0), bandwidth=0.5, grid_size=10)
        assert not density.any()

    def test_zero_population_city_adds_nothing(self):
        bounds = (172.0, -44.0, 176.0, -36.0)
        ghost = CityPoint("Ghost Town", -43.0, 172.5, 0)

        _, _, alone = density_grid(CITIES[:1], bounds, bandwidth=0.5, grid_size=20)
        _, _, with_ghost = density_grid(CITIES[:1] + [ghost], bounds, bandwidth=0.5, grid_size=20)

        assert np.allclose(alone, with_ghost)

    def test_weighting_follows_population(self):
        bounds = (172.0, -44.0, 176.0, -36.0)
        _, _, density = density_grid(CITIES, bounds, bandwidth=0.5, grid_size=41)

        # Auckland outweighs Wellington roughly 7.7 to 1
        north = density[density.shape[0] * 3 // 4 :, :].max()
        south = density[: density.shape[0] // 2, :].max()
        assert north == pytest.approx(1.0)
        assert 0.05 < south < 0.3


def test_render_density_surface(boundaries):
    fig = render_density_surface(boundaries, CITIES, SCALE, bandwidth=0.5, grid_size=20, dpi=40)

    assert len(fig.axes) == 2
    assert len(fig.axes[0].images) == 1
