import folium
import pytest
from folium.plugins import HeatMap
from matplotlib.colors import to_hex

from analysis.interactive_maps import (
    FILL_COLOR_PROPERTY,
    build_city_heatmap,
    build_city_marker_map,
    build_interactive_choropleth,
    choropleth_geojson,
    heat_weights,
)
from analysis.static_maps import assign_fill_colors
from processing.join import join_population
from processing.models import CityPoint, ColorScale, HeatmapSettings

SCALE = ColorScale()
SETTINGS = HeatmapSettings()

CITIES = [
    CityPoint("Auckland", -36.8485, 174.7633, 1657200),
    CityPoint("Wellington", -41.2865, 174.7762, 215400),
    CityPoint("Christchurch", -43.5321, 172.6362, 389300),
]


def _children(m, kind):
    return [child for child in m._children.values() if isinstance(child, kind)]


class TestChoroplethGeojson:
    def test_one_feature_per_boundary(self, boundaries, population):
        joined, _ = join_population(boundaries, population)
        data = choropleth_geojson(joined, "log_population", SCALE)

        assert len(data["features"]) == len(boundaries)
        names = [f["properties"]["name"] for f in data["features"]]
        assert names == ["Auckland", "Nelson", "Wellington"]

    def test_fills_match_static_colors(self, boundaries, population):
        joined, _ = join_population(boundaries, population)
        data = choropleth_geojson(joined, "log_population", SCALE)

        fills = [f["properties"][FILL_COLOR_PROPERTY] for f in data["features"]]
        assert fills == assign_fill_colors(joined["log_population"], SCALE)
        assert fills[1] == to_hex(SCALE.missing_color)

    def test_unmatched_values_are_null(self, boundaries, population):
        joined, _ = join_population(boundaries, population)
        nelson = choropleth_geojson(joined, "log_population", SCALE)["features"][1]["properties"]

        assert nelson["log_population"] is None
        assert nelson["population"] is None

    def test_reprojects_to_wgs84(self, boundaries, population):
        joined, _ = join_population(boundaries.to_crs("EPSG:2193"), population)
        data = choropleth_geojson(joined, "population", SCALE)

        lng, lat = data["features"][0]["geometry"]["coordinates"][0][0]
        assert 170 < lng < 180
        assert -48 < lat < -33

    def test_is_deterministic(self, boundaries, population):
        joined, _ = join_population(boundaries, population)
        assert choropleth_geojson(joined, "population", SCALE) == choropleth_geojson(
            joined, "population", SCALE
        )


class TestBuildInteractiveChoropleth:
    def test_layers(self, boundaries, population):
        joined, _ = join_population(boundaries, population)
        m = build_interactive_choropleth(joined, "log_population", SCALE, SETTINGS, label="ln(1 + population)")

        layers = _children(m, folium.GeoJson)
        assert len(layers) == 1
        assert len(layers[0].data["features"]) == 3
        assert _children(m, folium.LayerControl)
        assert "ln(1 + population)" in m.get_root().render()

    def test_all_null_values_still_render(self, boundaries, population):
        joined, _ = join_population(boundaries, population.iloc[0:0])
        m = build_interactive_choropleth(joined, "log_population", SCALE, SETTINGS)

        html = m.get_root().render()
        assert "Auckland" in html


class TestCityMaps:
    def test_heat_weights_normalized_to_largest_city(self):
        weights = heat_weights(CITIES)

        assert weights[0] == [-36.8485, 174.7633, 1.0]
        assert weights[1][2] == pytest.approx(215400 / 1657200)
        assert all(0.0 <= w[2] <= 1.0 for w in weights)

    def test_heat_weights_empty(self):
        assert heat_weights([]) == []

    def test_default_tiles_need_no_api_key(self):
        html = build_city_marker_map(CITIES, SETTINGS).get_root().render()

        assert SETTINGS.tiles == "OpenStreetMap"
        assert "tile.openstreetmap.org" in html
        assert "cartocdn" not in html

    def test_marker_map_has_one_marker_per_city(self):
        m = build_city_marker_map(CITIES, SETTINGS)
        assert len(_children(m, folium.Marker)) == 3

    def test_heatmap_layers(self):
        m = build_city_heatmap(CITIES, SETTINGS)

        heat = _children(m, HeatMap)
        assert len(heat) == 1
        assert len(heat[0].data) == 3
        groups = _children(m, folium.FeatureGroup)
        assert len(groups) == 1
        assert len(_children(groups[0], folium.Marker)) == 3
        assert "Christchurch" in m.get_root().render()
