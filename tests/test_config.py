import pytest
import yaml

from ops.config_loader import Config
from processing.errors import ConfigError
from processing.models import CityPoint, ColorScale, HeatmapSettings


def _write(tmp_path, data):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


def test_loads_and_merges_defaults(config_file, tmp_path):
    config = Config(config_file)

    assert config.get("project_name") == "Test Maps"
    assert config.get("visualization.map_dpi") == 40
    assert config.get("visualization.missing_color") == "#d9d9d9"
    assert config.get("interactive.zoom_start") == 5
    assert config.get("does.not.exist", "fallback") == "fallback"
    assert config.project_root == tmp_path.resolve()


def test_typed_accessors(config_file):
    config = Config(config_file)

    assert config.color_scale() == ColorScale()
    assert config.heatmap_settings() == HeatmapSettings()
    assert [c.city for c in config.cities()] == ["Auckland", "Wellington", "Christchurch"]
    assert config.population_columns()["territory_name"] == "Territorial authority"
    assert config.get_column_name("boundary_name") == "TA_NAME"
    assert config.population_year() is None


def test_overrides_use_dot_notation(config_file):
    config = Config(config_file, overrides={"population.year": 2022, "interactive.zoom_start": 7})

    assert config.population_year() == 2022
    assert config.heatmap_settings().zoom_start == 7


def test_overrides_are_the_second_argument(config_file, tmp_path):
    config = Config(config_file, {"population.year": 2021})

    assert config.population_year() == 2021
    assert config.project_root == tmp_path.resolve()


def test_relative_paths_resolve_against_project_root(tmp_path, config_data):
    config_data["input_files"]["boundaries"] = "data/territories.geojson"
    config_data["directories"]["output"] = "out"
    config = Config(_write(tmp_path, config_data))

    assert config.get_input_path("boundaries") == tmp_path.resolve() / "data" / "territories.geojson"
    assert config.get_output_path("population_png") == tmp_path.resolve() / "out" / "maps" / "nz_population_choropleth.png"


def test_missing_required_input(tmp_path, config_data):
    del config_data["input_files"]["population"]
    with pytest.raises(ConfigError, match="input_files.population"):
        Config(_write(tmp_path, config_data))


def test_invalid_color_stop(tmp_path, config_data):
    config_data["visualization"]["color_stops"] = ["#ffffcc", "not-a-color"]
    with pytest.raises(ConfigError, match="not-a-color"):
        Config(_write(tmp_path, config_data))


def test_non_positive_dpi(tmp_path, config_data):
    config_data["visualization"]["map_dpi"] = 0
    with pytest.raises(ConfigError, match="map_dpi"):
        Config(_write(tmp_path, config_data))


def test_bad_city_entry(tmp_path, config_data):
    config_data["cities"] = [{"city": "Auckland", "lat": -136.8, "lng": 174.7, "population": 1}]
    with pytest.raises(ConfigError, match="cities\\[0\\]"):
        Config(_write(tmp_path, config_data))


def test_every_problem_is_reported(tmp_path, config_data):
    config_data["visualization"]["map_dpi"] = -1
    config_data["interactive"] = {"center": [200, 174]}
    with pytest.raises(ConfigError) as exc:
        Config(_write(tmp_path, config_data))
    assert "map_dpi" in str(exc.value)
    assert "interactive.center" in str(exc.value)


def test_invalid_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("input_files: [unclosed", encoding="utf-8")
    with pytest.raises(ConfigError):
        Config(path)


def test_missing_config_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        Config(tmp_path / "absent.yaml")


def test_city_point_from_mapping():
    city = CityPoint.from_mapping({"city": " Hamilton ", "lat": "-37.787", "lng": 175.279, "population": 185300})

    assert city.city == "Hamilton"
    assert city.lat == pytest.approx(-37.787)
    with pytest.raises(ConfigError):
        CityPoint.from_mapping({"city": "Hamilton", "lat": -37.787})
