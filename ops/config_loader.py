"""
Configuration Loader for NZ Population Maps

This module provides a centralized way to load, override and validate the
settings in config.yaml. Everything the maps need that used to be a literal
(input paths, column headers, city list, color stops, view center/zoom, DPI)
lives here with a named default.

Usage:
    from ops import Config

    config = Config()
    boundaries = config.get_input_path('boundaries')
    scale = config.color_scale()
    cities = config.cities()
"""

import copy
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import yaml  # type: ignore[import-untyped]
from loguru import logger
from matplotlib.colors import is_color_like

from processing.errors import ConfigError
from processing.models import (
    CHANGE_COUNT_COLUMN,
    CHANGE_PERCENT_COLUMN,
    POPULATION_COLUMN,
    POPULATION_RECORD_COLUMNS,
    TERRITORY_COLUMN,
    YEAR_COLUMN,
    CityPoint,
    ColorScale,
    HeatmapSettings,
)

CONFIG_ENV_VAR = "PIPELINE_CONFIG_PATH"


def _deep_merge(base: Dict[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    """Merge ``override`` into a copy of ``base``; nested dicts merge, everything else replaces."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _set_dotted(data: Dict[str, Any], key_path: str, value: Any) -> None:
    keys = key_path.split(".")
    current = data
    for key in keys[:-1]:
        if not isinstance(current.get(key), dict):
            current[key] = {}
        current = current[key]
    current[keys[-1]] = value


class Config:
    """Configuration manager for the population maps pipeline."""

    # Default values that can be overridden in config
    DEFAULTS: Dict[str, Any] = {
        "project_name": "NZ Population Maps",
        "description": "Population of New Zealand territorial authorities",
        "input_files": {},
        "columns": {
            "boundary_name": "name",
            TERRITORY_COLUMN: TERRITORY_COLUMN,
            YEAR_COLUMN: YEAR_COLUMN,
            POPULATION_COLUMN: POPULATION_COLUMN,
            CHANGE_COUNT_COLUMN: CHANGE_COUNT_COLUMN,
            CHANGE_PERCENT_COLUMN: CHANGE_PERCENT_COLUMN,
        },
        "population": {"year": None},
        "directories": {"output": "output"},
        "output_files": {
            "boundaries_png": "maps/nz_boundaries.png",
            "population_png": "maps/nz_population_choropleth.png",
            "log_population_png": "maps/nz_log_population_choropleth.png",
            "city_markers_png": "maps/nz_city_markers.png",
            "city_density_png": "maps/nz_city_density.png",
            "choropleth_html": "html/nz_population_interactive.html",
            "city_markers_html": "html/nz_city_markers.html",
            "city_heatmap_html": "html/nz_city_heatmap.html",
            "joined_geojson": "data/nz_population_joined.geojson",
            "join_report_md": "data/nz_population_join_report.md",
        },
        "visualization": {
            "map_dpi": 300,
            "color_stops": ["#ffffcc", "#a1dab4", "#41b6c4", "#2c7fb8", "#253494"],
            "missing_color": "#d9d9d9",
            "stroke_color": "#444444",
            "stroke_width": 0.3,
            "marker_color": "#d62728",
            "density_bandwidth": 0.5,
            "density_grid_size": 200,
        },
        "interactive": {
            "center": [-41.0, 174.0],
            "zoom_start": 5,
            "tiles": "OpenStreetMap",
            "heat_radius": 40,
            "heat_blur": 25,
            "heat_min_opacity": 0.3,
            "heat_max_zoom": 12,
        },
        "cities": [
            {"city": "Auckland", "lat": -36.8485, "lng": 174.7633, "population": 1657200},
            {"city": "Wellington", "lat": -41.2865, "lng": 174.7762, "population": 215400},
            {"city": "Christchurch", "lat": -43.5321, "lng": 172.6362, "population": 389300},
        ],
    }

    REQUIRED_INPUTS = ("boundaries", "population")

    def __init__(
        self,
        config_file: Optional[Union[str, Path]] = None,
        overrides: Optional[Mapping[str, Any]] = None,
    ):
        """
        Initialize configuration manager.

        Args:
            config_file: Path to config file. If None, looks for:
                        1. Environment variable PIPELINE_CONFIG_PATH
                        2. config.yaml in current directory
                        3. ops/config.yaml
            overrides: Dot-notation overrides applied after loading,
                       e.g. {"population.year": 2023}
        """
        if config_file is None:
            env_config = os.environ.get(CONFIG_ENV_VAR)
            if env_config and Path(env_config).exists():
                config_file = env_config
                logger.debug(f"Using config from environment: {config_file}")
            elif Path("config.yaml").exists():
                config_file = "config.yaml"
            elif Path("ops/config.yaml").exists():
                config_file = "ops/config.yaml"
                logger.debug("Using ops/config.yaml from project root")
            else:
                raise FileNotFoundError(
                    f"No config.yaml found. Check current directory or set {CONFIG_ENV_VAR}"
                )

        self.config_path = Path(config_file).resolve()
        if not self.config_path.exists():
            raise FileNotFoundError(f"Config file not found: {self.config_path}")

        self.project_root = self._find_project_root()

        logger.debug(f"Loading config from: {self.config_path}")
        logger.debug(f"Project root: {self.project_root}")

        with open(self.config_path, "r", encoding="utf-8") as f:
            try:
                loaded = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"{self.config_path}: invalid YAML: {e}") from e

        if not isinstance(loaded, dict):
            raise ConfigError(f"{self.config_path}: top level must be a mapping")

        self.data = _deep_merge(self.DEFAULTS, loaded)
        for key_path, value in (overrides or {}).items():
            _set_dotted(self.data, key_path, value)
            logger.debug(f"Applied override: {key_path} = {value}")

        self.validate()

    def _find_project_root(self) -> Path:
        """Project root is the parent of ops/, otherwise the config directory."""
        if self.config_path.parent.name == "ops":
            return self.config_path.parent.parent
        return self.config_path.parent

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation.

        Args:
            key_path: Dot-separated path to the configuration value
            default: Default value if key not found

        Returns:
            Configuration value
        """
        value: Any = self.data
        for key in key_path.split("."):
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default
        return value

    def _resolve(self, relative: Union[str, Path]) -> Path:
        path = Path(relative)
        return path if path.is_absolute() else self.project_root / path

    def get_input_path(self, filename_key: str) -> Path:
        """
        Get full path to an input file from input_files.

        Args:
            filename_key: Key for the filename in input_files

        Returns:
            Absolute path to the input file
        """
        relative_path_str = self.get(f"input_files.{filename_key}")
        if not relative_path_str:
            raise ValueError(f"Input filename key '{filename_key}' not found in config: input_files")
        return self._resolve(relative_path_str)

    def has_input(self, filename_key: str) -> bool:
        return bool(self.get(f"input_files.{filename_key}"))

    def get_output_dir(self) -> Path:
        return self._resolve(self.get("directories.output"))

    def get_output_path(self, output_key: str) -> Path:
        """Get full path to an output artifact, under the output directory."""
        relative = self.get(f"output_files.{output_key}")
        if not relative:
            raise ValueError(f"Unknown output file key: {output_key}")
        path = Path(relative)
        return path if path.is_absolute() else self.get_output_dir() / path

    def get_column_name(self, column_key: str) -> str:
        result = self.get(f"columns.{column_key}")
        if isinstance(result, str):
            return result
        raise ValueError(f"Column name not found or not a string: {column_key}")

    def get_visualization_setting(self, setting_key: str) -> Any:
        return self.get(f"visualization.{setting_key}")

    def get_interactive_setting(self, setting_key: str) -> Any:
        return self.get(f"interactive.{setting_key}")

    def population_columns(self) -> Dict[str, str]:
        """Canonical population column → source header."""
        return {key: self.get_column_name(key) for key in POPULATION_RECORD_COLUMNS}

    def population_year(self) -> Optional[int]:
        year = self.get("population.year")
        return int(year) if year is not None else None

    def color_scale(self) -> ColorScale:
        return ColorScale(
            stops=tuple(self.get_visualization_setting("color_stops")),
            missing_color=self.get_visualization_setting("missing_color"),
            stroke_color=self.get_visualization_setting("stroke_color"),
            stroke_width=float(self.get_visualization_setting("stroke_width")),
        )

    def heatmap_settings(self) -> HeatmapSettings:
        center = self.get_interactive_setting("center")
        return HeatmapSettings(
            center=(float(center[0]), float(center[1])),
            zoom_start=int(self.get_interactive_setting("zoom_start")),
            tiles=self.get_interactive_setting("tiles"),
            radius=int(self.get_interactive_setting("heat_radius")),
            blur=int(self.get_interactive_setting("heat_blur")),
            min_opacity=float(self.get_interactive_setting("heat_min_opacity")),
            max_zoom=int(self.get_interactive_setting("heat_max_zoom")),
        )

    def cities(self) -> List[CityPoint]:
        """City list from config.yaml (input_files.cities_csv takes precedence in the pipeline)."""
        return [CityPoint.from_mapping(entry) for entry in self.get("cities") or []]

    def validate(self) -> None:
        """Check every setting the pipeline relies on; raise ConfigError listing all problems."""
        problems: List[str] = []

        for key in self.REQUIRED_INPUTS:
            if not self.get(f"input_files.{key}"):
                problems.append(f"input_files.{key} is required")

        for key in ["boundary_name"] + list(POPULATION_RECORD_COLUMNS):
            value = self.get(f"columns.{key}")
            if not isinstance(value, str) or not value.strip():
                problems.append(f"columns.{key} must be a non-empty string")

        year = self.get("population.year")
        if year is not None and (isinstance(year, bool) or not isinstance(year, int)):
            problems.append(f"population.year must be an integer or null, got {year!r}")

        stops = self.get_visualization_setting("color_stops")
        if not isinstance(stops, list) or len(stops) < 2:
            problems.append("visualization.color_stops needs at least two colors")
        else:
            bad = [s for s in stops if not is_color_like(s)]
            if bad:
                problems.append(f"visualization.color_stops has invalid colors: {bad}")

        for key in ("missing_color", "stroke_color", "marker_color"):
            if not is_color_like(self.get_visualization_setting(key)):
                problems.append(f"visualization.{key} is not a valid color")

        problems.extend(self._check_positive("visualization", ["map_dpi", "density_grid_size"], int))
        problems.extend(self._check_positive("visualization", ["stroke_width", "density_bandwidth"], float))
        problems.extend(
            self._check_positive("interactive", ["zoom_start", "heat_radius", "heat_blur", "heat_max_zoom"], int)
        )
        problems.extend(self._check_positive("interactive", ["heat_min_opacity"], float))

        center = self.get_interactive_setting("center")
        if (
            not isinstance(center, (list, tuple))
            or len(center) != 2
            or not all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in center)
        ):
            problems.append("interactive.center must be [lat, lng]")
        elif not (-90 <= center[0] <= 90 and -180 <= center[1] <= 180):
            problems.append(f"interactive.center out of range: {center}")

        cities = self.get("cities")
        if not isinstance(cities, list):
            problems.append("cities must be a list")
        else:
            for idx, entry in enumerate(cities):
                if not isinstance(entry, Mapping):
                    problems.append(f"cities[{idx}] must be a mapping")
                    continue
                try:
                    CityPoint.from_mapping(entry)
                except ConfigError as e:
                    problems.append(f"cities[{idx}]: {e}")

        output_files = self.get("output_files")
        if not isinstance(output_files, dict):
            problems.append("output_files must be a mapping")

        if problems:
            for problem in problems:
                logger.error(f"❌ Config: {problem}")
            raise ConfigError(f"{self.config_path}: " + "; ".join(problems))

    def _check_positive(self, section: str, keys: List[str], kind: type) -> List[str]:
        problems = []
        for key in keys:
            value = self.get(f"{section}.{key}")
            numeric = isinstance(value, (int, float)) and not isinstance(value, bool)
            if kind is int and not isinstance(value, int):
                numeric = False
            if not numeric or value <= 0:
                problems.append(f"{section}.{key} must be a positive {kind.__name__}, got {value!r}")
        return problems

    def print_config_summary(self) -> None:
        """Log a summary of the current configuration."""
        logger.debug("📋 Configuration Summary")
        logger.debug("=" * 50)
        logger.debug(f"Project: {self.get('project_name', 'Unknown')}")
        logger.debug(f"Description: {self.get('description', 'No description')}")
        logger.debug(f"Config file: {self.config_path}")
        logger.debug(f"Output directory: {self.get_output_dir()}")

        logger.debug("📊 Input Files:")
        for file_key, value in self.get("input_files", {}).items():
            if not value:
                continue
            path = self.get_input_path(file_key)
            status = "✅" if path.exists() else "❌"
            logger.debug(f"  {status} {file_key}: {path}")
