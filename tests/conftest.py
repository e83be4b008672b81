"""Shared fixtures: tiny synthetic boundaries, population tables and configs."""

import sys
from pathlib import Path

import matplotlib

matplotlib.use("Agg")

import geopandas as gpd
import pandas as pd
import pytest
import yaml
from loguru import logger
from shapely.geometry import box

POPULATION_HEADER = "Territorial authority,Year,Population,Change (number),Change (%)"

POPULATION_COLUMNS = {
    "territory_name": "Territorial authority",
    "year": "Year",
    "population": "Population",
    "change_count": "Change (number)",
    "change_percent": "Change (%)",
}


@pytest.fixture(autouse=True)
def quiet_logging():
    logger.remove()
    logger.add(sys.stderr, level="WARNING")
    yield
    logger.remove()


@pytest.fixture
def boundaries() -> gpd.GeoDataFrame:
    """Three square territories in WGS84, in a fixed order."""
    return gpd.GeoDataFrame(
        {"name": ["Auckland", "Nelson", "Wellington"]},
        geometry=[
            box(174.0, -37.0, 175.0, -36.0),
            box(173.0, -41.5, 173.5, -41.0),
            box(174.5, -41.5, 175.0, -41.0),
        ],
        crs="EPSG:4326",
    )


@pytest.fixture
def population() -> pd.DataFrame:
    """Canonical population records; Nelson is deliberately absent."""
    return pd.DataFrame(
        {
            "territory_name": ["Auckland", "Wellington", "Dunedin"],
            "year": [2023, 2023, 2023],
            "population": [1657200, 215400, 134100],
            "change_count": [16800, -1200, 600],
            "change_percent": [1.0, -0.6, 0.4],
        }
    )


@pytest.fixture
def boundary_file(tmp_path: Path, boundaries: gpd.GeoDataFrame) -> Path:
    path = tmp_path / "territories.geojson"
    boundaries.rename(columns={"name": "TA_NAME"}).to_file(path, driver="GeoJSON")
    return path


def write_population_csv(path: Path, rows) -> Path:
    path.write_text("\n".join([POPULATION_HEADER, *rows]) + "\n", encoding="utf-8")
    return path


@pytest.fixture
def population_csv(tmp_path: Path) -> Path:
    return write_population_csv(
        tmp_path / "population.csv",
        [
            'Auckland,2022,"1,640,400",..,..',
            'Auckland,2023,"1,657,200","16,800",1.0%',
            "Wellington,2023,215400,-1200,-0.6",
            "Dunedin,2023,134100,600,0.4",
        ],
    )


@pytest.fixture
def config_data(tmp_path: Path, boundary_file: Path, population_csv: Path) -> dict:
    return {
        "project_name": "Test Maps",
        "input_files": {
            "boundaries": str(boundary_file),
            "population": str(population_csv),
        },
        "columns": {"boundary_name": "TA_NAME", **POPULATION_COLUMNS},
        "directories": {"output": str(tmp_path / "out")},
        "visualization": {"map_dpi": 40, "density_grid_size": 30},
    }


@pytest.fixture
def config_file(tmp_path: Path, config_data: dict) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(config_data), encoding="utf-8")
    return path
