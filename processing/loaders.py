#!/usr/bin/env python3
"""
Input loaders for territorial boundaries, population tables and city lists.

Each loader reads one file, validates it and returns an immutable-by-convention
table in the canonical column names from ``processing.models``. Missing or
malformed files raise LoadError; absent headers raise SchemaError.
"""

from pathlib import Path
from typing import List, Mapping, Optional, Union

import geopandas as gpd
import pandas as pd
from loguru import logger

from .data_utils import clean_numeric, is_blank, validate_required_columns
from .errors import ConfigError, LoadError
from .models import (
    CHANGE_COUNT_COLUMN,
    CHANGE_PERCENT_COLUMN,
    NAME_COLUMN,
    POPULATION_COLUMN,
    POPULATION_RECORD_COLUMNS,
    TERRITORY_COLUMN,
    YEAR_COLUMN,
    CityPoint,
)

PathLike = Union[str, Path]

CITY_COLUMNS = ["city", "lat", "lng", "population"]


def _require_file(path: Path) -> None:
    if not path.exists():
        raise LoadError(path, "file not found")
    if not path.is_file():
        raise LoadError(path, "not a regular file")


def _read_csv(path: Path) -> pd.DataFrame:
    try:
        return pd.read_csv(path, dtype=str, keep_default_na=False, skipinitialspace=True)
    except pd.errors.EmptyDataError as e:
        raise LoadError(path, "file is empty") from e
    except (pd.errors.ParserError, UnicodeDecodeError) as e:
        raise LoadError(path, f"could not parse CSV: {e}") from e


def _bad_rows(mask: pd.Series, raw: pd.Series) -> str:
    """Format the first few offending values with their 1-based data row."""
    rows = [f"row {idx + 1}: {raw.loc[idx]!r}" for idx in raw.index[mask.to_numpy()][:5]]
    more = int(mask.sum()) - len(rows)
    if more > 0:
        rows.append(f"... {more} more")
    return "; ".join(rows)


def _parse_numeric(
    path: Path, raw: pd.Series, label: str, nullable: bool = False
) -> pd.Series:
    values = clean_numeric(raw)
    blank = is_blank(raw)
    unparseable = values.isna() & ~blank
    if unparseable.any():
        raise LoadError(path, f"non-numeric {label} values: {_bad_rows(unparseable, raw)}")
    if not nullable and blank.any():
        raise LoadError(path, f"missing {label} values: {_bad_rows(blank, raw)}")
    return values


def _parse_integer(path: Path, values: pd.Series, raw: pd.Series, label: str) -> pd.Series:
    fractional = values.notna() & (values % 1 != 0)
    if fractional.any():
        raise LoadError(path, f"non-integer {label} values: {_bad_rows(fractional, raw)}")
    return values.astype("Int64")


def load_boundaries(path: PathLike, name_column: str = NAME_COLUMN) -> gpd.GeoDataFrame:
    """
    Load named territory polygons from a geographic boundary file.

    Args:
        path: Any file GeoPandas can read (GeoJSON, Shapefile, GeoPackage)
        name_column: Column holding the territory name

    Returns:
        GeoDataFrame with ``name`` and ``geometry`` in source order. The CRS is
        passed through untouched.
    """
    path = Path(path)
    logger.info(f"🗺️ Loading territory boundaries from {path}")
    _require_file(path)

    try:
        gdf = gpd.read_file(path)
    except Exception as e:
        raise LoadError(path, f"could not read boundary file: {e}") from e

    if len(gdf) == 0:
        raise LoadError(path, "boundary file contains no features")

    validate_required_columns(gdf, [name_column], path)

    names = gdf[name_column]
    blank = is_blank(names)
    if blank.any():
        raise LoadError(path, f"features without a name: {_bad_rows(blank, names)}")

    missing_geometry = gdf.geometry.isna() | gdf.geometry.is_empty
    if missing_geometry.any():
        logger.warning(f"  ⚠️ {int(missing_geometry.sum())} features have empty geometry")

    boundaries = gpd.GeoDataFrame(
        {NAME_COLUMN: names.astype(str).tolist()},
        geometry=gdf.geometry.values,
        crs=gdf.crs,
    )

    logger.success(f"  ✅ Loaded {len(boundaries):,} territory boundaries")
    logger.debug(f"     CRS: {boundaries.crs}")
    return boundaries


def load_population(
    path: PathLike,
    columns: Mapping[str, str],
    year: Optional[int] = None,
) -> pd.DataFrame:
    """
    Load a population table into canonical Population Records.

    Args:
        path: Delimited text file with a header row
        columns: Maps each canonical column (territory_name, year, population,
            change_count, change_percent) to its header in the source file
        year: Keep only records for this year when given

    Returns:
        DataFrame with canonical columns, in file order
    """
    path = Path(path)
    logger.info(f"📊 Loading population table from {path}")
    _require_file(path)

    missing_keys = [key for key in POPULATION_RECORD_COLUMNS if key not in columns]
    if missing_keys:
        raise ConfigError(f"Population column mapping is missing keys: {missing_keys}")

    raw = _read_csv(path)
    validate_required_columns(raw, [columns[key] for key in POPULATION_RECORD_COLUMNS], path)

    territory = raw[columns[TERRITORY_COLUMN]]
    blank_names = is_blank(territory)
    if blank_names.any():
        raise LoadError(path, f"rows without a territory name: {_bad_rows(blank_names, territory)}")

    year_raw = raw[columns[YEAR_COLUMN]]
    pop_raw = raw[columns[POPULATION_COLUMN]]
    count_raw = raw[columns[CHANGE_COUNT_COLUMN]]
    pct_raw = raw[columns[CHANGE_PERCENT_COLUMN]]

    years = _parse_integer(path, _parse_numeric(path, year_raw, "year"), year_raw, "year")
    population = _parse_numeric(path, pop_raw, "population")
    negative = population < 0
    if negative.any():
        raise LoadError(path, f"negative population values: {_bad_rows(negative, pop_raw)}")
    population = _parse_integer(path, population, pop_raw, "population")
    change_count = _parse_integer(
        path, _parse_numeric(path, count_raw, "change count", nullable=True), count_raw, "change count"
    )
    change_percent = _parse_numeric(path, pct_raw, "change percent", nullable=True).astype("float64")

    records = pd.DataFrame(
        {
            TERRITORY_COLUMN: territory.astype(str).tolist(),
            YEAR_COLUMN: years.values,
            POPULATION_COLUMN: population.values,
            CHANGE_COUNT_COLUMN: change_count.values,
            CHANGE_PERCENT_COLUMN: change_percent.values,
        }
    )

    if year is not None:
        before = len(records)
        records = records[records[YEAR_COLUMN] == year].reset_index(drop=True)
        logger.info(f"  📅 Kept {len(records):,} of {before:,} records for year {year}")
        if len(records) == 0:
            logger.warning(f"  ⚠️ No population records for year {year}")

    logger.success(f"  ✅ Loaded {len(records):,} population records")
    if len(records) > 0:
        logger.info(f"     👥 Total population: {int(records[POPULATION_COLUMN].sum()):,}")
    return records


def load_cities(path: PathLike) -> List[CityPoint]:
    """Load city points (city, lat, lng, population) from a CSV file."""
    path = Path(path)
    logger.info(f"🏙️ Loading city list from {path}")
    _require_file(path)

    raw = _read_csv(path)
    validate_required_columns(raw, CITY_COLUMNS, path)

    lat = _parse_numeric(path, raw["lat"], "latitude")
    lng = _parse_numeric(path, raw["lng"], "longitude")
    population = _parse_integer(
        path, _parse_numeric(path, raw["population"], "population"), raw["population"], "population"
    )

    cities: List[CityPoint] = []
    for idx in raw.index:
        try:
            cities.append(
                CityPoint(
                    city=str(raw.at[idx, "city"]).strip(),
                    lat=float(lat.at[idx]),
                    lng=float(lng.at[idx]),
                    population=int(population.at[idx]),
                )
            )
        except ConfigError as e:
            raise LoadError(path, f"row {idx + 1}: {e}") from e

    if not cities:
        raise LoadError(path, "city file contains no rows")

    logger.success(f"  ✅ Loaded {len(cities)} cities")
    return cities
