#!/usr/bin/env python3
"""
Join territory boundaries to population records and derive log population.

The join is a left join on exact territory name equality: every boundary is
kept, in boundary order, and boundaries without a record carry nulls in every
population field. Unmatched names are reported, never zero-filled.
"""

from typing import Tuple

import geopandas as gpd
import numpy as np
import pandas as pd
from loguru import logger

from .models import (
    LOG_POPULATION_COLUMN,
    NAME_COLUMN,
    POPULATION_COLUMN,
    POPULATION_RECORD_COLUMNS,
    TERRITORY_COLUMN,
    YEAR_COLUMN,
    JoinReport,
)


def log_population(values: pd.Series) -> pd.Series:
    """Return ln(1 + population) elementwise; nulls stay null."""
    numeric = pd.to_numeric(values, errors="coerce").to_numpy(dtype="float64", na_value=np.nan)
    return pd.Series(np.log1p(numeric), index=values.index, name=LOG_POPULATION_COLUMN)


def latest_record_per_territory(population: pd.DataFrame) -> pd.DataFrame:
    """Collapse duplicate territory rows to the most recent year.

    Keeps the first-seen territory order so the result stays deterministic.
    """
    duplicated = population[TERRITORY_COLUMN].duplicated(keep=False)
    if not duplicated.any():
        return population

    dup_names = sorted(population.loc[duplicated, TERRITORY_COLUMN].unique())
    logger.warning(
        f"  ⚠️ {len(dup_names)} territories have several records, keeping the latest year"
    )
    logger.debug(f"     Duplicated territories: {dup_names[:10]}")

    order = pd.Series(range(len(population)), index=population.index)
    latest = (
        population.assign(_order=order)
        .sort_values([YEAR_COLUMN, "_order"], kind="mergesort")
        .drop_duplicates(TERRITORY_COLUMN, keep="last")
    )
    first_seen = population.drop_duplicates(TERRITORY_COLUMN)[TERRITORY_COLUMN]
    return (
        latest.set_index(TERRITORY_COLUMN)
        .loc[first_seen]
        .reset_index()
        .drop(columns="_order")[POPULATION_RECORD_COLUMNS]
    )


def build_join_report(boundaries: gpd.GeoDataFrame, population: pd.DataFrame) -> JoinReport:
    """Count matched boundaries and list unmatched names on both sides."""
    record_names = set(population[TERRITORY_COLUMN])
    boundary_names = set(boundaries[NAME_COLUMN])

    unmatched = tuple(name for name in boundaries[NAME_COLUMN] if name not in record_names)
    unused = tuple(
        dict.fromkeys(name for name in population[TERRITORY_COLUMN] if name not in boundary_names)
    )
    return JoinReport(
        boundary_count=len(boundaries),
        matched=len(boundaries) - len(unmatched),
        unmatched=unmatched,
        unused_records=unused,
    )


def join_population(
    boundaries: gpd.GeoDataFrame, population: pd.DataFrame
) -> Tuple[gpd.GeoDataFrame, JoinReport]:
    """
    Left-join population records onto boundaries and add log_population.

    Args:
        boundaries: Territory boundaries (``name``, ``geometry``)
        population: Population records in canonical columns

    Returns:
        (joined, report): one joined feature per boundary, in boundary order,
        and the join diagnostics
    """
    logger.info("🔗 Joining population records to territory boundaries...")

    records = latest_record_per_territory(population)
    report = build_join_report(boundaries, records)

    logger.debug(f"     Boundaries: {report.boundary_count:,}")
    logger.debug(f"     Population records: {len(records):,}")

    joined = boundaries.merge(
        records,
        how="left",
        left_on=NAME_COLUMN,
        right_on=TERRITORY_COLUMN,
        sort=False,
    ).drop(columns=TERRITORY_COLUMN)

    joined[LOG_POPULATION_COLUMN] = log_population(joined[POPULATION_COLUMN])
    joined = gpd.GeoDataFrame(joined, geometry=boundaries.geometry.name, crs=boundaries.crs)

    if report.unmatched:
        logger.warning(
            f"  ⚠️ {len(report.unmatched)} of {report.boundary_count} boundaries have no population record"
        )
        for name in report.unmatched[:10]:
            logger.warning(f"     • {name}")
        if len(report.unmatched) > 10:
            logger.warning(f"     ... and {len(report.unmatched) - 10} more")

    if report.unused_records:
        logger.info(f"  📍 {len(report.unused_records)} population records match no boundary")
        logger.debug(f"     Example unused: {list(report.unused_records[:5])}")

    logger.success(
        f"  ✅ Joined {report.matched:,} of {report.boundary_count:,} boundaries "
        f"({report.match_rate * 100:.1f}%)"
    )
    return joined, report
