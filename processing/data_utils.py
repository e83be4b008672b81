#!/usr/bin/env python3
"""
data_utils.py - Shared Data Processing Utilities

Column validation and numeric cleaning used by every loader.
"""

from pathlib import Path
from typing import Iterable, List, Optional, Union

import pandas as pd
from loguru import logger

from .errors import SchemaError


def clean_numeric(series: pd.Series) -> pd.Series:
    """Strip thousands separators and percent signs, then coerce to numbers.

    Blank cells and NA markers become NaN; anything else that fails to parse
    also becomes NaN, so callers compare against ``is_blank`` to tell the two
    apart.

    Args:
        series: The pandas Series to clean.

    Returns:
        A float pandas Series.
    """
    s = (
        series.astype(str)
        .str.replace(",", "", regex=False)
        .str.replace("%", "", regex=False)
        .str.strip()
    )
    s = s.where(~is_blank(series), None)
    return pd.to_numeric(s, errors="coerce")


# Placeholders used by statistical agencies for suppressed or unavailable values
NA_MARKERS = {"", "..", "-", "na", "n/a", "nan", "null", "none"}


def is_blank(series: pd.Series) -> pd.Series:
    """True where a raw cell is NA, whitespace only or an NA marker."""
    return series.isna() | series.astype(str).str.strip().str.lower().isin(NA_MARKERS)


def find_column_by_pattern(columns: Iterable[str], pattern: str) -> Optional[str]:
    """Find a column whose name contains ``pattern`` (case-insensitive)."""
    for col in columns:
        if pattern.lower() in str(col).lower():
            return str(col)
    return None


def validate_required_columns(
    df: pd.DataFrame, required: Iterable[str], source: Union[str, Path]
) -> None:
    """Raise SchemaError when any required column is absent.

    Columns are matched verbatim. Near matches are logged as hints but never
    substituted.
    """
    missing: List[str] = [col for col in required if col not in df.columns]
    if not missing:
        return

    available = [str(col) for col in df.columns]
    logger.error(f"❌ Missing required columns in {source}: {missing}")
    for col in missing:
        hint = find_column_by_pattern(available, col.strip())
        if hint is not None:
            logger.info(f"   💡 '{col}' not found, did you mean '{hint}'?")
    raise SchemaError(source, missing, available)
