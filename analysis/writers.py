"""
Output writers: PNG figures, HTML maps, the joined GeoJSON and the join report.

Every writer creates the parent directory and converts filesystem failures
into WriteError naming the file. No atomic-write guarantee.
"""

import json
import time
from pathlib import Path
from typing import Any, Dict, Optional, Union

import folium
import geopandas as gpd
import pandas as pd
from loguru import logger
from matplotlib.figure import Figure

from processing.errors import WriteError
from processing.models import LOG_POPULATION_COLUMN, NAME_COLUMN, POPULATION_COLUMN, JoinReport

PathLike = Union[str, Path]


def _prepare_parent(path: Path) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise WriteError(path, f"cannot create output directory: {e}") from e


def save_figure(fig: Figure, path: PathLike, dpi: int = 300) -> Path:
    """Write a rendered figure as a raster image and close it."""
    path = Path(path)
    logger.debug(f"  💾 Writing image {path} at {dpi} dpi")
    try:
        _prepare_parent(path)
        fig.savefig(
            path,
            dpi=dpi,
            bbox_inches="tight",
            facecolor="white",
            edgecolor="none",
            pad_inches=0.05,
        )
    except OSError as e:
        raise WriteError(path, f"could not save image: {e}") from e
    finally:
        fig.clf()

    logger.success(f"  ✅ Map saved: {path}")
    return path


def save_map(m: folium.Map, path: PathLike) -> Path:
    """Write an interactive map as a self-contained HTML document."""
    path = Path(path)
    _prepare_parent(path)
    try:
        m.save(str(path))
    except OSError as e:
        raise WriteError(path, f"could not save interactive map: {e}") from e

    logger.success(f"  ✅ Interactive map saved: {path}")
    return path


def export_joined_geojson(
    joined: gpd.GeoDataFrame,
    path: PathLike,
    report: JoinReport,
    metadata: Optional[Dict[str, Any]] = None,
) -> Path:
    """
    Export the joined layer as GeoJSON with an embedded ``metadata`` block.

    Args:
        joined: Joined features
        path: Output file path
        report: Join diagnostics recorded in the metadata
        metadata: Extra metadata entries (title, source, ...)

    Returns:
        The written path
    """
    path = Path(path)
    logger.info(f"💾 Exporting joined GeoJSON: {path}")

    export = joined
    if export.crs is not None and export.crs.to_epsg() != 4326:
        logger.debug(f"  🔄 Reprojecting from {export.crs} to WGS84")
        export = export.to_crs("EPSG:4326")

    geojson_data = json.loads(export.to_json(na="null"))

    population = pd.to_numeric(joined[POPULATION_COLUMN], errors="coerce")
    geojson_data["metadata"] = {
        **(metadata or {}),
        "created": time.strftime("%Y-%m-%d"),
        "crs": "EPSG:4326",
        "features_count": len(export),
        "summary_statistics": {
            "matched_territories": report.matched,
            "unmatched_territories": list(report.unmatched),
            "unused_population_records": list(report.unused_records),
            "total_population": int(population.sum()) if population.notna().any() else None,
        },
        "field_descriptions": {
            NAME_COLUMN: "Territorial authority name",
            POPULATION_COLUMN: "Estimated resident population (null when unmatched)",
            LOG_POPULATION_COLUMN: "ln(1 + population) (null when unmatched)",
        },
    }

    _prepare_parent(path)
    try:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(geojson_data, f, separators=(",", ":"))
    except OSError as e:
        raise WriteError(path, f"could not write GeoJSON: {e}") from e

    file_size = path.stat().st_size / 1024
    logger.success(f"  ✅ Exported {len(export):,} features ({file_size:.1f} KB)")
    return path


def write_join_report(
    joined: gpd.GeoDataFrame,
    report: JoinReport,
    path: PathLike,
    project_name: str = "NZ Population Maps",
) -> Path:
    """Write a markdown report of join coverage and population statistics."""
    path = Path(path)
    logger.info(f"📄 Generating join report: {path}")

    table = pd.DataFrame(
        {
            "Territory": joined[NAME_COLUMN],
            "Population": pd.to_numeric(joined[POPULATION_COLUMN], errors="coerce"),
        }
    ).dropna(subset=["Population"])
    table["Population"] = table["Population"].astype("int64")
    table = table.sort_values("Population", ascending=False, kind="mergesort")

    unmatched_lines = "\n".join(f"- {name}" for name in report.unmatched) or "_None_"
    unused_lines = "\n".join(f"- {name}" for name in report.unused_records) or "_None_"
    top_table = table.head(10).to_markdown(index=False) if len(table) else "_No population data_"
    total_population = int(table["Population"].sum()) if len(table) else 0

    markdown_content = f"""# Population Join Report

## Summary

- **Territories in boundary file**: {report.boundary_count:,}
- **Territories with population data**: {report.matched:,}
- **Match rate**: {report.match_rate * 100:.1f}%
- **Total population (matched)**: {total_population:,}

## Territories Without Population Data

{unmatched_lines}

## Population Records Without a Boundary

{unused_lines}

## Top 10 Territories by Population

{top_table}

---
*Report generated on {time.strftime("%Y-%m-%d %H:%M:%S")}*
*Project: {project_name}*
"""

    _prepare_parent(path)
    try:
        with open(path, "w", encoding="utf-8") as f:
            f.write(markdown_content)
    except OSError as e:
        raise WriteError(path, f"could not write report: {e}") from e

    logger.success(f"  ✅ Join report generated: {path}")
    return path
