#!/usr/bin/env python3
"""
NZ Population Maps Pipeline with Click CLI

Runs the single-pass batch: load boundaries and population → join and
derive log population → render static and interactive maps → write files.

Usage:
    nz-population-maps [OPTIONS]

    # Pick a census year and fail if any territory is unmatched:
    nz-population-maps --year 2023 --strict-join

    # Override any config value with dot notation:
    nz-population-maps --config visualization.map_dpi=150

    # Only the PNGs, with DEBUG logging:
    nz-population-maps --skip-interactive --verbose
"""

import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import click
from loguru import logger

from analysis.interactive_maps import (
    build_city_heatmap,
    build_city_marker_map,
    build_interactive_choropleth,
)
from analysis.static_maps import (
    render_boundaries,
    render_choropleth,
    render_city_markers,
    render_density_surface,
)
from analysis.writers import export_joined_geojson, save_figure, save_map, write_join_report
from processing.errors import ConfigError, JoinMismatch, LoadError, PipelineError, SchemaError, WriteError
from processing.join import join_population
from processing.loaders import load_boundaries, load_cities, load_population
from processing.models import LOG_POPULATION_COLUMN, POPULATION_COLUMN, CityPoint, JoinReport

from .config_loader import Config


@dataclass
class Artifact:
    """One output file and the callable that renders and writes it."""

    key: str
    description: str
    write: Callable[[], Path]


@dataclass
class PipelineResult:
    written: List[Path]
    failed: List[Tuple[str, WriteError]]
    report: JoinReport

    @property
    def ok(self) -> bool:
        return not self.failed


class ConfigOverride(click.ParamType):
    """Custom parameter type for config overrides."""

    name = "config_override"

    def convert(self, value, param, ctx) -> Tuple[str, Any]:
        if "=" not in value:
            self.fail(f"Invalid format: {value}. Use KEY=VALUE", param, ctx)

        key, val = value.split("=", 1)

        # Auto-parse value type
        if val.lower() in ("true", "false"):
            parsed_val: Any = val.lower() == "true"
        elif val.lower() in ("null", "none"):
            parsed_val = None
        elif val.lstrip("-").isdigit():
            parsed_val = int(val)
        else:
            try:
                parsed_val = float(val)
            except ValueError:
                parsed_val = val

        return key, parsed_val


def setup_logging(verbose: bool = False, enable_trace: bool = False, log_file: Optional[str] = None) -> None:
    """
    Configure loguru logging with appropriate levels.

    Args:
        verbose: If True, set log level to DEBUG
        enable_trace: If True, enable TRACE level logging for deep debugging
        log_file: Also log to this file, rotated at 10 MB
    """
    logger.remove()

    if enable_trace:
        log_level = "TRACE"
    elif verbose:
        log_level = "DEBUG"
    else:
        log_level = "INFO"

    if verbose or enable_trace:
        log_format = "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | <level>{message}</level>"
    else:
        log_format = "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>"

    logger.add(
        sys.stderr,
        format=log_format,
        level=log_level,
        colorize=True,
        backtrace=enable_trace,
        diagnose=enable_trace,
    )

    if log_file:
        logger.add(
            log_file,
            level=log_level,
            format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | {message}",
            rotation="10 MB",
            retention="7 days",
        )
        logger.info(f"📄 Also logging to file: {log_file}")

    os.environ["LOGURU_LEVEL"] = log_level

    if verbose:
        logger.debug("🔧 Verbose logging enabled (DEBUG level)")
    if enable_trace:
        logger.trace("🔍 Trace logging enabled - maximum detail mode")


def handle_critical_error(error: Exception, context: str = "") -> None:
    """Log a fatal error; the full traceback only in TRACE mode."""
    if os.environ.get("LOGURU_LEVEL", "INFO") == "TRACE":
        logger.opt(exception=error).trace(f"Error context: {context}")

    logger.critical(f"💥 {context}")
    logger.critical(f"{type(error).__name__}: {error}")


def resolve_cities(config: Config) -> List[CityPoint]:
    """City list from input_files.cities_csv when set, otherwise from config.yaml."""
    if config.has_input("cities_csv"):
        return load_cities(config.get_input_path("cities_csv"))
    cities = config.cities()
    logger.info(f"🏙️ Using {len(cities)} cities from configuration")
    return cities


def plan_artifacts(
    config: Config,
    boundaries,
    joined,
    report: JoinReport,
    cities: Sequence[CityPoint],
    skip_static: bool = False,
    skip_interactive: bool = False,
) -> List[Artifact]:
    """Build the ordered list of outputs; nothing is rendered until ``write`` runs."""
    scale = config.color_scale()
    settings = config.heatmap_settings()
    dpi = int(config.get_visualization_setting("map_dpi"))
    marker_color = config.get_visualization_setting("marker_color")
    bandwidth = float(config.get_visualization_setting("density_bandwidth"))
    grid_size = int(config.get_visualization_setting("density_grid_size"))
    path = config.get_output_path

    note = None
    if report.unmatched:
        note = f"{len(report.unmatched)} territories without population data shown in grey"

    artifacts: List[Artifact] = []

    if not skip_static:
        artifacts.extend(
            [
                Artifact(
                    "boundaries_png",
                    "Territory outlines",
                    lambda: save_figure(
                        render_boundaries(boundaries, title="New Zealand Territorial Authorities", dpi=dpi),
                        path("boundaries_png"),
                        dpi,
                    ),
                ),
                Artifact(
                    "population_png",
                    "Population choropleth",
                    lambda: save_figure(
                        render_choropleth(
                            joined,
                            POPULATION_COLUMN,
                            scale,
                            title="Population by Territorial Authority",
                            label="Population",
                            note=note,
                            dpi=dpi,
                        ),
                        path("population_png"),
                        dpi,
                    ),
                ),
                Artifact(
                    "log_population_png",
                    "Log population choropleth",
                    lambda: save_figure(
                        render_choropleth(
                            joined,
                            LOG_POPULATION_COLUMN,
                            scale,
                            title="Population by Territorial Authority (log scale)",
                            label="ln(1 + population)",
                            note=note,
                            dpi=dpi,
                        ),
                        path("log_population_png"),
                        dpi,
                    ),
                ),
                Artifact(
                    "city_markers_png",
                    "City markers",
                    lambda: save_figure(
                        render_city_markers(
                            boundaries, cities, title="Major Cities", marker_color=marker_color, dpi=dpi
                        ),
                        path("city_markers_png"),
                        dpi,
                    ),
                ),
                Artifact(
                    "city_density_png",
                    "City population density surface",
                    lambda: save_figure(
                        render_density_surface(
                            boundaries,
                            cities,
                            scale,
                            bandwidth=bandwidth,
                            grid_size=grid_size,
                            title="City Population Density",
                            dpi=dpi,
                        ),
                        path("city_density_png"),
                        dpi,
                    ),
                ),
            ]
        )

    if not skip_interactive:
        artifacts.extend(
            [
                Artifact(
                    "choropleth_html",
                    "Interactive log population choropleth",
                    lambda: save_map(
                        build_interactive_choropleth(
                            joined, LOG_POPULATION_COLUMN, scale, settings, label="ln(1 + population)"
                        ),
                        path("choropleth_html"),
                    ),
                ),
                Artifact(
                    "city_markers_html",
                    "Interactive city markers",
                    lambda: save_map(build_city_marker_map(cities, settings), path("city_markers_html")),
                ),
                Artifact(
                    "city_heatmap_html",
                    "Interactive city heatmap",
                    lambda: save_map(build_city_heatmap(cities, settings), path("city_heatmap_html")),
                ),
            ]
        )

    artifacts.extend(
        [
            Artifact(
                "joined_geojson",
                "Joined GeoJSON",
                lambda: export_joined_geojson(
                    joined,
                    path("joined_geojson"),
                    report,
                    {"title": config.get("project_name"), "description": config.get("description")},
                ),
            ),
            Artifact(
                "join_report_md",
                "Join report",
                lambda: write_join_report(joined, report, path("join_report_md"), config.get("project_name")),
            ),
        ]
    )
    return artifacts


def write_artifacts(artifacts: Sequence[Artifact]) -> Tuple[List[Path], List[Tuple[str, WriteError]]]:
    """Run each artifact; a WriteError fails only that artifact."""
    written: List[Path] = []
    failed: List[Tuple[str, WriteError]] = []
    for idx, artifact in enumerate(artifacts, start=1):
        logger.info(f"🎨 [{idx}/{len(artifacts)}] {artifact.description}")
        try:
            written.append(artifact.write())
        except WriteError as e:
            logger.error(f"❌ Could not write {artifact.key}: {e}")
            failed.append((artifact.key, e))
    return written, failed


def run(
    config: Config,
    strict_join: bool = False,
    skip_static: bool = False,
    skip_interactive: bool = False,
) -> PipelineResult:
    """
    Load → join → render → write.

    Raises:
        LoadError, SchemaError, ConfigError: fatal input problems
        JoinMismatch: only when ``strict_join`` is set
    """
    boundaries = load_boundaries(
        config.get_input_path("boundaries"), config.get_column_name("boundary_name")
    )
    population = load_population(
        config.get_input_path("population"), config.population_columns(), config.population_year()
    )
    cities = resolve_cities(config)

    joined, report = join_population(boundaries, population)
    if strict_join:
        report.raise_for_unmatched()

    artifacts = plan_artifacts(config, boundaries, joined, report, cities, skip_static, skip_interactive)
    written, failed = write_artifacts(artifacts)
    return PipelineResult(written=written, failed=failed, report=report)


def show_dry_run_info(config: Config, kwargs: Dict[str, Any]) -> None:
    logger.info("🔍 DRY RUN - nothing will be written")
    logger.info(f"   Boundaries: {config.get_input_path('boundaries')}")
    logger.info(f"   Population: {config.get_input_path('population')}")
    logger.info(f"   Year filter: {config.population_year()}")
    logger.info(f"   Output directory: {config.get_output_dir()}")
    for key in config.get("output_files", {}):
        static = key.endswith("_png")
        interactive = key.endswith("_html")
        skipped = (static and kwargs["skip_static"]) or (interactive and kwargs["skip_interactive"])
        marker = "⏭️" if skipped else "•"
        logger.info(f"   {marker} {key}: {config.get_output_path(key)}")


@click.command()
@click.option(
    "--config-file",
    type=click.Path(dir_okay=False),
    help="Path to config.yaml (default: $PIPELINE_CONFIG_PATH, ./config.yaml, ops/config.yaml)",
)
@click.option(
    "--config",
    "config_overrides",
    multiple=True,
    type=ConfigOverride(),
    help="Set config values using dot notation (e.g., visualization.map_dpi=150)",
)
@click.option("--year", type=int, help="Only use population records for this year")
@click.option("--strict-join", is_flag=True, help="Fail if any boundary has no population record")
@click.option("--skip-static", is_flag=True, help="Skip PNG maps")
@click.option("--skip-interactive", is_flag=True, help="Skip HTML maps")
@click.option("--dry-run", is_flag=True, help="Show inputs and outputs without running")
@click.option("-v", "--verbose", is_flag=True, help="Enable DEBUG level logging")
@click.option("--trace", is_flag=True, help="Enable TRACE level logging for deep debugging")
@click.option("--log-file", type=str, help="Also log to specified file")
def cli(**kwargs):
    """
    Render New Zealand population maps from a boundary file and a population table.

    \b
    Examples:
      nz-population-maps                                   # Full run with ops/config.yaml
      nz-population-maps --year 2023                       # One census year
      nz-population-maps --strict-join                     # Unmatched names are fatal
      nz-population-maps --config interactive.zoom_start=6 # Any config override
    """
    setup_logging(kwargs["verbose"], kwargs["trace"], kwargs["log_file"])

    logger.info("🗺️ NZ Population Maps Pipeline")
    logger.debug(f"🔧 CLI arguments received: {kwargs}")

    overrides: Dict[str, Any] = dict(kwargs["config_overrides"])
    if kwargs["year"] is not None:
        overrides["population.year"] = kwargs["year"]

    try:
        config = Config(kwargs["config_file"], overrides=overrides)
        logger.info(f"📋 Project: {config.get('project_name')}")
        logger.info(f"📋 Description: {config.get('description')}")
        config.print_config_summary()
    except (FileNotFoundError, ConfigError) as e:
        handle_critical_error(e, "Configuration error")
        logger.info("💡 Make sure config.yaml exists and is valid")
        sys.exit(1)

    if kwargs["dry_run"]:
        show_dry_run_info(config, kwargs)
        return

    try:
        result = run(
            config,
            strict_join=kwargs["strict_join"],
            skip_static=kwargs["skip_static"],
            skip_interactive=kwargs["skip_interactive"],
        )
    except (LoadError, SchemaError) as e:
        handle_critical_error(e, f"Could not load input file {e.path}")
        sys.exit(1)
    except JoinMismatch as e:
        handle_critical_error(e, "Strict join failed")
        sys.exit(1)
    except PipelineError as e:
        handle_critical_error(e, "Pipeline error")
        sys.exit(1)

    logger.info("📊 File Outputs:")
    for written in result.written:
        logger.info(f"   ✅ {written}")
    for key, error in result.failed:
        logger.info(f"   ❌ {key}: {error.reason}")

    if not result.ok:
        logger.error(f"❌ {len(result.failed)} outputs could not be written")
        sys.exit(1)

    logger.success("✅ NZ population maps completed successfully!")


if __name__ == "__main__":
    cli()
