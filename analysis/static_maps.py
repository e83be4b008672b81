"""
Static map rendering with GeoPandas and Matplotlib.

Every function builds its own ``matplotlib.figure.Figure`` through the object
API and returns it unsaved; nothing touches pyplot's current-figure state.
Writing to disk is ``analysis.writers.save_figure``.
"""

from typing import List, Optional, Sequence

import geopandas as gpd
import numpy as np
import pandas as pd
from matplotlib import colors as mcolors
from matplotlib.cm import ScalarMappable
from matplotlib.figure import Figure
from sklearn.neighbors import KernelDensity

from processing.models import ColorScale, CityPoint

# Default figure sizing, in inches
FIGURE_MAX_WIDTH = 10.0
OUTLINE_COLOR = "#000000"
BACKGROUND_COLOR = "#ffffff"


def build_colormap(scale: ColorScale) -> mcolors.LinearSegmentedColormap:
    """Continuous colormap through the scale's color stops."""
    return mcolors.LinearSegmentedColormap.from_list("population_scale", list(scale.stops), N=256)


def value_range(values: pd.Series, scale: ColorScale) -> tuple:
    """Resolve (vmin, vmax) from the scale or the non-null data.

    All-null input falls back to (0, 1) so a norm can still be built.
    """
    present = pd.to_numeric(values, errors="coerce").dropna()
    vmin = scale.vmin if scale.vmin is not None else (float(present.min()) if len(present) else 0.0)
    vmax = scale.vmax if scale.vmax is not None else (float(present.max()) if len(present) else 1.0)
    return vmin, vmax


def assign_fill_colors(values: pd.Series, scale: ColorScale) -> List[str]:
    """
    Map values to hex fill colors through the scale.

    Values outside [vmin, vmax] are clipped to the end colors; nulls get the
    scale's missing color.

    Args:
        values: Numeric values, nulls allowed
        scale: Color scale definition

    Returns:
        One ``#rrggbb`` string per value, in input order
    """
    cmap = build_colormap(scale)
    vmin, vmax = value_range(values, scale)
    norm = mcolors.Normalize(vmin=vmin, vmax=vmax, clip=True)
    missing = mcolors.to_hex(scale.missing_color)

    numeric = pd.to_numeric(values, errors="coerce").to_numpy(dtype="float64", na_value=np.nan)
    fills: List[str] = []
    for value in numeric:
        if np.isnan(value):
            fills.append(missing)
        elif vmax == vmin:
            # Degenerate range: every present value sits on the first stop
            fills.append(mcolors.to_hex(cmap(0.0)))
        else:
            fills.append(mcolors.to_hex(cmap(float(norm(value)))))
    return fills


def _figure_for_bounds(bounds: Sequence[float], dpi: int) -> Figure:
    """Create a figure whose aspect ratio matches the data bounds."""
    width = bounds[2] - bounds[0]
    height = bounds[3] - bounds[1]
    aspect_ratio = width / height if height > 0 and width > 0 else 1.0

    if aspect_ratio > 1:
        fig_width = FIGURE_MAX_WIDTH
        fig_height = fig_width / aspect_ratio
    else:
        fig_height = FIGURE_MAX_WIDTH
        fig_width = fig_height * aspect_ratio

    return Figure(figsize=(max(fig_width, 2.0), max(fig_height, 2.0)), dpi=dpi, facecolor=BACKGROUND_COLOR)


def _finish_axes(ax, bounds: Sequence[float]) -> None:
    x_margin = (bounds[2] - bounds[0]) * 0.01
    y_margin = (bounds[3] - bounds[1]) * 0.01
    ax.set_xlim(bounds[0] - x_margin, bounds[2] + x_margin)
    ax.set_ylim(bounds[1] - y_margin, bounds[3] + y_margin)
    ax.set_aspect("equal")
    ax.set_axis_off()


def _add_title(fig: Figure, title: str) -> None:
    if title:
        fig.suptitle(title, fontsize=16, fontweight="bold", x=0.02, y=0.98, ha="left", va="top")


def render_choropleth(
    joined: gpd.GeoDataFrame,
    column: str,
    scale: ColorScale,
    title: str = "",
    label: str = "",
    note: Optional[str] = None,
    dpi: int = 100,
) -> Figure:
    """
    Render polygons filled by ``column`` on a continuous color scale.

    Nulls are drawn in the missing color. The colorbar is added only when
    the value range is non-degenerate.

    Args:
        joined: Joined features
        column: Value column to color by
        scale: Color scale and stroke settings
        title: Figure title
        label: Colorbar label
        note: Footnote, e.g. the count of territories without data
        dpi: Figure resolution

    Returns:
        The rendered figure
    """
    bounds = joined.total_bounds
    fig = _figure_for_bounds(bounds, dpi)
    ax = fig.add_axes((0.0, 0.0, 0.9, 0.92))

    fills = assign_fill_colors(joined[column], scale)
    joined.plot(
        ax=ax,
        color=fills,
        edgecolor=scale.stroke_color,
        linewidth=scale.stroke_width,
    )
    _finish_axes(ax, bounds)
    _add_title(fig, title)

    vmin, vmax = value_range(joined[column], scale)
    if joined[column].notna().any() and vmax > vmin:
        sm = ScalarMappable(
            norm=mcolors.Normalize(vmin=vmin, vmax=vmax, clip=True), cmap=build_colormap(scale)
        )
        cbar_ax = fig.add_axes((0.92, 0.15, 0.02, 0.7))
        cbar = fig.colorbar(sm, cax=cbar_ax)
        cbar.ax.tick_params(labelsize=9, colors="#333333")
        cbar.outline.set_edgecolor("#666666")
        cbar.outline.set_linewidth(0.5)
        if label:
            cbar.set_label(label, rotation=90, labelpad=12, fontsize=10, color="#333333")

    if note:
        fig.text(0.02, 0.02, note, ha="left", va="bottom", fontsize=9, color="#666666", style="italic")

    return fig


def render_boundaries(boundaries: gpd.GeoDataFrame, title: str = "", dpi: int = 100) -> Figure:
    """Render unfilled black-on-white territory outlines."""
    bounds = boundaries.total_bounds
    fig = _figure_for_bounds(bounds, dpi)
    ax = fig.add_axes((0.0, 0.0, 1.0, 0.92))
    boundaries.plot(ax=ax, facecolor=BACKGROUND_COLOR, edgecolor=OUTLINE_COLOR, linewidth=0.5)
    _finish_axes(ax, bounds)
    _add_title(fig, title)
    return fig


def _outline_in_wgs84(boundaries: gpd.GeoDataFrame) -> gpd.GeoDataFrame:
    """Reproject outlines so they share lat/lng space with city points."""
    if boundaries.crs is not None and boundaries.crs.to_epsg() != 4326:
        return boundaries.to_crs("EPSG:4326")
    return boundaries


def _city_bounds(boundaries: gpd.GeoDataFrame, cities: Sequence[CityPoint]) -> np.ndarray:
    bounds = boundaries.total_bounds.copy()
    if cities:
        lngs = [c.lng for c in cities]
        lats = [c.lat for c in cities]
        bounds = np.array(
            [min(bounds[0], min(lngs)), min(bounds[1], min(lats)), max(bounds[2], max(lngs)), max(bounds[3], max(lats))]
        )
    return bounds


def render_city_markers(
    boundaries: gpd.GeoDataFrame,
    cities: Sequence[CityPoint],
    title: str = "",
    marker_color: str = "#d62728",
    dpi: int = 100,
) -> Figure:
    """Render city markers sized by population over territory outlines."""
    outline = _outline_in_wgs84(boundaries)
    bounds = _city_bounds(outline, cities)
    fig = _figure_for_bounds(bounds, dpi)
    ax = fig.add_axes((0.0, 0.0, 1.0, 0.92))
    outline.plot(ax=ax, facecolor=BACKGROUND_COLOR, edgecolor="#888888", linewidth=0.4)

    if cities:
        max_pop = max(c.population for c in cities) or 1
        sizes = [20 + 280 * (c.population / max_pop) for c in cities]
        ax.scatter(
            [c.lng for c in cities],
            [c.lat for c in cities],
            s=sizes,
            c=marker_color,
            alpha=0.8,
            edgecolors="#333333",
            linewidths=0.5,
            zorder=3,
        )
        for c in cities:
            ax.annotate(
                c.city,
                (c.lng, c.lat),
                xytext=(6, 4),
                textcoords="offset points",
                fontsize=9,
                color="#333333",
                zorder=4,
            )

    _finish_axes(ax, bounds)
    _add_title(fig, title)
    return fig


def density_grid(
    cities: Sequence[CityPoint],
    bounds: Sequence[float],
    bandwidth: float,
    grid_size: int = 200,
) -> tuple:
    """
    Population-weighted Gaussian kernel density on a regular lng/lat grid.

    Returns:
        (xs, ys, density) where density has shape (grid_size, grid_size) and
        is normalized so its maximum is 1 (all zeros when there are no cities
        or no population to weight them by)
    """
    xs = np.linspace(bounds[0], bounds[2], grid_size)
    ys = np.linspace(bounds[1], bounds[3], grid_size)
    gx, gy = np.meshgrid(xs, ys)

    weights = np.array([c.population for c in cities], dtype="float64")
    if not len(cities) or weights.sum() <= 0:
        return xs, ys, np.zeros_like(gx)

    grid_points = np.vstack([gx.ravel(), gy.ravel()]).T
    city_points = np.array([[c.lng, c.lat] for c in cities], dtype="float64")

    kde = KernelDensity(bandwidth=bandwidth, kernel="gaussian")
    kde.fit(city_points, sample_weight=weights)
    # score_samples returns log-density
    density = np.exp(kde.score_samples(grid_points)).reshape(grid_size, grid_size)

    peak = density.max()
    if peak > 0:
        density = density / peak
    return xs, ys, density


def render_density_surface(
    boundaries: gpd.GeoDataFrame,
    cities: Sequence[CityPoint],
    scale: ColorScale,
    bandwidth: float = 0.5,
    grid_size: int = 200,
    title: str = "",
    dpi: int = 100,
) -> Figure:
    """Render a population-weighted density surface under territory outlines."""
    outline = _outline_in_wgs84(boundaries)
    bounds = _city_bounds(outline, cities)
    xs, ys, density = density_grid(cities, bounds, bandwidth, grid_size)

    fig = _figure_for_bounds(bounds, dpi)
    ax = fig.add_axes((0.0, 0.0, 0.9, 0.92))

    # Mask the near-zero tail so the basemap shows through
    masked = np.ma.masked_less(density, 0.01)
    image = ax.imshow(
        masked,
        extent=(xs[0], xs[-1], ys[0], ys[-1]),
        origin="lower",
        cmap=build_colormap(scale),
        vmin=0.0,
        vmax=1.0,
        alpha=0.85,
        interpolation="bilinear",
        zorder=1,
    )
    outline.plot(ax=ax, facecolor="none", edgecolor="#555555", linewidth=0.4, zorder=2)

    cbar_ax = fig.add_axes((0.92, 0.15, 0.02, 0.7))
    cbar = fig.colorbar(image, cax=cbar_ax)
    cbar.set_label("Relative density", rotation=90, labelpad=12, fontsize=10, color="#333333")

    _finish_axes(ax, bounds)
    _add_title(fig, title)
    return fig
