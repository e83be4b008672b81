"""
Analysis package for NZ Population Maps

Static and interactive map rendering plus the output writers.
"""

from .interactive_maps import build_city_heatmap, build_city_marker_map, build_interactive_choropleth
from .static_maps import (
    assign_fill_colors,
    render_boundaries,
    render_choropleth,
    render_city_markers,
    render_density_surface,
)
from .writers import export_joined_geojson, save_figure, save_map, write_join_report

__all__ = [
    "assign_fill_colors",
    "render_boundaries",
    "render_choropleth",
    "render_city_markers",
    "render_density_surface",
    "build_interactive_choropleth",
    "build_city_marker_map",
    "build_city_heatmap",
    "save_figure",
    "save_map",
    "export_joined_geojson",
    "write_join_report",
]
