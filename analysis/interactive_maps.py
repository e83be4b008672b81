"""
Interactive Folium maps: the hover choropleth and the city marker/heat maps.

The interactive choropleth reuses ``static_maps.assign_fill_colors`` so a
region has the same fill on the PNG and in the browser. The city maps work
from the City Point list only and never touch the boundary join.
"""

import json
from typing import Any, Dict, List, Sequence

import folium
import geopandas as gpd
import numpy as np
import pandas as pd
from branca.colormap import LinearColormap
from folium.plugins import HeatMap
from loguru import logger

from processing.models import NAME_COLUMN, POPULATION_COLUMN, CityPoint, ColorScale, HeatmapSettings

from .static_maps import assign_fill_colors, value_range

FILL_COLOR_PROPERTY = "fill_color"

TOOLTIP_STYLE = """
    background-color: white;
    border: 2px solid #333333;
    border-radius: 5px;
    box-shadow: 3px 3px 10px rgba(0,0,0,0.3);
    padding: 10px;
    font-family: Arial, sans-serif;
    font-size: 12px;
"""


def _to_wgs84(gdf: gpd.GeoDataFrame) -> gpd.GeoDataFrame:
    if gdf.crs is None:
        logger.debug("  🌍 No CRS set, assuming WGS84 for the interactive layer")
        return gdf
    if gdf.crs.to_epsg() != 4326:
        logger.debug(f"  🔄 Reprojecting interactive layer from {gdf.crs} to WGS84")
        return gdf.to_crs("EPSG:4326")
    return gdf


def _as_float(values: pd.Series) -> np.ndarray:
    return pd.to_numeric(values, errors="coerce").to_numpy(dtype="float64", na_value=np.nan)


def choropleth_geojson(joined: gpd.GeoDataFrame, column: str, scale: ColorScale) -> Dict[str, Any]:
    """
    Build the GeoJSON feature collection drawn by the interactive choropleth.

    Properties hold the territory name, the value column, population and the
    precomputed fill color. Nulls are serialized as JSON null.
    """
    fields = list(dict.fromkeys([NAME_COLUMN, column, POPULATION_COLUMN]))
    display = joined[fields + [joined.geometry.name]].copy()
    for field in fields[1:]:
        display[field] = _as_float(display[field])
    display[FILL_COLOR_PROPERTY] = assign_fill_colors(joined[column], scale)
    display = _to_wgs84(display)
    return json.loads(display.to_json(na="null"))


def build_interactive_choropleth(
    joined: gpd.GeoDataFrame,
    column: str,
    scale: ColorScale,
    settings: HeatmapSettings,
    label: str = "",
) -> folium.Map:
    """
    Turn the static choropleth into a pannable, zoomable map with hover tooltips.

    Args:
        joined: Joined features
        column: Value column to color by
        scale: Same color scale as the static render
        settings: View center, zoom and tiles
        label: Legend caption and tooltip alias for the value column

    Returns:
        folium.Map ready for ``save_map``
    """
    logger.info(f"🗺️ Building interactive choropleth for '{column}'...")

    data = choropleth_geojson(joined, column, scale)
    fields = list(dict.fromkeys([NAME_COLUMN, column, POPULATION_COLUMN]))
    alias_map = {NAME_COLUMN: "Territory:", POPULATION_COLUMN: "Population:", column: f"{label or column}:"}

    m = folium.Map(
        location=list(settings.center),
        zoom_start=settings.zoom_start,
        tiles=settings.tiles,
        prefer_canvas=True,
    )

    stroke_color = scale.stroke_color
    stroke_width = scale.stroke_width

    folium.GeoJson(
        data=data,
        name=label or column,
        style_function=lambda feature: {
            "fillColor": feature["properties"][FILL_COLOR_PROPERTY],
            "color": stroke_color,
            "weight": max(stroke_width * 2, 0.5),
            "fillOpacity": 0.75,
            "opacity": 0.8,
        },
        highlight_function=lambda feature: {"weight": 3, "color": "#333333"},
        tooltip=folium.GeoJsonTooltip(
            fields=fields,
            aliases=[alias_map[f] for f in fields],
            localize=True,
            sticky=False,
            labels=True,
            style=TOOLTIP_STYLE,
        ),
    ).add_to(m)

    vmin, vmax = value_range(joined[column], scale)
    if joined[column].notna().any() and vmax > vmin:
        legend = LinearColormap(colors=list(scale.stops), vmin=vmin, vmax=vmax, caption=label or column)
        legend.add_to(m)
    else:
        logger.warning(f"  ⚠️ No value range for '{column}', legend omitted")

    folium.LayerControl(collapsed=False).add_to(m)

    feature_count = len(data["features"])
    logger.success(f"  ✅ Interactive choropleth ready ({feature_count:,} regions)")
    return m


def heat_weights(cities: Sequence[CityPoint]) -> List[List[float]]:
    """[lat, lng, weight] rows with weight = population / max population."""
    if not cities:
        return []
    max_pop = max(c.population for c in cities)
    return [
        [c.lat, c.lng, (c.population / max_pop) if max_pop > 0 else 0.0]
        for c in cities
    ]


def _add_city_markers(target, cities: Sequence[CityPoint]) -> None:
    for c in cities:
        folium.Marker(
            location=[c.lat, c.lng],
            popup=folium.Popup(f"<b>{c.city}</b><br>Population: {c.population:,}", max_width=250),
            tooltip=c.city,
            icon=folium.Icon(color="red", icon="info-sign"),
        ).add_to(target)


def build_city_marker_map(cities: Sequence[CityPoint], settings: HeatmapSettings) -> folium.Map:
    """Plain marker map of the City Point list."""
    logger.info(f"📍 Building city marker map ({len(cities)} cities)...")
    m = folium.Map(location=list(settings.center), zoom_start=settings.zoom_start, tiles=settings.tiles)
    _add_city_markers(m, cities)
    return m


def build_city_heatmap(cities: Sequence[CityPoint], settings: HeatmapSettings) -> folium.Map:
    """
    City markers plus a kernel-density heat layer weighted by population.

    Blur, radius and opacity come from ``settings``; weights are normalized
    to the most populous city.
    """
    logger.info(f"🔥 Building city heatmap ({len(cities)} cities)...")
    m = folium.Map(location=list(settings.center), zoom_start=settings.zoom_start, tiles=settings.tiles)

    markers = folium.FeatureGroup(name="Cities")
    _add_city_markers(markers, cities)
    markers.add_to(m)

    HeatMap(
        heat_weights(cities),
        name="Population heat",
        radius=settings.radius,
        blur=settings.blur,
        min_opacity=settings.min_opacity,
        max_zoom=settings.max_zoom,
    ).add_to(m)

    folium.LayerControl().add_to(m)
    return m
