"""
Domain models shared by the loaders, the join step and the renderers.

Tabular entities (boundaries, population records, joined features) stay in
GeoDataFrames/DataFrames; the small value objects below are frozen
dataclasses so each rendering step receives an explicit, immutable input.
"""

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Tuple

from .errors import ConfigError, JoinMismatch

# Canonical column names used after loading
NAME_COLUMN = "name"
TERRITORY_COLUMN = "territory_name"
YEAR_COLUMN = "year"
POPULATION_COLUMN = "population"
CHANGE_COUNT_COLUMN = "change_count"
CHANGE_PERCENT_COLUMN = "change_percent"
LOG_POPULATION_COLUMN = "log_population"

POPULATION_RECORD_COLUMNS = [
    TERRITORY_COLUMN,
    YEAR_COLUMN,
    POPULATION_COLUMN,
    CHANGE_COUNT_COLUMN,
    CHANGE_PERCENT_COLUMN,
]


@dataclass(frozen=True)
class CityPoint:
    """A named city with a population, plotted as a marker and heat source."""

    city: str
    lat: float
    lng: float
    population: int

    def __post_init__(self) -> None:
        if not isinstance(self.city, str) or not self.city.strip():
            raise ConfigError("City name must be a non-empty string")
        if not (-90.0 <= self.lat <= 90.0):
            raise ConfigError(f"Latitude out of range for {self.city}: {self.lat}")
        if not (-180.0 <= self.lng <= 180.0):
            raise ConfigError(f"Longitude out of range for {self.city}: {self.lng}")
        if self.population < 0:
            raise ConfigError(f"Population must be non-negative for {self.city}: {self.population}")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "CityPoint":
        try:
            return cls(
                city=str(data["city"]).strip(),
                lat=float(data["lat"]),
                lng=float(data["lng"]),
                population=int(data["population"]),
            )
        except KeyError as e:
            raise ConfigError(f"City entry missing field {e}: {dict(data)}") from e
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid city entry {dict(data)}: {e}") from e


@dataclass(frozen=True)
class JoinReport:
    """Diagnostics of a boundary/population left join."""

    boundary_count: int
    matched: int
    unmatched: Tuple[str, ...] = ()
    unused_records: Tuple[str, ...] = ()

    @property
    def match_rate(self) -> float:
        if self.boundary_count == 0:
            return 0.0
        return self.matched / self.boundary_count

    def raise_for_unmatched(self) -> None:
        """Raise JoinMismatch when any boundary lacks a population record."""
        if self.unmatched:
            raise JoinMismatch(self.unmatched)


@dataclass(frozen=True)
class ColorScale:
    """Continuous fill scale plus the fixed stroke used for every polygon."""

    stops: Tuple[str, ...] = ("#ffffcc", "#a1dab4", "#41b6c4", "#2c7fb8", "#253494")
    missing_color: str = "#d9d9d9"
    stroke_color: str = "#444444"
    stroke_width: float = 0.3
    vmin: Optional[float] = None
    vmax: Optional[float] = None


@dataclass(frozen=True)
class HeatmapSettings:
    """View and kernel parameters for the interactive maps."""

    center: Tuple[float, float] = (-41.0, 174.0)
    zoom_start: int = 5
    tiles: str = "OpenStreetMap"
    radius: int = 40
    blur: int = 25
    min_opacity: float = 0.3
    max_zoom: int = 12
