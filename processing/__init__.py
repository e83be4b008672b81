"""
Processing package for NZ Population Maps

Loading, validation and the boundary/population join.
"""

__version__ = "0.1.0"

from .errors import ConfigError, JoinMismatch, LoadError, PipelineError, SchemaError, WriteError
from .join import join_population, log_population
from .loaders import load_boundaries, load_cities, load_population
from .models import CityPoint, ColorScale, HeatmapSettings, JoinReport

__all__ = [
    "PipelineError",
    "ConfigError",
    "LoadError",
    "SchemaError",
    "JoinMismatch",
    "WriteError",
    "CityPoint",
    "ColorScale",
    "HeatmapSettings",
    "JoinReport",
    "load_boundaries",
    "load_population",
    "load_cities",
    "join_population",
    "log_population",
]
