"""Configuration helpers for engine settings and position names."""

from .positions import (
    SUBSTITUTE_POSITION,
    UNKNOWN_POSITION,
    is_substitute_position,
    standardize_position,
)
from .settings import EngineSettings, TrendThresholds, load_settings

__all__ = [
    "EngineSettings",
    "SUBSTITUTE_POSITION",
    "TrendThresholds",
    "UNKNOWN_POSITION",
    "is_substitute_position",
    "load_settings",
    "standardize_position",
]
