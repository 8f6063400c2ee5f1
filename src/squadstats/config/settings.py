"""Engine settings sourced from ``SQUADSTATS_*`` environment variables."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from .positions import SUBSTITUTE_POSITION


logger = logging.getLogger(__name__)

_ENV_PREFIX = "SQUADSTATS_"
DEFAULT_DB_PATH = Path("squadstats.sqlite")


@dataclass(frozen=True)
class TrendThresholds:
    """Point weights for the performance trend heuristic.

    These are hand-tuned product values carried over unchanged; they are not
    derived from any model and should only move with product sign-off.
    """

    minutes_rise_ratio: float = 1.1
    minutes_drop_ratio: float = 0.8
    minutes_points: int = 30
    captain_gain_points: int = 35
    captain_loss_points: int = 15
    potm_gain_points: int = 35
    potm_loss_points: int = 20
    improving_score: int = 25
    needs_work_score: int = -25


@dataclass(frozen=True)
class EngineSettings:
    db_path: Path | str = DEFAULT_DB_PATH
    default_duration_minutes: int = 90
    substitute_sentinel: str = SUBSTITUTE_POSITION
    recent_games_limit: int = 10
    trend_window: int = 10
    trend_min_facts: int = 3
    rebuild_concurrency: int = 5
    trend: TrendThresholds = field(default_factory=TrendThresholds)


def _env_float(name: str, default: float, *, clamp_min: float | None = None) -> float:
    raw = os.getenv(_ENV_PREFIX + name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Invalid float for %s%s: %s; using default %.2f", _ENV_PREFIX, name, raw, default)
        return default
    if clamp_min is not None:
        value = max(clamp_min, value)
    return value


def _env_int(name: str, default: int, *, min_value: int | None = None) -> int:
    raw = os.getenv(_ENV_PREFIX + name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Invalid int for %s%s: %s; using default %d", _ENV_PREFIX, name, raw, default)
        return default
    if min_value is not None:
        value = max(min_value, value)
    return value


def _env_db_path(default: Path | str) -> Path | str:
    raw = os.getenv(_ENV_PREFIX + "DB_PATH")
    if not raw:
        return default
    if raw.startswith("file:"):
        return raw
    return Path(raw)


def load_settings(db_path: Path | str | None = None) -> EngineSettings:
    """Build settings from the environment, falling back to the defaults."""

    defaults = EngineSettings()
    trend_defaults = TrendThresholds()
    trend = TrendThresholds(
        minutes_rise_ratio=_env_float("TREND_MINUTES_RISE", trend_defaults.minutes_rise_ratio, clamp_min=0.0),
        minutes_drop_ratio=_env_float("TREND_MINUTES_DROP", trend_defaults.minutes_drop_ratio, clamp_min=0.0),
        minutes_points=_env_int("TREND_MINUTES_POINTS", trend_defaults.minutes_points),
        captain_gain_points=_env_int("TREND_CAPTAIN_GAIN", trend_defaults.captain_gain_points),
        captain_loss_points=_env_int("TREND_CAPTAIN_LOSS", trend_defaults.captain_loss_points),
        potm_gain_points=_env_int("TREND_POTM_GAIN", trend_defaults.potm_gain_points),
        potm_loss_points=_env_int("TREND_POTM_LOSS", trend_defaults.potm_loss_points),
        improving_score=_env_int("TREND_IMPROVING_SCORE", trend_defaults.improving_score),
        needs_work_score=_env_int("TREND_NEEDS_WORK_SCORE", trend_defaults.needs_work_score),
    )
    return EngineSettings(
        db_path=db_path if db_path is not None else _env_db_path(defaults.db_path),
        default_duration_minutes=_env_int("DEFAULT_DURATION", defaults.default_duration_minutes, min_value=0),
        substitute_sentinel=os.getenv(_ENV_PREFIX + "SUBSTITUTE_SENTINEL") or defaults.substitute_sentinel,
        recent_games_limit=_env_int("RECENT_GAMES", defaults.recent_games_limit, min_value=0),
        trend_window=_env_int("TREND_WINDOW", defaults.trend_window, min_value=2),
        trend_min_facts=_env_int("TREND_MIN_FACTS", defaults.trend_min_facts, min_value=1),
        rebuild_concurrency=_env_int("REBUILD_CONCURRENCY", defaults.rebuild_concurrency, min_value=1),
        trend=trend,
    )
