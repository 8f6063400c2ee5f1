"""Rebuild orchestration for fact rows and player summaries."""

from .service import (
    PlayerAggregationFailure,
    PlayerRebuildTrace,
    RebuildReport,
    StatsRebuilder,
)

__all__ = [
    "PlayerAggregationFailure",
    "PlayerRebuildTrace",
    "RebuildReport",
    "StatsRebuilder",
]
