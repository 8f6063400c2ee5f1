"""Canonical records shared by ingestion, derivation and aggregation."""

from .event import EventInfo, PerformanceCategory
from .facts import FactRow
from .selection import Assignment, SelectionRecord
from .summary import CategorySummary, GameSummary, PerformanceTrend, PlayerSummary

__all__ = [
    "Assignment",
    "CategorySummary",
    "EventInfo",
    "FactRow",
    "GameSummary",
    "PerformanceCategory",
    "PerformanceTrend",
    "PlayerSummary",
    "SelectionRecord",
]
