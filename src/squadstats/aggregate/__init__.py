"""Aggregation of fact rows into player summaries."""

from .summary import DEFAULT_OPPONENT, FactPartition, aggregate, partition_facts
from .trend import performance_trend, trend_score

__all__ = [
    "DEFAULT_OPPONENT",
    "FactPartition",
    "aggregate",
    "partition_facts",
    "performance_trend",
    "trend_score",
]
