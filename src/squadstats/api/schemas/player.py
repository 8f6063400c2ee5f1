from __future__ import annotations

from typing import List

from pydantic import BaseModel

from squadstats.models import PerformanceTrend, PlayerSummary


class PlayerRebuildResponse(BaseModel):
    player_id: str
    facts_considered: int
    facts_eligible: int
    facts_counted: int
    eligible_event_ids: List[str]
    excluded_event_ids: List[str]
    unknown_event_ids: List[str]
    summary: PlayerSummary


class PlayerTrendResponse(BaseModel):
    player_id: str
    trend: PerformanceTrend
