"""Aggregated player statistics persisted on the player entity."""

from __future__ import annotations

import datetime as dt
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, model_validator
from pydantic.config import ConfigDict


PerformanceTrend = Literal["improving", "maintaining", "needs-work"]


class GameSummary(BaseModel):
    """A single event as seen from one player, periods and teams merged."""

    event_id: str
    opponent: str
    date: dt.date
    minutes_by_position: Dict[str, int] = Field(default_factory=dict)
    total_minutes: int = Field(default=0, ge=0)
    captain: bool = False
    player_of_match: bool = False
    performance_category: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class CategorySummary(BaseModel):
    total_games: int = Field(default=0, ge=0)
    total_minutes: int = Field(default=0, ge=0)
    captain_games: int = Field(default=0, ge=0)
    potm_count: int = Field(default=0, ge=0)
    minutes_by_position: Dict[str, int] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)


class PlayerSummary(BaseModel):
    total_games: int = Field(default=0, ge=0)
    total_minutes: int = Field(default=0, ge=0)
    minutes_by_position: Dict[str, int] = Field(default_factory=dict)
    captain_games: int = Field(default=0, ge=0)
    player_of_match_count: int = Field(default=0, ge=0)
    recent_games: List[GameSummary] = Field(default_factory=list)
    performance_category_stats: Dict[str, CategorySummary] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _minutes_balance(self) -> "PlayerSummary":
        by_position = sum(self.minutes_by_position.values())
        if by_position != self.total_minutes:
            raise ValueError(
                f"total_minutes={self.total_minutes} does not match minutes_by_position sum={by_position}"
            )
        return self
