"""Normalized per-player-per-period playing time facts."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field
from pydantic.config import ConfigDict


FactKey = tuple[str, str, int, int]


class FactRow(BaseModel):
    """One (player, event, team number, period number) playing-time record."""

    player_id: str = Field(..., min_length=1)
    event_id: str = Field(..., min_length=1)
    team_number: int = Field(..., ge=1)
    period_number: int = Field(..., ge=1)
    position: str
    minutes_played: int = Field(..., ge=0)
    is_captain: bool = False
    is_substitute: bool = False
    substitution_time: Optional[int] = None
    performance_category_id: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @property
    def key(self) -> FactKey:
        return (self.player_id, self.event_id, self.team_number, self.period_number)

    @property
    def counts_toward_totals(self) -> bool:
        """Bench time never contributes, nor do zero-minute appearances."""

        return not self.is_substitute and self.minutes_played > 0
