"""Read-only views of the events and performance category collaborators."""

from __future__ import annotations

import datetime as dt
from typing import Optional

from pydantic import BaseModel, Field
from pydantic.config import ConfigDict


class EventInfo(BaseModel):
    event_id: str = Field(..., min_length=1)
    date: dt.date
    end_time: Optional[str] = None
    opponent: Optional[str] = None
    title: Optional[str] = None
    player_of_match_id: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class PerformanceCategory(BaseModel):
    id: str = Field(..., min_length=1)
    name: str

    model_config = ConfigDict(frozen=True)
