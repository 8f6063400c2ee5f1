"""Team selection records as read from the selection store."""

from __future__ import annotations

import math
from typing import Any, List, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator
from pydantic.config import ConfigDict


# Values above these bounds are treated as corrupt payloads.
MAX_MINUTES = 24 * 60
MAX_SLICE_NUMBER = 99


def _coerce_minutes(value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError("minutes must be numeric, not a boolean")
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        value = float(text)
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError(f"minutes must be a finite number, got {value!r}")
        return int(round(value))
    return value


def _coerce_optional_id(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (int, str)) and not isinstance(value, bool):
        text = str(value).strip()
        return text or None
    raise ValueError(f"identifier must be a string, got {type(value).__name__}")


class Assignment(BaseModel):
    """One player placed in a position for a selection slice.

    ``player_id`` is optional on purpose: assignments without an identifier
    must survive validation so the fact deriver can skip and report them.
    """

    player_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("player_id", "playerId"),
    )
    position: str = ""
    minutes: Optional[int] = Field(default=None, ge=0, le=MAX_MINUTES)
    is_substitute: bool = Field(
        default=False,
        validation_alias=AliasChoices("is_substitute", "isSubstitute"),
    )
    substitution_time: Optional[int] = Field(
        default=None,
        ge=0,
        le=MAX_MINUTES,
        validation_alias=AliasChoices("substitution_time", "substitutionTime"),
    )

    model_config = ConfigDict(frozen=True)

    @field_validator("player_id", mode="before")
    @classmethod
    def _normalize_player_id(cls, value: Any) -> Optional[str]:
        return _coerce_optional_id(value)

    @field_validator("position", mode="before")
    @classmethod
    def _normalize_position(cls, value: Any) -> str:
        if value is None:
            return ""
        return str(value).strip()

    @field_validator("minutes", "substitution_time", mode="before")
    @classmethod
    def _normalize_minutes(cls, value: Any) -> Optional[int]:
        return _coerce_minutes(value)

    @field_validator("is_substitute", mode="before")
    @classmethod
    def _normalize_flag(cls, value: Any) -> bool:
        # Left to pydantic so "false" and "0" parse as False and junk is rejected.
        return False if value is None else value


class SelectionRecord(BaseModel):
    """Lineup for one (event, team number, period number) slice."""

    event_id: str = Field(..., min_length=1, validation_alias=AliasChoices("event_id", "eventId"))
    team_number: int = Field(
        default=1,
        ge=1,
        le=MAX_SLICE_NUMBER,
        validation_alias=AliasChoices("team_number", "teamNumber"))
    period_number: int = Field(
        default=1,
        ge=1,
        le=MAX_SLICE_NUMBER,
        validation_alias=AliasChoices("period_number", "periodNumber"))
    duration_minutes: Optional[int] = Field(
        default=None,
        ge=0,
        le=MAX_MINUTES,
        validation_alias=AliasChoices("duration_minutes", "durationMinutes"),
    )
    captain_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("captain_id", "captainId"))
    performance_category_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("performance_category_id", "performanceCategoryId"),
    )
    assignments: List[Assignment] = Field(default_factory=list)
    substitutes: List[Assignment] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)

    @field_validator("team_number", "period_number", mode="before")
    @classmethod
    def _default_slice_number(cls, value: Any) -> Any:
        # Unset and zero slice numbers both mean the first team/period.
        if value is None or value == 0 or value == "":
            return 1
        return value

    @field_validator("duration_minutes", mode="before")
    @classmethod
    def _normalize_duration(cls, value: Any) -> Optional[int]:
        return _coerce_minutes(value)

    @field_validator("captain_id", "performance_category_id", mode="before")
    @classmethod
    def _normalize_refs(cls, value: Any) -> Optional[str]:
        return _coerce_optional_id(value)

    @property
    def slice_key(self) -> tuple[str, int, int]:
        return (self.event_id, self.team_number, self.period_number)
