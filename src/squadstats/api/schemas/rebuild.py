from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class RebuildResponse(BaseModel):
    job_id: str
    state: str
    players_succeeded: int = Field(ge=0)
    players_failed: int = Field(ge=0)
    players_skipped: int = Field(default=0, ge=0)
    fact_rows_created: int = Field(ge=0)
    selections_processed: int = Field(default=0, ge=0)
    selections_quarantined: int = Field(default=0, ge=0)
    warning_count: int = Field(default=0, ge=0)
    cancelled: bool = False


class RebuildJobResponse(BaseModel):
    job_id: str
    scope: str
    state: str
    message: str | None = None
    report: dict | None = None
    created_at: datetime
    updated_at: datetime
    cancel_requested_at: datetime | None = None
    completed_at: datetime | None = None
