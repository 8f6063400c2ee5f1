"""Admin REST API for rebuilding and inspecting player statistics."""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Any, Awaitable, Callable

from fastapi import FastAPI, HTTPException

from squadstats.api.schemas import (
    PlayerRebuildResponse,
    PlayerTrendResponse,
    RebuildJobResponse,
    RebuildResponse,
)
from squadstats.config import EngineSettings, load_settings
from squadstats.models import PlayerSummary
from squadstats.persistence import TERMINAL_JOB_STATES, RebuildJob, StatsStore, StorageFailure
from squadstats.rebuild import PlayerAggregationFailure, RebuildReport, StatsRebuilder


logger = logging.getLogger(__name__)

STORAGE_FAILURE_DETAIL = "Fact storage could not be replaced; previous facts were kept"


def job_to_dict(job: RebuildJob) -> dict:
    return {
        "job_id": job.job_id,
        "scope": job.scope,
        "state": job.state,
        "message": job.message,
        "report": job.report,
        "created_at": job.created_at.isoformat(),
        "updated_at": job.updated_at.isoformat(),
        "cancel_requested_at": job.cancel_requested_at.isoformat() if job.cancel_requested_at else None,
        "completed_at": job.completed_at.isoformat() if job.completed_at else None,
    }


def report_to_response(job_id: str, state: str, report: RebuildReport) -> RebuildResponse:
    return RebuildResponse(
        job_id=job_id,
        state=state,
        players_succeeded=report.players_succeeded,
        players_failed=report.players_failed,
        players_skipped=report.players_skipped,
        fact_rows_created=report.fact_rows_created,
        selections_processed=report.selections_processed,
        selections_quarantined=report.selections_quarantined,
        warning_count=len(report.warnings),
        cancelled=report.cancelled,
    )


def create_app(
    store: StatsStore | None = None,
    settings: EngineSettings | None = None,
    rebuilder: StatsRebuilder | None = None,
) -> FastAPI:
    app = FastAPI(title="squadstats admin")
    settings = settings or load_settings()
    store = store or StatsStore(settings.db_path)
    rebuilder = rebuilder or StatsRebuilder(store, settings=settings)
    app.state.stats_store = store
    app.state.rebuilder = rebuilder

    async def _run_job(scope: str, run: Callable[[str], Awaitable[RebuildReport]]) -> RebuildResponse:
        job = store.create_job(scope=scope)
        try:
            report = await run(job.job_id)
        except StorageFailure as exc:
            logger.error("Rebuild job %s aborted: %s", job.job_id, exc)
            store.update_job_state(job.job_id, state="failed", message=STORAGE_FAILURE_DETAIL)
            raise HTTPException(status_code=500, detail=STORAGE_FAILURE_DETAIL) from exc
        except ValueError as exc:
            store.update_job_state(job.job_id, state="failed", message=str(exc))
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except Exception as exc:  # pragma: no cover
            store.update_job_state(job.job_id, state="failed", message=str(exc))
            raise

        if report.cancelled:
            state = "canceled"
            message = f"Cancelled with {report.players_skipped} players left untouched"
        else:
            state = "completed"
            message = None
            if report.players_failed:
                message = f"{report.players_failed} players failed to aggregate"
        store.update_job_state(job.job_id, state=state, message=message, report=report.as_dict())
        return report_to_response(job.job_id, state, report)

    def _fetch_job_or_404(job_id: str) -> RebuildJob:
        job = store.get_job(job_id)
        if job is None:
            raise HTTPException(status_code=404, detail="Job not found")
        return job

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/rebuild", response_model=RebuildResponse)
    async def rebuild_all() -> RebuildResponse:
        return await _run_job("all", lambda job_id: rebuilder.rebuild_all(job_id=job_id))

    @app.post("/events/{event_id}/rebuild", response_model=RebuildResponse)
    async def rebuild_event(event_id: str) -> RebuildResponse:
        return await _run_job(
            f"event:{event_id}",
            lambda job_id: rebuilder.rebuild_event(event_id, job_id=job_id),
        )

    @app.get("/rebuild/jobs", response_model=list[RebuildJobResponse])
    async def list_jobs(limit: int = 50):
        return [job_to_dict(job) for job in store.list_jobs(limit=limit)]

    @app.get("/rebuild/jobs/{job_id}", response_model=RebuildJobResponse)
    async def get_job(job_id: str):
        return job_to_dict(_fetch_job_or_404(job_id))

    @app.post("/rebuild/jobs/{job_id}/cancel", response_model=RebuildJobResponse)
    async def cancel_job(job_id: str):
        job = _fetch_job_or_404(job_id)
        if job.state in TERMINAL_JOB_STATES:
            return job_to_dict(job)
        cancel_message = job.message or "Cancellation requested"
        updated = store.mark_job_cancel_requested(job_id, message=cancel_message)
        return job_to_dict(updated)

    @app.post("/players/{player_id}/rebuild", response_model=PlayerRebuildResponse)
    async def rebuild_player(player_id: str) -> PlayerRebuildResponse:
        try:
            trace = await rebuilder.rebuild_player(player_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail="Player not found") from exc
        except PlayerAggregationFailure as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        payload: dict[str, Any] = asdict(trace)
        payload["summary"] = trace.summary
        return PlayerRebuildResponse.model_validate(payload)

    @app.get("/players/{player_id}/summary", response_model=PlayerSummary)
    async def player_summary(player_id: str) -> PlayerSummary:
        try:
            summary = store.get_player_summary(player_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail="Player not found") from exc
        if summary is None:
            raise HTTPException(status_code=404, detail="Summary has not been built for this player")
        return summary

    @app.get("/players/{player_id}/trend", response_model=PlayerTrendResponse)
    async def player_trend(player_id: str) -> PlayerTrendResponse:
        try:
            trend = await rebuilder.player_trend(player_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail="Player not found") from exc
        return PlayerTrendResponse(player_id=player_id, trend=trend)

    return app


__all__ = ["create_app", "job_to_dict", "report_to_response"]
