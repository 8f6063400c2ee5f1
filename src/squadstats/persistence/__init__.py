"""Persistence layer for selections, fact rows, player summaries and rebuild jobs."""

from __future__ import annotations

import json
import sqlite3
from contextlib import closing
from dataclasses import dataclass
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence
from uuid import uuid4

from squadstats.models import EventInfo, FactRow, PerformanceCategory, PlayerSummary


TERMINAL_JOB_STATES = {"completed", "failed", "canceled"}


class StorageFailure(RuntimeError):
    """Raised when fact storage cannot be replaced; the transaction is rolled back."""


@dataclass
class PlayerEntity:
    player_id: str
    name: str
    objectives: Any
    comments: Optional[str]
    summary: Optional[PlayerSummary]


@dataclass
class RebuildJob:
    job_id: str
    scope: str
    state: str
    created_at: datetime
    updated_at: datetime
    message: Optional[str]
    report: Optional[dict]
    cancel_requested_at: Optional[datetime]
    completed_at: Optional[datetime]


_FACT_COLUMNS = (
    "player_id",
    "event_id",
    "team_number",
    "period_number",
    "position",
    "minutes_played",
    "is_captain",
    "is_substitute",
    "substitution_time",
    "performance_category_id",
)


class StatsStore:
    """SQLite-backed store for the reconciliation engine.

    Every call opens its own connection, so the store may be used from worker
    threads without sharing connection state.
    """

    def __init__(self, db_path: Path | str):
        self._use_uri = isinstance(db_path, str) and db_path.startswith("file:")
        self.db_path: Path | str = db_path if self._use_uri else Path(db_path)
        self._keepalive: Optional[sqlite3.Connection] = None
        if self._use_uri and "mode=memory" in str(self.db_path):
            # Shared in-memory databases vanish once the last connection closes.
            self._keepalive = sqlite3.connect(self.db_path, uri=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        if isinstance(self.db_path, Path):
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(self.db_path)
        else:
            conn = sqlite3.connect(self.db_path, uri=self._use_uri)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        with closing(self._connect()) as conn, conn:
            self._create_schema(conn)

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS selections (
                id TEXT PRIMARY KEY,
                event_id TEXT,
                payload_json TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS events (
                id TEXT PRIMARY KEY,
                date TEXT NOT NULL,
                end_time TEXT,
                opponent TEXT,
                title TEXT,
                player_of_match_id TEXT
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS performance_categories (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS players (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                objectives_json TEXT,
                comments TEXT,
                match_stats_json TEXT
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS fact_rows (
                player_id TEXT NOT NULL,
                event_id TEXT NOT NULL,
                team_number INTEGER NOT NULL,
                period_number INTEGER NOT NULL,
                position TEXT NOT NULL,
                minutes_played INTEGER NOT NULL,
                is_captain INTEGER NOT NULL,
                is_substitute INTEGER NOT NULL,
                substitution_time INTEGER,
                performance_category_id TEXT,
                PRIMARY KEY (player_id, event_id, team_number, period_number)
            )
            """
        )
        conn.execute("CREATE INDEX IF NOT EXISTS idx_fact_rows_event ON fact_rows (event_id)")
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS rebuild_jobs (
                id TEXT PRIMARY KEY,
                scope TEXT NOT NULL,
                state TEXT NOT NULL,
                message TEXT,
                report_json TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                cancel_requested_at TEXT,
                completed_at TEXT
            )
            """
        )

    # -- selection store -------------------------------------------------

    def save_selection(self, payload: Mapping[str, Any], *, selection_id: Optional[str] = None) -> str:
        """Insert or replace a raw selection payload exactly as the app stored it."""

        selection_id = selection_id or str(payload.get("id") or uuid4().hex)
        event_id = payload.get("event_id") or payload.get("eventId")
        now = datetime.now(timezone.utc).isoformat()
        with closing(self._connect()) as conn, conn:
            conn.execute(
                """
                INSERT INTO selections (id, event_id, payload_json, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    event_id = excluded.event_id,
                    payload_json = excluded.payload_json,
                    updated_at = excluded.updated_at
                """,
                (selection_id, str(event_id) if event_id is not None else None, json.dumps(dict(payload)), now),
            )
        return selection_id

    def delete_selection(self, selection_id: str) -> None:
        with closing(self._connect()) as conn, conn:
            cursor = conn.execute("DELETE FROM selections WHERE id = ?", (selection_id,))
            if cursor.rowcount == 0:
                raise KeyError(f"Selection {selection_id} not found")

    def list_selection_rows(self, *, event_id: Optional[str] = None) -> List[dict]:
        """Return raw payloads in a stable order, each tagged with its row id."""

        query = "SELECT id, payload_json FROM selections"
        params: tuple = ()
        if event_id is not None:
            query += " WHERE event_id = ?"
            params = (event_id,)
        query += " ORDER BY event_id, id"
        with closing(self._connect()) as conn:
            rows = conn.execute(query, params).fetchall()
        payloads: List[dict] = []
        for row in rows:
            payload = json.loads(row["payload_json"])
            if isinstance(payload, dict):
                payload.setdefault("id", row["id"])
            payloads.append(payload)
        return payloads

    # -- events and categories -------------------------------------------

    def save_event(self, event: EventInfo) -> None:
        with closing(self._connect()) as conn, conn:
            conn.execute(
                """
                INSERT INTO events (id, date, end_time, opponent, title, player_of_match_id)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    date = excluded.date,
                    end_time = excluded.end_time,
                    opponent = excluded.opponent,
                    title = excluded.title,
                    player_of_match_id = excluded.player_of_match_id
                """,
                (
                    event.event_id,
                    event.date.isoformat(),
                    event.end_time,
                    event.opponent,
                    event.title,
                    event.player_of_match_id,
                ),
            )

    def get_event(self, event_id: str) -> Optional[EventInfo]:
        with closing(self._connect()) as conn:
            row = conn.execute("SELECT * FROM events WHERE id = ?", (event_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_event(row)

    def get_events(self, event_ids: Iterable[str]) -> Dict[str, EventInfo]:
        ids = sorted(set(event_ids))
        if not ids:
            return {}
        events: Dict[str, EventInfo] = {}
        with closing(self._connect()) as conn:
            # Stay well below SQLite's bound-parameter limit.
            for start in range(0, len(ids), 500):
                chunk = ids[start : start + 500]
                placeholders = ", ".join("?" for _ in chunk)
                rows = conn.execute(f"SELECT * FROM events WHERE id IN ({placeholders})", chunk).fetchall()
                for row in rows:
                    events[row["id"]] = self._row_to_event(row)
        return events

    def save_performance_category(self, category: PerformanceCategory) -> None:
        with closing(self._connect()) as conn, conn:
            conn.execute(
                """
                INSERT INTO performance_categories (id, name) VALUES (?, ?)
                ON CONFLICT(id) DO UPDATE SET name = excluded.name
                """,
                (category.id, category.name),
            )

    def list_performance_categories(self) -> List[PerformanceCategory]:
        with closing(self._connect()) as conn:
            rows = conn.execute("SELECT * FROM performance_categories ORDER BY id").fetchall()
        return [PerformanceCategory(id=row["id"], name=row["name"]) for row in rows]

    # -- players ---------------------------------------------------------

    def save_player(
        self,
        player_id: str,
        *,
        name: str,
        objectives: Any = None,
        comments: Optional[str] = None,
    ) -> None:
        """Insert or update the profile fields; the summary column is left alone."""

        with closing(self._connect()) as conn, conn:
            conn.execute(
                """
                INSERT INTO players (id, name, objectives_json, comments)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    objectives_json = excluded.objectives_json,
                    comments = excluded.comments
                """,
                (player_id, name, json.dumps(objectives) if objectives is not None else None, comments),
            )

    def get_player(self, player_id: str) -> Optional[PlayerEntity]:
        with closing(self._connect()) as conn:
            row = conn.execute("SELECT * FROM players WHERE id = ?", (player_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_player(row)

    def list_summarized_player_ids(self) -> List[str]:
        with closing(self._connect()) as conn:
            rows = conn.execute(
                "SELECT id FROM players WHERE match_stats_json IS NOT NULL ORDER BY id"
            ).fetchall()
        return [row["id"] for row in rows]

    def save_player_summary(self, player_id: str, summary: PlayerSummary) -> None:
        """Replace the whole summary in a single-column update."""

        payload = summary.model_dump_json()
        with closing(self._connect()) as conn, conn:
            cursor = conn.execute(
                "UPDATE players SET match_stats_json = ? WHERE id = ?",
                (payload, player_id),
            )
            if cursor.rowcount == 0:
                raise KeyError(f"Player {player_id} not found")

    def get_player_summary(self, player_id: str) -> Optional[PlayerSummary]:
        player = self.get_player(player_id)
        if player is None:
            raise KeyError(f"Player {player_id} not found")
        return player.summary

    # -- fact rows -------------------------------------------------------

    def _write_facts(self, conn: sqlite3.Connection, facts: Sequence[FactRow]) -> None:
        placeholders = ", ".join("?" for _ in _FACT_COLUMNS)
        conn.executemany(
            f"INSERT INTO fact_rows ({', '.join(_FACT_COLUMNS)}) VALUES ({placeholders})",
            [
                (
                    fact.player_id,
                    fact.event_id,
                    fact.team_number,
                    fact.period_number,
                    fact.position,
                    fact.minutes_played,
                    int(fact.is_captain),
                    int(fact.is_substitute),
                    fact.substitution_time,
                    fact.performance_category_id,
                )
                for fact in facts
            ],
        )

    def replace_all_facts(self, facts: Sequence[FactRow]) -> int:
        """Swap the whole fact table in one transaction.

        The delete and the bulk insert commit together; any failure rolls both
        back and surfaces as :class:`StorageFailure`.
        """

        try:
            with closing(self._connect()) as conn, conn:
                conn.execute("DELETE FROM fact_rows")
                self._write_facts(conn, facts)
        except (sqlite3.Error, OverflowError) as exc:
            raise StorageFailure(f"Failed to replace fact rows: {exc}") from exc
        return len(facts)

    def replace_event_facts(self, event_id: str, facts: Sequence[FactRow]) -> int:
        stray = sorted({fact.event_id for fact in facts if fact.event_id != event_id})
        if stray:
            raise ValueError(f"Facts for events {stray} cannot replace event {event_id}")
        try:
            with closing(self._connect()) as conn, conn:
                conn.execute("DELETE FROM fact_rows WHERE event_id = ?", (event_id,))
                self._write_facts(conn, facts)
        except (sqlite3.Error, OverflowError) as exc:
            raise StorageFailure(f"Failed to replace fact rows for event {event_id}: {exc}") from exc
        return len(facts)

    def list_facts(
        self,
        *,
        player_id: Optional[str] = None,
        event_id: Optional[str] = None,
    ) -> List[FactRow]:
        query = "SELECT * FROM fact_rows"
        conditions: list[str] = []
        params: list[str] = []
        if player_id is not None:
            conditions.append("player_id = ?")
            params.append(player_id)
        if event_id is not None:
            conditions.append("event_id = ?")
            params.append(event_id)
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY player_id, event_id, team_number, period_number"
        with closing(self._connect()) as conn:
            rows = conn.execute(query, tuple(params)).fetchall()
        return [self._row_to_fact(row) for row in rows]

    def list_fact_player_ids(self, *, event_id: Optional[str] = None) -> List[str]:
        query = "SELECT DISTINCT player_id FROM fact_rows"
        params: tuple = ()
        if event_id is not None:
            query += " WHERE event_id = ?"
            params = (event_id,)
        query += " ORDER BY player_id"
        with closing(self._connect()) as conn:
            rows = conn.execute(query, params).fetchall()
        return [row["player_id"] for row in rows]

    # -- rebuild jobs ----------------------------------------------------

    def create_job(
        self,
        *,
        scope: str,
        job_id: Optional[str] = None,
        state: str = "running",
        message: Optional[str] = None,
    ) -> RebuildJob:
        return self._upsert_job(
            job_id=job_id or uuid4().hex,
            scope=scope,
            state=state,
            message=message,
            set_completed=state in TERMINAL_JOB_STATES,
            set_cancel_requested=state == "cancel_requested",
        )

    def update_job_state(
        self,
        job_id: str,
        *,
        state: str,
        message: Optional[str] = None,
        report: Optional[dict] = None,
    ) -> RebuildJob:
        return self._upsert_job(
            job_id=job_id,
            state=state,
            message=message,
            report=report,
            set_completed=state in TERMINAL_JOB_STATES,
            set_cancel_requested=state == "cancel_requested",
        )

    def mark_job_cancel_requested(self, job_id: str, *, message: Optional[str] = None) -> RebuildJob:
        return self.update_job_state(job_id, state="cancel_requested", message=message)

    def is_cancel_requested(self, job_id: str) -> bool:
        with closing(self._connect()) as conn:
            row = conn.execute(
                "SELECT cancel_requested_at FROM rebuild_jobs WHERE id = ?",
                (job_id,),
            ).fetchone()
        return row is not None and row["cancel_requested_at"] is not None

    def get_job(self, job_id: str) -> Optional[RebuildJob]:
        with closing(self._connect()) as conn:
            row = conn.execute("SELECT * FROM rebuild_jobs WHERE id = ?", (job_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_job(row)

    def list_jobs(self, limit: int = 50) -> List[RebuildJob]:
        with closing(self._connect()) as conn:
            rows = conn.execute(
                "SELECT * FROM rebuild_jobs ORDER BY created_at DESC, id LIMIT ?",
                (limit,),
            ).fetchall()
        return [self._row_to_job(row) for row in rows]

    def _upsert_job(
        self,
        *,
        job_id: str,
        state: str,
        scope: Optional[str] = None,
        message: Optional[str] = None,
        report: Optional[dict] = None,
        set_cancel_requested: bool = False,
        set_completed: bool = False,
    ) -> RebuildJob:
        now_iso = datetime.now(timezone.utc).isoformat()
        with closing(self._connect()) as conn, conn:
            existing = conn.execute("SELECT * FROM rebuild_jobs WHERE id = ?", (job_id,)).fetchone()
            if existing is None:
                if scope is None:
                    raise KeyError(f"Job {job_id} not found")
                conn.execute(
                    """
                    INSERT INTO rebuild_jobs (
                        id, scope, state, message, report_json, created_at,
                        updated_at, cancel_requested_at, completed_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        job_id,
                        scope,
                        state,
                        message,
                        json.dumps(report) if report is not None else None,
                        now_iso,
                        now_iso,
                        now_iso if set_cancel_requested else None,
                        now_iso if set_completed else None,
                    ),
                )
            else:
                if message is None:
                    message = existing["message"]
                report_json = json.dumps(report) if report is not None else existing["report_json"]
                cancel_requested_at = existing["cancel_requested_at"]
                completed_at = existing["completed_at"]
                if set_cancel_requested:
                    cancel_requested_at = now_iso
                if set_completed:
                    completed_at = now_iso
                conn.execute(
                    """
                    UPDATE rebuild_jobs
                    SET state = ?, message = ?, report_json = ?, updated_at = ?,
                        cancel_requested_at = ?, completed_at = ?
                    WHERE id = ?
                    """,
                    (state, message, report_json, now_iso, cancel_requested_at, completed_at, job_id),
                )
        job = self.get_job(job_id)
        if job is None:  # pragma: no cover - the row was written above
            raise KeyError(f"Job {job_id} not found after upsert")
        return job

    # -- row mappers -----------------------------------------------------

    def _row_to_event(self, row: sqlite3.Row) -> EventInfo:
        return EventInfo(
            event_id=row["id"],
            date=date.fromisoformat(row["date"]),
            end_time=row["end_time"],
            opponent=row["opponent"],
            title=row["title"],
            player_of_match_id=row["player_of_match_id"],
        )

    def _row_to_fact(self, row: sqlite3.Row) -> FactRow:
        return FactRow(
            player_id=row["player_id"],
            event_id=row["event_id"],
            team_number=row["team_number"],
            period_number=row["period_number"],
            position=row["position"],
            minutes_played=row["minutes_played"],
            is_captain=bool(row["is_captain"]),
            is_substitute=bool(row["is_substitute"]),
            substitution_time=row["substitution_time"],
            performance_category_id=row["performance_category_id"],
        )

    def _row_to_player(self, row: sqlite3.Row) -> PlayerEntity:
        summary_json = row["match_stats_json"]
        return PlayerEntity(
            player_id=row["id"],
            name=row["name"],
            objectives=json.loads(row["objectives_json"]) if row["objectives_json"] else None,
            comments=row["comments"],
            summary=PlayerSummary.model_validate_json(summary_json) if summary_json else None,
        )

    def _row_to_job(self, row: sqlite3.Row) -> RebuildJob:
        def _parse_ts(value: Optional[str]) -> Optional[datetime]:
            return datetime.fromisoformat(value) if value else None

        return RebuildJob(
            job_id=row["id"],
            scope=row["scope"],
            state=row["state"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
            message=row["message"],
            report=json.loads(row["report_json"]) if row["report_json"] else None,
            cancel_requested_at=_parse_ts(row["cancel_requested_at"]),
            completed_at=_parse_ts(row["completed_at"]),
        )
