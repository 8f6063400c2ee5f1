"""Drive the derive -> filter -> aggregate -> persist pipeline."""

from __future__ import annotations

import functools
import logging
import time
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import anyio

from squadstats.aggregate import aggregate, partition_facts, performance_trend
from squadstats.config import EngineSettings
from squadstats.derive import derive_facts
from squadstats.ingest import SelectionBatch, parse_selection_rows
from squadstats.models import EventInfo, FactRow, PerformanceCategory, PerformanceTrend, PlayerSummary
from squadstats.persistence import StatsStore


logger = logging.getLogger(__name__)


class PlayerAggregationFailure(RuntimeError):
    """Raised when one player's summary cannot be rebuilt."""

    def __init__(self, player_id: str, message: str):
        super().__init__(f"Rebuild failed for player {player_id}: {message}")
        self.player_id = player_id
        self.message = message


@dataclass
class RebuildReport:
    players_succeeded: int = 0
    players_failed: int = 0
    fact_rows_created: int = 0
    players_skipped: int = 0
    selections_processed: int = 0
    selections_quarantined: int = 0
    cancelled: bool = False
    failed_player_ids: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class PlayerRebuildTrace:
    """What a single-player rebuild looked at and wrote."""

    player_id: str
    facts_considered: int
    facts_eligible: int
    facts_counted: int
    eligible_event_ids: List[str]
    excluded_event_ids: List[str]
    unknown_event_ids: List[str]
    summary: PlayerSummary


class StatsRebuilder:
    """Rebuild fact rows and player summaries from the selection store.

    Store calls run in worker threads; per-player aggregation fans out up to
    ``settings.rebuild_concurrency`` at a time. Cancellation is honoured only
    between players, so a player is either fully updated or left untouched.
    """

    def __init__(
        self,
        store: StatsStore,
        *,
        settings: EngineSettings | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.settings = settings or EngineSettings()
        self.clock = clock

    async def _call(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        return await anyio.to_thread.run_sync(functools.partial(func, *args, **kwargs))

    async def _load_selections(self, *, event_id: Optional[str] = None) -> SelectionBatch:
        rows = await self._call(self.store.list_selection_rows, event_id=event_id)
        return parse_selection_rows(rows)

    async def _load_context(
        self,
        event_ids: Iterable[str],
    ) -> Tuple[Dict[str, EventInfo], List[PerformanceCategory]]:
        events = await self._call(self.store.get_events, set(event_ids))
        categories = await self._call(self.store.list_performance_categories)
        return events, categories

    async def _should_stop(
        self,
        job_id: Optional[str],
        should_cancel: Optional[Callable[[], bool]],
    ) -> bool:
        if should_cancel is not None and should_cancel():
            return True
        if job_id is not None:
            return bool(await self._call(self.store.is_cancel_requested, job_id))
        return False

    async def _refresh_player(
        self,
        player_id: str,
        *,
        now: datetime,
        facts: Optional[Sequence[FactRow]],
        events: Optional[Mapping[str, EventInfo]],
        categories: Sequence[PerformanceCategory],
    ) -> PlayerSummary:
        if facts is None:
            facts = await self._call(self.store.list_facts, player_id=player_id)
        if events is None:
            events = await self._call(self.store.get_events, {fact.event_id for fact in facts})
        summary = aggregate(
            player_id,
            facts,
            events,
            categories,
            now=now,
            settings=self.settings,
        )
        await self._call(self.store.save_player_summary, player_id, summary)
        return summary

    async def _aggregate_players(
        self,
        player_ids: Sequence[str],
        report: RebuildReport,
        *,
        now: datetime,
        categories: Sequence[PerformanceCategory],
        facts_by_player: Optional[Mapping[str, Sequence[FactRow]]] = None,
        events: Optional[Mapping[str, EventInfo]] = None,
        job_id: Optional[str] = None,
        should_cancel: Optional[Callable[[], bool]] = None,
    ) -> None:
        limiter = anyio.CapacityLimiter(self.settings.rebuild_concurrency)

        async def _run(player_id: str) -> None:
            async with limiter:
                if report.cancelled or await self._should_stop(job_id, should_cancel):
                    report.cancelled = True
                    report.players_skipped += 1
                    return
                facts = None
                if facts_by_player is not None:
                    facts = facts_by_player.get(player_id, [])
                try:
                    await self._refresh_player(
                        player_id,
                        now=now,
                        facts=facts,
                        events=events,
                        categories=categories,
                    )
                except Exception:
                    logger.exception("Aggregation failed for player %s; skipping", player_id)
                    report.players_failed += 1
                    report.failed_player_ids.append(player_id)
                else:
                    report.players_succeeded += 1

        async with anyio.create_task_group() as tg:
            for player_id in player_ids:
                tg.start_soon(_run, player_id)
        report.failed_player_ids.sort()
        if report.cancelled:
            logger.warning(
                "Rebuild cancelled: %s players updated, %s left untouched",
                report.players_succeeded,
                report.players_skipped,
            )

    def _record_input_issues(self, report: RebuildReport, batch: SelectionBatch, issues: Iterable[Any]) -> None:
        report.selections_processed = len(batch.records)
        report.selections_quarantined = len(batch.quarantined)
        for item in batch.quarantined:
            report.warnings.append(f"quarantined selection {item.selection_id or '<unknown>'}: {item.reason}")
        for issue in issues:
            report.warnings.append(f"{issue.kind}: {issue.message}")

    async def rebuild_all(
        self,
        *,
        job_id: Optional[str] = None,
        should_cancel: Optional[Callable[[], bool]] = None,
    ) -> RebuildReport:
        """Re-derive every fact row and re-aggregate every affected player.

        The fact table is swapped in a single transaction, so a storage
        failure aborts the rebuild with the previous facts intact. Players who
        held a summary but no longer appear in any selection are reset too.
        """

        start_time = time.perf_counter()
        now = self.clock()
        report = RebuildReport()

        batch = await self._load_selections()
        derivation = derive_facts(batch.records, settings=self.settings)
        self._record_input_issues(report, batch, derivation.issues)

        previously_summarized = await self._call(self.store.list_summarized_player_ids)
        report.fact_rows_created = await self._call(self.store.replace_all_facts, derivation.facts)
        logger.info("Replaced fact table with %s rows", report.fact_rows_created)

        facts_by_player: Dict[str, List[FactRow]] = defaultdict(list)
        for fact in derivation.facts:
            facts_by_player[fact.player_id].append(fact)
        player_ids = sorted(set(facts_by_player) | set(previously_summarized))
        events, categories = await self._load_context(fact.event_id for fact in derivation.facts)

        await self._aggregate_players(
            player_ids,
            report,
            now=now,
            categories=categories,
            facts_by_player=facts_by_player,
            events=events,
            job_id=job_id,
            should_cancel=should_cancel,
        )
        logger.info(
            "Rebuild finished in %.2fs: %s players updated, %s failed, %s fact rows",
            time.perf_counter() - start_time,
            report.players_succeeded,
            report.players_failed,
            report.fact_rows_created,
        )
        return report

    async def rebuild_event(
        self,
        event_id: str,
        *,
        job_id: Optional[str] = None,
        should_cancel: Optional[Callable[[], bool]] = None,
    ) -> RebuildReport:
        """Re-derive one event's facts after its selections or category changed."""

        now = self.clock()
        report = RebuildReport()
        batch = await self._load_selections(event_id=event_id)
        derivation = derive_facts(batch.records, settings=self.settings)
        self._record_input_issues(report, batch, derivation.issues)
        facts = [fact for fact in derivation.facts if fact.event_id == event_id]

        previous_players = await self._call(self.store.list_fact_player_ids, event_id=event_id)
        report.fact_rows_created = await self._call(self.store.replace_event_facts, event_id, facts)
        player_ids = sorted(set(previous_players) | {fact.player_id for fact in facts})
        categories = await self._call(self.store.list_performance_categories)

        await self._aggregate_players(
            player_ids,
            report,
            now=now,
            categories=categories,
            job_id=job_id,
            should_cancel=should_cancel,
        )
        logger.info(
            "Event %s rebuilt: %s fact rows, %s players updated, %s failed",
            event_id,
            report.fact_rows_created,
            report.players_succeeded,
            report.players_failed,
        )
        return report

    async def rebuild_player(self, player_id: str) -> PlayerRebuildTrace:
        """Re-aggregate one player from the facts already materialized.

        Raises ``KeyError`` for an unknown player and
        :class:`PlayerAggregationFailure` for anything that goes wrong after.
        """

        player = await self._call(self.store.get_player, player_id)
        if player is None:
            raise KeyError(f"Player {player_id} not found")

        try:
            now = self.clock()
            facts = await self._call(self.store.list_facts, player_id=player_id)
            events, categories = await self._load_context(fact.event_id for fact in facts)
            partition = partition_facts(facts, events, now=now)
            summary = await self._refresh_player(
                player_id,
                now=now,
                facts=facts,
                events=events,
                categories=categories,
            )
        except Exception as exc:
            logger.warning("Rebuild failed for player %s: %s", player_id, exc)
            raise PlayerAggregationFailure(player_id, str(exc)) from exc

        trace = PlayerRebuildTrace(
            player_id=player_id,
            facts_considered=len(facts),
            facts_eligible=len(partition.eligible),
            facts_counted=sum(1 for fact in partition.eligible if fact.counts_toward_totals),
            eligible_event_ids=sorted({fact.event_id for fact in partition.eligible}),
            excluded_event_ids=sorted(partition.excluded_event_ids),
            unknown_event_ids=sorted(partition.unknown_event_ids),
            summary=summary,
        )
        logger.info(
            "Player %s rebuilt from %s facts (%s eligible, %s counted)",
            player_id,
            trace.facts_considered,
            trace.facts_eligible,
            trace.facts_counted,
        )
        return trace

    async def player_trend(self, player_id: str) -> PerformanceTrend:
        player = await self._call(self.store.get_player, player_id)
        if player is None:
            raise KeyError(f"Player {player_id} not found")
        facts = await self._call(self.store.list_facts, player_id=player_id)
        events = await self._call(self.store.get_events, {fact.event_id for fact in facts})
        return performance_trend(player_id, facts, events, settings=self.settings)
