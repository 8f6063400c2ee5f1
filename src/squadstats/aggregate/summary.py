"""Fold a player's fact rows into the persisted summary."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from squadstats.config import EngineSettings
from squadstats.derive.completion import is_eligible
from squadstats.models import (
    CategorySummary,
    EventInfo,
    FactRow,
    GameSummary,
    PerformanceCategory,
    PlayerSummary,
)


logger = logging.getLogger(__name__)

DEFAULT_OPPONENT = "Training"


@dataclass
class FactPartition:
    """Which of a player's facts the completion filter let through."""

    eligible: List[FactRow] = field(default_factory=list)
    excluded_event_ids: List[str] = field(default_factory=list)
    unknown_event_ids: List[str] = field(default_factory=list)


@dataclass
class _EventTally:
    event: EventInfo
    minutes_by_position: Dict[str, int] = field(default_factory=lambda: defaultdict(int))
    teams: set[int] = field(default_factory=set)
    captain: bool = False
    category_id: Optional[str] = None

    @property
    def total_minutes(self) -> int:
        return sum(self.minutes_by_position.values())


def _sorted_counts(counts: Mapping[str, int]) -> Dict[str, int]:
    return {key: int(counts[key]) for key in sorted(counts)}


def _category_lookup(
    categories: Iterable[PerformanceCategory] | Mapping[str, str] | None,
) -> Dict[str, str]:
    if categories is None:
        return {}
    if isinstance(categories, Mapping):
        return dict(categories)
    return {category.id: category.name for category in categories}


def partition_facts(
    fact_rows: Sequence[FactRow],
    events: Mapping[str, EventInfo],
    *,
    now: Optional[datetime] = None,
) -> FactPartition:
    """Split facts into those whose event has finished and the rest."""

    now = now or datetime.now()
    partition = FactPartition()
    verdicts: Dict[str, bool] = {}
    for fact in fact_rows:
        event = events.get(fact.event_id)
        if event is None:
            if fact.event_id not in partition.unknown_event_ids:
                logger.warning("Fact for player %s references unknown event %s", fact.player_id, fact.event_id)
                partition.unknown_event_ids.append(fact.event_id)
            continue
        if fact.event_id not in verdicts:
            verdicts[fact.event_id] = is_eligible(event.date, event.end_time, now)
            if not verdicts[fact.event_id]:
                partition.excluded_event_ids.append(fact.event_id)
        if verdicts[fact.event_id]:
            partition.eligible.append(fact)
    return partition


def _recency_key(event: EventInfo) -> Tuple[str, str, str]:
    return (event.date.isoformat(), event.end_time or "", event.event_id)


def _tally_events(played: Sequence[FactRow], events: Mapping[str, EventInfo]) -> Dict[str, _EventTally]:
    tallies: Dict[str, _EventTally] = {}
    ordered = sorted(played, key=lambda fact: (fact.event_id, fact.team_number, fact.period_number))
    for fact in ordered:
        tally = tallies.get(fact.event_id)
        if tally is None:
            tally = _EventTally(event=events[fact.event_id])
            tallies[fact.event_id] = tally
        tally.minutes_by_position[fact.position] += fact.minutes_played
        tally.teams.add(fact.team_number)
        tally.captain = tally.captain or fact.is_captain
        if tally.category_id is None:
            tally.category_id = fact.performance_category_id
    return tallies


def _category_stats(
    player_id: str,
    played: Sequence[FactRow],
    events: Mapping[str, EventInfo],
    category_names: Mapping[str, str],
) -> Dict[str, CategorySummary]:
    games: Dict[str, set[Tuple[str, int]]] = defaultdict(set)
    minutes: Dict[str, Dict[str, int]] = defaultdict(lambda: defaultdict(int))
    captain_events: Dict[str, set[str]] = defaultdict(set)
    potm_events: Dict[str, set[str]] = defaultdict(set)

    for fact in played:
        if not fact.performance_category_id:
            continue
        name = category_names.get(fact.performance_category_id)
        if name is None:
            logger.debug("Unknown performance category %s; skipping", fact.performance_category_id)
            continue
        games[name].add((fact.event_id, fact.team_number))
        minutes[name][fact.position] += fact.minutes_played
        if fact.is_captain:
            captain_events[name].add(fact.event_id)
        if events[fact.event_id].player_of_match_id == player_id:
            potm_events[name].add(fact.event_id)

    stats: Dict[str, CategorySummary] = {}
    for name in sorted(games):
        by_position = _sorted_counts(minutes[name])
        stats[name] = CategorySummary(
            total_games=len(games[name]),
            total_minutes=sum(by_position.values()),
            captain_games=len(captain_events[name]),
            potm_count=len(potm_events[name]),
            minutes_by_position=by_position,
        )
    return stats


def aggregate(
    player_id: str,
    fact_rows: Sequence[FactRow],
    events: Mapping[str, EventInfo],
    categories: Iterable[PerformanceCategory] | Mapping[str, str] | None = None,
    *,
    now: Optional[datetime] = None,
    settings: EngineSettings | None = None,
) -> PlayerSummary:
    """Recompute a player's summary from scratch.

    Only facts of finished events count, and of those only non-substitute
    rows with minutes on the pitch. The result replaces any previous summary
    wholesale, so positions that vanished upstream disappear here too.
    """

    settings = settings or EngineSettings()
    own_facts = [fact for fact in fact_rows if fact.player_id == player_id]
    partition = partition_facts(own_facts, events, now=now)
    played = [fact for fact in partition.eligible if fact.counts_toward_totals]

    minutes_by_position: Dict[str, int] = defaultdict(int)
    games: set[Tuple[str, int]] = set()
    for fact in played:
        minutes_by_position[fact.position] += fact.minutes_played
        games.add((fact.event_id, fact.team_number))

    tallies = _tally_events(played, events)
    captain_games = sum(1 for tally in tallies.values() if tally.captain)
    potm_count = sum(1 for tally in tallies.values() if tally.event.player_of_match_id == player_id)

    category_names = _category_lookup(categories)
    ordered = sorted(tallies.values(), key=lambda tally: _recency_key(tally.event), reverse=True)
    recent_games = [
        GameSummary(
            event_id=tally.event.event_id,
            opponent=tally.event.opponent or DEFAULT_OPPONENT,
            date=tally.event.date,
            minutes_by_position=_sorted_counts(tally.minutes_by_position),
            total_minutes=tally.total_minutes,
            captain=tally.captain,
            player_of_match=tally.event.player_of_match_id == player_id,
            performance_category=category_names.get(tally.category_id) if tally.category_id else None,
        )
        for tally in ordered[: settings.recent_games_limit]
    ]

    by_position = _sorted_counts(minutes_by_position)
    return PlayerSummary(
        total_games=len(games),
        total_minutes=sum(by_position.values()),
        minutes_by_position=by_position,
        captain_games=captain_games,
        player_of_match_count=potm_count,
        recent_games=recent_games,
        performance_category_stats=_category_stats(player_id, played, events, category_names),
    )
