"""Read-time performance trend heuristic."""

from __future__ import annotations

from typing import Mapping, Sequence

from squadstats.config import EngineSettings
from squadstats.config.settings import TrendThresholds
from squadstats.models import EventInfo, FactRow, PerformanceTrend


def _minutes_average(facts: Sequence[FactRow]) -> float:
    if not facts:
        return 0.0
    return sum(fact.minutes_played for fact in facts) / len(facts)


def trend_score(
    player_id: str,
    recent: Sequence[FactRow],
    older: Sequence[FactRow],
    events: Mapping[str, EventInfo],
    thresholds: TrendThresholds | None = None,
) -> int:
    """Score the recent window against the older one."""

    thresholds = thresholds or TrendThresholds()
    recent_minutes = _minutes_average(recent)
    older_minutes = _minutes_average(older) if older else recent_minutes

    score = 0
    if recent_minutes > older_minutes * thresholds.minutes_rise_ratio:
        score += thresholds.minutes_points
    elif recent_minutes < older_minutes * thresholds.minutes_drop_ratio:
        score -= thresholds.minutes_points

    recent_captain = sum(1 for fact in recent if fact.is_captain)
    older_captain = sum(1 for fact in older if fact.is_captain)
    if recent_captain > older_captain:
        score += thresholds.captain_gain_points
    elif recent_captain < older_captain:
        score -= thresholds.captain_loss_points

    recent_potm = sum(1 for fact in recent if events[fact.event_id].player_of_match_id == player_id)
    older_potm = sum(1 for fact in older if events[fact.event_id].player_of_match_id == player_id)
    if recent_potm > older_potm:
        score += thresholds.potm_gain_points
    elif recent_potm < older_potm:
        score -= thresholds.potm_loss_points
    return score


def performance_trend(
    player_id: str,
    fact_rows: Sequence[FactRow],
    events: Mapping[str, EventInfo],
    *,
    settings: EngineSettings | None = None,
) -> PerformanceTrend:
    """Classify the player's most recent facts; never persisted."""

    settings = settings or EngineSettings()
    dated = [
        fact
        for fact in fact_rows
        if fact.player_id == player_id and fact.event_id in events
    ]
    dated.sort(
        key=lambda fact: (
            events[fact.event_id].date.isoformat(),
            events[fact.event_id].end_time or "",
            fact.event_id,
            fact.team_number,
            fact.period_number,
        ),
        reverse=True,
    )
    window = dated[: settings.trend_window]
    if len(window) < settings.trend_min_facts:
        return "maintaining"

    split = max(1, settings.trend_window // 2)
    score = trend_score(player_id, window[:split], window[split:], events, settings.trend)
    if score >= settings.trend.improving_score:
        return "improving"
    if score <= settings.trend.needs_work_score:
        return "needs-work"
    return "maintaining"
