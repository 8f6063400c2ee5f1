from datetime import date

from squadstats.aggregate import performance_trend, trend_score
from squadstats.config import EngineSettings
from squadstats.models import EventInfo, FactRow


def _history(minutes, *, captain_days=(), potm_days=()):
    """One fact per day in May, day 1 oldest; ``minutes`` is oldest first."""

    events = {}
    facts = []
    for day, played in enumerate(minutes, start=1):
        event_id = f"evt-{day:02d}"
        events[event_id] = EventInfo(
            event_id=event_id,
            date=date(2024, 5, day),
            player_of_match_id="p1" if day in potm_days else None,
        )
        facts.append(
            FactRow(
                player_id="p1",
                event_id=event_id,
                team_number=1,
                period_number=1,
                position="MC",
                minutes_played=played,
                is_captain=day in captain_days,
            )
        )
    return facts, events


def test_too_few_facts_is_maintaining():
    facts, events = _history([10, 90])
    assert performance_trend("p1", facts, events) == "maintaining"


def test_rising_minutes_is_improving():
    facts, events = _history([45] * 5 + [90] * 5)
    assert performance_trend("p1", facts, events) == "improving"


def test_falling_minutes_needs_work():
    facts, events = _history([90] * 5 + [30] * 5)
    assert performance_trend("p1", facts, events) == "needs-work"


def test_new_captaincy_is_improving():
    facts, events = _history([60] * 10, captain_days=(9,))
    assert performance_trend("p1", facts, events) == "improving"


def test_lost_player_of_match_alone_is_maintaining():
    facts, events = _history([60] * 10, potm_days=(2,))
    assert performance_trend("p1", facts, events) == "maintaining"


def test_lost_player_of_match_with_fewer_minutes_needs_work():
    facts, events = _history([60] * 5 + [40] * 5, potm_days=(2,))
    assert performance_trend("p1", facts, events) == "needs-work"


def test_short_history_compares_recent_window_with_itself():
    facts, events = _history([10, 20, 90, 90])
    assert performance_trend("p1", facts, events) == "maintaining"


def test_only_latest_window_is_scored():
    # Twelve games: the two oldest would drag the older average down if included.
    facts, events = _history([0, 0] + [60] * 10)
    assert performance_trend("p1", facts, events) == "maintaining"


def test_trend_score_points():
    facts, events = _history([45] * 5 + [90] * 5, captain_days=(10,), potm_days=(1,))
    recent, older = list(reversed(facts[5:])), list(reversed(facts[:5]))
    assert trend_score("p1", recent, older, events) == 30 + 35 - 20


def test_window_settings_are_respected():
    facts, events = _history([45, 45, 90, 90])
    settings = EngineSettings(trend_window=4, trend_min_facts=4)
    assert performance_trend("p1", facts, events, settings=settings) == "improving"
