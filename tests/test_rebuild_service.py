import logging
import sqlite3
from datetime import date, datetime

import pytest

from squadstats.config import EngineSettings
from squadstats.models import EventInfo, PerformanceCategory
from squadstats.persistence import StatsStore, StorageFailure
from squadstats.rebuild import PlayerAggregationFailure, StatsRebuilder


NOW = datetime(2024, 5, 10, 12, 0)


def _selection(event_id: str, assignments: list, *, period: int = 1, **extra) -> dict:
    payload = {
        "id": f"{event_id}-t1-p{period}",
        "event_id": event_id,
        "team_number": 1,
        "period_number": period,
        "assignments": assignments,
    }
    payload.update(extra)
    return payload


def _seed(store: StatsStore) -> None:
    store.save_event(EventInfo(event_id="evt-1", date=date(2024, 5, 1), opponent="Rovers", player_of_match_id="p2"))
    store.save_event(EventInfo(event_id="evt-2", date=date(2024, 5, 8)))
    store.save_performance_category(PerformanceCategory(id="cat-1", name="League"))
    for player_id, name in (("p1", "Alex"), ("p2", "Sam"), ("p3", "Jo")):
        store.save_player(player_id, name=name, comments=f"{name} notes")

    store.save_selection(
        _selection(
            "evt-1",
            [
                {"player_id": "p1", "position": "CM", "minutes": 90},
                {"player_id": "p2", "position": "GK", "minutes": 90},
            ],
            captain_id="p1",
            performance_category_id="cat-1",
            substitutes=[{"player_id": "p3", "position": "SUB", "minutes": 0}],
        )
    )
    store.save_selection(
        _selection(
            "evt-2",
            [
                {"player_id": "p1", "position": "CM", "minutes": 45},
                {"player_id": "p3", "position": "DC", "minutes": 45},
            ],
        )
    )
    store.save_selection(
        _selection(
            "evt-2",
            [
                {"player_id": "p1", "position": "ST", "minutes": 45},
                {"player_id": "p3", "position": "DC", "minutes": 45},
            ],
            period=2,
        )
    )


@pytest.fixture
def store(tmp_path):
    store = StatsStore(tmp_path / "stats.sqlite")
    _seed(store)
    return store


@pytest.fixture
def rebuilder(store):
    return StatsRebuilder(store, settings=EngineSettings(), clock=lambda: NOW)


@pytest.mark.anyio
async def test_rebuild_all_derives_and_aggregates(store, rebuilder):
    report = await rebuilder.rebuild_all()

    assert report.fact_rows_created == 7
    assert report.selections_processed == 3
    assert report.players_succeeded == 3
    assert report.players_failed == 0
    assert not report.cancelled

    alex = store.get_player_summary("p1")
    assert alex.total_games == 2
    assert alex.total_minutes == 180
    assert alex.minutes_by_position == {"CM": 135, "ST": 45}
    assert alex.captain_games == 1
    assert [game.event_id for game in alex.recent_games] == ["evt-2", "evt-1"]
    assert alex.recent_games[0].opponent == "Training"
    assert alex.performance_category_stats["League"].total_minutes == 90

    assert store.get_player_summary("p2").player_of_match_count == 1
    jo = store.get_player_summary("p3")
    assert jo.total_games == 1
    assert jo.minutes_by_position == {"DC": 90}


@pytest.mark.anyio
async def test_rebuild_all_is_idempotent(store, rebuilder):
    await rebuilder.rebuild_all()
    first_facts = store.list_facts()
    first_players = {player_id: store.get_player(player_id) for player_id in ("p1", "p2", "p3")}
    first_json = {player_id: store.get_player_summary(player_id).model_dump_json() for player_id in first_players}

    await rebuilder.rebuild_all()

    assert store.list_facts() == first_facts
    assert {player_id: store.get_player(player_id) for player_id in first_players} == first_players
    assert {player_id: store.get_player_summary(player_id).model_dump_json() for player_id in first_players} == first_json


@pytest.mark.anyio
async def test_rebuild_keeps_unrelated_player_fields(store, rebuilder):
    await rebuilder.rebuild_all()
    player = store.get_player("p1")
    assert player.name == "Alex"
    assert player.comments == "Alex notes"


@pytest.mark.anyio
async def test_changed_position_leaves_no_residual_minutes(store, rebuilder):
    await rebuilder.rebuild_all()
    store.save_selection(
        _selection(
            "evt-1",
            [
                {"player_id": "p1", "position": "ST", "minutes": 90},
                {"player_id": "p2", "position": "GK", "minutes": 90},
            ],
            captain_id="p1",
        )
    )

    await rebuilder.rebuild_event("evt-1")
    trace = await rebuilder.rebuild_player("p1")

    evt_1 = next(game for game in trace.summary.recent_games if game.event_id == "evt-1")
    assert evt_1.minutes_by_position == {"ST": 90}
    assert trace.summary.minutes_by_position == {"CM": 45, "ST": 135}
    assert store.get_player_summary("p1") == trace.summary


@pytest.mark.anyio
async def test_rebuild_event_resets_players_removed_from_it(store, rebuilder):
    await rebuilder.rebuild_all()
    store.delete_selection("evt-2-t1-p1")
    store.delete_selection("evt-2-t1-p2")

    report = await rebuilder.rebuild_event("evt-2")

    assert report.fact_rows_created == 0
    assert report.players_succeeded == 2
    assert store.get_player_summary("p3").total_games == 0
    assert store.get_player_summary("p1").minutes_by_position == {"CM": 90}
    assert store.list_facts(event_id="evt-1")


@pytest.mark.anyio
async def test_player_dropped_from_every_selection_is_reset(store, rebuilder):
    await rebuilder.rebuild_all()
    store.delete_selection("evt-2-t1-p1")
    store.delete_selection("evt-2-t1-p2")
    store.save_selection(
        _selection(
            "evt-1",
            [
                {"player_id": "p1", "position": "CM", "minutes": 90},
                {"player_id": "p2", "position": "GK", "minutes": 90},
            ],
        )
    )

    report = await rebuilder.rebuild_all()

    assert report.players_succeeded == 3
    jo = store.get_player_summary("p3")
    assert jo.total_games == 0
    assert jo.minutes_by_position == {}


@pytest.mark.anyio
async def test_player_failures_are_counted_not_raised(store, rebuilder, caplog):
    caplog.set_level(logging.ERROR)
    store.save_selection(_selection("evt-2", [{"player_id": "ghost", "position": "MC"}], period=3))

    report = await rebuilder.rebuild_all()

    assert report.players_failed == 1
    assert report.failed_player_ids == ["ghost"]
    assert report.players_succeeded == 3
    assert "Aggregation failed for player ghost" in caplog.text


@pytest.mark.anyio
async def test_storage_failure_aborts_rebuild(store, rebuilder, monkeypatch):
    def _fail(facts):
        raise StorageFailure("Failed to replace fact rows: disk full")

    monkeypatch.setattr(store, "replace_all_facts", _fail)

    with pytest.raises(StorageFailure):
        await rebuilder.rebuild_all()
    assert store.get_player_summary("p1") is None


@pytest.mark.anyio
async def test_malformed_selections_are_reported(store, rebuilder):
    store.save_selection({"id": "broken", "player_positions": "GK"})
    store.save_selection(_selection("evt-2", [{"player_id": None, "position": "GK"}], period=4))

    report = await rebuilder.rebuild_all()

    assert report.selections_quarantined == 1
    assert report.selections_processed == 4
    assert report.fact_rows_created == 7
    assert len(report.warnings) == 2
    assert any("broken" in warning for warning in report.warnings)


@pytest.mark.anyio
@pytest.mark.parametrize(
    "bad_assignment",
    [
        {"player_id": "p2", "position": "GK", "minutes": 10**20},
        {"player_id": "p2", "position": "GK", "minutes": "inf"},
        {"player_id": "p2", "position": "GK", "substitution_time": 10**20},
    ],
)
async def test_out_of_range_numbers_are_quarantined_not_fatal(store, rebuilder, bad_assignment):
    store.save_selection(_selection("evt-2", [bad_assignment], period=3))
    store.save_selection({"id": "huge-team", "event_id": "evt-2", "team_number": 10**20, "assignments": []})

    report = await rebuilder.rebuild_all()

    assert report.selections_quarantined == 2
    assert report.fact_rows_created == 7
    assert report.players_succeeded == 3
    assert report.players_failed == 0
    assert store.get_player_summary("p2").total_minutes == 90


@pytest.mark.anyio
async def test_one_null_player_among_two_hundred(tmp_path):
    store = StatsStore(tmp_path / "bulk.sqlite")
    for index in range(200):
        store.save_event(EventInfo(event_id=f"evt-{index}", date=date(2024, 4, 1)))
        store.save_player(f"p{index}", name=f"Player {index}")
        store.save_selection(_selection(f"evt-{index}", [{"player_id": f"p{index}", "position": "MC"}]))
    store.save_selection(_selection("evt-0", [{"playerId": None, "position": "GK"}], period=2))

    report = await StatsRebuilder(store, clock=lambda: NOW).rebuild_all()

    assert report.fact_rows_created == 200
    assert report.players_succeeded == 200
    assert len(report.warnings) == 1


@pytest.mark.anyio
async def test_cancel_before_start_leaves_summaries_untouched(store, rebuilder):
    report = await rebuilder.rebuild_all(should_cancel=lambda: True)

    assert report.cancelled
    assert report.players_skipped == 3
    assert report.players_succeeded == 0
    assert store.get_player_summary("p1") is None


@pytest.mark.anyio
async def test_cancel_between_players(store):
    calls = []

    def _should_cancel() -> bool:
        calls.append(1)
        return len(calls) > 1

    rebuilder = StatsRebuilder(store, settings=EngineSettings(rebuild_concurrency=1), clock=lambda: NOW)
    report = await rebuilder.rebuild_all(should_cancel=_should_cancel)

    assert report.cancelled
    assert report.players_succeeded == 1
    assert report.players_skipped == 2
    summarized = store.list_summarized_player_ids()
    assert len(summarized) == 1


@pytest.mark.anyio
async def test_cancel_via_job_flag(store, rebuilder):
    job = store.create_job(scope="all")
    store.mark_job_cancel_requested(job.job_id)

    report = await rebuilder.rebuild_all(job_id=job.job_id)

    assert report.cancelled
    assert report.players_skipped == 3


@pytest.mark.anyio
async def test_unfinished_event_is_stored_but_not_counted(store):
    store.save_event(EventInfo(event_id="evt-today", date=NOW.date()))
    store.save_selection(_selection("evt-today", [{"player_id": "p2", "position": "GK"}]))
    rebuilder = StatsRebuilder(store, clock=lambda: NOW)

    await rebuilder.rebuild_all()
    trace = await rebuilder.rebuild_player("p2")

    assert store.list_facts(event_id="evt-today")
    assert trace.excluded_event_ids == ["evt-today"]
    assert trace.facts_considered == 2
    assert trace.facts_counted == 1
    assert trace.summary.total_games == 1


@pytest.mark.anyio
async def test_rebuild_player_unknown_player(rebuilder):
    with pytest.raises(KeyError):
        await rebuilder.rebuild_player("ghost")


@pytest.mark.anyio
async def test_rebuild_player_wraps_errors(store, rebuilder, monkeypatch):
    def _broken(**kwargs):
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(store, "list_facts", _broken)

    with pytest.raises(PlayerAggregationFailure) as excinfo:
        await rebuilder.rebuild_player("p1")
    assert excinfo.value.player_id == "p1"
    assert "database is locked" in str(excinfo.value)


@pytest.mark.anyio
async def test_player_trend(store, rebuilder):
    await rebuilder.rebuild_all()
    assert await rebuilder.player_trend("p1") == "improving"
    assert await rebuilder.player_trend("p2") == "maintaining"
    with pytest.raises(KeyError):
        await rebuilder.player_trend("ghost")
