import sqlite3
from datetime import date

import pytest

from squadstats.models import EventInfo, FactRow, PerformanceCategory, PlayerSummary
from squadstats.persistence import StatsStore, StorageFailure


def _fact(player_id: str, event_id: str = "evt-1", **overrides) -> FactRow:
    payload = {
        "player_id": player_id,
        "event_id": event_id,
        "team_number": 1,
        "period_number": 1,
        "position": "MC",
        "minutes_played": 90,
    }
    payload.update(overrides)
    return FactRow(**payload)


@pytest.fixture
def store(tmp_path):
    return StatsStore(tmp_path / "stats.sqlite")


def test_replace_all_facts_swaps_table(store):
    assert store.replace_all_facts([_fact("p2"), _fact("p1", is_captain=True, substitution_time=12)]) == 2
    facts = store.list_facts()
    assert [fact.player_id for fact in facts] == ["p1", "p2"]
    assert facts[0].is_captain is True
    assert facts[0].substitution_time == 12

    store.replace_all_facts([_fact("p3")])
    assert len(store.list_facts()) == 1
    assert store.list_fact_player_ids() == ["p3"]


def test_failed_replace_keeps_previous_facts(store):
    store.replace_all_facts([_fact("p1")])

    with pytest.raises(StorageFailure):
        store.replace_all_facts([_fact("p2"), _fact("p2")])

    assert [fact.player_id for fact in store.list_facts()] == ["p1"]


def test_failed_write_after_delete_rolls_back(store, monkeypatch):
    store.replace_all_facts([_fact("p1")])

    def _boom(conn, facts):
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr(store, "_write_facts", _boom)
    with pytest.raises(StorageFailure, match="disk I/O error"):
        store.replace_all_facts([_fact("p2")])

    assert [fact.player_id for fact in store.list_facts()] == ["p1"]


def test_out_of_range_integer_is_a_storage_failure(store):
    store.replace_all_facts([_fact("p1")])

    with pytest.raises(StorageFailure, match="too large"):
        store.replace_all_facts([_fact("p2", minutes_played=10**20)])
    with pytest.raises(StorageFailure):
        store.replace_event_facts("evt-1", [_fact("p2", substitution_time=10**20)])

    assert [fact.player_id for fact in store.list_facts()] == ["p1"]


def test_replace_event_facts_only_touches_that_event(store):
    store.replace_all_facts([_fact("p1", "evt-1"), _fact("p1", "evt-2"), _fact("p2", "evt-2")])

    store.replace_event_facts("evt-2", [_fact("p3", "evt-2")])

    assert [(fact.player_id, fact.event_id) for fact in store.list_facts()] == [("p1", "evt-1"), ("p3", "evt-2")]
    assert store.list_fact_player_ids(event_id="evt-2") == ["p3"]
    with pytest.raises(ValueError):
        store.replace_event_facts("evt-1", [_fact("p1", "evt-2")])


def test_player_summary_update_leaves_profile_alone(store):
    store.save_player("p1", name="Alex", objectives={"focus": "passing"}, comments="Left footed")
    before = store.get_player("p1")

    summary = PlayerSummary(total_games=1, total_minutes=90, minutes_by_position={"MC": 90})
    store.save_player_summary("p1", summary)

    after = store.get_player("p1")
    assert (after.name, after.objectives, after.comments) == (before.name, before.objectives, before.comments)
    assert after.objectives == {"focus": "passing"}
    assert store.get_player_summary("p1") == summary
    assert store.list_summarized_player_ids() == ["p1"]

    store.save_player("p1", name="Alex B")
    assert store.get_player_summary("p1") == summary


def test_missing_player_raises_key_error(store):
    with pytest.raises(KeyError):
        store.save_player_summary("ghost", PlayerSummary())
    with pytest.raises(KeyError):
        store.get_player_summary("ghost")
    assert store.get_player("ghost") is None


def test_events_and_categories_round_trip(store):
    event = EventInfo(event_id="evt-1", date=date(2024, 5, 1), end_time="12:00", opponent="Rovers")
    store.save_event(event)
    store.save_performance_category(PerformanceCategory(id="cat-1", name="League"))

    assert store.get_event("evt-1") == event
    assert store.get_events(["evt-1", "evt-missing"]) == {"evt-1": event}
    assert store.list_performance_categories() == [PerformanceCategory(id="cat-1", name="League")]


def test_selection_rows_are_tagged_and_filtered(store):
    store.save_selection({"event_id": "evt-2", "assignments": []}, selection_id="b")
    store.save_selection({"eventId": "evt-1", "assignments": []}, selection_id="a")

    rows = store.list_selection_rows()
    assert [row["id"] for row in rows] == ["a", "b"]
    assert [row["id"] for row in store.list_selection_rows(event_id="evt-2")] == ["b"]

    store.delete_selection("a")
    assert [row["id"] for row in store.list_selection_rows()] == ["b"]
    with pytest.raises(KeyError):
        store.delete_selection("a")


def test_job_lifecycle(store):
    job = store.create_job(scope="all")
    assert job.state == "running"
    assert not store.is_cancel_requested(job.job_id)

    cancelled = store.mark_job_cancel_requested(job.job_id, message="stop")
    assert cancelled.cancel_requested_at is not None
    assert store.is_cancel_requested(job.job_id)

    done = store.update_job_state(job.job_id, state="canceled", report={"players_succeeded": 1})
    assert done.completed_at is not None
    assert done.message == "stop"
    assert done.report == {"players_succeeded": 1}
    assert [item.job_id for item in store.list_jobs()] == [job.job_id]

    with pytest.raises(KeyError):
        store.update_job_state("missing", state="completed")


def test_shared_memory_uri():
    store = StatsStore("file:squadstats-test?mode=memory&cache=shared")
    store.replace_all_facts([_fact("p1")])
    assert StatsStore("file:squadstats-test?mode=memory&cache=shared").list_facts()[0].player_id == "p1"
