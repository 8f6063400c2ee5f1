"""Load and save JSON dataset snapshots for the stats store."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping

from squadstats.models import EventInfo, PerformanceCategory
from squadstats.persistence import StatsStore


logger = logging.getLogger(__name__)

_EVENT_KEYS = {
    "event_id": ("event_id", "eventId", "id"),
    "end_time": ("end_time", "endTime"),
    "player_of_match_id": ("player_of_match_id", "playerOfMatchId"),
}


def _first_present(item: Mapping[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        if item.get(key) is not None:
            return item[key]
    return None


def _event_from_mapping(item: Mapping[str, Any]) -> EventInfo:
    payload = {key: item.get(key) for key in ("date", "opponent", "title")}
    for target, keys in _EVENT_KEYS.items():
        payload[target] = _first_present(item, keys)
    return EventInfo.model_validate(payload)


@dataclass
class DatasetSnapshot:
    """Collaborator data the engine reads: events, categories, players, selections."""

    events: List[Dict[str, Any]] = field(default_factory=list)
    performance_categories: List[Dict[str, Any]] = field(default_factory=list)
    players: List[Dict[str, Any]] = field(default_factory=list)
    selections: List[Dict[str, Any]] = field(default_factory=list)

    @classmethod
    def load(cls, path: Path) -> "DatasetSnapshot":
        data = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError(f"{path} must contain a JSON object")
        return cls(
            events=data.get("events", []),
            performance_categories=data.get("performance_categories", data.get("performanceCategories", [])),
            players=data.get("players", []),
            selections=data.get("selections", []),
        )

    def save(self, path: Path) -> None:
        payload = {
            "events": self.events,
            "performance_categories": self.performance_categories,
            "players": self.players,
            "selections": self.selections,
        }
        path.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    def apply(self, store: StatsStore) -> Dict[str, int]:
        """Write the snapshot into ``store`` and return per-kind counts.

        Selections are stored verbatim; validation happens on rebuild so a
        malformed row is quarantined there rather than rejected here.
        """

        for item in self.events:
            store.save_event(_event_from_mapping(item))
        for item in self.performance_categories:
            store.save_performance_category(PerformanceCategory.model_validate(item))
        for item in self.players:
            player_id = _first_present(item, ("id", "player_id", "playerId"))
            if player_id is None:
                raise ValueError(f"Player entry without an id: {item!r}")
            store.save_player(
                str(player_id),
                name=str(item.get("name") or ""),
                objectives=item.get("objectives"),
                comments=item.get("comments"),
            )
        for item in self.selections:
            store.save_selection(item)
        counts = {
            "events": len(self.events),
            "performance_categories": len(self.performance_categories),
            "players": len(self.players),
            "selections": len(self.selections),
        }
        logger.info(
            "Imported %s events, %s categories, %s players, %s selections",
            counts["events"],
            counts["performance_categories"],
            counts["players"],
            counts["selections"],
        )
        return counts
