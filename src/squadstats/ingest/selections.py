"""Validate raw selection payloads before they reach the fact deriver."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Optional

from pydantic import ValidationError

from squadstats.models import SelectionRecord


logger = logging.getLogger(__name__)

_POSITIONS_KEYS = ("player_positions", "playerPositions")
_SUBSTITUTE_FLAG_KEYS = ("isSubstitute", "is_substitute")
_TRUE_FLAG_STRINGS = frozenset({"true", "1", "yes", "y", "on", "t"})


@dataclass(frozen=True)
class QuarantinedSelection:
    """A selection payload rejected at the ingestion boundary."""

    selection_id: Optional[str]
    event_id: Optional[str]
    reason: str


@dataclass
class SelectionBatch:
    records: List[SelectionRecord] = field(default_factory=list)
    quarantined: List[QuarantinedSelection] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.records) + len(self.quarantined)


def _describe_error(exc: Exception) -> str:
    if isinstance(exc, ValidationError):
        parts = []
        for error in exc.errors():
            location = ".".join(str(part) for part in error.get("loc", ())) or "payload"
            parts.append(f"{location}: {error.get('msg', 'invalid value')}")
        return "; ".join(parts)
    return str(exc)


def _flag_is_set(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_FLAG_STRINGS
    return value is True or (isinstance(value, int) and value == 1)


def _is_flagged_substitute(entry: Mapping[str, Any]) -> bool:
    # Unrecognised values stay with the starters and are rejected by the model.
    return any(_flag_is_set(entry.get(key)) for key in _SUBSTITUTE_FLAG_KEYS)


def _expand_player_positions(row: Mapping[str, Any]) -> dict[str, Any]:
    """Split a combined ``player_positions`` list into starters and substitutes."""

    payload = dict(row)
    positions: Any = None
    for key in _POSITIONS_KEYS:
        if key in payload:
            positions = payload.pop(key)
            break
    if positions is None:
        return payload
    if not isinstance(positions, list):
        raise ValueError(f"player_positions must be a list, got {type(positions).__name__}")

    assignments = list(payload.get("assignments") or [])
    substitutes = list(payload.get("substitutes") or [])
    for entry in positions:
        if not isinstance(entry, Mapping):
            raise ValueError(f"player_positions entries must be objects, got {type(entry).__name__}")
        if _is_flagged_substitute(entry):
            substitutes.append(entry)
        else:
            assignments.append(entry)
    payload["assignments"] = assignments
    payload["substitutes"] = substitutes
    return payload


def parse_selection_row(row: Mapping[str, Any]) -> SelectionRecord:
    """Validate one stored selection payload, raising ``ValueError`` when malformed."""

    if not isinstance(row, Mapping):
        raise ValueError(f"selection payload must be an object, got {type(row).__name__}")
    payload = _expand_player_positions(row)
    return SelectionRecord.model_validate(payload)


def parse_selection_rows(rows: Iterable[Mapping[str, Any]]) -> SelectionBatch:
    """Validate every payload, quarantining the ones that cannot be trusted."""

    batch = SelectionBatch()
    for row in rows:
        try:
            batch.records.append(parse_selection_row(row))
        except ValueError as exc:
            selection_id = None
            event_id = None
            if isinstance(row, Mapping):
                selection_id = row.get("id")
                event_id = row.get("event_id") or row.get("eventId")
            reason = _describe_error(exc)
            logger.warning(
                "Quarantined selection %s (event %s): %s",
                selection_id or "<unknown>",
                event_id or "<unknown>",
                reason,
            )
            batch.quarantined.append(
                QuarantinedSelection(
                    selection_id=str(selection_id) if selection_id is not None else None,
                    event_id=str(event_id) if event_id is not None else None,
                    reason=reason,
                )
            )
    if batch.quarantined:
        logger.info(
            "Validated %s selections (%s quarantined)",
            len(batch.records),
            len(batch.quarantined),
        )
    return batch


def load_selection_file(path: Path) -> SelectionBatch:
    """Read a JSON array of selection payloads from disk."""

    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, list):
        raise ValueError(f"{path} must contain a JSON array of selections")
    return parse_selection_rows(data)
