"""Expand selection records into per-player-per-period fact rows."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Iterator, List, Optional, Tuple

from squadstats.config import EngineSettings, is_substitute_position, standardize_position
from squadstats.models import Assignment, FactRow, SelectionRecord
from squadstats.models.facts import FactKey


logger = logging.getLogger(__name__)

MALFORMED_SELECTION = "malformed_selection"
DUPLICATE_ASSIGNMENT = "duplicate_assignment"


@dataclass(frozen=True)
class DerivationIssue:
    """Data-quality problem recovered from while deriving facts."""

    kind: str
    event_id: str
    team_number: int
    period_number: int
    player_id: Optional[str]
    message: str


@dataclass
class FactDerivation:
    facts: List[FactRow] = field(default_factory=list)
    issues: List[DerivationIssue] = field(default_factory=list)

    @property
    def player_ids(self) -> List[str]:
        return sorted({fact.player_id for fact in self.facts})

    def issues_of(self, kind: str) -> List[DerivationIssue]:
        return [issue for issue in self.issues if issue.kind == kind]


def _iter_assignments(selection: SelectionRecord) -> Iterator[Tuple[Assignment, bool]]:
    for assignment in selection.assignments:
        yield assignment, False
    for assignment in selection.substitutes:
        yield assignment, True


def _resolve_minutes(assignment: Assignment, selection: SelectionRecord, settings: EngineSettings) -> int:
    if assignment.minutes is not None:
        return assignment.minutes
    if selection.duration_minutes is not None:
        return selection.duration_minutes
    return settings.default_duration_minutes


def _to_fact(
    assignment: Assignment,
    selection: SelectionRecord,
    *,
    from_bench: bool,
    settings: EngineSettings,
) -> FactRow:
    position = standardize_position(assignment.position)
    # Either signal alone marks a substitute.
    is_substitute = (
        from_bench
        or assignment.is_substitute
        or is_substitute_position(position, settings.substitute_sentinel)
    )
    return FactRow(
        player_id=assignment.player_id or "",
        event_id=selection.event_id,
        team_number=selection.team_number,
        period_number=selection.period_number,
        position=position,
        minutes_played=_resolve_minutes(assignment, selection, settings),
        is_captain=selection.captain_id is not None and assignment.player_id == selection.captain_id,
        is_substitute=is_substitute,
        substitution_time=assignment.substitution_time,
        performance_category_id=selection.performance_category_id,
    )


def _issue(kind: str, selection: SelectionRecord, player_id: Optional[str], message: str) -> DerivationIssue:
    logger.warning(
        "%s in event %s team %s period %s: %s",
        kind,
        selection.event_id,
        selection.team_number,
        selection.period_number,
        message,
    )
    return DerivationIssue(
        kind=kind,
        event_id=selection.event_id,
        team_number=selection.team_number,
        period_number=selection.period_number,
        player_id=player_id,
        message=message,
    )


def derive_facts(
    selections: Iterable[SelectionRecord],
    *,
    settings: EngineSettings | None = None,
) -> FactDerivation:
    """Build one fact row per (player, event, team number, period number).

    Pure: the only output is the returned derivation. Assignments without a
    player id and repeated players inside one slice are dropped and reported
    as issues instead of aborting the pass.
    """

    settings = settings or EngineSettings()
    result = FactDerivation()
    seen: set[FactKey] = set()
    selection_count = 0

    for selection in selections:
        selection_count += 1
        for assignment, from_bench in _iter_assignments(selection):
            if not assignment.player_id:
                result.issues.append(
                    _issue(
                        MALFORMED_SELECTION,
                        selection,
                        None,
                        f"assignment at position {assignment.position or '<blank>'!r} has no player id",
                    )
                )
                continue
            key: FactKey = (assignment.player_id, *selection.slice_key)
            if key in seen:
                result.issues.append(
                    _issue(
                        DUPLICATE_ASSIGNMENT,
                        selection,
                        assignment.player_id,
                        f"player {assignment.player_id} listed more than once; keeping the first entry",
                    )
                )
                continue
            try:
                fact = _to_fact(assignment, selection, from_bench=from_bench, settings=settings)
            except ValueError as exc:
                result.issues.append(_issue(MALFORMED_SELECTION, selection, assignment.player_id, str(exc)))
                continue
            seen.add(key)
            result.facts.append(fact)

    logger.info(
        "Derived %s fact rows from %s selections (%s issues)",
        len(result.facts),
        selection_count,
        len(result.issues),
    )
    return result
