"""Fact derivation and completion gating."""

from .completion import is_eligible, parse_end_time
from .facts import (
    DUPLICATE_ASSIGNMENT,
    MALFORMED_SELECTION,
    DerivationIssue,
    FactDerivation,
    derive_facts,
)

__all__ = [
    "DUPLICATE_ASSIGNMENT",
    "DerivationIssue",
    "FactDerivation",
    "MALFORMED_SELECTION",
    "derive_facts",
    "is_eligible",
    "parse_end_time",
]
