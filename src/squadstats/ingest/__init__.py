"""Input adapters that validate raw selection payloads."""

from .selections import (
    QuarantinedSelection,
    SelectionBatch,
    load_selection_file,
    parse_selection_row,
    parse_selection_rows,
)

__all__ = [
    "QuarantinedSelection",
    "SelectionBatch",
    "load_selection_file",
    "parse_selection_row",
    "parse_selection_rows",
]
