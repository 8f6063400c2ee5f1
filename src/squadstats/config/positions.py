"""Position name standardization for selection payloads."""

from __future__ import annotations

import re
from typing import Dict, List


SUBSTITUTE_POSITION = "SUB"
UNKNOWN_POSITION = "UNKNOWN"

# Formation slot names as coaches enter them, keyed by the abbreviation the
# fact table stores.
POSITION_ALIAS_GROUPS: Dict[str, List[str]] = {
    "GK": ["GK", "GOALKEEPER", "KEEPER", "GOALIE"],
    "DL": ["DL", "DEFENDER LEFT", "LEFT BACK", "LEFT DEFENDER"],
    "DR": ["DR", "DEFENDER RIGHT", "RIGHT BACK", "RIGHT DEFENDER"],
    "DC": ["DC", "DEFENDER CENTRE", "DEFENDER CENTER", "CENTRE BACK", "CENTER BACK"],
    "DCL": ["DCL", "DEFENDER CENTRE LEFT", "DEFENDER CENTER LEFT", "LEFT CENTRE BACK"],
    "DCR": ["DCR", "DEFENDER CENTRE RIGHT", "DEFENDER CENTER RIGHT", "RIGHT CENTRE BACK"],
    "ML": ["ML", "MIDFIELDER LEFT", "LEFT MIDFIELDER", "LEFT MIDFIELD"],
    "MR": ["MR", "MIDFIELDER RIGHT", "RIGHT MIDFIELDER", "RIGHT MIDFIELD"],
    "MC": ["MC", "MIDFIELDER CENTRE", "MIDFIELDER CENTER", "CENTRE MIDFIELDER", "CENTRAL MIDFIELDER"],
    "MCL": ["MCL", "MIDFIELDER CENTRE LEFT", "MIDFIELDER CENTER LEFT"],
    "MCR": ["MCR", "MIDFIELDER CENTRE RIGHT", "MIDFIELDER CENTER RIGHT"],
    "AML": ["AML", "ATTACKING MIDFIELDER LEFT"],
    "AMR": ["AMR", "ATTACKING MIDFIELDER RIGHT"],
    "AMC": ["AMC", "ATTACKING MIDFIELDER CENTRE", "ATTACKING MIDFIELDER CENTER"],
    "SL": ["SL", "STRIKER LEFT"],
    "SR": ["SR", "STRIKER RIGHT"],
    "SC": ["SC", "STRIKER CENTRE", "STRIKER CENTER", "CENTRE FORWARD", "CENTER FORWARD"],
    "SCL": ["SCL", "STRIKER CENTRE LEFT", "STRIKER CENTER LEFT"],
    "SCR": ["SCR", "STRIKER CENTRE RIGHT", "STRIKER CENTER RIGHT"],
    SUBSTITUTE_POSITION: ["SUB", "SUBS", "SUBSTITUTE", "BENCH"],
}


def _position_token(value: str) -> str:
    return re.sub(r"[^A-Z0-9]", "", value.upper())


def _build_alias_lookup() -> Dict[str, str]:
    lookup: Dict[str, str] = {}
    for abbr, variants in POSITION_ALIAS_GROUPS.items():
        for variant in variants:
            key = _position_token(variant)
            if key:
                lookup.setdefault(key, abbr)
    return lookup


POSITION_ALIAS_LOOKUP = _build_alias_lookup()


def standardize_position(raw: str | None) -> str:
    """Map a raw selection position onto the stored position key.

    Known formation names collapse onto their abbreviation, short codes are
    upper-cased and anything else is kept with its whitespace collapsed.
    """

    if raw is None:
        return UNKNOWN_POSITION
    text = " ".join(raw.split())
    if not text:
        return UNKNOWN_POSITION
    token = _position_token(text)
    if token in POSITION_ALIAS_LOOKUP:
        return POSITION_ALIAS_LOOKUP[token]
    if " " not in text and len(text) <= 4:
        return text.upper()
    return text


def is_substitute_position(position: str | None, sentinel: str = SUBSTITUTE_POSITION) -> bool:
    if not position:
        return False
    return standardize_position(position) == standardize_position(sentinel)
