# buyer_leads/services/enum_mapping.py
"""Translation between human-facing enum labels and stored enum codes.

Each mapped field has one table, human label -> storage member. The inverse
is derived, and both directions are checked to be a bijection when this
module is imported.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional, Type

from buyer_leads.core.exceptions import InvalidEnumValueError
from buyer_leads.models.enums import BHK, Source, Timeline

BHK_FIELD = "bhk"
TIMELINE_FIELD = "timeline"
SOURCE_FIELD = "source"

BHK_LABELS: Dict[str, BHK] = {
    "Studio": BHK.STUDIO,
    "1": BHK.ONE,
    "2": BHK.TWO,
    "3": BHK.THREE,
    "4": BHK.FOUR,
}

TIMELINE_LABELS: Dict[str, Timeline] = {
    "0-3m": Timeline.ZERO_TO_THREE_MONTHS,
    "3-6m": Timeline.THREE_TO_SIX_MONTHS,
    ">6m": Timeline.MORE_THAN_SIX_MONTHS,
    "Exploring": Timeline.EXPLORING,
}

SOURCE_LABELS: Dict[str, Source] = {
    "Website": Source.WEBSITE,
    "Referral": Source.REFERRAL,
    "Walk-in": Source.WALK_IN,
    "Call": Source.CALL,
    "Other": Source.OTHER,
}

_TABLES: Dict[str, Dict[str, Enum]] = {
    BHK_FIELD: BHK_LABELS,
    TIMELINE_FIELD: TIMELINE_LABELS,
    SOURCE_FIELD: SOURCE_LABELS,
}

_ENUMS: Dict[str, Type[Enum]] = {
    BHK_FIELD: BHK,
    TIMELINE_FIELD: Timeline,
    SOURCE_FIELD: Source,
}

# Fields where an empty input means "no value" rather than an error
_OPTIONAL_FIELDS = frozenset({BHK_FIELD})

# Placeholders spreadsheets use for an empty cell
_BLANK_MARKERS = frozenset({"", "-"})


def _check_bijection() -> Dict[str, Dict[Enum, str]]:
    inverse: Dict[str, Dict[Enum, str]] = {}
    for field, table in _TABLES.items():
        members = set(_ENUMS[field])
        if set(table.values()) != members or len(table) != len(members):
            raise RuntimeError(f"enum mapping for {field!r} is not a bijection")
        inverse[field] = {member: label for label, member in table.items()}
    return inverse


_INVERSE = _check_bijection()


def _table(field: str) -> Dict[str, Enum]:
    try:
        return _TABLES[field]
    except KeyError:
        raise ValueError(f"no enum mapping for field {field!r}") from None


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() in _BLANK_MARKERS)


def labels(field: str) -> tuple:
    """Human labels accepted for ``field``, in declaration order."""
    return tuple(_table(field))


def to_storage_enum(field: str, human_value: Any) -> Optional[Enum]:
    """Map a human label to its storage member.

    Raises ``InvalidEnumValueError`` for unknown labels. Blank input is
    ``None`` for BHK and an error for timeline and source.
    """
    table = _table(field)

    if is_blank(human_value):
        if field in _OPTIONAL_FIELDS:
            return None
        raise InvalidEnumValueError(field, human_value)

    key = human_value.strip() if isinstance(human_value, str) else human_value
    member = table.get(key) if isinstance(key, str) else None
    if member is None:
        raise InvalidEnumValueError(field, human_value)
    return member


def from_storage_enum(field: str, storage_value: Any) -> Optional[str]:
    """Map a storage member (or its code) back to the human label."""
    inverse = _INVERSE.get(field)
    if inverse is None:
        raise ValueError(f"no enum mapping for field {field!r}")

    if storage_value is None:
        if field in _OPTIONAL_FIELDS:
            return None
        raise InvalidEnumValueError(field, storage_value)

    try:
        member = _ENUMS[field](storage_value)
    except ValueError:
        raise InvalidEnumValueError(field, storage_value) from None
    return inverse[member]


def canonical_label(field: str, raw: Any) -> Any:
    """Normalize ``raw`` to the human label, accepting a label or a storage code.

    Blank input becomes ``None``. Values found in neither direction are
    returned unchanged so the validator can report them.
    """
    table = _table(field)

    if is_blank(raw):
        return None
    if not isinstance(raw, str):
        return raw

    value = raw.strip()
    if value in table:
        return value
    try:
        return _INVERSE[field][_ENUMS[field](value)]
    except ValueError:
        return raw
