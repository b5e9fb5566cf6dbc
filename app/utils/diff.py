"""Field-level diffing of JSON-like records for the audit trail.

Every function here is pure: no I/O, no exceptions on odd shapes. Records are
plain ``dict`` objects whose values are ``JsonValue``; anything else that slips
through (datetimes, UUIDs, Decimals from ORM snapshots) is tolerated and typed
as ``"unknown"`` or serialized through ``str``.
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Union
from uuid import UUID

from app.models.audit import ChangeType
from app.utils.sensitivity import is_sensitive_field

JsonValue = Union[None, bool, int, float, str, List["JsonValue"], Dict[str, "JsonValue"]]
JsonRecord = Dict[str, JsonValue]

DATE_PREFIX = re.compile(r"^\d{4}-\d{2}-\d{2}")
MAX_SERIALIZED_LENGTH = 10000


@dataclass(frozen=True)
class FieldChange:
    """One changed field, before serialization for storage."""

    field: str
    old_value: Any
    new_value: Any
    type: str
    is_sensitive: bool

    @property
    def change_type(self) -> ChangeType:
        return determine_change_type(self.old_value, self.new_value)


def infer_field_type(value: Any) -> str:
    """Advisory type tag for a value; never raises."""
    if value is None:
        return "null"
    # bool before int: bool is a subclass of int
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float, Decimal)):
        return "number"
    if isinstance(value, str):
        return "date" if DATE_PREFIX.match(value) else "string"
    if isinstance(value, (datetime, date)):
        return "date"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, Mapping):
        return "json"
    return "unknown"


def _json_default(value: Any) -> str:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def _canonical(value: Any) -> str:
    return json.dumps(value, sort_keys=True, default=_json_default)


def values_differ(old_value: Any, new_value: Any) -> bool:
    """Structural comparison for objects and arrays, direct equality otherwise."""
    structured = (Mapping, list, tuple)
    if isinstance(old_value, structured) or isinstance(new_value, structured):
        return _canonical(old_value) != _canonical(new_value)
    if isinstance(old_value, bool) != isinstance(new_value, bool):
        # True == 1 in Python, but a flag flipping to a number is a change
        return True
    return old_value != new_value


def determine_change_type(old_value: Any, new_value: Any) -> ChangeType:
    if old_value is None and new_value is not None:
        return ChangeType.ADDED
    if old_value is not None and new_value is None:
        return ChangeType.REMOVED
    return ChangeType.MODIFIED


def serialize_value(value: Any) -> Optional[str]:
    """Serialize a value to text for storage; strings are stored verbatim."""
    if value is None:
        return None
    if isinstance(value, str):
        text = value
    elif isinstance(value, (UUID, Decimal)):
        text = str(value)
    elif isinstance(value, (datetime, date)):
        text = value.isoformat()
    else:
        try:
            text = json.dumps(value, default=_json_default, ensure_ascii=False)
        except (TypeError, ValueError):
            text = str(value)
    if len(text) > MAX_SERIALIZED_LENGTH:
        text = text[:MAX_SERIALIZED_LENGTH]
    return text


def _entry(field: str, old_value: Any, new_value: Any, typed_value: Any) -> FieldChange:
    return FieldChange(
        field=field,
        old_value=old_value,
        new_value=new_value,
        type=infer_field_type(typed_value),
        is_sensitive=is_sensitive_field(field),
    )


def changes_for_create(new_record: Optional[Mapping[str, Any]]) -> List[FieldChange]:
    """Every present, non-null key becomes an ADDED entry."""
    if not isinstance(new_record, Mapping):
        return []
    return [
        _entry(field, None, value, value)
        for field, value in new_record.items()
        if value is not None
    ]


def changes_for_update(
    old_record: Optional[Mapping[str, Any]],
    candidate_record: Optional[Mapping[str, Any]],
) -> List[FieldChange]:
    """Only keys present in ``candidate_record`` are compared; partial updates are legal."""
    if not isinstance(candidate_record, Mapping):
        return []
    old_record = old_record if isinstance(old_record, Mapping) else {}

    changes: List[FieldChange] = []
    for field, new_value in candidate_record.items():
        old_value = old_record.get(field)
        if values_differ(old_value, new_value):
            changes.append(_entry(field, old_value, new_value, new_value if new_value is not None else old_value))
    return changes


def changes_for_delete(old_record: Optional[Mapping[str, Any]]) -> List[FieldChange]:
    """Every present, non-null key becomes a REMOVED entry."""
    if not isinstance(old_record, Mapping):
        return []
    return [
        _entry(field, value, None, value)
        for field, value in old_record.items()
        if value is not None
    ]


def to_json_record(values: Mapping[str, Any]) -> JsonRecord:
    """Coerce ORM-ish values (UUID, datetime, Decimal) into JSON-safe primitives."""
    record: JsonRecord = {}
    for field, value in values.items():
        if isinstance(value, (UUID, Decimal)):
            record[field] = str(value)
        elif isinstance(value, (datetime, date)):
            record[field] = value.isoformat()
        elif isinstance(value, (list, tuple)):
            record[field] = [
                str(item) if isinstance(item, (UUID, Decimal)) else item for item in value
            ]
        else:
            record[field] = value
    return record
