"""Sensitive field classification for audit records."""
from typing import Iterable, Tuple

from app.config import settings

SENSITIVE_FIELD_MARKERS: Tuple[str, ...] = (
    "password",
    "token",
    "secret",
    "key",
    "hash",
    "salt",
    "credit_card",
    "ssn",
    "social_security",
)

MASK = "***"


def _markers(extra: Iterable[str] = ()) -> Tuple[str, ...]:
    configured = tuple(marker.lower() for marker in settings.AUDIT_EXTRA_SENSITIVE_FIELDS)
    return SENSITIVE_FIELD_MARKERS + configured + tuple(marker.lower() for marker in extra)


def is_sensitive_field(field_name: str, extra_markers: Iterable[str] = ()) -> bool:
    """Return True when any deny-list marker occurs in the lower-cased field name.

    Over-flagging is acceptable (``monkey`` matches ``key``); a false positive only
    hides the value from display, it never blocks the write.
    """
    lowered = str(field_name).lower()
    return any(marker in lowered for marker in _markers(extra_markers))


def mask_value(value, sensitive: bool):
    """Return the mask for sensitive values, the value untouched otherwise."""
    if sensitive and value is not None:
        return MASK
    return value


def mask_record(record):
    """Copy of a flat record with every sensitive key's value masked."""
    if not isinstance(record, dict):
        return record
    return {
        field: mask_value(value, is_sensitive_field(field))
        for field, value in record.items()
    }
