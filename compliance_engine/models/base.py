"""
Shared helpers for the dataclass domain models.

Enum coercion raises ValidationError so malformed input is rejected at
construction; datetimes are always timezone-aware UTC and serialise to
ISO-8601.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import TypeVar

from compliance_engine.core.exceptions import ValidationError

EnumT = TypeVar("EnumT", bound=Enum)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def coerce_enum(enum_cls: type[EnumT], value, field_name: str) -> EnumT:
    """Return ``value`` as a member of ``enum_cls`` or raise ValidationError."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = [m.value for m in enum_cls]
        raise ValidationError(
            f"Invalid {field_name}: {value!r}",
            details={field_name: f"must be one of {allowed}"},
        ) from None


def to_iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def from_iso(value) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def check_range(value, low, high, field_name: str):
    """Raise ValidationError unless ``low <= value <= high``."""
    if value is None or not (low <= value <= high):
        raise ValidationError(
            f"{field_name} must be between {low} and {high}",
            details={field_name: value},
        )
    return value
