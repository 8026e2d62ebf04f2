from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from enum import Enum
from typing import TypeVar

from app.dms.errors import ValidationFailed

E = TypeVar("E", bound=Enum)


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime(timezone=False) columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


def parse_enum(enum_cls: type[E], value: object, field: str) -> E:
    """Coerce a raw value into a member of a closed enumeration."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip())
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationFailed(f"Invalid {field}. Must be one of: {allowed}", field=field) from None


def parse_date(s: str | date | None) -> date | None:
    """Parse YYYY-MM-DD date string."""
    if s is None or isinstance(s, date):
        return s
    s = s.strip()
    if not s:
        return None
    try:
        return date.fromisoformat(s)
    except ValueError:
        raise ValidationFailed(f"Invalid date: {s!r}") from None


def parse_datetime(s: str | None) -> datetime | None:
    if not s:
        return None
    try:
        return datetime.fromisoformat(s.strip())
    except ValueError:
        raise ValidationFailed(f"Invalid timestamp: {s!r}") from None


def clean_str(value: object) -> str:
    return str(value or "").strip()


def clean_str_list(value: object, field: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        raise ValidationFailed(f"{field} must be a list of strings.", field=field)
    return [str(v).strip() for v in value if str(v).strip()]


def isoformat(value: datetime | date | None) -> str | None:
    return value.isoformat() if value is not None else None
