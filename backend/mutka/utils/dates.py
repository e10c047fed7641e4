from __future__ import annotations
from datetime import datetime, date, timezone, time
from typing import Optional
from flask import abort


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def today() -> date:
    return utcnow().date()


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def start_of_day(d: date) -> datetime:
    return datetime.combine(d, time.min, tzinfo=timezone.utc)


def end_of_day(d: date) -> datetime:
    return datetime.combine(d, time(23, 59, 59, 999999), tzinfo=timezone.utc)


def parse_date(value, field_name: str = 'date', required: bool = False) -> Optional[date]:
    """Parse YYYY-MM-DD (or a full ISO timestamp) into a date; 400 on garbage."""
    if value in (None, ''):
        if required:
            abort(400, description=f'{field_name} required')
        return None
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        abort(400, description=f'{field_name} invalid')


def parse_datetime(value, field_name: str = 'datetime') -> Optional[datetime]:
    if value in (None, ''):
        return None
    try:
        dt = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        abort(400, description=f'{field_name} invalid')
    return as_utc(dt)


def iso(value) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return as_utc(value).isoformat().replace('+00:00', 'Z')
    if isinstance(value, date):
        return value.isoformat()
    return str(value)

__all__ = ['utcnow', 'today', 'as_utc', 'start_of_day', 'end_of_day', 'parse_date', 'parse_datetime', 'iso']
