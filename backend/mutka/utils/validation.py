from __future__ import annotations
"""Reusable validation helpers for request payloads.

Status lifecycle validation plus money/currency parsing, all failing with a 400.
"""
from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional
from flask import abort


def validate_status(new_status: str, allowed: Iterable[str], field_name: str = 'status') -> str:
    """Validate that new_status is inside allowed.

    Returns the status (to enable inline usage) or aborts with 400.
    """
    if new_status not in allowed:
        abort(400, description=f"{field_name} invalid")
    return new_status


def parse_amount(raw, field_name: str = 'amount', *, positive: bool = False, non_negative: bool = False,
                 required: bool = True, default: Optional[Decimal] = None) -> Optional[Decimal]:
    """Coerce a JSON number/string into Decimal.

    `positive` demands > 0, `non_negative` demands >= 0.
    """
    if raw is None or raw == '':
        if required and default is None:
            abort(400, description=f'{field_name} required')
        return default
    if isinstance(raw, bool):
        abort(400, description=f'{field_name} invalid')
    try:
        value = Decimal(str(raw))
    except (InvalidOperation, ValueError):
        abort(400, description=f'{field_name} invalid')
    if not value.is_finite():
        abort(400, description=f'{field_name} invalid')
    if positive and value <= 0:
        abort(400, description=f'{field_name} must be positive')
    if non_negative and value < 0:
        abort(400, description=f'{field_name} must not be negative')
    return value


def parse_id(raw, field_name: str = 'id') -> int:
    """Coerce a JSON id (number or numeric string) into int, or abort with 400 '<field> invalid'."""
    if isinstance(raw, bool):
        abort(400, description=f'{field_name} invalid')
    try:
        return int(raw)
    except (TypeError, ValueError):
        abort(400, description=f'{field_name} invalid')


def validate_currency(code, allowed: Optional[Iterable[str]] = None, field_name: str = 'currency') -> str:
    if not code or not isinstance(code, str):
        abort(400, description=f'{field_name} required')
    code = code.strip().upper()
    if allowed is not None and code not in allowed:
        abort(400, description=f'{field_name} invalid')
    return code


def require_fields(data: dict, *names: str):
    missing = [n for n in names if data.get(n) in (None, '')]
    if missing:
        abort(400, description=f"{', '.join(missing)} required")


def money(value) -> Optional[float]:
    """JSON rendering of Numeric columns."""
    if value is None:
        return None
    return float(value)

__all__ = ['validate_status', 'parse_amount', 'validate_currency', 'require_fields', 'money']
