from __future__ import annotations
from typing import Any, Dict, Mapping
from flask import abort

FilterSpecs = Dict[str, Dict[str, Any]]


def apply_filters(query, specs: FilterSpecs, params: Mapping[str, Any]):
    """Narrow `query` by the query-string parameters named in `specs`.

    Each spec: {'op': fn(query, value) -> query, 'coerce': fn (optional), 'validate': fn -> bool (optional)}.
    Absent and empty parameters leave the query alone; a value that fails coercion
    or validation is a 400 '<name> invalid'.
    """
    for name, spec in specs.items():
        raw = params.get(name)
        if raw in (None, ''):
            continue
        value = raw
        coerce = spec.get('coerce')
        if coerce is not None:
            try:
                value = coerce(raw)
            except (TypeError, ValueError, ArithmeticError):
                abort(400, description=f'{name} invalid')
        check = spec.get('validate')
        if check is not None and not check(value):
            abort(400, description=f'{name} invalid')
        query = spec['op'](query, value)
    return query


def truthy_flag(params: Mapping[str, Any], name: str) -> bool:
    return str(params.get(name, '')).lower() in ('1', 'true', 'yes')

__all__ = ['apply_filters', 'truthy_flag']
