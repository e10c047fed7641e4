from __future__ import annotations
from typing import Iterator, Tuple
from flask import abort


def parse_sort(sort_expr: str | None) -> Iterator[Tuple[str, bool]]:
    """Yield (field, descending) pairs from `?sort=name,-balance`; blank tokens are skipped."""
    for token in (sort_expr or '').split(','):
        token = token.strip()
        if token:
            yield token.lstrip('-'), token.startswith('-')


def apply_multi_sort(query, sort_expr: str | None, allowed: dict, tie_breaker, default=None):
    """Order `query` by the requested fields, or by `default` when none are given.

    `allowed` maps public field names to columns; anything else is a 400.
    `tie_breaker` (ascending) always comes last so pages are stable.
    """
    clauses = []
    seen = set()
    for key, desc in parse_sort(sort_expr):
        col = allowed.get(key)
        if col is None:
            abort(400, description=f'Invalid sort field {key}')
        if key in seen:
            continue
        seen.add(key)
        clauses.append(col.desc() if desc else col.asc())
    if not clauses:
        clauses = list(default or [])
    return query.order_by(*clauses, tie_breaker.asc())

__all__ = ['parse_sort', 'apply_multi_sort']
