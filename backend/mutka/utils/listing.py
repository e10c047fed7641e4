from __future__ import annotations
from typing import Callable, Iterable, Optional, Tuple
from flask import request, abort, make_response, jsonify
from sqlalchemy.orm import Query
from mutka.config.settings import normalize_pagination
import hashlib
from datetime import datetime, timezone, timedelta
from email.utils import parsedate_to_datetime, format_datetime

TIMESTAMP_TOLERANCE = timedelta(seconds=1)


def canonicalize_timestamp(dt: datetime) -> datetime:
    """Return UTC tz-aware timestamp truncated to whole seconds."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).replace(microsecond=0)


def _iso(dt: datetime) -> str:
    return dt.isoformat().replace('+00:00', 'Z')


def apply_pagination(q: Query, default_limit: Optional[int] = None) -> Tuple[Query, int, int, int]:
    try:
        if default_limit is None:
            limit, offset = normalize_pagination(request.args.get('limit'), request.args.get('offset'))
        else:
            limit, offset = normalize_pagination(request.args.get('limit'), request.args.get('offset'), default_limit)
    except ValueError as e:
        abort(400, description=str(e))
    total = q.order_by(None).count()
    return q.offset(offset).limit(limit), total, limit, offset


def compute_etag(ids: Iterable, total: int, limit: int, offset: int, latest_ts: Optional[str] = '') -> str:
    seed = f"{list(ids)}|{total}|{limit}|{offset}|{latest_ts or ''}"
    return hashlib.sha256(seed.encode()).hexdigest()[:32]


def build_list_payload(rows: list, total: int, limit: int, offset: int):
    return {
        'data': rows,
        'pagination': {
            'total': total,
            'limit': limit,
            'offset': offset,
            'returned': len(rows),
        },
    }


def _http_date(dt: datetime) -> str:
    return format_datetime(dt, usegmt=True)


def _stamp(resp, etag: str, latest_ts: Optional[datetime]):
    resp.headers['ETag'] = etag
    if latest_ts:
        latest_c = canonicalize_timestamp(latest_ts)
        resp.headers['Last-Modified'] = _http_date(latest_c)
        resp.headers['X-Last-Modified-ISO'] = _iso(latest_c)
    return resp


def make_cached_list_response(rows: list, total: int, limit: int, offset: int, latest_ts: Optional[datetime] = None):
    ids = [r.get('id') for r in rows]
    latest_iso = _iso(canonicalize_timestamp(latest_ts)) if isinstance(latest_ts, datetime) else ''
    etag = compute_etag(ids, total, limit, offset, latest_iso)
    resp = make_response(build_list_payload(rows, total, limit, offset))
    _stamp(resp, etag, latest_ts if isinstance(latest_ts, datetime) else None)
    return resp, etag


def _parse_if_modified_since(header_val: str) -> Optional[datetime]:
    if not header_val:
        return None
    try:
        dt = datetime.fromisoformat(header_val.replace('Z', '+00:00'))
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt
    except ValueError:
        pass
    try:
        dt = parsedate_to_datetime(header_val)
    except (TypeError, ValueError):
        return None
    if dt and dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def handle_conditional(etag_value: str, latest_ts: Optional[datetime]):
    """Evaluate conditional request headers.

    If-None-Match wins over If-Modified-Since.
    Returns a 304 response object if conditions are satisfied, else None.
    """
    inm = request.headers.get('If-None-Match')
    if inm and inm.strip('"') == etag_value:
        return _stamp(make_response('', 304), etag_value, latest_ts)
    ims_raw = request.headers.get('If-Modified-Since')
    if ims_raw and latest_ts:
        ims_dt = _parse_if_modified_since(ims_raw)
        if ims_dt:
            latest_c = canonicalize_timestamp(latest_ts)
            if latest_c <= canonicalize_timestamp(ims_dt) + TIMESTAMP_TOLERANCE:
                return _stamp(make_response('', 304), etag_value, latest_ts)
    return None


def latest_timestamp(rows, attr: str = 'updated_at') -> Optional[datetime]:
    stamps = [canonicalize_timestamp(getattr(r, attr)) for r in rows if getattr(r, attr, None)]
    return max(stamps) if stamps else None


def list_response(q: Query, serialize: Callable, ts_attr: str = 'updated_at', default_limit: Optional[int] = None):
    """Paginate `q`, serialize rows and answer with list caching headers (GET and HEAD)."""
    q, total, limit, offset = apply_pagination(q, default_limit)
    items = q.all()
    rows = [serialize(r) for r in items]
    latest_ts = latest_timestamp(items, ts_attr)
    resp, etag = make_cached_list_response(rows, total, limit, offset, latest_ts)
    cond = handle_conditional(etag, latest_ts)
    if cond:
        return cond
    if request.method == 'HEAD':
        resp.set_data(b'')
    return resp


def single_response(body: dict, latest_ts: Optional[datetime] = None):
    """Single-entity response carrying ETag/Last-Modified; honours HEAD and conditionals."""
    latest_iso = _iso(canonicalize_timestamp(latest_ts)) if latest_ts else ''
    etag = compute_etag([body.get('id')], 1, 1, 0, latest_iso)
    cond = handle_conditional(etag, latest_ts)
    if cond:
        return cond
    resp = make_response(jsonify(body))
    _stamp(resp, etag, latest_ts)
    if request.method == 'HEAD':
        resp.set_data(b'')
    return resp
