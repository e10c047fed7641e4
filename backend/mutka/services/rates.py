"""Currency rates: provider fetches, cross-rate matrix, system rates and their history.

Providers are plain `requests` calls with a timeout. A failing provider is logged and the
next fallback is used; nothing in here raises to the HTTP client except `abort(404)`s
raised by the routes on top of the None results.
"""
from __future__ import annotations
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Dict, List, Optional, Tuple

import requests
from flask import current_app
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from mutka.constants.currencies import (
    SUPPORTED_CURRENCIES, DEFAULT_USD_TO_RUB, DEFAULT_USD_TO_EUR, FALLBACK_RATES, SYSTEM_RATE_DEFAULTS,
    COINGECKO_IDS, COINGECKO_PRICE_URL, EXCHANGERATE_API_URL,
)
from mutka.models.currency import CurrencyRate, SystemCurrencyRate, CurrencyRateHistory
from mutka.utils.dates import utcnow, end_of_day

FOUR_PLACES = Decimal('0.0001')
HEADERS = {'User-Agent': 'MutkaERP/1.0'}
_FETCH_ERRORS = (requests.RequestException, ValueError, KeyError, TypeError, InvalidOperation)


def _timeout() -> float:
    return float(current_app.config.get('RATES_HTTP_TIMEOUT', 8))


def _get_json(url: str, params: Optional[dict] = None):
    resp = requests.get(url, params=params, headers=HEADERS, timeout=_timeout())
    resp.raise_for_status()
    return resp.json()


def fetch_usd_rates() -> Dict[str, object]:
    """USD->RUB and USD->EUR from the configured provider, defaults on any failure."""
    url = current_app.config.get('RATES_API_URL')
    try:
        rates = _get_json(url).get('rates') or {}
        usd_to_rub = Decimal(str(rates['RUB']))
        usd_to_eur = Decimal(str(rates['EUR']))
        if usd_to_rub <= 0 or usd_to_eur <= 0:
            raise ValueError('non-positive rate')
        return {'usd_to_rub': usd_to_rub, 'usd_to_eur': usd_to_eur, 'source': 'api'}
    except _FETCH_ERRORS as e:
        current_app.logger.warning('Rates fetch from %s failed, using defaults: %s', url, e)
        return {'usd_to_rub': DEFAULT_USD_TO_RUB, 'usd_to_eur': DEFAULT_USD_TO_EUR, 'source': 'default'}


def build_cross_rates(usd_to_rub: Decimal, usd_to_eur: Decimal) -> List[Tuple[str, str, Decimal]]:
    usd_per_unit = {
        'USD': Decimal('1'),
        'USDT': Decimal('1'),
        'RUB': Decimal('1') / Decimal(usd_to_rub),
        'EUR': Decimal('1') / Decimal(usd_to_eur),
    }
    matrix = []
    for src in SUPPORTED_CURRENCIES:
        for dst in SUPPORTED_CURRENCIES:
            if src == dst:
                continue
            rate = (usd_per_unit[src] / usd_per_unit[dst]).quantize(FOUR_PLACES, rounding=ROUND_HALF_UP)
            matrix.append((src, dst, rate))
    return matrix


def save_rates(session, matrix, source: str = 'api') -> int:
    session.execute(delete(CurrencyRate))
    now = utcnow()
    for src, dst, rate in matrix:
        session.add(CurrencyRate(from_currency=src, to_currency=dst, rate=rate, source=source, valid_from=now))
    session.flush()
    return len(matrix)


def refresh_currency_rates(session) -> dict:
    fetched = fetch_usd_rates()
    matrix = build_cross_rates(fetched['usd_to_rub'], fetched['usd_to_eur'])
    count = save_rates(session, matrix, source=fetched['source'])
    return {'success': True, 'count': count, 'source': fetched['source']}


def _stored_rate(session, from_currency: str, to_currency: str) -> Optional[CurrencyRate]:
    stmt = (
        select(CurrencyRate)
        .where(CurrencyRate.from_currency == from_currency, CurrencyRate.to_currency == to_currency)
        .order_by(CurrencyRate.valid_from.desc(), CurrencyRate.id.desc())
        .limit(1)
    )
    return session.execute(stmt).scalar_one_or_none()


def get_exchange_rate(session, from_currency: str, to_currency: str) -> dict:
    from_currency, to_currency = from_currency.upper(), to_currency.upper()
    if from_currency == to_currency:
        return {'rate': Decimal('1'), 'source': 'system'}
    row = _stored_rate(session, from_currency, to_currency)
    if row:
        return {'rate': Decimal(row.rate), 'source': 'db'}
    fetched = fetch_usd_rates()
    if fetched['source'] == 'api':
        matrix = build_cross_rates(fetched['usd_to_rub'], fetched['usd_to_eur'])
        save_rates(session, matrix, source='api')
        for src, dst, rate in matrix:
            if src == from_currency and dst == to_currency:
                return {'rate': rate, 'source': 'api'}
    fallback = FALLBACK_RATES.get(from_currency, {}).get(to_currency)
    if fallback is not None:
        return {'rate': fallback, 'source': 'fallback'}
    return {'rate': Decimal('1'), 'source': 'fallback'}


def get_all_rates(session) -> List[dict]:
    rows = session.execute(
        select(CurrencyRate).order_by(CurrencyRate.valid_from.desc(), CurrencyRate.id.desc())
    ).scalars()
    latest: Dict[Tuple[str, str], dict] = {}
    for r in rows:
        key = (r.from_currency, r.to_currency)
        if key not in latest:
            latest[key] = {'from_currency': r.from_currency, 'to_currency': r.to_currency,
                           'rate': Decimal(r.rate), 'source': r.source}
    for code in SUPPORTED_CURRENCIES:
        latest.setdefault((code, code), {'from_currency': code, 'to_currency': code,
                                         'rate': Decimal('1'), 'source': 'system'})
    return [latest[k] for k in sorted(latest)]


# --- System rates ---
def ensure_system_rates(session) -> List[SystemCurrencyRate]:
    existing = {r.code: r for r in session.execute(select(SystemCurrencyRate)).scalars()}
    defaults = {
        'RUB': (Decimal('1'), Decimal('1') / DEFAULT_USD_TO_RUB),
        'USD': (DEFAULT_USD_TO_RUB, Decimal('1')),
        'EUR': (DEFAULT_USD_TO_RUB / DEFAULT_USD_TO_EUR, Decimal('1') / DEFAULT_USD_TO_EUR),
        'USDT': (DEFAULT_USD_TO_RUB, Decimal('1')),
    }
    for code, name, symbol, sort_order in SYSTEM_RATE_DEFAULTS:
        if code in existing:
            continue
        to_rub, to_usd = defaults[code]
        row = SystemCurrencyRate(code=code, name=name, symbol=symbol, sort_order=sort_order,
                                 rate_to_rub=to_rub, rate_to_usd=to_usd, change_24h=Decimal('0'),
                                 last_updated=utcnow(), is_active=True)
        session.add(row)
        existing[code] = row
    session.flush()
    return sorted(existing.values(), key=lambda r: (r.sort_order, r.code))


def update_system_rate(session, code: str, rate_to_rub: Decimal, rate_to_usd: Optional[Decimal] = None,
                       source: str = 'manual') -> Optional[SystemCurrencyRate]:
    row = session.execute(select(SystemCurrencyRate).where(SystemCurrencyRate.code == code.upper())).scalar_one_or_none()
    if not row:
        return None
    prev = Decimal(row.rate_to_rub) if row.rate_to_rub is not None else None
    row.prev_rate_to_rub = prev
    if prev:
        row.change_24h = ((Decimal(rate_to_rub) - prev) / prev * 100).quantize(FOUR_PLACES, rounding=ROUND_HALF_UP)
    else:
        row.change_24h = Decimal('0')
    row.rate_to_rub = rate_to_rub
    if rate_to_usd is not None:
        row.rate_to_usd = rate_to_usd
    now = utcnow()
    row.last_updated = now
    # history is best effort; the rate update stands without it
    try:
        with session.begin_nested():
            session.add(CurrencyRateHistory(code=row.code, rate_to_rub=rate_to_rub, rate_to_usd=row.rate_to_usd,
                                            source=source, recorded_at=now))
    except SQLAlchemyError:
        current_app.logger.exception('Rate history write skipped for %s', row.code)
    return row


def refresh_system_rates(session) -> dict:
    fetched = fetch_usd_rates()
    if fetched['source'] != 'api':
        return {'success': False, 'error': 'Rates provider unavailable', 'updated': 0}
    ensure_system_rates(session)
    usd_to_rub, usd_to_eur = fetched['usd_to_rub'], fetched['usd_to_eur']
    updates = {
        'USD': (usd_to_rub, Decimal('1')),
        'EUR': (usd_to_rub / usd_to_eur, Decimal('1') / usd_to_eur),
        'USDT': (usd_to_rub, Decimal('1')),
    }
    updated = 0
    for code, (to_rub, to_usd) in updates.items():
        if update_system_rate(session, code, to_rub, to_usd, source='auto_refresh') is not None:
            updated += 1
    save_rates(session, build_cross_rates(usd_to_rub, usd_to_eur), source='auto_refresh')
    return {'success': True, 'updated': updated}


def get_rate_at_date(session, code: str, on_date) -> Optional[dict]:
    code = code.upper()
    if code == 'RUB':
        return {'code': 'RUB', 'rate_to_rub': Decimal('1'), 'rate_to_usd': None, 'source': 'system', 'recorded_at': None}
    hist = session.execute(
        select(CurrencyRateHistory)
        .where(CurrencyRateHistory.code == code, CurrencyRateHistory.recorded_at <= end_of_day(on_date))
        .order_by(CurrencyRateHistory.recorded_at.desc(), CurrencyRateHistory.id.desc())
        .limit(1)
    ).scalar_one_or_none()
    if hist:
        return {'code': code, 'rate_to_rub': Decimal(hist.rate_to_rub), 'rate_to_usd': hist.rate_to_usd,
                'source': 'history', 'recorded_at': hist.recorded_at}
    current = session.execute(select(SystemCurrencyRate).where(SystemCurrencyRate.code == code)).scalar_one_or_none()
    if current:
        return {'code': code, 'rate_to_rub': Decimal(current.rate_to_rub), 'rate_to_usd': current.rate_to_usd,
                'source': 'current', 'recorded_at': current.last_updated}
    return None


# --- Arbitrary pairs (templates / custom providers) ---
def _walk_path(payload, path: Optional[str]):
    node = payload
    for part in (path or '').split('.'):
        if not part:
            continue
        if isinstance(node, list):
            node = node[int(part)]
        else:
            node = node[part]
    return node


def fetch_external_rate(from_currency: str, to_currency: str, source_type: str = 'auto',
                        api_url: Optional[str] = None, api_path: Optional[str] = None) -> dict:
    src, dst = (from_currency or '').upper(), (to_currency or '').upper()
    if not src or not dst:
        return {'success': False, 'error': 'from and to currencies are required'}
    if src == dst or {src, dst} == {'USD', 'USDT'}:
        return {'success': True, 'rate': Decimal('1')}
    try:
        if source_type == 'custom' and api_url:
            url = api_url.replace('{from}', src).replace('{to}', dst)
            rate = Decimal(str(_walk_path(_get_json(url), api_path)))
        elif src in COINGECKO_IDS:
            coin = COINGECKO_IDS[src]
            price = _get_json(COINGECKO_PRICE_URL, params={'ids': coin, 'vs_currencies': 'usd'})[coin]['usd']
            rate = Decimal(str(price))
            if dst != 'USD':
                usd_rates = _get_json(EXCHANGERATE_API_URL.format(base='USD'))['rates']
                rate = rate * Decimal(str(usd_rates[dst]))
        else:
            rate = Decimal(str(_get_json(EXCHANGERATE_API_URL.format(base=src))['rates'][dst]))
    except (_FETCH_ERRORS + (IndexError,)) as e:
        current_app.logger.warning('External rate %s/%s failed: %s', src, dst, e)
        return {'success': False, 'error': f'Rate fetch failed: {e}'}
    if not rate.is_finite() or rate <= 0:
        return {'success': False, 'error': 'Rate must be a positive number'}
    return {'success': True, 'rate': rate}
