from __future__ import annotations
from decimal import Decimal
from flask import Blueprint, request, abort
from mutka.decorators.auth import require_permissions
from mutka.decorators.audit import audit_log
from mutka.utils.listing import list_response, single_response
from mutka.utils.sorting import apply_multi_sort
from mutka.utils.filters import apply_filters
from mutka.utils.validation import parse_amount, validate_currency, require_fields, money
from mutka.utils.dates import parse_date, iso
from mutka.services.policy import current_user_id, assert_company_access, scope_to_companies
from mutka.services import rates as rates_svc
from mutka.services.exchange import execute_exchange
from mutka.models.currency import SystemCurrencyRate, ExchangeLog
from mutka.constants.currencies import SUPPORTED_CURRENCIES, DEFAULT_EXCHANGE_RATE_TEMPLATES
from mutka import get_db

fx_bp = Blueprint('fx', __name__)


def _system_rate_json(r: SystemCurrencyRate):
    return {
        'id': r.id,
        'code': r.code,
        'name': r.name,
        'symbol': r.symbol,
        'rate_to_rub': money(r.rate_to_rub),
        'rate_to_usd': money(r.rate_to_usd),
        'prev_rate_to_rub': money(r.prev_rate_to_rub),
        'change_24h': money(r.change_24h),
        'last_updated': iso(r.last_updated),
        'sort_order': r.sort_order,
        'is_active': r.is_active,
    }


def _exchange_json(log: ExchangeLog):
    return {
        'id': log.id,
        'company_id': log.company_id,
        'from_cashbox_id': log.from_cashbox_id,
        'to_cashbox_id': log.to_cashbox_id,
        'sent_amount': money(log.sent_amount),
        'sent_currency': log.sent_currency,
        'received_amount': money(log.received_amount),
        'received_currency': log.received_currency,
        'rate': money(log.rate),
        'fee_amount': money(log.fee_amount),
        'fee_currency': log.fee_currency,
        'description': log.description,
        'created_by': log.created_by,
    }


# --- Pair rates ---
@fx_bp.get('/rates')
@require_permissions('FX.READ')
def all_rates():
    rows = rates_svc.get_all_rates(get_db())
    return {'data': [dict(r, rate=money(r['rate'])) for r in rows]}


@fx_bp.get('/rates/<from_currency>/<to_currency>')
@require_permissions('FX.READ')
def exchange_rate(from_currency: str, to_currency: str):
    session = get_db()
    result = rates_svc.get_exchange_rate(session, from_currency, to_currency)
    if result['source'] == 'api':
        session.commit()
    return {'from_currency': from_currency.upper(), 'to_currency': to_currency.upper(),
            'rate': money(result['rate']), 'source': result['source']}


@fx_bp.post('/rates/refresh')
@require_permissions('FX.RATES.MANAGE')
@audit_log('FX.RATES.REFRESH', module='exchange', meta_keys=['count', 'source'])
def refresh_rates():
    session = get_db()
    result = rates_svc.refresh_currency_rates(session)
    session.commit()
    return result


@fx_bp.post('/rates/external')
@require_permissions('FX.READ')
def external_rate():
    data = request.get_json(silent=True) or {}
    result = rates_svc.fetch_external_rate(
        data.get('from') or data.get('from_currency'),
        data.get('to') or data.get('to_currency'),
        data.get('source_type') or 'auto',
        data.get('api_url'),
        data.get('api_path'),
    )
    if result.get('success'):
        result['rate'] = money(result['rate'])
    return result


@fx_bp.get('/templates')
@require_permissions('FX.READ')
def rate_templates():
    return {'data': DEFAULT_EXCHANGE_RATE_TEMPLATES}


# --- System rates ---
@fx_bp.get('/system-rates')
@require_permissions('FX.READ')
def list_system_rates():
    session = get_db()
    q = session.query(SystemCurrencyRate).order_by(SystemCurrencyRate.sort_order.asc(), SystemCurrencyRate.code.asc())
    if request.args.get('active_only') in ('1', 'true'):
        q = q.filter(SystemCurrencyRate.is_active.is_(True))
    return {'data': [_system_rate_json(r) for r in q.all()]}


@fx_bp.put('/system-rates/<code>')
@require_permissions('FX.RATES.MANAGE')
@audit_log('FX.SYSTEM_RATE.UPDATE', module='exchange', entity='SystemCurrencyRate', entity_id_key='code',
           meta_keys=['rate_to_rub', 'prev_rate_to_rub', 'change_24h'])
def put_system_rate(code: str):
    session = get_db()
    data = request.get_json(silent=True) or {}
    rate_to_rub = parse_amount(data.get('rate_to_rub'), 'rate_to_rub', positive=True)
    rate_to_usd = parse_amount(data.get('rate_to_usd'), 'rate_to_usd', positive=True, required=False)
    row = rates_svc.update_system_rate(session, code, rate_to_rub, rate_to_usd)
    if row is None:
        abort(404, description=f'Currency {code} not found')
    session.commit()
    return _system_rate_json(row)


@fx_bp.post('/system-rates/refresh')
@require_permissions('FX.RATES.MANAGE')
@audit_log('FX.SYSTEM_RATE.REFRESH', module='exchange', meta_keys=['success', 'updated'])
def refresh_system():
    session = get_db()
    result = rates_svc.refresh_system_rates(session)
    session.commit()
    return result


@fx_bp.get('/system-rates/<code>/at')
@require_permissions('FX.READ')
def rate_at_date(code: str):
    on_date = parse_date(request.args.get('date'), 'date', required=True)
    result = rates_svc.get_rate_at_date(get_db(), code, on_date)
    if result is None:
        abort(404, description=f'No rate for {code.upper()}')
    return {
        'code': result['code'],
        'date': on_date.isoformat(),
        'rate_to_rub': money(result['rate_to_rub']),
        'rate_to_usd': money(result['rate_to_usd']),
        'source': result['source'],
        'recorded_at': iso(result['recorded_at']),
    }


# --- Cashbox exchanges ---
@fx_bp.post('/exchanges')
@require_permissions('FX.EXCHANGE')
@audit_log('FX.EXCHANGE', module='exchange', entity='ExchangeLog', entity_id_key='id',
           meta_keys=['sent_amount', 'sent_currency', 'received_amount', 'received_currency', 'rate'])
def create_exchange():
    session = get_db()
    data = request.get_json(silent=True) or {}
    require_fields(data, 'from_cashbox_id', 'to_cashbox_id')
    log = execute_exchange(
        session,
        from_cashbox_id=data.get('from_cashbox_id'),
        to_cashbox_id=data.get('to_cashbox_id'),
        sent_amount=parse_amount(data.get('sent_amount'), 'sent_amount'),
        received_amount=parse_amount(data.get('received_amount'), 'received_amount'),
        rate=parse_amount(data.get('rate'), 'rate'),
        fee=parse_amount(data.get('fee'), 'fee', default=Decimal('0')),
        description=data.get('description'),
        created_by=current_user_id(),
    )
    session.commit()
    return _exchange_json(log), 201


@fx_bp.route('/exchanges', methods=['GET', 'HEAD'])
@require_permissions('FX.READ')
def list_exchanges():
    q = scope_to_companies(get_db().query(ExchangeLog), ExchangeLog.company_id)
    specs = {
        'cashbox_id': {'op': lambda q, v: q.filter((ExchangeLog.from_cashbox_id == v) | (ExchangeLog.to_cashbox_id == v)),
                       'coerce': int},
        'currency': {'op': lambda q, v: q.filter((ExchangeLog.sent_currency == v) | (ExchangeLog.received_currency == v)),
                     'coerce': lambda v: validate_currency(v, SUPPORTED_CURRENCIES)},
    }
    q = apply_filters(q, specs, request.args)
    allowed = {'id': ExchangeLog.id, 'sent_amount': ExchangeLog.sent_amount, 'updated_at': ExchangeLog.updated_at}
    q = apply_multi_sort(q, request.args.get('sort'), allowed, ExchangeLog.id, default=[ExchangeLog.id.desc()])
    return list_response(q, _exchange_json)


@fx_bp.route('/exchanges/<int:log_id>', methods=['GET', 'HEAD'])
@require_permissions('FX.READ')
def get_exchange(log_id: int):
    log = get_db().get(ExchangeLog, log_id)
    if not log:
        abort(404)
    assert_company_access(log.company_id)
    return single_response(_exchange_json(log), log.updated_at)
