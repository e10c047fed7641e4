from __future__ import annotations
from decimal import Decimal
from flask import Blueprint, request, abort
from sqlalchemy import select, or_
from mutka.decorators.auth import require_permissions
from mutka.decorators.audit import audit_log
from mutka.utils.listing import list_response, single_response
from mutka.utils.sorting import apply_multi_sort
from mutka.utils.filters import apply_filters
from mutka.utils.validation import parse_amount, parse_id, validate_currency, validate_status, require_fields, money
from mutka.utils.dates import parse_date, iso, today
from mutka.services.policy import current_company_id, current_user_id, assert_company_access, scope_to_companies
from mutka.services.rates import get_exchange_rate
from mutka.models.asset import Asset, AssetValuation, AssetMove
from mutka.models.finance import CollateralLink
from mutka.models.contact import Contact
from mutka.constants.currencies import SUPPORTED_CURRENCIES
from mutka import get_db

assets_bp = Blueprint('assets', __name__)

ASSET_FIELDS = ('name', 'asset_type', 'location', 'description')


def _asset_json(a: Asset):
    return {
        'id': a.id,
        'company_id': a.company_id,
        'name': a.name,
        'asset_type': a.asset_type,
        'status': a.status,
        'owner_contact_id': a.owner_contact_id,
        'location': a.location,
        'description': a.description,
        'units': a.units,
        'pledged_units': a.pledged_units,
    }


def _valuation_json(v: AssetValuation):
    return {
        'id': v.id,
        'asset_id': v.asset_id,
        'valuation_amount': money(v.valuation_amount),
        'valuation_currency': v.valuation_currency,
        'base_amount': money(v.base_amount),
        'base_currency': v.base_currency,
        'fx_rate': money(v.fx_rate),
        'valued_at': iso(v.valued_at),
        'note': v.note,
        'created_by': v.created_by,
    }


def _move_json(m: AssetMove):
    return {
        'id': m.id,
        'asset_id': m.asset_id,
        'from_location': m.from_location,
        'to_location': m.to_location,
        'moved_at': iso(m.moved_at),
        'note': m.note,
        'created_by': m.created_by,
    }


def _get_asset(asset_id: int) -> Asset:
    a = get_db().get(Asset, asset_id)
    if not a:
        abort(404)
    assert_company_access(a.company_id)
    return a


def _check_owner(company_id: int, contact_id):
    if contact_id in (None, ''):
        return None
    contact = get_db().get(Contact, parse_id(contact_id, 'contact_id'))
    if not contact or contact.company_id != company_id:
        abort(400, description='owner_contact_id invalid')
    return contact.id


def _units(data: dict, default: int = 1) -> int:
    try:
        units = int(data.get('units', default))
    except (TypeError, ValueError):
        abort(400, description='units invalid')
    if units < 1:
        abort(400, description='units must be positive')
    return units


@assets_bp.route('', methods=['GET', 'HEAD'])
@require_permissions('ASSETS.READ')
def list_assets():
    q = scope_to_companies(get_db().query(Asset), Asset.company_id)
    if not request.args.get('status'):
        q = q.filter(Asset.status.in_(Asset.LIVE_STATUSES))
    specs = {
        'status': {'op': lambda q, v: q.filter(Asset.status == v), 'validate': lambda v: v in Asset.ALL_STATUSES},
        'asset_type': {'op': lambda q, v: q.filter(Asset.asset_type == v)},
        'owner_contact_id': {'op': lambda q, v: q.filter(Asset.owner_contact_id == v), 'coerce': int},
        'q': {'op': lambda q, v: q.filter(or_(Asset.name.ilike(f'%{v}%'), Asset.description.ilike(f'%{v}%'),
                                              Asset.location.ilike(f'%{v}%')))},
    }
    q = apply_filters(q, specs, request.args)
    allowed = {'id': Asset.id, 'name': Asset.name, 'status': Asset.status, 'asset_type': Asset.asset_type}
    q = apply_multi_sort(q, request.args.get('sort'), allowed, Asset.id, default=[Asset.id.desc()])
    return list_response(q, _asset_json)


@assets_bp.route('/<int:asset_id>', methods=['GET', 'HEAD'])
@require_permissions('ASSETS.READ')
def get_asset(asset_id: int):
    a = _get_asset(asset_id)
    return single_response(_asset_json(a), a.updated_at)


@assets_bp.post('')
@require_permissions('ASSETS.MANAGE')
@audit_log('ASSETS.ASSET.CREATE', module='assets', entity='Asset', entity_id_key='id', meta_keys=['name', 'asset_type'])
def create_asset():
    session = get_db()
    data = request.get_json(silent=True) or {}
    require_fields(data, 'name')
    company_id = current_company_id()
    a = Asset(
        company_id=company_id,
        name=str(data['name']).strip(),
        asset_type=data.get('asset_type') or 'other',
        status=Asset.STATUS_ACTIVE,
        owner_contact_id=_check_owner(company_id, data.get('owner_contact_id')),
        location=data.get('location'),
        description=data.get('description'),
        units=_units(data),
        pledged_units=0,
        created_by=current_user_id(),
    )
    session.add(a)
    session.commit()
    return _asset_json(a), 201


@assets_bp.put('/<int:asset_id>')
@require_permissions('ASSETS.MANAGE')
@audit_log('ASSETS.ASSET.UPDATE', module='assets', entity='Asset', entity_id_key='id',
           diff_keys=list(ASSET_FIELDS) + ['status', 'owner_contact_id', 'units'],
           pre_fetch=lambda a, kw: _asset_json(_get_asset(kw['asset_id'])))
def update_asset(asset_id: int):
    session = get_db()
    a = _get_asset(asset_id)
    data = request.get_json(silent=True) or {}
    if 'pledged_units' in data:
        abort(400, description='pledged_units changes go through collateral links')
    for key in ASSET_FIELDS:
        if key in data:
            if key == 'name' and not data[key]:
                abort(400, description='name required')
            setattr(a, key, data[key])
    if 'owner_contact_id' in data:
        a.owner_contact_id = _check_owner(a.company_id, data['owner_contact_id'])
    if 'units' in data:
        a.units = _units(data, a.units)
    if 'status' in data:
        status = validate_status(data['status'], Asset.ALL_STATUSES)
        if status != a.status and Asset.STATUS_PLEDGED in (status, a.status):
            abort(400, description='Pledge status changes go through collateral links')
        a.status = status
    session.commit()
    return _asset_json(a)


@assets_bp.post('/<int:asset_id>/valuations')
@require_permissions('ASSETS.MANAGE')
@audit_log('ASSETS.VALUATION.CREATE', module='assets', entity='AssetValuation', entity_id_key='id',
           meta_keys=['asset_id', 'valuation_amount', 'valuation_currency', 'base_amount', 'base_currency'])
def add_valuation(asset_id: int):
    session = get_db()
    a = _get_asset(asset_id)
    data = request.get_json(silent=True) or {}
    amount = parse_amount(data.get('valuation_amount'), 'valuation_amount', positive=True)
    currency = validate_currency(data.get('valuation_currency'), SUPPORTED_CURRENCIES, 'valuation_currency')
    base_currency = validate_currency(data.get('base_currency') or 'USD', SUPPORTED_CURRENCIES, 'base_currency')
    fx_rate = parse_amount(data.get('fx_rate'), 'fx_rate', positive=True, required=False)
    if fx_rate is None:
        fx_rate = Decimal(get_exchange_rate(session, currency, base_currency)['rate'])
    v = AssetValuation(
        asset_id=a.id,
        valuation_amount=amount,
        valuation_currency=currency,
        base_amount=(amount * fx_rate).quantize(Decimal('0.01')),
        base_currency=base_currency,
        fx_rate=fx_rate,
        valued_at=parse_date(data.get('valued_at'), 'valued_at') or today(),
        note=data.get('note'),
        created_by=current_user_id(),
    )
    session.add(v)
    session.commit()
    return _valuation_json(v), 201


@assets_bp.route('/<int:asset_id>/valuations', methods=['GET', 'HEAD'])
@require_permissions('ASSETS.READ')
def list_valuations(asset_id: int):
    a = _get_asset(asset_id)
    q = get_db().query(AssetValuation).filter(AssetValuation.asset_id == a.id)
    q = q.order_by(AssetValuation.valued_at.desc(), AssetValuation.id.desc())
    return list_response(q, _valuation_json, ts_attr='created_at')


@assets_bp.post('/<int:asset_id>/moves')
@require_permissions('ASSETS.MANAGE')
@audit_log('ASSETS.MOVE.CREATE', module='assets', entity='AssetMove', entity_id_key='id',
           meta_keys=['asset_id', 'from_location', 'to_location'])
def add_move(asset_id: int):
    session = get_db()
    a = _get_asset(asset_id)
    data = request.get_json(silent=True) or {}
    require_fields(data, 'to_location')
    m = AssetMove(
        asset_id=a.id,
        from_location=a.location,
        to_location=str(data['to_location']).strip(),
        moved_at=parse_date(data.get('moved_at'), 'moved_at') or today(),
        note=data.get('note'),
        created_by=current_user_id(),
    )
    a.location = m.to_location
    session.add(m)
    session.commit()
    return _move_json(m), 201


@assets_bp.route('/<int:asset_id>/moves', methods=['GET', 'HEAD'])
@require_permissions('ASSETS.READ')
def list_moves(asset_id: int):
    a = _get_asset(asset_id)
    q = get_db().query(AssetMove).filter(AssetMove.asset_id == a.id)
    q = q.order_by(AssetMove.moved_at.desc(), AssetMove.id.desc())
    return list_response(q, _move_json, ts_attr='created_at')


@assets_bp.get('/<int:asset_id>/timeline')
@require_permissions('ASSETS.READ')
def asset_timeline(asset_id: int):
    session = get_db()
    a = _get_asset(asset_id)
    events = []
    for v in session.execute(select(AssetValuation).where(AssetValuation.asset_id == a.id)).scalars():
        events.append({'type': 'valuation', 'date': iso(v.valued_at), 'id': v.id,
                       'title': f'{money(v.valuation_amount)} {v.valuation_currency}', 'data': _valuation_json(v)})
    for m in session.execute(select(AssetMove).where(AssetMove.asset_id == a.id)).scalars():
        events.append({'type': 'move', 'date': iso(m.moved_at), 'id': m.id,
                       'title': f'{m.from_location or "-"} -> {m.to_location}', 'data': _move_json(m)})
    for link in session.execute(select(CollateralLink).where(CollateralLink.asset_id == a.id)).scalars():
        events.append({'type': 'collateral', 'date': iso(link.started_at), 'id': link.id,
                       'title': f'Collateral {link.status}',
                       'data': {'finance_deal_id': link.finance_deal_id, 'status': link.status,
                                'released_at': iso(link.released_at), 'note': link.note}})
    # dates and timestamps share an ISO prefix so string order is chronological
    events.sort(key=lambda e: ((e['date'] or '')[:10], e['type'], e['id']), reverse=True)
    return {'asset_id': a.id, 'data': events}
