from __future__ import annotations
from decimal import Decimal
from flask import Blueprint, request, abort
from sqlalchemy import select, update
from mutka.decorators.auth import require_permissions
from mutka.decorators.audit import audit_log
from mutka.utils.listing import list_response, single_response
from mutka.utils.sorting import apply_multi_sort
from mutka.utils.filters import apply_filters, truthy_flag
from mutka.utils.validation import parse_amount, parse_id, validate_currency, validate_status, require_fields, money
from mutka.utils.dates import parse_date, start_of_day, end_of_day, iso
from mutka.services.policy import current_company_id, current_user_id, assert_company_access, scope_to_companies
from mutka.services.ledger import cashbox_operation, deposit_withdraw, transfer, get_cashbox_for_update
from mutka.models.cashbox import Cashbox, CashboxLocation, CashboxTransaction
from mutka.constants.currencies import SUPPORTED_CURRENCIES
from mutka import get_db

cash_bp = Blueprint('cash', __name__)


def _location_json(loc: CashboxLocation):
    return {
        'id': loc.id,
        'company_id': loc.company_id,
        'name': loc.name,
        'description': loc.description,
        'sort_order': loc.sort_order,
        'is_active': loc.is_active,
    }


def _cashbox_json(cb: Cashbox):
    return {
        'id': cb.id,
        'company_id': cb.company_id,
        'name': cb.name,
        'type': cb.type,
        'currency': cb.currency,
        'balance': money(cb.balance),
        'initial_balance': money(cb.initial_balance),
        'is_hidden': cb.is_hidden,
        'is_archived': cb.is_archived,
        'location_id': cb.location_id,
        'holder_name': cb.holder_name,
        'holder_phone': cb.holder_phone,
    }


def _tx_json(tx: CashboxTransaction):
    return {
        'id': tx.id,
        'cashbox_id': tx.cashbox_id,
        'amount': money(tx.amount),
        'balance_after': money(tx.balance_after),
        'category': tx.category,
        'description': tx.description,
        'reference_id': tx.reference_id,
        'created_by': tx.created_by,
        'created_at': iso(tx.created_at),
    }


def _get_location(loc_id: int) -> CashboxLocation:
    loc = get_db().get(CashboxLocation, loc_id)
    if not loc:
        abort(404)
    assert_company_access(loc.company_id)
    return loc


def _get_cashbox(cashbox_id: int) -> Cashbox:
    cb = get_db().get(Cashbox, cashbox_id)
    if not cb:
        abort(404)
    assert_company_access(cb.company_id)
    return cb


def _prefetch_cashbox(cashbox_id):
    cb = get_db().get(Cashbox, cashbox_id)
    return _cashbox_json(cb) if cb else None


# --- Locations ---
@cash_bp.route('/locations', methods=['GET', 'HEAD'])
@require_permissions('CASH.READ')
def list_locations():
    q = scope_to_companies(get_db().query(CashboxLocation), CashboxLocation.company_id)
    if not truthy_flag(request.args, 'include_inactive'):
        q = q.filter(CashboxLocation.is_active.is_(True))
    q = q.order_by(CashboxLocation.sort_order.asc(), CashboxLocation.name.asc(), CashboxLocation.id.asc())
    return list_response(q, _location_json)


@cash_bp.post('/locations')
@require_permissions('CASH.MANAGE')
@audit_log('CASH.LOCATION.CREATE', module='cash', entity='CashboxLocation', entity_id_key='id', meta_keys=['name'])
def create_location():
    session = get_db()
    data = request.get_json(silent=True) or {}
    require_fields(data, 'name')
    loc = CashboxLocation(
        company_id=current_company_id(),
        name=str(data['name']).strip(),
        description=data.get('description'),
        sort_order=parse_id(data.get('sort_order') or 0, 'sort_order'),
        is_active=bool(data.get('is_active', True)),
    )
    session.add(loc)
    session.commit()
    return _location_json(loc), 201


@cash_bp.put('/locations/<int:loc_id>')
@require_permissions('CASH.MANAGE')
@audit_log('CASH.LOCATION.UPDATE', module='cash', entity='CashboxLocation', entity_id_key='id',
           diff_keys=['name', 'description', 'sort_order', 'is_active'],
           pre_fetch=lambda a, kw: _location_json(_get_location(kw['loc_id'])))
def update_location(loc_id: int):
    session = get_db()
    loc = _get_location(loc_id)
    data = request.get_json(silent=True) or {}
    if 'name' in data:
        if not data['name']:
            abort(400, description='name required')
        loc.name = str(data['name']).strip()
    if 'description' in data:
        loc.description = data['description']
    if 'sort_order' in data:
        try:
            loc.sort_order = int(data['sort_order'])
        except (TypeError, ValueError):
            abort(400, description='sort_order invalid')
    if 'is_active' in data:
        loc.is_active = bool(data['is_active'])
    session.commit()
    return _location_json(loc)


@cash_bp.delete('/locations/<int:loc_id>')
@require_permissions('CASH.MANAGE')
@audit_log('CASH.LOCATION.DELETE', module='cash', entity='CashboxLocation', entity_id_arg='loc_id')
def delete_location(loc_id: int):
    session = get_db()
    loc = _get_location(loc_id)
    session.execute(update(Cashbox).where(Cashbox.location_id == loc.id).values(location_id=None))
    session.delete(loc)
    session.commit()
    return {'deleted': loc_id}


# --- Cashboxes ---
@cash_bp.route('/cashboxes', methods=['GET', 'HEAD'])
@require_permissions('CASH.READ')
def list_cashboxes():
    q = scope_to_companies(get_db().query(Cashbox), Cashbox.company_id)
    if not truthy_flag(request.args, 'include_hidden'):
        q = q.filter(Cashbox.is_hidden.is_(False))
    if not truthy_flag(request.args, 'include_archived'):
        q = q.filter(Cashbox.is_archived.is_(False))
    specs = {
        'currency': {'op': lambda q, v: q.filter(Cashbox.currency == v), 'coerce': lambda v: str(v).upper()},
        'type': {'op': lambda q, v: q.filter(Cashbox.type == v), 'validate': lambda v: v in Cashbox.ALL_TYPES},
        'location_id': {'op': lambda q, v: q.filter(Cashbox.location_id == v), 'coerce': int},
    }
    q = apply_filters(q, specs, request.args)
    allowed = {
        'name': Cashbox.name,
        'currency': Cashbox.currency,
        'balance': Cashbox.balance,
        'type': Cashbox.type,
        'updated_at': Cashbox.updated_at,
        'id': Cashbox.id,
    }
    q = apply_multi_sort(q, request.args.get('sort'), allowed, Cashbox.id, default=[Cashbox.name.asc()])
    return list_response(q, _cashbox_json)


@cash_bp.route('/cashboxes/<int:cashbox_id>', methods=['GET', 'HEAD'])
@require_permissions('CASH.READ')
def get_cashbox(cashbox_id: int):
    cb = _get_cashbox(cashbox_id)
    return single_response(_cashbox_json(cb), cb.updated_at)


@cash_bp.post('/cashboxes')
@require_permissions('CASH.MANAGE')
@audit_log('CASH.CASHBOX.CREATE', module='cash', entity='Cashbox', entity_id_key='id', meta_keys=['name', 'currency', 'initial_balance'])
def create_cashbox():
    session = get_db()
    data = request.get_json(silent=True) or {}
    require_fields(data, 'name', 'currency')
    currency = validate_currency(data.get('currency'), SUPPORTED_CURRENCIES)
    cb_type = validate_status(data.get('type') or Cashbox.TYPE_CASH, Cashbox.ALL_TYPES, 'type')
    initial = parse_amount(data.get('initial_balance'), 'initial_balance', non_negative=True, default=Decimal('0'))
    location_id = data.get('location_id')
    if location_id is not None:
        location_id = _get_location(parse_id(location_id, 'location_id')).id
    cb = Cashbox(
        company_id=current_company_id(),
        name=str(data['name']).strip(),
        type=cb_type,
        currency=currency,
        balance=Decimal('0'),
        initial_balance=initial,
        is_hidden=bool(data.get('is_hidden', False)),
        location_id=location_id,
        holder_name=data.get('holder_name'),
        holder_phone=data.get('holder_phone'),
        created_by=current_user_id(),
    )
    session.add(cb)
    session.flush()
    if initial:
        cashbox_operation(session, cb, initial, CashboxTransaction.CAT_INITIAL, 'Начальный остаток', created_by=cb.created_by)
    session.commit()
    return _cashbox_json(cb), 201


@cash_bp.put('/cashboxes/<int:cashbox_id>')
@require_permissions('CASH.MANAGE')
@audit_log('CASH.CASHBOX.UPDATE', module='cash', entity='Cashbox', entity_id_key='id',
           diff_keys=['name', 'type', 'is_hidden', 'location_id', 'holder_name', 'holder_phone'],
           pre_fetch=lambda a, kw: _prefetch_cashbox(kw['cashbox_id']))
def update_cashbox(cashbox_id: int):
    session = get_db()
    cb = _get_cashbox(cashbox_id)
    data = request.get_json(silent=True) or {}
    if 'balance' in data:
        abort(400, description='balance is not editable')
    if 'name' in data:
        if not data['name']:
            abort(400, description='name required')
        cb.name = str(data['name']).strip()
    if 'type' in data:
        cb.type = validate_status(data['type'], Cashbox.ALL_TYPES, 'type')
    if 'is_hidden' in data:
        cb.is_hidden = bool(data['is_hidden'])
    if 'location_id' in data:
        if data['location_id'] is not None:
            data['location_id'] = _get_location(parse_id(data['location_id'], 'location_id')).id
        cb.location_id = data['location_id']
    for key in ('holder_name', 'holder_phone'):
        if key in data:
            setattr(cb, key, data[key])
    session.commit()
    return _cashbox_json(cb)


def _set_archived(cashbox_id: int, archived: bool):
    session = get_db()
    cb = _get_cashbox(cashbox_id)
    cb.is_archived = archived
    session.commit()
    return _cashbox_json(cb)


@cash_bp.post('/cashboxes/<int:cashbox_id>/archive')
@require_permissions('CASH.MANAGE')
@audit_log('CASH.CASHBOX.ARCHIVE', module='cash', entity='Cashbox', entity_id_key='id', diff_keys=['is_archived'],
           pre_fetch=lambda a, kw: _prefetch_cashbox(kw['cashbox_id']))
def archive_cashbox(cashbox_id: int):
    return _set_archived(cashbox_id, True)


@cash_bp.post('/cashboxes/<int:cashbox_id>/unarchive')
@require_permissions('CASH.MANAGE')
@audit_log('CASH.CASHBOX.UNARCHIVE', module='cash', entity='Cashbox', entity_id_key='id', diff_keys=['is_archived'],
           pre_fetch=lambda a, kw: _prefetch_cashbox(kw['cashbox_id']))
def unarchive_cashbox(cashbox_id: int):
    return _set_archived(cashbox_id, False)


def _deposit_or_withdraw(cashbox_id: int, withdraw: bool):
    session = get_db()
    data = request.get_json(silent=True) or {}
    amount = parse_amount(data.get('amount'), positive=True)
    tx = deposit_withdraw(session, cashbox_id, amount, withdraw, data.get('description'), current_user_id())
    session.commit()
    body = _tx_json(tx)
    body['cashbox'] = _cashbox_json(tx.cashbox)
    return body, 201


@cash_bp.post('/cashboxes/<int:cashbox_id>/deposit')
@require_permissions('CASH.OPERATE')
@audit_log('CASH.DEPOSIT', module='cash', entity='Cashbox', entity_id_arg='cashbox_id', meta_keys=['amount', 'balance_after'])
def deposit(cashbox_id: int):
    return _deposit_or_withdraw(cashbox_id, withdraw=False)


@cash_bp.post('/cashboxes/<int:cashbox_id>/withdraw')
@require_permissions('CASH.OPERATE')
@audit_log('CASH.WITHDRAW', module='cash', entity='Cashbox', entity_id_arg='cashbox_id', meta_keys=['amount', 'balance_after'])
def withdraw(cashbox_id: int):
    return _deposit_or_withdraw(cashbox_id, withdraw=True)


@cash_bp.post('/transfers')
@require_permissions('CASH.OPERATE')
@audit_log('CASH.TRANSFER', module='cash', entity='CashboxTransaction', entity_id_key='id',
           meta_builder=lambda data, rv, a, kw: {'from': data.get('from_cashbox_id'), 'to': data.get('to_cashbox_id'), 'amount': data.get('amount')})
def create_transfer():
    session = get_db()
    data = request.get_json(silent=True) or {}
    require_fields(data, 'from_cashbox_id', 'to_cashbox_id')
    amount = parse_amount(data.get('amount'), positive=True)
    out_tx, in_tx = transfer(session, data['from_cashbox_id'], data['to_cashbox_id'], amount, data.get('note'), current_user_id())
    session.commit()
    return {
        'id': out_tx.id,
        'from_cashbox_id': out_tx.cashbox_id,
        'to_cashbox_id': in_tx.cashbox_id,
        'amount': money(amount),
        'out': _tx_json(out_tx),
        'in': _tx_json(in_tx),
    }, 201


@cash_bp.route('/transactions', methods=['GET', 'HEAD'])
@require_permissions('CASH.READ')
def list_transactions():
    q = scope_to_companies(get_db().query(CashboxTransaction), CashboxTransaction.company_id)
    specs = {
        'cashbox_id': {'op': lambda q, v: q.filter(CashboxTransaction.cashbox_id == v), 'coerce': int},
        'category': {'op': lambda q, v: q.filter(CashboxTransaction.category == v),
                     'validate': lambda v: v in CashboxTransaction.ALL_CATEGORIES},
        'date_from': {'op': lambda q, v: q.filter(CashboxTransaction.created_at >= v),
                      'coerce': lambda v: start_of_day(parse_date(v, 'date_from'))},
        'date_to': {'op': lambda q, v: q.filter(CashboxTransaction.created_at <= v),
                    'coerce': lambda v: end_of_day(parse_date(v, 'date_to'))},
    }
    q = apply_filters(q, specs, request.args)
    allowed = {
        'created_at': CashboxTransaction.created_at,
        'amount': CashboxTransaction.amount,
        'category': CashboxTransaction.category,
        'id': CashboxTransaction.id,
    }
    q = apply_multi_sort(q, request.args.get('sort'), allowed, CashboxTransaction.id,
                         default=[CashboxTransaction.created_at.desc(), CashboxTransaction.id.desc()])
    return list_response(q, _tx_json)
