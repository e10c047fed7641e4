from __future__ import annotations
from decimal import Decimal
from flask import Blueprint, request, abort
from sqlalchemy import select
from mutka.decorators.auth import require_permissions
from mutka.decorators.audit import audit_log
from mutka.utils.listing import list_response, single_response
from mutka.utils.sorting import apply_multi_sort
from mutka.utils.filters import apply_filters
from mutka.utils.validation import parse_amount, validate_currency, validate_status, require_fields, money
from mutka.utils.dates import iso
from mutka.services.policy import current_company_id, current_user_id, assert_company_access, scope_to_companies
from mutka.services import auto as auto_svc
from mutka.services.contacts import log_contact_event
from mutka.models.auto import Car, CarExpense, CarTimeline, AutoDeal, AutoDealPayment
from mutka.models.contact import Contact
from mutka.constants.currencies import SUPPORTED_CURRENCIES
from mutka import get_db

auto_bp = Blueprint('auto', __name__)

CAR_FIELDS = ('vin', 'brand', 'model', 'year', 'color', 'mileage', 'notes')


def _car_json(c: Car):
    return {
        'id': c.id,
        'company_id': c.company_id,
        'vin': c.vin,
        'brand': c.brand,
        'model': c.model,
        'year': c.year,
        'color': c.color,
        'mileage': c.mileage,
        'status': c.status,
        'purchase_price': money(c.purchase_price),
        'purchase_currency': c.purchase_currency,
        'cost_price': money(c.cost_price),
        'list_price': money(c.list_price),
        'notes': c.notes,
    }


def _expense_json(e: CarExpense):
    return {
        'id': e.id,
        'car_id': e.car_id,
        'expense_type': e.expense_type,
        'source': e.source,
        'amount': money(e.amount),
        'currency': e.currency,
        'cashbox_id': e.cashbox_id,
        'stock_item_id': e.stock_item_id,
        'quantity': money(e.quantity),
        'description': e.description,
    }


def _timeline_json(t: CarTimeline):
    return {'id': t.id, 'event_type': t.event_type, 'title': t.title, 'payload': t.payload or {},
            'created_at': iso(t.created_at)}


def _payment_json(p: AutoDealPayment):
    return {
        'id': p.id,
        'payment_type': p.payment_type,
        'amount': money(p.amount),
        'currency': p.currency,
        'rate': money(p.rate),
        'amount_in_deal_currency': money(p.amount_in_deal_currency),
        'cashbox_id': p.cashbox_id,
        'description': p.description,
    }


def _deal_json(d: AutoDeal):
    return {
        'id': d.id,
        'company_id': d.company_id,
        'deal_number': d.deal_number,
        'car_id': d.car_id,
        'buyer_contact_id': d.buyer_contact_id,
        'deal_type': d.deal_type,
        'status': d.status,
        'total_amount': money(d.total_amount),
        'currency': d.currency,
        'paid_amount': money(d.paid_amount),
        'margin': money(d.margin),
        'description': d.description,
    }


def _get_car(car_id: int) -> Car:
    car = get_db().get(Car, car_id)
    if not car:
        abort(404)
    assert_company_access(car.company_id)
    return car


def _get_deal(deal_id: int) -> AutoDeal:
    deal = get_db().get(AutoDeal, deal_id)
    if not deal:
        abort(404)
    assert_company_access(deal.company_id)
    return deal


def _int_or_none(data: dict, key: str):
    val = data.get(key)
    if val in (None, ''):
        return None
    try:
        return int(val)
    except (TypeError, ValueError):
        abort(400, description=f'{key} invalid')


def _apply_car_fields(car: Car, data: dict):
    for key in CAR_FIELDS:
        if key in data:
            setattr(car, key, _int_or_none(data, key) if key in ('year', 'mileage') else data[key])
    if 'list_price' in data:
        car.list_price = parse_amount(data['list_price'], 'list_price', non_negative=True, required=False)


# --- Cars ---
@auto_bp.route('/cars', methods=['GET', 'HEAD'])
@require_permissions('AUTO.READ')
def list_cars():
    q = scope_to_companies(get_db().query(Car), Car.company_id)
    specs = {
        'status': {'op': lambda q, v: q.filter(Car.status == v), 'validate': lambda v: v in Car.ALL_STATUSES},
        'brand': {'op': lambda q, v: q.filter(Car.brand.ilike(v))},
        'q': {'op': lambda q, v: q.filter(Car.brand.ilike(f'%{v}%') | Car.model.ilike(f'%{v}%') | Car.vin.ilike(f'%{v}%'))},
    }
    q = apply_filters(q, specs, request.args)
    allowed = {'id': Car.id, 'brand': Car.brand, 'year': Car.year, 'status': Car.status,
               'cost_price': Car.cost_price, 'updated_at': Car.updated_at}
    q = apply_multi_sort(q, request.args.get('sort'), allowed, Car.id, default=[Car.id.desc()])
    return list_response(q, _car_json)


@auto_bp.route('/cars/<int:car_id>', methods=['GET', 'HEAD'])
@require_permissions('AUTO.READ')
def get_car(car_id: int):
    car = _get_car(car_id)
    return single_response(_car_json(car), car.updated_at)


def _new_car(data: dict) -> Car:
    require_fields(data, 'brand', 'model')
    car = Car(
        company_id=current_company_id(),
        status=validate_status(data.get('status') or Car.STATUS_IN_STOCK, Car.ALL_STATUSES),
        purchase_price=parse_amount(data.get('purchase_price'), 'purchase_price', non_negative=True, default=Decimal('0')),
        purchase_currency=validate_currency(data.get('purchase_currency') or 'USD', SUPPORTED_CURRENCIES, 'purchase_currency'),
        created_by=current_user_id(),
    )
    _apply_car_fields(car, data)
    car.cost_price = car.purchase_price
    return car


@auto_bp.post('/cars')
@require_permissions('AUTO.MANAGE')
@audit_log('AUTO.CAR.CREATE', module='auto', entity='Car', entity_id_key='id', meta_keys=['brand', 'model', 'vin'])
def create_car():
    session = get_db()
    car = _new_car(request.get_json(silent=True) or {})
    session.add(car)
    session.commit()
    return _car_json(car), 201


@auto_bp.post('/cars/purchase')
@require_permissions('AUTO.MANAGE')
@audit_log('AUTO.CAR.PURCHASE', module='auto', entity='Car', entity_id_key='id', meta_keys=['purchase_price', 'purchase_currency'])
def purchase_car():
    session = get_db()
    data = request.get_json(silent=True) or {}
    car = _new_car(data)
    auto_svc.create_auto_purchase(session, car, cashbox_id=data.get('cashbox_id'), created_by=car.created_by)
    session.commit()
    return _car_json(car), 201


@auto_bp.put('/cars/<int:car_id>')
@require_permissions('AUTO.MANAGE')
@audit_log('AUTO.CAR.UPDATE', module='auto', entity='Car', entity_id_key='id',
           diff_keys=list(CAR_FIELDS) + ['list_price'], pre_fetch=lambda a, kw: _car_json(_get_car(kw['car_id'])))
def update_car(car_id: int):
    session = get_db()
    car = _get_car(car_id)
    data = request.get_json(silent=True) or {}
    if 'cost_price' in data or 'status' in data:
        abort(400, description='cost_price and status have dedicated operations')
    _apply_car_fields(car, data)
    session.commit()
    return _car_json(car)


@auto_bp.post('/cars/<int:car_id>/status')
@require_permissions('AUTO.MANAGE')
@audit_log('AUTO.CAR.STATUS', module='auto', entity='Car', entity_id_key='id', diff_keys=['status'],
           pre_fetch=lambda a, kw: _car_json(_get_car(kw['car_id'])))
def set_car_status(car_id: int):
    session = get_db()
    car = _get_car(car_id)
    data = request.get_json(silent=True) or {}
    new_status = validate_status(data.get('status'), Car.ALL_STATUSES)
    old = car.status
    car.status = new_status
    auto_svc.add_timeline(session, car, 'STATUS', f'{old} → {new_status}', {'from': old, 'to': new_status}, current_user_id())
    session.commit()
    return _car_json(car)


@auto_bp.post('/cars/<int:car_id>/expenses')
@require_permissions('AUTO.MANAGE')
@audit_log('AUTO.CAR.EXPENSE', module='auto', entity='CarExpense', entity_id_key='id', meta_keys=['car_id', 'amount', 'source'])
def add_expense(car_id: int):
    session = get_db()
    car = _get_car(car_id)
    data = request.get_json(silent=True) or {}
    expense = auto_svc.record_auto_expense(
        session, car,
        amount=parse_amount(data.get('amount'), positive=True, required=False),
        description=data.get('description'),
        expense_type=data.get('type') or 'OTHER',
        cashbox_id=data.get('cashbox_id'),
        stock_item_id=data.get('stock_item_id'),
        quantity=parse_amount(data.get('quantity'), 'quantity', positive=True, required=False),
        created_by=current_user_id(),
    )
    session.commit()
    body = _expense_json(expense)
    body['car'] = _car_json(car)
    return body, 201


@auto_bp.get('/cars/<int:car_id>/expenses')
@require_permissions('AUTO.READ')
def list_expenses(car_id: int):
    car = _get_car(car_id)
    rows = get_db().execute(select(CarExpense).where(CarExpense.car_id == car.id).order_by(CarExpense.id.asc())).scalars()
    return {'data': [_expense_json(e) for e in rows]}


@auto_bp.get('/cars/<int:car_id>/timeline')
@require_permissions('AUTO.READ')
def car_timeline(car_id: int):
    car = _get_car(car_id)
    rows = get_db().execute(select(CarTimeline).where(CarTimeline.car_id == car.id).order_by(CarTimeline.id.asc())).scalars()
    return {'data': [_timeline_json(t) for t in rows]}


# --- Deals ---
@auto_bp.route('/deals', methods=['GET', 'HEAD'])
@require_permissions('DEALS.READ')
def list_deals():
    q = scope_to_companies(get_db().query(AutoDeal), AutoDeal.company_id)
    specs = {
        'status': {'op': lambda q, v: q.filter(AutoDeal.status == v), 'validate': lambda v: v in AutoDeal.ALL_STATUSES},
        'car_id': {'op': lambda q, v: q.filter(AutoDeal.car_id == v), 'coerce': int},
        'deal_type': {'op': lambda q, v: q.filter(AutoDeal.deal_type == v), 'validate': lambda v: v in AutoDeal.ALL_TYPES},
    }
    q = apply_filters(q, specs, request.args)
    allowed = {'id': AutoDeal.id, 'status': AutoDeal.status, 'total_amount': AutoDeal.total_amount,
               'updated_at': AutoDeal.updated_at}
    q = apply_multi_sort(q, request.args.get('sort'), allowed, AutoDeal.id, default=[AutoDeal.id.desc()])
    return list_response(q, _deal_json)


@auto_bp.route('/deals/<int:deal_id>', methods=['GET', 'HEAD'])
@require_permissions('DEALS.READ')
def get_deal(deal_id: int):
    deal = _get_deal(deal_id)
    body = _deal_json(deal)
    body['payments'] = [_payment_json(p) for p in deal.payments]
    return single_response(body, deal.updated_at)


@auto_bp.post('/deals')
@require_permissions('DEALS.CREATE')
@audit_log('AUTO.DEAL.CREATE', module='deals', entity='AutoDeal', entity_id_key='id',
           meta_keys=['deal_number', 'car_id', 'total_amount', 'currency'])
def create_deal():
    session = get_db()
    data = request.get_json(silent=True) or {}
    require_fields(data, 'car_id')
    car = _get_car(_int_or_none(data, 'car_id'))
    buyer_id = _int_or_none(data, 'buyer_contact_id')
    if buyer_id is not None:
        buyer = session.get(Contact, buyer_id)
        if not buyer or buyer.company_id != car.company_id:
            abort(400, description='buyer_contact_id invalid')
    deal = auto_svc.create_auto_deal(
        session, car,
        buyer_contact_id=buyer_id,
        deal_type=validate_status(data.get('deal_type') or AutoDeal.TYPE_CASH_SALE, AutoDeal.ALL_TYPES, 'deal_type'),
        total_amount=parse_amount(data.get('total_amount'), 'total_amount', positive=True),
        currency=validate_currency(data.get('currency') or car.purchase_currency, SUPPORTED_CURRENCIES),
        description=data.get('description'),
        created_by=current_user_id(),
    )
    if buyer_id:
        log_contact_event(session, buyer_id, 'deals', 'auto_deal', deal.id, f'Сделка {deal.deal_number}',
                          {'car_id': car.id, 'total_amount': str(deal.total_amount), 'currency': deal.currency})
    session.commit()
    return _deal_json(deal), 201


@auto_bp.post('/deals/<int:deal_id>/payments')
@require_permissions('DEALS.PAY')
@audit_log('AUTO.DEAL.PAYMENT', module='deals', entity='AutoDeal', entity_id_key='id',
           diff_keys=['status', 'paid_amount'], pre_fetch=lambda a, kw: _deal_json(_get_deal(kw['deal_id'])))
def add_payment(deal_id: int):
    session = get_db()
    deal = _get_deal(deal_id)
    data = request.get_json(silent=True) or {}
    auto_svc.record_auto_payment(
        session, deal,
        amount=parse_amount(data.get('amount'), positive=True),
        currency=validate_currency(data.get('currency') or deal.currency, SUPPORTED_CURRENCIES),
        rate=parse_amount(data.get('rate'), 'rate', positive=True, default=Decimal('1')),
        payment_type=validate_status(data.get('payment_type') or AutoDealPayment.TYPE_PAYMENT,
                                     (AutoDealPayment.TYPE_PAYMENT, AutoDealPayment.TYPE_REFUND), 'payment_type'),
        cashbox_id=data.get('cashbox_id'),
        description=data.get('description'),
        created_by=current_user_id(),
    )
    session.commit()
    body = _deal_json(deal)
    body['payments'] = [_payment_json(p) for p in deal.payments]
    return body, 201


@auto_bp.post('/deals/<int:deal_id>/complete')
@require_permissions('DEALS.MANAGE')
@audit_log('AUTO.DEAL.COMPLETE', module='deals', entity='AutoDeal', entity_id_key='id', diff_keys=['status'],
           pre_fetch=lambda a, kw: _deal_json(_get_deal(kw['deal_id'])), meta_keys=['margin'])
def complete_deal(deal_id: int):
    session = get_db()
    deal = _get_deal(deal_id)
    auto_svc.complete_deal(session, deal, current_user_id())
    session.commit()
    return _deal_json(deal)


@auto_bp.post('/deals/<int:deal_id>/cancel')
@require_permissions('DEALS.MANAGE')
@audit_log('AUTO.DEAL.CANCEL', module='deals', entity='AutoDeal', entity_id_key='id', diff_keys=['status'],
           pre_fetch=lambda a, kw: _deal_json(_get_deal(kw['deal_id'])))
def cancel_deal(deal_id: int):
    session = get_db()
    deal = _get_deal(deal_id)
    auto_svc.cancel_deal(session, deal, current_user_id())
    session.commit()
    return _deal_json(deal)
