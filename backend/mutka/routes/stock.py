from __future__ import annotations
from decimal import Decimal
from flask import Blueprint, request, abort
from sqlalchemy import select
from mutka.decorators.auth import require_permissions
from mutka.decorators.audit import audit_log
from mutka.utils.listing import list_response, single_response
from mutka.utils.sorting import apply_multi_sort
from mutka.utils.filters import apply_filters, truthy_flag
from mutka.utils.validation import parse_amount, parse_id, validate_currency, validate_status, require_fields, money
from mutka.utils.dates import iso
from mutka.services.policy import current_company_id, current_user_id, assert_company_access, scope_to_companies
from mutka.services import stock as stock_svc
from mutka.models.stock import StockItem, StockMovement
from mutka.models.auto import Car
from mutka.constants.currencies import SUPPORTED_CURRENCIES
from mutka import get_db

stock_bp = Blueprint('stock', __name__)


def _item_json(it: StockItem):
    return {
        'id': it.id,
        'company_id': it.company_id,
        'sku': it.sku,
        'name': it.name,
        'category': it.category,
        'unit': it.unit,
        'quantity': money(it.quantity),
        'min_quantity': money(it.min_quantity),
        'avg_purchase_price': money(it.avg_purchase_price),
        'sale_price': money(it.sale_price),
        'currency': it.currency,
        'location': it.location,
        'is_active': it.is_active,
    }


def _movement_json(mv: StockMovement):
    return {
        'id': mv.id,
        'item_id': mv.item_id,
        'type': mv.movement_type,
        'quantity': money(mv.quantity),
        'unit_price': money(mv.unit_price),
        'total_cost': money(mv.total_cost),
        'cashbox_id': mv.cashbox_id,
        'car_id': mv.car_id,
        'reason': mv.reason,
        'created_by': mv.created_by,
        'created_at': iso(mv.updated_at),
    }


def _get_item(item_id: int) -> StockItem:
    it = get_db().get(StockItem, item_id)
    if not it:
        abort(404)
    assert_company_access(it.company_id)
    return it


def _sku_taken(company_id: int, sku: str, exclude_id=None) -> bool:
    stmt = select(StockItem.id).where(StockItem.company_id == company_id, StockItem.sku == sku)
    if exclude_id:
        stmt = stmt.where(StockItem.id != exclude_id)
    return get_db().execute(stmt).first() is not None


@stock_bp.route('/items', methods=['GET', 'HEAD'])
@require_permissions('STOCK.READ')
def list_items():
    q = scope_to_companies(get_db().query(StockItem), StockItem.company_id)
    if truthy_flag(request.args, 'low_stock'):
        q = q.filter(StockItem.quantity <= StockItem.min_quantity)
    if not truthy_flag(request.args, 'include_inactive'):
        q = q.filter(StockItem.is_active.is_(True))
    specs = {
        'category': {'op': lambda q, v: q.filter(StockItem.category == v)},
        'q': {'op': lambda q, v: q.filter(StockItem.name.ilike(f'%{v}%') | StockItem.sku.ilike(f'%{v}%'))},
    }
    q = apply_filters(q, specs, request.args)
    allowed = {'name': StockItem.name, 'sku': StockItem.sku, 'quantity': StockItem.quantity, 'id': StockItem.id}
    q = apply_multi_sort(q, request.args.get('sort'), allowed, StockItem.id, default=[StockItem.name.asc()])
    return list_response(q, _item_json)


@stock_bp.route('/items/<int:item_id>', methods=['GET', 'HEAD'])
@require_permissions('STOCK.READ')
def get_item(item_id: int):
    it = _get_item(item_id)
    return single_response(_item_json(it), it.updated_at)


@stock_bp.post('/items')
@require_permissions('STOCK.MANAGE')
@audit_log('STOCK.ITEM.CREATE', module='stock', entity='StockItem', entity_id_key='id', meta_keys=['sku', 'name'])
def create_item():
    session = get_db()
    data = request.get_json(silent=True) or {}
    require_fields(data, 'sku', 'name')
    company_id = current_company_id()
    sku = str(data['sku']).strip()
    if _sku_taken(company_id, sku):
        abort(400, description=f'SKU {sku} already exists')
    it = StockItem(
        company_id=company_id,
        sku=sku,
        name=str(data['name']).strip(),
        category=data.get('category'),
        unit=data.get('unit') or 'pcs',
        quantity=Decimal('0'),
        min_quantity=parse_amount(data.get('min_quantity'), 'min_quantity', non_negative=True, default=Decimal('0')),
        avg_purchase_price=Decimal('0'),
        sale_price=parse_amount(data.get('sale_price'), 'sale_price', non_negative=True, required=False),
        currency=validate_currency(data.get('currency') or 'RUB', SUPPORTED_CURRENCIES),
        location=data.get('location'),
        is_active=bool(data.get('is_active', True)),
    )
    session.add(it)
    session.commit()
    return _item_json(it), 201


@stock_bp.put('/items/<int:item_id>')
@require_permissions('STOCK.MANAGE')
@audit_log('STOCK.ITEM.UPDATE', module='stock', entity='StockItem', entity_id_key='id',
           diff_keys=['sku', 'name', 'min_quantity', 'sale_price', 'is_active'],
           pre_fetch=lambda a, kw: _item_json(_get_item(kw['item_id'])))
def update_item(item_id: int):
    session = get_db()
    it = _get_item(item_id)
    data = request.get_json(silent=True) or {}
    if 'quantity' in data:
        abort(400, description='quantity changes go through stock operations')
    if 'sku' in data:
        sku = str(data['sku'] or '').strip()
        if not sku:
            abort(400, description='sku required')
        if _sku_taken(it.company_id, sku, exclude_id=it.id):
            abort(400, description=f'SKU {sku} already exists')
        it.sku = sku
    for key in ('name', 'category', 'unit', 'location'):
        if key in data:
            setattr(it, key, data[key])
    if 'min_quantity' in data:
        it.min_quantity = parse_amount(data['min_quantity'], 'min_quantity', non_negative=True)
    if 'sale_price' in data:
        it.sale_price = parse_amount(data['sale_price'], 'sale_price', non_negative=True, required=False)
    if 'is_active' in data:
        it.is_active = bool(data['is_active'])
    session.commit()
    return _item_json(it)


@stock_bp.post('/items/<int:item_id>/operations')
@require_permissions('STOCK.OPERATE')
@audit_log('STOCK.OPERATION', module='stock', entity='StockItem', entity_id_key='item_id',
           meta_keys=['type', 'quantity', 'total_cost'])
def item_operation(item_id: int):
    session = get_db()
    it = _get_item(item_id)
    data = request.get_json(silent=True) or {}
    op_type = validate_status(data.get('type'), StockMovement.ALL_TYPES, 'type')
    user_id = current_user_id()
    if op_type == StockMovement.TYPE_PURCHASE:
        require_fields(data, 'cashbox_id')
        mv = stock_svc.purchase(
            session, it,
            parse_amount(data.get('quantity'), 'quantity', positive=True),
            parse_amount(data.get('unit_price'), 'unit_price', positive=True),
            data['cashbox_id'],
            supplier=data.get('supplier'), note=data.get('note'), created_by=user_id,
        )
    elif op_type == StockMovement.TYPE_WRITE_OFF:
        car_id = data.get('car_id')
        if car_id is not None:
            car = session.get(Car, parse_id(car_id, 'car_id'))
            if not car or car.company_id != it.company_id:
                abort(400, description='car_id invalid')
        mv = stock_svc.write_off(session, it, parse_amount(data.get('quantity'), 'quantity', positive=True),
                                 reason=data.get('reason'), car_id=car_id, created_by=user_id)
    else:
        mv = stock_svc.adjust(session, it, parse_amount(data.get('new_quantity'), 'new_quantity', non_negative=True),
                              reason=data.get('reason'), created_by=user_id)
    session.commit()
    body = _movement_json(mv)
    body['item'] = _item_json(it)
    return body, 201


@stock_bp.route('/movements', methods=['GET', 'HEAD'])
@require_permissions('STOCK.READ')
def list_movements():
    q = scope_to_companies(get_db().query(StockMovement), StockMovement.company_id)
    specs = {
        'item_id': {'op': lambda q, v: q.filter(StockMovement.item_id == v), 'coerce': int},
        'type': {'op': lambda q, v: q.filter(StockMovement.movement_type == v),
                 'validate': lambda v: v in StockMovement.ALL_TYPES},
        'car_id': {'op': lambda q, v: q.filter(StockMovement.car_id == v), 'coerce': int},
    }
    q = apply_filters(q, specs, request.args)
    q = apply_multi_sort(q, request.args.get('sort'), {'id': StockMovement.id}, StockMovement.id,
                         default=[StockMovement.id.desc()])
    return list_response(q, _movement_json)
