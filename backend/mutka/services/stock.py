from __future__ import annotations
from decimal import Decimal
from typing import Optional
from flask import abort
from sqlalchemy import select
from mutka.errors import InsufficientFunds
from mutka.models.cashbox import CashboxTransaction
from mutka.models.stock import StockItem, StockBatch, StockMovement
from mutka.services.ledger import get_cashbox_for_update, cashbox_operation
from mutka.utils.dates import today


def purchase(session, item: StockItem, quantity: Decimal, unit_price: Decimal, cashbox_id, *,
             supplier: Optional[str] = None, note: Optional[str] = None, created_by: Optional[int] = None,
             batch_date=None) -> StockMovement:
    cb = get_cashbox_for_update(session, cashbox_id)
    if cb.currency != item.currency:
        abort(400, description=f'Cashbox currency {cb.currency} does not match item currency {item.currency}')
    total = quantity * unit_price
    if Decimal(cb.balance) < total:
        raise InsufficientFunds(f'Cashbox {cb.name} balance {cb.balance} is below purchase total {total}')
    session.add(StockBatch(item_id=item.id, quantity=quantity, remaining_quantity=quantity, unit_price=unit_price,
                           batch_date=batch_date or today(), supplier=supplier))
    old_qty = Decimal(item.quantity or 0)
    old_avg = Decimal(item.avg_purchase_price or 0)
    item.avg_purchase_price = (old_qty * old_avg + quantity * unit_price) / (old_qty + quantity)
    item.quantity = old_qty + quantity
    cashbox_operation(session, cb, -total, CashboxTransaction.CAT_EXPENSE,
                      note or f'Закупка {item.name} x {quantity}', created_by=created_by)
    mv = StockMovement(company_id=item.company_id, item_id=item.id, movement_type=StockMovement.TYPE_PURCHASE,
                       quantity=quantity, unit_price=unit_price, total_cost=total, cashbox_id=cb.id,
                       reason=note, created_by=created_by)
    session.add(mv)
    session.flush()
    return mv


def consume_fifo(session, item: StockItem, quantity: Decimal) -> Decimal:
    """Deplete batches oldest first and return the cost of `quantity`."""
    remaining = quantity
    cost = Decimal('0')
    batches = session.execute(
        select(StockBatch)
        .where(StockBatch.item_id == item.id, StockBatch.remaining_quantity > 0)
        .order_by(StockBatch.batch_date.asc(), StockBatch.id.asc())
    ).scalars()
    for batch in batches:
        if remaining <= 0:
            break
        take = min(Decimal(batch.remaining_quantity), remaining)
        batch.remaining_quantity = Decimal(batch.remaining_quantity) - take
        cost += take * Decimal(batch.unit_price)
        remaining -= take
    if remaining > 0:
        cost += remaining * Decimal(item.avg_purchase_price or 0)
    return cost


def write_off(session, item: StockItem, quantity: Decimal, *, reason: Optional[str] = None, car_id: Optional[int] = None,
              created_by: Optional[int] = None) -> StockMovement:
    if quantity > Decimal(item.quantity or 0):
        abort(400, description=f'Not enough {item.name} in stock: {item.quantity} available')
    cost = consume_fifo(session, item, quantity)
    item.quantity = Decimal(item.quantity) - quantity
    mv = StockMovement(company_id=item.company_id, item_id=item.id, movement_type=StockMovement.TYPE_WRITE_OFF,
                       quantity=-quantity, unit_price=cost / quantity, total_cost=cost, car_id=car_id,
                       reason=reason, created_by=created_by)
    session.add(mv)
    session.flush()
    return mv


def adjust(session, item: StockItem, new_quantity: Decimal, *, reason: Optional[str] = None,
           created_by: Optional[int] = None) -> StockMovement:
    diff = new_quantity - Decimal(item.quantity or 0)
    if diff == 0:
        abort(400, description='Quantity unchanged')
    item.quantity = new_quantity
    mv = StockMovement(company_id=item.company_id, item_id=item.id, movement_type=StockMovement.TYPE_ADJUSTMENT,
                       quantity=diff, reason=reason, created_by=created_by)
    session.add(mv)
    session.flush()
    return mv
