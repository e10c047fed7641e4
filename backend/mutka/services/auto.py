"""Car inventory and car deals.

Purchases, expenses and payments touch cashboxes and stock inside the caller's
transaction; route handlers commit once.
"""
from __future__ import annotations
from decimal import Decimal
from typing import Optional
from flask import abort
from mutka.models.auto import Car, CarExpense, CarTimeline, AutoDeal, AutoDealPayment
from mutka.models.cashbox import CashboxTransaction
from mutka.models.stock import StockItem
from mutka.services.ledger import get_cashbox_for_update, cashbox_operation
from mutka.services.stock import write_off
from mutka.utils.fsm import TransitionValidator
from mutka.utils.dates import utcnow
from mutka.utils.validation import parse_id

DEAL_FSM = TransitionValidator({
    AutoDeal.STATUS_NEW: {AutoDeal.STATUS_IN_PROGRESS, AutoDeal.STATUS_PENDING_PAYMENT, AutoDeal.STATUS_PAID, AutoDeal.STATUS_CANCELLED},
    AutoDeal.STATUS_IN_PROGRESS: {AutoDeal.STATUS_PENDING_PAYMENT, AutoDeal.STATUS_PAID, AutoDeal.STATUS_CANCELLED},
    AutoDeal.STATUS_PENDING_PAYMENT: {AutoDeal.STATUS_PAID, AutoDeal.STATUS_CANCELLED},
    AutoDeal.STATUS_PAID: {AutoDeal.STATUS_COMPLETED},
    AutoDeal.STATUS_COMPLETED: set(),
    AutoDeal.STATUS_CANCELLED: set(),
})

CLOSED_CAR_STATUSES = (Car.STATUS_SOLD, Car.STATUS_ARCHIVED)


def deal_number(deal_id: int, when=None) -> str:
    when = when or utcnow()
    return f"AD-{when.strftime('%Y%m%d')}-{deal_id:05d}"


def add_timeline(session, car: Car, event_type: str, title: str, payload: Optional[dict] = None,
                 created_by: Optional[int] = None) -> CarTimeline:
    entry = CarTimeline(car_id=car.id, event_type=event_type, title=title, payload=payload or {}, created_by=created_by)
    session.add(entry)
    return entry


def create_auto_purchase(session, car: Car, cashbox_id=None, created_by: Optional[int] = None) -> Car:
    car.cost_price = Decimal(car.purchase_price or 0)
    session.add(car)
    session.flush()
    payload = {'purchase_price': str(car.purchase_price), 'currency': car.purchase_currency}
    if cashbox_id:
        cb = get_cashbox_for_update(session, cashbox_id)
        if cb.currency != car.purchase_currency:
            abort(400, description=f'Cashbox currency {cb.currency} does not match purchase currency {car.purchase_currency}')
        tx = cashbox_operation(session, cb, -Decimal(car.purchase_price), CashboxTransaction.CAT_EXPENSE,
                               f'Покупка авто {car.brand} {car.model}', reference_id=car.id, created_by=created_by)
        payload['cashbox_id'] = cb.id
        payload['transaction_id'] = tx.id
    add_timeline(session, car, 'PURCHASE', f'Покупка {car.brand} {car.model}', payload, created_by)
    session.flush()
    return car


def record_auto_expense(session, car: Car, *, amount: Optional[Decimal] = None, description: Optional[str] = None,
                        expense_type: str = 'OTHER', cashbox_id=None, stock_item_id=None,
                        quantity: Optional[Decimal] = None, created_by: Optional[int] = None) -> CarExpense:
    if stock_item_id:
        item = session.get(StockItem, parse_id(stock_item_id, 'stock_item_id'))
        if not item or item.company_id != car.company_id:
            abort(400, description='stock_item_id invalid')
        if quantity is None or quantity <= 0:
            abort(400, description='quantity must be positive')
        mv = write_off(session, item, quantity, reason=description or f'Расход на авто #{car.id}',
                       car_id=car.id, created_by=created_by)
        cost = Decimal(mv.total_cost)
        expense = CarExpense(car_id=car.id, expense_type=expense_type, source=CarExpense.SOURCE_STOCK, amount=cost,
                             currency=item.currency, stock_item_id=item.id, quantity=quantity,
                             description=description, created_by=created_by)
    elif cashbox_id:
        if amount is None or amount <= 0:
            abort(400, description='amount must be positive')
        cb = get_cashbox_for_update(session, cashbox_id)
        if cb.currency != car.purchase_currency:
            abort(400, description=f'Expense currency {cb.currency} must match car currency {car.purchase_currency}')
        cashbox_operation(session, cb, -amount, CashboxTransaction.CAT_EXPENSE,
                          description or f'Расход на авто {car.brand} {car.model}', reference_id=car.id, created_by=created_by)
        cost = amount
        expense = CarExpense(car_id=car.id, expense_type=expense_type, source=CarExpense.SOURCE_CASH, amount=amount,
                             currency=cb.currency, cashbox_id=cb.id, description=description, created_by=created_by)
    else:
        abort(400, description='cashbox_id or stock_item_id required')
    car.cost_price = Decimal(car.cost_price or 0) + cost
    session.add(expense)
    session.flush()
    add_timeline(session, car, 'EXPENSE', description or expense_type,
                 {'expense_id': expense.id, 'amount': str(cost), 'source': expense.source}, created_by)
    return expense


def create_auto_deal(session, car: Car, *, buyer_contact_id=None, deal_type: str, total_amount: Decimal, currency: str,
                     description: Optional[str] = None, created_by: Optional[int] = None) -> AutoDeal:
    if car.status in CLOSED_CAR_STATUSES:
        abort(400, description=f'Car is {car.status}')
    deal = AutoDeal(company_id=car.company_id, car_id=car.id, buyer_contact_id=buyer_contact_id, deal_type=deal_type,
                    status=AutoDeal.STATUS_NEW, total_amount=total_amount, currency=currency,
                    paid_amount=Decimal('0'), description=description, created_by=created_by)
    session.add(deal)
    session.flush()
    deal.deal_number = deal_number(deal.id)
    car.status = Car.STATUS_RESERVED
    add_timeline(session, car, 'DEAL_CREATED', f'Сделка {deal.deal_number}', {'deal_id': deal.id}, created_by)
    session.flush()
    return deal


def record_auto_payment(session, deal: AutoDeal, *, amount: Decimal, currency: str, rate: Decimal = Decimal('1'),
                        payment_type: str = AutoDealPayment.TYPE_PAYMENT, cashbox_id=None,
                        description: Optional[str] = None, created_by: Optional[int] = None) -> AutoDealPayment:
    if deal.status in (AutoDeal.STATUS_CANCELLED, AutoDeal.STATUS_COMPLETED):
        abort(400, description=f'Deal is {deal.status}')
    refund = payment_type == AutoDealPayment.TYPE_REFUND
    in_deal = amount / rate
    if refund:
        in_deal = -in_deal
    new_paid = Decimal(deal.paid_amount or 0) + in_deal
    if new_paid < 0:
        abort(400, description='Refund exceeds paid amount')
    payment = AutoDealPayment(deal_id=deal.id, payment_type=payment_type, amount=amount, currency=currency, rate=rate,
                              amount_in_deal_currency=in_deal, description=description, created_by=created_by)
    if cashbox_id:
        cb = get_cashbox_for_update(session, cashbox_id)
        if cb.currency != currency:
            abort(400, description=f'Cashbox currency {cb.currency} does not match payment currency {currency}')
        cashbox_operation(session, cb, -amount if refund else amount, CashboxTransaction.CAT_DEAL_PAYMENT,
                          description or f'Оплата по сделке {deal.deal_number}', reference_id=deal.id, created_by=created_by)
        payment.cashbox_id = cb.id
    deal.payments.append(payment)
    deal.paid_amount = new_paid
    if new_paid >= Decimal(deal.total_amount):
        if deal.status != AutoDeal.STATUS_PAID:
            DEAL_FSM.assert_can_transition(deal.status, AutoDeal.STATUS_PAID)
            deal.status = AutoDeal.STATUS_PAID
    elif deal.status == AutoDeal.STATUS_PAID or (new_paid > 0 and deal.status in (AutoDeal.STATUS_NEW, AutoDeal.STATUS_IN_PROGRESS)):
        # any refund below the total, down to zero, reopens a paid deal
        deal.status = AutoDeal.STATUS_PENDING_PAYMENT
    session.flush()
    return payment


def complete_deal(session, deal: AutoDeal, created_by: Optional[int] = None) -> AutoDeal:
    DEAL_FSM.assert_can_transition(deal.status, AutoDeal.STATUS_COMPLETED)
    if Decimal(deal.paid_amount or 0) < Decimal(deal.total_amount):
        abort(400, description='Deal is not fully paid')
    deal.status = AutoDeal.STATUS_COMPLETED
    car = deal.car
    car.status = Car.STATUS_SOLD
    deal.margin = Decimal(deal.total_amount) - Decimal(car.cost_price or 0)
    add_timeline(session, car, 'SOLD', f'Продажа по сделке {deal.deal_number}',
                 {'deal_id': deal.id, 'margin': str(deal.margin)}, created_by)
    session.flush()
    return deal


def cancel_deal(session, deal: AutoDeal, created_by: Optional[int] = None) -> AutoDeal:
    DEAL_FSM.assert_can_transition(deal.status, AutoDeal.STATUS_CANCELLED)
    deal.status = AutoDeal.STATUS_CANCELLED
    car = deal.car
    car.status = Car.STATUS_IN_STOCK
    add_timeline(session, car, 'DEAL_CANCELLED', f'Отмена сделки {deal.deal_number}', {'deal_id': deal.id}, created_by)
    session.flush()
    return deal
