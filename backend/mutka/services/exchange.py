from __future__ import annotations
from decimal import Decimal
from typing import Optional
from flask import abort, current_app
from mutka.errors import InsufficientFunds, RateDeviation
from mutka.models.cashbox import CashboxTransaction
from mutka.models.currency import ExchangeLog
from mutka.services.ledger import get_cashbox_for_update, cashbox_operation

MAX_SENT_AMOUNT = Decimal('1000000000')


def execute_exchange(session, *, from_cashbox_id, to_cashbox_id, sent_amount: Decimal, received_amount: Decimal,
                     rate: Decimal, fee: Decimal = Decimal('0'), description: Optional[str] = None,
                     created_by: Optional[int] = None) -> ExchangeLog:
    """Move money between two cashboxes of different currencies.

    Validation order: ids, amounts, existence, archive state, currencies, funds, rate deviation.
    Balances, both transaction rows and the log are staged in the caller's transaction.
    """
    if not from_cashbox_id or not to_cashbox_id:
        abort(400, description='from_cashbox_id and to_cashbox_id required')
    if sent_amount <= 0 or sent_amount > MAX_SENT_AMOUNT:
        abort(400, description='sent_amount out of range')
    if received_amount <= 0:
        abort(400, description='received_amount must be positive')
    if rate <= 0:
        abort(400, description='rate must be positive')
    if fee < 0:
        abort(400, description='fee must not be negative')
    src = get_cashbox_for_update(session, from_cashbox_id)
    dst = get_cashbox_for_update(session, to_cashbox_id)
    if src.currency == dst.currency:
        abort(400, description='Exchange requires different currencies')
    if sent_amount > Decimal(src.balance):
        raise InsufficientFunds(f'Insufficient funds in {src.name}: balance {src.balance}, needed {sent_amount}')
    actual = received_amount / sent_amount
    deviation = abs(actual - rate) / rate
    max_dev = Decimal(str(current_app.config.get('FX_MAX_RATE_DEVIATION', '0.05')))
    if deviation > max_dev:
        raise RateDeviation(f'Actual rate {actual:.6f} deviates from declared {rate} by {deviation * 100:.2f}%')
    text = description or f'Обмен {sent_amount} {src.currency} → {received_amount} {dst.currency}'
    out_tx = cashbox_operation(session, src, -sent_amount, CashboxTransaction.CAT_EXCHANGE_OUT, text, created_by=created_by)
    cashbox_operation(session, dst, received_amount, CashboxTransaction.CAT_EXCHANGE_IN, text,
                      reference_id=out_tx.id, created_by=created_by)
    log = ExchangeLog(
        company_id=src.company_id,
        from_cashbox_id=src.id,
        to_cashbox_id=dst.id,
        sent_amount=sent_amount,
        sent_currency=src.currency,
        received_amount=received_amount,
        received_currency=dst.currency,
        rate=rate,
        fee_amount=fee,
        fee_currency=src.currency if fee > 0 else None,
        description=description,
        created_by=created_by,
    )
    session.add(log)
    session.flush()
    return log
