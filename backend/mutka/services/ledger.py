"""Cashbox balance mutations.

Every money movement funnels through `cashbox_operation`: adjust the balance, refuse to
go negative, append a transaction row carrying `balance_after`. Nothing here commits;
the route handler owns the transaction and the app error handler rolls back on failure.
"""
from __future__ import annotations
from decimal import Decimal
from typing import Optional, Tuple
from flask import abort
from sqlalchemy import select
from mutka.errors import CashboxArchived, InsufficientFunds
from mutka.models.cashbox import Cashbox, CashboxTransaction
from mutka.services.policy import assert_company_access


def get_cashbox_for_update(session, cashbox_id, *, allow_archived: bool = False) -> Cashbox:
    try:
        cashbox_id = int(cashbox_id)
    except (TypeError, ValueError):
        abort(400, description='cashbox_id invalid')
    cb = session.execute(select(Cashbox).where(Cashbox.id == cashbox_id).with_for_update()).scalar_one_or_none()
    if not cb:
        abort(404, description=f'Cashbox {cashbox_id} not found')
    assert_company_access(cb.company_id)
    if cb.is_archived and not allow_archived:
        raise CashboxArchived(f'Cashbox {cb.name} is archived')
    return cb


def cashbox_operation(session, cashbox: Cashbox, amount: Decimal, category: str, description: Optional[str] = None,
                      reference_id=None, created_by: Optional[int] = None) -> CashboxTransaction:
    amount = Decimal(amount)
    new_balance = Decimal(cashbox.balance or 0) + amount
    if new_balance < 0:
        raise InsufficientFunds(f'Insufficient funds in cashbox {cashbox.name}: balance {cashbox.balance}, needed {-amount}')
    cashbox.balance = new_balance
    tx = CashboxTransaction(
        company_id=cashbox.company_id,
        cashbox_id=cashbox.id,
        amount=amount,
        balance_after=new_balance,
        category=category,
        description=description,
        reference_id=str(reference_id) if reference_id is not None else None,
        created_by=created_by,
    )
    session.add(tx)
    session.flush()
    return tx


def deposit_withdraw(session, cashbox_id, amount: Decimal, withdraw: bool, description: Optional[str], created_by: int):
    cb = get_cashbox_for_update(session, cashbox_id)
    if withdraw:
        return cashbox_operation(session, cb, -amount, CashboxTransaction.CAT_WITHDRAW,
                                 description or 'Изъятие средств', created_by=created_by)
    return cashbox_operation(session, cb, amount, CashboxTransaction.CAT_DEPOSIT,
                             description or 'Внесение средств', created_by=created_by)


def transfer(session, from_id, to_id, amount: Decimal, note: Optional[str], created_by: int) -> Tuple[CashboxTransaction, CashboxTransaction]:
    if str(from_id) == str(to_id):
        abort(400, description='Source and target cashbox must differ')
    src = get_cashbox_for_update(session, from_id)
    dst = get_cashbox_for_update(session, to_id)
    if src.company_id != dst.company_id:
        abort(400, description='Cashboxes belong to different companies')
    if src.currency != dst.currency:
        abort(400, description=f'Currency mismatch: {src.currency} -> {dst.currency}')
    out_tx = cashbox_operation(session, src, -amount, CashboxTransaction.CAT_TRANSFER_OUT,
                               note or f'Перевод в {dst.name}', created_by=created_by)
    in_tx = cashbox_operation(session, dst, amount, CashboxTransaction.CAT_TRANSFER_IN,
                              note or f'Перевод из {src.name}', reference_id=out_tx.id, created_by=created_by)
    return out_tx, in_tx

__all__ = ['get_cashbox_for_update', 'cashbox_operation', 'deposit_withdraw', 'transfer']
