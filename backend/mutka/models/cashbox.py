from __future__ import annotations
from decimal import Decimal
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, Boolean, Numeric, DateTime, ForeignKey, Text, func
from .authz import Base

MONEY = Numeric(20, 8)


class CashboxLocation(Base):
    __tablename__ = 'cashbox_locations'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    company_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class Cashbox(Base):
    __tablename__ = 'cashboxes'
    TYPE_CASH = 'CASH'
    TYPE_BANK = 'BANK'
    TYPE_CRYPTO = 'CRYPTO'
    TYPE_TRADE_IN = 'TRADE_IN'
    ALL_TYPES = (TYPE_CASH, TYPE_BANK, TYPE_CRYPTO, TYPE_TRADE_IN)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    company_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False, default=TYPE_CASH)
    currency: Mapped[str] = mapped_column(String(8), nullable=False, index=True)
    balance: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal('0'))
    initial_balance: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal('0'))
    is_hidden: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    location_id: Mapped[Optional[int]] = mapped_column(ForeignKey('cashbox_locations.id', ondelete='SET NULL'), nullable=True)
    holder_name: Mapped[Optional[str]] = mapped_column(String(128))
    holder_phone: Mapped[Optional[str]] = mapped_column(String(32))
    created_by: Mapped[Optional[int]] = mapped_column(Integer)
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    location = relationship('CashboxLocation')


class CashboxTransaction(Base):
    """Append-only movement row; `balance_after` is the cashbox balance right after this row."""
    __tablename__ = 'cashbox_transactions'
    CAT_INITIAL = 'INITIAL'
    CAT_DEPOSIT = 'DEPOSIT'
    CAT_WITHDRAW = 'WITHDRAW'
    CAT_DEAL_PAYMENT = 'DEAL_PAYMENT'
    CAT_EXPENSE = 'EXPENSE'
    CAT_SALARY = 'SALARY'
    CAT_EXCHANGE_OUT = 'EXCHANGE_OUT'
    CAT_EXCHANGE_IN = 'EXCHANGE_IN'
    CAT_TRANSFER_OUT = 'TRANSFER_OUT'
    CAT_TRANSFER_IN = 'TRANSFER_IN'
    CAT_CLIENT_EXCHANGE_IN = 'CLIENT_EXCHANGE_IN'
    CAT_CLIENT_EXCHANGE_OUT = 'CLIENT_EXCHANGE_OUT'
    CAT_FINANCE = 'FINANCE'
    ALL_CATEGORIES = (
        CAT_INITIAL, CAT_DEPOSIT, CAT_WITHDRAW, CAT_DEAL_PAYMENT, CAT_EXPENSE, CAT_SALARY,
        CAT_EXCHANGE_OUT, CAT_EXCHANGE_IN, CAT_TRANSFER_OUT, CAT_TRANSFER_IN,
        CAT_CLIENT_EXCHANGE_IN, CAT_CLIENT_EXCHANGE_OUT, CAT_FINANCE,
    )
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    company_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    cashbox_id: Mapped[int] = mapped_column(ForeignKey('cashboxes.id', ondelete='CASCADE'), nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    balance_after: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    category: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text)
    reference_id: Mapped[Optional[str]] = mapped_column(String(64), index=True)
    created_by: Mapped[Optional[int]] = mapped_column(Integer)
    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    cashbox = relationship('Cashbox')

__all__ = ['MONEY', 'CashboxLocation', 'Cashbox', 'CashboxTransaction']
