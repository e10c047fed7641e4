from __future__ import annotations
from decimal import Decimal
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, Boolean, Numeric, DateTime, ForeignKey, Text, func
from .authz import Base
from .cashbox import MONEY


class CurrencyRate(Base):
    """Pairwise rate snapshot (from -> to). Rewritten wholesale on refresh."""
    __tablename__ = 'currency_rates'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    from_currency: Mapped[str] = mapped_column(String(8), nullable=False, index=True)
    to_currency: Mapped[str] = mapped_column(String(8), nullable=False, index=True)
    rate: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    source: Mapped[str] = mapped_column(String(32), nullable=False, default='api')
    valid_from: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now(), index=True)


class SystemCurrencyRate(Base):
    __tablename__ = 'system_currency_rates'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[str] = mapped_column(String(8), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(64), nullable=False)
    symbol: Mapped[Optional[str]] = mapped_column(String(8))
    rate_to_rub: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal('1'))
    rate_to_usd: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal('1'))
    prev_rate_to_rub: Mapped[Optional[Decimal]] = mapped_column(MONEY)
    change_24h: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 4))
    last_updated: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class CurrencyRateHistory(Base):
    __tablename__ = 'currency_rate_history'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[str] = mapped_column(String(8), nullable=False, index=True)
    rate_to_rub: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    rate_to_usd: Mapped[Optional[Decimal]] = mapped_column(MONEY)
    source: Mapped[str] = mapped_column(String(32), nullable=False, default='manual')
    recorded_at: Mapped[object] = mapped_column(DateTime(timezone=True), nullable=False, index=True)


class ExchangeLog(Base):
    """Cashbox-to-cashbox conversion record."""
    __tablename__ = 'exchange_logs'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    company_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    from_cashbox_id: Mapped[int] = mapped_column(ForeignKey('cashboxes.id'), nullable=False)
    to_cashbox_id: Mapped[int] = mapped_column(ForeignKey('cashboxes.id'), nullable=False)
    sent_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    sent_currency: Mapped[str] = mapped_column(String(8), nullable=False)
    received_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    received_currency: Mapped[str] = mapped_column(String(8), nullable=False)
    rate: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    fee_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal('0'))
    fee_currency: Mapped[Optional[str]] = mapped_column(String(8))
    description: Mapped[Optional[str]] = mapped_column(Text)
    created_by: Mapped[Optional[int]] = mapped_column(Integer)
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

__all__ = ['CurrencyRate', 'SystemCurrencyRate', 'CurrencyRateHistory', 'ExchangeLog']
