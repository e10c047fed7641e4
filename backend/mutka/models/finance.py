from __future__ import annotations
from decimal import Decimal
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, Date, DateTime, ForeignKey, Text, func
from .authz import Base
from .cashbox import MONEY


class CoreDeal(Base):
    __tablename__ = 'core_deals'
    KIND_FINANCE = 'finance'
    STATUS_NEW = 'NEW'
    STATUS_ACTIVE = 'ACTIVE'
    STATUS_PAUSED = 'PAUSED'
    STATUS_CLOSED = 'CLOSED'
    STATUS_DEFAULT = 'DEFAULT'
    STATUS_CANCELLED = 'CANCELLED'
    ALL_STATUSES = (STATUS_NEW, STATUS_ACTIVE, STATUS_PAUSED, STATUS_CLOSED, STATUS_DEFAULT, STATUS_CANCELLED)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    company_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    deal_number: Mapped[str] = mapped_column(String(32), nullable=False, default='', index=True)
    kind: Mapped[str] = mapped_column(String(16), nullable=False, default=KIND_FINANCE)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=STATUS_NEW, index=True)
    contact_id: Mapped[Optional[int]] = mapped_column(ForeignKey('contacts.id'))
    created_by: Mapped[Optional[int]] = mapped_column(Integer)
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    finance = relationship('FinanceDeal', back_populates='core', uselist=False, cascade='all, delete-orphan')


class FinanceDeal(Base):
    __tablename__ = 'finance_deals'
    SCHEDULE_ANNUITY = 'annuity'
    SCHEDULE_DIFF = 'diff'
    SCHEDULE_INTEREST_ONLY = 'interest_only'
    SCHEDULE_MANUAL = 'manual'
    SCHEDULE_TRANCHES = 'tranches'
    ALL_SCHEDULE_TYPES = (SCHEDULE_ANNUITY, SCHEDULE_DIFF, SCHEDULE_INTEREST_ONLY, SCHEDULE_MANUAL, SCHEDULE_TRANCHES)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    core_deal_id: Mapped[int] = mapped_column(ForeignKey('core_deals.id', ondelete='CASCADE'), nullable=False, unique=True)
    principal_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    contract_currency: Mapped[str] = mapped_column(String(8), nullable=False)
    term_months: Mapped[int] = mapped_column(Integer, nullable=False)
    rate_percent: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal('0'))
    schedule_type: Mapped[str] = mapped_column(String(16), nullable=False, default=SCHEDULE_ANNUITY)
    start_date: Mapped[object] = mapped_column(Date, nullable=False)

    core = relationship('CoreDeal', back_populates='finance')


class FinanceScheduleRow(Base):
    __tablename__ = 'finance_payment_schedule'
    STATUS_PLANNED = 'PLANNED'
    STATUS_PAID = 'PAID'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    finance_deal_id: Mapped[int] = mapped_column(ForeignKey('finance_deals.id', ondelete='CASCADE'), nullable=False, index=True)
    period: Mapped[int] = mapped_column(Integer, nullable=False)
    due_date: Mapped[object] = mapped_column(Date, nullable=False)
    principal_due: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    interest_due: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    total_due: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    currency: Mapped[str] = mapped_column(String(8), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=STATUS_PLANNED)


class FinancePause(Base):
    __tablename__ = 'finance_pause_periods'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    finance_deal_id: Mapped[int] = mapped_column(ForeignKey('finance_deals.id', ondelete='CASCADE'), nullable=False, index=True)
    start_date: Mapped[object] = mapped_column(Date, nullable=False)
    end_date: Mapped[object] = mapped_column(Date, nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(Text)
    created_by: Mapped[Optional[int]] = mapped_column(Integer)


class FinanceLedgerEntry(Base):
    __tablename__ = 'finance_ledger'
    ENTRY_TYPES = (
        'disbursement', 'principal_repayment', 'early_repayment', 'interest_payment', 'fee', 'penalty',
        'adjustment', 'offset', 'collateral_sale_proceeds',
    )
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    finance_deal_id: Mapped[int] = mapped_column(ForeignKey('finance_deals.id', ondelete='CASCADE'), nullable=False, index=True)
    entry_type: Mapped[str] = mapped_column(String(32), nullable=False)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    currency: Mapped[str] = mapped_column(String(8), nullable=False)
    entry_date: Mapped[object] = mapped_column(Date, nullable=False)
    cashbox_id: Mapped[Optional[int]] = mapped_column(ForeignKey('cashboxes.id'))
    asset_id: Mapped[Optional[int]] = mapped_column(ForeignKey('assets.id'))
    note: Mapped[Optional[str]] = mapped_column(Text)
    created_by: Mapped[Optional[int]] = mapped_column(Integer)
    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())


class FinanceParticipant(Base):
    __tablename__ = 'finance_participants'
    ALL_ROLES = ('borrower', 'lender', 'guarantor', 'broker')
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    finance_deal_id: Mapped[int] = mapped_column(ForeignKey('finance_deals.id', ondelete='CASCADE'), nullable=False, index=True)
    contact_id: Mapped[Optional[int]] = mapped_column(ForeignKey('contacts.id'))
    employee_id: Mapped[Optional[int]] = mapped_column(ForeignKey('employees.id'))
    role: Mapped[str] = mapped_column(String(16), nullable=False)
    note: Mapped[Optional[str]] = mapped_column(Text)


class CollateralLink(Base):
    __tablename__ = 'finance_collateral_links'
    STATUS_ACTIVE = 'active'
    STATUS_RELEASED = 'released'
    STATUS_REPLACED = 'replaced'
    STATUS_FORECLOSED = 'foreclosed'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    finance_deal_id: Mapped[int] = mapped_column(ForeignKey('finance_deals.id', ondelete='CASCADE'), nullable=False, index=True)
    asset_id: Mapped[int] = mapped_column(ForeignKey('assets.id'), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=STATUS_ACTIVE, index=True)
    pledged_units: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    note: Mapped[Optional[str]] = mapped_column(Text)
    started_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())
    released_at: Mapped[Optional[object]] = mapped_column(DateTime(timezone=True))


class CollateralChain(Base):
    __tablename__ = 'finance_collateral_chain'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    finance_deal_id: Mapped[int] = mapped_column(ForeignKey('finance_deals.id', ondelete='CASCADE'), nullable=False, index=True)
    old_link_id: Mapped[int] = mapped_column(ForeignKey('finance_collateral_links.id'), nullable=False)
    new_link_id: Mapped[int] = mapped_column(ForeignKey('finance_collateral_links.id'), nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(Text)
    created_by: Mapped[Optional[int]] = mapped_column(Integer)
    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())

__all__ = [
    'CoreDeal', 'FinanceDeal', 'FinanceScheduleRow', 'FinancePause', 'FinanceLedgerEntry',
    'FinanceParticipant', 'CollateralLink', 'CollateralChain',
]
