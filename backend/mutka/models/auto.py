from __future__ import annotations
from decimal import Decimal
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, DateTime, ForeignKey, Text, JSON, func
from .authz import Base
from .cashbox import MONEY


class Car(Base):
    __tablename__ = 'cars'
    STATUS_IN_STOCK = 'IN_STOCK'
    STATUS_RESERVED = 'RESERVED'
    STATUS_SOLD = 'SOLD'
    STATUS_PREP = 'PREP'
    STATUS_IN_TRANSIT = 'IN_TRANSIT'
    STATUS_ARCHIVED = 'ARCHIVED'
    ALL_STATUSES = (STATUS_IN_STOCK, STATUS_RESERVED, STATUS_SOLD, STATUS_PREP, STATUS_IN_TRANSIT, STATUS_ARCHIVED)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    company_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    vin: Mapped[Optional[str]] = mapped_column(String(32), index=True)
    brand: Mapped[str] = mapped_column(String(64), nullable=False)
    model: Mapped[str] = mapped_column(String(64), nullable=False)
    year: Mapped[Optional[int]] = mapped_column(Integer)
    color: Mapped[Optional[str]] = mapped_column(String(32))
    mileage: Mapped[Optional[int]] = mapped_column(Integer)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=STATUS_IN_STOCK, index=True)
    purchase_price: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal('0'))
    purchase_currency: Mapped[str] = mapped_column(String(8), nullable=False, default='USD')
    cost_price: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal('0'))
    list_price: Mapped[Optional[Decimal]] = mapped_column(MONEY)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_by: Mapped[Optional[int]] = mapped_column(Integer)
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class CarExpense(Base):
    __tablename__ = 'car_expenses'
    SOURCE_CASH = 'cash'
    SOURCE_STOCK = 'stock'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    car_id: Mapped[int] = mapped_column(ForeignKey('cars.id', ondelete='CASCADE'), nullable=False, index=True)
    expense_type: Mapped[str] = mapped_column(String(32), nullable=False, default='OTHER')
    source: Mapped[str] = mapped_column(String(8), nullable=False)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    currency: Mapped[str] = mapped_column(String(8), nullable=False)
    cashbox_id: Mapped[Optional[int]] = mapped_column(ForeignKey('cashboxes.id'))
    stock_item_id: Mapped[Optional[int]] = mapped_column(ForeignKey('stock_items.id'))
    quantity: Mapped[Optional[Decimal]] = mapped_column(MONEY)
    description: Mapped[Optional[str]] = mapped_column(Text)
    created_by: Mapped[Optional[int]] = mapped_column(Integer)
    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())


class CarTimeline(Base):
    __tablename__ = 'car_timeline'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    car_id: Mapped[int] = mapped_column(ForeignKey('cars.id', ondelete='CASCADE'), nullable=False, index=True)
    event_type: Mapped[str] = mapped_column(String(32), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, default=dict)
    created_by: Mapped[Optional[int]] = mapped_column(Integer)
    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())


class AutoDeal(Base):
    __tablename__ = 'auto_deals'
    # NEW -> IN_PROGRESS -> PENDING_PAYMENT -> PAID -> COMPLETED; CANCELLED from any unpaid state
    STATUS_NEW = 'NEW'
    STATUS_IN_PROGRESS = 'IN_PROGRESS'
    STATUS_PENDING_PAYMENT = 'PENDING_PAYMENT'
    STATUS_PAID = 'PAID'
    STATUS_COMPLETED = 'COMPLETED'
    STATUS_CANCELLED = 'CANCELLED'
    ALL_STATUSES = (STATUS_NEW, STATUS_IN_PROGRESS, STATUS_PENDING_PAYMENT, STATUS_PAID, STATUS_COMPLETED, STATUS_CANCELLED)
    TYPE_CASH_SALE = 'CASH_SALE'
    TYPE_COMMISSION_SALE = 'COMMISSION_SALE'
    TYPE_INSTALLMENT = 'INSTALLMENT'
    TYPE_RENTAL = 'RENTAL'
    ALL_TYPES = (TYPE_CASH_SALE, TYPE_COMMISSION_SALE, TYPE_INSTALLMENT, TYPE_RENTAL)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    company_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    deal_number: Mapped[str] = mapped_column(String(32), nullable=False, default='', index=True)
    car_id: Mapped[int] = mapped_column(ForeignKey('cars.id'), nullable=False, index=True)
    buyer_contact_id: Mapped[Optional[int]] = mapped_column(ForeignKey('contacts.id'))
    deal_type: Mapped[str] = mapped_column(String(24), nullable=False, default=TYPE_CASH_SALE)
    status: Mapped[str] = mapped_column(String(24), nullable=False, default=STATUS_NEW, index=True)
    total_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    currency: Mapped[str] = mapped_column(String(8), nullable=False)
    paid_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal('0'))
    margin: Mapped[Optional[Decimal]] = mapped_column(MONEY)
    description: Mapped[Optional[str]] = mapped_column(Text)
    created_by: Mapped[Optional[int]] = mapped_column(Integer)
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    car = relationship('Car')
    payments = relationship('AutoDealPayment', back_populates='deal', cascade='all, delete-orphan', order_by='AutoDealPayment.id')


class AutoDealPayment(Base):
    __tablename__ = 'auto_deal_payments'
    TYPE_PAYMENT = 'PAYMENT'
    TYPE_REFUND = 'REFUND'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    deal_id: Mapped[int] = mapped_column(ForeignKey('auto_deals.id', ondelete='CASCADE'), nullable=False, index=True)
    payment_type: Mapped[str] = mapped_column(String(8), nullable=False, default=TYPE_PAYMENT)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    currency: Mapped[str] = mapped_column(String(8), nullable=False)
    rate: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal('1'))
    amount_in_deal_currency: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    cashbox_id: Mapped[Optional[int]] = mapped_column(ForeignKey('cashboxes.id'))
    description: Mapped[Optional[str]] = mapped_column(Text)
    created_by: Mapped[Optional[int]] = mapped_column(Integer)
    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())

    deal = relationship('AutoDeal', back_populates='payments')

__all__ = ['Car', 'CarExpense', 'CarTimeline', 'AutoDeal', 'AutoDealPayment']
