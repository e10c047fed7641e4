from __future__ import annotations
from decimal import Decimal
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, Boolean, Date, DateTime, ForeignKey, Text, UniqueConstraint, func
from .authz import Base
from .cashbox import MONEY


class StockItem(Base):
    __tablename__ = 'stock_items'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    company_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    sku: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(64))
    unit: Mapped[str] = mapped_column(String(16), nullable=False, default='pcs')
    quantity: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal('0'))
    min_quantity: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal('0'))
    avg_purchase_price: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal('0'))
    sale_price: Mapped[Optional[Decimal]] = mapped_column(MONEY)
    currency: Mapped[str] = mapped_column(String(8), nullable=False, default='RUB')
    location: Mapped[Optional[str]] = mapped_column(String(128))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (UniqueConstraint('company_id', 'sku', name='uq_stock_item_sku'),)


class StockBatch(Base):
    __tablename__ = 'stock_batches'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    item_id: Mapped[int] = mapped_column(ForeignKey('stock_items.id', ondelete='CASCADE'), nullable=False, index=True)
    quantity: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    remaining_quantity: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    batch_date: Mapped[object] = mapped_column(Date, nullable=False)
    supplier: Mapped[Optional[str]] = mapped_column(String(128))


class StockMovement(Base):
    __tablename__ = 'stock_movements'
    TYPE_PURCHASE = 'PURCHASE'
    TYPE_WRITE_OFF = 'WRITE_OFF'
    TYPE_ADJUSTMENT = 'ADJUSTMENT'
    ALL_TYPES = (TYPE_PURCHASE, TYPE_WRITE_OFF, TYPE_ADJUSTMENT)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    company_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    item_id: Mapped[int] = mapped_column(ForeignKey('stock_items.id', ondelete='CASCADE'), nullable=False, index=True)
    movement_type: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    quantity: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    unit_price: Mapped[Optional[Decimal]] = mapped_column(MONEY)
    total_cost: Mapped[Optional[Decimal]] = mapped_column(MONEY)
    cashbox_id: Mapped[Optional[int]] = mapped_column(ForeignKey('cashboxes.id'))
    car_id: Mapped[Optional[int]] = mapped_column(ForeignKey('cars.id'))
    reason: Mapped[Optional[str]] = mapped_column(Text)
    created_by: Mapped[Optional[int]] = mapped_column(Integer)
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

__all__ = ['StockItem', 'StockBatch', 'StockMovement']
