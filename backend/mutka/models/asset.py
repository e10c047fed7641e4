from __future__ import annotations
from decimal import Decimal
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, Date, DateTime, ForeignKey, Text, func
from .authz import Base
from .cashbox import MONEY


class Asset(Base):
    __tablename__ = 'assets'
    STATUS_ACTIVE = 'active'
    STATUS_PLEDGED = 'pledged'
    STATUS_RELEASED = 'released'
    STATUS_FORECLOSED = 'foreclosed'
    STATUS_SOLD = 'sold'
    STATUS_ARCHIVED = 'archived'
    ALL_STATUSES = (STATUS_ACTIVE, STATUS_PLEDGED, STATUS_RELEASED, STATUS_FORECLOSED, STATUS_SOLD, STATUS_ARCHIVED)
    LIVE_STATUSES = (STATUS_ACTIVE, STATUS_PLEDGED, STATUS_RELEASED, STATUS_FORECLOSED)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    company_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    asset_type: Mapped[str] = mapped_column(String(32), nullable=False, default='other', index=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=STATUS_ACTIVE, index=True)
    owner_contact_id: Mapped[Optional[int]] = mapped_column(ForeignKey('contacts.id'))
    location: Mapped[Optional[str]] = mapped_column(String(128))
    description: Mapped[Optional[str]] = mapped_column(Text)
    units: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    pledged_units: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_by: Mapped[Optional[int]] = mapped_column(Integer)
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class AssetValuation(Base):
    __tablename__ = 'asset_valuations'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    asset_id: Mapped[int] = mapped_column(ForeignKey('assets.id', ondelete='CASCADE'), nullable=False, index=True)
    valuation_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    valuation_currency: Mapped[str] = mapped_column(String(8), nullable=False)
    base_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    base_currency: Mapped[str] = mapped_column(String(8), nullable=False, default='USD')
    fx_rate: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal('1'))
    valued_at: Mapped[object] = mapped_column(Date, nullable=False)
    note: Mapped[Optional[str]] = mapped_column(Text)
    created_by: Mapped[Optional[int]] = mapped_column(Integer)
    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())


class AssetMove(Base):
    __tablename__ = 'asset_moves'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    asset_id: Mapped[int] = mapped_column(ForeignKey('assets.id', ondelete='CASCADE'), nullable=False, index=True)
    from_location: Mapped[Optional[str]] = mapped_column(String(128))
    to_location: Mapped[str] = mapped_column(String(128), nullable=False)
    moved_at: Mapped[object] = mapped_column(Date, nullable=False)
    note: Mapped[Optional[str]] = mapped_column(Text)
    created_by: Mapped[Optional[int]] = mapped_column(Integer)
    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())

__all__ = ['Asset', 'AssetValuation', 'AssetMove']
