from __future__ import annotations
from decimal import Decimal
from typing import Optional, List
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, DateTime, ForeignKey, Text, JSON, func
from .authz import Base
from .cashbox import MONEY


class ClientExchangeOperation(Base):
    __tablename__ = 'client_exchange_operations'
    # completed -> cancelled (terminal)
    STATUS_COMPLETED = 'completed'
    STATUS_CANCELLED = 'cancelled'
    ALL_STATUSES = (STATUS_COMPLETED, STATUS_CANCELLED)
    VISIBILITY_PUBLIC = 'public'
    VISIBILITY_RESTRICTED = 'restricted'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    company_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    operation_number: Mapped[str] = mapped_column(String(32), nullable=False, default='', index=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=STATUS_COMPLETED, index=True)
    base_currency: Mapped[str] = mapped_column(String(8), nullable=False)
    total_client_gives_base: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal('0'))
    total_client_receives_base: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal('0'))
    profit_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal('0'))
    profit_currency: Mapped[str] = mapped_column(String(8), nullable=False)
    client_name: Mapped[Optional[str]] = mapped_column(String(255))
    client_phone: Mapped[Optional[str]] = mapped_column(String(32))
    contact_id: Mapped[Optional[int]] = mapped_column(ForeignKey('contacts.id'), nullable=True)
    beneficiary_contact_id: Mapped[Optional[int]] = mapped_column(ForeignKey('contacts.id'), nullable=True)
    handover_contact_id: Mapped[Optional[int]] = mapped_column(ForeignKey('contacts.id'), nullable=True)
    followup_at: Mapped[Optional[object]] = mapped_column(DateTime(timezone=True))
    followup_note: Mapped[Optional[str]] = mapped_column(Text)
    rates_snapshot: Mapped[dict] = mapped_column(JSON, default=dict)
    visibility_mode: Mapped[str] = mapped_column(String(16), nullable=False, default=VISIBILITY_PUBLIC)
    allowed_role_codes: Mapped[List[str]] = mapped_column(JSON, default=list)
    created_by: Mapped[Optional[int]] = mapped_column(Integer)
    completed_at: Mapped[Optional[object]] = mapped_column(DateTime(timezone=True))
    cancelled_at: Mapped[Optional[object]] = mapped_column(DateTime(timezone=True))
    cancelled_by: Mapped[Optional[int]] = mapped_column(Integer)
    cancel_reason: Mapped[Optional[str]] = mapped_column(Text)
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    details = relationship('ClientExchangeDetail', back_populates='operation', cascade='all, delete-orphan', order_by='ClientExchangeDetail.id')
    participants = relationship('ClientExchangeParticipant', back_populates='operation', cascade='all, delete-orphan', order_by='ClientExchangeParticipant.id')


class ClientExchangeDetail(Base):
    __tablename__ = 'client_exchange_details'
    DIRECTION_GIVE = 'give'  # client gives, cashbox receives
    DIRECTION_RECEIVE = 'receive'  # client receives, cashbox pays out
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    operation_id: Mapped[int] = mapped_column(ForeignKey('client_exchange_operations.id', ondelete='CASCADE'), nullable=False, index=True)
    direction: Mapped[str] = mapped_column(String(8), nullable=False)
    currency: Mapped[str] = mapped_column(String(8), nullable=False)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    applied_rate: Mapped[Optional[Decimal]] = mapped_column(MONEY)
    market_rate: Mapped[Optional[Decimal]] = mapped_column(MONEY)
    amount_in_base: Mapped[Optional[Decimal]] = mapped_column(MONEY)
    cashbox_id: Mapped[int] = mapped_column(ForeignKey('cashboxes.id'), nullable=False)

    operation = relationship('ClientExchangeOperation', back_populates='details')


class ClientExchangeParticipant(Base):
    __tablename__ = 'client_exchange_participants'
    ROLE_CLIENT = 'client'
    ROLE_BENEFICIARY = 'beneficiary'
    ROLE_REPRESENTATIVE = 'representative'
    ROLE_COURIER = 'courier'
    ALL_ROLES = (ROLE_CLIENT, ROLE_BENEFICIARY, ROLE_REPRESENTATIVE, ROLE_COURIER)
    CLIENT_SIDE_ROLES = (ROLE_CLIENT, ROLE_BENEFICIARY, ROLE_REPRESENTATIVE)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    operation_id: Mapped[int] = mapped_column(ForeignKey('client_exchange_operations.id', ondelete='CASCADE'), nullable=False, index=True)
    contact_id: Mapped[int] = mapped_column(ForeignKey('contacts.id'), nullable=False)
    role: Mapped[str] = mapped_column(String(16), nullable=False)
    note: Mapped[Optional[str]] = mapped_column(Text)

    operation = relationship('ClientExchangeOperation', back_populates='participants')

__all__ = ['ClientExchangeOperation', 'ClientExchangeDetail', 'ClientExchangeParticipant']
