from __future__ import annotations
from decimal import Decimal
from typing import Optional, Dict, List
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, Boolean, Date, DateTime, ForeignKey, Text, JSON, UniqueConstraint, func
from .authz import Base
from .cashbox import MONEY


class Employee(Base):
    __tablename__ = 'employees'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    company_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    user_id: Mapped[Optional[int]] = mapped_column(ForeignKey('users.id', ondelete='SET NULL'), nullable=True, index=True)
    full_name: Mapped[str] = mapped_column(String(128), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(32))
    email: Mapped[Optional[str]] = mapped_column(String(128))
    position: Mapped[Optional[str]] = mapped_column(String(64), index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    hired_at: Mapped[Optional[object]] = mapped_column(Date)
    module_access: Mapped[Dict[str, str]] = mapped_column(JSON, default=dict)
    modules: Mapped[List[str]] = mapped_column(JSON, default=list)
    module_visibility: Mapped[Dict[str, bool]] = mapped_column(JSON, default=dict)
    salary_balance: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal('0'))
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    roles = relationship('EmployeeRole', back_populates='employee', cascade='all, delete-orphan')


class EmployeeRole(Base):
    __tablename__ = 'employee_roles'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    employee_id: Mapped[int] = mapped_column(ForeignKey('employees.id', ondelete='CASCADE'), nullable=False)
    role_id: Mapped[int] = mapped_column(ForeignKey('roles.id', ondelete='CASCADE'), nullable=False)
    __table_args__ = (UniqueConstraint('employee_id', 'role_id', name='uq_employee_role'),)

    employee = relationship('Employee', back_populates='roles')
    role = relationship('Role')


class PositionDefaultRole(Base):
    __tablename__ = 'position_default_roles'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    company_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    position: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    role_id: Mapped[int] = mapped_column(ForeignKey('roles.id', ondelete='CASCADE'), nullable=False)


class EmployeeInvite(Base):
    __tablename__ = 'employee_invites'
    STATUS_SENT = 'sent'
    STATUS_CANCELLED = 'cancelled'
    STATUS_ACCEPTED = 'accepted'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    employee_id: Mapped[int] = mapped_column(ForeignKey('employees.id', ondelete='CASCADE'), nullable=False, index=True)
    email: Mapped[str] = mapped_column(String(128), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=STATUS_SENT)
    token: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    expires_at: Mapped[object] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())


class SalaryOperation(Base):
    __tablename__ = 'salary_operations'
    TYPE_ACCRUAL = 'ACCRUAL'
    TYPE_PAYMENT = 'PAYMENT'
    TYPE_BONUS = 'BONUS'
    TYPE_FINE = 'FINE'
    TYPE_ADVANCE = 'ADVANCE'
    TYPE_ADJUSTMENT = 'ADJUSTMENT'
    ALL_TYPES = (TYPE_ACCRUAL, TYPE_PAYMENT, TYPE_BONUS, TYPE_FINE, TYPE_ADVANCE, TYPE_ADJUSTMENT)
    NEGATIVE_TYPES = (TYPE_PAYMENT, TYPE_FINE, TYPE_ADVANCE)
    # salary balances are kept in roubles
    CURRENCY = 'RUB'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    company_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)
    employee_id: Mapped[int] = mapped_column(ForeignKey('employees.id', ondelete='CASCADE'), nullable=False, index=True)
    operation_type: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    balance_after: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    cashbox_id: Mapped[Optional[int]] = mapped_column(ForeignKey('cashboxes.id'))
    description: Mapped[Optional[str]] = mapped_column(Text)
    created_by: Mapped[Optional[int]] = mapped_column(Integer)
    created_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now())

__all__ = ['Employee', 'EmployeeRole', 'PositionDefaultRole', 'EmployeeInvite', 'SalaryOperation']
