from __future__ import annotations
import secrets
from datetime import timedelta
from decimal import Decimal
from typing import Iterable, List, Optional
from flask import abort
from sqlalchemy import select, delete
from mutka.constants.permissions import (
    MODULES, ACCESS_LEVELS, LEVEL_NONE, LEVEL_WORK, LEVEL_MANAGE, MODULE_LEVEL_PERMISSIONS, module_role_name,
)
from mutka.models.authz import Role, RolePermission, Permission, UserRole
from mutka.models.hr import Employee, EmployeeRole, PositionDefaultRole, EmployeeInvite, SalaryOperation
from mutka.models.cashbox import CashboxTransaction
from mutka.services.ledger import get_cashbox_for_update, cashbox_operation
from mutka.utils.dates import utcnow

INVITE_TTL_DAYS = 7


def modules_from_access(access: dict) -> List[str]:
    return [m for m in MODULES if (access or {}).get(m) in (LEVEL_WORK, LEVEL_MANAGE)]


def ensure_preset_role(session, module: str, level: str) -> Role:
    name = module_role_name(module, level)
    role = session.execute(select(Role).where(Role.name == name)).scalar_one_or_none()
    if role:
        return role
    role = Role(name=name, is_system=True, description_i18n={'en': f'{module} module, {level} access'})
    session.add(role)
    session.flush()
    codes = MODULE_LEVEL_PERMISSIONS[module][level]
    for perm in session.execute(select(Permission).where(Permission.code.in_(codes))).scalars():
        session.add(RolePermission(role_id=role.id, permission_id=perm.id))
    session.flush()
    return role


def grant_owner(session, employee: Employee) -> Role:
    """Give the employee the company Owner role, creating the role on a fresh database."""
    role = session.execute(select(Role).where(Role.name == 'Owner')).scalar_one_or_none()
    if role is None:
        role = Role(name='Owner', is_system=True, description_i18n={'en': 'Company owner'})
        session.add(role)
        session.flush()
    add_employee_role(session, employee, role.id)
    return role


def _mirror_add(session, employee: Employee, role_id: int):
    if not employee.user_id:
        return
    exists = session.execute(
        select(UserRole).where(UserRole.user_id == employee.user_id, UserRole.role_id == role_id)
    ).scalar_one_or_none()
    if not exists:
        session.add(UserRole(user_id=employee.user_id, role_id=role_id))


def _mirror_remove(session, employee: Employee, role_id: int):
    if employee.user_id:
        session.execute(delete(UserRole).where(UserRole.user_id == employee.user_id, UserRole.role_id == role_id))


def add_employee_role(session, employee: Employee, role_id: int) -> bool:
    exists = session.execute(
        select(EmployeeRole).where(EmployeeRole.employee_id == employee.id, EmployeeRole.role_id == role_id)
    ).scalar_one_or_none()
    if exists:
        return False
    session.add(EmployeeRole(employee_id=employee.id, role_id=role_id))
    _mirror_add(session, employee, role_id)
    session.flush()
    return True


def remove_employee_role(session, employee: Employee, role_id: int) -> bool:
    res = session.execute(delete(EmployeeRole).where(EmployeeRole.employee_id == employee.id, EmployeeRole.role_id == role_id))
    _mirror_remove(session, employee, role_id)
    session.flush()
    session.expire(employee, ['roles'])
    return bool(res.rowcount)


def set_employee_module_access(session, employee: Employee, module: str, level: str) -> Employee:
    if module not in MODULES:
        abort(400, description=f'Unknown module {module}')
    if level not in ACCESS_LEVELS:
        abort(400, description=f'Unknown access level {level}')
    access = dict(employee.module_access or {})
    access[module] = level
    employee.module_access = access
    employee.modules = modules_from_access(access)
    preset_names = [module_role_name(module, lvl) for lvl in ACCESS_LEVELS if lvl != LEVEL_NONE]
    keep = module_role_name(module, level) if level != LEVEL_NONE else None
    presets = session.execute(select(Role).where(Role.name.in_(preset_names))).scalars().all()
    for role in presets:
        if role.name != keep:
            remove_employee_role(session, employee, role.id)
    if keep:
        add_employee_role(session, employee, ensure_preset_role(session, module, level).id)
    session.flush()
    return employee


def set_module_visibility(employee: Employee, module: str, visible: bool) -> Employee:
    if module not in MODULES:
        abort(400, description=f'Unknown module {module}')
    vis = dict(employee.module_visibility or {})
    vis[module] = bool(visible)
    employee.module_visibility = vis
    return employee


def set_position_default_roles(session, company_id: int, position: str, role_ids: Iterable[int]) -> List[int]:
    role_ids = sorted({int(r) for r in role_ids})
    if role_ids:
        found = set(session.execute(select(Role.id).where(Role.id.in_(role_ids))).scalars())
        missing = [r for r in role_ids if r not in found]
        if missing:
            abort(400, description=f'Unknown roles: {missing}')
    session.execute(delete(PositionDefaultRole).where(PositionDefaultRole.company_id == company_id,
                                                      PositionDefaultRole.position == position))
    for rid in role_ids:
        session.add(PositionDefaultRole(company_id=company_id, position=position, role_id=rid))
    session.flush()
    return role_ids


def apply_position_roles(session, employee: Employee) -> List[int]:
    if not employee.position:
        return []
    defaults = session.execute(
        select(PositionDefaultRole.role_id).where(PositionDefaultRole.company_id == employee.company_id,
                                                  PositionDefaultRole.position == employee.position)
    ).scalars().all()
    return [rid for rid in defaults if add_employee_role(session, employee, rid)]


def create_employee_invite(session, employee: Employee, email: str) -> EmployeeInvite:
    email = (email or '').strip().lower()
    if not email:
        abort(400, description='email required')
    pending = session.execute(
        select(EmployeeInvite).where(EmployeeInvite.employee_id == employee.id,
                                     EmployeeInvite.status == EmployeeInvite.STATUS_SENT)
    ).scalars()
    for inv in pending:
        inv.status = EmployeeInvite.STATUS_CANCELLED
    invite = EmployeeInvite(employee_id=employee.id, email=email, status=EmployeeInvite.STATUS_SENT,
                            token=secrets.token_urlsafe(24), expires_at=utcnow() + timedelta(days=INVITE_TTL_DAYS))
    session.add(invite)
    session.flush()
    return invite


def effective_salary_amount(op_type: str, amount: Decimal) -> Decimal:
    """Signed change to what the company owes the employee."""
    if op_type == SalaryOperation.TYPE_ADJUSTMENT:
        if amount == 0:
            abort(400, description='amount must not be zero')
        return amount
    if amount <= 0:
        abort(400, description='amount must be positive')
    if op_type in SalaryOperation.NEGATIVE_TYPES:
        return -amount
    return amount


def record_salary_operation(session, employee: Employee, op_type: str, amount: Decimal, *,
                            description: Optional[str] = None, cashbox_id=None,
                            created_by: Optional[int] = None) -> SalaryOperation:
    effective = effective_salary_amount(op_type, amount)
    balance = Decimal(employee.salary_balance or 0) + effective
    employee.salary_balance = balance
    op = SalaryOperation(company_id=employee.company_id, employee_id=employee.id, operation_type=op_type,
                         amount=effective, balance_after=balance, description=description, created_by=created_by)
    if cashbox_id and op_type in (SalaryOperation.TYPE_PAYMENT, SalaryOperation.TYPE_ADVANCE):
        cb = get_cashbox_for_update(session, cashbox_id)
        if cb.currency != SalaryOperation.CURRENCY:
            abort(400, description=f'Cashbox currency {cb.currency} does not match salary currency {SalaryOperation.CURRENCY}')
        cashbox_operation(session, cb, -abs(effective), CashboxTransaction.CAT_SALARY,
                          description or f'Зарплата: {employee.full_name}', reference_id=employee.id, created_by=created_by)
        op.cashbox_id = cb.id
    session.add(op)
    session.flush()
    return op
