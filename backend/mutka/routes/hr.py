from __future__ import annotations
from flask import Blueprint, request, abort
from mutka.decorators.auth import require_permissions
from mutka.decorators.audit import audit_log
from mutka.utils.listing import list_response, single_response
from mutka.utils.sorting import apply_multi_sort
from mutka.utils.filters import apply_filters, truthy_flag
from mutka.utils.validation import parse_amount, parse_id, validate_status, require_fields, money
from mutka.utils.dates import parse_date, iso
from mutka.services.policy import (
    current_company_id, current_user_id, assert_company_access, scope_to_companies,
    assert_may_grant_role, assert_not_removing_last_owner,
)
from mutka.services import hr as hr_svc
from sqlalchemy import select
from mutka.models.authz import User, Role, UserRole
from mutka.models.hr import Employee, SalaryOperation
from mutka import get_db

hr_bp = Blueprint('hr', __name__)

EMPLOYEE_FIELDS = ('full_name', 'phone', 'email', 'position')


def _employee_json(e: Employee):
    return {
        'id': e.id,
        'company_id': e.company_id,
        'user_id': e.user_id,
        'full_name': e.full_name,
        'phone': e.phone,
        'email': e.email,
        'position': e.position,
        'is_active': e.is_active,
        'hired_at': iso(e.hired_at),
        'module_access': e.module_access or {},
        'modules': e.modules or [],
        'module_visibility': e.module_visibility or {},
        'salary_balance': money(e.salary_balance),
        'role_ids': sorted(r.role_id for r in e.roles),
    }


def _salary_json(op: SalaryOperation):
    return {
        'id': op.id,
        'employee_id': op.employee_id,
        'type': op.operation_type,
        'amount': money(op.amount),
        'balance_after': money(op.balance_after),
        'cashbox_id': op.cashbox_id,
        'description': op.description,
        'created_by': op.created_by,
        'created_at': iso(op.created_at),
    }


def _get_employee(emp_id: int) -> Employee:
    e = get_db().get(Employee, emp_id)
    if not e:
        abort(404)
    assert_company_access(e.company_id)
    return e


def _check_user(user_id):
    if user_id in (None, ''):
        return None
    user = get_db().get(User, parse_id(user_id, 'user_id'))
    if not user:
        abort(400, description='user_id invalid')
    return user.id


def _check_role(role_id) -> int:
    try:
        role = get_db().get(Role, int(role_id))
    except (TypeError, ValueError):
        role = None
    if not role:
        abort(400, description='role_id invalid')
    assert_may_grant_role(role)
    return role.id


@hr_bp.route('/employees', methods=['GET', 'HEAD'])
@require_permissions('HR.READ')
def list_employees():
    q = scope_to_companies(get_db().query(Employee), Employee.company_id)
    if not truthy_flag(request.args, 'include_inactive'):
        q = q.filter(Employee.is_active.is_(True))
    specs = {
        'position': {'op': lambda q, v: q.filter(Employee.position == v)},
        'q': {'op': lambda q, v: q.filter(Employee.full_name.ilike(f'%{v}%'))},
    }
    q = apply_filters(q, specs, request.args)
    allowed = {'id': Employee.id, 'full_name': Employee.full_name, 'salary_balance': Employee.salary_balance}
    q = apply_multi_sort(q, request.args.get('sort'), allowed, Employee.id, default=[Employee.full_name.asc()])
    return list_response(q, _employee_json)


@hr_bp.route('/employees/<int:emp_id>', methods=['GET', 'HEAD'])
@require_permissions('HR.READ')
def get_employee(emp_id: int):
    e = _get_employee(emp_id)
    return single_response(_employee_json(e), e.updated_at)


@hr_bp.post('/employees')
@require_permissions('HR.MANAGE')
@audit_log('HR.EMPLOYEE.CREATE', module='hr', entity='Employee', entity_id_key='id', meta_keys=['full_name', 'position'])
def create_employee():
    session = get_db()
    data = request.get_json(silent=True) or {}
    require_fields(data, 'full_name')
    e = Employee(
        company_id=current_company_id(),
        user_id=_check_user(data.get('user_id')),
        is_active=True,
        hired_at=parse_date(data.get('hired_at'), 'hired_at'),
        module_access={},
        modules=[],
        module_visibility={},
    )
    for key in EMPLOYEE_FIELDS:
        if key in data:
            setattr(e, key, data[key])
    session.add(e)
    session.commit()
    return _employee_json(e), 201


@hr_bp.put('/employees/<int:emp_id>')
@require_permissions('HR.MANAGE')
@audit_log('HR.EMPLOYEE.UPDATE', module='hr', entity='Employee', entity_id_key='id',
           diff_keys=list(EMPLOYEE_FIELDS) + ['user_id', 'is_active'],
           pre_fetch=lambda a, kw: _employee_json(_get_employee(kw['emp_id'])))
def update_employee(emp_id: int):
    session = get_db()
    e = _get_employee(emp_id)
    data = request.get_json(silent=True) or {}
    if 'salary_balance' in data:
        abort(400, description='salary_balance changes go through salary operations')
    for key in EMPLOYEE_FIELDS:
        if key in data:
            if key == 'full_name' and not data[key]:
                abort(400, description='full_name required')
            setattr(e, key, data[key])
    if 'user_id' in data:
        e.user_id = _check_user(data['user_id'])
    if 'hired_at' in data:
        e.hired_at = parse_date(data['hired_at'], 'hired_at')
    if 'is_active' in data:
        e.is_active = bool(data['is_active'])
    session.commit()
    return _employee_json(e)


@hr_bp.post('/employees/<int:emp_id>/deactivate')
@require_permissions('HR.MANAGE')
@audit_log('HR.EMPLOYEE.DEACTIVATE', module='hr', entity='Employee', entity_id_key='id', diff_keys=['is_active'],
           pre_fetch=lambda a, kw: _employee_json(_get_employee(kw['emp_id'])))
def deactivate_employee(emp_id: int):
    session = get_db()
    e = _get_employee(emp_id)
    e.is_active = False
    session.commit()
    return _employee_json(e)


@hr_bp.put('/employees/<int:emp_id>/module-access')
@require_permissions('HR.MANAGE')
@audit_log('HR.MODULE_ACCESS.SET', module='hr', entity='Employee', entity_id_key='id',
           diff_keys=['module_access', 'role_ids'], pre_fetch=lambda a, kw: _employee_json(_get_employee(kw['emp_id'])))
def put_module_access(emp_id: int):
    session = get_db()
    e = _get_employee(emp_id)
    data = request.get_json(silent=True) or {}
    require_fields(data, 'module', 'level')
    hr_svc.set_employee_module_access(session, e, data['module'], data['level'])
    session.commit()
    session.refresh(e)
    return _employee_json(e)


@hr_bp.put('/employees/<int:emp_id>/module-visibility')
@require_permissions('HR.MANAGE')
@audit_log('HR.MODULE_VISIBILITY.SET', module='hr', entity='Employee', entity_id_key='id',
           diff_keys=['module_visibility'], pre_fetch=lambda a, kw: _employee_json(_get_employee(kw['emp_id'])))
def put_module_visibility(emp_id: int):
    session = get_db()
    e = _get_employee(emp_id)
    data = request.get_json(silent=True) or {}
    require_fields(data, 'module')
    hr_svc.set_module_visibility(e, data['module'], bool(data.get('visible', True)))
    session.commit()
    return _employee_json(e)


@hr_bp.post('/employees/<int:emp_id>/roles')
@require_permissions('HR.MANAGE')
@audit_log('HR.EMPLOYEE.ROLE.ADD', module='hr', entity='Employee', entity_id_key='id', meta_keys=['role_ids'])
def add_role(emp_id: int):
    session = get_db()
    e = _get_employee(emp_id)
    data = request.get_json(silent=True) or {}
    hr_svc.add_employee_role(session, e, _check_role(data.get('role_id')))
    session.commit()
    session.refresh(e)
    return _employee_json(e), 201


@hr_bp.delete('/employees/<int:emp_id>/roles/<int:role_id>')
@require_permissions('HR.MANAGE')
@audit_log('HR.EMPLOYEE.ROLE.REMOVE', module='hr', entity='Employee', entity_id_key='id', meta_keys=['role_ids'])
def remove_role(emp_id: int, role_id: int):
    session = get_db()
    e = _get_employee(emp_id)
    role = session.get(Role, role_id)
    if role is not None:
        assert_may_grant_role(role)
    if e.user_id:
        held = set(session.execute(select(UserRole.role_id).where(UserRole.user_id == e.user_id)).scalars())
        assert_not_removing_last_owner(e.user_id, held - {role_id})
    if not hr_svc.remove_employee_role(session, e, role_id):
        abort(404, description='Role not assigned')
    session.commit()
    session.refresh(e)
    return _employee_json(e)


@hr_bp.put('/positions/<position>/default-roles')
@require_permissions('HR.MANAGE')
@audit_log('HR.POSITION.DEFAULT_ROLES', module='hr', entity='Position', entity_id_key='position', meta_keys=['role_ids'])
def put_position_roles(position: str):
    session = get_db()
    data = request.get_json(silent=True) or {}
    role_ids = data.get('role_ids')
    if not isinstance(role_ids, list):
        abort(400, description='role_ids must be a list')
    for role in session.execute(select(Role).where(Role.id.in_([r for r in role_ids if isinstance(r, int)]))).scalars():
        assert_may_grant_role(role)
    saved = hr_svc.set_position_default_roles(session, current_company_id(), position, role_ids)
    session.commit()
    return {'position': position, 'role_ids': saved}


@hr_bp.post('/employees/<int:emp_id>/apply-position-roles')
@require_permissions('HR.MANAGE')
@audit_log('HR.POSITION.APPLY', module='hr', entity='Employee', entity_id_arg='emp_id', meta_keys=['added'])
def apply_position_roles(emp_id: int):
    session = get_db()
    e = _get_employee(emp_id)
    added = hr_svc.apply_position_roles(session, e)
    session.commit()
    return {'employee_id': e.id, 'added': added}


@hr_bp.post('/employees/<int:emp_id>/invites')
@require_permissions('HR.MANAGE')
@audit_log('HR.INVITE.CREATE', module='hr', entity='EmployeeInvite', entity_id_key='id', meta_keys=['email'])
def invite_employee(emp_id: int):
    session = get_db()
    e = _get_employee(emp_id)
    data = request.get_json(silent=True) or {}
    inv = hr_svc.create_employee_invite(session, e, data.get('email') or '')
    session.commit()
    return {'id': inv.id, 'employee_id': e.id, 'email': inv.email, 'status': inv.status,
            'token': inv.token, 'expires_at': iso(inv.expires_at)}, 201


@hr_bp.post('/employees/<int:emp_id>/salary')
@require_permissions('HR.SALARY')
@audit_log('HR.SALARY.OPERATION', module='hr', entity='SalaryOperation', entity_id_key='id',
           meta_keys=['employee_id', 'type', 'amount', 'balance_after'])
def post_salary(emp_id: int):
    session = get_db()
    e = _get_employee(emp_id)
    data = request.get_json(silent=True) or {}
    op_type = validate_status(data.get('type'), SalaryOperation.ALL_TYPES, 'type')
    op = hr_svc.record_salary_operation(
        session, e, op_type, parse_amount(data.get('amount')),
        description=data.get('description'), cashbox_id=data.get('cashbox_id'), created_by=current_user_id(),
    )
    session.commit()
    return _salary_json(op), 201


@hr_bp.route('/employees/<int:emp_id>/salary', methods=['GET', 'HEAD'])
@require_permissions('HR.READ')
def list_salary(emp_id: int):
    e = _get_employee(emp_id)
    q = get_db().query(SalaryOperation).filter(SalaryOperation.employee_id == e.id)
    q = apply_filters(q, {'type': {'op': lambda q, v: q.filter(SalaryOperation.operation_type == v),
                                   'validate': lambda v: v in SalaryOperation.ALL_TYPES}}, request.args)
    q = q.order_by(SalaryOperation.id.desc())
    return list_response(q, _salary_json, ts_attr='created_at')
