from __future__ import annotations
from flask import Blueprint, request, abort, current_app
from flask_jwt_extended import create_access_token, jwt_required, get_jwt_identity
from sqlalchemy import select, delete
from mutka.models.authz import User, Role, Permission, RolePermission, UserRole, TeamMember
from mutka.models.audit import AuditLog
from mutka.models.hr import Employee
from mutka import get_db
from mutka.services.policy import (
    compute_effective_permissions, assert_not_removing_last_owner, compute_company_ids, scope_to_companies,
)
from mutka.utils.listing import list_response
from mutka.utils.filters import apply_filters
from mutka.utils.dates import iso
from mutka.decorators.audit import audit_log
from mutka.decorators.auth import require_permissions

iam_bp = Blueprint('iam', __name__)


def is_platform_admin_email(email: str) -> bool:
    admins = current_app.config.get('PLATFORM_ADMIN_EMAILS') or []
    if isinstance(admins, str):
        admins = [e.strip().lower() for e in admins.split(',') if e.strip()]
    return (email or '').strip().lower() in admins


def build_claims(user: User) -> dict:
    eff = compute_effective_permissions(user.id)
    return {
        'roles': eff['roles'],
        'role_names': eff['role_names'],
        'perms': eff['perms'],
        'company_ids': compute_company_ids(user.id),
        'locale': user.locale,
        'platform_admin': is_platform_admin_email(user.email),
    }


def _permission_json(p: Permission):
    return {'id': p.id, 'code': p.code, 'service': p.service, 'action': p.action,
            'description_i18n': p.description_i18n}


def _role_json(r: Role):
    return {'id': r.id, 'name': r.name, 'is_system': r.is_system,
            'permissions': sorted(rp.permission.code for rp in r.permissions)}


def _audit_json(r: AuditLog):
    return {
        'id': r.id,
        'company_id': r.company_id,
        'actor_user_id': r.actor_user_id,
        'viewer_admin_user_id': r.viewer_admin_user_id,
        'action': r.action,
        'module': r.module,
        'entity': r.entity,
        'entity_id': r.entity_id,
        'before': r.before,
        'after': r.after,
        'meta': r.meta,
        'created_at': iso(r.created_at),
    }


@iam_bp.route('/permissions', methods=['GET', 'HEAD'])
@require_permissions('ADMIN.ROLE.MANAGE')
def list_permissions():
    q = get_db().query(Permission).order_by(Permission.id.asc())
    return list_response(q, _permission_json)


@iam_bp.route('/roles', methods=['GET', 'HEAD'])
@require_permissions('ADMIN.ROLE.MANAGE')
def list_roles():
    q = get_db().query(Role).order_by(Role.id.asc())
    return list_response(q, _role_json)


@iam_bp.post('/roles')
@require_permissions('ADMIN.ROLE.MANAGE')
@audit_log('ROLE.CREATE', module='iam', entity='Role', entity_id_key='id', meta_keys=['name'])
def create_role():
    data = request.get_json(silent=True) or {}
    name = (data.get('name') or '').strip()
    if not name:
        abort(400, description='name required')
    session = get_db()
    if session.execute(select(Role).where(Role.name == name)).scalar_one_or_none():
        abort(400, description='role exists')
    role = Role(name=name, is_system=False, description_i18n=data.get('description_i18n') or {})
    session.add(role)
    session.commit()
    return {'id': role.id, 'name': role.name}, 201


@iam_bp.put('/roles/<int:role_id>/permissions')
@require_permissions('ADMIN.ROLE.MANAGE')
@audit_log(
    'ROLE.PERM.REPLACE',
    module='iam',
    entity='Role',
    entity_id_key='id',
    meta_builder=lambda data, rv, a, kw: {'count': len(data.get('permissions') or [])},
)
def replace_role_permissions(role_id: int):
    session = get_db()
    role = session.get(Role, role_id)
    if not role:
        abort(404)
    data = request.get_json(silent=True) or {}
    codes = data.get('permissions') or []
    if not isinstance(codes, list):
        abort(400, description='permissions must be a list')
    perms = session.execute(select(Permission).where(Permission.code.in_(codes))).scalars().all() if codes else []
    missing = set(codes) - {p.code for p in perms}
    if missing:
        abort(400, description=f'Unknown permission codes: {sorted(missing)}')
    session.execute(delete(RolePermission).where(RolePermission.role_id == role.id))
    for p in perms:
        session.add(RolePermission(role_id=role.id, permission_id=p.id))
    session.commit()
    return {'id': role.id, 'permissions': sorted(set(codes))}


@iam_bp.put('/users/<int:user_id>/roles')
@require_permissions('ADMIN.USER.MANAGE')
@audit_log('USER.ROLES.SET', module='iam', entity='User', entity_id_key='user_id', meta_keys=['role_ids'])
def set_user_roles(user_id: int):
    session = get_db()
    user = session.get(User, user_id)
    if not user:
        abort(404)
    data = request.get_json(silent=True) or {}
    try:
        role_ids = {int(r) for r in (data.get('role_ids') or [])}
    except (TypeError, ValueError):
        abort(400, description='role_ids must be integers')
    roles = session.execute(select(Role).where(Role.id.in_(role_ids))).scalars().all() if role_ids else []
    missing = role_ids - {r.id for r in roles}
    if missing:
        abort(400, description=f'Unknown role ids: {sorted(missing)}')
    assert_not_removing_last_owner(user.id, role_ids)
    session.execute(delete(UserRole).where(UserRole.user_id == user.id))
    for rid in role_ids:
        session.add(UserRole(user_id=user.id, role_id=rid))
    session.commit()
    return {'user_id': user.id, 'role_ids': sorted(role_ids)}


@iam_bp.post('/auth/login')
def login():
    data = request.get_json(silent=True) or {}
    email = (data.get('email') or '').strip().lower()
    password = data.get('password')
    if not email or not password:
        abort(400, description='email & password required')
    session = get_db()
    user = session.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if not user or not user.is_active or not user.verify_password(password):
        abort(401, description='invalid credentials')
    # JWT identity must be a string (flask-jwt-extended v4 requirement)
    token = create_access_token(identity=str(user.id), additional_claims=build_claims(user))
    return {'access_token': token}


@iam_bp.get('/auth/me')
@jwt_required()
def me():
    user_id = int(get_jwt_identity())
    user = get_db().get(User, user_id)
    if not user:
        abort(404)
    claims = build_claims(user)
    return {
        'id': user.id,
        'name': user.name,
        'email': user.email,
        'roles': claims['roles'],
        'role_names': claims['role_names'],
        'perms': claims['perms'],
        'company_ids': claims['company_ids'],
        'locale': user.locale,
        'platform_admin': claims['platform_admin'],
    }


@iam_bp.get('/companies/me')
@jwt_required()
def my_memberships():
    session = get_db()
    user_id = int(get_jwt_identity())
    members = session.execute(
        select(TeamMember).where(TeamMember.user_id == user_id).order_by(TeamMember.id)
    ).scalars().all()
    data = []
    for m in members:
        emp = session.execute(
            select(Employee).where(Employee.user_id == user_id, Employee.company_id == m.company_id)
        ).scalars().first()
        data.append({
            'company_id': m.company_id,
            'company_name': m.company.name if m.company else None,
            'role': m.role,
            'employee_id': emp.id if emp else None,
            'modules': (emp.modules or []) if emp else [],
            'module_visibility': (emp.module_visibility or {}) if emp else {},
        })
    return {'data': data}


@iam_bp.route('/audit/logs', methods=['GET', 'HEAD'])
@require_permissions('ADMIN.SETTINGS.MANAGE')
def list_audit_logs():
    q = scope_to_companies(get_db().query(AuditLog), AuditLog.company_id)
    specs = {
        'actor_user_id': {'op': lambda q, v: q.filter(AuditLog.actor_user_id == v), 'coerce': int},
        'module': {'op': lambda q, v: q.filter(AuditLog.module == v)},
        'action': {'op': lambda q, v: q.filter(AuditLog.action == v)},
        'entity': {'op': lambda q, v: q.filter(AuditLog.entity == v)},
        'entity_id': {'op': lambda q, v: q.filter(AuditLog.entity_id == v)},
    }
    q = apply_filters(q, specs, request.args).order_by(AuditLog.id.desc())
    return list_response(q, _audit_json, ts_attr='created_at')
