"""Platform-admin surface: read-only "view as" sessions and company invites."""
from __future__ import annotations
import secrets
from datetime import datetime, timedelta, timezone
from flask import Blueprint, request, abort, jsonify, make_response
from flask_jwt_extended import jwt_required
from sqlalchemy import select
from mutka import get_db
from mutka.constants.permissions import MODULES, LEVEL_MANAGE
from mutka.decorators.audit import audit_log
from mutka.decorators.auth import require_platform_admin
from mutka.errors import ReadOnlyMode
from mutka.models.authz import User, Company, TeamMember
from mutka.models.hr import Employee
from mutka.models.platform import CompanyInvite
from mutka.services import hr as hr_svc
from mutka.services.policy import compute_effective_permissions, current_user_id
from mutka.services.viewas import (
    create_view_as_session, decode_view_as_token, caller_view_as_session, set_view_as_cookie, clear_view_as_cookie,
)
from mutka.utils.dates import utcnow, as_utc, iso
from mutka.utils.listing import list_response
from mutka.utils.validation import require_fields

platform_bp = Blueprint('platform', __name__)

INVITE_TTL_DAYS = 7


def _session_json(payload):
    if not payload:
        return None
    keys = ('target_user_id', 'target_company_id', 'target_employee_id', 'target_display_name', 'company_name',
            'viewer_admin_user_id', 'mode')
    body = {k: payload.get(k) for k in keys}
    body['perms_count'] = len(payload.get('perms') or [])
    body['expires_at'] = iso(datetime.fromtimestamp(payload['exp'], tz=timezone.utc)) if payload.get('exp') else None
    return body


def _invite_json(inv: CompanyInvite):
    return {
        'id': inv.id,
        'email': inv.email,
        'company_name': inv.company_name,
        'token': inv.token,
        'expires_at': iso(inv.expires_at),
        'used_at': iso(inv.used_at),
        'used_by': inv.used_by,
        'company_id': inv.company_id,
        'created_by': inv.created_by,
    }


def _pick_target(session, company_id: int, user_id=None) -> TeamMember:
    stmt = select(TeamMember).where(TeamMember.company_id == company_id)
    if user_id not in (None, ''):
        try:
            stmt = stmt.where(TeamMember.user_id == int(user_id))
        except (TypeError, ValueError):
            abort(400, description='user_id invalid')
        member = session.execute(stmt).scalars().first()
        if not member:
            abort(400, description='User is not a member of this company')
        return member
    member = session.execute(stmt.order_by(TeamMember.id)).scalars().first()
    if not member:
        abort(400, description='Company has no members')
    return member


@platform_bp.post('/view-as')
@require_platform_admin
@audit_log('PLATFORM.VIEW_AS.START', module='platform', entity='User', entity_id_key='target_user_id',
           meta_keys=['target_company_id', 'target_display_name'])
def start_view_as():
    session = get_db()
    data = request.get_json(silent=True) or {}
    require_fields(data, 'company_id')
    try:
        company = session.get(Company, int(data['company_id']))
    except (TypeError, ValueError):
        company = None
    if not company:
        abort(404, description='Company not found')
    member = _pick_target(session, company.id, data.get('user_id'))
    user = session.get(User, member.user_id)
    employee = session.execute(
        select(Employee).where(Employee.company_id == company.id, Employee.user_id == user.id)
    ).scalars().first()
    eff = compute_effective_permissions(user.id)
    token = create_view_as_session({
        'target_user_id': user.id,
        'target_company_id': company.id,
        'target_employee_id': employee.id if employee else None,
        'target_display_name': employee.full_name if employee else user.name,
        'company_name': company.name,
        'viewer_admin_user_id': current_user_id(),
        'perms': eff['perms'],
        'role_names': eff['role_names'],
    })
    body = _session_json(decode_view_as_token(token))
    body['active'] = True
    body['company_id'] = company.id
    return set_view_as_cookie(make_response(jsonify(body), 201), token)


@platform_bp.get('/view-as')
@jwt_required()
def get_view_as():
    payload = caller_view_as_session()
    return {'active': payload is not None, 'session': _session_json(payload)}


@platform_bp.delete('/view-as')
@jwt_required()
def stop_view_as():
    return clear_view_as_cookie(make_response(jsonify({'active': False, 'session': None})))


@platform_bp.post('/invites')
@require_platform_admin
@audit_log('PLATFORM.INVITE.CREATE', module='platform', entity='CompanyInvite', entity_id_key='id',
           meta_keys=['email', 'company_name'])
def create_invite():
    session = get_db()
    data = request.get_json(silent=True) or {}
    require_fields(data, 'email', 'company_name')
    inv = CompanyInvite(
        email=str(data['email']).strip().lower(),
        company_name=str(data['company_name']).strip(),
        token=secrets.token_urlsafe(32),
        expires_at=utcnow() + timedelta(days=INVITE_TTL_DAYS),
        created_by=current_user_id(),
    )
    session.add(inv)
    session.commit()
    return _invite_json(inv), 201


@platform_bp.route('/invites', methods=['GET', 'HEAD'])
@require_platform_admin
def list_invites():
    q = get_db().query(CompanyInvite).order_by(CompanyInvite.id.desc())
    return list_response(q, _invite_json)


@platform_bp.post('/invites/accept')
@jwt_required()
@audit_log('PLATFORM.INVITE.ACCEPT', module='platform', entity='Company', entity_id_key='company_id')
def accept_invite():
    if caller_view_as_session():
        raise ReadOnlyMode()
    session = get_db()
    data = request.get_json(silent=True) or {}
    require_fields(data, 'token')
    inv = session.execute(select(CompanyInvite).where(CompanyInvite.token == data['token'])).scalar_one_or_none()
    if not inv:
        abort(404, description='Invite not found')
    if inv.used_at is not None:
        abort(400, description='Invite already used')
    if as_utc(inv.expires_at) < utcnow():
        abort(400, description='Invite expired')
    user = session.get(User, current_user_id())
    if not user:
        abort(404, description='User not found')
    company = Company(name=inv.company_name)
    session.add(company)
    session.flush()
    session.add(TeamMember(user_id=user.id, company_id=company.id, role='owner'))
    employee = Employee(company_id=company.id, user_id=user.id, full_name=(data.get('full_name') or user.name),
                        email=user.email, is_active=True, module_access={}, modules=[], module_visibility={})
    session.add(employee)
    session.flush()
    for module in MODULES:
        hr_svc.set_employee_module_access(session, employee, module, LEVEL_MANAGE)
    hr_svc.grant_owner(session, employee)
    inv.used_at = utcnow()
    inv.used_by = user.id
    inv.company_id = company.id
    session.commit()
    return {'company_id': company.id, 'employee_id': employee.id}, 201
