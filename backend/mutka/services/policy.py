from __future__ import annotations
from typing import Iterable, List, Set
from flask import abort
from flask_jwt_extended import get_jwt, get_jwt_identity
from sqlalchemy import select
from mutka.models.authz import UserRole, RolePermission, Permission, Role, TeamMember
from mutka.constants.permissions import ALL_PERMISSION_CODES, GOD_MODE_ROLES
from mutka.errors import NoCompany
from mutka.services.viewas import caller_view_as_session
from mutka import get_db


def current_permissions() -> Set[str]:
    session = caller_view_as_session()
    if session:
        return set(session.get('perms') or [])
    claims = get_jwt()
    return set(claims.get('perms', []))


def has_permissions(*codes: str) -> bool:
    perms = current_permissions()
    return all(c in perms for c in codes)


def current_role_names() -> Set[str]:
    session = caller_view_as_session()
    if session:
        return set(session.get('role_names') or [])
    return set(get_jwt().get('role_names', []))


def is_god_mode() -> bool:
    return bool(current_role_names() & set(GOD_MODE_ROLES))


def current_user_id() -> int:
    return int(get_jwt_identity())


def compute_effective_permissions(user_id: int):
    session = get_db()
    role_ids = {ur.role_id for ur in session.execute(select(UserRole).where(UserRole.user_id == user_id)).scalars()}
    roles = []
    if role_ids:
        roles = session.execute(select(Role).where(Role.id.in_(role_ids))).scalars().all()
    perm_codes = set()
    if role_ids:
        stmt = (
            select(Permission.code)
            .join(RolePermission, RolePermission.permission_id == Permission.id)
            .where(RolePermission.role_id.in_(role_ids))
        )
        perm_codes.update(session.execute(stmt).scalars())
    role_names = sorted(r.name for r in roles)
    # Owner / ADMIN expand to every known code
    if set(role_names) & set(GOD_MODE_ROLES):
        perm_codes.update(ALL_PERMISSION_CODES)
        perm_codes.update(session.execute(select(Permission.code)).scalars())
    return {
        'roles': sorted(role_ids),
        'role_names': role_names,
        'perms': sorted(perm_codes),
    }


def compute_company_ids(user_id: int) -> List[int]:
    session = get_db()
    rows = session.execute(select(TeamMember.company_id).where(TeamMember.user_id == user_id)).scalars()
    return sorted(set(rows))


def current_company_ids() -> List[int]:
    session = caller_view_as_session()
    if session:
        return [int(session['target_company_id'])]
    return list(get_jwt().get('company_ids') or [])


def current_company_id() -> int:
    ids = current_company_ids()
    if not ids:
        raise NoCompany()
    return ids[0]


def assert_company_access(company_id: int):
    if company_id not in current_company_ids():
        abort(403, description='Company access denied')


def scope_to_companies(query, company_column):
    """Restrict a query to the caller's companies; no membership means no rows."""
    return query.filter(company_column.in_(current_company_ids()))


def can_view_by_visibility(visibility_mode: str, allowed_role_codes: Iterable[str] | None,
                           role_names: Iterable[str], god_mode: bool = False) -> bool:
    if god_mode or visibility_mode != 'restricted':
        return True
    allowed = set(allowed_role_codes or [])
    if not allowed:
        return True
    return bool(allowed & set(role_names))


def count_owner_users(session=None, company_id: int | None = None) -> int:
    session = session or get_db()
    owner_role = session.execute(select(Role).where(Role.name == 'Owner')).scalar_one_or_none()
    if not owner_role:
        return 0
    q = select(UserRole.user_id).where(UserRole.role_id == owner_role.id)
    if company_id is not None:
        q = q.where(UserRole.user_id.in_(select(TeamMember.user_id).where(TeamMember.company_id == company_id)))
    return len(set(session.execute(q).scalars()))


def assert_not_removing_last_owner(target_user_id: int, new_role_ids: set[int]):
    """Refuse a role change that would leave one of the user's companies without an Owner.

    A user outside any company is checked against all Owners.
    """
    session = get_db()
    owner_role = session.execute(select(Role).where(Role.name == 'Owner')).scalar_one_or_none()
    if not owner_role or owner_role.id in new_role_ids:
        return
    had_owner = session.execute(
        select(UserRole).where(UserRole.user_id == target_user_id, UserRole.role_id == owner_role.id)
    ).scalar_one_or_none() is not None
    if not had_owner:
        return
    for company_id in compute_company_ids(target_user_id) or [None]:
        if count_owner_users(session, company_id) <= 1:
            abort(400, description='Cannot remove last Owner role')


def is_privileged_role(role: Role) -> bool:
    if role.name in GOD_MODE_ROLES:
        return True
    return any(rp.permission.code.startswith('ADMIN.') for rp in role.permissions)


def assert_may_grant_role(role: Role):
    """Owner, ADMIN and roles carrying ADMIN.* codes are handed out only by user administrators."""
    if is_privileged_role(role) and not has_permissions('ADMIN.USER.MANAGE'):
        abort(403, description=f'Role {role.name} requires ADMIN.USER.MANAGE')
