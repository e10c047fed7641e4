"""Test seeding utilities to reduce duplication.

These helpers centralize creation of users, roles, permissions, companies and the
money-holding rows most module tests start from.
"""
from decimal import Decimal
from typing import Iterable, Dict, Optional
from mutka import get_db
from mutka.models.authz import User, Role, Permission, RolePermission, UserRole, Company, TeamMember, Base
from mutka.models.cashbox import Cashbox


def ensure_permissions(codes: Iterable[str]):
    """Ensure each permission code exists; return dict code->Permission."""
    session = get_db()
    Base.metadata.create_all(bind=session.get_bind(), checkfirst=True)
    out: Dict[str, Permission] = {}
    for code in codes:
        obj = session.query(Permission).filter_by(code=code).one_or_none()
        if not obj:
            if '.' not in code:
                raise ValueError(f"Permission code '{code}' missing SERVICE.ACTION pattern")
            service, action = code.split('.', 1)
            obj = Permission(code=code, service=service, action=action, description_i18n={'en': code})
            session.add(obj); session.flush()
        out[code] = obj
    session.commit()
    return out


def ensure_user(email: str, name: Optional[str] = None, password: str = 'pw') -> User:
    session = get_db()
    u = session.query(User).filter_by(email=email).one_or_none()
    if not u:
        u = User(name=name or email.split('@')[0], email=email, password_hash='')
        u.set_password(password)
        session.add(u); session.commit(); session.refresh(u)
    return u


def ensure_role(name: str, perm_codes: Iterable[str] = ()) -> Role:
    session = get_db()
    role = session.query(Role).filter_by(name=name).one_or_none()
    perms = ensure_permissions(perm_codes) if perm_codes else {}
    if not role:
        role = Role(name=name, is_system=False, description_i18n={'en': name})
        session.add(role); session.flush()
    existing_perm_ids = {rp.permission_id for rp in session.query(RolePermission).filter_by(role_id=role.id)}
    for p in perms.values():
        if p.id not in existing_perm_ids:
            session.add(RolePermission(role_id=role.id, permission_id=p.id))
    session.commit()
    return role


def ensure_user_role_assignment(user: User, role: Role):
    session = get_db()
    if not session.query(UserRole).filter_by(user_id=user.id, role_id=role.id).one_or_none():
        session.add(UserRole(user_id=user.id, role_id=role.id)); session.commit()


def ensure_company(name: str) -> Company:
    session = get_db()
    company = session.query(Company).filter_by(name=name).one_or_none()
    if not company:
        company = Company(name=name)
        session.add(company); session.commit(); session.refresh(company)
    return company


def ensure_membership(user: User, company: Company, role: str = 'member') -> TeamMember:
    session = get_db()
    member = session.query(TeamMember).filter_by(user_id=user.id, company_id=company.id).one_or_none()
    if not member:
        member = TeamMember(user_id=user.id, company_id=company.id, role=role)
        session.add(member); session.commit()
    return member


# ---------------- Domain helpers (Cash) ---------------- #
def make_cashbox(name: str, currency: str = 'USD', balance='0', company_id: int = 1, archived: bool = False) -> Cashbox:
    """Create a cashbox directly (non-idempotent) with a preset balance and no ledger rows."""
    session = get_db()
    cb = Cashbox(company_id=company_id, name=name, currency=currency, balance=Decimal(str(balance)),
                 initial_balance=Decimal(str(balance)), is_archived=archived)
    session.add(cb); session.commit(); session.refresh(cb)
    return cb


def balance_of(cashbox_id: int) -> Decimal:
    session = get_db()
    session.expire_all()
    return Decimal(session.get(Cashbox, cashbox_id).balance)


__all__ = [
    'ensure_permissions', 'ensure_user', 'ensure_role', 'ensure_user_role_assignment', 'ensure_company',
    'ensure_membership', 'make_cashbox', 'balance_of',
]
