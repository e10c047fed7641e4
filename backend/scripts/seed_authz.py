#!/usr/bin/env python
"""Idempotent seed script for permissions, roles, system currencies and the first owner.

Usage:
    python backend/scripts/seed_authz.py               # seed normally
    python backend/scripts/seed_authz.py --show-roles  # print role -> permission counts (after ensuring seed)
    python backend/scripts/seed_authz.py --dry-run     # run logic then rollback (no DB changes)
    python backend/scripts/seed_authz.py --validate    # exit 2 if stored codes drift from SERVICE_ACTIONS
"""
from __future__ import annotations
import os, sys, argparse, textwrap, json, difflib
from sqlalchemy import select, text

# Allow running from repo root
sys.path.append(os.path.abspath('backend'))

from mutka import create_app, get_db  # type: ignore
from mutka.models.authz import Base, Permission, Role, RolePermission, User, UserRole, Company, TeamMember
from mutka.models.hr import Employee
from mutka.constants.permissions import SERVICE_ACTIONS, ROLE_PRESETS, MODULES, LEVEL_MANAGE, build_all_permission_codes
from mutka.services import hr as hr_svc
from mutka.services.rates import ensure_system_rates


def ensure_permissions(session):
    existing = {p.code for p in session.execute(select(Permission)).scalars().all()}
    created = 0
    for svc, actions in SERVICE_ACTIONS.items():
        for act in actions:
            code = f"{svc}.{act}"
            if code not in existing:
                session.add(Permission(code=code, service=svc, action=act, description_i18n={"en": code.replace('.', ' - ')}))
                created += 1
    session.flush()
    return created


def ensure_roles(session):
    existing_roles = {r.name: r for r in session.execute(select(Role)).scalars().all()}
    created = 0
    for role_name in ROLE_PRESETS:
        if role_name not in existing_roles:
            role = Role(name=role_name, is_system=True, description_i18n={"en": role_name})
            session.add(role)
            existing_roles[role_name] = role
            created += 1
    session.flush()

    all_codes = set(build_all_permission_codes())
    perms_map = {p.code: p for p in session.execute(select(Permission)).scalars()}
    for role_name, raw_codes in ROLE_PRESETS.items():
        role = existing_roles[role_name]
        desired = all_codes if '*' in raw_codes else set(raw_codes)
        current = {rp.permission.code for rp in role.permissions}
        for code in sorted(desired - current):
            if code not in perms_map:
                print(f"[WARN] Missing permission referenced by role {role_name}: {code}")
                continue
            session.add(RolePermission(role=role, permission=perms_map[code]))
    return created


def ensure_initial_owner(session):
    owner_role = session.execute(select(Role).where(Role.name == 'Owner')).scalar_one_or_none()
    if not owner_role:
        print('[WARN] Owner role missing; skipping owner creation')
        return None
    email = os.getenv('SEED_ADMIN_EMAIL', 'admin@example.com').strip().lower()
    user = session.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if user:
        return user
    user = User(name='Owner', email=email)
    user.set_password(os.getenv('SEED_ADMIN_PASSWORD', 'ChangeMe123!'))
    company = Company(name=os.getenv('SEED_COMPANY_NAME', 'Mutka'))
    session.add_all([user, company])
    session.flush()
    session.add(UserRole(user_id=user.id, role_id=owner_role.id))
    session.add(TeamMember(user_id=user.id, company_id=company.id, role='owner'))
    employee = Employee(company_id=company.id, user_id=user.id, full_name=user.name, email=email,
                        module_access={}, modules=[], module_visibility={})
    session.add(employee)
    session.flush()
    for module in MODULES:
        hr_svc.set_employee_module_access(session, employee, module, LEVEL_MANAGE)
    print(f"[INFO] Created initial owner {email} in company #{company.id} with temporary password.")
    return user


def build_role_permission_map(session):
    return {
        role.name: sorted({rp.permission.code for rp in role.permissions})
        for role in session.execute(select(Role)).scalars().all()
    }


def validate(session, role_perm_map):
    problems = []
    for code in session.execute(select(Permission.code)).scalars().all():
        if '.' not in code:
            problems.append(f"Invalid format (missing '.'): {code}")
            continue
        svc, action = code.split('.', 1)
        if svc not in SERVICE_ACTIONS:
            problems.append(f"Unknown service '{svc}' in code: {code}")
            continue
        allowed = set(SERVICE_ACTIONS[svc])
        if action not in allowed:
            suggestion = difflib.get_close_matches(action, allowed, n=1)
            hint = f" (did you mean {suggestion[0]})" if suggestion else ''
            problems.append(f"Unknown action '{action}' for service '{svc}' in code: {code}{hint}")
    known = set(session.execute(select(Permission.code)).scalars().all())
    for role_name, codes in role_perm_map.items():
        for c in codes:
            if c not in known:
                problems.append(f"Role '{role_name}' references missing permission code: {c}")
    return problems


def print_role_summary(role_perm_map):
    if not role_perm_map:
        print("[INFO] No roles present.")
        return
    name_w = max(len(n) for n in role_perm_map)
    print(f"{'Role'.ljust(name_w)} | Count | Sample (up to 8)")
    print('-' * (name_w + 40))
    for name, codes in sorted(role_perm_map.items()):
        print(f"{name.ljust(name_w)} | {str(len(codes)).rjust(5)} | {', '.join(codes[:8])}")


def parse_args(argv=None):
    p = argparse.ArgumentParser(
        description="Seed RBAC permissions, roles, system currencies and the initial owner",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""Examples:\n  seed normally: seed_authz.py\n  dry run: seed_authz.py --dry-run\n  show roles: seed_authz.py --show-roles\n"""),
    )
    p.add_argument('--show-roles', action='store_true', help='Print role permission counts after seeding')
    p.add_argument('--dry-run', action='store_true', help='Rollback after operations (no commit)')
    p.add_argument('--export-json', nargs='?', const='-', metavar='FILE', help='Export role->permissions JSON (to FILE or stdout if omitted)')
    p.add_argument('--validate', action='store_true', help='Validate permission codes & role references; exits 2 on problems')
    p.add_argument('--no-owner', action='store_true', help='Skip creating the initial owner user and company')
    return p.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    app = create_app()
    with app.app_context():
        session = get_db()
        try:
            session.execute(text('SELECT 1 FROM permissions LIMIT 1'))
        except Exception:
            # Bootstrap schema when migrations have not been run; prefer `alembic upgrade head`
            session.rollback()
            Base.metadata.create_all(session.get_bind())
        try:
            created_p = ensure_permissions(session)
            created_r = ensure_roles(session)
            ensure_system_rates(session)
            if not args.no_owner:
                ensure_initial_owner(session)
            session.flush()
            role_perm_map = build_role_permission_map(session)
            if args.validate:
                problems = validate(session, role_perm_map)
                if problems:
                    print('\n[VALIDATION] FAIL:')
                    for prob in problems:
                        print(' -', prob)
                    session.rollback()
                    sys.exit(2)
                print('[VALIDATION] OK: All permission codes & role references valid.')
            if args.dry_run:
                session.rollback()
                print(f"[DRY-RUN] (rolled back) Permissions would create: {created_p}, Roles would create: {created_r}")
            else:
                session.commit()
                print(f"[DONE] Permissions created: {created_p}, Roles created: {created_r}")
            if args.show_roles:
                print('\nRole Permission Summary:')
                print_role_summary(role_perm_map)
            if args.export_json is not None:
                payload = json.dumps({'roles': role_perm_map}, indent=2, sort_keys=True)
                if args.export_json == '-':
                    print(payload)
                else:
                    with open(args.export_json, 'w', encoding='utf-8') as f:
                        f.write(payload + '\n')
                    print(f"[INFO] Exported JSON to {args.export_json}")
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


if __name__ == '__main__':
    main()
