from datetime import timedelta
import pytest
from flask import Flask
from mutka import get_db
from mutka.constants.permissions import MODULES, ALL_PERMISSION_CODES
from mutka.models.audit import AuditLog
from mutka.models.platform import CompanyInvite
from mutka.utils.dates import utcnow
from tests.test_utils_seed import (
    ensure_permissions, ensure_user, ensure_role, ensure_user_role_assignment, ensure_company, ensure_membership,
    make_cashbox,
)
from tests.test_lifecycle_helpers import jwt_headers


@pytest.fixture()
def admin(app_context):
    u = ensure_user('root@platform.test')
    return jwt_headers(u.id, [], company_ids=(), platform_admin=True)


@pytest.fixture()
def target(app_context):
    company = ensure_company('Viewed Co')
    u = ensure_user('viewed@example.com', name='Viewed Person')
    ensure_membership(u, company)
    ensure_user_role_assignment(u, ensure_role('ViewedCashier', ['CASH.READ', 'CASH.MANAGE']))
    return company, u


def test_view_as_session_is_read_only(app_context: Flask, admin, target):
    company, user = target
    cb = make_cashbox('Viewed till', 'USD', '10', company_id=company.id)
    client = app_context.test_client()

    resp = client.post('/platform/view-as', json={'company_id': company.id}, headers=admin)
    assert resp.status_code == 201, resp.get_json()
    body = resp.get_json()
    assert body['target_user_id'] == user.id
    assert body['target_display_name'] == 'Viewed Person'
    assert body['mode'] == 'readonly_view_as'
    assert body['perms_count'] == 2
    assert client.get_cookie('mutka_view_as') is not None

    state = client.get('/platform/view-as', headers=admin).get_json()
    assert state['active'] is True
    assert state['session']['target_company_id'] == company.id

    # reads follow the target's permissions and company
    ids = [c['id'] for c in client.get('/cash/cashboxes', headers=admin).get_json()['data']]
    assert ids == [cb.id]
    assert client.get('/reports/metrics', headers=admin).status_code == 403

    resp = client.post('/cash/cashboxes', json={'name': 'Sneaky', 'currency': 'USD'}, headers=admin)
    assert resp.status_code == 403
    assert resp.get_json()['error']['code'] == 'read_only_mode'
    resp = client.post('/platform/invites/accept', json={'token': 'whatever'}, headers=admin)
    assert resp.get_json()['error']['code'] == 'read_only_mode'

    audit = get_db().query(AuditLog).filter_by(action='PLATFORM.VIEW_AS.START').order_by(AuditLog.id.desc()).first()
    assert audit.entity_id == str(user.id)

    resp = client.delete('/platform/view-as', headers=admin)
    assert resp.get_json() == {'active': False, 'session': None}
    assert client.get('/cash/cashboxes', headers=admin).status_code == 403


def test_view_as_cookie_ignored_for_other_callers(app_context: Flask, admin, target):
    company, _ = target
    client = app_context.test_client()
    client.post('/platform/view-as', json={'company_id': company.id}, headers=admin)
    other = ensure_user('bystander@example.com')
    headers = jwt_headers(other.id, ['CASH.READ', 'CASH.MANAGE'], company_ids=(9500,))
    assert client.get('/platform/view-as', headers=headers).get_json() == {'active': False, 'session': None}
    resp = client.post('/cash/cashboxes', json={'name': 'Own till', 'currency': 'EUR'}, headers=headers)
    assert resp.status_code == 201
    assert resp.get_json()['company_id'] == 9500


def test_view_as_validation(app_context: Flask, admin, target):
    company, _ = target
    client = app_context.test_client()
    assert client.post('/platform/view-as', json={'company_id': 999999}, headers=admin).status_code == 404
    stranger = ensure_user('stranger@example.com')
    resp = client.post('/platform/view-as', json={'company_id': company.id, 'user_id': stranger.id}, headers=admin)
    assert resp.status_code == 400
    empty = ensure_company('Empty Co')
    assert client.post('/platform/view-as', json={'company_id': empty.id}, headers=admin).status_code == 400
    u = ensure_user('not-admin@example.com')
    plain = jwt_headers(u.id, ['CASH.READ'])
    assert client.post('/platform/view-as', json={'company_id': company.id}, headers=plain).status_code == 403


def test_invite_accept_founds_company(app_context: Flask, admin):
    ensure_permissions(ALL_PERMISSION_CODES)
    client = app_context.test_client()
    resp = client.post('/platform/invites', json={'email': 'Founder@Example.com', 'company_name': 'Fresh Start'},
                       headers=admin)
    assert resp.status_code == 201, resp.get_json()
    invite = resp.get_json()
    assert invite['email'] == 'founder@example.com'
    assert invite['used_at'] is None
    listed = client.get('/platform/invites', headers=admin).get_json()['data']
    assert invite['id'] in [i['id'] for i in listed]

    founder = ensure_user('founder@example.com', name='Founder')
    headers = jwt_headers(founder.id, [], company_ids=())
    resp = client.post('/platform/invites/accept', json={'token': invite['token']}, headers=headers)
    assert resp.status_code == 201, resp.get_json()
    company_id = resp.get_json()['company_id']

    token = client.post('/iam/auth/login', json={'email': 'founder@example.com', 'password': 'pw'}).get_json()['access_token']
    login_headers = {'Authorization': f'Bearer {token}'}
    me = client.get('/iam/auth/me', headers=login_headers).get_json()
    assert me['company_ids'] == [company_id]
    assert 'Owner' in me['role_names']
    for code in ('FIN.MANAGE', 'HR.MANAGE', 'ADMIN.USER.MANAGE'):
        assert code in me['perms']
    staff = client.get('/hr/employees', headers=login_headers)
    assert staff.status_code == 200
    assert [e['user_id'] for e in staff.get_json()['data']] == [founder.id]
    memberships = client.get('/iam/companies/me', headers=login_headers).get_json()['data']
    assert memberships[0]['role'] == 'owner'
    assert sorted(memberships[0]['modules']) == sorted(MODULES)

    again = client.post('/platform/invites/accept', json={'token': invite['token']}, headers=headers)
    assert again.status_code == 400
    assert client.post('/platform/invites/accept', json={'token': 'missing'}, headers=headers).status_code == 404


def test_expired_invite_refused(app_context: Flask, admin):
    client = app_context.test_client()
    invite = client.post('/platform/invites', json={'email': 'late@example.com', 'company_name': 'Too Late'},
                         headers=admin).get_json()
    session = get_db()
    session.get(CompanyInvite, invite['id']).expires_at = utcnow() - timedelta(days=1)
    session.commit()
    u = ensure_user('late@example.com')
    resp = client.post('/platform/invites/accept', json={'token': invite['token']}, headers=jwt_headers(u.id, []))
    assert resp.status_code == 400
    assert resp.get_json()['error']['detail'] == 'Invite expired'


def test_invites_need_platform_admin(app_context: Flask):
    client = app_context.test_client()
    u = ensure_user('wannabe@example.com')
    headers = jwt_headers(u.id, ['ADMIN.ROLE.MANAGE'])
    assert client.post('/platform/invites', json={'email': 'x@example.com', 'company_name': 'X'},
                       headers=headers).status_code == 403
    assert client.get('/platform/invites', headers=headers).status_code == 403
