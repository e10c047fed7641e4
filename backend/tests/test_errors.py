from tests.test_utils_seed import ensure_role, ensure_user, ensure_user_role_assignment, make_cashbox
from tests.test_lifecycle_helpers import jwt_headers


def test_unknown_path_returns_error_json(client):
    resp = client.get('/non-existent-path')
    assert resp.status_code == 404
    body = resp.get_json()
    assert body['error']['status'] == 404
    assert 'detail' in body['error']
    assert 'code' not in body['error']


def test_domain_error_carries_code(client, app_instance):
    with app_instance.app_context():
        u = ensure_user('err-cash@example.com')
        cb = make_cashbox('Err box', 'USD', '5')
        headers = jwt_headers(u.id, ['CASH.OPERATE'])
    resp = client.post(f'/cash/cashboxes/{cb.id}/withdraw', json={'amount': 50}, headers=headers)
    assert resp.status_code == 400
    err = resp.get_json()['error']
    assert err['code'] == 'insufficient_funds'
    assert err['title'] == 'Bad Request'


def test_no_company_error(client, app_instance):
    with app_instance.app_context():
        u = ensure_user('homeless@example.com')
        headers = jwt_headers(u.id, ['CASH.MANAGE'], company_ids=())
    resp = client.post('/cash/cashboxes', json={'name': 'Nowhere', 'currency': 'USD'}, headers=headers)
    assert resp.status_code == 403
    assert resp.get_json()['error']['code'] == 'no_company'


def test_internal_error_shape(client, app_instance, monkeypatch):
    with app_instance.app_context():
        u = ensure_user('err@example.com')
        role = ensure_role('ErrRole', ['ADMIN.ROLE.MANAGE'])
        ensure_user_role_assignment(u, role)
    token = client.post('/iam/auth/login', json={'email': 'err@example.com', 'password': 'pw'}).get_json()['access_token']
    # Monkeypatch after login so auth works; only break roles listing
    import mutka.routes.iam as iam_mod

    class BoomSession:
        def query(self, *a, **k):
            raise RuntimeError('explode')

    monkeypatch.setattr(iam_mod, 'get_db', lambda: BoomSession())
    resp = client.get('/iam/roles', headers={'Authorization': f'Bearer {token}'})
    assert resp.status_code == 500
    body = resp.get_json()
    assert body['error']['status'] == 500
    assert body['error']['title'] == 'Internal Server Error'
