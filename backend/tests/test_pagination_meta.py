from tests.test_utils_seed import ensure_user, make_cashbox
from tests.test_lifecycle_helpers import jwt_headers

COMPANY = 9300


def test_pagination_meta_and_clamping(client, app_instance):
    with app_instance.app_context():
        user = ensure_user('pager@example.com')
        headers = jwt_headers(user.id, ['CASH.READ'], company_ids=(COMPANY,))
        for i in range(3):
            make_cashbox(f'Page box {i}', 'USD', company_id=COMPANY)

    body = client.get('/cash/cashboxes?limit=2&offset=0', headers=headers).get_json()
    assert body['pagination'] == {'total': 3, 'limit': 2, 'offset': 0, 'returned': 2}
    body = client.get('/cash/cashboxes?limit=2&offset=2', headers=headers).get_json()
    assert body['pagination']['returned'] == 1

    body = client.get('/cash/cashboxes?limit=100000&offset=-5', headers=headers).get_json()
    assert body['pagination']['limit'] == 200
    assert body['pagination']['offset'] == 0


def test_non_integer_limit_rejected(client, app_instance):
    with app_instance.app_context():
        user = ensure_user('pager@example.com')
        headers = jwt_headers(user.id, ['CASH.READ'], company_ids=(COMPANY,))
    resp = client.get('/cash/cashboxes?limit=lots', headers=headers)
    assert resp.status_code == 400
    assert resp.get_json()['error']['detail'] == 'limit/offset must be int'
