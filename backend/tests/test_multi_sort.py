from tests.test_utils_seed import ensure_user, make_cashbox
from tests.test_lifecycle_helpers import jwt_headers

COMPANY = 9200


def test_cashboxes_multi_sort(client, app_instance):
    with app_instance.app_context():
        user = ensure_user('sort@example.com')
        headers = jwt_headers(user.id, ['CASH.READ'], company_ids=(COMPANY,))
        make_cashbox('Charlie', 'USD', company_id=COMPANY)
        make_cashbox('Bravo', 'USD', company_id=COMPANY)
        make_cashbox('Alpha', 'USD', company_id=COMPANY)
        make_cashbox('Delta', 'EUR', company_id=COMPANY)
    resp = client.get('/cash/cashboxes?sort=currency,-name', headers=headers)
    assert resp.status_code == 200
    names = [c['name'] for c in resp.get_json()['data']]
    assert names == ['Delta', 'Charlie', 'Bravo', 'Alpha']

    # default order is by name
    names = [c['name'] for c in client.get('/cash/cashboxes', headers=headers).get_json()['data']]
    assert names == ['Alpha', 'Bravo', 'Charlie', 'Delta']


def test_unknown_sort_field_rejected(client, app_instance):
    with app_instance.app_context():
        user = ensure_user('sort@example.com')
        headers = jwt_headers(user.id, ['CASH.READ'], company_ids=(COMPANY,))
    resp = client.get('/cash/cashboxes?sort=-secret', headers=headers)
    assert resp.status_code == 400
    assert 'secret' in resp.get_json()['error']['detail']
