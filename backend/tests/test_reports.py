import pytest
from flask import Flask
from tests.test_utils_seed import ensure_user, make_cashbox
from tests.test_lifecycle_helpers import jwt_headers

COMPANY = 9400
PERMS = ['RPT.READ', 'CASH.READ', 'CASH.OPERATE', 'AUTO.MANAGE']


@pytest.fixture(scope='module')
def seeded(app_instance):
    with app_instance.app_context():
        u = ensure_user('reports@example.com')
        headers = jwt_headers(u.id, PERMS, company_ids=(COMPANY,))
        usd = make_cashbox('Report USD', 'USD', '0', company_id=COMPANY)
        make_cashbox('Report EUR', 'EUR', '20', company_id=COMPANY)
        make_cashbox('Report old', 'USD', '999', company_id=COMPANY, archived=True)
        client = app_instance.test_client()
        for amount in (100, 50):
            resp = client.post(f'/cash/cashboxes/{usd.id}/deposit', json={'amount': amount}, headers=headers)
            assert resp.status_code == 201, resp.get_json()
        resp = client.post('/auto/cars', json={'brand': 'Kia', 'model': 'Rio', 'purchase_price': 7000,
                                               'purchase_currency': 'USD'}, headers=headers)
        assert resp.status_code == 201, resp.get_json()
    return headers


def _row(rows, domain, status):
    return next(r for r in rows if r['domain'] == domain and r['status'] == status)


def test_metrics_aggregate_within_company(app_context: Flask, seeded):
    client = app_context.test_client()
    body = client.get('/reports/metrics?limit=100', headers=seeded).get_json()
    rows = body['data']
    assert {r['domain'] for r in rows} == {'CashboxTransaction', 'Car'}
    deposits = _row(rows, 'CashboxTransaction', 'DEPOSIT')
    assert deposits['count'] == 2
    assert deposits['id'] == 'CashboxTransaction:DEPOSIT'
    assert 'sum' not in deposits
    assert _row(rows, 'Car', 'IN_STOCK')['count'] == 1

    rows = client.get('/reports/metrics?include_financial=1', headers=seeded).get_json()['data']
    assert _row(rows, 'CashboxTransaction', 'DEPOSIT')['sum'] == 150
    assert _row(rows, 'Car', 'IN_STOCK')['sum'] == 7000


def test_metrics_date_filters(app_context: Flask, seeded):
    client = app_context.test_client()
    resp = client.get('/reports/metrics?start_date=2024-02-01&end_date=2024-01-01', headers=seeded)
    assert resp.status_code == 400
    assert client.get('/reports/metrics?start_date=yesterday', headers=seeded).status_code == 400
    body = client.get('/reports/metrics?end_date=2000-01-01', headers=seeded).get_json()
    assert body['data'] == []


def test_metrics_pagination_and_conditional(app_context: Flask, seeded):
    client = app_context.test_client()
    first = client.get('/reports/metrics?limit=1&offset=0', headers=seeded).get_json()
    assert first['pagination']['returned'] == 1
    assert first['pagination']['total'] == 2
    head = client.head('/reports/metrics?limit=100', headers=seeded)
    assert head.status_code == 200
    etag = head.headers.get('ETag')
    assert etag
    not_mod = client.get('/reports/metrics?limit=100', headers={**seeded, 'If-None-Match': etag})
    assert not_mod.status_code == 304


def test_balances_per_currency_skip_archived(app_context: Flask, seeded):
    client = app_context.test_client()
    body = client.get('/reports/balances', headers=seeded).get_json()
    assert body['data'] == [
        {'currency': 'EUR', 'balance': 20.0, 'cashboxes': 1},
        {'currency': 'USD', 'balance': 150.0, 'cashboxes': 1},
    ]


def test_metrics_require_permission(app_context: Flask):
    client = app_context.test_client()
    u = ensure_user('no-reports@example.com')
    headers = jwt_headers(u.id, ['CASH.READ'], company_ids=(COMPANY,))
    assert client.get('/reports/metrics', headers=headers).status_code == 403
