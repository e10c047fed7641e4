import pytest
from flask import Flask
from tests.test_utils_seed import ensure_user, make_cashbox, balance_of
from tests.test_lifecycle_helpers import jwt_headers

PERMS = ['CASH.READ', 'CASH.MANAGE', 'CASH.OPERATE']


@pytest.fixture()
def headers(app_context):
    u = ensure_user('cashier@example.com')
    return jwt_headers(u.id, PERMS)


def test_create_cashbox_with_initial_balance_writes_ledger_row(app_context: Flask, headers):
    client = app_context.test_client()
    resp = client.post('/cash/cashboxes', json={'name': 'Main USD', 'currency': 'usd', 'initial_balance': '1500.50'}, headers=headers)
    assert resp.status_code == 201, resp.get_json()
    cb = resp.get_json()
    assert cb['currency'] == 'USD'
    assert cb['balance'] == 1500.5
    txs = client.get(f"/cash/transactions?cashbox_id={cb['id']}", headers=headers).get_json()['data']
    assert len(txs) == 1
    assert txs[0]['category'] == 'INITIAL'
    assert txs[0]['balance_after'] == 1500.5


def test_create_cashbox_rejects_unknown_currency(app_context: Flask, headers):
    client = app_context.test_client()
    resp = client.post('/cash/cashboxes', json={'name': 'Bad', 'currency': 'XYZ'}, headers=headers)
    assert resp.status_code == 400


def test_deposit_and_withdraw_track_balance_after(app_context: Flask, headers):
    client = app_context.test_client()
    cb = make_cashbox('Deposit box', 'RUB', '100')
    resp = client.post(f'/cash/cashboxes/{cb.id}/deposit', json={'amount': 50}, headers=headers)
    assert resp.status_code == 201
    assert resp.get_json()['balance_after'] == 150.0
    resp = client.post(f'/cash/cashboxes/{cb.id}/withdraw', json={'amount': '30.25'}, headers=headers)
    assert resp.status_code == 201
    body = resp.get_json()
    assert body['amount'] == -30.25
    assert body['cashbox']['balance'] == 119.75


def test_withdraw_more_than_balance_is_refused(app_context: Flask, headers):
    client = app_context.test_client()
    cb = make_cashbox('Thin box', 'USD', '10')
    resp = client.post(f'/cash/cashboxes/{cb.id}/withdraw', json={'amount': 11}, headers=headers)
    assert resp.status_code == 400
    assert resp.get_json()['error']['code'] == 'insufficient_funds'
    assert balance_of(cb.id) == 10


def test_non_positive_amount_rejected(app_context: Flask, headers):
    client = app_context.test_client()
    cb = make_cashbox('Zero box', 'USD', '10')
    assert client.post(f'/cash/cashboxes/{cb.id}/deposit', json={'amount': 0}, headers=headers).status_code == 400
    assert client.post(f'/cash/cashboxes/{cb.id}/deposit', json={'amount': 'abc'}, headers=headers).status_code == 400


def test_transfer_moves_money_between_same_currency_boxes(app_context: Flask, headers):
    client = app_context.test_client()
    a = make_cashbox('Transfer A', 'EUR', '200')
    b = make_cashbox('Transfer B', 'EUR', '0')
    resp = client.post('/cash/transfers', json={'from_cashbox_id': a.id, 'to_cashbox_id': b.id, 'amount': 75}, headers=headers)
    assert resp.status_code == 201, resp.get_json()
    body = resp.get_json()
    assert body['out']['category'] == 'TRANSFER_OUT'
    assert body['in']['category'] == 'TRANSFER_IN'
    assert body['in']['reference_id'] == str(body['out']['id'])
    assert balance_of(a.id) == 125
    assert balance_of(b.id) == 75


def test_transfer_currency_mismatch_rolls_back(app_context: Flask, headers):
    client = app_context.test_client()
    a = make_cashbox('Mismatch A', 'EUR', '200')
    b = make_cashbox('Mismatch B', 'USD', '0')
    resp = client.post('/cash/transfers', json={'from_cashbox_id': a.id, 'to_cashbox_id': b.id, 'amount': 75}, headers=headers)
    assert resp.status_code == 400
    assert balance_of(a.id) == 200


def test_archived_cashbox_refuses_operations(app_context: Flask, headers):
    client = app_context.test_client()
    cb = make_cashbox('Archive me', 'USD', '10')
    resp = client.post(f'/cash/cashboxes/{cb.id}/archive', headers=headers)
    assert resp.status_code == 200
    assert resp.get_json()['is_archived'] is True
    resp = client.post(f'/cash/cashboxes/{cb.id}/deposit', json={'amount': 5}, headers=headers)
    assert resp.status_code == 400
    assert resp.get_json()['error']['code'] == 'cashbox_archived'
    listed = client.get('/cash/cashboxes?limit=200', headers=headers).get_json()['data']
    assert cb.id not in [c['id'] for c in listed]
    listed = client.get('/cash/cashboxes?include_archived=1&limit=200', headers=headers).get_json()['data']
    assert cb.id in [c['id'] for c in listed]


def test_balance_is_not_editable(app_context: Flask, headers):
    client = app_context.test_client()
    cb = make_cashbox('Locked balance', 'USD', '10')
    resp = client.put(f'/cash/cashboxes/{cb.id}', json={'balance': 1000}, headers=headers)
    assert resp.status_code == 400


def test_non_numeric_location_id_is_a_bad_request(app_context: Flask, headers):
    client = app_context.test_client()
    resp = client.post('/cash/cashboxes', json={'name': 'Odd location', 'currency': 'USD', 'location_id': 'abc'},
                       headers=headers)
    assert resp.status_code == 400
    assert resp.get_json()['error']['detail'] == 'location_id invalid'
    cb = make_cashbox('Odd location edit', 'USD', '0')
    resp = client.put(f'/cash/cashboxes/{cb.id}', json={'location_id': 'x1'}, headers=headers)
    assert resp.status_code == 400


def test_other_company_cashbox_is_forbidden(app_context: Flask, headers):
    client = app_context.test_client()
    foreign = make_cashbox('Foreign box', 'USD', '10', company_id=2)
    assert client.get(f'/cash/cashboxes/{foreign.id}', headers=headers).status_code == 403
    assert client.post(f'/cash/cashboxes/{foreign.id}/deposit', json={'amount': 1}, headers=headers).status_code == 403


def test_missing_permission_is_forbidden(app_context: Flask):
    client = app_context.test_client()
    u = ensure_user('reader@example.com')
    headers = jwt_headers(u.id, ['CASH.READ'])
    cb = make_cashbox('Read only box', 'USD', '10')
    assert client.get(f'/cash/cashboxes/{cb.id}', headers=headers).status_code == 200
    assert client.post(f'/cash/cashboxes/{cb.id}/deposit', json={'amount': 1}, headers=headers).status_code == 403


def test_locations_crud_and_unlink_on_delete(app_context: Flask, headers):
    client = app_context.test_client()
    loc = client.post('/cash/locations', json={'name': 'Office', 'sort_order': 2}, headers=headers).get_json()
    cb = client.post('/cash/cashboxes', json={'name': 'Office box', 'currency': 'USD', 'location_id': loc['id']}, headers=headers).get_json()
    assert cb['location_id'] == loc['id']
    resp = client.delete(f"/cash/locations/{loc['id']}", headers=headers)
    assert resp.status_code == 200
    assert client.get(f"/cash/cashboxes/{cb['id']}", headers=headers).get_json()['location_id'] is None
