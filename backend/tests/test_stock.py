import pytest
from flask import Flask
from tests.test_utils_seed import ensure_user, make_cashbox, balance_of
from tests.test_lifecycle_helpers import jwt_headers

PERMS = ['STOCK.READ', 'STOCK.MANAGE', 'STOCK.OPERATE']


@pytest.fixture()
def headers(app_context):
    u = ensure_user('storekeeper@example.com')
    return jwt_headers(u.id, PERMS)


def _item(client, headers, sku, **extra):
    body = {'sku': sku, 'name': f'Item {sku}', 'currency': 'RUB'}
    body.update(extra)
    resp = client.post('/stock/items', json=body, headers=headers)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()


def _op(client, headers, item_id, **payload):
    return client.post(f'/stock/items/{item_id}/operations', json=payload, headers=headers)


def test_purchases_average_price_and_fifo_write_off(app_context: Flask, headers):
    client = app_context.test_client()
    cb = make_cashbox('Stock RUB', 'RUB', '5000')
    item = _item(client, headers, 'OIL-5W30')
    assert _op(client, headers, item['id'], type='PURCHASE', quantity=10, unit_price=100, cashbox_id=cb.id).status_code == 201
    resp = _op(client, headers, item['id'], type='PURCHASE', quantity=10, unit_price=150, cashbox_id=cb.id)
    body = resp.get_json()
    assert body['item']['quantity'] == 20
    assert body['item']['avg_purchase_price'] == 125
    assert balance_of(cb.id) == 2500

    resp = _op(client, headers, item['id'], type='WRITE_OFF', quantity=15, reason='service')
    assert resp.status_code == 201, resp.get_json()
    body = resp.get_json()
    assert body['total_cost'] == 1750
    assert body['quantity'] == -15
    assert body['item']['quantity'] == 5

    # remaining 5 units all come from the second batch
    body = _op(client, headers, item['id'], type='WRITE_OFF', quantity=5).get_json()
    assert body['total_cost'] == 750


def test_purchase_needs_funds_and_matching_currency(app_context: Flask, headers):
    client = app_context.test_client()
    poor = make_cashbox('Stock poor', 'RUB', '100')
    usd = make_cashbox('Stock USD', 'USD', '100000')
    item = _item(client, headers, 'FILTER-1')
    resp = _op(client, headers, item['id'], type='PURCHASE', quantity=10, unit_price=100, cashbox_id=poor.id)
    assert resp.status_code == 400
    assert resp.get_json()['error']['code'] == 'insufficient_funds'
    resp = _op(client, headers, item['id'], type='PURCHASE', quantity=1, unit_price=1, cashbox_id=usd.id)
    assert resp.status_code == 400
    assert client.get(f"/stock/items/{item['id']}", headers=headers).get_json()['quantity'] == 0


def test_write_off_more_than_on_hand_is_refused(app_context: Flask, headers):
    client = app_context.test_client()
    item = _item(client, headers, 'BULB-H7')
    resp = _op(client, headers, item['id'], type='WRITE_OFF', quantity=1)
    assert resp.status_code == 400


def test_adjustment_records_difference(app_context: Flask, headers):
    client = app_context.test_client()
    item = _item(client, headers, 'WIPER-55')
    resp = _op(client, headers, item['id'], type='ADJUSTMENT', new_quantity=7, reason='inventory count')
    assert resp.status_code == 201
    assert resp.get_json()['quantity'] == 7
    assert _op(client, headers, item['id'], type='ADJUSTMENT', new_quantity=7).status_code == 400
    movements = client.get(f"/stock/movements?item_id={item['id']}", headers=headers).get_json()['data']
    assert [m['type'] for m in movements] == ['ADJUSTMENT']


def test_sku_unique_and_quantity_not_editable(app_context: Flask, headers):
    client = app_context.test_client()
    item = _item(client, headers, 'PAD-FR')
    assert client.post('/stock/items', json={'sku': 'PAD-FR', 'name': 'Dup'}, headers=headers).status_code == 400
    assert client.put(f"/stock/items/{item['id']}", json={'quantity': 5}, headers=headers).status_code == 400
    resp = client.put(f"/stock/items/{item['id']}", json={'name': 'Front pads', 'min_quantity': 2}, headers=headers)
    assert resp.get_json()['name'] == 'Front pads'


def test_low_stock_filter(app_context: Flask, headers):
    client = app_context.test_client()
    low = _item(client, headers, 'LOW-1', min_quantity=3)
    ok = _item(client, headers, 'OK-1')
    ids = [i['id'] for i in client.get('/stock/items?low_stock=1&limit=200', headers=headers).get_json()['data']]
    assert low['id'] in ids
    assert ok['id'] in ids  # zero on hand equals a zero minimum
    _op(client, headers, ok['id'], type='ADJUSTMENT', new_quantity=1)
    ids = [i['id'] for i in client.get('/stock/items?low_stock=1&limit=200', headers=headers).get_json()['data']]
    assert ok['id'] not in ids


def test_unknown_operation_type(app_context: Flask, headers):
    client = app_context.test_client()
    item = _item(client, headers, 'ODD-1')
    assert _op(client, headers, item['id'], type='STEAL', quantity=1).status_code == 400
