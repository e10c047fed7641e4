import pytest
from flask import Flask
from tests.test_utils_seed import ensure_user, make_cashbox, balance_of
from tests.test_lifecycle_helpers import jwt_headers, assert_transition, create_resource_and_assert

PERMS = ['AUTO.READ', 'AUTO.MANAGE', 'DEALS.READ', 'DEALS.CREATE', 'DEALS.PAY', 'DEALS.MANAGE',
         'STOCK.MANAGE', 'STOCK.OPERATE', 'STOCK.READ']


@pytest.fixture()
def headers(app_context):
    u = ensure_user('dealer@example.com')
    return jwt_headers(u.id, PERMS)


def _car(client, headers, price='10000', **extra):
    body = {'brand': 'Toyota', 'model': 'Camry', 'year': 2019, 'purchase_price': price, 'purchase_currency': 'USD'}
    body.update(extra)
    return create_resource_and_assert(client, '/auto/cars', body, headers, expected_initial_status='IN_STOCK')


def _deal(client, headers, car_id, total='12000', **extra):
    body = {'car_id': car_id, 'total_amount': total}
    body.update(extra)
    return create_resource_and_assert(client, '/auto/deals', body, headers, expected_initial_status='NEW')


def test_purchase_pays_from_cashbox_and_logs_timeline(app_context: Flask, headers):
    client = app_context.test_client()
    cb = make_cashbox('Auto USD', 'USD', '20000')
    resp = client.post('/auto/cars/purchase', json={'brand': 'BMW', 'model': 'X5', 'vin': 'WBA000001',
                                                    'purchase_price': 15000, 'purchase_currency': 'USD',
                                                    'cashbox_id': cb.id}, headers=headers)
    assert resp.status_code == 201, resp.get_json()
    car = resp.get_json()
    assert car['cost_price'] == 15000
    assert balance_of(cb.id) == 5000
    timeline = client.get(f"/auto/cars/{car['id']}/timeline", headers=headers).get_json()['data']
    assert timeline[0]['event_type'] == 'PURCHASE'
    assert timeline[0]['payload']['cashbox_id'] == cb.id


def test_purchase_rejects_currency_mismatch(app_context: Flask, headers):
    client = app_context.test_client()
    cb = make_cashbox('Auto RUB', 'RUB', '2000000')
    resp = client.post('/auto/cars/purchase', json={'brand': 'Lada', 'model': 'Vesta', 'purchase_price': 1000,
                                                    'purchase_currency': 'USD', 'cashbox_id': cb.id}, headers=headers)
    assert resp.status_code == 400
    assert balance_of(cb.id) == 2000000


def test_expenses_from_cash_and_stock_raise_cost(app_context: Flask, headers):
    client = app_context.test_client()
    cb = make_cashbox('Auto expenses', 'USD', '1000')
    car = _car(client, headers, price='10000')
    resp = client.post(f"/auto/cars/{car['id']}/expenses", json={'amount': 300, 'cashbox_id': cb.id, 'type': 'REPAIR',
                                                                 'description': 'new tyres'}, headers=headers)
    assert resp.status_code == 201, resp.get_json()
    assert resp.get_json()['car']['cost_price'] == 10300
    assert balance_of(cb.id) == 700

    item = client.post('/stock/items', json={'sku': 'AUTO-OIL', 'name': 'Oil', 'currency': 'USD'}, headers=headers).get_json()
    client.post(f"/stock/items/{item['id']}/operations",
                json={'type': 'PURCHASE', 'quantity': 4, 'unit_price': 25, 'cashbox_id': cb.id}, headers=headers)
    resp = client.post(f"/auto/cars/{car['id']}/expenses", json={'stock_item_id': item['id'], 'quantity': 2},
                       headers=headers)
    assert resp.status_code == 201, resp.get_json()
    body = resp.get_json()
    assert body['source'] == 'stock'
    assert body['amount'] == 50
    assert body['car']['cost_price'] == 10350
    moves = client.get(f"/stock/movements?car_id={car['id']}", headers=headers).get_json()['data']
    assert [m['type'] for m in moves] == ['WRITE_OFF']
    expenses = client.get(f"/auto/cars/{car['id']}/expenses", headers=headers).get_json()['data']
    assert [e['source'] for e in expenses] == ['cash', 'stock']


def test_expense_needs_a_source(app_context: Flask, headers):
    client = app_context.test_client()
    car = _car(client, headers)
    assert client.post(f"/auto/cars/{car['id']}/expenses", json={'amount': 10}, headers=headers).status_code == 400


def test_cost_price_and_status_not_editable_directly(app_context: Flask, headers):
    client = app_context.test_client()
    car = _car(client, headers)
    assert client.put(f"/auto/cars/{car['id']}", json={'cost_price': 1}, headers=headers).status_code == 400
    assert client.put(f"/auto/cars/{car['id']}", json={'status': 'SOLD'}, headers=headers).status_code == 400
    resp = client.post(f"/auto/cars/{car['id']}/status", json={'status': 'PREP'}, headers=headers)
    assert resp.get_json()['status'] == 'PREP'


def test_deal_lifecycle_payments_to_completion(app_context: Flask, headers):
    client = app_context.test_client()
    cb = make_cashbox('Deal USD', 'USD', '0')
    car = _car(client, headers, price='10000')
    deal = _deal(client, headers, car['id'])
    assert deal['deal_number'].startswith('AD-')
    assert client.get(f"/auto/cars/{car['id']}", headers=headers).get_json()['status'] == 'RESERVED'

    url = f"/auto/deals/{deal['id']}"
    resp = client.post(f'{url}/payments', json={'amount': 5000, 'cashbox_id': cb.id}, headers=headers)
    assert resp.status_code == 201, resp.get_json()
    assert resp.get_json()['status'] == 'PENDING_PAYMENT'
    assert_transition(client, f'{url}/complete', headers, 400)

    resp = client.post(f'{url}/payments', json={'amount': 7000, 'cashbox_id': cb.id}, headers=headers)
    body = resp.get_json()
    assert body['status'] == 'PAID'
    assert body['paid_amount'] == 12000
    assert len(body['payments']) == 2
    assert balance_of(cb.id) == 12000

    resp = assert_transition(client, f'{url}/complete', headers, 200, expected_body_value='COMPLETED')
    assert resp.get_json()['margin'] == 2000
    assert client.get(f"/auto/cars/{car['id']}", headers=headers).get_json()['status'] == 'SOLD'
    assert client.post(f'{url}/payments', json={'amount': 1}, headers=headers).status_code == 400
    # a sold car takes no new deals
    assert client.post('/auto/deals', json={'car_id': car['id'], 'total_amount': 1}, headers=headers).status_code == 400


def test_payment_in_other_currency_uses_rate(app_context: Flask, headers):
    client = app_context.test_client()
    rub = make_cashbox('Deal RUB', 'RUB', '0')
    car = _car(client, headers)
    deal = _deal(client, headers, car['id'], total='1000')
    resp = client.post(f"/auto/deals/{deal['id']}/payments",
                       json={'amount': 92500, 'currency': 'RUB', 'rate': 92.5, 'cashbox_id': rub.id}, headers=headers)
    body = resp.get_json()
    assert body['paid_amount'] == 1000
    assert body['status'] == 'PAID'
    assert body['payments'][0]['amount_in_deal_currency'] == 1000
    assert balance_of(rub.id) == 92500


def test_refund_reopens_paid_deal_and_cannot_exceed_paid(app_context: Flask, headers):
    client = app_context.test_client()
    car = _car(client, headers)
    deal = _deal(client, headers, car['id'], total='1000')
    url = f"/auto/deals/{deal['id']}/payments"
    assert client.post(url, json={'amount': 1000}, headers=headers).get_json()['status'] == 'PAID'
    body = client.post(url, json={'amount': 400, 'payment_type': 'REFUND'}, headers=headers).get_json()
    assert body['status'] == 'PENDING_PAYMENT'
    assert body['paid_amount'] == 600
    resp = client.post(url, json={'amount': 700, 'payment_type': 'REFUND'}, headers=headers)
    assert resp.status_code == 400


def test_full_refund_reopens_deal_and_blocks_completion(app_context: Flask, headers):
    client = app_context.test_client()
    car = _car(client, headers)
    deal = _deal(client, headers, car['id'], total='1000')
    url = f"/auto/deals/{deal['id']}"
    assert client.post(f'{url}/payments', json={'amount': 1000}, headers=headers).get_json()['status'] == 'PAID'
    body = client.post(f'{url}/payments', json={'amount': 1000, 'payment_type': 'REFUND'}, headers=headers).get_json()
    assert body['status'] == 'PENDING_PAYMENT'
    assert body['paid_amount'] == 0
    assert_transition(client, f'{url}/complete', headers, 400)
    # nothing collected, so the deal can still be called off
    assert_transition(client, f'{url}/cancel', headers, 200, expected_body_value='CANCELLED')


def test_cancel_returns_car_to_stock(app_context: Flask, headers):
    client = app_context.test_client()
    car = _car(client, headers)
    deal = _deal(client, headers, car['id'])
    assert_transition(client, f"/auto/deals/{deal['id']}/cancel", headers, 200, expected_body_value='CANCELLED')
    assert client.get(f"/auto/cars/{car['id']}", headers=headers).get_json()['status'] == 'IN_STOCK'
    assert_transition(client, f"/auto/deals/{deal['id']}/cancel", headers, 400)


def test_deal_requires_create_permission(app_context: Flask, headers):
    client = app_context.test_client()
    car = _car(client, headers)
    u = ensure_user('auto-viewer@example.com')
    viewer = jwt_headers(u.id, ['AUTO.READ', 'DEALS.READ'])
    assert client.post('/auto/deals', json={'car_id': car['id'], 'total_amount': 5}, headers=viewer).status_code == 403
