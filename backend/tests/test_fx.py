from datetime import date, timedelta
from decimal import Decimal
import pytest
import requests
from flask import Flask
from mutka import get_db
from mutka.services import rates as rates_svc
from tests.test_utils_seed import ensure_user, make_cashbox, balance_of
from tests.test_lifecycle_helpers import jwt_headers

PERMS = ['FX.READ', 'FX.EXCHANGE', 'FX.RATES.MANAGE', 'CASH.READ']


class _FakeResponse:
    def __init__(self, payload):
        self._payload = payload

    def raise_for_status(self):
        return None

    def json(self):
        return self._payload


@pytest.fixture()
def headers(app_context):
    u = ensure_user('fx@example.com')
    return jwt_headers(u.id, PERMS)


@pytest.fixture()
def provider_up(monkeypatch):
    calls = []

    def fake_get(url, params=None, headers=None, timeout=None):
        calls.append(url)
        return _FakeResponse({'rates': {'RUB': 90, 'EUR': 0.9}})

    monkeypatch.setattr('mutka.services.rates.requests.get', fake_get)
    return calls


@pytest.fixture()
def provider_down(monkeypatch):
    def fake_get(url, params=None, headers=None, timeout=None):
        raise requests.ConnectionError('offline')

    monkeypatch.setattr('mutka.services.rates.requests.get', fake_get)


def test_refresh_rates_from_provider(app_context: Flask, headers, provider_up):
    client = app_context.test_client()
    resp = client.post('/fx/rates/refresh', headers=headers)
    assert resp.status_code == 200, resp.get_json()
    body = resp.get_json()
    assert body == {'success': True, 'count': 12, 'source': 'api'}
    assert provider_up
    rate = client.get('/fx/rates/usd/rub', headers=headers).get_json()
    assert rate['from_currency'] == 'USD'
    assert rate['rate'] == 90.0
    assert rate['source'] == 'db'


def test_refresh_rates_falls_back_to_defaults(app_context: Flask, headers, provider_down):
    client = app_context.test_client()
    body = client.post('/fx/rates/refresh', headers=headers).get_json()
    assert body['success'] is True
    assert body['source'] == 'default'
    rows = client.get('/fx/rates', headers=headers).get_json()['data']
    usd_rub = [r for r in rows if r['from_currency'] == 'USD' and r['to_currency'] == 'RUB'][0]
    assert usd_rub['rate'] == 92.5
    assert usd_rub['source'] == 'default'


def test_same_currency_rate_is_one(app_context: Flask, headers):
    resp = app_context.test_client().get('/fx/rates/EUR/eur', headers=headers)
    assert resp.get_json()['rate'] == 1.0
    assert resp.get_json()['source'] == 'system'


def test_cross_rates_are_quantized():
    matrix = {(s, d): r for s, d, r in rates_svc.build_cross_rates(Decimal('90'), Decimal('0.9'))}
    assert len(matrix) == 12
    assert str(matrix[('USD', 'RUB')]) == '90.0000'
    assert str(matrix[('RUB', 'USD')]) == '0.0111'
    assert str(matrix[('USD', 'USDT')]) == '1.0000'


def test_external_rate_same_pair_short_circuits(app_context: Flask, headers, provider_down):
    client = app_context.test_client()
    body = client.post('/fx/rates/external', json={'from': 'usd', 'to': 'usdt'}, headers=headers).get_json()
    assert body == {'success': True, 'rate': 1.0}
    body = client.post('/fx/rates/external', json={'from': 'USD', 'to': 'GBP'}, headers=headers).get_json()
    assert body['success'] is False


def test_exchange_between_cashboxes(app_context: Flask, headers):
    client = app_context.test_client()
    usd = make_cashbox('FX USD', 'USD', '1000')
    rub = make_cashbox('FX RUB', 'RUB', '0')
    resp = client.post('/fx/exchanges', json={
        'from_cashbox_id': usd.id, 'to_cashbox_id': rub.id,
        'sent_amount': 100, 'received_amount': 9000, 'rate': 90,
    }, headers=headers)
    assert resp.status_code == 201, resp.get_json()
    log = resp.get_json()
    assert log['sent_currency'] == 'USD'
    assert log['received_currency'] == 'RUB'
    assert log['fee_currency'] is None
    assert balance_of(usd.id) == 900
    assert balance_of(rub.id) == 9000
    listed = client.get(f'/fx/exchanges?cashbox_id={rub.id}', headers=headers).get_json()['data']
    assert [x['id'] for x in listed] == [log['id']]


def test_exchange_rate_deviation_refused(app_context: Flask, headers):
    client = app_context.test_client()
    usd = make_cashbox('Dev USD', 'USD', '1000')
    rub = make_cashbox('Dev RUB', 'RUB', '0')
    resp = client.post('/fx/exchanges', json={
        'from_cashbox_id': usd.id, 'to_cashbox_id': rub.id,
        'sent_amount': 100, 'received_amount': 8000, 'rate': 90,
    }, headers=headers)
    assert resp.status_code == 400
    assert resp.get_json()['error']['code'] == 'rate_deviation'
    assert balance_of(usd.id) == 1000


def test_exchange_same_currency_and_funds_checks(app_context: Flask, headers):
    client = app_context.test_client()
    a = make_cashbox('Same A', 'EUR', '10')
    b = make_cashbox('Same B', 'EUR', '0')
    c = make_cashbox('Other C', 'USD', '0')
    payload = {'from_cashbox_id': a.id, 'to_cashbox_id': b.id, 'sent_amount': 5, 'received_amount': 5, 'rate': 1}
    assert client.post('/fx/exchanges', json=payload, headers=headers).status_code == 400
    payload = {'from_cashbox_id': a.id, 'to_cashbox_id': c.id, 'sent_amount': 50, 'received_amount': 55, 'rate': 1.1}
    resp = client.post('/fx/exchanges', json=payload, headers=headers)
    assert resp.get_json()['error']['code'] == 'insufficient_funds'


def test_exchange_requires_permission(app_context: Flask):
    u = ensure_user('fx-reader@example.com')
    headers = jwt_headers(u.id, ['FX.READ'])
    resp = app_context.test_client().post('/fx/exchanges', json={}, headers=headers)
    assert resp.status_code == 403


def test_system_rate_update_tracks_change(app_context: Flask, headers):
    session = get_db()
    rates_svc.ensure_system_rates(session)
    session.commit()
    client = app_context.test_client()
    before = client.get('/fx/system-rates', headers=headers).get_json()['data']
    assert {r['code'] for r in before} >= {'RUB', 'USD', 'EUR', 'USDT'}
    usd = [r for r in before if r['code'] == 'USD'][0]
    resp = client.put('/fx/system-rates/usd', json={'rate_to_rub': usd['rate_to_rub'] * 2}, headers=headers)
    assert resp.status_code == 200, resp.get_json()
    body = resp.get_json()
    assert body['prev_rate_to_rub'] == usd['rate_to_rub']
    assert body['change_24h'] == 100.0
    at = client.get(f"/fx/system-rates/USD/at?date={(date.today() + timedelta(days=1)).isoformat()}", headers=headers)
    assert at.status_code == 200
    assert at.get_json()['rate_to_rub'] == body['rate_to_rub']


def test_system_rate_unknown_code_is_404(app_context: Flask, headers):
    resp = app_context.test_client().put('/fx/system-rates/XYZ', json={'rate_to_rub': 1}, headers=headers)
    assert resp.status_code == 404


def test_system_refresh_reports_provider_failure(app_context: Flask, headers, provider_down):
    body = app_context.test_client().post('/fx/system-rates/refresh', headers=headers).get_json()
    assert body['success'] is False
    assert body['updated'] == 0
