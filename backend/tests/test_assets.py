import pytest
from flask import Flask
from tests.test_utils_seed import ensure_user
from tests.test_lifecycle_helpers import jwt_headers, create_resource_and_assert

PERMS = ['ASSETS.READ', 'ASSETS.MANAGE']


@pytest.fixture()
def headers(app_context):
    u = ensure_user('asset-keeper@example.com')
    return jwt_headers(u.id, PERMS)


def _asset(client, headers, **extra):
    body = {'name': 'Excavator', 'asset_type': 'equipment'}
    body.update(extra)
    return create_resource_and_assert(client, '/assets', body, headers, expected_initial_status='active')


def test_valuation_converts_to_base_currency(app_context: Flask, headers):
    client = app_context.test_client()
    asset = _asset(client, headers)
    url = f"/assets/{asset['id']}/valuations"
    resp = client.post(url, json={'valuation_amount': '1000', 'valuation_currency': 'eur', 'fx_rate': '1.0875',
                                  'valued_at': '2024-03-01'}, headers=headers)
    assert resp.status_code == 201, resp.get_json()
    body = resp.get_json()
    assert body['valuation_currency'] == 'EUR'
    assert body['base_currency'] == 'USD'
    assert body['base_amount'] == 1087.5
    assert body['valued_at'] == '2024-03-01'

    body = client.post(url, json={'valuation_amount': 500, 'valuation_currency': 'USD', 'valued_at': '2024-04-01'},
                       headers=headers).get_json()
    assert body['fx_rate'] == 1.0
    assert body['base_amount'] == 500.0

    listed = client.get(url, headers=headers).get_json()['data']
    assert [v['valued_at'] for v in listed] == ['2024-04-01', '2024-03-01']


def test_valuation_validation(app_context: Flask, headers):
    client = app_context.test_client()
    asset = _asset(client, headers)
    url = f"/assets/{asset['id']}/valuations"
    assert client.post(url, json={'valuation_amount': 0, 'valuation_currency': 'USD'}, headers=headers).status_code == 400
    assert client.post(url, json={'valuation_amount': 5, 'valuation_currency': 'XYZ'}, headers=headers).status_code == 400


def test_moves_update_location_and_timeline(app_context: Flask, headers):
    client = app_context.test_client()
    asset = _asset(client, headers, location='Yard')
    url = f"/assets/{asset['id']}/moves"
    first = client.post(url, json={'to_location': 'Warehouse A', 'moved_at': '2024-05-01'}, headers=headers).get_json()
    assert first['from_location'] == 'Yard'
    second = client.post(url, json={'to_location': 'Site 7', 'moved_at': '2024-06-01'}, headers=headers).get_json()
    assert second['from_location'] == 'Warehouse A'
    assert client.get(f"/assets/{asset['id']}", headers=headers).get_json()['location'] == 'Site 7'
    assert client.post(url, json={}, headers=headers).status_code == 400

    client.post(f"/assets/{asset['id']}/valuations",
                json={'valuation_amount': 100, 'valuation_currency': 'USD', 'valued_at': '2024-05-15'}, headers=headers)
    timeline = client.get(f"/assets/{asset['id']}/timeline", headers=headers).get_json()['data']
    assert [(e['type'], e['date'][:10]) for e in timeline] == [
        ('move', '2024-06-01'), ('valuation', '2024-05-15'), ('move', '2024-05-01'),
    ]


def test_pledge_status_only_through_collateral(app_context: Flask, headers):
    client = app_context.test_client()
    asset = _asset(client, headers)
    url = f"/assets/{asset['id']}"
    assert client.put(url, json={'status': 'pledged'}, headers=headers).status_code == 400
    assert client.put(url, json={'pledged_units': 1}, headers=headers).status_code == 400
    resp = client.put(url, json={'status': 'sold', 'description': 'sold at auction'}, headers=headers)
    assert resp.get_json()['status'] == 'sold'


def test_units_and_owner_validation(app_context: Flask, headers):
    client = app_context.test_client()
    assert client.post('/assets', json={'name': 'Zero', 'units': 0}, headers=headers).status_code == 400
    assert client.post('/assets', json={'name': 'Ghost', 'owner_contact_id': 999999}, headers=headers).status_code == 400
    asset = _asset(client, headers, name='Pallets', units=40)
    assert asset['units'] == 40
    assert asset['pledged_units'] == 0


def test_archived_assets_hidden_unless_requested(app_context: Flask, headers):
    client = app_context.test_client()
    asset = _asset(client, headers, name='Old trailer')
    client.put(f"/assets/{asset['id']}", json={'status': 'archived'}, headers=headers)
    ids = [a['id'] for a in client.get('/assets?q=trailer', headers=headers).get_json()['data']]
    assert asset['id'] not in ids
    ids = [a['id'] for a in client.get('/assets?q=trailer&status=archived', headers=headers).get_json()['data']]
    assert ids == [asset['id']]
