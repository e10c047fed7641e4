from datetime import date, timedelta
import pytest
from flask import Flask
from mutka.services import finance_engine, finance_math
from tests.test_utils_seed import ensure_user, make_cashbox, balance_of
from tests.test_lifecycle_helpers import jwt_headers, assert_transition, create_resource_and_assert

PERMS = ['FIN.READ', 'FIN.MANAGE', 'FIN.LEDGER', 'ASSETS.READ', 'ASSETS.MANAGE']


@pytest.fixture()
def headers(app_context):
    u = ensure_user('lender@example.com')
    return jwt_headers(u.id, PERMS)


def _deal(client, headers, **extra):
    body = {'title': 'Loan to workshop', 'principal_amount': 12000, 'term_months': 12, 'rate_percent': 0,
            'schedule_type': 'annuity', 'start_date': '2024-01-01', 'contract_currency': 'USD'}
    body.update(extra)
    return create_resource_and_assert(client, '/finance/deals', body, headers, expected_initial_status='NEW')


def _activate(client, headers, deal):
    assert_transition(client, f"/finance/deals/{deal['id']}/status", headers, 200,
                      payload={'status': 'ACTIVE'}, expected_body_value='ACTIVE')


def _valued_asset(client, headers, name, amount):
    asset = create_resource_and_assert(client, '/assets', {'name': name}, headers, expected_initial_status='active')
    client.post(f"/assets/{asset['id']}/valuations",
                json={'valuation_amount': amount, 'valuation_currency': 'USD'}, headers=headers)
    return asset


def _asset_status(client, headers, asset_id):
    return client.get(f'/assets/{asset_id}', headers=headers).get_json()['status']


def test_create_generates_schedule(app_context: Flask, headers):
    client = app_context.test_client()
    deal = _deal(client, headers)
    assert deal['deal_number'].startswith('FD-')
    assert deal['start_date'] == '2024-01-01'
    rows = client.get(f"/finance/deals/{deal['id']}/schedule", headers=headers).get_json()['data']
    assert len(rows) == 12
    assert {r['total_due'] for r in rows} == {1000.0}
    assert rows[0]['due_date'] == '2024-02-01'
    assert {r['status'] for r in rows} == {'PLANNED'}


def test_manual_schedule_starts_empty(app_context: Flask, headers):
    client = app_context.test_client()
    deal = _deal(client, headers, schedule_type='manual')
    assert client.get(f"/finance/deals/{deal['id']}/schedule", headers=headers).get_json()['data'] == []


def test_create_validation(app_context: Flask, headers):
    client = app_context.test_client()
    base = {'title': 'x', 'principal_amount': 100, 'term_months': 12}
    assert client.post('/finance/deals', json=dict(base, schedule_type='balloon'), headers=headers).status_code == 400
    assert client.post('/finance/deals', json=dict(base, term_months=0), headers=headers).status_code == 400
    assert client.post('/finance/deals', json=dict(base, principal_amount=-1), headers=headers).status_code == 400
    assert client.post('/finance/deals', json={'title': 'x'}, headers=headers).status_code == 400


def test_status_transitions(app_context: Flask, headers):
    client = app_context.test_client()
    deal = _deal(client, headers)
    url = f"/finance/deals/{deal['id']}/status"
    assert_transition(client, url, headers, 400, payload={'status': 'CLOSED'})
    _activate(client, headers, deal)
    assert_transition(client, url, headers, 400, payload={'status': 'NEW'})
    assert_transition(client, url, headers, 400, payload={'status': 'DEFAULT'})
    assert_transition(client, url, headers, 200, payload={'status': 'CLOSED'}, expected_body_value='CLOSED')


def test_past_pause_reshapes_schedule_without_pausing(app_context: Flask, headers):
    client = app_context.test_client()
    deal = _deal(client, headers)
    _activate(client, headers, deal)
    resp = client.post(f"/finance/deals/{deal['id']}/pauses",
                       json={'start_date': '2024-02-01', 'end_date': '2024-03-01', 'reason': 'repairs'}, headers=headers)
    assert resp.status_code == 201, resp.get_json()
    assert resp.get_json()['deal_status'] == 'ACTIVE'
    rows = client.get(f"/finance/deals/{deal['id']}/schedule", headers=headers).get_json()['data']
    assert len(rows) == 11
    assert sum(r['principal_due'] for r in rows) == 12000
    assert '2024-03-01' not in [r['due_date'] for r in rows]
    bad = client.post(f"/finance/deals/{deal['id']}/pauses",
                      json={'start_date': '2024-03-01', 'end_date': '2024-03-01'}, headers=headers)
    assert bad.status_code == 400


def test_current_pause_resume_and_delete(app_context: Flask, headers):
    client = app_context.test_client()
    deal = _deal(client, headers)
    _activate(client, headers, deal)
    window = {'start_date': (date.today() - timedelta(days=5)).isoformat(),
              'end_date': (date.today() + timedelta(days=10)).isoformat()}
    pause = client.post(f"/finance/deals/{deal['id']}/pauses", json=window, headers=headers).get_json()
    assert pause['deal_status'] == 'PAUSED'
    resumed = client.post(f"/finance/deals/{deal['id']}/pauses/{pause['id']}/resume", headers=headers).get_json()
    assert resumed['deal_status'] == 'ACTIVE'
    assert resumed['end_date'] <= window['end_date']
    pauses = client.get(f"/finance/deals/{deal['id']}/pauses", headers=headers).get_json()['data']
    assert [p['id'] for p in pauses] == [pause['id']]

    other = _deal(client, headers)
    _activate(client, headers, other)
    second = client.post(f"/finance/deals/{other['id']}/pauses", json=window, headers=headers).get_json()
    assert second['deal_status'] == 'PAUSED'
    resp = client.delete(f"/finance/deals/{other['id']}/pauses/{second['id']}", headers=headers)
    assert resp.get_json() == {'deleted': second['id'], 'deal_status': 'ACTIVE'}
    assert client.get(f"/finance/deals/{other['id']}/pauses", headers=headers).get_json()['data'] == []
    assert client.delete(f"/finance/deals/{other['id']}/pauses/{second['id']}", headers=headers).status_code == 404


def test_pause_ending_today_no_longer_pauses(app_context: Flask, headers):
    client = app_context.test_client()
    deal = _deal(client, headers)
    _activate(client, headers, deal)
    today = date.today()
    window = {'start_date': (today - timedelta(days=5)).isoformat(), 'end_date': today.isoformat()}
    pause = client.post(f"/finance/deals/{deal['id']}/pauses", json=window, headers=headers).get_json()
    assert pause['deal_status'] == 'ACTIVE'


def test_pause_day_matches_schedule_proration():
    start, end = date(2024, 3, 1), date(2024, 3, 10)
    for day in (start, date(2024, 3, 9), end):
        covered = finance_math.paused_days_in_range(day, day + timedelta(days=1), [(start, end)]) == 1
        assert finance_engine._pause_covers(start, end, day) is covered


def test_ledger_moves_cashbox_and_feeds_summary(app_context: Flask, headers):
    client = app_context.test_client()
    cb = make_cashbox('Finance USD', 'USD', '20000')
    deal = _deal(client, headers)
    url = f"/finance/deals/{deal['id']}/ledger"
    resp = client.post(url, json={'entry_type': 'disbursement', 'amount': 12000, 'cashbox_id': cb.id}, headers=headers)
    assert resp.status_code == 201, resp.get_json()
    assert balance_of(cb.id) == 8000
    client.post(url, json={'entry_type': 'principal_repayment', 'amount': 2000, 'cashbox_id': cb.id}, headers=headers)
    assert balance_of(cb.id) == 10000
    assert client.post(url, json={'entry_type': 'fee', 'amount': 10, 'cashbox_id': cb.id}, headers=headers).status_code == 400
    assert client.post(url, json={'entry_type': 'fee', 'amount': 10}, headers=headers).status_code == 201
    assert client.post(url, json={'entry_type': 'bribe', 'amount': 10}, headers=headers).status_code == 400
    rub = make_cashbox('Finance RUB', 'RUB', '0')
    assert client.post(url, json={'entry_type': 'principal_repayment', 'amount': 10, 'cashbox_id': rub.id},
                       headers=headers).status_code == 400

    entries = client.get(f'{url}?entry_type=fee', headers=headers).get_json()['data']
    assert [e['amount'] for e in entries] == [10.0]

    summary = client.get(f"/finance/deals/{deal['id']}/summary", headers=headers).get_json()
    assert summary['balances']['total_disbursed'] == 12000
    assert summary['balances']['principal_repaid'] == 2000
    assert summary['balances']['fees_and_penalties'] == 10
    assert summary['balances']['outstanding_principal'] == 10000
    assert summary['unpaid_interest'] == 0
    assert summary['total_owed'] == 10000
    assert summary['total_owed_display'] == '$ 10\u00a0000,00'


def test_summary_counts_overdue_interest(app_context: Flask, headers):
    client = app_context.test_client()
    deal = _deal(client, headers, principal_amount=1200, rate_percent=12, schedule_type='interest_only')
    summary = client.get(f"/finance/deals/{deal['id']}/summary", headers=headers).get_json()
    # every period of a 2024 deal is already due
    assert summary['unpaid_interest'] == 144
    assert summary['total_owed'] == 144
    assert summary['pause_count'] == 0


def test_participants(app_context: Flask, headers):
    client = app_context.test_client()
    deal = _deal(client, headers)
    url = f"/finance/deals/{deal['id']}/participants"
    resp = client.post(url, json={'role': 'guarantor', 'employee_id': 7, 'note': 'co-signs'}, headers=headers)
    assert resp.status_code == 201, resp.get_json()
    pid = resp.get_json()['id']
    assert client.post(url, json={'role': 'uncle', 'employee_id': 7}, headers=headers).status_code == 400
    assert client.post(url, json={'role': 'lender'}, headers=headers).status_code == 400
    assert client.post(url, json={'role': 'lender', 'contact_id': 999999}, headers=headers).status_code == 400
    assert [p['role'] for p in client.get(url, headers=headers).get_json()['data']] == ['guarantor']
    assert client.delete(f'{url}/{pid}', headers=headers).get_json() == {'deleted': pid}
    assert client.delete(f'{url}/{pid}', headers=headers).status_code == 404


def test_collateral_link_evaluate_replace_release(app_context: Flask, headers):
    client = app_context.test_client()
    deal = _deal(client, headers)
    _activate(client, headers, deal)
    client.post(f"/finance/deals/{deal['id']}/ledger", json={'entry_type': 'disbursement', 'amount': 4000}, headers=headers)
    first = _valued_asset(client, headers, 'Truck', 5000)
    second = _valued_asset(client, headers, 'Lathe', 8000)

    resp = client.post(f"/finance/deals/{deal['id']}/collateral", json={'asset_id': first['id']}, headers=headers)
    assert resp.status_code == 201, resp.get_json()
    link = resp.get_json()
    assert _asset_status(client, headers, first['id']) == 'pledged'
    again = client.post(f"/finance/deals/{deal['id']}/collateral", json={'asset_id': first['id']}, headers=headers)
    assert again.status_code == 400

    ev = client.get(f"/finance/deals/{deal['id']}/collateral/evaluate", headers=headers).get_json()
    assert ev['total_valuation'] == 5000
    assert ev['outstanding'] == 4000
    assert ev['ltv'] == 80

    resp = client.post(f"/finance/collateral/{link['id']}/replace", json={'new_asset_id': second['id'], 'reason': 'upgrade'},
                       headers=headers)
    assert resp.status_code == 201, resp.get_json()
    new_link = resp.get_json()
    assert new_link['replaced_link_id'] == link['id']
    assert _asset_status(client, headers, first['id']) == 'active'
    assert _asset_status(client, headers, second['id']) == 'pledged'
    ev = client.get(f"/finance/deals/{deal['id']}/collateral/evaluate", headers=headers).get_json()
    assert ev['ltv'] == 50

    statuses = [x['status'] for x in client.get(f"/finance/deals/{deal['id']}/collateral", headers=headers).get_json()['data']]
    assert statuses == ['replaced', 'active']
    released = client.post(f"/finance/collateral/{new_link['id']}/release", headers=headers).get_json()
    assert released['status'] == 'released'
    assert _asset_status(client, headers, second['id']) == 'active'
    assert client.post(f"/finance/collateral/{new_link['id']}/release", headers=headers).status_code == 400


def test_default_forecloses_collateral(app_context: Flask, headers):
    client = app_context.test_client()
    deal = _deal(client, headers)
    assert client.post(f"/finance/deals/{deal['id']}/default", headers=headers).status_code == 400
    _activate(client, headers, deal)
    client.post(f"/finance/deals/{deal['id']}/ledger", json={'entry_type': 'disbursement', 'amount': 5000}, headers=headers)
    asset = _valued_asset(client, headers, 'Boat', 3000)
    client.post(f"/finance/deals/{deal['id']}/collateral", json={'asset_id': asset['id']}, headers=headers)

    resp = client.post(f"/finance/deals/{deal['id']}/default", headers=headers)
    assert resp.status_code == 200, resp.get_json()
    body = resp.get_json()
    assert body['status'] == 'DEFAULT'
    assert [(p['entry_type'], p['amount']) for p in body['proceeds']] == [('collateral_sale_proceeds', 3000.0)]
    assert _asset_status(client, headers, asset['id']) == 'foreclosed'
    summary = client.get(f"/finance/deals/{deal['id']}/summary", headers=headers).get_json()
    assert summary['balances']['outstanding_principal'] == 2000


def test_read_only_caller_cannot_manage(app_context: Flask, headers):
    client = app_context.test_client()
    deal = _deal(client, headers)
    u = ensure_user('fin-viewer@example.com')
    viewer = jwt_headers(u.id, ['FIN.READ'])
    assert client.get(f"/finance/deals/{deal['id']}", headers=viewer).status_code == 200
    assert client.post(f"/finance/deals/{deal['id']}/ledger", json={'entry_type': 'fee', 'amount': 1},
                       headers=viewer).status_code == 403
