import pytest
from flask import Flask
from tests.test_utils_seed import ensure_user, make_cashbox
from tests.test_lifecycle_helpers import jwt_headers

COMPANY = 9100


@pytest.fixture()
def headers(app_context):
    u = ensure_user('etag@example.com')
    return jwt_headers(u.id, ['CASH.READ'], company_ids=(COMPANY,))


def test_etag_conditional_cashboxes(app_context: Flask, headers):
    client = app_context.test_client()
    make_cashbox('ETag box', 'USD', '10', company_id=COMPANY)
    first = client.get('/cash/cashboxes?limit=5', headers=headers)
    assert first.status_code == 200
    etag = first.headers.get('ETag')
    assert etag
    assert first.headers.get('X-Last-Modified-ISO', '').endswith('Z')

    second = client.get('/cash/cashboxes?limit=5', headers={**headers, 'If-None-Match': etag})
    assert second.status_code == 304
    assert second.headers.get('ETag') == etag

    lm = first.headers.get('Last-Modified')
    third = client.get('/cash/cashboxes?limit=5', headers={**headers, 'If-Modified-Since': lm})
    assert third.status_code == 304

    # a different page is a different representation
    other = client.get('/cash/cashboxes?limit=4', headers={**headers, 'If-None-Match': etag})
    assert other.status_code == 200


def test_head_list_has_validators_and_no_body(app_context: Flask, headers):
    client = app_context.test_client()
    make_cashbox('HEAD box', 'EUR', '1', company_id=COMPANY)
    get_resp = client.get('/cash/cashboxes', headers=headers)
    head = client.head('/cash/cashboxes', headers=headers)
    assert head.status_code == 200
    assert head.data == b''
    assert head.headers.get('ETag') == get_resp.headers.get('ETag')


def test_single_resource_validators(app_context: Flask, headers):
    client = app_context.test_client()
    cb = make_cashbox('Single box', 'RUB', '5', company_id=COMPANY)
    first = client.get(f'/cash/cashboxes/{cb.id}', headers=headers)
    assert first.status_code == 200
    etag = first.headers['ETag']
    head = client.head(f'/cash/cashboxes/{cb.id}', headers=headers)
    assert head.status_code == 200
    assert head.headers['ETag'] == etag
    assert head.data == b''
    again = client.get(f'/cash/cashboxes/{cb.id}', headers={**headers, 'If-None-Match': f'"{etag}"'})
    assert again.status_code == 304
