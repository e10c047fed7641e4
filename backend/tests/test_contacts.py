import pytest
from flask import Flask
from mutka.services.contacts import build_display_name, mask_phone, mask_email, normalize_phone, UNNAMED
from tests.test_utils_seed import ensure_user
from tests.test_lifecycle_helpers import jwt_headers


@pytest.fixture()
def writer(app_context):
    u = ensure_user('contacts-writer@example.com')
    return jwt_headers(u.id, ['CONTACTS.READ', 'CONTACTS.WRITE'])


@pytest.fixture()
def sensitive(app_context):
    u = ensure_user('contacts-sensitive@example.com')
    return jwt_headers(u.id, ['CONTACTS.READ', 'CONTACTS.SENSITIVE.READ'])


def test_display_name_fallbacks():
    assert build_display_name('Ivan', 'Ivanov') == 'Ivan Ivanov'
    assert build_display_name('Ivan', None, 'Vanya') == 'Ivan (Vanya)'
    assert build_display_name(None, None, 'Vanya') == 'Vanya'
    assert build_display_name(None, None, None, 'ACME Ltd') == 'ACME Ltd'
    assert build_display_name('  ', None, None, None) == UNNAMED


def test_masking_helpers():
    assert normalize_phone('+7 (912) 345-67-89') == '79123456789'
    assert mask_phone('+7 (912) 345-67-89') == '*******6789'
    assert mask_phone('123') == '***'
    assert mask_email('anna@example.com') == 'a***@example.com'
    assert mask_email(None) is None


def test_create_and_search_contact(app_context: Flask, writer):
    client = app_context.test_client()
    resp = client.post('/contacts', json={'first_name': 'Olga', 'last_name': 'Smirnova', 'nickname': 'Olya',
                                          'phone': '+7 912 000 55 66', 'email': 'olga@example.com'}, headers=writer)
    assert resp.status_code == 201, resp.get_json()
    created = resp.get_json()
    assert created['display_name'] == 'Olga Smirnova (Olya)'
    assert created['phone'] == '+7 912 000 55 66'

    found = client.get('/contacts?q=smirn', headers=writer).get_json()['data']
    assert created['id'] in [c['id'] for c in found]
    by_digits = client.get('/contacts?q=0005566', headers=writer).get_json()['data']
    assert created['id'] in [c['id'] for c in by_digits]


def test_list_masks_without_sensitive_permission(app_context: Flask, writer, sensitive):
    client = app_context.test_client()
    created = client.post('/contacts', json={'organization': 'Masked LLC', 'phone': '89001234567',
                                             'email': 'boss@masked.test'}, headers=writer).get_json()
    masked = client.get(f"/contacts/{created['id']}", headers=writer).get_json()
    assert masked['phone'] == '*******4567'
    assert masked['email'] == 'b***@masked.test'
    assert masked['channels'][0]['value'] == '*******4567'
    plain = client.get(f"/contacts/{created['id']}", headers=sensitive).get_json()
    assert plain['phone'] == '89001234567'
    assert plain['email'] == 'boss@masked.test'


def test_update_rebuilds_display_name_and_archives(app_context: Flask, writer):
    client = app_context.test_client()
    created = client.post('/contacts', json={'first_name': 'Pavel'}, headers=writer).get_json()
    resp = client.put(f"/contacts/{created['id']}", json={'last_name': 'Orlov', 'is_archived': True,
                                                          'phone': '+7 900 765 43 21'}, headers=writer)
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['display_name'] == 'Pavel Orlov'
    assert body['is_archived'] is True
    assert body['phone'] == '+7 900 765 43 21'
    ids = [c['id'] for c in client.get('/contacts?q=orlov', headers=writer).get_json()['data']]
    assert created['id'] not in ids
    ids = [c['id'] for c in client.get('/contacts?q=orlov&include_archived=1', headers=writer).get_json()['data']]
    assert created['id'] in ids


def test_contact_of_other_company_is_forbidden(app_context: Flask, writer):
    client = app_context.test_client()
    created = client.post('/contacts', json={'first_name': 'Scoped'}, headers=writer).get_json()
    u = ensure_user('contacts-outsider@example.com')
    outsider = jwt_headers(u.id, ['CONTACTS.READ'], company_ids=(99,))
    assert client.get(f"/contacts/{created['id']}", headers=outsider).status_code == 403


def test_write_requires_permission(app_context: Flask, sensitive):
    resp = app_context.test_client().post('/contacts', json={'first_name': 'Nope'}, headers=sensitive)
    assert resp.status_code == 403
