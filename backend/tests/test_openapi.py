from mutka.openapi_parts.constants import ENTITIES


def test_openapi_spec_available(client):
    resp = client.get('/openapi.json')
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['openapi'].startswith('3.')
    assert '/iam/auth/login' in body['paths']
    assert body['paths']['/iam/auth/login']['post']['security'] == []


def test_docs_page(client):
    resp = client.get('/docs')
    assert resp.status_code == 200
    assert b'redoc' in resp.data


def test_sort_parameter_components_and_usage(client):
    spec = client.get('/openapi.json').get_json()
    comps = spec['components']['parameters']
    for name, list_path, _, _ in ENTITIES:
        assert f'{name}Sort' in comps, f'Missing parameter component: {name}Sort'
        params = spec['paths'][list_path]['get'].get('parameters', [])
        assert any(p.get('$ref', '').endswith(f'{name}Sort') for p in params), f'{list_path} missing sort ref'
    assert 'principal_amount' in comps['FinanceDealSort']['description']


def test_list_caching_headers_documented(client):
    spec = client.get('/openapi.json').get_json()
    for p in ['/cash/cashboxes', '/exchange/operations', '/auto/deals', '/finance/deals']:
        hdrs = spec['paths'][p]['get']['responses']['200'].get('headers', {})
        for h in ['ETag', 'Last-Modified', 'X-Last-Modified-ISO']:
            assert h in hdrs, f'{p} missing header doc {h}'


def test_required_permissions_documented(client):
    spec = client.get('/openapi.json').get_json()
    paths = spec['paths']
    assert paths['/finance/deals']['get']['x-required-permissions'] == ['FIN.READ']
    assert paths['/finance/deals']['post']['x-required-permissions'] == ['FIN.MANAGE']
    assert paths['/finance/deals/{deal_id}/ledger']['post']['x-required-permissions'] == ['FIN.LEDGER']
    assert paths['/exchange/operations/{op_id}/cancel']['post']['x-required-permissions'] == ['CLX.CANCEL']
    assert paths['/fx/exchanges']['post']['x-required-permissions'] == ['FX.EXCHANGE']
    assert 'x-required-permissions' not in paths['/iam/auth/me']['get']


def test_operation_ids_unique(client):
    spec = client.get('/openapi.json').get_json()
    ids = [op['operationId'] for ops in spec['paths'].values() for op in ops.values()]
    assert len(ids) == len(set(ids))
