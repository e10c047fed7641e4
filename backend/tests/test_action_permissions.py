from mutka.constants.permissions import ALL_PERMISSION_CODES, ROLE_PRESETS
from mutka.openapi_parts.constants import ACTION_REGISTRY

# Reachable with any valid token
OPEN_READS = {'/iam/auth/me', '/iam/companies/me', '/platform/view-as'}


def test_all_action_endpoints_have_permissions(client):
    spec = client.get('/openapi.json').get_json()
    missing = []
    action_endpoints = 0
    for path, ops in spec['paths'].items():
        op = ops.get('post')
        if not op:
            continue
        segments = path.strip('/').split('/')
        # pattern: /domain/collection/{id}/action
        if len(segments) >= 3 and segments[-2].startswith('{') and not segments[-1].startswith('{'):
            action_endpoints += 1
            if not op.get('x-required-permissions'):
                missing.append(path)
    assert not missing, f'Action endpoints missing x-required-permissions: {missing}'
    assert action_endpoints > 0


def test_read_endpoints_have_read_permissions(client):
    spec = client.get('/openapi.json').get_json()
    read_missing = []
    for path, ops in spec['paths'].items():
        if path in OPEN_READS:
            continue
        for method in ('get', 'head'):
            if method in ops and 'x-required-permissions' not in ops[method]:
                read_missing.append(f'{method.upper()} {path}')
    assert not read_missing, f'Read endpoints missing x-required-permissions: {read_missing}'


def test_action_permissions_exist_in_some_role():
    perms = {a['permission'] for actions in ACTION_REGISTRY.values() for a in actions}
    assert perms <= set(ALL_PERMISSION_CODES)
    role_perms = set()
    for codes in ROLE_PRESETS.values():
        role_perms.update(c for c in codes if c != '*')
    missing = sorted(perms - role_perms)
    assert not missing, f'Action permissions not present in any concrete role: {missing}'
