"""Reusable test helpers for lifecycle-based routes.

Patterns unified:
 - Auth header creation using direct JWT claims (bypassing /iam/auth/login).
 - Creation + transition sequencing with assertion helpers.
"""
from __future__ import annotations
from typing import Dict, Iterable, List
from flask_jwt_extended import create_access_token


def jwt_headers(user_id: int, perms: List[str], company_ids: Iterable[int] = (1,), role_names: Iterable[str] = (),
                platform_admin: bool = False):
    token = create_access_token(identity=str(user_id), additional_claims={
        'perms': list(perms),
        'roles': [],
        'role_names': list(role_names),
        'company_ids': list(company_ids),
        'platform_admin': platform_admin,
    })
    return {'Authorization': f'Bearer {token}'}


def assert_transition(client, url: str, headers: Dict[str, str], expected_status: int, payload: dict = None,
                      expected_body_key: str = 'status', expected_body_value: str = None):
    resp = client.post(url, json=payload or {}, headers=headers)
    assert resp.status_code == expected_status, resp.get_json()
    if expected_status < 400 and expected_body_value is not None:
        assert resp.get_json()[expected_body_key] == expected_body_value
    return resp


def create_resource_and_assert(client, url: str, payload: dict, headers: Dict[str, str],
                               expected_status_field: str = 'status', expected_initial_status: str = None):
    resp = client.post(url, json=payload, headers=headers)
    assert resp.status_code == 201, resp.get_json()
    body = resp.get_json()
    if expected_initial_status:
        assert body[expected_status_field] == expected_initial_status
    return body


__all__ = ['jwt_headers', 'assert_transition', 'create_resource_and_assert']
