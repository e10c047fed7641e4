"""Deterministic OpenAPI spec builder.

Scope:
- Auth, view-as and invite endpoints
- For each tracked entity: list + single GET & HEAD with caching headers, create and action POSTs
- Reusable params: limit, offset, per-entity sort
- x-required-permissions on every protected operation, x-transitions on stateful schemas
"""
import re
from typing import Any, Dict
from .config.settings import DEFAULT_LIMIT
from .models.asset import Asset
from .models.client_exchange import ClientExchangeOperation
from .openapi_parts.constants import ENTITIES, LIST_ONLY, EXTRA_OPERATIONS, SORT_DETAILS
from .openapi_parts.helpers import schema_minimal, caching_headers, path_param
from .openapi_parts.paths import build_service_paths, build_list_only_paths
from .services import auto as auto_svc
from .services import finance_engine

__all__ = ["build_openapi_spec"]

_PATH_PARAM = re.compile(r"{(\w+)}")


def _transitions() -> Dict[str, list]:
    return {
        "AutoDeal": auto_svc.DEAL_FSM.states(),
        "FinanceDeal": finance_engine.DEAL_FSM.states(),
        "ClientExchangeOperation": list(ClientExchangeOperation.ALL_STATUSES),
        "Asset": list(Asset.ALL_STATUSES),
        "Cashbox": ["ACTIVE", "ARCHIVED"],
    }


def build_openapi_spec() -> Dict[str, Any]:
    names = [e[0] for e in ENTITIES] + [e[0] for e in LIST_ONLY]
    schemas = {n: schema_minimal(n) for n in names}
    for name, states in _transitions().items():
        schemas[name]["x-transitions"] = states

    components: Dict[str, Any] = {
        "schemas": schemas
        | {
            "Pagination": {
                "type": "object",
                "properties": {
                    "total": {"type": "integer"},
                    "limit": {"type": "integer"},
                    "offset": {"type": "integer"},
                    "returned": {"type": "integer"},
                },
                "required": ["total", "limit", "offset", "returned"],
            },
            "Error": {"type": "object", "properties": {"error": {"type": "string"}}, "required": ["error"]},
        },
        "responses": {
            "NotFound": {"description": "Not Found"},
            "BadRequest": {"description": "Bad Request"},
            "Forbidden": {"description": "Forbidden or read-only view-as session"},
        },
        "securitySchemes": {"BearerAuth": {"type": "http", "scheme": "bearer", "bearerFormat": "JWT"}},
        "parameters": {
            "LimitParam": {"name": "limit", "in": "query", "schema": {"type": "integer", "default": DEFAULT_LIMIT}},
            "OffsetParam": {"name": "offset", "in": "query", "schema": {"type": "integer", "default": 0}},
        },
    }
    params = components["parameters"]
    for name in names:
        params[f"{name}Sort"] = {
            "name": "sort",
            "in": "query",
            "schema": {"type": "string"},
            "description": SORT_DETAILS.get(name, "Sort fields. Prefix - for desc"),
        }

    paths: Dict[str, Any] = {}
    for schema_name, list_path, id_param, read_perm in ENTITIES:
        paths.update(build_service_paths(schema_name, list_path, id_param, read_perm))
    for schema_name, list_path, read_perm in LIST_ONLY:
        for k, v in build_list_only_paths(schema_name, list_path, read_perm).items():
            paths.setdefault(k, {}).update(v)

    for path, method, summary, perm in EXTRA_OPERATIONS:
        op: Dict[str, Any] = {"summary": summary, "responses": {"200": {"description": "OK"}}}
        pnames = _PATH_PARAM.findall(path)
        if pnames:
            op["parameters"] = [path_param(p) for p in pnames]
        if perm:
            op["x-required-permissions"] = [perm]
        if method == "get":
            op["responses"]["200"]["headers"] = caching_headers()
        paths.setdefault(path, {})[method] = op
    paths["/iam/auth/login"]["post"]["security"] = []

    tag_desc: Dict[str, str] = {}
    for path, ops in paths.items():
        tag = path.split("/")[1].capitalize()
        for method, od in ops.items():
            rid = path.strip("/").replace("/", "_").replace("-", "_").replace("{", "").replace("}", "")
            od["operationId"] = f"auto_{method}_{rid}"
            od["tags"] = [tag]
        tag_desc[tag] = f"{tag} domain endpoints"

    return {
        "openapi": "3.0.3",
        "info": {"title": "Mutka ERP API", "version": "0.1.0"},
        "paths": paths,
        "components": components,
        "security": [{"BearerAuth": []}],
        "tags": [{"name": n, "description": d} for n, d in sorted(tag_desc.items())],
    }
