"""Path fragments shared by every entity: list, single, create and actions."""
from typing import Any, Dict, List
from .constants import ACTION_REGISTRY, CREATE_PERMISSIONS
from .helpers import caching_headers, path_param


def _list_ops(schema_name: str, list_path: str) -> Dict[str, Any]:
    label = list_path.strip("/").split("/")[-1].replace("-", " ")
    return {
        "get": {
            "summary": f"List {label}",
            "parameters": [
                {"$ref": "#/components/parameters/LimitParam"},
                {"$ref": "#/components/parameters/OffsetParam"},
                {"$ref": f"#/components/parameters/{schema_name}Sort"},
            ],
            "responses": {
                "200": {
                    "description": "OK",
                    "headers": caching_headers(),
                    "content": {
                        "application/json": {
                            "schema": {
                                "type": "object",
                                "properties": {
                                    "data": {"type": "array", "items": {"$ref": f"#/components/schemas/{schema_name}"}},
                                    "pagination": {"$ref": "#/components/schemas/Pagination"},
                                },
                            }
                        }
                    },
                },
                "304": {"description": "Not Modified"},
                "400": {"$ref": "#/components/responses/BadRequest"},
            },
        },
        "head": {
            "summary": f"{schema_name} list validators",
            "responses": {
                "200": {"description": "Headers only", "headers": caching_headers()},
                "304": {"description": "Not Modified"},
            },
        },
    }


def build_service_paths(schema_name: str, list_path: str, id_param: str, read_perm: str) -> Dict[str, Any]:
    paths: Dict[str, Any] = {}
    single_path = f"{list_path}/{{{id_param}}}"

    paths[list_path] = _list_ops(schema_name, list_path)
    create_perm = CREATE_PERMISSIONS.get(schema_name)
    if create_perm:
        paths[list_path]["post"] = {
            "summary": f"Create {schema_name}",
            "responses": {
                "201": {"description": "Created",
                        "content": {"application/json": {"schema": {"$ref": f"#/components/schemas/{schema_name}"}}}},
                "400": {"$ref": "#/components/responses/BadRequest"},
            },
            "x-required-permissions": [create_perm],
        }

    paths[single_path] = {
        "get": {
            "summary": f"Get {schema_name}",
            "parameters": [path_param(id_param)],
            "responses": {
                "200": {
                    "description": "OK",
                    "headers": caching_headers(),
                    "content": {"application/json": {"schema": {"$ref": f"#/components/schemas/{schema_name}"}}},
                },
                "304": {"description": "Not Modified"},
                "404": {"$ref": "#/components/responses/NotFound"},
            },
        },
        "head": {
            "summary": f"{schema_name} validators",
            "parameters": [path_param(id_param)],
            "responses": {
                "200": {"description": "Headers only", "headers": caching_headers()},
                "304": {"description": "Not Modified"},
                "404": {"$ref": "#/components/responses/NotFound"},
            },
        },
    }
    for meth in ("get", "head"):
        paths[list_path][meth]["x-required-permissions"] = [read_perm]
        paths[single_path][meth]["x-required-permissions"] = [read_perm]

    actions: List[Dict[str, str]] = ACTION_REGISTRY.get(schema_name, [])
    for spec in actions:
        paths[f"{single_path}/{spec['action']}"] = {
            "post": {
                "summary": spec["summary"],
                "parameters": [path_param(id_param)],
                "responses": {
                    "200": {"description": "OK"},
                    "201": {"description": "Created"},
                    "400": {"$ref": "#/components/responses/BadRequest"},
                    "403": {"$ref": "#/components/responses/Forbidden"},
                    "404": {"$ref": "#/components/responses/NotFound"},
                },
                "x-required-permissions": [spec["permission"]],
            }
        }
    return paths


def build_list_only_paths(schema_name: str, list_path: str, read_perm: str) -> Dict[str, Any]:
    ops = _list_ops(schema_name, list_path)
    for od in ops.values():
        od["x-required-permissions"] = [read_perm]
    return {list_path: ops}


__all__ = ["build_service_paths", "build_list_only_paths"]
