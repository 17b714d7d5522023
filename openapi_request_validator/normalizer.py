"""Rewrites OpenAPI-flavoured schemas into plain JSON Schema (draft 7)."""

from __future__ import annotations

from copy import deepcopy
from typing import Any


def transform_openapi_definitions(schema: Any) -> Any:
    """Return a deep copy of ``schema`` with ``nullable`` expressed in JSON Schema.

    ``{"type": "string", "nullable": true}`` becomes
    ``{"type": ["string", "null"]}``. Nullable enums cannot list ``null`` under
    a single type, so they turn into
    ``{"oneOf": [{"type": "null"}, {"type": ..., "enum": [...]}]}``.
    """
    if not isinstance(schema, (dict, list)):
        return schema
    transformed = deepcopy(schema)
    _transform_node(transformed)
    return transformed


def _transform_node(node: Any) -> None:
    if isinstance(node, list):
        for item in node:
            _transform_node(item)
        return
    if not isinstance(node, dict):
        return

    if node.get("type") and node.get("nullable") is True:
        if node.get("enum") is not None:
            node["oneOf"] = [
                {"type": "null"},
                {"type": node.pop("type"), "enum": node.pop("enum")},
            ]
        elif isinstance(node["type"], list):
            if "null" not in node["type"]:
                node["type"] = [*node["type"], "null"]
        else:
            node["type"] = [node["type"], "null"]
        del node["nullable"]

    for value in node.values():
        _transform_node(value)


def sanitize_readonly_required(schema: Any) -> Any:
    """Drop readOnly properties from ``required``. Mutates ``schema``."""
    if not isinstance(schema, dict):
        return schema
    properties = schema.get("properties")
    required = schema.get("required")
    if not isinstance(properties, dict) or not isinstance(required, list):
        return schema

    read_only = {
        name
        for name, subschema in properties.items()
        if isinstance(subschema, dict) and subschema.get("readOnly") is True
    }
    if read_only:
        schema["required"] = [name for name in required if name not in read_only]
    return schema


def lowercase_header_schema(schema: dict[str, Any] | None) -> dict[str, Any] | None:
    # Header names are case-insensitive; requests are matched against lowercased keys.
    if not schema:
        return schema
    properties = schema.get("properties") or {}
    schema["properties"] = {name.lower(): subschema for name, subschema in properties.items()}
    if schema.get("required"):
        schema["required"] = [name.lower() for name in schema["required"]]
    return schema
