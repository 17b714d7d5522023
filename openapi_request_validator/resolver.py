from __future__ import annotations

from collections.abc import Callable
from copy import deepcopy
from typing import Any

from openapi_request_validator.normalizer import sanitize_readonly_required


COMPOSITION_KEYWORDS = ("allOf", "oneOf", "anyOf")

SchemaLookup = Callable[[str], "dict[str, Any] | None"]


class RequestBodySchemaResolver:
    """Inlines locally registered ``$ref`` targets into a request body schema.

    Each node is handled by the first matching shape: ``properties``,
    ``$ref``, ``items``, then ``allOf``/``oneOf``/``anyOf``. Unknown references
    stay as ``$ref`` and are left to the schema registry. The schema passed to
    :meth:`resolve` must be owned by the caller, it is rewritten in place.
    """

    def __init__(self, lookup: SchemaLookup) -> None:
        self._lookup = lookup

    def resolve(self, schema: Any) -> Any:
        return self._resolve(schema, frozenset())

    def _resolve(self, node: Any, expanding: frozenset[str]) -> Any:
        if not isinstance(node, dict):
            return node
        node = sanitize_readonly_required(node)

        if "properties" in node:
            return self._resolve_properties(node, expanding)
        if "$ref" in node:
            return self._resolve_reference(node, expanding)
        if "items" in node:
            return self._resolve_items(node, expanding)
        for keyword in COMPOSITION_KEYWORDS:
            if keyword in node:
                return self._resolve_composition(node, keyword, expanding)
        return node

    def _resolve_properties(self, node: dict[str, Any], expanding: frozenset[str]) -> dict[str, Any]:
        properties = node["properties"]
        if isinstance(properties, dict):
            for name, subschema in properties.items():
                properties[name] = self._resolve(subschema, expanding)
        return node

    def _resolve_reference(self, node: dict[str, Any], expanding: frozenset[str]) -> Any:
        ref = node["$ref"]
        if not isinstance(ref, str) or ref in expanding:
            # Recursive schemas keep their reference; the registry resolves it at validation time.
            return node
        target = self._lookup(ref)
        if target is None:
            return node
        return self._resolve(deepcopy(target), expanding | {ref})

    def _resolve_items(self, node: dict[str, Any], expanding: frozenset[str]) -> dict[str, Any]:
        items = node["items"]
        if isinstance(items, list):
            node["items"] = [self._resolve(item, expanding) for item in items]
        else:
            node["items"] = self._resolve(items, expanding)
        return node

    def _resolve_composition(
        self,
        node: dict[str, Any],
        keyword: str,
        expanding: frozenset[str],
    ) -> dict[str, Any]:
        branches = node[keyword]
        if isinstance(branches, list):
            node[keyword] = [self._resolve(branch, expanding) for branch in branches]
        return node
