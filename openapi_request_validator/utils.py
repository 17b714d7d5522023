import re
from collections.abc import Iterable, Mapping
from copy import deepcopy
from typing import Any


HTTP_METHODS = (
    "get",
    "post",
    "put",
    "patch",
    "delete",
    "options",
    "head",
)

_IDENTIFIER = re.compile(r"^[A-Za-z_$][A-Za-z0-9_$]*$")


def lowercase_keys(mapping: Mapping[str, Any] | None) -> dict[str, Any]:
    if not mapping:
        return {}
    return {str(key).lower(): value for key, value in mapping.items()}


def format_data_path(path: Iterable[Any]) -> str:
    """Render an instance path in JavaScript property notation.

    ``["body", "items", 0, "name"]`` becomes ``.body.items[0].name`` and keys
    that are not identifiers are quoted, e.g. ``['x-api-key']``.
    """
    parts: list[str] = []
    for part in path:
        if isinstance(part, int) and not isinstance(part, bool):
            parts.append(f"[{part}]")
        elif _IDENTIFIER.match(str(part)):
            parts.append(f".{part}")
        else:
            escaped = str(part).replace("\\", "\\\\").replace("'", "\\'")
            parts.append(f"['{escaped}']")
    return "".join(parts)


def resolve_json_pointer(document: dict[str, Any], pointer: str) -> Any | None:
    if not pointer.startswith("#/"):
        return None

    current: Any = document
    parts = pointer[2:].split("/")
    for raw_part in parts:
        part = raw_part.replace("~1", "/").replace("~0", "~")
        if not isinstance(current, dict) or part not in current:
            return None
        current = current[part]
    return current


def set_json_pointer(document: dict[str, Any], pointer: str, value: Any) -> bool:
    """Place ``value`` at a local ``#/a/b/c`` pointer, creating parents.

    Existing entries are kept; returns whether the value was placed.
    """
    if not pointer.startswith("#/"):
        return False

    parts = [raw.replace("~1", "/").replace("~0", "~") for raw in pointer[2:].split("/")]
    current = document
    for part in parts[:-1]:
        child = current.setdefault(part, {})
        if not isinstance(child, dict):
            return False
        current = child
    if parts[-1] in current:
        return False
    current[parts[-1]] = value
    return True


def resolve_reference(node: Any, root_document: dict[str, Any]) -> Any:
    """Replace a ``{"$ref": "#/..."}`` object by a copy of its target.

    Only the node itself is dereferenced; nested references are kept.
    """
    seen_refs: set[str] = set()
    while isinstance(node, dict) and isinstance(node.get("$ref"), str):
        ref = node["$ref"]
        if ref in seen_refs:
            break
        seen_refs.add(ref)
        target = resolve_json_pointer(root_document, ref)
        if target is None:
            break
        node = deepcopy(target)
    return node
