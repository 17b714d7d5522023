from __future__ import annotations

from collections.abc import Iterable, Mapping
from copy import deepcopy
from dataclasses import dataclass
from typing import Any


PARAMETER_LOCATIONS = ("path", "query", "header", "body", "formData")

VALIDATION_KEYWORDS = frozenset(
    (
        "additionalItems",
        "default",
        "enum",
        "exclusiveMaximum",
        "exclusiveMinimum",
        "format",
        "items",
        "maxItems",
        "maxLength",
        "maximum",
        "minItems",
        "minLength",
        "minimum",
        "multipleOf",
        "pattern",
        "title",
        "type",
        "uniqueItems",
    )
)


@dataclass(slots=True, frozen=True)
class ParameterSpec:
    name: str
    location: str
    required: bool = False
    schema: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        parameter: dict[str, Any] = {
            "name": self.name,
            "in": self.location,
            "required": self.required,
        }
        if self.schema is not None:
            parameter["schema"] = self.schema
        return parameter


@dataclass(slots=True)
class ParameterSchemas:
    body: dict[str, Any] | None = None
    form_data: dict[str, Any] | None = None
    headers: dict[str, Any] | None = None
    path: dict[str, Any] | None = None
    query: dict[str, Any] | None = None


def as_parameter_mapping(parameter: ParameterSpec | Mapping[str, Any]) -> Mapping[str, Any]:
    if isinstance(parameter, ParameterSpec):
        return parameter.to_dict()
    return parameter


def convert_parameters_to_json_schema(
    parameters: Iterable[ParameterSpec | Mapping[str, Any]],
) -> ParameterSchemas:
    params = [as_parameter_mapping(parameter) for parameter in parameters]
    return ParameterSchemas(
        body=_get_body_schema(params),
        form_data=_get_schema(params, "formData"),
        headers=_get_schema(params, "header"),
        path=_get_schema(params, "path"),
        query=_get_schema(params, "query"),
    )


def _get_body_schema(parameters: list[Mapping[str, Any]]) -> dict[str, Any] | None:
    for parameter in parameters:
        if parameter.get("in") == "body":
            return parameter.get("schema")
    return None


def _get_schema(parameters: list[Mapping[str, Any]], location: str) -> dict[str, Any] | None:
    matching = [parameter for parameter in parameters if parameter.get("in") == location]
    if not matching:
        return None

    properties = {parameter["name"]: _parameter_schema(parameter) for parameter in matching}
    required = [parameter["name"] for parameter in matching if parameter.get("required")]
    return {"properties": properties, "required": required}


def _parameter_schema(parameter: Mapping[str, Any]) -> dict[str, Any]:
    schema = {
        keyword: deepcopy(value)
        for keyword, value in parameter.items()
        if keyword in VALIDATION_KEYWORDS or keyword.startswith("x-")
    }

    embedded = parameter.get("schema")
    if embedded is None and isinstance(parameter.get("content"), Mapping):
        # OpenAPI v3 parameters may describe their value through a single media type.
        for media_object in parameter["content"].values():
            if isinstance(media_object, Mapping):
                embedded = media_object.get("schema")
            break
    if isinstance(embedded, Mapping):
        schema.update(deepcopy(dict(embedded)))

    schema.pop("example", None)
    schema.pop("examples", None)
    if schema.get("type") == "file":
        del schema["type"]

    if parameter.get("nullable") or parameter.get("x-nullable"):
        schema.pop("x-nullable", None)
        return {"anyOf": [schema, {"type": "null"}]}
    return schema
