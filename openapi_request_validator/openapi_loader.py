from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any

import yaml
from openapi_spec_validator import validate

from openapi_request_validator.config import Settings
from openapi_request_validator.request_validator import OpenAPIRequestValidator
from openapi_request_validator.utils import HTTP_METHODS, resolve_reference


@dataclass(slots=True)
class OperationMeta:
    path: str
    method: str
    operation_id: str
    summary: str
    parameters: list[dict[str, Any]] = field(default_factory=list)
    request_body: dict[str, Any] | None = None


class OpenAPILoader:
    def load(self, raw_payload: str | bytes | dict[str, Any]) -> tuple[dict[str, Any], list[OperationMeta]]:
        spec_dict = self._parse_payload(raw_payload)
        self._validate_spec(spec_dict)
        operations = self._extract_operations(spec_dict)
        return spec_dict, operations

    def _parse_payload(self, raw_payload: str | bytes | dict[str, Any]) -> dict[str, Any]:
        if isinstance(raw_payload, dict):
            return raw_payload

        text = raw_payload.decode("utf-8") if isinstance(raw_payload, bytes) else raw_payload
        stripped = text.strip()
        if not stripped:
            raise ValueError("OpenAPI payload is empty.")

        json_error: Exception | None = None
        try:
            parsed = json.loads(stripped)
            if isinstance(parsed, dict):
                return parsed
        except json.JSONDecodeError as exc:
            json_error = exc

        try:
            parsed_yaml = yaml.safe_load(stripped)
        except yaml.YAMLError as exc:
            if json_error is not None:
                raise ValueError("Payload is neither valid JSON nor valid YAML.") from exc
            raise

        if not isinstance(parsed_yaml, dict):
            raise ValueError("Parsed payload is not an OpenAPI object.")
        return parsed_yaml

    @staticmethod
    def _validate_spec(spec_dict: dict[str, Any]) -> None:
        validate(spec_dict)

    def _extract_operations(self, spec_dict: dict[str, Any]) -> list[OperationMeta]:
        operations: list[OperationMeta] = []
        paths = spec_dict.get("paths", {})
        if not isinstance(paths, dict):
            raise ValueError("OpenAPI spec has invalid 'paths' section.")

        for path, path_item in paths.items():
            path_item = resolve_reference(path_item, spec_dict)
            if not isinstance(path_item, dict):
                continue
            shared_parameters = path_item.get("parameters", [])
            for method in HTTP_METHODS:
                operation = path_item.get(method)
                if not isinstance(operation, dict):
                    continue

                request_body = resolve_reference(operation.get("requestBody"), spec_dict)
                operation_id = operation.get("operationId") or self._build_operation_id(path, method)
                operations.append(
                    OperationMeta(
                        path=path,
                        method=method,
                        operation_id=operation_id,
                        summary=str(operation.get("summary", "")),
                        parameters=self._merge_parameters(
                            shared_parameters,
                            operation.get("parameters", []),
                            spec_dict,
                        ),
                        request_body=request_body if isinstance(request_body, dict) else None,
                    )
                )

        return operations

    @staticmethod
    def _merge_parameters(
        shared: list[Any],
        own: list[Any],
        spec_dict: dict[str, Any],
    ) -> list[dict[str, Any]]:
        # Operation-level parameters override path-level ones with the same name and location.
        merged: dict[tuple[str, str], dict[str, Any]] = {}
        for raw in [*shared, *own]:
            parameter = resolve_reference(raw, spec_dict)
            if not isinstance(parameter, dict) or "name" not in parameter:
                continue
            merged[(parameter["name"], parameter.get("in", ""))] = parameter
        return list(merged.values())

    @staticmethod
    def _build_operation_id(path: str, method: str) -> str:
        normalized = re.sub(r"[^a-zA-Z0-9]+", "_", path).strip("_")
        return f"{method}_{normalized or 'root'}"


def build_request_validator(
    operation: OperationMeta,
    spec_dict: dict[str, Any],
    settings: Settings | None = None,
    **kwargs: Any,
) -> OpenAPIRequestValidator:
    if "swagger" in spec_dict:
        kwargs.setdefault("schemas", spec_dict.get("definitions") or {})
    else:
        components = spec_dict.get("components") or {}
        kwargs.setdefault("component_schemas", components.get("schemas") or {})
    kwargs.setdefault("logging_key", operation.operation_id)

    return OpenAPIRequestValidator(
        parameters=operation.parameters,
        request_body=operation.request_body,
        settings=settings,
        **kwargs,
    )
