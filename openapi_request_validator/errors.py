from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from jsonschema.exceptions import ValidationError as JsonSchemaValidationError


_BODY_PATH_PREFIX = re.compile(r"^instance\.body\.?")
_INSTANCE_PATH_PREFIX = re.compile(r"^instance\.?")


class ConfigurationError(ValueError):
    pass


class SchemaReferenceError(ConfigurationError):
    def __init__(self, ref: str, message: str | None = None) -> None:
        self.ref = ref
        super().__init__(message or f"can't resolve reference {ref}")


@dataclass(slots=True)
class SchemaViolation:
    """One keyword failure reported by the schema engine."""

    keyword: str
    data_path: str
    message: str
    params: dict[str, Any] = field(default_factory=dict)
    location: str | None = None
    cause: JsonSchemaValidationError | None = None


@dataclass(slots=True)
class OpenAPIValidationError:
    message: str
    path: str | None = None
    error_code: str | None = None
    location: str | None = None
    schema: Any = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        if self.path is not None:
            payload["path"] = self.path
        if self.error_code is not None:
            payload["errorCode"] = self.error_code
        payload["message"] = self.message
        if self.location is not None:
            payload["location"] = self.location
        if self.schema is not None:
            payload["schema"] = self.schema
        return payload


@dataclass(slots=True)
class ValidationResult:
    status: int
    errors: list[Any]

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "errors": [
                error.to_dict() if isinstance(error, OpenAPIValidationError) else error
                for error in self.errors
            ],
        }


ErrorTransformer = Callable[[OpenAPIValidationError, SchemaViolation], Any]
ErrorMapper = Callable[[SchemaViolation], Any]


def to_openapi_validation_error(violation: SchemaViolation) -> OpenAPIValidationError:
    error = OpenAPIValidationError(
        message=violation.message,
        error_code=f"{violation.keyword}.openapi.validation",
        location=violation.location,
    )
    path = "instance" + violation.data_path

    if violation.keyword == "$ref":
        error.error_code = None
        error.schema = {"$ref": violation.params.get("ref")}

    missing_property = violation.params.get("missingProperty")
    if missing_property:
        path += f".{missing_property}"

    prefix = _BODY_PATH_PREFIX if violation.location == "body" else _INSTANCE_PATH_PREFIX
    error.path = prefix.sub("", path, count=1) or None
    return _strip_body_info(error)


def _strip_body_info(error: OpenAPIValidationError) -> OpenAPIValidationError:
    if error.location != "body":
        return error
    if error.path is not None:
        error.path = re.sub(r"^body\.", "", error.path, count=1)
    error.message = re.sub(r"^instance\.body\.", "instance.", error.message, count=1)
    error.message = re.sub(r"^instance\.body ", "instance ", error.message, count=1)
    return error


def extended_error_mapper(transformer: ErrorTransformer) -> ErrorMapper:
    def mapper(violation: SchemaViolation) -> Any:
        return transformer(to_openapi_validation_error(violation), violation)

    return mapper
