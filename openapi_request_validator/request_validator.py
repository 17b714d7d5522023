from __future__ import annotations

import logging
import re
from collections.abc import Callable, Mapping
from copy import deepcopy
from dataclasses import dataclass, field
from typing import Any

from openapi_request_validator.compiler import CompiledSchema, SchemaCompiler
from openapi_request_validator.config import Settings, get_settings
from openapi_request_validator.errors import (
    ConfigurationError,
    ErrorTransformer,
    OpenAPIValidationError,
    SchemaViolation,
    ValidationResult,
    extended_error_mapper,
    to_openapi_validation_error,
)
from openapi_request_validator.media_type import get_schema_for_media_type
from openapi_request_validator.normalizer import lowercase_header_schema
from openapi_request_validator.parameters import (
    ParameterSpec,
    as_parameter_mapping,
    convert_parameters_to_json_schema,
)
from openapi_request_validator.resolver import RequestBodySchemaResolver
from openapi_request_validator.utils import lowercase_keys


LOCAL_DEFINITION_REGEX = re.compile(r"^#/([^/]+)/([^/]+)$")
MISSING_BODY_MESSAGE = "request.body was not present in the request.  Is a body-parser being used?"

# camelCase argument names accepted by ``from_args``.
ARGUMENT_NAMES = {
    "parameters": "parameters",
    "requestBody": "request_body",
    "schemas": "schemas",
    "componentSchemas": "component_schemas",
    "externalSchemas": "external_schemas",
    "customFormats": "custom_formats",
    "errorTransformer": "error_transformer",
    "logger": "logger",
    "loggingKey": "logging_key",
    "useDefaults": "use_defaults",
}


@dataclass(slots=True)
class OpenAPIRequest:
    body: Any = None
    headers: dict[str, Any] = field(default_factory=dict)
    params: dict[str, Any] = field(default_factory=dict)
    query: dict[str, Any] = field(default_factory=dict)


class OpenAPIRequestValidator:
    """Validates the parts of an HTTP request against one OpenAPI operation.

    All schemas are normalized and compiled once, at construction. ``validate``
    only runs the compiled validators, so one instance serves any number of
    requests.
    """

    def __init__(
        self,
        parameters: list[ParameterSpec | Mapping[str, Any]] | None = None,
        request_body: Mapping[str, Any] | None = None,
        schemas: list[dict[str, Any]] | Mapping[str, Any] | None = None,
        component_schemas: Mapping[str, Any] | None = None,
        external_schemas: Mapping[str, Any] | None = None,
        custom_formats: Mapping[str, Callable[[Any], bool]] | None = None,
        error_transformer: ErrorTransformer | None = None,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
        logging_key: str | None = None,
        use_defaults: bool | None = None,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or get_settings()
        key = settings.logging_key if logging_key is None else logging_key
        self.logging_key = f"{key}: " if key else ""
        self.logger = logger if logger is not None else logging.getLogger(__name__)
        self._error_mapper: Callable[[SchemaViolation], Any] = (
            extended_error_mapper(error_transformer)
            if callable(error_transformer)
            else to_openapi_validation_error
        )

        body_schema = None
        form_data_schema = None
        headers_schema = None
        path_schema = None
        query_schema = None
        is_body_required = False

        if parameters is not None:
            if not isinstance(parameters, (list, tuple)):
                raise ConfigurationError(f"{self.logging_key}parameters must be a list")
            groups = convert_parameters_to_json_schema(parameters)
            body_schema = groups.body
            form_data_schema = groups.form_data
            headers_schema = lowercase_header_schema(groups.headers)
            path_schema = groups.path
            query_schema = groups.query
            is_body_required = any(_is_required_body_parameter(parameter) for parameter in parameters)

        if request_body is not None:
            is_body_required = bool(request_body.get("required", False))

        if custom_formats and not all(callable(check) for check in custom_formats.values()):
            raise ConfigurationError(f"{self.logging_key}customFormats properties must be functions")
        compiler = SchemaCompiler(
            custom_formats=custom_formats,
            use_defaults=settings.use_defaults if use_defaults is None else use_defaults,
        )

        body_validation_schema = {"properties": {"body": body_schema}} if body_schema is not None else None
        if component_schemas:
            for schema_id, schema in component_schemas.items():
                compiler.add_schema(schema, f"#/components/schemas/{schema_id}")
        elif schemas is not None:
            if isinstance(schemas, list):
                self._register_schema_list(compiler, schemas, body_validation_schema)
            elif body_validation_schema is not None:
                body_validation_schema["definitions"] = schemas
                body_validation_schema["components"] = {"schemas": schemas}

        for schema_id, schema in (external_schemas or {}).items():
            compiler.add_schema(schema, schema_id)

        self._request_body_validators: dict[str, CompiledSchema] = {}
        if request_body is not None:
            resolver = RequestBodySchemaResolver(compiler.get_schema)
            for media_type, media_object in (request_body.get("content") or {}).items():
                content_schema = (media_object or {}).get("schema")
                resolved = resolver.resolve(deepcopy(content_schema) if content_schema is not None else {})
                document: dict[str, Any] = {"properties": {"body": resolved}}
                if isinstance(schemas, Mapping):
                    document["definitions"] = schemas
                    document["components"] = {"schemas": schemas}
                self._request_body_validators[media_type] = compiler.compile(document)

        self.body_schema = body_schema
        self.is_body_required = is_body_required
        self.request_body = request_body
        self._validate_body = compiler.compile(body_validation_schema) if body_validation_schema is not None else None
        self._validate_form_data = compiler.compile(form_data_schema) if form_data_schema else None
        self._validate_headers = compiler.compile(headers_schema) if headers_schema else None
        self._validate_path = compiler.compile(path_schema) if path_schema else None
        self._validate_query = compiler.compile(query_schema) if query_schema else None

    @classmethod
    def from_args(cls, args: Mapping[str, Any] | None, **overrides: Any) -> OpenAPIRequestValidator:
        """Build a validator from camelCase arguments (``requestBody``, ``componentSchemas``, ...)."""
        if args is None:
            raise ConfigurationError("missing args argument")
        kwargs = {ARGUMENT_NAMES[name]: value for name, value in args.items() if name in ARGUMENT_NAMES}
        kwargs.update(overrides)
        return cls(**kwargs)

    def _register_schema_list(
        self,
        compiler: SchemaCompiler,
        schemas: list[dict[str, Any]],
        body_validation_schema: dict[str, Any] | None,
    ) -> None:
        for schema in schemas:
            schema_id = schema.get("id") if isinstance(schema, Mapping) else None
            if not schema_id:
                self.logger.warning("%signoring schema without id property", self.logging_key)
                continue
            local_path = LOCAL_DEFINITION_REGEX.match(schema_id)
            if local_path and body_validation_schema is not None:
                section = body_validation_schema.setdefault(local_path.group(1), {})
                section[local_path.group(2)] = schema
            compiler.add_schema(schema, schema_id)

    def validate(self, request: Any) -> ValidationResult | None:
        errors: list[SchemaViolation] = []
        schema_error: OpenAPIValidationError | None = None
        media_type_error: OpenAPIValidationError | None = None

        body = _request_part(request, "body")
        headers = lowercase_keys(_request_part(request, "headers"))

        if self.body_schema is not None:
            if _has_body(body):
                errors.extend(_with_location("body", self._validate_body({"body": body})))
            elif self.is_body_required:
                schema_error = _missing_body_error(self.body_schema)

        if self.request_body is not None:
            content_type = headers.get("content-type")
            media_type = get_schema_for_media_type(
                content_type,
                self.request_body,
                self.logger,
                self.logging_key,
            )
            if media_type is None:
                if content_type:
                    media_type_error = OpenAPIValidationError(message=f"Unsupported Content-Type {content_type}")
                elif self.is_body_required:
                    errors.append(
                        SchemaViolation(
                            keyword="required",
                            data_path=".body",
                            message="media type is not specified",
                            location="body",
                        )
                    )
            elif _has_body(body):
                validate_body = self._request_body_validators[media_type]
                errors.extend(_with_location("body", validate_body({"body": body})))
            elif self.is_body_required:
                media_object = self.request_body["content"][media_type] or {}
                schema_error = _missing_body_error(media_object.get("schema"))

        if self._validate_form_data is not None and schema_error is None:
            errors.extend(_with_location("formData", self._validate_form_data(body)))

        if self._validate_path is not None:
            params = _as_object(_request_part(request, "params"))
            errors.extend(_with_location("path", self._validate_path(params)))

        if self._validate_headers is not None:
            errors.extend(_with_location("headers", self._validate_headers(headers)))

        if self._validate_query is not None:
            query = _as_object(_request_part(request, "query"))
            errors.extend(_with_location("query", self._validate_query(query)))

        if errors:
            return ValidationResult(status=400, errors=[self._error_mapper(error) for error in errors])
        if schema_error is not None:
            return ValidationResult(status=400, errors=[schema_error])
        if media_type_error is not None:
            return ValidationResult(status=415, errors=[media_type_error])
        return None


def _is_required_body_parameter(parameter: ParameterSpec | Mapping[str, Any]) -> bool:
    parameter = as_parameter_mapping(parameter)
    return parameter.get("in") in ("body", "formData") and bool(parameter.get("required"))


def _request_part(request: Any, name: str) -> Any:
    if isinstance(request, Mapping):
        return request.get(name)
    return getattr(request, name, None)


def _has_body(body: Any) -> bool:
    return body is not None and body != "" and body != b""


def _as_object(value: Any) -> Any:
    if value is None:
        return {}
    if isinstance(value, Mapping) and not isinstance(value, dict):
        return dict(value)
    return value


def _missing_body_error(schema: Any) -> OpenAPIValidationError:
    return OpenAPIValidationError(location="body", message=MISSING_BODY_MESSAGE, schema=schema)


def _with_location(location: str, violations: list[SchemaViolation]) -> list[SchemaViolation]:
    for violation in violations:
        violation.location = location
    return violations
