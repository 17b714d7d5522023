from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator, Mapping
from copy import deepcopy
from dataclasses import dataclass
from typing import Any

from jsonschema import Draft7Validator, FormatChecker, validators
from jsonschema.exceptions import ValidationError as JsonSchemaValidationError
from jsonschema.protocols import Validator
from referencing import Registry, Resource
from referencing.exceptions import Unresolvable
from referencing.jsonschema import DRAFT7

from openapi_request_validator.errors import ConfigurationError, SchemaReferenceError, SchemaViolation
from openapi_request_validator.normalizer import transform_openapi_definitions
from openapi_request_validator.utils import format_data_path, set_json_pointer


logger = logging.getLogger(__name__)

# Keywords whose values are data, not subschemas.
_DATA_KEYWORDS = frozenset(("const", "default", "enum", "example", "examples"))
_NAMED_SCHEMA_KEYWORDS = frozenset(("definitions", "dependencies", "patternProperties", "properties"))


def extend_with_default(validator_class: type[Validator]) -> type[Validator]:
    """Fill in ``default`` values of declared properties while validating.

    Defaults under ``allOf`` and plain subschemas are applied. Branches of
    ``anyOf``, ``oneOf`` and ``not`` are evaluated against a copy of the
    instance and leave the caller's data untouched.
    """
    validate_properties = validator_class.VALIDATORS["properties"]

    def set_defaults(validator, properties, instance, schema):
        if validator.is_type(instance, "object"):
            for name, subschema in properties.items():
                if isinstance(subschema, dict) and "default" in subschema and name not in instance:
                    instance[name] = deepcopy(subschema["default"])
        yield from validate_properties(validator, properties, instance, schema)

    return validators.extend(
        validator_class,
        {
            "anyOf": _any_of,
            "not": _not,
            "oneOf": _one_of,
            "properties": set_defaults,
        },
    )


def _branch_errors(validator, instance, subschema, index) -> list[JsonSchemaValidationError]:
    return list(validator.descend(deepcopy(instance), subschema, schema_path=index))


def _branch_is_valid(validator, instance, subschema) -> bool:
    return validator.evolve(schema=subschema).is_valid(deepcopy(instance))


def _any_of(validator, any_of, instance, schema):
    all_errors: list[JsonSchemaValidationError] = []
    for index, subschema in enumerate(any_of):
        errors = _branch_errors(validator, instance, subschema, index)
        if not errors:
            return
        all_errors.extend(errors)
    yield JsonSchemaValidationError(
        f"{instance!r} is not valid under any of the given schemas",
        context=all_errors,
    )


def _one_of(validator, one_of, instance, schema):
    subschemas = enumerate(one_of)
    all_errors: list[JsonSchemaValidationError] = []
    for index, subschema in subschemas:
        errors = _branch_errors(validator, instance, subschema, index)
        if not errors:
            first_valid = subschema
            break
        all_errors.extend(errors)
    else:
        yield JsonSchemaValidationError(
            f"{instance!r} is not valid under any of the given schemas",
            context=all_errors,
        )
        return

    more_valid = [each for _, each in subschemas if _branch_is_valid(validator, instance, each)]
    if more_valid:
        more_valid.append(first_valid)
        reprs = ", ".join(repr(each) for each in more_valid)
        yield JsonSchemaValidationError(f"{instance!r} is valid under each of {reprs}")


def _not(validator, not_schema, instance, schema):
    if _branch_is_valid(validator, instance, not_schema):
        yield JsonSchemaValidationError(f"{instance!r} should not be valid under {not_schema!r}")


DefaultingDraft7Validator = extend_with_default(Draft7Validator)


@dataclass(slots=True)
class CompiledSchema:
    schema: dict[str, Any]
    validator: Validator

    def __call__(self, instance: Any) -> list[SchemaViolation]:
        return to_violations(self.validator.iter_errors(instance))

    def validate(self, instance: Any) -> bool:
        return not self(instance)


def to_violations(errors: Iterable[JsonSchemaValidationError]) -> list[SchemaViolation]:
    violations: list[SchemaViolation] = []
    # jsonschema reports each missing property of one ``required`` keyword separately, in order.
    reported_missing: dict[tuple[Any, ...], int] = {}

    for error in errors:
        keyword = str(error.validator)
        params: dict[str, Any] = {}
        if keyword == "required" and isinstance(error.instance, dict):
            missing = [name for name in error.validator_value if name not in error.instance]
            key = (tuple(error.absolute_path), tuple(error.absolute_schema_path))
            position = reported_missing.get(key, 0)
            reported_missing[key] = position + 1
            if position < len(missing):
                params["missingProperty"] = missing[position]
        elif keyword == "$ref":
            params["ref"] = error.validator_value

        violations.append(
            SchemaViolation(
                keyword=keyword,
                data_path=format_data_path(error.absolute_path),
                message=error.message,
                params=params,
                cause=error,
            )
        )
    return violations


class SchemaCompiler:
    """Compiles schemas against a registry owned by one validator instance.

    References of the form ``#/<section>/<name>`` are embedded into every
    compiled document; any other id is registered as a standalone resource.
    Registered schemas are insert-once. Every reference reachable from a
    compiled document must resolve, otherwise :class:`SchemaReferenceError`
    is raised.
    """

    def __init__(
        self,
        custom_formats: Mapping[str, Callable[[Any], bool]] | None = None,
        use_defaults: bool = True,
    ) -> None:
        self._schemas: dict[str, Any] = {}
        self._local_refs: list[str] = []
        self._registry: Registry = Registry()
        self._format_checker = FormatChecker()
        self._validator_cls = DefaultingDraft7Validator if use_defaults else Draft7Validator
        for name, check in (custom_formats or {}).items():
            self.add_format(name, check)

    def add_format(self, name: str, check: Callable[[Any], bool]) -> None:
        if not callable(check):
            raise ConfigurationError(f"format {name!r} must be a function")
        self._format_checker.checks(name)(check)

    def add_schema(self, schema: Any, ref: str) -> None:
        if ref in self._schemas:
            raise ConfigurationError(f'schema with key or id "{ref}" already exists')
        self._schemas[ref] = schema
        if ref.startswith("#/"):
            self._local_refs.append(ref)
        else:
            resource = Resource.from_contents(
                transform_openapi_definitions(schema),
                default_specification=DRAFT7,
            )
            self._registry = self._registry.with_resource(ref, resource)
        logger.debug("Registered schema %s", ref)

    def get_schema(self, ref: str) -> Any | None:
        return self._schemas.get(ref)

    def compile(self, schema: dict[str, Any]) -> CompiledSchema:
        document = deepcopy(schema)
        for ref in self._local_refs:
            set_json_pointer(document, ref, deepcopy(self._schemas[ref]))
        document = transform_openapi_definitions(document)

        self._check_references(document)
        validator = self._validator_cls(
            document,
            registry=self._registry,
            format_checker=self._format_checker,
        )
        return CompiledSchema(schema=document, validator=validator)

    def _check_references(self, document: dict[str, Any]) -> None:
        pending = [(document, self._registry.resolver_with_root(DRAFT7.create_resource(document)))]
        visited: set[int] = set()
        while pending:
            node, resolver = pending.pop()
            if id(node) in visited:
                continue
            visited.add(id(node))
            for ref in _iter_references(node):
                try:
                    resolved = resolver.lookup(ref)
                except Unresolvable as exc:
                    raise SchemaReferenceError(ref) from exc
                pending.append((resolved.contents, resolved.resolver))


def _iter_references(node: Any, names: bool = False) -> Iterator[str]:
    if isinstance(node, list):
        for item in node:
            yield from _iter_references(item)
        return
    if not isinstance(node, dict):
        return
    if names:
        # Keys of ``properties``-like maps are property names, every value is a schema.
        for value in node.values():
            yield from _iter_references(value)
        return

    ref = node.get("$ref")
    if isinstance(ref, str):
        yield ref
    for keyword, value in node.items():
        if keyword in _DATA_KEYWORDS:
            continue
        yield from _iter_references(value, names=keyword in _NAMED_SCHEMA_KEYWORDS)
