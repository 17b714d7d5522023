from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

from fastapi import FastAPI

from openapi_request_validator.config import Settings
from openapi_request_validator.openapi_loader import OperationMeta, build_request_validator
from openapi_request_validator.request_validator import OpenAPIRequestValidator


logger = logging.getLogger(__name__)


RESERVED_PATHS = {
    "/",
    "/upload-spec",
    "/registered-endpoints",
    "/openapi.json",
    "/docs",
    "/docs/oauth2-redirect",
    "/redoc",
}


@dataclass(slots=True)
class RegistrationResult:
    registered: int
    skipped: int


@dataclass(slots=True)
class ValidatedOperation:
    operation: OperationMeta
    validator: OpenAPIRequestValidator


class ValidatedRouteManager:
    """Mounts one validating route per OpenAPI operation on a FastAPI app."""

    def __init__(self, app: FastAPI, settings: Settings) -> None:
        self.app = app
        self.settings = settings
        self._route_names: set[str] = set()
        self.registry: dict[tuple[str, str], ValidatedOperation] = {}

    def clear_routes(self) -> None:
        if self._route_names:
            self.app.router.routes = [
                route
                for route in self.app.router.routes
                if getattr(route, "name", None) not in self._route_names
            ]
            self._route_names.clear()
        self.registry.clear()
        self.app.openapi_schema = None

    def register_operations(
        self,
        operations: list[OperationMeta],
        spec_dict: dict[str, Any],
        handler_factory: Callable[[ValidatedOperation], Callable],
    ) -> RegistrationResult:
        # Validators are built before any route changes so a broken operation leaves the app untouched.
        entries: list[ValidatedOperation] = []
        skipped = 0
        for operation in operations:
            if operation.path in RESERVED_PATHS:
                logger.warning("Skipping reserved path %s %s", operation.method.upper(), operation.path)
                skipped += 1
                continue
            validator = build_request_validator(operation, spec_dict, settings=self.settings)
            entries.append(ValidatedOperation(operation=operation, validator=validator))

        self.clear_routes()
        for index, entry in enumerate(entries):
            operation = entry.operation
            route_name = f"validated__{operation.method}__{index}__{operation.operation_id}"
            self.app.add_api_route(
                path=operation.path,
                endpoint=handler_factory(entry),
                methods=[operation.method.upper()],
                name=route_name,
            )
            self._route_names.add(route_name)
            self.registry[(operation.path, operation.method)] = entry

        self.app.openapi_schema = None
        return RegistrationResult(registered=len(entries), skipped=skipped)

    def list_registered_endpoints(self) -> list[dict[str, str]]:
        endpoints = [
            {
                "path": entry.operation.path,
                "method": entry.operation.method.upper(),
                "operation_id": entry.operation.operation_id,
            }
            for entry in self.registry.values()
        ]
        return sorted(endpoints, key=lambda item: (item["path"], item["method"]))
