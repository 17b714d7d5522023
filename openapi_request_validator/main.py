from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from fastapi import FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse

from openapi_request_validator.config import Settings, get_settings
from openapi_request_validator.errors import ConfigurationError
from openapi_request_validator.openapi_loader import OpenAPILoader
from openapi_request_validator.request_validator import OpenAPIRequest
from openapi_request_validator.route_generator import RegistrationResult, ValidatedOperation, ValidatedRouteManager


logger = logging.getLogger(__name__)

FORM_MEDIA_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


class RuntimeState:
    def __init__(self, app: FastAPI, settings: Settings) -> None:
        self.settings = settings
        self.loader = OpenAPILoader()
        self.route_manager = ValidatedRouteManager(app, settings)
        self.spec_dict: dict[str, Any] | None = None

    def load_spec(self, payload: str | bytes | dict[str, Any]) -> RegistrationResult:
        spec_dict, operations = self.loader.load(payload)
        registration = self.route_manager.register_operations(
            operations=operations,
            spec_dict=spec_dict,
            handler_factory=self.build_handler,
        )
        self.spec_dict = spec_dict
        logger.info(
            "Registered %d validated operations (%d skipped).",
            registration.registered,
            registration.skipped,
        )
        return registration

    def build_handler(self, entry: ValidatedOperation):
        async def validated_handler(request: Request) -> JSONResponse:
            return await self.handle_request(request, entry)

        validated_handler.__name__ = f"validated_{entry.operation.operation_id}"
        return validated_handler

    async def handle_request(self, request: Request, entry: ValidatedOperation) -> JSONResponse:
        openapi_request = OpenAPIRequest(
            body=await _read_request_body(request),
            headers=dict(request.headers),
            params=dict(request.path_params),
            query=dict(request.query_params),
        )
        result = entry.validator.validate(openapi_request)
        if result is not None:
            logger.info(
                "Rejected %s %s with status %d.",
                entry.operation.method.upper(),
                request.url.path,
                result.status,
            )
            return JSONResponse(status_code=result.status, content=result.to_dict())

        return JSONResponse(
            status_code=200,
            content={
                "valid": True,
                "operation_id": entry.operation.operation_id,
                "body": openapi_request.body,
                "params": openapi_request.params,
                "query": openapi_request.query,
            },
        )


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    logging.getLogger("openapi_request_validator").setLevel(settings.log_level.upper())

    app = FastAPI(
        title="OpenAPI Request Validation Gateway",
        description="Upload an OpenAPI document and validate requests against its operations.",
        version="1.0.0",
    )
    runtime = RuntimeState(app, settings)
    app.state.runtime = runtime

    @app.on_event("startup")
    async def load_configured_spec() -> None:
        if not runtime.settings.spec_path:
            return
        spec_path = Path(runtime.settings.spec_path)
        runtime.load_spec(spec_path.read_bytes())
        logger.info("Loaded OpenAPI document from %s.", spec_path)

    @app.get("/registered-endpoints")
    async def registered_endpoints() -> dict[str, Any]:
        endpoints = runtime.route_manager.list_registered_endpoints()
        return {"count": len(endpoints), "endpoints": endpoints}

    @app.post("/upload-spec")
    async def upload_spec(
        request: Request,
        spec_file: UploadFile | None = File(default=None),
        spec_text: str | None = Form(default=None),
    ) -> dict[str, Any]:
        payload = await _extract_spec_payload(request, spec_file, spec_text)
        try:
            registration = runtime.load_spec(payload)
        except ConfigurationError as exc:
            raise HTTPException(status_code=400, detail=f"Invalid operation schema: {exc}") from exc
        except Exception as exc:  # noqa: BLE001
            raise HTTPException(status_code=400, detail=f"Invalid OpenAPI spec: {exc}") from exc

        return {
            "message": "OpenAPI spec uploaded successfully.",
            "registered": registration.registered,
            "skipped": registration.skipped,
            "endpoints": runtime.route_manager.list_registered_endpoints(),
        }

    return app


app = create_app()


async def _read_request_body(request: Request) -> Any | None:
    content_type = request.headers.get("content-type", "")
    if content_type.startswith(FORM_MEDIA_TYPES):
        form = await request.form()
        fields = {
            key: value if isinstance(value, str) else value.filename
            for key, value in form.items()
        }
        return fields or None
    return _parse_body(await request.body())


def _parse_body(raw_body: bytes) -> Any | None:
    if not raw_body:
        return None
    text = raw_body.decode("utf-8", errors="ignore").strip()
    if not text:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return text


async def _extract_spec_payload(
    request: Request,
    spec_file: UploadFile | None,
    spec_text: str | None,
) -> str | bytes | dict[str, Any]:
    if spec_file is not None:
        file_bytes = await spec_file.read()
        if not file_bytes:
            raise HTTPException(status_code=400, detail="Uploaded spec file is empty.")
        return file_bytes

    if spec_text is not None and spec_text.strip():
        return spec_text

    raw_body = await request.body()
    if not raw_body:
        raise HTTPException(
            status_code=400,
            detail="No OpenAPI payload found. Provide `spec_file`, `spec_text`, or raw body.",
        )

    parsed_body = _parse_body(raw_body)
    if isinstance(parsed_body, dict) and "spec" in parsed_body:
        return parsed_body["spec"]
    if isinstance(parsed_body, dict) and ("openapi" in parsed_body or "swagger" in parsed_body):
        return parsed_body

    return raw_body
