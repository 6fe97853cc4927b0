from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Any

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class AssetError(Exception):
    """Base for every failure the ingestion core reports to callers."""

    code = "asset_error"
    status_code = 500

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class InputError(AssetError, ValueError):
    code = "invalid_input"
    status_code = 400


class ConfigurationError(AssetError):
    code = "misconfigured"
    status_code = 500


class ConflictError(AssetError):
    code = "conflict"
    status_code = 503


class StorageError(AssetError):
    code = "storage_error"
    status_code = 500


class ProcessingError(AssetError):
    """Variant generation failed; the base asset may already be recorded."""

    code = "processing_error"
    status_code = 500


class NotFoundError(AssetError):
    code = "not_found"
    status_code = 404


class VariantRequestError(AssetError):
    """All variant parameter problems of one request, keyed by variant."""

    code = "invalid_variants"

    def __init__(self, errors: dict[str, AssetError]) -> None:
        self.errors = errors
        super().__init__(
            "One or more variant parameters are invalid.",
            details={"errors": {key: [str(exc)] for key, exc in errors.items()}},
        )

    @property
    def status_code(self) -> int:  # type: ignore[override]
        if any(isinstance(exc, ConfigurationError) for exc in self.errors.values()):
            return ConfigurationError.status_code
        return 422


class IngestionError(AssetError):
    """A single file failed; the rest of the batch was not processed."""

    code = "ingestion_failed"

    def __init__(
        self,
        *,
        stage: str,
        index: int,
        original_name: str | None,
        cause: AssetError,
        completed: list[Any] | None = None,
    ) -> None:
        self.stage = stage
        self.index = index
        self.original_name = original_name
        self.cause = cause
        self.completed = completed or []
        details = {
            "stage": stage,
            "file_index": index,
            "original_name": original_name,
            "reason": cause.code,
            "completed": len(self.completed),
        }
        details.update(cause.details)
        super().__init__(cause.message, details=details)

    @property
    def status_code(self) -> int:  # type: ignore[override]
        return self.cause.status_code


def _default_code(status_code: int) -> str:
    mapping = {
        400: "bad_request",
        401: "unauthorized",
        403: "forbidden",
        404: "not_found",
        409: "conflict",
        413: "payload_too_large",
        422: "unprocessable_entity",
        429: "rate_limited",
    }
    return mapping.get(status_code, "http_error")


def _default_message(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Request failed"


def _normalize_details(details: Any) -> dict:
    if details is None:
        return {}
    if isinstance(details, dict):
        return details
    if isinstance(details, list):
        return {"errors": details}
    return {"detail": str(details)}


def error_response(
    status_code: int,
    code: str,
    message: str,
    details: Any | None = None,
) -> JSONResponse:
    payload = {
        "code": code,
        "message": message,
        "data": None,
        "details": _normalize_details(details),
    }
    return JSONResponse(status_code=status_code, content=jsonable_encoder(payload))


async def asset_exception_handler(request: Request, exc: AssetError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("Request failed code=%s message=%s", exc.code, exc.message)
    return error_response(exc.status_code, exc.code, exc.message, exc.details)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    detail = exc.detail
    if isinstance(detail, dict):
        code = detail.get("code") or _default_code(exc.status_code)
        message = detail.get("message") or _default_message(exc.status_code)
        return error_response(exc.status_code, code, message, detail.get("details"))
    if isinstance(detail, str):
        return error_response(exc.status_code, _default_code(exc.status_code), detail, {"detail": detail})
    return error_response(
        exc.status_code, _default_code(exc.status_code), _default_message(exc.status_code), detail
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    message = "Validation failed"
    if errors:
        first = errors[0] or {}
        # Drop the request section (body/query/path) from the location
        loc_parts = [
            str(part) for part in first.get("loc") or [] if part not in {"body", "query", "path"}
        ]
        msg = first.get("msg") or message
        message = f"{'.'.join(loc_parts)}: {msg}" if loc_parts else str(msg)
    return error_response(422, "validation_error", message, {"errors": errors})


async def rate_limit_exception_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    response = error_response(429, "rate_limited", _default_message(429), getattr(exc, "detail", None))
    headers = getattr(exc, "headers", None)
    if isinstance(headers, dict):
        response.headers.update(headers)
    return response


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return error_response(500, "internal_server_error", "Internal server error", {})


def register_exception_handlers(app) -> None:
    app.add_exception_handler(AssetError, asset_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
