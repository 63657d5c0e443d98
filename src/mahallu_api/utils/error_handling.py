"""
Error taxonomy and HTTP error translation.

Managers raise ``MahalluError`` subclasses; the handlers registered here turn
them (and FastAPI's own validation/HTTP errors) into the standard response
envelope ``{"success": false, "message": ...}``.
"""

from datetime import datetime, timezone
import traceback
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError
from starlette.exceptions import HTTPException

from mahallu_api.config import settings
from mahallu_api.managers.logging_manager import get_logger

logger = get_logger(prefix="[Error Handling]")

REDACTED_MARKER = "***REDACTED***"
SENSITIVE_FIELDS = ("password", "token", "secret", "apiKey", "authorization")


class MahalluError(Exception):
    """Base exception with an error code, HTTP status and context."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, error_code: str = None, context: Dict[str, Any] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or "MAHALLU_ERROR"
        self.context = context or {}
        self.timestamp = datetime.now(timezone.utc)


class RecordNotFound(MahalluError):
    """Referenced tenant, family, member or user does not exist."""

    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, message: str, entity: str = None, entity_id: str = None):
        super().__init__(message, "RECORD_NOT_FOUND", {"entity": entity, "entity_id": entity_id})


class TenantMismatch(MahalluError):
    """A record belongs to a different tenant than the one in scope."""

    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, message: str, expected_tenant: str = None, actual_tenant: str = None):
        super().__init__(
            message,
            "TENANT_MISMATCH",
            {"expected_tenant": expected_tenant, "actual_tenant": actual_tenant},
        )


class AccessDenied(MahalluError):
    """The actor's role may not perform the operation."""

    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, message: str, required_role: str = None, actor_role: str = None):
        super().__init__(message, "ACCESS_DENIED", {"required_role": required_role, "actor_role": actor_role})


class RecordConflict(MahalluError):
    """Duplicate phone per tenant, duplicate member linkage, duplicate tenant code."""

    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message: str, field: str = None, value: Any = None):
        super().__init__(message, "RECORD_CONFLICT", {"field": field, "value": value})


class ValidationFailure(MahalluError):
    """Input that passed schema validation but is unusable."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, field: str = None):
        super().__init__(message, "VALIDATION_FAILURE", {"field": field})


class Unrecoverable(MahalluError):
    """Unexpected datastore failure."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, operation: str = None):
        super().__init__(message, "UNRECOVERABLE", {"operation": operation})


def sanitize_request_body(body: Any) -> Any:
    """
    Redact well-known credential fields from a request body.

    Only top-level fields are inspected and only truthy values are replaced;
    non-dict bodies are returned unchanged.
    """
    if not isinstance(body, dict):
        return body

    sanitized = dict(body)
    for field in SENSITIVE_FIELDS:
        if sanitized.get(field):
            sanitized[field] = REDACTED_MARKER
    return sanitized


def error_response(status_code: int, message: str, error_code: Optional[str] = None, **extra) -> JSONResponse:
    """Build the failure envelope."""
    content: Dict[str, Any] = {"success": False, "message": message}
    if error_code:
        content["error"] = error_code
    content.update(extra)
    return JSONResponse(status_code=status_code, content=content)


async def mahallu_error_handler(request: Request, exc: MahalluError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc, exc_info=True)
    else:
        logger.info("%s %s rejected (%s): %s", request.method, request.url.path, exc.error_code, exc)
    return error_response(exc.status_code, exc.message, exc.error_code)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    response = error_response(exc.status_code, message)
    if exc.headers:
        response.headers.update(exc.headers)
    return response


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    messages = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        messages.append(f"{location}: {err.get('msg')}" if location else str(err.get("msg")))
    return error_response(status.HTTP_400_BAD_REQUEST, ", ".join(messages) or "Validation failed", "VALIDATION_FAILURE")


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error on %s %s: %s", request.method, request.url.path, exc, exc_info=True)
    extra = {}
    if settings.DEBUG:
        extra["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Server Error", **extra)


def register_exception_handlers(app: FastAPI) -> None:
    """Install the envelope-producing exception handlers on ``app``."""
    app.add_exception_handler(MahalluError, mahallu_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    # Answered inside the middleware stack; the Exception handler below runs outside it
    app.add_exception_handler(PyMongoError, unhandled_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
