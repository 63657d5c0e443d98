"""
Activity (audit) logging middleware.

Every request outside the skip list produces one activity record describing
who did what to which entity, and how it went. The response is returned to
the client unmodified; the record is handed to ``AuditDispatcher`` and written
in the background.
"""

from datetime import datetime, timezone
import json
import time
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from bson import ObjectId
from fastapi import Request
from starlette.concurrency import iterate_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware

from mahallu_api.config import settings
from mahallu_api.managers.audit_manager import AuditDispatcher, audit_dispatcher
from mahallu_api.managers.logging_manager import get_logger
from mahallu_api.utils.error_handling import sanitize_request_body
from mahallu_api.utils.identifiers import to_object_id

logger = get_logger(prefix="[Activity Logger]")

ENTITY_TYPE_MAP = {
    "auth": "authentication",
    "users": "user",
    "families": "family",
    "members": "member",
    "institutes": "institute",
    "programs": "program",
    "madrasa": "madrasa",
    "committees": "committee",
    "meetings": "meeting",
    "registrations": "registration",
    "collectibles": "collectible",
    "social": "social",
    "reports": "report",
    "notifications": "notification",
    "master-accounts": "masterAccount",
    "tenants": "tenant",
    "dashboard": "dashboard",
}

METHOD_ACTIONS = {
    "GET": "view",
    "POST": "create",
    "PUT": "update",
    "PATCH": "update",
    "DELETE": "delete",
}


def get_entity_type(path: str, prefix: str = None) -> str:
    """Entity named by the first path segment after the API prefix."""
    prefix = (settings.API_PREFIX if prefix is None else prefix).rstrip("/") + "/"
    if path.startswith(prefix):
        path = path[len(prefix):]
    segment = path.lstrip("/").split("/")[0]
    if not segment:
        return "unknown"
    return ENTITY_TYPE_MAP.get(segment, segment)


def get_action(method: str, entity_type: str) -> str:
    verb = METHOD_ACTIONS.get(method.upper(), method.lower())
    return f"{verb} {entity_type}"


def get_client_ip(headers: Mapping[str, str], client_host: Optional[str] = None) -> str:
    forwarded = headers.get("x-forwarded-for")
    if forwarded and forwarded.split(",")[0].strip():
        return forwarded.split(",")[0].strip()
    return headers.get("x-real-ip") or client_host or "unknown"


def get_entity_id(path_params: Mapping[str, Any], body: Any) -> Optional[ObjectId]:
    """Entity id from the ``id`` path parameter, else body ``_id``/``id``. Invalid ids are dropped."""
    if path_params.get("id"):
        return to_object_id(path_params["id"])
    if isinstance(body, dict):
        for key in ("_id", "id"):
            if body.get(key):
                return to_object_id(body[key])
    return None


def summarize_response(status_code: int, body: Any) -> Tuple[Optional[str], Optional[Dict[str, Any]]]:
    """
    Error message and response summary for a record.

    Failed responses keep only the message; successful ones keep the success
    flag and the shape of ``data``, never the data itself.
    """
    if status_code >= 400:
        message = body.get("message") if isinstance(body, dict) else None
        summary = {"success": False, "message": message} if isinstance(body, dict) else None
        return message or f"HTTP {status_code}", summary

    if not isinstance(body, dict):
        return None, None

    data = body.get("data")
    if isinstance(data, list):
        count = len(data)
    else:
        count = 1 if data else 0
    return None, {
        "success": body.get("success", True),
        "isList": isinstance(data, list),
        "dataCount": count,
    }


def _parse_json(raw: bytes) -> Any:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except (ValueError, UnicodeDecodeError):
        return None


class ActivityLoggerMiddleware(BaseHTTPMiddleware):
    """Records one activity entry per request and dispatches it out of band."""

    def __init__(
        self,
        app,
        dispatcher: AuditDispatcher = None,
        skip_paths: Iterable[str] = None,
        enabled: bool = None,
    ):
        super().__init__(app)
        self.dispatcher = dispatcher or audit_dispatcher
        self.skip_paths = tuple(settings.AUDIT_SKIP_PATHS if skip_paths is None else skip_paths)
        self.enabled = settings.AUDIT_ENABLED if enabled is None else enabled

    def should_skip(self, path: str) -> bool:
        return not self.enabled or any(path.startswith(skip) for skip in self.skip_paths)

    async def dispatch(self, request: Request, call_next):
        if self.should_skip(request.url.path):
            return await call_next(request)

        start_time = time.perf_counter()
        request_body = _parse_json(await request.body())

        try:
            response = await call_next(request)
        except Exception:
            self._record(request, request_body, 500, None, start_time)
            raise

        chunks = [chunk async for chunk in response.body_iterator]
        response.body_iterator = iterate_in_threadpool(iter(chunks))

        response_body = None
        if "json" in (response.headers.get("content-type") or ""):
            response_body = _parse_json(b"".join(chunks))

        self._record(request, request_body, response.status_code, response_body, start_time)
        return response

    def _record(self, request: Request, request_body: Any, status_code: int, response_body: Any, start_time: float):
        try:
            record = self.build_record(request, request_body, status_code, response_body, start_time)
            self.dispatcher.dispatch(record)
        except Exception as e:
            logger.error("Failed to build activity record for %s %s: %s", request.method, request.url.path, e, exc_info=True)

    def build_record(
        self, request: Request, request_body: Any, status_code: int, response_body: Any, start_time: float
    ) -> Dict[str, Any]:
        path = request.url.path
        entity_type = get_entity_type(path)
        response_time = int((time.perf_counter() - start_time) * 1000)

        record: Dict[str, Any] = {
            "action": get_action(request.method, entity_type),
            "entityType": entity_type,
            "httpMethod": request.method,
            "endpoint": path,
            "ipAddress": get_client_ip(request.headers, request.client.host if request.client else None),
            "userAgent": request.headers.get("user-agent") or "unknown",
            "statusCode": status_code,
            "details": {"responseTime": f"{response_time}ms"},
            "createdAt": datetime.now(timezone.utc),
        }

        query = dict(request.query_params)
        if query:
            record["details"]["query"] = query

        sanitized = sanitize_request_body(request_body)
        if isinstance(sanitized, dict) and sanitized:
            record["requestBody"] = sanitized

        entity_id = get_entity_id(request.scope.get("path_params") or {}, request_body)
        if entity_id:
            record["entityId"] = entity_id

        user = getattr(request.state, "user", None)
        if user and user.get("_id"):
            record["userId"] = to_object_id(user["_id"]) or user["_id"]

        scope = getattr(request.state, "tenant_scope", None)
        tenant_id = to_object_id(scope.tenant_id) if scope and scope.tenant_id else None
        if tenant_id:
            record["tenantId"] = tenant_id

        error_message, summary = summarize_response(status_code, response_body)
        if error_message:
            record["errorMessage"] = error_message
        if summary:
            record["responseData"] = summary
        return record
