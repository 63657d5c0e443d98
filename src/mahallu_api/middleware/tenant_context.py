"""
Tenant scope resolution.

A request's tenant scope is derived once, from the authenticated actor and the
tenant hints the client sent (``x-tenant-id`` header, ``tenantId`` query
parameter, ``tenantId`` body field, in that priority order). The resulting
``TenantScope`` is immutable and is passed explicitly into every manager call.
"""

from dataclasses import dataclass
import json
from typing import Any, Dict, Mapping, Optional

from fastapi import Request

from mahallu_api.managers.logging_manager import get_logger
from mahallu_api.models.user_models import UserRole
from mahallu_api.utils.error_handling import ValidationFailure
from mahallu_api.utils.identifiers import as_reference, same_reference

logger = get_logger(prefix="[Tenant Context]")

TENANT_HEADER = "x-tenant-id"
TENANT_FIELD = "tenantId"


@dataclass(frozen=True)
class TenantScope:
    """Which tenant's data a request may touch, and who is asking."""

    tenant_id: Optional[str] = None
    is_elevated: bool = False
    actor_id: Optional[str] = None
    actor_role: Optional[UserRole] = None

    @property
    def is_unscoped(self) -> bool:
        return self.tenant_id is None

    def scoped_filter(self, filter_dict: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Apply the isolation step to a read filter.

        For a scoped, non-elevated actor ``tenantId`` is always forced to the
        scope's tenant, overriding whatever the caller supplied.
        """
        filter_dict = dict(filter_dict or {})
        if self.tenant_id and not self.is_elevated:
            filter_dict[TENANT_FIELD] = as_reference(self.tenant_id)
        return filter_dict

    def scoped_document(self, document: Dict[str, Any]) -> Dict[str, Any]:
        """Apply the isolation step to a write document (only fills a missing tenantId)."""
        document = dict(document)
        if self.tenant_id and not self.is_elevated and not document.get(TENANT_FIELD):
            document[TENANT_FIELD] = as_reference(self.tenant_id)
        return document

    def tenant_filter(self, filter_dict: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Listing filter: restrict to the scope's tenant whenever one is resolved.

        Unlike ``scoped_filter`` this also narrows an elevated actor viewing
        as a tenant. An unscoped elevated actor sees every tenant.
        """
        filter_dict = dict(filter_dict or {})
        if self.tenant_id:
            filter_dict[TENANT_FIELD] = as_reference(self.tenant_id)
        return filter_dict

    def owns(self, resource_tenant_id: Any) -> bool:
        """Tenant-ownership check for a fetched record."""
        if self.is_elevated:
            return True
        if not self.tenant_id:
            return False
        return same_reference(self.tenant_id, resource_tenant_id)

    def require_tenant(self, explicit: Optional[str] = None) -> str:
        """
        Tenant a new record is written to.

        The scope's tenant wins; an explicit tenant is only used when the
        scope has none (an unscoped elevated actor).
        """
        tenant_id = self.tenant_id or explicit
        if not tenant_id:
            raise ValidationFailure("Tenant ID is required", field=TENANT_FIELD)
        return str(tenant_id)


def _first_hint(*hints: Optional[str]) -> Optional[str]:
    for hint in hints:
        if hint is not None and str(hint).strip():
            return str(hint).strip()
    return None


def resolve_tenant_scope(
    actor: Optional[Mapping[str, Any]],
    header_hint: Optional[str] = None,
    query_hint: Optional[str] = None,
    body_hint: Optional[str] = None,
) -> TenantScope:
    """
    Derive the tenant scope for an actor and the request's tenant hints.

    1. Elevated actors (``super_admin`` role or ``isSuperAdmin``) are scoped to
       the hint when one is given, otherwise unscoped.
    2. Other actors with an assigned tenant are scoped to it; hints are ignored.
    3. Remaining actors are scoped to the hint, if any.

    Never raises.
    """
    hint = _first_hint(header_hint, query_hint, body_hint)
    if not actor:
        return TenantScope(tenant_id=hint)

    role = UserRole.parse(actor.get("role"))
    actor_id = str(actor["_id"]) if actor.get("_id") is not None else None
    elevated = role is UserRole.SUPER_ADMIN or bool(actor.get("isSuperAdmin"))

    if elevated:
        return TenantScope(tenant_id=hint, is_elevated=True, actor_id=actor_id, actor_role=role)

    assigned = actor.get(TENANT_FIELD)
    if assigned:
        if hint and not same_reference(hint, assigned):
            logger.debug("Ignoring tenant hint %s for actor %s bound to %s", hint, actor_id, assigned)
        return TenantScope(tenant_id=str(assigned), actor_id=actor_id, actor_role=role)

    return TenantScope(tenant_id=hint, actor_id=actor_id, actor_role=role)


async def read_tenant_hints(request: Request) -> Dict[str, Optional[str]]:
    """Collect the header, query and body tenant hints of a request."""
    body_hint = None
    if request.method in ("POST", "PUT", "PATCH") and "json" in request.headers.get("content-type", ""):
        try:
            body = json.loads(await request.body() or b"null")
        except ValueError:
            body = None
        if isinstance(body, dict) and isinstance(body.get(TENANT_FIELD), str):
            body_hint = body[TENANT_FIELD]

    return {
        "header_hint": request.headers.get(TENANT_HEADER),
        "query_hint": request.query_params.get(TENANT_FIELD),
        "body_hint": body_hint,
    }
