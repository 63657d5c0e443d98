"""
Tenant (community) management routes.

Listing, creation, deletion, suspension and activation are reserved for
elevated actors; a tenant's own users may read and update it.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from mahallu_api.managers.tenant_manager import tenant_manager
from mahallu_api.middleware.tenant_context import TenantScope
from mahallu_api.models.tenant_models import CreateTenantRequest, UpdateTenantRequest
from mahallu_api.routes.auth.dependencies import get_tenant_scope, require_elevated
from mahallu_api.utils.pagination import PageParams, get_page_params, paginated_response, success_response

router = APIRouter(prefix="/tenants", tags=["tenants"])


@router.get("")
async def list_tenants(
    status_filter: Optional[str] = Query(None, alias="status"),
    tenant_type: Optional[str] = Query(None, alias="type"),
    search: Optional[str] = None,
    params: PageParams = Depends(get_page_params),
    scope: TenantScope = Depends(require_elevated),
):
    items, total = await tenant_manager.list_tenants(params, status_filter, tenant_type, search)
    return paginated_response(items, total, params)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_tenant(req: CreateTenantRequest, scope: TenantScope = Depends(require_elevated)):
    tenant = await tenant_manager.create_tenant(req)
    return success_response(tenant, "Tenant created successfully")


@router.get("/{id}")
async def get_tenant(id: str, scope: TenantScope = Depends(get_tenant_scope)):
    return success_response(await tenant_manager.get_tenant(scope, id))


@router.get("/{id}/stats")
async def get_tenant_stats(id: str, scope: TenantScope = Depends(get_tenant_scope)):
    return success_response(await tenant_manager.tenant_stats(scope, id))


@router.put("/{id}")
async def update_tenant(id: str, req: UpdateTenantRequest, scope: TenantScope = Depends(get_tenant_scope)):
    return success_response(await tenant_manager.update_tenant(scope, id, req), "Tenant updated successfully")


@router.delete("/{id}")
async def delete_tenant(id: str, scope: TenantScope = Depends(require_elevated)):
    await tenant_manager.delete_tenant(id)
    return success_response(message="Tenant deleted successfully")


@router.post("/{id}/suspend")
async def suspend_tenant(id: str, scope: TenantScope = Depends(require_elevated)):
    return success_response(await tenant_manager.set_status(id, "suspended"), "Tenant suspended")


@router.post("/{id}/activate")
async def activate_tenant(id: str, scope: TenantScope = Depends(require_elevated)):
    return success_response(await tenant_manager.set_status(id, "active"), "Tenant activated")
