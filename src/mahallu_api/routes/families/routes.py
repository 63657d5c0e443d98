"""Family (household) routes."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from mahallu_api.managers.family_manager import family_manager
from mahallu_api.middleware.tenant_context import TenantScope
from mahallu_api.models.family_models import CreateFamilyRequest, UpdateFamilyRequest
from mahallu_api.models.user_models import UserRole
from mahallu_api.routes.auth.dependencies import allow_roles
from mahallu_api.utils.pagination import PageParams, get_page_params, paginated_response, success_response

router = APIRouter(prefix="/families", tags=["families"])

staff_scope = allow_roles(UserRole.MAHALL, UserRole.SURVEY, UserRole.INSTITUTE)


@router.get("")
async def list_families(
    status_filter: Optional[str] = Query(None, alias="status"),
    area: Optional[str] = None,
    search: Optional[str] = None,
    sort_by: Optional[str] = Query(None, alias="sortBy"),
    params: PageParams = Depends(get_page_params),
    scope: TenantScope = Depends(staff_scope),
):
    items, total = await family_manager.list_families(scope, params, status_filter, area, search, sort_by)
    return paginated_response(items, total, params)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_family(req: CreateFamilyRequest, scope: TenantScope = Depends(staff_scope)):
    return success_response(await family_manager.create_family(scope, req), "Family created successfully")


@router.get("/{id}")
async def get_family(id: str, scope: TenantScope = Depends(staff_scope)):
    return success_response(await family_manager.get_family(scope, id))


@router.put("/{id}")
async def update_family(id: str, req: UpdateFamilyRequest, scope: TenantScope = Depends(staff_scope)):
    return success_response(await family_manager.update_family(scope, id, req), "Family updated successfully")


@router.delete("/{id}")
async def delete_family(id: str, scope: TenantScope = Depends(staff_scope)):
    await family_manager.delete_family(scope, id)
    return success_response(message="Family deleted successfully")
