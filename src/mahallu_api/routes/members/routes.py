"""
Member routes.

Deleted members are left out of listings unless ``status`` is given
explicitly; they can still be fetched by id.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from mahallu_api.managers.member_manager import member_manager
from mahallu_api.middleware.tenant_context import TenantScope
from mahallu_api.models.member_models import CreateMemberRequest, UpdateMemberRequest, UpdateMemberStatusRequest
from mahallu_api.models.user_models import UserRole
from mahallu_api.routes.auth.dependencies import allow_roles
from mahallu_api.utils.pagination import PageParams, get_page_params, paginated_response, success_response

router = APIRouter(prefix="/members", tags=["members"])

staff_scope = allow_roles(UserRole.MAHALL, UserRole.SURVEY, UserRole.INSTITUTE)


@router.get("")
async def list_members(
    family_id: Optional[str] = Query(None, alias="familyId"),
    gender: Optional[str] = None,
    search: Optional[str] = None,
    sort_by: Optional[str] = Query(None, alias="sortBy"),
    status_filter: Optional[str] = Query(None, alias="status"),
    params: PageParams = Depends(get_page_params),
    scope: TenantScope = Depends(staff_scope),
):
    items, total = await member_manager.list_members(scope, params, family_id, gender, search, sort_by, status_filter)
    return paginated_response(items, total, params)


@router.get("/family/{familyId}")
async def list_family_members(
    familyId: str,
    status_filter: Optional[str] = Query(None, alias="status"),
    scope: TenantScope = Depends(staff_scope),
):
    return success_response(await member_manager.list_family_members(scope, familyId, status_filter))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_member(req: CreateMemberRequest, scope: TenantScope = Depends(staff_scope)):
    return success_response(await member_manager.create_member(scope, req), "Member created successfully")


@router.get("/{id}")
async def get_member(id: str, scope: TenantScope = Depends(staff_scope)):
    return success_response(await member_manager.get_member(scope, id))


@router.put("/{id}")
async def update_member(id: str, req: UpdateMemberRequest, scope: TenantScope = Depends(staff_scope)):
    return success_response(await member_manager.update_member(scope, id, req), "Member updated successfully")


@router.put("/{id}/status")
async def update_member_status(id: str, req: UpdateMemberStatusRequest, scope: TenantScope = Depends(staff_scope)):
    member = await member_manager.update_member_status(scope, id, req.status)
    return success_response(member, f"Member status updated to {req.status} successfully")


@router.delete("/{id}")
async def delete_member(id: str, scope: TenantScope = Depends(staff_scope)):
    await member_manager.delete_member(scope, id)
    return success_response(message="Member status updated to deleted successfully")
