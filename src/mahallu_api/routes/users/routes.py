"""User account routes. Deletion is a soft delete that cascades to a linked member."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from mahallu_api.managers.user_manager import user_manager
from mahallu_api.middleware.tenant_context import TenantScope
from mahallu_api.models.user_models import CreateUserRequest, UpdateUserRequest, UpdateUserStatusRequest, UserRole
from mahallu_api.routes.auth.dependencies import allow_roles
from mahallu_api.utils.pagination import PageParams, get_page_params, paginated_response, success_response

router = APIRouter(prefix="/users", tags=["users"])

staff_scope = allow_roles(UserRole.MAHALL, UserRole.SURVEY, UserRole.INSTITUTE)


@router.get("")
async def list_users(
    role: Optional[str] = None,
    status_filter: Optional[str] = Query(None, alias="status"),
    search: Optional[str] = None,
    params: PageParams = Depends(get_page_params),
    scope: TenantScope = Depends(staff_scope),
):
    items, total = await user_manager.list_users(scope, params, role, status_filter, search)
    return paginated_response(items, total, params)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_user(req: CreateUserRequest, scope: TenantScope = Depends(staff_scope)):
    return success_response(await user_manager.create_user(scope, req), "User created successfully")


@router.get("/{id}")
async def get_user(id: str, scope: TenantScope = Depends(staff_scope)):
    return success_response(await user_manager.get_user(scope, id))


@router.put("/{id}")
async def update_user(id: str, req: UpdateUserRequest, scope: TenantScope = Depends(staff_scope)):
    return success_response(await user_manager.update_user(scope, id, req), "User updated successfully")


@router.put("/{id}/status")
async def update_user_status(id: str, req: UpdateUserStatusRequest, scope: TenantScope = Depends(staff_scope)):
    user = await user_manager.update_user_status(scope, id, req.status)
    return success_response(user, f"User status updated to {req.status} successfully")


@router.delete("/{id}")
async def delete_user(id: str, scope: TenantScope = Depends(staff_scope)):
    user = await user_manager.delete_user(scope, id)
    if user.get("role") == UserRole.MEMBER.value:
        return success_response(message="Member user and linked member record status updated successfully")
    return success_response(message="User status updated to inactive successfully")
