"""
Member user routes.

Every route acts on the caller's own Member record, so only member-role users
are admitted.
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends

from mahallu_api.managers.member_user_manager import member_user_manager
from mahallu_api.middleware.tenant_context import TenantScope
from mahallu_api.models.member_models import UpdateOwnProfileRequest
from mahallu_api.routes.auth.dependencies import get_tenant_scope, member_user_only
from mahallu_api.utils.pagination import PageParams, get_page_params, paginated_response, success_response

router = APIRouter(prefix="/member-user", tags=["member-user"])


@router.get("/profile")
async def get_own_profile(
    user: Dict[str, Any] = Depends(member_user_only), scope: TenantScope = Depends(get_tenant_scope)
):
    return success_response(await member_user_manager.get_profile(scope, user))


@router.put("/profile")
async def update_own_profile(
    req: UpdateOwnProfileRequest,
    user: Dict[str, Any] = Depends(member_user_only),
    scope: TenantScope = Depends(get_tenant_scope),
):
    member = await member_user_manager.update_profile(scope, user, req)
    return success_response(member, "Profile updated successfully")


@router.get("/family-members")
async def list_own_family_members(
    params: PageParams = Depends(get_page_params),
    user: Dict[str, Any] = Depends(member_user_only),
    scope: TenantScope = Depends(get_tenant_scope),
):
    items, total = await member_user_manager.list_family_members(scope, user, params)
    return paginated_response(items, total, params)
