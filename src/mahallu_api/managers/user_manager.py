"""
User Manager for administrator, staff and member accounts.

Member-role users are created through the linkage manager, which enforces the
member/user invariants; every other role is created here. Status changes and
deletion also go through the linkage manager so a member user's member record
follows.
"""

from datetime import datetime, timezone
import re
from typing import Any, Dict, List, Optional, Tuple

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from mahallu_api.database import db_manager
from mahallu_api.database.tenant_collection import TenantAwareCollection
from mahallu_api.managers.linkage_manager import USER_PROJECTION, linkage_manager
from mahallu_api.managers.logging_manager import get_logger
from mahallu_api.middleware.tenant_context import TenantScope
from mahallu_api.models.user_models import CreateUserRequest, Permissions, UpdateUserRequest, UserRole
from mahallu_api.utils.error_handling import AccessDenied, RecordConflict, ValidationFailure
from mahallu_api.utils.identifiers import as_reference
from mahallu_api.utils.pagination import PageParams
from mahallu_api.utils.passwords import default_password_hash, hash_password

logger = get_logger(prefix="[User Manager]")

USERS_COLLECTION = "users"


class UserManager:
    """CRUD for users within a tenant scope."""

    def __init__(self, db_manager=None, linkage_manager=None):
        self.db_manager = db_manager or globals()["db_manager"]
        self.linkage_manager = linkage_manager or globals()["linkage_manager"]

    @property
    def users(self):
        return self.db_manager.get_collection(USERS_COLLECTION)

    async def list_users(
        self,
        scope: TenantScope,
        params: PageParams,
        role: Optional[str] = None,
        status: Optional[str] = None,
        search: Optional[str] = None,
    ) -> Tuple[List[Dict[str, Any]], int]:
        query = scope.tenant_filter({"status": status or "active"})
        if role:
            query["role"] = role
        if search:
            pattern = re.escape(search)
            query["$or"] = [
                {"name": {"$regex": pattern, "$options": "i"}},
                {"phone": {"$regex": pattern, "$options": "i"}},
                {"email": {"$regex": pattern, "$options": "i"}},
            ]

        users = TenantAwareCollection(self.users, scope)
        cursor = users.find(query, USER_PROJECTION).sort("createdAt", -1).skip(params.skip).limit(params.limit)
        items = await cursor.to_list(length=params.limit)
        total = await users.count_documents(query)
        return items, total

    async def get_user(self, scope: TenantScope, user_id: Any) -> Dict[str, Any]:
        return await self.linkage_manager.get_owned_user(scope, user_id)

    def _target_tenant(self, scope: TenantScope, role: UserRole) -> Optional[str]:
        """Tenant a new user of ``role`` is created in."""
        if scope.is_elevated:
            if role is UserRole.SUPER_ADMIN:
                return None
            if not scope.tenant_id:
                raise ValidationFailure("Tenant ID is required when creating non-super-admin users", field="tenantId")
            return scope.tenant_id

        if role is UserRole.SUPER_ADMIN:
            raise AccessDenied(
                "Only super admin can create super admin users",
                required_role=UserRole.SUPER_ADMIN.value,
                actor_role=scope.actor_role.value if scope.actor_role else None,
            )
        if not scope.tenant_id:
            raise ValidationFailure("Tenant ID is required", field="tenantId")
        return scope.tenant_id

    async def create_user(self, scope: TenantScope, payload: CreateUserRequest) -> Dict[str, Any]:
        """
        Create a user in the tenant the scope allows.

        Raises:
            ValidationFailure: missing tenant, name, phone or institute
            AccessDenied: a non-elevated actor creating a super admin
            RecordConflict: the phone is already registered in the tenant
        """
        role = payload.role
        tenant_id = self._target_tenant(scope, role)

        if role is UserRole.MEMBER:
            return await self.linkage_manager.create_member_user(scope, payload, tenant_id)

        if role is UserRole.INSTITUTE and not payload.institute_id:
            raise ValidationFailure("Institute ID is required for institute users", field="instituteId")
        if not payload.name:
            raise ValidationFailure("Name is required", field="name")
        if not payload.phone:
            raise ValidationFailure("Phone number is required", field="phone")

        tenant_ref = as_reference(tenant_id) if tenant_id else None
        if await self.users.find_one({"phone": payload.phone, "tenantId": tenant_ref}):
            raise RecordConflict(
                "User with this phone number already exists for this tenant", field="phone", value=payload.phone
            )

        now = datetime.now(timezone.utc)
        user_doc = {
            "name": payload.name,
            "phone": payload.phone,
            "role": role.value,
            "tenantId": tenant_ref,
            "status": "active",
            "permissions": (payload.permissions or Permissions()).model_dump(),
            "password": hash_password(payload.password) if payload.password else default_password_hash(),
            "isSuperAdmin": role is UserRole.SUPER_ADMIN,
            "joiningDate": now,
            "createdAt": now,
            "updatedAt": now,
        }
        if payload.email:
            user_doc["email"] = payload.email
        if role is UserRole.INSTITUTE:
            user_doc["instituteId"] = as_reference(payload.institute_id)

        try:
            result = await self.users.insert_one(user_doc)
        except DuplicateKeyError:
            raise RecordConflict(
                "User with this phone number already exists for this tenant", field="phone", value=payload.phone
            )

        logger.info("Created %s user %s in tenant %s", role.value, result.inserted_id, tenant_id)
        user_doc["_id"] = result.inserted_id
        user_doc.pop("password")
        return user_doc

    async def update_user(self, scope: TenantScope, user_id: Any, payload: UpdateUserRequest) -> Dict[str, Any]:
        """Update profile fields; a status change is applied with its cascade."""
        user = await self.linkage_manager.get_owned_user(scope, user_id)

        update = payload.to_document(exclude={"status"})
        if "instituteId" in update:
            update["instituteId"] = as_reference(update["instituteId"])

        if update:
            update["updatedAt"] = datetime.now(timezone.utc)
            try:
                user = await self.users.find_one_and_update(
                    {"_id": user["_id"]},
                    {"$set": update},
                    projection=USER_PROJECTION,
                    return_document=ReturnDocument.AFTER,
                )
            except DuplicateKeyError:
                raise RecordConflict(
                    "User with this phone number already exists for this tenant", field="phone", value=payload.phone
                )

        if payload.status and payload.status != user.get("status"):
            user = await self.linkage_manager.update_user_status(scope, user["_id"], payload.status)
        return user

    async def update_user_status(self, scope: TenantScope, user_id: Any, status: str) -> Dict[str, Any]:
        return await self.linkage_manager.update_user_status(scope, user_id, status)

    async def delete_user(self, scope: TenantScope, user_id: Any) -> Dict[str, Any]:
        return await self.linkage_manager.delete_user(scope, user_id)


user_manager = UserManager()
