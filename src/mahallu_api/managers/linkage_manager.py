"""
Identity linkage between members and their member-role user accounts.

A Member may have at most one User with role ``member`` pointing at it through
``memberId``. This manager creates such users and keeps the two records'
statuses in step:

- Member -> inactive/deleted: linked User -> inactive
- Member -> active: linked User -> active
- User -> inactive: linked Member -> inactive (including a deleted Member)
- User -> active: linked Member -> active only if it is currently inactive
- User deleted: User -> inactive, linked Member -> deleted

Preconditions are checked before any write. If the primary write succeeds and
the cascade write fails, the failure is logged and raised as ``Unrecoverable``;
the primary write is not rolled back.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from mahallu_api.database import db_manager
from mahallu_api.managers.logging_manager import get_logger
from mahallu_api.middleware.tenant_context import TenantScope
from mahallu_api.models.user_models import MEMBER_DEFAULT_PERMISSIONS, CreateUserRequest, UserRole
from mahallu_api.utils.error_handling import (
    RecordConflict,
    RecordNotFound,
    TenantMismatch,
    Unrecoverable,
    ValidationFailure,
)
from mahallu_api.utils.identifiers import as_reference, same_reference, to_object_id
from mahallu_api.utils.passwords import default_password_hash, hash_password

logger = get_logger(prefix="[Linkage Manager]")

USERS_COLLECTION = "users"
MEMBERS_COLLECTION = "members"

USER_PROJECTION = {"password": 0}


class LinkageManager:
    """Creates member-role users and cascades status between users and members."""

    def __init__(self, db_manager=None):
        self.db_manager = db_manager or globals()["db_manager"]

    @property
    def users(self):
        return self.db_manager.get_collection(USERS_COLLECTION)

    @property
    def members(self):
        return self.db_manager.get_collection(MEMBERS_COLLECTION)

    async def get_owned_member(self, scope: TenantScope, member_id: Any) -> Dict[str, Any]:
        """Fetch a member by id, enforcing tenant ownership."""
        oid = to_object_id(member_id)
        member = await self.members.find_one({"_id": oid}) if oid else None
        if not member:
            raise RecordNotFound("Member not found", entity="member", entity_id=str(member_id))
        if not scope.owns(member.get("tenantId")):
            raise TenantMismatch(
                "Member does not belong to your tenant or you don't have permission to access it",
                expected_tenant=scope.tenant_id,
                actual_tenant=str(member.get("tenantId")),
            )
        return member

    async def get_owned_user(self, scope: TenantScope, user_id: Any) -> Dict[str, Any]:
        """Fetch a user by id (without password), enforcing tenant ownership."""
        oid = to_object_id(user_id)
        user = await self.users.find_one({"_id": oid}, USER_PROJECTION) if oid else None
        if not user:
            raise RecordNotFound("User not found", entity="user", entity_id=str(user_id))
        if not scope.owns(user.get("tenantId")):
            raise TenantMismatch(
                "User does not belong to your tenant or you don't have permission to access it",
                expected_tenant=scope.tenant_id,
                actual_tenant=str(user.get("tenantId")),
            )
        return user

    async def find_linked_user(self, member_id: Any) -> Optional[Dict[str, Any]]:
        return await self.users.find_one({"memberId": as_reference(member_id), "role": UserRole.MEMBER.value})

    async def create_member_user(
        self, scope: TenantScope, payload: CreateUserRequest, tenant_id: str
    ) -> Dict[str, Any]:
        """
        Create the member-role User for a Member of ``tenant_id``.

        Raises:
            ValidationFailure: no memberId, or no phone on the request or the member
            RecordNotFound: the member does not exist
            TenantMismatch: the member belongs to another tenant
            RecordConflict: the member already has a user, or the phone is taken in the tenant
        """
        if not payload.member_id:
            raise ValidationFailure("Member ID is required for member users", field="memberId")

        member_oid = to_object_id(payload.member_id)
        member = await self.members.find_one({"_id": member_oid}) if member_oid else None
        if not member:
            raise RecordNotFound("Member not found", entity="member", entity_id=payload.member_id)

        if not same_reference(member.get("tenantId"), tenant_id):
            logger.warning(
                "Rejected member user for member %s of tenant %s requested under tenant %s by %s",
                member["_id"],
                member.get("tenantId"),
                tenant_id,
                scope.actor_id,
            )
            raise TenantMismatch(
                "Member does not belong to this tenant",
                expected_tenant=str(tenant_id),
                actual_tenant=str(member.get("tenantId")),
            )

        phone = payload.phone or member.get("phone")
        if not phone:
            raise ValidationFailure("Phone number is required (member has no phone on record)", field="phone")

        if await self.find_linked_user(member["_id"]):
            raise RecordConflict("User account already exists for this member", field="memberId", value=str(member["_id"]))

        tenant_ref = as_reference(tenant_id)
        if await self.users.find_one({"phone": phone, "tenantId": tenant_ref}):
            raise RecordConflict("User with this phone number already exists in this tenant", field="phone", value=phone)

        now = datetime.now(timezone.utc)
        permissions = payload.permissions or MEMBER_DEFAULT_PERMISSIONS
        user_doc = {
            "name": payload.name or member.get("name"),
            "phone": phone,
            "role": UserRole.MEMBER.value,
            "tenantId": tenant_ref,
            "memberId": member["_id"],
            "status": "active",
            "permissions": permissions.model_dump(),
            "password": hash_password(payload.password) if payload.password else default_password_hash(),
            "isSuperAdmin": False,
            "joiningDate": now,
            "createdAt": now,
            "updatedAt": now,
        }
        if payload.email:
            user_doc["email"] = payload.email

        try:
            result = await self.users.insert_one(user_doc)
        except DuplicateKeyError as e:
            # A concurrent request linked the member between the check and the insert
            if "memberId" in ((e.details or {}).get("keyPattern") or {}):
                raise RecordConflict(
                    "User account already exists for this member", field="memberId", value=str(member["_id"])
                )
            raise RecordConflict("User with this phone number already exists in this tenant", field="phone", value=phone)

        logger.info("Created member user %s for member %s in tenant %s", result.inserted_id, member["_id"], tenant_id)
        user_doc["_id"] = result.inserted_id
        user_doc.pop("password")
        return user_doc

    async def update_member_status(self, scope: TenantScope, member_id: Any, status: str) -> Dict[str, Any]:
        """Persist a member's status and cascade it to the linked user."""
        member = await self.get_owned_member(scope, member_id)

        updated = await self.members.find_one_and_update(
            {"_id": member["_id"]},
            {"$set": {"status": status, "updatedAt": datetime.now(timezone.utc)}},
            return_document=ReturnDocument.AFTER,
        )
        logger.info("Member %s status %s -> %s", member["_id"], member.get("status"), status)

        user_status = "active" if status == "active" else "inactive"
        await self._cascade(
            "member_status",
            self.users,
            {"memberId": member["_id"], "role": UserRole.MEMBER.value},
            user_status,
            lambda user: user.get("status") != user_status,
        )
        return updated

    async def delete_member(self, scope: TenantScope, member_id: Any) -> Dict[str, Any]:
        """Soft delete: the member is marked deleted and its user deactivated."""
        return await self.update_member_status(scope, member_id, "deleted")

    async def update_user_status(self, scope: TenantScope, user_id: Any, status: str) -> Dict[str, Any]:
        """Persist a user's status and, for member users, cascade it to the member."""
        user = await self.get_owned_user(scope, user_id)

        updated = await self.users.find_one_and_update(
            {"_id": user["_id"]},
            {"$set": {"status": status, "updatedAt": datetime.now(timezone.utc)}},
            projection=USER_PROJECTION,
            return_document=ReturnDocument.AFTER,
        )
        logger.info("User %s status %s -> %s", user["_id"], user.get("status"), status)

        if UserRole.parse(user.get("role")) is UserRole.MEMBER and user.get("memberId"):
            if status == "inactive":
                await self._cascade(
                    "user_status",
                    self.members,
                    {"_id": user["memberId"]},
                    "inactive",
                    lambda member: member.get("status") != "inactive",
                )
            else:
                await self._cascade(
                    "user_status",
                    self.members,
                    {"_id": user["memberId"]},
                    "active",
                    lambda member: member.get("status") == "inactive",
                )
        return updated

    async def delete_user(self, scope: TenantScope, user_id: Any) -> Dict[str, Any]:
        """Soft delete: the user goes inactive; a linked member is marked deleted."""
        user = await self.get_owned_user(scope, user_id)

        await self.users.update_one(
            {"_id": user["_id"]},
            {"$set": {"status": "inactive", "updatedAt": datetime.now(timezone.utc)}},
        )
        logger.info("User %s deactivated (delete)", user["_id"])

        if UserRole.parse(user.get("role")) is UserRole.MEMBER and user.get("memberId"):
            await self._cascade(
                "delete_user",
                self.members,
                {"_id": user["memberId"]},
                "deleted",
                lambda member: member.get("status") != "deleted",
            )
        user["status"] = "inactive"
        return user

    async def _cascade(self, operation: str, collection, filter_dict: Dict[str, Any], status: str, applies) -> bool:
        """
        Set ``status`` on the linked record matched by ``filter_dict``.

        A missing linked record is skipped. ``applies`` decides from the current
        linked record whether the transition happens at all.
        """
        try:
            linked = await collection.find_one(filter_dict)
            if not linked:
                logger.debug("%s: no linked record for %s, cascade skipped", operation, filter_dict)
                return False
            if not applies(linked):
                logger.debug("%s: %s %s stays %s", operation, collection.name, linked["_id"], linked.get("status"))
                return False
            await collection.update_one(
                {"_id": linked["_id"]},
                {"$set": {"status": status, "updatedAt": datetime.now(timezone.utc)}},
            )
        except PyMongoError as e:
            logger.error("%s: cascade to %s failed after primary write: %s", operation, collection.name, e, exc_info=True)
            raise Unrecoverable(f"Linked record update failed during {operation}", operation=operation) from e

        logger.info("%s: %s %s -> %s", operation, collection.name, linked["_id"], status)
        return True


linkage_manager = LinkageManager()
