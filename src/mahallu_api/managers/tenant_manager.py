"""
Tenant Manager for community (tenant) administration.

Tenants are created, suspended, activated and deleted by elevated actors. A
tenant's own users may read it, update its profile and settings, and read its
statistics.
"""

from datetime import datetime, timezone
import re
from typing import Any, Dict, List, Optional, Tuple

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from mahallu_api.database import db_manager
from mahallu_api.managers.logging_manager import get_logger
from mahallu_api.middleware.tenant_context import TenantScope
from mahallu_api.models.tenant_models import CreateTenantRequest, UpdateTenantRequest
from mahallu_api.models.user_models import UserRole
from mahallu_api.utils.error_handling import AccessDenied, RecordConflict, RecordNotFound, TenantMismatch
from mahallu_api.utils.identifiers import to_object_id
from mahallu_api.utils.pagination import PageParams

logger = get_logger(prefix="[Tenant Manager]")

TENANTS_COLLECTION = "tenants"

# Settings keys replaced wholesale on update; everything else is merged key by key.
REPLACED_SETTINGS = ("varisangyaGrades", "educationOptions")


class TenantManager:
    """Manager for tenant operations."""

    def __init__(self, db_manager=None):
        self.db_manager = db_manager or globals()["db_manager"]

    @property
    def tenants(self):
        return self.db_manager.get_collection(TENANTS_COLLECTION)

    async def list_tenants(
        self,
        params: PageParams,
        status: Optional[str] = None,
        tenant_type: Optional[str] = None,
        search: Optional[str] = None,
    ) -> Tuple[List[Dict[str, Any]], int]:
        query: Dict[str, Any] = {}
        if status:
            query["status"] = status
        if tenant_type:
            query["type"] = tenant_type
        if search:
            pattern = re.escape(search)
            query["$or"] = [
                {"name": {"$regex": pattern, "$options": "i"}},
                {"code": {"$regex": pattern, "$options": "i"}},
                {"location": {"$regex": pattern, "$options": "i"}},
            ]

        cursor = self.tenants.find(query).sort("createdAt", -1).skip(params.skip).limit(params.limit)
        items = await cursor.to_list(length=params.limit)
        total = await self.tenants.count_documents(query)
        return items, total

    async def get_tenant(self, scope: TenantScope, tenant_id: str) -> Dict[str, Any]:
        """Fetch a tenant the scope may see (its own, or any for elevated actors)."""
        oid = to_object_id(tenant_id)
        tenant = await self.tenants.find_one({"_id": oid}) if oid else None
        if not tenant:
            raise RecordNotFound("Tenant not found", entity="tenant", entity_id=tenant_id)
        if not scope.owns(tenant["_id"]):
            raise TenantMismatch("Access denied", expected_tenant=scope.tenant_id, actual_tenant=tenant_id)
        return tenant

    async def create_tenant(self, payload: CreateTenantRequest) -> Dict[str, Any]:
        """
        Create a new tenant.

        Raises:
            RecordConflict: If the (upper-cased) code is already taken
        """
        if await self.tenants.find_one({"code": payload.code}):
            raise RecordConflict("Tenant with this code already exists", field="code", value=payload.code)

        now = datetime.now(timezone.utc)
        tenant_doc = payload.to_document()
        tenant_doc.setdefault("status", "active")
        tenant_doc.setdefault("since", now)
        subscription = tenant_doc.setdefault("subscription", {"plan": "basic", "isActive": True})
        subscription.setdefault("startDate", now)
        settings_doc = tenant_doc.setdefault("settings", {})
        settings_doc.setdefault("varisangyaAmount", 0)
        settings_doc.setdefault("features", {})
        tenant_doc["createdAt"] = now
        tenant_doc["updatedAt"] = now

        try:
            result = await self.tenants.insert_one(tenant_doc)
        except DuplicateKeyError:
            raise RecordConflict("Tenant with this code already exists", field="code", value=payload.code)

        tenant_doc["_id"] = result.inserted_id
        logger.info("Created tenant %s (%s)", payload.code, result.inserted_id)
        return tenant_doc

    async def update_tenant(self, scope: TenantScope, tenant_id: str, payload: UpdateTenantRequest) -> Dict[str, Any]:
        """Update profile fields; ``settings`` is merged into the stored settings."""
        tenant = await self.get_tenant(scope, tenant_id)

        update = payload.to_document()
        if "status" in update and not scope.is_elevated:
            raise AccessDenied(
                "Only super admin can change tenant status",
                required_role=UserRole.SUPER_ADMIN.value,
                actor_role=scope.actor_role.value if scope.actor_role else None,
            )

        if "settings" in update:
            merged = dict(tenant.get("settings") or {})
            for key, value in update["settings"].items():
                if key in REPLACED_SETTINGS or not isinstance(value, dict):
                    merged[key] = value
                else:
                    merged[key] = {**(merged.get(key) or {}), **value}
            update["settings"] = merged

        update["updatedAt"] = datetime.now(timezone.utc)
        updated = await self.tenants.find_one_and_update(
            {"_id": tenant["_id"]}, {"$set": update}, return_document=ReturnDocument.AFTER
        )
        logger.info("Updated tenant %s fields: %s", tenant["_id"], sorted(update))
        return updated

    async def delete_tenant(self, tenant_id: str) -> None:
        oid = to_object_id(tenant_id)
        result = await self.tenants.delete_one({"_id": oid}) if oid else None
        if not result or not result.deleted_count:
            raise RecordNotFound("Tenant not found", entity="tenant", entity_id=tenant_id)
        logger.info("Deleted tenant %s", tenant_id)

    async def set_status(self, tenant_id: str, status: str) -> Dict[str, Any]:
        """Suspend or activate a tenant."""
        oid = to_object_id(tenant_id)
        tenant = None
        if oid:
            tenant = await self.tenants.find_one_and_update(
                {"_id": oid},
                {"$set": {"status": status, "updatedAt": datetime.now(timezone.utc)}},
                return_document=ReturnDocument.AFTER,
            )
        if not tenant:
            raise RecordNotFound("Tenant not found", entity="tenant", entity_id=tenant_id)
        logger.info("Tenant %s status -> %s", tenant_id, status)
        return tenant

    async def tenant_stats(self, scope: TenantScope, tenant_id: str) -> Dict[str, int]:
        """User, family and member counts of a tenant."""
        oid = to_object_id(tenant_id)
        if not oid:
            raise RecordNotFound("Tenant not found", entity="tenant", entity_id=tenant_id)
        if not scope.owns(oid):
            raise TenantMismatch("Access denied", expected_tenant=scope.tenant_id, actual_tenant=tenant_id)

        query = {"tenantId": oid}
        return {
            "users": await self.db_manager.get_collection("users").count_documents(query),
            "families": await self.db_manager.get_collection("families").count_documents(query),
            "members": await self.db_manager.get_collection("members").count_documents(query),
        }


tenant_manager = TenantManager()
