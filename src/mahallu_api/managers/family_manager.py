"""
Family Manager for household records.

Families are tenant-scoped. Each new family receives its ``mahallId`` from the
sequence manager at creation; the identifier is never changed afterwards.
"""

from datetime import datetime, timezone
import re
from typing import Any, Dict, List, Optional, Tuple

from pymongo import ReturnDocument

from mahallu_api.database import db_manager
from mahallu_api.database.tenant_collection import TenantAwareCollection
from mahallu_api.managers.logging_manager import get_logger
from mahallu_api.managers.sequence_manager import sequence_manager
from mahallu_api.middleware.tenant_context import TenantScope
from mahallu_api.models.family_models import CreateFamilyRequest, UpdateFamilyRequest
from mahallu_api.utils.error_handling import RecordNotFound, TenantMismatch
from mahallu_api.utils.identifiers import as_reference, to_object_id
from mahallu_api.utils.pagination import PageParams

logger = get_logger(prefix="[Family Manager]")

FAMILIES_COLLECTION = "families"


class FamilyManager:
    """CRUD for families within a tenant scope."""

    def __init__(self, db_manager=None, sequence_manager=None):
        self.db_manager = db_manager or globals()["db_manager"]
        self.sequence_manager = sequence_manager or globals()["sequence_manager"]

    def _families(self, scope: TenantScope) -> TenantAwareCollection:
        return TenantAwareCollection(self.db_manager.get_collection(FAMILIES_COLLECTION), scope)

    async def list_families(
        self,
        scope: TenantScope,
        params: PageParams,
        status: Optional[str] = None,
        area: Optional[str] = None,
        search: Optional[str] = None,
        sort_by: Optional[str] = None,
    ) -> Tuple[List[Dict[str, Any]], int]:
        query = scope.tenant_filter()
        if status:
            query["status"] = status
        if area:
            query["area"] = area
        if search:
            pattern = re.escape(search)
            query["$or"] = [
                {"houseName": {"$regex": pattern, "$options": "i"}},
                {"mahallId": {"$regex": pattern, "$options": "i"}},
                {"contactNo": {"$regex": pattern, "$options": "i"}},
            ]
        sort = [("mahallId", 1)] if sort_by == "mahallId" else [("createdAt", -1)]

        families = self._families(scope)
        cursor = families.find(query).sort(sort).skip(params.skip).limit(params.limit)
        items = await cursor.to_list(length=params.limit)
        total = await families.count_documents(query)
        return items, total

    async def get_family(self, scope: TenantScope, family_id: Any) -> Dict[str, Any]:
        """Fetch a family by id, enforcing tenant ownership."""
        oid = to_object_id(family_id)
        family = await self.db_manager.get_collection(FAMILIES_COLLECTION).find_one({"_id": oid}) if oid else None
        if not family:
            raise RecordNotFound("Family not found", entity="family", entity_id=str(family_id))
        if not scope.owns(family.get("tenantId")):
            raise TenantMismatch(
                "Access denied: Family does not belong to your tenant",
                expected_tenant=scope.tenant_id,
                actual_tenant=str(family.get("tenantId")),
            )
        return family

    async def create_family(self, scope: TenantScope, payload: CreateFamilyRequest) -> Dict[str, Any]:
        tenant_id = scope.require_tenant(payload.tenant_id)

        family_doc = payload.to_document(exclude={"tenant_id"})
        family_doc["tenantId"] = as_reference(tenant_id)
        family_doc["mahallId"] = await self.sequence_manager.next_family_id(tenant_id)
        now = datetime.now(timezone.utc)
        family_doc["createdAt"] = now
        family_doc["updatedAt"] = now

        result = await self._families(scope).insert_one(family_doc)
        family_doc["_id"] = result.inserted_id
        logger.info("Created family %s (%s) in tenant %s", family_doc["mahallId"], result.inserted_id, tenant_id)
        return family_doc

    async def update_family(self, scope: TenantScope, family_id: Any, payload: UpdateFamilyRequest) -> Dict[str, Any]:
        family = await self.get_family(scope, family_id)

        update = payload.to_document()
        update["updatedAt"] = datetime.now(timezone.utc)
        return await self.db_manager.get_collection(FAMILIES_COLLECTION).find_one_and_update(
            {"_id": family["_id"]}, {"$set": update}, return_document=ReturnDocument.AFTER
        )

    async def delete_family(self, scope: TenantScope, family_id: Any) -> None:
        family = await self.get_family(scope, family_id)
        await self.db_manager.get_collection(FAMILIES_COLLECTION).delete_one({"_id": family["_id"]})
        logger.info("Deleted family %s (%s)", family.get("mahallId"), family["_id"])


family_manager = FamilyManager()
