"""
Member Manager for individual records within families.

Creation allocates the member's ``mahallId`` from its family's identifier and
copies the family's house name into ``familyName``. Status changes and
deletion go through the linkage manager so the member's user account follows.
"""

from datetime import datetime, timezone
import re
from typing import Any, Dict, List, Optional, Tuple

from pymongo import ReturnDocument

from mahallu_api.database import db_manager
from mahallu_api.database.tenant_collection import TenantAwareCollection
from mahallu_api.managers.family_manager import family_manager
from mahallu_api.managers.linkage_manager import linkage_manager
from mahallu_api.managers.logging_manager import get_logger
from mahallu_api.managers.sequence_manager import sequence_manager
from mahallu_api.middleware.tenant_context import TenantScope
from mahallu_api.models.member_models import CreateMemberRequest, UpdateMemberRequest
from mahallu_api.utils.error_handling import RecordNotFound, TenantMismatch
from mahallu_api.utils.identifiers import as_reference, same_reference, to_object_id
from mahallu_api.utils.pagination import PageParams

logger = get_logger(prefix="[Member Manager]")

MEMBERS_COLLECTION = "members"
FAMILIES_COLLECTION = "families"


def _status_filter(status: Optional[str]) -> Any:
    """Requested status, or everything except soft-deleted members."""
    return status if status else {"$ne": "deleted"}


class MemberManager:
    """CRUD for members within a tenant scope."""

    def __init__(self, db_manager=None, sequence_manager=None, linkage_manager=None, family_manager=None):
        self.db_manager = db_manager or globals()["db_manager"]
        self.sequence_manager = sequence_manager or globals()["sequence_manager"]
        self.linkage_manager = linkage_manager or globals()["linkage_manager"]
        self.family_manager = family_manager or globals()["family_manager"]

    def _members(self, scope: TenantScope) -> TenantAwareCollection:
        return TenantAwareCollection(self.db_manager.get_collection(MEMBERS_COLLECTION), scope)

    async def list_members(
        self,
        scope: TenantScope,
        params: PageParams,
        family_id: Optional[str] = None,
        gender: Optional[str] = None,
        search: Optional[str] = None,
        sort_by: Optional[str] = None,
        status: Optional[str] = None,
    ) -> Tuple[List[Dict[str, Any]], int]:
        query = scope.tenant_filter({"status": _status_filter(status)})
        if family_id:
            query["familyId"] = as_reference(family_id)
        if gender:
            query["gender"] = gender
        if search:
            pattern = re.escape(search)
            query["$or"] = [
                {"name": {"$regex": pattern, "$options": "i"}},
                {"mahallId": {"$regex": pattern, "$options": "i"}},
                {"familyName": {"$regex": pattern, "$options": "i"}},
                {"phone": {"$regex": pattern, "$options": "i"}},
            ]
        if sort_by == "mahallId":
            sort = [("mahallId", 1)]
        elif sort_by == "name":
            sort = [("name", 1)]
        else:
            sort = [("createdAt", -1)]

        members = self._members(scope)
        cursor = members.find(query).sort(sort).skip(params.skip).limit(params.limit)
        items = await cursor.to_list(length=params.limit)
        total = await members.count_documents(query)
        return items, total

    async def list_family_members(
        self, scope: TenantScope, family_id: str, status: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        family = await self.family_manager.get_family(scope, family_id)
        query = scope.tenant_filter({"familyId": family["_id"], "status": _status_filter(status)})
        cursor = self._members(scope).find(query).sort([("createdAt", -1)])
        return await cursor.to_list(length=None)

    async def get_member(self, scope: TenantScope, member_id: Any) -> Dict[str, Any]:
        return await self.linkage_manager.get_owned_member(scope, member_id)

    async def _get_family_for(self, family_id: Any, tenant_id: Any) -> Dict[str, Any]:
        """Family a member is attached to; it must exist and belong to ``tenant_id``."""
        oid = to_object_id(family_id)
        family = await self.db_manager.get_collection(FAMILIES_COLLECTION).find_one({"_id": oid}) if oid else None
        if not family:
            raise RecordNotFound("Family not found", entity="family", entity_id=str(family_id))
        if not same_reference(family.get("tenantId"), tenant_id):
            raise TenantMismatch(
                "Family does not belong to this tenant",
                expected_tenant=str(tenant_id),
                actual_tenant=str(family.get("tenantId")),
            )
        return family

    async def create_member(self, scope: TenantScope, payload: CreateMemberRequest) -> Dict[str, Any]:
        tenant_id = scope.require_tenant(payload.tenant_id)
        family = await self._get_family_for(payload.family_id, tenant_id)

        member_doc = payload.to_document(exclude={"tenant_id", "family_id"})
        member_doc["tenantId"] = as_reference(tenant_id)
        member_doc["familyId"] = family["_id"]
        member_doc.setdefault("familyName", family.get("houseName"))
        member_doc["status"] = "active"

        mahall_id = await self.sequence_manager.next_member_id(family)
        if mahall_id:
            member_doc["mahallId"] = mahall_id
        now = datetime.now(timezone.utc)
        member_doc["createdAt"] = now
        member_doc["updatedAt"] = now

        result = await self._members(scope).insert_one(member_doc)
        member_doc["_id"] = result.inserted_id
        logger.info("Created member %s (%s) in family %s", mahall_id, result.inserted_id, family["_id"])
        return member_doc

    async def update_member(self, scope: TenantScope, member_id: Any, payload: UpdateMemberRequest) -> Dict[str, Any]:
        member = await self.linkage_manager.get_owned_member(scope, member_id)

        update = payload.to_document(exclude={"family_id"})
        if payload.family_id:
            family = await self._get_family_for(payload.family_id, member.get("tenantId"))
            update["familyId"] = family["_id"]
            update.setdefault("familyName", family.get("houseName"))

        update["updatedAt"] = datetime.now(timezone.utc)
        return await self.db_manager.get_collection(MEMBERS_COLLECTION).find_one_and_update(
            {"_id": member["_id"]}, {"$set": update}, return_document=ReturnDocument.AFTER
        )

    async def update_member_status(self, scope: TenantScope, member_id: Any, status: str) -> Dict[str, Any]:
        return await self.linkage_manager.update_member_status(scope, member_id, status)

    async def delete_member(self, scope: TenantScope, member_id: Any) -> Dict[str, Any]:
        return await self.linkage_manager.delete_member(scope, member_id)


member_manager = MemberManager()
