"""
Member User Manager for the self-service side of member accounts.

A member-role user reaches their own Member record through the user's
``memberId``. They may read it together with their household, change their
contact details, and list the active members of their family.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Tuple

from pymongo import ReturnDocument

from mahallu_api.database import db_manager
from mahallu_api.managers.linkage_manager import linkage_manager
from mahallu_api.managers.logging_manager import get_logger
from mahallu_api.middleware.tenant_context import TenantScope
from mahallu_api.models.member_models import UpdateOwnProfileRequest
from mahallu_api.utils.error_handling import RecordNotFound
from mahallu_api.utils.pagination import PageParams

logger = get_logger(prefix="[Member User Manager]")

MEMBERS_COLLECTION = "members"
FAMILIES_COLLECTION = "families"

FAMILY_SUMMARY_PROJECTION = {"houseName": 1, "mahallId": 1, "contactNo": 1, "address": 1}


class MemberUserManager:
    """Own-profile operations for member users."""

    def __init__(self, db_manager=None, linkage_manager=None):
        self.db_manager = db_manager or globals()["db_manager"]
        self.linkage_manager = linkage_manager or globals()["linkage_manager"]

    @property
    def members(self):
        return self.db_manager.get_collection(MEMBERS_COLLECTION)

    async def get_own_member(self, scope: TenantScope, user: Dict[str, Any]) -> Dict[str, Any]:
        """
        The Member linked to ``user``.

        Raises:
            RecordNotFound: the user has no memberId or the member no longer exists
            TenantMismatch: the linked member belongs to another tenant
        """
        if not user.get("memberId"):
            raise RecordNotFound("Member profile not linked to user account", entity="member")
        return await self.linkage_manager.get_owned_member(scope, user["memberId"])

    async def _with_family(self, member: Dict[str, Any]) -> Dict[str, Any]:
        family = None
        if member.get("familyId"):
            family = await self.db_manager.get_collection(FAMILIES_COLLECTION).find_one(
                {"_id": member["familyId"]}, FAMILY_SUMMARY_PROJECTION
            )
        member["family"] = family
        return member

    async def get_profile(self, scope: TenantScope, user: Dict[str, Any]) -> Dict[str, Any]:
        return await self._with_family(await self.get_own_member(scope, user))

    async def update_profile(
        self, scope: TenantScope, user: Dict[str, Any], payload: UpdateOwnProfileRequest
    ) -> Dict[str, Any]:
        member = await self.get_own_member(scope, user)

        update = payload.to_document()
        if not update:
            return await self._with_family(member)

        update["updatedAt"] = datetime.now(timezone.utc)
        updated = await self.members.find_one_and_update(
            {"_id": member["_id"]}, {"$set": update}, return_document=ReturnDocument.AFTER
        )
        if updated is None:
            raise RecordNotFound("Member not found", entity="member", entity_id=str(member["_id"]))

        logger.info("Member %s updated own contact details (%s)", member["_id"], ", ".join(sorted(update)))
        return await self._with_family(updated)

    async def list_family_members(
        self, scope: TenantScope, user: Dict[str, Any], params: PageParams
    ) -> Tuple[List[Dict[str, Any]], int]:
        """Active members of the user's family, newest first."""
        member = await self.get_own_member(scope, user)
        if not member.get("familyId"):
            raise RecordNotFound("Member is not linked to a family", entity="family")

        query = {"familyId": member["familyId"], "tenantId": member.get("tenantId"), "status": "active"}
        cursor = self.members.find(query).sort([("createdAt", -1)]).skip(params.skip).limit(params.limit)
        items = await cursor.to_list(length=params.limit)
        total = await self.members.count_documents(query)
        return items, total


member_user_manager = MemberUserManager()
