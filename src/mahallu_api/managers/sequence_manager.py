"""
Sequential identifier allocation for families and members.

Families get ``FID<n>`` numbered per tenant; members get
``<familyMahallId>-<k>`` numbered per family.

Two strategies are available through ``SEQUENCE_STRATEGY``:

- ``atomic`` (default): a counter document per tenant / family in
  ``sequence_counters``. The counter is first raised to the legacy baseline with
  ``$max`` (so existing data is continued, never renumbered) and then advanced
  with ``$inc``. Concurrent allocations never collide.
- ``legacy``: read the latest family (or count the family's members) and add
  one. Two concurrent allocations can return the same value.

Allocation never raises for data reasons: a malformed previous identifier
restarts numbering at 1.
"""

from datetime import datetime, timezone
import re
from typing import Any, Optional

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from mahallu_api.config import settings
from mahallu_api.database import db_manager
from mahallu_api.managers.logging_manager import get_logger
from mahallu_api.utils.identifiers import as_reference

logger = get_logger(prefix="[Sequence Manager]")

FAMILIES_COLLECTION = "families"
MEMBERS_COLLECTION = "members"
COUNTERS_COLLECTION = "sequence_counters"


def parse_family_number(mahall_id: Any, prefix: str = "FID") -> Optional[int]:
    """Number embedded in a family identifier, or None if there is none."""
    if not isinstance(mahall_id, str):
        return None
    match = re.search(re.escape(prefix) + r"(\d+)", mahall_id)
    return int(match.group(1)) if match else None


class SequenceManager:
    """Allocates human-readable family and member identifiers."""

    def __init__(self, db_manager=None, strategy: str = None, prefix: str = None):
        self.db_manager = db_manager or globals()["db_manager"]
        self.strategy = strategy or settings.SEQUENCE_STRATEGY
        self.prefix = prefix or settings.FAMILY_ID_PREFIX

    async def next_family_id(self, tenant_id: Any) -> str:
        """Next ``FID<n>`` for ``tenant_id``."""
        baseline = await self._family_baseline(tenant_id)
        if self.strategy == "legacy":
            number = baseline + 1
        else:
            number = await self._advance(f"family:{tenant_id}", baseline)
        mahall_id = f"{self.prefix}{number}"
        logger.debug("Allocated family id %s for tenant %s (%s)", mahall_id, tenant_id, self.strategy)
        return mahall_id

    async def next_member_id(self, family: dict) -> Optional[str]:
        """
        Next ``<familyMahallId>-<k>`` for ``family``.

        Returns None when the family itself has no identifier.
        """
        family_mahall_id = family.get("mahallId")
        if not family_mahall_id:
            return None

        baseline = await self.db_manager.get_collection(MEMBERS_COLLECTION).count_documents(
            {"familyId": as_reference(family["_id"])}
        )
        if self.strategy == "legacy":
            number = baseline + 1
        else:
            number = await self._advance(f"member:{family['_id']}", baseline)
        mahall_id = f"{family_mahall_id}-{number}"
        logger.debug("Allocated member id %s for family %s (%s)", mahall_id, family["_id"], self.strategy)
        return mahall_id

    async def _family_baseline(self, tenant_id: Any) -> int:
        """Number of the most recently created family in the tenant, 0 if none or malformed."""
        last_family = await self.db_manager.get_collection(FAMILIES_COLLECTION).find_one(
            {"tenantId": as_reference(tenant_id)},
            {"mahallId": 1},
            sort=[("createdAt", -1), ("_id", -1)],
        )
        if not last_family:
            return 0
        number = parse_family_number(last_family.get("mahallId"), self.prefix)
        if number is None:
            logger.warning(
                "Unparseable mahallId %r on family %s; numbering restarts at 1",
                last_family.get("mahallId"),
                last_family.get("_id"),
            )
            return 0
        return number

    async def _advance(self, counter_id: str, baseline: int) -> int:
        """Raise the counter to at least ``baseline`` and return its incremented value."""
        counters = self.db_manager.get_collection(COUNTERS_COLLECTION)
        now = datetime.now(timezone.utc)

        # Two first-time upserts can race on the same _id; the loser retries as a plain update.
        for attempt in range(2):
            try:
                await counters.update_one(
                    {"_id": counter_id},
                    {"$max": {"seq": baseline}, "$set": {"updatedAt": now}},
                    upsert=True,
                )
                break
            except DuplicateKeyError:
                if attempt:
                    raise
                logger.debug("Counter %s created concurrently, retrying seed", counter_id)

        counter = await counters.find_one_and_update(
            {"_id": counter_id},
            {"$inc": {"seq": 1}, "$set": {"updatedAt": now}},
            return_document=ReturnDocument.AFTER,
        )
        return counter["seq"]


sequence_manager = SequenceManager()
