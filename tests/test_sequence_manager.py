"""
Tests for family and member identifier allocation.

Covers both strategies: ``atomic`` (counter documents, safe under concurrency)
and ``legacy`` (read the latest value and add one).
"""

import asyncio
from datetime import datetime, timedelta, timezone

from bson import ObjectId
import pytest

from mahallu_api.managers.sequence_manager import SequenceManager, parse_family_number


def _family(tenant_id, mahall_id, minutes_ago=0):
    return {
        "_id": ObjectId(),
        "tenantId": ObjectId(tenant_id),
        "mahallId": mahall_id,
        "houseName": "House",
        "createdAt": datetime.now(timezone.utc) - timedelta(minutes=minutes_ago),
    }


class TestParseFamilyNumber:
    def test_valid_identifiers(self):
        assert parse_family_number("FID1") == 1
        assert parse_family_number("FID0042") == 42
        assert parse_family_number("OLD-FID7") == 7

    def test_malformed_identifiers(self):
        assert parse_family_number("HOUSE-12") is None
        assert parse_family_number("FID") is None
        assert parse_family_number(None) is None


@pytest.mark.asyncio
@pytest.mark.parametrize("strategy", ["atomic", "legacy"])
class TestSequenceValues:
    """Allocation results shared by both strategies."""

    async def test_first_family_in_tenant(self, fake_db, tenant_ids, strategy):
        manager = SequenceManager(db_manager=fake_db, strategy=strategy)

        assert await manager.next_family_id(tenant_ids[0]) == "FID1"

    async def test_continues_from_latest_family(self, fake_db, tenant_ids, strategy):
        tenant_a, _ = tenant_ids
        families = fake_db.get_collection("families")
        families.documents.extend([_family(tenant_a, "FID3", minutes_ago=10), _family(tenant_a, "FID7")])
        manager = SequenceManager(db_manager=fake_db, strategy=strategy)

        assert await manager.next_family_id(tenant_a) == "FID8"

    async def test_malformed_latest_family_restarts_at_one(self, fake_db, tenant_ids, strategy):
        tenant_a, _ = tenant_ids
        fake_db.get_collection("families").documents.append(_family(tenant_a, "HOUSE-9"))
        manager = SequenceManager(db_manager=fake_db, strategy=strategy)

        assert await manager.next_family_id(tenant_a) == "FID1"

    async def test_tenants_are_numbered_independently(self, fake_db, tenant_ids, strategy):
        tenant_a, tenant_b = tenant_ids
        fake_db.get_collection("families").documents.append(_family(tenant_a, "FID5"))
        manager = SequenceManager(db_manager=fake_db, strategy=strategy)

        assert await manager.next_family_id(tenant_b) == "FID1"

    async def test_member_ids_follow_family(self, fake_db, tenant_ids, strategy):
        tenant_a, _ = tenant_ids
        family = _family(tenant_a, "FID1")
        members = fake_db.get_collection("members")
        members.documents.extend(
            [{"_id": ObjectId(), "familyId": family["_id"], "mahallId": f"FID1-{k}"} for k in (1, 2)]
        )
        manager = SequenceManager(db_manager=fake_db, strategy=strategy)

        assert await manager.next_member_id(family) == "FID1-3"

    async def test_family_without_identifier_yields_none(self, fake_db, tenant_ids, strategy):
        family = _family(tenant_ids[0], None)
        manager = SequenceManager(db_manager=fake_db, strategy=strategy)

        assert await manager.next_member_id(family) is None


@pytest.mark.asyncio
class TestConcurrentAllocation:
    """Concurrent allocation for the same tenant."""

    async def test_atomic_never_repeats(self, fake_db, tenant_ids):
        tenant_a, _ = tenant_ids
        fake_db.get_collection("families").documents.append(_family(tenant_a, "FID4"))
        manager = SequenceManager(db_manager=fake_db, strategy="atomic")

        allocated = await asyncio.gather(*(manager.next_family_id(tenant_a) for _ in range(5)))

        assert sorted(allocated) == ["FID5", "FID6", "FID7", "FID8", "FID9"]

    async def test_atomic_member_ids_unique(self, fake_db, tenant_ids):
        family = _family(tenant_ids[0], "FID2")
        manager = SequenceManager(db_manager=fake_db, strategy="atomic")

        allocated = await asyncio.gather(*(manager.next_member_id(family) for _ in range(3)))

        assert sorted(allocated) == ["FID2-1", "FID2-2", "FID2-3"]

    async def test_legacy_can_repeat(self, fake_db, tenant_ids):
        tenant_a, _ = tenant_ids
        manager = SequenceManager(db_manager=fake_db, strategy="legacy")

        first, second = await asyncio.gather(manager.next_family_id(tenant_a), manager.next_family_id(tenant_a))

        assert first == second == "FID1"

    async def test_atomic_seeds_counter_from_existing_data(self, fake_db, tenant_ids):
        tenant_a, _ = tenant_ids
        fake_db.get_collection("families").documents.append(_family(tenant_a, "FID10"))
        manager = SequenceManager(db_manager=fake_db, strategy="atomic")

        await manager.next_family_id(tenant_a)

        counter = fake_db.get_collection("sequence_counters").by_id(f"family:{tenant_a}")
        assert counter["seq"] == 11
