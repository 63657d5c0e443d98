"""
Tests for out-of-band activity record persistence.
"""

import asyncio

from bson import ObjectId
from pymongo.errors import AutoReconnect
import pytest

from mahallu_api.managers.audit_manager import AuditDispatcher


def _record(**fields):
    record = {
        "action": "update member",
        "entityType": "member",
        "httpMethod": "PUT",
        "endpoint": "/api/members/abc",
        "userId": ObjectId(),
        "tenantId": ObjectId(),
        "statusCode": 200,
    }
    record.update(fields)
    return record


@pytest.fixture
def dispatcher(fake_db):
    return AuditDispatcher(db_manager=fake_db, max_attempts=2, retry_delay=0, max_pending=10)


@pytest.mark.asyncio
class TestAuditDispatcher:
    """Test suite for AuditDispatcher."""

    async def test_persists_record(self, fake_db, dispatcher):
        task = dispatcher.dispatch(_record())

        assert await task is True
        assert len(fake_db.get_collection("activitylogs").documents) == 1
        assert dispatcher.pending_count == 0

    async def test_record_without_tenant_or_actor_is_skipped(self, fake_db, dispatcher):
        assert dispatcher.dispatch(_record(userId=None, tenantId=None)) is None
        assert fake_db.get_collection("activitylogs").calls["insert_one"] == 0

    async def test_record_with_only_actor_is_kept(self, fake_db, dispatcher):
        task = dispatcher.dispatch(_record(tenantId=None))

        assert await task is True

    async def test_retries_transient_failure(self, fake_db, dispatcher):
        logs = fake_db.get_collection("activitylogs")
        logs.fail_next("insert_one", AutoReconnect("primary stepped down"))

        assert await dispatcher.dispatch(_record()) is True
        assert logs.calls["insert_one"] == 2
        assert len(logs.documents) == 1

    async def test_drops_after_max_attempts(self, fake_db, dispatcher):
        logs = fake_db.get_collection("activitylogs")
        logs.fail_next("insert_one", AutoReconnect("down"), times=2)

        assert await dispatcher.dispatch(_record()) is False
        assert logs.calls["insert_one"] == 2
        assert logs.documents == []

    async def test_retry_does_not_duplicate_a_stored_record(self, fake_db, dispatcher):
        logs = fake_db.get_collection("activitylogs")
        record = _record()
        await dispatcher.dispatch(record)

        # Same record dispatched again keeps its _id and is treated as stored
        assert await dispatcher.dispatch(record) is True
        assert len(logs.documents) == 1

    async def test_drops_when_too_many_pending(self, fake_db):
        dispatcher = AuditDispatcher(db_manager=fake_db, max_attempts=1, retry_delay=0, max_pending=2)

        tasks = [dispatcher.dispatch(_record()) for _ in range(3)]

        assert tasks[2] is None
        assert dispatcher.pending_count == 2
        await asyncio.gather(*tasks[:2])
        assert len(fake_db.get_collection("activitylogs").documents) == 2

    async def test_drain_waits_for_pending(self, fake_db, dispatcher):
        for _ in range(3):
            dispatcher.dispatch(_record())

        assert await dispatcher.drain(timeout=1) == 0
        assert dispatcher.pending_count == 0
        assert len(fake_db.get_collection("activitylogs").documents) == 3

    async def test_drain_cancels_stuck_writes(self, fake_db):
        dispatcher = AuditDispatcher(db_manager=fake_db, max_attempts=2, retry_delay=10, max_pending=10)
        fake_db.get_collection("activitylogs").fail_next("insert_one", AutoReconnect("down"))
        dispatcher.dispatch(_record())

        assert await dispatcher.drain(timeout=0.05) == 1
