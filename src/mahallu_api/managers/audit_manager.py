"""
Out-of-band persistence of request activity records.

Records are written to ``activitylogs`` by background tasks so a request never
waits on its own audit write. The dispatcher bounds both the number of pending
writes and the number of attempts per record; a record that cannot be stored
is dropped and the drop is logged.
"""

import asyncio
from typing import Any, Dict, Optional, Set

from bson import ObjectId
from pymongo.errors import DuplicateKeyError, PyMongoError

from mahallu_api.config import settings
from mahallu_api.database import db_manager
from mahallu_api.managers.logging_manager import get_logger

logger = get_logger(prefix="[Activity Logger]")

ACTIVITY_LOG_COLLECTION = "activitylogs"


class AuditDispatcher:
    """Schedules activity-record writes as tracked asyncio tasks."""

    def __init__(
        self,
        db_manager=None,
        max_attempts: int = None,
        retry_delay: float = None,
        max_pending: int = None,
    ):
        self.db_manager = db_manager or globals()["db_manager"]
        self.max_attempts = max_attempts or settings.AUDIT_MAX_ATTEMPTS
        self.retry_delay = settings.AUDIT_RETRY_DELAY_SECONDS if retry_delay is None else retry_delay
        self.max_pending = max_pending or settings.AUDIT_MAX_PENDING
        self._pending: Set[asyncio.Task] = set()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def dispatch(self, record: Dict[str, Any]) -> Optional[asyncio.Task]:
        """
        Schedule ``record`` for persistence.

        Records with neither a tenant nor an actor are not stored. Returns the
        write task, or None if the record was not scheduled.
        """
        if not record.get("tenantId") and not record.get("userId"):
            logger.debug("Skipping activity record without tenant or actor: %s", record.get("action"))
            return None

        if len(self._pending) >= self.max_pending:
            logger.warning(
                "Dropping activity record '%s %s': %d writes already pending",
                record.get("httpMethod"),
                record.get("endpoint"),
                len(self._pending),
            )
            return None

        # A fixed _id makes a retried insert idempotent
        record.setdefault("_id", ObjectId())
        task = asyncio.create_task(self._persist(record))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _persist(self, record: Dict[str, Any]) -> bool:
        for attempt in range(1, self.max_attempts + 1):
            try:
                await self.db_manager.get_collection(ACTIVITY_LOG_COLLECTION).insert_one(record)
                return True
            except DuplicateKeyError:
                return True
            except (PyMongoError, RuntimeError) as e:
                if attempt < self.max_attempts:
                    logger.warning(
                        "Activity record write failed (attempt %d/%d): %s", attempt, self.max_attempts, e
                    )
                    await asyncio.sleep(self.retry_delay)
                    continue
                logger.error(
                    "Dropping activity record '%s' for %s %s after %d attempts: %s",
                    record.get("action"),
                    record.get("httpMethod"),
                    record.get("endpoint"),
                    self.max_attempts,
                    e,
                )
        return False

    async def drain(self, timeout: float = None) -> int:
        """
        Wait for pending writes, cancelling whatever is left after ``timeout``.

        Returns the number of writes that were cancelled.
        """
        if not self._pending:
            return 0

        timeout = settings.AUDIT_DRAIN_TIMEOUT_SECONDS if timeout is None else timeout
        logger.info("Draining %d pending activity writes", len(self._pending))
        _, still_pending = await asyncio.wait(set(self._pending), timeout=timeout)
        for task in still_pending:
            task.cancel()
        if still_pending:
            logger.warning("Cancelled %d activity writes still pending at shutdown", len(still_pending))
        return len(still_pending)


audit_dispatcher = AuditDispatcher()
