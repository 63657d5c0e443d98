"""
Tenant-aware collection wrapper for automatic tenant isolation.

This module provides a wrapper around AsyncIOMotorCollection that applies a
request's ``TenantScope`` to every database operation: read filters of a
scoped, non-elevated actor get ``tenantId`` forced to the scope's tenant, and
inserted documents get ``tenantId`` when they do not already carry one.
Elevated and unscoped actors pass through unchanged.
"""

from typing import Any, Dict, Optional

from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorCursor

from mahallu_api.managers.logging_manager import get_logger
from mahallu_api.middleware.tenant_context import TenantScope

logger = get_logger(prefix="[Tenant Collection]")


class TenantAwareCollection:
    """
    Wrapper that scopes queries and inserts to a tenant.

    Lookups by id that must distinguish "missing" from "belongs to another
    tenant" go to the raw collection and use ``TenantScope.owns`` instead.
    """

    def __init__(self, collection: AsyncIOMotorCollection, scope: TenantScope):
        """
        Initialize the tenant-aware collection wrapper.

        Args:
            collection: The underlying MongoDB collection
            scope: The request's tenant scope
        """
        self._collection = collection
        self._scope = scope

    async def find_one(self, filter: Optional[Dict[str, Any]] = None, *args, **kwargs) -> Optional[Dict[str, Any]]:
        filter = self._scope.scoped_filter(filter)
        return await self._collection.find_one(filter, *args, **kwargs)

    def find(self, filter: Optional[Dict[str, Any]] = None, *args, **kwargs) -> AsyncIOMotorCursor:
        filter = self._scope.scoped_filter(filter)
        logger.debug("find on '%s' for tenant %s with filter: %s", self.name, self._scope.tenant_id, filter)
        return self._collection.find(filter, *args, **kwargs)

    async def count_documents(self, filter: Optional[Dict[str, Any]] = None, *args, **kwargs) -> int:
        filter = self._scope.scoped_filter(filter)
        return await self._collection.count_documents(filter, *args, **kwargs)

    async def insert_one(self, document: Dict[str, Any], *args, **kwargs):
        """Insert a single document, filling tenantId from the scope when absent."""
        document = self._scope.scoped_document(document)
        result = await self._collection.insert_one(document, *args, **kwargs)
        logger.debug("insert_one on '%s' for tenant %s: inserted_id=%s", self.name, self._scope.tenant_id, result.inserted_id)
        return result

    async def update_one(self, filter: Dict[str, Any], update: Dict[str, Any], *args, **kwargs):
        filter = self._scope.scoped_filter(filter)
        return await self._collection.update_one(filter, update, *args, **kwargs)

    async def find_one_and_update(
        self, filter: Dict[str, Any], update: Dict[str, Any], *args, **kwargs
    ) -> Optional[Dict[str, Any]]:
        filter = self._scope.scoped_filter(filter)
        return await self._collection.find_one_and_update(filter, update, *args, **kwargs)

    async def delete_one(self, filter: Dict[str, Any], *args, **kwargs):
        filter = self._scope.scoped_filter(filter)
        result = await self._collection.delete_one(filter, *args, **kwargs)
        logger.debug("delete_one on '%s' for tenant %s: deleted=%d", self.name, self._scope.tenant_id, result.deleted_count)
        return result

    @property
    def name(self) -> str:
        """Get the collection name."""
        return self._collection.name
