"""
Unit tests for tenant scope resolution and tenant-aware collections.

Tests how the actor and the request's tenant hints decide the scope, and how
the scope is applied to filters, inserted documents and ownership checks.
"""

from bson import ObjectId
import pytest

from mahallu_api.database.tenant_collection import TenantAwareCollection
from mahallu_api.middleware.tenant_context import TenantScope, resolve_tenant_scope
from mahallu_api.models.user_models import UserRole
from mahallu_api.utils.error_handling import ValidationFailure


class TestResolveTenantScope:
    """Test suite for resolve_tenant_scope."""

    def test_super_admin_with_header_hint(self, tenant_ids):
        tenant_a, _ = tenant_ids
        actor = {"_id": ObjectId(), "role": "super_admin", "tenantId": None}

        scope = resolve_tenant_scope(actor, header_hint=tenant_a)

        assert scope.tenant_id == tenant_a
        assert scope.is_elevated
        assert scope.actor_role is UserRole.SUPER_ADMIN

    def test_super_admin_without_hint_is_unscoped(self):
        scope = resolve_tenant_scope({"_id": ObjectId(), "role": "super_admin"})

        assert scope.is_unscoped
        assert scope.is_elevated

    def test_is_super_admin_flag_elevates_any_role(self, tenant_ids):
        tenant_a, _ = tenant_ids
        actor = {"_id": ObjectId(), "role": "mahall", "isSuperAdmin": True}

        scope = resolve_tenant_scope(actor, query_hint=tenant_a)

        assert scope.is_elevated
        assert scope.tenant_id == tenant_a

    def test_assigned_tenant_wins_over_hints(self, tenant_ids):
        tenant_a, tenant_b = tenant_ids
        actor = {"_id": ObjectId(), "role": "mahall", "tenantId": ObjectId(tenant_a)}

        scope = resolve_tenant_scope(actor, header_hint=tenant_b, query_hint=tenant_b, body_hint=tenant_b)

        assert scope.tenant_id == tenant_a
        assert not scope.is_elevated

    def test_hint_priority_header_query_body(self, tenant_ids):
        tenant_a, tenant_b = tenant_ids
        actor = {"_id": ObjectId(), "role": "survey"}

        assert resolve_tenant_scope(actor, tenant_a, tenant_b, tenant_b).tenant_id == tenant_a
        assert resolve_tenant_scope(actor, None, tenant_b, tenant_a).tenant_id == tenant_b
        assert resolve_tenant_scope(actor, "  ", None, tenant_a).tenant_id == tenant_a

    def test_unassigned_actor_without_hint(self):
        scope = resolve_tenant_scope({"_id": ObjectId(), "role": "survey"})

        assert scope.is_unscoped
        assert not scope.is_elevated

    def test_unknown_role_does_not_raise(self):
        scope = resolve_tenant_scope({"_id": ObjectId(), "role": "janitor"}, header_hint="abc")

        assert scope.actor_role is None
        assert scope.tenant_id == "abc"

    def test_anonymous_actor(self):
        scope = resolve_tenant_scope(None, body_hint="abc")

        assert scope.actor_id is None
        assert scope.tenant_id == "abc"


class TestTenantScope:
    """Test suite for the isolation step on filters and documents."""

    def test_scoped_filter_overrides_caller_tenant(self, tenant_ids):
        tenant_a, tenant_b = tenant_ids
        scope = TenantScope(tenant_id=tenant_a, actor_role=UserRole.MAHALL)

        assert scope.scoped_filter({"tenantId": ObjectId(tenant_b), "status": "active"}) == {
            "tenantId": ObjectId(tenant_a),
            "status": "active",
        }

    def test_scoped_filter_leaves_elevated_and_unscoped_alone(self, tenant_ids):
        tenant_a, tenant_b = tenant_ids
        query = {"tenantId": ObjectId(tenant_b)}

        assert TenantScope(tenant_id=tenant_a, is_elevated=True).scoped_filter(query) == query
        assert TenantScope().scoped_filter(query) == query

    def test_scoped_document_only_fills_missing_tenant(self, tenant_ids):
        tenant_a, tenant_b = tenant_ids
        scope = TenantScope(tenant_id=tenant_a)

        assert scope.scoped_document({"name": "x"})["tenantId"] == ObjectId(tenant_a)
        assert scope.scoped_document({"tenantId": ObjectId(tenant_b)})["tenantId"] == ObjectId(tenant_b)

    def test_tenant_filter_narrows_elevated_actor_viewing_a_tenant(self, tenant_ids):
        tenant_a, _ = tenant_ids

        assert TenantScope(tenant_id=tenant_a, is_elevated=True).tenant_filter() == {"tenantId": ObjectId(tenant_a)}
        assert TenantScope(is_elevated=True).tenant_filter({"status": "active"}) == {"status": "active"}

    def test_owns(self, tenant_ids):
        tenant_a, tenant_b = tenant_ids

        assert TenantScope(tenant_id=tenant_a).owns(ObjectId(tenant_a))
        assert not TenantScope(tenant_id=tenant_a).owns(ObjectId(tenant_b))
        assert not TenantScope().owns(ObjectId(tenant_a))
        assert TenantScope(is_elevated=True).owns(ObjectId(tenant_b))

    def test_require_tenant(self, tenant_ids):
        tenant_a, tenant_b = tenant_ids

        assert TenantScope(tenant_id=tenant_a).require_tenant(tenant_b) == tenant_a
        assert TenantScope(is_elevated=True).require_tenant(tenant_b) == tenant_b
        with pytest.raises(ValidationFailure, match="Tenant ID is required"):
            TenantScope(is_elevated=True).require_tenant(None)


@pytest.mark.asyncio
class TestTenantAwareCollection:
    """Test suite for tenant data isolation through the collection wrapper."""

    async def test_insert_adds_tenant_id(self, fake_db, tenant_ids):
        tenant_a, _ = tenant_ids
        raw = fake_db.get_collection("families")
        families = TenantAwareCollection(raw, TenantScope(tenant_id=tenant_a))

        result = await families.insert_one({"houseName": "Puthiyaveedu"})

        assert raw.by_id(result.inserted_id)["tenantId"] == ObjectId(tenant_a)

    async def test_find_filters_by_tenant(self, fake_db, tenant_ids):
        tenant_a, tenant_b = tenant_ids
        raw = fake_db.get_collection("families")
        raw.documents.extend(
            [
                {"_id": ObjectId(), "tenantId": ObjectId(tenant_a), "houseName": "A1"},
                {"_id": ObjectId(), "tenantId": ObjectId(tenant_a), "houseName": "A2"},
                {"_id": ObjectId(), "tenantId": ObjectId(tenant_b), "houseName": "B1"},
            ]
        )

        scoped = TenantAwareCollection(raw, TenantScope(tenant_id=tenant_a))
        docs = await scoped.find({"tenantId": ObjectId(tenant_b)}).to_list(length=None)

        assert sorted(d["houseName"] for d in docs) == ["A1", "A2"]
        assert await scoped.count_documents({}) == 2

    async def test_update_and_delete_cannot_reach_other_tenant(self, fake_db, tenant_ids):
        tenant_a, tenant_b = tenant_ids
        raw = fake_db.get_collection("families")
        other = {"_id": ObjectId(), "tenantId": ObjectId(tenant_b), "status": "pending"}
        raw.documents.append(other)
        scoped = TenantAwareCollection(raw, TenantScope(tenant_id=tenant_a))

        update = await scoped.update_one({"_id": other["_id"]}, {"$set": {"status": "approved"}})
        delete = await scoped.delete_one({"_id": other["_id"]})

        assert update.matched_count == 0
        assert delete.deleted_count == 0
        assert raw.by_id(other["_id"])["status"] == "pending"

    async def test_elevated_scope_passes_through(self, fake_db, tenant_ids):
        tenant_a, tenant_b = tenant_ids
        raw = fake_db.get_collection("members")
        raw.documents.append({"_id": ObjectId(), "tenantId": ObjectId(tenant_b), "name": "x"})
        scoped = TenantAwareCollection(raw, TenantScope(tenant_id=tenant_a, is_elevated=True))

        assert await scoped.find_one({"name": "x"}) is not None
        assert scoped.name == "members"
