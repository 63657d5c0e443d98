"""Middleware package for Mahallu API."""

from mahallu_api.middleware.activity_logger import ActivityLoggerMiddleware
from mahallu_api.middleware.tenant_context import TenantScope, resolve_tenant_scope

__all__ = ["ActivityLoggerMiddleware", "TenantScope", "resolve_tenant_scope"]
