"""Mahallu API: multi-tenant community records backend."""

__version__ = "1.0.0"
