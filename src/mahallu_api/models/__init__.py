"""
Data models for Mahallu API.

This module contains Pydantic models for request validation and the role
enumeration shared by the managers.
"""

from .user_models import UserRole

__all__ = ["UserRole"]
