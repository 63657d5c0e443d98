"""
Pydantic models and role enumeration for users.

Roles are a closed set; every role dispatch in the codebase goes through
``UserRole`` rather than comparing raw strings.
"""

from enum import Enum
from typing import Literal, Optional

from pydantic import EmailStr, Field, field_validator

from mahallu_api.models.common import CamelModel

USER_STATUSES = ["active", "inactive"]


class UserRole(str, Enum):
    SUPER_ADMIN = "super_admin"
    MAHALL = "mahall"
    SURVEY = "survey"
    INSTITUTE = "institute"
    MEMBER = "member"

    @classmethod
    def parse(cls, value) -> Optional["UserRole"]:
        """Return the role for ``value`` or None for unknown values."""
        try:
            return cls(value)
        except ValueError:
            return None


class Permissions(CamelModel):
    view: bool = False
    add: bool = False
    edit: bool = False
    delete: bool = False


MEMBER_DEFAULT_PERMISSIONS = Permissions(view=True)


class CreateUserRequest(CamelModel):
    """Request model for creating a user of any role."""

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    phone: Optional[str] = Field(None, max_length=20)
    email: Optional[EmailStr] = None
    role: UserRole = UserRole.MAHALL
    tenant_id: Optional[str] = None
    member_id: Optional[str] = None
    institute_id: Optional[str] = None
    password: Optional[str] = Field(None, min_length=4)
    permissions: Optional[Permissions] = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        return v.lower() if v else v


class UpdateUserRequest(CamelModel):
    """Fields an administrator may change on an existing user."""

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    phone: Optional[str] = Field(None, max_length=20)
    email: Optional[EmailStr] = None
    status: Optional[Literal["active", "inactive"]] = None
    institute_id: Optional[str] = None
    permissions: Optional[Permissions] = None


class UpdateUserStatusRequest(CamelModel):
    status: Literal["active", "inactive"]
