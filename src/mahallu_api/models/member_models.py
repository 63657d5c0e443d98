"""Pydantic models for member (individual) records."""

from typing import Literal, Optional

from pydantic import EmailStr, Field

from mahallu_api.models.common import CamelModel

MEMBER_STATUSES = ["active", "inactive", "deleted"]
BLOOD_GROUPS = ["A +ve", "A -ve", "B +ve", "B -ve", "AB +ve", "AB -ve", "O +ve", "O -ve"]

MemberStatus = Literal["active", "inactive", "deleted"]
BloodGroup = Literal["A +ve", "A -ve", "B +ve", "B -ve", "AB +ve", "AB -ve", "O +ve", "O -ve"]


class MemberFields(CamelModel):
    family_name: Optional[str] = None
    age: Optional[int] = Field(None, ge=0)
    gender: Optional[Literal["male", "female"]] = None
    blood_group: Optional[BloodGroup] = None
    health_status: Optional[str] = None
    phone: Optional[str] = None
    education: Optional[str] = None


class CreateMemberRequest(MemberFields):
    """Request model for creating a member inside a family."""

    tenant_id: Optional[str] = None
    family_id: str
    name: str = Field(..., min_length=1)


class UpdateMemberRequest(MemberFields):
    """Status changes go through the status endpoint so they cascade."""

    family_id: Optional[str] = None
    name: Optional[str] = Field(None, min_length=1)


class UpdateMemberStatusRequest(CamelModel):
    status: MemberStatus


class UpdateOwnProfileRequest(CamelModel):
    """A member user may change only their contact details."""

    phone: Optional[str] = Field(None, min_length=1)
    email: Optional[EmailStr] = None
