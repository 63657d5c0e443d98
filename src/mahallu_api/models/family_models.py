"""Pydantic models for family (household) records."""

from typing import Literal, Optional

from pydantic import Field

from mahallu_api.models.common import CamelModel

FAMILY_STATUSES = ["approved", "unapproved", "pending"]
VARISANGYA_GRADES = ["Grade A", "Grade B", "Grade C", "Grade D"]


class FamilyFields(CamelModel):
    family_head: Optional[str] = None
    contact_no: Optional[str] = None
    ward_number: Optional[str] = None
    house_no: Optional[str] = None
    area: Optional[str] = None
    place: Optional[str] = None
    via: Optional[str] = None
    pin_code: Optional[str] = None
    post_office: Optional[str] = None
    varisangya_grade: Optional[Literal["Grade A", "Grade B", "Grade C", "Grade D"]] = None


class CreateFamilyRequest(FamilyFields):
    """Request model for creating a family. ``mahallId`` is always allocated."""

    tenant_id: Optional[str] = None
    house_name: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    district: str = Field(..., min_length=1)
    lsg_name: str = Field(..., min_length=1)
    village: str = Field(..., min_length=1)
    status: Literal["approved", "unapproved", "pending"] = "pending"


class UpdateFamilyRequest(FamilyFields):
    """Request model for updating a family. ``mahallId`` cannot be changed."""

    house_name: Optional[str] = Field(None, min_length=1)
    state: Optional[str] = Field(None, min_length=1)
    district: Optional[str] = Field(None, min_length=1)
    lsg_name: Optional[str] = Field(None, min_length=1)
    village: Optional[str] = Field(None, min_length=1)
    status: Optional[Literal["approved", "unapproved", "pending"]] = None
