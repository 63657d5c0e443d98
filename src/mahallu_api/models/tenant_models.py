"""Pydantic models for tenant (community) management."""

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import Field, field_validator

from mahallu_api.models.common import CamelModel

TENANT_TYPES = ["standard", "premium", "enterprise"]
TENANT_STATUSES = ["active", "suspended", "inactive"]


class TenantAddress(CamelModel):
    state: str
    district: str
    pin_code: Optional[str] = None
    post_office: Optional[str] = None
    lsg_name: str
    village: str


class TenantSubscription(CamelModel):
    plan: str = "basic"
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    is_active: bool = True


class TenantSettings(CamelModel):
    varisangya_amount: Optional[float] = None
    varisangya_grades: Optional[List[Dict]] = None
    education_options: Optional[List[str]] = None
    features: Optional[Dict[str, bool]] = None


class CreateTenantRequest(CamelModel):
    """Request model for creating a new tenant."""

    name: str = Field(..., min_length=2, max_length=150)
    code: str = Field(..., min_length=2, max_length=30)
    type: Literal["standard", "premium", "enterprise"] = "standard"
    location: Optional[str] = None
    address: TenantAddress
    logo: Optional[str] = None
    subscription: Optional[TenantSubscription] = None
    settings: Optional[TenantSettings] = None

    @field_validator("code")
    @classmethod
    def upper_code(cls, v):
        return v.strip().upper()


class UpdateTenantRequest(CamelModel):
    """Request model for updating tenant information. ``settings`` is merged."""

    name: Optional[str] = Field(None, min_length=2, max_length=150)
    type: Optional[Literal["standard", "premium", "enterprise"]] = None
    location: Optional[str] = None
    address: Optional[TenantAddress] = None
    logo: Optional[str] = None
    status: Optional[Literal["active", "suspended", "inactive"]] = None
    subscription: Optional[TenantSubscription] = None
    settings: Optional[TenantSettings] = None
