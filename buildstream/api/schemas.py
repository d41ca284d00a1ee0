"""Pydantic schemas for request/response validation."""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

from buildstream.models.enums import FormKind, HazardLevel, LogStatus, Shift, UserRole, UserStatus
from buildstream.models.records import (
    EquipmentUsage,
    MaterialUsage,
    SessionRecord,
    SiteRecord,
    UserRecord,
)


class CamelModel(BaseModel):
    """Accepts camelCase or snake_case on input, serializes camelCase."""
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)


# Auth schemas
class SignupRequest(CamelModel):
    name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr
    password: str
    role: UserRole
    site_id: Optional[str] = None


class LoginRequest(CamelModel):
    email: EmailStr
    password: str


class LoginResponse(CamelModel):
    session: SessionRecord
    profile: UserRecord


# Bootstrap schemas
class BootstrapStatus(CamelModel):
    required: bool


class BootstrapRequest(CamelModel):
    site_name: str = Field(..., min_length=1)
    site_location: str = ""
    site_budget: float = Field(0, ge=0)
    admin_name: str = Field(..., min_length=1)
    admin_email: EmailStr
    admin_password: str


class BootstrapResponse(CamelModel):
    site: SiteRecord
    admin: UserRecord


# User schemas
class StatusUpdate(CamelModel):
    status: UserStatus


class OnboardingRequest(CamelModel):
    phone: Optional[str] = Field(None, max_length=40)
    avatar: Optional[str] = None


# Site schemas
class SiteCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=200)
    location: str = ""
    progress: int = Field(0, ge=0, le=100)
    budget: float = Field(0, ge=0)
    spent: float = Field(0, ge=0)


# Site log schemas
class SiteLogCreate(CamelModel):
    site_id: str
    shift: Shift = Shift.DAY
    block_name: str = ""
    foreman_name: Optional[str] = None
    workers_count: int = Field(0, ge=0)
    work_completed: str = ""
    material_usage: List[MaterialUsage] = []
    equipment_usage: List[EquipmentUsage] = []
    incidents: str = ""
    photos: List[str] = []
    status: LogStatus = LogStatus.DRAFT
    date: Optional[str] = None


class SiteLogDraftUpdate(CamelModel):
    """Only fields present in the request body are rewritten."""
    site_id: Optional[str] = None
    shift: Optional[Shift] = None
    block_name: Optional[str] = None
    foreman_name: Optional[str] = None
    workers_count: Optional[int] = Field(None, ge=0)
    work_completed: Optional[str] = None
    material_usage: Optional[List[MaterialUsage]] = None
    equipment_usage: Optional[List[EquipmentUsage]] = None
    incidents: Optional[str] = None
    photos: Optional[List[str]] = None
    date: Optional[str] = None


class ReviewRequest(CamelModel):
    decision: LogStatus
    feedback: str = ""


# Safety report schemas
class SafetyReportCreate(CamelModel):
    site_id: str
    hazard_level: HazardLevel
    ppe_compliance: bool
    observations: str = ""
    action_required: str = ""
    photos: List[str] = []
    date: Optional[str] = None


# Draft cache schemas
class FormDraftBody(CamelModel):
    payload: Dict[str, Any]


class FormDraftResponse(CamelModel):
    form_kind: FormKind
    payload: Optional[Dict[str, Any]] = None


# Insight
class InsightResponse(CamelModel):
    summary: str
    log_count: int


# Error response
class ErrorDetail(BaseModel):
    """Body of every typed error response."""
    error: str
    message: str


class ErrorResponse(BaseModel):
    detail: ErrorDetail
