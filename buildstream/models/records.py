"""
Typed records handed out by the stores.

ORM rows never leave the store layer; they are converted to these records at
the boundary. Records serialize with camelCase aliases (siteId, blockName)
for the HTTP layer and accept either naming on input.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from buildstream.models.enums import HazardLevel, LogStatus, Shift, UserRole, UserStatus


class Record(BaseModel):
    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        alias_generator=to_camel,
        frozen=True,
    )


class MaterialUsage(Record):
    item: str = Field(..., min_length=1)
    quantity: str
    unit: str


class EquipmentUsage(Record):
    item: str = Field(..., min_length=1)
    hours: float = Field(..., ge=0)


class SiteRecord(Record):
    id: str
    name: str
    location: str
    progress: int
    budget: float
    spent: float


class UserRecord(Record):
    id: str
    name: str
    email: str
    phone: Optional[str] = None
    role: UserRole
    site_id: Optional[str] = None
    status: UserStatus
    last_active: Optional[datetime] = None
    avatar: Optional[str] = None
    onboarded_at: Optional[datetime] = None


class SiteLogRecord(Record):
    id: str
    date: str
    shift: Shift
    site_id: str
    block_name: str
    foreman_name: str
    status: LogStatus
    workers_count: int
    work_completed: str
    material_usage: List[MaterialUsage] = []
    equipment_usage: List[EquipmentUsage] = []
    incidents: str
    photos: List[str] = []
    timestamp: datetime
    engineer_feedback: Optional[str] = None
    submitted_by_user_id: Optional[str] = None
    reviewed_by_user_id: Optional[str] = None
    reviewed_at: Optional[datetime] = None


class SafetyReportRecord(Record):
    id: str
    date: str
    site_id: str
    hazard_level: HazardLevel
    ppe_compliance: bool
    observations: str
    action_required: str
    photos: List[str] = []
    reported_by_user_id: Optional[str] = None
    created_at: datetime


class SessionRecord(Record):
    """A signed session issued by the identity store."""
    identity_id: str
    access_token: str
    token_type: str = "bearer"
    expires_at: datetime
