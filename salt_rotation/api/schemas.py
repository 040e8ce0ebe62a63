"""
Response models for the rotation HTTP surface.
"""

from pydantic import BaseModel, field_validator
from typing import Optional, List, Dict, Any
from datetime import datetime


class HealthResponse(BaseModel):
    status: str
    version: str
    db_health: bool
    rotation_disabled: bool


class RotationAttemptResponse(BaseModel):
    timestamp: datetime
    status: str
    output: str
    error: str
    snapshot_id: Optional[str] = None
    duration: float
    triggered_by: str


class RotationStatusResponse(BaseModel):
    last_success: Optional[datetime] = None
    overdue: bool
    rotation_disabled: bool
    snapshot_count: int
    recent_attempts: List[RotationAttemptResponse]
    scheduler: Dict[str, Any]


class ManualRotationRequest(BaseModel):
    reason: str = ""

    @field_validator('reason')
    @classmethod
    def reason_must_be_short(cls, v):
        if len(v) > 200:
            raise ValueError('reason must be at most 200 characters')
        return v


class RotationRunResponse(BaseModel):
    executed: bool
    status: Optional[str] = None
    states: List[str] = []
    snapshot_id: Optional[str] = None
    error: str = ""
    pruned: List[str] = []
    notified: bool = False


class SnapshotListResponse(BaseModel):
    snapshot_ids: List[str]
    retention: int
