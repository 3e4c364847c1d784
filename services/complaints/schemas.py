"""
Request/response models for the complaints service.
"""

import uuid
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from common.complaint_types import Category, ComplaintStatus, Priority
from common.constants import MAX_RATING, MIN_RATING


class Point(BaseModel):
    lat: float
    lon: float


class FeedbackEntryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    rating: Optional[int] = None
    comment: Optional[str] = None
    proof_url: Optional[str] = None
    created_at: datetime
    reviewed_at: Optional[datetime] = None


class ComplaintRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    reporter_id: str
    title: str
    description: str
    category: Category
    image_url: str
    voice_note_url: Optional[str] = None
    location_name: Optional[str] = None
    location: Point
    priority: Priority
    department: Optional[Category] = None
    status: ComplaintStatus
    is_final: bool
    feedback_history: List[FeedbackEntryRead] = []
    created_at: datetime
    updated_at: datetime


class StatusUpdateRequest(BaseModel):
    status: ComplaintStatus


class PriorityUpdateRequest(BaseModel):
    priority: Priority


class FeedbackRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    rating: int = Field(..., ge=MIN_RATING, le=MAX_RATING)
    comment: Optional[str] = Field(None, max_length=2000)
    wants_to_reopen: bool = Field(False, alias="wantsToReopen")


class ForwardRequest(BaseModel):
    department: Category


class ProofResponse(BaseModel):
    message: str
    complaint: ComplaintRead


class AuditEventRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    log_id: uuid.UUID
    user_id: Optional[str] = None
    event_type: str
    message: str
    created_at: Optional[datetime] = None


class ComplaintStats(BaseModel):
    total: int
    by_status: Dict[str, int]
    by_category: Dict[str, int]
    by_priority: Dict[str, int]
