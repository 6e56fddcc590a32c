from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


ContentKind = Literal["film", "photo"]
ApprovalStatus = Literal["pending", "approved", "rejected"]
TagRequestStatus = Literal["pending", "approved", "denied"]


class TagsIn(BaseModel):
    """
    roles: multi-valued roles (film: rider/filmer/company, photo: rider) -> user ids.
    The *_user_id fields are the single-valued role fields; send null to clear one.
    """

    roles: Dict[str, List[str]] = Field(default_factory=dict)
    filmer_user_id: Optional[str] = None
    editor_user_id: Optional[str] = None
    company_user_id: Optional[str] = None
    photographer_user_id: Optional[str] = None


class ContentCreateIn(BaseModel):
    kind: ContentKind
    title: str = Field(..., min_length=1, max_length=400)
    tags: TagsIn = Field(default_factory=TagsIn)


class ContentUpdateIn(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=400)
    tags: Optional[TagsIn] = None


class ParticipantOut(BaseModel):
    user_id: str
    role: str


class ApprovalOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    content_id: str
    approver_id: str
    approval_type: str
    status: ApprovalStatus
    rejection_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class ContentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    kind: ContentKind
    title: str
    owner_id: Optional[str] = None
    published: bool
    participants: List[ParticipantOut] = Field(default_factory=list)
    approvals: List[ApprovalOut] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class ContentSummaryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    kind: ContentKind
    title: str
    owner_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class ContentListOut(BaseModel):
    items: List[ContentSummaryOut]
    limit: int
    offset: int
    total: int


class ReconcileOut(BaseModel):
    content_id: str
    created: List[ParticipantOut]
    deleted: List[ParticipantOut]
    conflicts: int
    ok: bool


class RejectIn(BaseModel):
    rejection_reason: Optional[str] = Field(None, max_length=2000)


class TagRequestIn(BaseModel):
    role: str = Field(..., min_length=1, max_length=32)
    message: Optional[str] = Field(None, max_length=2000)


class TagRequestOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    content_id: str
    requester_id: str
    role: str
    status: TagRequestStatus
    message: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class NotificationOut(BaseModel):
    id: str
    action: str
    actor_id: str
    notifiable_type: str
    notifiable_id: str
    read: bool
    title: str
    message: str
    path: str
    created_at: datetime


class ActivityCountsOut(BaseModel):
    pending_approvals_count: int
    unread_notifications_count: int
    total_activity_count: int
