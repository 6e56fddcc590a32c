from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import NamedTuple, Optional

FILM = "film"
PHOTO = "photo"
CONTENT_KINDS: tuple[str, ...] = (FILM, PHOTO)

# Roles a user can be credited in, per content kind.
ROLES: dict[str, tuple[str, ...]] = {
    FILM: ("rider", "filmer", "company", "editor"),
    PHOTO: ("rider", "photographer", "company"),
}

# Roles stored as join rows (any number of users per role).
MULTI_ROLES: dict[str, tuple[str, ...]] = {
    FILM: ("rider", "filmer", "company"),
    PHOTO: ("rider",),
}

# Single-valued reference columns on content_items and the role each credits.
# Film filmer/company columns are the legacy single fields; they count as tags too.
ROLE_COLUMNS: dict[str, dict[str, str]] = {
    FILM: {
        "filmer_user_id": "filmer",
        "editor_user_id": "editor",
        "company_user_id": "company",
    },
    PHOTO: {
        "photographer_user_id": "photographer",
        "company_user_id": "company",
    },
}

PENDING = "pending"
APPROVED = "approved"
REJECTED = "rejected"
DENIED = "denied"


class Participant(NamedTuple):
    user_id: str
    role: str


class SubjectRef(NamedTuple):
    """What a notification points at: a kind discriminator plus an id."""

    kind: str
    id: str


@dataclass(frozen=True)
class User:
    id: str
    username: str
    name: Optional[str]
    created_at: datetime


@dataclass(frozen=True)
class ContentItem:
    id: str
    kind: str
    title: str
    owner_id: Optional[str]
    filmer_user_id: Optional[str]
    editor_user_id: Optional[str]
    company_user_id: Optional[str]
    photographer_user_id: Optional[str]
    created_at: datetime
    updated_at: datetime

    @property
    def subject(self) -> SubjectRef:
        return SubjectRef(self.kind, self.id)


@dataclass(frozen=True)
class ApprovalRecord:
    id: str
    content_id: str
    approver_id: str
    approval_type: str
    status: str
    rejection_reason: Optional[str]
    created_at: datetime
    updated_at: datetime

    @property
    def participant(self) -> Participant:
        return Participant(self.approver_id, self.approval_type)


@dataclass(frozen=True)
class TagRequest:
    id: str
    content_id: str
    requester_id: str
    role: str
    status: str
    message: Optional[str]
    created_at: datetime
    updated_at: datetime

    @property
    def participant(self) -> Participant:
        return Participant(self.requester_id, self.role)


@dataclass(frozen=True)
class Notification:
    id: str
    user_id: str
    actor_id: str
    notifiable_type: str
    notifiable_id: str
    action: str
    read_at: Optional[datetime]
    created_at: datetime
