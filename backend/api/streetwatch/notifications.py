"""Notification emitter.

Notifications are best-effort side effects of approval and tag-request
transitions. Each write runs in its own transaction after the transition has
committed; a failed write is logged and reported as False, never raised.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from streetwatch import repo
from streetwatch.models import Notification, SubjectRef

logger = logging.getLogger(__name__)

# Subject kinds a notification can point at.
APPROVAL = "approval"
TAG_REQUEST = "tag_request"
FOLLOW = "follow"

# Actions
TAG_APPROVED = "tag_approved"
TAG_REJECTED = "tag_rejected"
CONTENT_PUBLISHED = "content_published"
TAG_REQUESTED = "tag_requested"
TAG_REQUEST_APPROVED = "tag_request_approved"
TAG_REQUEST_DENIED = "tag_request_denied"

# Actions where the actor may also be a recipient.
SELF_NOTIFYING_ACTIONS = frozenset({CONTENT_PUBLISHED})


# (subject kind, action) -> (title, message template, path template).
# Templates see {actor}, {id}, {actor_id}.
_PRESENTATION: dict[tuple[str, str], tuple[str, str, str]] = {
    (APPROVAL, TAG_APPROVED): ("Tag Approved", "{actor} approved their tag", "/approvals/{id}"),
    (APPROVAL, TAG_REJECTED): ("Tag Rejected", "{actor} rejected their tag", "/approvals/{id}"),
    ("film", CONTENT_PUBLISHED): ("Film Published", "A film you're part of is now published", "/films/{id}"),
    ("photo", CONTENT_PUBLISHED): ("Photo Published", "A photo you're part of is now published", "/photos/{id}"),
    (TAG_REQUEST, TAG_REQUESTED): ("Tag Request", "{actor} asked to be tagged", "/tag-requests/{id}"),
    (TAG_REQUEST, TAG_REQUEST_APPROVED): ("Tag Request Approved", "{actor} approved your tag request", "/tag-requests/{id}"),
    (TAG_REQUEST, TAG_REQUEST_DENIED): ("Tag Request Denied", "{actor} denied your tag request", "/tag-requests/{id}"),
    (FOLLOW, "followed"): ("New Follower", "{actor} started following you", "/users/{actor_id}"),
    ("film", "commented"): ("New Comment", "{actor} commented on your film", "/films/{id}"),
    ("film", "mentioned"): ("Mentioned", "{actor} mentioned you in a comment", "/films/{id}"),
    ("film", "favorited"): ("Film Favorited", "{actor} favorited your film", "/films/{id}"),
    ("film", "posted_film"): ("New Film", "{actor} posted a new film", "/films/{id}"),
    ("photo", "posted_photo"): ("New Photo", "{actor} posted a new photo", "/photos/{id}"),
}

_FALLBACK = ("Notification", "New notification from {actor}", "/users/{actor_id}")


def describe(notification: Notification, actor_username: str) -> dict[str, str]:
    """Title, message and target path for a notification."""
    title, message, path = _PRESENTATION.get((notification.notifiable_type, notification.action), _FALLBACK)
    values = {"actor": actor_username, "id": notification.notifiable_id, "actor_id": notification.actor_id}
    return {
        "title": title,
        "message": message.format(**values),
        "path": path.format(**values),
    }


def exists_already(conn: Connection, recipient_id: str, subject: SubjectRef, action: str) -> bool:
    return repo.notification_exists(conn, recipient_id, subject, action)


def _deliver(
    engine: Engine,
    recipient_id: Optional[str],
    actor_id: str,
    subject: SubjectRef,
    action: str,
    once: bool,
) -> bool:
    if not recipient_id:
        return False
    if recipient_id == actor_id and action not in SELF_NOTIFYING_ACTIONS:
        return False

    try:
        with engine.begin() as conn:
            if once and exists_already(conn, recipient_id, subject, action):
                return False
            written = repo.insert_notification(conn, recipient_id, actor_id, subject, action, ignore_duplicates=once)
    except SQLAlchemyError:
        logger.exception(
            "Notification delivery failed",
            extra={
                "event": "notification_failed",
                "context": {
                    "recipient_id": recipient_id,
                    "actor_id": actor_id,
                    "subject": list(subject),
                    "action": action,
                },
            },
        )
        return False

    if written:
        logger.info(
            "Notification created",
            extra={
                "event": "notification_created",
                "context": {"recipient_id": recipient_id, "subject": list(subject), "action": action},
            },
        )
    return written


def notify(engine: Engine, recipient_id: Optional[str], actor_id: str, subject: SubjectRef, action: str) -> bool:
    """Fire-and-forget. Returns True if a notification was written."""
    return _deliver(engine, recipient_id, actor_id, subject, action, once=False)


def notify_once(engine: Engine, recipient_id: Optional[str], actor_id: str, subject: SubjectRef, action: str) -> bool:
    """Like notify(), but skipped if this recipient already has `action` for `subject`."""
    return _deliver(engine, recipient_id, actor_id, subject, action, once=True)


# -----------------------------
# Read side
# -----------------------------

def list_notifications(engine: Engine, user_id: str, unread_only: bool = False, limit: int = 20) -> list[dict]:
    with engine.begin() as conn:
        items = repo.list_notifications(conn, user_id, unread_only=unread_only, limit=limit)
        usernames = repo.get_usernames(conn, [n.actor_id for n in items])

    out = []
    for n in items:
        out.append(
            {
                "id": n.id,
                "action": n.action,
                "actor_id": n.actor_id,
                "notifiable_type": n.notifiable_type,
                "notifiable_id": n.notifiable_id,
                "read": n.read_at is not None,
                "created_at": n.created_at,
                **describe(n, usernames.get(n.actor_id, "someone")),
            }
        )
    return out


def mark_all_read(engine: Engine, user_id: str) -> int:
    with engine.begin() as conn:
        return repo.mark_notifications_read(conn, user_id)


def activity_counts(engine: Engine, user_id: str) -> dict[str, int]:
    with engine.begin() as conn:
        pending = repo.count_pending_for_approver(conn, user_id)
        unread = repo.count_unread_notifications(conn, user_id)
    return {
        "pending_approvals_count": pending,
        "unread_notifications_count": unread,
        "total_activity_count": pending + unread,
    }
