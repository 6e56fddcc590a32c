"""Approver-driven transitions on approval records.

approve / reject / reset are the only writes to an approval's status. Each
runs in one transaction; notifications follow after commit and never undo it.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from streetwatch import notifications, repo
from streetwatch.models import APPROVED, ApprovalRecord, ContentItem, SubjectRef
from streetwatch.publication import is_published, requires_approval
from streetwatch.tagging import tagged_user_ids
from streetwatch.workflow import NotFound, Unauthorized, approval_target

logger = logging.getLogger(__name__)

_DECISION_ACTIONS = {
    "approve": notifications.TAG_APPROVED,
    "reject": notifications.TAG_REJECTED,
}


def _transition(
    engine: Engine,
    approval_id: str,
    actor_id: str,
    action: str,
    reason: Optional[str] = None,
) -> ApprovalRecord:
    status, rejection_reason = approval_target(action, reason)

    with engine.begin() as conn:
        try:
            record = repo.get_approval(conn, approval_id)
        except KeyError:
            raise NotFound(f"Approval not found: {approval_id}")

        if record.approver_id != actor_id:
            raise Unauthorized("Only the tagged user can decide on this approval")

        repo.set_approval_status(conn, record.id, status, rejection_reason)
        updated = repo.get_approval(conn, record.id)
        item = repo.get_content_item(conn, record.content_id)

    logger.info(
        "Approval %s", action,
        extra={
            "event": f"approval_{action}",
            "context": {
                "approval_id": updated.id,
                "content_id": updated.content_id,
                "from_status": record.status,
                "to_status": updated.status,
            },
        },
    )

    if action in _DECISION_ACTIONS:
        notifications.notify(
            engine,
            item.owner_id,
            actor_id,
            SubjectRef(notifications.APPROVAL, updated.id),
            _DECISION_ACTIONS[action],
        )

    if updated.status == APPROVED:
        announce_if_published(engine, item, actor_id)

    return updated


def announce_if_published(engine: Engine, item: ContentItem, actor_id: str) -> int:
    """
    Tell every stakeholder (owner + tagged users) that `item` is published, once.

    Only items that needed approval at all are announced. Returns the number of
    notifications written by this call.
    """
    try:
        with engine.begin() as conn:
            if not requires_approval(conn, item) or not is_published(conn, item.id):
                return 0
            tagged = tagged_user_ids(conn, item)
    except SQLAlchemyError:
        logger.exception(
            "Publication check failed",
            extra={"event": "publication_check_failed", "context": {"content_id": item.id}},
        )
        return 0

    stakeholders: list[str] = []
    for user_id in [item.owner_id, *tagged]:
        if user_id and user_id not in stakeholders:
            stakeholders.append(user_id)

    sent = 0
    for user_id in stakeholders:
        if notifications.notify_once(engine, user_id, actor_id, item.subject, notifications.CONTENT_PUBLISHED):
            sent += 1

    if sent:
        logger.info(
            "Content published",
            extra={"event": "content_published", "context": {"content_id": item.id, "notified": sent}},
        )
    return sent


def approve(engine: Engine, approval_id: str, actor_id: str) -> ApprovalRecord:
    return _transition(engine, approval_id, actor_id, "approve")


def reject(engine: Engine, approval_id: str, actor_id: str, reason: Optional[str] = None) -> ApprovalRecord:
    return _transition(engine, approval_id, actor_id, "reject", reason)


def reset_approval(engine: Engine, approval_id: str, actor_id: str) -> ApprovalRecord:
    return _transition(engine, approval_id, actor_id, "reset")


def list_approvals(engine: Engine, approver_id: str, status: Optional[str] = None, limit: int = 20) -> list[ApprovalRecord]:
    with engine.begin() as conn:
        return repo.list_approvals_for_approver(conn, approver_id, status=status, limit=limit)
