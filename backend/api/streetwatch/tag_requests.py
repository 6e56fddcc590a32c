"""Self-service tag requests.

A user asks to be credited on someone else's film or photo; the owner
approves or denies. Approving adds the requester to the item and reconciles,
with the requester's new approval recorded as already approved.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from streetwatch import notifications, repo
from streetwatch.models import APPROVED, DENIED, MULTI_ROLES, ROLE_COLUMNS, SubjectRef, TagRequest
from streetwatch.tagging import log_reconcile_warning, reconcile_tags, tagged_participants
from streetwatch.workflow import (
    DuplicateTag,
    InvalidTransition,
    NotFound,
    Unauthorized,
    validate_role,
    validate_tag_request_transition,
)

logger = logging.getLogger(__name__)


def _subject(request: TagRequest) -> SubjectRef:
    return SubjectRef(notifications.TAG_REQUEST, request.id)


def create_tag_request(
    engine: Engine,
    content_id: str,
    requester_id: str,
    role: str,
    message: Optional[str] = None,
) -> TagRequest:
    with engine.begin() as conn:
        try:
            item = repo.get_content_item(conn, content_id)
        except KeyError:
            raise NotFound(f"Content item not found: {content_id}")

        role = validate_role(item.kind, role)

        if any(p.user_id == requester_id and p.role == role for p in tagged_participants(conn, item)):
            raise DuplicateTag(f"You are already tagged as {role} on this {item.kind}.")

        if repo.find_pending_tag_request(conn, item.id, requester_id, role):
            raise DuplicateTag("You already have a pending request for this role.")

        try:
            request = repo.insert_tag_request(conn, item.id, requester_id, role, message)
        except IntegrityError:
            # Lost a race against an identical request on the pending-unique index.
            raise DuplicateTag("You already have a pending request for this role.")

    logger.info(
        "Tag request created",
        extra={
            "event": "tag_request_created",
            "context": {"tag_request_id": request.id, "content_id": item.id, "role": role},
        },
    )
    notifications.notify(engine, item.owner_id, requester_id, _subject(request), notifications.TAG_REQUESTED)
    return request


def _decide(engine: Engine, request_id: str, actor_id: str, to_status: str) -> TagRequest:
    with engine.begin() as conn:
        try:
            request = repo.get_tag_request(conn, request_id)
        except KeyError:
            raise NotFound(f"Tag request not found: {request_id}")

        item = repo.get_content_item(conn, request.content_id)
        if item.owner_id != actor_id:
            raise Unauthorized("Only the owner can manage tag requests for this item")

        validate_tag_request_transition(request.status, to_status)

        # Claim the request before touching the item; a concurrent decision loses here.
        if not repo.set_tag_request_status(conn, request.id, request.status, to_status):
            raise InvalidTransition("Tag request was already decided")

        if to_status == APPROVED:
            if request.role in MULTI_ROLES[item.kind]:
                repo.add_participant(conn, item.id, request.requester_id, request.role)
            else:
                column = next(c for c, r in ROLE_COLUMNS[item.kind].items() if r == request.role)
                repo.update_content_item(conn, item.id, columns={column: request.requester_id})

        updated = repo.get_tag_request(conn, request.id)

    logger.info(
        "Tag request %s", to_status,
        extra={
            "event": f"tag_request_{to_status}",
            "context": {"tag_request_id": updated.id, "content_id": item.id, "role": updated.role},
        },
    )
    return updated


def approve_tag_request(engine: Engine, request_id: str, actor_id: str) -> TagRequest:
    request = _decide(engine, request_id, actor_id, APPROVED)

    # The approved request itself marks the requester's approval as given.
    result = reconcile_tags(engine, request.content_id)
    log_reconcile_warning(result)

    notifications.notify(engine, request.requester_id, actor_id, _subject(request), notifications.TAG_REQUEST_APPROVED)
    return request


def deny_tag_request(engine: Engine, request_id: str, actor_id: str) -> TagRequest:
    request = _decide(engine, request_id, actor_id, DENIED)
    notifications.notify(engine, request.requester_id, actor_id, _subject(request), notifications.TAG_REQUEST_DENIED)
    return request


def list_tag_requests(
    engine: Engine,
    content_id: str,
    actor_id: str,
    status: Optional[str] = None,
) -> list[TagRequest]:
    with engine.begin() as conn:
        try:
            item = repo.get_content_item(conn, content_id)
        except KeyError:
            raise NotFound(f"Content item not found: {content_id}")

        if item.owner_id != actor_id:
            raise Unauthorized("Only the owner can see tag requests for this item")

        return repo.list_tag_requests(conn, item.id, status=status)
