"""Content item use cases.

Saving an item and reconciling its approvals are two explicit steps: the item
and its tags are committed first, then reconcile_tags runs against the
committed state. A failed reconciliation is logged and does not fail the save.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.engine import Connection, Engine

from streetwatch import repo
from streetwatch.models import CONTENT_KINDS, MULTI_ROLES, ROLE_COLUMNS, ContentItem
from streetwatch.publication import can_view, is_published
from streetwatch.tagging import ReconcileResult, log_reconcile_warning, reconcile_tags, tagged_participants
from streetwatch.workflow import InvalidRole, NotFound, Unauthorized

logger = logging.getLogger(__name__)


@dataclass
class TagAssignment:
    """
    roles:   multi-valued role -> complete list of tagged user ids (replaces the role)
    columns: single-valued role column -> user id, or None to clear it
    Anything not mentioned is left as it is.
    """

    roles: dict[str, list[str]] = field(default_factory=dict)
    columns: dict[str, Optional[str]] = field(default_factory=dict)

    def user_ids(self) -> set[str]:
        ids = {u for users in self.roles.values() for u in users if u}
        ids.update(u for u in self.columns.values() if u)
        return ids


def _validate_assignment(conn: Connection, kind: str, tags: TagAssignment) -> None:
    for role in tags.roles:
        if role not in MULTI_ROLES[kind]:
            raise InvalidRole(f"'{role}' cannot hold several users on a {kind}. Allowed: {list(MULTI_ROLES[kind])}")
    for column in tags.columns:
        if column not in ROLE_COLUMNS[kind]:
            raise InvalidRole(f"'{column}' is not a role field of a {kind}. Allowed: {list(ROLE_COLUMNS[kind])}")

    missing = repo.missing_users(conn, tags.user_ids())
    if missing:
        raise NotFound(f"Unknown users: {', '.join(missing)}")


def _apply_roles(conn: Connection, content_id: str, tags: TagAssignment) -> None:
    for role, user_ids in tags.roles.items():
        repo.replace_role_participants(conn, content_id, role, user_ids)


def _reconcile_after_save(engine: Engine, content_id: str) -> ReconcileResult:
    result = reconcile_tags(engine, content_id)
    log_reconcile_warning(result)
    return result


def create_content(
    engine: Engine,
    owner_id: Optional[str],
    kind: str,
    title: str,
    tags: Optional[TagAssignment] = None,
) -> tuple[ContentItem, ReconcileResult]:
    if kind not in CONTENT_KINDS:
        raise InvalidRole(f"Unknown content kind: {kind}")
    tags = tags or TagAssignment()

    with engine.begin() as conn:
        if owner_id and repo.missing_users(conn, [owner_id]):
            raise NotFound(f"Unknown owner: {owner_id}")
        _validate_assignment(conn, kind, tags)

        item = repo.create_content_item(conn, kind, title, owner_id, columns=tags.columns)
        _apply_roles(conn, item.id, tags)

    logger.info(
        "Content created",
        extra={"event": "content_created", "context": {"content_id": item.id, "kind": kind, "owner_id": owner_id}},
    )

    result = _reconcile_after_save(engine, item.id)
    return item, result


def update_content(
    engine: Engine,
    content_id: str,
    actor_id: str,
    title: Optional[str] = None,
    tags: Optional[TagAssignment] = None,
) -> tuple[ContentItem, ReconcileResult]:
    tags = tags or TagAssignment()

    with engine.begin() as conn:
        try:
            current = repo.get_content_item(conn, content_id)
        except KeyError:
            raise NotFound(f"Content item not found: {content_id}")

        if current.owner_id != actor_id:
            raise Unauthorized("Only the owner can edit this item")

        _validate_assignment(conn, current.kind, tags)
        repo.update_content_item(conn, current.id, title=title, columns=tags.columns)
        _apply_roles(conn, current.id, tags)
        item = repo.get_content_item(conn, current.id)

    logger.info(
        "Content updated",
        extra={"event": "content_updated", "context": {"content_id": item.id}},
    )

    result = _reconcile_after_save(engine, item.id)
    return item, result


def rereconcile(engine: Engine, content_id: str, actor_id: str) -> ReconcileResult:
    """Owner-triggered retry for an item whose last reconciliation failed."""
    with engine.begin() as conn:
        try:
            item = repo.get_content_item(conn, content_id)
        except KeyError:
            raise NotFound(f"Content item not found: {content_id}")

    if item.owner_id != actor_id:
        raise Unauthorized("Only the owner can reconcile this item")

    return _reconcile_after_save(engine, item.id)


def get_content(engine: Engine, content_id: str, viewer_id: Optional[str] = None) -> dict:
    """
    The item with its tags, approvals and derived publication state.
    Unpublished items the viewer may not see are reported as missing.
    """
    with engine.begin() as conn:
        try:
            item = repo.get_content_item(conn, content_id)
        except KeyError:
            raise NotFound(f"Content item not found: {content_id}")

        if not can_view(conn, item, viewer_id):
            raise NotFound(f"Content item not found: {content_id}")

        participants = sorted(tagged_participants(conn, item))
        approvals = repo.list_approvals_for_content(conn, item.id)
        published = is_published(conn, item.id)

    return {
        "item": item,
        "participants": participants,
        "approvals": approvals,
        "published": published,
    }
