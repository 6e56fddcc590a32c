"""Tag reconciliation.

Keeps a content item's approval records in exact correspondence with the
users currently credited on it. A tagged user sits in one of two places:

  * a ``content_participants`` row (multi-valued roles such as riders), or
  * a single-valued column on ``content_items`` (editor, photographer and the
    legacy film filmer/company fields).

``tagged_participants`` merges both into one set of ``(user_id, role)`` pairs,
and ``reconcile_tags`` diffs that set against the existing approvals.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from streetwatch import repo
from streetwatch.models import APPROVED, PENDING, ROLE_COLUMNS, ROLES, ContentItem, Participant
from streetwatch.workflow import NotFound

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconcileResult:
    content_id: str
    created: tuple[Participant, ...] = ()
    deleted: tuple[Participant, ...] = ()
    conflicts: int = 0
    warning: str | None = None

    @property
    def ok(self) -> bool:
        return self.warning is None

    @property
    def changed(self) -> bool:
        return bool(self.created or self.deleted)


def tagged_participants(conn: Connection, item: ContentItem) -> frozenset[Participant]:
    """Every (user, role) credited on `item`, deduplicated across both representations."""
    allowed = ROLES[item.kind]

    tagged = {p for p in repo.list_participants(conn, item.id) if p.role in allowed}
    for column, role in ROLE_COLUMNS[item.kind].items():
        user_id = getattr(item, column)
        if user_id:
            tagged.add(Participant(user_id, role))

    return frozenset(p for p in tagged if p.user_id)


def tagged_user_ids(conn: Connection, item: ContentItem) -> list[str]:
    return sorted({p.user_id for p in tagged_participants(conn, item)})


def _reconcile(conn: Connection, item: ContentItem, auto_approve: frozenset[str]) -> ReconcileResult:
    desired = tagged_participants(conn, item)
    existing = {a.participant: a for a in repo.list_approvals_for_content(conn, item.id)}
    # Credits the user asked for through a tag request are approved by that request.
    requested = {r.participant for r in repo.list_tag_requests(conn, item.id, status=APPROVED)}

    stale = [p for p in existing if p not in desired]
    repo.delete_approvals(conn, [existing[p].id for p in stale])

    created: list[Participant] = []
    conflicts = 0
    for p in sorted(desired - existing.keys()):
        # A creator never needs to approve their own credit.
        if p.user_id == item.owner_id or p.user_id in auto_approve or p in requested:
            status = APPROVED
        else:
            status = PENDING
        if repo.insert_approval(conn, item.id, p.user_id, p.role, status):
            created.append(p)
        else:
            conflicts += 1
            logger.debug(
                "Approval already exists",
                extra={
                    "event": "reconcile_conflict",
                    "context": {"content_id": item.id, "approver_id": p.user_id, "role": p.role},
                },
            )

    return ReconcileResult(
        content_id=item.id,
        created=tuple(created),
        deleted=tuple(sorted(stale)),
        conflicts=conflicts,
    )


def reconcile_tags(
    engine: Engine,
    content_id: str,
    auto_approve_user_ids: Iterable[str] = (),
) -> ReconcileResult:
    """
    Create/delete approval records so they match the item's current tags.

    Runs in its own transaction, after the content item's changes are committed.
    Persistence failures roll back this transaction only and come back as
    `warning`; the caller decides how to log them. Raises NotFound for an
    unknown item.
    """
    auto_approve = frozenset(str(u) for u in auto_approve_user_ids if u)

    try:
        with engine.begin() as conn:
            try:
                item = repo.get_content_item(conn, content_id)
            except KeyError:
                raise NotFound(f"Content item not found: {content_id}")
            result = _reconcile(conn, item, auto_approve)
    except SQLAlchemyError as e:
        return ReconcileResult(content_id=str(content_id), warning=f"{type(e).__name__}: {e}")

    if result.changed:
        logger.info(
            "Reconciled approvals",
            extra={
                "event": "tags_reconciled",
                "context": {
                    "content_id": result.content_id,
                    "created": [list(p) for p in result.created],
                    "deleted": [list(p) for p in result.deleted],
                    "conflicts": result.conflicts,
                },
            },
        )
    return result


def log_reconcile_warning(result: ReconcileResult) -> None:
    """Caller-side logging for a reconciliation that did not complete."""
    if result.ok:
        return
    logger.warning(
        "Reconciliation failed; approval state is stale until the next successful update",
        extra={
            "event": "reconcile_failed",
            "context": {"content_id": result.content_id, "error": result.warning},
        },
    )
