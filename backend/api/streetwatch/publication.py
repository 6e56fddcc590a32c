"""Publication gate: whether a content item is public, derived from its approvals."""

from __future__ import annotations

from typing import Optional

from sqlalchemy.engine import Connection

from streetwatch import repo
from streetwatch.models import ContentItem
from streetwatch.tagging import tagged_participants


def is_published(conn: Connection, content_id: str) -> bool:
    """True iff no approval for the item is pending (trivially true with none)."""
    return repo.count_pending_approvals(conn, content_id) == 0


def requires_approval(conn: Connection, item: ContentItem) -> bool:
    return bool(tagged_participants(conn, item))


def can_view(conn: Connection, item: ContentItem, viewer_id: Optional[str]) -> bool:
    """
    Unpublished items stay visible to their owner and to anyone tagged on them,
    whatever the state of that person's own approval.
    """
    if is_published(conn, item.id):
        return True
    if not viewer_id:
        return False
    if item.owner_id == viewer_id:
        return True
    return any(p.user_id == viewer_id for p in tagged_participants(conn, item))


def list_visible_content(
    conn: Connection,
    viewer_id: Optional[str] = None,
    kind: Optional[str] = None,
    limit: int = 20,
    offset: int = 0,
    sort: str = "created_at_desc",
) -> tuple[list[ContentItem], int]:
    return repo.list_content(conn, viewer_id=viewer_id, kind=kind, limit=limit, offset=offset, sort=sort)
