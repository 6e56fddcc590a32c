from __future__ import annotations

import uuid
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import bindparam, text
from sqlalchemy.engine import Connection

from streetwatch.models import (
    ApprovalRecord,
    ContentItem,
    Notification,
    Participant,
    PENDING,
    ROLE_COLUMNS,
    ROLES,
    SubjectRef,
    TagRequest,
    User,
)


# ----------------------------
# Helpers (safe + deterministic)
# ----------------------------

def _new_id() -> str:
    return str(uuid.uuid4())


def _sort_to_order_by(sort: str) -> str:
    """
    Allowed sort values (explicit allow-list to avoid SQL injection):
      - created_at_desc (default)
      - created_at_asc
      - updated_at_desc
      - updated_at_asc
      - title_asc
      - title_desc
    """
    s = (sort or "").strip().lower()
    if s == "created_at_asc":
        return "c.created_at ASC"
    if s == "updated_at_desc":
        return "c.updated_at DESC"
    if s == "updated_at_asc":
        return "c.updated_at ASC"
    if s == "title_asc":
        return "c.title ASC"
    if s == "title_desc":
        return "c.title DESC"
    return "c.created_at DESC"


# Every single-valued role column, across kinds. Column names are only ever
# interpolated into SQL from this set.
_ROLE_COLUMN_NAMES = frozenset(col for cols in ROLE_COLUMNS.values() for col in cols)


def _check_column(column: str) -> str:
    if column not in _ROLE_COLUMN_NAMES:
        raise ValueError(f"Unknown role column: {column}")
    return column


def _tagged_viewer_sql() -> str:
    """
    SQL predicate: :viewer_id is credited on content item `c`, through a
    participant row in one of the kind's roles or through a role column.
    Built only from the role tables in models.
    """
    per_kind = []
    for kind, roles in ROLES.items():
        role_list = ", ".join(f"'{r}'" for r in roles)
        column_list = ", ".join(f"c.{col}" for col in ROLE_COLUMNS[kind])
        per_kind.append(
            f"(c.kind = '{kind}' AND ("
            f"EXISTS (SELECT 1 FROM content_participants t"
            f" WHERE t.content_id = c.id AND t.user_id = :viewer_id AND t.role IN ({role_list}))"
            f" OR :viewer_id IN ({column_list})))"
        )
    return "(" + " OR ".join(per_kind) + ")"


_TAGGED_VIEWER_SQL = _tagged_viewer_sql()


_CONTENT_SELECT = """
    SELECT
        c.id, c.kind, c.title, c.owner_id,
        c.filmer_user_id, c.editor_user_id, c.company_user_id, c.photographer_user_id,
        c.created_at, c.updated_at
    FROM content_items c
"""

_APPROVAL_SELECT = """
    SELECT id, content_id, approver_id, approval_type, status, rejection_reason, created_at, updated_at
    FROM approvals
"""

_TAG_REQUEST_SELECT = """
    SELECT id, content_id, requester_id, role, status, message, created_at, updated_at
    FROM tag_requests
"""

_NOTIFICATION_SELECT = """
    SELECT id, user_id, actor_id, notifiable_type, notifiable_id, action, read_at, created_at
    FROM notifications
"""


# ----------------------------
# Users
# ----------------------------

def create_user(conn: Connection, username: str, name: Optional[str] = None) -> User:
    user_id = _new_id()
    conn.execute(
        text("INSERT INTO users (id, username, name) VALUES (:id, :username, :name)"),
        {"id": user_id, "username": username, "name": name},
    )
    return get_user(conn, user_id)


def get_user(conn: Connection, user_id: str) -> User:
    row = conn.execute(
        text("SELECT id, username, name, created_at FROM users WHERE id = :id"),
        {"id": str(user_id)},
    ).mappings().first()
    if not row:
        raise KeyError(f"User not found: {user_id}")
    return User(**dict(row))


def missing_users(conn: Connection, user_ids: Iterable[str]) -> List[str]:
    """Returns the ids from `user_ids` that have no users row."""
    wanted = sorted({str(u) for u in user_ids if u})
    if not wanted:
        return []

    sql = text("SELECT id FROM users WHERE id IN :ids").bindparams(bindparam("ids", expanding=True))
    found = set(conn.execute(sql, {"ids": wanted}).scalars().all())
    return [u for u in wanted if u not in found]


def get_usernames(conn: Connection, user_ids: Iterable[str]) -> Dict[str, str]:
    wanted = sorted({str(u) for u in user_ids if u})
    if not wanted:
        return {}

    sql = text("SELECT id, username FROM users WHERE id IN :ids").bindparams(bindparam("ids", expanding=True))
    return {r["id"]: r["username"] for r in conn.execute(sql, {"ids": wanted}).mappings().all()}


# ----------------------------
# Content items + tagged participants
# ----------------------------

def create_content_item(
    conn: Connection,
    kind: str,
    title: str,
    owner_id: Optional[str],
    columns: Optional[Dict[str, Optional[str]]] = None,
) -> ContentItem:
    content_id = _new_id()
    conn.execute(
        text("INSERT INTO content_items (id, kind, title, owner_id) VALUES (:id, :kind, :title, :owner_id)"),
        {"id": content_id, "kind": kind, "title": title, "owner_id": owner_id},
    )
    if columns:
        update_content_item(conn, content_id, columns=columns)
    return get_content_item(conn, content_id)


def get_content_item(conn: Connection, content_id: str) -> ContentItem:
    row = conn.execute(
        text(_CONTENT_SELECT + " WHERE c.id = :id"),
        {"id": str(content_id)},
    ).mappings().first()
    if not row:
        raise KeyError(f"Content item not found: {content_id}")
    return ContentItem(**dict(row))


def update_content_item(
    conn: Connection,
    content_id: str,
    title: Optional[str] = None,
    columns: Optional[Dict[str, Optional[str]]] = None,
) -> None:
    assignments = ["updated_at = CURRENT_TIMESTAMP"]
    params: Dict[str, Any] = {"id": str(content_id)}

    if title is not None:
        assignments.append("title = :title")
        params["title"] = title

    for column, user_id in (columns or {}).items():
        col = _check_column(column)
        assignments.append(f"{col} = :{col}")
        params[col] = user_id

    conn.execute(
        text(f"UPDATE content_items SET {', '.join(assignments)} WHERE id = :id"),
        params,
    )


def list_content(
    conn: Connection,
    viewer_id: Optional[str] = None,
    kind: Optional[str] = None,
    limit: int = 20,
    offset: int = 0,
    sort: str = "created_at_desc",
) -> Tuple[List[ContentItem], int]:
    """
    Published items, plus (for a signed-in viewer) items they own or are tagged in.
    "Tagged" matches tagging.tagged_participants, not the approval rows.
    """
    order_by = _sort_to_order_by(sort)

    visible = [
        "NOT EXISTS (SELECT 1 FROM approvals p WHERE p.content_id = c.id AND p.status = 'pending')"
    ]
    params: Dict[str, Any] = {"limit": int(limit), "offset": int(offset)}

    if viewer_id:
        visible.append("c.owner_id = :viewer_id")
        visible.append(_TAGGED_VIEWER_SQL)
        params["viewer_id"] = str(viewer_id)

    where_parts = ["(" + " OR ".join(visible) + ")"]
    if kind:
        where_parts.append("c.kind = :kind")
        params["kind"] = kind

    where_sql = " AND ".join(where_parts)

    sql_items = text(f"""
        {_CONTENT_SELECT}
        WHERE {where_sql}
        ORDER BY {order_by}
        LIMIT :limit OFFSET :offset
    """)

    sql_total = text(f"""
        SELECT COUNT(*) AS total
        FROM content_items c
        WHERE {where_sql}
    """)

    rows = conn.execute(sql_items, params).mappings().all()
    total = conn.execute(sql_total, params).mappings().one()["total"]

    return [ContentItem(**dict(r)) for r in rows], int(total)


def list_participants(conn: Connection, content_id: str) -> List[Participant]:
    rows = conn.execute(
        text("""
            SELECT user_id, role
            FROM content_participants
            WHERE content_id = :content_id
            ORDER BY role, user_id
        """),
        {"content_id": str(content_id)},
    ).mappings().all()
    return [Participant(r["user_id"], r["role"]) for r in rows]


def add_participant(conn: Connection, content_id: str, user_id: str, role: str) -> bool:
    """Insert-or-ignore. Returns True if a row was added."""
    result = conn.execute(
        text("""
            INSERT INTO content_participants (content_id, user_id, role)
            VALUES (:content_id, :user_id, :role)
            ON CONFLICT (content_id, user_id, role) DO NOTHING
        """),
        {"content_id": str(content_id), "user_id": str(user_id), "role": role},
    )
    return result.rowcount == 1


def replace_role_participants(conn: Connection, content_id: str, role: str, user_ids: Iterable[str]) -> None:
    keep = sorted({str(u) for u in user_ids if u})

    if keep:
        sql = text("""
            DELETE FROM content_participants
            WHERE content_id = :content_id AND role = :role AND user_id NOT IN :keep
        """).bindparams(bindparam("keep", expanding=True))
        conn.execute(sql, {"content_id": str(content_id), "role": role, "keep": keep})
    else:
        conn.execute(
            text("DELETE FROM content_participants WHERE content_id = :content_id AND role = :role"),
            {"content_id": str(content_id), "role": role},
        )

    for user_id in keep:
        add_participant(conn, content_id, user_id, role)


# ----------------------------
# Approval records
# ----------------------------

def list_approvals_for_content(conn: Connection, content_id: str) -> List[ApprovalRecord]:
    rows = conn.execute(
        text(_APPROVAL_SELECT + " WHERE content_id = :content_id ORDER BY approval_type, approver_id"),
        {"content_id": str(content_id)},
    ).mappings().all()
    return [ApprovalRecord(**dict(r)) for r in rows]


def get_approval(conn: Connection, approval_id: str) -> ApprovalRecord:
    row = conn.execute(
        text(_APPROVAL_SELECT + " WHERE id = :id"),
        {"id": str(approval_id)},
    ).mappings().first()
    if not row:
        raise KeyError(f"Approval not found: {approval_id}")
    return ApprovalRecord(**dict(row))


def insert_approval(conn: Connection, content_id: str, approver_id: str, approval_type: str, status: str) -> bool:
    """
    Insert-or-ignore on (content_id, approver_id, approval_type).
    Returns False when a concurrent writer already created the row.
    """
    result = conn.execute(
        text("""
            INSERT INTO approvals (id, content_id, approver_id, approval_type, status)
            VALUES (:id, :content_id, :approver_id, :approval_type, :status)
            ON CONFLICT (content_id, approver_id, approval_type) DO NOTHING
        """),
        {
            "id": _new_id(),
            "content_id": str(content_id),
            "approver_id": str(approver_id),
            "approval_type": approval_type,
            "status": status,
        },
    )
    return result.rowcount == 1


def delete_approvals(conn: Connection, approval_ids: Iterable[str]) -> int:
    ids = [str(i) for i in approval_ids]
    if not ids:
        return 0
    sql = text("DELETE FROM approvals WHERE id IN :ids").bindparams(bindparam("ids", expanding=True))
    return conn.execute(sql, {"ids": ids}).rowcount


def set_approval_status(conn: Connection, approval_id: str, status: str, rejection_reason: Optional[str]) -> None:
    conn.execute(
        text("""
            UPDATE approvals
            SET status = :status,
                rejection_reason = :rejection_reason,
                updated_at = CURRENT_TIMESTAMP
            WHERE id = :id
        """),
        {"id": str(approval_id), "status": status, "rejection_reason": rejection_reason},
    )


def count_pending_approvals(conn: Connection, content_id: str) -> int:
    total = conn.execute(
        text("SELECT COUNT(*) FROM approvals WHERE content_id = :content_id AND status = :pending"),
        {"content_id": str(content_id), "pending": PENDING},
    ).scalar_one()
    return int(total)


def list_approvals_for_approver(
    conn: Connection,
    approver_id: str,
    status: Optional[str] = None,
    limit: int = 20,
) -> List[ApprovalRecord]:
    where_parts = ["approver_id = :approver_id"]
    params: Dict[str, Any] = {"approver_id": str(approver_id), "limit": int(limit)}
    if status:
        where_parts.append("status = :status")
        params["status"] = status

    rows = conn.execute(
        text(_APPROVAL_SELECT + f" WHERE {' AND '.join(where_parts)} ORDER BY created_at DESC LIMIT :limit"),
        params,
    ).mappings().all()
    return [ApprovalRecord(**dict(r)) for r in rows]


def count_pending_for_approver(conn: Connection, approver_id: str) -> int:
    total = conn.execute(
        text("SELECT COUNT(*) FROM approvals WHERE approver_id = :approver_id AND status = :pending"),
        {"approver_id": str(approver_id), "pending": PENDING},
    ).scalar_one()
    return int(total)


# ----------------------------
# Tag requests
# ----------------------------

def insert_tag_request(
    conn: Connection,
    content_id: str,
    requester_id: str,
    role: str,
    message: Optional[str],
) -> TagRequest:
    request_id = _new_id()
    conn.execute(
        text("""
            INSERT INTO tag_requests (id, content_id, requester_id, role, status, message)
            VALUES (:id, :content_id, :requester_id, :role, :status, :message)
        """),
        {
            "id": request_id,
            "content_id": str(content_id),
            "requester_id": str(requester_id),
            "role": role,
            "status": PENDING,
            "message": message,
        },
    )
    return get_tag_request(conn, request_id)


def get_tag_request(conn: Connection, request_id: str) -> TagRequest:
    row = conn.execute(
        text(_TAG_REQUEST_SELECT + " WHERE id = :id"),
        {"id": str(request_id)},
    ).mappings().first()
    if not row:
        raise KeyError(f"Tag request not found: {request_id}")
    return TagRequest(**dict(row))


def find_pending_tag_request(conn: Connection, content_id: str, requester_id: str, role: str) -> Optional[TagRequest]:
    row = conn.execute(
        text(_TAG_REQUEST_SELECT + """
            WHERE content_id = :content_id
              AND requester_id = :requester_id
              AND role = :role
              AND status = :pending
        """),
        {"content_id": str(content_id), "requester_id": str(requester_id), "role": role, "pending": PENDING},
    ).mappings().first()
    return TagRequest(**dict(row)) if row else None


def set_tag_request_status(conn: Connection, request_id: str, from_status: str, status: str) -> bool:
    """
    Compare-and-set: only moves a request still in `from_status`.
    Returns False when another writer decided it first.
    """
    result = conn.execute(
        text("""
            UPDATE tag_requests
            SET status = :status, updated_at = CURRENT_TIMESTAMP
            WHERE id = :id AND status = :from_status
        """),
        {"id": str(request_id), "from_status": from_status, "status": status},
    )
    return result.rowcount == 1


def list_tag_requests(conn: Connection, content_id: str, status: Optional[str] = None) -> List[TagRequest]:
    where_parts = ["content_id = :content_id"]
    params: Dict[str, Any] = {"content_id": str(content_id)}
    if status:
        where_parts.append("status = :status")
        params["status"] = status

    rows = conn.execute(
        text(_TAG_REQUEST_SELECT + f" WHERE {' AND '.join(where_parts)} ORDER BY created_at ASC"),
        params,
    ).mappings().all()
    return [TagRequest(**dict(r)) for r in rows]


# ----------------------------
# Notifications
# ----------------------------

def insert_notification(
    conn: Connection,
    user_id: str,
    actor_id: str,
    subject: SubjectRef,
    action: str,
    ignore_duplicates: bool = False,
) -> bool:
    """
    Returns True if a row was written. With ignore_duplicates, a row rejected by a
    unique index (publish announcements) is skipped instead of raising.
    """
    conflict = " ON CONFLICT DO NOTHING" if ignore_duplicates else ""
    result = conn.execute(
        text(f"""
            INSERT INTO notifications (id, user_id, actor_id, notifiable_type, notifiable_id, action)
            VALUES (:id, :user_id, :actor_id, :notifiable_type, :notifiable_id, :action){conflict}
        """),
        {
            "id": _new_id(),
            "user_id": str(user_id),
            "actor_id": str(actor_id),
            "notifiable_type": subject.kind,
            "notifiable_id": str(subject.id),
            "action": action,
        },
    )
    return result.rowcount == 1


def notification_exists(conn: Connection, user_id: str, subject: SubjectRef, action: str) -> bool:
    row = conn.execute(
        text("""
            SELECT 1 FROM notifications
            WHERE user_id = :user_id
              AND notifiable_type = :notifiable_type
              AND notifiable_id = :notifiable_id
              AND action = :action
            LIMIT 1
        """),
        {
            "user_id": str(user_id),
            "notifiable_type": subject.kind,
            "notifiable_id": str(subject.id),
            "action": action,
        },
    ).first()
    return row is not None


def list_notifications(
    conn: Connection,
    user_id: str,
    unread_only: bool = False,
    limit: int = 20,
) -> List[Notification]:
    where_parts = ["user_id = :user_id"]
    if unread_only:
        where_parts.append("read_at IS NULL")

    rows = conn.execute(
        text(_NOTIFICATION_SELECT + f" WHERE {' AND '.join(where_parts)} ORDER BY created_at DESC LIMIT :limit"),
        {"user_id": str(user_id), "limit": int(limit)},
    ).mappings().all()
    return [Notification(**dict(r)) for r in rows]


def list_notifications_for_subject(conn: Connection, subject: SubjectRef, action: Optional[str] = None) -> List[Notification]:
    where_parts = ["notifiable_type = :notifiable_type", "notifiable_id = :notifiable_id"]
    params: Dict[str, Any] = {"notifiable_type": subject.kind, "notifiable_id": str(subject.id)}
    if action:
        where_parts.append("action = :action")
        params["action"] = action

    rows = conn.execute(
        text(_NOTIFICATION_SELECT + f" WHERE {' AND '.join(where_parts)} ORDER BY created_at ASC"),
        params,
    ).mappings().all()
    return [Notification(**dict(r)) for r in rows]


def mark_notifications_read(conn: Connection, user_id: str) -> int:
    result = conn.execute(
        text("UPDATE notifications SET read_at = CURRENT_TIMESTAMP WHERE user_id = :user_id AND read_at IS NULL"),
        {"user_id": str(user_id)},
    )
    return result.rowcount


def count_unread_notifications(conn: Connection, user_id: str) -> int:
    total = conn.execute(
        text("SELECT COUNT(*) FROM notifications WHERE user_id = :user_id AND read_at IS NULL"),
        {"user_id": str(user_id)},
    ).scalar_one()
    return int(total)
