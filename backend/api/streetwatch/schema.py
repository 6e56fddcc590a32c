"""Database schema for the tagging & approval engine.

The statements are plain SQL accepted by both PostgreSQL and SQLite; ids are
UUID strings generated by the application. The Alembic revision applies the
same list, and tests apply it through create_schema().
"""

from __future__ import annotations

from sqlalchemy import text
from sqlalchemy.engine import Engine

SCHEMA_STATEMENTS: list[str] = [
    """
    CREATE TABLE IF NOT EXISTS users (
        id VARCHAR(36) PRIMARY KEY,
        username VARCHAR(80) NOT NULL UNIQUE,
        name VARCHAR(200),
        created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS content_items (
        id VARCHAR(36) PRIMARY KEY,
        kind VARCHAR(16) NOT NULL,
        title TEXT NOT NULL,
        owner_id VARCHAR(36) REFERENCES users (id),
        filmer_user_id VARCHAR(36) REFERENCES users (id),
        editor_user_id VARCHAR(36) REFERENCES users (id),
        company_user_id VARCHAR(36) REFERENCES users (id),
        photographer_user_id VARCHAR(36) REFERENCES users (id),
        created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
        CHECK (kind IN ('film', 'photo'))
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS ix_content_items_owner
        ON content_items (owner_id)
    """,
    """
    CREATE TABLE IF NOT EXISTS content_participants (
        content_id VARCHAR(36) NOT NULL REFERENCES content_items (id) ON DELETE CASCADE,
        user_id VARCHAR(36) NOT NULL REFERENCES users (id),
        role VARCHAR(32) NOT NULL,
        created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
        PRIMARY KEY (content_id, user_id, role)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS approvals (
        id VARCHAR(36) PRIMARY KEY,
        content_id VARCHAR(36) NOT NULL REFERENCES content_items (id) ON DELETE CASCADE,
        approver_id VARCHAR(36) NOT NULL REFERENCES users (id),
        approval_type VARCHAR(32) NOT NULL,
        status VARCHAR(16) NOT NULL DEFAULT 'pending',
        rejection_reason TEXT,
        created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
        CHECK (status IN ('pending', 'approved', 'rejected'))
    )
    """,
    """
    CREATE UNIQUE INDEX IF NOT EXISTS ux_approvals_content_approver_type
        ON approvals (content_id, approver_id, approval_type)
    """,
    """
    CREATE INDEX IF NOT EXISTS ix_approvals_approver_status
        ON approvals (approver_id, status)
    """,
    """
    CREATE INDEX IF NOT EXISTS ix_approvals_content_status
        ON approvals (content_id, status)
    """,
    """
    CREATE TABLE IF NOT EXISTS tag_requests (
        id VARCHAR(36) PRIMARY KEY,
        content_id VARCHAR(36) NOT NULL REFERENCES content_items (id) ON DELETE CASCADE,
        requester_id VARCHAR(36) NOT NULL REFERENCES users (id),
        role VARCHAR(32) NOT NULL,
        status VARCHAR(16) NOT NULL DEFAULT 'pending',
        message TEXT,
        created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
        CHECK (status IN ('pending', 'approved', 'denied'))
    )
    """,
    # One outstanding request per (item, user, role).
    """
    CREATE UNIQUE INDEX IF NOT EXISTS ux_tag_requests_pending
        ON tag_requests (content_id, requester_id, role)
        WHERE status = 'pending'
    """,
    """
    CREATE TABLE IF NOT EXISTS notifications (
        id VARCHAR(36) PRIMARY KEY,
        user_id VARCHAR(36) NOT NULL REFERENCES users (id),
        actor_id VARCHAR(36) NOT NULL REFERENCES users (id),
        notifiable_type VARCHAR(32) NOT NULL,
        notifiable_id VARCHAR(36) NOT NULL,
        action VARCHAR(64) NOT NULL,
        read_at TIMESTAMP,
        created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS ix_notifications_user_read
        ON notifications (user_id, read_at, created_at)
    """,
    """
    CREATE INDEX IF NOT EXISTS ix_notifications_notifiable
        ON notifications (notifiable_type, notifiable_id)
    """,
    # Publish announcements are sent once per (user, item).
    """
    CREATE UNIQUE INDEX IF NOT EXISTS ux_notifications_published_once
        ON notifications (user_id, notifiable_type, notifiable_id, action)
        WHERE action = 'content_published'
    """,
]

TABLES: tuple[str, ...] = (
    "notifications",
    "tag_requests",
    "approvals",
    "content_participants",
    "content_items",
    "users",
)


def create_schema(engine: Engine) -> None:
    with engine.begin() as conn:
        for statement in SCHEMA_STATEMENTS:
            conn.execute(text(statement))
