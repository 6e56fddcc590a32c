"""Tagging & approval core schema

- users, content_items (films and photos, single-valued role columns)
- content_participants (multi-valued roles)
- approvals (unique per item/approver/role)
- tag_requests (one pending request per item/requester/role)
- notifications (publish announcements unique per user/item)

Idempotent.
"""

from __future__ import annotations

from alembic import op

from streetwatch.schema import SCHEMA_STATEMENTS, TABLES

revision = "20261019_0001_tagging_core"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    for statement in SCHEMA_STATEMENTS:
        op.execute(statement)


def downgrade() -> None:
    for table in TABLES:
        op.execute(f"DROP TABLE IF EXISTS {table}")
