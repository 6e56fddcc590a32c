"""Shared fixtures: a fresh SQLite database per test, seeded users, item builders."""

import pytest
from sqlalchemy import create_engine

from streetwatch import repo
from streetwatch.content import TagAssignment, create_content
from streetwatch.models import SubjectRef
from streetwatch.schema import create_schema


@pytest.fixture
def engine(tmp_path):
    """Create an empty database with the full schema."""
    engine = create_engine(f"sqlite:///{tmp_path / 'streetwatch.db'}", future=True)
    create_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def users(engine):
    """Username -> user id for a small cast of users."""
    with engine.begin() as conn:
        return {name: repo.create_user(conn, name).id for name in ("owner", "alice", "bob", "carol", "dave")}


@pytest.fixture
def make_item(engine, users):
    """Create a film or photo owned by `owner`, tagging users by username."""

    def _make(kind="film", owner="owner", title="Untitled", roles=None, **columns):
        tags = TagAssignment(
            roles={role: [users[name] for name in names] for role, names in (roles or {}).items()},
            columns={col: (users[name] if name else None) for col, name in columns.items()},
        )
        item, result = create_content(engine, users[owner] if owner else None, kind, title, tags)
        assert result.ok
        return item

    return _make


@pytest.fixture
def approvals_of(engine):
    """(approver_id, role) -> ApprovalRecord for one content item."""

    def _approvals(content_id):
        with engine.begin() as conn:
            return {a.participant: a for a in repo.list_approvals_for_content(conn, content_id)}

    return _approvals


@pytest.fixture
def notifications_about(engine):
    """Notifications pointing at a subject, optionally filtered by action."""

    def _notifications(kind, subject_id, action=None):
        with engine.begin() as conn:
            return repo.list_notifications_for_subject(conn, SubjectRef(kind, subject_id), action)

    return _notifications
