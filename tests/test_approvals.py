"""Approver transitions and the notifications they trigger."""

import pytest
from sqlalchemy.exc import OperationalError

from streetwatch import repo
from streetwatch.approvals import announce_if_published, approve, list_approvals, reject, reset_approval
from streetwatch.models import Participant
from streetwatch.publication import is_published
from streetwatch.workflow import DEFAULT_REJECTION_REASON, NotFound, Unauthorized


class TestApprove:
    def test_last_approval_publishes_and_notifies_everyone_once(self, engine, users, make_item, approvals_of, notifications_about):
        film = make_item(roles={"rider": ["alice", "bob"]})
        approvals = approvals_of(film.id)

        approve(engine, approvals[Participant(users["alice"], "rider")].id, users["alice"])
        assert notifications_about("film", film.id, "content_published") == []

        approve(engine, approvals[Participant(users["bob"], "rider")].id, users["bob"])

        published = notifications_about("film", film.id, "content_published")
        assert sorted(n.user_id for n in published) == sorted([users["owner"], users["alice"], users["bob"]])
        assert {n.actor_id for n in published} == {users["bob"]}

    def test_publish_announcement_is_not_repeated(self, engine, users, make_item, approvals_of, notifications_about):
        film = make_item(roles={"rider": ["alice", "bob", "carol"]})
        approvals = approvals_of(film.id)
        for name in ("alice", "bob", "carol"):
            approve(engine, approvals[Participant(users[name], "rider")].id, users[name])

        # Approving again, or approving after a reset, must not re-announce.
        carol = approvals[Participant(users["carol"], "rider")].id
        approve(engine, carol, users["carol"])
        reset_approval(engine, carol, users["carol"])
        approve(engine, carol, users["carol"])

        published = notifications_about("film", film.id, "content_published")
        assert sorted(n.user_id for n in published) == sorted(users[n] for n in ("owner", "alice", "bob", "carol"))

    def test_owner_is_told_about_the_decision(self, engine, users, make_item, approvals_of, notifications_about):
        film = make_item(roles={"rider": ["alice"]})
        record = approvals_of(film.id)[Participant(users["alice"], "rider")]

        updated = approve(engine, record.id, users["alice"])

        assert updated.status == "approved"
        assert updated.rejection_reason is None
        [note] = notifications_about("approval", record.id, "tag_approved")
        assert note.user_id == users["owner"]
        assert note.actor_id == users["alice"]

    def test_same_user_tagged_twice_approves_each_role(self, engine, users, make_item, approvals_of):
        film = make_item(roles={"rider": ["alice"]}, editor_user_id="alice")
        approvals = approvals_of(film.id)

        approve(engine, approvals[Participant(users["alice"], "rider")].id, users["alice"])
        with engine.begin() as conn:
            assert not is_published(conn, film.id)

        approve(engine, approvals[Participant(users["alice"], "editor")].id, users["alice"])
        with engine.begin() as conn:
            assert is_published(conn, film.id)

    def test_ownerless_item(self, engine, users, make_item, approvals_of, notifications_about):
        film = make_item(owner=None, roles={"rider": ["alice"]})
        record = approvals_of(film.id)[Participant(users["alice"], "rider")]

        assert approve(engine, record.id, users["alice"]).status == "approved"
        assert notifications_about("approval", record.id) == []
        assert [n.user_id for n in notifications_about("film", film.id, "content_published")] == [users["alice"]]


class TestRejectAndReset:
    def test_reject_records_reason(self, engine, users, make_item, approvals_of, notifications_about):
        film = make_item(roles={"rider": ["alice"]})
        record = approvals_of(film.id)[Participant(users["alice"], "rider")]

        updated = reject(engine, record.id, users["alice"], "wrong credit")

        assert updated.status == "rejected"
        assert updated.rejection_reason == "wrong credit"
        [note] = notifications_about("approval", record.id, "tag_rejected")
        assert note.user_id == users["owner"]

    def test_reject_without_reason(self, engine, users, make_item, approvals_of):
        film = make_item(roles={"rider": ["alice"]})
        record = approvals_of(film.id)[Participant(users["alice"], "rider")]

        assert reject(engine, record.id, users["alice"]).rejection_reason == DEFAULT_REJECTION_REASON

    def test_reset_reopens_the_item(self, engine, users, make_item, approvals_of, notifications_about):
        film = make_item(roles={"rider": ["alice"]})
        record = approvals_of(film.id)[Participant(users["alice"], "rider")]
        reject(engine, record.id, users["alice"], "wrong credit")

        updated = reset_approval(engine, record.id, users["alice"])

        assert updated.status == "pending"
        assert updated.rejection_reason is None
        with engine.begin() as conn:
            assert not is_published(conn, film.id)
        # Reset is silent.
        assert [n.action for n in notifications_about("approval", record.id)] == ["tag_rejected"]

    def test_rejected_then_approved_clears_reason(self, engine, users, make_item, approvals_of):
        film = make_item(roles={"rider": ["alice"]})
        record = approvals_of(film.id)[Participant(users["alice"], "rider")]
        reject(engine, record.id, users["alice"], "wrong credit")

        assert approve(engine, record.id, users["alice"]).rejection_reason is None


class TestGuards:
    def test_only_the_approver_can_decide(self, engine, users, make_item, approvals_of):
        film = make_item(roles={"rider": ["alice"]})
        record = approvals_of(film.id)[Participant(users["alice"], "rider")]

        for actor in ("owner", "bob"):
            with pytest.raises(Unauthorized):
                approve(engine, record.id, users[actor])

        assert approvals_of(film.id)[Participant(users["alice"], "rider")].status == "pending"

    def test_unknown_approval(self, engine, users):
        with pytest.raises(NotFound):
            reject(engine, "00000000-0000-0000-0000-000000000000", users["alice"])

    def test_notification_failure_does_not_undo_the_decision(self, engine, users, make_item, approvals_of, monkeypatch):
        film = make_item(roles={"rider": ["alice"]})
        record = approvals_of(film.id)[Participant(users["alice"], "rider")]

        def boom(*args, **kwargs):
            raise OperationalError("INSERT INTO notifications", {}, Exception("disk full"))

        monkeypatch.setattr(repo, "insert_notification", boom)

        assert approve(engine, record.id, users["alice"]).status == "approved"
        assert approvals_of(film.id)[Participant(users["alice"], "rider")].status == "approved"


class TestAnnounce:
    def test_untagged_item_is_never_announced(self, engine, users, make_item):
        film = make_item()

        assert announce_if_published(engine, film, users["owner"]) == 0

    def test_counts_only_new_notifications(self, engine, users, make_item, approvals_of):
        film = make_item(roles={"rider": ["alice"]})
        approve(engine, approvals_of(film.id)[Participant(users["alice"], "rider")].id, users["alice"])

        assert announce_if_published(engine, film, users["alice"]) == 0


def test_list_approvals_by_status(engine, users, make_item, approvals_of):
    first = make_item(title="First", roles={"rider": ["alice"]})
    second = make_item(title="Second", roles={"rider": ["alice"]})
    reject(engine, approvals_of(first.id)[Participant(users["alice"], "rider")].id, users["alice"])

    pending = list_approvals(engine, users["alice"], status="pending")
    rejected = list_approvals(engine, users["alice"], status="rejected")

    assert [a.content_id for a in pending] == [second.id]
    assert [a.content_id for a in rejected] == [first.id]
    assert len(list_approvals(engine, users["alice"])) == 2
    assert list_approvals(engine, users["bob"]) == []
