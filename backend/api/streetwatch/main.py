from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Optional

from fastapi import FastAPI, Header, HTTPException, Query

from streetwatch import approvals, content, notifications, tag_requests
from streetwatch.actor import require_actor, resolve_actor
from streetwatch.config import get_settings
from streetwatch.db import db_ping, get_engine
from streetwatch.logging_setup import setup_logging
from streetwatch.models import ROLE_COLUMNS
from streetwatch.publication import list_visible_content
from streetwatch.schemas import (
    ActivityCountsOut,
    ApprovalOut,
    ApprovalStatus,
    ContentCreateIn,
    ContentKind,
    ContentListOut,
    ContentOut,
    ContentSummaryOut,
    ContentUpdateIn,
    NotificationOut,
    ParticipantOut,
    ReconcileOut,
    RejectIn,
    TagRequestIn,
    TagRequestOut,
    TagRequestStatus,
    TagsIn,
)
from streetwatch.tagging import ReconcileResult
from streetwatch.workflow import WorkflowError, list_states


@asynccontextmanager
async def lifespan(_: FastAPI):
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_dir)
    yield


app = FastAPI(title="Streetwatch Tagging API", version="0.1.0", lifespan=lifespan)


_STATUS_BY_KIND = {
    "not_found": 404,
    "unauthorized": 403,
    "invalid_transition": 409,
    "duplicate_tag": 409,
    "invalid_role": 422,
}

_ROLE_FIELDS = sorted({col for cols in ROLE_COLUMNS.values() for col in cols})


def _http_error(e: WorkflowError) -> HTTPException:
    return HTTPException(
        status_code=_STATUS_BY_KIND.get(e.kind, 400),
        detail={"error": e.kind, "message": str(e)},
    )


def _actor(engine, x_user_id: Optional[str]) -> str:
    try:
        return require_actor(engine, x_user_id)
    except KeyError as e:
        raise HTTPException(status_code=401, detail=str(e))


def _viewer(engine, x_user_id: Optional[str]) -> Optional[str]:
    try:
        return resolve_actor(engine, x_user_id)
    except KeyError as e:
        raise HTTPException(status_code=401, detail=str(e))


def _to_assignment(tags: Optional[TagsIn]) -> content.TagAssignment:
    if tags is None:
        return content.TagAssignment()
    return content.TagAssignment(
        roles={role: list(users) for role, users in tags.roles.items()},
        columns={col: getattr(tags, col) for col in _ROLE_FIELDS if col in tags.model_fields_set},
    )


def _reconcile_out(result: ReconcileResult) -> ReconcileOut:
    return ReconcileOut(
        content_id=result.content_id,
        created=[ParticipantOut(**p._asdict()) for p in result.created],
        deleted=[ParticipantOut(**p._asdict()) for p in result.deleted],
        conflicts=result.conflicts,
        ok=result.ok,
    )


def _content_out(view: dict) -> ContentOut:
    return ContentOut(
        **asdict(view["item"]),
        published=view["published"],
        participants=[ParticipantOut(**p._asdict()) for p in view["participants"]],
        approvals=[ApprovalOut.model_validate(a) for a in view["approvals"]],
    )


# -----------------------------
# Health checks
# -----------------------------
@app.get("/healthz")
def healthz():
    return {"status": "ok"}


@app.get("/readyz")
def readyz():
    engine = get_engine()
    db_ping(engine)
    return {"status": "ready", "db": "ok"}


@app.get("/workflow/states")
def workflow_states():
    return {"states": list_states()}


# -----------------------------
# Content endpoints
# -----------------------------
@app.post("/content", response_model=ContentOut, status_code=201)
def create_content(
    body: ContentCreateIn,
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
):
    engine = get_engine()
    actor_id = _actor(engine, x_user_id)

    try:
        item, _ = content.create_content(
            engine,
            owner_id=actor_id,
            kind=body.kind,
            title=body.title,
            tags=_to_assignment(body.tags),
        )
        return _content_out(content.get_content(engine, item.id, viewer_id=actor_id))
    except WorkflowError as e:
        raise _http_error(e)


@app.get("/content", response_model=ContentListOut)
def list_content(
    kind: Optional[ContentKind] = None,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    sort: str = "created_at_desc",
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
):
    engine = get_engine()
    viewer_id = _viewer(engine, x_user_id)

    with engine.begin() as conn:
        items, total = list_visible_content(conn, viewer_id=viewer_id, kind=kind, limit=limit, offset=offset, sort=sort)

    return ContentListOut(
        items=[ContentSummaryOut.model_validate(i) for i in items],
        limit=limit,
        offset=offset,
        total=total,
    )


@app.get("/content/{content_id}", response_model=ContentOut)
def get_content(
    content_id: str,
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
):
    engine = get_engine()
    viewer_id = _viewer(engine, x_user_id)

    try:
        return _content_out(content.get_content(engine, content_id, viewer_id=viewer_id))
    except WorkflowError as e:
        raise _http_error(e)


@app.patch("/content/{content_id}", response_model=ContentOut)
def update_content(
    content_id: str,
    body: ContentUpdateIn,
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
):
    engine = get_engine()
    actor_id = _actor(engine, x_user_id)

    try:
        item, _ = content.update_content(
            engine,
            content_id,
            actor_id,
            title=body.title,
            tags=_to_assignment(body.tags),
        )
        return _content_out(content.get_content(engine, item.id, viewer_id=actor_id))
    except WorkflowError as e:
        raise _http_error(e)


@app.post("/content/{content_id}/reconcile", response_model=ReconcileOut)
def reconcile_content(
    content_id: str,
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
):
    engine = get_engine()
    actor_id = _actor(engine, x_user_id)

    try:
        return _reconcile_out(content.rereconcile(engine, content_id, actor_id))
    except WorkflowError as e:
        raise _http_error(e)


# -----------------------------
# Approvals
# -----------------------------
@app.get("/approvals", response_model=list[ApprovalOut])
def list_my_approvals(
    status: Optional[ApprovalStatus] = None,
    limit: int = Query(20, ge=1, le=100),
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
):
    engine = get_engine()
    actor_id = _actor(engine, x_user_id)
    return [ApprovalOut.model_validate(a) for a in approvals.list_approvals(engine, actor_id, status=status, limit=limit)]


@app.post("/approvals/{approval_id}/approve", response_model=ApprovalOut)
def approve_approval(
    approval_id: str,
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
):
    engine = get_engine()
    actor_id = _actor(engine, x_user_id)

    try:
        return ApprovalOut.model_validate(approvals.approve(engine, approval_id, actor_id))
    except WorkflowError as e:
        raise _http_error(e)


@app.post("/approvals/{approval_id}/reject", response_model=ApprovalOut)
def reject_approval(
    approval_id: str,
    body: RejectIn | None = None,
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
):
    engine = get_engine()
    actor_id = _actor(engine, x_user_id)
    reason = body.rejection_reason if body else None

    try:
        return ApprovalOut.model_validate(approvals.reject(engine, approval_id, actor_id, reason))
    except WorkflowError as e:
        raise _http_error(e)


@app.post("/approvals/{approval_id}/reset", response_model=ApprovalOut)
def reset_approval(
    approval_id: str,
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
):
    engine = get_engine()
    actor_id = _actor(engine, x_user_id)

    try:
        return ApprovalOut.model_validate(approvals.reset_approval(engine, approval_id, actor_id))
    except WorkflowError as e:
        raise _http_error(e)


# -----------------------------
# Tag requests
# -----------------------------
@app.post("/content/{content_id}/tag-requests", response_model=TagRequestOut, status_code=201)
def create_tag_request(
    content_id: str,
    body: TagRequestIn,
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
):
    engine = get_engine()
    actor_id = _actor(engine, x_user_id)

    try:
        request = tag_requests.create_tag_request(engine, content_id, actor_id, body.role, body.message)
        return TagRequestOut.model_validate(request)
    except WorkflowError as e:
        raise _http_error(e)


@app.get("/content/{content_id}/tag-requests", response_model=list[TagRequestOut])
def list_tag_requests(
    content_id: str,
    status: Optional[TagRequestStatus] = None,
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
):
    engine = get_engine()
    actor_id = _actor(engine, x_user_id)

    try:
        return [TagRequestOut.model_validate(r) for r in tag_requests.list_tag_requests(engine, content_id, actor_id, status)]
    except WorkflowError as e:
        raise _http_error(e)


@app.post("/tag-requests/{request_id}/approve", response_model=TagRequestOut)
def approve_tag_request(
    request_id: str,
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
):
    engine = get_engine()
    actor_id = _actor(engine, x_user_id)

    try:
        return TagRequestOut.model_validate(tag_requests.approve_tag_request(engine, request_id, actor_id))
    except WorkflowError as e:
        raise _http_error(e)


@app.post("/tag-requests/{request_id}/deny", response_model=TagRequestOut)
def deny_tag_request(
    request_id: str,
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
):
    engine = get_engine()
    actor_id = _actor(engine, x_user_id)

    try:
        return TagRequestOut.model_validate(tag_requests.deny_tag_request(engine, request_id, actor_id))
    except WorkflowError as e:
        raise _http_error(e)


# -----------------------------
# Notifications
# -----------------------------
@app.get("/notifications", response_model=list[NotificationOut])
def list_notifications(
    unread: bool = False,
    limit: int = Query(20, ge=1, le=100),
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
):
    engine = get_engine()
    actor_id = _actor(engine, x_user_id)
    return notifications.list_notifications(engine, actor_id, unread_only=unread, limit=limit)


@app.post("/notifications/mark-as-read")
def mark_notifications_read(
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
):
    engine = get_engine()
    actor_id = _actor(engine, x_user_id)
    return {"marked": notifications.mark_all_read(engine, actor_id)}


@app.get("/notifications/counts", response_model=ActivityCountsOut)
def notification_counts(
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
):
    engine = get_engine()
    actor_id = _actor(engine, x_user_id)
    return notifications.activity_counts(engine, actor_id)
