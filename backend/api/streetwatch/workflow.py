from __future__ import annotations

from streetwatch.models import APPROVED, DENIED, PENDING, REJECTED, ROLES

APPROVAL_STATES: list[str] = [PENDING, APPROVED, REJECTED]
TAG_REQUEST_STATES: list[str] = [PENDING, APPROVED, DENIED]

DEFAULT_REJECTION_REASON = "No reason provided"


class WorkflowError(Exception):
    """Base class for failures returned to the calling web layer."""

    kind = "workflow_error"


class NotFound(WorkflowError):
    kind = "not_found"


class Unauthorized(WorkflowError):
    kind = "unauthorized"


class InvalidTransition(WorkflowError):
    kind = "invalid_transition"


class DuplicateTag(WorkflowError):
    kind = "duplicate_tag"


class InvalidRole(WorkflowError):
    kind = "invalid_role"


def list_states() -> dict[str, list[str]]:
    return {"approval": list(APPROVAL_STATES), "tag_request": list(TAG_REQUEST_STATES)}


# Approval records: every action is valid from every state.
# action -> target status
_APPROVAL_ACTIONS: dict[str, str] = {
    "approve": APPROVED,
    "reject": REJECTED,
    "reset": PENDING,
}

# Tag requests: approved/denied are terminal.
_TAG_REQUEST_TRANSITIONS: dict[str, list[str]] = {
    PENDING: [APPROVED, DENIED],
    APPROVED: [],
    DENIED: [],
}


def _normalize(value: str | None) -> str:
    if not value:
        return ""
    return value.strip().lower()


def approval_target(action: str, reason: str | None = None) -> tuple[str, str | None]:
    """
    Returns (status, rejection_reason) an approval record takes after `action`.

    Only a rejection keeps a reason; a blank one falls back to the default text.
    """
    a = _normalize(action)
    if a not in _APPROVAL_ACTIONS:
        raise InvalidTransition(f"Unknown approval action: {action}")

    status = _APPROVAL_ACTIONS[a]
    if status != REJECTED:
        return status, None

    cleaned = (reason or "").strip()
    return status, cleaned or DEFAULT_REJECTION_REASON


def allowed_tag_request_transitions(from_state: str) -> list[str]:
    s = _normalize(from_state)
    if s not in _TAG_REQUEST_TRANSITIONS:
        return []
    return list(_TAG_REQUEST_TRANSITIONS[s])


def validate_tag_request_transition(from_state: str, to_state: str) -> None:
    """
    Raises InvalidTransition if the tag request cannot move to `to_state`.
    """
    s_from = _normalize(from_state)
    s_to = _normalize(to_state)

    if s_from not in TAG_REQUEST_STATES:
        raise InvalidTransition(f"Unknown from_state: {from_state}")

    if s_to not in TAG_REQUEST_STATES:
        raise InvalidTransition(f"Unknown to_state: {to_state}")

    allowed = allowed_tag_request_transitions(s_from)
    if s_to not in allowed:
        raise InvalidTransition(f"Tag request is already {s_from}; cannot move to {s_to}")


def validate_role(kind: str, role: str) -> str:
    r = _normalize(role)
    if r not in ROLES.get(kind, ()):
        raise InvalidRole(f"'{role}' is not a valid role for a {kind}. Allowed: {list(ROLES.get(kind, ()))}")
    return r
