from __future__ import annotations

from typing import Optional

from sqlalchemy import text
from sqlalchemy.engine import Engine


def resolve_actor(engine: Engine, x_user_id: Optional[str]) -> Optional[str]:
    """
    Resolve the acting user from the request header "X-User-Id".

    IMPORTANT:
    - This function MUST receive a plain string (or None).
    - Do NOT declare FastAPI Header() here because we call this directly from endpoints.
    - Authentication happens in front of this service; the header is trusted.

    Returns None for anonymous requests; raises KeyError for an unknown user.
    """
    user_id = (x_user_id or "").strip()
    if not user_id:
        return None

    sql = text(
        """
        SELECT id
        FROM users
        WHERE id = :id
        LIMIT 1
        """
    )

    with engine.begin() as conn:
        row = conn.execute(sql, {"id": user_id}).mappings().first()

    if not row:
        raise KeyError(f"User not found for id '{user_id}'")

    return str(row["id"])


def require_actor(engine: Engine, x_user_id: Optional[str]) -> str:
    actor_id = resolve_actor(engine, x_user_id)
    if actor_id is None:
        raise KeyError("X-User-Id header is required")
    return actor_id
