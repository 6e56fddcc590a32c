# backend/api/streetwatch/db.py
from __future__ import annotations

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine

from streetwatch.config import get_settings

_engine: Engine | None = None


def get_engine() -> Engine:
    global _engine

    if _engine is not None:
        return _engine

    db_url = get_settings().require_database_url()
    _engine = create_engine(db_url, pool_pre_ping=True, future=True)
    return _engine


def db_ping(engine: Engine) -> None:
    """Raises if the database cannot answer a trivial query."""
    with engine.connect() as conn:
        conn.execute(text("SELECT 1")).scalar_one()
