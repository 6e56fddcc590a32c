# backend/api/streetwatch/config.py
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# backend/api/streetwatch/config.py -> parents[1] == backend/api
BACKEND_API_DIR = Path(__file__).resolve().parents[1]

_env_loaded = False


def load_env() -> None:
    """
    Loads .env from:
      1) ENV_PATH if provided
      2) backend/api/.env (project default)
      3) current working directory .env (fallback)
    """
    global _env_loaded
    if _env_loaded:
        return
    _env_loaded = True

    env_path = os.getenv("ENV_PATH")
    if env_path:
        p = Path(env_path)
        if p.exists():
            load_dotenv(p, override=False)
            return

    p2 = BACKEND_API_DIR / ".env"
    if p2.exists():
        load_dotenv(p2, override=False)
        return

    p3 = Path.cwd() / ".env"
    if p3.exists():
        load_dotenv(p3, override=False)


@dataclass(frozen=True)
class Settings:
    database_url: str | None
    log_level: str
    log_dir: Path | None

    def require_database_url(self) -> str:
        if not self.database_url:
            tried = [
                f"ENV_PATH={os.getenv('ENV_PATH')}",
                str(BACKEND_API_DIR / ".env"),
                str(Path.cwd() / ".env"),
            ]
            raise RuntimeError(
                "DATABASE_URL is not set. Ensure it exists in backend/api/.env or set ENV_PATH.\n"
                f"Tried: {', '.join(tried)}"
            )
        return self.database_url


def get_settings() -> Settings:
    load_env()

    log_dir = os.getenv("LOG_DIR")
    return Settings(
        database_url=os.getenv("DATABASE_URL") or os.getenv("DB_URL"),
        log_level=(os.getenv("LOG_LEVEL") or "INFO").strip().upper(),
        log_dir=Path(log_dir) if log_dir else None,
    )
