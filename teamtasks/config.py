from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

def _resolve_project_root() -> Path:
    if getattr(sys, "frozen", False):
        return Path(sys.executable).resolve().parent
    return Path(__file__).resolve().parents[1]


PROJECT_ROOT = _resolve_project_root()


def load_env() -> None:
    env_name = os.getenv("APP_ENV", "development")
    candidates = [Path.cwd(), PROJECT_ROOT]
    for base in candidates:
        env_path = base / ".env"
        if env_path.exists():
            load_dotenv(env_path)
            break

    for base in candidates:
        env_specific = base / f".env.{env_name}"
        if env_specific.exists():
            load_dotenv(env_specific, override=True)
            break


@dataclass(frozen=True)
class Settings:
    database_url: str
    storage_backend: str = "sql"
    memory_path: str = "data/stable_memory.bin"
    bucket_size_pages: int = 128
    max_memory_pages: int | None = None
    admin_identity: str = "2vxsx-fae"
    log_level: str = "INFO"
    log_dir: str = "logs"


load_env()

DATABASE_URL = os.getenv("DATABASE_URL", "").strip() or (
    f"sqlite:///{PROJECT_ROOT / 'data' / 'team_tasks.db'}"
)

SETTINGS = Settings(
    database_url=DATABASE_URL,
    storage_backend=os.getenv("STORAGE_BACKEND", "sql").strip().lower(),
    memory_path=os.getenv("MEMORY_PATH", "data/stable_memory.bin"),
    bucket_size_pages=int(os.getenv("BUCKET_SIZE_PAGES", "128")),
    max_memory_pages=int(os.getenv("MAX_MEMORY_PAGES", "0")) or None,
    admin_identity=os.getenv("ADMIN_IDENTITY", "2vxsx-fae").strip(),
    log_level=os.getenv("LOG_LEVEL", "INFO"),
    log_dir=os.getenv("LOG_DIR", "logs"),
)
