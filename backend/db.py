# backend/db.py
from __future__ import annotations

import os
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

# Optional: load .env (DATABASE_URL, CORS_ORIGINS, LOG_LEVEL, ...)
try:
    from dotenv import load_dotenv
    load_dotenv()
except ImportError:
    pass

# Accept common env var names for database URLs
DATABASE_URL = (
    os.getenv("DATABASE_URL")
    or os.getenv("PG_URL")
    or os.getenv("POSTGRES_URL")
    or os.getenv("POSTGRES_URI")
    or os.getenv("DB_URL")
)

if not DATABASE_URL:
    raise RuntimeError(
        "DATABASE_URL (or PG_URL/POSTGRES_URL/POSTGRES_URI/DB_URL) is not set."
        " Put it in backend/.env or export it in your shell."
    )

CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:3000")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
PAGE_SIZE = int(os.getenv("PAGE_SIZE", "10"))
MAX_PAGE_SIZE = int(os.getenv("MAX_PAGE_SIZE", "100"))
MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))
CREATE_TABLES = os.getenv("CREATE_TABLES", "").strip().lower() in ("1", "true", "yes", "on")

# SQLite connections are shared across the threadpool FastAPI runs sync routes in
_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine: Engine = create_engine(
    DATABASE_URL,
    pool_pre_ping=True,
    future=True,
    connect_args=_connect_args,
)

# Declarative base (needed by models.py)
Base = declarative_base()

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)


def get_db() -> Iterator[Session]:
    """FastAPI dependency: one session per request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
