"""Pytest fixtures: every test gets a fresh SQLite schema."""
from __future__ import annotations

import os
import tempfile
from pathlib import Path

import pytest

# db.py reads DATABASE_URL at import time
_DB_DIR = Path(tempfile.mkdtemp(prefix="tracker-tests-"))
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_DIR / 'test.db'}"

from fastapi.testclient import TestClient  # noqa: E402

import models  # noqa: E402,F401  registers the tables on Base
from app import app  # noqa: E402
from db import Base, SessionLocal, engine  # noqa: E402


@pytest.fixture()
def db():
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(db):
    with TestClient(app) as c:
        yield c


