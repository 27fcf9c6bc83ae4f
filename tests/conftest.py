"""Shared test configuration: isolated SQLite database and API key."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

import pytest

_DB_DIR = Path(tempfile.mkdtemp(prefix="stakelab-tests-"))
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_DIR / 'stakelab.db'}"
os.environ["STAKELAB_API_KEY"] = "test-key"
os.environ["OPENAI_API_KEY"] = ""

API_KEY = "test-key"


@pytest.fixture()
def client():
    from fastapi.testclient import TestClient

    from stakelab.api import server
    from stakelab.config import get_settings
    from stakelab.db.database import engine, init_db
    from stakelab.db.models import Base
    from stakelab.services.rate_limit import RateLimitRegistry

    Base.metadata.drop_all(engine)
    init_db()
    server.app.state.rate_limits = RateLimitRegistry.from_settings(get_settings())
    with TestClient(server.app) as test_client:
        test_client.headers.update({"X-API-Key": API_KEY})
        yield test_client
