"""Database helpers for StakeLab."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from stakelab.config import get_settings

settings = get_settings()
_url = str(settings.database_url)
_connect_args = {"check_same_thread": False} if _url.startswith("sqlite") else {}
engine = create_engine(_url, future=True, echo=False, connect_args=_connect_args)
SessionLocal = sessionmaker(bind=engine, class_=Session, expire_on_commit=False, autoflush=False)

__all__ = ["engine", "SessionLocal", "get_session", "init_db"]


def init_db() -> None:
    """Create any missing tables."""

    from stakelab.db.models import Base

    Base.metadata.create_all(engine)


@contextmanager
def get_session() -> Iterator[Session]:
    """Provide a transactional scope around a series of operations."""

    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
