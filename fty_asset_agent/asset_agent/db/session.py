"""
Database session management with lazy initialization.
The engine and session factory are created on first use, not at import time,
so the actors and the API can be imported without a reachable database.
"""
import os
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def _get_database_url() -> str:
    url = os.getenv("DB_URL")
    if not url:
        raise ValueError("DB_URL not set in environment variables!")
    return url


def get_engine() -> Engine:
    """Engine of DB_URL; connection pooling is only configured for server databases."""
    global _engine
    if _engine is None:
        database_url = _get_database_url()
        if database_url.startswith("sqlite"):
            _engine = create_engine(database_url, echo=False)
        else:
            _engine = create_engine(
                database_url,
                pool_pre_ping=True,
                pool_size=5,
                max_overflow=10,
                pool_timeout=30,
                echo=False,
            )
    return _engine


def get_session_factory() -> sessionmaker:
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(autocommit=False, autoflush=False, bind=get_engine())
    return _session_factory


@contextmanager
def session_scope(factory: Optional[Callable[[], Session]] = None) -> Iterator[Session]:
    """
    One session per handled message. The caller commits; anything left
    uncommitted is rolled back when the scope closes.
    """
    db = factory() if factory is not None else get_session_factory()()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
