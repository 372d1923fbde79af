"""Database connection and session management."""

import logging
from collections.abc import Generator, Iterator
from contextlib import contextmanager
from typing import Annotated, Any

from fastapi import Depends
from sqlalchemy import Engine, create_engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from results_engine.core.config import settings
from results_engine.core.exceptions import ConcurrencyConflictError, PersistenceError

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base class."""

    pass


def build_engine(url: str, **overrides: Any) -> Engine:
    """Create an engine with pool settings suited to the backend."""
    options: dict[str, Any] = {"echo": False, "pool_pre_ping": True}
    if url.startswith("sqlite"):
        # Request threads share the file; SQLite handles its own locking
        options["connect_args"] = {"check_same_thread": False}
    else:
        options["pool_size"] = 10
        options["max_overflow"] = 20
    options.update(overrides)
    return create_engine(url, **options)


def build_session_factory(bind: Engine) -> sessionmaker[Session]:
    return sessionmaker(
        bind=bind,
        class_=Session,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


engine = build_engine(settings.DATABASE_URL)

SessionLocal = build_session_factory(engine)


def get_db() -> Generator[Session, None, None]:
    """Get database session dependency."""
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@contextmanager
def atomic_write(session: Session, description: str) -> Iterator[None]:
    """Commit the enclosed writes as one unit, or roll all of them back.

    Store errors are translated: natural-key and stale-version races become
    ConcurrencyConflictError, anything else from the driver PersistenceError.
    """
    try:
        yield
        session.commit()
    except (IntegrityError, StaleDataError) as e:
        session.rollback()
        logger.warning(f"Concurrent write detected during {description}: {e}")
        raise ConcurrencyConflictError(details={"operation": description})
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Store failure during {description}: {e}")
        raise PersistenceError(details={"operation": description})
    except Exception:
        session.rollback()
        raise


# Type alias for dependency injection
DbSession = Annotated[Session, Depends(get_db)]
