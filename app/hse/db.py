from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from collections.abc import Callable, Generator
from typing import TypeVar

from flask import Flask, g
from sqlalchemy import create_engine, event
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session, sessionmaker

from app.hse.errors import ConflictError, TransitionRaceError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# SQLSTATE codes Postgres uses for serialization failure / deadlock.
_RETRYABLE_SQLSTATES = frozenset({"40001", "40P01"})


def init_db(app: Flask) -> None:
    db_url = app.config["DATABASE_URL"]
    is_postgres = db_url.startswith("postgres")
    engine_kwargs: dict[str, object] = {
        "future": True,
        "pool_pre_ping": True,
    }
    if is_postgres:
        engine_kwargs.update(
            {
                "pool_recycle": 1800,
                "pool_size": 5,
                "max_overflow": 10,
                "pool_timeout": 30,
            }
        )
    elif db_url.startswith("sqlite"):
        # Concurrent writers wait on the file lock instead of failing immediately.
        engine_kwargs["connect_args"] = {"timeout": 15, "check_same_thread": False}
    engine = create_engine(db_url, **engine_kwargs)
    if app.config.get("ENV") != "production":
        @event.listens_for(engine, "checkout")
        def _receive_checkout(dbapi_connection, connection_record, connection_proxy):  # type: ignore[no-redef]
            app.logger.debug("DB connection checkout from pool")
    app.extensions["sqlalchemy_engine"] = engine
    app.extensions["sqlalchemy_sessionmaker"] = sessionmaker(
        bind=engine,
        class_=Session,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
        future=True,
    )


def db_session(app: Flask | None = None) -> Session:
    """
    Request-scoped session. Use inside request handlers.
    """
    if hasattr(g, "db_session") and g.db_session is not None:
        return g.db_session
    if app is None:
        from flask import current_app

        app = current_app
    sm = app.extensions["sqlalchemy_sessionmaker"]
    g.db_session = sm()  # type: ignore[assignment]
    return g.db_session


def teardown_db_session(_exc: BaseException | None) -> None:
    s: Session | None = getattr(g, "db_session", None)
    if s is not None:
        try:
            s.close()
        except Exception:
            logger.warning("Failed to close request DB session", exc_info=True)
        g.db_session = None


@contextmanager
def session_scope(app: Flask) -> Generator[Session, None, None]:
    """
    Non-request helper for scripts: yields a session and commits/rolls back.
    """
    sm = app.extensions["sqlalchemy_sessionmaker"]
    s: Session = sm()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()


def is_transient_db_error(exc: BaseException) -> bool:
    """Lock contention / serialization failures that are safe to retry."""
    if not isinstance(exc, DBAPIError):
        return False
    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if sqlstate in _RETRYABLE_SQLSTATES:
        return True
    return "database is locked" in str(orig or exc).lower()


def run_with_retry(
    s: Session,
    unit: Callable[[], T],
    *,
    attempts: int = 3,
    backoff_seconds: float = 0.05,
    label: str = "transaction",
) -> T:
    """
    Run ``unit`` and commit it as one transaction.

    A lost compare-and-swap (``TransitionRaceError``) or a transient lock error
    rolls back and re-runs the whole unit from fresh reads, up to ``attempts``
    times with exponential backoff. Exhaustion surfaces ``ConflictError``.
    Any other exception rolls back and propagates unchanged.
    """
    attempts = max(1, attempts)
    last_err: BaseException | None = None
    for attempt in range(1, attempts + 1):
        try:
            result = unit()
            s.commit()
            return result
        except TransitionRaceError as e:
            s.rollback()
            last_err = e
            logger.info("%s lost a concurrent transition (attempt %s/%s): %s", label, attempt, attempts, e.message)
        except DBAPIError as e:
            s.rollback()
            if not is_transient_db_error(e):
                raise
            last_err = e
            logger.warning("%s hit a transient DB conflict (attempt %s/%s): %s", label, attempt, attempts, e)
        except Exception:
            s.rollback()
            raise
        if attempt < attempts:
            time.sleep(backoff_seconds * (2 ** (attempt - 1)))

    context = getattr(last_err, "context", {}) or {}
    raise ConflictError(
        f"{label} could not be applied after {attempts} attempts due to concurrent changes; reload and try again.",
        attempts=attempts,
        **context,
    )
