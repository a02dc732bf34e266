"""SQLAlchemy engine factory, session class and transactional scope.

This module provides:

* ``create_folio_engine``    -- Create a SA engine from a URL with sane defaults.
* ``FolioSession``           -- A pre-configured ``Session`` subclass.
* ``folio_session_factory``  -- ``sessionmaker`` producing ``FolioSession``.
* ``transaction_scope``      -- One unit of work: commit on success, roll
  back on every error path, translate storage errors into folio errors.

Tags:
    folio-core, orm, sqlalchemy, session, engine, transaction

Doc-Types:
    api-reference
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import create_engine as _sa_create_engine
from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from folio.core.errors import ConstraintViolationError, FolioError, PartialPersistenceError
from folio.core.logging import get_logger

logger = get_logger(__name__)


def create_folio_engine(
    url: str = "sqlite:///folio.db",
    *,
    echo: bool = False,
    pool_size: int | None = None,
    max_overflow: int | None = None,
    pool_timeout: int | None = None,
    **kwargs: Any,
) -> Engine:
    """Create a SQLAlchemy engine with sane defaults.

    Parameters
    ----------
    url:
        Database URL (``sqlite:///…``, ``postgresql://…``, etc.)
    echo:
        If ``True``, log all SQL.
    pool_size, max_overflow, pool_timeout:
        Connection pool parameters (ignored for SQLite).
    **kwargs:
        Extra arguments forwarded to ``sqlalchemy.create_engine``.
    """

    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
        engine = _sa_create_engine(url, echo=echo, **kwargs)

        # Foreign keys are off by default in SQLite; the navigation cascade needs them
        @event.listens_for(engine, "connect")
        def _set_sqlite_pragma(dbapi_connection: Any, _rec: Any) -> None:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    pool_kwargs: dict[str, Any] = {}
    if pool_size is not None:
        pool_kwargs["pool_size"] = pool_size
    if max_overflow is not None:
        pool_kwargs["max_overflow"] = max_overflow
    if pool_timeout is not None:
        pool_kwargs["pool_timeout"] = pool_timeout

    return _sa_create_engine(url, echo=echo, **pool_kwargs, **kwargs)


class FolioSession(Session):
    """Pre-configured session with ``expire_on_commit=False``.

    Envelope rows outlive the session that loaded them (a proxy keeps its
    envelope between requests for members), so attributes must not be
    expired on commit.
    """

    def __init__(self, bind: Engine | None = None, **kwargs: Any) -> None:
        kwargs.setdefault("expire_on_commit", False)
        super().__init__(bind=bind, **kwargs)


SessionFactory = Callable[[], Session]


def folio_session_factory(engine: Engine) -> sessionmaker[FolioSession]:
    """Return a ``sessionmaker`` bound to *engine* that produces ``FolioSession`` instances."""
    return sessionmaker(bind=engine, class_=FolioSession)


@contextmanager
def transaction_scope(factory: SessionFactory, *, operation: str) -> Iterator[Session]:
    """Run one unit of work in its own session and transaction.

    Commits when the block exits cleanly. On any exception the transaction
    is rolled back before the error leaves this function:

    * ``IntegrityError``  → :class:`ConstraintViolationError`
    * other ``SQLAlchemyError`` → :class:`PartialPersistenceError`
    * :class:`FolioError` and anything else (e.g. a failing customization
      hook) → re-raised unchanged

    The session is closed on every exit path.
    """
    session = factory()
    try:
        yield session
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        logger.warning("transaction.constraint_violation", operation=operation, error=str(exc.orig))
        raise ConstraintViolationError(
            f"{operation} violated a uniqueness constraint: {exc.orig}", cause=exc
        ).with_context(operation=operation) from exc
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error("transaction.rolled_back", operation=operation, error=str(exc))
        raise PartialPersistenceError(
            f"{operation} failed and was rolled back: {exc}", cause=exc
        ).with_context(operation=operation) from exc
    except FolioError as exc:
        session.rollback()
        logger.warning(
            "transaction.rolled_back",
            operation=operation,
            error_type=type(exc).__name__,
            error=exc.message,
        )
        raise
    except BaseException:
        session.rollback()
        logger.warning("transaction.rolled_back", operation=operation)
        raise
    finally:
        session.close()


__all__ = [
    "create_folio_engine",
    "FolioSession",
    "SessionFactory",
    "folio_session_factory",
    "transaction_scope",
]
