"""Database access for console pages."""

import logging

from meridian.core.db import get_session_factory
from meridian.resilience import ErrorHandler

logger = logging.getLogger("meridian.console")
_errors = ErrorHandler(logger=logger, raise_on_error=True)


def get_db_session():
    """A new session; the caller closes it."""
    return get_session_factory()()


def safe_query(fn, *args, **kwargs):
    """
    Run fn(session, *args, **kwargs) in its own session.

    Commits on success and rolls back on error. fn should return plain data
    (dicts, DataFrames): ORM rows are detached once the session closes.
    """
    session = get_db_session()
    try:
        result = fn(session, *args, **kwargs)
        session.commit()
        return result
    except Exception as e:
        session.rollback()
        _errors.handle(e, {"query": getattr(fn, "__name__", "query")})
    finally:
        session.close()
