"""Pytest configuration and fixtures for Meridian tests."""
import json
import os
import sys
from contextlib import contextmanager
from datetime import date

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import String, Text, TypeDecorator, create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Define SQLite-compatible type adapters BEFORE importing models


class SQLiteJSONB(TypeDecorator):
    """SQLite-compatible JSONB (stores as JSON text)."""
    impl = Text
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            return json.dumps(value)
        return None

    def process_result_value(self, value, dialect):
        if value is not None:
            return json.loads(value)
        return None


class SQLiteUUID(TypeDecorator):
    """SQLite-compatible UUID (stores as string)."""
    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return None

    def process_result_value(self, value, dialect):
        if value is not None:
            from uuid import UUID as UUIDType
            if isinstance(value, UUIDType):
                return value
            return UUIDType(value)
        return None


# Monkey-patch postgresql dialect types with our SQLite-compatible versions
# This must happen BEFORE meridian.core.models is imported
import sqlalchemy.dialects.postgresql as pg_dialect

pg_dialect.JSONB = SQLiteJSONB
pg_dialect.UUID = lambda *args, **kwargs: SQLiteUUID()

# Now import models (after patching)
from meridian.core.db import seed_demo_data
from meridian.core.models import Base, Environment, ProviderEnum

# Fixed "today" for seeded data so month arithmetic is deterministic
TODAY = date(2026, 3, 15)


@pytest.fixture
def engine():
    """A fresh in-memory SQLite engine per test (one shared connection)."""
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Enable foreign key support in SQLite
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def session(session_factory):
    """Create a new database session for each test."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def session_scope(session_factory):
    """A get_session()-style context manager bound to the test engine."""

    @contextmanager
    def scope():
        session = session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    return scope


@pytest.fixture
def environment(session):
    """Create an empty test environment."""
    env = Environment(name="test-env", description="Test environment", provider=ProviderEnum.AWS, currency="USD")
    session.add(env)
    session.commit()
    return env


@pytest.fixture
def seeded(session):
    """The demo environment: drifted instance, missing bucket, spend, budget, workloads."""
    created = seed_demo_data(session, name="staging", today=TODAY)
    session.commit()
    return created


@pytest.fixture
def today():
    """The date seeded data runs up to."""
    return TODAY
