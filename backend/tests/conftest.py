"""
Shared fixtures: in-memory SQLite database, a keyholder/sub pair and an
active relationship between them.

All service calls in the tests pass an explicit `now`, so nothing depends
on the wall clock.
"""
import os
from datetime import datetime

# Set environment variables before importing locktime modules
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from locktime.database import Base
from locktime.models.relationship import Relationship, RelationshipStatus
from locktime.models.user import User, UserRole


# Test database setup
TEST_DATABASE_URL = "sqlite:///:memory:"
engine = create_engine(TEST_DATABASE_URL)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

T0 = datetime(2026, 3, 1, 12, 0, 0)


@pytest.fixture
def db():
    """Create test database session."""
    import locktime.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def t0():
    """Fixed reference instant."""
    return T0


@pytest.fixture
def keyholder(db):
    """Create a keyholder."""
    user = User(email="kh@example.com", display_name="Keyholder", role=UserRole.KEYHOLDER)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def sub(db):
    """Create a sub."""
    user = User(email="sub@example.com", display_name="Sub", role=UserRole.SUB)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def outsider(db):
    """Create a keyholder who is not part of the pairing."""
    user = User(email="other@example.com", display_name="Other", role=UserRole.KEYHOLDER)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def pairing(db, keyholder, sub, t0):
    """Create an active relationship between keyholder and sub."""
    relationship = Relationship(
        keyholder_id=keyholder.id,
        sub_id=sub.id,
        status=RelationshipStatus.ACTIVE,
        started_at=t0,
    )
    db.add(relationship)
    db.commit()
    db.refresh(relationship)
    return relationship


@pytest.fixture
def admin(db):
    """Create an administrator."""
    user = User(email="admin@example.com", display_name="Admin", role=UserRole.KEYHOLDER, is_admin=True)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user
