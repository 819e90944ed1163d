"""
tests/conftest.py -- Shared fixtures for Gatehouse tests.

This module provides:
  - db: a Database on a fresh SQLite file under tmp_path
  - users / sessions / tokens: managers wired to that database
  - admin: a persisted administrator (role 3) with password "password"

Design: file-backed SQLite (not ':memory:') so the pooled read engine and the
serialized write engine see the same database, exactly as in production.
Every test gets its own tmp_path, so no state leaks between tests.

bcrypt runs at cost 4 in tests. Cost 12 is the production default and makes
each hash take a noticeable fraction of a second.
"""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest

from auth.access_tokens import AccessTokenManager
from auth.models import User
from auth.sessions import SessionManager
from auth.store import UserStore
from core.database import Database

TEST_BCRYPT_ROUNDS = 4
TEST_USER_SEED = 0x5DEECE66D1234567
TEST_SESSION_SEED = 0x2545F4914F6CDD1D


def make_db_url(tmp_path: Path) -> str:
    return f"sqlite:///{tmp_path / 'gatehouse_test.db'}"


@pytest.fixture
def db(tmp_path: Path) -> Generator[Database, None, None]:
    database = Database(make_db_url(tmp_path))
    yield database
    database.close()


@pytest.fixture
def users(db: Database) -> UserStore:
    return UserStore(db, seed=TEST_USER_SEED, bcrypt_rounds=TEST_BCRYPT_ROUNDS)


@pytest.fixture
def sessions(db: Database, users: UserStore) -> SessionManager:
    return SessionManager(db, seed=TEST_SESSION_SEED)


@pytest.fixture
def tokens(db: Database, users: UserStore) -> AccessTokenManager:
    return AccessTokenManager(db)


@pytest.fixture
def admin(users: UserStore) -> User:
    return users.insert(
        User(name="Mr. Test", email="superadmin@test.com", role=3, active=True, verified=True),
        "password",
    )


@pytest.fixture
def make_user_store(db: Database):
    """Return a factory building a UserStore on the shared db -- simulates a process restart."""

    def _make(seed: int = TEST_USER_SEED, **kwargs) -> UserStore:
        kwargs.setdefault("bcrypt_rounds", TEST_BCRYPT_ROUNDS)
        return UserStore(db, seed=seed, **kwargs)

    return _make
