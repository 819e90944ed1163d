"""Unit tests for core/database.py and core/config.py.

Covers:
- private ':memory:' databases share one engine between reader and writer
- writer() commits on success and rolls back on exception
- create_index names and uniqueness
- allocate_id skips values that are already primary keys
- Settings policy validation
"""

from pathlib import Path

import pytest
from pydantic import ValidationError
from sqlalchemy import Column, Integer, MetaData, String, Table, inspect
from sqlalchemy.exc import IntegrityError

from core.config import Settings
from core.database import Database, allocate_id
from core.lcg import LCG, to_signed64


def _notes(db: Database) -> Table:
    metadata = MetaData()
    table = Table(
        "notes",
        metadata,
        Column("id", Integer, primary_key=True, autoincrement=False),
        Column("body", String(64)),
    )
    db.create_tables(metadata)
    return table


class TestDatabase:
    def test_memory_database_is_shared(self) -> None:
        db = Database("sqlite:///:memory:")
        try:
            notes = _notes(db)
            with db.writer() as conn:
                conn.execute(notes.insert().values(id=1, body="hello"))
            with db.reader() as conn:
                assert conn.execute(notes.select()).fetchone().body == "hello"
            assert db.count_rows("notes") == 1
        finally:
            db.close()

    def test_parent_directory_is_created(self, tmp_path: Path) -> None:
        db = Database(f"sqlite:///{tmp_path / 'nested' / 'dir' / 'x.db'}")
        try:
            _notes(db)
            assert (tmp_path / "nested" / "dir" / "x.db").exists()
        finally:
            db.close()

    def test_writer_rolls_back_on_error(self, db: Database) -> None:
        notes = _notes(db)
        with pytest.raises(RuntimeError):
            with db.writer() as conn:
                conn.execute(notes.insert().values(id=1, body="lost"))
                raise RuntimeError("boom")
        assert db.count_rows("notes") == 0

    def test_create_index_names_and_uniqueness(self, db: Database) -> None:
        notes = _notes(db)
        db.create_index("notes", "body", unique=True)
        db.create_index("notes", "body", unique=True)  # idempotent

        with db.reader() as conn:
            names = {ix["name"] for ix in inspect(conn).get_indexes("notes")}
        assert "notes_body_uidx" in names

        with db.writer() as conn:
            conn.execute(notes.insert().values(id=1, body="same"))
        with pytest.raises(IntegrityError):
            with db.writer() as conn:
                conn.execute(notes.insert().values(id=2, body="same"))

    def test_quote_table_name(self, db: Database) -> None:
        assert db.quote_table_name("users") == '"users"'
        assert db.quote_table_name('we"ird') == '"we""ird"'

    def test_allocate_id_skips_taken_values(self, db: Database) -> None:
        notes = _notes(db)
        expected = LCG(9)
        taken = to_signed64(expected.next())
        following = to_signed64(expected.next())

        with db.writer() as conn:
            conn.execute(notes.insert().values(id=taken, body="live"))
            assert allocate_id(conn, LCG(9), notes.c.id) == following


class TestSettings:
    def test_defaults_are_valid(self) -> None:
        settings = Settings()
        assert settings.bcrypt_rounds == 12
        assert settings.users_table == "users"
        assert settings.settings_key == "sets"

    @pytest.mark.parametrize("rounds", [3, 32])
    def test_bcrypt_rounds_out_of_range(self, rounds: int) -> None:
        with pytest.raises(ValidationError):
            Settings(bcrypt_rounds=rounds)

    def test_non_positive_duration_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Settings(short_session_expiration_seconds=0)

    def test_secret_retries_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            Settings(secret_retries=0)

    def test_environment_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("USERS_TABLE", "accounts")
        monkeypatch.setenv("BCRYPT_ROUNDS", "10")
        settings = Settings()
        assert settings.users_table == "accounts"
        assert settings.bcrypt_rounds == 10
