"""
Tests for the SQLAlchemy stores

Tests cover:
- IntegrityError classification by structured driver codes
- Real constraint signals from SQLite
- Active-body join, listing order and soft-delete filtering
"""

from unittest.mock import Mock

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from prompt_manager.models.prompt import Prompt
from prompt_manager.models.prompt_version import PromptVersion
from prompt_manager.services.sql_stores import (
    SQLPromptStore,
    SQLVersionStore,
    classify_integrity_error,
    translate_store_errors,
)
from prompt_manager.services.stores import (
    StoreConflict,
    StoreCancelled,
    StoreNotFound,
    CONFLICT_UNIQUE,
    CONFLICT_FOREIGN_KEY,
    CONFLICT_OTHER,
    page_bounds,
)


def _integrity_error(orig):
    return IntegrityError("INSERT ...", {}, orig)


class TestClassifyIntegrityError:

    def test_postgres_unique_violation(self):
        orig = Mock(sqlstate="23505")
        assert classify_integrity_error(_integrity_error(orig)) == CONFLICT_UNIQUE

    def test_postgres_foreign_key_violation_via_pgcode(self):
        orig = Mock(sqlstate=None, pgcode="23503")
        assert classify_integrity_error(_integrity_error(orig)) == CONFLICT_FOREIGN_KEY

    def test_sqlite_unique_violation(self):
        orig = Mock(sqlstate=None, pgcode=None, sqlite_errorname="SQLITE_CONSTRAINT_UNIQUE")
        assert classify_integrity_error(_integrity_error(orig)) == CONFLICT_UNIQUE

    def test_message_text_is_not_consulted(self):
        orig = Exception("duplicate key value violates unique constraint")
        assert classify_integrity_error(_integrity_error(orig)) == CONFLICT_OTHER


class TestTranslateStoreErrors:

    def test_integrity_error_becomes_store_conflict(self):
        with pytest.raises(StoreConflict) as exc_info:
            with translate_store_errors():
                raise _integrity_error(Mock(sqlstate="23505"))

        assert exc_info.value.is_unique_violation

    def test_query_cancel_becomes_store_cancelled(self):
        with pytest.raises(StoreCancelled):
            with translate_store_errors():
                raise OperationalError("SELECT ...", {}, Mock(sqlstate="57014"))

    def test_other_operational_errors_propagate(self):
        with pytest.raises(OperationalError):
            with translate_store_errors():
                raise OperationalError("SELECT ...", {}, Exception("connection lost"))


class TestPageBounds:

    def test_defaults(self):
        assert page_bounds(0, -5) == (50, 0)
        assert page_bounds(None, None, default_limit=20) == (20, 0)

    def test_passes_valid_values(self):
        assert page_bounds(10, 30) == (10, 30)


class TestSQLVersionStore:

    def test_duplicate_version_number_is_unique_conflict(self, db):
        prompts = SQLPromptStore(db)
        versions = SQLVersionStore(db)
        prompt = prompts.create(Prompt(name="dup"))
        versions.create(PromptVersion(prompt_id=prompt.id, version_number=1, body="a"))

        with pytest.raises(StoreConflict) as exc_info:
            versions.create(PromptVersion(prompt_id=prompt.id, version_number=1, body="b"))

        assert exc_info.value.is_unique_violation
        db.rollback()

    def test_latest_version_number_starts_at_zero(self, db):
        prompt = SQLPromptStore(db).create(Prompt(name="fresh"))
        assert SQLVersionStore(db).get_latest_version_number(prompt.id) == 0

    def test_previous_version_lookup(self, db):
        prompt = SQLPromptStore(db).create(Prompt(name="chain"))
        versions = SQLVersionStore(db)
        first = versions.create(PromptVersion(prompt_id=prompt.id, version_number=1, body="a"))
        versions.create(PromptVersion(prompt_id=prompt.id, version_number=2, body="b"))

        assert versions.get_previous_version(prompt.id, 2).id == first.id
        with pytest.raises(StoreNotFound):
            versions.get_previous_version(prompt.id, 1)


class TestSQLPromptStore:

    def test_active_version_body_is_joined(self, db):
        prompts = SQLPromptStore(db)
        prompt = prompts.create(Prompt(name="joined"))
        version = SQLVersionStore(db).create(
            PromptVersion(prompt_id=prompt.id, version_number=1, body="Body v1")
        )
        prompts.update_active_version(prompt.id, version.id)
        db.commit()

        loaded = prompts.get_by_id(prompt.id)

        assert loaded.active_version_id == version.id
        assert loaded.active_version_body == "Body v1"

    def test_no_active_version_means_no_body(self, db):
        prompts = SQLPromptStore(db)
        prompt = prompts.create(Prompt(name="empty"))
        db.commit()

        assert prompts.get_by_id(prompt.id).active_version_body is None

    def test_soft_deleted_prompt_hidden_from_get_by_id(self, db):
        prompts = SQLPromptStore(db)
        prompt = prompts.create(Prompt(name="gone"))
        prompts.soft_delete(prompt.id)
        db.commit()

        with pytest.raises(StoreNotFound):
            prompts.get_by_id(prompt.id)
        assert prompts.get_by_id_including_deleted(prompt.id).is_deleted

    def test_soft_delete_twice_raises_not_found(self, db):
        prompts = SQLPromptStore(db)
        prompt = prompts.create(Prompt(name="twice"))
        prompts.soft_delete(prompt.id)

        with pytest.raises(StoreNotFound):
            prompts.soft_delete(prompt.id)

    def test_search_escapes_like_wildcards(self, db):
        prompts = SQLPromptStore(db)
        prompts.create(Prompt(name="rate_100%"))
        prompts.create(Prompt(name="rate_1000"))
        db.commit()

        names = [p.name for p in prompts.list(search="100%")]

        assert names == ["rate_100%"]
        assert prompts.count(search="RATE_") == 2
