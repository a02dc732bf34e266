"""Tests for the SQLAlchemy ORM layer (base, tables, session, transaction_scope)."""

from __future__ import annotations

import pytest
from sqlalchemy import inspect, select, text
from sqlalchemy.exc import OperationalError

from folio.core.errors import ConstraintViolationError, NotFoundError, PartialPersistenceError
from folio.core.orm import (
    ContentTable,
    ContentTypeTable,
    FolioBase,
    FolioSession,
    MenuItemTable,
    create_folio_engine,
    folio_session_factory,
    transaction_scope,
)


@pytest.fixture
def engine(database_url):
    eng = create_folio_engine(database_url)
    FolioBase.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def factory(engine):
    return folio_session_factory(engine)


def _count(factory, model) -> int:
    with factory() as session:
        return len(session.scalars(select(model)).all())


# =========================================================================
# Engine / session
# =========================================================================


class TestEngine:
    def test_core_tables_created(self, engine):
        tables = set(inspect(engine).get_table_names())
        assert {"folio_contents", "folio_content_types", "folio_menu_items"} <= tables

    def test_sqlite_foreign_keys_enabled(self, engine):
        with engine.connect() as conn:
            assert conn.execute(text("PRAGMA foreign_keys")).scalar() == 1

    def test_session_does_not_expire_on_commit(self, factory):
        session = factory()
        assert isinstance(session, FolioSession)
        content = ContentTable(lookup_key="/a", type_name="Article", site_id=1)
        session.add(content)
        session.commit()
        session.close()
        assert content.lookup_key == "/a"


class TestTables:
    def test_timestamps_filled_by_server(self, factory):
        with factory() as session:
            content = ContentTable(lookup_key="/a", type_name="Article", site_id=1)
            session.add(content)
            session.flush()
            session.refresh(content)
            assert content.created_at is not None

    def test_menu_item_cascades_with_envelope(self, factory):
        with factory() as session:
            content = ContentTable(lookup_key="/a", type_name="Article", site_id=1)
            session.add(content)
            session.flush()
            session.add(MenuItemTable(site_id=1, label="A", lookup_key="/a", content_id=content.id))
            session.commit()
            session.execute(text("DELETE FROM folio_contents"))
            session.commit()
        assert _count(factory, MenuItemTable) == 0


# =========================================================================
# transaction_scope
# =========================================================================


class TestTransactionScope:
    def test_commits_on_clean_exit(self, factory):
        with transaction_scope(factory, operation="test") as session:
            session.add(ContentTypeTable(type_name="Article", site_id=1))
        assert _count(factory, ContentTypeTable) == 1

    def test_integrity_error_becomes_constraint_violation(self, factory):
        with transaction_scope(factory, operation="seed") as session:
            session.add(ContentTable(lookup_key="/dup", type_name="Article", site_id=1))

        with pytest.raises(ConstraintViolationError) as exc_info:
            with transaction_scope(factory, operation="content.save") as session:
                session.add(ContentTypeTable(type_name="Article", site_id=1))
                session.flush()
                session.add(ContentTable(lookup_key="/dup", type_name="Article", site_id=1))
                session.flush()

        assert exc_info.value.context.operation == "content.save"
        # The first insert of the failed unit was rolled back too
        assert _count(factory, ContentTypeTable) == 0
        assert _count(factory, ContentTable) == 1

    def test_other_database_errors_become_partial_persistence(self, factory):
        with pytest.raises(PartialPersistenceError) as exc_info:
            with transaction_scope(factory, operation="type.install") as session:
                session.add(ContentTypeTable(type_name="Article", site_id=1))
                session.flush()
                session.execute(text("INSERT INTO no_such_table VALUES (1)"))

        assert isinstance(exc_info.value.cause, OperationalError)
        assert _count(factory, ContentTypeTable) == 0

    def test_folio_errors_propagate_unchanged(self, factory):
        error = NotFoundError("gone")
        with pytest.raises(NotFoundError) as exc_info:
            with transaction_scope(factory, operation="x") as session:
                session.add(ContentTypeTable(type_name="Article", site_id=1))
                session.flush()
                raise error
        assert exc_info.value is error
        assert _count(factory, ContentTypeTable) == 0

    def test_foreign_errors_propagate_unchanged(self, factory):
        with pytest.raises(KeyError):
            with transaction_scope(factory, operation="x") as session:
                session.add(ContentTypeTable(type_name="Article", site_id=1))
                session.flush()
                raise KeyError("hook failed")
        assert _count(factory, ContentTypeTable) == 0
