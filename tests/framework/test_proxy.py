"""Tests for folio.framework.proxy.ContentProxy (composition and joint persistence)."""

import pytest
from sqlalchemy import event, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from folio.core.errors import (
    ConstraintViolationError,
    NotFoundError,
    PartialPersistenceError,
    TypeMismatchError,
    UnknownMemberError,
    ValidationError,
)
from folio.core.orm.tables import ContentTable, MenuItemTable
from folio.framework.lifecycle import SiteContext
from folio.framework.proxy import ContentProxy
from folio.framework.records import TypedRecord
from folio.framework.stores import TypedRecordStore


def _count(session_factory, table) -> int:
    with session_factory() as session:
        return len(session.execute(select(table)).all())


class TestMemberResolution:
    def test_typed_member_delegates(self, content_engine):
        page = content_engine.create_new("Article", title="Hello", body="First post")
        assert page.body == "First post"
        assert page.get("excerpt") is None

    def test_envelope_member_wins_over_same_named_typed_field(self, content_engine):
        page = content_engine.create_new("Article", title="Envelope title")
        page.typed.set("title", "Typed title")
        assert page.title == "Envelope title"
        assert page.get("title") == "Envelope title"

        page.save()
        resolved = content_engine.resolve_by_lookup_key(page.lookup_key)
        assert resolved.title == "Envelope title"
        assert resolved.typed.get("title") == "Typed title"

    def test_writes_follow_the_same_order(self, content_engine):
        page = content_engine.create_new("Article")
        page.title = "Envelope"
        page.body = "Typed"
        assert page.content.title == "Envelope"
        assert page.typed.get("body") == "Typed"

    def test_unknown_member(self, content_engine):
        page = content_engine.create_new("Article")
        with pytest.raises(UnknownMemberError):
            page.subtitle
        with pytest.raises(UnknownMemberError):
            page.subtitle = "x"
        assert hasattr(page, "subtitle") is False
        assert getattr(page, "subtitle", "fallback") == "fallback"
        assert page.has("body") and page.has("lookup_key") and not page.has("subtitle")

    def test_read_only_envelope_members(self, content_engine):
        page = content_engine.create_new("Article")
        with pytest.raises(ValidationError):
            page.type_name = "MenuPage"
        with pytest.raises(ValidationError):
            page.id = 5

    def test_field_validation_through_proxy(self, content_engine):
        page = content_engine.create_new("MenuPage")
        with pytest.raises(ValidationError):
            page.status = "archived"

    def test_typed_record_cached_for_proxy_lifetime(self, content_engine, monkeypatch):
        content_engine.create_new("Article", title="Cached", body="b").save()
        page = content_engine.resolve_by_lookup_key("/articles/cached")

        calls = []
        original = TypedRecordStore.fetch_by_id

        def counting(self, type_name, record_id):
            calls.append(record_id)
            return original(self, type_name, record_id)

        monkeypatch.setattr(TypedRecordStore, "fetch_by_id", counting)
        assert page.body == "b"
        assert page.excerpt is None
        assert page.body == "b"
        assert len(calls) == 1

    def test_missing_typed_record(self, content_engine, session_factory, registry):
        page = content_engine.create_new("Article", title="Orphan").save()
        with session_factory() as session:
            TypedRecordStore(session, registry).delete_ids("Article", [page.type_record_id])
            session.commit()

        resolved = content_engine.resolve_by_lookup_key(page.lookup_key)
        with pytest.raises(NotFoundError):
            resolved.body


class TestBinding:
    def test_bind_rejects_other_type(self, content_engine, registry):
        page = content_engine.resolve_by_lookup_key(
            content_engine.create_new("Article", title="A").save().lookup_key
        )
        with pytest.raises(TypeMismatchError):
            page.bind(TypedRecord.new(registry.get("MenuPage")))

    def test_bind_rejects_record_bound_elsewhere(self, content_engine, registry):
        saved = content_engine.create_new("Article", title="A").save()
        other = content_engine.create_new("Article", title="B").save()
        page = content_engine.resolve_by_lookup_key(saved.lookup_key)
        with pytest.raises(TypeMismatchError):
            page.bind(other.typed)

    def test_constructor_binding(self, content_engine, registry):
        content = ContentTable(lookup_key="/x", type_name="Article", site_id=1)
        record = TypedRecord.new(registry.get("Article"), body="given")
        proxy = ContentProxy(content_engine, content, record)
        assert proxy.typed is record
        assert proxy.body == "given"


class TestSave:
    def test_create_then_resolve_returns_same_values(self, content_engine):
        page = content_engine.create_new("Article", title="My First Post", body="Hello", excerpt="Hi")
        assert page.is_saved is False

        page.save()

        assert page.is_saved
        assert page.lookup_key == "/articles/my-first-post"
        resolved = content_engine.resolve_by_lookup_key("/articles/my-first-post")
        assert resolved.body == "Hello"
        assert resolved.excerpt == "Hi"
        assert resolved.type_record_id == page.typed.id
        assert resolved.typed.content_id == resolved.id

    def test_explicit_lookup_key(self, content_engine):
        page = content_engine.create_new("Article", lookup_key="/custom/path").save()
        assert content_engine.resolve_by_lookup_key("/custom/path").id == page.id

    def test_generated_key_without_title(self, content_engine):
        page = content_engine.create_new("Article").save()
        assert page.lookup_key.startswith("/articles/")
        assert len(page.lookup_key) > len("/articles/")

    def test_site_base_path_prefixes_generated_key(self, content_engine):
        content_engine.register_site(SiteContext(site_id=2, base_path="/fr"))
        page = content_engine.create_new("Article", site_id=2, title="Bonjour").save()
        assert page.lookup_key == "/fr/articles/bonjour"

    def test_update_existing(self, content_engine):
        content_engine.create_new("Article", title="Post", body="v1").save()
        page = content_engine.resolve_by_lookup_key("/articles/post")
        page.body = "v2"
        page.description = "updated"
        page.save()

        again = content_engine.resolve_by_lookup_key("/articles/post")
        assert again.body == "v2"
        assert again.description == "updated"
        assert again.updated_at is not None

    def test_child_collection_saved(self, content_engine):
        page = content_engine.create_new("MenuPage", title="Lunch", intro="Today")
        page.add_child("dishes", name="Soup", price=4.5)
        page.save()

        resolved = content_engine.resolve_by_lookup_key("/menu-pages/lunch")
        resolved.add_child("dishes", name="Bread", price=2.0)
        resolved.save()

        final = content_engine.resolve_by_lookup_key("/menu-pages/lunch")
        assert [d["name"] for d in final.dishes] == ["Soup", "Bread"]
        assert final.status == "draft"

    def test_duplicate_lookup_key_rolls_back_both_sides(self, content_engine, registry, session_factory):
        content_engine.create_new("Article", title="Same").save()
        duplicate = content_engine.create_new("Article", title="Same", body="second")

        with pytest.raises(ConstraintViolationError):
            duplicate.save()

        assert _count(session_factory, registry.get("Article").table) == 1
        assert duplicate.is_saved is False
        assert duplicate.typed.id is None
        assert duplicate.lookup_key is None

    def test_storage_failure_is_partial_persistence(self, content_engine, registry, session_factory):
        def fail(*_args):
            raise OperationalError("INSERT", {}, Exception("disk full"))

        event.listen(ContentTable, "before_insert", fail)
        try:
            with pytest.raises(PartialPersistenceError):
                content_engine.create_new("Article", title="Doomed").save()
        finally:
            event.remove(ContentTable, "before_insert", fail)

        assert _count(session_factory, registry.get("Article").table) == 0
        assert _count(session_factory, ContentTable) == 0

    def test_retry_after_failure(self, content_engine):
        content_engine.create_new("Article", title="Taken").save()
        page = content_engine.create_new("Article", title="Taken", body="retry")
        with pytest.raises(ConstraintViolationError):
            page.save()
        page.lookup_key = "/articles/taken-2"
        page.save()
        assert content_engine.resolve_by_lookup_key("/articles/taken-2").body == "retry"

    def test_failed_update_keeps_saved_proxy_usable(self, content_engine):
        content_engine.create_new("Article", lookup_key="/articles/one", title="One").save()
        content_engine.create_new("Article", lookup_key="/articles/two", title="Two").save()
        page = content_engine.resolve_by_lookup_key("/articles/two")
        page.lookup_key = "/articles/one"
        page.body = "edited"

        with pytest.raises(ConstraintViolationError):
            page.save()

        assert page.title == "Two"
        assert page.lookup_key == "/articles/one"
        assert page.is_saved

        page.lookup_key = "/articles/three"
        page.save()

        assert page.updated_at is not None
        resolved = content_engine.resolve_by_lookup_key("/articles/three")
        assert resolved.id == page.id
        assert resolved.body == "edited"
        with pytest.raises(NotFoundError):
            content_engine.resolve_by_lookup_key("/articles/two")

    def test_failed_update_restages_child_rows(self, content_engine, registry, session_factory, monkeypatch):
        page = content_engine.create_new("MenuPage", title="Lunch")
        page.add_child("dishes", name="Soup")
        page.save()
        page = content_engine.resolve_by_lookup_key("/menu-pages/lunch")
        page.add_child("dishes", name="Bread")

        def fail(*_args, **_kwargs):
            raise OperationalError("SELECT", {}, Exception("connection lost"))

        with monkeypatch.context() as patched:
            patched.setattr(Session, "refresh", fail)
            with pytest.raises(PartialPersistenceError):
                page.save()

        assert page.title == "Lunch"
        assert len(page.typed.pending_children()["dishes"]) == 1

        page.save()

        final = content_engine.resolve_by_lookup_key("/menu-pages/lunch")
        assert [d["name"] for d in final.dishes] == ["Soup", "Bread"]
        assert _count(session_factory, registry.get("MenuPage").child_tables["dishes"]) == 2


class TestDelete:
    def test_delete_removes_every_part(self, content_engine, registry, session_factory):
        page = content_engine.create_new("MenuPage", title="Dinner")
        page.add_child("dishes", name="Stew")
        page.save()
        with session_factory() as session:
            session.add(MenuItemTable(site_id=1, label="Dinner", lookup_key=page.lookup_key, content_id=page.id))
            session.commit()

        page.delete()

        menu_page = registry.get("MenuPage")
        assert _count(session_factory, menu_page.table) == 0
        assert _count(session_factory, menu_page.child_tables["dishes"]) == 0
        assert _count(session_factory, MenuItemTable) == 0
        with pytest.raises(NotFoundError):
            content_engine.resolve_by_lookup_key("/menu-pages/dinner")
        assert page.is_saved is False

    def test_delete_unsaved(self, content_engine):
        with pytest.raises(NotFoundError):
            content_engine.create_new("Article").delete()


class TestRendering:
    def test_to_dict_envelope_wins(self, content_engine):
        page = content_engine.create_new("Article", title="Env", body="B").save()
        page.typed.set("title", "Typed")
        data = page.to_dict()
        assert data["title"] == "Env"
        assert data["body"] == "B"
        assert data["lookup_key"] == "/articles/env"

    def test_menu_items(self, content_engine, session_factory):
        page = content_engine.create_new("Article", title="Linked").save()
        assert content_engine.create_new("Article").menu_items() == []
        with session_factory() as session:
            session.add(MenuItemTable(site_id=1, label="L", lookup_key=page.lookup_key, content_id=page.id))
            session.commit()
        assert [item.label for item in page.menu_items()] == ["L"]

    def test_repr(self, content_engine):
        assert "Article" in repr(content_engine.create_new("Article"))
