"""Composition proxy: one envelope + its typed record as one logical object.

Manifesto:
    Renderers and editors should not care which half of a content item a
    value lives on. ``page.title`` and ``page.body`` read the same way even
    though one is an envelope column and the other a column of
    ``type_article``.

Resolution order for any member ``m``::

    m in envelope members?  ──yes──► envelope value
            │ no
            ▼
    typed record resolved? ──no──► fetch by foreign key (once per proxy)
            │
            ▼
    m is a typed field / child collection? ──yes──► typed value
            │ no
            ▼
    UnknownMemberError

Envelope members always win, even when the type declares a field with the
same name. Writes follow the same order and stay in memory until
:meth:`ContentProxy.save`, which persists both sides in one transaction.

Examples:
    >>> page = engine.create_new("Article", title="Hello")
    >>> page.body = "First post"          # typed side, in memory
    >>> page.save()                        # joint insert, one transaction
    >>> engine.resolve_by_lookup_key(page.lookup_key).body
    'First post'

Tags:
    folio-framework, proxy, delegation, composition

Doc-Types:
    api-reference, architecture
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Any

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import make_transient
from sqlalchemy.orm.attributes import set_committed_value

from folio.core.errors import (
    NotFoundError,
    TypeMismatchError,
    UnknownMemberError,
    ValidationError,
)
from folio.core.logging import get_logger
from folio.core.orm.session import transaction_scope
from folio.core.orm.tables import ContentTable, MenuItemTable
from folio.framework.records import TypedRecord
from folio.framework.registry import RegisteredType, slugify
from folio.framework.stores import EnvelopeStore, MenuItemStore, TypedRecordStore

if TYPE_CHECKING:
    from folio.framework.engine import ContentEngine

logger = get_logger(__name__)

# Envelope attributes a proxy exposes directly
ENVELOPE_FIELDS = frozenset(col.key for col in ContentTable.__table__.columns)

# Envelope attributes only the engine may assign
READ_ONLY_FIELDS = frozenset({"id", "type_name", "type_record_id", "created_at", "updated_at"})


class ContentProxy:
    """Wraps one envelope row and, lazily, its typed record.

    Proxies are cheap, per-operation objects: they cache the typed record
    for their own lifetime but are not meant to be shared across
    concurrent operations.
    """

    def __init__(
        self,
        engine: ContentEngine,
        content: ContentTable,
        typed: TypedRecord | None = None,
    ) -> None:
        object.__setattr__(self, "_engine", engine)
        object.__setattr__(self, "_content", content)
        object.__setattr__(self, "_typed", None)
        if typed is not None:
            self.bind(typed)

    # -- identity --------------------------------------------------------------

    @property
    def content(self) -> ContentTable:
        """The envelope row."""
        return self._content

    @property
    def typed(self) -> TypedRecord:
        """The typed record, fetched on first access."""
        return self._resolve_typed()

    @property
    def registered(self) -> RegisteredType:
        return self._engine.registry.get(self._content.type_name)

    @property
    def is_saved(self) -> bool:
        return self._content.id is not None

    # -- member access ---------------------------------------------------------

    def get(self, member: str) -> Any:
        """Read *member* from the envelope, else from the typed record."""
        if member in ENVELOPE_FIELDS:
            return getattr(self._content, member)
        typed = self._resolve_typed()
        if typed.has_member(member):
            return typed.get(member)
        raise UnknownMemberError(member, self._content.type_name)

    def set(self, member: str, value: Any) -> None:
        """Write *member* in memory; nothing is persisted until :meth:`save`."""
        if member in ENVELOPE_FIELDS:
            if member in READ_ONLY_FIELDS:
                raise ValidationError(
                    f"Envelope member '{member}' is managed by the engine",
                    field=member,
                    value=value,
                )
            setattr(self._content, member, value)
            return
        self._resolve_typed().set(member, value)

    def has(self, member: str) -> bool:
        if member in ENVELOPE_FIELDS:
            return True
        return self._resolve_typed().has_member(member)

    def __getattr__(self, name: str) -> Any:
        # Only reached when normal lookup fails, so proxy methods and
        # properties always take precedence over typed fields
        if name.startswith("_"):
            raise AttributeError(name)
        return self.get(name)

    def __setattr__(self, name: str, value: Any) -> None:
        if name.startswith("_"):
            object.__setattr__(self, name, value)
            return
        self.set(name, value)

    def add_child(self, relation: str, **values: Any) -> dict[str, Any]:
        """Stage a row in one of the typed record's child collections."""
        return self._resolve_typed().add_child(relation, **values)

    # -- binding ---------------------------------------------------------------

    def bind(self, typed: TypedRecord) -> None:
        """Attach *typed* as this envelope's payload.

        Raises :class:`TypeMismatchError` if the record belongs to another
        type or is already bound to a different envelope.
        """
        if typed.type_name != self._content.type_name:
            raise TypeMismatchError(
                f"Cannot bind a '{typed.type_name}' record to "
                f"'{self._content.type_name}' content"
            ).with_context(type_name=self._content.type_name, content_id=self._content.id)
        if (
            typed.content_id is not None
            and self._content.id is not None
            and typed.content_id != self._content.id
        ):
            raise TypeMismatchError(
                f"'{typed.type_name}' record {typed.id} is bound to content {typed.content_id}"
            ).with_context(type_name=typed.type_name, content_id=self._content.id)
        if (
            self._content.type_record_id is not None
            and typed.id is not None
            and typed.id != self._content.type_record_id
        ):
            raise TypeMismatchError(
                f"Content {self._content.id} is bound to record "
                f"{self._content.type_record_id}, not {typed.id}"
            ).with_context(type_name=typed.type_name, content_id=self._content.id)
        object.__setattr__(self, "_typed", typed)

    def _resolve_typed(self) -> TypedRecord:
        if self._typed is not None:
            return self._typed

        registered = self._engine.registry.get(self._content.type_name)
        if self._content.type_record_id is None:
            typed = TypedRecord.new(registered)
        else:
            with self._engine.session_factory() as session:
                typed = TypedRecordStore(session, self._engine.registry).fetch_by_id(
                    registered.name, self._content.type_record_id
                )
            if typed is None:
                raise NotFoundError(
                    f"Typed record {self._content.type_record_id} of "
                    f"'{registered.name}' is missing"
                ).with_context(
                    type_name=registered.name,
                    content_id=self._content.id,
                    lookup_key=self._content.lookup_key,
                )
        self.bind(typed)
        return typed

    # -- persistence -----------------------------------------------------------

    def save(self) -> ContentProxy:
        """Persist both sides in one transaction.

        New content: insert the typed record, insert the envelope bound to
        it, then point the typed record back at the envelope. Existing
        content: write pending changes on each side through a session-owned
        copy of the envelope, never the proxy's own instance. On failure
        everything is rolled back and the proxy keeps its unsaved state.
        """
        typed = self._resolve_typed()
        content = self._content
        is_new = content.id is None
        generated_key = is_new and not content.lookup_key
        if generated_key:
            content.lookup_key = self._generate_lookup_key()
        staged = [row for rows in typed.pending_children().values() for row in rows]
        refreshed: dict[str, Any] = {}

        try:
            with transaction_scope(self._engine.session_factory, operation="content.save") as session:
                envelopes = EnvelopeStore(session)
                records = TypedRecordStore(session, self._engine.registry)
                if is_new:
                    records.create(typed)
                    content.type_record_id = typed.id
                    envelopes.create(content)
                    records.bind(typed, content.id)
                else:
                    merged = session.merge(content)
                    records.update(typed)
                    session.flush()
                    session.refresh(merged)
                    refreshed = {key: getattr(merged, key) for key in ENVELOPE_FIELDS}
        except Exception:
            if is_new:
                self._reset_identity()
                if generated_key:
                    content.lookup_key = None
            else:
                for row in staged:
                    row.pop("id", None)
            raise

        for key, value in refreshed.items():
            set_committed_value(content, key, value)

        typed.mark_clean()
        logger.info(
            "content.saved",
            content_id=content.id,
            type_name=content.type_name,
            lookup_key=content.lookup_key,
            created=is_new,
        )
        return self

    def delete(self) -> None:
        """Delete this content item: child rows, typed record, navigation entries, envelope."""
        content = self._content
        if content.id is None:
            raise NotFoundError("Cannot delete content that was never saved").with_context(
                type_name=content.type_name
            )
        registry = self._engine.registry
        with transaction_scope(self._engine.session_factory, operation="content.delete") as session:
            records = TypedRecordStore(session, registry)
            if content.type_record_id is not None:
                records.delete_ids(content.type_name, [content.type_record_id])
            MenuItemStore(session).delete_for_contents([content.id])
            stored = EnvelopeStore(session).fetch_by_id(content.id)
            if stored is None:
                raise NotFoundError(f"Content {content.id} no longer exists").with_context(
                    content_id=content.id, type_name=content.type_name
                )
            EnvelopeStore(session).delete(stored)

        logger.info("content.deleted", content_id=content.id, type_name=content.type_name)
        self._reset_identity()

    def _reset_identity(self) -> None:
        content = self._content
        if sa_inspect(content).session is None and sa_inspect(content).has_identity:
            make_transient(content)
        content.id = None
        content.type_record_id = None
        if self._typed is not None:
            self._typed.forget_identity()

    def _generate_lookup_key(self) -> str:
        descriptor = self.registered.descriptor
        slug = slugify(self._content.title or "") or uuid.uuid4().hex[:12]
        base_path = self._engine.base_path_for(self._content.site_id)
        return f"{base_path}{descriptor.listing_key}/{slug}"

    # -- rendering -------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """Typed values overlaid with envelope values (envelope wins)."""
        data = self._resolve_typed().as_dict()
        for name in ENVELOPE_FIELDS:
            data[name] = getattr(self._content, name)
        return data

    def menu_items(self) -> list[MenuItemTable]:
        """Navigation entries pointing at this content item."""
        if self._content.id is None:
            return []
        with self._engine.session_factory() as session:
            return [
                item
                for item in MenuItemStore(session).for_site(self._content.site_id)
                if item.content_id == self._content.id
            ]

    def __repr__(self) -> str:
        return (
            f"ContentProxy(type_name={self._content.type_name!r}, "
            f"id={self._content.id!r}, lookup_key={self._content.lookup_key!r})"
        )


__all__ = ["ContentProxy", "ENVELOPE_FIELDS", "READ_ONLY_FIELDS"]
