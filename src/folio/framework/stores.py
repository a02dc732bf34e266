"""Persistence access for envelopes, typed records, type activations and navigation.

Every store wraps a caller-owned ``Session``; none of them commits. The
unit of work (and therefore the failure domain) belongs to whoever opened
the session, normally :func:`~folio.core.orm.session.transaction_scope`.
Stores ``flush()`` after writes so generated identifiers are available to
the next step of the same transaction.

Architecture::

    ┌──────────────────────────────────────────────────────────────────┐
    │ EnvelopeStore     folio_contents       create / fetch / delete    │
    │ TypedRecordStore  type_<name>[__rel]   create / update / bind ... │
    │ ContentTypeStore  folio_content_types  fetch / create / active    │
    │ MenuItemStore     folio_menu_items     create / for_site          │
    └──────────────────────────────────────────────────────────────────┘

Tags:
    folio-framework, repository, persistence, sqlalchemy

Doc-Types:
    api-reference
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.orm import Session

from folio.core.orm.tables import ContentTable, ContentTypeTable, MenuItemTable
from folio.framework.records import TypedRecord
from folio.framework.registry import RegisteredType, TypeRegistry


class EnvelopeStore:
    """CRUD for the generic ``folio_contents`` envelope."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def create(self, content: ContentTable) -> ContentTable:
        """Insert *content* and flush so ``content.id`` is assigned.

        The row is refreshed so server-side timestamps stay readable once
        the session is closed.
        """
        self.session.add(content)
        self.session.flush()
        self.session.refresh(content)
        return content

    def fetch_by_id(self, content_id: int) -> ContentTable | None:
        return self.session.get(ContentTable, content_id)

    def fetch_by_lookup_key(self, lookup_key: str) -> ContentTable | None:
        return self.session.scalars(
            select(ContentTable).where(ContentTable.lookup_key == lookup_key)
        ).one_or_none()

    def fetch_by_binding(self, type_name: str, type_record_id: int) -> ContentTable | None:
        return self.session.scalars(
            select(ContentTable).where(
                ContentTable.type_name == type_name,
                ContentTable.type_record_id == type_record_id,
            )
        ).one_or_none()

    def list_for_type(self, type_name: str, site_id: int | None = None) -> list[ContentTable]:
        """Envelopes bound to *type_name*, optionally limited to one site, by id."""
        stmt = select(ContentTable).where(ContentTable.type_name == type_name)
        if site_id is not None:
            stmt = stmt.where(ContentTable.site_id == site_id)
        return list(self.session.scalars(stmt.order_by(ContentTable.id)))

    def exists_for_type(self, type_name: str, site_id: int) -> bool:
        stmt = select(func.count()).select_from(ContentTable).where(
            ContentTable.type_name == type_name, ContentTable.site_id == site_id
        )
        return bool(self.session.scalar(stmt))

    def delete(self, content: ContentTable) -> None:
        self.session.delete(content)
        self.session.flush()


class TypedRecordStore:
    """Persistence for the records of any registered type.

    Typed tables are SQLAlchemy Core ``Table`` objects owned by the
    :class:`TypeRegistry`; this store addresses them by type name.
    """

    def __init__(self, session: Session, registry: TypeRegistry) -> None:
        self.session = session
        self.registry = registry

    # -- writes ----------------------------------------------------------------

    def create(self, record: TypedRecord) -> TypedRecord:
        """Insert *record* and its staged child rows; assigns ``record.id``."""
        registered = record.registered
        values = record.values()
        values["content_id"] = record.content_id
        result = self.session.execute(insert(registered.table).values(**values))
        record.id = result.inserted_primary_key[0]
        self._insert_children(registered, record)
        return record

    def update(self, record: TypedRecord) -> TypedRecord:
        """Write modified fields and newly staged child rows of a persisted record."""
        registered = record.registered
        changes = record.changes()
        if changes:
            self.session.execute(
                update(registered.table)
                .where(registered.table.c.id == record.id)
                .values(**changes)
            )
        self._insert_children(registered, record)
        return record

    def bind(self, record: TypedRecord, content_id: int) -> None:
        """Point the record's back-reference at envelope *content_id*."""
        table = record.registered.table
        self.session.execute(
            update(table).where(table.c.id == record.id).values(content_id=content_id)
        )
        record.content_id = content_id

    def _insert_children(self, registered: RegisteredType, record: TypedRecord) -> None:
        for relation, rows in record.pending_children().items():
            child_table = registered.child_tables[relation]
            for row in rows:
                values = {k: v for k, v in row.items() if k != "id"}
                result = self.session.execute(
                    insert(child_table).values(parent_id=record.id, **values)
                )
                row["id"] = result.inserted_primary_key[0]

    # -- reads -----------------------------------------------------------------

    def fetch_by_id(self, type_name: str, record_id: int) -> TypedRecord | None:
        registered = self.registry.get(type_name)
        return self._fetch(registered, registered.table.c.id == record_id)

    def fetch_by_content_id(self, type_name: str, content_id: int) -> TypedRecord | None:
        registered = self.registry.get(type_name)
        return self._fetch(registered, registered.table.c.content_id == content_id)

    def _fetch(self, registered: RegisteredType, criterion: Any) -> TypedRecord | None:
        row = self.session.execute(select(registered.table).where(criterion)).mappings().one_or_none()
        if row is None:
            return None
        data = dict(row)
        record_id = data.pop("id")
        content_id = data.pop("content_id")
        return TypedRecord(
            registered,
            data,
            id=record_id,
            content_id=content_id,
            children=self._load_children(registered, record_id),
        )

    def _load_children(
        self, registered: RegisteredType, record_id: int
    ) -> dict[str, list[dict[str, Any]]]:
        children: dict[str, list[dict[str, Any]]] = {}
        for relation, child_table in registered.child_tables.items():
            rows = self.session.execute(
                select(child_table)
                .where(child_table.c.parent_id == record_id)
                .order_by(child_table.c.position, child_table.c.id)
            ).mappings()
            children[relation] = [
                {k: v for k, v in row.items() if k != "parent_id"} for row in rows
            ]
        return children

    def fields(self, type_name: str) -> tuple[str, ...]:
        """Declared field names of *type_name*."""
        return self.registry.descriptor(type_name).field_names

    def ids_bound_to(self, type_name: str, content_ids: Iterable[int]) -> list[int]:
        """Ids of the records of *type_name* bound to any of *content_ids*."""
        content_ids = list(content_ids)
        if not content_ids:
            return []
        table = self.registry.get(type_name).table
        return list(
            self.session.scalars(
                select(table.c.id).where(table.c.content_id.in_(content_ids)).order_by(table.c.id)
            )
        )

    def unbound_ids(self, type_name: str) -> list[int]:
        """Ids of records of *type_name* with no envelope back-reference."""
        table = self.registry.get(type_name).table
        return list(
            self.session.scalars(select(table.c.id).where(table.c.content_id.is_(None)))
        )

    def count(self, type_name: str) -> int:
        table = self.registry.get(type_name).table
        return self.session.scalar(select(func.count()).select_from(table)) or 0

    # -- deletes ---------------------------------------------------------------

    def delete(self, record: TypedRecord) -> None:
        """Delete one record, children first."""
        self.delete_ids(record.type_name, [record.id])

    def delete_ids(self, type_name: str, record_ids: Sequence[int]) -> int:
        """Delete records (and their child rows) by id. Returns records deleted."""
        if not record_ids:
            return 0
        registered = self.registry.get(type_name)
        for child_table in registered.child_tables.values():
            self.session.execute(
                delete(child_table).where(child_table.c.parent_id.in_(record_ids))
            )
        result = self.session.execute(
            delete(registered.table).where(registered.table.c.id.in_(record_ids))
        )
        return result.rowcount


class ContentTypeStore:
    """Type-active records: which types are installed for which site."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def fetch(self, type_name: str, site_id: int) -> ContentTypeTable | None:
        return self.session.scalars(
            select(ContentTypeTable).where(
                ContentTypeTable.type_name == type_name,
                ContentTypeTable.site_id == site_id,
            )
        ).one_or_none()

    def create(self, row: ContentTypeTable) -> ContentTypeTable:
        self.session.add(row)
        self.session.flush()
        self.session.refresh(row)
        return row

    def active_types(self, site_id: int) -> list[str]:
        return list(
            self.session.scalars(
                select(ContentTypeTable.type_name)
                .where(ContentTypeTable.site_id == site_id)
                .order_by(ContentTypeTable.type_name)
            )
        )

    def sites_with(self, type_name: str) -> list[int]:
        """Sites on which *type_name* is currently active."""
        return list(
            self.session.scalars(
                select(ContentTypeTable.site_id)
                .where(ContentTypeTable.type_name == type_name)
                .order_by(ContentTypeTable.site_id)
            )
        )


class MenuItemStore:
    """Navigation entries."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def create(self, item: MenuItemTable) -> MenuItemTable:
        self.session.add(item)
        self.session.flush()
        self.session.refresh(item)
        return item

    def next_position(self, site_id: int) -> int:
        current = self.session.scalar(
            select(func.max(MenuItemTable.position)).where(MenuItemTable.site_id == site_id)
        )
        return 0 if current is None else current + 1

    def for_site(self, site_id: int) -> list[MenuItemTable]:
        return list(
            self.session.scalars(
                select(MenuItemTable)
                .where(MenuItemTable.site_id == site_id)
                .order_by(MenuItemTable.position, MenuItemTable.id)
            )
        )

    def delete_for_contents(self, content_ids: Sequence[int]) -> int:
        if not content_ids:
            return 0
        result = self.session.execute(
            delete(MenuItemTable).where(MenuItemTable.content_id.in_(content_ids))
        )
        return result.rowcount


__all__ = ["EnvelopeStore", "TypedRecordStore", "ContentTypeStore", "MenuItemStore"]
