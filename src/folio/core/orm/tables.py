"""Envelope, type-active and navigation tables.

``folio_contents``       one row per addressable content item (the envelope)
``folio_content_types``  one row per (type, site) marking the type active
``folio_menu_items``     navigation entries provisioned by install

Tags:
    folio-core, orm, sqlalchemy, tables

Doc-Types:
    api-reference, data-model
"""

from __future__ import annotations

from sqlalchemy import ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from folio.core.orm.base import FolioBase, TimestampMixin


class ContentTable(TimestampMixin, FolioBase):
    """The generic envelope every typed record is addressed through."""

    __tablename__ = "folio_contents"
    __table_args__ = (
        UniqueConstraint("type_name", "type_record_id", name="uq_folio_contents_binding"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    lookup_key: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    type_name: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    type_record_id: Mapped[int | None] = mapped_column(Integer, default=None)
    site_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1, index=True)
    title: Mapped[str | None] = mapped_column(Text, default=None)
    description: Mapped[str | None] = mapped_column(Text, default=None)

    def __repr__(self) -> str:
        return (
            f"ContentTable(id={self.id!r}, lookup_key={self.lookup_key!r}, "
            f"type_name={self.type_name!r}, type_record_id={self.type_record_id!r})"
        )


class ContentTypeTable(TimestampMixin, FolioBase):
    """Marks a registered type as installed for one site.

    The (type_name, site_id) unique constraint is the serialization point
    for concurrent installs of the same type.
    """

    __tablename__ = "folio_content_types"
    __table_args__ = (
        UniqueConstraint("type_name", "site_id", name="uq_folio_content_types_site"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    type_name: Mapped[str] = mapped_column(Text, nullable=False)
    site_id: Mapped[int] = mapped_column(Integer, nullable=False)
    label: Mapped[str | None] = mapped_column(Text, default=None)


class MenuItemTable(TimestampMixin, FolioBase):
    """Navigation entry.

    ``lookup_key`` is the target the entry links to; ``content_id`` is set
    when that target is a single envelope. ``type_name`` records which
    type's install provisioned the entry.
    """

    __tablename__ = "folio_menu_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    site_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    label: Mapped[str] = mapped_column(Text, nullable=False)
    lookup_key: Mapped[str] = mapped_column(Text, nullable=False)
    type_name: Mapped[str | None] = mapped_column(Text, default=None, index=True)
    content_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("folio_contents.id", ondelete="CASCADE"),
        default=None,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


__all__ = ["ContentTable", "ContentTypeTable", "MenuItemTable"]
