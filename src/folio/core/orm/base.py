"""Declarative base, mixins and type-map for the folio ORM models.

Uses SQLAlchemy 2.0 ``DeclarativeBase`` with a ``type_annotation_map``
that maps Python built-in types to portable SA column types.

Mixins
------
* **TimestampMixin**: ``created_at`` / ``updated_at`` with server defaults.
"""

from __future__ import annotations

import datetime

from sqlalchemy import DateTime, Integer, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class FolioBase(DeclarativeBase):
    """Shared declarative base for the envelope, type-active and navigation tables.

    Typed payload tables are *not* declared here; they are built at
    registration time in the type registry's own ``MetaData``.

    * ``str``   → ``Text``
    * ``int``   → ``Integer``
    * ``datetime.datetime`` → ``DateTime``
    """

    type_annotation_map = {
        str: Text,
        int: Integer,
        datetime.datetime: DateTime,
    }


class TimestampMixin:
    """Mixin that adds ``created_at`` and ``updated_at`` with server defaults.

    ``func.now()`` renders as ``CURRENT_TIMESTAMP`` on SQLite and ``now()``
    on PostgreSQL.
    """

    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime,
        nullable=True,
        server_default=func.now(),
        onupdate=func.now(),
    )
