"""SQLAlchemy 2.0 ORM layer for folio.

Modules
-------
base        FolioBase (declarative base) + TimestampMixin
session     Engine factory, FolioSession, transaction_scope
tables      ContentTable, ContentTypeTable, MenuItemTable

Tags:
    folio-core, orm, sqlalchemy, declarative

Doc-Types:
    package-overview, module-index
"""

from __future__ import annotations

from folio.core.orm.base import FolioBase, TimestampMixin
from folio.core.orm.session import (
    FolioSession,
    SessionFactory,
    create_folio_engine,
    folio_session_factory,
    transaction_scope,
)
from folio.core.orm.tables import ContentTable, ContentTypeTable, MenuItemTable

__all__ = [
    "FolioBase",
    "TimestampMixin",
    "create_folio_engine",
    "FolioSession",
    "SessionFactory",
    "folio_session_factory",
    "transaction_scope",
    "ContentTable",
    "ContentTypeTable",
    "MenuItemTable",
]
