"""Storage schema for the core tables and for each registered type.

Reconciliation policy is **additive only**: a typed table that does not
exist is created; a declared field with no column gets an
``ALTER TABLE ... ADD COLUMN``; nothing is ever altered, dropped or
migrated. Stored columns a descriptor no longer declares are reported,
not removed.

Examples:
    >>> manager = SchemaManager(engine)
    >>> manager.ensure_core()
    >>> report = manager.reconcile(registry.get("Article"))
    >>> report.created
    True

Tags:
    folio-framework, schema, ddl, reconciliation, sqlalchemy

Doc-Types:
    api-reference
"""

from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy import inspect
from sqlalchemy.engine import Engine
from sqlalchemy.schema import CreateColumn
from sqlalchemy.sql.ddl import DDL

from folio.core.logging import get_logger
from folio.core.orm.base import FolioBase
from folio.framework.registry import RegisteredType

logger = get_logger(__name__)


@dataclass
class SchemaReport:
    """What :meth:`SchemaManager.reconcile` did for one type."""

    type_name: str
    created: bool = False
    created_tables: list[str] = field(default_factory=list)
    added_columns: list[str] = field(default_factory=list)
    extra_columns: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.created_tables or self.added_columns)


class SchemaManager:
    """Create, reconcile and drop storage for the core and typed tables."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def ensure_core(self) -> None:
        """Create the envelope, type-active and navigation tables if missing."""
        FolioBase.metadata.create_all(self.engine)
        logger.debug("schema.core_ready", tables=sorted(FolioBase.metadata.tables))

    def exists(self, registered: RegisteredType) -> bool:
        return inspect(self.engine).has_table(registered.table.name)

    def reconcile(self, registered: RegisteredType) -> SchemaReport:
        """Bring the type's storage up to its descriptor, additively."""
        report = SchemaReport(type_name=registered.name)

        with self.engine.begin() as conn:
            inspector = inspect(conn)
            for table in registered.tables():
                if not inspector.has_table(table.name):
                    table.create(conn)
                    report.created_tables.append(table.name)
                    continue

                stored = {col["name"] for col in inspector.get_columns(table.name)}
                declared = {col.name for col in table.columns}
                for column in table.columns:
                    if column.name in stored:
                        continue
                    column_ddl = CreateColumn(column).compile(dialect=self.engine.dialect)
                    table_sql = self.engine.dialect.identifier_preparer.format_table(table)
                    conn.execute(DDL(f"ALTER TABLE {table_sql} ADD COLUMN {column_ddl}"))
                    report.added_columns.append(f"{table.name}.{column.name}")
                report.extra_columns.extend(
                    f"{table.name}.{name}" for name in sorted(stored - declared)
                )

        report.created = registered.table.name in report.created_tables
        if report.extra_columns:
            logger.warning(
                "schema.undeclared_columns",
                type_name=registered.name,
                columns=report.extra_columns,
            )
        if report.changed:
            logger.info(
                "schema.reconciled",
                type_name=registered.name,
                created_tables=report.created_tables,
                added_columns=report.added_columns,
            )
        return report

    def drop(self, registered: RegisteredType) -> list[str]:
        """Drop the type's child tables, then its table. Not reversible."""
        dropped: list[str] = []
        with self.engine.begin() as conn:
            for table in reversed(registered.tables()):
                if inspect(conn).has_table(table.name):
                    table.drop(conn)
                    dropped.append(table.name)
        logger.info("schema.dropped", type_name=registered.name, tables=dropped)
        return dropped


__all__ = ["SchemaManager", "SchemaReport"]
