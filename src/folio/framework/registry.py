"""Type registry: the catalogue of content types the engine can compose.

Manifesto:
    The set of content types is open-ended, but at runtime it is a fixed,
    explicitly constructed object. The registry maps a type name to its
    descriptor (fields, relations), to the SQLAlchemy tables that store its
    records, and to the lifecycle hooks its author supplied. It is passed
    by reference to whoever needs it; there is no module-level catalogue.

Architecture:
    ::

        TypeDescriptor("Article", fields=(...), relations=(...))
              │ register()
              ▼
        TypeRegistry ──► RegisteredType(descriptor, table, child_tables, hooks)
                              │
                              └── MetaData owned by the registry
                                  type_article, type_menu_page__dishes, ...

Examples:
    >>> registry = TypeRegistry()
    >>> registry.register(
    ...     TypeDescriptor(
    ...         "Article",
    ...         fields=(FieldDef("title"), FieldDef("body")),
    ...     )
    ... )
    RegisteredType(name='Article', table='type_article')
    >>> registry.descriptor("Article").sample_key()
    '/articles/sample-article'

Tags:
    folio-framework, registry, content-types, schema, lookup

Doc-Types:
    api-reference
"""

from __future__ import annotations

import datetime
import re
from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
)

from folio.core.errors import UnregisteredTypeError, ValidationError
from folio.core.logging import get_logger
from folio.framework.hooks import LifecycleHooks

logger = get_logger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z][A-Za-z0-9_]*$")
_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")

# Columns every typed table carries; declared fields may not shadow them
RESERVED_COLUMNS = frozenset({"id", "content_id"})
RESERVED_CHILD_COLUMNS = frozenset({"id", "parent_id", "position"})

# Public members of ContentProxy; a field or relation with one of these names
# could be written through the proxy but never read back
PROXY_MEMBERS = frozenset(
    {
        "content",
        "typed",
        "registered",
        "is_saved",
        "get",
        "set",
        "has",
        "add_child",
        "bind",
        "save",
        "delete",
        "to_dict",
        "menu_items",
    }
)


def snake_case(name: str) -> str:
    """``MenuPage`` → ``menu_page``."""
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def slugify(value: str) -> str:
    """Lower-case, hyphen-separated slug suitable for a lookup key segment."""
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")
    return slug


def _pluralize(word: str) -> str:
    if word.endswith("y") and not word.endswith(("ay", "ey", "oy", "uy")):
        return word[:-1] + "ies"
    if word.endswith(("s", "x", "z", "ch", "sh")):
        return word + "es"
    return word + "s"


class FieldKind(str, Enum):
    """Scalar kinds a field definition may declare."""

    TEXT = "text"
    STRING = "string"
    INTEGER = "integer"
    NUMERIC = "numeric"
    BOOLEAN = "boolean"
    ENUM = "enum"
    DATETIME = "datetime"


_COLUMN_TYPES: dict[FieldKind, Any] = {
    FieldKind.TEXT: Text,
    FieldKind.STRING: lambda: String(255),
    FieldKind.INTEGER: Integer,
    FieldKind.NUMERIC: Float,
    FieldKind.BOOLEAN: Boolean,
    FieldKind.ENUM: lambda: String(64),
    FieldKind.DATETIME: DateTime,
}

_PYTHON_TYPES: dict[FieldKind, tuple[type, ...]] = {
    FieldKind.TEXT: (str,),
    FieldKind.STRING: (str,),
    FieldKind.INTEGER: (int,),
    FieldKind.NUMERIC: (int, float),
    FieldKind.BOOLEAN: (bool,),
    FieldKind.ENUM: (str,),
    FieldKind.DATETIME: (datetime.datetime,),
}


@dataclass(frozen=True)
class FieldDef:
    """One declared field of a content type (or of a child collection)."""

    name: str
    kind: FieldKind = FieldKind.TEXT
    default: Any = None
    choices: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not _IDENTIFIER.match(self.name):
            raise ValidationError(f"Invalid field name: {self.name!r}", field=self.name)
        if self.kind == FieldKind.ENUM and not self.choices:
            raise ValidationError(
                f"Enum field '{self.name}' must declare choices", field=self.name
            )
        if self.default is not None:
            self.validate(self.default)

    def column(self) -> Column:
        """Build the (nullable) SQLAlchemy column for this field."""
        return Column(self.name, _COLUMN_TYPES[self.kind](), nullable=True)

    def validate(self, value: Any) -> Any:
        """Return *value* if this field accepts it, else raise ValidationError.

        ``None`` is always accepted: typed columns are nullable.
        """
        if value is None:
            return value
        expected = _PYTHON_TYPES[self.kind]
        # bool is an int subclass; do not let True pass as an INTEGER
        if isinstance(value, bool) and self.kind in (FieldKind.INTEGER, FieldKind.NUMERIC):
            expected = ()
        if not isinstance(value, expected):
            raise ValidationError(
                f"Field '{self.name}' expects {self.kind.value}, got {type(value).__name__}",
                field=self.name,
                value=value,
            )
        if self.kind == FieldKind.ENUM and value not in self.choices:
            raise ValidationError(
                f"Field '{self.name}' must be one of {', '.join(self.choices)}",
                field=self.name,
                value=value,
            )
        return value


@dataclass(frozen=True)
class RelationDef:
    """A child collection owned by a typed record (e.g. a menu page's dishes).

    Child rows are deleted with their parent.
    """

    name: str
    fields: tuple[FieldDef, ...] = ()

    def __post_init__(self) -> None:
        if not _IDENTIFIER.match(self.name):
            raise ValidationError(f"Invalid relation name: {self.name!r}", field=self.name)
        for f in self.fields:
            if f.name in RESERVED_CHILD_COLUMNS:
                raise ValidationError(
                    f"Relation '{self.name}' field '{f.name}' shadows a reserved column",
                    field=f.name,
                )

    def field(self, name: str) -> FieldDef | None:
        return next((f for f in self.fields if f.name == name), None)


@dataclass(frozen=True)
class TypeDescriptor:
    """Immutable description of one content type.

    Derived naming conventions (all overridable through ``plural`` and
    ``label``)::

        name         "MenuPage"
        table_name   "type_menu_page"
        slug         "menu-page"
        plural       "menu-pages"
        listing_key  "/menu-pages"
        sample_key() "/menu-pages/sample-menu-page"
    """

    name: str
    fields: tuple[FieldDef, ...] = ()
    relations: tuple[RelationDef, ...] = ()
    requires_envelope: bool = True
    label: str | None = None
    plural: str | None = None

    def __post_init__(self) -> None:
        if not _IDENTIFIER.match(self.name):
            raise ValidationError(f"Invalid content type name: {self.name!r}")
        seen: set[str] = set()
        for f in self.fields:
            if f.name in RESERVED_COLUMNS:
                raise ValidationError(
                    f"Field '{f.name}' of type '{self.name}' shadows a reserved column",
                    field=f.name,
                )
            if f.name in PROXY_MEMBERS:
                raise ValidationError(
                    f"Field '{f.name}' of type '{self.name}' shadows a content proxy member",
                    field=f.name,
                )
            if f.name in seen:
                raise ValidationError(
                    f"Field '{f.name}' declared twice on type '{self.name}'", field=f.name
                )
            seen.add(f.name)
        for rel in self.relations:
            if rel.name in PROXY_MEMBERS:
                raise ValidationError(
                    f"Relation '{rel.name}' of type '{self.name}' shadows a content proxy member",
                    field=rel.name,
                )
            if rel.name in seen:
                raise ValidationError(
                    f"Relation '{rel.name}' of type '{self.name}' collides with a field",
                    field=rel.name,
                )
            seen.add(rel.name)

    @property
    def table_name(self) -> str:
        return f"type_{snake_case(self.name)}"

    @property
    def slug(self) -> str:
        return snake_case(self.name).replace("_", "-")

    @property
    def plural_slug(self) -> str:
        return self.plural or _pluralize(self.slug)

    @property
    def display_label(self) -> str:
        return self.label or self.plural_slug.replace("-", " ").title()

    @property
    def listing_key(self) -> str:
        return f"/{self.plural_slug}"

    def sample_key(self, sample_slug: str = "sample") -> str:
        return f"{self.listing_key}/{sample_slug}-{self.slug}"

    @property
    def field_names(self) -> tuple[str, ...]:
        return tuple(f.name for f in self.fields)

    def field(self, name: str) -> FieldDef | None:
        return next((f for f in self.fields if f.name == name), None)

    def relation(self, name: str) -> RelationDef | None:
        return next((r for r in self.relations if r.name == name), None)

    def defaults(self) -> dict[str, Any]:
        """Declared default value for every field (``None`` where undeclared)."""
        return {f.name: f.default for f in self.fields}


@dataclass
class RegisteredType:
    """Registry entry: descriptor plus the tables and hooks bound to it."""

    descriptor: TypeDescriptor
    table: Table
    child_tables: dict[str, Table] = field(default_factory=dict)
    hooks: LifecycleHooks = field(default_factory=LifecycleHooks)

    @property
    def name(self) -> str:
        return self.descriptor.name

    def tables(self) -> list[Table]:
        """Parent table first, then child tables (creation order)."""
        return [self.table, *self.child_tables.values()]

    def __repr__(self) -> str:
        return f"RegisteredType(name={self.name!r}, table={self.table.name!r})"


class TypeRegistry:
    """Explicit, constructed catalogue of registered content types.

    Populated at startup; read-only during normal operation. Each registry
    owns a ``MetaData`` holding the typed tables, so two registries (for
    example in two tests) never share table definitions.
    """

    def __init__(self) -> None:
        self.metadata = MetaData()
        self._types: dict[str, RegisteredType] = {}

    def register(
        self,
        descriptor: TypeDescriptor,
        hooks: LifecycleHooks | None = None,
    ) -> RegisteredType:
        """Register *descriptor* and build its typed tables."""
        if descriptor.name in self._types:
            raise ValueError(f"Content type '{descriptor.name}' is already registered")

        table = Table(
            descriptor.table_name,
            self.metadata,
            Column("id", Integer, primary_key=True, autoincrement=True),
            Column("content_id", Integer, unique=True, nullable=True),
            *(f.column() for f in descriptor.fields),
        )
        child_tables = {
            rel.name: Table(
                f"{descriptor.table_name}__{rel.name}",
                self.metadata,
                Column("id", Integer, primary_key=True, autoincrement=True),
                Column(
                    "parent_id",
                    Integer,
                    ForeignKey(f"{descriptor.table_name}.id", ondelete="CASCADE"),
                    nullable=False,
                    index=True,
                ),
                Column("position", Integer, nullable=False, default=0),
                *(f.column() for f in rel.fields),
            )
            for rel in descriptor.relations
        }

        registered = RegisteredType(
            descriptor=descriptor,
            table=table,
            child_tables=child_tables,
            hooks=hooks or LifecycleHooks(),
        )
        self._types[descriptor.name] = registered
        logger.debug(
            "type_registered",
            name=descriptor.name,
            table=table.name,
            fields=len(descriptor.fields),
            relations=len(descriptor.relations),
        )
        return registered

    def unregister(self, name: str) -> None:
        """Forget a type and remove its tables from the registry metadata."""
        registered = self.get(name)
        for table in reversed(registered.tables()):
            self.metadata.remove(table)
        del self._types[name]

    def get(self, name: str) -> RegisteredType:
        """Get a registry entry by type name."""
        try:
            return self._types[name]
        except KeyError:
            raise UnregisteredTypeError(name, available=self.names()) from None

    def descriptor(self, name: str) -> TypeDescriptor:
        return self.get(name).descriptor

    def hooks(self, name: str) -> LifecycleHooks:
        return self.get(name).hooks

    def names(self) -> list[str]:
        """List all registered type names."""
        return sorted(self._types)

    def __contains__(self, name: object) -> bool:
        return name in self._types

    def __iter__(self) -> Iterator[RegisteredType]:
        return iter(self._types.values())

    def __len__(self) -> int:
        return len(self._types)


__all__ = [
    "FieldKind",
    "FieldDef",
    "RelationDef",
    "TypeDescriptor",
    "RegisteredType",
    "TypeRegistry",
    "PROXY_MEMBERS",
    "snake_case",
    "slugify",
]
