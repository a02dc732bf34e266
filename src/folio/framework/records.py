"""In-memory state of one typed payload record.

A :class:`TypedRecord` is the "typed record" capability the composition
proxy delegates to: ``get(field)``, ``set(field, value)`` and ``fields()``
over the columns a registered type declares, plus the rows of any child
collections it owns. It knows nothing about sessions; the
:class:`~folio.framework.stores.TypedRecordStore` loads and persists it.

Tags:
    folio-framework, records, typed-payload

Doc-Types:
    api-reference
"""

from __future__ import annotations

from typing import Any

from folio.core.errors import UnknownMemberError, ValidationError
from folio.framework.registry import RegisteredType, TypeDescriptor


class TypedRecord:
    """One row of a registered type, with dirty tracking.

    ``id`` is ``None`` until the record is inserted; ``content_id`` is the
    back-reference to the envelope it is bound to.
    """

    def __init__(
        self,
        registered: RegisteredType,
        values: dict[str, Any] | None = None,
        *,
        id: int | None = None,
        content_id: int | None = None,
        children: dict[str, list[dict[str, Any]]] | None = None,
    ) -> None:
        self.registered = registered
        self.id = id
        self.content_id = content_id
        self._values: dict[str, Any] = registered.descriptor.defaults()
        self._dirty: set[str] = set()
        self._children: dict[str, list[dict[str, Any]]] = {
            rel.name: [] for rel in registered.descriptor.relations
        }
        for name, value in (values or {}).items():
            if id is None:
                self.set(name, value)
            elif name in self._values:
                # Loaded from storage: trust stored values, ignore undeclared columns
                self._values[name] = value
        for rel_name, rows in (children or {}).items():
            self._children[rel_name] = [dict(row) for row in rows]

    @classmethod
    def new(cls, registered: RegisteredType, **values: Any) -> TypedRecord:
        """Unsaved record carrying the type's default values overlaid with *values*."""
        return cls(registered, values)

    # -- identity --------------------------------------------------------------

    @property
    def type_name(self) -> str:
        return self.registered.name

    @property
    def descriptor(self) -> TypeDescriptor:
        return self.registered.descriptor

    @property
    def is_persisted(self) -> bool:
        return self.id is not None

    def forget_identity(self) -> None:
        """Return to the unsaved state after a rolled-back insert."""
        self.id = None
        self.content_id = None
        self._dirty = set(self._values)
        for rows in self._children.values():
            for row in rows:
                row.pop("id", None)

    # -- field access ----------------------------------------------------------

    def fields(self) -> tuple[str, ...]:
        return self.descriptor.field_names

    def has_field(self, name: str) -> bool:
        return name in self._values

    def has_relation(self, name: str) -> bool:
        return name in self._children

    def has_member(self, name: str) -> bool:
        return self.has_field(name) or self.has_relation(name)

    def get(self, name: str) -> Any:
        if name in self._values:
            return self._values[name]
        if name in self._children:
            return self.children(name)
        raise UnknownMemberError(name, self.type_name)

    def set(self, name: str, value: Any) -> None:
        field_def = self.descriptor.field(name)
        if field_def is None:
            if name in self._children:
                raise ValidationError(
                    f"'{name}' is a child collection of '{self.type_name}'; use add_child()",
                    field=name,
                )
            raise UnknownMemberError(name, self.type_name)
        self._values[name] = field_def.validate(value)
        self._dirty.add(name)

    def values(self) -> dict[str, Any]:
        """Copy of every declared field value."""
        return dict(self._values)

    def changes(self) -> dict[str, Any]:
        """Field values modified since the record was loaded or last saved."""
        return {name: self._values[name] for name in self._dirty}

    @property
    def is_dirty(self) -> bool:
        return bool(self._dirty) or any(self.pending_children().values())

    def mark_clean(self) -> None:
        self._dirty.clear()

    # -- child collections -----------------------------------------------------

    def children(self, relation: str) -> list[dict[str, Any]]:
        """Copies of the child rows of *relation*, saved and pending, in position order."""
        if relation not in self._children:
            raise UnknownMemberError(relation, self.type_name)
        return [dict(row) for row in self._children[relation]]

    def add_child(self, relation: str, **values: Any) -> dict[str, Any]:
        """Stage a child row; it is inserted on the next save."""
        rel = self.descriptor.relation(relation)
        if rel is None:
            raise UnknownMemberError(relation, self.type_name)
        row: dict[str, Any] = {f.name: f.default for f in rel.fields}
        for name, value in values.items():
            field_def = rel.field(name)
            if field_def is None:
                raise UnknownMemberError(f"{relation}.{name}", self.type_name)
            row[name] = field_def.validate(value)
        row["position"] = len(self._children[relation])
        self._children[relation].append(row)
        return dict(row)

    def pending_children(self) -> dict[str, list[dict[str, Any]]]:
        """Child rows not yet inserted, keyed by relation (live rows, not copies)."""
        return {
            name: [row for row in rows if row.get("id") is None]
            for name, rows in self._children.items()
        }

    def as_dict(self) -> dict[str, Any]:
        data = self.values()
        for name in self._children:
            data[name] = self.children(name)
        return data

    def __repr__(self) -> str:
        return (
            f"TypedRecord(type_name={self.type_name!r}, id={self.id!r}, "
            f"content_id={self.content_id!r})"
        )


__all__ = ["TypedRecord"]
