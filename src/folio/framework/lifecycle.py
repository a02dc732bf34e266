"""Install / uninstall lifecycle for a registered content type.

Manifesto:
    Registering a type is not enough to make it usable: a site needs its
    storage, a sample item to look at, a navigation entry that leads to
    the listing, and a record saying the type is active. All of that is
    provisioned (or torn down) as one unit. A type that is half installed
    must never be observable.

Architecture:
    ::

        install(type, site)
          1. reconcile typed storage (additive DDL, idempotent)
          2. BEGIN
               type already active for site?  ──yes──► no-op
               build unsaved artifacts ──► InstallVars
               hooks.custom_install(install_vars)
               persist what is still unsaved:
                 typed record → envelope → type-active row → menu item → extras
             COMMIT (or ROLLBACK + PartialPersistenceError / ConstraintViolationError)

        uninstall(type, site, delete_schema)
          1. hooks.custom_uninstall()            (raising aborts)
          2. BEGIN
               execute deletion plan:
                 child rows → typed records → envelopes → menu items → type-active row
               re-count every step; survivors abort
             COMMIT
          3. drop typed storage if asked and no other site uses the type
          4. hooks.after_uninstall()

Concurrency:
    Two installs of the same type for the same site race on the unique
    constraints of ``folio_contents.lookup_key`` and
    ``folio_content_types (type_name, site_id)``. The loser is rolled back
    and reported as :class:`ConstraintViolationError`.

Tags:
    folio-framework, lifecycle, install, uninstall, transaction

Doc-Types:
    api-reference, architecture
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Table, and_, delete, func, or_, select
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import Session

from folio.core.errors import (
    ErrorCategory,
    NotFoundError,
    PartialPersistenceError,
    TypeMismatchError,
    ValidationError,
)
from folio.core.logging import LogContext, get_logger, log_step
from folio.core.orm.base import FolioBase
from folio.core.orm.session import SessionFactory, transaction_scope
from folio.core.orm.tables import ContentTable, ContentTypeTable, MenuItemTable
from folio.framework.hooks import InstallVars
from folio.framework.records import TypedRecord
from folio.framework.registry import RegisteredType, TypeDescriptor, TypeRegistry
from folio.framework.schema import SchemaManager, SchemaReport
from folio.framework.stores import (
    ContentTypeStore,
    EnvelopeStore,
    MenuItemStore,
    TypedRecordStore,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class SiteContext:
    """The site (tenant) an install or uninstall applies to.

    ``base_path`` prefixes every lookup key the engine generates for the
    site, so several sites can share one store.
    """

    site_id: int = 1
    base_path: str = ""

    def __post_init__(self) -> None:
        if self.site_id < 1:
            raise ValidationError(f"site_id must be positive, got {self.site_id}")
        if self.base_path and (
            not self.base_path.startswith("/") or self.base_path.endswith("/")
        ):
            raise ValidationError(
                f"base_path must start with '/' and not end with one: {self.base_path!r}"
            )

    def key(self, path: str) -> str:
        return f"{self.base_path}{path}"


@dataclass
class InstallResult:
    """Outcome of :meth:`LifecycleManager.install`."""

    type_name: str
    site_id: int
    installed: bool
    content_id: int | None = None
    record_id: int | None = None
    content_type_id: int | None = None
    menu_item_id: int | None = None
    schema: SchemaReport | None = None

    @property
    def extra_columns(self) -> list[str]:
        return list(self.schema.extra_columns) if self.schema else []


@dataclass
class UninstallResult:
    """Outcome of :meth:`LifecycleManager.uninstall`."""

    type_name: str
    site_id: int
    deleted: dict[str, int] = field(default_factory=dict)
    schema_dropped: bool = False
    dropped_tables: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class DeletionStep:
    """One ``DELETE FROM table WHERE criterion`` of an uninstall plan."""

    label: str
    table: Table
    criterion: Any

    def execute(self, session: Session) -> int:
        return session.execute(delete(self.table).where(self.criterion)).rowcount

    def remaining(self, session: Session) -> int:
        return session.scalar(select(func.count()).select_from(self.table).where(self.criterion)) or 0


def _is_persisted(artifact: Any) -> bool:
    if isinstance(artifact, TypedRecord):
        return artifact.is_persisted
    return sa_inspect(artifact).has_identity


class LifecycleManager:
    """Orchestrates install and uninstall of registered types."""

    def __init__(
        self,
        registry: TypeRegistry,
        session_factory: SessionFactory,
        schema: SchemaManager,
        *,
        sample_slug: str = "sample",
    ) -> None:
        self.registry = registry
        self.session_factory = session_factory
        self.schema = schema
        self.sample_slug = sample_slug

    def _resolve(self, type_ref: str | TypeDescriptor) -> RegisteredType:
        if isinstance(type_ref, TypeDescriptor):
            registered = self.registry.get(type_ref.name)
            if registered.descriptor != type_ref:
                raise TypeMismatchError(
                    f"Descriptor for '{type_ref.name}' differs from the registered one"
                ).with_context(type_name=type_ref.name)
            return registered
        return self.registry.get(type_ref)

    # =========================================================================
    # INSTALL
    # =========================================================================

    def install(
        self,
        type_ref: str | TypeDescriptor,
        site: SiteContext | None = None,
    ) -> InstallResult:
        """Provision storage, sample content, navigation and activation for a type."""
        registered = self._resolve(type_ref)
        site = site or SiteContext()
        name = registered.name

        with LogContext(type_name=name, site_id=site.site_id):
            report = self.schema.reconcile(registered)
            result = InstallResult(type_name=name, site_id=site.site_id, installed=False, schema=report)

            with log_step("install.persist") as metrics:
                with transaction_scope(self.session_factory, operation="type.install") as session:
                    if ContentTypeStore(session).fetch(name, site.site_id) is not None:
                        metrics["skipped"] = True
                        logger.info("install.already_active")
                        return result

                    records = TypedRecordStore(session, self.registry)
                    with_sample = registered.descriptor.requires_envelope and not EnvelopeStore(
                        session
                    ).exists_for_type(name, site.site_id)

                    install_vars = self._build_install_vars(
                        session, registered, site, records, with_sample=with_sample
                    )
                    registered.hooks.custom_install(install_vars)
                    self._persist_install_vars(session, registered, install_vars, records)

                    result.installed = True
                    result.record_id = _identity(install_vars.get("record"))
                    result.content_id = _identity(install_vars.get("content"))
                    result.content_type_id = _identity(install_vars.get("content_type"))
                    result.menu_item_id = _identity(install_vars.get("menu_item"))
                    metrics["content_id"] = result.content_id

        logger.info("install.completed", type_name=name, site_id=site.site_id, content_id=result.content_id)
        return result

    def _build_install_vars(
        self,
        session: Session,
        registered: RegisteredType,
        site: SiteContext,
        records: TypedRecordStore,
        *,
        with_sample: bool,
    ) -> InstallVars:
        descriptor = registered.descriptor
        artifacts: dict[str, Any] = {"record": None, "content": None}

        if with_sample:
            artifacts["record"] = TypedRecord.new(registered)
            artifacts["content"] = ContentTable(
                lookup_key=site.key(descriptor.sample_key(self.sample_slug)),
                type_name=descriptor.name,
                site_id=site.site_id,
                title=f"Sample {descriptor.slug.replace('-', ' ').title()}",
            )

        artifacts["content_type"] = ContentTypeTable(
            type_name=descriptor.name,
            site_id=site.site_id,
            label=descriptor.display_label,
        )
        artifacts["menu_item"] = None
        if descriptor.requires_envelope:
            artifacts["menu_item"] = MenuItemTable(
                site_id=site.site_id,
                label=descriptor.display_label,
                lookup_key=site.key(descriptor.listing_key),
                type_name=descriptor.name,
                position=MenuItemStore(session).next_position(site.site_id),
            )

        return InstallVars(artifacts, session=session, site=site, records=records)

    def _persist_install_vars(
        self,
        session: Session,
        registered: RegisteredType,
        install_vars: InstallVars,
        records: TypedRecordStore,
    ) -> None:
        name = registered.name
        record: TypedRecord | None = install_vars.get("record")
        content: ContentTable | None = install_vars.get("content")

        if record is not None and record.type_name != name:
            raise TypeMismatchError(
                f"Install of '{name}' was given a '{record.type_name}' record"
            ).with_context(type_name=name)
        if content is not None and content.type_name != name:
            raise TypeMismatchError(
                f"Install of '{name}' was given '{content.type_name}' content"
            ).with_context(type_name=name)
        if content is not None and record is None:
            raise ValidationError(
                f"Install of '{name}' kept the envelope but declined its typed record",
                category=ErrorCategory.LIFECYCLE,
            ).with_context(type_name=name)
        if record is not None and content is None and registered.descriptor.requires_envelope:
            raise ValidationError(
                f"Install of '{name}' must keep or decline the envelope and typed record together",
                category=ErrorCategory.LIFECYCLE,
            ).with_context(type_name=name)

        # 1. typed record
        if record is not None and not record.is_persisted:
            records.create(record)

        # 2. envelope, bound both ways
        if content is not None:
            content.type_record_id = record.id
            if not _is_persisted(content):
                EnvelopeStore(session).create(content)
            if record.content_id != content.id:
                records.bind(record, content.id)

        # 3. type-active record
        content_type = install_vars.get("content_type")
        if content_type is None:
            raise ValidationError(
                f"Install of '{name}' cannot decline the type-active record",
                category=ErrorCategory.LIFECYCLE,
            ).with_context(type_name=name)
        if not _is_persisted(content_type):
            ContentTypeStore(session).create(content_type)

        # 4. navigation entry
        menu_item = install_vars.get("menu_item")
        if menu_item is not None and not _is_persisted(menu_item):
            MenuItemStore(session).create(menu_item)

        # 5. anything the hook added
        for key, artifact in install_vars.extras().items():
            if artifact is None:
                continue
            if isinstance(artifact, TypedRecord):
                if not artifact.is_persisted:
                    records.create(artifact)
            elif isinstance(artifact, FolioBase):
                if not _is_persisted(artifact):
                    session.add(artifact)
            else:
                raise ValidationError(
                    f"Install artifact '{key}' is neither a typed record nor a mapped row",
                    field=key,
                    category=ErrorCategory.LIFECYCLE,
                ).with_context(type_name=name)
        session.flush()

    # =========================================================================
    # UNINSTALL
    # =========================================================================

    def uninstall(
        self,
        type_ref: str | TypeDescriptor,
        site: SiteContext | None = None,
        delete_schema: bool = False,
    ) -> UninstallResult:
        """Remove a type's data for a site; optionally drop its storage."""
        registered = self._resolve(type_ref)
        site = site or SiteContext()
        name = registered.name
        result = UninstallResult(type_name=name, site_id=site.site_id)

        with LogContext(type_name=name, site_id=site.site_id):
            with self.session_factory() as session:
                if ContentTypeStore(session).fetch(name, site.site_id) is None:
                    raise NotFoundError(
                        f"Content type '{name}' is not installed for site {site.site_id}"
                    ).with_context(type_name=name, site_id=site.site_id)

            registered.hooks.custom_uninstall()

            with log_step("uninstall.delete") as metrics:
                with transaction_scope(self.session_factory, operation="type.uninstall") as session:
                    plan = self.deletion_plan(session, registered, site)
                    for step in plan:
                        result.deleted[step.label] = step.execute(session)

                    survivors = {step.label: n for step in plan if (n := step.remaining(session))}
                    if survivors:
                        raise PartialPersistenceError(
                            f"Uninstall of '{name}' left rows behind",
                            category=ErrorCategory.LIFECYCLE,
                        ).with_context(type_name=name, site_id=site.site_id, survivors=survivors)
                    remaining_sites = ContentTypeStore(session).sites_with(name)
                metrics.update(result.deleted)

            if delete_schema:
                if remaining_sites:
                    logger.warning("uninstall.schema_kept", active_sites=remaining_sites)
                else:
                    result.dropped_tables = self.schema.drop(registered)
                    result.schema_dropped = True

            registered.hooks.after_uninstall()

        logger.info(
            "uninstall.completed",
            type_name=name,
            site_id=site.site_id,
            schema_dropped=result.schema_dropped,
        )
        return result

    def deletion_plan(
        self,
        session: Session,
        registered: RegisteredType,
        site: SiteContext,
    ) -> list[DeletionStep]:
        """Ordered deletes for one (type, site): children, records, envelopes, navigation, activation."""
        name = registered.name
        envelopes = EnvelopeStore(session).list_for_type(name, site.site_id)
        content_ids = [c.id for c in envelopes]

        records = TypedRecordStore(session, self.registry)
        record_ids = set(records.ids_bound_to(name, content_ids))
        record_ids.update(c.type_record_id for c in envelopes if c.type_record_id is not None)
        if ContentTypeStore(session).sites_with(name) == [site.site_id]:
            # Last site using the type: unbound records belong to nobody else
            record_ids.update(records.unbound_ids(name))
        record_ids_list = sorted(record_ids)

        contents = ContentTable.__table__
        menu_items = MenuItemTable.__table__
        content_types = ContentTypeTable.__table__
        table = registered.table

        steps = [
            DeletionStep(
                f"{name}.{relation}",
                child,
                child.c.parent_id.in_(record_ids_list),
            )
            for relation, child in registered.child_tables.items()
        ]
        steps.append(DeletionStep(name, table, table.c.id.in_(record_ids_list)))
        steps.append(DeletionStep("contents", contents, contents.c.id.in_(content_ids)))
        steps.append(
            DeletionStep(
                "menu_items",
                menu_items,
                or_(
                    menu_items.c.content_id.in_(content_ids),
                    and_(menu_items.c.type_name == name, menu_items.c.site_id == site.site_id),
                ),
            )
        )
        steps.append(
            DeletionStep(
                "content_type",
                content_types,
                and_(content_types.c.type_name == name, content_types.c.site_id == site.site_id),
            )
        )
        return steps


def _identity(artifact: Any) -> int | None:
    if artifact is None:
        return None
    return artifact.id


__all__ = [
    "SiteContext",
    "InstallResult",
    "UninstallResult",
    "DeletionStep",
    "LifecycleManager",
]
