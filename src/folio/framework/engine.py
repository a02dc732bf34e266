"""ContentEngine: the public entry point of folio.

Wires one :class:`TypeRegistry`, one SQLAlchemy engine/session factory and
the lifecycle manager together and exposes the operations consumers use:

    resolve_by_lookup_key(key)          → ContentProxy | NotFoundError
    resolve_by_id(content_id)           → ContentProxy | NotFoundError
    create_new(type_name, **values)     → unsaved ContentProxy
    list_contents(type_name, site_id)   → [ContentProxy, ...]
    installed_types(site_id)            → ["Article", ...]
    install(type, site)                 → InstallResult
    uninstall(type, site, delete_schema)→ UninstallResult

Examples:
    >>> registry = TypeRegistry()
    >>> registry.register(TypeDescriptor("Article", fields=(FieldDef("body"),)))
    >>> engine = ContentEngine.from_settings(registry)
    >>> engine.install("Article")
    >>> engine.resolve_by_lookup_key("/articles/sample-article").title
    'Sample Article'

Tags:
    folio-framework, engine, facade, resolution

Doc-Types:
    api-reference
"""

from __future__ import annotations

from typing import Any

from sqlalchemy.engine import Engine

from folio.core.errors import NotFoundError, TypeMismatchError
from folio.core.logging import configure_logging, get_logger
from folio.core.orm.session import SessionFactory, create_folio_engine, folio_session_factory
from folio.core.orm.tables import ContentTable
from folio.core.settings import FolioSettings, get_settings
from folio.framework.lifecycle import (
    InstallResult,
    LifecycleManager,
    SiteContext,
    UninstallResult,
)
from folio.framework.proxy import ContentProxy
from folio.framework.records import TypedRecord
from folio.framework.registry import TypeDescriptor, TypeRegistry
from folio.framework.schema import SchemaManager
from folio.framework.stores import ContentTypeStore, EnvelopeStore

logger = get_logger(__name__)


class ContentEngine:
    """Resolves lookup keys to composition proxies and runs type lifecycles."""

    def __init__(
        self,
        registry: TypeRegistry,
        session_factory: SessionFactory,
        *,
        engine: Engine | None = None,
        settings: FolioSettings | None = None,
        sites: list[SiteContext] | None = None,
    ) -> None:
        self.registry = registry
        self.session_factory = session_factory
        self.settings = settings or get_settings()
        if engine is None:
            with session_factory() as session:
                engine = session.get_bind()
        self.engine = engine
        self.schema = SchemaManager(engine)
        self.lifecycle = LifecycleManager(
            registry,
            session_factory,
            self.schema,
            sample_slug=self.settings.sample_slug,
        )
        self._sites: dict[int, SiteContext] = {}
        for site in sites or ():
            self.register_site(site)

    @classmethod
    def from_settings(
        cls,
        registry: TypeRegistry,
        settings: FolioSettings | None = None,
    ) -> ContentEngine:
        """Build engine, session factory and core tables from settings.

        Also configures structured logging from the ``log_*`` and
        ``service_name`` settings.
        """
        settings = settings or get_settings()
        configure_logging(
            level=settings.log_level,
            json_format=settings.json_logs,
            service=settings.service_name,
        )
        engine = create_folio_engine(
            settings.database_url,
            echo=settings.database_echo,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_timeout=settings.database_pool_timeout,
        )
        content_engine = cls(
            registry,
            folio_session_factory(engine),
            engine=engine,
            settings=settings,
        )
        content_engine.create_schema()
        return content_engine

    # -- sites -----------------------------------------------------------------

    def register_site(self, site: SiteContext) -> None:
        self._sites[site.site_id] = site

    def site(self, site_id: int | None = None) -> SiteContext:
        """Known context for *site_id*, or a bare one (no base path)."""
        site_id = site_id or self.settings.default_site_id
        return self._sites.get(site_id) or SiteContext(site_id=site_id)

    def base_path_for(self, site_id: int | None) -> str:
        return self.site(site_id).base_path

    # -- schema ----------------------------------------------------------------

    def create_schema(self) -> None:
        """Create the core tables and reconcile storage for every registered type."""
        self.schema.ensure_core()
        for registered in self.registry:
            self.schema.reconcile(registered)

    # -- resolution ------------------------------------------------------------

    def resolve_by_lookup_key(self, key: str) -> ContentProxy:
        """Proxy for the envelope at *key*; the typed side is fetched on first use.

        Raises:
            NotFoundError: no envelope has this lookup key.
            UnregisteredTypeError: the envelope's type is not registered.
        """
        with self.session_factory() as session:
            content = EnvelopeStore(session).fetch_by_lookup_key(key)
        if content is None:
            raise NotFoundError(f"No content at lookup key {key!r}").with_context(
                lookup_key=key
            )
        self.registry.get(content.type_name)
        logger.debug("content.resolved", lookup_key=key, content_id=content.id, type_name=content.type_name)
        return ContentProxy(self, content)

    def resolve_by_id(self, content_id: int) -> ContentProxy:
        with self.session_factory() as session:
            content = EnvelopeStore(session).fetch_by_id(content_id)
        if content is None:
            raise NotFoundError(f"No content with id {content_id}").with_context(
                content_id=content_id
            )
        self.registry.get(content.type_name)
        return ContentProxy(self, content)

    def create_new(
        self,
        type_name: str,
        *,
        site_id: int | None = None,
        lookup_key: str | None = None,
        title: str | None = None,
        description: str | None = None,
        **values: Any,
    ) -> ContentProxy:
        """Unsaved proxy pre-associated with *type_name*.

        Keyword *values* are typed fields; they are validated immediately.
        Nothing touches storage until :meth:`ContentProxy.save`.
        """
        registered = self.registry.get(type_name)
        if not registered.descriptor.requires_envelope:
            raise TypeMismatchError(
                f"Content type '{type_name}' does not use envelope records"
            ).with_context(type_name=type_name)
        content = ContentTable(
            lookup_key=lookup_key,
            type_name=type_name,
            site_id=site_id or self.settings.default_site_id,
            title=title,
            description=description,
        )
        return ContentProxy(self, content, TypedRecord.new(registered, **values))

    def list_contents(self, type_name: str, site_id: int | None = None) -> list[ContentProxy]:
        """Proxies for every envelope of *type_name*, ordered by id."""
        self.registry.get(type_name)
        with self.session_factory() as session:
            contents = EnvelopeStore(session).list_for_type(type_name, site_id)
        return [ContentProxy(self, content) for content in contents]

    def installed_types(self, site_id: int | None = None) -> list[str]:
        site_id = site_id or self.settings.default_site_id
        with self.session_factory() as session:
            return ContentTypeStore(session).active_types(site_id)

    # -- lifecycle -------------------------------------------------------------

    def install(
        self,
        type_ref: str | TypeDescriptor,
        site: SiteContext | int | None = None,
    ) -> InstallResult:
        return self.lifecycle.install(type_ref, self._site_ref(site))

    def uninstall(
        self,
        type_ref: str | TypeDescriptor,
        site: SiteContext | int | None = None,
        delete_schema: bool = False,
    ) -> UninstallResult:
        return self.lifecycle.uninstall(type_ref, self._site_ref(site), delete_schema=delete_schema)

    def _site_ref(self, site: SiteContext | int | None) -> SiteContext:
        if isinstance(site, SiteContext):
            self.register_site(site)
            return site
        return self.site(site)


__all__ = ["ContentEngine"]
