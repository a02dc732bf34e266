"""Per-type customization hooks for install and uninstall.

A type author customizes its lifecycle by handing the registry a
:class:`LifecycleHooks` object (subclass it, or wrap plain functions with
:class:`CallbackHooks`). The default object does nothing, so a type
registered without hooks gets the default behaviour unmodified.

Install hook contract::

    def custom_install(self, install_vars: InstallVars) -> None:
        install_vars["record"].set("excerpt", "demo")   # mutate before persistence
        install_vars["menu_item"] = None                 # decline an artifact
        install_vars["gallery"] = SomeOrmRow(...)        # add an extra artifact

Anything still unsaved in ``install_vars`` after the hook returns is
persisted by the lifecycle manager; anything the hook persisted itself
(through ``install_vars.session`` or ``install_vars.records``) is left
alone. Raising aborts the whole install.

Tags:
    folio-framework, hooks, lifecycle, strategy

Doc-Types:
    api-reference, extension-guide
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, MutableMapping
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from folio.framework.lifecycle import SiteContext
    from folio.framework.stores import TypedRecordStore


class InstallVars(MutableMapping[str, Any]):
    """Named mapping of the unsaved artifacts an install is about to persist.

    Standard keys: ``content`` (envelope), ``record`` (typed record),
    ``content_type`` (type-active row) and ``menu_item`` (navigation
    entry). Hooks may add extra keys. The open session, the site and the
    typed record store are exposed as attributes so hooks can persist
    artifacts themselves.
    """

    STANDARD_KEYS = ("record", "content", "content_type", "menu_item")

    def __init__(
        self,
        artifacts: dict[str, Any],
        *,
        session: Session,
        site: SiteContext,
        records: TypedRecordStore,
    ) -> None:
        self._artifacts = dict(artifacts)
        self.session = session
        self.site = site
        self.records = records

    def __getitem__(self, key: str) -> Any:
        return self._artifacts[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self._artifacts[key] = value

    def __delitem__(self, key: str) -> None:
        del self._artifacts[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._artifacts)

    def __len__(self) -> int:
        return len(self._artifacts)

    def extras(self) -> dict[str, Any]:
        """Artifacts under non-standard keys, in insertion order."""
        return {k: v for k, v in self._artifacts.items() if k not in self.STANDARD_KEYS}

    def __repr__(self) -> str:
        return f"InstallVars({sorted(self._artifacts)})"


class LifecycleHooks:
    """No-op customization strategy; subclass and override what you need."""

    def custom_install(self, install_vars: InstallVars) -> None:
        """Called after default artifacts are built, before they are persisted."""

    def custom_uninstall(self) -> None:
        """Called before any data is deleted. Raising aborts the uninstall."""

    def after_uninstall(self) -> None:
        """Called once data deletion (and any schema drop) has succeeded."""


class CallbackHooks(LifecycleHooks):
    """Adapt plain callables to the :class:`LifecycleHooks` interface."""

    def __init__(
        self,
        install: Callable[[InstallVars], None] | None = None,
        uninstall: Callable[[], None] | None = None,
        after_uninstall: Callable[[], None] | None = None,
    ) -> None:
        self._install = install
        self._uninstall = uninstall
        self._after_uninstall = after_uninstall

    def custom_install(self, install_vars: InstallVars) -> None:
        if self._install is not None:
            self._install(install_vars)

    def custom_uninstall(self) -> None:
        if self._uninstall is not None:
            self._uninstall()

    def after_uninstall(self) -> None:
        if self._after_uninstall is not None:
            self._after_uninstall()


__all__ = ["InstallVars", "LifecycleHooks", "CallbackHooks"]
