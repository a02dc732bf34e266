"""
Folio - typed content composition engine.

One generic envelope per addressable page, one typed payload per
registered content type, presented as a single object; plus the
install/uninstall lifecycle that makes a newly registered type usable.

- folio.core: errors, logging, settings, SQLAlchemy ORM layer
- folio.framework: registry, stores, proxy, lifecycle, engine
"""

__version__ = "0.1.0"

from folio.core.errors import (
    ConstraintViolationError,
    FolioError,
    NotFoundError,
    PartialPersistenceError,
    TypeMismatchError,
    UnknownMemberError,
    UnregisteredTypeError,
    ValidationError,
)
from folio.framework import (
    CallbackHooks,
    ContentEngine,
    ContentProxy,
    FieldDef,
    FieldKind,
    InstallVars,
    LifecycleHooks,
    RelationDef,
    SiteContext,
    TypeDescriptor,
    TypeRegistry,
)

__all__ = [
    "__version__",
    # Errors
    "FolioError",
    "NotFoundError",
    "UnknownMemberError",
    "UnregisteredTypeError",
    "TypeMismatchError",
    "ValidationError",
    "PartialPersistenceError",
    "ConstraintViolationError",
    # Framework
    "ContentEngine",
    "ContentProxy",
    "TypeRegistry",
    "TypeDescriptor",
    "FieldDef",
    "FieldKind",
    "RelationDef",
    "SiteContext",
    "LifecycleHooks",
    "CallbackHooks",
    "InstallVars",
]
