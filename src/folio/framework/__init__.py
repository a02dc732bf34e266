"""
Folio Framework - content composition on top of folio.core.

This module provides:
- Type registry (descriptors, fields, child collections)
- Envelope / typed record stores
- Composition proxy
- Install / uninstall lifecycle with per-type hooks
- ContentEngine facade
"""

from folio.framework.engine import ContentEngine
from folio.framework.hooks import CallbackHooks, InstallVars, LifecycleHooks
from folio.framework.lifecycle import (
    InstallResult,
    LifecycleManager,
    SiteContext,
    UninstallResult,
)
from folio.framework.proxy import ContentProxy
from folio.framework.records import TypedRecord
from folio.framework.registry import (
    FieldDef,
    FieldKind,
    RegisteredType,
    RelationDef,
    TypeDescriptor,
    TypeRegistry,
)

__all__ = [
    # Engine
    "ContentEngine",
    "ContentProxy",
    "TypedRecord",
    # Registry
    "TypeRegistry",
    "TypeDescriptor",
    "RegisteredType",
    "FieldDef",
    "FieldKind",
    "RelationDef",
    # Lifecycle
    "LifecycleManager",
    "LifecycleHooks",
    "CallbackHooks",
    "InstallVars",
    "SiteContext",
    "InstallResult",
    "UninstallResult",
]
