"""
Structured error types for the folio composition engine.

Every failure the engine reports to a caller is one of a small, closed set
of kinds. Each kind carries enough metadata (category, context, chained
cause) to be logged and routed without string parsing, and none of them is
retried by the engine itself.

Manifesto:
    - **Closed set of kinds:** Callers branch on the class, never the message
    - **Rollback before report:** Persistence errors surface only after the
      enclosing transaction has been rolled back
    - **Rich Context:** Errors carry type name, site, lookup key, content id
    - **Error Chaining:** The storage-layer exception is kept as ``cause``

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                          FolioError                              │
        │              (category, retryable, context, cause)               │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  NotFoundError          UnregisteredTypeError   TypeMismatchError│
        │  (LOOKUP)               (REGISTRY)              (REGISTRY)       │
        │                                                                  │
        │  UnknownMemberError     ValidationError         ConfigError      │
        │  (LOOKUP, AttributeError)  (VALIDATION)         (CONFIG)         │
        │                                                                  │
        │  PartialPersistenceError        ConstraintViolationError         │
        │  (DATABASE)                     (DATABASE)                       │
        └─────────────────────────────────────────────────────────────────┘

Examples:
    >>> error = NotFoundError("No content at '/missing'")
    >>> error.with_context(lookup_key="/missing").context.lookup_key
    '/missing'
    >>> error.to_dict()["category"]
    'LOOKUP'

Tags:
    error-handling, exception-hierarchy, error-context, folio-core

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """
    Standard error categories for classification and routing.

    Attributes:
        LOOKUP: Lookup key, content id or member could not be resolved
        REGISTRY: Type catalogue problems (unregistered or mismatched types)
        VALIDATION: Field values or descriptors rejected before persistence
        DATABASE: Storage failures and constraint violations
        CONFIG: Invalid settings
        LIFECYCLE: Install hooks broke the artifact contract, or uninstall left rows behind
        INTERNAL: Bugs, unexpected state
    """

    LOOKUP = "LOOKUP"
    REGISTRY = "REGISTRY"
    VALIDATION = "VALIDATION"
    DATABASE = "DATABASE"
    CONFIG = "CONFIG"
    LIFECYCLE = "LIFECYCLE"
    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Only fields that were set end up in :meth:`to_dict`, so log lines stay
    short for errors raised far from any content item.

    Examples:
        >>> ctx = ErrorContext(type_name="Article", site_id=1)
        >>> ctx.to_dict()
        {'type_name': 'Article', 'site_id': 1}
    """

    operation: str | None = None
    type_name: str | None = None
    site_id: int | None = None
    lookup_key: str | None = None
    content_id: int | None = None
    member: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["operation", "type_name", "site_id", "lookup_key", "content_id", "member"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class FolioError(Exception):
    """
    Base exception for all folio errors.

    Subclasses set ``default_category`` (and, if ever needed,
    ``default_retryable``) so that raising sites only pass a message and
    whatever context they know.

    Examples:
        >>> try:
        ...     raise KeyError("Article")
        ... except KeyError as e:
        ...     error = FolioError("Lookup failed", cause=e)
        >>> error.cause
        KeyError('Article')
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> FolioError:
        """
        Add context to this error (fluent API).

        Usage:
            raise NotFoundError("No content").with_context(lookup_key="/x")
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# LOOKUP ERRORS
# =============================================================================


class NotFoundError(FolioError):
    """Lookup key, content id or type-active record is absent."""

    default_category = ErrorCategory.LOOKUP


class UnknownMemberError(FolioError, AttributeError):
    """Member is defined neither on the envelope nor on the typed record.

    Also an :class:`AttributeError` so ``hasattr(proxy, name)`` and
    ``getattr(proxy, name, default)`` keep their usual meaning.
    """

    default_category = ErrorCategory.LOOKUP

    def __init__(self, member: str, type_name: str | None = None, **kwargs: Any):
        self.member = member
        self.type_name = type_name
        where = f"content of type '{type_name}'" if type_name else "content"
        super().__init__(f"Unknown member '{member}' on {where}", **kwargs)
        self.context.member = member
        self.context.type_name = type_name


# =============================================================================
# REGISTRY ERRORS
# =============================================================================


class UnregisteredTypeError(FolioError):
    """Type name has no entry in the type registry."""

    default_category = ErrorCategory.REGISTRY

    def __init__(self, type_name: str, available: list[str] | None = None, **kwargs: Any):
        self.type_name = type_name
        message = f"Content type not registered: {type_name}"
        if available:
            message = f"{message}. Available: {', '.join(available)}"
        super().__init__(message, **kwargs)
        self.context.type_name = type_name


class TypeMismatchError(FolioError):
    """Binding attempted between an envelope and a record of another type."""

    default_category = ErrorCategory.REGISTRY


# =============================================================================
# VALIDATION / CONFIG ERRORS
# =============================================================================


class ValidationError(FolioError):
    """
    Value or descriptor rejected before it reaches storage.

    Never retryable - the input must be fixed.
    """

    default_category = ErrorCategory.VALIDATION

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.field = field
        self.value = value

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.field:
            result["field"] = self.field
        if self.value is not None:
            result["value"] = repr(self.value)
        return result


class ConfigError(FolioError):
    """Configuration value is missing or invalid."""

    default_category = ErrorCategory.CONFIG


# =============================================================================
# PERSISTENCE ERRORS
# =============================================================================


class PartialPersistenceError(FolioError):
    """A joint save/install/uninstall was aborted mid-way.

    Always raised after the enclosing transaction has been rolled back, so
    no partial state is committed.
    """

    default_category = ErrorCategory.DATABASE


class ConstraintViolationError(FolioError):
    """Duplicate lookup key, duplicate one-to-one binding or duplicate activation."""

    default_category = ErrorCategory.DATABASE


def is_retryable(error: BaseException) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, FolioError):
        return error.retryable
    return False


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "FolioError",
    "NotFoundError",
    "UnknownMemberError",
    "UnregisteredTypeError",
    "TypeMismatchError",
    "ValidationError",
    "ConfigError",
    "PartialPersistenceError",
    "ConstraintViolationError",
    "is_retryable",
]
