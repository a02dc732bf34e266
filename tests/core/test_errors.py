"""Tests for folio.core.errors module."""

import pytest

from folio.core.errors import (
    ConfigError,
    ConstraintViolationError,
    ErrorCategory,
    ErrorContext,
    FolioError,
    NotFoundError,
    PartialPersistenceError,
    TypeMismatchError,
    UnknownMemberError,
    UnregisteredTypeError,
    ValidationError,
    is_retryable,
)


class TestErrorContext:
    """Test ErrorContext dataclass."""

    def test_create_empty_context(self):
        ctx = ErrorContext()
        assert ctx.operation is None
        assert ctx.type_name is None
        assert ctx.metadata == {}

    def test_to_dict_includes_set_fields(self):
        """to_dict includes only non-None fields."""
        ctx = ErrorContext(type_name="Article", site_id=1, metadata={"key": "value"})
        d = ctx.to_dict()
        assert d == {"type_name": "Article", "site_id": 1, "key": "value"}
        assert "lookup_key" not in d


class TestFolioError:
    """Test FolioError base class."""

    def test_create_minimal_error(self):
        err = FolioError("Something failed")
        assert err.message == "Something failed"
        assert err.category == ErrorCategory.INTERNAL
        assert err.retryable is False

    def test_create_with_cause(self):
        cause = ValueError("Invalid value")
        err = FolioError("Validation failed", cause=cause)
        assert err.cause is cause
        assert err.__cause__ is cause

    def test_with_context_fluent_api(self):
        err = FolioError("Failed").with_context(
            lookup_key="/articles/x",
            content_id=3,
            survivors={"contents": 1},
        )
        assert err.context.lookup_key == "/articles/x"
        assert err.context.content_id == 3
        assert err.context.metadata["survivors"] == {"contents": 1}

    def test_to_dict(self):
        err = FolioError("Failed", cause=KeyError("k")).with_context(type_name="Article")
        d = err.to_dict()
        assert d["error_type"] == "FolioError"
        assert d["message"] == "Failed"
        assert d["category"] == "INTERNAL"
        assert d["context"] == {"type_name": "Article"}
        assert "cause" in d

    def test_repr(self):
        assert repr(FolioError("boom")) == "FolioError('boom', category=INTERNAL)"


class TestErrorKinds:
    """Each kind carries its category."""

    @pytest.mark.parametrize(
        ("error", "category"),
        [
            (NotFoundError("x"), ErrorCategory.LOOKUP),
            (UnknownMemberError("x"), ErrorCategory.LOOKUP),
            (UnregisteredTypeError("X"), ErrorCategory.REGISTRY),
            (TypeMismatchError("x"), ErrorCategory.REGISTRY),
            (ValidationError("x"), ErrorCategory.VALIDATION),
            (ConfigError("x"), ErrorCategory.CONFIG),
            (PartialPersistenceError("x"), ErrorCategory.DATABASE),
            (ConstraintViolationError("x"), ErrorCategory.DATABASE),
        ],
    )
    def test_category(self, error, category):
        assert error.category == category
        assert isinstance(error, FolioError)

    def test_unknown_member_is_attribute_error(self):
        err = UnknownMemberError("subtitle", "Article")
        assert isinstance(err, AttributeError)
        assert err.member == "subtitle"
        assert err.context.member == "subtitle"
        assert err.context.type_name == "Article"
        assert "subtitle" in err.message and "Article" in err.message

    def test_unregistered_type_lists_available(self):
        err = UnregisteredTypeError("Blog", available=["Article", "MenuPage"])
        assert err.type_name == "Blog"
        assert "Available: Article, MenuPage" in err.message

    def test_validation_error_to_dict(self):
        err = ValidationError("bad", field="status", value="archived")
        d = err.to_dict()
        assert d["field"] == "status"
        assert d["value"] == "'archived'"


class TestIsRetryable:
    def test_kinds_are_not_retryable(self):
        assert is_retryable(PartialPersistenceError("x")) is False
        assert is_retryable(ConstraintViolationError("x")) is False

    def test_explicit_retryable(self):
        assert is_retryable(FolioError("x", retryable=True)) is True

    def test_non_folio_error(self):
        assert is_retryable(ValueError("x")) is False
