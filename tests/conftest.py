"""
Shared pytest fixtures for folio tests.

This module provides:
- Settings isolation (no FOLIO_* leakage between tests)
- File-backed SQLite engine per test
- A registry with ``Article`` and ``MenuPage`` (with a ``dishes`` child collection)
- A ready ``ContentEngine`` with the core schema created

Usage:
    def test_something(content_engine):
        content_engine.install("Article")
"""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from folio.core.orm.session import create_folio_engine, folio_session_factory
from folio.core.settings import FolioSettings, clear_settings_cache
from folio.framework.engine import ContentEngine
from folio.framework.registry import (
    FieldDef,
    FieldKind,
    RelationDef,
    TypeDescriptor,
    TypeRegistry,
)


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Mark tests without an explicit marker as unit tests."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Type descriptors
# =============================================================================


ARTICLE = TypeDescriptor(
    "Article",
    fields=(
        FieldDef("title"),
        FieldDef("body"),
        FieldDef("excerpt"),
    ),
)

MENU_PAGE = TypeDescriptor(
    "MenuPage",
    fields=(
        FieldDef("intro"),
        FieldDef("status", FieldKind.ENUM, default="draft", choices=("draft", "published")),
    ),
    relations=(
        RelationDef(
            "dishes",
            fields=(
                FieldDef("name", FieldKind.STRING),
                FieldDef("price", FieldKind.NUMERIC),
            ),
        ),
    ),
)


# =============================================================================
# Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def _isolate_settings(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    """Drop FOLIO_* variables and stray .env files; reset the settings cache."""
    for key in list(os.environ):
        if key.startswith("FOLIO_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    clear_settings_cache()
    yield
    clear_settings_cache()


# =============================================================================
# Storage
# =============================================================================


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    return f"sqlite:///{tmp_path / 'folio.db'}"


@pytest.fixture
def settings(database_url: str) -> FolioSettings:
    return FolioSettings(database_url=database_url, log_format="console")


@pytest.fixture
def db_engine(database_url: str):
    engine = create_folio_engine(database_url)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return folio_session_factory(db_engine)


@pytest.fixture
def registry() -> TypeRegistry:
    reg = TypeRegistry()
    reg.register(ARTICLE)
    reg.register(MENU_PAGE)
    return reg


@pytest.fixture
def content_engine(registry, session_factory, db_engine, settings) -> ContentEngine:
    engine = ContentEngine(registry, session_factory, engine=db_engine, settings=settings)
    engine.create_schema()
    return engine
