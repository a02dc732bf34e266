"""Folio Core -- primitives shared by every layer.

Architecture::

    errors.py      Structured error hierarchy (FolioError and its kinds)
    logging.py     structlog configuration, LogContext, log_step
    settings.py    FolioSettings (pydantic-settings) + cached get_settings
    orm/           SQLAlchemy 2.0 base, session handling, core tables

Tags:
    folio-core, primitives, package-overview

Doc-Types:
    package-overview, module-index
"""
