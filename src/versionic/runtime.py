"""
versionic.runtime  ──  A thin façade owning the engine and session factory.

Usage pattern in application code
---------------------------------
    from versionic import Versionic

    Versionic.init()                      # reads VERSIONIC_* / .env
    with Versionic.session() as session:
        story = session.get(Story, 1)
        ...
        session.commit()
"""

from __future__ import annotations

from typing import ClassVar, Optional

import structlog
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .bootstrap import init_versionic
from .config import VersionicSettings, configure_logging, load_settings

logger = structlog.get_logger()


class Versionic:
    """Process-wide engine + sessionmaker, created once by :meth:`init`."""

    _settings: ClassVar[Optional[VersionicSettings]] = None
    _engine: ClassVar[Optional[Engine]] = None
    _sessionmaker: ClassVar[Optional[sessionmaker]] = None

    # ---------- one-shot initialiser ----------
    @classmethod
    def init(cls, settings: Optional[VersionicSettings] = None) -> Engine:
        if cls._engine is None:
            settings = settings or load_settings()
            configure_logging(settings)
            cls._settings = settings
            cls._engine = create_engine(
                settings.database_url, echo=settings.echo, pool_pre_ping=True
            )
            cls._sessionmaker = sessionmaker(bind=cls._engine)

            init_versionic(cls._engine)  # auto-create history tables
            logger.info("versionic_started", database_url=cls._engine.url.render_as_string())
        return cls._engine

    # ---------- convenience helpers ----------
    @classmethod
    def engine(cls) -> Engine:
        if cls._engine is None:
            raise RuntimeError("Versionic.init() has not been called")
        return cls._engine

    @classmethod
    def settings(cls) -> VersionicSettings:
        if cls._settings is None:
            raise RuntimeError("Versionic.init() has not been called")
        return cls._settings

    @classmethod
    def session(cls) -> Session:
        if cls._sessionmaker is None:
            raise RuntimeError("Versionic.init() has not been called")
        return cls._sessionmaker()

    @classmethod
    def reset(cls) -> None:
        """Dispose of the engine; the next :meth:`init` starts over."""
        if cls._engine is not None:
            cls._engine.dispose()
        cls._settings = cls._engine = cls._sessionmaker = None
