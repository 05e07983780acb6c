"""
Single entry-point that creates the tables of every versioned model.
Call once at start-up, after the models have been imported and configured.
"""

from typing import Optional

import structlog
from sqlalchemy import MetaData
from sqlalchemy.engine import Engine

from .core.history import _registry, derive_history_type
from .persistence.models import Base

logger = structlog.get_logger()


def init_versionic(engine: Engine, metadata: Optional[MetaData] = None) -> None:
    """
    Derive every history type, then create all missing tables.

    Tables are created in ``metadata`` (default: :data:`versionic.Base`'s)
    and in the metadata of each versioned model, if different.
    """
    targets = [metadata if metadata is not None else Base.metadata]
    for model in _registry.models():
        history = derive_history_type(model)
        if all(history.metadata is not m for m in targets):
            targets.append(history.metadata)

    for target in targets:
        target.create_all(engine)  # ← this line creates tables
    logger.info("versionic_initialised", tables=sum(len(t.tables) for t in targets))
