"""
Forward schema operations from a versioned model to its history type.

    Story.auto_migrate(engine)   # ➜ Story table, then story_versions
    Story.auto_upgrade(engine)   # ➜ Story table, then story_versions
"""

from __future__ import annotations

from functools import wraps

import structlog
from sqlalchemy.engine import Engine

from .core.history import derive_history_type

logger = structlog.get_logger()

OPERATIONS = ("auto_migrate", "auto_upgrade")


def _propagating(model: type, operation: str):
    base_operation = getattr(model, operation).__func__

    @wraps(base_operation)
    def run(cls, engine: Engine) -> None:
        base_operation(cls, engine)
        getattr(derive_history_type(cls), operation)(engine)

    return classmethod(run)


def propagate_migrations(model: type) -> None:
    """Make ``model``'s schema operations also run on its history type."""
    for operation in OPERATIONS:
        setattr(model, operation, _propagating(model, operation))
    logger.debug("migrations_propagated", model=model.__name__, operations=list(OPERATIONS))
