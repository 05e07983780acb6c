"""
Derived history types.

Each versioned model gets one companion mapped class, built on first use
from the model's field definitions and cached for the life of the process:

    Story          -> Story.Version   (class StoryVersion, table story_versions)
"""

from __future__ import annotations

import re
import threading
from typing import Dict, Optional, Tuple

import structlog
from sqlalchemy import inspect

from ..errors import ConfigurationError
from ..persistence.models import MigratableModel
from .schema import history_fields, reflect_fields

logger = structlog.get_logger()

HISTORY_CLASS_SUFFIX = "Version"
HISTORY_TABLE_SUFFIX = "_versions"


# helpers
def _snake(name: str) -> str:
    """CamelCase ➜ snake_case."""
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


def history_table_name(model: type) -> str:
    return f"{_snake(model.__name__)}{HISTORY_TABLE_SUFFIX}"


class HistoryRegistry:
    """Watched fields and derived history types, keyed by model class."""

    def __init__(self):
        self._lock = threading.RLock()
        self._watched: Dict[type, Tuple[str, ...]] = {}
        self._types: Dict[type, type] = {}

    def configure(self, model: type, watched: Tuple[str, ...]) -> None:
        with self._lock:
            if self.root_of(model) is not None:
                raise ConfigurationError(
                    f"{model.__name__} is already versioned", model=model
                )
            self._watched[model] = watched

    def root_of(self, model: type) -> Optional[type]:
        """The configured class ``model`` is, or inherits from."""
        for cls in model.__mro__:
            if cls in self._watched:
                return cls
        return None

    def watched(self, model: type) -> Tuple[str, ...]:
        root = self.root_of(model)
        if root is None:
            raise ConfigurationError(
                f"{model.__name__} has no watched fields; call is_versioned() first",
                model=model,
            )
        return self._watched[root]

    def models(self) -> Tuple[type, ...]:
        with self._lock:
            return tuple(self._watched)

    def history_type(self, model: type) -> type:
        root = self.root_of(model) or model
        cached = self._types.get(root)
        if cached is not None:
            return cached
        with self._lock:
            # another thread may have finished while we waited
            cached = self._types.get(root)
            if cached is None:
                cached = self._types[root] = _build_history_type(root, self.watched(root))
            return cached


def _build_history_type(model: type, watched: Tuple[str, ...]) -> type:
    fields = history_fields(reflect_fields(model), watched)
    table_name = history_table_name(model)
    source_table = inspect(model).local_table

    namespace = {
        "__tablename__": table_name,
        "__module__": model.__module__,
        "__qualname__": f"{model.__qualname__}.{HISTORY_CLASS_SUFFIX}",
        "__doc__": f"Archived versions of {model.__name__}, keyed on {', '.join(watched)}.",
    }
    if source_table.schema is not None:
        namespace["__table_args__"] = {"schema": source_table.schema}
    for field in fields:
        namespace[field.name] = field.to_column()

    # new abstract base in the model's own registry ➜ same MetaData
    base = inspect(model).registry.generate_base(cls=MigratableModel)
    history = type(f"{model.__name__}{HISTORY_CLASS_SUFFIX}", (base,), namespace)
    logger.info(
        "history_type_derived",
        model=model.__name__,
        table=table_name,
        key=list(watched),
    )
    return history


# Global registry instance
_registry = HistoryRegistry()


def derive_history_type(model: type) -> type:
    """Return the history type of ``model``, building it on first call."""
    return _registry.history_type(model)


history_type = derive_history_type


def watched_fields(model: type) -> Tuple[str, ...]:
    return _registry.watched(model)


class HistoryTypeDescriptor:
    """Class-level ``Model.Version`` that derives the history type lazily."""

    def __get__(self, instance, owner: type) -> type:
        return derive_history_type(owner)
