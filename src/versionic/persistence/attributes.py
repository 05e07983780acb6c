"""
Read an instance's attribute state through SQLAlchemy's attribute history.

* ``change_set``          – attributes with pending changes ➜ new value
* ``original_attributes`` – values as last loaded from / written to the db
* ``current_attributes``  – values as they are on the object now
"""

from __future__ import annotations

from typing import Any, Dict

from sqlalchemy import inspect


def _column_keys(instance: Any) -> list[str]:
    return [prop.key for prop in inspect(instance).mapper.column_attrs]


def change_set(instance: Any) -> Dict[str, Any]:
    state = inspect(instance)
    changes: Dict[str, Any] = {}
    for key in _column_keys(instance):
        hist = state.attrs[key].history
        if hist.has_changes():
            changes[key] = hist.added[0] if hist.added else None
    return changes


def original_attributes(instance: Any) -> Dict[str, Any]:
    """
    Loaded values only: expired and deferred columns that were never read
    are left out, since they cannot have changed.
    """
    state = inspect(instance)
    unloaded = state.unloaded
    values: Dict[str, Any] = {}
    for key in _column_keys(instance):
        hist = state.attrs[key].history
        if hist.deleted:
            values[key] = hist.deleted[0]
        elif hist.unchanged:
            values[key] = hist.unchanged[0]
        elif key in unloaded:
            continue
        else:
            # never loaded and never set
            values[key] = None
    return values


def current_attributes(instance: Any) -> Dict[str, Any]:
    return {key: getattr(instance, key) for key in _column_keys(instance)}


def is_clean(instance: Any) -> bool:
    """True when the instance is persistent and has nothing left to flush."""
    state = inspect(instance)
    return state.persistent and not state.modified
