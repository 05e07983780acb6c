"""
Two-phase version capture.

``stage``  – before the UPDATE: keep the pre-change values if a watched
             field is changing.
``commit`` – after the UPDATE succeeded: turn the kept values into a version
             row, then forget them.

The kept values ("pending snapshot") live on the instance itself and belong
to exactly one save cycle.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

import structlog
from sqlalchemy import inspect

from ..persistence import attributes
from ..persistence.store import VersionStore
from .history import derive_history_type, watched_fields

logger = structlog.get_logger()

_PENDING_ATTR = "_versionic_pending"


def pending_version_attributes(instance: Any) -> Dict[str, Any]:
    """Original values waiting to become a version row (empty when none)."""
    return instance.__dict__.get(_PENDING_ATTR) or {}


def set_pending_version_attributes(instance: Any, values: Optional[Mapping[str, Any]]) -> None:
    instance.__dict__[_PENDING_ATTR] = dict(values) if values else {}


def discard_pending(instance: Any) -> None:
    instance.__dict__.pop(_PENDING_ATTR, None)


def stage(instance: Any, change_set: Mapping[str, Any]) -> bool:
    """
    Keep the instance's original values if any watched field is in
    ``change_set``. Returns True when a snapshot is pending afterwards.

    A snapshot already pending is left alone: it holds older values than
    anything that could be read now.
    """
    if pending_version_attributes(instance):
        return True

    watched = watched_fields(type(instance))
    if not any(name in change_set for name in watched):
        return False

    set_pending_version_attributes(instance, attributes.original_attributes(instance))
    logger.debug(
        "version_staged",
        model=type(instance).__name__,
        changed=sorted(change_set),
    )
    return True


def commit(instance: Any, store: VersionStore) -> Optional[Any]:
    """
    Create the version row for a staged, now clean instance.

    Returns the new row, or None when nothing was pending or the instance
    still has unflushed changes (the snapshot then waits for the next cycle).
    """
    pending = pending_version_attributes(instance)
    if not pending:
        discard_pending(instance)
        return None
    if not attributes.is_clean(instance):
        return None

    try:
        history = derive_history_type(type(instance))
        fields = {prop.key for prop in inspect(history).column_attrs}
        merged = {**attributes.current_attributes(instance), **pending}
        row = store.create(
            history, {k: v for k, v in merged.items() if k in fields}
        )
    finally:
        discard_pending(instance)

    logger.info(
        "version_created",
        model=type(instance).__name__,
        history=history.__tablename__,
    )
    return row
