"""
Making a mapped model versioned.

    class Story(Base):
        __tablename__ = "stories"
        id = Column(Integer, primary_key=True)
        title = Column(String(200))
        updated_at = Column(DateTime)

    is_versioned(Story, on=["updated_at"])

    story.title = "New Title"
    story.updated_at = now()
    session.commit()          # ➜ also writes a Story.Version row with the old values
    story.versions            # ➜ [StoryVersion(...)]

``Story.auto_migrate(engine)`` / ``Story.auto_upgrade(engine)`` run on
``Story.Version`` too.

Known limitation: the version row is written by the flush that follows the
UPDATE. Under ``Session.commit()`` both share one transaction. A caller that
flushes the update and commits before the next flush can end up with an
updated row and no version row if that insert fails.
"""

from __future__ import annotations

from typing import Any, Iterable, List, Optional

import structlog
from sqlalchemy import event, inspect
from sqlalchemy.orm import Session

from ..errors import VersioningError
from ..events import _registry as _events
from ..migration import propagate_migrations
from ..persistence import attributes
from ..persistence.store import VersionStore
from . import snapshot
from .history import HistoryTypeDescriptor, _registry, derive_history_type
from .schema import reflect_fields, validate_watched

logger = structlog.get_logger()

# session.info key holding instances staged by the running save cycle
_STAGED_KEY = "versionic.staged"


def is_versioned(model: type, *, on: Iterable[str] | str) -> type:
    """Version ``model`` on the watched fields ``on``; returns ``model``."""
    watched = (on,) if isinstance(on, str) else tuple(on)
    watched = validate_watched(reflect_fields(model), watched)
    _registry.configure(model, watched)

    model.Version = HistoryTypeDescriptor()  # type: ignore[attr-defined]
    model.versions = property(versions)  # type: ignore[attr-defined]
    model.pending_version_attributes = property(  # type: ignore[attr-defined]
        snapshot.pending_version_attributes,
        snapshot.set_pending_version_attributes,
    )

    # run after application hooks
    _events.register("before_update", (model,), _stage_changes, late=True)
    _events.register("after_update", (model,), _commit_version, late=True)
    _track_previous_values(model)

    if hasattr(model, "auto_migrate") and hasattr(model, "auto_upgrade"):
        propagate_migrations(model)

    logger.info("model_versioned", model=model.__name__, on=list(watched))
    return model


def versioned(*, on: Iterable[str] | str):
    """Class decorator form of :func:`is_versioned`."""

    def decorator(model: type) -> type:
        return is_versioned(model, on=on)

    return decorator


def versions(instance: Any, session: Optional[Session] = None) -> List[Any]:
    """
    Version rows of ``instance``, newest first.

    Rows are matched on the model's primary key values and ordered by the
    history key (the watched fields) descending. Runs a fresh query on every
    call.
    """
    if session is None:
        session = Session.object_session(instance)
    if session is None:
        raise VersioningError(
            f"{type(instance).__name__} instance is not attached to a session"
        )

    history = derive_history_type(type(instance))
    mapper = inspect(instance).mapper
    key_values = mapper.primary_key_from_instance(instance)
    filter_ = {
        mapper.get_property_by_column(column).key: value
        for column, value in zip(mapper.primary_key, key_values)
    }
    order = [column.desc() for column in inspect(history).primary_key]
    return VersionStore(session).all(history, filter_, order)


# hook handlers
def _stage_changes(instance: Any) -> None:
    if not snapshot.stage(instance, attributes.change_set(instance)):
        return
    session = Session.object_session(instance)
    if session is not None:
        staged = session.info.setdefault(_STAGED_KEY, [])
        if not any(obj is instance for obj in staged):
            staged.append(instance)


def _commit_version(instance: Any) -> None:
    session = Session.object_session(instance)
    if session is None:
        return
    snapshot.commit(instance, VersionStore(session))
    if not snapshot.pending_version_attributes(instance):
        staged = session.info.get(_STAGED_KEY, [])
        staged[:] = [obj for obj in staged if obj is not instance]


@event.listens_for(Session, "after_soft_rollback")
def _discard_staged(session: Session, previous_transaction) -> None:
    staged = session.info.pop(_STAGED_KEY, [])
    for instance in staged:
        snapshot.discard_pending(instance)
    if staged:
        logger.debug("snapshots_discarded", count=len(staged))


def _keep_previous(target, value, oldvalue, initiator) -> None:
    """No-op; registering it makes SQLAlchemy load the replaced value."""


def _track_previous_values(model: type) -> None:
    # expired attributes are reloaded before a set, so the original value
    # is known even after commit() expired the instance
    # mapper.columns, unlike column_attrs, does not configure the mappers
    for key in inspect(model).columns.keys():
        event.listen(
            getattr(model, key),
            "set",
            _keep_previous,
            active_history=True,
            propagate=True,
        )
