"""
versionic.events  ──  Update lifecycle hooks for mapped models

Handlers are registered per model class and fire for instances of that class
and its subclasses:

    @on.before_update(Story)
    def touch(story): ...

SQLAlchemy drives them: ``before_update`` runs inside the flush, before the
UPDATE statement is sent; ``after_update`` runs once the flush has finished,
when the instance is clean again. A failed flush never reaches
``after_update``.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Callable, Dict, List, Type

import structlog
from sqlalchemy import event
from sqlalchemy.orm import Mapper, Session

logger = structlog.get_logger()

EVENT_TYPES = ("before_update", "after_update")

# session.info key holding instances updated by the running flush
_UPDATED_KEY = "versionic.updated"


class EventRegistry:
    """Central registry for event handlers"""

    def __init__(self):
        # Maps event type -> model class -> handlers, in registration order.
        # "late" handlers run after all regular ones, whatever the MRO.
        self._handlers: Dict[str, Dict[type, List[Callable]]] = {
            name: defaultdict(list) for name in EVENT_TYPES
        }
        self._late: Dict[str, Dict[type, List[Callable]]] = {
            name: defaultdict(list) for name in EVENT_TYPES
        }

    def register(
        self,
        event_type: str,
        model_classes: tuple[Type[Any], ...],
        handler: Callable,
        *,
        late: bool = False,
    ) -> None:
        """Register a handler for specific model classes"""
        if event_type not in self._handlers:
            raise ValueError(f"unknown event type {event_type!r}")
        table = self._late if late else self._handlers
        for cls in model_classes:
            handlers = table[event_type][cls]
            if handler not in handlers:
                handlers.append(handler)

    def handlers_for(self, event_type: str, instance: Any) -> List[Callable]:
        """Handlers of every class in the instance's MRO, base classes first."""
        found: List[Callable] = []
        mro = list(reversed(type(instance).__mro__))
        for table in (self._handlers[event_type], self._late[event_type]):
            for cls in mro:
                for handler in table.get(cls, ()):
                    if handler not in found:
                        found.append(handler)
        return found

    def emit(self, event_type: str, instance: Any) -> None:
        """Emit event to all matching handlers"""
        for handler in self.handlers_for(event_type, instance):
            handler(instance)


# Global registry instance
_registry = EventRegistry()


class OnDecorator:
    """Namespace for event decorators"""

    @staticmethod
    def before_update(*model_classes: Type[Any]) -> Callable:
        """Decorator for handlers run before an instance's UPDATE is sent"""

        def decorator(func: Callable) -> Callable:
            _registry.register("before_update", model_classes, func)
            return func

        return decorator

    @staticmethod
    def after_update(*model_classes: Type[Any]) -> Callable:
        """Decorator for handlers run after an instance's UPDATE succeeded"""

        def decorator(func: Callable) -> Callable:
            _registry.register("after_update", model_classes, func)
            return func

        return decorator


# Export the decorator interface
on = OnDecorator()


# Hook into the SQLAlchemy flush
@event.listens_for(Mapper, "before_update")
def _emit_before_update(mapper, connection, target) -> None:
    _registry.emit("before_update", target)


@event.listens_for(Mapper, "after_update")
def _collect_updated(mapper, connection, target) -> None:
    if not _registry.handlers_for("after_update", target):
        return
    session = Session.object_session(target)
    if session is not None:
        session.info.setdefault(_UPDATED_KEY, []).append(target)


@event.listens_for(Session, "after_flush_postexec")
def _emit_after_update(session: Session, flush_context) -> None:
    updated = session.info.pop(_UPDATED_KEY, [])
    if updated:
        logger.debug("after_update_emitted", count=len(updated))
    for instance in updated:
        _registry.emit("after_update", instance)


@event.listens_for(Session, "after_soft_rollback")
def _forget_updated(session: Session, previous_transaction) -> None:
    # instances of a flush that did not complete never see after_update
    session.info.pop(_UPDATED_KEY, None)
