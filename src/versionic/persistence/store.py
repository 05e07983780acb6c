"""
Thin data-access layer around history tables.
Bound to a caller's Session; it never commits on its own.
"""

from __future__ import annotations

from typing import Any, Dict, List, Sequence

from sqlalchemy import ColumnElement, select
from sqlalchemy.orm import Session


class VersionStore:
    """Create and read version rows through an existing session."""

    def __init__(self, session: Session):
        self.session = session

    # ---- writes ---------------------------------------------------------
    def create(self, history_type: type, attributes: Dict[str, Any]) -> Any:
        """
        Stage a new immutable version row.

        The row is only added to the session. ``Session.commit()`` keeps
        flushing until the session is clean, so it is written in the same
        transaction as the update that produced it.
        """
        row = history_type(**attributes)
        self.session.add(row)
        return row

    # ---- reads ----------------------------------------------------------
    def all(
        self,
        history_type: type,
        filter_: Dict[str, Any],
        order: Sequence[ColumnElement[Any]] = (),
    ) -> List[Any]:
        """Return rows equal to every ``filter_`` item, in ``order``."""
        q = (
            select(history_type)
            .where(*(getattr(history_type, k) == v for k, v in filter_.items()))
            .order_by(*order)
        )
        return list(self.session.scalars(q))
