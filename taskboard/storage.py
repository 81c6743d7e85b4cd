from __future__ import annotations

import logging
from typing import Callable, Optional, TypeVar

from sqlalchemy import func, select, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from .config import settings
from .db import Board, ColumnModel, Task, User
from .errors import Conflict, NotFound
from .models import Sibling
from .ordering import ReorderResolver, SiblingAccessor

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SqlSiblingAccessor:
    """Sibling rows of one ORM model, grouped by a foreign key column."""

    def __init__(self, session: Session, model, scope_attr: str, parent_model, label: str, scope_label: str) -> None:
        self.session = session
        self.model = model
        self.scope_attr = scope_attr
        self.parent_model = parent_model
        self.label = label
        self.scope_label = scope_label

    @property
    def _scope_column(self):
        return getattr(self.model, self.scope_attr)

    def _sibling(self, row) -> Sibling:
        return Sibling(id=row.id, scope_key=getattr(row, self.scope_attr), position=row.position)

    def lock_scope(self, scope_key: str) -> bool:
        # A no-op UPDATE of the parent row is the first statement of the
        # transaction: a row lock on PostgreSQL, the database write lock on
        # SQLite. Columns with onupdate defaults are assigned to themselves so
        # they keep their values.
        table = self.parent_model.__table__
        values = {column.name: column for column in table.c if column.onupdate is not None}
        values["id"] = table.c.id
        self.session.execute(update(table).where(table.c.id == scope_key).values(**values))
        stmt = select(self.parent_model.id).where(self.parent_model.id == scope_key)
        return self.session.execute(stmt).scalar_one_or_none() is not None

    def list_ordered(self, scope_key: str) -> list[Sibling]:
        stmt = (
            select(self.model)
            .where(self._scope_column == scope_key)
            .order_by(self.model.position.asc(), self.model.id.asc())
        )
        return [self._sibling(row) for row in self.session.scalars(stmt)]

    def get_by_id(self, entity_id: str) -> Optional[Sibling]:
        # Refresh rows loaded before the scope was locked; they may have moved since.
        row = self.session.get(self.model, entity_id, populate_existing=True)
        return self._sibling(row) if row is not None else None

    def last_position(self, scope_key: str, exclude_id: Optional[str] = None) -> Optional[int]:
        stmt = select(func.max(self.model.position)).where(self._scope_column == scope_key)
        if exclude_id is not None:
            stmt = stmt.where(self.model.id != exclude_id)
        return self.session.execute(stmt).scalar_one_or_none()

    def update_position(self, entity_id: str, position: int, scope_key: Optional[str] = None) -> None:
        row = self.session.get(self.model, entity_id)
        if row is None:
            raise NotFound(f"{self.label.capitalize()} not found.")
        row.position = position
        if scope_key is not None:
            setattr(row, self.scope_attr, scope_key)
        self.session.flush()


def board_siblings(session: Session) -> SqlSiblingAccessor:
    return SqlSiblingAccessor(session, Board, "owner_user_id", User, "board", "user")


def column_siblings(session: Session) -> SqlSiblingAccessor:
    return SqlSiblingAccessor(session, ColumnModel, "board_id", Board, "column", "board")


def task_siblings(session: Session) -> SqlSiblingAccessor:
    return SqlSiblingAccessor(session, Task, "column_id", ColumnModel, "task", "column")


def run_in_scope_transaction(
    session: Session,
    accessor: SiblingAccessor,
    scope_key: str,
    body: Callable[[ReorderResolver], T],
    attempts: Optional[int] = None,
) -> T:
    """Run ``body`` atomically against one sibling scope and commit.

    The scope is locked before ``body`` reads any neighbour. Transaction
    conflicts reported by the database roll everything back and rerun the
    whole unit, at most ``attempts`` times; after that the caller gets a
    :class:`~taskboard.errors.Conflict`.
    """
    attempts = attempts or settings.reorder_max_attempts
    resolver = ReorderResolver(accessor)
    for attempt in range(1, attempts + 1):
        try:
            if not accessor.lock_scope(scope_key):
                raise NotFound(f"Destination {accessor.scope_label} not found.")
            result = body(resolver)
            session.commit()
            return result
        except OperationalError as exc:
            session.rollback()
            logger.warning(
                "Transaction conflict on %s %s (attempt %d/%d): %s",
                accessor.scope_label, scope_key, attempt, attempts, exc.orig,
            )
        except Exception:
            session.rollback()
            raise
    raise Conflict(f"Could not reorder the {accessor.label}; the {accessor.scope_label} changed concurrently.")
