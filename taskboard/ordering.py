"""Gap-based reordering for sibling rows (boards, columns, tasks).

A :class:`ReorderResolver` works against any :class:`SiblingAccessor`, so the
same engine orders boards within a user, columns within a board and tasks
within a column. Callers run it inside
:func:`taskboard.storage.run_in_scope_transaction` so reads and writes for one
scope are atomic.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol

from .errors import BadRequest, Conflict, NotFound
from .models import Placement, Sibling
from .positioning import gap_position, next_append_position, rebalance

logger = logging.getLogger(__name__)


class SiblingAccessor(Protocol):
    label: str  # entity name used in messages, e.g. "task"
    scope_label: str  # parent name used in messages, e.g. "column"

    def lock_scope(self, scope_key: str) -> bool: ...

    def list_ordered(self, scope_key: str) -> list[Sibling]: ...

    def get_by_id(self, entity_id: str) -> Optional[Sibling]: ...

    def last_position(self, scope_key: str, exclude_id: Optional[str] = None) -> Optional[int]: ...

    def update_position(self, entity_id: str, position: int, scope_key: Optional[str] = None) -> None: ...


def _fits(candidate: Optional[int], before: Optional[Sibling], after: Optional[Sibling]) -> bool:
    # gap_position floors prepends at 1, which can land on the neighbour itself.
    if candidate is None:
        return False
    if before is not None and candidate <= before.position:
        return False
    if after is not None and candidate >= after.position:
        return False
    return True


class ReorderResolver:
    def __init__(self, accessor: SiblingAccessor) -> None:
        self.accessor = accessor

    def compute_append_position(self, scope_key: str, exclude_id: Optional[str] = None) -> int:
        return next_append_position(self.accessor.last_position(scope_key, exclude_id=exclude_id))

    def reorder(
        self,
        entity_id: str,
        destination_scope_key: str,
        before_id: Optional[str] = None,
        after_id: Optional[str] = None,
    ) -> Placement:
        """Move ``entity_id`` into the slot between ``before_id`` and ``after_id``.

        With no neighbours the entity is appended to the destination scope.
        The scope key is rewritten together with the position when the entity
        changes scope.
        """
        label = self.accessor.label
        if before_id and after_id and before_id == after_id:
            raise BadRequest(f"beforeId and afterId cannot reference the same {label}.")
        if entity_id in (before_id, after_id):
            raise BadRequest(f"beforeId/afterId cannot be the same as the {label} being moved.")

        entity = self.accessor.get_by_id(entity_id)
        if entity is None:
            raise NotFound(f"{label.capitalize()} not found.")

        if not before_id and not after_id:
            position = self.compute_append_position(destination_scope_key, exclude_id=entity_id)
        else:
            position = self._resolve_between(destination_scope_key, before_id, after_id)

        # The scope is always written so a stale read of the row cannot keep it
        # in its old parent.
        self.accessor.update_position(entity_id, position, scope_key=destination_scope_key)
        if entity.scope_key != destination_scope_key:
            logger.debug(
                "Moved %s %s from %s %s to %s at %s",
                label, entity_id, self.accessor.scope_label, entity.scope_key, destination_scope_key, position,
            )
        return Placement(position=position, scope_key=destination_scope_key)

    def _resolve_between(self, scope_key: str, before_id: Optional[str], after_id: Optional[str]) -> int:
        before = self._load_neighbor(before_id, scope_key, "beforeId")
        after = self._load_neighbor(after_id, scope_key, "afterId")
        candidate = gap_position(
            before.position if before else None,
            after.position if after else None,
        )
        if _fits(candidate, before, after):
            return candidate
        return self._resolve_after_rebalance(scope_key, before_id, after_id)

    def _resolve_after_rebalance(self, scope_key: str, before_id: Optional[str], after_id: Optional[str]) -> int:
        self.rebalance_scope(scope_key)

        before = self._load_neighbor(before_id, scope_key, "beforeId")
        after = self._load_neighbor(after_id, scope_key, "afterId")
        candidate = gap_position(
            before.position if before else None,
            after.position if after else None,
        )
        if not _fits(candidate, before, after):
            raise Conflict(f"Unable to allocate a new {self.accessor.label} position.")
        return candidate

    def rebalance_scope(self, scope_key: str) -> None:
        siblings = self.accessor.list_ordered(scope_key)
        logger.info(
            "Rebalancing %d %ss in %s %s",
            len(siblings), self.accessor.label, self.accessor.scope_label, scope_key,
        )
        for entity_id, position in rebalance([sibling.id for sibling in siblings]):
            self.accessor.update_position(entity_id, position)

    def _load_neighbor(self, neighbor_id: Optional[str], scope_key: str, field: str) -> Optional[Sibling]:
        if not neighbor_id:
            return None
        neighbor = self.accessor.get_by_id(neighbor_id)
        if neighbor is None:
            raise BadRequest(f"{field} does not exist.")
        if neighbor.scope_key != scope_key:
            raise BadRequest(f"{field} must belong to the destination {self.accessor.scope_label}.")
        return neighbor
