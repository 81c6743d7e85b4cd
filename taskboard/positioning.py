from __future__ import annotations

from typing import Optional, Sequence

GAP = 1024


def next_append_position(last_position: Optional[int]) -> int:
    """Return the position for a new item appended after ``last_position``.

    ``last_position`` is the largest position in the scope, or ``None`` when
    the scope is empty.
    """
    if last_position is None or last_position <= 0:
        return GAP
    return last_position + GAP


def gap_position(before: Optional[int], after: Optional[int]) -> Optional[int]:
    """Return an integer position for the slot between two neighbours.

    ``before`` is the position of the item preceding the slot (smaller value),
    ``after`` the one following it (larger value); either may be ``None``.
    Returns ``None`` when no integer is left strictly between them, which
    callers treat as a signal to rebalance the scope.
    """
    if before is not None and after is not None:
        if before >= after:
            return None
        distance = after - before
        if distance <= 1:
            return None
        return before + distance // 2

    if before is not None:
        return before + GAP

    if after is not None:
        if after > GAP:
            return after - GAP
        middle = after // 2
        return middle if middle > 0 else 1

    return GAP


def rebalance(ordered_ids: Sequence[str]) -> list[tuple[str, int]]:
    """Spread ``ordered_ids`` evenly: the i-th id gets ``(i + 1) * GAP``."""
    return [(entity_id, (index + 1) * GAP) for index, entity_id in enumerate(ordered_ids)]
