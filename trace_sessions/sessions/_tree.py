"""Rebuild the parent/child execution tree of one session from its flat element list.

Elements are addressed by their position in the input list; parent links are
resolved to positions first and only materialized as ``children`` lists at the
end. Linking, cycle breaking and sorting are iterative, so arbitrarily deep
trees never hit the interpreter recursion limit.
"""

from collections.abc import Sequence
from datetime import UTC, datetime

from trace_sessions.logging import get_session_logger
from trace_sessions.sessions._models import SessionElement

__all__ = ["build_element_tree"]

logger = get_session_logger(__name__)

_UNVISITED = 0
_IN_PROGRESS = 1
_DONE = 2


def build_element_tree(elements: Sequence[SessionElement]) -> list[SessionElement]:
    """Link elements to their parents and return the sorted roots of the forest.

    - Only elements that are referenced as a parent are indexed; on a duplicated
      id the first element wins and the collision is logged.
    - Elements whose parent is missing from the set (truncated by the chain's
      logging level) become roots instead of being dropped.
    - Cycle members lose their parent link and become roots.
    - Roots and every children list are sorted by ascending start time.

    Every input element appears exactly once in the returned forest. The input
    elements' ``children`` lists are replaced.
    """
    if not elements:
        return []

    referenced = {element.parent_element for element in elements if element.parent_element is not None}

    parent_index: dict[str, int] = {}
    for position, element in enumerate(elements):
        element_id = element.element_id
        if element_id is None or element_id not in referenced:
            continue
        if element_id in parent_index:
            logger.warning(f"Duplicated session element: {element_id}. Session {element.session_id} data is inconsistent.")
            continue
        parent_index[element_id] = position

    parents: list[int | None] = []
    for element in elements:
        parent_id = element.parent_element
        parents.append(parent_index.get(parent_id) if parent_id is not None else None)

    _break_cycles(parents, elements)

    children: list[list[int]] = [[] for _ in elements]
    roots: list[int] = []
    for position, parent in enumerate(parents):
        if parent is None:
            roots.append(position)
        else:
            children[parent].append(position)

    sort_keys = [_start_key(element, position) for position, element in enumerate(elements)]
    roots.sort(key=sort_keys.__getitem__)
    for child_positions in children:
        child_positions.sort(key=sort_keys.__getitem__)

    for position, element in enumerate(elements):
        element.children = [elements[child] for child in children[position]]

    return [elements[root] for root in roots]


def _break_cycles(parents: list[int | None], elements: Sequence[SessionElement]) -> None:
    """Detach every element that sits on a parent-reference cycle."""
    state = [_UNVISITED] * len(parents)
    for start in range(len(parents)):
        if state[start] != _UNVISITED:
            continue
        path: list[int] = []
        current: int | None = start
        while current is not None and state[current] == _UNVISITED:
            state[current] = _IN_PROGRESS
            path.append(current)
            current = parents[current]
        if current is not None and state[current] == _IN_PROGRESS:
            cycle = path[path.index(current) :]
            for member in cycle:
                parents[member] = None
            cycle_ids = [elements[member].element_id for member in cycle]
            logger.warning(f"Cyclic parent references between session elements {cycle_ids}. Session {elements[start].session_id} data is inconsistent.")
        for visited in path:
            state[visited] = _DONE


def _start_key(element: SessionElement, position: int) -> tuple[int, datetime, int]:
    """Sort key: parseable start times ascending, then missing ones, ties by input position."""
    if element.started:
        try:
            started = datetime.fromisoformat(element.started)
        except ValueError:
            pass
        else:
            if started.tzinfo is not None:
                started = started.astimezone(UTC).replace(tzinfo=None)
            return (0, started, position)
    return (1, datetime.min, position)
