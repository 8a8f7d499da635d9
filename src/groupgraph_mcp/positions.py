"""
Session-scoped store of element positions.

The store is the single source of truth for where an element is between
renders. Scene graphs are rebuilt on every render; only this map outlives one.
"""

from __future__ import annotations

from typing import Iterator, Optional

from groupgraph_mcp.models import Position, SceneGraph


class PositionStore:
    """Key -> position map holding copies, never live objects."""

    def __init__(self) -> None:
        self._positions: dict[str, Position] = {}

    def get(self, element_id: str) -> Optional[Position]:
        pos = self._positions.get(element_id)
        return pos.copy() if pos is not None else None

    def set(self, element_id: str, pos: Position) -> None:
        self._positions[element_id] = pos.copy()

    def has(self, element_id: str) -> bool:
        return element_id in self._positions

    def clear(self) -> None:
        self._positions.clear()

    def is_empty(self) -> bool:
        return not self._positions

    def ids(self) -> set[str]:
        return set(self._positions)

    def snapshot_non_group_positions(
        self,
        scene: SceneGraph,
        positions: dict[str, Position],
    ) -> int:
        """Copy the current position of every non-group element into the store.

        Returns the number of entries written.
        """
        written = 0
        for element_id in scene.non_group_ids():
            pos = positions.get(element_id)
            if pos is not None:
                self.set(element_id, pos)
                written += 1
        return written

    def __len__(self) -> int:
        return len(self._positions)

    def __contains__(self, element_id: object) -> bool:
        return element_id in self._positions

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._positions))
