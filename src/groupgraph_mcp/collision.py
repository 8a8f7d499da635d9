"""
Live overlap avoidance while an element is dragged.

The resolver works on every non-group element in the scene, labels included,
so a dragged node cannot slide under a neighbouring group's title. Two
predicates drive it:

- *overlapping*: the boxes intersect (gap <= 0)
- *too close*: the gap is positive but below ``padding``

The dragged element always resolves overlaps, but resolves "too close" only
once per other element per drag, so it can rest against a neighbour. Pushes
leave exactly ``padding`` between the boxes, along whichever axis needs the
smaller displacement, and cascade until a sweep finds nothing or the
iteration ceiling is reached.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from groupgraph_mcp.models import Bounds, Position, SceneGraph

logger = logging.getLogger("groupgraph-mcp.layout")


@dataclass
class DragSession:
    """State for one drag gesture, from the first move to release."""
    dragged_id: str
    pushed: set[str] = field(default_factory=set)
    steps: int = 0


@dataclass
class CollisionResult:
    moved: list[str] = field(default_factory=list)
    iterations: int = 0
    converged: bool = True


class CollisionResolver:
    def __init__(self, padding: float = 3, max_iterations: int = 30):
        self.padding = padding
        self.max_iterations = max_iterations

    # ----- predicates -----

    @staticmethod
    def overlapping(a: Bounds, b: Bounds) -> bool:
        return a.intersects(b)

    def too_close(self, a: Bounds, b: Bounds) -> bool:
        return a.intersects(b, margin=self.padding)

    def _push(self, fixed: Bounds, movable: Bounds) -> tuple[float, float]:
        """Displacement of *movable* that leaves exactly ``padding`` to *fixed*."""
        if movable.cx - fixed.cx >= 0:
            push_x = fixed.right + self.padding - movable.x
        else:
            push_x = -(movable.right + self.padding - fixed.x)
        if movable.cy - fixed.cy >= 0:
            push_y = fixed.bottom + self.padding - movable.y
        else:
            push_y = -(movable.bottom + self.padding - fixed.y)
        return push_x, push_y

    # ----- entry points -----

    def begin_drag(self, element_id: str) -> DragSession:
        return DragSession(dragged_id=element_id)

    def resolve(
        self,
        drag: DragSession,
        scene: SceneGraph,
        positions: dict[str, Position],
        ids: Optional[Iterable[str]] = None,
    ) -> CollisionResult:
        """Push other elements away from ``drag.dragged_id``; never moves it."""
        drag.steps += 1
        return self._run(scene, positions, ids, drag, self.max_iterations)

    def settle(
        self,
        scene: SceneGraph,
        positions: dict[str, Position],
        ids: Optional[Iterable[str]] = None,
        max_iterations: Optional[int] = None,
    ) -> CollisionResult:
        """Resolve residual overlaps with no dragged element (after free-form layouts)."""
        ceiling = self.max_iterations if max_iterations is None else max_iterations
        return self._run(scene, positions, ids, None, ceiling)

    # ----- core loop -----

    def _run(
        self,
        scene: SceneGraph,
        positions: dict[str, Position],
        ids: Optional[Iterable[str]],
        drag: Optional[DragSession],
        ceiling: int,
    ) -> CollisionResult:
        candidates = list(ids) if ids is not None else scene.non_group_ids()
        candidates = [eid for eid in candidates if eid in positions]
        dragged = drag.dragged_id if drag else None
        pushed = drag.pushed if drag else set()
        result = CollisionResult()
        moved: dict[str, None] = {}

        for iteration in range(ceiling):
            found = False
            for i in range(len(candidates)):
                for j in range(i + 1, len(candidates)):
                    a_id, b_id = candidates[i], candidates[j]
                    a = scene.bounds_of(a_id, positions)
                    b = scene.bounds_of(b_id, positions)

                    if not self._needs_push(a_id, b_id, a, b, dragged, pushed):
                        continue

                    found = True
                    if a_id == dragged:
                        self._move(positions, b_id, self._push(a, b))
                        pushed.add(b_id)
                        moved[b_id] = None
                    elif b_id == dragged:
                        self._move(positions, a_id, self._push(b, a))
                        pushed.add(a_id)
                        moved[a_id] = None
                    elif a_id in pushed and b_id not in pushed:
                        self._move(positions, b_id, self._push(a, b))
                        moved[b_id] = None
                    elif b_id in pushed and a_id not in pushed:
                        self._move(positions, a_id, self._push(b, a))
                        moved[a_id] = None
                    else:
                        px, py = self._push(a, b)
                        self._move(positions, a_id, (-px / 2, -py / 2))
                        self._move(positions, b_id, (px / 2, py / 2))
                        moved[a_id] = None
                        moved[b_id] = None

            result.iterations = iteration + 1
            if not found:
                break
        else:
            # The last allowed sweep may have fixed everything
            if self._has_conflict(scene, positions, candidates, dragged, pushed):
                result.converged = False
                logger.debug("Collision ceiling of %d sweeps reached", ceiling)

        result.moved = list(moved)
        return result

    def _needs_push(
        self,
        a_id: str,
        b_id: str,
        a: Bounds,
        b: Bounds,
        dragged: Optional[str],
        pushed: set[str],
    ) -> bool:
        if dragged in (a_id, b_id):
            other = b_id if a_id == dragged else a_id
            return self.overlapping(a, b) or (self.too_close(a, b) and other not in pushed)
        return self.too_close(a, b)

    def _has_conflict(
        self,
        scene: SceneGraph,
        positions: dict[str, Position],
        candidates: list[str],
        dragged: Optional[str],
        pushed: set[str],
    ) -> bool:
        for i in range(len(candidates)):
            for j in range(i + 1, len(candidates)):
                a_id, b_id = candidates[i], candidates[j]
                a = scene.bounds_of(a_id, positions)
                b = scene.bounds_of(b_id, positions)
                if self._needs_push(a_id, b_id, a, b, dragged, pushed):
                    return True
        return False

    @staticmethod
    def _move(positions: dict[str, Position], element_id: str, push: tuple[float, float]) -> None:
        px, py = push
        p = positions[element_id]
        if abs(px) < abs(py):
            positions[element_id] = Position(p.x + px, p.y)
        else:
            positions[element_id] = Position(p.x, p.y + py)
