"""Tests for drag-time overlap avoidance."""

import random

import pytest

from groupgraph_mcp.builder import build_scene_graph
from groupgraph_mcp.collision import CollisionResolver
from groupgraph_mcp.models import Bounds, Position, Record


@pytest.fixture
def scene():
    return build_scene_graph([Record("A", "1"), Record("A", "2"), Record("B", "3")])


def _positions(overrides=None) -> dict[str, Position]:
    positions = {
        "label_A": Position(500, 500),
        "label_B": Position(800, 800),
        "A-1": Position(100, 100),
        "A-2": Position(100, 200),
        "B-3": Position(100, 300),
    }
    positions.update(overrides or {})
    return positions


# ===================================================================
# Predicates
# ===================================================================

class TestPredicates:
    def test_overlapping(self) -> None:
        assert CollisionResolver.overlapping(Bounds(0, 0, 10, 10), Bounds(5, 5, 10, 10))
        assert not CollisionResolver.overlapping(Bounds(0, 0, 10, 10), Bounds(10, 0, 10, 10))

    def test_too_close(self) -> None:
        r = CollisionResolver(padding=3)
        assert r.too_close(Bounds(0, 0, 10, 10), Bounds(12, 0, 10, 10))
        assert not r.too_close(Bounds(0, 0, 10, 10), Bounds(13, 0, 10, 10))


# ===================================================================
# Dragging
# ===================================================================

class TestDrag:
    def test_too_close_pushed_to_exact_padding(self, scene) -> None:
        r = CollisionResolver(padding=3)
        positions = _positions({"A-2": Position(100, 123)})  # gap of 1 below A-1
        drag = r.begin_drag("A-1")
        result = r.resolve(drag, scene, positions)
        assert positions["A-2"] == Position(100, 125)
        assert positions["A-1"] == Position(100, 100)
        assert result.moved == ["A-2"]
        assert drag.pushed == {"A-2"}

    def test_push_along_smaller_axis(self, scene) -> None:
        r = CollisionResolver(padding=3)
        positions = _positions({"A-2": Position(121, 100)})
        r.resolve(r.begin_drag("A-1"), scene, positions)
        assert positions["A-2"] == Position(123, 100)

    def test_too_close_resolved_once_per_drag(self, scene) -> None:
        r = CollisionResolver(padding=3)
        positions = _positions({"A-2": Position(100, 123)})
        drag = r.begin_drag("A-1")
        r.resolve(drag, scene, positions)

        # Drag closer again: allowed to rest against the neighbour
        positions["A-1"] = Position(100, 102)
        result = r.resolve(drag, scene, positions)
        assert result.moved == []
        assert positions["A-2"] == Position(100, 125)
        assert drag.steps == 2

    def test_overlap_always_resolved(self, scene) -> None:
        r = CollisionResolver(padding=3)
        positions = _positions({"A-2": Position(100, 123)})
        drag = r.begin_drag("A-1")
        r.resolve(drag, scene, positions)

        positions["A-1"] = Position(100, 110)
        r.resolve(drag, scene, positions)
        assert positions["A-2"] == Position(100, 135)

    def test_new_drag_forgets_pushed(self, scene) -> None:
        r = CollisionResolver(padding=3)
        positions = _positions({"A-2": Position(100, 123)})
        r.resolve(r.begin_drag("A-1"), scene, positions)
        positions["A-1"] = Position(100, 102)
        r.resolve(r.begin_drag("A-1"), scene, positions)
        assert positions["A-2"] == Position(100, 127)

    def test_cascade_moves_unpushed_neighbour_fully(self, scene) -> None:
        r = CollisionResolver(padding=3)
        positions = _positions({"A-2": Position(100, 123), "B-3": Position(100, 148)})
        result = r.resolve(r.begin_drag("A-1"), scene, positions)
        assert positions["A-2"] == Position(100, 125)
        assert positions["B-3"] == Position(100, 150)
        assert result.moved == ["A-2", "B-3"]
        assert result.converged

    def test_labels_take_part(self, scene) -> None:
        r = CollisionResolver(padding=3)
        positions = _positions({"label_A": Position(100, 123)})
        r.resolve(r.begin_drag("A-1"), scene, positions)
        assert positions["label_A"] == Position(100, 125)


# ===================================================================
# Settling without a dragged element
# ===================================================================

class TestSettle:
    def test_split_push(self, scene) -> None:
        r = CollisionResolver(padding=3)
        positions = _positions({"A-2": Position(100, 123)})
        result = r.settle(scene, positions)
        assert positions["A-1"] == Position(100, 99)
        assert positions["A-2"] == Position(100, 124)
        assert result.converged
        assert result.iterations == 2

    def test_ceiling(self, scene) -> None:
        r = CollisionResolver(padding=3, max_iterations=1)
        positions = _positions({"A-2": Position(100, 123), "B-3": Position(100, 146)})
        result = r.settle(scene, positions)
        assert not result.converged
        assert result.iterations == 1

    def test_clean_last_sweep_counts_as_converged(self, scene) -> None:
        r = CollisionResolver(padding=3, max_iterations=1)
        positions = _positions({"A-2": Position(100, 123)})
        result = r.settle(scene, positions)
        assert result.converged
        assert result.iterations == 1
        assert positions["A-2"] == Position(100, 124)

    def test_restricted_ids(self, scene) -> None:
        r = CollisionResolver(padding=3)
        positions = _positions({"A-2": Position(100, 123)})
        result = r.settle(scene, positions, ids=["A-1", "B-3"])
        assert result.moved == []
        assert positions["A-2"] == Position(100, 123)

    def test_clean_scene_untouched(self, scene) -> None:
        r = CollisionResolver(padding=3)
        positions = _positions()
        before = {k: v.copy() for k, v in positions.items()}
        result = r.settle(scene, positions)
        assert positions == before
        assert result.iterations == 1


# ===================================================================
# Dense scenes
# ===================================================================

class TestDenseDrag:
    @pytest.mark.parametrize("seed", [1, 2, 3])
    def test_converged_drag_leaves_no_conflicts(self, seed: int) -> None:
        rng = random.Random(seed)
        scene = build_scene_graph([Record(g, f"n{i}") for g in "AB" for i in range(8)])
        positions = {
            eid: Position(rng.uniform(0, 240), rng.uniform(0, 160))
            for eid in scene.non_group_ids()
        }
        r = CollisionResolver(padding=3, max_iterations=500)
        drag = r.begin_drag("A-n0")
        ids = scene.non_group_ids()

        for step in range(5):
            positions["A-n0"] = Position(40 + 30 * step, 80)
            result = r.resolve(drag, scene, positions)
            assert result.converged
            assert positions["A-n0"] == Position(40 + 30 * step, 80)

            dragged = scene.bounds_of("A-n0", positions)
            for i, a_id in enumerate(ids):
                a = scene.bounds_of(a_id, positions)
                if a_id != "A-n0":
                    assert not r.overlapping(dragged, a), a_id
                for b_id in ids[i + 1:]:
                    if "A-n0" in (a_id, b_id):
                        continue
                    b = scene.bounds_of(b_id, positions)
                    assert not r.too_close(a, b), (a_id, b_id)
