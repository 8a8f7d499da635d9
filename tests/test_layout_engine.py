"""Tests for the solver-backed layouts and their fallbacks."""

import pytest

from groupgraph_mcp.builder import build_scene_graph
from groupgraph_mcp.errors import LayoutSolverError
from groupgraph_mcp.layout import LayoutSpacing, compact_layout
from groupgraph_mcp.layout_engine import (
    FORCE_PRESETS,
    RANK_PRESETS,
    LayoutEngine,
    preset_options,
)
from groupgraph_mcp.models import GroupLabel, MuxCluster, Position, Record


class _BrokenSolver:
    name = "broken"

    def solve(self, problem):
        raise LayoutSolverError("no layout for you")


class _RecordingSolver:
    """Returns the seed positions unchanged and remembers the problem."""
    name = "recording"

    def __init__(self):
        self.problem = None

    def solve(self, problem):
        self.problem = problem
        return {n.id: Position(n.x, n.y) for n in problem.nodes}


def _scene():
    return build_scene_graph([
        Record("A", "1"),
        Record("A", "2", linked_id="A-1"),
        Record("B", "3", linked_id="A-2"),
    ])


def _seeded(engine: LayoutEngine, scene, direction: str = "TB") -> dict[str, Position]:
    positions: dict[str, Position] = {}
    engine.prelayout(scene, positions, direction, links_hidden=False)
    return positions


def _assert_groups_apart(scene, positions, gap: float) -> None:
    boxes = [scene.group_bounds(g, positions) for g in scene.group_order]
    for i in range(len(boxes)):
        for j in range(i + 1, len(boxes)):
            assert boxes[i].gap_to(boxes[j]) >= gap - 1e-6


# ===================================================================
# Presets
# ===================================================================

class TestPresets:
    def test_links_shown(self) -> None:
        opts = preset_options(RANK_PRESETS, links_hidden=False)
        assert opts == {"node_sep": 15, "rank_sep": 25}

    def test_links_hidden_spreads_out(self) -> None:
        shown = preset_options(FORCE_PRESETS, links_hidden=False)
        hidden = preset_options(FORCE_PRESETS, links_hidden=True)
        assert hidden["node_separation"] > shown["node_separation"]
        assert hidden["num_iter"] < shown["num_iter"]

    def test_overrides_win(self) -> None:
        opts = preset_options(FORCE_PRESETS, False, {"num_iter": 10, "extra": 1})
        assert opts["num_iter"] == 10
        assert opts["extra"] == 1


# ===================================================================
# Hierarchical
# ===================================================================

class TestHierarchical:
    def test_groups_follow_ranks(self) -> None:
        engine = LayoutEngine()
        scene = _scene()
        positions = _seeded(engine, scene)
        algorithm = engine.hierarchical(scene, positions, "TB", LayoutSpacing())
        assert algorithm == "hierarchical"
        # B-3 is the only source, so group B sits above group A
        assert positions["B-3"].y < positions["A-1"].y
        _assert_groups_apart(scene, positions, 15)

    def test_group_is_one_row(self) -> None:
        engine = LayoutEngine()
        scene = _scene()
        positions = _seeded(engine, scene)
        engine.hierarchical(scene, positions, "TB", LayoutSpacing())
        ys = {positions[i].y for i in ("label_A", "A-1", "A-2")}
        assert len(ys) == 1
        assert positions["label_A"].x < positions["A-1"].x < positions["A-2"].x

    def test_lr_group_is_one_column(self) -> None:
        engine = LayoutEngine()
        scene = _scene()
        positions = _seeded(engine, scene, "LR")
        engine.hierarchical(scene, positions, "LR", LayoutSpacing())
        xs = {positions[i].x for i in ("label_A", "A-1", "A-2")}
        assert len(xs) == 1
        assert positions["B-3"].x < positions["A-1"].x

    def test_labels_not_sent_to_solver(self) -> None:
        solver = _RecordingSolver()
        engine = LayoutEngine(rank_solver=solver)
        scene = _scene()
        engine.hierarchical(scene, _seeded(engine, scene), "TB", LayoutSpacing())
        ids = {n.id for n in solver.problem.nodes}
        assert ids == {"A-1", "A-2", "B-3"}
        assert solver.problem.options["rank_sep"] == 25

    def test_options_override_presets(self) -> None:
        solver = _RecordingSolver()
        engine = LayoutEngine(rank_solver=solver)
        scene = _scene()
        engine.hierarchical(scene, _seeded(engine, scene), "TB", LayoutSpacing(),
                            links_hidden=True, options={"node_sep": 5})
        assert solver.problem.options == {"node_sep": 5, "rank_sep": 60}

    def test_solver_failure_falls_back_to_compact(self) -> None:
        engine = LayoutEngine(rank_solver=_BrokenSolver())
        scene = _scene()
        positions = _seeded(engine, scene)
        algorithm = engine.hierarchical(scene, positions, "TB", LayoutSpacing())
        assert algorithm == "compact"
        expected: dict[str, Position] = {}
        compact_layout(scene, expected, "TB", LayoutSpacing())
        assert positions == expected


# ===================================================================
# Force-directed
# ===================================================================

class TestForceDirected:
    def test_result_is_tidy(self) -> None:
        engine = LayoutEngine()
        scene = _scene()
        positions = _seeded(engine, scene)
        algorithm = engine.force_directed(scene, positions, LayoutSpacing(), options={"num_iter": 80})
        assert algorithm == "force-directed"
        assert set(positions) == set(scene.non_group_ids())
        _assert_groups_apart(scene, positions, 15)

    def test_labels_top_left_of_members(self) -> None:
        engine = LayoutEngine()
        scene = _scene()
        positions = _seeded(engine, scene)
        engine.force_directed(scene, positions, LayoutSpacing(), options={"num_iter": 80})
        for gid in scene.group_order:
            label = scene.bounds_of(scene.label_for(gid).id, positions)
            members = scene.group_bounds(gid, positions, include_label=False)
            assert label.bottom == pytest.approx(members.y - 6)
            assert label.x == pytest.approx(members.x + 6)

    def test_labels_sent_to_solver(self) -> None:
        solver = _RecordingSolver()
        engine = LayoutEngine(force_solver=solver)
        scene = _scene()
        engine.force_directed(scene, _seeded(engine, scene), LayoutSpacing())
        ids = {n.id for n in solver.problem.nodes}
        assert {"label_A", "label_B"} <= ids
        groups = {n.id: n.group for n in solver.problem.nodes}
        assert groups["A-1"] == "group_A"

    def test_clusters_compacted(self) -> None:
        engine = LayoutEngine()
        scene = build_scene_graph([
            Record("Origin", "Hub MUX"),
            Record("A", "x", linked_id="Origin-Hub MUX"),
            Record("B", "y", linked_id="Origin-Hub MUX"),
        ])
        positions = _seeded(engine, scene)
        engine.force_directed(scene, positions, LayoutSpacing(), options={"num_iter": 50})
        for g in scene.groups:
            if isinstance(g, MuxCluster):
                label = scene.label_for(g.id)
                clone = scene.members(g.id)[0]
                assert positions[label.id].x == positions[clone.id].x
                assert positions[label.id].y < positions[clone.id].y

    def test_members_do_not_overlap(self) -> None:
        engine = LayoutEngine()
        scene = _scene()
        positions = _seeded(engine, scene)
        engine.force_directed(scene, positions, LayoutSpacing(), options={"num_iter": 30})
        members = [e.id for e in scene.elements if not isinstance(e, GroupLabel)]
        for i in range(len(members)):
            for j in range(i + 1, len(members)):
                a = scene.bounds_of(members[i], positions)
                b = scene.bounds_of(members[j], positions)
                assert not a.intersects(b)

    def test_solver_failure_falls_back_to_compact(self) -> None:
        engine = LayoutEngine(force_solver=_BrokenSolver())
        scene = _scene()
        positions = _seeded(engine, scene)
        assert engine.force_directed(scene, positions, LayoutSpacing()) == "compact"
        expected: dict[str, Position] = {}
        compact_layout(scene, expected, "TB", LayoutSpacing())
        assert positions == expected
