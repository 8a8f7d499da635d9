"""
Solver-backed layouts for grouped diagrams.

The engine seeds a :class:`~groupgraph_mcp.solvers.LayoutSolver` from the
table-order pre-layout already present in ``positions`` and finishes the
result so it reads like the compact layouts:

- hierarchical: a rank solver orders nodes; every group is then re-packed
  compactly (members in solver order) around the solver's group centroid and
  overlapping groups are pushed apart
- force-directed: a force solver moves members and labels; residual member
  overlaps are settled, MuxClusters compacted, labels moved to the top-left
  of their group, and groups separated

Any solver exception is logged and answered with the compact layout, so a
layout request always leaves every element positioned.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from groupgraph_mcp.collision import CollisionResolver
from groupgraph_mcp.layout import (
    LayoutConfig,
    LayoutSpacing,
    compact_layout,
    compact_mux_clusters,
    repack_group_around,
    reposition_labels_top_left,
    separate_groups,
    table_order_positions,
)
from groupgraph_mcp.models import GroupLabel, MuxCluster, Position, SceneGraph
from groupgraph_mcp.solvers import (
    ForceSolver,
    LayoutSolver,
    RankSolver,
    SolverNode,
    SolverProblem,
)

logger = logging.getLogger("groupgraph-mcp.layout")


# Solver presets: (links shown, links hidden)
RANK_PRESETS: dict[str, tuple[Any, Any]] = {
    "node_sep": (15, 40),
    "rank_sep": (25, 60),
}

FORCE_PRESETS: dict[str, tuple[Any, Any]] = {
    "node_separation": (50, 100),
    "node_repulsion": (4500, 10000),
    "gravity": (0.25, 0.05),
    "gravity_compound": (1.0, 1.0),
    "ideal_edge_length": (50, 50),
    "num_iter": (2500, 500),
}


def preset_options(
    presets: dict[str, tuple[Any, Any]],
    links_hidden: bool,
    overrides: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    options = {key: pair[1 if links_hidden else 0] for key, pair in presets.items()}
    options.update(overrides or {})
    return options


class LayoutEngine:
    """Runs the compact family directly and delegates free-form layouts to solvers."""

    def __init__(
        self,
        config: Optional[LayoutConfig] = None,
        rank_solver: Optional[LayoutSolver] = None,
        force_solver: Optional[LayoutSolver] = None,
    ):
        self.config = config or LayoutConfig()
        self.rank_solver = rank_solver if rank_solver is not None else RankSolver()
        self.force_solver = force_solver if force_solver is not None else ForceSolver()
        self.resolver = CollisionResolver(
            padding=self.config.collision_padding,
            max_iterations=self.config.settle_iterations,
        )

    # ----- deterministic -----

    def compact(
        self,
        scene: SceneGraph,
        positions: dict[str, Position],
        direction: str,
        spacing: LayoutSpacing,
    ) -> None:
        compact_layout(scene, positions, direction, spacing, self.config)

    def prelayout(
        self,
        scene: SceneGraph,
        positions: dict[str, Position],
        direction: str,
        links_hidden: bool,
    ) -> None:
        table_order_positions(scene, positions, direction, links_hidden)

    # ----- solver-backed -----

    def _problem(
        self,
        scene: SceneGraph,
        positions: dict[str, Position],
        include_labels: bool,
        direction: str,
        options: dict[str, Any],
    ) -> SolverProblem:
        nodes: list[SolverNode] = []
        for element in scene.elements:
            if isinstance(element, GroupLabel) and not include_labels:
                continue
            pos = positions.get(element.id)
            if pos is None:
                continue
            w, h = scene.size_of(element.id)
            nodes.append(SolverNode(element.id, w, h, pos.x, pos.y, element.parent))
        present = {n.id for n in nodes}
        edges = [(e.source, e.target) for e in scene.edges if e.source in present and e.target in present]
        return SolverProblem(nodes=nodes, edges=edges, direction=direction, options=options)

    def hierarchical(
        self,
        scene: SceneGraph,
        positions: dict[str, Position],
        direction: str,
        spacing: LayoutSpacing,
        links_hidden: bool = False,
        options: Optional[dict[str, Any]] = None,
    ) -> str:
        """Rank-based layout; returns the algorithm that produced the result."""
        direction = direction.upper()
        try:
            problem = self._problem(
                scene, positions, False, direction,
                preset_options(RANK_PRESETS, links_hidden, options),
            )
            solved = self.rank_solver.solve(problem)
        except Exception as e:
            logger.warning("Rank solver failed (%s); using compact layout", e)
            self.compact(scene, positions, direction, spacing)
            return "compact"

        # Groups become one row (TB) or column (LR), members in in-rank order
        inner = direction
        key_axis = "x" if direction == "TB" else "y"
        for gid in scene.group_order:
            members = [m.id for m in scene.members(gid) if m.id in solved]
            if not members:
                continue
            order_key = {mid: getattr(solved[mid], key_axis) for mid in members}
            centre = Position(
                sum(solved[m].x for m in members) / len(members),
                sum(solved[m].y for m in members) / len(members),
            )
            repack_group_around(
                scene, gid, positions, inner, spacing, order_key, centre,
                self.config.mux_label_gap,
            )

        separate_groups(scene, positions, spacing.group_gap)
        compact_mux_clusters(scene, positions, self.config.mux_label_gap)
        return "hierarchical"

    def force_directed(
        self,
        scene: SceneGraph,
        positions: dict[str, Position],
        spacing: LayoutSpacing,
        links_hidden: bool = False,
        options: Optional[dict[str, Any]] = None,
    ) -> str:
        """Force-directed layout; returns the algorithm that produced the result."""
        try:
            problem = self._problem(
                scene, positions, True, "TB",
                preset_options(FORCE_PRESETS, links_hidden, options),
            )
            solved = self.force_solver.solve(problem)
        except Exception as e:
            logger.warning("Force solver failed (%s); using compact layout", e)
            self.compact(scene, positions, "TB", spacing)
            return "compact"

        for eid, pos in solved.items():
            positions[eid] = pos

        members = [
            e.id for e in scene.elements
            if not isinstance(e, GroupLabel) and e.id in positions
        ]
        result = self.resolver.settle(scene, positions, members)
        if not result.converged:
            logger.debug("Member settling stopped after %d sweeps", result.iterations)

        compact_mux_clusters(scene, positions, self.config.mux_label_gap)
        regular = [g.id for g in scene.groups if not isinstance(g, MuxCluster)]
        reposition_labels_top_left(scene, positions, self.config.label_offset, regular)
        separate_groups(scene, positions, spacing.group_gap)
        return "force-directed"
