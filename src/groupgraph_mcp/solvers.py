"""
Layout solvers the engine delegates whole-graph placement to.

Two implementations of the :class:`LayoutSolver` protocol ship here:

- :class:`RankSolver` -- Sugiyama-style layered placement (cycle removal,
  longest-path ranking, virtual nodes, barycenter crossing reduction)
- :class:`ForceSolver` -- spring-electrical simulation with compound gravity,
  vectorised with numpy

Both are seeded with the caller's initial positions and keep ties in that
order, so a table-order pre-layout biases the result toward the input order.
Any solver may raise :class:`LayoutSolverError`; the engine falls back to the
deterministic compact layout.
"""

from __future__ import annotations

import hashlib
from collections import defaultdict, deque
from dataclasses import dataclass, field, fields
from typing import Any, Optional, Protocol

import numpy as np

from groupgraph_mcp.errors import LayoutSolverError
from groupgraph_mcp.models import Position


# ---------------------------------------------------------------------------
# Problem description
# ---------------------------------------------------------------------------

@dataclass
class SolverNode:
    id: str
    width: float
    height: float
    x: float = 0
    y: float = 0
    group: Optional[str] = None


@dataclass
class SolverProblem:
    """Nodes with seed positions, edges between them, and solver options."""
    nodes: list[SolverNode]
    edges: list[tuple[str, str]]
    direction: str = "TB"
    options: dict[str, Any] = field(default_factory=dict)


class LayoutSolver(Protocol):
    name: str

    def solve(self, problem: SolverProblem) -> dict[str, Position]:
        ...


def _options_from(cls: type, mapping: dict[str, Any]) -> Any:
    known = {f.name for f in fields(cls)}
    return cls(**{k: v for k, v in mapping.items() if k in known})


# ---------------------------------------------------------------------------
# Rank-based (Sugiyama) solver
# ---------------------------------------------------------------------------

@dataclass
class RankOptions:
    node_sep: float = 15     # Gap between nodes in the same rank
    rank_sep: float = 25     # Gap between consecutive ranks
    barycenter_iterations: int = 4


@dataclass
class _RankNode:
    id: str
    width: float
    height: float
    seed: tuple[float, float]
    rank: int = 0
    order: float = 0
    x: float = 0
    y: float = 0
    is_virtual: bool = False


class RankSolver:
    """Layered placement for directed graphs (the approach of Graphviz ``dot``)."""

    name = "rank"

    def solve(self, problem: SolverProblem) -> dict[str, Position]:
        opts: RankOptions = _options_from(RankOptions, problem.options)
        direction = problem.direction.upper()
        if direction not in ("TB", "LR"):
            raise LayoutSolverError(f"Unsupported rank direction '{problem.direction}'.")
        if not problem.nodes:
            return {}

        order_ids = [n.id for n in problem.nodes]
        nodes: dict[str, _RankNode] = {}
        for n in problem.nodes:
            # Seed key keeps ties in table order: row first for TB, column first for LR
            seed = (n.y, n.x) if direction == "TB" else (n.x, n.y)
            nodes[n.id] = _RankNode(n.id, n.width, n.height, seed)

        adj: dict[str, list[str]] = defaultdict(list)
        edge_list: list[tuple[str, str]] = []
        for src, tgt in problem.edges:
            if src in nodes and tgt in nodes and src != tgt:
                adj[src].append(tgt)
                edge_list.append((src, tgt))

        # --- Step 1: Cycle removal ---
        back_edges = _find_back_edges(order_ids, adj)
        effective_adj: dict[str, list[str]] = defaultdict(list)
        effective_rev: dict[str, list[str]] = defaultdict(list)
        oriented: list[tuple[str, str]] = []
        for src, tgt in edge_list:
            if (src, tgt) in back_edges:
                src, tgt = tgt, src
            effective_adj[src].append(tgt)
            effective_rev[tgt].append(src)
            oriented.append((src, tgt))

        # --- Step 2: Layer assignment ---
        ranks = _assign_ranks_longest_path(order_ids, effective_adj, effective_rev)
        for nid, rank in ranks.items():
            nodes[nid].rank = rank

        # --- Step 3: Virtual nodes for long edges ---
        expanded: list[tuple[str, str]] = []
        virtual_count = 0
        for src, tgt in oriented:
            span = ranks[tgt] - ranks[src]
            if span <= 1:
                expanded.append((src, tgt))
                continue
            prev = src
            for r in range(ranks[src] + 1, ranks[tgt]):
                vid = f"__virtual_{virtual_count}"
                virtual_count += 1
                nodes[vid] = _RankNode(vid, 1, 1, nodes[src].seed, rank=r, is_virtual=True)
                expanded.append((prev, vid))
                prev = vid
            expanded.append((prev, tgt))

        # --- Step 4: Crossing minimization ---
        by_rank: dict[int, list[str]] = defaultdict(list)
        for nid, node in nodes.items():
            by_rank[node.rank].append(nid)
        for rank_nodes in by_rank.values():
            rank_nodes.sort(key=lambda nid: nodes[nid].seed)
            for i, nid in enumerate(rank_nodes):
                nodes[nid].order = float(i)

        exp_adj: dict[str, list[str]] = defaultdict(list)
        exp_rev: dict[str, list[str]] = defaultdict(list)
        for s, t in expanded:
            exp_adj[s].append(t)
            exp_rev[t].append(s)

        max_rank = max(by_rank) if by_rank else 0
        for _ in range(opts.barycenter_iterations):
            for r in range(1, max_rank + 1):
                _barycenter_sort(by_rank[r], nodes, exp_rev)
            for r in range(max_rank - 1, -1, -1):
                _barycenter_sort(by_rank[r], nodes, exp_adj)

        # --- Step 5: Coordinate assignment ---
        _assign_coordinates(by_rank, nodes, opts, direction)

        return {
            nid: Position(node.x, node.y)
            for nid, node in nodes.items()
            if not node.is_virtual
        }


def _find_back_edges(
    all_nodes: list[str],
    adj: dict[str, list[str]],
) -> set[tuple[str, str]]:
    """Find back-edges in a directed graph using iterative DFS."""
    WHITE, GRAY, BLACK = 0, 1, 2
    color: dict[str, int] = {n: WHITE for n in all_nodes}
    back_edges: set[tuple[str, str]] = set()

    for start in all_nodes:
        if color[start] != WHITE:
            continue
        color[start] = GRAY
        stack: list[tuple[str, int]] = [(start, 0)]
        while stack:
            u, idx = stack[-1]
            neighbors = adj.get(u, [])
            if idx < len(neighbors):
                stack[-1] = (u, idx + 1)
                v = neighbors[idx]
                if v not in color:
                    continue
                if color[v] == GRAY:
                    back_edges.add((u, v))
                elif color[v] == WHITE:
                    color[v] = GRAY
                    stack.append((v, 0))
            else:
                color[u] = BLACK
                stack.pop()

    return back_edges


def _assign_ranks_longest_path(
    all_nodes: list[str],
    adj: dict[str, list[str]],
    rev_adj: dict[str, list[str]],
) -> dict[str, int]:
    """Assign ranks using longest path from sources."""
    ranks: dict[str, int] = {}
    sources = [n for n in all_nodes if not rev_adj.get(n)]
    queue = deque(sources)
    for s in sources:
        ranks[s] = 0

    while queue:
        node = queue.popleft()
        for child in adj.get(node, []):
            new_rank = ranks[node] + 1
            if child not in ranks or ranks[child] < new_rank:
                ranks[child] = new_rank
                queue.append(child)

    for n in all_nodes:
        ranks.setdefault(n, 0)
    return ranks


def _barycenter_sort(
    rank_nodes: list[str],
    nodes: dict[str, _RankNode],
    neighbor_adj: dict[str, list[str]],
) -> None:
    """Sort nodes in a rank by barycenter of their neighbors (stable for ties)."""
    barycenters: dict[str, float] = {}
    for nid in rank_nodes:
        neighbor_orders = [nodes[n].order for n in neighbor_adj.get(nid, []) if n in nodes]
        if neighbor_orders:
            barycenters[nid] = sum(neighbor_orders) / len(neighbor_orders)
        else:
            barycenters[nid] = nodes[nid].order

    rank_nodes.sort(key=lambda n: barycenters[n])
    for i, nid in enumerate(rank_nodes):
        nodes[nid].order = float(i)


def _assign_coordinates(
    by_rank: dict[int, list[str]],
    nodes: dict[str, _RankNode],
    opts: RankOptions,
    direction: str,
) -> None:
    """Assign centre coordinates from rank and in-rank order."""
    horizontal_ranks = direction == "TB"

    def along(n: _RankNode) -> float:
        return n.width if horizontal_ranks else n.height

    def across(n: _RankNode) -> float:
        return n.height if horizontal_ranks else n.width

    extents: dict[int, float] = {}
    for rank, rank_nodes in by_rank.items():
        real = [nodes[n] for n in rank_nodes if not nodes[n].is_virtual]
        extents[rank] = sum(along(n) for n in real) + max(len(real) - 1, 0) * opts.node_sep
    widest = max(extents.values(), default=0)

    rank_offset = 0.0
    for rank in sorted(by_rank):
        rank_nodes = by_rank[rank]
        real = [nodes[n] for n in rank_nodes if not nodes[n].is_virtual]
        thickness = max((across(n) for n in real), default=1)
        cursor = (widest - extents[rank]) / 2
        for nid in rank_nodes:
            node = nodes[nid]
            centre_across = rank_offset + thickness / 2
            if node.is_virtual:
                centre_along = cursor
            else:
                centre_along = cursor + along(node) / 2
                cursor += along(node) + opts.node_sep
            if horizontal_ranks:
                node.x, node.y = centre_along, centre_across
            else:
                node.x, node.y = centre_across, centre_along
        rank_offset += thickness + opts.rank_sep


# ---------------------------------------------------------------------------
# Force-directed solver
# ---------------------------------------------------------------------------

@dataclass
class ForceOptions:
    node_separation: float = 50
    node_repulsion: float = 4500
    gravity: float = 0.25
    gravity_compound: float = 1.0
    ideal_edge_length: float = 50
    num_iter: int = 2500
    spring_constant: float = 0.05
    initial_temperature: float = 40.0


def _deterministic_jitter(key: str, scale: float = 0.5) -> tuple[float, float]:
    """Reproducible small offset derived from *key*."""
    h = hashlib.md5(key.encode()).hexdigest()
    x_val = int(h[:8], 16) / 0xFFFFFFFF
    y_val = int(h[8:16], 16) / 0xFFFFFFFF
    return (x_val * 2 * scale - scale, y_val * 2 * scale - scale)


class ForceSolver:
    """Spring-electrical placement for compound graphs.

    Every pair of nodes repels with ``node_repulsion / d^2`` where ``d`` is the
    free distance between their bounding circles minus ``node_separation``;
    edges act as springs toward ``ideal_edge_length``; each node is pulled
    toward its group's centroid (``gravity_compound``) and toward the layout
    centre (``gravity``). Displacements are capped by a linearly cooling
    temperature, so the seed arrangement is only reshaped, never scrambled.
    """

    name = "force"

    def solve(self, problem: SolverProblem) -> dict[str, Position]:
        opts: ForceOptions = _options_from(ForceOptions, problem.options)
        n = len(problem.nodes)
        if n == 0:
            return {}
        if opts.num_iter < 0:
            raise LayoutSolverError("num_iter must be non-negative.")

        ids = [node.id for node in problem.nodes]
        index = {nid: i for i, nid in enumerate(ids)}
        pos = np.array([[node.x, node.y] for node in problem.nodes], dtype=float)
        sizes = np.array([[node.width, node.height] for node in problem.nodes], dtype=float)
        radii = 0.5 * np.hypot(sizes[:, 0], sizes[:, 1])

        # Coincident seeds would have no direction to separate along
        seen: dict[tuple[float, float], int] = {}
        for i, nid in enumerate(ids):
            key = (round(pos[i, 0], 6), round(pos[i, 1], 6))
            if key in seen:
                jx, jy = _deterministic_jitter(nid, scale=radii[i])
                pos[i] += (jx, jy)
            seen[key] = i

        src = np.array([index[s] for s, t in problem.edges if s in index and t in index and s != t], dtype=int)
        tgt = np.array([index[t] for s, t in problem.edges if s in index and t in index and s != t], dtype=int)

        group_names = sorted({node.group for node in problem.nodes if node.group})
        group_index = {g: i for i, g in enumerate(group_names)}
        membership = np.array(
            [group_index.get(node.group, -1) if node.group else -1 for node in problem.nodes],
            dtype=int,
        )
        grouped = membership >= 0
        counts = np.bincount(membership[grouped], minlength=len(group_names)).astype(float)

        reach = radii[:, None] + radii[None, :] + opts.node_separation
        for it in range(opts.num_iter):
            force = np.zeros_like(pos)

            delta = pos[:, None, :] - pos[None, :, :]
            dist = np.sqrt((delta ** 2).sum(axis=2))
            np.fill_diagonal(dist, np.inf)
            free = np.maximum(dist - reach, 1.0)
            magnitude = opts.node_repulsion / free ** 2
            force += (delta / dist[:, :, None] * magnitude[:, :, None]).sum(axis=1)

            if src.size:
                d = pos[tgt] - pos[src]
                length = np.maximum(np.hypot(d[:, 0], d[:, 1]), 1e-6)
                ideal = opts.ideal_edge_length + radii[src] + radii[tgt]
                pull = (opts.spring_constant * (length - ideal) / length)[:, None] * d
                np.add.at(force, src, pull)
                np.add.at(force, tgt, -pull)

            if grouped.any():
                sums = np.zeros((len(group_names), 2))
                np.add.at(sums, membership[grouped], pos[grouped])
                centroids = sums / counts[:, None]
                force[grouped] += opts.gravity_compound * 0.1 * (
                    centroids[membership[grouped]] - pos[grouped]
                )

            centre = pos.mean(axis=0)
            force += opts.gravity * 0.01 * (centre - pos)

            temperature = opts.initial_temperature * (1 - it / max(opts.num_iter, 1))
            norms = np.hypot(force[:, 0], force[:, 1])
            scale = np.minimum(1.0, temperature / np.maximum(norms, 1e-9))
            pos += force * scale[:, None]

        if not np.all(np.isfinite(pos)):
            raise LayoutSolverError("force simulation diverged")

        return {nid: Position(float(pos[i, 0]), float(pos[i, 1])) for i, nid in enumerate(ids)}
