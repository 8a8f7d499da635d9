"""
Deterministic placement for grouped diagrams.

All functions work on a scene graph plus a mutable ``{element_id: Position}``
mapping of centre coordinates and never touch groups directly: a group's box is
always the union of its children's boxes.

The compact family places every group in two passes. Pass 1 lays each group's
label and members along the primary axis from a local origin; pass 2 stacks the
groups using their real post-pass-1 boxes, which is what guarantees no overlap
without any iterative repair.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Iterable, Optional

from groupgraph_mcp.models import (
    Bounds,
    GroupLabel,
    MuxCluster,
    Position,
    SceneElement,
    SceneGraph,
)

logger = logging.getLogger("groupgraph-mcp.layout")


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@dataclass
class LayoutConfig:
    node_padding: float = 3          # Gap between siblings inside a group
    group_gap: float = 15            # Gap between stacked groups
    max_node_padding: float = 30     # Padding at node spacing 100
    max_group_gap: float = 60        # Group gap at node spacing 100
    label_offset: float = 6          # Free-form label offset from the members' box
    mux_label_gap: float = 2         # Label-to-clone gap inside a MuxCluster
    incremental_offset: float = 100  # New element offset from a positioned neighbour
    origin_x: float = 100
    origin_y: float = 100
    fit_padding: float = 20
    collision_padding: float = 3
    collision_ceiling: int = 30
    settle_iterations: int = 200
    settle_delay: float = 0.1        # Seconds between pre-layout paint and solver
    min_zoom: float = 0.1
    max_zoom: float = 5.0
    viewport_width: float = 1200
    viewport_height: float = 800


@dataclass
class LayoutSpacing:
    node_padding: float = 3
    group_gap: float = 15

    @classmethod
    def from_extra(cls, extra: float, config: Optional[LayoutConfig] = None) -> LayoutSpacing:
        """Scale spacing from the 0-100 node-spacing setting."""
        cfg = config or LayoutConfig()
        t = max(0.0, min(100.0, float(extra))) / 100.0
        return cls(
            node_padding=cfg.node_padding + t * (cfg.max_node_padding - cfg.node_padding),
            group_gap=cfg.group_gap + t * (cfg.max_group_gap - cfg.group_gap),
        )


DIRECTIONS = ("TB", "LR")


def _check_direction(direction: str) -> str:
    d = direction.upper()
    if d not in DIRECTIONS:
        raise ValueError(f"Invalid direction '{direction}'. Must be one of: {', '.join(DIRECTIONS)}")
    return d


def translate(ids: Iterable[str], positions: dict[str, Position], dx: float, dy: float) -> None:
    for eid in ids:
        if eid in positions:
            p = positions[eid]
            positions[eid] = Position(p.x + dx, p.y + dy)


def ideal_grid_extent(areas: Iterable[float]) -> float:
    """Side of the square whose area matches the sum of *areas*."""
    return math.sqrt(sum(areas))


def _child_ids(scene: SceneGraph, group_id: str) -> list[str]:
    return [c.id for c in scene.children(group_id)]


# ---------------------------------------------------------------------------
# MuxCluster compaction
# ---------------------------------------------------------------------------

def compact_mux_cluster(
    scene: SceneGraph,
    cluster_id: str,
    positions: dict[str, Position],
    gap: float = 2,
) -> None:
    """Put the cluster label directly above its clone, centred, *gap* apart."""
    label = scene.label_for(cluster_id)
    members = scene.members(cluster_id)
    if label is None or not members or members[0].id not in positions:
        return
    clone = members[0]
    cp = positions[clone.id]
    _, ch = scene.size_of(clone.id)
    _, lh = scene.size_of(label.id)
    positions[label.id] = Position(cp.x, cp.y - ch / 2 - gap - lh / 2)


def compact_mux_clusters(scene: SceneGraph, positions: dict[str, Position], gap: float = 2) -> None:
    for group in scene.groups:
        if isinstance(group, MuxCluster):
            compact_mux_cluster(scene, group.id, positions, gap)


# ---------------------------------------------------------------------------
# Pass 1: one group from a local origin
# ---------------------------------------------------------------------------

def pack_group(
    scene: SceneGraph,
    group_id: str,
    positions: dict[str, Position],
    direction: str,
    spacing: LayoutSpacing,
    members: Optional[list[SceneElement]] = None,
    mux_gap: float = 2,
) -> Optional[Bounds]:
    """Lay out a group's label and members from (0, 0); return the group box.

    TB puts label and members in one row (top-aligned), LR in one column
    (centred). A MuxCluster always stacks its label over its clone.
    """
    group = scene.get(group_id)
    label = scene.label_for(group_id)
    ordered = list(members) if members is not None else scene.members(group_id)

    if isinstance(group, MuxCluster):
        if not ordered:
            return None
        clone = ordered[0]
        cw, ch = scene.size_of(clone.id)
        lw, lh = scene.size_of(label.id) if label else (0, 0)
        width = max(cw, lw)
        top = lh + mux_gap if label else 0
        positions[clone.id] = Position(width / 2, top + ch / 2)
        compact_mux_cluster(scene, group_id, positions, mux_gap)
        return scene.group_bounds(group_id, positions)

    items: list[SceneElement] = ([label] if label else []) + ordered
    if not items:
        return None

    if direction == "TB":
        cursor = 0.0
        for el in items:
            w, h = scene.size_of(el.id)
            positions[el.id] = Position(cursor + w / 2, h / 2)
            cursor += w + spacing.node_padding
    else:
        column_width = max(scene.size_of(el.id)[0] for el in items)
        cursor = 0.0
        for el in items:
            _, h = scene.size_of(el.id)
            positions[el.id] = Position(column_width / 2, cursor + h / 2)
            cursor += h + spacing.node_padding

    return scene.group_bounds(group_id, positions)


# ---------------------------------------------------------------------------
# Compact layout
# ---------------------------------------------------------------------------

def compact_layout(
    scene: SceneGraph,
    positions: dict[str, Position],
    direction: str = "TB",
    spacing: Optional[LayoutSpacing] = None,
    config: Optional[LayoutConfig] = None,
) -> Optional[Bounds]:
    """Two-pass compact placement; returns the content box."""
    direction = _check_direction(direction)
    spacing = spacing or LayoutSpacing()
    cfg = config or LayoutConfig()

    # Pass 1
    boxes: list[tuple[str, Bounds]] = []
    for gid in scene.group_order:
        box = pack_group(scene, gid, positions, direction, spacing, mux_gap=cfg.mux_label_gap)
        if box is not None:
            boxes.append((gid, box))

    # Pass 2
    origin = spacing.node_padding
    cursor = origin
    for gid, box in boxes:
        if direction == "TB":
            translate(_child_ids(scene, gid), positions, origin - box.x, cursor - box.y)
            cursor += box.height + spacing.group_gap
        else:
            translate(_child_ids(scene, gid), positions, cursor - box.x, origin - box.y)
            cursor += box.width + spacing.group_gap

    compact_mux_clusters(scene, positions, cfg.mux_label_gap)
    return scene.content_bounds(positions)


# ---------------------------------------------------------------------------
# Brick packing
# ---------------------------------------------------------------------------

def brick_layout(
    scene: SceneGraph,
    positions: dict[str, Position],
    vertical: bool = True,
    spacing: Optional[LayoutSpacing] = None,
    config: Optional[LayoutConfig] = None,
) -> Optional[Bounds]:
    """Pack whole groups like bricks.

    The vertical variant lays each group's members out horizontally and fills
    rows; the horizontal variant lays members out vertically and fills columns.
    A row (column) is closed once the next group would push it past
    ``sqrt(total area)``.
    """
    spacing = spacing or LayoutSpacing()
    cfg = config or LayoutConfig()
    inner = "TB" if vertical else "LR"
    gap = spacing.group_gap

    boxes: list[tuple[str, Bounds]] = []
    for gid in scene.group_order:
        box = pack_group(scene, gid, positions, inner, spacing, mux_gap=cfg.mux_label_gap)
        if box is not None:
            boxes.append((gid, box))
    if not boxes:
        return None

    target = ideal_grid_extent((b.width + gap) * (b.height + gap) for _, b in boxes)
    origin = spacing.node_padding
    main, cross, line_extent = origin, origin, 0.0

    for gid, box in boxes:
        length = box.width if vertical else box.height
        thickness = box.height if vertical else box.width
        if main > origin and (main - origin) + length > target:
            cross += line_extent + gap
            main = origin
            line_extent = 0.0
        if vertical:
            translate(_child_ids(scene, gid), positions, main - box.x, cross - box.y)
        else:
            translate(_child_ids(scene, gid), positions, cross - box.x, main - box.y)
        main += length + gap
        line_extent = max(line_extent, thickness)

    compact_mux_clusters(scene, positions, cfg.mux_label_gap)
    return scene.content_bounds(positions)


# ---------------------------------------------------------------------------
# Table-order pre-layout
# ---------------------------------------------------------------------------

def table_order_positions(
    scene: SceneGraph,
    positions: dict[str, Position],
    direction: str = "TB",
    links_hidden: bool = False,
) -> None:
    """Grid seed: groups in display order on one axis, members in table order on the other."""
    direction = _check_direction(direction)
    step_x, step_y, extra_gap = (140.0, 120.0, 60.0) if links_hidden else (100.0, 80.0, 0.0)

    cursor = 0.0
    for gid in scene.group_order:
        items = scene.children(gid)
        if not items:
            continue
        for i, el in enumerate(items):
            if direction == "TB":
                positions[el.id] = Position(i * step_x, cursor)
            else:
                positions[el.id] = Position(cursor, i * step_y)
        cursor += (step_y if direction == "TB" else step_x) + extra_gap


# ---------------------------------------------------------------------------
# Free-form finishing
# ---------------------------------------------------------------------------

def reposition_labels_top_left(
    scene: SceneGraph,
    positions: dict[str, Position],
    offset: float = 6,
    group_ids: Optional[Iterable[str]] = None,
) -> None:
    """Move each regular group's label above the top-left corner of its members."""
    targets = list(group_ids) if group_ids is not None else scene.group_order
    for gid in targets:
        if isinstance(scene.get(gid), MuxCluster):
            continue
        label = scene.label_for(gid)
        members = scene.group_bounds(gid, positions, include_label=False)
        if label is None or members is None:
            continue
        lw, lh = scene.size_of(label.id)
        positions[label.id] = Position(members.x + lw / 2 + offset, members.y - lh / 2 - offset)


def separate_groups(
    scene: SceneGraph,
    positions: dict[str, Position],
    gap: float = 15,
    max_iterations: int = 50,
) -> int:
    """Push overlapping group boxes apart along the axis of least overlap.

    Whole groups move (children keep their relative layout). Returns the
    number of passes that moved something.
    """
    moved_passes = 0
    for _ in range(max_iterations):
        placed = [gid for gid in scene.group_order if scene.group_bounds(gid, positions) is not None]
        moved = False
        for i in range(len(placed)):
            for j in range(i + 1, len(placed)):
                ga, gb = placed[i], placed[j]
                a = scene.group_bounds(ga, positions)
                b = scene.group_bounds(gb, positions)
                overlap_x = min(a.right, b.right) + gap - max(a.x, b.x)
                overlap_y = min(a.bottom, b.bottom) + gap - max(a.y, b.y)
                if overlap_x <= 1e-6 or overlap_y <= 1e-6:
                    continue
                moved = True
                if overlap_x < overlap_y:
                    push = overlap_x / 2
                    sign = 1 if a.cx <= b.cx else -1
                    translate(_child_ids(scene, ga), positions, -sign * push, 0)
                    translate(_child_ids(scene, gb), positions, sign * push, 0)
                else:
                    push = overlap_y / 2
                    sign = 1 if a.cy <= b.cy else -1
                    translate(_child_ids(scene, ga), positions, 0, -sign * push)
                    translate(_child_ids(scene, gb), positions, 0, sign * push)
        if not moved:
            break
        moved_passes += 1
    return moved_passes


def repack_group_around(
    scene: SceneGraph,
    group_id: str,
    positions: dict[str, Position],
    direction: str,
    spacing: LayoutSpacing,
    order_key: dict[str, float],
    centre: Position,
    mux_gap: float = 2,
) -> None:
    """Compactly re-pack a group, members sorted by *order_key*, centred on *centre*."""
    members = sorted(
        scene.members(group_id),
        key=lambda el: order_key.get(el.id, math.inf),
    )
    box = pack_group(scene, group_id, positions, direction, spacing, members, mux_gap)
    if box is None:
        return
    translate(_child_ids(scene, group_id), positions, centre.x - box.cx, centre.y - box.cy)


# ---------------------------------------------------------------------------
# Incremental placement
# ---------------------------------------------------------------------------

def place_incremental(
    scene: SceneGraph,
    positions: dict[str, Position],
    new_ids: Iterable[str],
    config: Optional[LayoutConfig] = None,
) -> list[str]:
    """Place elements that have no stored position yet.

    A new node goes next to a positioned neighbour (``+incremental_offset`` on
    x) or at the default origin. Labels are placed afterwards, above the
    members of their group. Returns the ids placed.
    """
    cfg = config or LayoutConfig()
    pending = [eid for eid in new_ids if eid not in positions]
    placed: list[str] = []
    labels: list[GroupLabel] = []

    for eid in pending:
        element = scene.get(eid)
        if isinstance(element, GroupLabel):
            labels.append(element)
            continue
        anchor = next((positions[n] for n in scene.neighbors(eid) if n in positions), None)
        if anchor is not None:
            positions[eid] = Position(anchor.x + cfg.incremental_offset, anchor.y)
        else:
            positions[eid] = Position(cfg.origin_x, cfg.origin_y)
        placed.append(eid)

    for label in labels:
        group = scene.get(label.parent_id)
        if isinstance(group, MuxCluster):
            compact_mux_cluster(scene, group.id, positions, cfg.mux_label_gap)
        else:
            reposition_labels_top_left(scene, positions, cfg.label_offset, [label.parent_id])
        if label.id not in positions:
            positions[label.id] = Position(cfg.origin_x, cfg.origin_y - cfg.incremental_offset / 2)
        placed.append(label.id)

    if placed:
        logger.debug("Placed %d new element(s) incrementally", len(placed))
    return placed
