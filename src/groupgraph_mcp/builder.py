"""
Scene-graph construction from tabular records.

Turns the record table plus the canvas visibility filters into groups, group
label pseudo-nodes, plain nodes, multiplexer clusters and edges. Multiplexer
records (node names ending in `` MUX``) are virtualised: instead of one hub
drawn in its home group with an edge to every consumer, each destination group
gets a small satellite cluster holding a clone of the hub.
"""

from __future__ import annotations

from collections.abc import Iterable

from groupgraph_mcp.models import (
    Edge,
    Group,
    GroupLabel,
    MuxClone,
    MuxCluster,
    PlainNode,
    Record,
    SceneElement,
    SceneGraph,
)


def group_id_for(name: str) -> str:
    return f"group_{name}"


def label_id_for(group_id: str) -> str:
    return f"label_{group_id.removeprefix('group_')}"


def cluster_id_for(mux_id: str, dest_group: str) -> str:
    return f"mux_{mux_id}__{dest_group}"


def clone_id_for(mux_id: str, dest_group: str) -> str:
    return f"{mux_id}@{dest_group}"


def compute_linked_ids(records: Iterable[Record]) -> set[str]:
    """Ids that take part in at least one non-hidden link (either end)."""
    linked: set[str] = set()
    for rec in records:
        if rec.linked_id and not rec.hidden_link:
            linked.add(rec.id)
            linked.add(rec.linked_id)
    return linked


def build_scene_graph(
    records: list[Record],
    hidden_groups: Iterable[str] | None = None,
    hide_unlinked_nodes: bool = False,
    hide_linked_nodes: bool = False,
    hide_links: bool = False,
) -> SceneGraph:
    """Build the compound scene graph for the visible part of *records*.

    A link between two multiplexers is drawn from the source hub's clone in
    the target's group to the target hub. When the target hub is itself
    clustered it has no plain node and no clone in the source's group, so the
    link is not drawn.
    """
    hidden = set(hidden_groups or ())
    linked = compute_linked_ids(records)

    def is_visible(rec: Record) -> bool:
        if rec.is_malformed or rec.hidden_node:
            return False
        if rec.group_name in hidden:
            return False
        if hide_unlinked_nodes and rec.id not in linked:
            return False
        if hide_linked_nodes and rec.id in linked:
            return False
        return True

    visible = [rec for rec in records if is_visible(rec)]
    by_id: dict[str, Record] = {}
    for rec in visible:
        by_id.setdefault(rec.id, rec)

    # --- Multiplexer buckets, in discovery order ---
    pairs: list[tuple[str, str]] = []
    seen_pairs: set[tuple[str, str]] = set()
    for rec in visible:
        if not rec.linked_id or rec.hidden_link:
            continue
        target = by_id.get(rec.linked_id)
        if target is None:
            continue
        found: list[tuple[str, str]] = []
        if rec.is_multiplexer:
            found.append((rec.id, target.group_name))
        if target.is_multiplexer and not rec.is_multiplexer:
            found.append((target.id, rec.group_name))
        for pair in found:
            if pair not in seen_pairs:
                seen_pairs.add(pair)
                pairs.append(pair)

    clustered_muxes = {mux_id for mux_id, _ in pairs}

    # --- Groups and labels ---
    group_names: list[str] = []
    for rec in visible:
        if rec.group_name not in group_names:
            group_names.append(rec.group_name)

    groups: list[Group] = []
    elements: list[SceneElement] = []
    for order, name in enumerate(group_names):
        gid = group_id_for(name)
        groups.append(Group(id=gid, name=name, display_order=order))
        elements.append(GroupLabel(id=label_id_for(gid), parent_id=gid, title=name))

    emitted: set[str] = set()
    for rec in visible:
        # Repeated ids (one row per outgoing link) draw a single node
        if rec.id in clustered_muxes or rec.id in emitted:
            continue
        emitted.add(rec.id)
        elements.append(PlainNode(
            id=rec.id,
            parent_id=group_id_for(rec.group_name),
            label=rec.node,
            is_linked=rec.id in linked,
        ))

    clone_ids: dict[tuple[str, str], str] = {}
    for mux_id, dest in pairs:
        mux = by_id[mux_id]
        cid = cluster_id_for(mux_id, dest)
        groups.append(MuxCluster(
            id=cid,
            name=f"{mux.node} / {dest}",
            display_order=len(groups),
            mux_id=mux_id,
            origin_group=mux.group_name,
            dest_group=dest,
        ))
        elements.append(GroupLabel(id=f"label_{cid}", parent_id=cid, title=mux.group_name))
        clone_id = clone_id_for(mux_id, dest)
        elements.append(MuxClone(id=clone_id, parent_id=cid, original_id=mux_id, label=mux.node))
        clone_ids[(mux_id, dest)] = clone_id

    # --- Edges ---
    edges: list[Edge] = []
    if not hide_links:
        drawn = {e.id for e in elements}

        def resolve(record_id: str, other_group: str) -> str | None:
            if record_id in clustered_muxes:
                return clone_ids.get((record_id, other_group))
            return record_id if record_id in drawn else None

        for rec in visible:
            if not rec.linked_id or rec.hidden_link:
                continue
            target = by_id.get(rec.linked_id)
            if target is None:
                continue
            source_id = resolve(rec.id, target.group_name)
            target_id = resolve(target.id, rec.group_name)
            if source_id is None or target_id is None:
                continue
            edges.append(Edge(
                id=f"edge_{rec.id}_to_{rec.linked_id}",
                source=source_id,
                target=target_id,
                label=rec.link_label,
                arrow=rec.link_arrow,
            ))

    return SceneGraph(
        groups=groups,
        elements=elements,
        edges=edges,
        linked_ids=frozenset(linked),
    )
