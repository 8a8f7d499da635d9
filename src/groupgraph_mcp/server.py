"""
Groupgraph MCP Server — lay out grouped node-link diagrams via Model Context Protocol.

Exposes 5 tools that let an LLM agent load a table of group/node/link records,
lay it out, adjust it by dragging, and read positions back.

Tools:
  1. diagram  — lifecycle: create, render, load_demo, list_demos, clear, list, check
  2. layout   — positioning: auto, force_directed, hierarchical, compact,
                             compact_vertical, compact_horizontal, spacing
  3. view     — camera: fit, zoom, get_zoom, pan, reset
  4. interact — canvas events: drag, drag_end, context
  5. inspect  — read-only: elements, positions, visible_ids, overlaps, info
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Optional

from mcp.server.fastmcp import FastMCP

from groupgraph_mcp.demos import DEMOS, get_demo
from groupgraph_mcp.errors import GroupGraphError
from groupgraph_mcp.layout import LayoutConfig
from groupgraph_mcp.models import Record
from groupgraph_mcp.session import DiagramSession, HeadlessSurface, Settings, Viewport
from groupgraph_mcp.validation import (
    ValidationError,
    check_records,
    validate_action,
    validate_bool,
    validate_curve,
    validate_direction,
    validate_layout_kind,
    validate_list,
    validate_non_empty_string,
    validate_number,
    validate_options,
    validate_records,
    validate_spacing,
    validate_string,
    validate_zoom,
    _DIAGRAM_ACTIONS,
    _INSPECT_ACTIONS,
    _INTERACT_ACTIONS,
    _LAYOUT_ACTIONS,
    _VIEW_ACTIONS,
)

# ---------------------------------------------------------------------------
# Logging: keep FastMCP request chatter out of the client log pane
# as warnings (they go to stderr).
# ---------------------------------------------------------------------------
logging.getLogger("mcp.server").setLevel(logging.WARNING)
logger = logging.getLogger("groupgraph-mcp")

# ---------------------------------------------------------------------------
# MCP Server
# ---------------------------------------------------------------------------
mcp = FastMCP(
    "groupgraph-mcp",
    instructions=(
        "MCP server for laying out grouped node-link diagrams.\n\n"
        "=== ONLY 5 TOOLS — use the 'action' parameter to pick the operation ===\n\n"
        "1. diagram(action, ...) — lifecycle: create, render, load_demo,\n"
        "   list_demos, clear, list, check.\n"
        "2. layout(action, ...) — positioning: auto, force_directed, hierarchical,\n"
        "   compact, compact_vertical, compact_horizontal, spacing.\n"
        "3. view(action, ...) — camera: fit, zoom, get_zoom, pan, reset.\n"
        "4. interact(action, ...) — canvas events: drag, drag_end, context.\n"
        "5. inspect(action, ...) — read-only: elements, positions, visible_ids,\n"
        "   overlaps, info.\n\n"
        "=== DATA MODEL ===\n"
        "- A record is {group, node, id?, linked_id?, link_label?, link_arrow?,\n"
        "  hidden_node?, hidden_link?}. id defaults to '<group>-<node>'.\n"
        "- linked_id draws an edge from the record to another record's id.\n"
        "- Nodes whose name ends with ' MUX' are multiplexers: they are drawn once\n"
        "  per destination group instead of once in their own group.\n"
        "- Positions are element CENTRES. Manual drags survive re-renders;\n"
        "  layout actions recompute everything from scratch.\n"
    ),
)


@dataclass
class _Diagram:
    """A named session plus the inputs of its last render."""
    session: DiagramSession
    surface: HeadlessSurface
    records: list[Record] = field(default_factory=list)
    hidden_groups: list[str] = field(default_factory=list)
    hide_unlinked_nodes: bool = False
    hide_linked_nodes: bool = False
    hide_links: bool = False
    hide_link_labels: bool = False


# In-memory diagram registry: name -> _Diagram
# Guarded by _diagrams_lock for thread-safety.
_diagrams: dict[str, _Diagram] = {}
_diagrams_lock = threading.Lock()

_config = LayoutConfig()


def _new_diagram(name: str) -> _Diagram:
    session = DiagramSession(_config)
    surface = HeadlessSurface(_config.viewport_width, _config.viewport_height)
    session.attach_surface(name, surface)
    return _Diagram(session=session, surface=surface)


def _get(name: str) -> _Diagram:
    name = validate_non_empty_string(name, "name")
    d = _diagrams.get(name)
    if d is None:
        raise GroupGraphError(f"diagram '{name}' not found.")
    return d


async def _render(name: str, d: _Diagram, settings: Settings) -> dict[str, Any]:
    handle = d.session.render(
        d.records,
        settings=settings,
        hidden_groups=d.hidden_groups,
        hide_unlinked_nodes=d.hide_unlinked_nodes,
        hide_linked_nodes=d.hide_linked_nodes,
        hide_links=d.hide_links,
        hide_link_labels=d.hide_link_labels,
        container_id=name,
    )
    # Free-form first layouts finish before the summary is reported
    await d.session.wait_for_layout()
    scene = handle.scene
    return {
        "name": name,
        "groups": len(scene.groups),
        "elements": len(scene.elements),
        "edges": len(scene.edges),
        "layout": d.session.last_algorithm,
    }


def _viewport_json(vp: Optional[Viewport]) -> str:
    if vp is None:
        return "Error: nothing rendered yet."
    return json.dumps(vp.to_dict(), indent=2)


# ===================================================================
# RESOURCES
# ===================================================================

@mcp.resource("groupgraph://demos")
def demo_catalog() -> str:
    """Return the built-in demo tables."""
    entries: list[str] = []
    for name, records in DEMOS.items():
        groups = {r.group_name for r in records}
        links = sum(1 for r in records if r.linked_id)
        entries.append(f"  {name}: {len(records)} records, {len(groups)} groups, {links} links")
    return "Available demos (diagram(action='load_demo', demo=...)):\n" + "\n".join(entries)


# ===================================================================
# TOOL 1: diagram (lifecycle)
# ===================================================================

@mcp.tool()
async def diagram(
    action: str,
    name: str = "",
    records: Optional[list[dict[str, Any]]] = None,
    demo: str = "",
    direction: str = "TB",
    curve: str = "basis",
    layout: str = "force-directed",
    node_spacing: float = 0,
    hidden_groups: Optional[list[str]] = None,
    hide_unlinked_nodes: bool = False,
    hide_linked_nodes: bool = False,
    hide_links: bool = False,
    hide_link_labels: bool = False,
) -> str:
    """Diagram lifecycle management.

    Actions:
      create     — Create an empty diagram session. Params: name.
      render     — Render records (replaces the table, keeps dragged positions).
                   Params: name, records, direction, curve, layout, node_spacing,
                   hidden_groups, hide_unlinked_nodes, hide_linked_nodes,
                   hide_links, hide_link_labels.
      load_demo  — Replace the table with a built-in demo and lay it out fresh.
                   Params: name, demo, plus the render params.
      list_demos — List the built-in demos. No params needed.
      clear      — Forget all stored positions (next render is a fresh layout).
      list       — List all in-memory diagrams.
      check      — Report problems in records without rendering. Params: records.

    Args:
        action: One of: create, render, load_demo, list_demos, clear, list, check.
        name: Diagram name.
        records: List of {group, node, id, linked_id, link_label, link_arrow,
                 hidden_node, hidden_link} dicts (spreadsheet column names work too).
        demo: Demo name for load_demo.
        direction: TB or LR.
        curve: Edge curve: basis, linear, step.
        layout: First-render layout: force-directed, hierarchical-TB,
                hierarchical-LR, compact-TB, compact-LR, compact-vertical,
                compact-horizontal.
        node_spacing: Extra spacing 0-100.
        hidden_groups: Group names not drawn.
        hide_unlinked_nodes: Draw only nodes that take part in a link.
        hide_linked_nodes: Draw only nodes without links.
        hide_links: Do not draw edges (layouts widen spacing).
        hide_link_labels: Draw edges without labels.

    Returns:
        Result string or JSON depending on action.
    """
    try:
        action = validate_action(action, "diagram", _DIAGRAM_ACTIONS)
    except ValidationError as exc:
        return f"Error: {exc.message}"

    if action == "list_demos":
        return json.dumps(list(DEMOS), indent=2)

    if action == "list":
        result: list[dict[str, Any]] = []
        for n, d in _diagrams.items():
            result.append({
                "name": n,
                "records": len(d.records),
                "stored_positions": len(d.session.store),
                "rendered": d.session.handle is not None,
            })
        return json.dumps(result, indent=2)

    if action == "check":
        try:
            rows = validate_list(records, "records")
        except ValidationError as exc:
            return f"Error: {exc.message}"
        problems = check_records(rows)
        if not problems:
            return "No problems found."
        return json.dumps(problems, indent=2)

    try:
        name = validate_non_empty_string(name, "name")
    except ValidationError as exc:
        return f"Error: {exc.message}"

    if action == "create":
        with _diagrams_lock:
            _diagrams[name] = _new_diagram(name)
        return f"Diagram '{name}' created."

    try:
        d = _get(name)
    except (ValidationError, GroupGraphError) as exc:
        return f"Error: {exc.message}"

    if action == "clear":
        d.session.clear_positions()
        return f"Positions of '{name}' cleared."

    # render / load_demo
    try:
        settings = Settings(
            direction=validate_direction(direction),
            curve=validate_curve(curve),
            layout=validate_layout_kind(layout),
            node_spacing=validate_spacing(node_spacing),
        )
        if action == "load_demo":
            validate_non_empty_string(demo, "demo")
            try:
                new_records = get_demo(demo)
            except KeyError:
                return f"Error: unknown demo '{demo}'. Available: {', '.join(DEMOS)}."
            d.session.clear_positions()
        else:
            new_records = validate_records(records)
        hidden = [validate_string(g, "hidden_groups[]") for g in validate_list(hidden_groups or [], "hidden_groups")]
        flags = {
            "hide_unlinked_nodes": validate_bool(hide_unlinked_nodes, "hide_unlinked_nodes"),
            "hide_linked_nodes": validate_bool(hide_linked_nodes, "hide_linked_nodes"),
            "hide_links": validate_bool(hide_links, "hide_links"),
            "hide_link_labels": validate_bool(hide_link_labels, "hide_link_labels"),
        }
    except ValidationError as exc:
        return f"Error: {exc.message}"

    d.records = new_records
    d.hidden_groups = hidden
    for key, value in flags.items():
        setattr(d, key, value)
    try:
        summary = await _render(name, d, settings)
    except GroupGraphError as exc:
        return f"Error: {exc.message}"
    return json.dumps(summary, indent=2)


# ===================================================================
# TOOL 2: layout (positioning)
# ===================================================================

@mcp.tool()
async def layout(
    action: str,
    name: str = "",
    direction: str = "TB",
    node_spacing: float = 0,
    options: Optional[dict[str, Any]] = None,
) -> str:
    """Lay out the rendered diagram from scratch.

    Actions:
      auto               — Compact layout: groups stacked, members in a row (TB)
                           or column (LR). Params: name, direction.
      compact            — Same as auto.
      force_directed     — Order-biased force-directed layout. Params: name, options
                           (node_separation, node_repulsion, gravity,
                           gravity_compound, ideal_edge_length, num_iter).
      hierarchical       — Rank-based layout. Params: name, direction, options
                           (node_sep, rank_sep).
      compact_vertical   — Brick-pack groups into rows.
      compact_horizontal — Brick-pack groups into columns.
      spacing            — Set extra node spacing (0-100) and re-run the
                           layout the diagram was last laid out with.
                           Params: name, node_spacing.

    Returns:
        JSON with the algorithm that produced the result.
    """
    try:
        action = validate_action(action, "layout", _LAYOUT_ACTIONS)
        d = _get(name)
        direction = validate_direction(direction)
        opts = validate_options(options)
    except (ValidationError, GroupGraphError) as exc:
        return f"Error: {exc.message}"

    session = d.session
    try:
        if action in ("auto", "compact"):
            algorithm = session.run_auto_layout(direction)
        elif action == "compact_vertical":
            algorithm = session.run_compact_vertical_layout()
        elif action == "compact_horizontal":
            algorithm = session.run_compact_horizontal_layout()
        elif action == "force_directed":
            algorithm = await session.run_force_directed_layout(opts)
        elif action == "hierarchical":
            algorithm = await session.run_hierarchical_layout(direction, opts)
        elif action == "spacing":
            spacing = session.set_node_spacing(validate_spacing(node_spacing))
            algorithm = await _rerun(session, direction)
            return json.dumps({
                "node_padding": spacing.node_padding,
                "group_gap": spacing.group_gap,
                "algorithm": algorithm,
            }, indent=2)
        else:
            return f"Error: unknown layout action '{action}'."
    except (ValidationError, GroupGraphError) as exc:
        return f"Error: {exc.message}"

    if algorithm is None:
        return "Layout superseded by a newer layout request."
    return json.dumps({"algorithm": algorithm, "zoom": session.get_zoom()}, indent=2)


async def _rerun(session: DiagramSession, direction: str) -> Optional[str]:
    last = session.last_algorithm or session.settings.layout
    if last == "compact-vertical":
        return session.run_compact_vertical_layout()
    if last == "compact-horizontal":
        return session.run_compact_horizontal_layout()
    if last.startswith("hierarchical"):
        return await session.run_hierarchical_layout(last.rsplit("-", 1)[1])
    if last == "force-directed":
        return await session.run_force_directed_layout()
    if last.startswith("compact-"):
        return session.run_auto_layout(last.rsplit("-", 1)[1])
    return session.run_auto_layout(direction)


# ===================================================================
# TOOL 3: view (camera)
# ===================================================================

@mcp.tool()
def view(
    action: str,
    name: str = "",
    percent: float = 100,
    dx: float = 0,
    dy: float = 0,
    padding: float = 50,
) -> str:
    """Viewport control.

    Actions:
      fit      — Fit all elements on screen. Params: name, padding.
      zoom     — Set zoom percentage (10-500) and centre. Params: name, percent.
      get_zoom — Current zoom percentage.
      pan      — Move the view by dx, dy screen pixels.
      reset    — Fit with the default padding.
    """
    try:
        action = validate_action(action, "view", _VIEW_ACTIONS)
        d = _get(name)
    except (ValidationError, GroupGraphError) as exc:
        return f"Error: {exc.message}"
    session = d.session

    try:
        if action == "fit":
            return _viewport_json(session.fit_to_screen(validate_number(padding, "padding", min_val=0)))
        elif action == "zoom":
            return _viewport_json(session.set_zoom(validate_zoom(percent)))
        elif action == "get_zoom":
            return str(session.get_zoom())
        elif action == "pan":
            return _viewport_json(session.pan(validate_number(dx, "dx"), validate_number(dy, "dy")))
        elif action == "reset":
            return _viewport_json(session.reset_view())
    except ValidationError as exc:
        return f"Error: {exc.message}"
    return f"Error: unknown view action '{action}'. Use: fit, zoom, get_zoom, pan, reset."


# ===================================================================
# TOOL 4: interact (canvas events)
# ===================================================================

@mcp.tool()
def interact(
    action: str,
    name: str = "",
    element_id: str = "",
    x: Optional[float] = None,
    y: Optional[float] = None,
) -> str:
    """Feed canvas events into the diagram.

    Actions:
      drag     — Move an element to (x, y) as one drag step; neighbours that
                 come too close are pushed away. Params: name, element_id, x, y.
      drag_end — Release the element (optionally at x, y) and store its position.
      context  — Describe an element as a secondary click would.

    Returns:
        JSON describing what moved / the element.
    """
    try:
        action = validate_action(action, "interact", _INTERACT_ACTIONS)
        d = _get(name)
        element_id = validate_non_empty_string(element_id, "element_id")
        if action == "drag":
            if x is None or y is None:
                raise ValidationError("'drag' requires both 'x' and 'y'.")
            x = validate_number(x, "x")
            y = validate_number(y, "y")
    except (ValidationError, GroupGraphError) as exc:
        return f"Error: {exc.message}"
    session = d.session

    try:
        if action == "drag":
            moved = session.on_drag(element_id, x, y)
            return json.dumps({
                "id": element_id,
                "moved": {eid: session.handle.positions[eid].to_dict() for eid in moved},
            }, indent=2)
        elif action == "drag_end":
            pos = session.on_drag_end(element_id, x, y)
            return json.dumps({"id": element_id, "position": pos.to_dict()}, indent=2)
        elif action == "context":
            return json.dumps(session.on_context_click(element_id), indent=2)
    except GroupGraphError as exc:
        return f"Error: {exc.message}"
    return f"Error: unknown interact action '{action}'. Use: drag, drag_end, context."


# ===================================================================
# TOOL 5: inspect (read-only)
# ===================================================================

@mcp.tool()
def inspect(
    action: str,
    name: str = "",
    margin: float = 0,
) -> str:
    """Read-only inspection of a rendered diagram.

    Actions:
      elements    — Groups, nodes, labels, clones and edges with positions.
      positions   — Stored positions {id: {x, y}}.
      visible_ids — Record ids currently drawn (multiplexer clones map back
                    to their record id).
      overlaps    — Pairs of elements closer than margin. Params: name, margin.
      info        — Diagram summary.
    """
    try:
        action = validate_action(action, "inspect", _INSPECT_ACTIONS)
        d = _get(name)
        margin = validate_number(margin, "margin", min_val=0)
    except (ValidationError, GroupGraphError) as exc:
        return f"Error: {exc.message}"
    session = d.session

    if action == "info":
        info = session.info()
        info["name"] = name
        info["records"] = len(d.records)
        return json.dumps(info, indent=2)

    if action == "positions":
        return json.dumps(
            {eid: session.store.get(eid).to_dict() for eid in sorted(session.store.ids())},
            indent=2,
        )

    if session.handle is None:
        return f"Error: diagram '{name}' has not been rendered."

    if action == "elements":
        return json.dumps(session.handle.elements(), indent=2)

    elif action == "visible_ids":
        return json.dumps(sorted(session.get_visible_node_ids()), indent=2)

    elif action == "overlaps":
        overlaps = session.find_overlaps(margin)
        if not overlaps:
            return "No overlaps found. Diagram is clean!"
        scene = session.handle.scene
        report = [{"a": a, "label_a": scene.get(a).text,
                   "b": b, "label_b": scene.get(b).text}
                  for a, b in overlaps]
        return json.dumps(report, indent=2)

    else:
        return f"Error: unknown inspect action '{action}'. Use: elements, positions, visible_ids, overlaps, info."


# ===================================================================
# Entry point
# ===================================================================

def main() -> None:
    """Run the MCP server."""
    mcp.run()


if __name__ == "__main__":
    main()
