"""
Diagram sessions: render records, run layouts, react to canvas events.

A :class:`DiagramSession` owns one :class:`PositionStore` and the handle of
the last render. Painting is delegated to a :class:`Surface` registered under a
container id; the server uses :class:`HeadlessSurface`, which only records what
was painted.

Free-form layouts are coroutines: they paint a table-order pre-layout, wait
``settle_delay`` seconds, then run the solver. Every layout invocation takes a
generation token, and a run whose token is no longer current when it resumes
discards its result instead of overwriting a newer layout.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Protocol

from groupgraph_mcp.builder import build_scene_graph
from groupgraph_mcp.collision import CollisionResolver, DragSession
from groupgraph_mcp.errors import ContainerNotFound, GroupGraphError
from groupgraph_mcp.layout import (
    LayoutConfig,
    LayoutSpacing,
    brick_layout,
    compact_layout,
    place_incremental,
)
from groupgraph_mcp.layout_engine import LayoutEngine
from groupgraph_mcp.models import (
    Group,
    MuxClone,
    Position,
    Record,
    SceneGraph,
    union_bounds,
)
from groupgraph_mcp.positions import PositionStore

logger = logging.getLogger("groupgraph-mcp.session")


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

CURVE_STYLES: dict[str, str] = {
    "basis": "unbundled-bezier",
    "linear": "straight",
    "step": "taxi",
}

LAYOUT_KINDS = (
    "force-directed",
    "hierarchical-TB",
    "hierarchical-LR",
    "compact-TB",
    "compact-LR",
    "compact-vertical",
    "compact-horizontal",
)


@dataclass
class Settings:
    direction: str = "TB"
    curve: str = "basis"
    layout: str = "force-directed"
    node_spacing: float = 0


# ---------------------------------------------------------------------------
# Viewport and surfaces
# ---------------------------------------------------------------------------

@dataclass
class Viewport:
    """Camera over the canvas: screen = model * zoom + pan."""
    width: float = 1200
    height: float = 800
    zoom: float = 1.0
    pan_x: float = 0.0
    pan_y: float = 0.0

    def to_dict(self) -> dict[str, float]:
        return {
            "width": self.width,
            "height": self.height,
            "zoom": self.zoom,
            "pan_x": self.pan_x,
            "pan_y": self.pan_y,
        }


@dataclass
class SceneHandle:
    """What the last render produced; positions are the live painted ones."""
    container_id: str
    scene: SceneGraph
    positions: dict[str, Position]
    viewport: Viewport
    curve_style: str = "unbundled-bezier"
    hide_links: bool = False
    hide_link_labels: bool = False

    def elements(self) -> list[dict[str, Any]]:
        """Flat, JSON-friendly view of the scene (groups first)."""
        out: list[dict[str, Any]] = []
        for group in self.scene.groups:
            entry: dict[str, Any] = {"id": group.id, "kind": group.kind.value, "name": group.name}
            box = self.scene.group_bounds(group.id, self.positions)
            if box is not None:
                entry["bounds"] = box.to_dict()
            out.append(entry)
        for element in self.scene.elements:
            entry = {
                "id": element.id,
                "kind": element.kind.value,
                "parent": element.parent,
                "text": element.text,
            }
            if element.id in self.positions:
                entry["position"] = self.positions[element.id].to_dict()
            out.append(entry)
        for edge in self.scene.edges:
            out.append({
                "id": edge.id,
                "kind": edge.kind.value,
                "source": edge.source,
                "target": edge.target,
                "label": "" if self.hide_link_labels else edge.label,
                "arrow": edge.arrow.value,
                "curve": self.curve_style,
            })
        return out


class Surface(Protocol):
    width: float
    height: float

    def paint(self, handle: SceneHandle) -> None:
        ...


class HeadlessSurface:
    """Surface that records paints instead of drawing them."""

    def __init__(self, width: float = 1200, height: float = 800):
        self.width = width
        self.height = height
        self.paint_count = 0
        self.last_positions: dict[str, Position] = {}

    def paint(self, handle: SceneHandle) -> None:
        self.paint_count += 1
        self.last_positions = {k: v.copy() for k, v in handle.positions.items()}


Listener = Callable[[str, dict[str, Any]], None]


def _log_layout_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Scheduled layout failed: %s", exc, exc_info=exc)


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

class DiagramSession:
    def __init__(
        self,
        config: Optional[LayoutConfig] = None,
        engine: Optional[LayoutEngine] = None,
    ):
        self.config = config or LayoutConfig()
        self.engine = engine or LayoutEngine(self.config)
        self.store = PositionStore()
        self.resolver = CollisionResolver(
            padding=self.config.collision_padding,
            max_iterations=self.config.collision_ceiling,
        )
        self.settings = Settings()
        self.spacing = LayoutSpacing.from_extra(0, self.config)
        self.handle: Optional[SceneHandle] = None
        self.last_algorithm: Optional[str] = None

        self._surfaces: dict[str, Surface] = {}
        self._listeners: list[Listener] = []
        self._drag: Optional[DragSession] = None
        self._generation = 0
        self._pending: Optional[asyncio.Task] = None

    # ----- surfaces and listeners -----

    def attach_surface(self, container_id: str, surface: Surface) -> None:
        self._surfaces[container_id] = surface

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit(self, event: str, payload: dict[str, Any]) -> None:
        for listener in list(self._listeners):
            listener(event, payload)

    def _paint(self) -> None:
        if self.handle is None:
            return
        surface = self._surfaces.get(self.handle.container_id)
        if surface is not None:
            surface.paint(self.handle)

    def _commit(self) -> None:
        """Write every live non-group position to the store and repaint."""
        if self.handle is None:
            return
        self.store.snapshot_non_group_positions(self.handle.scene, self.handle.positions)
        self._paint()

    def _next_generation(self) -> int:
        self._generation += 1
        return self._generation

    @property
    def links_hidden(self) -> bool:
        return self.handle.hide_links if self.handle else False

    # ----- render -----

    def render(
        self,
        records: list[Record],
        settings: Optional[Settings] = None,
        hidden_groups: Optional[list[str]] = None,
        hide_unlinked_nodes: bool = False,
        hide_linked_nodes: bool = False,
        hide_links: bool = False,
        hide_link_labels: bool = False,
        container_id: str = "default",
    ) -> SceneHandle:
        """Build the scene and position it, keeping stored positions.

        The first render (empty store) runs ``settings.layout``; later renders
        only place elements that have no stored position yet.
        """
        surface = self._surfaces.get(container_id)
        if surface is None:
            raise ContainerNotFound(container_id)
        if settings is not None:
            self.settings = settings
            self.spacing = LayoutSpacing.from_extra(settings.node_spacing, self.config)

        if self.handle is not None:
            self.store.snapshot_non_group_positions(self.handle.scene, self.handle.positions)
        self._next_generation()

        scene = build_scene_graph(
            records,
            hidden_groups=hidden_groups,
            hide_unlinked_nodes=hide_unlinked_nodes,
            hide_linked_nodes=hide_linked_nodes,
            hide_links=hide_links,
        )
        first_layout = self.store.is_empty()
        positions: dict[str, Position] = {}
        for eid in scene.non_group_ids():
            pos = self.store.get(eid)
            if pos is not None:
                positions[eid] = pos
        new_ids = [eid for eid in scene.non_group_ids() if eid not in positions]

        viewport = self.handle.viewport if self.handle else Viewport(surface.width, surface.height)
        self.handle = SceneHandle(
            container_id=container_id,
            scene=scene,
            positions=positions,
            viewport=viewport,
            curve_style=CURVE_STYLES.get(self.settings.curve, "unbundled-bezier"),
            hide_links=hide_links,
            hide_link_labels=hide_link_labels,
        )

        if first_layout:
            self._first_layout()
        elif new_ids:
            place_incremental(scene, positions, new_ids, self.config)

        self._commit()
        return self.handle

    def _first_layout(self) -> None:
        kind = self.settings.layout
        if kind == "compact-TB":
            self.run_auto_layout("TB")
        elif kind == "compact-LR":
            self.run_auto_layout("LR")
        elif kind == "compact-vertical":
            self.run_compact_vertical_layout()
        elif kind == "compact-horizontal":
            self.run_compact_horizontal_layout()
        elif kind in ("hierarchical-TB", "hierarchical-LR"):
            direction = kind.rsplit("-", 1)[1]
            self.run_auto_layout(direction)
            self._schedule(lambda: self.run_hierarchical_layout(direction))
        else:
            # Force-directed needs seed positions: compact first, refine later
            self.run_auto_layout("TB")
            self._schedule(self.run_force_directed_layout)

    def _schedule(self, start: Callable[[], Any]) -> None:
        """Run a layout coroutine after the current call returns.

        The run is dropped if any other layout or render happens first. Without
        a running event loop the coroutine is run to completion immediately.
        Under a running loop it becomes a task; await :meth:`wait_for_layout`
        to collect it. A task still pending from an earlier render is cancelled.
        """
        token = self._generation

        async def deferred() -> Optional[str]:
            if token != self._generation:
                logger.debug("Dropping scheduled layout (token %d, current %d)", token, self._generation)
                return None
            return await start()

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            asyncio.run(deferred())
            return
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._pending = loop.create_task(deferred())
        self._pending.add_done_callback(_log_layout_failure)

    async def wait_for_layout(self) -> Optional[str]:
        """Await a layout scheduled by :meth:`render`, if one is pending.

        Returns the algorithm the scheduled run produced, or None when nothing
        was pending or the run was superseded.
        """
        pending, self._pending = self._pending, None
        if pending is None or pending.cancelled():
            return None
        return await pending

    def clear_positions(self) -> None:
        """Forget every stored position and the current scene."""
        self._next_generation()
        self.store.clear()
        self.handle = None
        self._drag = None
        self.last_algorithm = None

    # ----- layouts -----

    def _require_handle(self) -> SceneHandle:
        if self.handle is None:
            raise GroupGraphError("Nothing has been rendered yet.")
        return self.handle

    def _finish(self, algorithm: str) -> None:
        self.last_algorithm = algorithm
        self._commit()
        self.fit_to_screen(self.config.fit_padding)
        self._emit("layout", {"algorithm": algorithm})

    def run_auto_layout(self, direction: str = "TB") -> str:
        """Fresh compact layout in *direction*."""
        handle = self._require_handle()
        self._next_generation()
        self.store.clear()
        compact_layout(handle.scene, handle.positions, direction, self.spacing, self.config)
        self._finish(f"compact-{direction.upper()}")
        return self.last_algorithm

    def run_compact_vertical_layout(self) -> str:
        handle = self._require_handle()
        self._next_generation()
        self.store.clear()
        brick_layout(handle.scene, handle.positions, True, self.spacing, self.config)
        self._finish("compact-vertical")
        return self.last_algorithm

    def run_compact_horizontal_layout(self) -> str:
        handle = self._require_handle()
        self._next_generation()
        self.store.clear()
        brick_layout(handle.scene, handle.positions, False, self.spacing, self.config)
        self._finish("compact-horizontal")
        return self.last_algorithm

    async def _prelayout(self, direction: str) -> Optional[int]:
        """Paint the table-order seed, then yield; returns the token or None if stale."""
        handle = self._require_handle()
        token = self._next_generation()
        self.store.clear()
        self.engine.prelayout(handle.scene, handle.positions, direction, handle.hide_links)
        self._paint()
        await asyncio.sleep(self.config.settle_delay)
        if token != self._generation or self.handle is not handle:
            logger.debug("Discarding stale layout run (token %d, current %d)", token, self._generation)
            return None
        return token

    async def run_force_directed_layout(self, options: Optional[dict[str, Any]] = None) -> Optional[str]:
        """Order-biased force-directed layout; None when superseded by a newer call."""
        token = await self._prelayout("TB")
        if token is None:
            return None
        handle = self.handle
        work = {k: v.copy() for k, v in handle.positions.items()}
        algorithm = self.engine.force_directed(
            handle.scene, work, self.spacing, handle.hide_links, options,
        )
        handle.positions.clear()
        handle.positions.update(work)
        self._finish(algorithm)
        return algorithm

    async def run_hierarchical_layout(
        self,
        direction: str = "TB",
        options: Optional[dict[str, Any]] = None,
    ) -> Optional[str]:
        """Rank-based layout; None when superseded by a newer call."""
        direction = direction.upper()
        token = await self._prelayout(direction)
        if token is None:
            return None
        handle = self.handle
        work = {k: v.copy() for k, v in handle.positions.items()}
        algorithm = self.engine.hierarchical(
            handle.scene, work, direction, self.spacing, handle.hide_links, options,
        )
        handle.positions.clear()
        handle.positions.update(work)
        self._finish(algorithm if algorithm == "compact" else f"hierarchical-{direction}")
        return self.last_algorithm

    def set_node_spacing(self, extra: float) -> LayoutSpacing:
        """Set the 0-100 extra spacing used by the next layout run."""
        self.settings.node_spacing = max(0.0, min(100.0, float(extra)))
        self.spacing = LayoutSpacing.from_extra(self.settings.node_spacing, self.config)
        return self.spacing

    # ----- viewport -----

    def _clamp_zoom(self, zoom: float) -> float:
        return max(self.config.min_zoom, min(self.config.max_zoom, zoom))

    def fit_to_screen(self, padding: float = 50) -> Optional[Viewport]:
        """Zoom and pan so all non-group elements fit with *padding* pixels around."""
        if self.handle is None:
            return None
        handle = self.handle
        box = handle.scene.content_bounds(handle.positions)
        if box is None:
            return handle.viewport
        vp = handle.viewport
        avail_w = max(vp.width - 2 * padding, 1)
        avail_h = max(vp.height - 2 * padding, 1)
        vp.zoom = self._clamp_zoom(min(avail_w / max(box.width, 1), avail_h / max(box.height, 1)))
        vp.pan_x = vp.width / 2 - vp.zoom * box.cx
        vp.pan_y = vp.height / 2 - vp.zoom * box.cy
        return vp

    def set_zoom(self, percent: float) -> Optional[Viewport]:
        """Set zoom as a percentage and centre the content."""
        if self.handle is None:
            return None
        vp = self.handle.viewport
        vp.zoom = self._clamp_zoom(percent / 100)
        box = self.handle.scene.content_bounds(self.handle.positions)
        if box is not None:
            vp.pan_x = vp.width / 2 - vp.zoom * box.cx
            vp.pan_y = vp.height / 2 - vp.zoom * box.cy
        return vp

    def get_zoom(self) -> int:
        if self.handle is None:
            return 100
        return round(self.handle.viewport.zoom * 100)

    def pan(self, dx: float, dy: float) -> Optional[Viewport]:
        if self.handle is None:
            return None
        vp = self.handle.viewport
        vp.pan_x += dx
        vp.pan_y += dy
        return vp

    def reset_view(self) -> Optional[Viewport]:
        return self.fit_to_screen(50)

    # ----- queries -----

    def get_visible_node_ids(self) -> set[str]:
        if self.handle is None:
            return set()
        return self.handle.scene.visible_node_ids()

    # ----- events -----

    def _draggable(self, element_id: str) -> None:
        handle = self._require_handle()
        element = handle.scene.get(element_id)
        if element is None:
            raise GroupGraphError(f"Element '{element_id}' not found.")
        if isinstance(element, Group):
            raise GroupGraphError(f"'{element_id}' is a group; drag one of its members instead.")

    def on_drag(self, element_id: str, x: float, y: float) -> list[str]:
        """One drag step: move the element and push neighbours away.

        Pushed positions are written to the store on every step. Returns the
        ids moved by the resolver.
        """
        self._draggable(element_id)
        handle = self.handle
        if self._drag is None or self._drag.dragged_id != element_id:
            self._drag = self.resolver.begin_drag(element_id)
        handle.positions[element_id] = Position(x, y)

        result = self.resolver.resolve(self._drag, handle.scene, handle.positions)
        for eid in result.moved:
            self.store.set(eid, handle.positions[eid])
        if not result.converged:
            logger.debug("Drag of '%s' left residual overlaps after %d sweeps", element_id, result.iterations)
        self._paint()
        self._emit("drag", {"id": element_id, "moved": result.moved, "converged": result.converged})
        return result.moved

    def on_drag_end(self, element_id: str, x: Optional[float] = None, y: Optional[float] = None) -> Position:
        """Release: store the dragged element's final position."""
        self._draggable(element_id)
        handle = self.handle
        if x is not None and y is not None:
            handle.positions[element_id] = Position(x, y)
        pos = handle.positions.get(element_id)
        if pos is None:
            raise GroupGraphError(f"Element '{element_id}' has no position.")
        self.store.set(element_id, pos)
        self._drag = None
        self._paint()
        self._emit("drag_end", {"id": element_id, "position": pos.to_dict()})
        return pos.copy()

    def on_context_click(self, element_id: str) -> dict[str, Any]:
        """Describe the element under a secondary click and notify listeners."""
        handle = self._require_handle()
        scene = handle.scene
        element = scene.get(element_id)
        edge = next((e for e in scene.edges if e.id == element_id), None)
        if element is None and edge is None:
            raise GroupGraphError(f"Element '{element_id}' not found.")

        info: dict[str, Any] = {"id": element_id}
        if edge is not None:
            info.update(kind=edge.kind.value, source=edge.source, target=edge.target, label=edge.label)
        elif isinstance(element, Group):
            info.update(kind=element.kind.value, name=element.name,
                        members=[m.id for m in scene.members(element.id)])
        else:
            info.update(kind=element.kind.value, parent=element.parent, text=element.text)
            if isinstance(element, MuxClone):
                info["original_id"] = element.original_id
            if element_id in handle.positions:
                info["position"] = handle.positions[element_id].to_dict()
        self._emit("context", info)
        return info

    # ----- diagnostics -----

    def find_overlaps(self, padding: float = 0) -> list[tuple[str, str]]:
        """Pairs of positioned non-group elements closer than *padding*."""
        if self.handle is None:
            return []
        scene, positions = self.handle.scene, self.handle.positions
        ids = [eid for eid in scene.non_group_ids() if eid in positions]
        boxes = {eid: scene.bounds_of(eid, positions) for eid in ids}
        pairs: list[tuple[str, str]] = []
        for i in range(len(ids)):
            for j in range(i + 1, len(ids)):
                if boxes[ids[i]].intersects(boxes[ids[j]], margin=padding):
                    pairs.append((ids[i], ids[j]))
        return pairs

    def info(self) -> dict[str, Any]:
        if self.handle is None:
            return {"rendered": False, "stored_positions": len(self.store)}
        scene = self.handle.scene
        box = union_bounds(
            scene.bounds_of(eid, self.handle.positions)
            for eid in scene.non_group_ids() if eid in self.handle.positions
        )
        return {
            "rendered": True,
            "container": self.handle.container_id,
            "groups": len(scene.groups),
            "elements": len(scene.elements),
            "edges": len(scene.edges),
            "stored_positions": len(self.store),
            "algorithm": self.last_algorithm,
            "zoom": self.get_zoom(),
            "bounds": box.to_dict() if box else None,
            "settings": {
                "direction": self.settings.direction,
                "curve": self.settings.curve,
                "layout": self.settings.layout,
                "node_spacing": self.settings.node_spacing,
            },
        }
