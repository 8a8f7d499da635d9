"""
Core data model for grouped node-link diagrams.

Input rows (:class:`Record`) are immutable; the scene graph built from them is a
compound graph of groups, group labels, plain nodes, multiplexer clusters and
edges. Positions are centre coordinates, as the canvas renderer reports them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Optional


# ---------------------------------------------------------------------------
# Enums / constants
# ---------------------------------------------------------------------------

MUX_SUFFIX = " MUX"
UNGROUPED = "Ungrouped"

NODE_HEIGHT = 22.0
MIN_NODE_WIDTH = 20.0


class LinkArrow(Enum):
    TO = "To"
    FROM = "From"
    BOTH = "Both"
    NONE = "None"


class ElementKind(Enum):
    GROUP = "group"
    MUX_CLUSTER = "mux_cluster"
    GROUP_LABEL = "group_label"
    NODE = "node"
    MUX_CLONE = "mux_clone"
    EDGE = "edge"


# Column names used by the spreadsheet front-end for the same fields.
_COLUMN_ALIASES: dict[str, str] = {
    "Group_xA": "group",
    "Node_xA": "node",
    "ID_xA": "id",
    "Linked_Node_ID_xA": "linked_id",
    "Hidden_Node_xB": "hidden_node",
    "Hidden_Link_xB": "hidden_link",
    "Link_Label_xB": "link_label",
    "Link_Arrow_xB": "link_arrow",
}


def _as_flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes")
    return bool(value)


# ---------------------------------------------------------------------------
# Input records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Record:
    """One input row: a node inside a group, optionally linking to another row."""
    group: str
    node: str
    id: str = ""
    linked_id: str = ""
    hidden_node: bool = False
    hidden_link: bool = False
    link_label: str = ""
    link_arrow: LinkArrow = LinkArrow.TO

    def __post_init__(self) -> None:
        if not self.id and (self.group or self.node):
            object.__setattr__(self, "id", f"{self.group}-{self.node}")

    @property
    def is_malformed(self) -> bool:
        return not self.group and not self.node

    @property
    def group_name(self) -> str:
        return self.group or UNGROUPED

    @property
    def is_multiplexer(self) -> bool:
        return self.node.endswith(MUX_SUFFIX)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Record:
        """Build a record from snake_case keys or spreadsheet column names."""
        values: dict[str, Any] = {}
        for key, value in data.items():
            name = _COLUMN_ALIASES.get(key, key)
            if name in cls.__dataclass_fields__:
                values[name] = value
        arrow = values.get("link_arrow") or LinkArrow.TO
        if not isinstance(arrow, LinkArrow):
            arrow = LinkArrow(str(arrow))
        return cls(
            group=str(values.get("group") or ""),
            node=str(values.get("node") or ""),
            id=str(values.get("id") or ""),
            linked_id=str(values.get("linked_id") or ""),
            hidden_node=_as_flag(values.get("hidden_node", False)),
            hidden_link=_as_flag(values.get("hidden_link", False)),
            link_label=str(values.get("link_label") or ""),
            link_arrow=arrow,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "group": self.group,
            "node": self.node,
            "id": self.id,
            "linked_id": self.linked_id,
            "hidden_node": self.hidden_node,
            "hidden_link": self.hidden_link,
            "link_label": self.link_label,
            "link_arrow": self.link_arrow.value,
        }


# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------

@dataclass
class Position:
    """Centre of an element in canvas coordinates."""
    x: float
    y: float

    def copy(self) -> Position:
        return Position(self.x, self.y)

    def to_dict(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y}


@dataclass
class Bounds:
    """Axis-aligned bounding box."""
    x: float
    y: float
    width: float
    height: float

    @classmethod
    def around(cls, pos: Position, width: float, height: float) -> Bounds:
        return cls(pos.x - width / 2, pos.y - height / 2, width, height)

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def cx(self) -> float:
        return self.x + self.width / 2

    @property
    def cy(self) -> float:
        return self.y + self.height / 2

    def gap_to(self, other: Bounds) -> float:
        """Largest axis gap between the boxes; negative when they overlap."""
        gap_x = max(other.x - self.right, self.x - other.right)
        gap_y = max(other.y - self.bottom, self.y - other.bottom)
        return max(gap_x, gap_y)

    def intersects(self, other: Bounds, margin: float = 0) -> bool:
        """Check if two boxes overlap, or come closer than *margin*."""
        return not (
            self.right + margin <= other.x
            or other.right + margin <= self.x
            or self.bottom + margin <= other.y
            or other.bottom + margin <= self.y
        )

    def union(self, other: Bounds) -> Bounds:
        x = min(self.x, other.x)
        y = min(self.y, other.y)
        return Bounds(x, y, max(self.right, other.right) - x, max(self.bottom, other.bottom) - y)

    def to_dict(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


def union_bounds(boxes: Iterable[Bounds]) -> Optional[Bounds]:
    result: Optional[Bounds] = None
    for box in boxes:
        result = box if result is None else result.union(box)
    return result


def estimate_size(label: str) -> tuple[float, float]:
    """Estimate the painted size of a one-line label (10px font, 3px padding)."""
    return max(MIN_NODE_WIDTH, len(label) * 6 + 8), NODE_HEIGHT


# ---------------------------------------------------------------------------
# Scene elements
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SceneElement:
    id: str

    @property
    def kind(self) -> ElementKind:
        raise NotImplementedError

    @property
    def parent(self) -> Optional[str]:
        return None

    @property
    def text(self) -> str:
        return ""


@dataclass(frozen=True)
class Group(SceneElement):
    """Compound container, one per distinct group name."""
    name: str
    display_order: int

    @property
    def kind(self) -> ElementKind:
        return ElementKind.GROUP


@dataclass(frozen=True)
class MuxCluster(Group):
    """Fixed-size group holding one label and one multiplexer clone."""
    mux_id: str
    origin_group: str
    dest_group: str

    @property
    def kind(self) -> ElementKind:
        return ElementKind.MUX_CLUSTER


@dataclass(frozen=True)
class GroupLabel(SceneElement):
    """Virtual first child of a group carrying its visible title."""
    parent_id: str
    title: str

    @property
    def kind(self) -> ElementKind:
        return ElementKind.GROUP_LABEL

    @property
    def parent(self) -> Optional[str]:
        return self.parent_id

    @property
    def text(self) -> str:
        return self.title


@dataclass(frozen=True)
class PlainNode(SceneElement):
    parent_id: str
    label: str
    is_linked: bool = False

    @property
    def kind(self) -> ElementKind:
        return ElementKind.NODE

    @property
    def parent(self) -> Optional[str]:
        return self.parent_id

    @property
    def text(self) -> str:
        return self.label


@dataclass(frozen=True)
class MuxClone(SceneElement):
    """Stand-in for a multiplexer node inside one destination-scoped cluster."""
    parent_id: str
    original_id: str
    label: str

    @property
    def kind(self) -> ElementKind:
        return ElementKind.MUX_CLONE

    @property
    def parent(self) -> Optional[str]:
        return self.parent_id

    @property
    def text(self) -> str:
        return self.label


@dataclass(frozen=True)
class Edge:
    id: str
    source: str
    target: str
    label: str = ""
    arrow: LinkArrow = LinkArrow.TO

    @property
    def kind(self) -> ElementKind:
        return ElementKind.EDGE


# ---------------------------------------------------------------------------
# Scene graph
# ---------------------------------------------------------------------------

@dataclass
class SceneGraph:
    """Derived compound graph; rebuilt from records on every render."""
    groups: list[Group] = field(default_factory=list)
    elements: list[SceneElement] = field(default_factory=list)
    edges: list[Edge] = field(default_factory=list)
    linked_ids: frozenset[str] = frozenset()

    _by_id: dict[str, SceneElement] = field(default_factory=dict, init=False, repr=False)
    _children: dict[str, list[SceneElement]] = field(default_factory=dict, init=False, repr=False)
    _adjacency: dict[str, list[str]] = field(default_factory=dict, init=False, repr=False)

    def __post_init__(self) -> None:
        for group in self.groups:
            self._by_id[group.id] = group
            self._children[group.id] = []
        for element in self.elements:
            self._by_id[element.id] = element
            if element.parent is not None:
                self._children.setdefault(element.parent, []).append(element)
        for edge in self.edges:
            self._adjacency.setdefault(edge.source, []).append(edge.target)
            self._adjacency.setdefault(edge.target, []).append(edge.source)

    # ----- lookups -----

    def get(self, element_id: str) -> Optional[SceneElement]:
        return self._by_id.get(element_id)

    def has(self, element_id: str) -> bool:
        return element_id in self._by_id

    @property
    def group_order(self) -> list[str]:
        return [g.id for g in self.groups]

    def children(self, group_id: str) -> list[SceneElement]:
        return list(self._children.get(group_id, []))

    def label_for(self, group_id: str) -> Optional[GroupLabel]:
        for child in self._children.get(group_id, []):
            if isinstance(child, GroupLabel):
                return child
        return None

    def members(self, group_id: str) -> list[SceneElement]:
        """Children of a group other than its label, in table order."""
        return [c for c in self._children.get(group_id, []) if not isinstance(c, GroupLabel)]

    def neighbors(self, element_id: str) -> list[str]:
        return list(self._adjacency.get(element_id, []))

    def non_group_ids(self) -> list[str]:
        return [e.id for e in self.elements]

    def labels(self) -> list[GroupLabel]:
        return [e for e in self.elements if isinstance(e, GroupLabel)]

    def visible_node_ids(self) -> set[str]:
        """Record ids drawn on the canvas (groups and labels excluded)."""
        ids: set[str] = set()
        for element in self.elements:
            if isinstance(element, PlainNode):
                ids.add(element.id)
            elif isinstance(element, MuxClone):
                ids.add(element.original_id)
        return ids

    # ----- geometry -----

    def size_of(self, element_id: str) -> tuple[float, float]:
        element = self._by_id.get(element_id)
        return estimate_size(element.text if element else "")

    def bounds_of(self, element_id: str, positions: dict[str, Position]) -> Bounds:
        w, h = self.size_of(element_id)
        return Bounds.around(positions[element_id], w, h)

    def group_bounds(
        self,
        group_id: str,
        positions: dict[str, Position],
        include_label: bool = True,
    ) -> Optional[Bounds]:
        children = self.children(group_id) if include_label else self.members(group_id)
        return union_bounds(
            self.bounds_of(c.id, positions) for c in children if c.id in positions
        )

    def content_bounds(
        self,
        positions: dict[str, Position],
        include_labels: bool = True,
    ) -> Optional[Bounds]:
        return union_bounds(
            self.bounds_of(e.id, positions)
            for e in self.elements
            if e.id in positions and (include_labels or not isinstance(e, GroupLabel))
        )
