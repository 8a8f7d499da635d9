"""Tests for records, geometry and the scene graph."""

import pytest

from groupgraph_mcp.builder import build_scene_graph
from groupgraph_mcp.models import (
    Bounds,
    ElementKind,
    GroupLabel,
    LinkArrow,
    Position,
    Record,
    estimate_size,
    union_bounds,
)


class TestRecord:
    def test_id_defaults_to_group_and_node(self) -> None:
        r = Record(group="A", node="1")
        assert r.id == "A-1"

    def test_explicit_id_kept(self) -> None:
        r = Record(group="A", node="1", id="custom")
        assert r.id == "custom"

    def test_malformed(self) -> None:
        assert Record(group="", node="").is_malformed
        assert not Record(group="", node="x").is_malformed

    def test_empty_group_is_ungrouped(self) -> None:
        assert Record(group="", node="x").group_name == "Ungrouped"

    def test_multiplexer_suffix(self) -> None:
        assert Record(group="A", node="Hub MUX").is_multiplexer
        assert not Record(group="A", node="MUX Hub").is_multiplexer
        assert not Record(group="A", node="HubMUX").is_multiplexer

    def test_from_dict_spreadsheet_columns(self) -> None:
        r = Record.from_dict({
            "Group_xA": "Net",
            "Node_xA": "Router",
            "ID_xA": "r1",
            "Linked_Node_ID_xA": "s1",
            "Hidden_Link_xB": "1",
            "Link_Label_xB": "Cat6",
            "Link_Arrow_xB": "Both",
        })
        assert r.group == "Net"
        assert r.node == "Router"
        assert r.id == "r1"
        assert r.linked_id == "s1"
        assert r.hidden_link is True
        assert r.link_label == "Cat6"
        assert r.link_arrow is LinkArrow.BOTH

    def test_from_dict_snake_case_and_defaults(self) -> None:
        r = Record.from_dict({"group": "G", "node": "N"})
        assert r.id == "G-N"
        assert r.link_arrow is LinkArrow.TO
        assert r.hidden_node is False

    def test_invalid_arrow_rejected(self) -> None:
        with pytest.raises(ValueError):
            Record.from_dict({"group": "G", "node": "N", "link_arrow": "Sideways"})

    def test_to_dict(self) -> None:
        d = Record(group="G", node="N", linked_id="G-M").to_dict()
        assert d["id"] == "G-N"
        assert d["linked_id"] == "G-M"
        assert d["link_arrow"] == "To"


class TestGeometry:
    def test_estimate_size(self) -> None:
        assert estimate_size("") == (20, 22)
        assert estimate_size("Router") == (44, 22)

    def test_bounds_around_centre(self) -> None:
        b = Bounds.around(Position(50, 20), 40, 10)
        assert (b.x, b.y, b.right, b.bottom) == (30, 15, 70, 25)
        assert (b.cx, b.cy) == (50, 20)

    def test_gap_to(self) -> None:
        a = Bounds(0, 0, 10, 10)
        assert a.gap_to(Bounds(12, 0, 10, 10)) == 2
        assert a.gap_to(Bounds(5, 5, 10, 10)) < 0

    def test_touching_boxes_do_not_intersect(self) -> None:
        a = Bounds(0, 0, 10, 10)
        b = Bounds(10, 0, 10, 10)
        assert not a.intersects(b)
        assert a.intersects(b, margin=3)

    def test_union(self) -> None:
        u = union_bounds([Bounds(0, 0, 10, 10), Bounds(20, 5, 10, 10)])
        assert u == Bounds(0, 0, 30, 15)
        assert union_bounds([]) is None

    def test_position_copy_is_independent(self) -> None:
        p = Position(1, 2)
        q = p.copy()
        q.x = 5
        assert p.x == 1


class TestSceneGraph:
    def _scene(self):
        return build_scene_graph([
            Record("A", "1"),
            Record("A", "2", linked_id="A-1"),
            Record("B", "3", linked_id="A-2"),
        ])

    def test_lookups(self) -> None:
        scene = self._scene()
        assert scene.group_order == ["group_A", "group_B"]
        assert scene.get("A-1").kind is ElementKind.NODE
        assert scene.has("label_A")
        assert scene.get("missing") is None

    def test_label_and_members(self) -> None:
        scene = self._scene()
        label = scene.label_for("group_A")
        assert isinstance(label, GroupLabel)
        assert label.text == "A"
        assert [m.id for m in scene.members("group_A")] == ["A-1", "A-2"]
        assert [c.id for c in scene.children("group_A")] == ["label_A", "A-1", "A-2"]

    def test_neighbors(self) -> None:
        scene = self._scene()
        assert sorted(scene.neighbors("A-2")) == ["A-1", "B-3"]

    def test_bounds_of_uses_label_size(self) -> None:
        scene = self._scene()
        positions = {"A-1": Position(100, 100)}
        b = scene.bounds_of("A-1", positions)
        assert b.width == 20
        assert b.height == 22

    def test_group_bounds_excluding_label(self) -> None:
        scene = self._scene()
        positions = {
            "label_A": Position(0, 0),
            "A-1": Position(100, 100),
            "A-2": Position(140, 100),
        }
        with_label = scene.group_bounds("group_A", positions)
        members = scene.group_bounds("group_A", positions, include_label=False)
        assert with_label.x < members.x
        assert members.x == 90
        assert members.right == 150

    def test_visible_node_ids_exclude_labels(self) -> None:
        scene = self._scene()
        assert scene.visible_node_ids() == {"A-1", "A-2", "B-3"}
