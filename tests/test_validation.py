"""Tests for input validation and record checking."""

import asyncio

import pytest

from groupgraph_mcp.models import LinkArrow, Record
from groupgraph_mcp.server import (
    _diagrams,
    diagram,
    interact,
    layout,
    view,
)
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
    validate_record_dict,
    validate_records,
    validate_spacing,
    validate_zoom,
    _DIAGRAM_ACTIONS,
    _LAYOUT_ACTIONS,
)


def setup_function() -> None:
    """Clear diagrams between tests."""
    _diagrams.clear()


def _diagram(**kwargs) -> str:
    return asyncio.run(diagram(**kwargs))


# ===================================================================
# Unit tests for primitive validators
# ===================================================================


class TestValidateNonEmptyString:
    def test_valid(self) -> None:
        assert validate_non_empty_string("  hello ", "f") == "hello"

    def test_empty(self) -> None:
        with pytest.raises(ValidationError, match="non-empty string"):
            validate_non_empty_string("   ", "f")

    def test_not_a_string(self) -> None:
        with pytest.raises(ValidationError):
            validate_non_empty_string(3, "f")


class TestValidateNumber:
    def test_range(self) -> None:
        assert validate_number(5, "n", min_val=0, max_val=10) == 5.0
        with pytest.raises(ValidationError, match=">= 0"):
            validate_number(-1, "n", min_val=0)
        with pytest.raises(ValidationError, match="<= 10"):
            validate_number(11, "n", max_val=10)

    def test_bool_rejected(self) -> None:
        with pytest.raises(ValidationError, match="must be a number"):
            validate_number(True, "n")


class TestMisc:
    def test_bool(self) -> None:
        assert validate_bool(False, "b") is False
        with pytest.raises(ValidationError):
            validate_bool("yes", "b")

    def test_list(self) -> None:
        assert validate_list([1], "l", min_length=1) == [1]
        with pytest.raises(ValidationError, match="at least 1"):
            validate_list([], "l", min_length=1)
        with pytest.raises(ValidationError, match="must be a list"):
            validate_list("x", "l")


# ===================================================================
# Domain validators
# ===================================================================


class TestValidateAction:
    def test_case_insensitive(self) -> None:
        assert validate_action("Render", "diagram", _DIAGRAM_ACTIONS) == "render"

    def test_unknown(self) -> None:
        with pytest.raises(ValidationError, match="Unknown layout action 'spin'"):
            validate_action("spin", "layout", _LAYOUT_ACTIONS)

    def test_missing(self) -> None:
        with pytest.raises(ValidationError, match="requires an 'action'"):
            validate_action("", "layout", _LAYOUT_ACTIONS)


class TestDomainValues:
    def test_direction(self) -> None:
        assert validate_direction("lr") == "LR"
        with pytest.raises(ValidationError, match="LR, TB"):
            validate_direction("BT")

    def test_curve(self) -> None:
        assert validate_curve("Step") == "step"
        with pytest.raises(ValidationError):
            validate_curve("wavy")

    def test_layout_kind(self) -> None:
        assert validate_layout_kind("COMPACT-tb") == "compact-TB"
        assert validate_layout_kind("force-directed") == "force-directed"
        with pytest.raises(ValidationError):
            validate_layout_kind("circle")

    def test_spacing(self) -> None:
        assert validate_spacing(50) == 50.0
        with pytest.raises(ValidationError):
            validate_spacing(101)

    def test_zoom(self) -> None:
        assert validate_zoom(10) == 10.0
        with pytest.raises(ValidationError):
            validate_zoom(5)

    def test_options(self) -> None:
        assert validate_options(None) == {}
        assert validate_options({"num_iter": 10}) == {"num_iter": 10}
        with pytest.raises(ValidationError, match="must be a scalar"):
            validate_options({"num_iter": [1, 2]})


# ===================================================================
# Records
# ===================================================================


class TestValidateRecords:
    def test_snake_case(self) -> None:
        r = validate_record_dict({"group": "G", "node": "N", "link_arrow": "Both"}, 0)
        assert r == Record("G", "N", link_arrow=LinkArrow.BOTH)

    def test_spreadsheet_columns(self) -> None:
        r = validate_record_dict({"Group_xA": "G", "Node_xA": "N"}, 0)
        assert r.id == "G-N"

    def test_not_a_dict(self) -> None:
        with pytest.raises(ValidationError, match="index 2 must be a dict"):
            validate_record_dict("row", 2)

    def test_empty_row_builds_malformed_record(self) -> None:
        r = validate_record_dict({"group": "", "node": ""}, 1)
        assert r.is_malformed

    def test_bad_arrow(self) -> None:
        with pytest.raises(ValidationError, match="invalid link_arrow"):
            validate_record_dict({"group": "G", "node": "N", "link_arrow": "Up"}, 0)

    def test_wrong_type(self) -> None:
        with pytest.raises(ValidationError, match="'node' must be a string"):
            validate_record_dict({"group": "G", "node": 5}, 0)

    def test_list(self) -> None:
        records = validate_records([{"group": "A", "node": "1"}, {"group": "A", "node": "2"}])
        assert [r.id for r in records] == ["A-1", "A-2"]


class TestCheckRecords:
    def test_clean(self) -> None:
        assert check_records([Record("A", "1"), Record("A", "2", linked_id="A-1")]) == []

    def test_missing_names(self) -> None:
        problems = check_records([{"group": "", "node": "x"}])
        assert problems == ["Row 1: Missing Group or Node name"]

    def test_duplicate_id(self) -> None:
        problems = check_records([Record("A", "1"), Record("A", "1")])
        assert problems == ["Duplicate ID: A-1"]

    def test_self_link(self) -> None:
        problems = check_records([Record("A", "1", linked_id="A-1")])
        assert 'Row 1: Node "A-1" links to itself' in problems

    def test_undefined_reference(self) -> None:
        problems = check_records([Record("A", "1", linked_id="ghost")])
        assert problems == ['Row 1: Reference to undefined node "ghost"']

    def test_hidden_link_not_checked(self) -> None:
        assert check_records([Record("A", "1", linked_id="ghost", hidden_link=True)]) == []

    def test_invalid_arrow(self) -> None:
        problems = check_records([{"group": "A", "node": "1", "link_arrow": "Up"}])
        assert problems == ['Row 1: Invalid arrow type "Up" (use: To, From, Both, None)']

    def test_long_names_are_warnings(self) -> None:
        problems = check_records([Record("G" * 51, "1", linked_id="missing")])
        assert problems[0].startswith("Row 1: Reference")
        assert problems[1] == "Row 1: Group name exceeds 50 characters"

    def test_cycle_warning(self) -> None:
        problems = check_records([
            Record("A", "1", linked_id="A-2"),
            Record("A", "2", linked_id="A-1"),
        ])
        assert problems == ["Warning: Graph contains circular references"]


# ===================================================================
# Integration: tools return errors instead of raising
# ===================================================================


class TestToolErrors:
    def test_unknown_diagram(self) -> None:
        assert view(action="fit", name="ghost").startswith("Error:")

    def test_bad_action(self) -> None:
        result = _diagram(action="explode", name="x")
        assert "Unknown diagram action 'explode'" in result

    def test_missing_name(self) -> None:
        assert "'name' must be a non-empty string" in _diagram(action="create")

    def test_bad_records(self) -> None:
        _diagram(action="create", name="v")
        result = _diagram(action="render", name="v", records=[{"group": "A", "node": 3}])
        assert result.startswith("Error:")

    def test_bad_direction(self) -> None:
        _diagram(action="create", name="v")
        result = asyncio.run(layout(action="auto", name="v", direction="diagonal"))
        assert "'direction' must be one of" in result

    def test_drag_needs_coordinates(self) -> None:
        _diagram(action="create", name="v")
        result = interact(action="drag", name="v", element_id="A-1", x=5)
        assert result == "Error: 'drag' requires both 'x' and 'y'."

    def test_layout_before_render(self) -> None:
        _diagram(action="create", name="v")
        result = asyncio.run(layout(action="auto", name="v"))
        assert result == "Error: Nothing has been rendered yet."
