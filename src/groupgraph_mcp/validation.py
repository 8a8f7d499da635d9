"""
Input validation for groupgraph MCP server tool parameters.

Provides reusable validators that produce clear error messages for all
parameters received from LLM callers, plus a row checker that reports
problems in a record table without rejecting it.
"""

from __future__ import annotations

from typing import Any, Union

from groupgraph_mcp.models import _COLUMN_ALIASES, LinkArrow, Record


# ---------------------------------------------------------------------------
# Validation result
# ---------------------------------------------------------------------------

class ValidationError(Exception):
    """Raised when input validation fails."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


# ---------------------------------------------------------------------------
# Primitive validators
# ---------------------------------------------------------------------------

def validate_non_empty_string(value: Any, field_name: str) -> str:
    """Ensure *value* is a non-empty string after stripping whitespace."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"'{field_name}' must be a non-empty string.")
    return value.strip()


def validate_string(value: Any, field_name: str, *, allow_empty: bool = True) -> str:
    if not isinstance(value, str):
        raise ValidationError(f"'{field_name}' must be a string, got {type(value).__name__}.")
    if not allow_empty and not value.strip():
        raise ValidationError(f"'{field_name}' must not be empty.")
    return value


def validate_number(
    value: Any,
    field_name: str,
    *,
    min_val: float | None = None,
    max_val: float | None = None,
) -> float:
    """Validate a numeric value and optional range."""
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        raise ValidationError(
            f"'{field_name}' must be a number, got {type(value).__name__}."
        )
    val = float(value)
    if min_val is not None and val < min_val:
        raise ValidationError(
            f"'{field_name}' must be >= {min_val}, got {val}."
        )
    if max_val is not None and val > max_val:
        raise ValidationError(
            f"'{field_name}' must be <= {max_val}, got {val}."
        )
    return val


def validate_bool(value: Any, field_name: str) -> bool:
    if not isinstance(value, bool):
        raise ValidationError(
            f"'{field_name}' must be a boolean, got {type(value).__name__}."
        )
    return value


def validate_list(value: Any, field_name: str, *, min_length: int = 0) -> list:
    """Ensure *value* is a list with at least *min_length* items."""
    if not isinstance(value, list):
        raise ValidationError(
            f"'{field_name}' must be a list, got {type(value).__name__}."
        )
    if len(value) < min_length:
        raise ValidationError(
            f"'{field_name}' must have at least {min_length} item(s), got {len(value)}."
        )
    return value


def validate_dict(value: Any, field_name: str) -> dict:
    if not isinstance(value, dict):
        raise ValidationError(
            f"'{field_name}' must be a dict/object, got {type(value).__name__}."
        )
    return value


# ---------------------------------------------------------------------------
# Composite / domain validators
# ---------------------------------------------------------------------------

_VALID_DIRECTIONS = {"TB", "LR"}
_VALID_CURVES = {"basis", "linear", "step"}
_VALID_LAYOUTS = {
    "force-directed", "hierarchical-TB", "hierarchical-LR",
    "compact-TB", "compact-LR", "compact-vertical", "compact-horizontal",
}

_DIAGRAM_ACTIONS = {"CREATE", "RENDER", "LOAD_DEMO", "LIST_DEMOS", "CLEAR", "LIST", "CHECK"}
_LAYOUT_ACTIONS = {
    "AUTO", "FORCE_DIRECTED", "HIERARCHICAL", "COMPACT",
    "COMPACT_VERTICAL", "COMPACT_HORIZONTAL", "SPACING",
}
_VIEW_ACTIONS = {"FIT", "ZOOM", "GET_ZOOM", "PAN", "RESET"}
_INTERACT_ACTIONS = {"DRAG", "DRAG_END", "CONTEXT"}
_INSPECT_ACTIONS = {"ELEMENTS", "POSITIONS", "VISIBLE_IDS", "OVERLAPS", "INFO"}

MAX_GROUP_LENGTH = 50
MAX_NODE_LENGTH = 50
MAX_LABEL_LENGTH = 100


def validate_action(value: Any, tool_name: str, allowed: set[str]) -> str:
    """Validate the action parameter for a tool."""
    if not isinstance(value, str) or not value.strip():
        choices = ", ".join(sorted(a.lower() for a in allowed))
        raise ValidationError(
            f"'{tool_name}' requires an 'action' parameter. Valid actions: {choices}."
        )
    normalized = value.strip().upper()
    if normalized not in allowed:
        choices = ", ".join(sorted(a.lower() for a in allowed))
        raise ValidationError(
            f"Unknown {tool_name} action '{value}'. Valid actions: {choices}."
        )
    return value.strip().lower()


def validate_direction(value: Any) -> str:
    """Validate a layout direction (TB or LR)."""
    if not isinstance(value, str):
        raise ValidationError(
            f"'direction' must be a string, got {type(value).__name__}."
        )
    normalized = value.strip().upper()
    if normalized not in _VALID_DIRECTIONS:
        raise ValidationError(f"'direction' must be one of [LR, TB], got '{value}'.")
    return normalized


def validate_curve(value: Any) -> str:
    if not isinstance(value, str) or value.strip().lower() not in _VALID_CURVES:
        choices = ", ".join(sorted(_VALID_CURVES))
        raise ValidationError(f"'curve' must be one of [{choices}], got '{value}'.")
    return value.strip().lower()


def validate_layout_kind(value: Any) -> str:
    """Validate a layout name, accepting any case for the direction suffix."""
    if isinstance(value, str):
        for kind in _VALID_LAYOUTS:
            if kind.lower() == value.strip().lower():
                return kind
    choices = ", ".join(sorted(_VALID_LAYOUTS))
    raise ValidationError(f"'layout' must be one of [{choices}], got '{value}'.")


def validate_spacing(value: Any) -> float:
    """Validate the extra node spacing (0..100)."""
    return validate_number(value, "node_spacing", min_val=0, max_val=100)


def validate_zoom(value: Any) -> float:
    """Validate a zoom percentage (10..500)."""
    return validate_number(value, "percent", min_val=10, max_val=500)


def validate_options(value: Any, field_name: str = "options") -> dict[str, Any]:
    """Validate solver option overrides (string keys, scalar values)."""
    if value is None:
        return {}
    validate_dict(value, field_name)
    for k, v in value.items():
        if not isinstance(k, str):
            raise ValidationError(f"'{field_name}' keys must be strings, got {type(k).__name__}.")
        if not isinstance(v, (int, float, str, bool)):
            raise ValidationError(
                f"'{field_name}' value for '{k}' must be a scalar, got {type(v).__name__}."
            )
    return value


# ---------------------------------------------------------------------------
# Record validators
# ---------------------------------------------------------------------------

def _canonical(row: dict[str, Any]) -> dict[str, Any]:
    return {_COLUMN_ALIASES.get(k, k): v for k, v in row.items()}


def validate_record_dict(r: Any, index: int) -> Record:
    """Validate a single record dict and build the record.

    Rows with neither a group nor a node still build; the scene builder skips
    them and :func:`check_records` reports them.
    """
    if not isinstance(r, dict):
        raise ValidationError(f"Record at index {index} must be a dict/object.")
    row = _canonical(r)
    for key in ("group", "node", "id", "linked_id", "link_label"):
        if key in row and row[key] is not None and not isinstance(row[key], str):
            raise ValidationError(f"Record at index {index}: '{key}' must be a string.")
    arrow = row.get("link_arrow")
    if arrow and arrow not in {a.value for a in LinkArrow}:
        raise ValidationError(
            f"Record at index {index}: invalid link_arrow '{arrow}' (use: To, From, Both, None)."
        )
    return Record.from_dict(row)


def validate_records(value: Any) -> list[Record]:
    rows = validate_list(value, "records")
    return [validate_record_dict(r, i) for i, r in enumerate(rows)]


def check_records(rows: list[Union[Record, dict[str, Any]]]) -> list[str]:
    """Report problems in a record table: errors first, then warnings.

    Nothing is rejected; rendering drops malformed rows and dangling links on
    its own. This is the list a user sees before importing a table.
    """
    canonical = [r.to_dict() if isinstance(r, Record) else _canonical(r) for r in rows]
    for row in canonical:
        if not row.get("id") and (row.get("group") or row.get("node")):
            row["id"] = f"{row.get('group') or ''}-{row.get('node') or ''}"

    errors: list[str] = []
    warnings: list[str] = []
    defined = {row["id"] for row in canonical if row.get("id")}
    seen: set[str] = set()
    arrows = {a.value for a in LinkArrow}

    for index, row in enumerate(canonical):
        row_num = index + 1
        rid = row.get("id") or ""
        linked = row.get("linked_id") or ""

        if not row.get("group") or not row.get("node"):
            errors.append(f"Row {row_num}: Missing Group or Node name")
        if rid:
            if rid in seen:
                errors.append(f"Duplicate ID: {rid}")
            seen.add(rid)
        if linked and rid == linked:
            errors.append(f'Row {row_num}: Node "{rid}" links to itself')
        if linked and not row.get("hidden_link") and linked not in defined:
            errors.append(f'Row {row_num}: Reference to undefined node "{linked}"')
        arrow = row.get("link_arrow")
        if arrow and arrow not in arrows:
            errors.append(f'Row {row_num}: Invalid arrow type "{arrow}" (use: To, From, Both, None)')

        if len(row.get("group") or "") > MAX_GROUP_LENGTH:
            warnings.append(f"Row {row_num}: Group name exceeds {MAX_GROUP_LENGTH} characters")
        if len(row.get("node") or "") > MAX_NODE_LENGTH:
            warnings.append(f"Row {row_num}: Node name exceeds {MAX_NODE_LENGTH} characters")
        if len(row.get("link_label") or "") > MAX_LABEL_LENGTH:
            warnings.append(f"Row {row_num}: Link label exceeds {MAX_LABEL_LENGTH} characters")

    if _has_cycle(canonical):
        warnings.append("Warning: Graph contains circular references")
    return errors + warnings


def _has_cycle(rows: list[dict[str, Any]]) -> bool:
    """Detect a cycle in the visible link graph using iterative DFS."""
    graph: dict[str, list[str]] = {}
    for row in rows:
        rid = row.get("id") or ""
        graph.setdefault(rid, [])
        if row.get("linked_id") and not row.get("hidden_link"):
            graph[rid].append(row["linked_id"])

    WHITE, GRAY, BLACK = 0, 1, 2
    color: dict[str, int] = {}
    for start in graph:
        if color.get(start, WHITE) != WHITE:
            continue
        color[start] = GRAY
        stack: list[tuple[str, int]] = [(start, 0)]
        while stack:
            u, idx = stack[-1]
            neighbors = graph.get(u, [])
            if idx < len(neighbors):
                stack[-1] = (u, idx + 1)
                v = neighbors[idx]
                state = color.get(v, WHITE)
                if state == GRAY:
                    return True
                if state == WHITE:
                    color[v] = GRAY
                    stack.append((v, 0))
            else:
                color[u] = BLACK
                stack.pop()
    return False
