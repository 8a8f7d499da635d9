"""Exceptions raised by the layout engine and diagram sessions."""

from __future__ import annotations


class GroupGraphError(Exception):
    """Base class for engine errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ContainerNotFound(GroupGraphError):
    """Raised when a render targets a surface that was never attached."""

    def __init__(self, container_id: str) -> None:
        self.container_id = container_id
        super().__init__(f"Container '{container_id}' not found.")


class LayoutSolverError(GroupGraphError):
    """Raised by a layout solver that cannot produce positions."""
