"""Exceptions raised by the layout core.

Every error here is a caller precondition violation; none of them leaves the
library in a broken state.
"""


class LayoutError(Exception):
    """Base class for all layout core errors."""


class DimensionMismatch(LayoutError, ValueError):
    """Two features from feature spaces of different dimensionality met."""

    def __init__(self, expected: int, got: int):
        super().__init__(f"feature dimension mismatch: expected {expected}, got {got}")
        self.expected = expected
        self.got = got


class NotFound(LayoutError, KeyError):
    """A feature was looked up in a graph that does not contain it."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the message readable
        return str(self.args[0]) if self.args else "feature not found"


class NotReady(LayoutError, RuntimeError):
    """A layout result was requested before it was computed."""


class TaskDiscarded(LayoutError, RuntimeError):
    """The task was superseded, torn down, or its graph changed while running."""
