"""Contains all global enumeration classes used throughout the project."""

from __future__ import annotations

from enum import Enum


class Direction(Enum):
    """Defines the cardinal directions used for pattern adjacency and grid movement.

    The values double as the index of the direction axis of the adjacency rules tensor, so their order (up, right,
    down, left) is also the order in which neighbors are visited.
    """

    UP = 0
    """Upward direction (towards row 0)."""
    RIGHT = 1
    """Right direction (towards higher column indices)."""
    DOWN = 2
    """Downward direction (towards higher row indices)."""
    LEFT = 3
    """Left direction (towards column 0)."""

    def reverse(self) -> Direction:
        """Returns the opposite direction of the current direction."""
        match self:
            case Direction.UP:
                return Direction.DOWN
            case Direction.RIGHT:
                return Direction.LEFT
            case Direction.DOWN:
                return Direction.UP
            case Direction.LEFT:
                return Direction.RIGHT

    def to_vector(self) -> tuple[int, int]:
        """Returns the (row, col) vector representation for the direction."""
        match self:
            case Direction.UP:
                return (-1, 0)
            case Direction.RIGHT:
                return (0, 1)
            case Direction.DOWN:
                return (1, 0)
            case Direction.LEFT:
                return (0, -1)

    @property
    def label(self) -> str:
        """The lowercase name used for this direction in persisted states."""
        return self.name.lower()

    @classmethod
    def from_label(cls, label: str) -> Direction:
        """Returns the direction for a persisted lowercase label (e.g. "up")."""
        return cls[label.upper()]


class AdjacencyMode(Enum):
    """Defines how the compatibility of two patterns is determined."""

    EDGE = "edge"
    """The facing edges (one row or column) of both patterns must be equal (default)."""
    OVERLAP = "overlap"
    """The (N-1)xN / Nx(N-1) overlap regions of both patterns must be equal (classic overlapping model)."""


class PropagationMode(Enum):
    """Defines how far the constraint of a collapsed cell is propagated."""

    FIXED_POINT = "fixed_point"
    """Keeps narrowing neighbors of every changed cell until no domain changes anymore (default)."""
    SINGLE_STEP = "single_step"
    """Only narrows the four direct neighbors of the collapsed cell."""


class RunStatus(Enum):
    """Defines the states of the run loop."""

    RUNNING = "running"
    """More ticks are needed."""
    COMPLETE = "complete"
    """All cells are collapsed."""
    FAILED = "failed"
    """Generation stopped because of a contradiction, the iteration cap or cancellation."""


class ExampleSample(Enum):
    """Defines the predefined sample grids for quick testing."""

    SIMPLE = "simple"
    """A simple room with a wall border and a single feature tile in its center."""
    CHECKERBOARD = "checkerboard"
    """An alternating pattern of two tiles."""
    DUNGEON = "dungeon"
    """A room with nested rings of floor tiles around a special tile."""
