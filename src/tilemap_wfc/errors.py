"""Contains the exception hierarchy raised by the WFC engine."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from tilemap_wfc.model.wfc_state import WFCState


class WFCError(Exception):
    """Base class for all errors raised by the WFC engine."""


class InvalidSample(WFCError, ValueError):
    """The sample grid is empty, non-rectangular, not integral, has negative tile ids or is smaller than the pattern
    size."""


class InvalidOutputSize(WFCError, ValueError):
    """The requested output grid has a non-positive width or height."""


class InvalidState(WFCError, ValueError):
    """A persisted WFC state could not be converted back into a consistent in-memory state."""


class Contradiction(WFCError):
    """A cell's domain became empty during propagation.

    Attributes:
        coords: The (x, y) coordinates of the cell whose domain became empty.
        state: The partially propagated state at the moment the contradiction was detected (useful for inspecting
            where generation failed), or None if it is not available.
    """

    coords: tuple[int, int]
    state: WFCState | None

    def __init__(self, coords: tuple[int, int], state: WFCState | None = None) -> None:
        super().__init__(f"Contradiction: cell ({coords[0]}, {coords[1]}) has no possible pattern left")
        self.coords = coords
        self.state = state


class MaxIterationsExceeded(WFCError):
    """The run loop used up its iterations before every cell was collapsed."""

    max_iterations: int

    def __init__(self, max_iterations: int) -> None:
        super().__init__(f"Max iterations reached ({max_iterations})")
        self.max_iterations = max_iterations


class NoUncollapsedCells(WFCError):
    """A tick was requested on a state that is already fully collapsed."""

    def __init__(self) -> None:
        super().__init__("No uncollapsed cells found")


class GenerationAborted(WFCError):
    """The run loop was cancelled (abort event set or deadline passed) between two ticks."""
