"""Procedural tilemap generation with the overlapping Wave Function Collapse (WFC) algorithm.

The core functions work on immutable WFC states:

    state = init(sample, pattern_size=2, width=20, height=10)
    state, complete = tick(state, rng)
    final_state, history = run(state)
    pattern_grid = get_output(final_state)

'generate()' wraps these into a single call that restarts with a fresh seed after a contradiction.
"""

from tilemap_wfc.enums import AdjacencyMode, Direction, PropagationMode, RunStatus
from tilemap_wfc.errors import (
    Contradiction,
    GenerationAborted,
    InvalidOutputSize,
    InvalidSample,
    InvalidState,
    MaxIterationsExceeded,
    NoUncollapsedCells,
    WFCError,
)
from tilemap_wfc.model.wfc import get_output, get_tile_output, init, tick
from tilemap_wfc.model.wfc_manager import GenerationResult, RunLoop, generate, generate_from_state, run
from tilemap_wfc.model.wfc_state import Cell, Grid, WFCState


__all__ = [
    "AdjacencyMode",
    "Cell",
    "Contradiction",
    "Direction",
    "GenerationAborted",
    "GenerationResult",
    "Grid",
    "InvalidOutputSize",
    "InvalidSample",
    "InvalidState",
    "MaxIterationsExceeded",
    "NoUncollapsedCells",
    "PropagationMode",
    "RunLoop",
    "RunStatus",
    "WFCError",
    "WFCState",
    "generate",
    "generate_from_state",
    "get_output",
    "get_tile_output",
    "init",
    "run",
    "tick",
]
