"""Shared pytest fixtures for tilemap_wfc tests."""

import numpy as np
import pytest

from tilemap_wfc.constants import EXAMPLE_SAMPLES
from tilemap_wfc.enums import ExampleSample
from tilemap_wfc.model import wfc
from tilemap_wfc.model.pattern_data import AdjacencyModel, Pattern, WeightTable
from tilemap_wfc.model.wfc_state import Grid, WFCState


# =============================================================================
# Samples
# =============================================================================

@pytest.fixture
def simple_sample() -> list[list[int]]:
    """A 5x5 room: wall border, floor ring and one feature tile in the center."""
    return [row[:] for row in EXAMPLE_SAMPLES[ExampleSample.SIMPLE]]


@pytest.fixture
def checkerboard_sample() -> list[list[int]]:
    """A 5x5 checkerboard of tiles 0 and 1."""
    return [row[:] for row in EXAMPLE_SAMPLES[ExampleSample.CHECKERBOARD]]


# =============================================================================
# States
# =============================================================================

@pytest.fixture
def simple_state(simple_sample) -> WFCState:
    """Fresh 4x4 state learned from the simple sample with 2x2 patterns."""
    return wfc.init(simple_sample, pattern_size=2, width=4, height=4)


@pytest.fixture
def checkerboard_state(checkerboard_sample) -> WFCState:
    """Fresh 3x3 state learned from the checkerboard with 2x2 patterns (exactly one neighbor per direction)."""
    return wfc.init(checkerboard_sample, pattern_size=2, width=3, height=3)


@pytest.fixture
def contradictory_state() -> WFCState:
    """A 2x1 state whose two patterns are compatible with nothing, so the first tick always fails."""
    return WFCState(
        grid=Grid.filled(2, 1, frozenset({0, 1})),
        width=2,
        height=1,
        patterns=(Pattern(0, [[0]]), Pattern(1, [[1]])),
        weights=WeightTable([0.5, 0.5]),
        adjacency=AdjacencyModel(np.zeros((2, 2, 4), dtype=bool)),
        pattern_size=1,
    )
