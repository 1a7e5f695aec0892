"""Implements the core WFC algorithm: initialization, the collapse step (tick) and constraint propagation.

All functions are pure with respect to the states passed in: a tick never mutates its input state but returns a new
one, so earlier states can be kept as a history of the generation.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Sequence
import logging
import random
from typing import TYPE_CHECKING

import numpy as np

from tilemap_wfc.constants import PATTERN_SIZE_DEFAULT, UNSET
from tilemap_wfc.enums import AdjacencyMode, PropagationMode
from tilemap_wfc.errors import Contradiction, InvalidOutputSize, NoUncollapsedCells
from tilemap_wfc.model.pattern_data import AdjacencyModel, PatternCatalog, WeightTable
from tilemap_wfc.model.wfc_state import Cell, Grid, WFCState

if TYPE_CHECKING:
    from numpy.typing import NDArray


logger = logging.getLogger(__name__)


def init(
    sample: Sequence[Sequence[int]] | NDArray[np.int_],
    pattern_size: int = PATTERN_SIZE_DEFAULT,
    width: int = 1,
    height: int = 1,
    adjacency_mode: AdjacencyMode = AdjacencyMode.EDGE,
) -> WFCState:
    """Learns the patterns of a sample and creates an output grid with every cell in maximum superposition.

    Args:
        sample: A rectangular grid of non-negative tile ids.
        pattern_size: The width and height of the square patterns to extract (in tiles).
        width: The width of the output grid (in cells).
        height: The height of the output grid (in cells).
        adjacency_mode: Whether the facing edges or the overlap regions of neighboring patterns have to match.

    Returns:
        The initial WFC state.

    Raises:
        InvalidSample: If the sample is invalid or smaller than the pattern size.
        InvalidOutputSize: If the output width or height is smaller than 1.
    """
    if width < 1 or height < 1:
        raise InvalidOutputSize(f"Output size must be at least 1x1, got {width}x{height}")

    catalog = PatternCatalog(sample, pattern_size)
    weights = WeightTable.from_counts(catalog.counts)
    adjacency = AdjacencyModel.build(catalog.patterns, pattern_size, adjacency_mode)

    state = WFCState(
        grid=Grid.filled(width, height, frozenset(range(len(catalog)))),
        width=width,
        height=height,
        patterns=tuple(catalog.patterns),
        weights=weights,
        adjacency=adjacency,
        pattern_size=pattern_size,
    )
    logger.info(
        "Initialized %dx%d output from a %dx%d sample: %d patterns of size %d (%s adjacency)",
        width,
        height,
        catalog.sample_array.shape[1],
        catalog.sample_array.shape[0],
        len(catalog),
        pattern_size,
        adjacency_mode.value,
    )
    return state


def find_min_entropy_cell(state: WFCState) -> tuple[int, int] | None:
    """Finds the uncollapsed cell with the lowest entropy.

    Ties are broken by scanning order: the first cell found row by row (lowest y, then lowest x) wins, which keeps
    seeded runs reproducible. The cell is taken from the entropy heap of the state instead of scanning the grid.

    Returns:
        The (x, y) coords of the cell, or None if every cell is collapsed.
    """
    return state.entropy_heap.peek_min(state.grid)


def choose_pattern(domain: frozenset[int], weights: WeightTable, rng: random.Random) -> int:
    """Randomly picks one pattern of a domain, weighed by pattern frequency.

    Candidates are enumerated in ascending ID order. If the total weight of the domain is 0, every candidate is
    equally likely.
    """
    candidates = sorted(domain)
    candidate_weights = [weights[pattern_id] for pattern_id in candidates]
    if sum(candidate_weights) <= 0:
        return rng.choice(candidates)
    return rng.choices(candidates, weights=candidate_weights, k=1)[0]


def propagate(
    state: WFCState,
    grid: Grid,
    coords: tuple[int, int],
    mode: PropagationMode = PropagationMode.FIXED_POINT,
) -> list[tuple[int, int]]:
    """Narrows the domains of the cells around a freshly collapsed cell, updating the grid in place.

    In single-step mode only the four direct neighbors of the collapsed cell are narrowed. In fixed-point mode every
    cell whose domain shrinks is queued in turn, until no domain changes anymore. Collapsed and out-of-bounds
    neighbors are never touched. In fixed-point mode a neighbor narrowed to a single candidate is collapsed and queued like
    any other; in single-step mode it stays uncollapsed with entropy 0, so the next tick collapses it and propagates from
    it.

    Args:
        state: The state providing the adjacency rules (its grid is not used).
        grid: The grid to narrow; it must be owned by the caller.
        coords: The (x, y) coords of the cell that was just collapsed.
        mode: How far to propagate.

    Returns:
        The coords of every cell whose domain shrank, in the order they were updated.

    Raises:
        Contradiction: If a neighbor's domain becomes empty.
    """
    adjacency = state.adjacency
    updated: list[tuple[int, int]] = []

    queue: deque[tuple[int, int]] = deque([coords])
    in_queue: set[tuple[int, int]] = {coords}

    while queue:
        x, y = queue.popleft()
        in_queue.discard((x, y))
        source = grid.get_cell(x, y)

        for neighbor_x, neighbor_y, direction in grid.neighbors(x, y):
            neighbor = grid.get_cell(neighbor_x, neighbor_y)
            if neighbor.collapsed:
                continue

            allowed = adjacency.compatible_with_any(source.domain, direction)
            narrowed = neighbor.constrain_to(allowed, collapse_single=mode == PropagationMode.FIXED_POINT)
            if narrowed.domain == neighbor.domain and narrowed.collapsed == neighbor.collapsed:
                continue

            grid.set_cell(neighbor_x, neighbor_y, narrowed)
            if not narrowed.domain:
                raise Contradiction((neighbor_x, neighbor_y), state.with_grid(grid))
            updated.append((neighbor_x, neighbor_y))

            if mode == PropagationMode.FIXED_POINT and (neighbor_x, neighbor_y) not in in_queue:
                queue.append((neighbor_x, neighbor_y))
                in_queue.add((neighbor_x, neighbor_y))

    return updated


def tick(
    state: WFCState,
    rng: random.Random | None = None,
    propagation: PropagationMode = PropagationMode.FIXED_POINT,
) -> tuple[WFCState, bool]:
    """Performs one step of WFC: collapses the cell with the lowest entropy and propagates the constraint.

    Args:
        state: The state to advance; it is not modified.
        rng: The random number generator used for the weighted pattern choice. A fresh unseeded generator is used if
            None.
        propagation: How far the constraint of the collapsed cell is propagated.

    Returns:
        The new state and True if every cell of the new state is collapsed.

    Raises:
        NoUncollapsedCells: If every cell of the given state is already collapsed.
        Contradiction: If propagation empties the domain of a cell.
    """
    coords = find_min_entropy_cell(state)
    if coords is None:
        raise NoUncollapsedCells()

    x, y = coords
    cell = state.grid.get_cell(x, y)
    if not cell.domain:
        raise Contradiction(coords, state)

    pattern_id = choose_pattern(cell.domain, state.weights, rng or random.Random())

    grid = state.grid.copy()
    grid.set_cell(x, y, Cell(cell.domain).collapse_to(pattern_id))
    updated = propagate(state, grid, coords, propagation)

    entropy_heap = state.entropy_heap.copy()
    for updated_x, updated_y in updated:
        entropy_heap.push(updated_x, updated_y, grid.get_cell(updated_x, updated_y))
    new_state = state.with_grid(grid, entropy_heap)
    complete = grid.is_complete()
    logger.debug(
        "Collapsed cell (%d, %d) to pattern %d out of %d candidates; narrowed %d cell(s), %d uncollapsed left",
        x,
        y,
        pattern_id,
        len(cell.domain),
        len(updated),
        grid.uncollapsed_count(),
    )
    return new_state, complete


def get_output(state: WFCState) -> NDArray[np.int_]:
    """Returns the (height, width) grid of collapsed pattern IDs, with UNSET for every uncollapsed cell."""
    return state.pattern_grid(UNSET)


def get_tile_output(state: WFCState) -> NDArray[np.int_]:
    """Converts the collapsed cells into a tilemap.

    Each collapsed cell is mapped to the tile located at the top-left corner (0, 0) of its pattern, effectively
    generating the final visual tilemap; uncollapsed cells are UNSET.
    """
    top_left_tiles = np.array([pattern.top_left_tile for pattern in state.patterns], dtype=np.int_)
    pattern_grid = get_output(state)
    return np.where(pattern_grid == UNSET, UNSET, top_left_tiles[np.maximum(pattern_grid, 0)])
