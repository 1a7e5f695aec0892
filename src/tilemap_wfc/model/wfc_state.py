"""Contains the cell grid and the state record that the WFC algorithm advances tick by tick."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
import heapq
import math
from typing import Any, TYPE_CHECKING

import numpy as np

from tilemap_wfc.enums import Direction
from tilemap_wfc.errors import InvalidState
from tilemap_wfc.model.pattern_data import AdjacencyModel, Pattern, WeightTable

if TYPE_CHECKING:
    from numpy.typing import NDArray


def cell_entropy(domain: Iterable[int], weights: WeightTable) -> float:
    """Calculates the weighted Shannon entropy (in nats) of a cell's domain.

    Args:
        domain: The pattern IDs the cell could still take.
        weights: The weight table of all patterns.

    Returns:
        0 for a single remaining candidate, math.inf for an empty domain or a domain whose total weight is 0, and
            -sum(p * ln(p)) over the normalized weights p of the candidates otherwise.
    """
    # Sorted so that equal domains always yield bit-identical entropies.
    domain_ids = np.fromiter(sorted(domain), dtype=np.int_)
    if domain_ids.size == 0:
        return math.inf

    domain_weights = weights.array[domain_ids]
    weight_sum = domain_weights.sum()
    if weight_sum <= 0:
        return math.inf

    probabilities = domain_weights[domain_weights > 0] / weight_sum
    entropy = -float((probabilities * np.log(probabilities)).sum())
    # Rounding noise of a lone candidate must not rank it behind an exact 0.
    return max(entropy, 0.0)


@dataclass(frozen=True)
class Cell:
    """A single cell of the WFC grid.

    Before collapse the cell holds every pattern ID it could still take; after collapse it holds exactly the chosen
    pattern ID, which is also stored as its tile.

    Attributes:
        domain: The pattern IDs still possible for this cell.
        tile: The chosen pattern ID, or None while the cell is uncollapsed.
    """

    domain: frozenset[int]
    tile: int | None = None

    def __post_init__(self) -> None:
        if self.tile is not None and self.domain != frozenset((self.tile,)):
            raise ValueError(f"Collapsed cell with tile {self.tile} must have exactly that tile as its domain")

    @property
    def collapsed(self) -> bool:
        """True if a final pattern has been chosen for this cell."""
        return self.tile is not None

    def collapse_to(self, pattern_id: int) -> Cell:
        """Returns this cell collapsed to the given pattern ID."""
        return Cell(frozenset((pattern_id,)), pattern_id)

    def constrain_to(self, allowed: frozenset[int], collapse_single: bool = True) -> Cell:
        """Returns this cell with its domain intersected with the allowed pattern IDs.

        With 'collapse_single', a domain narrowed down to a single candidate collapses the cell; otherwise the cell
        stays uncollapsed with entropy 0 until a tick collapses it. An empty domain is returned as is so that the
        caller can detect the contradiction.
        """
        domain = self.domain & allowed
        if collapse_single and len(domain) == 1:
            return self.collapse_to(next(iter(domain)))
        return Cell(domain)

    def to_dict(self) -> dict[str, Any]:
        return {"domain": sorted(self.domain), "collapsed": self.collapsed, "tile": self.tile}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Cell:
        domain = frozenset(int(pattern_id) for pattern_id in data["domain"])
        tile = data.get("tile")
        collapsed = bool(data.get("collapsed", tile is not None))
        if collapsed != (tile is not None):
            raise InvalidState(f"Cell flag collapsed={collapsed} does not match its tile {tile!r}")
        if not domain:
            raise InvalidState("Cell domain must not be empty")
        return cls(domain, None if tile is None else int(tile))


class Grid:
    """A height x width array of cells, addressed by (x, y) and enumerated row by row.

    Cells are immutable, so copying a grid only copies its rows; the grids of different states never share a row.
    """

    width: int
    height: int

    # Rows of cells, indexed as _rows[y][x].
    _rows: list[list[Cell]]

    def __init__(self, rows: Sequence[Sequence[Cell]]) -> None:
        self._rows = [list(row) for row in rows]
        self.height = len(self._rows)
        self.width = len(self._rows[0]) if self._rows else 0
        if any(len(row) != self.width for row in self._rows):
            raise ValueError("All grid rows must have the same length")

    @classmethod
    def filled(cls, width: int, height: int, domain: frozenset[int]) -> Grid:
        """Creates a grid in which every cell is uncollapsed with the given domain.

        Even a single-candidate domain stays uncollapsed here; such cells have entropy 0 and are collapsed by the
        first ticks.
        """
        cell = Cell(frozenset(domain))
        return cls([[cell] * width for _ in range(height)])

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Grid):
            return NotImplemented
        return self._rows == other._rows

    def copy(self) -> Grid:
        return Grid(self._rows)

    def in_bounds(self, x: int, y: int) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height

    def get_cell(self, x: int, y: int) -> Cell:
        return self._rows[y][x]

    def set_cell(self, x: int, y: int, cell: Cell) -> None:
        self._rows[y][x] = cell

    def neighbors(self, x: int, y: int) -> Iterator[tuple[int, int, Direction]]:
        """Yields the in-bounds neighbor coords of a cell together with the direction they lie in.

        Neighbors are visited in the order up, right, down, left.
        """
        for direction in Direction:
            d_row, d_col = direction.to_vector()
            neighbor_x, neighbor_y = x + d_col, y + d_row
            if self.in_bounds(neighbor_x, neighbor_y):
                yield neighbor_x, neighbor_y, direction

    def cells(self) -> Iterator[tuple[int, int, Cell]]:
        """Yields (x, y, cell) for every cell, scanning row by row."""
        for y, row in enumerate(self._rows):
            for x, cell in enumerate(row):
                yield x, y, cell

    def rows(self) -> list[list[Cell]]:
        return [list(row) for row in self._rows]

    def is_complete(self) -> bool:
        """Checks if all cells have collapsed."""
        return all(cell.collapsed for row in self._rows for cell in row)

    def uncollapsed_count(self) -> int:
        return sum(1 for row in self._rows for cell in row if not cell.collapsed)


@dataclass(order=True)
class _HeapItem:
    """Dataclass storing a cell's entropy and coords for the priority queue."""

    # The entropy of the cell when the item was pushed.
    _entropy: float
    # The (y, x) coords of the cell, so that equal entropies are ordered row by row.
    _row_major: tuple[int, int]
    # The domain the entropy was calculated for; the item is outdated once the cell's domain differs.
    _domain: frozenset[int] = field(compare=False)


class EntropyHeap:
    """Min-heap of the uncollapsed cells of a grid, ordered by entropy and then row by row.

    Items are never removed when a cell changes. Instead the changed cell is pushed again, and outdated items (the
    cell has collapsed or its domain has shrunk since) are discarded when they reach the top of the heap.
    """

    _items: list[_HeapItem]
    _weights: WeightTable
    # Entropies of the domains seen so far; many cells share a domain.
    _entropies: dict[frozenset[int], float]

    def __init__(
        self, items: list[_HeapItem], weights: WeightTable, entropies: dict[frozenset[int], float] | None = None
    ) -> None:
        self._items = items
        self._weights = weights
        self._entropies = entropies if entropies is not None else {}
        heapq.heapify(self._items)

    @classmethod
    def from_grid(cls, grid: Grid, weights: WeightTable) -> EntropyHeap:
        """Creates a heap holding one item for every uncollapsed cell of the grid."""
        entropy_heap = cls([], weights)
        entropy_heap._items = [
            _HeapItem(entropy_heap.entropy_of(cell.domain), (y, x), cell.domain)
            for x, y, cell in grid.cells()
            if not cell.collapsed
        ]
        heapq.heapify(entropy_heap._items)
        return entropy_heap

    def __len__(self) -> int:
        return len(self._items)

    def copy(self) -> EntropyHeap:
        """Returns a heap with the same items that can be changed independently of this one."""
        return EntropyHeap(list(self._items), self._weights, self._entropies)

    def entropy_of(self, domain: frozenset[int]) -> float:
        entropy = self._entropies.get(domain)
        if entropy is None:
            entropy = cell_entropy(domain, self._weights)
            self._entropies[domain] = entropy
        return entropy

    def push(self, x: int, y: int, cell: Cell) -> None:
        """Adds an item for the current domain of a cell; collapsed cells are ignored."""
        if not cell.collapsed:
            heapq.heappush(self._items, _HeapItem(self.entropy_of(cell.domain), (y, x), cell.domain))

    def peek_min(self, grid: Grid) -> tuple[int, int] | None:
        """Returns the (x, y) coords of the uncollapsed cell of lowest entropy, discarding outdated items on the way.

        Returns:
            The coords of the cell, or None if the grid has no uncollapsed cell left.
        """
        while self._items:
            item = self._items[0]
            y, x = item._row_major
            cell = grid.get_cell(x, y)
            if not cell.collapsed and cell.domain == item._domain:
                return x, y
            heapq.heappop(self._items)
        return None


@dataclass(frozen=True)
class WFCState:
    """The complete state of a WFC generation.

    Created once from a sample by 'init()'; every tick returns a new state with a copied grid while the patterns, the
    weights and the adjacency rules (all immutable) are shared.

    Attributes:
        grid: The output grid of cells.
        width: The width of the output grid (in cells).
        height: The height of the output grid (in cells).
        patterns: The patterns extracted from the sample, where the index corresponds to the pattern ID.
        weights: The relative frequency of every pattern.
        adjacency: The adjacency rules between the patterns.
        pattern_size: The width and height of the patterns (in tiles).
    """

    grid: Grid
    width: int
    height: int
    patterns: tuple[Pattern, ...]
    weights: WeightTable
    adjacency: AdjacencyModel
    pattern_size: int
    # Pattern IDs in ascending order, used as the initial domain of every cell.
    pattern_ids: frozenset[int] = field(init=False, repr=False, compare=False)
    # Uncollapsed cells ordered by entropy; built from the grid when not given.
    entropy_heap: EntropyHeap | None = field(default=None, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.grid.width != self.width or self.grid.height != self.height:
            raise InvalidState(
                f"Grid of size {self.grid.width}x{self.grid.height} does not match the state size "
                f"{self.width}x{self.height}"
            )
        pattern_count = len(self.patterns)
        if len(self.weights) != pattern_count or self.adjacency.pattern_count != pattern_count:
            raise InvalidState(
                f"Weights ({len(self.weights)}) and adjacency rules ({self.adjacency.pattern_count}) must cover all "
                f"{pattern_count} patterns"
            )
        if any(pattern.id != index for index, pattern in enumerate(self.patterns)):
            raise InvalidState("Pattern IDs must equal their position in the pattern list")
        object.__setattr__(self, "pattern_ids", frozenset(range(pattern_count)))
        if self.entropy_heap is None:
            object.__setattr__(self, "entropy_heap", EntropyHeap.from_grid(self.grid, self.weights))

    def is_complete(self) -> bool:
        return self.grid.is_complete()

    def with_grid(self, grid: Grid, entropy_heap: EntropyHeap | None = None) -> WFCState:
        """Returns a copy of this state that uses the given grid.

        The entropy heap must match the grid; a new one is built from the grid if None.
        """
        return WFCState(
            grid=grid,
            width=self.width,
            height=self.height,
            patterns=self.patterns,
            weights=self.weights,
            adjacency=self.adjacency,
            pattern_size=self.pattern_size,
            entropy_heap=entropy_heap,
        )

    def pattern_grid(self, unset: int) -> NDArray[np.int_]:
        """Returns the (height, width) array of collapsed pattern IDs, 'unset' for uncollapsed cells."""
        pattern_grid = np.full((self.height, self.width), unset, dtype=np.int_)
        for x, y, cell in self.grid.cells():
            if cell.tile is not None:
                pattern_grid[y, x] = cell.tile
        return pattern_grid

    def to_dict(self) -> dict[str, Any]:
        """Converts the state into a JSON-compatible dict that 'from_dict()' turns back into an equal state."""
        return {
            "grid": [[cell.to_dict() for cell in row] for row in self.grid.rows()],
            "width": self.width,
            "height": self.height,
            "patterns": [{"id": pattern.id, "cells": pattern.cells()} for pattern in self.patterns],
            "weights": self.weights.to_dict(),
            "adjacency": self.adjacency.to_dict(),
            "pattern_size": self.pattern_size,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> WFCState:
        """Validates a dict produced by 'to_dict()' and converts it back into a state.

        Raises:
            InvalidState: If a field is missing, malformed or inconsistent with the rest of the state.
        """
        try:
            patterns = tuple(
                Pattern(int(pattern["id"]), pattern["cells"])
                for pattern in sorted(data["patterns"], key=lambda pattern: int(pattern["id"]))
            )
            pattern_count = len(patterns)
            grid = Grid([[Cell.from_dict(cell) for cell in row] for row in data["grid"]])
            for x, y, cell in grid.cells():
                if not all(0 <= pattern_id < pattern_count for pattern_id in cell.domain):
                    raise InvalidState(f"Cell ({x}, {y}) refers to unknown pattern IDs {sorted(cell.domain)}")
            weights = WeightTable.from_dict(data["weights"])
            adjacency = AdjacencyModel.from_dict(data["adjacency"], pattern_count)
            state = cls(
                grid=grid,
                width=int(data["width"]),
                height=int(data["height"]),
                patterns=patterns,
                weights=weights,
                adjacency=adjacency,
                pattern_size=int(data["pattern_size"]),
            )
        except InvalidState:
            raise
        except (KeyError, TypeError, ValueError, IndexError) as e:
            raise InvalidState(f"Malformed WFC state: {e!r}") from e
        return state
