"""Extracts tile patterns, their weights and their adjacency rules from a sample grid."""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
import logging
from typing import Any, TYPE_CHECKING

import numpy as np

from tilemap_wfc.constants import PATTERN_SIZE_DEFAULT
from tilemap_wfc.enums import AdjacencyMode, Direction
from tilemap_wfc.errors import InvalidSample, InvalidState

if TYPE_CHECKING:
    from numpy.typing import NDArray


logger = logging.getLogger(__name__)


def to_sample_array(sample: Sequence[Sequence[int]] | NDArray[np.int_]) -> NDArray[np.int_]:
    """Validates a sample grid and converts it into a 2D integer array.

    Args:
        sample: A rectangular grid of non-negative tile ids, either as nested sequences (rows) or as a 2D array.

    Returns:
        A read-only copy of the sample as a 2D array of shape (height, width).

    Raises:
        InvalidSample: If the sample is empty, non-rectangular, not integral or contains negative tile ids.
    """
    if isinstance(sample, np.ndarray):
        if sample.ndim != 2:
            raise InvalidSample(f"Sample must be a 2D grid, got an array with {sample.ndim} dimension(s)")
        rows = sample
    else:
        if isinstance(sample, (str, bytes)) or len(sample) == 0:
            raise InvalidSample("Sample must be a non-empty grid of tile ids")
        if any(isinstance(row, (str, bytes)) or not isinstance(row, (Sequence, np.ndarray)) for row in sample):
            raise InvalidSample("Sample must be a grid, i.e. a sequence of rows of tile ids")
        row_lengths = {len(row) for row in sample}
        if len(row_lengths) != 1:
            raise InvalidSample(f"Sample must be rectangular, got rows of lengths {sorted(row_lengths)}")
        try:
            rows = np.array(sample)
        except ValueError as e:
            raise InvalidSample(f"Sample rows must contain single tile ids: {e}") from e
        if rows.ndim != 2:
            raise InvalidSample("Sample rows must contain single tile ids")

    if rows.size == 0:
        raise InvalidSample("Sample must be a non-empty grid of tile ids")
    if rows.dtype == np.bool_ or not np.issubdtype(rows.dtype, np.integer):
        raise InvalidSample(f"Sample must contain integer tile ids, got values of type {rows.dtype}")
    if (rows < 0).any():
        raise InvalidSample("Sample tile ids must be non-negative")

    sample_array = rows.astype(np.int_, copy=True)
    sample_array.setflags(write=False)
    return sample_array


class Pattern:
    """A single unique NxN tile pattern.

    Attributes:
        id: The unique integer ID of this pattern (its index in the pattern catalog).
        tile_arrangement: The read-only NxN array of tile ids that defines the pattern.
    """

    __slots__ = ("id", "tile_arrangement")

    id: int
    tile_arrangement: NDArray[np.int_]

    def __init__(self, id: int, tile_arrangement: NDArray[np.int_] | Sequence[Sequence[int]]) -> None:
        self.id = id
        self.tile_arrangement = np.array(tile_arrangement, dtype=np.int_)
        self.tile_arrangement.setflags(write=False)

    def __repr__(self) -> str:
        return f"Pattern(id={self.id}, cells={self.cells()})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Pattern):
            return NotImplemented
        return self.id == other.id and np.array_equal(self.tile_arrangement, other.tile_arrangement)

    def __hash__(self) -> int:
        return hash((self.id, self.tile_arrangement.tobytes()))

    @property
    def size(self) -> int:
        """The width and height of the pattern (in tiles), or -1 if the pattern is not square."""
        shape = self.tile_arrangement.shape
        if len(shape) != 2 or shape[0] != shape[1]:
            return -1
        return int(shape[0])

    @property
    def top_left_tile(self) -> int:
        """The tile at the pattern's top-left corner (0, 0), which is the tile shown for a cell in the output."""
        return int(self.tile_arrangement[0, 0])

    def cells(self) -> list[list[int]]:
        """Returns the pattern's tile ids as nested lists (rows)."""
        return self.tile_arrangement.tolist()

    def edge(self, direction: Direction) -> NDArray[np.int_]:
        """Returns the row or column of tiles on the side of the pattern facing the given direction."""
        match direction:
            case Direction.UP:
                return self.tile_arrangement[0, :]
            case Direction.RIGHT:
                return self.tile_arrangement[:, -1]
            case Direction.DOWN:
                return self.tile_arrangement[-1, :]
            case Direction.LEFT:
                return self.tile_arrangement[:, 0]

    def overlap(self, direction: Direction) -> NDArray[np.int_]:
        """Returns the (N-1)xN / Nx(N-1) region of the pattern that a neighbor in the given direction overlaps."""
        match direction:
            case Direction.UP:
                return self.tile_arrangement[:-1, :]
            case Direction.RIGHT:
                return self.tile_arrangement[:, 1:]
            case Direction.DOWN:
                return self.tile_arrangement[1:, :]
            case Direction.LEFT:
                return self.tile_arrangement[:, :-1]


class PatternCatalog:
    """Extracts all unique NxN patterns of a sample grid and counts their occurrences.

    Patterns are extracted by sliding an NxN window over the sample row by row. Identical windows share one pattern,
    and pattern ids are assigned sequentially in the order the windows are first seen, so extracting the same sample
    twice yields the same ids in the same order.

    Attributes:
        pattern_size: The width and height of the square patterns extracted (in tiles).
        patterns: The unique patterns, where the index corresponds to the pattern ID.
        counts: The number of times each pattern occurs in the sample, indexed by pattern ID.
    """

    pattern_size: int
    patterns: list[Pattern]
    counts: NDArray[np.int_]

    # The validated 2D sample array used for pattern extraction.
    _sample_array: NDArray[np.int_]
    # Maps the content key of a tile arrangement to the ID of its pattern.
    _ids_by_key: dict[tuple[tuple[int, ...], bytes], int]

    def __init__(
        self, sample: Sequence[Sequence[int]] | NDArray[np.int_], pattern_size: int = PATTERN_SIZE_DEFAULT
    ) -> None:
        """Validates the sample and extracts its patterns.

        Args:
            sample: A rectangular grid of non-negative tile ids.
            pattern_size: The width and height of the square patterns to extract (in tiles).

        Raises:
            InvalidSample: If the sample is invalid or smaller than the pattern size in either dimension.
        """
        if pattern_size < 1:
            raise InvalidSample(f"Pattern size must be at least 1, got {pattern_size}")

        self.pattern_size = pattern_size
        self._sample_array = to_sample_array(sample)

        height, width = self._sample_array.shape
        if height < pattern_size or width < pattern_size:
            raise InvalidSample(
                f"Sample of size {width}x{height} is smaller than the pattern size {pattern_size}x{pattern_size}"
            )

        self._extract_and_count_patterns()

    def __len__(self) -> int:
        return len(self.patterns)

    def __iter__(self) -> Iterator[Pattern]:
        return iter(self.patterns)

    @property
    def sample_array(self) -> NDArray[np.int_]:
        """The validated sample the patterns were extracted from."""
        return self._sample_array

    def windows(self) -> Iterator[NDArray[np.int_]]:
        """Yields every NxN window of the sample, scanning row by row."""
        height, width = self._sample_array.shape
        for row in range(height - self.pattern_size + 1):
            for col in range(width - self.pattern_size + 1):
                yield self._sample_array[row : row + self.pattern_size, col : col + self.pattern_size]

    def pattern_id_of(self, tile_arrangement: NDArray[np.int_]) -> int | None:
        """Returns the ID of the pattern with the given tile arrangement, or None if there is none."""
        return self._ids_by_key.get(self._hash_tile_arrangement(np.asarray(tile_arrangement, dtype=np.int_)))

    def _extract_and_count_patterns(self) -> None:
        """Extracts all unique NxN patterns and counts their frequency."""
        self.patterns = []
        self._ids_by_key = {}
        counts: list[int] = []

        for tile_arrangement in self.windows():
            key = self._hash_tile_arrangement(tile_arrangement)
            pattern_id = self._ids_by_key.get(key)
            if pattern_id is None:
                pattern_id = len(self.patterns)
                self.patterns.append(Pattern(pattern_id, tile_arrangement))
                self._ids_by_key[key] = pattern_id
                counts.append(1)
            else:
                counts[pattern_id] += 1

        self.counts = np.array(counts, dtype=np.int_)

    @staticmethod
    def _hash_tile_arrangement(array: NDArray[np.int_]) -> tuple[tuple[int, ...], bytes]:
        """Generates a content key for a pattern's tile arrangement."""
        return tuple(array.shape), np.ascontiguousarray(array, dtype=np.int_).tobytes()


def _to_pattern_id(value: Any, pattern_count: int) -> int:
    """Converts a serialized pattern ID, raising InvalidState unless it lies in range(pattern_count)."""
    pattern_id = int(value)
    if not 0 <= pattern_id < pattern_count:
        raise InvalidState(f"Pattern ID {pattern_id} is out of range for {pattern_count} patterns")
    return pattern_id


class WeightTable:
    """Relative frequency weight of every pattern, indexed by pattern ID.

    Weights derived from occurrence counts sum to 1. If no occurrence was counted at all, every pattern receives the
    uniform weight 1.0 instead, so that no valid domain ever ends up with a total weight of 0.
    """

    # The weight of every pattern, indexed by pattern ID.
    _weights: NDArray[np.float64]

    def __init__(self, weights: Sequence[float] | NDArray[np.float64]) -> None:
        self._weights = np.array(weights, dtype=np.float64)
        self._weights.setflags(write=False)

    @classmethod
    def from_counts(cls, counts: Sequence[int] | NDArray[np.int_]) -> WeightTable:
        """Derives the weights from the occurrence counts of the patterns.

        Args:
            counts: The number of occurrences of each pattern, indexed by pattern ID.

        Returns:
            A weight table with weight count / total count for every pattern, or weight 1.0 for every pattern if the
                total count is 0.
        """
        counts_array = np.asarray(counts, dtype=np.float64)
        total = counts_array.sum()
        if total <= 0:
            return cls(np.ones(len(counts_array), dtype=np.float64))
        return cls(counts_array / total)

    def __len__(self) -> int:
        return len(self._weights)

    def __getitem__(self, pattern_id: int) -> float:
        return float(self._weights[pattern_id])

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, WeightTable):
            return NotImplemented
        return np.array_equal(self._weights, other._weights)

    @property
    def array(self) -> NDArray[np.float64]:
        """The read-only weights array, indexed by pattern ID."""
        return self._weights

    def total(self) -> float:
        """Returns the sum of all pattern weights."""
        return float(self._weights.sum())

    def to_dict(self) -> dict[str, float]:
        return {str(pattern_id): float(weight) for pattern_id, weight in enumerate(self._weights)}

    @classmethod
    def from_dict(cls, data: Mapping[str, float]) -> WeightTable:
        """Converts a dict produced by 'to_dict()' back into a weight table.

        Raises:
            InvalidState: If a pattern ID is negative or not smaller than the number of entries.
        """
        weights = np.zeros(len(data), dtype=np.float64)
        for pattern_id, weight in data.items():
            weights[_to_pattern_id(pattern_id, len(data))] = float(weight)
        return cls(weights)


class AdjacencyModel:
    """Adjacency rules between patterns for each of the four directions.

    rules[p, q, direction] is True exactly if pattern q may be placed one step from pattern p in the specified
    direction (above / to the right of / below / to the left of p). Both matching modes compare the side of p facing
    the direction with the side of q facing the reverse direction, which makes the rules symmetric: q is compatible
    with p in a direction exactly if p is compatible with q in the reverse direction.

    If the pattern shapes are unusable for matching (non-square patterns, patterns of differing size, or 1x1 patterns
    in overlap mode), every pattern is declared compatible with every other pattern in the affected directions
    instead. These directions are listed in 'permissive_directions'.

    Attributes:
        pattern_count: The number of patterns the rules are defined for.
        permissive_directions: The directions in which the all-compatible fallback was applied.
    """

    pattern_count: int
    permissive_directions: frozenset[Direction]

    # The 3D boolean array defining compatibility: [p, q, direction].
    _rules: NDArray[np.bool_]
    # For each direction and pattern ID, the IDs of all patterns compatible in that direction.
    _compatible: dict[Direction, tuple[frozenset[int], ...]]

    def __init__(self, rules: NDArray[np.bool_], permissive_directions: frozenset[Direction] = frozenset()) -> None:
        """Wraps a precalculated adjacency rules tensor.

        Args:
            rules: A boolean array of shape (pattern_count, pattern_count, 4).
            permissive_directions: The directions in which the all-compatible fallback was applied.
        """
        self._rules = np.array(rules, dtype=bool)
        self._rules.setflags(write=False)
        self.pattern_count = self._rules.shape[0]
        self.permissive_directions = frozenset(permissive_directions)

        self._compatible = {
            direction: tuple(
                frozenset(int(q) for q in np.flatnonzero(self._rules[p, :, direction.value]))
                for p in range(self.pattern_count)
            )
            for direction in Direction
        }

    @classmethod
    def build(
        cls, patterns: Sequence[Pattern], pattern_size: int, mode: AdjacencyMode = AdjacencyMode.EDGE
    ) -> AdjacencyModel:
        """Calculates the adjacency rules by comparing every ordered pair of patterns.

        Args:
            patterns: The patterns, where the index corresponds to the pattern ID.
            pattern_size: The expected width and height of every pattern.
            mode: Whether the facing edges or the overlap regions of two patterns have to match.

        Returns:
            The adjacency model for the given patterns.
        """
        pattern_count = len(patterns)
        rules = np.full((pattern_count, pattern_count, len(Direction)), False, dtype=bool)

        shapes_valid = pattern_size >= 1 and all(pattern.size == pattern_size for pattern in patterns)
        if mode == AdjacencyMode.OVERLAP and pattern_size < 2:
            shapes_valid = False

        if not shapes_valid:
            logger.warning(
                "Patterns cannot be matched in %s mode (pattern size %d); declaring all %d patterns mutually "
                "compatible in every direction",
                mode.value,
                pattern_size,
                pattern_count,
            )
            rules[:] = True
            return cls(rules, frozenset(Direction))

        for p in patterns:
            for q in patterns:
                for direction in Direction:
                    if mode == AdjacencyMode.EDGE:
                        # p's side facing the direction must equal q's side facing back towards p.
                        compatible = np.array_equal(p.edge(direction), q.edge(direction.reverse()))
                    else:
                        compatible = np.array_equal(p.overlap(direction), q.overlap(direction.reverse()))
                    rules[p.id, q.id, direction.value] = compatible

        return cls(rules)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AdjacencyModel):
            return NotImplemented
        return (
            np.array_equal(self._rules, other._rules) and self.permissive_directions == other.permissive_directions
        )

    @property
    def rules(self) -> NDArray[np.bool_]:
        """The read-only adjacency rules tensor [p, q, direction]."""
        return self._rules

    def compatible(self, pattern_id: int, direction: Direction) -> frozenset[int]:
        """Returns the IDs of all patterns that may be placed next to a pattern in the given direction.

        Args:
            pattern_id: The ID of the pattern to check compatibility for.
            direction: The direction (seen from the pattern) of the neighbor.

        Returns:
            The IDs of all patterns that can legally be placed adjacent to the pattern in that direction.
        """
        return self._compatible[direction][pattern_id]

    def compatible_with_any(self, pattern_ids: frozenset[int], direction: Direction) -> frozenset[int]:
        """Returns the union of the compatible sets of all given patterns in the given direction."""
        compatible_sets = self._compatible[direction]
        if len(pattern_ids) == 1:
            return compatible_sets[next(iter(pattern_ids))]
        return frozenset().union(*(compatible_sets[pattern_id] for pattern_id in pattern_ids))

    def asymmetries(self) -> list[tuple[int, int, Direction]]:
        """Lists every (p, q, direction) where q is compatible with p but p is not compatible with q in reverse."""
        violations = []
        for direction in Direction:
            forward = self._rules[:, :, direction.value]
            backward = self._rules[:, :, direction.reverse().value].T
            for p, q in zip(*np.nonzero(forward & ~backward)):
                violations.append((int(p), int(q), direction))
        return violations

    def to_dict(self) -> dict[str, Any]:
        return {
            "rules": {
                direction.label: {
                    str(pattern_id): sorted(compatible)
                    for pattern_id, compatible in enumerate(self._compatible[direction])
                }
                for direction in Direction
            },
            "permissive_directions": [
                direction.label for direction in Direction if direction in self.permissive_directions
            ],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], pattern_count: int) -> AdjacencyModel:
        """Converts a dict produced by 'to_dict()' back into adjacency rules between 'pattern_count' patterns.

        Raises:
            InvalidState: If a pattern ID is negative or not smaller than 'pattern_count'.
        """
        rules = np.full((pattern_count, pattern_count, len(Direction)), False, dtype=bool)
        for label, direction_rules in data["rules"].items():
            direction = Direction.from_label(label)
            for pattern_id, compatible in direction_rules.items():
                source_id = _to_pattern_id(pattern_id, pattern_count)
                for other_id in compatible:
                    rules[source_id, _to_pattern_id(other_id, pattern_count), direction.value] = True
        permissive = frozenset(Direction.from_label(label) for label in data.get("permissive_directions", []))
        return cls(rules, permissive)
