"""Tests for tilemap_wfc.model.wfc module."""

import random

import numpy as np
import pytest

from tilemap_wfc.constants import UNSET
from tilemap_wfc.enums import PropagationMode
from tilemap_wfc.errors import Contradiction, InvalidOutputSize, InvalidSample, NoUncollapsedCells
from tilemap_wfc.model import wfc
from tilemap_wfc.model.pattern_data import WeightTable
from tilemap_wfc.model.wfc_state import Cell, WFCState, cell_entropy


def assert_locally_consistent(state: WFCState) -> None:
    """Asserts every pair of adjacent collapsed cells is allowed by the adjacency rules."""
    for x, y, cell in state.grid.cells():
        if not cell.collapsed:
            continue
        for neighbor_x, neighbor_y, direction in state.grid.neighbors(x, y):
            neighbor = state.grid.get_cell(neighbor_x, neighbor_y)
            if neighbor.collapsed:
                assert state.adjacency.rules[cell.tile, neighbor.tile, direction.value]


def scan_min_entropy_cell(state: WFCState) -> tuple[int, int] | None:
    """Returns the first uncollapsed cell of lowest entropy, found by scanning every cell row by row."""
    candidates = [
        (cell_entropy(cell.domain, state.weights), y, x) for x, y, cell in state.grid.cells() if not cell.collapsed
    ]
    if not candidates:
        return None
    _, y, x = min(candidates)
    return x, y


class TestInit:
    """Tests for init function."""

    def test_all_cells_in_full_superposition(self, simple_state: WFCState):
        """Test every cell starts uncollapsed with every pattern possible."""
        assert (simple_state.width, simple_state.height) == (4, 4)
        assert len(simple_state.patterns) == 12
        for _, _, cell in simple_state.grid.cells():
            assert not cell.collapsed
            assert cell.domain == frozenset(range(12))

    def test_weights_and_rules_cover_all_patterns(self, simple_state: WFCState):
        """Test weights and adjacency rules are sized to the pattern count."""
        assert len(simple_state.weights) == 12
        assert simple_state.adjacency.rules.shape == (12, 12, 4)
        assert simple_state.weights.total() == pytest.approx(1.0)

    @pytest.mark.parametrize("width, height", [(0, 3), (3, 0), (-1, -1)])
    def test_invalid_output_size(self, simple_sample, width, height):
        """Test non-positive output sizes are rejected."""
        with pytest.raises(InvalidOutputSize):
            wfc.init(simple_sample, 2, width, height)

    def test_sample_too_small(self):
        """Test a sample smaller than the pattern size is rejected."""
        with pytest.raises(InvalidSample):
            wfc.init([[0, 1], [1, 0]], 3, 4, 4)


class TestFindMinEntropyCell:
    """Tests for find_min_entropy_cell function."""

    def test_ties_resolve_to_first_cell(self, simple_state: WFCState):
        """Test the first cell in row-major order wins a tie."""
        assert wfc.find_min_entropy_cell(simple_state) == (0, 0)

    def test_lowest_entropy_wins(self, simple_state: WFCState):
        """Test a cell with a narrower domain is chosen."""
        grid = simple_state.grid.copy()
        grid.set_cell(2, 1, Cell(frozenset({1, 3})))
        grid.set_cell(3, 3, Cell(frozenset({1, 3})))

        assert wfc.find_min_entropy_cell(simple_state.with_grid(grid)) == (2, 1)

    def test_collapsed_cells_are_skipped(self, checkerboard_state: WFCState):
        """Test collapsed cells are never chosen."""
        grid = checkerboard_state.grid.copy()
        grid.set_cell(0, 0, Cell(frozenset({0}), 0))

        assert wfc.find_min_entropy_cell(checkerboard_state.with_grid(grid)) == (1, 0)

    def test_complete_grid(self, checkerboard_state: WFCState):
        """Test None is returned when every cell is collapsed."""
        state, _ = wfc.tick(checkerboard_state, random.Random(0))

        assert wfc.find_min_entropy_cell(state) is None

    def test_outdated_heap_items_are_skipped(self, simple_state: WFCState):
        """Test heap items of cells that collapsed or narrowed since they were pushed are never chosen."""
        grid = simple_state.grid.copy()
        grid.set_cell(0, 0, Cell(frozenset({0}), 0))
        grid.set_cell(1, 0, Cell(frozenset({1, 3})))
        state = simple_state.with_grid(grid, simple_state.entropy_heap.copy())

        assert wfc.find_min_entropy_cell(state) == (2, 0)
        assert wfc.find_min_entropy_cell(simple_state) == (0, 0)

    def test_pushed_cell_wins(self, simple_state: WFCState):
        """Test a narrowed cell pushed to the heap is chosen over the outdated items."""
        grid = simple_state.grid.copy()
        grid.set_cell(3, 2, Cell(frozenset({1, 3})))
        entropy_heap = simple_state.entropy_heap.copy()
        entropy_heap.push(3, 2, grid.get_cell(3, 2))

        assert wfc.find_min_entropy_cell(simple_state.with_grid(grid, entropy_heap)) == (3, 2)

    @pytest.mark.parametrize("propagation", list(PropagationMode))
    def test_matches_row_major_scan(self, simple_sample, propagation):
        """Test the cell taken from the heap after every tick is the one a full row-by-row scan finds."""
        state = wfc.init(simple_sample, 2, 5, 4)
        rng = random.Random(8)

        complete = False
        while not complete:
            assert wfc.find_min_entropy_cell(state) == scan_min_entropy_cell(state)
            try:
                state, complete = wfc.tick(state, rng, propagation)
            except Contradiction:
                break

        assert wfc.find_min_entropy_cell(state) == scan_min_entropy_cell(state)


class TestChoosePattern:
    """Tests for choose_pattern function."""

    def test_only_candidate(self):
        """Test a single candidate is always chosen."""
        assert wfc.choose_pattern(frozenset({2}), WeightTable([0.2, 0.3, 0.5]), random.Random(1)) == 2

    def test_zero_weight_candidate_never_chosen(self):
        """Test a candidate without weight is not chosen while others have weight."""
        rng = random.Random(3)
        weights = WeightTable([0.0, 1.0])

        assert {wfc.choose_pattern(frozenset({0, 1}), weights, rng) for _ in range(50)} == {1}

    def test_zero_total_weight_is_uniform(self):
        """Test a domain without weight still yields one of its candidates."""
        choice = wfc.choose_pattern(frozenset({0, 1}), WeightTable([0.0, 0.0]), random.Random(5))

        assert choice in {0, 1}

    def test_seeded_choice_is_reproducible(self):
        """Test equal seeds produce equal choices."""
        weights = WeightTable([0.25, 0.25, 0.5])
        domain = frozenset({0, 1, 2})

        first = [wfc.choose_pattern(domain, weights, random.Random(9)) for _ in range(5)]
        second = [wfc.choose_pattern(domain, weights, random.Random(9)) for _ in range(5)]

        assert first == second


class TestTick:
    """Tests for tick function."""

    def test_collapses_at_least_one_cell(self, simple_state: WFCState):
        """Test one tick collapses a cell and never grows a domain."""
        try:
            state, _ = wfc.tick(simple_state, random.Random(11))
        except Contradiction:
            pytest.skip("first collapse ran into a contradiction")

        assert state.grid.uncollapsed_count() < simple_state.grid.uncollapsed_count()
        for x, y, cell in state.grid.cells():
            assert cell.domain <= simple_state.grid.get_cell(x, y).domain
        assert_locally_consistent(state)

    def test_input_state_is_not_modified(self, simple_state: WFCState):
        """Test the state passed to tick keeps its grid."""
        before = simple_state.grid.copy()

        try:
            wfc.tick(simple_state, random.Random(2))
        except Contradiction:
            pass

        assert simple_state.grid == before

    def test_checkerboard_completes_in_one_tick(self, checkerboard_state: WFCState):
        """Test fixed-point propagation settles the whole checkerboard after one collapse."""
        state, complete = wfc.tick(checkerboard_state, random.Random(4))

        assert complete
        assert state.is_complete()
        assert_locally_consistent(state)

    def test_single_step_only_narrows_direct_neighbors(self, checkerboard_sample):
        """Test single-step propagation leaves cells two steps away untouched."""
        state = wfc.init(checkerboard_sample, 2, 3, 1)

        new_state, complete = wfc.tick(state, random.Random(0), PropagationMode.SINGLE_STEP)

        assert not complete
        assert new_state.grid.get_cell(0, 0).collapsed
        assert new_state.grid.get_cell(2, 0) == state.grid.get_cell(2, 0)

    def test_single_step_collapses_single_candidate_on_next_tick(self, checkerboard_sample):
        """Test a neighbor narrowed to one candidate stays uncollapsed until the next tick collapses and propagates it."""
        state = wfc.init(checkerboard_sample, 2, 3, 1)
        rng = random.Random(0)

        state, _ = wfc.tick(state, rng, PropagationMode.SINGLE_STEP)
        neighbor = state.grid.get_cell(1, 0)
        assert not neighbor.collapsed
        assert len(neighbor.domain) == 1
        assert wfc.find_min_entropy_cell(state) == (1, 0)

        state, complete = wfc.tick(state, rng, PropagationMode.SINGLE_STEP)
        assert not complete
        assert state.grid.get_cell(1, 0).tile in neighbor.domain
        assert len(state.grid.get_cell(2, 0).domain) == 1

        state, complete = wfc.tick(state, rng, PropagationMode.SINGLE_STEP)
        assert complete
        tiles = wfc.get_output(state)[0].tolist()
        assert tiles[0] == tiles[2] != tiles[1]

    def test_single_step_completed_runs_are_locally_consistent(self, simple_sample):
        """Test every single-step run that completes places only compatible patterns next to each other."""
        initial_state = wfc.init(simple_sample, 2, 3, 3)

        completed = 0
        for seed in range(100):
            state, rng = initial_state, random.Random(seed)
            complete = False
            try:
                while not complete:
                    state, complete = wfc.tick(state, rng, PropagationMode.SINGLE_STEP)
            except Contradiction:
                continue
            completed += 1
            assert_locally_consistent(state)

        assert completed > 0

    def test_one_by_one_grid(self, simple_sample):
        """Test a single-cell output is complete after one tick."""
        state = wfc.init(simple_sample, 2, 1, 1)

        new_state, complete = wfc.tick(state, random.Random(0))

        assert complete
        assert wfc.get_output(new_state)[0, 0] in range(12)

    def test_complete_state_raises(self, checkerboard_state: WFCState):
        """Test ticking a complete state raises NoUncollapsedCells."""
        state, _ = wfc.tick(checkerboard_state, random.Random(0))

        with pytest.raises(NoUncollapsedCells):
            wfc.tick(state)

    def test_contradiction(self, contradictory_state: WFCState):
        """Test an emptied neighbor domain raises Contradiction with the failing cell."""
        with pytest.raises(Contradiction) as exc_info:
            wfc.tick(contradictory_state, random.Random(0))

        error = exc_info.value
        assert error.coords == (1, 0)
        assert error.state is not None
        assert error.state.grid.get_cell(1, 0).domain == frozenset()
        assert error.state.grid.get_cell(0, 0).collapsed

    def test_seeded_ticks_are_reproducible(self, simple_sample):
        """Test two runs with the same seed make the same choices."""

        def collapse_sequence(seed: int) -> list:
            state = wfc.init(simple_sample, 2, 5, 5)
            rng = random.Random(seed)
            outputs = []
            try:
                while not state.is_complete():
                    state, _ = wfc.tick(state, rng)
                    outputs.append(wfc.get_output(state).tolist())
            except Contradiction as e:
                outputs.append(e.coords)
            return outputs

        assert collapse_sequence(21) == collapse_sequence(21)


class TestPropagate:
    """Tests for propagate function."""

    def test_returns_updated_cells(self, checkerboard_sample):
        """Test the coords of every narrowed cell are reported in update order."""
        state = wfc.init(checkerboard_sample, 2, 3, 1)
        grid = state.grid.copy()
        grid.set_cell(0, 0, Cell(frozenset({0}), 0))

        updated = wfc.propagate(state, grid, (0, 0))

        assert updated == [(1, 0), (2, 0)]
        assert [grid.get_cell(x, 0).tile for x in range(3)] == [0, 1, 0]

    def test_grid_is_updated_in_place(self, checkerboard_sample):
        """Test propagation writes into the given grid but not into the state's grid."""
        state = wfc.init(checkerboard_sample, 2, 2, 2)
        grid = state.grid.copy()
        grid.set_cell(1, 1, Cell(frozenset({1}), 1))

        wfc.propagate(state, grid, (1, 1))

        assert grid.is_complete()
        assert state.grid.uncollapsed_count() == 4

    def test_single_step_keeps_single_candidates_uncollapsed(self, checkerboard_sample):
        """Test single-step propagation narrows a neighbor to one candidate without collapsing it."""
        state = wfc.init(checkerboard_sample, 2, 3, 1)
        grid = state.grid.copy()
        grid.set_cell(0, 0, Cell(frozenset({0}), 0))

        updated = wfc.propagate(state, grid, (0, 0), PropagationMode.SINGLE_STEP)

        assert updated == [(1, 0)]
        assert grid.get_cell(1, 0) == Cell(frozenset({1}))
        assert grid.get_cell(2, 0) == state.grid.get_cell(2, 0)


class TestOutput:
    """Tests for get_output and get_tile_output functions."""

    def test_fresh_state_is_unset(self, simple_sample):
        """Test an uncollapsed grid maps to UNSET everywhere with shape (height, width)."""
        state = wfc.init(simple_sample, 2, 4, 3)
        output = wfc.get_output(state)

        assert output.shape == (3, 4)
        assert (output == UNSET).all()

    def test_checkerboard_tiles_alternate(self, checkerboard_state: WFCState):
        """Test the generated checkerboard tilemap alternates between both tiles."""
        state, _ = wfc.tick(checkerboard_state, random.Random(8))
        tiles = wfc.get_tile_output(state)

        assert set(np.unique(tiles).tolist()) == {0, 1}
        assert (tiles[:, 1:] != tiles[:, :-1]).all()
        assert (tiles[1:, :] != tiles[:-1, :]).all()

    def test_tile_output_keeps_unset(self, checkerboard_sample):
        """Test uncollapsed cells stay UNSET in the tilemap."""
        state = wfc.init(checkerboard_sample, 2, 3, 1)
        state, _ = wfc.tick(state, random.Random(0), PropagationMode.SINGLE_STEP)
        tiles = wfc.get_tile_output(state)

        assert tiles[0, 2] == UNSET
        assert tiles[0, 0] != UNSET
