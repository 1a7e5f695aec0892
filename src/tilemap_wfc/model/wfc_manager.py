"""Contains the run loop that drives ticks to completion and the retry policy layered above it."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
import logging
import random
import time
from typing import TYPE_CHECKING

from tilemap_wfc.constants import MAX_ITERATIONS_DEFAULT, PATTERN_SIZE_DEFAULT, WFC_MAX_ATTEMPTS_DEFAULT
from tilemap_wfc.enums import AdjacencyMode, PropagationMode, RunStatus
from tilemap_wfc.errors import Contradiction, GenerationAborted, MaxIterationsExceeded, WFCError
from tilemap_wfc.model import wfc

if TYPE_CHECKING:
    from threading import Event

    import numpy as np
    from numpy.typing import NDArray

    from tilemap_wfc.model.wfc_state import WFCState


logger = logging.getLogger(__name__)


class RunLoop:
    """Repeatedly ticks a WFC state until it is complete, fails or runs out of iterations.

    The loop is a small state machine: it starts in RunStatus.RUNNING and ends in RunStatus.COMPLETE once every cell
    is collapsed, or in RunStatus.FAILED when a tick raises (e.g. a contradiction), the iteration cap is reached, or
    generation is cancelled. Cancellation (abort event or deadline) is checked before every tick. The loop owns its
    state exclusively; unless disabled, every post-tick state is appended to the history, oldest first.

    Attributes:
        state: The most recent state.
        history: Every post-tick state, oldest first (one entry per tick); empty if history is not kept.
        status: The current status of the loop.
        error: The reason the loop failed, or None unless the status is RunStatus.FAILED.
        iterations: The number of ticks performed so far.
    """

    state: WFCState
    history: list[WFCState]
    status: RunStatus
    error: WFCError | None
    iterations: int

    # Maximum number of ticks before the loop fails with MaxIterationsExceeded.
    _max_iterations: int
    # Random number generator used for the weighted pattern choices.
    _rng: random.Random
    # How far the constraint of each collapsed cell is propagated.
    _propagation: PropagationMode
    # Event object used to signal the loop to abort generation before the next tick.
    _abort_event: Event | None
    # time.monotonic() value after which the loop aborts before the next tick.
    _deadline: float | None
    # Whether every post-tick state is appended to the history.
    _keep_history: bool

    def __init__(
        self,
        state: WFCState,
        max_iterations: int = MAX_ITERATIONS_DEFAULT,
        rng: random.Random | None = None,
        propagation: PropagationMode = PropagationMode.FIXED_POINT,
        abort_event: Event | None = None,
        deadline: float | None = None,
        keep_history: bool = True,
    ) -> None:
        """Initializes the run loop with the state to advance.

        Args:
            state: The state to start from; it is never modified.
            max_iterations: Maximum number of ticks before the loop fails with MaxIterationsExceeded.
            rng: Random number generator used for the weighted pattern choices. A fresh unseeded generator is used if
                None.
            propagation: How far the constraint of each collapsed cell is propagated.
            abort_event: Event object used to signal the loop to abort generation before the next tick.
            deadline: time.monotonic() value after which the loop aborts before the next tick.
            keep_history: Whether every post-tick state is kept. Without history only the most recent state is held,
                so memory use does not grow with the number of ticks.
        """
        self.state = state
        self.history = []
        self.error = None
        self.iterations = 0
        self.status = RunStatus.COMPLETE if state.is_complete() else RunStatus.RUNNING

        self._max_iterations = max_iterations
        self._rng = rng or random.Random()
        self._propagation = propagation
        self._abort_event = abort_event
        self._deadline = deadline
        self._keep_history = keep_history

    def step(self) -> RunStatus:
        """Performs one tick (if the loop is still running) and returns the resulting status."""
        if self.status != RunStatus.RUNNING:
            return self.status

        if self._abort_event is not None and self._abort_event.is_set():
            return self._fail(GenerationAborted(f"Generation aborted after {self.iterations} iteration(s)"))
        if self._deadline is not None and time.monotonic() >= self._deadline:
            return self._fail(GenerationAborted(f"Deadline passed after {self.iterations} iteration(s)"))
        if self.iterations >= self._max_iterations:
            return self._fail(MaxIterationsExceeded(self._max_iterations))

        try:
            new_state, complete = wfc.tick(self.state, self._rng, self._propagation)
        except WFCError as e:
            if isinstance(e, Contradiction) and e.state is not None:
                self.state = e.state
            return self._fail(e)

        self.iterations += 1
        self.state = new_state
        if self._keep_history:
            self.history.append(new_state)

        if complete:
            self.status = RunStatus.COMPLETE
            logger.info("Generation complete after %d iteration(s)", self.iterations)
        return self.status

    def run(self) -> RunStatus:
        """Steps until the loop is no longer running and returns the final status."""
        while self.step() == RunStatus.RUNNING:
            pass
        return self.status

    def raise_on_failure(self) -> None:
        """Raises the error the loop failed with; does nothing unless the status is RunStatus.FAILED."""
        if self.error is not None:
            raise self.error

    def _fail(self, error: WFCError) -> RunStatus:
        self.status = RunStatus.FAILED
        self.error = error
        logger.info("Generation failed after %d iteration(s): %s", self.iterations, error)
        return self.status


def run(
    state: WFCState,
    max_iterations: int = MAX_ITERATIONS_DEFAULT,
    rng: random.Random | None = None,
    propagation: PropagationMode = PropagationMode.FIXED_POINT,
    abort_event: Event | None = None,
    deadline: float | None = None,
) -> tuple[WFCState, list[WFCState]]:
    """Runs WFC until completion.

    Args:
        state: The state to start from; it is never modified.
        max_iterations: Maximum number of ticks.
        rng: Random number generator used for the weighted pattern choices.
        propagation: How far the constraint of each collapsed cell is propagated.
        abort_event: Event object used to signal generation to abort before the next tick.
        deadline: time.monotonic() value after which generation aborts before the next tick.

    Returns:
        The final (fully collapsed) state and the list of every post-tick state, oldest first.

    Raises:
        Contradiction: If a cell's domain became empty.
        MaxIterationsExceeded: If 'max_iterations' ticks did not collapse every cell.
        GenerationAborted: If generation was cancelled.
    """
    run_loop = RunLoop(state, max_iterations, rng, propagation, abort_event, deadline)
    run_loop.run()
    run_loop.raise_on_failure()
    return run_loop.state, run_loop.history


@dataclass(frozen=True)
class GenerationResult:
    """The outcome of a successful 'generate()' call.

    Attributes:
        state: The final, fully collapsed state.
        history: Every post-tick state of the successful attempt, oldest first; empty if history was not kept.
        attempts: The number of attempts that were needed (1 if the first attempt succeeded).
        seed: The seed of the successful attempt, or None if generation was unseeded.
        iterations: The number of ticks of the successful attempt.
    """

    state: WFCState
    history: list[WFCState]
    attempts: int
    seed: int | None
    iterations: int

    def output(self) -> NDArray[np.int_]:
        """Returns the grid of collapsed pattern IDs of the final state."""
        return wfc.get_output(self.state)

    def tilemap(self) -> NDArray[np.int_]:
        """Returns the tilemap (top-left tile of every collapsed pattern) of the final state."""
        return wfc.get_tile_output(self.state)


def generate(
    sample: Sequence[Sequence[int]] | NDArray[np.int_],
    width: int,
    height: int,
    pattern_size: int = PATTERN_SIZE_DEFAULT,
    *,
    max_iterations: int | None = None,
    seed: int | None = None,
    max_attempts: int = WFC_MAX_ATTEMPTS_DEFAULT,
    propagation: PropagationMode = PropagationMode.FIXED_POINT,
    adjacency_mode: AdjacencyMode = AdjacencyMode.EDGE,
    abort_event: Event | None = None,
    deadline: float | None = None,
    keep_history: bool = True,
) -> GenerationResult:
    """Generates an output grid from a sample, restarting the whole run with a fresh seed after a failure.

    The core algorithm never backtracks; this policy only restarts generation from the initial state when an attempt
    ends in a contradiction or runs out of iterations. Attempt k (counting from 0) uses random.Random(seed + k).
    Cancellation and invalid input are never retried.

    Args:
        sample: A rectangular grid of non-negative tile ids.
        width: The width of the output grid (in cells).
        height: The height of the output grid (in cells).
        pattern_size: The width and height of the square patterns to extract (in tiles).
        max_iterations: Maximum number of ticks per attempt. Defaults to width * height * 2.
        seed: Seed of the first attempt, or None for unseeded generation.
        max_attempts: Maximum number of attempts.
        propagation: How far the constraint of each collapsed cell is propagated.
        adjacency_mode: Whether the facing edges or the overlap regions of neighboring patterns have to match.
        abort_event: Event object used to signal generation to abort before the next tick.
        deadline: time.monotonic() value after which generation aborts before the next tick.
        keep_history: Whether every post-tick state of the successful attempt is returned.

    Returns:
        The final state, its history, the number of attempts and the seed of the successful attempt.

    Raises:
        InvalidSample: If the sample is invalid or smaller than the pattern size.
        InvalidOutputSize: If the output width or height is smaller than 1.
        Contradiction: If the last attempt ended in a contradiction.
        MaxIterationsExceeded: If the last attempt ran out of iterations.
        GenerationAborted: If generation was cancelled.
    """
    initial_state = wfc.init(sample, pattern_size, width, height, adjacency_mode)
    return generate_from_state(
        initial_state,
        max_iterations=max_iterations,
        seed=seed,
        max_attempts=max_attempts,
        propagation=propagation,
        abort_event=abort_event,
        deadline=deadline,
        keep_history=keep_history,
    )


def generate_from_state(
    initial_state: WFCState,
    *,
    max_iterations: int | None = None,
    seed: int | None = None,
    max_attempts: int = WFC_MAX_ATTEMPTS_DEFAULT,
    propagation: PropagationMode = PropagationMode.FIXED_POINT,
    abort_event: Event | None = None,
    deadline: float | None = None,
    keep_history: bool = True,
) -> GenerationResult:
    """Runs the retry policy of 'generate()' on an already initialized state.

    Every attempt starts from 'initial_state', which is never modified.
    """
    if max_iterations is None:
        max_iterations = initial_state.width * initial_state.height * 2

    attempts = max(1, max_attempts)
    attempt = 0
    while True:
        attempt_seed = None if seed is None else seed + attempt
        run_loop = RunLoop(
            initial_state,
            max_iterations,
            random.Random(attempt_seed),
            propagation,
            abort_event,
            deadline,
            keep_history,
        )
        run_loop.run()
        attempt += 1
        try:
            run_loop.raise_on_failure()
        except (Contradiction, MaxIterationsExceeded) as e:
            logger.warning("Attempt %d of %d failed: %s", attempt, attempts, e)
            if attempt >= attempts:
                raise
            continue

        return GenerationResult(run_loop.state, run_loop.history, attempt, attempt_seed, run_loop.iterations)
