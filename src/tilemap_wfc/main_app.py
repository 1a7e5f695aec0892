"""Serves as the command line entry point of the tilemap generator."""

from __future__ import annotations

import argparse
from collections.abc import Sequence
import logging
import random
import sys
import time

import numpy as np

from tilemap_wfc import constants
from tilemap_wfc.enums import AdjacencyMode, ExampleSample, PropagationMode
from tilemap_wfc.errors import Contradiction, GenerationAborted, MaxIterationsExceeded, WFCError
from tilemap_wfc.logging_setup import setup_logging
from tilemap_wfc.model import file_io, wfc
from tilemap_wfc.model.tileset_manager import TilesetManager
from tilemap_wfc.model.wfc_manager import RunLoop, generate_from_state
from tilemap_wfc.view.text_view import format_level


logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tilemap-wfc", description="Generate a tilemap from a sample grid using Wave Function Collapse (WFC)."
    )

    source = parser.add_mutually_exclusive_group()
    source.add_argument(
        "--example",
        choices=[example.value for example in ExampleSample],
        help="Built-in sample to learn from when no other sample source is given (default: simple)",
    )
    source.add_argument("--sample-csv", help="CSV file with one row of tile ids per line")
    source.add_argument("--sample-image", help="Image file; every distinct color becomes a tile")
    source.add_argument("--resume-state", help="Continue generating from a state saved with --save-state")

    parser.add_argument("--width", type=int, default=constants.OUTPUT_WIDTH_DEFAULT, help="Output width in cells")
    parser.add_argument("--height", type=int, default=constants.OUTPUT_HEIGHT_DEFAULT, help="Output height in cells")
    parser.add_argument(
        "--pattern-size", type=int, default=constants.PATTERN_SIZE_DEFAULT, help="Width and height of the patterns"
    )
    parser.add_argument("--seed", type=int, default=None, help="Random seed")
    parser.add_argument(
        "--max-iterations", type=int, default=None, help="Maximum number of ticks (default: width * height * 2)"
    )
    parser.add_argument(
        "--attempts",
        type=int,
        default=constants.WFC_MAX_ATTEMPTS_DEFAULT,
        help="Restart with a fresh seed up to this many times after a contradiction",
    )
    parser.add_argument(
        "--propagation",
        choices=[mode.value for mode in PropagationMode],
        default=PropagationMode.FIXED_POINT.value,
        help="How far constraints are propagated after each collapse",
    )
    parser.add_argument(
        "--adjacency",
        choices=[mode.value for mode in AdjacencyMode],
        default=AdjacencyMode.EDGE.value,
        help="How the compatibility of neighboring patterns is determined",
    )
    parser.add_argument(
        "--tile-size", type=int, default=constants.TILE_SIZE_DEFAULT, help="Pixels per tile for --sample-image"
    )
    parser.add_argument("--max-colors", type=int, default=None, help="Quantize --sample-image to this many tiles")
    parser.add_argument("--timeout", type=float, default=None, help="Abort generation after this many seconds")
    parser.add_argument("--output-csv", help="Save the generated tilemap as CSV")
    parser.add_argument("--output-image", help="Save the generated tilemap as an image")
    parser.add_argument(
        "--cell-size", type=int, default=constants.RENDER_CELL_SIZE_DEFAULT, help="Pixels per tile for --output-image"
    )
    parser.add_argument("--save-state", help="Save the final (or failed) state as JSON")
    parser.add_argument("--log-level", default="WARNING", help="Console log level")
    parser.add_argument("--log-file", default=None, help="Write a debug log to this file")
    return parser


def validate_args(parser: argparse.ArgumentParser, args: argparse.Namespace) -> None:
    """Checks the numeric arguments against the limits in 'constants'."""
    for name, value in (("--width", args.width), ("--height", args.height)):
        if not constants.OUTPUT_SIZE_MIN_LIMIT <= value <= constants.OUTPUT_SIZE_MAX_LIMIT:
            parser.error(
                f"{name} must be between {constants.OUTPUT_SIZE_MIN_LIMIT} and {constants.OUTPUT_SIZE_MAX_LIMIT}"
            )
    if not constants.PATTERN_SIZE_MIN_LIMIT <= args.pattern_size <= constants.PATTERN_SIZE_MAX_LIMIT:
        parser.error(
            f"--pattern-size must be between {constants.PATTERN_SIZE_MIN_LIMIT} and "
            f"{constants.PATTERN_SIZE_MAX_LIMIT}"
        )
    if not 1 <= args.attempts <= constants.WFC_MAX_ATTEMPTS_MAX_LIMIT:
        parser.error(f"--attempts must be between 1 and {constants.WFC_MAX_ATTEMPTS_MAX_LIMIT}")
    if args.seed is not None and not 0 <= args.seed <= constants.RANDOM_SEED_MAX:
        parser.error(f"--seed must be between 0 and {constants.RANDOM_SEED_MAX}")
    if args.max_iterations is not None and args.max_iterations < 1:
        parser.error("--max-iterations must be positive")


def load_sample(args: argparse.Namespace, tileset_manager: TilesetManager) -> np.ndarray:
    if args.sample_csv:
        return file_io.load_sample_csv(args.sample_csv)
    if args.sample_image:
        return tileset_manager.load_sample_image(args.sample_image, args.tile_size, args.max_colors)
    example = ExampleSample(args.example) if args.example else ExampleSample.SIMPLE
    return np.array(constants.EXAMPLE_SAMPLES[example], dtype=np.int_)


def resume(args: argparse.Namespace, deadline: float | None) -> RunLoop:
    """Continues a persisted generation with a run loop that owns a fresh copy of the loaded state."""
    state = file_io.load_state(args.resume_state)
    print(f"Resuming {state.width}x{state.height} generation, {state.grid.uncollapsed_count()} cells left")
    max_iterations = args.max_iterations or state.width * state.height * 2
    run_loop = RunLoop(
        state,
        max_iterations,
        random.Random(args.seed),
        PropagationMode(args.propagation),
        deadline=deadline,
        keep_history=False,
    )
    run_loop.run()
    return run_loop


def main(argv: Sequence[str] | None = None) -> int:
    """Runs the tilemap generator and returns the process exit status."""
    parser = build_parser()
    args = parser.parse_args(argv)
    validate_args(parser, args)
    setup_logging(args.log_level.upper(), args.log_file)
    logger.debug("Arguments: %s", vars(args))

    tileset_manager = TilesetManager()
    deadline = time.monotonic() + args.timeout if args.timeout is not None else None
    error: WFCError | None = None

    try:
        if args.resume_state:
            run_loop = resume(args, deadline)
            final_state, iterations, error = run_loop.state, run_loop.iterations, run_loop.error
        else:
            sample = load_sample(args, tileset_manager)
            print("Generating tilemap with WFC")
            print(f"Sample: {sample.shape[1]}x{sample.shape[0]}, output: {args.width}x{args.height}")
            initial_state = wfc.init(
                sample, args.pattern_size, args.width, args.height, AdjacencyMode(args.adjacency)
            )
            print(f"Patterns extracted: {len(initial_state.patterns)}")

            final_state, iterations = initial_state, 0
            try:
                result = generate_from_state(
                    initial_state,
                    max_iterations=args.max_iterations,
                    seed=args.seed,
                    max_attempts=args.attempts,
                    propagation=PropagationMode(args.propagation),
                    deadline=deadline,
                    keep_history=False,
                )
                final_state, iterations = result.state, result.iterations
                print(f"Attempts: {result.attempts}")
            except (Contradiction, MaxIterationsExceeded, GenerationAborted) as e:
                error = e
                if isinstance(e, Contradiction) and e.state is not None:
                    final_state = e.state
    except (WFCError, OSError) as e:
        print(f"Initialization failed: {e}", file=sys.stderr)
        return 1

    if args.save_state:
        file_io.save_state(args.save_state, final_state)

    if error is not None:
        print(f"Generation failed: {error}", file=sys.stderr)
        return 1

    tilemap = wfc.get_tile_output(final_state)
    print(f"Iterations: {iterations}")
    print(format_level(tilemap))

    if args.output_csv:
        file_io.save_tilemap_csv(args.output_csv, tilemap)
    if args.output_image:
        tileset_manager.save_tilemap_img(tilemap, args.output_image, args.cell_size)
    return 0


if __name__ == "__main__":
    sys.exit(main())
