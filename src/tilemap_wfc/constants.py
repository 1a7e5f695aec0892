"""Contains global constants and default values used throughout the project."""

from tilemap_wfc.enums import ExampleSample


# === MODEL CONSTANTS ===

PATTERN_SIZE_DEFAULT: int = 3
PATTERN_SIZE_MIN_LIMIT: int = 1
PATTERN_SIZE_MAX_LIMIT: int = 16

OUTPUT_WIDTH_DEFAULT: int = 30
OUTPUT_HEIGHT_DEFAULT: int = 20
OUTPUT_SIZE_MIN_LIMIT: int = 1
OUTPUT_SIZE_MAX_LIMIT: int = 500

MAX_ITERATIONS_DEFAULT: int = 1000

WFC_MAX_ATTEMPTS_DEFAULT: int = 1
WFC_MAX_ATTEMPTS_MAX_LIMIT: int = 100

RANDOM_SEED_MAX: int = 999999999

# Value used for cells (and output tiles) that have not been collapsed yet.
UNSET: int = -1

# === SAMPLE / IMAGE CONSTANTS ===

TILE_SIZE_DEFAULT: int = 1
RENDER_CELL_SIZE_DEFAULT: int = 8
UNSET_TILE_COLOR: tuple[int, int, int] = (0, 0, 0)

EXAMPLE_SAMPLES: dict[ExampleSample, list[list[int]]] = {
    ExampleSample.SIMPLE: [
        [1, 1, 1, 1, 1],
        [1, 0, 0, 0, 1],
        [1, 0, 2, 0, 1],
        [1, 0, 0, 0, 1],
        [1, 1, 1, 1, 1],
    ],
    ExampleSample.CHECKERBOARD: [
        [0, 1, 0, 1, 0],
        [1, 0, 1, 0, 1],
        [0, 1, 0, 1, 0],
        [1, 0, 1, 0, 1],
        [0, 1, 0, 1, 0],
    ],
    ExampleSample.DUNGEON: [
        [1, 1, 1, 1, 1, 1, 1],
        [1, 0, 0, 0, 0, 0, 1],
        [1, 0, 2, 2, 2, 0, 1],
        [1, 0, 2, 3, 2, 0, 1],
        [1, 0, 2, 2, 2, 0, 1],
        [1, 0, 0, 0, 0, 0, 1],
        [1, 1, 1, 1, 1, 1, 1],
    ],
}

# === VIEW CONSTANTS ===

TILE_GLYPHS: dict[int, str] = {
    0: " ",
    1: "█",
    2: "░",
    3: "▓",
}
UNSET_GLYPH: str = "?"
LEVEL_SEPARATOR_WIDTH: int = 60
