"""Renders tile grids as text for terminal output."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING

from tilemap_wfc.constants import LEVEL_SEPARATOR_WIDTH, TILE_GLYPHS, UNSET, UNSET_GLYPH

if TYPE_CHECKING:
    import numpy as np
    from numpy.typing import NDArray


def tile_glyph(tile_index: int, glyphs: Mapping[int, str] = TILE_GLYPHS) -> str:
    """Returns the character shown for a tile id; ids without a glyph show their last digit."""
    if tile_index == UNSET:
        return UNSET_GLYPH
    if tile_index in glyphs:
        return glyphs[tile_index]
    return str(tile_index % 10)


def format_tile_grid(tile_grid: NDArray[np.int_], glyphs: Mapping[int, str] = TILE_GLYPHS) -> list[str]:
    """Returns one line of glyphs per row of the tile grid."""
    return ["".join(tile_glyph(int(tile_index), glyphs) for tile_index in row) for row in tile_grid]


def format_level(tile_grid: NDArray[np.int_], title: str = "Generated Level:") -> str:
    """Formats a tile grid as a titled block framed by separator lines."""
    separator = "=" * LEVEL_SEPARATOR_WIDTH
    return "\n".join([title, separator, *format_tile_grid(tile_grid), separator])
