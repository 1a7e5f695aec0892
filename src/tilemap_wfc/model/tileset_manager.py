"""Converts bitmaps into sample grids and renders tilemaps back into images."""

from __future__ import annotations

from collections.abc import Mapping
import logging
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np
from PIL import Image

from tilemap_wfc.constants import RENDER_CELL_SIZE_DEFAULT, TILE_SIZE_DEFAULT, UNSET, UNSET_TILE_COLOR
from tilemap_wfc.errors import InvalidSample

if TYPE_CHECKING:
    from numpy.typing import NDArray


logger = logging.getLogger(__name__)


class TilesetManager:
    """Manages the palette that maps tile ids to colors.

    Loading a sample image assigns a tile id to every distinct color (in the order the colors are first seen, reading
    the image row by row) and remembers the color of each id, so that generated tilemaps can be rendered with the
    colors of the sample. Tile ids without a known color are rendered in gray shades derived from the id.

    Attributes:
        palette: Maps tile ids to their RGB colors.
    """

    palette: dict[int, tuple[int, int, int]]

    def __init__(self, palette: Mapping[int, tuple[int, int, int]] | None = None) -> None:
        self.palette = dict(palette or {})

    def load_sample_image(
        self, img_path: str | Path, tile_size: int = TILE_SIZE_DEFAULT, max_colors: int | None = None
    ) -> NDArray[np.int_]:
        """Loads an image and converts it into a sample grid of tile ids.

        Every 'tile_size' x 'tile_size' block of pixels becomes one tile with the average color of the block. If
        'max_colors' is given, the colors are quantized to at most that many before tile ids are assigned, which
        merges similar colors into the same tile. The palette is replaced by the colors of the loaded image.

        Args:
            img_path: The file path to the sample image.
            tile_size: The width and height of a tile in pixels.
            max_colors: The maximum number of distinct tiles, or None to keep every distinct color.

        Returns:
            A 2D array of tile ids of shape (image height // tile_size, image width // tile_size).

        Raises:
            InvalidSample: If the image is smaller than one tile or the arguments are out of range.
        """
        if tile_size < 1:
            raise InvalidSample(f"Tile size must be at least 1, got {tile_size}")
        if max_colors is not None and not 1 <= max_colors <= 256:
            raise InvalidSample(f"Max colors must be between 1 and 256, got {max_colors}")

        with Image.open(img_path) as img:
            sample_img = img.convert("RGB")

        cols = sample_img.size[0] // tile_size
        rows = sample_img.size[1] // tile_size
        if rows == 0 or cols == 0:
            raise InvalidSample(
                f"Image of size {sample_img.size[0]}x{sample_img.size[1]} is smaller than one {tile_size}px tile"
            )

        if tile_size > 1:
            # Drop incomplete blocks at the borders, then average each block.
            sample_img = sample_img.crop((0, 0, cols * tile_size, rows * tile_size)).reduce(tile_size)

        if max_colors is not None:
            sample_img = sample_img.quantize(colors=max_colors).convert("RGB")

        sample, self.palette = self._index_colors(np.asarray(sample_img, dtype=np.uint8))
        logger.info(
            "Loaded %dx%d sample with %d distinct tiles from %s", cols, rows, len(self.palette), img_path
        )
        return sample

    def get_color(self, tile_index: int) -> tuple[int, int, int]:
        """Returns the color of a tile id; UNSET is black, unknown ids get a gray shade."""
        if tile_index == UNSET:
            return UNSET_TILE_COLOR
        if tile_index in self.palette:
            return self.palette[tile_index]
        shade = (tile_index * 67 + 40) % 256
        return (shade, shade, shade)

    def get_tilemap_img(
        self, tilemap_array: NDArray[np.int_], cell_size: int = RENDER_CELL_SIZE_DEFAULT
    ) -> Image.Image:
        """Renders a tilemap array into a PIL Image object.

        Every tile is drawn as a 'cell_size' x 'cell_size' square in the color of its tile id; UNSET cells are
        black.

        Args:
            tilemap_array: A 2D array containing tile ids.
            cell_size: The width and height of a tile in the rendered image (in pixels).

        Returns:
            A PIL Image representing the visual tilemap.
        """
        tilemap_array = np.asarray(tilemap_array, dtype=np.int_)
        colors = np.zeros((*tilemap_array.shape, 3), dtype=np.uint8)
        for tile_index in np.unique(tilemap_array):
            colors[tilemap_array == tile_index] = self.get_color(int(tile_index))

        # tilemap_array.shape is (rows, cols); repeat each tile along both axes to scale it up.
        pixels = colors.repeat(cell_size, axis=0).repeat(cell_size, axis=1)
        return Image.fromarray(pixels)

    def save_tilemap_img(
        self, tilemap_array: NDArray[np.int_], file_path: str | Path, cell_size: int = RENDER_CELL_SIZE_DEFAULT
    ) -> None:
        """Renders a tilemap array and saves it to the specified file path."""
        self.get_tilemap_img(tilemap_array, cell_size).save(file_path)

    @staticmethod
    def _index_colors(pixels: NDArray[np.uint8]) -> tuple[NDArray[np.int_], dict[int, tuple[int, int, int]]]:
        """Assigns sequential tile ids to the distinct colors of an RGB pixel array in first-seen order."""
        flat = pixels.reshape(-1, 3)
        unique_colors, first_index, inverse = np.unique(flat, axis=0, return_index=True, return_inverse=True)

        # np.unique sorts colors; renumber them by the position where each color first appears.
        order = np.argsort(first_index)
        tile_ids = np.empty(len(order), dtype=np.int_)
        tile_ids[order] = np.arange(len(order))

        sample = tile_ids[inverse.reshape(-1)].reshape(pixels.shape[:2])
        palette = {
            int(tile_ids[color_index]): tuple(int(channel) for channel in unique_colors[color_index])
            for color_index in range(len(unique_colors))
        }
        return sample, palette
