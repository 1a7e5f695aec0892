"""Reads and writes sample grids, generated tilemaps and persisted WFC states."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np

from tilemap_wfc.errors import InvalidSample, InvalidState
from tilemap_wfc.model.pattern_data import to_sample_array
from tilemap_wfc.model.wfc_state import WFCState

if TYPE_CHECKING:
    from numpy.typing import NDArray


logger = logging.getLogger(__name__)


def load_sample_csv(file_path: str | Path) -> NDArray[np.int_]:
    """Loads a sample grid from a comma separated file with one row of tile ids per line.

    Raises:
        InvalidSample: If the file does not contain a rectangular grid of non-negative integer tile ids.
    """
    try:
        sample = np.genfromtxt(file_path, delimiter=",", dtype=np.int_, ndmin=2)
    except ValueError as e:
        raise InvalidSample(f"Could not read sample from {file_path}: {e}") from e
    return to_sample_array(sample)


def save_tilemap_csv(file_path: str | Path, tilemap: NDArray[np.int_]) -> None:
    """Saves a grid of tile (or pattern) ids as a comma separated file."""
    np.savetxt(file_path, np.asarray(tilemap, dtype=np.int_), fmt="%d", delimiter=",")


def save_state(file_path: str | Path, state: WFCState) -> Path:
    """Persists a WFC state as JSON so that generation can be resumed later."""
    path = Path(file_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(state.to_dict(), f)
    logger.debug("Saved %dx%d state to %s", state.width, state.height, path)
    return path


def load_state(file_path: str | Path) -> WFCState:
    """Loads a WFC state persisted by 'save_state()'.

    Raises:
        InvalidState: If the file is not valid JSON or does not describe a consistent state.
    """
    path = Path(file_path)
    with open(path, encoding="utf-8") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise InvalidState(f"State file {path} is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise InvalidState(f"State file {path} must contain a JSON object")
    return WFCState.from_dict(data)
