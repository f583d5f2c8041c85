"""
Height field statistics.

Used to log what each pipeline stage did to the terrain and by the tests to
check volume and slope invariants.
"""

from dataclasses import asdict, dataclass
from typing import Dict

import numpy as np

from .heightfield import HeightField

# 8-connected neighbour offsets as (dy, dx), in the order used by thermal erosion
NEIGHBOR_OFFSETS = (
    (-1, -1), (-1, 0), (-1, 1),
    (0, -1), (0, 1),
    (1, -1), (1, 0), (1, 1),
)


@dataclass(frozen=True)
class TerrainStatistics:
    """Summary of a height field at one point in the pipeline."""

    min_height: float
    max_height: float
    mean_height: float
    total_volume: float
    max_drop: float  # Largest height difference from a cell to one of its 8 neighbours

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


def neighbor_drops(heights: np.ndarray) -> np.ndarray:
    """
    Height drop from every cell to each of its 8 neighbours.

    Returns:
        Array of shape (8, rows, cols). Neighbours outside the grid count as a
        drop of 0 (edge padding).
    """
    rows, cols = heights.shape
    padded = np.pad(heights, 1, mode="edge")
    drops = np.empty((len(NEIGHBOR_OFFSETS), rows, cols), dtype=np.float64)
    for k, (dy, dx) in enumerate(NEIGHBOR_OFFSETS):
        neighbor = padded[1 + dy:rows + 1 + dy, 1 + dx:cols + 1 + dx]
        drops[k] = heights - neighbor
    return drops


def max_drop(heights: np.ndarray) -> float:
    if heights.size == 1:
        return 0.0
    return float(max(neighbor_drops(heights).max(), 0.0))


def compute_statistics(field: HeightField) -> TerrainStatistics:
    data = field.data
    return TerrainStatistics(
        min_height=float(data.min()),
        max_height=float(data.max()),
        mean_height=float(data.mean()),
        total_volume=float(data.sum()),
        max_drop=max_drop(data),
    )


def volume_difference(before: TerrainStatistics, after: TerrainStatistics) -> float:
    """Net material added (positive) or removed (negative) between two snapshots."""
    return after.total_volume - before.total_volume


def steep_cell_count(field: HeightField, threshold: float) -> int:
    """Cells whose steepest drop to a neighbour exceeds ``threshold``."""
    if field.data.size == 1:
        return 0
    steepest = neighbor_drops(field.data).max(axis=0)
    return int(np.count_nonzero(steepest > threshold))
