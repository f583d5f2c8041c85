"""
Shared height field used by every erosion and river stage.

The grid is stored as a float64 NumPy array of shape (height, width) and is
indexed ``[iy, ix]``. Continuous coordinates are expressed in cell units with
``x`` along the width and ``y`` along the height, so lattice node (ix, iy)
sits at continuous position (ix, iy).

Every mutation path clamps at zero; no cell can become negative.
"""

import math
from typing import Optional, Tuple

import numpy as np
import structlog

from ..config.config import settings

logger = structlog.get_logger()


class InvalidGridError(ValueError):
    """Raised when a height field cannot be built from the given dimensions or data."""


def _validate_dimensions(width: int, height: int) -> None:
    if int(width) != width or int(height) != height:
        raise InvalidGridError(f"Grid dimensions must be integers, got {width}x{height}")
    if width <= 0 or height <= 0:
        raise InvalidGridError(f"Grid dimensions must be positive, got {width}x{height}")
    if width > settings.max_grid_size or height > settings.max_grid_size:
        raise InvalidGridError(
            f"Grid {width}x{height} exceeds the maximum size {settings.max_grid_size}"
        )


class HeightField:
    """Rectangular grid of non-negative elevation values."""

    def __init__(self, width: int, height: int, data: Optional[np.ndarray] = None):
        """
        Create a height field.

        Args:
            width: Number of columns (x extent)
            height: Number of rows (y extent)
            data: Optional initial values of shape (height, width); zeros if omitted

        Raises:
            InvalidGridError: On non-positive or oversized dimensions, a shape
                mismatch or non-finite values
        """
        _validate_dimensions(width, height)
        self._width = int(width)
        self._height = int(height)

        if data is None:
            self._data = np.zeros((self._height, self._width), dtype=np.float64)
            return

        values = np.array(data, dtype=np.float64)
        if values.shape != (self._height, self._width):
            raise InvalidGridError(
                f"Data shape {values.shape} does not match grid {self._height}x{self._width}"
            )
        if not np.all(np.isfinite(values)):
            raise InvalidGridError("Height data contains NaN or infinite values")

        negative = int(np.count_nonzero(values < 0))
        if negative:
            logger.warning("Clamping negative input heights to zero", cells=negative)
            np.maximum(values, 0.0, out=values)

        self._data = values

    @classmethod
    def from_array(cls, data) -> "HeightField":
        """Build a height field from any 2D array-like of shape (height, width)."""
        values = np.asarray(data, dtype=np.float64)
        if values.ndim != 2:
            raise InvalidGridError(f"Height data must be 2D, got {values.ndim} dimensions")
        height, width = values.shape
        return cls(width, height, values)

    @classmethod
    def zeros(cls, width: int, height: int) -> "HeightField":
        return cls(width, height)

    @classmethod
    def filled(cls, width: int, height: int, value: float) -> "HeightField":
        _validate_dimensions(width, height)
        return cls(width, height, np.full((height, width), value, dtype=np.float64))

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    @property
    def shape(self) -> Tuple[int, int]:
        """(height, width), matching the underlying array."""
        return self._data.shape

    @property
    def data(self) -> np.ndarray:
        """Live backing array. Only the owning pipeline stage may write to it."""
        return self._data

    def __repr__(self) -> str:
        low, high = self.height_range()
        return f"HeightField({self._width}x{self._height}, range={low:.4f}..{high:.4f})"

    # ------------------------------------------------------------------
    # Lattice access
    # ------------------------------------------------------------------

    def _check_index(self, ix: int, iy: int) -> None:
        if not (0 <= ix < self._width and 0 <= iy < self._height):
            raise IndexError(f"Cell ({ix}, {iy}) outside {self._width}x{self._height} grid")

    def get(self, ix: int, iy: int) -> float:
        self._check_index(ix, iy)
        return float(self._data[iy, ix])

    def set(self, ix: int, iy: int, value: float) -> None:
        """Set a lattice cell, clamping at zero."""
        self._check_index(ix, iy)
        self._data[iy, ix] = max(float(value), 0.0)

    def in_bounds(self, x: float, y: float) -> bool:
        """True if a continuous position lies inside the lattice."""
        return 0.0 <= x <= self._width - 1 and 0.0 <= y <= self._height - 1

    # ------------------------------------------------------------------
    # Continuous sampling
    # ------------------------------------------------------------------

    def _bilinear_cell(self, x: float, y: float) -> Tuple[int, int, int, int, float, float]:
        """
        Enclosing 2x2 cell and interpolation weights for a continuous position.

        The query is clamped to the grid. For single-row or single-column grids
        the second node collapses onto the first.
        """
        x = min(max(x, 0.0), self._width - 1.0)
        y = min(max(y, 0.0), self._height - 1.0)

        x0 = min(int(math.floor(x)), max(self._width - 2, 0))
        y0 = min(int(math.floor(y)), max(self._height - 2, 0))
        x1 = min(x0 + 1, self._width - 1)
        y1 = min(y0 + 1, self._height - 1)

        u = x - x0 if x1 != x0 else 0.0
        v = y - y0 if y1 != y0 else 0.0
        return x0, y0, x1, y1, u, v

    def sample(self, x: float, y: float) -> float:
        """Bilinearly interpolated elevation at a continuous position."""
        x0, y0, x1, y1, u, v = self._bilinear_cell(x, y)
        d = self._data
        return float(
            d[y0, x0] * (1 - u) * (1 - v)
            + d[y0, x1] * u * (1 - v)
            + d[y1, x0] * (1 - u) * v
            + d[y1, x1] * u * v
        )

    def height_and_gradient(self, x: float, y: float) -> Tuple[float, float, float]:
        """
        Interpolated height and gradient from the four surrounding nodes.

        Returns:
            Tuple of (height, grad_x, grad_y); the gradient points uphill
        """
        x0, y0, x1, y1, u, v = self._bilinear_cell(x, y)
        d = self._data
        h_nw = d[y0, x0]
        h_ne = d[y0, x1]
        h_sw = d[y1, x0]
        h_se = d[y1, x1]

        height = h_nw * (1 - u) * (1 - v) + h_ne * u * (1 - v) + h_sw * (1 - u) * v + h_se * u * v
        grad_x = (h_ne - h_nw) * (1 - v) + (h_se - h_sw) * v
        grad_y = (h_sw - h_nw) * (1 - u) + (h_se - h_ne) * u
        return float(height), float(grad_x), float(grad_y)

    def gradient(self, x: float, y: float) -> Tuple[float, float]:
        _, grad_x, grad_y = self.height_and_gradient(x, y)
        return grad_x, grad_y

    def descent_direction(self, x: float, y: float) -> Tuple[float, float]:
        """Unit vector pointing downhill, or (0, 0) on flat ground."""
        grad_x, grad_y = self.gradient(x, y)
        length = math.hypot(grad_x, grad_y)
        if length == 0.0:
            return 0.0, 0.0
        return -grad_x / length, -grad_y / length

    def central_gradient(self, ix: int, iy: int) -> Tuple[float, float]:
        """Central-difference gradient at a lattice node (index clamped inward)."""
        d = self._data
        ix = min(max(ix, 1), self._width - 2) if self._width >= 3 else 0
        iy = min(max(iy, 1), self._height - 2) if self._height >= 3 else 0

        grad_x = d[iy, ix + 1] - d[iy, ix - 1] if self._width >= 3 else 0.0
        grad_y = d[iy + 1, ix] - d[iy - 1, ix] if self._height >= 3 else 0.0
        return float(grad_x), float(grad_y)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def add_at(self, x: float, y: float, amount: float) -> float:
        """
        Add ``amount`` at a continuous position, split over the enclosing 2x2
        nodes by their bilinear weights.

        Positive amounts are fully conserved. Negative amounts are clamped per
        node so no cell drops below zero.

        Returns:
            The net amount actually applied to the grid
        """
        x0, y0, x1, y1, u, v = self._bilinear_cell(x, y)
        weights = (
            (x0, y0, (1 - u) * (1 - v)),
            (x1, y0, u * (1 - v)),
            (x0, y1, (1 - u) * v),
            (x1, y1, u * v),
        )
        d = self._data
        applied = 0.0
        for ix, iy, w in weights:
            if w == 0.0:
                continue
            before = d[iy, ix]
            after = before + amount * w
            if after < 0.0:
                after = 0.0
            d[iy, ix] = after
            applied += after - before
        return float(applied)

    def erode_cells(self, xs: np.ndarray, ys: np.ndarray, amounts: np.ndarray) -> float:
        """
        Remove material from a set of distinct lattice cells.

        Cells outside the grid are skipped and no cell is taken below zero.

        Returns:
            Volume actually removed
        """
        inside = (xs >= 0) & (xs < self._width) & (ys >= 0) & (ys < self._height)
        if not np.any(inside):
            return 0.0
        xs = xs[inside]
        ys = ys[inside]
        current = self._data[ys, xs]
        removed = np.minimum(current, amounts[inside])
        self._data[ys, xs] = current - removed
        return float(removed.sum())

    def lower_cells(self, xs: np.ndarray, ys: np.ndarray, targets: np.ndarray) -> float:
        """
        Lower cells to ``min(current, target)``; never raises terrain.

        Returns:
            Volume removed
        """
        current = self._data[ys, xs]
        lowered = np.minimum(current, np.maximum(targets, 0.0))
        self._data[ys, xs] = lowered
        return float((current - lowered).sum())

    def apply_delta(self, delta: np.ndarray) -> None:
        """Add a full-grid delta buffer in one step, clamping at zero."""
        if delta.shape != self._data.shape:
            raise InvalidGridError(f"Delta shape {delta.shape} does not match grid {self._data.shape}")
        self._data += delta
        np.maximum(self._data, 0.0, out=self._data)

    # ------------------------------------------------------------------
    # Copies and views
    # ------------------------------------------------------------------

    def copy(self) -> "HeightField":
        return HeightField(self._width, self._height, self._data.copy())

    def to_array(self) -> np.ndarray:
        return self._data.copy()

    def snapshot(self) -> np.ndarray:
        """Read-only copy of the current heights for downstream consumers."""
        frozen = self._data.copy()
        frozen.flags.writeable = False
        return frozen

    def height_range(self) -> Tuple[float, float]:
        return float(self._data.min()), float(self._data.max())

    def normalized(self) -> "HeightField":
        """Copy rescaled to [0, 1]; a constant field maps to zeros."""
        low, high = self.height_range()
        span = high - low
        if span == 0.0:
            return HeightField.zeros(self._width, self._height)
        return HeightField(self._width, self._height, (self._data - low) / span)
