"""
Thermal (slope collapse) erosion.

Each pass reads the field as it was at the start of the pass, computes for
every cell the steepest drop to one of its 8 neighbours and, where that drop
exceeds the stability threshold, moves material down to that neighbour. All
transfers are collected in a delta buffer and applied together after the
sweep, so the result does not depend on sweep order.
"""

import dataclasses
import time
from dataclasses import dataclass
from typing import Iterator, Optional

import numpy as np
import structlog

from ..config.generation_settings import GeologySettings
from .heightfield import HeightField
from .heightmap_analysis import NEIGHBOR_OFFSETS, neighbor_drops

logger = structlog.get_logger()

_OFFSETS_Y = np.array([dy for dy, _ in NEIGHBOR_OFFSETS], dtype=np.intp)
_OFFSETS_X = np.array([dx for _, dx in NEIGHBOR_OFFSETS], dtype=np.intp)


@dataclass(frozen=True)
class ThermalErosionOptions:
    """Slope collapse parameters."""

    stability_threshold: float = 0.2  # Largest stable height difference between neighbours
    erosion_rate: float = 0.1  # Fraction of the excess moved per pass (at most 0.5)
    iterations: int = 1  # Maximum passes; stops early once nothing moves


def _sanitize_options(options: ThermalErosionOptions) -> ThermalErosionOptions:
    changes = {}
    if options.stability_threshold < 0:
        logger.warning(
            "Negative stability threshold, using 0", requested=options.stability_threshold
        )
        changes["stability_threshold"] = 0.0
    if not 0.0 <= options.erosion_rate <= 0.5:
        clamped = min(max(options.erosion_rate, 0.0), 0.5)
        logger.warning(
            "Thermal erosion rate outside [0, 0.5], clamping",
            requested=options.erosion_rate,
            used=clamped,
        )
        changes["erosion_rate"] = clamped
    if options.iterations < 0:
        logger.warning("Negative thermal iteration count, using 0", requested=options.iterations)
        changes["iterations"] = 0
    if changes:
        return dataclasses.replace(options, **changes)
    return options


@dataclass
class ThermalErosionReport:
    """Running totals for a thermal erosion run."""

    passes: int = 0
    max_passes: int = 0
    rows_done: int = 0  # Rows swept in the current pass
    total_rows: int = 0
    moved: float = 0.0
    cells_moved: int = 0
    converged: bool = False
    elapsed: float = 0.0

    @property
    def progress(self) -> float:
        if self.converged or self.max_passes == 0 or self.total_rows == 0:
            return 1.0
        return min((self.passes + self.rows_done / self.total_rows) / self.max_passes, 1.0)


class ThermalErosion:
    """Moves material off slopes steeper than the stability threshold."""

    def __init__(
        self,
        options: Optional[ThermalErosionOptions] = None,
        geology: Optional[GeologySettings] = None,
    ):
        self.options = _sanitize_options(options or ThermalErosionOptions())
        self.geology = geology or GeologySettings()

    def _accumulate_band(self, base: np.ndarray, delta: np.ndarray, row_start: int, row_end: int):
        """
        Add the transfers of rows [row_start, row_end) to ``delta``.

        Returns:
            Tuple of (volume moved, number of cells shedding material)
        """
        rows = base.shape[0]
        lo = max(row_start - 1, 0)
        hi = min(row_end + 1, rows)
        drops = neighbor_drops(base[lo:hi])[:, row_start - lo:row_end - lo]

        steepest = drops.max(axis=0)
        direction = drops.argmax(axis=0)
        excess = steepest - self.options.stability_threshold
        moving = excess > 0
        if not np.any(moving):
            return 0.0, 0

        ys, xs = np.nonzero(moving)
        amounts = excess[ys, xs] * self.options.erosion_rate * self.geology.erodibility
        ys = ys + row_start
        k = direction[moving]

        delta[ys, xs] -= amounts
        np.add.at(delta, (ys + _OFFSETS_Y[k], xs + _OFFSETS_X[k]), amounts)
        return float(amounts.sum()), int(len(amounts))

    def compute_pass(self, heightfield: HeightField) -> np.ndarray:
        """Delta buffer of one full pass, without touching the field."""
        base = heightfield.data.copy()
        delta = np.zeros_like(base)
        self._accumulate_band(base, delta, 0, base.shape[0])
        return delta

    def run_pass(self, heightfield: HeightField) -> float:
        """
        Apply one pass in place.

        Returns:
            Volume moved downhill
        """
        base = heightfield.data.copy()
        delta = np.zeros_like(base)
        moved, _ = self._accumulate_band(base, delta, 0, base.shape[0])
        if moved > 0:
            heightfield.apply_delta(delta)
        return moved

    def iter_passes(
        self, heightfield: HeightField, rows_per_batch: Optional[int] = None
    ) -> Iterator[ThermalErosionReport]:
        """
        Run up to ``iterations`` passes, suspending between row batches.

        The field only changes at the end of each full sweep, so it is valid at
        every suspension point.
        """
        rows = heightfield.height
        rows_per_batch = max(int(rows_per_batch or rows), 1)
        report = ThermalErosionReport(max_passes=self.options.iterations, total_rows=rows)
        started = time.perf_counter()

        logger.info(
            "Starting thermal erosion",
            iterations=self.options.iterations,
            threshold=self.options.stability_threshold,
            rock_hardness=self.geology.rock_hardness,
        )

        for _ in range(self.options.iterations):
            base = heightfield.data.copy()
            delta = np.zeros_like(base)
            pass_moved = 0.0

            for row_start in range(0, rows, rows_per_batch):
                row_end = min(row_start + rows_per_batch, rows)
                moved, cells = self._accumulate_band(base, delta, row_start, row_end)
                pass_moved += moved
                report.cells_moved += cells
                report.rows_done = row_end
                if row_end < rows:
                    yield report

            if pass_moved > 0:
                heightfield.apply_delta(delta)
            report.passes += 1
            report.rows_done = 0
            report.moved += pass_moved

            if pass_moved == 0:
                report.converged = True
                break
            if report.passes < self.options.iterations:
                yield report

        report.elapsed = time.perf_counter() - started
        logger.info(
            "Thermal erosion completed",
            passes=report.passes,
            moved=round(report.moved, 6),
            converged=report.converged,
            seconds=round(report.elapsed, 3),
        )
        yield report

    def run(self, heightfield: HeightField) -> ThermalErosionReport:
        """Blocking run of all passes."""
        report = ThermalErosionReport()
        for report in self.iter_passes(heightfield):
            pass
        return report
