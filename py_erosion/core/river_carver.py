"""
Carves traced rivers into the height field.

Each river point cuts a circular bowl whose depth falls off quadratically
from the centreline. Cells are only ever lowered to ``min(current, target)``
and targets are measured from the elevation recorded when the point was
traced, so carving the same river again changes nothing.
"""

import math
import time
from dataclasses import dataclass
from typing import Iterable, Iterator, List

import numpy as np
import structlog

from .heightfield import HeightField
from .rivers import River, RiverPoint

logger = structlog.get_logger()


@dataclass
class CarveReport:
    """Running totals for a carve run."""

    rivers: int = 0
    total_rivers: int = 0
    points: int = 0
    removed: float = 0.0

    @property
    def progress(self) -> float:
        if self.total_rivers == 0:
            return 1.0
        return self.rivers / self.total_rivers


class RiverCarver:
    """Rasterises river cross-sections into a height field."""

    def carve_point(self, heightfield: HeightField, point: RiverPoint) -> float:
        """
        Carve one cross-section.

        Returns:
            Volume removed
        """
        width = point.width
        if width <= 0 or point.depth <= 0:
            return 0.0

        x_min = max(int(math.floor(point.x - width)), 0)
        x_max = min(int(math.ceil(point.x + width)), heightfield.width - 1)
        y_min = max(int(math.floor(point.y - width)), 0)
        y_max = min(int(math.ceil(point.y + width)), heightfield.height - 1)
        if x_min > x_max or y_min > y_max:
            return 0.0

        ys, xs = np.mgrid[y_min:y_max + 1, x_min:x_max + 1]
        distance = np.hypot(xs - point.x, ys - point.y)
        inside = distance <= width
        if not np.any(inside):
            return 0.0

        falloff = 1.0 - distance[inside] / width
        targets = point.elevation - point.depth * falloff * falloff
        return heightfield.lower_cells(xs[inside], ys[inside], targets)

    def carve_river(self, heightfield: HeightField, river: River) -> float:
        removed = 0.0
        for point in river.points:
            removed += self.carve_point(heightfield, point)
        return removed

    def iter_carve(self, heightfield: HeightField, rivers: Iterable[River]) -> Iterator[CarveReport]:
        """
        Carve rivers one at a time, suspending after each whole river.

        Yields:
            The running report
        """
        rivers = list(rivers)
        report = CarveReport(total_rivers=len(rivers))
        started = time.perf_counter()

        for river in rivers:
            report.removed += self.carve_river(heightfield, river)
            report.points += len(river.points)
            report.rivers += 1
            yield report

        logger.info(
            "Rivers carved",
            rivers=report.rivers,
            points=report.points,
            removed=round(report.removed, 6),
            seconds=round(time.perf_counter() - started, 3),
        )
        if not rivers:
            yield report

    def carve_all(self, heightfield: HeightField, rivers: List[River]) -> CarveReport:
        report = CarveReport(total_rivers=len(rivers))
        for report in self.iter_carve(heightfield, rivers):
            pass
        return report
