"""
River source finding and path tracing.

This module implements:
- Source detection: high local maxima, selected highest-first with spacing
- Downhill path tracing with momentum and sinusoidal meandering
- River / RiverPoint data structures handed to the carver and to
  downstream consumers
"""

import dataclasses
import math
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np
import structlog

from .heightfield import HeightField
from .heightmap_analysis import NEIGHBOR_OFFSETS

logger = structlog.get_logger()

# River termination reasons
SINK = "sink"
BOUNDARY = "boundary"
UPHILL = "uphill"
STAGNANT = "stagnant"
MAX_LENGTH = "max_length"


@dataclass(frozen=True)
class RiverOptions:
    """River tracing and carving options."""

    max_rivers: int = 5  # Upper bound on accepted sources
    river_width: float = 2.0  # Width a river grows towards, in cells
    river_depth: float = 0.05  # Channel depth at full flow
    min_flow_rate: float = 0.1  # Flow at the source
    max_flow_rate: float = 2.0
    width_growth: float = 0.01  # Width added per step
    flow_growth: float = 0.001  # Flow added per step
    source_width_ratio: float = 0.3  # Source width as a fraction of river_width
    meander_strength: float = 0.3
    meander_frequency: float = 0.1  # Radians of meander phase per step

    min_source_height: float = 0.7  # Sources must be at least this high
    source_radius: float = 10.0  # Local maximum radius; sources are 2x this apart

    max_river_length: int = 1000  # Maximum steps per river
    step_size: float = 1.0
    gravity_influence: float = 1.0
    momentum: float = 0.5  # Weight of the previous direction
    sink_height: float = 0.1  # Paths end (at a mouth) below this height
    min_points: int = 10  # Shorter paths are discarded


def _sanitize_options(options: RiverOptions) -> RiverOptions:
    """Correct degenerate option values, logging a warning for each one."""
    defaults = RiverOptions()
    changes = {}
    if options.max_flow_rate <= 0:
        logger.warning(
            "Maximum flow rate must be positive, using default",
            requested=options.max_flow_rate,
            used=defaults.max_flow_rate,
        )
        changes["max_flow_rate"] = defaults.max_flow_rate
    if options.step_size <= 0:
        logger.warning(
            "River step size must be positive, using default",
            requested=options.step_size,
            used=defaults.step_size,
        )
        changes["step_size"] = defaults.step_size
    if options.min_points < 1:
        logger.warning("Minimum river points must be at least 1, using 1", requested=options.min_points)
        changes["min_points"] = 1
    if options.source_radius < 0:
        logger.warning("Negative source radius, using 0", requested=options.source_radius)
        changes["source_radius"] = 0.0
    if not 0.0 <= options.momentum <= 1.0:
        clamped = min(max(options.momentum, 0.0), 1.0)
        logger.warning("River momentum outside [0, 1], clamping", requested=options.momentum, used=clamped)
        changes["momentum"] = clamped
    if changes:
        return dataclasses.replace(options, **changes)
    return options


@dataclass(frozen=True)
class RiverPoint:
    """One step along a traced river."""

    x: float
    y: float
    width: float
    depth: float
    flow_rate: float
    direction: Tuple[float, float]
    elevation: float  # Surface height at (x, y) when traced

    @property
    def position(self) -> Tuple[float, float]:
        return self.x, self.y

    def to_dict(self) -> Dict[str, Any]:
        return {
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "depth": self.depth,
            "flow_rate": self.flow_rate,
            "direction": list(self.direction),
            "elevation": self.elevation,
        }


@dataclass(frozen=True)
class River:
    """Represents a traced river from source to mouth. Immutable once traced."""

    id: int
    source: Tuple[float, float]
    points: Tuple[RiverPoint, ...] = ()
    mouth: Optional[Tuple[float, float]] = None  # None if the path never reached a sink or edge
    length: float = 0.0
    termination: str = MAX_LENGTH

    def __post_init__(self):
        object.__setattr__(self, "points", tuple(self.points))

    def __len__(self) -> int:
        return len(self.points)

    def to_dict(self) -> Dict[str, Any]:
        """Plain data copy for export to rendering or placement consumers."""
        return {
            "id": self.id,
            "source": list(self.source),
            "mouth": list(self.mouth) if self.mouth is not None else None,
            "length": self.length,
            "termination": self.termination,
            "points": [point.to_dict() for point in self.points],
        }


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def path_length(points: Sequence[RiverPoint]) -> float:
    """Sum of the distances between consecutive points."""
    if len(points) < 2:
        return 0.0

    total = 0.0
    for i in range(len(points) - 1):
        total += math.hypot(points[i + 1].x - points[i].x, points[i + 1].y - points[i].y)
    return total


class RiverTracer:
    """Finds river sources and traces their downhill paths."""

    def __init__(self, options: Optional[RiverOptions] = None):
        self.options = _sanitize_options(options or RiverOptions())
        self._rivers: List[River] = []

    @property
    def rivers(self) -> List[River]:
        """Rivers accepted by the last trace."""
        return list(self._rivers)

    def clear(self) -> None:
        self._rivers = []

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    def _local_peaks(self, heights: np.ndarray, eligible: np.ndarray) -> np.ndarray:
        """Mask of eligible cells with no strictly higher cell within the source radius."""
        radius = self.options.source_radius
        check = _round_half_up(radius)
        rows, cols = heights.shape
        peaks = eligible.copy()
        if check <= 0:
            return peaks

        padded = np.pad(heights, check, mode="constant", constant_values=-np.inf)
        for dy in range(-check, check + 1):
            for dx in range(-check, check + 1):
                if dx == 0 and dy == 0:
                    continue
                if math.hypot(dx, dy) > radius:
                    continue
                neighbor = padded[check + dy:check + dy + rows, check + dx:check + dx + cols]
                peaks &= ~(neighbor > heights)
        return peaks

    def find_sources(self, heightfield: HeightField) -> List[Tuple[int, int]]:
        """
        Select river sources.

        Interior cells at or above ``min_source_height`` that are local
        maxima within ``source_radius`` become candidates. Candidates are
        taken highest first (ties keep column-by-column scan order, smallest
        x first) and any candidate closer than ``2 * source_radius`` to an
        accepted source is skipped, until ``max_rivers`` sources are found.

        Returns:
            List of (x, y) lattice positions
        """
        opts = self.options
        heights = heightfield.data
        rows, cols = heights.shape
        margin = max(_round_half_up(opts.source_radius), 0)

        eligible = np.zeros(heights.shape, dtype=bool)
        if rows > 2 * margin and cols > 2 * margin:
            interior = heights[margin:rows - margin, margin:cols - margin]
            eligible[margin:rows - margin, margin:cols - margin] = interior >= opts.min_source_height

        if not np.any(eligible) or opts.max_rivers <= 0:
            logger.info("No river source candidates", min_source_height=opts.min_source_height)
            return []

        peaks = self._local_peaks(heights, eligible)
        # Scan with x as the outer loop
        xs, ys = np.nonzero(peaks.T)
        order = np.argsort(-heights[ys, xs], kind="stable")
        logger.info("River source candidates found", count=len(order))

        spacing = 2.0 * opts.source_radius
        sources: List[Tuple[int, int]] = []
        for index in order:
            candidate = (int(xs[index]), int(ys[index]))
            too_close = any(
                math.hypot(candidate[0] - sx, candidate[1] - sy) < spacing for sx, sy in sources
            )
            if too_close:
                continue
            sources.append(candidate)
            logger.debug(
                "River source selected",
                x=candidate[0],
                y=candidate[1],
                height=round(float(heights[candidate[1], candidate[0]]), 4),
            )
            if len(sources) >= opts.max_rivers:
                break

        logger.info("River sources selected", count=len(sources))
        return sources

    # ------------------------------------------------------------------
    # Tracing
    # ------------------------------------------------------------------

    def _descent_direction(self, heightfield: HeightField, x: float, y: float) -> Tuple[float, float]:
        """
        Unit downhill direction at the nearest lattice node.

        Uses central differences; where they cancel out (a symmetric peak or
        ridge) falls back to the steepest lower 8-neighbour.
        """
        ix = min(max(_round_half_up(x), 0), heightfield.width - 1)
        iy = min(max(_round_half_up(y), 0), heightfield.height - 1)

        grad_x, grad_y = heightfield.central_gradient(ix, iy)
        length = math.hypot(grad_x, grad_y)
        if length > 1e-12:
            return -grad_x / length, -grad_y / length

        heights = heightfield.data
        current = heights[iy, ix]
        best = None
        best_slope = 0.0
        for dy, dx in NEIGHBOR_OFFSETS:
            ny, nx = iy + dy, ix + dx
            if not (0 <= ny < heightfield.height and 0 <= nx < heightfield.width):
                continue
            slope = (current - heights[ny, nx]) / math.hypot(dx, dy)
            if slope > best_slope:
                best_slope = slope
                best = (dx, dy)

        if best is None:
            return 0.0, 0.0
        norm = math.hypot(best[0], best[1])
        return best[0] / norm, best[1] / norm

    def _meander_offset(self, direction: Tuple[float, float], step: int) -> Tuple[float, float]:
        """Sideways push perpendicular to the current direction."""
        angle = math.sin(step * self.options.meander_frequency) * math.pi * 0.25
        magnitude = math.sin(angle)
        return -direction[1] * magnitude, direction[0] * magnitude

    def trace(
        self, heightfield: HeightField, source: Tuple[float, float], river_id: int = 0
    ) -> Optional[River]:
        """
        Trace one river downhill from ``source``.

        Returns:
            The river, or None when the path has fewer than ``min_points`` points
        """
        opts = self.options
        max_x = heightfield.width - 1
        max_y = heightfield.height - 1

        origin = (float(source[0]), float(source[1]))
        points: List[RiverPoint] = []
        termination = MAX_LENGTH
        mouth = None
        x, y = origin
        dir_x, dir_y = 0.0, 0.0
        width = opts.river_width * opts.source_width_ratio
        flow_rate = opts.min_flow_rate

        for step in range(opts.max_river_length):
            current_height = heightfield.sample(x, y)

            grad_x, grad_y = self._descent_direction(heightfield, x, y)
            grad_x *= opts.gravity_influence
            grad_y *= opts.gravity_influence

            new_x = grad_x + (dir_x - grad_x) * opts.momentum
            new_y = grad_y + (dir_y - grad_y) * opts.momentum
            offset_x, offset_y = self._meander_offset((dir_x, dir_y), step)
            new_x += offset_x * opts.meander_strength
            new_y += offset_y * opts.meander_strength

            length = math.hypot(new_x, new_y)
            if length < 1e-12:
                termination = STAGNANT
                break
            new_x /= length
            new_y /= length

            next_x = x + new_x * opts.step_size
            next_y = y + new_y * opts.step_size

            if not (0 <= next_x < max_x and 0 <= next_y < max_y):
                termination = BOUNDARY
                mouth = (x, y)
                break

            next_height = heightfield.sample(next_x, next_y)
            if next_height > current_height:
                termination = UPHILL
                break
            if next_height < opts.sink_height:
                termination = SINK
                mouth = (next_x, next_y)
                break

            points.append(
                RiverPoint(
                    x=x,
                    y=y,
                    width=width,
                    depth=opts.river_depth * (flow_rate / opts.max_flow_rate),
                    flow_rate=flow_rate,
                    direction=(new_x, new_y),
                    elevation=current_height,
                )
            )

            x, y = next_x, next_y
            dir_x, dir_y = new_x, new_y
            width = min(opts.river_width, width + opts.width_growth)
            flow_rate = min(opts.max_flow_rate, flow_rate + opts.flow_growth)

        if len(points) < opts.min_points:
            logger.debug(
                "River too short, discarded",
                source=origin,
                points=len(points),
                termination=termination,
            )
            return None

        return River(
            id=river_id,
            source=origin,
            points=tuple(points),
            mouth=mouth,
            length=path_length(points),
            termination=termination,
        )

    def iter_trace(self, heightfield: HeightField) -> Iterator[List[River]]:
        """
        Find sources and trace each of them, suspending after every source.

        Yields:
            The rivers accepted so far
        """
        started = time.perf_counter()
        self._rivers = []
        low, high = heightfield.height_range()
        logger.info("Tracing rivers", height_min=round(low, 4), height_max=round(high, 4))

        sources = self.find_sources(heightfield)
        for source in sources:
            if len(self._rivers) >= self.options.max_rivers:
                break
            river = self.trace(heightfield, source, river_id=len(self._rivers))
            if river is not None:
                self._rivers.append(river)
            yield list(self._rivers)

        logger.info(
            "Rivers traced",
            sources=len(sources),
            count=len(self._rivers),
            seconds=round(time.perf_counter() - started, 3),
        )
        if not sources:
            yield []

    def trace_all(self, heightfield: HeightField) -> List[River]:
        """Blocking trace of every source."""
        for _ in self.iter_trace(heightfield):
            pass
        return self.rivers
