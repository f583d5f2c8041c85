"""
Droplet-based hydraulic erosion.

This module implements:
- Erosion brush construction (radial disc of normalised weights)
- Single droplet simulation: flow, erosion, deposition, evaporation
- Blocking and batched (progressive) runs over many droplets

Droplets are simulated strictly one at a time against the shared height
field. Each droplet only nudges cells by a small fraction of their height, so
the serial order gives a stable result for a given seed.
"""

import dataclasses
import math
import time
from dataclasses import dataclass
from typing import Iterator, Optional, Union

import numpy as np
import structlog

from ..config.generation_settings import GeologySettings
from ..utils.random import create_prng
from .heightfield import HeightField

logger = structlog.get_logger()


@dataclass(frozen=True)
class HydraulicErosionOptions:
    """Droplet simulation parameters."""

    num_droplets: int = 10000  # Droplets per run
    max_lifetime: int = 30  # Maximum steps per droplet
    inertia: float = 0.05  # Weight of the previous direction (0 = follow gradient exactly)
    sediment_capacity_factor: float = 4.0  # Multiplier on carrying capacity
    min_sediment_capacity: float = 0.01  # Capacity floor on flat or gentle slopes
    erode_speed: float = 0.3  # Fraction of free capacity eroded per step
    deposit_speed: float = 0.3  # Fraction of surplus sediment deposited per step
    evaporate_speed: float = 0.01  # Fraction of water lost per step
    gravity: float = 4.0  # Converts height change into speed change
    erosion_radius: int = 3  # Radius of the erosion brush in cells
    initial_speed: float = 1.0
    initial_water: float = 1.0
    min_water: float = 0.01  # Droplet dies below this water volume


def _sanitize_options(options: HydraulicErosionOptions) -> HydraulicErosionOptions:
    """Correct degenerate option values, logging a warning for each one."""
    changes = {}
    if options.erosion_radius < 1:
        logger.warning(
            "Erosion radius must be at least 1, using 1", requested=options.erosion_radius
        )
        changes["erosion_radius"] = 1
    if not 0.0 <= options.inertia <= 1.0:
        clamped = min(max(options.inertia, 0.0), 1.0)
        logger.warning("Inertia outside [0, 1], clamping", requested=options.inertia, used=clamped)
        changes["inertia"] = clamped
    if not 0.0 <= options.evaporate_speed < 1.0:
        clamped = min(max(options.evaporate_speed, 0.0), 0.99)
        logger.warning(
            "Evaporation speed outside [0, 1), clamping",
            requested=options.evaporate_speed,
            used=clamped,
        )
        changes["evaporate_speed"] = clamped
    if options.num_droplets < 0:
        logger.warning("Negative droplet count, using 0", requested=options.num_droplets)
        changes["num_droplets"] = 0
    if options.max_lifetime < 1:
        logger.warning("Droplet lifetime must be at least 1, using 1", requested=options.max_lifetime)
        changes["max_lifetime"] = 1
    if changes:
        return dataclasses.replace(options, **changes)
    return options


@dataclass(frozen=True, eq=False)
class ErosionBrush:
    """
    Disc of (offset, weight) pairs used to spread one erosion event.

    Weights fall off linearly with distance from the centre and sum to 1.
    Offsets at exactly ``radius`` would get weight 0 and are left out.
    """

    radius: int
    offsets_x: np.ndarray
    offsets_y: np.ndarray
    weights: np.ndarray

    @classmethod
    def build(cls, radius: int) -> "ErosionBrush":
        radius = max(int(radius), 1)
        span = np.arange(-radius, radius + 1)
        grid_y, grid_x = np.meshgrid(span, span, indexing="ij")
        distance = np.sqrt(grid_x ** 2 + grid_y ** 2)
        inside = distance < radius

        offsets_x = grid_x[inside].astype(np.intp)
        offsets_y = grid_y[inside].astype(np.intp)
        weights = 1.0 - distance[inside] / radius
        weights = weights / weights.sum()

        for array in (offsets_x, offsets_y, weights):
            array.flags.writeable = False
        return cls(radius=radius, offsets_x=offsets_x, offsets_y=offsets_y, weights=weights)

    def __len__(self) -> int:
        return len(self.weights)


@dataclass
class Droplet:
    """Simulation-local water particle."""

    x: float
    y: float
    dir_x: float = 0.0
    dir_y: float = 0.0
    speed: float = 1.0
    water: float = 1.0
    sediment: float = 0.0


@dataclass
class DropletResult:
    """What a single droplet did to the terrain."""

    steps: int = 0
    eroded: float = 0.0
    deposited: float = 0.0
    carried_off: float = 0.0  # Sediment still held when the droplet died or left the grid
    left_grid: bool = False


@dataclass
class HydraulicErosionReport:
    """Running totals for a hydraulic erosion run."""

    droplets: int = 0
    total_droplets: int = 0
    steps: int = 0
    eroded: float = 0.0
    deposited: float = 0.0
    carried_off: float = 0.0
    elapsed: float = 0.0

    @property
    def done(self) -> bool:
        return self.droplets >= self.total_droplets

    @property
    def progress(self) -> float:
        if self.total_droplets == 0:
            return 1.0
        return self.droplets / self.total_droplets

    def add(self, result: DropletResult) -> None:
        self.droplets += 1
        self.steps += result.steps
        self.eroded += result.eroded
        self.deposited += result.deposited
        self.carried_off += result.carried_off


class HydraulicErosion:
    """Simulates water droplets that erode and deposit sediment as they flow downhill."""

    def __init__(
        self,
        options: Optional[HydraulicErosionOptions] = None,
        geology: Optional[GeologySettings] = None,
        seed: Optional[Union[str, int]] = None,
    ):
        """
        Initialize the hydraulic erosion engine.

        Args:
            options: Droplet simulation parameters
            geology: Rock hardness scaling every erosion event
            seed: Seed for droplet start positions
        """
        self.options = _sanitize_options(options or HydraulicErosionOptions())
        self.geology = geology or GeologySettings()
        self.seed = seed
        self.brush = ErosionBrush.build(self.options.erosion_radius)
        logger.debug(
            "Erosion brush built", radius=self.brush.radius, points=len(self.brush)
        )

    def simulate_droplet(self, heightfield: HeightField, x: float, y: float) -> DropletResult:
        """
        Run one droplet from (x, y) until it dies.

        The droplet stops when it leaves the grid, runs out of water or
        reaches ``max_lifetime`` steps. This call is atomic with respect to
        progressive scheduling.
        """
        opts = self.options
        erodibility = self.geology.erodibility
        brush = self.brush
        result = DropletResult()
        droplet = Droplet(x=x, y=y, speed=opts.initial_speed, water=opts.initial_water)

        for _ in range(opts.max_lifetime):
            node_x = int(droplet.x)
            node_y = int(droplet.y)
            height, grad_x, grad_y = heightfield.height_and_gradient(droplet.x, droplet.y)

            # Blend momentum with the downhill gradient
            dir_x = droplet.dir_x * opts.inertia - grad_x * (1 - opts.inertia)
            dir_y = droplet.dir_y * opts.inertia - grad_y * (1 - opts.inertia)
            length = math.hypot(dir_x, dir_y)
            if length != 0.0:
                dir_x /= length
                dir_y /= length
            droplet.dir_x = dir_x
            droplet.dir_y = dir_y

            new_x = droplet.x + dir_x
            new_y = droplet.y + dir_y
            result.steps += 1

            if not heightfield.in_bounds(new_x, new_y):
                result.left_grid = True
                break

            delta_height = heightfield.sample(new_x, new_y) - height
            capacity = (
                max(-delta_height, opts.min_sediment_capacity)
                * droplet.speed
                * droplet.water
                * opts.sediment_capacity_factor
            )

            if droplet.sediment > capacity or delta_height > 0:
                # Uphill: fill the rise behind the droplet, else drop a share of the surplus
                if delta_height > 0:
                    amount = min(delta_height, droplet.sediment)
                else:
                    amount = (droplet.sediment - capacity) * opts.deposit_speed
                if amount > 0:
                    applied = heightfield.add_at(droplet.x, droplet.y, amount)
                    droplet.sediment -= applied
                    result.deposited += applied
            else:
                # Never dig deeper than the drop just taken
                amount = min((capacity - droplet.sediment) * opts.erode_speed, -delta_height)
                amount *= erodibility
                if amount > 0:
                    removed = heightfield.erode_cells(
                        node_x + brush.offsets_x,
                        node_y + brush.offsets_y,
                        amount * brush.weights,
                    )
                    droplet.sediment += removed
                    result.eroded += removed

            droplet.speed = math.sqrt(max(droplet.speed ** 2 + delta_height * opts.gravity, 0.0))
            droplet.water *= 1 - opts.evaporate_speed
            droplet.x = new_x
            droplet.y = new_y

            if droplet.water < opts.min_water:
                break

        result.carried_off = droplet.sediment
        return result

    def iter_batches(
        self, heightfield: HeightField, batch_size: Optional[int] = None
    ) -> Iterator[HydraulicErosionReport]:
        """
        Simulate all droplets, suspending after every ``batch_size`` droplets.

        Yields:
            The running report after each batch; the field is consistent at
            every suspension point
        """
        opts = self.options
        batch_size = max(int(batch_size or opts.num_droplets or 1), 1)
        prng = create_prng(self.seed, stream="hydraulic")
        report = HydraulicErosionReport(total_droplets=opts.num_droplets)
        started = time.perf_counter()

        logger.info(
            "Starting hydraulic erosion",
            droplets=opts.num_droplets,
            width=heightfield.width,
            height=heightfield.height,
            rock_hardness=self.geology.rock_hardness,
        )

        in_batch = 0
        for _ in range(opts.num_droplets):
            start_x = prng.randrange(heightfield.width)
            start_y = prng.randrange(heightfield.height)
            report.add(self.simulate_droplet(heightfield, float(start_x), float(start_y)))

            in_batch += 1
            if in_batch >= batch_size and not report.done:
                in_batch = 0
                report.elapsed = time.perf_counter() - started
                yield report

        report.elapsed = time.perf_counter() - started
        logger.info(
            "Hydraulic erosion completed",
            droplets=report.droplets,
            eroded=round(report.eroded, 6),
            deposited=round(report.deposited, 6),
            carried_off=round(report.carried_off, 6),
            seconds=round(report.elapsed, 3),
        )
        yield report

    def run(self, heightfield: HeightField) -> HydraulicErosionReport:
        """Blocking run over all droplets."""
        report = HydraulicErosionReport(total_droplets=self.options.num_droplets)
        for report in self.iter_batches(heightfield):
            pass
        return report
