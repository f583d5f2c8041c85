"""
Erosion pipeline.

Runs the enabled stages in fixed order against one exclusively owned height
field:

    UNINITIALIZED -> HYDRAULIC_PASS -> THERMAL_PASS -> RIVER_TRACE -> RIVER_CARVE -> DONE

The pipeline can be driven to completion with ``run()`` or advanced one
bounded slice at a time with ``step()`` from a host loop. Slices end only
between whole droplets, between thermal row batches, between traced rivers
and between carved rivers, so the field is valid whenever control returns
to the host. ``cancel()`` takes effect at the next slice boundary.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterator, List, Optional, Tuple

import numpy as np
import structlog

from ..config.config import settings
from ..config.generation_settings import TerrainGenerationParams
from .heightfield import HeightField
from .heightmap_analysis import TerrainStatistics, compute_statistics, volume_difference
from .hydraulic_erosion import HydraulicErosion, HydraulicErosionOptions, HydraulicErosionReport
from .river_carver import CarveReport, RiverCarver
from .rivers import River, RiverOptions, RiverTracer
from .thermal_erosion import ThermalErosion, ThermalErosionOptions, ThermalErosionReport

logger = structlog.get_logger()


class PipelineStage(str, Enum):
    """Pipeline states, in execution order."""

    UNINITIALIZED = "uninitialized"
    HYDRAULIC_PASS = "hydraulic_pass"
    THERMAL_PASS = "thermal_pass"
    RIVER_TRACE = "river_trace"
    RIVER_CARVE = "river_carve"
    DONE = "done"
    CANCELLED = "cancelled"


_STAGE_ORDER = [
    PipelineStage.UNINITIALIZED,
    PipelineStage.HYDRAULIC_PASS,
    PipelineStage.THERMAL_PASS,
    PipelineStage.RIVER_TRACE,
    PipelineStage.RIVER_CARVE,
    PipelineStage.DONE,
]

ProgressCallback = Callable[[PipelineStage, float], None]


class PipelineStateError(RuntimeError):
    """Raised when the pipeline is used out of order."""


@dataclass(frozen=True, eq=False)
class PipelineResult:
    """Read-only outcome of a pipeline run."""

    heights: np.ndarray
    rivers: Tuple[River, ...]
    stages: Tuple[PipelineStage, ...]
    before: TerrainStatistics
    after: TerrainStatistics
    cancelled: bool = False
    hydraulic: Optional[HydraulicErosionReport] = None
    thermal: Optional[ThermalErosionReport] = None
    carve: Optional[CarveReport] = None

    @property
    def net_volume_change(self) -> float:
        return volume_difference(self.before, self.after)


class ErosionPipeline:
    """Drives hydraulic erosion, thermal erosion and river generation over one field."""

    def __init__(
        self,
        heightfield: HeightField,
        params: Optional[TerrainGenerationParams] = None,
        hydraulic_options: Optional[HydraulicErosionOptions] = None,
        thermal_options: Optional[ThermalErosionOptions] = None,
        river_options: Optional[RiverOptions] = None,
        on_progress: Optional[ProgressCallback] = None,
    ):
        """
        Initialize the pipeline.

        Args:
            heightfield: Field to erode in place; owned by the pipeline until it finishes
            params: Enabled stages, seed and slice size
            hydraulic_options: Droplet simulation parameters
            thermal_options: Slope collapse parameters
            river_options: River tracing and carving parameters
            on_progress: Called with (stage, overall fraction) after every slice
        """
        self._field = heightfield
        self.params = params or TerrainGenerationParams()
        self.on_progress = on_progress

        self._hydraulic = HydraulicErosion(hydraulic_options, self.params.geology, self.params.seed)
        self._thermal = ThermalErosion(thermal_options, self.params.geology)
        self._tracer = RiverTracer(river_options)
        self._carver = RiverCarver()

        self._stage = PipelineStage.UNINITIALIZED
        self._stages_run: List[PipelineStage] = []
        self._stage_progress = 0.0
        self._cancel_requested = False
        self._work: Optional[Iterator[None]] = None

        self._before: Optional[TerrainStatistics] = None
        self._after: Optional[TerrainStatistics] = None
        self._rivers: List[River] = []
        self._hydraulic_report: Optional[HydraulicErosionReport] = None
        self._thermal_report: Optional[ThermalErosionReport] = None
        self._carve_report: Optional[CarveReport] = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def stage(self) -> PipelineStage:
        return self._stage

    @property
    def finished(self) -> bool:
        return self._stage in (PipelineStage.DONE, PipelineStage.CANCELLED)

    @property
    def slice_size(self) -> int:
        return self.params.steps_per_slice or settings.steps_per_slice

    def _enabled_stages(self) -> List[PipelineStage]:
        stages = []
        if self.params.enable_hydraulic:
            stages.append(PipelineStage.HYDRAULIC_PASS)
        if self.params.enable_thermal:
            stages.append(PipelineStage.THERMAL_PASS)
        if self.params.generate_rivers:
            stages.extend([PipelineStage.RIVER_TRACE, PipelineStage.RIVER_CARVE])
        return stages

    @property
    def progress(self) -> float:
        """Overall completion in [0, 1]."""
        if self._stage == PipelineStage.DONE:
            return 1.0
        enabled = self._enabled_stages()
        if not enabled:
            return 0.0
        completed = len([s for s in self._stages_run if s != self._stage])
        current = self._stage_progress if self._stage in enabled else 0.0
        return min((completed + current) / len(enabled), 1.0)

    def _enter(self, stage: PipelineStage) -> None:
        if _STAGE_ORDER.index(stage) <= _STAGE_ORDER.index(self._stage):
            raise PipelineStateError(f"Cannot move from {self._stage.value} to {stage.value}")
        logger.info("Pipeline stage entered", stage=stage.value)
        self._stage = stage
        self._stage_progress = 0.0
        if stage != PipelineStage.DONE:
            self._stages_run.append(stage)

    def _report_progress(self) -> None:
        if self.on_progress is not None:
            self.on_progress(self._stage, self.progress)

    # ------------------------------------------------------------------
    # Work
    # ------------------------------------------------------------------

    def _iter_work(self) -> Iterator[None]:
        field = self._field
        started = time.perf_counter()
        self._before = compute_statistics(field)
        logger.info(
            "Erosion pipeline started",
            width=field.width,
            height=field.height,
            stages=[s.value for s in self._enabled_stages()],
            slice_size=self.slice_size,
            **self._before.to_dict(),
        )

        if self.params.enable_hydraulic:
            self._enter(PipelineStage.HYDRAULIC_PASS)
            for report in self._hydraulic.iter_batches(field, self.slice_size):
                self._hydraulic_report = report
                self._stage_progress = report.progress
                yield

        if self.params.enable_thermal:
            self._enter(PipelineStage.THERMAL_PASS)
            rows_per_batch = max(-(-self.slice_size // field.width), 1)
            for report in self._thermal.iter_passes(field, rows_per_batch):
                self._thermal_report = report
                self._stage_progress = report.progress
                yield

        if self.params.generate_rivers:
            self._enter(PipelineStage.RIVER_TRACE)
            max_rivers = max(self._tracer.options.max_rivers, 1)
            for rivers in self._tracer.iter_trace(field):
                self._rivers = rivers
                self._stage_progress = min(len(rivers) / max_rivers, 1.0)
                yield

            self._enter(PipelineStage.RIVER_CARVE)
            for report in self._carver.iter_carve(field, self._rivers):
                self._carve_report = report
                self._stage_progress = report.progress
                yield

        self._enter(PipelineStage.DONE)
        self._after = compute_statistics(field)
        logger.info(
            "Erosion pipeline completed",
            rivers=len(self._rivers),
            volume_change=round(volume_difference(self._before, self._after), 6),
            seconds=round(time.perf_counter() - started, 3),
            **self._after.to_dict(),
        )

    def step(self) -> bool:
        """
        Perform one bounded slice of work.

        Returns:
            True while more work remains
        """
        if self._stage == PipelineStage.CANCELLED:
            raise PipelineStateError("Pipeline was cancelled")
        if self._stage == PipelineStage.DONE:
            return False

        if self._cancel_requested:
            self._finish_cancelled()
            return False

        if self._work is None:
            self._work = self._iter_work()

        try:
            next(self._work)
        except StopIteration:
            self._work = None
            self._report_progress()
            return False

        self._report_progress()
        return True

    def run(self) -> PipelineResult:
        """Run to completion on the calling thread."""
        while self.step():
            pass
        return self.result()

    def cancel(self) -> None:
        """Request cancellation; honoured at the next slice boundary."""
        if self.finished:
            return
        self._cancel_requested = True
        logger.info("Pipeline cancellation requested", stage=self._stage.value)

    def _finish_cancelled(self) -> None:
        if self._work is not None:
            self._work.close()
            self._work = None
        if self._before is None:
            self._before = compute_statistics(self._field)
        self._after = compute_statistics(self._field)
        logger.warning(
            "Erosion pipeline cancelled",
            stage=self._stage.value,
            progress=round(self.progress, 3),
        )
        self._stage = PipelineStage.CANCELLED

    def result(self) -> PipelineResult:
        """Read-only snapshot of the finished run."""
        if not self.finished:
            raise PipelineStateError(f"Pipeline has not finished (stage {self._stage.value})")
        return PipelineResult(
            heights=self._field.snapshot(),
            rivers=tuple(self._rivers),
            stages=tuple(self._stages_run),
            before=self._before,
            after=self._after,
            cancelled=self._stage == PipelineStage.CANCELLED,
            hydraulic=self._hydraulic_report,
            thermal=self._thermal_report,
            carve=self._carve_report,
        )


def erode_terrain(
    heightfield: HeightField,
    params: Optional[TerrainGenerationParams] = None,
    hydraulic_options: Optional[HydraulicErosionOptions] = None,
    thermal_options: Optional[ThermalErosionOptions] = None,
    river_options: Optional[RiverOptions] = None,
) -> PipelineResult:
    """Blocking convenience wrapper around ``ErosionPipeline.run()``."""
    pipeline = ErosionPipeline(
        heightfield,
        params=params,
        hydraulic_options=hydraulic_options,
        thermal_options=thermal_options,
        river_options=river_options,
    )
    return pipeline.run()
