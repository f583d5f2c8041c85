"""
Core erosion and hydrology engine.
"""

from .alea_prng import AleaPRNG
from .heightfield import HeightField, InvalidGridError
from .heightmap_analysis import TerrainStatistics, compute_statistics
from .hydraulic_erosion import ErosionBrush, HydraulicErosion, HydraulicErosionOptions
from .thermal_erosion import ThermalErosion, ThermalErosionOptions
from .rivers import River, RiverOptions, RiverPoint, RiverTracer
from .river_carver import RiverCarver
from .pipeline import (
    ErosionPipeline,
    PipelineResult,
    PipelineStage,
    PipelineStateError,
    erode_terrain,
)

__all__ = ['AleaPRNG', 'HeightField', 'InvalidGridError', 'TerrainStatistics', 'compute_statistics',
           'ErosionBrush', 'HydraulicErosion', 'HydraulicErosionOptions',
           'ThermalErosion', 'ThermalErosionOptions',
           'River', 'RiverOptions', 'RiverPoint', 'RiverTracer', 'RiverCarver',
           'ErosionPipeline', 'PipelineResult', 'PipelineStage', 'PipelineStateError', 'erode_terrain']
