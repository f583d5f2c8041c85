"""
py-erosion: heightfield erosion and river generation.

Sculpts a raw procedural height field with droplet-based hydraulic erosion,
thermal slope collapse and traced, carved rivers, reproducibly from a seed.
"""

from .config import GeologySettings, TerrainGenerationParams, settings
from .core import (
    ErosionPipeline,
    HeightField,
    HydraulicErosion,
    HydraulicErosionOptions,
    InvalidGridError,
    PipelineResult,
    PipelineStage,
    River,
    RiverCarver,
    RiverOptions,
    RiverPoint,
    RiverTracer,
    ThermalErosion,
    ThermalErosionOptions,
    erode_terrain,
)

__version__ = "0.1.0"

__all__ = [
    "GeologySettings",
    "TerrainGenerationParams",
    "settings",
    "ErosionPipeline",
    "HeightField",
    "HydraulicErosion",
    "HydraulicErosionOptions",
    "InvalidGridError",
    "PipelineResult",
    "PipelineStage",
    "River",
    "RiverCarver",
    "RiverOptions",
    "RiverPoint",
    "RiverTracer",
    "ThermalErosion",
    "ThermalErosionOptions",
    "erode_terrain",
]
