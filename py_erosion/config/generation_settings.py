"""
Value objects describing one terrain generation request.

These are supplied by world configuration and only ever read by the
erosion and river stages.
"""

from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class GeologySettings(BaseModel):
    """Geological properties of the terrain being eroded."""

    model_config = ConfigDict(frozen=True)

    rock_hardness: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="0 = loose soil, 1 = rock that neither water nor gravity can move",
    )

    @property
    def erodibility(self) -> float:
        """Fraction of the nominal erosion that actually happens."""
        return 1.0 - self.rock_hardness


class TerrainGenerationParams(BaseModel):
    """Which stages of the pipeline run, and with what seed."""

    model_config = ConfigDict(frozen=True)

    enable_hydraulic: bool = Field(default=True, description="Run droplet-based hydraulic erosion")
    enable_thermal: bool = Field(default=True, description="Run thermal (slope collapse) erosion")
    generate_rivers: bool = Field(default=True, description="Trace and carve rivers")

    seed: Optional[Union[str, int]] = Field(
        default=None, description="Seed for reproducible generation, None uses the configured default"
    )
    steps_per_slice: Optional[int] = Field(
        default=None,
        ge=1,
        description="Droplets, thermal rows or river points per progressive slice",
    )

    geology: GeologySettings = Field(default_factory=GeologySettings)
