"""
Configuration for erosion runs.
"""

from .config import Settings, settings
from .generation_settings import GeologySettings, TerrainGenerationParams

__all__ = ["Settings", "settings", "GeologySettings", "TerrainGenerationParams"]
