import os
from pathlib import Path

from dotenv import dotenv_values
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env for local/dev environments only for values missing from the environment
BASE_DIR = Path(__file__).resolve().parent.parent.parent
env_file = BASE_DIR / ".env"

if env_file.exists():
    file_env = dotenv_values(env_file)
    for key, value in file_env.items():
        if key not in os.environ and value is not None:
            os.environ[key] = value


class Settings(BaseSettings):
    """Process-wide settings pulled from ``EROSION_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="EROSION_",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Logging Configuration
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Logging format (plain or json)")

    # Generation Configuration
    default_seed: str = Field(default="py-erosion", description="Seed used when a run does not supply one")
    steps_per_slice: int = Field(
        default=1000, ge=1, description="Units of work per progressive scheduling slice"
    )
    max_grid_size: int = Field(default=8192, ge=1, description="Largest accepted grid width or height")


# Instantiate singleton settings object
settings = Settings()
