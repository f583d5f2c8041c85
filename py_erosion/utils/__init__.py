"""
Utility helpers: seeded randomness and logging setup.
"""

from .logging import configure_logging
from .random import create_prng, resolve_seed

__all__ = ["configure_logging", "create_prng", "resolve_seed"]
