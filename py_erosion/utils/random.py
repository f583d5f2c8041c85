"""
Random number generation utilities.

All stochastic choices in the erosion engines go through the Alea PRNG so
that a run is reproducible from its seed. Python's random and NumPy's random
are not used by the simulation code.
"""

from typing import Optional, Union

from ..core.alea_prng import AleaPRNG
from ..config.config import settings

Seed = Union[str, int, float]


def resolve_seed(seed: Optional[Seed] = None) -> Seed:
    """Return the seed to use, falling back to the configured default."""
    if seed is None:
        return settings.default_seed
    return seed


def create_prng(seed: Optional[Seed] = None, stream: Optional[str] = None) -> AleaPRNG:
    """
    Create a fresh Alea PRNG instance.

    Args:
        seed: Seed value; ``None`` uses ``settings.default_seed``
        stream: Optional stream name so independent consumers of the same
            seed (droplets, future stages) do not share a sequence

    Returns:
        AleaPRNG instance
    """
    base = resolve_seed(seed)
    if stream:
        return AleaPRNG([base, stream])
    return AleaPRNG(base)
