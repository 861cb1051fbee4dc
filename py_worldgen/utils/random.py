"""
Random number generation utilities.

World generation never touches a process-wide generator: each pipeline owns
an AleaPRNG built from its seed and passes it to every step that draws random
numbers. Python's random and NumPy's random are not used so that a seed
reproduces the same world on every platform.
"""

from typing import Optional, Union

from ..core.alea_prng import AleaPRNG, Seed


def create_prng(seed: Optional[Seed] = None) -> AleaPRNG:
    """
    Create a fresh Alea PRNG.

    Args:
        seed: Seed integer or string; falls back to the configured seed

    Returns:
        AleaPRNG instance
    """
    if seed is None:
        from ..config import settings

        seed = settings.seed
    return AleaPRNG(seed)


def ensure_prng(prng: Union[AleaPRNG, Seed, None]) -> AleaPRNG:
    """Return prng unchanged if it already is a generator, else seed a new one."""
    if isinstance(prng, AleaPRNG):
        return prng
    return create_prng(prng)
