"""
Random number generation utilities.

All seed sampling goes through one process-wide NumPy ``Generator`` so a
given integer seed reproduces the same seed layout.
"""

from typing import Optional

import numpy as np

# Global generator instance
_rng: Optional[np.random.Generator] = None


def set_random_seed(seed: Optional[int]) -> None:
    """
    Reset the shared generator.

    Args:
        seed: Integer seed, or None for fresh OS entropy
    """
    global _rng
    _rng = np.random.default_rng(seed)


def get_rng() -> np.random.Generator:
    """
    Get the shared generator, creating an unseeded one on first use.

    Returns:
        numpy Generator instance
    """
    global _rng
    if _rng is None:
        _rng = np.random.default_rng()
    return _rng
