from __future__ import annotations

from typing import Optional

import numpy as np


def make_rng(seed: Optional[int] = None) -> np.random.Generator:
    """
    Independent generator for code that takes an explicit random source.
    None draws fresh OS entropy.
    """
    return np.random.default_rng(seed)
