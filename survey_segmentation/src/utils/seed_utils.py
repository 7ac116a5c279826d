"""Random seed helpers for reproducible accuracy figures.

Stochastic pieces in the pipeline:
- the stratified train/test split and the CV fold assignment,
- random forest bootstraps and feature subsampling,
- neural-network weight initialisation and minibatch order,
- synthetic survey generation.

Every estimator also receives an explicit ``random_state``; the global seed
covers anything that falls back to NumPy's legacy global RNG.
"""

from __future__ import annotations

import os
import random
from contextlib import contextmanager
from typing import Iterator, Optional

import numpy as np

DEFAULT_SEED = 42


def set_global_seed(seed: int = DEFAULT_SEED) -> None:
    """Seed Python's ``random`` and NumPy's global RNG.

    Also sets ``PYTHONHASHSEED`` so child processes spawned by ``n_jobs``
    hash strings the same way.
    """
    os.environ["PYTHONHASHSEED"] = str(int(seed))
    random.seed(int(seed))
    np.random.seed(int(seed))


def reproducible_numpy_rng(seed: Optional[int] = None) -> np.random.Generator:
    """Return a dedicated NumPy Generator."""
    return np.random.default_rng(seed)


@contextmanager
def temp_seed(seed: int) -> Iterator[None]:
    """Temporarily seed the global RNGs, restoring their state afterwards."""
    py_state = random.getstate()
    np_state = np.random.get_state()

    set_global_seed(int(seed))
    try:
        yield
    finally:
        random.setstate(py_state)
        np.random.set_state(np_state)


__all__ = ["DEFAULT_SEED", "set_global_seed", "reproducible_numpy_rng", "temp_seed"]
