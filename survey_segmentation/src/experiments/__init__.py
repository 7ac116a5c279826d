"""Experiment entrypoints for the project.

Each module contains a CLI-friendly ``main`` function. This package re-exports
them so they can be called programmatically, e.g. from
``survey_segmentation/run_all_experiments.py``.
"""

from __future__ import annotations

from typing import Optional, Sequence

from .run_models import main as run_models
from .run_stacking import main as run_stacking

__all__ = [
    "run_models",
    "run_stacking",
    "run_all",
]


def run_all(argv: Optional[Sequence[str]] = None) -> None:
    """Tune the base models, then stack them, with default parameters.

    Parameters
    ----------
    argv:
        Currently unused; the launcher script exposes the full set of flags.
    """
    _ = argv
    run_models([])
    run_stacking([])
