"""Source package for the survey segment-classification project.

Package layout
--------------
- data: loading, cleaning, splitting/folds, preprocessing recipe, simulator
- models: model registry, grid tuning, stacked ensemble
- evaluation: classification metrics and the model comparison table
- visualization: report-ready figures
- reporting: markdown report
- experiments: runnable scripts for the base models and stacking
- utils: logging, seeds, and YAML config

Kept lightweight so importing the package does not pull in scikit-learn.
"""

from __future__ import annotations

__version__ = "0.1.0"

__all__ = [
    "data",
    "models",
    "evaluation",
    "visualization",
    "reporting",
    "experiments",
    "utils",
]
