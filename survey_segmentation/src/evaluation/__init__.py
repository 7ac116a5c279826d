"""Evaluation utilities.

Experiment runners call this package to compute:

- multiclass test metrics (accuracy / balanced accuracy / kappa / macro F1 /
  ROC AUC / log-loss), confusion matrices and per-segment reports;
- variable importance for fitted workflows;
- the ranked six-model comparison table.
"""

from __future__ import annotations

from .classification import (
    compute_classification_metrics,
    confusion_table,
    feature_importance,
    per_class_report,
)
from .comparison import COMPARISON_COLUMNS, MODEL_ORDER, comparison_table

__all__ = [
    "compute_classification_metrics",
    "confusion_table",
    "per_class_report",
    "feature_importance",
    "MODEL_ORDER",
    "COMPARISON_COLUMNS",
    "comparison_table",
]
