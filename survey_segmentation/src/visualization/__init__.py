"""Matplotlib figures for the tuning / stacking report."""

from __future__ import annotations

from .plots import (
    plot_confusion_matrix,
    plot_feature_importance,
    plot_model_comparison,
    plot_stack_weights,
    plot_tuning_curve,
)

__all__ = [
    "plot_tuning_curve",
    "plot_confusion_matrix",
    "plot_feature_importance",
    "plot_model_comparison",
    "plot_stack_weights",
]
