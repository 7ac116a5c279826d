"""survey_segmentation.src.models

Model specifications, grid tuning and stacking for segment classification.

- **Base models** (:mod:`.registry`): penalised multinomial regression,
  decision tree, random forest, boosted trees (histogram gradient boosting)
  and a single-hidden-layer neural network, each as
  ``Pipeline([recipe, estimator])``.
- **Tuning** (:mod:`.tuning`): ``GridSearchCV`` on the shared folds, tidy
  results, candidate extraction.
- **Stacking** (:mod:`.stacking`): out-of-fold candidate predictions blended
  by an L1-penalised multinomial meta-learner.

All share the scikit-learn API (``fit`` / ``predict`` / ``predict_proba``).
"""

from __future__ import annotations

from .registry import (
    BASE_MODEL_NAMES,
    MODEL_LABELS,
    MODEL_SPECS,
    STACK_MODEL_NAME,
    ModelSpec,
    get_model_spec,
    grid_size,
    make_workflow,
    resolve_grid,
)
from .stacking import (
    StackedEnsemble,
    StackingConfig,
    collect_candidate_predictions,
    first_partition,
)
from .tuning import (
    Candidate,
    TuningResult,
    candidate_configs,
    dump_tuning_result,
    finalize_fit,
    finalize_workflow,
    load_tuning_result,
    select_best,
    show_best,
    tune_grid,
)

__all__ = [
    "BASE_MODEL_NAMES",
    "MODEL_LABELS",
    "MODEL_SPECS",
    "STACK_MODEL_NAME",
    "ModelSpec",
    "get_model_spec",
    "grid_size",
    "make_workflow",
    "resolve_grid",
    "Candidate",
    "TuningResult",
    "tune_grid",
    "show_best",
    "select_best",
    "finalize_workflow",
    "finalize_fit",
    "candidate_configs",
    "dump_tuning_result",
    "load_tuning_result",
    "StackingConfig",
    "StackedEnsemble",
    "collect_candidate_predictions",
    "first_partition",
]
