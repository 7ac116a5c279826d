"""Grid search over the shared CV folds, and candidate extraction for stacking.

All searching is delegated to :class:`~sklearn.model_selection.GridSearchCV`;
this module only

- prefixes grid keys for the ``model`` step of the workflow,
- tidies ``cv_results_`` into one row per configuration,
- exposes the best / top-n configurations and their unfitted workflows
  (the stacking *candidates*),
- persists results with joblib so the stacking step can reuse them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

import joblib
import numpy as np
import pandas as pd
from sklearn.base import clone
from sklearn.model_selection import GridSearchCV
from sklearn.pipeline import Pipeline

from survey_segmentation.src.data.preprocess import Fold

from .registry import grid_size

logger = logging.getLogger(__name__)

MODEL_STEP = "model"

# metric name -> sklearn scorer
SCORERS: Dict[str, str] = {
    "accuracy": "accuracy",
    "roc_auc": "roc_auc_ovr",
}


@dataclass
class Candidate:
    """One tuned configuration that may enter a stack."""

    candidate_id: str
    model_name: str
    params: Dict[str, Any]
    workflow: Pipeline
    mean_score: float = float("nan")


@dataclass
class TuningResult:
    """Outcome of tuning one model over its grid."""

    model_name: str
    metric: str
    grid: Dict[str, List[Any]]
    search: GridSearchCV
    cv_results: pd.DataFrame = field(default_factory=pd.DataFrame)

    @property
    def best_params(self) -> Dict[str, Any]:
        return _strip_prefix(self.search.best_params_)

    @property
    def best_score(self) -> float:
        return float(self.search.best_score_)


def _prefix(grid: Mapping[str, Sequence[Any]]) -> Dict[str, List[Any]]:
    return {f"{MODEL_STEP}__{k}": list(v) for k, v in grid.items()}


def _strip_prefix(params: Mapping[str, Any]) -> Dict[str, Any]:
    head = f"{MODEL_STEP}__"
    return {(k[len(head):] if k.startswith(head) else k): v for k, v in params.items()}


def config_id(model_name: str, index: int) -> str:
    return f"{model_name}_{index + 1:02d}"


def tidy_cv_results(model_name: str, search: GridSearchCV, metric: str) -> pd.DataFrame:
    """One row per configuration: id, parameters, mean/std per metric, rank."""
    cv = search.cv_results_
    rows: List[Dict[str, Any]] = []
    for i, params in enumerate(cv["params"]):
        row: Dict[str, Any] = {"config": config_id(model_name, i), "model": model_name}
        row.update({k: _display_value(v) for k, v in _strip_prefix(params).items()})
        for name in SCORERS:
            mean_key, std_key = f"mean_test_{name}", f"std_test_{name}"
            if mean_key in cv:
                row[f"mean_{name}"] = float(cv[mean_key][i])
                row[f"std_{name}"] = float(cv[std_key][i])
        row["rank"] = int(cv[f"rank_test_{metric}"][i])
        rows.append(row)

    out = pd.DataFrame(rows)
    # ties keep grid order; "_100" must not sort before "_99"
    order = np.lexsort((np.arange(len(out)), out["rank"].to_numpy()))
    return out.iloc[order].reset_index(drop=True)


def _display_value(v: Any) -> Any:
    # tuples/None render badly in CSV; keep them readable
    if isinstance(v, tuple):
        return "x".join(str(x) for x in v)
    if v is None:
        return "none"
    return v


def tune_grid(
    model_name: str,
    workflow: Pipeline,
    grid: Mapping[str, Sequence[Any]],
    X: pd.DataFrame,
    y: pd.Series,
    folds: Sequence[Fold],
    *,
    metric: str = "accuracy",
    n_jobs: Optional[int] = None,
) -> TuningResult:
    """Evaluate every grid configuration on ``folds`` and refit the best one.

    Configurations that fail to fit score NaN and are reported in the log.
    A ``RuntimeError`` is raised when no configuration could be fit.
    """
    if metric not in SCORERS:
        raise ValueError(f"Unsupported tuning metric '{metric}'. Expected one of {list(SCORERS)}.")
    if not grid:
        raise ValueError(f"Empty tuning grid for {model_name}.")

    folds = list(folds)
    logger.info(
        "Tuning %s over %d configurations x %d resamples (metric=%s)",
        model_name,
        grid_size(grid),
        len(folds),
        metric,
    )

    search = GridSearchCV(
        estimator=workflow,
        param_grid=_prefix(grid),
        scoring=dict(SCORERS),
        refit=metric,
        cv=folds,
        n_jobs=n_jobs,
        error_score=np.nan,
    )
    try:
        search.fit(X, y)
    except ValueError as exc:
        # sklearn refuses to refit when every fit failed
        if "fits failed" in str(exc):
            raise RuntimeError(f"All configurations of {model_name} failed to fit.") from exc
        raise

    scores = np.asarray(search.cv_results_[f"mean_test_{metric}"], dtype=float)
    n_failed = int(np.isnan(scores).sum())
    if n_failed == len(scores):
        raise RuntimeError(f"All {len(scores)} configurations of {model_name} failed to fit.")
    if n_failed:
        logger.warning("%d of %d %s configurations failed to fit.", n_failed, len(scores), model_name)

    result = TuningResult(
        model_name=model_name,
        metric=metric,
        grid={k: list(v) for k, v in grid.items()},
        search=search,
    )
    result.cv_results = tidy_cv_results(model_name, search, metric)
    logger.info("Best %s: %s (mean %s = %.4f)", model_name, result.best_params, metric, result.best_score)
    return result


def show_best(result: TuningResult, n: int = 5) -> pd.DataFrame:
    """Top ``n`` configurations by the tuning metric."""
    return result.cv_results.head(int(n)).copy()


def select_best(result: TuningResult) -> Dict[str, Any]:
    """Best parameters (estimator names, no ``model__`` prefix)."""
    return result.best_params


def finalize_workflow(result: TuningResult) -> Pipeline:
    """Unfitted workflow with the best parameters plugged in."""
    return clone(result.search.estimator).set_params(**result.search.best_params_)


def finalize_fit(
    result: TuningResult,
    X: Optional[pd.DataFrame] = None,
    y: Optional[pd.Series] = None,
) -> Pipeline:
    """Best workflow fit on the full training set.

    Without data this returns the refit estimator GridSearchCV already holds.
    """
    if X is None or y is None:
        return result.search.best_estimator_
    return finalize_workflow(result).fit(X, y)


def candidate_configs(result: TuningResult, top_n: Optional[int] = None) -> List[Candidate]:
    """Unfitted workflows for the (top ``n``) configurations, best first.

    Configurations whose CV score is NaN are never candidates.
    """
    cv = result.search.cv_results_
    scores = np.asarray(cv[f"mean_test_{result.metric}"], dtype=float)
    ranks = np.asarray(cv[f"rank_test_{result.metric}"])
    order = sorted(range(len(scores)), key=lambda i: (ranks[i], i))

    candidates: List[Candidate] = []
    for i in order:
        if np.isnan(scores[i]):
            continue
        params = dict(cv["params"][i])
        candidates.append(
            Candidate(
                candidate_id=config_id(result.model_name, i),
                model_name=result.model_name,
                params=_strip_prefix(params),
                workflow=clone(result.search.estimator).set_params(**params),
                mean_score=float(scores[i]),
            )
        )
        if top_n is not None and len(candidates) >= int(top_n):
            break
    return candidates


def dump_tuning_result(result: TuningResult, path: Union[str, Path]) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    joblib.dump(result, path)
    return path


def load_tuning_result(path: Union[str, Path]) -> TuningResult:
    result = joblib.load(Path(path))
    if not isinstance(result, TuningResult):
        raise TypeError(f"{path} does not contain a TuningResult (got {type(result).__name__}).")
    return result


__all__ = [
    "SCORERS",
    "Candidate",
    "TuningResult",
    "config_id",
    "tidy_cv_results",
    "tune_grid",
    "show_best",
    "select_best",
    "finalize_workflow",
    "finalize_fit",
    "candidate_configs",
    "dump_tuning_result",
    "load_tuning_result",
]
