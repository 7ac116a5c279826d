"""Stacked ensemble built from tuned base-model configurations.

Workflow (mirrors the ``stacks`` package used in the course slides):

1) ``add_candidates``: every tuned configuration (or the top ``n`` per model)
   becomes a *candidate*.
2) ``blend_predictions``: out-of-fold class probabilities of all candidates,
   computed on the same CV folds used for tuning, are the inputs of an
   L1-penalised multinomial logistic regression (the *meta-learner*). The
   penalty is chosen by cross-validation over ``StackingConfig.penalties``.
   Candidates whose coefficients are all zero drop out; the rest are the
   *members*.
3) ``fit_members``: each member workflow is refit on the whole training set.
4) ``predict`` / ``predict_proba``: member probabilities -> meta-learner.

All model fitting is done by scikit-learn (``cross_val_predict`` and
``LogisticRegressionCV``); this class only wires the pieces together.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import joblib
import numpy as np
import pandas as pd
import sklearn
from sklearn.base import clone
from sklearn.linear_model import LogisticRegression, LogisticRegressionCV
from sklearn.model_selection import cross_val_predict
from sklearn.pipeline import Pipeline

from survey_segmentation.src.data.preprocess import Fold

from .tuning import Candidate, TuningResult, candidate_configs

logger = logging.getLogger(__name__)

COLUMN_SEP = "__"


def _sklearn_version() -> Tuple[int, int]:
    match = re.match(r"(\d+)\.(\d+)", sklearn.__version__)
    return (int(match.group(1)), int(match.group(2))) if match else (0, 0)


def l1_penalty_kwargs(cv: bool = False) -> Dict[str, Any]:
    """Keyword arguments for a pure L1 logistic regression.

    scikit-learn 1.8 deprecated ``penalty`` in favour of ``l1_ratio``
    (``l1_ratios`` for the CV estimator); older releases only know ``penalty``.
    """
    if _sklearn_version() >= (1, 8):
        return {"l1_ratios": (1.0,)} if cv else {"l1_ratio": 1.0}
    return {"penalty": "l1"}


@dataclass
class StackingConfig:
    """Meta-learner and candidate settings.

    Parameters
    ----------
    penalties:
        L1 penalty strengths (lambda) tried for the meta-learner; sklearn's
        ``C`` is ``1 / lambda``.
    max_candidates_per_model:
        Keep only the best ``n`` configurations of each model (``None`` = all).
    meta_max_iter:
        Iteration cap for the saga solver.
    n_jobs:
        Passed to ``cross_val_predict`` / ``LogisticRegressionCV``.
    """

    penalties: List[float] = field(default_factory=lambda: [1e-3, 1e-2, 0.1, 1.0])
    max_candidates_per_model: Optional[int] = None
    meta_max_iter: int = 5000
    n_jobs: Optional[int] = None

    def __post_init__(self) -> None:
        if not self.penalties:
            raise ValueError("penalties must not be empty.")
        if any(float(p) <= 0 for p in self.penalties):
            raise ValueError("penalties must be positive.")
        if self.max_candidates_per_model is not None and int(self.max_candidates_per_model) < 1:
            raise ValueError("max_candidates_per_model must be >= 1 or None.")


def first_partition(folds: Sequence[Fold], n_samples: int) -> List[Fold]:
    """Leading folds whose validation sets cover every row exactly once.

    ``cross_val_predict`` needs a partition; with repeated CV only the first
    repeat qualifies.
    """
    seen = np.zeros(n_samples, dtype=int)
    out: List[Fold] = []
    for tr, va in folds:
        seen[va] += 1
        out.append((tr, va))
        if np.all(seen == 1):
            return out
        if np.any(seen > 1):
            break
    raise ValueError("Folds do not contain a partition of the training rows.")


def candidate_columns(candidate_id: str, classes: Sequence[str]) -> List[str]:
    return [f"{candidate_id}{COLUMN_SEP}{c}" for c in classes]


def collect_candidate_predictions(
    candidates: Sequence[Candidate],
    X: pd.DataFrame,
    y: pd.Series,
    folds: Sequence[Fold],
    *,
    n_jobs: Optional[int] = None,
) -> pd.DataFrame:
    """Out-of-fold class probabilities for each candidate, side by side."""
    folds = first_partition(folds, len(X))
    classes = np.unique(np.asarray(y))

    blocks: List[pd.DataFrame] = []
    for cand in candidates:
        proba = cross_val_predict(
            clone(cand.workflow),
            X,
            y,
            cv=folds,
            method="predict_proba",
            n_jobs=n_jobs,
        )
        blocks.append(pd.DataFrame(proba, columns=candidate_columns(cand.candidate_id, classes), index=X.index))

    return pd.concat(blocks, axis=1)


class StackedEnsemble:
    """Blend tuned candidates with a penalised meta-learner."""

    def __init__(self, config: Optional[StackingConfig] = None, random_state: int = 42):
        self.config = config or StackingConfig()
        self.random_state = int(random_state)

        self.candidates: Dict[str, Candidate] = {}

        # fitted
        self.classes_: Optional[np.ndarray] = None
        self.candidate_predictions_: Optional[pd.DataFrame] = None
        self.meta_learner_: Optional[LogisticRegression] = None
        self.meta_columns_: List[str] = []
        self.penalty_: Optional[float] = None
        self.members_: List[str] = []
        self.weights_: Optional[pd.DataFrame] = None
        self.fitted_members_: Dict[str, Pipeline] = {}

    # ------------------------------------------------------------------
    # candidates
    # ------------------------------------------------------------------

    def add_candidates(self, result: TuningResult, top_n: Optional[int] = None) -> "StackedEnsemble":
        """Register the configurations of one tuned model as candidates."""
        if top_n is None:
            top_n = self.config.max_candidates_per_model
        new = candidate_configs(result, top_n=top_n)
        for cand in new:
            if cand.candidate_id in self.candidates:
                raise ValueError(f"Candidate '{cand.candidate_id}' was already added.")
            self.candidates[cand.candidate_id] = cand
        logger.info("Added %d %s candidates (total %d).", len(new), result.model_name, len(self.candidates))
        return self

    # ------------------------------------------------------------------
    # meta-learner
    # ------------------------------------------------------------------

    def blend_predictions(self, X: pd.DataFrame, y: pd.Series, folds: Sequence[Fold]) -> "StackedEnsemble":
        """Fit the meta-learner on out-of-fold candidate predictions."""
        if not self.candidates:
            raise ValueError("No candidates to blend; call add_candidates() first.")

        folds = first_partition(folds, len(X))
        preds = collect_candidate_predictions(
            list(self.candidates.values()), X, y, folds, n_jobs=self.config.n_jobs
        )
        self.classes_ = np.unique(np.asarray(y))
        self.candidate_predictions_ = preds

        Cs = sorted(1.0 / float(p) for p in self.config.penalties)
        meta = LogisticRegressionCV(
            **l1_penalty_kwargs(cv=True),
            Cs=Cs,
            solver="saga",
            cv=folds,
            scoring="accuracy",
            max_iter=int(self.config.meta_max_iter),
            n_jobs=self.config.n_jobs,
            random_state=self.random_state,
        )
        meta.fit(preds, np.asarray(y))
        self.penalty_ = float(1.0 / np.atleast_1d(meta.C_)[0])

        weights = self._candidate_weights(meta, list(preds.columns))
        members = [cid for cid, w in weights.items() if w > 0.0]

        if members:
            self.meta_learner_ = meta
            self.meta_columns_ = list(preds.columns)
        else:
            best = self._strongest_candidate(preds, y, C=max(Cs))
            logger.warning(
                "Meta-learner removed every candidate at penalty %.4g; keeping %s as the sole member.",
                self.penalty_,
                best,
            )
            cols = candidate_columns(best, self.classes_)
            # L2 so the sole member cannot be zeroed out again
            solo = LogisticRegression(max_iter=int(self.config.meta_max_iter), random_state=self.random_state)
            solo.fit(preds[cols], np.asarray(y))
            self.meta_learner_ = solo
            self.meta_columns_ = cols
            weights = self._candidate_weights(solo, cols)
            members = [best]

        self.members_ = members
        self.weights_ = self._weights_table(weights, members)
        self.fitted_members_ = {}
        logger.info(
            "Meta-learner kept %d of %d candidates (penalty=%.4g).",
            len(members),
            len(self.candidates),
            self.penalty_,
        )
        return self

    def _strongest_candidate(self, preds: pd.DataFrame, y: pd.Series, C: float) -> str:
        """Candidate with the largest mean |coef| at the weakest penalty.

        Falls back to the best CV score when even that fit is all zeros.
        """
        sparse = LogisticRegression(
            **l1_penalty_kwargs(),
            C=C,
            solver="saga",
            max_iter=int(self.config.meta_max_iter),
            random_state=self.random_state,
        )
        sparse.fit(preds, np.asarray(y))
        weights = self._candidate_weights(sparse, list(preds.columns))
        if max(weights.values()) > 0.0:
            return max(weights, key=lambda cid: (weights[cid], self.candidates[cid].mean_score))
        return max(self.candidates.values(), key=lambda c: c.mean_score).candidate_id

    @staticmethod
    def _candidate_weights(meta: LogisticRegression, columns: List[str]) -> Dict[str, float]:
        coef = np.abs(np.atleast_2d(meta.coef_))
        by_candidate: Dict[str, List[float]] = {}
        for j, col in enumerate(columns):
            cid = col.split(COLUMN_SEP, 1)[0]
            by_candidate.setdefault(cid, []).extend(coef[:, j].tolist())
        return {cid: float(np.mean(vals)) for cid, vals in by_candidate.items()}

    def _weights_table(self, weights: Dict[str, float], members: List[str]) -> pd.DataFrame:
        rows = []
        for cid in members:
            cand = self.candidates[cid]
            rows.append(
                {
                    "member": cid,
                    "model": cand.model_name,
                    "weight": weights.get(cid, 0.0),
                    "cv_score": cand.mean_score,
                    **{f"param_{k}": v for k, v in cand.params.items()},
                }
            )
        table = pd.DataFrame(rows)
        return table.sort_values(["weight", "member"], ascending=[False, True]).reset_index(drop=True)

    # ------------------------------------------------------------------
    # members
    # ------------------------------------------------------------------

    def fit_members(self, X: pd.DataFrame, y: pd.Series) -> "StackedEnsemble":
        """Refit every member workflow on the full training data."""
        if self.meta_learner_ is None:
            raise RuntimeError("Call blend_predictions() before fit_members().")

        self.fitted_members_ = {}
        for cid in self.members_:
            logger.info("Fitting stack member %s", cid)
            self.fitted_members_[cid] = clone(self.candidates[cid].workflow).fit(X, y)
        return self

    def fit(self, X: pd.DataFrame, y: pd.Series, folds: Sequence[Fold]) -> "StackedEnsemble":
        return self.blend_predictions(X, y, folds).fit_members(X, y)

    # ------------------------------------------------------------------
    # prediction
    # ------------------------------------------------------------------

    def _member_matrix(self, X: pd.DataFrame) -> pd.DataFrame:
        if self.meta_learner_ is None or self.classes_ is None:
            raise RuntimeError("StackedEnsemble is not blended yet.")
        if set(self.fitted_members_) != set(self.members_):
            raise RuntimeError("Stack members are not fitted; call fit_members().")

        # Non-member columns carry zero coefficients, so zeros leave the blend unchanged.
        Z = pd.DataFrame(0.0, index=X.index, columns=self.meta_columns_)
        for cid, model in self.fitted_members_.items():
            if not np.array_equal(np.asarray(model.classes_), self.classes_):
                raise RuntimeError(f"Member {cid} was fit on different classes.")
            Z[candidate_columns(cid, self.classes_)] = model.predict_proba(X)
        return Z

    def predict_proba(self, X: pd.DataFrame) -> np.ndarray:
        Z = self._member_matrix(X)
        return self.meta_learner_.predict_proba(Z)

    def predict(self, X: pd.DataFrame) -> np.ndarray:
        Z = self._member_matrix(X)
        return self.meta_learner_.predict(Z)

    def member_predictions(self, X: pd.DataFrame) -> pd.DataFrame:
        """Hard class predictions of each member, for comparing against the blend."""
        if not self.fitted_members_:
            raise RuntimeError("Stack members are not fitted; call fit_members().")
        return pd.DataFrame({cid: m.predict(X) for cid, m in self.fitted_members_.items()}, index=X.index)

    def save(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        joblib.dump(self, path)
        return path

    @staticmethod
    def load(path: Union[str, Path]) -> "StackedEnsemble":
        obj = joblib.load(Path(path))
        if not isinstance(obj, StackedEnsemble):
            raise TypeError(f"{path} does not contain a StackedEnsemble (got {type(obj).__name__}).")
        return obj


__all__ = [
    "StackingConfig",
    "StackedEnsemble",
    "first_partition",
    "candidate_columns",
    "collect_candidate_predictions",
    "l1_penalty_kwargs",
]
