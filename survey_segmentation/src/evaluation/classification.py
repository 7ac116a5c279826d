"""Multiclass evaluation of segment predictions on the held-out test set.

Key APIs
--------
- :func:`compute_classification_metrics`: accuracy (the headline number in
  the comparison table), balanced accuracy, Cohen's kappa, macro F1 and,
  given class probabilities, one-vs-rest ROC AUC and log-loss.
- :func:`confusion_table`: labelled confusion matrix (truth x prediction).
- :func:`per_class_report`: precision / recall / F1 per segment.
- :func:`feature_importance`: impurity importances for tree ensembles,
  permutation importance for everything else.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd
from sklearn import metrics
from sklearn.inspection import permutation_importance
from sklearn.pipeline import Pipeline

from survey_segmentation.src.data.recipe import recipe_feature_names

logger = logging.getLogger(__name__)


def _to_1d_labels(x: Any) -> np.ndarray:
    """Convert labels to a 1D NumPy array of strings."""
    if isinstance(x, (pd.Series, pd.Index)):
        arr = x.to_numpy()
    elif isinstance(x, pd.DataFrame):
        if x.shape[1] != 1:
            raise ValueError(f"Expected a single-column DataFrame for labels, got shape={x.shape}.")
        arr = x.iloc[:, 0].to_numpy()
    else:
        arr = np.asarray(x)
    return np.asarray(arr).reshape(-1).astype(str)


def _resolve_labels(y_true: np.ndarray, y_pred: np.ndarray, labels: Optional[Sequence[str]]) -> List[str]:
    if labels is not None:
        return [str(l) for l in labels]
    return sorted(set(y_true.tolist()) | set(y_pred.tolist()))


def compute_classification_metrics(
    y_true: pd.Series | np.ndarray,
    y_pred: pd.Series | np.ndarray,
    y_prob: Optional[np.ndarray | pd.DataFrame] = None,
    labels: Optional[Sequence[str]] = None,
) -> Dict[str, Optional[float]]:
    """Compute multiclass classification metrics.

    Parameters
    ----------
    y_true, y_pred:
        True and predicted segment labels.
    y_prob:
        Optional ``(n, n_classes)`` probabilities, columns ordered as
        ``labels`` (sklearn's ``classes_`` order).
    labels:
        Class order. Required to interpret ``y_prob``; defaults to the
        sorted union of observed labels.

    Returns
    -------
    dict
        accuracy, balanced_accuracy, kappa, macro_f1, roc_auc, log_loss,
        n. Probability metrics are None without ``y_prob`` or when undefined
        (e.g. a class absent from ``y_true``).
    """
    yt = _to_1d_labels(y_true)
    yp = _to_1d_labels(y_pred)
    if yt.shape[0] != yp.shape[0]:
        raise ValueError(f"y_true and y_pred have different lengths: {yt.shape[0]} vs {yp.shape[0]}")
    if yt.shape[0] == 0:
        raise ValueError("Cannot evaluate an empty prediction set.")

    class_labels = _resolve_labels(yt, yp, labels)

    out: Dict[str, Optional[float]] = {
        "accuracy": float(metrics.accuracy_score(yt, yp)),
        "balanced_accuracy": float(metrics.balanced_accuracy_score(yt, yp)),
        "kappa": float(metrics.cohen_kappa_score(yt, yp, labels=class_labels)),
        "macro_f1": float(metrics.f1_score(yt, yp, labels=class_labels, average="macro", zero_division=0)),
        "roc_auc": None,
        "log_loss": None,
        "n": float(yt.shape[0]),
    }

    if y_prob is None:
        return out

    prob = np.asarray(y_prob, dtype=float)
    if prob.ndim != 2 or prob.shape[0] != yt.shape[0] or prob.shape[1] != len(class_labels):
        raise ValueError(
            f"y_prob must have shape (n={yt.shape[0]}, n_classes={len(class_labels)}), got {prob.shape}."
        )

    eps = 1e-15
    prob = np.clip(prob, eps, 1.0)
    prob = prob / prob.sum(axis=1, keepdims=True)

    try:
        if len(class_labels) == 2:
            out["roc_auc"] = float(metrics.roc_auc_score(yt == class_labels[1], prob[:, 1]))
        else:
            out["roc_auc"] = float(
                metrics.roc_auc_score(yt, prob, multi_class="ovr", average="macro", labels=class_labels)
            )
    except ValueError as exc:
        logger.warning("ROC AUC undefined: %s", exc)

    try:
        out["log_loss"] = float(metrics.log_loss(yt, prob, labels=class_labels))
    except ValueError as exc:
        logger.warning("Log-loss undefined: %s", exc)

    return out


def confusion_table(
    y_true: pd.Series | np.ndarray,
    y_pred: pd.Series | np.ndarray,
    labels: Optional[Sequence[str]] = None,
) -> pd.DataFrame:
    """Confusion matrix with truth as rows and predictions as columns."""
    yt = _to_1d_labels(y_true)
    yp = _to_1d_labels(y_pred)
    class_labels = _resolve_labels(yt, yp, labels)
    cm = metrics.confusion_matrix(yt, yp, labels=class_labels)
    return pd.DataFrame(
        cm,
        index=pd.Index(class_labels, name="truth"),
        columns=pd.Index(class_labels, name="prediction"),
    )


def per_class_report(y_true: pd.Series | np.ndarray, y_pred: pd.Series | np.ndarray) -> pd.DataFrame:
    """Precision / recall / F1 / support per segment plus macro and weighted rows."""
    report = metrics.classification_report(
        _to_1d_labels(y_true),
        _to_1d_labels(y_pred),
        output_dict=True,
        zero_division=0,
    )
    report.pop("accuracy", None)
    return pd.DataFrame(report).T


def feature_importance(
    workflow: Pipeline,
    X: pd.DataFrame,
    y: pd.Series,
    *,
    n_repeats: int = 10,
    random_state: int = 42,
) -> pd.DataFrame:
    """Variable importance for a fitted workflow, largest first.

    Tree-based estimators report impurity importances on the recipe's
    output columns (one-hot levels separately). Other estimators get
    permutation importance on the raw predictors, measured by accuracy on
    ``X, y``.
    """
    model = workflow.named_steps["model"]

    if hasattr(model, "feature_importances_"):
        names = recipe_feature_names(workflow.named_steps["recipe"])
        values = np.asarray(model.feature_importances_, dtype=float)
        table = pd.DataFrame({"feature": names, "importance": values, "std": np.nan, "method": "impurity"})
    else:
        result = permutation_importance(
            workflow,
            X,
            y,
            scoring="accuracy",
            n_repeats=int(n_repeats),
            random_state=random_state,
        )
        table = pd.DataFrame(
            {
                "feature": list(X.columns),
                "importance": result.importances_mean,
                "std": result.importances_std,
                "method": "permutation",
            }
        )

    return table.sort_values("importance", ascending=False).reset_index(drop=True)


__all__ = [
    "compute_classification_metrics",
    "confusion_table",
    "per_class_report",
    "feature_importance",
]
