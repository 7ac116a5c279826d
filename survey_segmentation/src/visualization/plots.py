"""Report figures for tuning, evaluation and stacking.

- tuning curves: mean CV score against one grid parameter, one line per
  value of a second parameter;
- confusion matrix heatmap for a test-set prediction;
- variable importance bars;
- comparison of the six models' test accuracy;
- stack member weights.

Matplotlib only. Every function returns the Figure and saves it when
``save_path`` is given.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _maybe_save(fig: plt.Figure, save_path: str | Path | None) -> None:
    if save_path is None:
        return
    path = Path(save_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(path, bbox_inches="tight", dpi=200)


def _is_numeric_axis(values: pd.Series) -> bool:
    return bool(pd.to_numeric(values, errors="coerce").notna().all())


# ---------------------------------------------------------------------------
# Tuning
# ---------------------------------------------------------------------------


def plot_tuning_curve(
    cv_results: pd.DataFrame,
    param: str,
    *,
    metric: str = "accuracy",
    group: Optional[str] = None,
    title: str | None = None,
    save_path: str | Path | None = None,
) -> plt.Figure:
    """Mean CV ``metric`` vs ``param`` from a tidy tuning table.

    Rows sharing the same ``param`` (and ``group``) value are averaged over the
    remaining grid dimensions.
    """
    score_col = f"mean_{metric}"
    for col in [param, score_col] + ([group] if group else []):
        if col not in cv_results.columns:
            raise KeyError(f"Column '{col}' not in tuning results.")

    df = cv_results.dropna(subset=[score_col]).copy()
    if df.empty:
        raise ValueError("No finite scores to plot.")

    numeric_x = _is_numeric_axis(df[param])
    if numeric_x:
        df[param] = pd.to_numeric(df[param])
    else:
        df[param] = df[param].astype(str)

    if group is not None:
        # grid columns may mix numbers with "none"
        df[group] = df[group].astype(str)

    fig, ax = plt.subplots(figsize=(6, 4))
    groups = [(None, df)] if group is None else list(df.groupby(group, sort=True))
    for key, sub in groups:
        line = sub.groupby(param, sort=True)[score_col].mean()
        xs = line.index.to_numpy() if numeric_x else np.arange(len(line))
        ax.plot(xs, line.to_numpy(), marker="o", label=None if key is None else f"{group}={key}")
        if not numeric_x:
            ax.set_xticks(xs)
            ax.set_xticklabels(line.index.tolist(), rotation=30, ha="right")

    if numeric_x and (df[param] > 0).all() and df[param].max() / df[param].min() >= 100:
        ax.set_xscale("log")

    ax.set_xlabel(param)
    ax.set_ylabel(f"Mean CV {metric}")
    ax.set_title(title or f"Tuning: {param}")
    if group is not None:
        ax.legend(fontsize=8)
    fig.tight_layout()
    _maybe_save(fig, save_path)
    return fig


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


def plot_confusion_matrix(
    confusion: pd.DataFrame,
    title: str = "Confusion matrix",
    *,
    normalize: bool = False,
    save_path: str | Path | None = None,
) -> plt.Figure:
    """Heatmap of a truth x prediction table (see ``confusion_table``)."""
    mat = confusion.to_numpy(dtype=float)
    if normalize:
        row_sums = mat.sum(axis=1, keepdims=True)
        mat = np.divide(mat, row_sums, out=np.zeros_like(mat), where=row_sums > 0)

    fig, ax = plt.subplots(figsize=(1.2 * mat.shape[1] + 2.5, 1.0 * mat.shape[0] + 2.0))
    im = ax.imshow(mat, cmap="Blues")
    fig.colorbar(im, ax=ax, fraction=0.046, pad=0.04)

    ax.set_xticks(np.arange(mat.shape[1]))
    ax.set_yticks(np.arange(mat.shape[0]))
    ax.set_xticklabels([str(c) for c in confusion.columns], rotation=30, ha="right")
    ax.set_yticklabels([str(i) for i in confusion.index])
    ax.set_xlabel("Prediction")
    ax.set_ylabel("Truth")
    ax.set_title(title)

    threshold = mat.max() / 2.0 if mat.size else 0.0
    for i in range(mat.shape[0]):
        for j in range(mat.shape[1]):
            text = f"{mat[i, j]:.2f}" if normalize else f"{int(mat[i, j])}"
            ax.text(j, i, text, ha="center", va="center", fontsize=8, color="white" if mat[i, j] > threshold else "black")

    fig.tight_layout()
    _maybe_save(fig, save_path)
    return fig


def plot_feature_importance(
    importance: pd.DataFrame,
    title: str = "Variable importance",
    *,
    top_n: int = 15,
    save_path: str | Path | None = None,
) -> plt.Figure:
    """Horizontal bars of the ``top_n`` most important features."""
    if importance.empty:
        raise ValueError("Empty importance table.")

    top = importance.head(int(top_n)).iloc[::-1]
    xerr = top["std"].to_numpy() if "std" in top and top["std"].notna().any() else None

    fig, ax = plt.subplots(figsize=(6, 0.35 * len(top) + 1.5))
    ax.barh(top["feature"].astype(str), top["importance"], xerr=xerr)
    ax.set_xlabel("Importance")
    ax.set_title(title)
    fig.tight_layout()
    _maybe_save(fig, save_path)
    return fig


def plot_model_comparison(
    comparison: pd.DataFrame,
    metric: str = "accuracy",
    title: str = "Test-set comparison",
    *,
    annotate: bool = True,
    save_path: str | Path | None = None,
) -> plt.Figure:
    """Bar chart of one metric for every model in the comparison table."""
    if metric not in comparison.columns:
        raise KeyError(f"Metric '{metric}' not in comparison table.")

    labels = comparison["label"] if "label" in comparison else comparison["model"]
    values = comparison[metric].to_numpy(dtype=float)

    fig, ax = plt.subplots(figsize=(7, 4))
    bars = ax.bar(labels.astype(str), values)
    ax.set_ylabel(metric)
    ax.set_title(title)
    ax.set_ylim(0.0, min(1.0, np.nanmax(values) * 1.15) if np.isfinite(values).any() else 1.0)
    plt.setp(ax.get_xticklabels(), rotation=30, ha="right")

    if annotate:
        for b, v in zip(bars, values):
            if np.isfinite(v):
                ax.text(b.get_x() + b.get_width() / 2, float(v), f"{float(v):.3f}", ha="center", va="bottom", fontsize=8)

    fig.tight_layout()
    _maybe_save(fig, save_path)
    return fig


# ---------------------------------------------------------------------------
# Stacking
# ---------------------------------------------------------------------------


def plot_stack_weights(
    weights: pd.DataFrame,
    title: str = "Stack member weights",
    *,
    save_path: str | Path | None = None,
) -> plt.Figure:
    """Member weights coloured by base model type."""
    if weights.empty:
        raise ValueError("Empty weights table.")

    df = weights.iloc[::-1]
    models = sorted(df["model"].unique())
    cmap = plt.get_cmap("tab10")
    colours = {m: cmap(i % 10) for i, m in enumerate(models)}

    fig, ax = plt.subplots(figsize=(6, 0.35 * len(df) + 1.5))
    ax.barh(df["member"].astype(str), df["weight"], color=[colours[m] for m in df["model"]])
    for m in models:
        ax.barh([], [], color=colours[m], label=m)
    ax.set_xlabel("Mean |coefficient|")
    ax.set_title(title)
    ax.legend(fontsize=8, loc="lower right")
    fig.tight_layout()
    _maybe_save(fig, save_path)
    return fig


__all__ = [
    "plot_tuning_curve",
    "plot_confusion_matrix",
    "plot_feature_importance",
    "plot_model_comparison",
    "plot_stack_weights",
]
