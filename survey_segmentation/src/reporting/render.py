"""Render the course results document (markdown).

The document mirrors the slide deck's structure: data summary, one section per
model with its best configuration and top tuning results, the stack members,
and the final comparison table with figures. Tables are rendered with
``DataFrame.to_markdown`` (tabulate's GitHub format), so the file displays
directly on GitHub or converts to slides/Word with pandoc.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence

import pandas as pd

from survey_segmentation.src.models.registry import MODEL_LABELS
from survey_segmentation.src.models.tuning import TuningResult, show_best

logger = logging.getLogger(__name__)

FLOAT_FORMAT = ".4f"


@dataclass
class DataSummary:
    """Sizes shown at the top of the report."""

    n_rows: int
    n_train: int
    n_test: int
    n_folds: int
    label_col: str
    segment_counts: Dict[str, int] = field(default_factory=dict)
    predictors: List[str] = field(default_factory=list)


def _md_table(df: pd.DataFrame, index: bool = False) -> str:
    return df.to_markdown(index=index, floatfmt=FLOAT_FORMAT, tablefmt="github")


def _rel(path: Path, start: Path) -> str:
    try:
        return Path(os.path.relpath(path, start)).as_posix()
    except ValueError:
        # different drive on Windows
        return path.as_posix()


def _data_section(summary: DataSummary) -> List[str]:
    lines = [
        "## Data",
        "",
        f"- Respondents: {summary.n_rows}",
        f"- Training / testing: {summary.n_train} / {summary.n_test} (stratified by `{summary.label_col}`)",
        f"- Cross-validation folds: {summary.n_folds}",
    ]
    if summary.predictors:
        lines.append(f"- Predictors: {', '.join(f'`{p}`' for p in summary.predictors)}")
    lines.append("")
    if summary.segment_counts:
        counts = pd.DataFrame(
            {"segment": list(summary.segment_counts), "n": list(summary.segment_counts.values())}
        )
        lines += [_md_table(counts), ""]
    return lines


def _model_section(result: TuningResult, top_n: int, figures: Sequence[Path], out_dir: Path) -> List[str]:
    label = MODEL_LABELS.get(result.model_name, result.model_name)
    best = ", ".join(f"`{k}`={v!r}" for k, v in result.best_params.items())
    lines = [
        f"### {label}",
        "",
        f"Best configuration: {best} (mean CV {result.metric} {result.best_score:.4f})",
        "",
        _md_table(show_best(result, top_n)),
        "",
    ]
    for fig in figures:
        lines += [f"![{label}]({_rel(fig, out_dir)})", ""]
    return lines


def render_report(
    comparison: pd.DataFrame,
    out_path: Path,
    *,
    tuning_results: Optional[Mapping[str, TuningResult]] = None,
    stack_weights: Optional[pd.DataFrame] = None,
    data_summary: Optional[DataSummary] = None,
    figures: Optional[Mapping[str, Sequence[Path]]] = None,
    title: str = "Predicting customer segments: trees, forests, boosting, neural nets and stacking",
    top_n: int = 5,
) -> Path:
    """Write the markdown report and return its path.

    Parameters
    ----------
    comparison:
        Output of :func:`~survey_segmentation.src.evaluation.comparison.comparison_table`.
    out_path:
        Target ``.md`` file; figure links are written relative to it.
    tuning_results:
        Model name -> tuning result, rendered in model order.
    stack_weights:
        ``StackedEnsemble.weights_``.
    figures:
        Section key (model name, ``"stacked_ensemble"``, ``"comparison"``)
        -> image paths.
    """
    if comparison.empty:
        raise ValueError("Comparison table is empty; nothing to report.")

    out_path = Path(out_path)
    out_dir = out_path.parent
    figures = dict(figures or {})

    lines: List[str] = [f"# {title}", ""]

    if data_summary is not None:
        lines += _data_section(data_summary)

    if tuning_results:
        lines += ["## Tuned models", ""]
        for name in comparison["model"]:
            if name in tuning_results:
                lines += _model_section(tuning_results[name], top_n, figures.get(name, []), out_dir)

    if stack_weights is not None and not stack_weights.empty:
        lines += [
            "## Stacked ensemble",
            "",
            f"{len(stack_weights)} candidates kept as members by the penalised meta-learner.",
            "",
            _md_table(stack_weights),
            "",
        ]
        for fig in figures.get("stacked_ensemble", []):
            lines += [f"![Stacked ensemble]({_rel(fig, out_dir)})", ""]

    lines += ["## Comparison on the test set", "", _md_table(comparison), ""]
    best = comparison.iloc[0]
    lines += [f"Best model: **{best['label']}** with accuracy {float(best['accuracy']):.4f}.", ""]
    for fig in figures.get("comparison", []):
        lines += [f"![Comparison]({_rel(fig, out_dir)})", ""]

    out_dir.mkdir(parents=True, exist_ok=True)
    out_path.write_text("\n".join(lines), encoding="utf-8")
    logger.info("Wrote report to %s", out_path)
    return out_path


__all__ = ["DataSummary", "render_report"]
