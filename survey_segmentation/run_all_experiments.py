"""Run the full segment-classification pipeline and render the report.

This launcher orchestrates:
1) Tuning + test evaluation of the base models (multinomial regression,
   decision tree, random forest, boosted trees, neural network)
2) Stacked ensemble over all tuned candidates
3) The six-model comparison table (ranked by test accuracy)
4) Report-ready figures (tuning curves, confusion matrices, importance,
   stack weights, comparison)
5) The markdown report

Design goals
------------
- Robust to current working directory: run from the repo root or from inside
  ``survey_segmentation``.
- Reproducible: global seeding from the config and a single consolidated log.
- Every model shares one split and one set of CV folds.

Usage
-----
From the repository root:

    python survey_segmentation/run_all_experiments.py

Outputs:
- ``survey_segmentation/outputs/tables``
- ``survey_segmentation/outputs/figures``
- ``survey_segmentation/outputs/models``
- ``survey_segmentation/outputs/report.md``
- ``survey_segmentation/outputs/logs/run_all.log``
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Make imports & paths robust to the current working directory.
# ---------------------------------------------------------------------------

import os
import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence

PROJECT_ROOT = Path(__file__).resolve().parent
REPO_ROOT = PROJECT_ROOT.parent

if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

# ---------------------------------------------------------------------------
# Standard imports
# ---------------------------------------------------------------------------

import argparse
import logging

import matplotlib

matplotlib.use("Agg")  # headless-safe
import matplotlib.pyplot as plt

import pandas as pd

from survey_segmentation.src.data.check_data import dataset_status
from survey_segmentation.src.data.simulate import simulate_segment_survey
from survey_segmentation.src.evaluation.comparison import comparison_table
from survey_segmentation.src.experiments import run_models, run_stacking
from survey_segmentation.src.experiments.common import OutputPaths, prepare_data
from survey_segmentation.src.models.registry import BASE_MODEL_NAMES, MODEL_LABELS, STACK_MODEL_NAME
from survey_segmentation.src.models.tuning import TuningResult, load_tuning_result
from survey_segmentation.src.reporting import DataSummary, render_report
from survey_segmentation.src.utils import configure_logging, load_pipeline_config, log_step, set_global_seed
from survey_segmentation.src.utils.config_utils import PipelineConfig
from survey_segmentation.src.visualization import (
    plot_confusion_matrix,
    plot_feature_importance,
    plot_model_comparison,
    plot_stack_weights,
    plot_tuning_curve,
)

# ---------------------------------------------------------------------------
# Output paths
# ---------------------------------------------------------------------------

OUTPUT_DIR = PROJECT_ROOT / "outputs"
PATHS = OutputPaths(OUTPUT_DIR)
REPORT_PATH = OUTPUT_DIR / "report.md"

DEFAULT_CONFIG = PROJECT_ROOT / "configs" / "models.yaml"


# ---------------------------------------------------------------------------
# Comparison
# ---------------------------------------------------------------------------


def _build_comparison(logger: logging.Logger) -> pd.DataFrame:
    """Combine base-model and stack metrics into the ranked comparison table."""
    frames = []
    for name in ("model_metrics.csv", "stack_metrics.csv"):
        path = PATHS.tables / name
        if path.is_file():
            frames.append(pd.read_csv(path))
        else:
            logger.warning("Missing %s; its models are left out of the comparison.", path)
    if not frames:
        raise FileNotFoundError("No metrics tables found; run the model steps first.")

    metrics = pd.concat(frames, ignore_index=True)
    results = {row["model"]: row.to_dict() for _, row in metrics.iterrows()}
    table = comparison_table(results)

    out = PATHS.tables / "comparison.csv"
    table.to_csv(out, index=False)
    logger.info("Saved comparison table to %s\n%s", out, table.to_markdown(index=False, floatfmt=".4f"))
    return table


# ---------------------------------------------------------------------------
# Figures
# ---------------------------------------------------------------------------


def _load_tuning_results(logger: logging.Logger) -> Dict[str, TuningResult]:
    results: Dict[str, TuningResult] = {}
    for name in BASE_MODEL_NAMES:
        path = PATHS.models / f"{name}.joblib"
        if path.is_file():
            results[name] = load_tuning_result(path)
        else:
            logger.warning("No tuning results for %s at %s", name, path)
    return results


def _tuning_axes(result: TuningResult) -> List[str]:
    """Grid parameters with more than one value, in grid order."""
    return [p for p, values in result.grid.items() if len(values) > 1]


def _generate_model_figures(name: str, result: Optional[TuningResult]) -> List[Path]:
    label = MODEL_LABELS[name]
    fig_dir = PATHS.figures / name
    saved: List[Path] = []

    if result is not None:
        axes = _tuning_axes(result)
        if axes:
            path = fig_dir / f"tuning_{name}.png"
            plot_tuning_curve(
                result.cv_results,
                axes[0],
                metric=result.metric,
                group=axes[1] if len(axes) > 1 else None,
                title=f"{label}: tuning",
                save_path=path,
            )
            saved.append(path)

    confusion_path = PATHS.tables / f"confusion_{name}.csv"
    if confusion_path.is_file():
        path = fig_dir / f"confusion_{name}.png"
        plot_confusion_matrix(pd.read_csv(confusion_path, index_col=0), title=f"{label}: test confusion matrix", save_path=path)
        saved.append(path)

    importance_path = PATHS.tables / f"importance_{name}.csv"
    if importance_path.is_file():
        path = fig_dir / f"importance_{name}.png"
        plot_feature_importance(pd.read_csv(importance_path), title=f"{label}: variable importance", save_path=path)
        saved.append(path)

    plt.close("all")
    return saved


def _generate_all_figures(
    logger: logging.Logger,
    comparison: Optional[pd.DataFrame],
    tuning_results: Dict[str, TuningResult],
) -> Dict[str, List[Path]]:
    figures: Dict[str, List[Path]] = {}

    for name in BASE_MODEL_NAMES:
        try:
            figures[name] = _generate_model_figures(name, tuning_results.get(name))
        except Exception as exc:  # pragma: no cover
            logger.warning("Failed to generate figures for %s: %s", name, exc)

    stack_figs: List[Path] = []
    weights_path = PATHS.tables / "stack_weights.csv"
    if weights_path.is_file():
        try:
            path = PATHS.figures / STACK_MODEL_NAME / "stack_weights.png"
            plot_stack_weights(pd.read_csv(weights_path), save_path=path)
            stack_figs.append(path)
            confusion_path = PATHS.tables / f"confusion_{STACK_MODEL_NAME}.csv"
            if confusion_path.is_file():
                path = PATHS.figures / STACK_MODEL_NAME / f"confusion_{STACK_MODEL_NAME}.png"
                plot_confusion_matrix(
                    pd.read_csv(confusion_path, index_col=0),
                    title="Stacked ensemble: test confusion matrix",
                    save_path=path,
                )
                stack_figs.append(path)
        except Exception as exc:  # pragma: no cover
            logger.warning("Failed to generate stacking figures: %s", exc)
    figures[STACK_MODEL_NAME] = stack_figs

    if comparison is not None:
        path = PATHS.figures / "comparison_accuracy.png"
        plot_model_comparison(comparison, metric="accuracy", title="Test accuracy by model", save_path=path)
        figures["comparison"] = [path]

    plt.close("all")
    return figures


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------


def _data_summary(cfg: PipelineConfig, data_dir: Optional[Path]) -> DataSummary:
    data = prepare_data(cfg, data_dir=data_dir)
    counts = data.cleaned[data.label_col].astype(str).value_counts().sort_index()
    return DataSummary(
        n_rows=len(data.cleaned),
        n_train=len(data.train),
        n_test=len(data.test),
        n_folds=len(data.folds),
        label_col=data.label_col,
        segment_counts={str(k): int(v) for k, v in counts.items()},
        predictors=list(data.X_train.columns),
    )


# ---------------------------------------------------------------------------
# Main orchestration
# ---------------------------------------------------------------------------


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run all experiments (base models + stacking + report).")

    parser.add_argument("--config", type=Path, default=DEFAULT_CONFIG, help=f"YAML config (default: {DEFAULT_CONFIG})")
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=None,
        help="Directory containing the survey CSV (default: data.data_dir from the config)",
    )
    parser.add_argument(
        "--simulate-if-missing",
        action="store_true",
        help="Write a simulated survey to the data path when the CSV is missing",
    )

    parser.add_argument("--skip-models", action="store_true", help="Skip base-model tuning")
    parser.add_argument("--skip-stacking", action="store_true", help="Skip the stacked ensemble")
    parser.add_argument("--skip-plots", action="store_true", help="Skip figure generation")
    parser.add_argument("--skip-report", action="store_true", help="Skip the markdown report")
    parser.add_argument(
        "--keep-going",
        action="store_true",
        help="Continue even if a step fails (default: stop on first failure)",
    )

    return parser.parse_args(argv)


def _check_dataset(logger: logging.Logger, cfg: PipelineConfig, data_dir: Optional[Path], simulate: bool) -> bool:
    directory = Path(data_dir) if data_dir is not None else Path(cfg.data.data_dir)
    exists, csv_path = dataset_status(data_dir=directory, filename=cfg.data.filename)
    if exists:
        logger.info("Found dataset at %s", csv_path)
        return True

    if simulate:
        csv_path.parent.mkdir(parents=True, exist_ok=True)
        simulate_segment_survey(seed=cfg.seed).to_csv(csv_path, index=False)
        logger.warning("Dataset missing; wrote a simulated survey to %s", csv_path)
        return True

    logger.error("Dataset not found at %s", csv_path)
    logger.error(
        "Place the survey CSV there, pass --data-dir, or rerun with --simulate-if-missing."
    )
    return False


def _run_step(logger: logging.Logger, name: str, fn, argv: List[str], *, keep_going: bool) -> bool:
    try:
        with log_step(logger, name):
            fn(argv)
        return True
    except SystemExit as exc:
        logger.error("❌ %s exited with code %s", name, getattr(exc, "code", exc))
    except Exception as exc:  # pragma: no cover
        logger.exception("❌ %s failed: %s", name, exc)

    if keep_going:
        logger.warning("Continuing because --keep-going is set.")
        return False

    raise RuntimeError(f"Step '{name}' failed")


def main(argv: Optional[Sequence[str]] = None) -> None:
    PATHS.ensure()

    # Relative paths in the config resolve against the repository root.
    os.chdir(REPO_ROOT)

    logger = configure_logging(log_file=PATHS.logs / "run_all.log")

    args = _parse_args(argv)
    cfg = load_pipeline_config(args.config)

    set_global_seed(cfg.seed)

    if not _check_dataset(logger, cfg, args.data_dir, args.simulate_if_missing):
        sys.exit(1)

    step_argv = ["--config", str(args.config), "--output-dir", str(OUTPUT_DIR)]
    if args.data_dir is not None:
        step_argv += ["--data-dir", str(args.data_dir)]

    # ---------------------------------------------------------------------
    # Run experiments
    # ---------------------------------------------------------------------

    if not args.skip_models:
        _run_step(logger, "Base models", run_models, step_argv, keep_going=args.keep_going)

    if not args.skip_stacking:
        _run_step(logger, "Stacked ensemble", run_stacking, step_argv, keep_going=args.keep_going)

    comparison: Optional[pd.DataFrame] = None
    try:
        comparison = _build_comparison(logger)
    except (FileNotFoundError, KeyError, ValueError) as exc:
        logger.error("Could not build the comparison table: %s", exc)
        if not args.keep_going:
            raise

    tuning_results = _load_tuning_results(logger)

    # ---------------------------------------------------------------------
    # Figures and report
    # ---------------------------------------------------------------------

    figures: Dict[str, List[Path]] = {}
    if not args.skip_plots:
        try:
            with log_step(logger, "Figures"):
                figures = _generate_all_figures(logger, comparison, tuning_results)
            logger.info("✅ Figures generated under %s", PATHS.figures)
        except Exception as exc:  # pragma: no cover
            logger.exception("Figure generation failed: %s", exc)
            if not args.keep_going:
                raise

    if not args.skip_report and comparison is not None:
        weights_path = PATHS.tables / "stack_weights.csv"
        render_report(
            comparison,
            REPORT_PATH,
            tuning_results=tuning_results,
            stack_weights=pd.read_csv(weights_path) if weights_path.is_file() else None,
            data_summary=_data_summary(cfg, args.data_dir),
            figures=figures,
        )
        logger.info("✅ Report written to %s", REPORT_PATH)

    logger.info("\nAll done.")


if __name__ == "__main__":
    main()
