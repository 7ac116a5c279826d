"""Tune and evaluate the five base models on the shared resamples.

Models
------
- multinom_reg   (penalised multinomial logistic regression, baseline)
- decision_tree
- random_forest
- boosted_trees
- neural_net

Protocol
--------
- One stratified train/test split with a fixed seed.
- Grid search on stratified V-fold CV of the training part; the recipe is
  refit inside every fold.
- The best configuration (by mean CV accuracy) is refit on the whole
  training part and evaluated once on the test part.

Outputs
-------
Under ``survey_segmentation/outputs`` (or ``--output-dir``):

- ``tables/tuning_<model>.csv``      one row per grid configuration
- ``tables/confusion_<model>.csv``   test-set confusion matrix
- ``tables/importance_<model>.csv``  variable importance of the final fit
- ``tables/model_metrics.csv``       test metrics + best parameters
- ``models/<model>.joblib``          the :class:`TuningResult` (reused by stacking)
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

from survey_segmentation.src.evaluation.classification import feature_importance
from survey_segmentation.src.models.registry import BASE_MODEL_NAMES, get_model_spec, make_workflow, resolve_grid
from survey_segmentation.src.models.tuning import dump_tuning_result, finalize_fit, tune_grid
from survey_segmentation.src.utils.config_utils import DEFAULT_CONFIG_PATH, load_pipeline_config
from survey_segmentation.src.utils.logging_utils import ensure_root_logging

from .common import (
    DEFAULT_OUTPUT_DIR,
    OutputPaths,
    PreparedData,
    evaluate_fitted,
    params_to_json,
    prepare_data_or_exit,
)


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Tune and evaluate the base segment classifiers.")
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG_PATH,
        help=f"YAML config (default: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument("--data-dir", type=Path, default=None, help="Override data.data_dir from the config.")
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=DEFAULT_OUTPUT_DIR,
        help=f"Output root (default: {DEFAULT_OUTPUT_DIR})",
    )
    parser.add_argument(
        "--models",
        nargs="+",
        choices=BASE_MODEL_NAMES,
        default=None,
        help="Subset of models to tune (default: all).",
    )
    parser.add_argument(
        "--skip-importance",
        action="store_true",
        help="Skip variable importance (permutation importance is slow for the neural net).",
    )
    return parser.parse_args(argv)


def tune_and_evaluate(
    model_name: str,
    data: PreparedData,
    *,
    grid_overrides: Optional[Dict[str, Any]] = None,
    metric: str = "accuracy",
    n_jobs: Optional[int] = None,
    random_state: int = 42,
    paths: Optional[OutputPaths] = None,
    compute_importance: bool = True,
) -> Dict[str, Any]:
    """Tune one model, refit the best configuration and score it on the test set."""
    spec = get_model_spec(model_name)
    grid = resolve_grid(spec, grid_overrides)
    workflow = make_workflow(spec, data.recipe_config, random_state=random_state)

    result = tune_grid(
        model_name,
        workflow,
        grid,
        data.X_train,
        data.y_train,
        data.folds,
        metric=metric,
        n_jobs=n_jobs,
    )
    fitted = finalize_fit(result)
    metrics, confusion = evaluate_fitted(fitted, data.X_test, data.y_test)

    importance: Optional[pd.DataFrame] = None
    if compute_importance:
        importance = feature_importance(fitted, data.X_test, data.y_test, random_state=random_state)

    if paths is not None:
        result.cv_results.to_csv(paths.tables / f"tuning_{model_name}.csv", index=False)
        confusion.to_csv(paths.tables / f"confusion_{model_name}.csv")
        if importance is not None:
            importance.to_csv(paths.tables / f"importance_{model_name}.csv", index=False)
        dump_tuning_result(result, paths.models / f"{model_name}.joblib")

    return {
        "model": model_name,
        "result": result,
        "fitted": fitted,
        "metrics": metrics,
        "confusion": confusion,
        "importance": importance,
    }


def main(argv: Optional[Sequence[str]] = None) -> Dict[str, Dict[str, Any]]:
    logger = ensure_root_logging()
    args = _parse_args(argv)
    cfg = load_pipeline_config(args.config)
    paths = OutputPaths(args.output_dir).ensure()

    data = prepare_data_or_exit(cfg, logger, data_dir=args.data_dir)

    model_names: List[str] = list(args.models or BASE_MODEL_NAMES)
    unknown_grids = sorted(set(cfg.grids) - set(BASE_MODEL_NAMES))
    if unknown_grids:
        logger.warning("Ignoring grids for unknown models: %s", unknown_grids)

    outputs: Dict[str, Dict[str, Any]] = {}
    rows: List[Dict[str, Any]] = []
    for name in model_names:
        logger.info("===== %s =====", name)
        out = tune_and_evaluate(
            name,
            data,
            grid_overrides=cfg.grids.get(name),
            metric=cfg.tuning.metric,
            n_jobs=cfg.tuning.n_jobs,
            random_state=cfg.seed,
            paths=paths,
            compute_importance=not args.skip_importance,
        )
        outputs[name] = out
        logger.info("%s test accuracy: %.4f", name, out["metrics"]["accuracy"])
        rows.append(
            {
                "model": name,
                **out["metrics"],
                "cv_" + cfg.tuning.metric: out["result"].best_score,
                "best_params": params_to_json(out["result"].best_params),
            }
        )

    metrics_path = paths.tables / "model_metrics.csv"
    table = pd.DataFrame(rows)
    if metrics_path.is_file() and args.models:
        # keep earlier rows for models not rerun this time
        previous = pd.read_csv(metrics_path)
        previous = previous[~previous["model"].isin(model_names)]
        table = pd.concat([previous, table], ignore_index=True)
    table.to_csv(metrics_path, index=False)
    logger.info("Saved base model metrics to %s", metrics_path)
    return outputs


if __name__ == "__main__":
    main()
