"""Stack the tuned base models and evaluate the ensemble on the test set.

Protocol
--------
- Same split, folds and recipe as ``run_models`` (same config and seed).
- Candidates: every tuned configuration of every base model (or the best
  ``stacking.max_candidates_per_model`` per model). Tuning results saved by
  ``run_models`` are reused; missing ones are tuned here.
- Out-of-fold candidate probabilities feed an L1-penalised multinomial
  meta-learner; surviving candidates are refit on the full training part.

Outputs
-------
- ``tables/stack_weights.csv``                 members and their weights
- ``tables/stack_metrics.csv``                 test metrics of the ensemble
- ``tables/confusion_stacked_ensemble.csv``
- ``models/stacked_ensemble.joblib``
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

from survey_segmentation.src.models.registry import BASE_MODEL_NAMES, STACK_MODEL_NAME, get_model_spec, make_workflow, resolve_grid
from survey_segmentation.src.models.stacking import StackedEnsemble, StackingConfig
from survey_segmentation.src.models.tuning import TuningResult, dump_tuning_result, load_tuning_result, tune_grid
from survey_segmentation.src.utils.config_utils import DEFAULT_CONFIG_PATH, PipelineConfig, dataclass_from_dict, load_pipeline_config
from survey_segmentation.src.utils.logging_utils import ensure_root_logging

from .common import DEFAULT_OUTPUT_DIR, OutputPaths, PreparedData, evaluate_fitted, prepare_data_or_exit


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Blend tuned models into a stacked ensemble.")
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
        help="Base models contributing candidates (default: all).",
    )
    parser.add_argument(
        "--retune",
        action="store_true",
        help="Ignore saved tuning results and tune every base model again.",
    )
    return parser.parse_args(argv)


def _tuning_results(
    model_names: Sequence[str],
    data: PreparedData,
    cfg: PipelineConfig,
    paths: OutputPaths,
    *,
    retune: bool,
    logger,
) -> Dict[str, TuningResult]:
    results: Dict[str, TuningResult] = {}
    for name in model_names:
        saved = paths.models / f"{name}.joblib"
        if saved.is_file() and not retune:
            logger.info("Reusing tuning results from %s", saved)
            results[name] = load_tuning_result(saved)
            continue

        spec = get_model_spec(name)
        result = tune_grid(
            name,
            make_workflow(spec, data.recipe_config, random_state=cfg.seed),
            resolve_grid(spec, cfg.grids.get(name)),
            data.X_train,
            data.y_train,
            data.folds,
            metric=cfg.tuning.metric,
            n_jobs=cfg.tuning.n_jobs,
        )
        dump_tuning_result(result, saved)
        results[name] = result
    return results


def build_stack(
    tuning_results: Dict[str, TuningResult],
    data: PreparedData,
    stacking_config: Optional[StackingConfig] = None,
    random_state: int = 42,
) -> StackedEnsemble:
    """Add all candidates, blend them and fit the members."""
    stack = StackedEnsemble(stacking_config, random_state=random_state)
    for result in tuning_results.values():
        stack.add_candidates(result)
    return stack.fit(data.X_train, data.y_train, data.folds)


def main(argv: Optional[Sequence[str]] = None) -> Dict[str, Any]:
    logger = ensure_root_logging()
    args = _parse_args(argv)
    cfg = load_pipeline_config(args.config)
    paths = OutputPaths(args.output_dir).ensure()

    data = prepare_data_or_exit(cfg, logger, data_dir=args.data_dir)
    stacking_cfg = dataclass_from_dict(StackingConfig, cfg.stacking, section="stacking")
    if stacking_cfg.n_jobs is None:
        stacking_cfg.n_jobs = cfg.tuning.n_jobs

    model_names: List[str] = list(args.models or BASE_MODEL_NAMES)
    results = _tuning_results(model_names, data, cfg, paths, retune=args.retune, logger=logger)

    stack = build_stack(results, data, stacking_cfg, random_state=cfg.seed)
    metrics, confusion = evaluate_fitted(stack, data.X_test, data.y_test)
    logger.info("Stacked ensemble test accuracy: %.4f (%d members)", metrics["accuracy"], len(stack.members_))

    stack.weights_.to_csv(paths.tables / "stack_weights.csv", index=False)
    confusion.to_csv(paths.tables / f"confusion_{STACK_MODEL_NAME}.csv")
    pd.DataFrame(
        [
            {
                "model": STACK_MODEL_NAME,
                **metrics,
                "n_candidates": len(stack.candidates),
                "n_members": len(stack.members_),
                "penalty": stack.penalty_,
            }
        ]
    ).to_csv(paths.tables / "stack_metrics.csv", index=False)
    stack.save(paths.models / f"{STACK_MODEL_NAME}.joblib")
    logger.info("Saved stacking outputs under %s", paths.root)

    return {"stack": stack, "metrics": metrics, "confusion": confusion, "tuning_results": results}


if __name__ == "__main__":
    main()
