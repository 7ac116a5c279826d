"""Shared plumbing for the experiment scripts.

Every script follows the same protocol, so the steps live here once:

- load -> clean -> select features -> stratified train/test split -> CV folds;
- output directory layout (``tables/``, ``models/``, ``figures/``, ``logs/``);
- test-set evaluation of any fitted classifier exposing ``classes_``,
  ``predict`` and ``predict_proba`` (workflows and the stacked ensemble).
"""

from __future__ import annotations

import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from survey_segmentation.src.data.load import load_survey_data
from survey_segmentation.src.data.preprocess import (
    Fold,
    clean_data,
    infer_column_types,
    initial_split,
    make_cv_folds,
    select_features,
    split_xy,
)
from survey_segmentation.src.data.recipe import RecipeConfig
from survey_segmentation.src.evaluation.classification import compute_classification_metrics, confusion_table
from survey_segmentation.src.utils.config_utils import PipelineConfig, as_bool

DEFAULT_OUTPUT_DIR = Path("survey_segmentation/outputs")


@dataclass
class OutputPaths:
    """Output directory layout under one root."""

    root: Path = DEFAULT_OUTPUT_DIR

    @property
    def tables(self) -> Path:
        return self.root / "tables"

    @property
    def models(self) -> Path:
        return self.root / "models"

    @property
    def figures(self) -> Path:
        return self.root / "figures"

    @property
    def logs(self) -> Path:
        return self.root / "logs"

    def ensure(self) -> "OutputPaths":
        for d in (self.tables, self.models, self.figures, self.logs):
            d.mkdir(parents=True, exist_ok=True)
        return self


@dataclass
class PreparedData:
    """Split survey data plus the resamples and recipe every model shares."""

    cleaned: pd.DataFrame
    train: pd.DataFrame
    test: pd.DataFrame
    X_train: pd.DataFrame
    y_train: pd.Series
    X_test: pd.DataFrame
    y_test: pd.Series
    folds: List[Fold]
    recipe_config: RecipeConfig
    label_col: str

    @property
    def classes(self) -> List[str]:
        return sorted(self.y_train.unique().tolist())


def build_recipe_config(cfg: PipelineConfig, selected: pd.DataFrame) -> RecipeConfig:
    numeric, categorical = infer_column_types(selected, cfg.data.label_col)
    return RecipeConfig(
        numeric=numeric,
        categorical=categorical,
        normalize=True,
        other_threshold=float(cfg.recipe.get("other_threshold", 0.0)),
        drop_zero_variance=as_bool(cfg.recipe.get("drop_zero_variance"), default=True),
    )


def prepare_data(cfg: PipelineConfig, data_dir: Optional[Path] = None) -> PreparedData:
    """Load, clean, select features, split and fold the survey."""
    label_col = cfg.data.label_col
    raw = load_survey_data(
        data_dir=Path(data_dir) if data_dir is not None else Path(cfg.data.data_dir),
        filename=cfg.data.filename,
        label_col=label_col,
    )
    cleaned = clean_data(
        raw,
        label_col=label_col,
        id_columns=cfg.data.id_columns,
        label_mapping=cfg.data.label_mapping,
    )
    selected = select_features(cleaned, label_col=label_col, include=cfg.data.include, exclude=cfg.data.exclude)

    train, test = initial_split(selected, prop=cfg.split.prop, strata=label_col, random_state=cfg.seed)
    folds = make_cv_folds(train, label_col=label_col, v=cfg.folds.v, repeats=cfg.folds.repeats, random_state=cfg.seed)

    X_train, y_train = split_xy(train, label_col)
    X_test, y_test = split_xy(test, label_col)

    return PreparedData(
        cleaned=selected,
        train=train,
        test=test,
        X_train=X_train,
        y_train=y_train,
        X_test=X_test,
        y_test=y_test,
        folds=folds,
        recipe_config=build_recipe_config(cfg, selected),
        label_col=label_col,
    )


def prepare_data_or_exit(cfg: PipelineConfig, logger: logging.Logger, data_dir: Optional[Path] = None) -> PreparedData:
    try:
        data = prepare_data(cfg, data_dir=data_dir)
    except FileNotFoundError as exc:
        logger.error("%s", exc)
        logger.error("Run `python -m survey_segmentation.src.data.check_data` to verify dataset placement.")
        sys.exit(1)

    logger.info(
        "Split sizes: train=%d, test=%d | folds=%d | predictors: %d numeric, %d categorical | segments: %s",
        len(data.train),
        len(data.test),
        len(data.folds),
        len(data.recipe_config.numeric),
        len(data.recipe_config.categorical),
        data.classes,
    )
    return data


def evaluate_fitted(model: Any, X_test: pd.DataFrame, y_test: pd.Series) -> Tuple[Dict[str, Optional[float]], pd.DataFrame]:
    """Test-set metrics and confusion matrix for a fitted classifier."""
    labels = [str(c) for c in np.asarray(model.classes_)]
    pred = model.predict(X_test)
    prob = model.predict_proba(X_test)
    metrics = compute_classification_metrics(y_test, pred, prob, labels=labels)
    return metrics, confusion_table(y_test, pred, labels=labels)


def params_to_json(params: Dict[str, Any]) -> str:
    return json.dumps(params, default=str, sort_keys=True)


__all__ = [
    "DEFAULT_OUTPUT_DIR",
    "OutputPaths",
    "PreparedData",
    "build_recipe_config",
    "prepare_data",
    "prepare_data_or_exit",
    "evaluate_fitted",
    "params_to_json",
]
