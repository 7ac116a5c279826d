"""Survey loading, deterministic cleaning, splitting and the preprocessing recipe.

Two stages:

1) **Deterministic** (:func:`clean_data`, :func:`select_features`)
   - safe before splitting: dedupe, drop ids, tidy text, recode labels.

2) **Fitted inside each workflow** (:func:`build_recipe`)
   - imputation, rare-level lumping, scaling, one-hot encoding and the
     zero-variance filter, refit on every CV analysis set.
"""

from __future__ import annotations

from .load import DEFAULT_DATA_DIR, DEFAULT_FILENAME, load_survey_data
from .preprocess import (
    DEFAULT_LABEL_COL,
    DEFAULT_N_FOLDS,
    DEFAULT_SPLIT_PROP,
    clean_data,
    infer_column_types,
    initial_split,
    make_cv_folds,
    normalize_label,
    recode_segment_labels,
    select_features,
    split_xy,
)
from .recipe import RareLevelLumper, RecipeConfig, build_recipe, recipe_feature_names
from .simulate import ATTITUDE_ITEMS, simulate_segment_survey

__all__ = [
    # loading
    "DEFAULT_DATA_DIR",
    "DEFAULT_FILENAME",
    "load_survey_data",
    # cleaning / recoding / selection
    "DEFAULT_LABEL_COL",
    "normalize_label",
    "recode_segment_labels",
    "clean_data",
    "select_features",
    "infer_column_types",
    "split_xy",
    # resampling
    "DEFAULT_SPLIT_PROP",
    "DEFAULT_N_FOLDS",
    "initial_split",
    "make_cv_folds",
    # recipe
    "RareLevelLumper",
    "RecipeConfig",
    "build_recipe",
    "recipe_feature_names",
    # synthetic data
    "ATTITUDE_ITEMS",
    "simulate_segment_survey",
]
