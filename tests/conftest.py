from __future__ import annotations

import matplotlib

matplotlib.use("Agg")

import pytest

from survey_segmentation.src.data.preprocess import (
    clean_data,
    infer_column_types,
    initial_split,
    make_cv_folds,
    split_xy,
)
from survey_segmentation.src.data.recipe import RecipeConfig
from survey_segmentation.src.data.simulate import simulate_segment_survey

SEED = 7
N_FOLDS = 3

# Small grids keep the suite fast while still giving several candidates per model.
SMALL_GRIDS = {
    "multinom_reg": {"C": [0.1, 1.0]},
    "decision_tree": {"ccp_alpha": [0.0], "max_depth": [2, 4], "min_samples_split": [2]},
    "random_forest": {"max_features": [2], "min_samples_leaf": [1, 5], "n_estimators": [25]},
    "boosted_trees": {"learning_rate": [0.1], "max_depth": [2], "max_iter": [30]},
    "neural_net": {"hidden_layer_sizes": [[5]], "alpha": [0.01]},
}


@pytest.fixture(scope="session")
def survey_df():
    return simulate_segment_survey(n=240, seed=SEED)


@pytest.fixture(scope="session")
def cleaned(survey_df):
    return clean_data(survey_df)


@pytest.fixture(scope="session")
def split(cleaned):
    train, test = initial_split(cleaned, prop=0.75, random_state=SEED)
    folds = make_cv_folds(train, v=N_FOLDS, random_state=SEED)
    X_train, y_train = split_xy(train)
    X_test, y_test = split_xy(test)
    numeric, categorical = infer_column_types(cleaned)
    return {
        "train": train,
        "test": test,
        "folds": folds,
        "X_train": X_train,
        "y_train": y_train,
        "X_test": X_test,
        "y_test": y_test,
        "recipe_config": RecipeConfig(numeric=numeric, categorical=categorical),
    }
