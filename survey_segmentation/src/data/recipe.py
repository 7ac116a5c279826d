"""Preprocessing recipe fit inside every model workflow.

A recipe is an unfitted scikit-learn :class:`~sklearn.pipeline.Pipeline`::

    ColumnTransformer
      numeric:     median impute -> (optional) standardize
      categorical: most-frequent impute -> rare-level lumping -> one-hot
    VarianceThreshold  (drop zero-variance columns)

Because the recipe is the first step of each model pipeline, grid search
refits it on the analysis part of every fold; validation rows never
contribute to medians, level counts or scaling parameters.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import List, Optional

import numpy as np
import pandas as pd
from sklearn.base import BaseEstimator, TransformerMixin
from sklearn.compose import ColumnTransformer
from sklearn.feature_selection import VarianceThreshold
from sklearn.impute import SimpleImputer
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import OneHotEncoder, StandardScaler

OTHER_LEVEL = "other"


class RareLevelLumper(BaseEstimator, TransformerMixin):
    """Collapse infrequent categorical levels into a single ``"other"`` level.

    Levels whose training share is below ``threshold`` (and levels unseen
    during fit) are replaced by ``other_level`` at transform time. With
    ``threshold=0`` only unseen levels are lumped.
    """

    def __init__(self, threshold: float = 0.05, other_level: str = OTHER_LEVEL):
        self.threshold = threshold
        self.other_level = other_level

    def fit(self, X, y=None):
        if not (0.0 <= float(self.threshold) < 1.0):
            raise ValueError("threshold must be in [0, 1).")

        if isinstance(X, pd.DataFrame):
            self.feature_names_in_ = np.asarray(X.columns, dtype=object)
        X = np.asarray(X, dtype=object)
        if X.ndim == 1:
            X = X.reshape(-1, 1)
        self.n_features_in_ = X.shape[1]

        self.levels_: List[set] = []
        for j in range(X.shape[1]):
            counts = pd.Series(X[:, j]).value_counts(normalize=True, dropna=True)
            keep = set(counts.index[counts >= float(self.threshold)])
            self.levels_.append(keep)
        return self

    def transform(self, X):
        if not hasattr(self, "levels_"):
            raise RuntimeError("RareLevelLumper must be fitted before transform.")

        X = np.asarray(X, dtype=object)
        if X.ndim == 1:
            X = X.reshape(-1, 1)
        if X.shape[1] != self.n_features_in_:
            raise ValueError(f"Expected {self.n_features_in_} columns, got {X.shape[1]}.")

        out = X.copy()
        for j, keep in enumerate(self.levels_):
            col = out[:, j]
            mask = np.array([v not in keep for v in col], dtype=bool)
            col[mask] = self.other_level
        return out

    def get_feature_names_out(self, input_features=None):
        if input_features is not None:
            return np.asarray(input_features, dtype=object)
        if hasattr(self, "feature_names_in_"):
            return self.feature_names_in_
        return np.asarray([f"x{i}" for i in range(self.n_features_in_)], dtype=object)


def _make_onehot_encoder() -> OneHotEncoder:
    return OneHotEncoder(sparse_output=False, handle_unknown="ignore")


@dataclass
class RecipeConfig:
    """Column roles and the optional recipe steps."""

    numeric: List[str] = field(default_factory=list)
    categorical: List[str] = field(default_factory=list)
    normalize: bool = True
    other_threshold: float = 0.0
    drop_zero_variance: bool = True

    def with_normalize(self, normalize: bool) -> "RecipeConfig":
        return replace(self, normalize=bool(normalize))


def build_recipe(config: RecipeConfig) -> Pipeline:
    """Create the unfitted preprocessing pipeline described by ``config``."""
    if not config.numeric and not config.categorical:
        raise ValueError("Recipe needs at least one numeric or categorical predictor.")

    transformers = []
    if config.numeric:
        numeric_steps: list[tuple[str, object]] = [("imputer", SimpleImputer(strategy="median"))]
        if config.normalize:
            numeric_steps.append(("scaler", StandardScaler()))
        transformers.append(("numeric", Pipeline(steps=numeric_steps), list(config.numeric)))

    if config.categorical:
        cat_pipe = Pipeline(
            steps=[
                ("imputer", SimpleImputer(strategy="most_frequent")),
                ("lump", RareLevelLumper(threshold=config.other_threshold)),
                ("onehot", _make_onehot_encoder()),
            ]
        )
        transformers.append(("categorical", cat_pipe, list(config.categorical)))

    steps: list[tuple[str, object]] = [
        (
            "columns",
            ColumnTransformer(
                transformers=transformers,
                remainder="drop",
                verbose_feature_names_out=False,
            ),
        )
    ]
    if config.drop_zero_variance:
        steps.append(("zero_variance", VarianceThreshold(threshold=0.0)))

    return Pipeline(steps=steps)


def recipe_feature_names(recipe: Pipeline, input_features: Optional[List[str]] = None) -> List[str]:
    """Output column names of a fitted recipe."""
    return [str(c) for c in recipe.get_feature_names_out(input_features)]


__all__ = [
    "OTHER_LEVEL",
    "RareLevelLumper",
    "RecipeConfig",
    "build_recipe",
    "recipe_feature_names",
]
