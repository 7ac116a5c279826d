"""Model specifications: estimator factories, default tuning grids, workflows.

Each base model is a scikit-learn estimator wrapped in a workflow with the
preprocessing recipe::

    Pipeline([("recipe", <recipe>), ("model", <estimator>)])

Grids are keyed by the *estimator* parameter names (``max_depth``,
``learning_rate`` ...). :mod:`survey_segmentation.src.models.tuning` adds the
``model__`` prefix when handing them to ``GridSearchCV``.

The stacked ensemble is not registered here; it is assembled from the tuned
base models in :mod:`survey_segmentation.src.models.stacking`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

from sklearn.base import ClassifierMixin
from sklearn.ensemble import HistGradientBoostingClassifier, RandomForestClassifier
from sklearn.linear_model import LogisticRegression
from sklearn.neural_network import MLPClassifier
from sklearn.pipeline import Pipeline
from sklearn.tree import DecisionTreeClassifier

from survey_segmentation.src.data.recipe import RecipeConfig, build_recipe

STACK_MODEL_NAME = "stacked_ensemble"

Grid = Dict[str, List[Any]]


@dataclass(frozen=True)
class ModelSpec:
    """One tunable base model.

    Parameters
    ----------
    name:
        Stable identifier used in tables, file names and candidate ids.
    label:
        Human-readable name for reports.
    factory:
        ``factory(random_state) -> estimator``.
    grid:
        Default tuning grid (estimator parameter name -> candidate values).
    needs_normalize:
        Whether the recipe should standardize numeric predictors.
    """

    name: str
    label: str
    factory: Callable[[int], ClassifierMixin]
    grid: Grid = field(default_factory=dict)
    needs_normalize: bool = True

    def make_estimator(self, random_state: int = 42) -> ClassifierMixin:
        return self.factory(int(random_state))


def _multinom_reg(random_state: int) -> ClassifierMixin:
    return LogisticRegression(max_iter=2000, random_state=random_state)


def _decision_tree(random_state: int) -> ClassifierMixin:
    return DecisionTreeClassifier(random_state=random_state)


def _random_forest(random_state: int) -> ClassifierMixin:
    return RandomForestClassifier(n_estimators=500, random_state=random_state)


def _boosted_trees(random_state: int) -> ClassifierMixin:
    # early stopping would carve its own random holdout out of each fold
    return HistGradientBoostingClassifier(early_stopping=False, random_state=random_state)


def _neural_net(random_state: int) -> ClassifierMixin:
    return MLPClassifier(max_iter=1000, random_state=random_state)


MODEL_SPECS: Dict[str, ModelSpec] = {
    spec.name: spec
    for spec in (
        ModelSpec(
            name="multinom_reg",
            label="Multinomial regression",
            factory=_multinom_reg,
            grid={"C": [0.01, 0.1, 1.0, 10.0]},
            needs_normalize=True,
        ),
        ModelSpec(
            name="decision_tree",
            label="Decision tree",
            factory=_decision_tree,
            grid={
                "ccp_alpha": [0.0, 0.001, 0.01, 0.05],
                "max_depth": [2, 4, 8, None],
                "min_samples_split": [2, 20],
            },
            needs_normalize=False,
        ),
        ModelSpec(
            name="random_forest",
            label="Random forest",
            factory=_random_forest,
            grid={
                "max_features": [1, 2, 3, "sqrt"],
                "min_samples_leaf": [1, 5, 10],
                "n_estimators": [500],
            },
            needs_normalize=False,
        ),
        ModelSpec(
            name="boosted_trees",
            label="Boosted trees",
            factory=_boosted_trees,
            grid={
                "learning_rate": [0.01, 0.05, 0.1],
                "max_depth": [2, 3, None],
                "max_iter": [100, 300],
            },
            needs_normalize=False,
        ),
        ModelSpec(
            name="neural_net",
            label="Neural network",
            factory=_neural_net,
            grid={
                "hidden_layer_sizes": [(5,), (10,), (20,)],
                "alpha": [0.0001, 0.01, 0.1],
            },
            needs_normalize=True,
        ),
    )
}

BASE_MODEL_NAMES: List[str] = list(MODEL_SPECS)

MODEL_LABELS: Dict[str, str] = {
    **{name: spec.label for name, spec in MODEL_SPECS.items()},
    STACK_MODEL_NAME: "Stacked ensemble",
}


def get_model_spec(name: str) -> ModelSpec:
    """Look up a base model by name."""
    try:
        return MODEL_SPECS[name]
    except KeyError:
        raise KeyError(f"Unknown model '{name}'. Expected one of {BASE_MODEL_NAMES}.") from None


def _as_grid_value(value: Any) -> Any:
    # YAML has no tuples: [[10], [20, 5]] must become ((10,), (20, 5)) for hidden_layer_sizes.
    if isinstance(value, list):
        return tuple(value)
    return value


def resolve_grid(spec: ModelSpec, overrides: Optional[Mapping[str, Any]] = None) -> Grid:
    """Merge YAML overrides into the default grid and validate parameter names.

    Override entries replace the default values for that parameter; a scalar
    override is treated as a single-value list.
    """
    grid: Grid = {k: list(v) for k, v in spec.grid.items()}
    if not overrides:
        return grid

    valid = set(spec.make_estimator().get_params())
    for param, values in overrides.items():
        if param not in valid:
            raise ValueError(f"'{param}' is not a parameter of {spec.name}. Valid parameters: {sorted(valid)}")
        if not isinstance(values, (list, tuple)):
            values = [values]
        if len(values) == 0:
            raise ValueError(f"Empty grid for {spec.name}.{param}.")
        grid[param] = [_as_grid_value(v) for v in values]
    return grid


def grid_size(grid: Mapping[str, List[Any]]) -> int:
    n = 1
    for values in grid.values():
        n *= len(values)
    return n


def make_workflow(
    spec: ModelSpec,
    recipe_config: RecipeConfig,
    random_state: int = 42,
) -> Pipeline:
    """Bundle the recipe and the estimator into one unfitted pipeline."""
    recipe = build_recipe(recipe_config.with_normalize(spec.needs_normalize))
    return Pipeline(steps=[("recipe", recipe), ("model", spec.make_estimator(random_state))])


__all__ = [
    "STACK_MODEL_NAME",
    "ModelSpec",
    "MODEL_SPECS",
    "BASE_MODEL_NAMES",
    "MODEL_LABELS",
    "get_model_spec",
    "resolve_grid",
    "grid_size",
    "make_workflow",
]
