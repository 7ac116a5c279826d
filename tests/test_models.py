from __future__ import annotations

from types import SimpleNamespace

import numpy as np
import pandas as pd
import pytest
from sklearn.preprocessing import StandardScaler

from survey_segmentation.src.data.recipe import RareLevelLumper, RecipeConfig, build_recipe, recipe_feature_names
from survey_segmentation.src.models.registry import (
    BASE_MODEL_NAMES,
    MODEL_LABELS,
    STACK_MODEL_NAME,
    get_model_spec,
    grid_size,
    make_workflow,
    resolve_grid,
)
from survey_segmentation.src.models.tuning import (
    candidate_configs,
    config_id,
    dump_tuning_result,
    finalize_fit,
    finalize_workflow,
    load_tuning_result,
    select_best,
    show_best,
    tidy_cv_results,
    tune_grid,
)

from .conftest import SMALL_GRIDS


# ---------------------------------------------------------------------------
# recipe
# ---------------------------------------------------------------------------


def test_rare_level_lumper_collapses_rare_and_unseen_levels():
    X = pd.DataFrame({"c": ["a"] * 8 + ["b"] * 1 + ["c"] * 1})
    lumper = RareLevelLumper(threshold=0.15).fit(X)

    out = lumper.transform(pd.DataFrame({"c": ["a", "b", "z"]}))
    assert out[:, 0].tolist() == ["a", "other", "other"]
    assert lumper.get_feature_names_out().tolist() == ["c"]


def test_rare_level_lumper_zero_threshold_keeps_seen_levels():
    X = np.array([["a"], ["b"], ["b"]], dtype=object)
    out = RareLevelLumper(threshold=0.0).fit(X).transform(np.array([["a"], ["q"]], dtype=object))
    assert out[:, 0].tolist() == ["a", "other"]


def test_rare_level_lumper_errors():
    with pytest.raises(RuntimeError):
        RareLevelLumper().transform([["a"]])
    with pytest.raises(ValueError):
        RareLevelLumper(threshold=1.0).fit([["a"]])
    lumper = RareLevelLumper().fit(np.array([["a", "b"]], dtype=object))
    with pytest.raises(ValueError):
        lumper.transform(np.array([["a"]], dtype=object))


def test_recipe_imputes_scales_and_one_hot_encodes(split):
    X = split["X_train"].copy()
    X.loc[X.index[:5], "income"] = np.nan
    X.loc[X.index[:5], "gender"] = np.nan

    recipe = build_recipe(split["recipe_config"]).fit(X)
    out = recipe.transform(X)
    names = recipe_feature_names(recipe)

    assert out.shape == (len(X), len(names))
    assert not np.isnan(out).any()
    assert "gender_Male" in names and "gender_Female" in names
    age = out[:, names.index("age")]
    assert abs(age.mean()) < 1e-8


def test_recipe_output_is_dense_and_ignores_unseen_levels(split):
    recipe = build_recipe(split["recipe_config"]).fit(split["X_train"])
    X = split["X_test"].copy()
    X.loc[X.index[0], "gender"] = "Unknown"

    out = recipe.transform(X)
    assert isinstance(out, np.ndarray)
    names = recipe_feature_names(recipe)
    gender = [i for i, n in enumerate(names) if n.startswith("gender_")]
    assert out[0, gender].sum() == 0


def test_recipe_without_normalization_keeps_raw_scale(split):
    config = split["recipe_config"].with_normalize(False)
    recipe = build_recipe(config).fit(split["X_train"])
    numeric = recipe.named_steps["columns"].named_transformers_["numeric"]
    assert not any(isinstance(step, StandardScaler) for _, step in numeric.steps)

    names = recipe_feature_names(recipe)
    age = recipe.transform(split["X_train"])[:, names.index("age")]
    assert np.allclose(age, split["X_train"]["age"].to_numpy())


def test_recipe_drops_zero_variance_columns():
    X = pd.DataFrame({"const": [1.0] * 6, "x": [1.0, 2.0, 3.0, 4.0, 5.0, 6.0], "c": ["u"] * 6})
    recipe = build_recipe(RecipeConfig(numeric=["const", "x"], categorical=["c"])).fit(X)
    assert recipe_feature_names(recipe) == ["x"]


def test_recipe_needs_predictors():
    with pytest.raises(ValueError):
        build_recipe(RecipeConfig())


# ---------------------------------------------------------------------------
# registry
# ---------------------------------------------------------------------------


def test_registry_lists_five_base_models_and_labels():
    assert BASE_MODEL_NAMES == ["multinom_reg", "decision_tree", "random_forest", "boosted_trees", "neural_net"]
    assert set(MODEL_LABELS) == set(BASE_MODEL_NAMES) | {STACK_MODEL_NAME}
    with pytest.raises(KeyError):
        get_model_spec("svm")


def test_resolve_grid_overrides_and_converts_lists_to_tuples():
    spec = get_model_spec("neural_net")
    grid = resolve_grid(spec, {"hidden_layer_sizes": [[10], [20, 5]], "alpha": 0.5})
    assert grid["hidden_layer_sizes"] == [(10,), (20, 5)]
    assert grid["alpha"] == [0.5]
    # untouched defaults are copied, not shared
    assert resolve_grid(spec)["alpha"] == [0.0001, 0.01, 0.1]


def test_resolve_grid_rejects_unknown_or_empty_params():
    spec = get_model_spec("decision_tree")
    with pytest.raises(ValueError, match="not a parameter"):
        resolve_grid(spec, {"n_neighbors": [3]})
    with pytest.raises(ValueError):
        resolve_grid(spec, {"max_depth": []})


def test_grid_size():
    assert grid_size(get_model_spec("decision_tree").grid) == 32
    assert grid_size({}) == 1


@pytest.mark.parametrize("name", ["multinom_reg", "neural_net"])
def test_make_workflow_scales_for_models_that_need_it(name, split):
    workflow = make_workflow(get_model_spec(name), split["recipe_config"].with_normalize(False))
    numeric = workflow.named_steps["recipe"].named_steps["columns"].transformers[0][1]
    assert "scaler" in numeric.named_steps


def test_make_workflow_skips_scaling_for_trees(split):
    workflow = make_workflow(get_model_spec("random_forest"), split["recipe_config"])
    numeric = workflow.named_steps["recipe"].named_steps["columns"].transformers[0][1]
    assert "scaler" not in numeric.named_steps
    assert workflow.named_steps["model"].random_state == 42


# ---------------------------------------------------------------------------
# tuning
# ---------------------------------------------------------------------------


def _tune(name, split, metric="accuracy"):
    spec = get_model_spec(name)
    return tune_grid(
        name,
        make_workflow(spec, split["recipe_config"], random_state=0),
        resolve_grid(spec, SMALL_GRIDS[name]),
        split["X_train"],
        split["y_train"],
        split["folds"],
        metric=metric,
    )


@pytest.fixture(scope="module")
def tree_result(split):
    return _tune("decision_tree", split)


def test_tune_grid_tidies_one_row_per_configuration(tree_result):
    cv = tree_result.cv_results
    assert len(cv) == 2
    assert {"config", "model", "max_depth", "mean_accuracy", "std_accuracy", "mean_roc_auc", "rank"} <= set(cv.columns)
    assert cv["rank"].iloc[0] == 1
    assert set(cv["config"]) == {"decision_tree_01", "decision_tree_02"}
    assert cv["mean_accuracy"].between(0, 1).all()


def test_best_configuration_helpers(tree_result):
    best = select_best(tree_result)
    assert set(best) == {"ccp_alpha", "max_depth", "min_samples_split"}
    assert best == tree_result.best_params
    assert show_best(tree_result, 1)["mean_accuracy"].iloc[0] == pytest.approx(tree_result.best_score)

    workflow = finalize_workflow(tree_result)
    assert workflow.named_steps["model"].max_depth == best["max_depth"]
    assert not hasattr(workflow.named_steps["model"], "tree_")


def test_finalize_fit_refits_on_training_data(tree_result, split):
    fitted = finalize_fit(tree_result)
    assert fitted is tree_result.search.best_estimator_

    refit = finalize_fit(tree_result, split["X_train"], split["y_train"])
    np.testing.assert_array_equal(refit.predict(split["X_test"]), fitted.predict(split["X_test"]))


def test_tuning_is_reproducible_with_fixed_seed(split):
    a = _tune("random_forest", split)
    b = _tune("random_forest", split)
    pd.testing.assert_frame_equal(a.cv_results, b.cv_results)


def test_tuning_on_roc_auc(split):
    result = _tune("multinom_reg", split, metric="roc_auc")
    assert result.metric == "roc_auc"
    assert result.cv_results["rank"].iloc[0] == 1
    assert 0.5 < result.best_score <= 1.0


def test_tune_grid_errors(split):
    spec = get_model_spec("decision_tree")
    workflow = make_workflow(spec, split["recipe_config"])
    args = (split["X_train"], split["y_train"], split["folds"])
    with pytest.raises(ValueError, match="metric"):
        tune_grid("decision_tree", workflow, {"max_depth": [2]}, *args, metric="f1")
    with pytest.raises(ValueError, match="Empty"):
        tune_grid("decision_tree", workflow, {}, *args)


def test_tune_grid_all_failing_configurations(split):
    spec = get_model_spec("decision_tree")
    workflow = make_workflow(spec, split["recipe_config"])
    with pytest.raises(RuntimeError, match="failed"):
        tune_grid(
            "decision_tree",
            workflow,
            {"min_samples_split": [-1]},
            split["X_train"],
            split["y_train"],
            split["folds"],
        )


def test_candidate_configs_best_first(tree_result):
    candidates = candidate_configs(tree_result)
    assert [c.candidate_id for c in candidates] == tree_result.cv_results["config"].tolist()
    assert candidates[0].mean_score == pytest.approx(tree_result.best_score)
    assert all(c.model_name == "decision_tree" for c in candidates)

    top = candidate_configs(tree_result, top_n=1)
    assert len(top) == 1
    assert top[0].workflow.named_steps["model"].max_depth == top[0].params["max_depth"]


def test_config_id():
    assert config_id("neural_net", 0) == "neural_net_01"
    assert config_id("neural_net", 11) == "neural_net_12"


def test_tidy_cv_results_breaks_ties_by_grid_position():
    n = 101
    search = SimpleNamespace(
        cv_results_={
            "params": [{"model__C": float(i)} for i in range(n)],
            "mean_test_accuracy": np.full(n, 0.5),
            "std_test_accuracy": np.zeros(n),
            "rank_test_accuracy": np.array([1] * (n - 1) + [2]),
        }
    )
    table = tidy_cv_results("multinom_reg", search, "accuracy")

    assert table["config"].tolist()[98:] == ["multinom_reg_99", "multinom_reg_100", "multinom_reg_101"]
    assert table["C"].tolist()[:3] == [0.0, 1.0, 2.0]


def test_tuning_result_round_trips_through_joblib(tree_result, tmp_path):
    path = dump_tuning_result(tree_result, tmp_path / "models" / "decision_tree.joblib")
    loaded = load_tuning_result(path)
    pd.testing.assert_frame_equal(loaded.cv_results, tree_result.cv_results)

    import joblib

    joblib.dump({"not": "a result"}, tmp_path / "bad.joblib")
    with pytest.raises(TypeError):
        load_tuning_result(tmp_path / "bad.joblib")
