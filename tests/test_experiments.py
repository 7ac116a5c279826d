from __future__ import annotations

import logging

import pandas as pd
import pytest
import yaml

from survey_segmentation import run_all_experiments as launcher
from survey_segmentation.src.experiments import run_models, run_stacking
from survey_segmentation.src.experiments.common import OutputPaths, prepare_data
from survey_segmentation.src.models.stacking import StackedEnsemble
from survey_segmentation.src.models.tuning import load_tuning_result
from survey_segmentation.src.utils.config_utils import load_pipeline_config
from survey_segmentation.src.utils.logging_utils import DEFAULT_LOG_FORMAT

from .conftest import N_FOLDS, SEED, SMALL_GRIDS

MODELS = ["multinom_reg", "decision_tree"]


@pytest.fixture
def workspace(tmp_path, survey_df):
    data_dir = tmp_path / "data"
    data_dir.mkdir()
    survey_df.to_csv(data_dir / "survey.csv", index=False)

    config = {
        "seed": SEED,
        "data": {"data_dir": str(data_dir), "filename": "survey.csv"},
        "split": {"prop": 0.75},
        "folds": {"v": N_FOLDS},
        "grids": SMALL_GRIDS,
        "stacking": {"penalties": [0.001, 0.01]},
    }
    config_path = tmp_path / "models.yaml"
    config_path.write_text(yaml.safe_dump(config), encoding="utf-8")
    return {"config": config_path, "out": tmp_path / "outputs", "data_dir": data_dir}


def _args(ws, *extra):
    return ["--config", str(ws["config"]), "--output-dir", str(ws["out"]), *extra]


def test_prepare_data_shares_one_split(workspace):
    cfg = load_pipeline_config(workspace["config"])
    a = prepare_data(cfg)
    b = prepare_data(cfg)

    assert len(a.train) == 180 and len(a.test) == 60
    assert len(a.folds) == N_FOLDS
    assert "id" not in a.X_train.columns
    assert a.classes == ["moving_up", "suburb_mix", "travelers", "urban_hip"]
    pd.testing.assert_frame_equal(a.X_test, b.X_test)
    assert {"gender", "own_home", "subscribe"} == set(a.recipe_config.categorical)


def test_missing_data_exits_with_error(workspace, tmp_path):
    with pytest.raises(SystemExit):
        run_models(_args(workspace, "--data-dir", str(tmp_path / "empty")))


def test_run_models_writes_tables_and_results(workspace):
    outputs = run_models(_args(workspace, "--models", *MODELS, "--skip-importance"))
    paths = OutputPaths(workspace["out"])

    assert set(outputs) == set(MODELS)
    metrics = pd.read_csv(paths.tables / "model_metrics.csv")
    assert metrics["model"].tolist() == MODELS
    assert {"accuracy", "kappa", "roc_auc", "cv_accuracy", "best_params"} <= set(metrics.columns)
    assert metrics["accuracy"].between(0, 1).all()

    for name in MODELS:
        assert (paths.tables / f"tuning_{name}.csv").exists()
        confusion = pd.read_csv(paths.tables / f"confusion_{name}.csv", index_col=0)
        assert confusion.to_numpy().sum() == 60
        assert load_tuning_result(paths.models / f"{name}.joblib").model_name == name

    # rerunning one model keeps the other's row
    run_models(_args(workspace, "--models", "decision_tree", "--skip-importance"))
    metrics = pd.read_csv(paths.tables / "model_metrics.csv")
    assert sorted(metrics["model"]) == sorted(MODELS)


def test_run_models_importance_table(workspace):
    run_models(_args(workspace, "--models", "decision_tree"))
    table = pd.read_csv(OutputPaths(workspace["out"]).tables / "importance_decision_tree.csv")
    assert list(table.columns) == ["feature", "importance", "std", "method"]


def test_run_stacking_reuses_saved_tuning(workspace, caplog):
    run_models(_args(workspace, "--models", *MODELS, "--skip-importance"))
    paths = OutputPaths(workspace["out"])

    with caplog.at_level(logging.INFO):
        out = run_stacking(_args(workspace, "--models", *MODELS))
    assert "Reusing tuning results" in caplog.text

    stack = out["stack"]
    assert isinstance(stack, StackedEnsemble)
    assert len(stack.candidates) == 4

    weights = pd.read_csv(paths.tables / "stack_weights.csv")
    assert set(weights["member"]) == set(stack.members_)
    metrics = pd.read_csv(paths.tables / "stack_metrics.csv")
    assert metrics.loc[0, "model"] == "stacked_ensemble"
    assert metrics.loc[0, "n_candidates"] == 4
    assert (paths.tables / "confusion_stacked_ensemble.csv").exists()
    assert StackedEnsemble.load(paths.models / "stacked_ensemble.joblib").members_ == stack.members_


def test_run_stacking_tunes_when_nothing_is_saved(workspace):
    out = run_stacking(_args(workspace, "--models", "multinom_reg"))
    assert set(out["tuning_results"]) == {"multinom_reg"}
    assert (OutputPaths(workspace["out"]).models / "multinom_reg.joblib").exists()


def test_same_seed_reproduces_every_model_and_the_stack(workspace, tmp_path):
    runs = []
    for root in ("first", "second"):
        args = ["--config", str(workspace["config"]), "--output-dir", str(tmp_path / root)]
        run_models(args + ["--skip-importance"])
        stack = run_stacking(args)["stack"]
        tables = OutputPaths(tmp_path / root).tables
        runs.append(
            (
                pd.read_csv(tables / "model_metrics.csv"),
                pd.read_csv(tables / "stack_metrics.csv"),
                stack.members_,
            )
        )

    (models_a, stack_a, members_a), (models_b, stack_b, members_b) = runs
    assert len(models_a) == 5
    assert models_a["model"].tolist() == models_b["model"].tolist()
    pd.testing.assert_series_equal(models_a["accuracy"], models_b["accuracy"])
    pd.testing.assert_series_equal(stack_a["accuracy"], stack_b["accuracy"])
    assert members_a == members_b


@pytest.fixture
def restore_root_logging():
    root = logging.getLogger()
    level = root.level
    yield
    for h in list(root.handlers):
        if h.formatter is not None and h.formatter._fmt == DEFAULT_LOG_FORMAT:
            root.removeHandler(h)
            h.close()
    root.setLevel(level)
    logging.captureWarnings(False)


def test_launcher_builds_comparison_figures_and_report(workspace, monkeypatch, restore_root_logging):
    out = workspace["out"]
    paths = OutputPaths(out)
    monkeypatch.setattr(launcher, "OUTPUT_DIR", out)
    monkeypatch.setattr(launcher, "PATHS", paths)
    monkeypatch.setattr(launcher, "REPORT_PATH", out / "report.md")
    monkeypatch.setattr(launcher.os, "chdir", lambda _path: None)

    # only two base models: stacking and the launcher see just their saved results
    run_models(_args(workspace, "--models", *MODELS, "--skip-importance"))
    run_stacking(_args(workspace, "--models", *MODELS))

    launcher.main(["--config", str(workspace["config"]), "--skip-models", "--skip-stacking"])

    comparison = pd.read_csv(paths.tables / "comparison.csv")
    assert set(comparison["model"]) == set(MODELS) | {"stacked_ensemble"}
    assert comparison["rank"].tolist() == [1, 2, 3]
    assert comparison["accuracy"].is_monotonic_decreasing

    assert (paths.figures / "comparison_accuracy.png").exists()
    assert (paths.figures / "decision_tree" / "tuning_decision_tree.png").exists()
    assert (paths.figures / "stacked_ensemble" / "stack_weights.png").exists()

    report = (out / "report.md").read_text(encoding="utf-8")
    assert "## Comparison on the test set" in report
    assert "Respondents: 240" in report
    assert (paths.logs / "run_all.log").exists()


def test_launcher_stops_when_data_is_missing(tmp_path, monkeypatch, restore_root_logging):
    out = tmp_path / "outputs"
    monkeypatch.setattr(launcher, "OUTPUT_DIR", out)
    monkeypatch.setattr(launcher, "PATHS", OutputPaths(out))
    monkeypatch.setattr(launcher.os, "chdir", lambda _path: None)

    config = tmp_path / "models.yaml"
    config.write_text(yaml.safe_dump({"data": {"data_dir": str(tmp_path / "nowhere")}}), encoding="utf-8")
    with pytest.raises(SystemExit):
        launcher.main(["--config", str(config)])
