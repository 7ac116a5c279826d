from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from survey_segmentation.src.evaluation.classification import (
    compute_classification_metrics,
    confusion_table,
    feature_importance,
    per_class_report,
)
from survey_segmentation.src.evaluation.comparison import COMPARISON_COLUMNS, MODEL_ORDER, comparison_table
from survey_segmentation.src.models.registry import get_model_spec, make_workflow


def test_metrics_on_perfect_predictions():
    y = np.array(["a", "b", "c", "a", "b", "c"])
    prob = np.eye(3)[[0, 1, 2, 0, 1, 2]]
    m = compute_classification_metrics(y, y, prob, labels=["a", "b", "c"])

    assert m["accuracy"] == 1.0
    assert m["balanced_accuracy"] == 1.0
    assert m["kappa"] == pytest.approx(1.0)
    assert m["macro_f1"] == 1.0
    assert m["roc_auc"] == pytest.approx(1.0)
    assert m["log_loss"] == pytest.approx(0.0, abs=1e-6)
    assert m["n"] == 6


def test_metrics_without_probabilities():
    m = compute_classification_metrics(["a", "b", "b", "a"], ["a", "a", "b", "a"])
    assert m["accuracy"] == 0.75
    assert m["roc_auc"] is None
    assert m["log_loss"] is None


def test_binary_roc_auc_uses_positive_column():
    y = ["no", "no", "yes", "yes"]
    prob = np.array([[0.9, 0.1], [0.6, 0.4], [0.3, 0.7], [0.2, 0.8]])
    m = compute_classification_metrics(y, ["no", "no", "yes", "yes"], prob, labels=["no", "yes"])
    assert m["roc_auc"] == pytest.approx(1.0)


def test_roc_auc_undefined_when_a_class_is_absent():
    prob = np.array([[0.8, 0.1, 0.1], [0.1, 0.8, 0.1]])
    m = compute_classification_metrics(["a", "b"], ["a", "b"], prob, labels=["a", "b", "c"])
    assert m["roc_auc"] is None or np.isnan(m["roc_auc"])
    assert m["accuracy"] == 1.0


def test_metrics_input_validation():
    with pytest.raises(ValueError, match="different lengths"):
        compute_classification_metrics(["a"], ["a", "b"])
    with pytest.raises(ValueError, match="empty"):
        compute_classification_metrics([], [])
    with pytest.raises(ValueError, match="y_prob"):
        compute_classification_metrics(["a", "b"], ["a", "b"], np.ones((2, 3)), labels=["a", "b"])


def test_confusion_table_has_truth_rows_and_prediction_columns():
    cm = confusion_table(["a", "a", "b"], ["a", "b", "b"], labels=["a", "b"])
    assert cm.index.name == "truth"
    assert cm.columns.name == "prediction"
    assert cm.loc["a", "b"] == 1
    assert cm.to_numpy().sum() == 3


def test_per_class_report():
    report = per_class_report(["a", "a", "b", "b"], ["a", "b", "b", "b"])
    assert {"a", "b", "macro avg", "weighted avg"} <= set(report.index)
    assert report.loc["b", "recall"] == 1.0


def test_feature_importance_impurity_for_trees(split):
    workflow = make_workflow(get_model_spec("random_forest"), split["recipe_config"], random_state=0)
    workflow.set_params(model__n_estimators=25).fit(split["X_train"], split["y_train"])

    table = feature_importance(workflow, split["X_test"], split["y_test"])
    assert set(table["method"]) == {"impurity"}
    assert table["importance"].sum() == pytest.approx(1.0)
    assert table["importance"].is_monotonic_decreasing
    assert "age" in set(table["feature"])


def test_feature_importance_permutation_for_other_models(split):
    workflow = make_workflow(get_model_spec("multinom_reg"), split["recipe_config"], random_state=0)
    workflow.fit(split["X_train"], split["y_train"])

    table = feature_importance(workflow, split["X_test"], split["y_test"], n_repeats=3)
    assert set(table["method"]) == {"permutation"}
    assert set(table["feature"]) == set(split["X_test"].columns)
    assert (table["std"] >= 0).all()


def _metrics(acc):
    return {"accuracy": acc, "balanced_accuracy": acc, "kappa": acc, "macro_f1": acc, "roc_auc": 0.9, "log_loss": 0.5}


def test_comparison_table_orders_six_models_by_accuracy():
    scores = {
        "multinom_reg": 0.70,
        "decision_tree": 0.62,
        "random_forest": 0.74,
        "boosted_trees": 0.74,
        "neural_net": 0.68,
        "stacked_ensemble": 0.76,
    }
    table = comparison_table({name: _metrics(acc) for name, acc in scores.items()})

    assert list(table.columns) == COMPARISON_COLUMNS
    assert table["rank"].tolist() == [1, 2, 3, 4, 5, 6]
    # ties broken by the fixed model order
    assert table["model"].tolist() == [
        "stacked_ensemble",
        "random_forest",
        "boosted_trees",
        "multinom_reg",
        "neural_net",
        "decision_tree",
    ]
    assert table.loc[0, "label"] == "Stacked ensemble"
    assert len(MODEL_ORDER) == 6


def test_comparison_table_missing_probability_metrics_become_nan():
    table = comparison_table({"decision_tree": {"accuracy": 0.6, "roc_auc": None}})
    assert np.isnan(table.loc[0, "roc_auc"])
    assert np.isnan(table.loc[0, "kappa"])


def test_comparison_table_errors():
    with pytest.raises(KeyError):
        comparison_table({"svm": _metrics(0.5)})
    with pytest.raises(ValueError):
        comparison_table({})
    with pytest.raises(ValueError, match="accuracy"):
        comparison_table({"neural_net": {"kappa": 0.2}})


def test_comparison_table_accepts_rows_read_from_csv(tmp_path):
    frame = pd.DataFrame([{"model": "neural_net", **_metrics(0.7)}, {"model": "multinom_reg", **_metrics(0.8)}])
    frame.to_csv(tmp_path / "m.csv", index=False)
    rows = pd.read_csv(tmp_path / "m.csv")
    table = comparison_table({r["model"]: r.to_dict() for _, r in rows.iterrows()})
    assert table["model"].tolist() == ["multinom_reg", "neural_net"]
