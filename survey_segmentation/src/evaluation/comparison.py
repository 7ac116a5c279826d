"""Side-by-side comparison of the six fitted models on the test set."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping

import numpy as np
import pandas as pd

from survey_segmentation.src.models.registry import BASE_MODEL_NAMES, MODEL_LABELS, STACK_MODEL_NAME

MODEL_ORDER: List[str] = BASE_MODEL_NAMES + [STACK_MODEL_NAME]

COMPARISON_COLUMNS: List[str] = [
    "rank",
    "model",
    "label",
    "accuracy",
    "balanced_accuracy",
    "kappa",
    "macro_f1",
    "roc_auc",
    "log_loss",
]


def comparison_table(results: Mapping[str, Mapping[str, Any]]) -> pd.DataFrame:
    """One row per model, ordered by test accuracy (best first).

    Ties are broken by the fixed :data:`MODEL_ORDER`, so the table is
    deterministic for a given set of scores.
    """
    unknown = [name for name in results if name not in MODEL_ORDER]
    if unknown:
        raise KeyError(f"Unknown model names in results: {unknown}. Expected a subset of {MODEL_ORDER}.")
    if not results:
        raise ValueError("No model results to compare.")

    rows: List[Dict[str, Any]] = []
    for name, met in results.items():
        if "accuracy" not in met or met["accuracy"] is None:
            raise ValueError(f"Result for '{name}' has no accuracy.")
        row: Dict[str, Any] = {"model": name, "label": MODEL_LABELS[name]}
        for col in COMPARISON_COLUMNS[3:]:
            val = met.get(col)
            row[col] = float(val) if val is not None else np.nan
        row["_order"] = MODEL_ORDER.index(name)
        rows.append(row)

    table = pd.DataFrame(rows).sort_values(["accuracy", "_order"], ascending=[False, True])
    table = table.drop(columns="_order").reset_index(drop=True)
    table.insert(0, "rank", np.arange(1, len(table) + 1))
    return table[COMPARISON_COLUMNS]


__all__ = ["MODEL_ORDER", "COMPARISON_COLUMNS", "comparison_table"]
