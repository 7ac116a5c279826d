"""Deterministic cleaning, label recoding, train/test split and CV folds.

Nothing in :func:`clean_data` estimates statistics from the data, so it is
safe to run before splitting. All data-dependent preprocessing (imputation,
rare-level lumping, scaling, one-hot encoding) lives in the recipe
(:mod:`survey_segmentation.src.data.recipe`) and is fit inside every
cross-validation fold.

Workflow
--------
1) ``clean_data``: dedupe, drop identifiers, tidy strings, recode labels.
2) ``select_features``: keep the predictors used in the exercises.
3) ``initial_split``: one stratified train/test split with a fixed seed.
4) ``make_cv_folds``: stratified folds on the training part, shared by every
   grid search and by the stacking candidates.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from sklearn.model_selection import RepeatedStratifiedKFold, StratifiedKFold, train_test_split

logger = logging.getLogger(__name__)

DEFAULT_LABEL_COL = "segment"
DEFAULT_ID_COLUMNS: Tuple[str, ...] = ("id",)
DEFAULT_SPLIT_PROP = 0.75
DEFAULT_N_FOLDS = 10

Fold = Tuple[np.ndarray, np.ndarray]


def normalize_label(value: object) -> Optional[str]:
    """Normalise a raw segment label to snake case ("Suburb mix" -> "suburb_mix")."""
    if value is None or (isinstance(value, float) and np.isnan(value)):
        return None
    text = str(value).strip().lower()
    if not text or text in {"na", "nan", "none"}:
        return None
    text = re.sub(r"[^0-9a-z]+", "_", text)
    return text.strip("_") or None


def recode_segment_labels(
    df: pd.DataFrame,
    label_col: str = DEFAULT_LABEL_COL,
    mapping: Optional[Mapping[str, str]] = None,
) -> pd.DataFrame:
    """Recode the segment label into a clean categorical column.

    Labels are normalised first; ``mapping`` keys and values are normalised
    the same way, so ``{"Moving up": "Upwardly mobile"}`` merges
    ``moving_up`` into ``upwardly_mobile``. Rows with a missing label are
    dropped.
    """
    if label_col not in df.columns:
        raise KeyError(f"Missing label column '{label_col}' in DataFrame.")

    out = df.copy()
    labels = out[label_col].map(normalize_label)

    if mapping:
        norm_map: Dict[str, str] = {}
        for k, v in mapping.items():
            nk, nv = normalize_label(k), normalize_label(v)
            if nk is None or nv is None:
                raise ValueError(f"Invalid label mapping entry {k!r} -> {v!r}.")
            norm_map[nk] = nv
        labels = labels.map(lambda s: norm_map.get(s, s) if s is not None else None)

    missing = int(labels.isna().sum())
    if missing:
        logger.warning("Dropping %d rows with a missing '%s' label.", missing, label_col)

    out[label_col] = labels
    out = out.loc[labels.notna()].copy()

    categories = sorted(out[label_col].unique())
    out[label_col] = pd.Categorical(out[label_col], categories=categories)
    return out.reset_index(drop=True)


def clean_data(
    df: pd.DataFrame,
    label_col: str = DEFAULT_LABEL_COL,
    id_columns: Sequence[str] = DEFAULT_ID_COLUMNS,
    label_mapping: Optional[Mapping[str, str]] = None,
    drop_duplicates: bool = True,
) -> pd.DataFrame:
    """Apply deterministic cleaning.

    Steps
    -----
    1) Drop exact duplicate rows.
    2) Drop identifier columns (case-insensitive match).
    3) Strip whitespace in text columns; empty strings become NaN; boolean
       predictors become "yes"/"no" text.
    4) Recode the segment label (:func:`recode_segment_labels`).
    """
    out = df.copy()

    if drop_duplicates:
        n_before = len(out)
        out = out.drop_duplicates().reset_index(drop=True)
        if len(out) < n_before:
            logger.info("Dropped %d duplicate rows.", n_before - len(out))

    id_lower = {c.lower() for c in id_columns}
    to_drop = [c for c in out.columns if str(c).lower() in id_lower and c != label_col]
    if to_drop:
        out = out.drop(columns=to_drop)

    for col in out.columns:
        if col == label_col:
            continue
        if pd.api.types.is_object_dtype(out[col]) or pd.api.types.is_string_dtype(out[col]):
            stripped = out[col].astype("string").str.strip().replace("", pd.NA)
            out[col] = stripped.astype(object).where(stripped.notna(), np.nan)
        elif pd.api.types.is_bool_dtype(out[col]):
            out[col] = out[col].map({True: "yes", False: "no"}).astype(object)

    return recode_segment_labels(out, label_col=label_col, mapping=label_mapping)


def select_features(
    df: pd.DataFrame,
    label_col: str = DEFAULT_LABEL_COL,
    include: Optional[Sequence[str]] = None,
    exclude: Optional[Sequence[str]] = None,
) -> pd.DataFrame:
    """Keep the label plus the chosen predictor columns.

    ``include`` takes precedence: only those predictors are kept (in that
    order). Otherwise every column except the label and ``exclude`` is kept.
    """
    if label_col not in df.columns:
        raise KeyError(f"Missing label column '{label_col}' in DataFrame.")

    if include:
        missing = [c for c in include if c not in df.columns]
        if missing:
            raise KeyError(f"Requested predictor columns not found: {missing}")
        predictors = [c for c in include if c != label_col]
    else:
        excluded = set(exclude or [])
        predictors = [c for c in df.columns if c != label_col and c not in excluded]

    if not predictors:
        raise ValueError("Feature selection left no predictor columns.")
    return df[predictors + [label_col]].copy()


def infer_column_types(df: pd.DataFrame, label_col: str = DEFAULT_LABEL_COL) -> Tuple[List[str], List[str]]:
    """Split predictors into numeric and categorical column lists."""
    numeric: List[str] = []
    categorical: List[str] = []
    for col in df.columns:
        if col == label_col:
            continue
        if pd.api.types.is_numeric_dtype(df[col]) and not pd.api.types.is_bool_dtype(df[col]):
            numeric.append(col)
        else:
            categorical.append(col)
    return numeric, categorical


def split_xy(df: pd.DataFrame, label_col: str = DEFAULT_LABEL_COL) -> Tuple[pd.DataFrame, pd.Series]:
    """Separate predictors and the segment label (as plain strings for sklearn)."""
    if label_col not in df.columns:
        raise KeyError(f"Missing label column '{label_col}' in DataFrame.")
    return df.drop(columns=[label_col]), df[label_col].astype(str)


def initial_split(
    df: pd.DataFrame,
    prop: float = DEFAULT_SPLIT_PROP,
    strata: Optional[str] = DEFAULT_LABEL_COL,
    random_state: int = 42,
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Split rows once into training (``prop``) and testing partitions.

    Stratified by ``strata`` so each segment keeps its share in both parts.
    """
    if not (0.0 < prop < 1.0):
        raise ValueError("prop must be in (0, 1).")

    if strata is not None:
        if strata not in df.columns:
            raise KeyError(f"Column '{strata}' not found for stratification.")
        stratify_vals = df[strata]
    else:
        stratify_vals = None

    train_df, test_df = train_test_split(
        df,
        train_size=prop,
        random_state=random_state,
        stratify=stratify_vals,
    )
    return train_df.reset_index(drop=True), test_df.reset_index(drop=True)


def make_cv_folds(
    train_df: pd.DataFrame,
    label_col: str = DEFAULT_LABEL_COL,
    v: int = DEFAULT_N_FOLDS,
    repeats: int = 1,
    random_state: int = 42,
) -> List[Fold]:
    """Stratified V-fold (optionally repeated) resamples of the training data.

    Returns a materialised list of ``(train_idx, val_idx)`` positional index
    arrays so that every consumer iterates over exactly the same folds.
    """
    if v < 2:
        raise ValueError("v must be at least 2.")
    if repeats < 1:
        raise ValueError("repeats must be at least 1.")
    if label_col not in train_df.columns:
        raise KeyError(f"Missing label column '{label_col}' in DataFrame.")

    y = train_df[label_col]
    smallest = int(y.value_counts().min())
    if smallest < v:
        raise ValueError(
            f"The smallest segment has {smallest} training rows; cannot build {v} stratified folds."
        )

    if repeats == 1:
        splitter = StratifiedKFold(n_splits=v, shuffle=True, random_state=random_state)
    else:
        splitter = RepeatedStratifiedKFold(n_splits=v, n_repeats=repeats, random_state=random_state)

    placeholder = np.zeros(len(train_df))
    return [(np.asarray(tr), np.asarray(va)) for tr, va in splitter.split(placeholder, y)]


__all__ = [
    "DEFAULT_LABEL_COL",
    "DEFAULT_ID_COLUMNS",
    "DEFAULT_SPLIT_PROP",
    "DEFAULT_N_FOLDS",
    "Fold",
    "normalize_label",
    "recode_segment_labels",
    "clean_data",
    "select_features",
    "infer_column_types",
    "split_xy",
    "initial_split",
    "make_cv_folds",
]
