"""Loading helpers for the segmentation survey.

Course copies of the survey circulate with different delimiters (comma from
R's ``write.csv``, semicolon from spreadsheet exports, tab from SPSS). The
loader:

1) tries standard :func:`pandas.read_csv` parsing;
2) falls back to delimiter sniffing when the header collapses into too few
   columns.

Type conversion (labels, yes/no answers) is left to
:func:`survey_segmentation.src.data.preprocess.clean_data`.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import pandas as pd
from pandas.errors import ParserError

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = Path("survey_segmentation/data/raw")
DEFAULT_FILENAME = "segmentation_survey.csv"


def load_survey_data(
    data_dir: Path = DEFAULT_DATA_DIR,
    filename: str = DEFAULT_FILENAME,
    min_expected_columns: int = 3,
    label_col: Optional[str] = None,
) -> pd.DataFrame:
    """Load the survey CSV with robust delimiter handling.

    Parameters
    ----------
    data_dir:
        Directory containing the survey file.
    filename:
        CSV filename.
    min_expected_columns:
        If fewer columns are parsed we assume the delimiter was wrong and
        retry with auto-detection.
    label_col:
        When given, the label column must be present after parsing.
    """
    csv_path = Path(data_dir) / filename
    if not csv_path.is_file():
        raise FileNotFoundError(
            f"Expected survey data at {csv_path}. Place the course CSV there or generate one with "
            "`python -m survey_segmentation.src.data.simulate`."
        )

    try:
        df = pd.read_csv(csv_path)
    except (ParserError, ValueError):
        df = None

    if df is None or df.shape[1] < min_expected_columns:
        try:
            df = pd.read_csv(csv_path, sep=None, engine="python")
        except ParserError as exc:
            raise ValueError(
                f"Failed to parse survey data at {csv_path} with automatic delimiter detection."
            ) from exc

    # R exports often carry an unnamed row-number column.
    unnamed = [c for c in df.columns if str(c).startswith("Unnamed:") or str(c) == ""]
    if unnamed:
        df = df.drop(columns=unnamed)

    if df.shape[1] < min_expected_columns:
        raise ValueError(
            f"Parsed survey data from {csv_path} has only {df.shape[1]} columns; "
            "please verify that the file is the segmentation survey CSV."
        )

    if label_col is not None and label_col not in df.columns:
        raise KeyError(
            f"Label column '{label_col}' not found in {csv_path}. Columns: {df.columns.tolist()}"
        )

    logger.info("Loaded %d rows x %d columns from %s", df.shape[0], df.shape[1], csv_path)
    return df


__all__ = ["DEFAULT_DATA_DIR", "DEFAULT_FILENAME", "load_survey_data"]
