"""CLI utility to verify the survey file is in place and looks right.

Run from the project root:

.. code-block:: bash

    python -m survey_segmentation.src.data.check_data

The dataset is never modified.
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Optional, Sequence, Tuple

from .load import DEFAULT_DATA_DIR, DEFAULT_FILENAME, load_survey_data
from .preprocess import DEFAULT_LABEL_COL, normalize_label


def dataset_status(
    data_dir: Path = DEFAULT_DATA_DIR,
    filename: str = DEFAULT_FILENAME,
) -> Tuple[bool, Path]:
    """Return whether the survey CSV exists, and where it was expected."""
    csv_path = Path(data_dir) / filename
    return csv_path.is_file(), csv_path


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Check survey dataset placement and schema.")
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=DEFAULT_DATA_DIR,
        help=f"Directory containing the CSV (default: {DEFAULT_DATA_DIR})",
    )
    parser.add_argument(
        "--filename",
        type=str,
        default=DEFAULT_FILENAME,
        help=f"CSV filename (default: {DEFAULT_FILENAME})",
    )
    parser.add_argument(
        "--label-col",
        type=str,
        default=DEFAULT_LABEL_COL,
        help=f"Segment label column (default: {DEFAULT_LABEL_COL})",
    )
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _parse_args(argv)

    args.data_dir.mkdir(parents=True, exist_ok=True)

    exists, csv_path = dataset_status(args.data_dir, args.filename)
    if not exists:
        print(
            "❌ Survey dataset is missing.\n"
            f"   Expected the segmentation survey CSV at:\n   {csv_path}\n"
            "   Generate a synthetic copy with `python -m survey_segmentation.src.data.simulate`."
        )
        return 1

    print(f"✅ Found dataset at: {csv_path}")

    try:
        df = load_survey_data(data_dir=args.data_dir, filename=args.filename)
    except ValueError as exc:
        print(f"❌ Failed to load dataset: {exc}")
        return 1

    print(f"Rows: {df.shape[0]} | Columns: {df.shape[1]}")
    print("Columns:")
    print(", ".join(map(str, df.columns.tolist())))

    if args.label_col not in df.columns:
        print(f"Warning: label column '{args.label_col}' not found.")
        return 1

    counts = df[args.label_col].map(normalize_label).value_counts(dropna=False)
    print("Segment counts (normalised labels):")
    for label, count in counts.items():
        print(f"  {label}: {count}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
