"""Synthetic segmentation survey with the course schema.

The course data set is a consumer survey with four segments. When the CSV is
not at hand (CI, first-time setup) this module simulates a survey with the
same columns and segment structure:

- demographics: ``age``, ``gender``, ``income``, ``kids``, ``own_home``,
  ``subscribe``;
- attitudes: four 1-7 Likert items (``att_price``, ``att_brand``,
  ``att_online``, ``att_quality``);
- label: ``segment`` with the raw, un-normalised course spellings
  ("Suburb mix", "Urban hip", "Travelers", "Moving up").

Run from the project root:

.. code-block:: bash

    python -m survey_segmentation.src.data.simulate --n 300 --seed 42
"""

from __future__ import annotations

import argparse
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from survey_segmentation.src.utils.logging_utils import configure_logging
from survey_segmentation.src.utils.seed_utils import reproducible_numpy_rng

from .load import DEFAULT_DATA_DIR, DEFAULT_FILENAME

logger = logging.getLogger(__name__)

ATTITUDE_ITEMS: List[str] = ["att_price", "att_brand", "att_online", "att_quality"]


@dataclass(frozen=True)
class SegmentProfile:
    """Generating parameters for one segment."""

    name: str
    share: float
    age_mean: float
    age_sd: float
    p_male: float
    income_mean: float
    income_sd: float
    kids_lambda: float
    p_own_home: float
    p_subscribe: float
    # mean Likert score per attitude item, same order as ATTITUDE_ITEMS
    attitudes: tuple


DEFAULT_PROFILES: tuple = (
    SegmentProfile("Suburb mix", 1 / 3, 40, 5, 0.5, 55000, 12000, 3.0, 0.5, 0.1, (4.0, 4.5, 3.5, 5.0)),
    SegmentProfile("Urban hip", 1 / 6, 24, 2, 0.55, 21000, 5000, 0.2, 0.2, 0.2, (5.5, 5.5, 6.0, 3.5)),
    SegmentProfile("Travelers", 4 / 15, 58, 8, 0.4, 64000, 21000, 0.0, 0.75, 0.2, (2.5, 4.0, 3.0, 6.0)),
    SegmentProfile("Moving up", 7 / 30, 36, 4, 0.45, 52000, 10000, 1.2, 0.3, 0.2, (3.5, 6.0, 5.0, 4.5)),
)


def _segment_sizes(n: int, profiles: Sequence[SegmentProfile]) -> List[int]:
    shares = np.array([p.share for p in profiles], dtype=float)
    shares = shares / shares.sum()
    sizes = np.floor(shares * n + 1e-9).astype(int)
    # hand leftover rows to the largest segments first
    for i in np.argsort(-shares)[: n - int(sizes.sum())]:
        sizes[i] += 1
    return sizes.tolist()


def _likert(rng: np.random.Generator, mean: float, size: int) -> np.ndarray:
    raw = rng.normal(loc=mean, scale=1.1, size=size)
    return np.clip(np.rint(raw), 1, 7).astype(int)


def simulate_segment_survey(
    n: int = 300,
    seed: Optional[int] = 42,
    profiles: Sequence[SegmentProfile] = DEFAULT_PROFILES,
    missing_rate: float = 0.0,
    shuffle: bool = True,
) -> pd.DataFrame:
    """Generate a reproducible survey data frame.

    Parameters
    ----------
    n:
        Number of respondents.
    seed:
        Seed for the dedicated NumPy generator.
    profiles:
        Segment generating parameters.
    missing_rate:
        Share of ``income`` and ``own_home`` answers blanked out to exercise
        imputation.
    shuffle:
        Shuffle rows so segments are interleaved, as in a real survey export.
    """
    if n < len(profiles):
        raise ValueError(f"n must be at least the number of segments ({len(profiles)}).")
    if not (0.0 <= missing_rate < 1.0):
        raise ValueError("missing_rate must be in [0, 1).")

    rng = reproducible_numpy_rng(seed)
    frames: List[pd.DataFrame] = []

    for profile, size in zip(profiles, _segment_sizes(n, profiles)):
        block: Dict[str, object] = {
            "age": np.round(rng.normal(profile.age_mean, profile.age_sd, size), 1),
            "gender": np.where(rng.random(size) < profile.p_male, "Male", "Female"),
            "income": np.round(np.maximum(rng.normal(profile.income_mean, profile.income_sd, size), -5000), 0),
            "kids": rng.poisson(profile.kids_lambda, size),
            "own_home": np.where(rng.random(size) < profile.p_own_home, "ownYes", "ownNo"),
            "subscribe": np.where(rng.random(size) < profile.p_subscribe, "subYes", "subNo"),
        }
        for item, mean in zip(ATTITUDE_ITEMS, profile.attitudes):
            block[item] = _likert(rng, mean, size)
        block["segment"] = [profile.name] * size
        frames.append(pd.DataFrame(block))

    df = pd.concat(frames, ignore_index=True)

    if missing_rate > 0.0:
        for col in ("income", "own_home"):
            mask = rng.random(len(df)) < missing_rate
            df[col] = df[col].astype(object)
            df.loc[mask, col] = np.nan
        df["income"] = pd.to_numeric(df["income"])

    if shuffle:
        df = df.iloc[rng.permutation(len(df))].reset_index(drop=True)

    df.insert(0, "id", np.arange(1, len(df) + 1))
    return df


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Simulate the segmentation survey CSV.")
    parser.add_argument("--n", type=int, default=300, help="Number of respondents (default: 300)")
    parser.add_argument("--seed", type=int, default=42, help="Random seed (default: 42)")
    parser.add_argument("--missing-rate", type=float, default=0.0, help="Share of blanked answers (default: 0)")
    parser.add_argument(
        "--out",
        type=Path,
        default=DEFAULT_DATA_DIR / DEFAULT_FILENAME,
        help=f"Output CSV path (default: {DEFAULT_DATA_DIR / DEFAULT_FILENAME})",
    )
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> None:
    configure_logging()
    args = _parse_args(argv)

    df = simulate_segment_survey(n=args.n, seed=args.seed, missing_rate=args.missing_rate)
    args.out.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(args.out, index=False)
    logger.info("Wrote %d simulated respondents to %s", len(df), args.out)


if __name__ == "__main__":
    main()
