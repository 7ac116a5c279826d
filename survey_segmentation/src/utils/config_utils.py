"""YAML configuration for the tuning / stacking pipeline.

The single config file (``survey_segmentation/configs/models.yaml``) has one
block per concern::

    seed: 42
    data:      {data_dir, filename, label_col, id_columns, include, exclude, label_mapping}
    split:     {prop}
    folds:     {v, repeats}
    recipe:    {other_threshold, drop_zero_variance}
    tuning:    {metric, n_jobs}
    grids:     {<model_name>: {<param>: [values, ...]}}
    stacking:  {penalties, max_candidates_per_model, meta_max_iter}

A missing file or a missing block falls back to defaults. Unknown keys are
dropped with a warning so that older config files keep working.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Type, TypeVar

import yaml

from .seed_utils import DEFAULT_SEED

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_CONFIG_PATH = Path("survey_segmentation/configs/models.yaml")


def as_bool(x: Any, default: bool = False) -> bool:
    """Lenient bool parsing for YAML/CLI values ("yes", "1", "on", ...)."""
    if x is None:
        return default
    if isinstance(x, bool):
        return x
    if isinstance(x, (int, float)):
        return bool(x)
    if isinstance(x, str):
        return x.strip().lower() in {"1", "true", "t", "yes", "y", "on"}
    return default


def dataclass_from_dict(cls: Type[T], values: Optional[Mapping[str, Any]], *, section: str = "") -> T:
    """Instantiate ``cls`` from a mapping, ignoring keys it does not declare."""
    values = dict(values or {})
    valid = {f.name for f in fields(cls)}  # type: ignore[arg-type]
    unknown = sorted(set(values) - valid)
    if unknown:
        logger.warning("Ignoring unknown %s config keys: %s", section or cls.__name__, unknown)
    return cls(**{k: v for k, v in values.items() if k in valid})


@dataclass
class DataConfig:
    """Where the survey lives and which columns play which role."""

    data_dir: str = "survey_segmentation/data/raw"
    filename: str = "segmentation_survey.csv"
    label_col: str = "segment"
    id_columns: List[str] = field(default_factory=lambda: ["id"])
    include: Optional[List[str]] = None
    exclude: List[str] = field(default_factory=list)
    label_mapping: Dict[str, str] = field(default_factory=dict)


@dataclass
class SplitConfig:
    prop: float = 0.75


@dataclass
class FoldConfig:
    v: int = 10
    repeats: int = 1


@dataclass
class TuningConfig:
    metric: str = "accuracy"
    n_jobs: Optional[int] = None


@dataclass
class PipelineConfig:
    """Everything the experiment scripts need, parsed from YAML."""

    seed: int = DEFAULT_SEED
    data: DataConfig = field(default_factory=DataConfig)
    split: SplitConfig = field(default_factory=SplitConfig)
    folds: FoldConfig = field(default_factory=FoldConfig)
    tuning: TuningConfig = field(default_factory=TuningConfig)
    recipe: Dict[str, Any] = field(default_factory=dict)
    grids: Dict[str, Dict[str, List[Any]]] = field(default_factory=dict)
    stacking: Dict[str, Any] = field(default_factory=dict)


def parse_pipeline_config(raw: Optional[Mapping[str, Any]]) -> PipelineConfig:
    """Build a :class:`PipelineConfig` from an already-parsed YAML mapping."""
    raw = dict(raw or {})

    known = {"seed", "data", "split", "folds", "tuning", "recipe", "grids", "stacking"}
    unknown = sorted(set(raw) - known)
    if unknown:
        logger.warning("Ignoring unknown top-level config keys: %s", unknown)

    grids = raw.get("grids") or {}
    if not isinstance(grids, Mapping):
        raise ValueError("'grids' must map model names to parameter grids.")

    return PipelineConfig(
        seed=int(raw.get("seed", DEFAULT_SEED)),
        data=dataclass_from_dict(DataConfig, raw.get("data"), section="data"),
        split=dataclass_from_dict(SplitConfig, raw.get("split"), section="split"),
        folds=dataclass_from_dict(FoldConfig, raw.get("folds"), section="folds"),
        tuning=dataclass_from_dict(TuningConfig, raw.get("tuning"), section="tuning"),
        recipe=dict(raw.get("recipe") or {}),
        grids={str(k): dict(v or {}) for k, v in grids.items()},
        stacking=dict(raw.get("stacking") or {}),
    )


def load_pipeline_config(config_path: Path = DEFAULT_CONFIG_PATH) -> PipelineConfig:
    """Load the pipeline config, falling back to defaults when the file is absent."""
    config_path = Path(config_path)
    if not config_path.is_file():
        logger.warning("Config not found at %s; using defaults.", config_path)
        return PipelineConfig()

    with config_path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh) or {}
    if not isinstance(raw, Mapping):
        raise ValueError(f"Config at {config_path} must be a YAML mapping, got {type(raw).__name__}.")
    return parse_pipeline_config(raw)


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "DataConfig",
    "SplitConfig",
    "FoldConfig",
    "TuningConfig",
    "PipelineConfig",
    "as_bool",
    "dataclass_from_dict",
    "parse_pipeline_config",
    "load_pipeline_config",
]
