"""Project-wide utilities (logging, seeds, YAML config)."""

from __future__ import annotations

from .config_utils import (
    DEFAULT_CONFIG_PATH,
    DataConfig,
    FoldConfig,
    PipelineConfig,
    SplitConfig,
    TuningConfig,
    as_bool,
    dataclass_from_dict,
    load_pipeline_config,
    parse_pipeline_config,
)
from .logging_utils import DEFAULT_LOG_FORMAT, configure_logging, ensure_root_logging, log_step
from .seed_utils import DEFAULT_SEED, reproducible_numpy_rng, set_global_seed, temp_seed

__all__ = [
    "configure_logging",
    "ensure_root_logging",
    "log_step",
    "DEFAULT_LOG_FORMAT",
    "DEFAULT_SEED",
    "set_global_seed",
    "temp_seed",
    "reproducible_numpy_rng",
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
