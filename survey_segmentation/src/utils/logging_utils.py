"""Logging setup for the segment-classification entrypoints.

Library modules only call ``logging.getLogger(__name__)``. Handlers are
attached by the entrypoints:

- ``run_all_experiments.py`` configures the root logger once, with a console
  handler and ``outputs/logs/run_all.log``; the steps it calls log into the
  same file.
- ``run_models`` / ``run_stacking`` / ``simulate`` started on their own get a
  console handler via :func:`ensure_root_logging`.

Grid searches over five models take minutes, so :func:`log_step` brackets each
launcher step with a banner and its wall-clock time.
"""

from __future__ import annotations

import logging
import sys
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Union

DEFAULT_LOG_FORMAT = "[%(asctime)s] %(levelname)s - %(name)s - %(message)s"

# font discovery and PNG encoding flood DEBUG output while figures are saved
QUIET_LOGGERS = ("matplotlib", "PIL")


def _log_path(log_file: Union[str, Path], logger_name: Optional[str]) -> Path:
    path = Path(log_file)
    if path.is_dir() or str(log_file).endswith(("/", "\\")):
        path = path / f"{(logger_name or 'root').replace('/', '_')}.log"
    return path


def _attach(logger: logging.Logger, handler: logging.Handler, level: int) -> None:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(DEFAULT_LOG_FORMAT))
    logger.addHandler(handler)


def configure_logging(
    level: int = logging.INFO,
    log_file: Optional[Union[str, Path]] = None,
    logger_name: Optional[str] = None,
    *,
    force: bool = True,
    capture_warnings: bool = True,
) -> logging.Logger:
    """Attach console (and optional file) handlers and return the logger.

    ``log_file`` may be a directory, in which case ``<logger_name or root>.log``
    is created inside it. With ``force`` existing handlers are closed first,
    so repeated calls from notebooks or tests do not duplicate output.
    ``capture_warnings`` routes sklearn's ConvergenceWarning and friends into
    the same log.
    """
    logger = logging.getLogger(logger_name)
    logger.setLevel(level)

    if force:
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()

    _attach(logger, logging.StreamHandler(stream=sys.stderr), level)

    if log_file is not None:
        path = _log_path(log_file, logger_name)
        path.parent.mkdir(parents=True, exist_ok=True)
        _attach(logger, logging.FileHandler(path, encoding="utf-8"), level)

    # a named logger keeps its records out of the root's handlers
    if logger_name is not None:
        logger.propagate = False

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    if capture_warnings:
        logging.captureWarnings(True)

    return logger


def ensure_root_logging(level: int = logging.INFO) -> logging.Logger:
    """Root logger for a single step; keeps a launcher's handlers if present."""
    root = logging.getLogger()
    if not root.handlers:
        configure_logging(level)
    return root


@contextmanager
def log_step(logger: logging.Logger, name: str) -> Iterator[None]:
    """Log a banner before ``name`` and its elapsed time once it succeeds.

    Failures propagate unlogged; the caller decides whether they are fatal.
    """
    logger.info("\n===== Running: %s =====", name)
    start = time.perf_counter()
    yield
    logger.info("✅ Completed: %s (%.1fs)", name, time.perf_counter() - start)


__all__ = ["DEFAULT_LOG_FORMAT", "QUIET_LOGGERS", "configure_logging", "ensure_root_logging", "log_step"]
