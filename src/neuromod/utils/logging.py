"""
Logging for neuromod runs
=========================

Every module logs through the root logger with one-line, pipe-delimited
messages: a stage name, then ``key=value`` fields. Console output goes
through Rich; a plain-text copy can be written to a file for cluster jobs.

Messages emitted by the analysis::

    pivot     | groups=5120 rows=15360 x=low y=high
    pivot     | dropping 4 replicate(s) present in only one condition
    mask      | file=amygdala.nii.gz voxels=247
    slopes    | groups=247 ok=240 vertical=5 insufficient=2
    slopes    | median=1.1832 iqr=[0.9410, 1.4022]
    threshold | q=0.9 cut=0.4120 method=linear        (metric)
    compare   | criterion=aic groups=247 additive=61 multiplicative=180 undetermined=6
    save      | table=combined rows=247 path=output/tables/combined.csv

Dropped rows and degenerate groups are warnings; cut-points are tagged
``metric`` so they stand out on the console.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

SEVERITY_COLORS = {
    "info": "cyan",
    "ok": "green",
    "warn": "yellow",
    "error": "red",
    "metric": "magenta",
}

_FILE_FORMAT = "[%(asctime)s] %(levelname)-7s %(name)s | %(message)s"

_console = Console(stderr=True)
_configured = False
_log_path: Optional[Path] = None


def configure_logging(
    level: str = "INFO",
    log_dir: Optional[str | Path] = None,
    log_file: Optional[str] = None,
) -> Optional[Path]:
    """Install the console handler and, with ``log_dir``, a file handler.

    Only the first call has an effect. Returns the log file path, if any.
    """
    global _configured, _log_path

    if _configured:
        return _log_path

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    console_handler = RichHandler(
        console=_console,
        rich_tracebacks=True,
        show_path=False,
        markup=True,
    )
    console_handler.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(console_handler)

    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        name = log_file or f"neuromod_{datetime.now():%Y%m%d_%H%M%S}.log"
        _log_path = log_dir / name
        file_handler = logging.FileHandler(_log_path, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT))
        root.addHandler(file_handler)

    _configured = True
    return _log_path


def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """Module logger; configures console logging on first use."""
    if not _configured:
        configure_logging()

    logger = logging.getLogger(name)
    if level is not None:
        logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    return logger


def log(msg: str, severity: str = "info") -> None:
    """Log ``msg`` under the ``neuromod`` logger, coloured by ``severity``.

    ``warn`` and ``error`` map to the matching log levels; the other
    severities are INFO lines wrapped in their colour.
    """
    logger = get_logger("neuromod")
    if severity == "error":
        logger.error(msg)
    elif severity == "warn":
        logger.warning(msg)
    else:
        colour = SEVERITY_COLORS.get(severity, "white")
        logger.info(f"[{colour}]{msg}[/{colour}]")
