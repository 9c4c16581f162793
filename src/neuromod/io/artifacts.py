"""
Result Persistence
==================

Saves and loads the per-group result tables of a run together with metrics,
provenance and the config used.

Design Principles:
    - CSV for tables (R / spreadsheet interop, joins with sampler output)
    - JSON for metrics and provenance (human-readable, git-diffable)
    - YAML snapshot of the config used for each run
    - ``+inf`` slopes are written as ``inf`` and read back as floats

Output Layout::

    output_dir/
        tables/<name>.csv     one row per group
        metrics.json
        provenance.json
        config.yaml
"""

from __future__ import annotations

import json
import math
from pathlib import Path
from typing import Any, Optional

import numpy as np
import pandas as pd
import yaml

from neuromod.utils.logging import get_logger

logger = get_logger(__name__)

TABLES_DIR = "tables"


def save_results(
    output_dir: Path,
    tables: dict[str, pd.DataFrame],
    metrics: Optional[dict] = None,
    provenance: Optional[dict] = None,
    config_snapshot: Optional[dict] = None,
) -> Path:
    """Save result tables and run metadata.

    Parameters
    ----------
    output_dir : Path
        Root output directory (created if needed).
    tables : dict[str, pd.DataFrame]
        Tables to write as ``tables/<name>.csv``.
    metrics : dict or None
        Summary metrics (numpy values are converted).
    provenance : dict or None
        Provenance metadata.
    config_snapshot : dict or None
        Config to save as YAML.

    Returns
    -------
    Path
        The output directory.
    """
    output_dir = Path(output_dir)
    tables_dir = output_dir / TABLES_DIR
    tables_dir.mkdir(parents=True, exist_ok=True)

    for name, frame in tables.items():
        path = tables_dir / f"{name}.csv"
        frame.to_csv(path, index=False)
        logger.info("save | table=%s rows=%d path=%s", name, len(frame), path)

    if metrics is not None:
        _save_json(output_dir / "metrics.json", _make_serializable(metrics))
    if provenance is not None:
        _save_json(output_dir / "provenance.json", _make_serializable(provenance))
    if config_snapshot is not None:
        with open(output_dir / "config.yaml", "w") as f:
            yaml.dump(config_snapshot, f, default_flow_style=False, sort_keys=False)

    return output_dir


def load_results(output_dir: Path) -> dict:
    """Load tables and metadata written by :func:`save_results`.

    Returns
    -------
    dict with keys:
        'tables': dict[str, pd.DataFrame]
        'metrics': dict
        'provenance': dict
    """
    output_dir = Path(output_dir)
    tables_dir = output_dir / TABLES_DIR
    if not tables_dir.exists():
        raise FileNotFoundError(f"No result tables under: {output_dir}")

    result: dict[str, Any] = {
        "tables": {p.stem: pd.read_csv(p) for p in sorted(tables_dir.glob("*.csv"))},
    }
    for key in ("metrics", "provenance"):
        path = output_dir / f"{key}.json"
        if path.exists():
            with open(path) as f:
                result[key] = json.load(f)
        else:
            result[key] = {}

    logger.info("load | tables=%d path=%s", len(result["tables"]), output_dir)
    return result


def _save_json(path: Path, data: dict) -> None:
    """Save dict as JSON."""
    with open(path, "w") as f:
        json.dump(data, f, indent=2, default=str)


def _make_serializable(obj: Any) -> Any:
    """Make a nested dict/list JSON-serializable (numpy types, non-finite floats)."""
    if isinstance(obj, dict):
        return {str(k): _make_serializable(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [_make_serializable(v) for v in obj]
    elif isinstance(obj, np.ndarray):
        return _make_serializable(obj.tolist())
    elif isinstance(obj, np.integer):
        return int(obj)
    elif isinstance(obj, np.bool_):
        return bool(obj)
    elif isinstance(obj, (float, np.floating)):
        value = float(obj)
        return value if math.isfinite(value) else str(value)
    return obj
