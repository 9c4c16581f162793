"""
Sampler Input Preparation
=========================

Builds the data block handed to the external probabilistic-programming
system that fits the Bayesian additive / multiplicative models.

Design Principles:
    - ``ModelData`` is a frozen value: built once from a wide table, passed
      by reference, never mutated
    - Groups are coded 1..J in first-occurrence order; ``group_labels[j - 1]``
      maps code j back to the original group key, so per-group posterior
      summaries can be joined onto the slope and threshold tables
    - Rows with a non-finite x or y are excluded
    - Compiling models and sampling are the external system's job
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Hashable, Literal

import numpy as np
import pandas as pd

from neuromod.data.reshape import group_row_indices, require_columns
from neuromod.errors import InsufficientDataError, InvalidArgumentError
from neuromod.utils.logging import get_logger

logger = get_logger(__name__)

Hypothesis = Literal["additive", "multiplicative"]
HYPOTHESES = ("additive", "multiplicative")


@dataclass(frozen=True)
class ModelData:
    """Sampler-ready data for one hypothesis.

    Attributes
    ----------
    hypothesis : str
        ``'additive'`` or ``'multiplicative'``.
    group : np.ndarray
        1-based group code per observation, shape (N,).
    x, y : np.ndarray
        Paired responses, shape (N,).
    group_labels : tuple
        Original group keys, ``group_labels[j - 1]`` for code j.
    """

    hypothesis: str
    group: np.ndarray
    x: np.ndarray
    y: np.ndarray
    group_labels: tuple = field(default=())

    @property
    def n_obs(self) -> int:
        return int(self.x.size)

    @property
    def n_groups(self) -> int:
        return len(self.group_labels)

    def to_dict(self) -> dict[str, Any]:
        """Data mapping in the sampler's naming (``N``, ``J``, ``group``, ``x``, ``y``)."""
        return {
            "N": self.n_obs,
            "J": self.n_groups,
            "group": self.group.tolist(),
            "x": self.x.tolist(),
            "y": self.y.tolist(),
        }

    def label_for(self, code: int) -> Hashable:
        """Original group key for a 1-based group code."""
        if not 1 <= code <= self.n_groups:
            raise InvalidArgumentError(f"Group code {code} outside 1..{self.n_groups}")
        return self.group_labels[code - 1]


def prepare_model_data(
    table: pd.DataFrame,
    group_key: str,
    x_column: str,
    y_column: str,
    hypothesis: Hypothesis = "multiplicative",
) -> ModelData:
    """Collect a wide table into a :class:`ModelData` block.

    Raises
    ------
    InvalidArgumentError
        Unknown hypothesis or missing columns.
    InsufficientDataError
        Fewer than two usable observations in total.
    """
    if hypothesis not in HYPOTHESES:
        raise InvalidArgumentError(f"hypothesis must be one of {HYPOTHESES}, got {hypothesis!r}")
    require_columns(table, [group_key, x_column, y_column])

    x_all = table[x_column].to_numpy(dtype=np.float64)
    y_all = table[y_column].to_numpy(dtype=np.float64)
    finite = np.isfinite(x_all) & np.isfinite(y_all)

    labels = []
    codes = []
    rows_kept = []
    for group, rows in group_row_indices(table[group_key]).items():
        rows = rows[finite[rows]]
        if rows.size == 0:
            continue
        labels.append(group)
        codes.append(np.full(rows.size, len(labels), dtype=np.int64))
        rows_kept.append(rows)

    n_obs = int(sum(r.size for r in rows_kept))
    if n_obs < 2:
        raise InsufficientDataError(n_obs)

    rows = np.concatenate(rows_kept)
    data = ModelData(
        hypothesis=hypothesis,
        group=np.concatenate(codes),
        x=x_all[rows],
        y=y_all[rows],
        group_labels=tuple(labels),
    )
    logger.info(
        "sampler-data | hypothesis=%s N=%d J=%d",
        hypothesis,
        data.n_obs,
        data.n_groups,
    )
    return data


def attach_group_labels(
    summary: pd.DataFrame,
    data: ModelData,
    group_key: str,
    code_column: str = "group",
) -> pd.DataFrame:
    """Replace 1-based group codes in a posterior summary with group keys.

    Parameters
    ----------
    summary : pd.DataFrame
        Per-group summary from the sampler, one row per group code.
    data : ModelData
        Block the sampler was run on.
    group_key : str
        Name of the key column to create.
    code_column : str
        Column of ``summary`` holding the group codes.

    Returns
    -------
    pd.DataFrame
        ``summary`` with ``code_column`` replaced by ``group_key``, ready for
        :func:`neuromod.data.reshape.join_group_tables`.
    """
    require_columns(summary, [code_column])
    keys = [data.label_for(int(c)) for c in summary[code_column]]
    out = summary.drop(columns=code_column)
    out.insert(0, group_key, keys)
    return out
