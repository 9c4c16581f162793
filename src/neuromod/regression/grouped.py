"""
Grouped Orthogonal Slopes
=========================

Split-apply-combine of the orthogonal slope over a wide table: one slope per
group (voxel), computed independently.

Core Algorithm::

    index = {group: row indices}          (first-occurrence order)
    for group, rows in index:
        drop rows with non-finite x or y
        try:    fit = fit_orthogonal(x[rows], y[rows])
        except InsufficientDataError:
                slope = NaN, status = 'insufficient_data'

Status Values:
    ok                 finite slope
    vertical           degenerate geometry, slope = +inf
    insufficient_data  fewer than two valid rows, slope = NaN

A failing group never aborts the run; every other group's result is the same
as if it had been fitted alone.
"""

from __future__ import annotations

import math
from typing import Hashable

import numpy as np
import pandas as pd

from neuromod.data.reshape import group_row_indices, require_columns
from neuromod.errors import InsufficientDataError, InvalidArgumentError
from neuromod.regression.orthogonal import fit_orthogonal
from neuromod.utils.logging import get_logger

logger = get_logger(__name__)

STATUS_OK = "ok"
STATUS_VERTICAL = "vertical"
STATUS_INSUFFICIENT = "insufficient_data"


def run_grouped_slopes(
    table: pd.DataFrame,
    group_key: str,
    x_column: str,
    y_column: str,
    variance_ratio: float = 1.0,
) -> pd.DataFrame:
    """Fit an orthogonal regression per group.

    Parameters
    ----------
    table : pd.DataFrame
        Wide table with one row per observation.
    group_key : str
        Group identifier column (e.g. ``'voxel'``).
    x_column, y_column : str
        Paired measurement columns (e.g. low / high contrast responses).
    variance_ratio : float
        Deming error-variance ratio; 1.0 = orthogonal regression.

    Returns
    -------
    pd.DataFrame
        One row per group with columns
        ``[group_key, 'slope', 'intercept', 'n_obs', 'status']``.

    Raises
    ------
    InvalidArgumentError
        Missing columns or an invalid ``variance_ratio``.
    """
    require_columns(table, [group_key, x_column, y_column])
    if not (math.isfinite(variance_ratio) and variance_ratio > 0):
        raise InvalidArgumentError(
            f"variance_ratio must be finite and > 0, got {variance_ratio}"
        )

    x_all = table[x_column].to_numpy(dtype=np.float64)
    y_all = table[y_column].to_numpy(dtype=np.float64)
    finite = np.isfinite(x_all) & np.isfinite(y_all)
    n_dropped = int((~finite).sum())
    if n_dropped:
        logger.warning("slopes | dropping %d row(s) with non-finite values", n_dropped)

    records = []
    for group, rows in group_row_indices(table[group_key]).items():
        rows = rows[finite[rows]]
        try:
            fit = fit_orthogonal(x_all[rows], y_all[rows], variance_ratio)
        except InsufficientDataError:
            records.append((group, math.nan, math.nan, len(rows), STATUS_INSUFFICIENT))
            continue
        status = STATUS_VERTICAL if fit.is_vertical else STATUS_OK
        records.append((group, fit.slope, fit.intercept, fit.n_obs, status))

    result = pd.DataFrame.from_records(
        records, columns=[group_key, "slope", "intercept", "n_obs", "status"]
    )

    counts = result["status"].value_counts()
    logger.info(
        "slopes | groups=%d ok=%d vertical=%d insufficient=%d",
        len(result),
        int(counts.get(STATUS_OK, 0)),
        int(counts.get(STATUS_VERTICAL, 0)),
        int(counts.get(STATUS_INSUFFICIENT, 0)),
    )
    if counts.get(STATUS_OK, 0):
        ok = result.loc[result["status"] == STATUS_OK, "slope"]
        logger.info("slopes | median=%.4f iqr=[%.4f, %.4f]", ok.median(), ok.quantile(0.25), ok.quantile(0.75))
    return result


def slopes_by_group(
    table: pd.DataFrame,
    group_key: str,
    x_column: str,
    y_column: str,
    variance_ratio: float = 1.0,
) -> dict[Hashable, float]:
    """``{group: slope}`` view of :func:`run_grouped_slopes`."""
    result = run_grouped_slopes(table, group_key, x_column, y_column, variance_ratio)
    return dict(zip(result[group_key], result["slope"]))
