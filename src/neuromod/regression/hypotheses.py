"""
Additive vs. Multiplicative Modulation (frequentist)
====================================================

Per-group comparison of the two neuromodulation hypotheses for paired
responses x (baseline condition) and y (modulated condition):

    additive        y = x + b + e        one free parameter: offset b
    multiplicative  y = a * x + e        one free parameter: gain a

Both are ordinary least squares fits (statsmodels OLS). Having the same
number of parameters, they are compared by information criterion:

    delta = IC(additive) - IC(multiplicative)
    delta > 0  → multiplicative preferred
    delta < 0  → additive preferred

Assumptions / deviations:
    - Errors are on y only; x is treated as fixed (the orthogonal slope is
      the errors-in-variables counterpart of the gain)
    - The Bayesian version of this comparison runs in the external sampler;
      see ``neuromod.models.sampler_data``
"""

from __future__ import annotations

import math
from typing import Literal

import numpy as np
import pandas as pd

from neuromod.data.reshape import group_row_indices, require_columns
from neuromod.errors import InvalidArgumentError
from neuromod.utils.logging import get_logger

logger = get_logger(__name__)

ADDITIVE = "additive"
MULTIPLICATIVE = "multiplicative"
UNDETERMINED = "undetermined"

_COLUMNS = [
    "n_obs",
    "offset",
    "gain",
    "ic_additive",
    "ic_multiplicative",
    "delta_ic",
    "preferred",
]


def fit_modulation_models(x: np.ndarray, y: np.ndarray, criterion: str = "aic") -> dict:
    """Fit both hypotheses to one group's paired responses.

    Parameters
    ----------
    x, y : np.ndarray
        Finite paired responses, at least two rows.
    criterion : {'aic', 'bic'}
        Information criterion used for the comparison.

    Returns
    -------
    dict
        Keys as in :func:`compare_modulation_models` columns.
    """
    import statsmodels.api as sm

    additive = sm.OLS(y - x, np.ones_like(x)).fit()
    multiplicative = sm.OLS(y, x.reshape(-1, 1)).fit()

    ic_add = float(getattr(additive, criterion))
    ic_mul = float(getattr(multiplicative, criterion))
    delta = ic_add - ic_mul
    if math.isnan(delta) or delta == 0:
        preferred = UNDETERMINED
    elif delta > 0:
        preferred = MULTIPLICATIVE
    else:
        preferred = ADDITIVE

    return {
        "n_obs": int(x.size),
        "offset": float(additive.params[0]),
        "gain": float(multiplicative.params[0]),
        "ic_additive": ic_add,
        "ic_multiplicative": ic_mul,
        "delta_ic": delta,
        "preferred": preferred,
    }


def compare_modulation_models(
    table: pd.DataFrame,
    group_key: str,
    x_column: str,
    y_column: str,
    criterion: Literal["aic", "bic"] = "aic",
) -> pd.DataFrame:
    """Compare additive and multiplicative fits for every group.

    Parameters
    ----------
    table : pd.DataFrame
        Wide table with one row per observation.
    group_key : str
        Group identifier column.
    x_column, y_column : str
        Baseline and modulated responses.
    criterion : {'aic', 'bic'}
        Information criterion.

    Returns
    -------
    pd.DataFrame
        One row per group: ``group_key``, ``n_obs``, ``offset``, ``gain``,
        ``ic_additive``, ``ic_multiplicative``, ``delta_ic``, ``preferred``.
        Groups with fewer than two finite rows get NaN and
        ``preferred='undetermined'``.
    """
    if criterion not in ("aic", "bic"):
        raise InvalidArgumentError(f"criterion must be 'aic' or 'bic', got {criterion!r}")
    require_columns(table, [group_key, x_column, y_column])

    x_all = table[x_column].to_numpy(dtype=np.float64)
    y_all = table[y_column].to_numpy(dtype=np.float64)
    finite = np.isfinite(x_all) & np.isfinite(y_all)

    records = []
    for group, rows in group_row_indices(table[group_key]).items():
        rows = rows[finite[rows]]
        if rows.size < 2:
            row = dict.fromkeys(_COLUMNS, math.nan)
            row.update(n_obs=int(rows.size), preferred=UNDETERMINED)
        else:
            row = fit_modulation_models(x_all[rows], y_all[rows], criterion)
        records.append({group_key: group, **row})

    result = pd.DataFrame.from_records(records, columns=[group_key, *_COLUMNS])

    counts = result["preferred"].value_counts()
    logger.info(
        "compare | criterion=%s groups=%d additive=%d multiplicative=%d undetermined=%d",
        criterion,
        len(result),
        int(counts.get(ADDITIVE, 0)),
        int(counts.get(MULTIPLICATIVE, 0)),
        int(counts.get(UNDETERMINED, 0)),
    )
    return result
