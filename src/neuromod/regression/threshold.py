"""
Responsivity Thresholding
=========================

Scores each group by its mean response difference ``mean(y - x)`` and labels
it with the highest quantile cut-point of the score distribution it reaches.

Core Algorithm::

    score[g]  = mean over rows of g of (y - x)
    cut[p]    = quantile(scores, p)              for p in quantiles
    label[g]  = max { p : score[g] >= cut[p] }   (0.0 if none)

Quantile Convention:
    The default ``method='linear'`` places quantile p at position
    ``p * (n - 1)`` of the sorted scores and interpolates linearly between
    the floor and ceil order statistics (numpy's default, R type 7).
    Example: scores 1..100, p = 0.9 → position 89.1 → cut = 90.1.
    Any other ``numpy.quantile`` method name may be passed instead.

Cut-points are computed once over the per-group scores, never over rows, so
a group with many replicates weighs the same as a group with few.
"""

from __future__ import annotations

import math
from typing import Sequence

import numpy as np
import pandas as pd

from neuromod.data.reshape import group_row_indices, require_columns
from neuromod.errors import InvalidArgumentError
from neuromod.utils.logging import get_logger, log

logger = get_logger(__name__)

SCORE_COL = "score"
LABEL_COL = "threshold"


def validate_quantiles(quantiles: Sequence[float]) -> list[float]:
    """Check quantile probabilities and return them as floats.

    Rules: non-empty, every value in ``[0, 1)``, non-decreasing. Duplicates
    are allowed and simply produce redundant buckets.

    Raises
    ------
    InvalidArgumentError
        If any rule is violated.
    """
    try:
        probs = [float(q) for q in quantiles]
    except (TypeError, ValueError) as exc:
        raise InvalidArgumentError(f"Quantiles must be numbers: {quantiles!r}") from exc

    if not probs:
        raise InvalidArgumentError("At least one quantile is required")
    bad = [q for q in probs if not (0.0 <= q < 1.0)]
    if bad:
        raise InvalidArgumentError(f"Quantiles must lie in [0, 1), got {bad}")
    if any(b < a for a, b in zip(probs, probs[1:])):
        raise InvalidArgumentError(f"Quantiles must be ascending, got {probs}")
    return probs


def quantile_cutpoints(
    scores: Sequence[float] | np.ndarray,
    quantiles: Sequence[float],
    method: str = "linear",
) -> np.ndarray:
    """Quantile values of the finite ``scores`` at each probability.

    Returns an array of NaN when no score is finite.
    """
    probs = validate_quantiles(quantiles)
    values = np.asarray(scores, dtype=np.float64)
    values = values[np.isfinite(values)]
    if values.size == 0:
        return np.full(len(probs), np.nan)
    return np.quantile(values, probs, method=method)


def group_scores(
    table: pd.DataFrame,
    group_key: str,
    x_column: str,
    y_column: str,
) -> pd.DataFrame:
    """Per-group mean of ``y - x`` over rows where both are finite.

    Groups without a finite row score NaN.
    """
    require_columns(table, [group_key, x_column, y_column])
    diff = (
        table[y_column].to_numpy(dtype=np.float64)
        - table[x_column].to_numpy(dtype=np.float64)
    )
    finite = np.isfinite(diff)

    keys = []
    scores = []
    for group, rows in group_row_indices(table[group_key]).items():
        rows = rows[finite[rows]]
        keys.append(group)
        scores.append(float(diff[rows].mean()) if rows.size else math.nan)
    return pd.DataFrame({group_key: keys, SCORE_COL: np.asarray(scores, dtype=np.float64)})


def assign_thresholds(
    scores: np.ndarray,
    quantiles: Sequence[float],
    cutpoints: np.ndarray,
) -> np.ndarray:
    """Label each score with the largest probability whose cut-point it meets."""
    probs = np.asarray(quantiles, dtype=np.float64)
    scores = np.asarray(scores, dtype=np.float64)
    labels = np.where(np.isfinite(scores), 0.0, np.nan)
    # Ascending probabilities give non-decreasing cut-points, so later
    # assignments overwrite earlier ones with larger labels.
    for p, cut in zip(probs, cutpoints):
        labels[scores >= cut] = p
    return labels


def cross_threshold(
    table: pd.DataFrame,
    group_key: str,
    x_column: str,
    y_column: str,
    quantiles: Sequence[float],
    method: str = "linear",
) -> pd.DataFrame:
    """Score groups by mean(y - x) and label them by quantile bucket.

    Parameters
    ----------
    table : pd.DataFrame
        Wide table with one row per observation.
    group_key : str
        Group identifier column.
    x_column, y_column : str
        Paired measurement columns.
    quantiles : sequence of float
        Ascending probabilities in ``[0, 1)``.
    method : str
        ``numpy.quantile`` interpolation method.

    Returns
    -------
    pd.DataFrame
        One row per group with columns ``[group_key, 'score', 'threshold']``.
        The cut-points are attached as ``result.attrs['cutpoints']``
        (``{p: value}``).

    Raises
    ------
    InvalidArgumentError
        Malformed quantiles or missing columns, before any computation.
    """
    probs = validate_quantiles(quantiles)
    require_columns(table, [group_key, x_column, y_column])

    result = group_scores(table, group_key, x_column, y_column)
    cuts = quantile_cutpoints(result[SCORE_COL].to_numpy(), probs, method=method)
    result[LABEL_COL] = assign_thresholds(result[SCORE_COL].to_numpy(), probs, cuts)
    result.attrs["cutpoints"] = {p: float(c) for p, c in zip(probs, cuts)}

    for p, c in zip(probs, cuts):
        log(f"threshold | q={p:g} cut={c:.4f} method={method}", severity="metric")
    logger.info(
        "threshold | groups=%d unscored=%d",
        len(result),
        int(result[SCORE_COL].isna().sum()),
    )
    return result


def threshold_membership(
    result: pd.DataFrame,
    quantiles: Sequence[float],
    group_key: str,
) -> pd.DataFrame:
    """Expand a threshold result to one row per (group, cut-point met).

    A group labelled 0.9 with ``quantiles=[0, 0.5, 0.9]`` appears three
    times, once per bucket it belongs to, which is the layout used for
    faceting by threshold.

    Returns
    -------
    pd.DataFrame
        Columns ``[group_key, 'score', 'threshold']``.
    """
    probs = sorted(set(validate_quantiles(quantiles)))
    require_columns(result, [group_key, SCORE_COL, LABEL_COL])

    frames = []
    for p in probs:
        met = result.loc[result[LABEL_COL] >= p, [group_key, SCORE_COL]]
        frames.append(met.assign(**{LABEL_COL: p}))
    return pd.concat(frames, ignore_index=True)
