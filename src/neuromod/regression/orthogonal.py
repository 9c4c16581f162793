"""
Orthogonal (Total Least Squares) Regression
===========================================

Closed-form slope of the errors-in-variables line through paired
measurements, e.g. a voxel's response under low vs. high contrast.

Core Algorithm::

    1. Center x and y on their means
    2. Scatter matrix S = [[Sxx, Sxy], [Sxy, Syy]] of the centered pairs
    3. Direction of the fitted line = eigenvector of the larger eigenvalue
       of S (first principal component)
    4. slope = v_y / v_x

The 2×2 symmetric eigenproblem is solved in closed form. With
``d = (Syy - Sxx) / 2`` and ``r = hypot(d, Sxy)`` the larger eigenvalue is
``(Sxx + Syy) / 2 + r`` and the slope is ``(d + r) / Sxy``, evaluated as
``Sxy / (r - d)`` when ``d < 0`` to avoid cancellation.

Degenerate Geometry:
    A scatter with no variance, an exactly vertical first component, or an
    isotropic cloud (``Sxx == Syy``, ``Sxy == 0``) has no finite slope. These
    return ``+inf``; they are valid outcomes, not errors.

Deming Regression:
    ``variance_ratio`` is δ = σ²(y error) / σ²(x error). Dividing y by √δ
    makes the errors isotropic, so the Deming slope is √δ times the TLS
    slope of the rescaled data. δ = 1 is plain orthogonal regression.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from neuromod.errors import InsufficientDataError, InvalidArgumentError

VERTICAL = math.inf


@dataclass(frozen=True)
class OrthogonalFit:
    """Result of an orthogonal-regression fit.

    Attributes
    ----------
    slope : float
        Slope of the fitted line, ``+inf`` for degenerate geometry.
    intercept : float
        Intercept of the line through the centroid; NaN when the slope is
        not finite.
    n_obs : int
        Number of paired observations.
    eigenvalues : tuple[float, float]
        Larger and smaller eigenvalue of the (rescaled) scatter matrix.
    """

    slope: float
    intercept: float
    n_obs: int
    eigenvalues: tuple[float, float]

    @property
    def is_vertical(self) -> bool:
        return math.isinf(self.slope)

    @property
    def explained_ratio(self) -> float:
        """Share of total scatter along the first component (NaN if none)."""
        total = self.eigenvalues[0] + self.eigenvalues[1]
        if total <= 0:
            return math.nan
        return self.eigenvalues[0] / total


def _as_pairs(xs: Sequence[float], ys: Sequence[float]) -> tuple[np.ndarray, np.ndarray]:
    x = np.asarray(xs, dtype=np.float64).ravel()
    y = np.asarray(ys, dtype=np.float64).ravel()
    if x.shape != y.shape:
        raise InvalidArgumentError(
            f"xs and ys must have equal length, got {x.size} and {y.size}"
        )
    if x.size < 2:
        raise InsufficientDataError(x.size)
    if not (np.all(np.isfinite(x)) and np.all(np.isfinite(y))):
        raise InvalidArgumentError("xs and ys must be finite")
    return x, y


def _principal_slope(sxx: float, syy: float, sxy: float) -> tuple[float, float, float]:
    """Slope of the first eigenvector of [[sxx, sxy], [sxy, syy]].

    Returns ``(slope, lambda_max, lambda_min)``.
    """
    half_trace = 0.5 * (sxx + syy)
    d = 0.5 * (syy - sxx)
    r = math.hypot(d, sxy)
    lam_max = half_trace + r
    lam_min = half_trace - r

    if sxy == 0.0:
        # Axis-aligned: horizontal if x dominates, otherwise no finite slope.
        slope = 0.0 if sxx > syy else VERTICAL
    elif d >= 0.0:
        slope = (d + r) / sxy
    else:
        slope = sxy / (r - d)
    return slope, lam_max, lam_min


def fit_orthogonal(
    xs: Sequence[float],
    ys: Sequence[float],
    variance_ratio: float = 1.0,
) -> OrthogonalFit:
    """Fit an orthogonal (Deming) regression line.

    Parameters
    ----------
    xs, ys : sequence of float
        Paired finite measurements of equal length.
    variance_ratio : float
        δ = error variance of y / error variance of x. 1.0 = equal variances.

    Returns
    -------
    OrthogonalFit

    Raises
    ------
    InsufficientDataError
        Fewer than two observations.
    InvalidArgumentError
        Unequal lengths, non-finite values, or a non-positive
        ``variance_ratio``.
    """
    if not (math.isfinite(variance_ratio) and variance_ratio > 0):
        raise InvalidArgumentError(
            f"variance_ratio must be finite and > 0, got {variance_ratio}"
        )
    x, y = _as_pairs(xs, ys)

    scale = math.sqrt(variance_ratio)
    x_mean = float(x.mean())
    y_mean = float(y.mean())
    # Constant sequences centre to exact zeros; x - mean(x) can leave rounding residue.
    dx = np.zeros_like(x) if np.ptp(x) == 0 else x - x_mean
    dy = np.zeros_like(y) if np.ptp(y) == 0 else (y - y_mean) / scale

    sxx = float(dx @ dx)
    syy = float(dy @ dy)
    sxy = float(dx @ dy)

    slope, lam_max, lam_min = _principal_slope(sxx, syy, sxy)
    if math.isfinite(slope):
        slope *= scale
        intercept = y_mean - slope * x_mean
    else:
        intercept = math.nan

    return OrthogonalFit(
        slope=slope,
        intercept=intercept,
        n_obs=int(x.size),
        eigenvalues=(lam_max, lam_min),
    )


def orthogonal_slope(xs: Sequence[float], ys: Sequence[float]) -> float:
    """Orthogonal-regression slope of ``ys`` on ``xs`` (equal error variances).

    ``+inf`` when the data have no finite principal direction.
    """
    return fit_orthogonal(xs, ys).slope
