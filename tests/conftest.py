"""Shared pytest fixtures for neuromod tests."""

from __future__ import annotations

import numpy as np
import pandas as pd
import pytest


@pytest.fixture()
def rng():
    """Deterministic random generator."""
    return np.random.default_rng(42)


@pytest.fixture()
def ab_table():
    """Group A on the line y = 2x, group B a single repeated point."""
    return pd.DataFrame({
        "voxel": ["A", "A", "A", "B", "B", "B"],
        "low": [1.0, 2.0, 3.0, 1.0, 1.0, 1.0],
        "high": [2.0, 4.0, 6.0, 1.0, 1.0, 1.0],
    })


@pytest.fixture()
def long_table():
    """Long-format responses: 3 voxels × 2 conditions × 3 runs."""
    rows = []
    gains = {101: 2.0, 102: 0.5, 103: 1.0}
    offsets = {101: 0.0, 102: 1.0, 103: 3.0}
    for voxel in (101, 102, 103):
        for run, low in zip(("1", "2", "3"), (1.0, 2.0, 4.0)):
            rows.append((voxel, "low", run, low))
            rows.append((voxel, "high", run, gains[voxel] * low + offsets[voxel]))
    return pd.DataFrame(rows, columns=["voxel", "condition", "run", "response"])
