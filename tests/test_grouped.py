"""Tests for grouped orthogonal slopes (grouped.py).

Key properties:
  - One row per group, first-occurrence order
  - A degenerate or insufficient group never aborts the run
  - Other groups are unaffected by a failing neighbour
"""

from __future__ import annotations

import math

import numpy as np
import pandas as pd
import pytest

from neuromod.errors import InvalidArgumentError
from neuromod.regression.grouped import run_grouped_slopes, slopes_by_group
from neuromod.regression.orthogonal import orthogonal_slope


class TestRunGroupedSlopes:
    """End-to-end behaviour of the grouped runner."""

    def test_ideal_and_degenerate_groups(self, ab_table):
        slopes = slopes_by_group(ab_table, "voxel", "low", "high")
        assert set(slopes) == {"A", "B"}
        assert slopes["A"] == pytest.approx(2.0)
        assert slopes["B"] == math.inf

    def test_status_column(self, ab_table):
        result = run_grouped_slopes(ab_table, "voxel", "low", "high")
        assert list(result["voxel"]) == ["A", "B"]
        assert list(result["status"]) == ["ok", "vertical"]
        assert list(result["n_obs"]) == [3, 3]

    def test_one_row_per_group(self, rng):
        n_groups, n_reps = 40, 6
        table = pd.DataFrame({
            "voxel": np.repeat(np.arange(n_groups), n_reps),
            "low": rng.normal(size=n_groups * n_reps),
        })
        table["high"] = 1.7 * table["low"] + rng.normal(0, 0.1, size=len(table))
        result = run_grouped_slopes(table, "voxel", "low", "high")
        assert len(result) == n_groups
        assert result["voxel"].is_unique

    def test_degenerate_group_does_not_affect_others(self, rng):
        frames = []
        for g in range(5):
            x = rng.normal(size=8)
            frames.append(pd.DataFrame({"g": g, "x": x, "y": (g + 1) * x + rng.normal(0, 0.05, 8)}))
        clean = pd.concat(frames, ignore_index=True)
        broken = pd.concat(
            [clean, pd.DataFrame({"g": 99, "x": [2.0, 2.0, 2.0], "y": [5.0, 5.0, 5.0]})],
            ignore_index=True,
        )

        result = run_grouped_slopes(broken, "g", "x", "y").set_index("g")
        assert result.loc[99, "slope"] == math.inf
        for g in range(5):
            rows = clean[clean["g"] == g]
            assert result.loc[g, "slope"] == orthogonal_slope(rows["x"], rows["y"])
            assert result.loc[g, "status"] == "ok"

    @pytest.mark.parametrize("value", [0.1, 2.7])
    def test_inexact_constant_group_is_vertical(self, ab_table, value):
        table = pd.concat(
            [ab_table, pd.DataFrame({"voxel": ["C"] * 3, "low": [value] * 3, "high": [value] * 3})],
            ignore_index=True,
        )
        result = run_grouped_slopes(table, "voxel", "low", "high").set_index("voxel")
        assert result.loc["C", "slope"] == math.inf
        assert result.loc["C", "status"] == "vertical"
        assert result.loc["A", "status"] == "ok"

    def test_insufficient_group_recorded_not_raised(self, ab_table):
        table = pd.concat(
            [ab_table, pd.DataFrame({"voxel": ["C"], "low": [1.0], "high": [2.0]})],
            ignore_index=True,
        )
        result = run_grouped_slopes(table, "voxel", "low", "high").set_index("voxel")
        assert math.isnan(result.loc["C", "slope"])
        assert result.loc["C", "status"] == "insufficient_data"
        assert result.loc["C", "n_obs"] == 1
        assert result.loc["A", "slope"] == pytest.approx(2.0)

    def test_non_finite_rows_dropped(self):
        table = pd.DataFrame({
            "voxel": ["A"] * 4,
            "low": [1.0, 2.0, np.nan, 3.0],
            "high": [2.0, 4.0, 100.0, 6.0],
        })
        result = run_grouped_slopes(table, "voxel", "low", "high")
        assert result.loc[0, "slope"] == pytest.approx(2.0)
        assert result.loc[0, "n_obs"] == 3

    def test_group_with_only_non_finite_rows(self):
        table = pd.DataFrame({
            "voxel": ["A", "A", "B", "B"],
            "low": [1.0, 2.0, np.nan, np.nan],
            "high": [1.0, 2.0, 1.0, 2.0],
        })
        result = run_grouped_slopes(table, "voxel", "low", "high").set_index("voxel")
        assert result.loc["B", "status"] == "insufficient_data"
        assert result.loc["B", "n_obs"] == 0

    def test_first_occurrence_order(self):
        table = pd.DataFrame({
            "voxel": ["z", "a", "z", "m", "a", "m"],
            "low": [1.0, 1.0, 2.0, 1.0, 2.0, 2.0],
            "high": [1.0, 2.0, 2.0, 3.0, 4.0, 6.0],
        })
        result = run_grouped_slopes(table, "voxel", "low", "high")
        assert list(result["voxel"]) == ["z", "a", "m"]
        np.testing.assert_allclose(result["slope"], [1.0, 2.0, 3.0])

    def test_input_not_mutated(self, ab_table):
        before = ab_table.copy()
        run_grouped_slopes(ab_table, "voxel", "low", "high")
        pd.testing.assert_frame_equal(ab_table, before)

    def test_deming_ratio_passed_through(self):
        table = pd.DataFrame({"g": [1, 1, 1], "x": [0.0, 1.0, 2.0], "y": [1.0, 4.0, 7.0]})
        result = run_grouped_slopes(table, "g", "x", "y", variance_ratio=9.0)
        assert result.loc[0, "slope"] == pytest.approx(3.0)
        assert result.loc[0, "intercept"] == pytest.approx(1.0)


class TestValidation:
    """Malformed calls fail before computation."""

    def test_missing_column(self, ab_table):
        with pytest.raises(InvalidArgumentError, match="nope"):
            run_grouped_slopes(ab_table, "voxel", "nope", "high")

    def test_bad_variance_ratio(self, ab_table):
        with pytest.raises(InvalidArgumentError):
            run_grouped_slopes(ab_table, "voxel", "low", "high", variance_ratio=0.0)

    def test_empty_table(self):
        table = pd.DataFrame({"voxel": [], "low": [], "high": []})
        result = run_grouped_slopes(table, "voxel", "low", "high")
        assert result.empty
        assert list(result.columns) == ["voxel", "slope", "intercept", "n_obs", "status"]
