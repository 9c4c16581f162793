"""Tests for table reshaping helpers (reshape.py)."""

from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from neuromod.data.reshape import group_row_indices, join_group_tables, pivot_conditions
from neuromod.errors import InvalidArgumentError
from neuromod.regression.grouped import run_grouped_slopes


class TestPivotConditions:
    """Long → wide pivot."""

    def test_with_replicate_column(self, long_table):
        wide = pivot_conditions(long_table, "voxel", "condition", "response", "low", "high", "run")
        assert list(wide.columns) == ["voxel", "run", "low", "high"]
        assert len(wide) == 9
        v101 = wide[wide["voxel"] == 101]
        np.testing.assert_allclose(v101["low"], [1.0, 2.0, 4.0])
        np.testing.assert_allclose(v101["high"], [2.0, 4.0, 8.0])

    def test_without_replicate_column_pairs_by_order(self, long_table):
        wide = pivot_conditions(
            long_table.drop(columns="run"), "voxel", "condition", "response", "low", "high"
        )
        assert list(wide.columns) == ["voxel", "replicate", "low", "high"]
        v103 = wide[wide["voxel"] == 103]
        np.testing.assert_allclose(v103["high"] - v103["low"], [3.0, 3.0, 3.0])

    def test_first_occurrence_group_order(self):
        table = pd.DataFrame({
            "g": ["z", "z", "a", "a"],
            "cond": ["y", "x", "x", "y"],
            "resp": [2.0, 1.0, 3.0, 4.0],
        })
        wide = pivot_conditions(table, "g", "cond", "resp", "x", "y")
        assert list(wide["g"]) == ["z", "a"]
        assert list(wide["x"]) == [1.0, 3.0]
        assert list(wide["y"]) == [2.0, 4.0]

    def test_unpaired_replicates_dropped(self, long_table):
        table = long_table.drop(
            long_table.index[(long_table["voxel"] == 102) & (long_table["run"] == "2")
                             & (long_table["condition"] == "high")]
        )
        wide = pivot_conditions(table, "voxel", "condition", "response", "low", "high", "run")
        assert len(wide) == 8
        assert list(wide.loc[wide["voxel"] == 102, "run"]) == ["1", "3"]

    def test_missing_responses_kept_as_paired_rows(self, long_table):
        table = long_table.copy()
        table.loc[table["voxel"] == 102, "response"] = np.nan
        wide = pivot_conditions(table, "voxel", "condition", "response", "low", "high", "run")
        assert len(wide) == 9
        assert list(wide["voxel"].unique()) == [101, 102, 103]
        assert wide.loc[wide["voxel"] == 102, ["low", "high"]].isna().all().all()

        slopes = run_grouped_slopes(wide, "voxel", "low", "high").set_index("voxel")
        assert slopes.loc[102, "status"] == "insufficient_data"
        assert slopes.loc[102, "n_obs"] == 0

    def test_input_not_mutated(self, long_table):
        before = long_table.copy()
        pivot_conditions(long_table, "voxel", "condition", "response", "low", "high")
        pd.testing.assert_frame_equal(long_table, before)

    def test_missing_level(self, long_table):
        with pytest.raises(InvalidArgumentError, match="medium"):
            pivot_conditions(long_table, "voxel", "condition", "response", "low", "medium")

    def test_extra_level(self, long_table):
        extra = pd.concat(
            [long_table, pd.DataFrame([(101, "mid", "1", 1.5)], columns=long_table.columns)],
            ignore_index=True,
        )
        with pytest.raises(InvalidArgumentError, match="exactly two levels"):
            pivot_conditions(extra, "voxel", "condition", "response", "low", "high", "run")

    def test_identical_levels(self, long_table):
        with pytest.raises(InvalidArgumentError):
            pivot_conditions(long_table, "voxel", "condition", "response", "low", "low")

    def test_duplicated_cells(self, long_table):
        doubled = pd.concat([long_table, long_table.iloc[[0]]], ignore_index=True)
        with pytest.raises(InvalidArgumentError, match="share"):
            pivot_conditions(doubled, "voxel", "condition", "response", "low", "high", "run")

    def test_missing_column(self, long_table):
        with pytest.raises(InvalidArgumentError, match="session"):
            pivot_conditions(long_table, "voxel", "condition", "response", "low", "high", "session")


class TestGroupRowIndices:
    """Explicit key → row-index mapping."""

    def test_first_occurrence_order(self):
        index = group_row_indices(["b", "a", "b", "c", "a"])
        assert list(index) == ["b", "a", "c"]
        np.testing.assert_array_equal(index["b"], [0, 2])
        np.testing.assert_array_equal(index["a"], [1, 4])
        np.testing.assert_array_equal(index["c"], [3])

    def test_covers_every_row_once(self, rng):
        keys = rng.integers(0, 7, size=200)
        index = group_row_indices(keys)
        rows = np.sort(np.concatenate(list(index.values())))
        np.testing.assert_array_equal(rows, np.arange(200))

    def test_empty(self):
        assert group_row_indices([]) == {}

    def test_missing_key(self):
        with pytest.raises(InvalidArgumentError):
            group_row_indices(["a", None, "b"])


class TestJoinGroupTables:
    """One-to-one joins on the group key."""

    def test_lossless_join(self):
        left = pd.DataFrame({"voxel": [3, 1, 2], "slope": [1.0, 2.0, 3.0]})
        right = pd.DataFrame({"voxel": [1, 2, 3], "threshold": [0.0, 0.5, 0.9]})
        joined = join_group_tables(left, right, "voxel")
        assert list(joined["voxel"]) == [3, 1, 2]
        assert list(joined["threshold"]) == [0.9, 0.0, 0.5]

    def test_overlapping_columns_suffixed(self):
        left = pd.DataFrame({"voxel": [1, 2], "n_obs": [3, 4]})
        right = pd.DataFrame({"voxel": [1, 2], "n_obs": [3, 2]})
        joined = join_group_tables(left, right, "voxel")
        assert list(joined.columns) == ["voxel", "n_obs", "n_obs_right"]

    def test_key_mismatch(self):
        left = pd.DataFrame({"voxel": [1, 2]})
        right = pd.DataFrame({"voxel": [1, 3]})
        with pytest.raises(InvalidArgumentError, match="Key sets differ"):
            join_group_tables(left, right, "voxel")

    def test_key_mismatch_allowed_without_validate(self):
        left = pd.DataFrame({"voxel": [1, 2], "a": [1.0, 2.0]})
        right = pd.DataFrame({"voxel": [1, 3], "b": [5.0, 6.0]})
        joined = join_group_tables(left, right, "voxel", validate=False)
        assert set(joined["voxel"]) == {1, 2, 3}

    def test_duplicated_keys(self):
        left = pd.DataFrame({"voxel": [1, 1]})
        right = pd.DataFrame({"voxel": [1]})
        with pytest.raises(InvalidArgumentError, match="duplicated"):
            join_group_tables(left, right, "voxel", validate=False)
