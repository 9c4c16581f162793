"""
Table Reshaping Helpers
=======================

Long → wide pivot of condition-coded responses, explicit group indexing, and
lossless one-to-one joins of per-group result tables.

Core Algorithm::

    long  : voxel | condition | run | response      (one row per condition)
    wide  : voxel | run | <x_level> | <y_level>     (one row per replicate)
    index : {voxel: row indices into wide}          (first-occurrence order)

Design Principles:
    - Grouping is an explicit mapping key → row-index array, not implicit
      ``groupby`` semantics, so per-group loops are plain iteration
    - Input tables are never mutated
    - Every result table carries exactly one row per group, so joins on the
      group key must be one-to-one and cover the same key set
"""

from __future__ import annotations

from typing import Hashable, Iterable, Optional, Sequence

import numpy as np
import pandas as pd

from neuromod.errors import InvalidArgumentError
from neuromod.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_REPLICATE_COL = "replicate"


def require_columns(table: pd.DataFrame, columns: Iterable[str]) -> None:
    """Raise ``InvalidArgumentError`` naming any column missing from ``table``."""
    missing = [c for c in columns if c not in table.columns]
    if missing:
        raise InvalidArgumentError(
            f"Missing column(s) {missing}; available: {list(table.columns)}"
        )


def group_row_indices(keys: Sequence[Hashable] | pd.Series | np.ndarray) -> dict:
    """Map each distinct key to the positional indices of its rows.

    Parameters
    ----------
    keys : sequence
        One group key per row.

    Returns
    -------
    dict
        ``{key: np.ndarray[int]}`` in first-occurrence order of the keys.
        Row indices within a group keep their original order.
    """
    codes, uniques = pd.factorize(pd.Series(keys), sort=False)
    if len(codes) == 0:
        return {}
    if (codes < 0).any():
        raise InvalidArgumentError("Group keys must not be missing (NaN/None)")

    order = np.argsort(codes, kind="stable")
    counts = np.bincount(codes, minlength=len(uniques))
    boundaries = np.cumsum(counts)[:-1]
    return {
        key: rows
        for key, rows in zip(uniques, np.split(order, boundaries))
    }


def pivot_conditions(
    table: pd.DataFrame,
    group_col: str,
    condition_col: str,
    response_col: str,
    x_level: Hashable,
    y_level: Hashable,
    replicate_col: Optional[str] = None,
) -> pd.DataFrame:
    """Pivot a long table (one row per condition) into paired x/y columns.

    Parameters
    ----------
    table : pd.DataFrame
        Long-format responses.
    group_col : str
        Group identifier (e.g. ``'voxel'``).
    condition_col : str
        Two-level condition discriminator.
    response_col : str
        Numeric response.
    x_level, y_level : hashable
        Condition levels that become the x and y columns.
    replicate_col : str or None
        Column pairing rows across conditions (e.g. ``'run'``). If None, the
        k-th row of a group in one condition pairs with its k-th row in the
        other, under a generated ``'replicate'`` column.

    Returns
    -------
    pd.DataFrame
        Columns ``[group_col, replicate, x_level, y_level]``, one row per
        (group, replicate) present in both conditions, groups in
        first-occurrence order.

    Raises
    ------
    InvalidArgumentError
        Missing columns, identical levels, a level absent from the data,
        extra levels, or duplicated (group, condition, replicate) cells.
    """
    if x_level == y_level:
        raise InvalidArgumentError(f"x_level and y_level must differ, both are {x_level!r}")

    columns = [group_col, condition_col, response_col]
    if replicate_col is not None:
        columns.append(replicate_col)
    require_columns(table, columns)

    levels = set(table[condition_col].dropna().unique())
    absent = [lvl for lvl in (x_level, y_level) if lvl not in levels]
    if absent:
        raise InvalidArgumentError(
            f"Condition level(s) {absent} not found in '{condition_col}'; "
            f"found {sorted(map(str, levels))}"
        )
    extra = levels - {x_level, y_level}
    if extra:
        raise InvalidArgumentError(
            f"'{condition_col}' must have exactly two levels; "
            f"unexpected {sorted(map(str, extra))}"
        )

    work = table[columns].copy()
    rep = replicate_col
    if rep is None:
        rep = DEFAULT_REPLICATE_COL
        work[rep] = work.groupby([group_col, condition_col], sort=False).cumcount()

    dup = work.duplicated(subset=[group_col, condition_col, rep], keep=False)
    if dup.any():
        raise InvalidArgumentError(
            f"{int(dup.sum())} rows share a ({group_col}, {condition_col}, {rep}) cell"
        )

    x_part = work.loc[work[condition_col] == x_level, [group_col, rep, response_col]]
    y_part = work.loc[work[condition_col] == y_level, [group_col, rep, response_col]]
    wide = x_part.rename(columns={response_col: x_level}).merge(
        y_part.rename(columns={response_col: y_level}),
        on=[group_col, rep],
        how="outer",
        sort=False,
        indicator=True,
    )

    # Only replicates missing a partner row are dropped. Paired rows with a
    # NaN response are kept so the runners report the group as insufficient.
    unpaired = wide["_merge"] != "both"
    if unpaired.any():
        logger.warning(
            "pivot | dropping %d replicate(s) present in only one condition",
            int(unpaired.sum()),
        )
    n_missing = int((~unpaired & (wide[x_level].isna() | wide[y_level].isna())).sum())
    if n_missing:
        logger.warning("pivot | keeping %d paired replicate(s) with a missing response", n_missing)
    wide = wide.loc[~unpaired].drop(columns="_merge")

    # Restore first-occurrence group order from the long table.
    order = pd.Index(pd.unique(table[group_col]))
    wide = wide.assign(_order=order.get_indexer(wide[group_col]))
    wide = wide.sort_values(["_order", rep], kind="stable").drop(columns="_order")
    wide = wide.reset_index(drop=True)

    logger.info(
        "pivot | groups=%d rows=%d x=%s y=%s",
        wide[group_col].nunique(),
        len(wide),
        x_level,
        y_level,
    )
    return wide[[group_col, rep, x_level, y_level]]


def join_group_tables(
    left: pd.DataFrame,
    right: pd.DataFrame,
    group_key: str,
    validate: bool = True,
) -> pd.DataFrame:
    """One-to-one join of two per-group tables on ``group_key``.

    Parameters
    ----------
    left, right : pd.DataFrame
        Tables with one row per group, e.g. slope and threshold results, or a
        result table and per-group posterior summaries from the sampler.
    group_key : str
        Join column.
    validate : bool
        If True, both tables must hold the same key set (lossless join).

    Returns
    -------
    pd.DataFrame
        Joined table in ``left``'s row order. Overlapping non-key columns
        from ``right`` get a ``_right`` suffix.

    Raises
    ------
    InvalidArgumentError
        Missing key column, duplicated keys, or (with ``validate``) key sets
        that differ.
    """
    require_columns(left, [group_key])
    require_columns(right, [group_key])
    for name, frame in (("left", left), ("right", right)):
        if frame[group_key].duplicated().any():
            raise InvalidArgumentError(f"{name} table has duplicated '{group_key}' keys")

    if validate:
        left_keys = set(left[group_key])
        right_keys = set(right[group_key])
        if left_keys != right_keys:
            raise InvalidArgumentError(
                f"Key sets differ on '{group_key}': "
                f"{len(left_keys - right_keys)} only in left, "
                f"{len(right_keys - left_keys)} only in right"
            )

    return left.merge(
        right,
        on=group_key,
        how="left" if validate else "outer",
        suffixes=("", "_right"),
        validate="one_to_one",
        sort=False,
    )
