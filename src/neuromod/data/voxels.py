"""
Voxel Response Maps
===================

Reads per-condition, per-run 3D response maps (beta or contrast images) and
flattens the in-mask voxels into the long-format table the pivot expects.

Core Algorithm::

    1. Load the first map; it defines the reference grid
    2. Resample the binary mask to that grid (nearest neighbour)
    3. For every map: check grid, take in-mask voxels
    4. Drop voxels that are zero or NaN in every map ("removed voxels")
    5. Stack into rows: voxel | condition | run | response

Design Principles:
    - ``voxel`` is the linear index into the reference volume, so results can
      be written back into a NIfTI map by the caller
    - 4D maps contribute their first volume only
    - Masks may come from any atlas or space; nilearn resamples them
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

import nibabel as nib
import numpy as np
import pandas as pd
from nilearn.image import resample_to_img

from neuromod.errors import InvalidArgumentError
from neuromod.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ResponseMap:
    """One 3D response image and its labels.

    Attributes
    ----------
    path : Path
        NIfTI file.
    condition : str
        Condition level (e.g. ``'low'`` / ``'high'`` contrast).
    run : str
        Run or session label pairing maps across conditions.
    """

    path: Path
    condition: str
    run: str = "1"


def _load_volume(path: Path) -> tuple[nib.Nifti1Image, np.ndarray]:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Response map not found: {path}")
    img = nib.load(str(path))
    data = np.asarray(img.dataobj, dtype=np.float64)
    if data.ndim == 4:
        data = data[..., 0]
    if data.ndim != 3:
        raise InvalidArgumentError(f"Expected a 3D map, got shape {data.shape}: {path}")
    return img, data


def load_mask_indices(mask_path: Path, reference_img: nib.Nifti1Image) -> np.ndarray:
    """Linear indices of mask voxels on the grid of ``reference_img``.

    Parameters
    ----------
    mask_path : Path
        Binary NIfTI mask.
    reference_img : nib.Nifti1Image
        Image defining the target grid.

    Returns
    -------
    np.ndarray
        1D integer array of in-mask voxel indices.
    """
    mask_path = Path(mask_path)
    if not mask_path.exists():
        raise FileNotFoundError(f"Mask not found: {mask_path}")
    mask_img = nib.load(str(mask_path))
    mask_resampled = resample_to_img(mask_img, reference_img, interpolation="nearest")
    mask_data = np.asarray(mask_resampled.dataobj).astype(bool)
    if mask_data.ndim == 4:
        mask_data = mask_data[..., 0]

    indices = np.flatnonzero(mask_data.ravel())
    logger.info("mask | file=%s voxels=%d", mask_path.name, len(indices))
    return indices


def load_condition_maps(
    maps: Sequence[ResponseMap],
    mask_path: Path,
    group_col: str = "voxel",
    condition_col: str = "condition",
    run_col: str = "run",
    response_col: str = "response",
) -> pd.DataFrame:
    """Build a long-format voxel table from NIfTI response maps.

    Parameters
    ----------
    maps : sequence of ResponseMap
        Response images with condition and run labels.
    mask_path : Path
        Binary mask selecting the voxels to analyse.
    group_col, condition_col, run_col, response_col : str
        Output column names.

    Returns
    -------
    pd.DataFrame
        One row per (voxel, map) with columns
        ``[group_col, condition_col, run_col, response_col]``.

    Raises
    ------
    FileNotFoundError
        A map or the mask does not exist.
    InvalidArgumentError
        No maps given, or maps on different grids.
    """
    if not maps:
        raise InvalidArgumentError("At least one response map is required")

    ref_img, ref_data = _load_volume(maps[0].path)
    indices = load_mask_indices(mask_path, ref_img)

    columns = []
    for rmap in maps:
        if rmap is maps[0]:
            data = ref_data
        else:
            _, data = _load_volume(rmap.path)
        if data.shape != ref_data.shape:
            raise InvalidArgumentError(
                f"Map {rmap.path} has shape {data.shape}, expected {ref_data.shape}"
            )
        columns.append(data.ravel()[indices])

    values = np.column_stack(columns)  # (V_mask, n_maps)
    removed = np.all((values == 0) | np.isnan(values), axis=1)
    if removed.any():
        logger.info("mask | removed %d voxel(s) empty in every map", int(removed.sum()))
    values = values[~removed]
    active = indices[~removed]

    n_vox, n_maps = values.shape
    table = pd.DataFrame({
        group_col: np.tile(active, n_maps),
        condition_col: np.repeat([str(m.condition) for m in maps], n_vox),
        run_col: np.repeat([str(m.run) for m in maps], n_vox),
        response_col: values.T.ravel(),
    })

    logger.info("maps | maps=%d voxels=%d rows=%d", n_maps, n_vox, len(table))
    return table
