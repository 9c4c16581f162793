"""
neuromod
========

Orthogonal-regression slopes and quantile thresholding for comparing
additive vs. multiplicative neuromodulation in voxel-wise fMRI responses.

Design Principles:
    - Config-driven: every parameter lives in YAML, not in code
    - Pure per-group computation: one row per group in, one row per group out
    - Degenerate geometry is a value (``+inf``), not an exception
    - The Bayesian fit is external; this package prepares its data and joins
      its per-group summaries back on the group key

Package Layout::

    cli/          Typer CLI commands (validate, slopes, threshold, compare, run)
    data/         Long → wide pivot, group indexing, NIfTI response maps
    io/           Result-table persistence
    models/       Data preparation for the external sampler
    regression/   Orthogonal slope, grouped runner, thresholding, hypotheses
    utils/        Logging
"""

__version__ = "0.1.0"
