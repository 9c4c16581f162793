"""
Configuration Schema and Loader
===============================

Pydantic-based configuration for the neuromod analysis. Every parameter of a
run lives in a single, validated YAML file.

Design Principles:
    - Single source of truth for all analysis parameters
    - Pydantic validation catches typos and bad values before any data is read
    - Quantiles are checked with the same rule the thresholder applies
    - Input is either a long-format CSV or a set of NIfTI response maps

Configuration Hierarchy::

    AnalysisConfig
    ├── PathsConfig          Input table / maps / mask, output directory
    ├── ColumnsConfig        Column names of the long-format table
    ├── ConditionsConfig     Which condition levels are x and y
    ├── SlopeConfig          Orthogonal / Deming regression settings
    ├── ThresholdConfig      Quantile cut-points and estimator
    └── CompareConfig        Additive vs. multiplicative comparison

Example::

    paths:
      input_table: data/responses.csv
      output_dir: output
    conditions:
      x: low
      y: high
    threshold:
      quantiles: [0.0, 0.5, 0.9]
"""

from __future__ import annotations

import datetime
import hashlib
import json
import subprocess
from pathlib import Path
from typing import Any, Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from neuromod import __version__
from neuromod.data.voxels import ResponseMap
from neuromod.regression.threshold import validate_quantiles


# ---------------------------------------------------------------------------
# Schema sections
# ---------------------------------------------------------------------------


class MapConfig(BaseModel):
    """One NIfTI response map."""

    path: Path = Field(..., description="Path to a 3D beta/contrast image")
    condition: str = Field(..., description="Condition level of this map")
    run: str = Field(default="1", description="Run label pairing maps across conditions")

    @field_validator("run", "condition", mode="before")
    @classmethod
    def _coerce_str(cls, v: Any) -> str:
        return str(v)

    def to_response_map(self) -> ResponseMap:
        return ResponseMap(path=self.path, condition=self.condition, run=self.run)


class PathsConfig(BaseModel):
    """Filesystem paths."""

    input_table: Optional[Path] = Field(
        default=None, description="Long-format CSV (group, condition, response[, replicate])"
    )
    maps: list[MapConfig] = Field(
        default_factory=list, description="NIfTI response maps (alternative to input_table)"
    )
    mask_path: Optional[Path] = Field(
        default=None, description="Binary mask selecting voxels (required with maps)"
    )
    output_dir: Path = Field(default=Path("output"), description="Root output directory")

    @model_validator(mode="after")
    def _one_input(self) -> "PathsConfig":
        if self.input_table is None and not self.maps:
            raise ValueError("Set either paths.input_table or paths.maps")
        if self.input_table is not None and self.maps:
            raise ValueError("paths.input_table and paths.maps are mutually exclusive")
        if self.maps and self.mask_path is None:
            raise ValueError("paths.mask_path is required when paths.maps is set")
        return self


class ColumnsConfig(BaseModel):
    """Column names of the long-format table."""

    group: str = Field(default="voxel", description="Group identifier column")
    condition: str = Field(default="condition", description="Two-level condition column")
    response: str = Field(default="response", description="Numeric response column")
    replicate: Optional[str] = Field(
        default="run",
        description="Column pairing rows across conditions; null = order of appearance",
    )


class ConditionsConfig(BaseModel):
    """Condition levels mapped onto the x and y axes."""

    x: str = Field(default="low", description="Baseline condition level (x axis)")
    y: str = Field(default="high", description="Modulated condition level (y axis)")

    @field_validator("x", "y", mode="before")
    @classmethod
    def _coerce_str(cls, v: Any) -> str:
        return str(v)

    @model_validator(mode="after")
    def _distinct(self) -> "ConditionsConfig":
        if self.x == self.y:
            raise ValueError(f"conditions.x and conditions.y must differ, both are {self.x!r}")
        return self


class SlopeConfig(BaseModel):
    """Orthogonal regression settings."""

    variance_ratio: float = Field(
        default=1.0,
        gt=0,
        description="Error variance of y / error variance of x (1.0 = orthogonal regression)",
    )


class ThresholdConfig(BaseModel):
    """Quantile thresholding settings."""

    quantiles: list[float] = Field(
        default_factory=lambda: [0.0, 0.5, 0.9],
        description="Ascending probabilities in [0, 1)",
    )
    method: str = Field(
        default="linear",
        description="numpy.quantile method; 'linear' = p*(n-1) interpolation",
    )

    @field_validator("quantiles")
    @classmethod
    def _check_quantiles(cls, v: list[float]) -> list[float]:
        return validate_quantiles(v)


class CompareConfig(BaseModel):
    """Additive vs. multiplicative comparison settings."""

    enabled: bool = Field(default=True, description="Run the comparison in 'run'")
    criterion: Literal["aic", "bic"] = Field(default="aic", description="Information criterion")


class AnalysisConfig(BaseModel):
    """Top-level analysis configuration."""

    paths: PathsConfig
    columns: ColumnsConfig = Field(default_factory=ColumnsConfig)
    conditions: ConditionsConfig = Field(default_factory=ConditionsConfig)
    slope: SlopeConfig = Field(default_factory=SlopeConfig)
    threshold: ThresholdConfig = Field(default_factory=ThresholdConfig)
    compare: CompareConfig = Field(default_factory=CompareConfig)


# ---------------------------------------------------------------------------
# Loading helpers
# ---------------------------------------------------------------------------


def load_config(path: str | Path) -> AnalysisConfig:
    """Load and validate a YAML config file.

    Parameters
    ----------
    path : str | Path
        Path to YAML config file.

    Returns
    -------
    AnalysisConfig
        Validated configuration object.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config not found: {path}")
    with open(path, "r") as f:
        raw = yaml.safe_load(f) or {}
    return AnalysisConfig(**raw)


def save_config_snapshot(cfg: AnalysisConfig, dest: Path) -> None:
    """Save a YAML snapshot of the config for provenance."""
    dest.parent.mkdir(parents=True, exist_ok=True)
    data = json.loads(cfg.model_dump_json())
    with open(dest, "w") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False)


def build_provenance(cfg: AnalysisConfig) -> dict:
    """Build a provenance dictionary for result tracking.

    Parameters
    ----------
    cfg : AnalysisConfig
        Current configuration.

    Returns
    -------
    dict
        Timestamp, package version, config hash and git commit.
    """
    prov: dict[str, Any] = {
        "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        "neuromod_version": __version__,
        "config_hash": hashlib.sha256(cfg.model_dump_json().encode()).hexdigest(),
    }
    try:
        git_hash = subprocess.check_output(
            ["git", "rev-parse", "HEAD"], stderr=subprocess.DEVNULL
        ).decode().strip()
        prov["git_commit"] = git_hash
    except (OSError, subprocess.CalledProcessError):
        prov["git_commit"] = "unavailable"
    return prov
