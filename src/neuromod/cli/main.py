"""
CLI entry point for the neuromod analysis.

Commands:
  - 'validate'        load the config and print the plan
  - 'slopes'          orthogonal slope per group
  - 'threshold'       responsivity score and quantile bucket per group
  - 'compare'         additive vs. multiplicative fit per group
  - 'sampler-data'    data block for the external Bayesian fit
  - 'run'             slopes + threshold (+ compare), joined on the group key

Every command reads the same YAML config (``--config``), loads the long
table (CSV or NIfTI maps), pivots it to the paired x / y form, and writes
its tables under ``paths.output_dir``.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import NoReturn, Optional

import typer
from pydantic import ValidationError
from rich.console import Console

from neuromod.errors import NeuromodError

app = typer.Typer(
    name="neuromod",
    help="Orthogonal slopes and quantile thresholds for additive vs. multiplicative modulation.",
    add_completion=False,
)
console = Console()


def _load(config: Path):
    """Load the config, exiting with a readable message if it is invalid."""
    from neuromod.config import load_config

    try:
        return load_config(config)
    except (FileNotFoundError, ValidationError) as e:
        console.print(f"[bold red]Invalid config:[/bold red] {e}")
        raise typer.Exit(code=1)


def _load_wide_table(cfg):
    """Read the configured input and pivot it to one row per paired observation."""
    import pandas as pd

    from neuromod.data.reshape import pivot_conditions
    from neuromod.data.voxels import load_condition_maps

    cols = cfg.columns
    if cfg.paths.input_table is not None:
        if not cfg.paths.input_table.exists():
            raise FileNotFoundError(f"Input table not found: {cfg.paths.input_table}")
        long_table = pd.read_csv(cfg.paths.input_table)
    else:
        long_table = load_condition_maps(
            [m.to_response_map() for m in cfg.paths.maps],
            cfg.paths.mask_path,
            group_col=cols.group,
            condition_col=cols.condition,
            run_col=cols.replicate or "run",
            response_col=cols.response,
        )

    if cols.condition in long_table.columns:
        long_table[cols.condition] = long_table[cols.condition].astype(str)

    return pivot_conditions(
        long_table,
        group_col=cols.group,
        condition_col=cols.condition,
        response_col=cols.response,
        x_level=cfg.conditions.x,
        y_level=cfg.conditions.y,
        replicate_col=cols.replicate,
    )


def _fail(e: Exception) -> NoReturn:
    console.print(f"[bold red]Error:[/bold red] {e}")
    raise typer.Exit(code=1)


@app.command()
def validate(config: Path = typer.Option(..., "--config", "-c", help="Path to YAML config file")) -> None:
    """Validate the config and print the analysis plan."""
    cfg = _load(config)
    source = cfg.paths.input_table or f"{len(cfg.paths.maps)} NIfTI map(s), mask={cfg.paths.mask_path}"
    console.print("[bold green]Config validated successfully.[/bold green]")
    console.print(f"  Input: {source}")
    console.print(f"  Group column: {cfg.columns.group}")
    console.print(f"  x = {cfg.conditions.x!r}, y = {cfg.conditions.y!r}")
    console.print(f"  Variance ratio: {cfg.slope.variance_ratio}")
    console.print(f"  Quantiles: {cfg.threshold.quantiles} ({cfg.threshold.method})")
    console.print(f"  Compare: {cfg.compare.enabled} ({cfg.compare.criterion})")
    console.print(f"  Output: {cfg.paths.output_dir}")


@app.command()
def slopes(config: Path = typer.Option(..., "--config", "-c", help="Path to YAML config file")) -> None:
    """Fit an orthogonal regression slope per group."""
    from neuromod.io.artifacts import save_results
    from neuromod.regression.grouped import run_grouped_slopes

    cfg = _load(config)
    try:
        wide = _load_wide_table(cfg)
        result = run_grouped_slopes(
            wide, cfg.columns.group, cfg.conditions.x, cfg.conditions.y,
            variance_ratio=cfg.slope.variance_ratio,
        )
    except (NeuromodError, FileNotFoundError) as e:
        _fail(e)

    save_results(cfg.paths.output_dir, {"slopes": result})
    console.print(f"[bold green]Slopes complete:[/bold green] {len(result)} groups")


@app.command()
def threshold(config: Path = typer.Option(..., "--config", "-c", help="Path to YAML config file")) -> None:
    """Score groups by mean(y - x) and label their quantile bucket."""
    from neuromod.io.artifacts import save_results
    from neuromod.regression.threshold import cross_threshold

    cfg = _load(config)
    try:
        wide = _load_wide_table(cfg)
        result = cross_threshold(
            wide, cfg.columns.group, cfg.conditions.x, cfg.conditions.y,
            cfg.threshold.quantiles, method=cfg.threshold.method,
        )
    except (NeuromodError, FileNotFoundError) as e:
        _fail(e)

    save_results(cfg.paths.output_dir, {"thresholds": result})
    for p, cut in result.attrs["cutpoints"].items():
        console.print(f"  q={p:g}: cut = {cut:.4f}")
    console.print(f"[bold green]Threshold complete:[/bold green] {len(result)} groups")


@app.command()
def compare(config: Path = typer.Option(..., "--config", "-c", help="Path to YAML config file")) -> None:
    """Compare additive and multiplicative fits per group."""
    from neuromod.io.artifacts import save_results
    from neuromod.regression.hypotheses import compare_modulation_models

    cfg = _load(config)
    try:
        wide = _load_wide_table(cfg)
        result = compare_modulation_models(
            wide, cfg.columns.group, cfg.conditions.x, cfg.conditions.y,
            criterion=cfg.compare.criterion,
        )
    except (NeuromodError, FileNotFoundError) as e:
        _fail(e)

    save_results(cfg.paths.output_dir, {"comparison": result})
    counts = result["preferred"].value_counts().to_dict()
    console.print(f"[bold green]Compare complete:[/bold green] {counts}")


@app.command("sampler-data")
def sampler_data(
    config: Path = typer.Option(..., "--config", "-c", help="Path to YAML config file"),
    hypothesis: str = typer.Option("multiplicative", "--hypothesis", help="additive | multiplicative"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="JSON file (default: <output_dir>/sampler_data_<hypothesis>.json)"),
) -> None:
    """Write the data block for the external Bayesian fit as JSON."""
    from neuromod.models.sampler_data import prepare_model_data

    cfg = _load(config)
    try:
        wide = _load_wide_table(cfg)
        data = prepare_model_data(
            wide, cfg.columns.group, cfg.conditions.x, cfg.conditions.y,
            hypothesis=hypothesis,
        )
    except (NeuromodError, FileNotFoundError) as e:
        _fail(e)

    if output is None:
        output = cfg.paths.output_dir / f"sampler_data_{hypothesis}.json"
    output.parent.mkdir(parents=True, exist_ok=True)
    payload = data.to_dict()
    payload["group_labels"] = [str(g) for g in data.group_labels]
    with open(output, "w") as f:
        json.dump(payload, f)
    console.print(f"[bold green]Sampler data written:[/bold green] {output} (N={data.n_obs}, J={data.n_groups})")


@app.command()
def run(
    config: Path = typer.Option(..., "--config", "-c", help="Path to YAML config file"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Validate config and print plan without running"),
) -> None:
    """Run slopes, thresholding and (optionally) the comparison, joined per group."""
    from neuromod.config import build_provenance
    from neuromod.data.reshape import join_group_tables
    from neuromod.io.artifacts import save_results
    from neuromod.regression.grouped import run_grouped_slopes
    from neuromod.regression.hypotheses import compare_modulation_models
    from neuromod.regression.threshold import cross_threshold

    if dry_run:
        validate(config)
        return

    cfg = _load(config)
    group = cfg.columns.group
    x_col, y_col = cfg.conditions.x, cfg.conditions.y

    try:
        wide = _load_wide_table(cfg)
        slope_table = run_grouped_slopes(
            wide, group, x_col, y_col, variance_ratio=cfg.slope.variance_ratio,
        )
        threshold_table = cross_threshold(
            wide, group, x_col, y_col, cfg.threshold.quantiles, method=cfg.threshold.method,
        )
        combined = join_group_tables(slope_table, threshold_table, group)
        tables = {"slopes": slope_table, "thresholds": threshold_table}
        if cfg.compare.enabled:
            comparison = compare_modulation_models(
                wide, group, x_col, y_col, criterion=cfg.compare.criterion,
            )
            combined = join_group_tables(combined, comparison, group)
            tables["comparison"] = comparison
    except (NeuromodError, FileNotFoundError) as e:
        _fail(e)

    tables["combined"] = combined
    metrics = {
        "n_groups": len(slope_table),
        "n_rows": len(wide),
        "slope_status": slope_table["status"].value_counts().to_dict(),
        "cutpoints": threshold_table.attrs["cutpoints"],
        "threshold_counts": threshold_table["threshold"].value_counts().sort_index().to_dict(),
    }
    if cfg.compare.enabled:
        metrics["preferred"] = tables["comparison"]["preferred"].value_counts().to_dict()

    save_results(
        cfg.paths.output_dir,
        tables,
        metrics=metrics,
        provenance=build_provenance(cfg),
        config_snapshot=json.loads(cfg.model_dump_json()),
    )

    console.print(
        f"[bold green]Run complete:[/bold green] {metrics['n_groups']} groups, "
        f"status={metrics['slope_status']}"
    )


if __name__ == "__main__":
    app()
