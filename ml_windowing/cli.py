"""
ML windowing pipeline — CLI entry point.

All commands follow this pattern:
  1. Load ``AppConfig`` via ``load_config()``.
  2. Configure logging.
  3. Validate inputs.
  4. Execute the stage.
  5. Report result to stdout.

Install and run::

    pip install -e .
    ml-windowing --help
    ml-windowing validate-config
    ml-windowing generate-windows --sessions data/sessions/sessions.jsonl
    ml-windowing generate-windows --sessions export.parquet --format parquet --backend ray
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import typer

app = typer.Typer(
    name="ml-windowing",
    help="Turn per-user session histories into labeled lookback windows.",
    add_completion=False,
)


# ── Helpers ───────────────────────────────────────────────────────────────────

def _load_config_or_exit(config_path: Optional[str] = None):
    """Load AppConfig, printing a friendly error and exiting on failure."""
    from ml_windowing.config import load_config

    try:
        cfg_path = Path(config_path) if config_path else None
        return load_config(cfg_path)
    except FileNotFoundError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)
    except Exception as exc:
        typer.echo(f"[ERROR] Config validation failed: {exc}", err=True)
        raise typer.Exit(code=1)


def _configure_logging(config):
    """Set up logging from config; ``debug = true`` forces the DEBUG level."""
    from ml_windowing.utils.logging import configure_logging

    log_cfg = config.logging
    if config.debug:
        log_cfg = log_cfg.model_copy(update={"level": "DEBUG"})
    configure_logging(log_cfg)


# ── Commands ──────────────────────────────────────────────────────────────────

@app.command("validate-config")
def validate_config(
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file (default: config/default.toml).",
    ),
    show_full: bool = typer.Option(
        False,
        "--full",
        help="Print full config including all fields.",
    ),
) -> None:
    """Validate the configuration file and print parsed values.

    Exits with code 1 if the config fails validation.
    """
    config = _load_config_or_exit(config_path)
    w = config.windowing

    typer.echo("Configuration validated successfully.")
    typer.echo("")
    typer.echo(f"  Placement:        {w.placement}")
    typer.echo(f"  Snapshot range:   {w.snapshot_start_date} → {w.snapshot_end_date}")
    typer.echo(f"  Window duration:  {w.window_duration}")
    if w.placement == "sliding":
        typer.echo(f"  Slide duration:   {w.slide_duration}")
    typer.echo(f"  Lookback gap:     {w.lookback_gap}")
    typer.echo(f"  Lookahead:        ({w.min_lookahead}, {w.max_lookahead}]")
    typer.echo(f"  Stop on first +:  {w.stop_on_first_positive_label}")
    typer.echo(f"  Backend:          {config.runner.backend}")
    typer.echo(f"  Log level:        {config.logging.level}")

    if show_full:
        typer.echo("")
        typer.echo("Full config (JSON):")
        typer.echo(json.dumps(config.model_dump(mode="json"), indent=2))

    typer.echo("")
    typer.echo("[OK] Config valid.")


@app.command("generate-windows")
def generate_windows_cmd(
    sessions_path: Optional[str] = typer.Option(
        None,
        "--sessions",
        help="Session export (.jsonl/.json/.parquet). Uses config default if omitted.",
    ),
    output_path: Optional[str] = typer.Option(
        None,
        "--output",
        help="Output file. Defaults to <output_dir>/windows_<run_slug>.<format>.",
    ),
    output_format: Optional[str] = typer.Option(
        None,
        "--format",
        help="Output format: jsonl or parquet.",
    ),
    backend: Optional[str] = typer.Option(
        None,
        "--backend",
        help="Fan-out backend: serial or ray.",
    ),
    fixed: bool = typer.Option(
        False,
        "--fixed",
        help="Use a single window anchored at the snapshot start instead of sliding.",
    ),
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file.",
    ),
) -> None:
    """Generate labeled lookback windows for every user in a session export."""
    from pydantic import ValidationError

    from ml_windowing.pipeline.windowing import WindowingStage

    config = _load_config_or_exit(config_path)

    if output_format is not None and output_format not in ("jsonl", "parquet"):
        typer.echo(f"[ERROR] --format must be 'jsonl' or 'parquet', got '{output_format}'.", err=True)
        raise typer.Exit(code=1)

    overrides: dict = {}
    if backend is not None:
        overrides["runner"] = {**config.runner.model_dump(), "backend": backend}
    if fixed:
        overrides["windowing"] = {**config.windowing.model_dump(), "placement": "fixed"}
    if overrides:
        try:
            config = config.model_validate({**config.model_dump(), **overrides})
        except ValidationError as exc:
            typer.echo(f"[ERROR] Invalid option: {exc}", err=True)
            raise typer.Exit(code=1)

    _configure_logging(config)

    try:
        run = WindowingStage(config=config).run(
            sessions_path=sessions_path,
            output_path=output_path,
            output_format=output_format,
        )
    except (FileNotFoundError, ValueError) as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)

    typer.echo(f"  Run:              {run.run_slug}")
    typer.echo(f"  Users processed:  {run.users_processed}")
    typer.echo(f"  Users rejected:   {run.users_failed}")
    typer.echo(f"  Windows written:  {run.rows_processed}")
    typer.echo(f"  Positive windows: {run.positive_windows}")
    typer.echo(f"  Output:           {run.output_path}")
    for failure in run.failures[:10]:
        typer.echo(f"  [WARN] {failure.user_id}: {failure.message}")
    typer.echo("[OK] Windowing complete.")


# ── Entry point ───────────────────────────────────────────────────────────────

if __name__ == "__main__":
    app()
