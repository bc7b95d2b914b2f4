from __future__ import annotations

import logging
import sys
import time
from pathlib import Path

import typer

from .config import AppConfig, ConfigError, default_config_path, load_config
from .folder_index import FolderIndex
from .monitor import Monitor
from .run_log import read_runs
from .state import StateStore, WatermarkStore
from .util import format_watermark, parse_timestamp

app = typer.Typer(add_completion=False, help="drivewatch: relay Google Drive folder changes to chat channels")

STATUS_COLORS = {
    "notified": typer.colors.GREEN,
    "no_changes": typer.colors.GREEN,
    "skipped_locked": typer.colors.YELLOW,
    "backend_unavailable": typer.colors.RED,
    "persistence_failure": typer.colors.RED,
    "error": typer.colors.RED,
}


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )


def _load_config(config_path: Path | None) -> AppConfig:
    try:
        return load_config(config_path or default_config_path())
    except ConfigError as exc:
        typer.secho(f"Error: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=2) from exc


def _build_monitor(cfg: AppConfig) -> Monitor:
    try:
        return Monitor.from_config(cfg)
    except FileNotFoundError as exc:
        typer.secho(f"Error: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=2) from exc


def _echo_result(result) -> None:
    typer.secho(f"Tick {result.run_id[:8]}: {result.status}", fg=STATUS_COLORS.get(result.status))
    typer.echo(f"  Changes: {len(result.changes)}")
    if result.watermark:
        typer.echo(f"  Watermark: {format_watermark(result.watermark)}")
    for channel, ok in result.deliveries.items():
        typer.echo(f"  {channel}: {'sent' if ok else 'FAILED'}")
    if result.error:
        typer.echo(f"  Error: {result.error}")


ConfigOption = typer.Option(None, "--config", "-c", help="Path to drivewatch.json (default: $DRIVEWATCH_CONFIG)")


@app.command("check")
def check_cmd(config: Path | None = ConfigOption) -> None:
    """Run one detect-and-notify tick."""
    cfg = _load_config(config)
    monitor = _build_monitor(cfg)
    try:
        _echo_result(monitor.check_folder_files_updates())
    finally:
        monitor.close()


@app.command("run")
def run_cmd(
    config: Path | None = ConfigOption,
    interval: int | None = typer.Option(None, "--interval", help="Minutes between ticks (default from config)"),
    max_ticks: int = typer.Option(0, "--max-ticks", help="Stop after N ticks (0 = run until interrupted)"),
) -> None:
    """Run a tick every poll interval until interrupted."""
    cfg = _load_config(config)
    minutes = interval if interval is not None else cfg.poll_interval_minutes
    if minutes <= 0:
        raise typer.BadParameter("--interval must be positive")
    monitor = _build_monitor(cfg)

    typer.echo(f"Checking every {minutes} minutes. Press Ctrl-C to stop.")
    ticks = 0
    try:
        while True:
            _echo_result(monitor.check_folder_files_updates())
            ticks += 1
            if max_ticks and ticks >= max_ticks:
                break
            time.sleep(minutes * 60)
    except KeyboardInterrupt:
        typer.echo("Stopped.")
    finally:
        monitor.close()


@app.command("clear-cache")
def clear_cache_cmd(config: Path | None = ConfigOption) -> None:
    """Drop the cached folder set so the next tick re-walks the tree."""
    cfg = _load_config(config)
    store = StateStore(cfg.state_db)
    try:
        FolderIndex(None, store).clear(cfg.root_folder_id)
    finally:
        store.close()
    typer.secho("Cached folder IDs cleared.", fg=typer.colors.GREEN)


@app.command("status")
def status_cmd(
    config: Path | None = ConfigOption,
    last: int = typer.Option(5, "--last", help="Number of recent ticks to show"),
) -> None:
    """Show the stored watermark and recent ticks."""
    cfg = _load_config(config)
    store = StateStore(cfg.state_db)
    try:
        watermark = WatermarkStore(store).get()
    finally:
        store.close()

    typer.echo(f"Root folder: {cfg.root_folder_id}")
    typer.echo(f"Watermark: {format_watermark(watermark) if watermark else 'None (epoch)'}")

    runs = read_runs(cfg.run_log, limit=last)
    if not runs:
        typer.echo("No ticks recorded.")
        return
    typer.echo("Recent ticks:")
    for run in runs:
        line = f"  {run.get('started_at')}  {run.get('status')}  changes={run.get('changes', 0)}"
        if run.get("error"):
            line += f"  error={run['error']}"
        typer.echo(line)


@app.command("reset-watermark")
def reset_watermark_cmd(
    config: Path | None = ConfigOption,
    to: str | None = typer.Option(None, "--to", help="ISO-8601 UTC time to set instead of clearing"),
) -> None:
    """Clear the watermark (next tick starts from the epoch) or set it explicitly."""
    cfg = _load_config(config)
    store = StateStore(cfg.state_db)
    watermarks = WatermarkStore(store)
    try:
        if to:
            try:
                value = parse_timestamp(to)
            except ValueError as exc:
                raise typer.BadParameter(f"Invalid --to timestamp: {to}") from exc
            watermarks.set(value)
            typer.secho(f"Watermark set to {format_watermark(value)}", fg=typer.colors.GREEN)
        else:
            watermarks.clear()
            typer.secho("Watermark cleared.", fg=typer.colors.GREEN)
    finally:
        store.close()


if __name__ == "__main__":
    app()
