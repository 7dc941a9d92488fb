"""Command-line interface for the OEE dashboard simulator."""

import json
import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import click
import yaml
from dotenv import find_dotenv, load_dotenv

from .config import Config, InvalidRangeError
from .dashboard import DashboardSession
from .generators import FGSeries, RandomSource, Snapshot
from .live import LiveSeriesUpdater, ManualScheduler, ThreadScheduler

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def _load_config(config_path: Optional[Path]) -> Config:
    load_dotenv(find_dotenv(usecwd=True))
    try:
        base = Config.from_yaml(config_path) if config_path else Config.default()
        return Config.from_env(base)
    except (InvalidRangeError, ValueError) as e:
        raise click.ClickException(f"Invalid configuration: {e}")


def _parse_now(value: Optional[str]) -> datetime:
    if not value:
        return datetime.now(timezone.utc)
    try:
        ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise click.BadParameter(f"Not an ISO-8601 timestamp: {value}", param_hint="--now")
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


def _format_series(series: FGSeries) -> str:
    lines = []
    for bucket in series:
        counts = "  ".join(f"{sku}={count}" for sku, count in bucket.counts.items())
        lines.append(f"  {bucket.hour_ts:%H:%M}  {counts}")
    return "\n".join(lines)


def _format_text(snapshot: Snapshot) -> str:
    oee = snapshot.oee
    lines = [
        f"OEE Monitoring Dashboard - {snapshot.plant} / {snapshot.machine}",
        f"Generated: {snapshot.generated_at.isoformat()}",
        "",
        f"  Availability {oee.availability:5.1f}%   Performance {oee.performance:5.1f}%",
        f"  Quality      {oee.quality:5.1f}%   Overall OEE {oee.oee:5.1f}%",
        "",
        "FG Count per Hour:",
        _format_series(snapshot.fg_by_hour),
        "",
        "SKU Summary:",
        f"  {'SKU':<8}{'Target':>8}{'Actual':>8}{'Defects':>9}{'Quality %':>11}",
    ]
    for s in snapshot.sku_summary:
        lines.append(
            f"  {s.sku:<8}{s.target:>8}{s.actual:>8}{s.defects:>9}{s.quality_rate:>11.1f}"
        )
    lines.append("")
    lines.append("Capacity vs Actual:")
    for c in snapshot.capacity_vs_actual:
        lines.append(f"  {c.hour_ts:%H:%M}  capacity={c.capacity}  actual={c.actual}")
    return "\n".join(lines)


@click.group()
@click.version_option(version="0.1.0")
def main():
    """OEE Dashboard Simulator - synthetic manufacturing OEE metrics.

    Generates consistent mock data for an OEE dashboard: 1-minute machine
    metrics, hourly finished goods per SKU, a SKU summary, capacity vs
    actual and the OEE score bundle, plus a live FG series that drifts
    upward on a timer.
    """
    pass


@main.command()
@click.option("--seed", "-s", type=int, default=None, help="Random seed for reproducible output")
@click.option("--now", "now_str", default=None, help="Anchor timestamp (ISO-8601, default: now)")
@click.option("--plant", default=None, help="Plant filter label")
@click.option("--machine", default=None, help="Machine filter label")
@click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice(["json", "yaml", "text"]),
    default="text",
    help="Output format",
)
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(path_type=Path),
    default=None,
    help="Path to config.yaml",
)
def snapshot(seed, now_str, plant, machine, output_format, config_path):
    """Generate one dashboard snapshot."""
    cfg = _load_config(config_path)
    if seed is not None:
        cfg.random_seed = seed
    if plant:
        cfg.dashboard.default_plant = plant
    if machine:
        cfg.dashboard.default_machine = machine
    now = _parse_now(now_str)

    session = DashboardSession(
        config=cfg,
        rng=RandomSource(cfg.random_seed),
        clock=lambda: now,
        updater_factory=lambda: LiveSeriesUpdater(
            scheduler=ManualScheduler(), config=cfg.live
        ),
    )
    snap = session.refresh()
    session.close()

    if output_format == "json":
        click.echo(json.dumps(snap.to_dict(), indent=2))
    elif output_format == "yaml":
        click.echo(yaml.safe_dump(snap.to_dict(), sort_keys=False))
    else:
        click.echo(_format_text(snap))


@main.command()
@click.option("--seed", "-s", type=int, default=None, help="Random seed for reproducible output")
@click.option("--ticks", "-n", type=click.IntRange(min=1), default=3, help="Number of ticks")
@click.option("--interval-ms", type=click.IntRange(min=1), default=None, help="Tick interval")
@click.option(
    "--fast",
    is_flag=True,
    default=False,
    help="Use a virtual clock instead of waiting in real time",
)
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(path_type=Path),
    default=None,
    help="Path to config.yaml",
)
def live(seed, ticks, interval_ms, fast, config_path):
    """Seed a live FG series from a snapshot and print it after every tick."""
    cfg = _load_config(config_path)
    if seed is not None:
        cfg.random_seed = seed
    if interval_ms:
        cfg.live.interval_ms = interval_ms
    rng = RandomSource(cfg.random_seed)
    scheduler = ManualScheduler() if fast else ThreadScheduler()

    def on_tick(series: FGSeries) -> None:
        click.echo(f"Tick {session.updater.tick_count}:")
        click.echo(_format_series(series))

    session = DashboardSession(
        config=cfg,
        rng=rng,
        updater_factory=lambda: LiveSeriesUpdater(rng=rng, scheduler=scheduler, config=cfg.live),
        on_live_tick=on_tick,
    )
    snap = session.refresh()
    updater = session.updater

    click.echo("Initial FG series:")
    click.echo(_format_series(snap.fg_by_hour))

    try:
        if fast:
            scheduler.advance(cfg.live.interval_ms * ticks)
        else:
            while updater.tick_count < ticks:
                time.sleep(0.1)
    except KeyboardInterrupt:
        click.echo("\nInterrupted")
    finally:
        session.close()


@main.command()
@click.option(
    "--output",
    "-o",
    type=click.Path(path_type=Path),
    default=Path("config"),
    help="Output directory for config files",
)
def init(output):
    """Generate a sample configuration file.

    Creates config.yaml with the default generator bounds, live update
    interval and dashboard filter options.
    """
    output.mkdir(parents=True, exist_ok=True)

    cfg = Config.default()
    config_path = output / "config.yaml"
    cfg.to_yaml(config_path)

    click.echo(f"Created: {config_path}")
    click.echo()
    click.echo("Edit the config file to customize:")
    click.echo("  - Generator bounds (runtime, FG counts, targets, OEE factors)")
    click.echo("  - Live update interval and increment range")
    click.echo("  - Plant and machine filter options")
    click.echo()
    click.echo(f"Run with: oee-sim snapshot --config {config_path}")


if __name__ == "__main__":
    main()
