"""
mirrorbot command line.

    mirrorbot run [--dry-run] [--debug] [--max-iterations N]
    mirrorbot status [--state-file PATH]
    mirrorbot redeem-once [--dry-run]
"""

import asyncio
import dataclasses
import logging
from datetime import datetime, timezone
from typing import Optional, Tuple

import typer
from rich.console import Console
from rich.table import Table

from mirrorbot.clients.data_api import DataApiClient
from mirrorbot.config import ConfigError, MirrorConfig
from mirrorbot.engine import TradeMirrorEngine
from mirrorbot.execution.executor import ExecutionError, create_executor
from mirrorbot.execution.settlement import create_settlement_submitter
from mirrorbot.positions import PositionCache
from mirrorbot.redeem.batcher import RedemptionBatcher
from mirrorbot.runner import MirrorRunner
from mirrorbot.state import BotState, StateError, StateStore

app = typer.Typer(help="Mirror Polymarket traders onto your own account.")
console = Console()


def setup_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    # Keep HTTP client chatter out of debug output
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def load_config(dry_run: Optional[bool], debug: Optional[bool]) -> MirrorConfig:
    try:
        return MirrorConfig.from_env(dry_run=dry_run, debug=debug)
    except ConfigError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(code=1)


def load_state(store: StateStore) -> BotState:
    try:
        return store.load()
    except StateError as e:
        console.print(f"[red]State error:[/red] {e}")
        raise typer.Exit(code=1)


def build_runner(config: MirrorConfig) -> Tuple[MirrorRunner, BotState]:
    """Wire every component around one shared state object."""
    store = StateStore(config.state_file)
    state = load_state(store)
    data_api = DataApiClient(config.venue.data_api_host)
    profile = config.venue.profile_address

    positions = PositionCache(
        lambda: data_api.get_positions(profile),
        ttl_sec=config.polling.position_cache_ttl_sec,
    )
    try:
        executor = create_executor(config.venue, config.dry_run)
    except ExecutionError as e:
        console.print(f"[red]Execution setup failed:[/red] {e}")
        raise typer.Exit(code=1)

    engine = TradeMirrorEngine(config, data_api, executor, positions, state)

    batcher = None
    if config.redeem.enabled:
        batcher = RedemptionBatcher(create_settlement_submitter(config), state, config.redeem.cooldown_sec)

    runner = MirrorRunner(
        config,
        engine,
        state,
        store,
        batcher=batcher,
        fetch_redeemable=lambda: data_api.get_positions(profile, redeemable=True),
    )
    return runner, state


@app.command()
def run(
    dry_run: Optional[bool] = typer.Option(None, "--dry-run/--live", help="Override DRY_RUN"),
    debug: Optional[bool] = typer.Option(None, "--debug/--no-debug", help="Override DEBUG"),
    max_iterations: Optional[int] = typer.Option(None, help="Stop each loop after N iterations"),
) -> None:
    """
    Start the mirror and redeem loops.
    """
    config = load_config(dry_run, debug)
    setup_logging(config.debug)
    runner, _ = build_runner(config)

    try:
        asyncio.run(runner.run(max_iterations=max_iterations))
    except KeyboardInterrupt:
        runner.stop()
        console.print("[yellow]Interrupted, shutting down[/yellow]")


@app.command("redeem-once")
def redeem_once(
    dry_run: Optional[bool] = typer.Option(None, "--dry-run/--live", help="Override DRY_RUN"),
    debug: Optional[bool] = typer.Option(None, "--debug/--no-debug", help="Override DEBUG"),
) -> None:
    """
    Run a single redemption sweep and exit.
    """
    config = load_config(dry_run, debug)
    setup_logging(config.debug)
    if not config.redeem.enabled:
        # Same live-redeem checks as AUTO_REDEEM=true
        try:
            config = dataclasses.replace(config, redeem=dataclasses.replace(config.redeem, enabled=True))
        except ConfigError as e:
            console.print(f"[red]Configuration error:[/red] {e}")
            raise typer.Exit(code=1)

    store = StateStore(config.state_file)
    state = load_state(store)
    data_api = DataApiClient(config.venue.data_api_host)
    batcher = RedemptionBatcher(create_settlement_submitter(config), state, config.redeem.cooldown_sec)

    positions = data_api.get_positions(config.venue.profile_address, redeemable=True)
    report = batcher.redeem(positions, datetime.now(timezone.utc).timestamp())
    if report.eligible:
        store.save(state)
    console.print(report.to_dict())


@app.command()
def status(
    state_file: str = typer.Option(
        "./data/state.json",
        envvar="STATE_FILE",
        help="State file to inspect",
    ),
) -> None:
    """
    Show cursors, daily volume and redemption attempts from the state file.
    """
    state = load_state(StateStore(state_file))

    volume = Table(title="Daily volume")
    volume.add_column("Day (UTC)")
    volume.add_column("Spent (USD)", justify="right")
    volume.add_column("Seen trades", justify="right")
    volume.add_row(
        state.daily_volume.day or "-",
        f"{state.daily_volume.spent_usd:.2f}",
        str(len(state.seen_trades)),
    )
    console.print(volume)

    cursors = Table(title="Trader cursors")
    cursors.add_column("Trader")
    cursors.add_column("Last seen (UTC)")
    for trader, ts in sorted(state.last_seen.items()):
        cursors.add_row(trader, _fmt_ts(ts))
    console.print(cursors)

    attempts = Table(title="Redeem attempts")
    attempts.add_column("Condition id")
    attempts.add_column("Last attempt (UTC)")
    for condition_id, ts in sorted(state.redeem_attempts.items(), key=lambda kv: kv[1], reverse=True):
        attempts.add_row(condition_id, _fmt_ts(ts))
    console.print(attempts)


def _fmt_ts(ts: int) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


if __name__ == "__main__":
    app()
