"""
CLI for Mint Gateway
====================

Commands:
    mint-gateway serve                  Run the allocation gateway (uvicorn)
    mint-gateway load                   Publish the inventory into the ledger
    mint-gateway status                 Show checkpoint and ledger progress
    mint-gateway solve <token> <id>     Solve a challenge (reference client)
"""

import asyncio
import json
import sys
import time
from typing import Optional

import click

from mint_gateway import __version__, configure_logging
from mint_gateway.config import GatewayConfig
from mint_gateway.errors import LedgerError, LedgerWriteExhausted
from mint_gateway.ledger.http import HttpLedgerAdapter
from mint_gateway.models.inventory import Inventory
from mint_gateway.tasks.bulk_loader import BulkLedgerLoader, LoaderSettings
from mint_gateway.tasks.checkpoint import FileCheckpointStore
from mint_gateway.utils.pow import get_pow_stats, solve_pow


def _load_config(env_file: Optional[str]) -> GatewayConfig:
    config = GatewayConfig.from_env(env_file)
    configure_logging(config.LOG_LEVEL)
    return config


@click.group()
@click.version_option(version=__version__)
@click.option("--env-file", default=None, help="Path to a .env file")
@click.pass_context
def main(ctx, env_file: Optional[str]):
    """
    Mint Gateway - puzzle-gated allocation and bulk ledger loading

    Examples:
        mint-gateway serve --port 8000
        mint-gateway load --batch-size 10
        mint-gateway status
    """
    ctx.obj = {"env_file": env_file}


@main.command()
@click.option("--host", default="0.0.0.0", help="Bind address")
@click.option("--port", default=8000, type=int, help="Bind port")
@click.pass_context
def serve(ctx, host: str, port: int):
    """Run the allocation gateway."""
    import uvicorn

    from mint_gateway.main import create_app

    config = _load_config(ctx.obj["env_file"])
    uvicorn.run(create_app(config), host=host, port=port)


@main.command()
@click.option("--batch-size", type=int, default=None, help="Override MINT_BATCH_SIZE")
@click.option("--in-flight", type=int, default=None, help="Override MINT_MAX_IN_FLIGHT")
@click.option("--delay", type=float, default=None, help="Override MINT_SEND_DELAY_SECONDS")
@click.pass_context
def load(ctx, batch_size: Optional[int], in_flight: Optional[int], delay: Optional[float]):
    """
    Publish every public inventory item into the ledger.

    Resumes from the checkpoint (or the ledger's own count, whichever is
    further). Safe to re-run until it reports completion.
    """
    config = _load_config(ctx.obj["env_file"])
    if not config.LEDGER_ADDRESS:
        click.echo("❌ MINT_LEDGER_ADDRESS is not set", err=True)
        sys.exit(2)

    settings = LoaderSettings.from_config(config)
    if batch_size is not None:
        settings.batch_size = batch_size
    if in_flight is not None:
        settings.max_in_flight = in_flight
    if delay is not None:
        settings.send_delay_seconds = delay

    inventory = Inventory.from_json(config.INVENTORY_PATH)
    checkpoints = FileCheckpointStore(config.CHECKPOINT_PATH)

    async def _run():
        async with HttpLedgerAdapter(
            config.LEDGER_ENDPOINT, config.LEDGER_ADDRESS, timeout=config.LEDGER_TIMEOUT_SECONDS
        ) as ledger:
            loader = BulkLedgerLoader(ledger, checkpoints, settings)
            return await loader.run(inventory)

    try:
        report = asyncio.run(_run())
    except LedgerWriteExhausted as e:
        click.echo(f"❌ {e}", err=True)
        click.echo(f"   Progress saved at {e.checkpoint.last_confirmed_index if e.checkpoint else '?'}. "
                   f"Run again to resume.", err=True)
        sys.exit(1)
    except LedgerError as e:
        click.echo(f"❌ Ledger error: {e}", err=True)
        sys.exit(1)

    sys.exit(0 if report.complete else 3)


@main.command()
@click.pass_context
def status(ctx):
    """Show checkpoint and observed ledger progress."""
    config = _load_config(ctx.obj["env_file"])
    checkpoint = FileCheckpointStore(config.CHECKPOINT_PATH).load()

    click.echo()
    click.echo("=" * 70)
    click.echo(f"📊 {config.COLLECTION_NAME} ledger progress")
    click.echo("=" * 70)
    click.echo(f"   Checkpoint: {json.dumps(checkpoint.to_dict())}")

    if config.LEDGER_ADDRESS:
        async def _fetch():
            async with HttpLedgerAdapter(
                config.LEDGER_ENDPOINT, config.LEDGER_ADDRESS, timeout=config.LEDGER_TIMEOUT_SECONDS
            ) as ledger:
                return await ledger.fetch_loaded_state()

        try:
            state = asyncio.run(_fetch())
            click.echo(f"   On ledger: {state.items_loaded}/{state.items_available}")
        except LedgerError as e:
            click.echo(f"   ⚠️  Could not read ledger: {e}")
    click.echo("=" * 70)
    click.echo()


@main.command()
@click.argument("token")
@click.argument("identity")
@click.option("--difficulty", "-d", type=int, default=4, help="Leading zero hex digits")
def solve(token: str, identity: str, difficulty: int):
    """Solve a challenge and print the candidate value."""
    stats = get_pow_stats(difficulty)
    click.echo(f"⛏️  Solving (~{stats['avg_attempts']:,} attempts expected)...", err=True)

    started = time.monotonic()
    try:
        candidate, attempts = solve_pow(token, identity, difficulty)
    except RuntimeError as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(1)

    click.echo(f"✅ Solved in {time.monotonic() - started:.2f}s ({attempts:,} attempts)", err=True)
    click.echo(candidate)


if __name__ == "__main__":
    main()
