"""
CLI entry point for the faucet.
"""

import asyncio
from datetime import timedelta
from pathlib import Path
from typing import Optional

import structlog
import typer
from dotenv import load_dotenv

from .address import parse_wallet_address
from .config import Settings, get_settings
from .db import ClaimLedger
from .eligibility import evaluate_eligibility, format_time_remaining, utcnow
from .evm import TransferClient
from .reconcile import Reconciler

# Configure structlog
structlog.configure(
    processors=[
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(),
    ]
)

app = typer.Typer(
    name="faucet",
    help="Testnet ETH faucet",
    add_completion=False,
)


def _load_settings(config_path: Optional[Path]) -> Settings:
    if config_path:
        return Settings(_env_file=config_path)
    return get_settings()


@app.command()
def serve() -> None:
    """
    Run the HTTP API.
    """
    from .main import run

    run()


@app.command()
def reconcile(
    config_path: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to .env configuration file",
    ),
    loop: bool = typer.Option(
        False,
        "--loop",
        help="Keep reconciling every RECONCILE_INTERVAL_SECONDS",
    ),
) -> None:
    """
    Settle claim intents left pending by crashes or confirmation timeouts.
    """
    settings = _load_settings(config_path)
    ledger = ClaimLedger(settings.database_url)
    reconciler = Reconciler(
        ledger,
        TransferClient(settings),
        grace_period=timedelta(seconds=settings.confirmation_timeout_seconds),
    )

    try:
        if loop:
            typer.echo("Running in continuous mode. Press Ctrl+C to stop.")
            try:
                asyncio.run(reconciler.run(settings.reconcile_interval_seconds))
            except KeyboardInterrupt:
                typer.echo("\nStopping reconciler...")
                reconciler.stop()
            return

        report = asyncio.run(reconciler.run_once())
        for wallet in report.confirmed:
            typer.echo(f"✓ Recorded: {wallet}")
        for wallet in report.failed:
            typer.echo(f"✗ Released: {wallet}")
        for wallet in report.still_pending:
            typer.echo(f"… Pending: {wallet}")
        typer.echo(f"Processed {report.total} intents")
    finally:
        ledger.close()


@app.command()
def balance(
    config_path: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to .env configuration file",
    ),
) -> None:
    """
    Show the faucet account balance.
    """
    settings = _load_settings(config_path)
    client = TransferClient(settings)

    if not client.account:
        typer.echo("PRIVATE_KEY is not configured.")
        raise typer.Exit(code=1)

    amount = asyncio.run(client.get_balance())
    typer.echo(f"Faucet: {client.address}")
    typer.echo(f"Balance: {amount} ETH")
    if amount < settings.low_balance_warning_eth:
        typer.echo("Warning: balance is low. Please fund the faucet wallet.")


@app.command()
def check(
    address: str = typer.Argument(..., help="Wallet address to check"),
    config_path: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to .env configuration file",
    ),
) -> None:
    """
    Check whether a wallet may claim now (read-only).
    """
    wallet = parse_wallet_address(address)
    if wallet is None:
        typer.echo("Invalid wallet address")
        raise typer.Exit(code=1)

    settings = _load_settings(config_path)
    ledger = ClaimLedger(settings.database_url)
    try:
        record = ledger.lookup(wallet)
    finally:
        ledger.close()

    eligibility = evaluate_eligibility(record, utcnow())

    typer.echo(f"Wallet: {wallet}")
    if eligibility.first_time:
        typer.echo("Eligible (never claimed)")
    elif eligibility.eligible:
        typer.echo(f"Eligible (last claim {eligibility.last_claim_time.isoformat()})")
    else:
        typer.echo(f"Not eligible, last claim {eligibility.last_claim_time.isoformat()}")
        typer.echo(f"Next claim: {eligibility.next_claim_time.isoformat()}")
        typer.echo(f"Remaining: {format_time_remaining(eligibility.time_remaining)}")


@app.command()
def version() -> None:
    """Show the faucet version."""
    from faucet_api import __version__
    typer.echo(f"faucet-api v{__version__}")


def main() -> None:
    """Main entry point."""
    load_dotenv()
    app()


if __name__ == "__main__":
    main()
