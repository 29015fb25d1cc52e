#!/usr/bin/env python3
"""
Blob Spammer CLI
================

Funds a pool of throwaway accounts from one funder key, then keeps sending
blob-carrying self-transactions to the given RPC endpoints every slot.

Usage:
    python spammer_cli.py run --rpcs http://node-a:8545,http://node-b:8545 --key 0x... --min 1 --max 6
    python spammer_cli.py run --config spammer.yaml
    python spammer_cli.py import-key --key-file funder_key.enc
    python spammer_cli.py init-config --config spammer.yaml
"""

import os
import sys
import random
import argparse
import getpass
from typing import Any, Dict, Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich import box

from accounts import AccountPool, FunderAccount
from config import ConfigManager, SpammerConfig, decode_private_key, split_rpcs
from dispatcher import TransactionDispatcher
from endpoints import EndpointPool
from funding import FundingCoordinator
from keystore import FunderKeyStore
from scheduler import SpamScheduler, SpamStats, Ticker
from transactions import FeeParams
from utils import logger, setup_logging, SpammerError, ConfigError

console = Console()

KEY_ENV = "SPAMMER_PRIVATE_KEY"
PASSWORD_ENV = "SPAMMER_KEY_PASSWORD"


def print_banner():
    """Print the CLI banner."""
    console.print(Panel(
        "Blob Spammer\nfund once, spam every slot",
        style="bold cyan",
        box=box.DOUBLE
    ))


def get_password(prompt: str = "Enter key file password: ") -> str:
    """Password from the environment, or prompted for."""
    password = os.environ.get(PASSWORD_ENV)
    if password:
        return password
    console.print(f"[yellow]{prompt}[/yellow]")
    return getpass.getpass("> ")


def build_config(args) -> SpammerConfig:
    """Config file values overridden by command line flags."""
    if getattr(args, "config", None):
        config = ConfigManager(args.config).load_config()
    else:
        config = SpammerConfig()

    overrides: Dict[str, Any] = {
        "rpcs": split_rpcs(args.rpcs) if args.rpcs else None,
        "private_key": args.key or os.environ.get(KEY_ENV),
        "key_file": args.key_file,
        "min_txs": args.min,
        "max_txs": args.max,
        "period_seconds": args.period,
        "workers": args.workers,
        "log_level": args.log_level,
        "log_file": args.log_file,
    }
    return config.merge_overrides(overrides)


def resolve_funder_key(config: SpammerConfig) -> bytes:
    """Decode the raw key, or decrypt it from the key file."""
    if config.private_key:
        return decode_private_key(config.private_key)

    store = FunderKeyStore(config.key_file)
    if not store.exists():
        raise ConfigError(f"Key file not found: {config.key_file}")
    return decode_private_key(store.load_and_decrypt(get_password()))


def get_stats_table(stats: SpamStats) -> Table:
    """Summary table of the spam run."""
    table = Table(title="Spam Summary", box=box.ROUNDED)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Ticks", str(stats.ticks))
    table.add_row("Attempted", str(stats.attempted))
    table.add_row("Sent", str(stats.sent))
    table.add_row("Failed", str(stats.failed))
    table.add_row("Success Rate", f"{stats.success_rate:.1f}%")
    for stage, count in sorted(stats.failures_by_stage.items()):
        table.add_row(f"Failed at {stage}", str(count))
    return table


def run_command(args) -> int:
    """Handle run command - fund the pool, then spam forever."""
    print_banner()
    scheduler: Optional[SpamScheduler] = None

    try:
        # Everything up to the endpoint pool is local; fail before touching the network
        config = build_config(args)
        config.validate()
        setup_logging(config.log_level, config.log_file)
        logger.debug(f"Configuration: {config.to_dict()}")

        funder = FunderAccount.from_key(resolve_funder_key(config))

        endpoints = EndpointPool.from_urls(config.rpcs, retries=config.rpc_retries)
        accounts = AccountPool.generate(config.max_txs)
        fees = FeeParams.from_config(config)

        coordinator = FundingCoordinator(endpoints.primary(), fees, config.receipt_timeout)
        report = coordinator.fund(funder, accounts)

        rng = random.Random()
        dispatcher = TransactionDispatcher(
            endpoints, accounts, report.chain_id, fees, config.payload.encode(), rng
        )
        scheduler = SpamScheduler(
            dispatcher,
            config.min_txs,
            config.max_txs,
            rng=rng,
            ticker=Ticker(config.period_seconds),
            workers=config.worker_count,
        )
        scheduler.run()
        return 0

    except SpammerError as e:
        logger.error(f"Fatal: {e}")
        console.print(f"[red]✗ {e}[/red]")
        return 1
    except KeyboardInterrupt:
        console.print("\n[yellow]⚠ Stopped by user[/yellow]")
        if scheduler is not None:
            logger.info(f"Final stats: {scheduler.stats.to_dict()}")
            console.print(get_stats_table(scheduler.stats))
        return 130


def import_key_command(args) -> int:
    """Handle import-key command - encrypt the funder key to a file."""
    store = FunderKeyStore(args.key_file)
    if store.exists() and not args.force:
        console.print(f"[red]{args.key_file} already exists (use --force to replace)[/red]")
        return 1

    console.print("[yellow]Enter funder private key:[/yellow]")
    private_key = getpass.getpass("> ")
    password = get_password("Create key file password: ")

    try:
        store.encrypt_and_save(private_key, password)
    except SpammerError as e:
        console.print(f"[red]✗ {e}[/red]")
        return 1

    console.print(f"[green]✓ Funder key encrypted to {args.key_file}[/green]")
    return 0


def init_config_command(args) -> int:
    """Handle init-config command - write the configuration template."""
    try:
        ConfigManager(args.config).write_template(overwrite=args.force)
    except ConfigError as e:
        console.print(f"[red]✗ {e}[/red]")
        return 1

    console.print(f"[green]✓ Configuration template written to {args.config}[/green]")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Blob transaction spammer")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    run_parser = subparsers.add_parser("run", help="Fund accounts and start spamming")
    run_parser.add_argument("-r", "--rpcs", type=str, help="Comma separated RPC URLs")
    run_parser.add_argument("-k", "--key", type=str, help=f"Funder private key (hex), or set {KEY_ENV}")
    run_parser.add_argument("--key-file", type=str, help="Encrypted funder key file")
    run_parser.add_argument("--min", type=int, help="Minimum transactions per tick (default: 3)")
    run_parser.add_argument("--max", type=int, help="Maximum transactions per tick (default: 3)")
    run_parser.add_argument("--period", type=float, help="Seconds between ticks (default: 12)")
    run_parser.add_argument("--workers", type=int, help="Concurrent sends per tick (default: max)")
    run_parser.add_argument("--config", type=str, help="YAML configuration file")
    run_parser.add_argument("--log-level", type=str, help="Log level (default: INFO)")
    run_parser.add_argument("--log-file", type=str, help="Also log to this file")

    key_parser = subparsers.add_parser("import-key", help="Encrypt the funder key to a file")
    key_parser.add_argument("--key-file", type=str, default=FunderKeyStore.KEY_FILE)
    key_parser.add_argument("--force", action="store_true", help="Replace an existing file")

    init_parser = subparsers.add_parser("init-config", help="Write a configuration template")
    init_parser.add_argument("--config", type=str, default="./spammer.yaml")
    init_parser.add_argument("--force", action="store_true", help="Replace an existing file")

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "run":
        return run_command(args)
    elif args.command == "import-key":
        return import_key_command(args)
    elif args.command == "init-config":
        return init_config_command(args)

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
