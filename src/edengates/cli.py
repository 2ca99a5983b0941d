"""
CLI entry point for Edens Gates voting.

Usage:
    edengates founders
    edengates wallets
    edengates fee-preview --payer YOUR_WALLET
    edengates vote FOUNDER_ID [--wallet "Local Keypair"]
    edengates reconcile
"""

import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass
from typing import Any, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from .config import Settings, load_env
from .errors import ConfigurationError, DataStoreError, EdenGatesError

console = Console()


@dataclass
class App:
    """Components wired from settings for one CLI invocation."""
    settings: Settings
    rpc: Any
    registry: Any
    session: Any
    store: Any
    tally: Any
    coordinator: Any


def _require_store(app: App) -> Any:
    if app.store is None:
        raise ConfigurationError("Missing SUPABASE_URL and SUPABASE_ANON_KEY")
    return app.store


def build_app(settings: Settings, scope: Any = None) -> App:
    from .adapters import AdapterRegistry, LocalKeypairAdapter, PhantomWalletAdapter, SolflareWalletAdapter
    from .core import SolanaRpcClient, VoteCoordinator, create_wallet_session
    from .state import FounderTally, KeyValueStore, LocalVoteLedger, UnrecordedVoteJournal, device_fingerprint
    from .store import SupabaseStore
    from .adapters.registry import OPTIONAL_ADAPTERS

    rpc = SolanaRpcClient(settings.rpc_url)

    static = []
    if settings.keypair_path:
        static.append(LocalKeypairAdapter(keypair_path=settings.keypair_path))
    static.extend([PhantomWalletAdapter(scope), SolflareWalletAdapter(scope)])

    specs = OPTIONAL_ADAPTERS
    if settings.optional_adapters is not None:
        specs = [spec for spec in OPTIONAL_ADAPTERS if spec.key in settings.optional_adapters]

    registry = AdapterRegistry(scope=scope, static_adapters=static, optional_specs=specs)
    session = create_wallet_session(
        settings.wallet_enabled,
        rpc,
        registry=registry,
        confirm_timeout=settings.confirm_timeout,
    )

    kv = KeyValueStore(settings.state_dir / "state.json")
    store = None
    if settings.supabase_url or settings.supabase_anon_key:
        store = SupabaseStore(settings.supabase_url, settings.supabase_anon_key)
    tally = FounderTally()
    coordinator = VoteCoordinator(
        store=store,
        session=session,
        tally=tally,
        ledger=LocalVoteLedger(kv),
        settings=settings,
        rpc=rpc,
        journal=UnrecordedVoteJournal(kv),
        fingerprint=device_fingerprint(),
    )
    return App(settings, rpc, registry, session, store, tally, coordinator)


def show_founders(args: argparse.Namespace, app: App) -> int:
    """List active founders by vote count."""

    async def _fetch():
        async with _require_store(app):
            return await app.tally.refresh(app.store)

    founders = asyncio.run(_fetch())
    if not founders:
        console.print("[dim]No active founders this round.[/dim]")
        return 0

    voted = set(app.coordinator.ledger.founder_ids)
    table = Table(title="Active Founders")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Handle")
    table.add_column("Votes", justify="right")
    table.add_column("Voted", justify="center")

    for founder in founders:
        table.add_row(
            founder.id,
            founder.name,
            founder.handle or "",
            str(founder.vote_count),
            "✓" if founder.id in voted else "",
        )

    console.print(table)
    return 0


def list_wallets(args: argparse.Namespace, app: App) -> int:
    """List wallet adapters, including optional ones."""
    if not app.settings.wallet_enabled:
        console.print("[yellow]Wallet support is disabled (set WALLET_ENABLED=true).[/yellow]")
        return 0

    adapters = asyncio.run(app.registry.discover_optional_adapters())

    table = Table(title="Wallets")
    table.add_column("Name", style="cyan")
    table.add_column("Status")
    table.add_column("URL", style="dim")
    for adapter in adapters:
        state = adapter.ready_state.value
        style = "green" if state == "installed" else "dim"
        table.add_row(adapter.name, f"[{style}]{state}[/{style}]", adapter.url)

    console.print(table)
    return 0


def preview_fee(args: argparse.Namespace, app: App) -> int:
    """Show the fee transaction a vote from ``--payer`` would send."""
    from .core import FeeTransactionBuilder

    settings = app.settings
    settings.require_fee_accounts()
    builder = FeeTransactionBuilder(
        app.rpc,
        settings.fee_mint,
        compute_unit_limit=settings.compute_unit_limit,
        compute_unit_price=settings.compute_unit_price,
    )
    tx = asyncio.run(builder.build(args.payer, settings.vote_fee, settings.fee_decimals, settings.rewards_wallet))

    console.print(Panel(
        f"[bold]{settings.vote_fee}[/bold] tokens = [bold]{tx.amount}[/bold] base units\n"
        f"[dim]Mint: {settings.fee_mint}[/dim]\n"
        f"[dim]Recipient: {settings.rewards_wallet}[/dim]",
        title="Vote Fee",
    ))

    table = Table(title="Instructions")
    table.add_column("#", justify="right")
    table.add_column("Kind", style="cyan")
    table.add_column("Program", style="dim")
    table.add_column("Detail")
    for i, step in enumerate(tx.steps):
        detail = ", ".join(f"{k}={v}" for k, v in step.detail.items())
        table.add_row(str(i + 1), step.kind, str(step.instruction.program_id), detail)
    console.print(table)
    return 0


def _pick_wallet(app: App, name: Optional[str]):
    adapters = app.registry.build_adapter_list()
    if name:
        return app.session.select(name)
    for adapter in adapters:
        if adapter.ready_state.value == "installed":
            return app.session.select(adapter)
    return app.session.select(adapters[0])


def cast_vote(args: argparse.Namespace, app: App) -> int:
    """Vote for a founder, paying the fee if wallets are on."""

    async def _vote():
        async with _require_store(app):
            await app.tally.refresh(app.store)
            if app.settings.wallet_enabled:
                await app.registry.discover_optional_adapters()
                adapter = _pick_wallet(app, args.wallet)
                console.print(f"[dim]Connecting {adapter.name}...[/dim]")
                await app.session.connect()
                console.print(f"[green]✓ Wallet {app.session.address}[/green]")
            try:
                return await app.coordinator.cast_vote(args.founder_id)
            finally:
                if app.session.connected:
                    await app.session.disconnect()

    try:
        outcome = asyncio.run(_vote())
    except DataStoreError as e:
        console.print(f"[red]✗ {e}[/red]")
        if e.signature:
            console.print(
                "[yellow]Your fee was spent. Run `edengates reconcile` later, "
                f"or contact an admin with tx {e.signature}.[/yellow]"
            )
        return 1

    console.print(f"[green]✓ {outcome.message}[/green]")
    founder = app.tally.get(args.founder_id)
    if founder:
        console.print(f"  [dim]{founder.name}: {founder.vote_count} votes[/dim]")
    return 0


def reconcile(args: argparse.Namespace, app: App) -> int:
    """Retry votes whose fee was spent but not recorded."""

    async def _run():
        async with _require_store(app):
            return await app.coordinator.reconcile()

    results = asyncio.run(_run())
    if not results:
        console.print("[dim]Nothing to reconcile.[/dim]")
        return 0

    table = Table(title="Reconciliation")
    table.add_column("Founder", style="cyan")
    table.add_column("Signature", style="dim")
    table.add_column("Result")
    styles = {"recorded": "green", "failed": "red", "pending": "yellow"}
    for result in results:
        style = styles.get(result.status, "white")
        label = result.status + (f": {result.detail}" if result.detail else "")
        table.add_row(result.entry.founder_id, result.entry.signature, f"[{style}]{label}[/{style}]")
    console.print(table)
    return 0 if all(r.status != "pending" for r in results) else 1


def main(argv: Optional[list] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="edengates",
        description="Edens Gates founder voting",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("founders", help="List active founders").set_defaults(func=show_founders)
    subparsers.add_parser("wallets", help="List available wallets").set_defaults(func=list_wallets)

    fee_parser = subparsers.add_parser("fee-preview", help="Show the vote fee transaction")
    fee_parser.add_argument("--payer", required=True, help="Voter wallet address")
    fee_parser.set_defaults(func=preview_fee)

    vote_parser = subparsers.add_parser("vote", help="Vote for a founder")
    vote_parser.add_argument("founder_id", help="Founder ID")
    vote_parser.add_argument("-w", "--wallet", help="Wallet name (see `wallets`)")
    vote_parser.set_defaults(func=cast_vote)

    subparsers.add_parser("reconcile", help="Retry unrecorded paid votes").set_defaults(func=reconcile)

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )

    load_env()
    try:
        app = build_app(Settings.from_env())
        return args.func(args, app)
    except EdenGatesError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1


if __name__ == "__main__":
    sys.exit(main())
