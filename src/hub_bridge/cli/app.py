"""CLI for hub-bridge - bridge USDC out of the Arc hub from the terminal."""

from __future__ import annotations

import asyncio
import logging

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

app = typer.Typer(
    name="hub-bridge",
    help="Move USDC from the Arc hub to other chains with CCTP burn-and-mint.",
    no_args_is_help=True,
)
console = Console()


def _version_callback(value: bool):
    if value:
        from importlib.metadata import version
        console.print(f"hub-bridge {version('hub-bridge')}")
        raise typer.Exit()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logs"),
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    ),
):
    """Move USDC from the Arc hub to other chains with CCTP burn-and-mint."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )
    # httpx logs every request at INFO.
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


def _run(coro):
    """Run an async function synchronously."""
    try:
        loop = asyncio.get_event_loop()
        if loop.is_running():
            import concurrent.futures
            with concurrent.futures.ThreadPoolExecutor() as pool:
                return pool.submit(asyncio.run, coro).result()
        return loop.run_until_complete(coro)
    except RuntimeError:
        return asyncio.run(coro)


def _print_saga(saga, title: str) -> None:
    color = {"failed": "red", "pending": "yellow"}.get(saga.outcome.value, "green")
    console.print(Panel(saga.summary(), title=title, border_style=color))


@app.command()
def init():
    """Write a default .hub-bridge/config.yaml in the current directory."""
    from hub_bridge.core.runtime import BridgeRuntime

    path = BridgeRuntime.init()
    console.print(Panel(
        f"Config: [cyan]{path}[/cyan]\n\n"
        f"[dim]Set CIRCLE_API_KEY and CIRCLE_ENTITY_SECRET, or edit the file.[/dim]",
        title="hub-bridge initialized",
    ))


@app.command()
def chains():
    """List supported chains."""
    from hub_bridge.wallet.chains import CHAINS

    table = Table(title="Supported Chains")
    table.add_column("Key", style="cyan")
    table.add_column("Name")
    table.add_column("Domain", justify="right")
    table.add_column("Chain ID", justify="right")
    table.add_column("Gas")
    table.add_column("Role", style="dim")

    for c in CHAINS.values():
        table.add_row(
            c.key, c.name, str(c.domain), str(c.chain_id), c.native_symbol,
            "hub" if c.is_hub else "extension",
        )
    console.print(table)


# ------------------------------------------------------------------
# wallet sub-commands
# ------------------------------------------------------------------

wallet_app = typer.Typer(
    name="wallet",
    help="Inspect a user's custodial wallet.",
    no_args_is_help=True,
)
app.add_typer(wallet_app, name="wallet")


@wallet_app.command("address")
def wallet_address(
    user: str = typer.Option(..., "--user", "-u", help="User id the wallet belongs to"),
):
    """Show (and provision, if needed) the user's universal address."""
    from hub_bridge.bridge.errors import BridgeError
    from hub_bridge.core.runtime import BridgeRuntime
    from hub_bridge.wallet.chains import hub_chain

    async def _address():
        runtime = await BridgeRuntime.load()
        try:
            return await runtime.get_address(user)
        finally:
            await runtime.shutdown()

    try:
        addr = _run(_address())
    except BridgeError as e:
        console.print(f"[red]Could not provision wallet: {e}[/red]")
        raise typer.Exit(1)

    console.print(Panel(
        f"[cyan]{addr}[/cyan]\n\n"
        f"[dim]Same address on every supported chain.[/dim]\n"
        f"[dim]{hub_chain().address_url(addr)}[/dim]",
        title="Wallet Address",
    ))


@wallet_app.command("balance")
def wallet_balance(
    user: str = typer.Option(..., "--user", "-u", help="User id the wallet belongs to"),
    chain: str = typer.Option(None, "--chain", "-c", help="Chain name; omit for all chains"),
):
    """Show USDC balances as reported by custody."""
    from hub_bridge.core.runtime import BridgeRuntime
    from hub_bridge.tools.bridge_tools import get_balance

    async def _balance():
        runtime = await BridgeRuntime.load()
        try:
            return await get_balance(user_id=user, chain=chain or "")
        finally:
            await runtime.shutdown()

    result = _run(_balance())
    if not result["success"]:
        console.print(f"[red]{result['message']}[/red]")
        raise typer.Exit(1)

    table = Table(title=f"USDC Balances ({user})")
    table.add_column("Chain", style="cyan")
    table.add_column("Balance", justify="right")
    table.add_column("Status", style="dim")
    for key, amount in result["data"]["balances"].items():
        table.add_row(key, amount, "[green]OK[/green]")
    for key, err in result["data"]["errors"].items():
        table.add_row(key, "-", f"[red]{err}[/red]")
    console.print(table)


@wallet_app.command("gas")
def wallet_gas(
    user: str = typer.Option(..., "--user", "-u", help="User id the wallet belongs to"),
    chain: str = typer.Option(..., "--chain", "-c", help="Chain name"),
):
    """Show the native gas balance on one chain, read from the RPC node."""
    from hub_bridge.bridge.errors import BridgeError
    from hub_bridge.core.runtime import BridgeRuntime
    from hub_bridge.wallet.chains import get_chain, require_chain_key

    async def _gas():
        runtime = await BridgeRuntime.load()
        try:
            return await runtime.get_gas_balance(user, chain)
        finally:
            await runtime.shutdown()

    try:
        cfg = get_chain(require_chain_key(chain))
        amount = _run(_gas())
    except BridgeError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    except Exception as e:
        console.print(f"[red]RPC error on {chain}: {e}[/red]")
        raise typer.Exit(1)

    console.print(f"[cyan]{cfg.name}[/cyan]: {amount} {cfg.native_symbol}")


# ------------------------------------------------------------------
# bridge sub-commands
# ------------------------------------------------------------------

bridge_app = typer.Typer(
    name="bridge",
    help="Start, resume and inspect bridge transfers.",
    no_args_is_help=True,
)
app.add_typer(bridge_app, name="bridge")


@bridge_app.command("send")
def bridge_send(
    amount: str = typer.Argument(help="Amount of USDC to bridge (e.g. 0.5)"),
    to: str = typer.Option(..., "--to", "-t", help="Destination chain (e.g. base, sepolia)"),
    user: str = typer.Option(..., "--user", "-u", help="User id whose wallet pays"),
    recipient: str = typer.Option(None, "--recipient", "-r", help="Final recipient address; defaults to the user's wallet"),
    source: str = typer.Option(None, "--from", "-f", help="Source chain; defaults to the Arc hub"),
    wait: bool = typer.Option(True, "--wait/--no-wait", help="Wait for mint and delivery before returning"),
):
    """Burn on the source chain and mint on the destination."""
    from pydantic import ValidationError

    from hub_bridge.bridge.requests import BridgeRequest
    from hub_bridge.core.runtime import BridgeRuntime

    try:
        request = BridgeRequest(
            amount=amount, destination_chain=to, source_chain=source, recipient=recipient
        )
    except ValidationError as e:
        console.print(f"[red]Invalid request: {e.errors()[0]['msg']}[/red]")
        raise typer.Exit(1)

    async def _send():
        runtime = await BridgeRuntime.load()
        try:
            saga = await runtime.orchestrator.bridge(request, user, await_completion=wait)
            if not wait and not saga.finished:
                _print_saga(saga, "Bridge Started")
                console.print("[dim]Waiting for attestation; Ctrl-C leaves it resumable.[/dim]")
            return saga
        finally:
            await runtime.shutdown()

    saga = _run(_send())
    _print_saga(saga, "Bridge")
    if saga.outcome.value == "failed":
        raise typer.Exit(1)


@bridge_app.command("resume")
def bridge_resume(
    burn_tx_hash: str = typer.Argument(help="Burn transaction hash on the source chain"),
    user: str = typer.Option(..., "--user", "-u", help="User id the bridge belongs to"),
    source: str = typer.Option(None, "--from", "-f", help="Source chain (only if not on record)"),
    to: str = typer.Option(None, "--to", "-t", help="Destination chain (only if not on record)"),
    amount: str = typer.Option(None, "--amount", "-a", help="Original amount (only if not on record)"),
    recipient: str = typer.Option(None, "--recipient", "-r", help="Original recipient (only if not on record)"),
):
    """Finish a bridge whose attestation, mint or delivery did not complete."""
    from pydantic import ValidationError

    from hub_bridge.bridge.errors import BridgeError
    from hub_bridge.bridge.requests import ResumeRequest
    from hub_bridge.core.runtime import BridgeRuntime

    try:
        request = ResumeRequest(
            burn_tx_hash=burn_tx_hash,
            source_chain=source,
            destination_chain=to,
            amount=amount,
            recipient=recipient,
        )
    except ValidationError as e:
        console.print(f"[red]Invalid request: {e.errors()[0]['msg']}[/red]")
        raise typer.Exit(1)

    async def _resume():
        runtime = await BridgeRuntime.load()
        try:
            return await runtime.orchestrator.resume(request, user, await_completion=True)
        finally:
            await runtime.shutdown()

    try:
        saga = _run(_resume())
    except KeyError as e:
        console.print(f"[red]{e.args[0] if e.args else e}[/red]")
        raise typer.Exit(1)
    except PermissionError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    except (ValueError, BridgeError) as e:
        console.print(f"[yellow]{e}[/yellow]")
        raise typer.Exit(1)

    _print_saga(saga, "Bridge Resumed")
    if saga.outcome.value == "failed":
        raise typer.Exit(1)


@bridge_app.command("status")
def bridge_status(
    burn_tx_hash: str = typer.Argument(help="Burn transaction hash"),
    check: bool = typer.Option(False, "--check", help="Also look up burn and mint receipts on-chain"),
):
    """Show the recorded state of one bridge."""
    from hub_bridge.core.runtime import BridgeRuntime

    async def _status():
        runtime = await BridgeRuntime.load()
        try:
            record = await runtime.store.get(burn_tx_hash)
            receipts = None
            if record is not None and check:
                receipts = await runtime.confirmations(record.burn_tx_hash)
            return record, receipts
        finally:
            await runtime.shutdown()

    try:
        record, receipts = _run(_status())
    except Exception as e:
        console.print(f"[red]Receipt lookup failed: {e}[/red]")
        raise typer.Exit(1)

    if record is None:
        console.print(f"[yellow]No bridge recorded for {burn_tx_hash}.[/yellow]")
        raise typer.Exit(1)
    _print_saga(record.to_saga(), f"Bridge {record.stage.value} / {record.outcome.value}")

    if receipts is not None:
        labels = {True: "[green]confirmed[/green]", False: "[red]reverted[/red]", None: "[dim]not mined[/dim]"}
        for name, state in receipts.items():
            console.print(f"  {name}: {labels[state]}")


@bridge_app.command("list")
def bridge_list(
    user: str = typer.Option(None, "--user", "-u", help="Only this user's bridges"),
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum rows"),
):
    """List recorded bridges, newest first."""
    from hub_bridge.core.runtime import BridgeRuntime

    async def _list():
        runtime = await BridgeRuntime.load()
        try:
            return await runtime.store.list(user_id=user, limit=limit)
        finally:
            await runtime.shutdown()

    records = _run(_list())
    if not records:
        console.print("[dim]No bridges recorded.[/dim]")
        return

    table = Table(title="Bridges")
    table.add_column("Burn Tx", style="dim")
    table.add_column("User")
    table.add_column("Route", style="cyan")
    table.add_column("Amount", justify="right")
    table.add_column("Stage")
    table.add_column("Outcome")
    table.add_column("Error")

    outcome_colors = {"pending": "yellow", "minted": "green", "delivered": "green", "failed": "red"}

    for r in records:
        color = outcome_colors.get(r.outcome.value, "white")
        table.add_row(
            r.burn_tx_hash[:12] + "...",
            r.user_id,
            f"{r.source_chain} -> {r.destination_chain}",
            r.amount,
            r.stage.value,
            f"[{color}]{r.outcome.value}[/{color}]",
            (r.error or "")[:40],
        )
    console.print(table)


if __name__ == "__main__":
    app()
