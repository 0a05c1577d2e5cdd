"""Command-line interface for the wallet bridge.

Example:
    >>> # From terminal:
    >>> # wallet-bridge --version
    >>> # wallet-bridge check-origin https://app.cryptotradingjournal.xyz
    >>> # wallet-bridge show-config
    >>> # wallet-bridge simulate --reject-signature
"""

import asyncio
import json
from typing import Annotated, Any, Optional

import typer
from pydantic import ValidationError

from wallet_bridge import __version__
from wallet_bridge.config import BridgeConfig
from wallet_bridge.messaging.origin import OriginValidator
from wallet_bridge.models.enums import AccountMode
from wallet_bridge.observability import configure_logging
from wallet_bridge.runtime import DEFAULT_PAGE_ORIGIN, LocalBridge
from wallet_bridge.storage.base import InMemoryStorage
from wallet_bridge.testing.mocks import MockAuthApi, MockWalletProvider

app = typer.Typer(help="Wallet bridge CLI.")


def _version_callback(value: bool) -> None:
    """Print the version and exit when requested."""
    if value:
        typer.echo(__version__)
        raise typer.Exit()


VERSION_OPTION = typer.Option(
    False,
    "--version",
    help="Show wallet bridge version and exit.",
    callback=_version_callback,
    is_eager=True,
)


def _load_config() -> BridgeConfig:
    try:
        return BridgeConfig.from_env()
    except ValidationError as exc:
        typer.echo(f"Invalid configuration: {exc}", err=True)
        raise typer.Exit(2) from exc


@app.callback()
def cli(
    version: bool = VERSION_OPTION,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level."),
) -> None:
    """Wallet bridge CLI entrypoint."""
    if verbose:
        configure_logging(log_level="DEBUG", force=True)


@app.command("check-origin")
def check_origin(
    origin: Annotated[str, typer.Argument(help="Origin to test, e.g. https://example.com")],
    allow: Annotated[
        Optional[list[str]],
        typer.Option("--allow", "-a", help="Allowed origin pattern (repeatable); overrides config."),
    ] = None,
) -> None:
    """Exit 0 if ORIGIN is allowed to talk to the bridge, 1 otherwise."""
    patterns = allow if allow else _load_config().allowed_origins
    if OriginValidator(patterns).is_allowed(origin):
        typer.echo(f"allowed: {origin}")
        return
    typer.echo(f"rejected: {origin}", err=True)
    raise typer.Exit(1)


@app.command("show-config")
def show_config() -> None:
    """Print the effective configuration (defaults + WALLET_BRIDGE_* variables) as JSON."""
    typer.echo(json.dumps(_load_config().model_dump(mode="json"), indent=2))


async def _simulate(
    config: BridgeConfig, account_mode: AccountMode, reject_signature: bool
) -> dict[str, Any]:
    wallet = MockWalletProvider()
    if reject_signature:
        wallet.reject("personal_sign")
    async with LocalBridge(
        config,
        storage=InMemoryStorage(),
        api=MockAuthApi(),
        providers=wallet,
        origin=DEFAULT_PAGE_ORIGIN,
    ) as bridge:
        result = await bridge.page.connect(account_mode)
        await bridge.settle()
        controller = bridge.coordinator.controller_for(bridge.page.consumer_id)
        return {
            "success": result.success,
            "state": controller.state.value,
            "history": [state.value for state in controller.history],
            "session": await bridge.coordinator.sessions.public_view(),
            "error": result.error,
            "code": result.code,
        }


@app.command("simulate")
def simulate(
    reject_signature: Annotated[
        bool,
        typer.Option("--reject-signature", help="Have the mock wallet reject the sign request."),
    ] = False,
    demo: Annotated[bool, typer.Option("--demo", help="Sign in with the demo account mode.")] = False,
) -> None:
    """Run a full page -> relay -> background sign-in against a mock wallet and API."""
    mode = AccountMode.DEMO if demo else AccountMode.LIVE
    outcome = asyncio.run(_simulate(_load_config(), mode, reject_signature))
    typer.echo(json.dumps(outcome, indent=2))
    if not outcome["success"]:
        raise typer.Exit(1)


def main() -> None:
    """Run the wallet bridge CLI."""
    app()


if __name__ == "__main__":
    main()
