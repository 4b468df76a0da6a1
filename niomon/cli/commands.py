"""CLI commands for niomon.

Drives the redirect login from a terminal: ``auth url`` prints the authorization URL,
the browser lands on the redirect URI, and ``auth callback`` completes the exchange.
Both storage scopes are file-backed so the steps may run in separate processes.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from pathlib import Path
from typing import Any, Awaitable, Callable, TypeVar

import httpx
import typer
from rich.console import Console
from rich.table import Table

from niomon import __logo__, __version__
from niomon.auth.client import NiomonClient
from niomon.auth.storage import JsonFileStore, local_store
from niomon.auth.token_manager import StoreTokenManager
from niomon.cli.logging_utils import ensure_rotating_log_file
from niomon.config.access import get_config
from niomon.config.schema import Config
from niomon.utils.exceptions import ConfigurationError, NiomonError, sanitize_error_message

T = TypeVar("T")

app = typer.Typer(
    name="niomon",
    help=f"{__logo__} niomon - Niomon authentication session tools",
    no_args_is_help=True,
)

console = Console()

def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} niomon v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """niomon - Niomon authentication session tools."""
    pass


def _config_option() -> Any:
    return typer.Option(None, "--config", "-c", help="Path to config.json")


def _mask(token: str | None) -> str:
    if not token:
        return "-"
    return token[:6] + "..." if len(token) > 10 else "***"


def _load_config(config_path: Path | None) -> Config:
    try:
        config = get_config(config_path=config_path)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    if config.client is None:
        console.print("[red]No client configured.[/red] Set client.baseUrl/clientId/redirectUri in ~/.niomon/config.json")
        raise typer.Exit(1)
    ensure_rotating_log_file("niomon", level=config.log_level, log_dir=config.storage_path / "logs")
    return config


def build_cli_client(config: Config, *, transport: httpx.AsyncBaseTransport | None = None) -> NiomonClient:
    """Session manager with both storage scopes on disk under the storage directory."""
    if config.client is None:
        raise ConfigurationError("no client configured", field="client")
    storage_dir = config.storage_path
    return NiomonClient(
        config.client,
        StoreTokenManager(config.client.client_id, storage=local_store(storage_dir)),
        session=config.session,
        transport=transport,
        auth_state_store=JsonFileStore(storage_dir / "auth_state.json"),
    )


def _run(config: Config, action: Callable[[NiomonClient], Awaitable[T]]) -> T:
    async def _go() -> T:
        async with build_cli_client(config) as client:
            return await action(client)

    try:
        return asyncio.run(_go())
    except (NiomonError, httpx.HTTPError) as e:
        message = e.message if isinstance(e, NiomonError) else str(e)
        console.print(f"[red]Error:[/red] {sanitize_error_message(message)}")
        raise typer.Exit(1)


def register_auth_commands(app: typer.Typer, console: Console) -> None:
    """Register auth command group."""
    auth_app = typer.Typer(help="Auth: PKCE login via redirect, token status, refresh, logout")
    app.add_typer(auth_app, name="auth")

    @auth_app.command("url")
    def auth_url(
        param: list[str] = typer.Option(None, "--param", "-p", help="Extra authorization parameter key=value"),
        config_path: Path = _config_option(),
    ) -> None:
        """Print an authorization URL and remember its PKCE state."""
        config = _load_config(config_path)
        extra: dict[str, str] = {}
        for item in param or []:
            key, sep, value = item.partition("=")
            if not sep or not key:
                raise typer.BadParameter(f"expected key=value, got {item!r}")
            extra[key] = value

        async def _build(client: NiomonClient) -> str:
            return client.build_auth_url(extra or None)

        console.print(_run(config, _build), soft_wrap=True)

    @auth_app.command("callback")
    def auth_callback(
        url: str = typer.Argument(..., help="Redirect URL the browser landed on"),
        config_path: Path = _config_option(),
    ) -> None:
        """Exchange the code from a redirect URL for tokens."""
        config = _load_config(config_path)

        async def _complete(client: NiomonClient) -> None:
            await client.handle_auth_callback(url)

        _run(config, _complete)
        console.print("[green]✓[/green] Logged in")

    @auth_app.command("status")
    def auth_status(
        refresh: bool = typer.Option(True, "--refresh/--no-refresh", help="Refresh a token that expires soon"),
        config_path: Path = _config_option(),
    ) -> None:
        """Show the current authentication status."""
        config = _load_config(config_path)

        async def _status(client: NiomonClient) -> tuple[Any, str | None]:
            status = await client.authentication_status(refresh)
            return status, await client.token_manager.get("expires_at")

        status, expires_at = _run(config, _status)
        if status is None:
            console.print("[yellow]Not authenticated[/yellow]")
            return
        table = Table(title="Authentication status")
        table.add_column("Field", style="cyan")
        table.add_column("Value")
        table.add_row("access token", _mask(status.access_token))
        table.add_row("refresh token", "yes" if status.refresh_token else "no")
        table.add_row("id token", "yes" if status.id_token else "no")
        if expires_at:
            table.add_row("expires at", datetime.fromtimestamp(float(expires_at)).isoformat(timespec="seconds"))
        table.add_row("expired", "[red]yes[/red]" if status.expired else "[green]no[/green]")
        console.print(table)

    @auth_app.command("refresh")
    def auth_refresh(config_path: Path = _config_option()) -> None:
        """Refresh the access token with the stored refresh token."""
        config = _load_config(config_path)

        async def _refresh(client: NiomonClient) -> None:
            await client.refresh_access_token()

        _run(config, _refresh)
        console.print("[green]✓[/green] Token refreshed")

    @auth_app.command("user")
    def auth_user(config_path: Path = _config_option()) -> None:
        """Show the userinfo of the logged in user."""
        config = _load_config(config_path)

        async def _user(client: NiomonClient) -> Any:
            return await client.get_user()

        user = _run(config, _user)
        table = Table(title="User")
        table.add_column("Field", style="cyan")
        table.add_column("Value")
        for key, value in user.model_dump(exclude_none=True).items():
            table.add_row(key, str(value))
        console.print(table)

    @auth_app.command("logout")
    def auth_logout(config_path: Path = _config_option()) -> None:
        """Forget the stored tokens."""
        config = _load_config(config_path)

        async def _logout(client: NiomonClient) -> None:
            await client.logout()

        _run(config, _logout)
        console.print("[green]✓[/green] Logged out")


register_auth_commands(app, console)


if __name__ == "__main__":
    app()
