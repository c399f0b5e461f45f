"""CLI commands for bizdesk."""

import asyncio
import json
from typing import Any

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from bizdesk import __logo__, __version__
from bizdesk.api.client import ApiClient
from bizdesk.api.errors import ApiError
from bizdesk.config.schema import Config
from bizdesk.ratelimit.limiter import RateLimiter
from bizdesk.ratelimit.monitor import RateLimitMonitor

app = typer.Typer(
    name="bizdesk",
    help=f"{__logo__} bizdesk - small-business API client",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} bizdesk v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """bizdesk - small-business API client."""
    pass


def _load_runtime_config() -> Config:
    from bizdesk.config.loader import load_config
    from bizdesk.core.logger import configure_logger

    config = load_config()
    configure_logger(config)
    return config


def _make_client(config: Config, limiter: RateLimiter) -> ApiClient:
    return ApiClient.from_config(config, limiter)


def _parse_pairs(pairs: list[str], option: str) -> dict[str, str]:
    parsed: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            console.print(f"[red]Invalid {option} '{pair}', expected KEY=VALUE[/red]")
            raise typer.Exit(1)
        parsed[key] = value
    return parsed


async def _perform_call(
    config: Config,
    limiter: RateLimiter,
    method: str,
    path: str,
    body: Any,
    params: dict[str, str],
    max_retries: int | None,
) -> Any:
    async with _make_client(config, limiter) as api:
        return await api.request(
            method,
            path,
            json=body,
            params=params or None,
            max_retries=max_retries,
        )


# ============================================================================
# API calls
# ============================================================================


@app.command()
def call(
    method: str = typer.Argument(..., help="HTTP method (GET, POST, PUT, PATCH, DELETE)"),
    endpoint: str = typer.Argument(..., help="Path (/api/products) or endpoint name (PRODUCTS_GET)"),
    data: str = typer.Option(None, "--data", "-d", help="JSON request body"),
    param: list[str] = typer.Option([], "--param", "-p", help="Query parameter KEY=VALUE (repeatable)"),
    path_param: list[str] = typer.Option([], "--path", help="Path placeholder KEY=VALUE for named endpoints"),
    max_retries: int = typer.Option(None, "--max-retries", min=0, help="Retries after a 429"),
):
    """Call the backend API through the rate limiter."""
    from bizdesk.api.endpoints import resolve

    config = _load_runtime_config()

    if endpoint.startswith("/"):
        path = endpoint
    else:
        try:
            path = resolve(endpoint, **_parse_pairs(path_param, "--path"))
        except KeyError:
            console.print(f"[red]Unknown endpoint: {endpoint}[/red]")
            console.print("Run [cyan]bizdesk endpoints[/cyan] to list them.")
            raise typer.Exit(1)
        except ValueError as e:
            console.print(f"[red]{e}[/red]")
            raise typer.Exit(1)

    body = None
    if data:
        try:
            body = json.loads(data)
        except json.JSONDecodeError as e:
            console.print(f"[red]Invalid JSON body: {e}[/red]")
            raise typer.Exit(1)

    limiter = RateLimiter.from_config(config.rate_limit)
    monitor = RateLimitMonitor(limiter)
    monitor.attach()
    try:
        result = asyncio.run(
            _perform_call(
                config,
                limiter,
                method,
                path,
                body,
                _parse_pairs(param, "--param"),
                max_retries,
            )
        )
    except ApiError as e:
        status = f" ({e.status_code})" if e.status_code else ""
        console.print(f"[red]✗ {e.kind.value}{status}: {escape(e.message)}[/red]")
        panel = monitor.render()
        if panel is not None:
            console.print(panel)
        raise typer.Exit(1)
    finally:
        monitor.detach()

    console.print_json(data=result)


@app.command()
def endpoints():
    """List named backend endpoints."""
    from bizdesk.api.endpoints import API_ENDPOINTS

    table = Table(title="API Endpoints")
    table.add_column("Name", style="cyan")
    table.add_column("Path", style="green")

    for name, path in API_ENDPOINTS.items():
        table.add_row(name, path)

    console.print(table)


@app.command()
def limits():
    """Show effective rate-limit settings."""
    config = _load_runtime_config()
    limiter = RateLimiter.from_config(config.rate_limit)
    status = limiter.get_status()

    table = Table(title="Rate Limits")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="yellow")

    table.add_row("Requests / second", f"{status.requests_per_second:g}")
    table.add_row("Requests / minute", str(status.requests_per_minute))
    table.add_row("Burst size", f"{config.rate_limit.effective_burst_size:g}")
    table.add_row("Initial backoff", f"{limiter.initial_backoff_ms:g}ms")
    table.add_row("Max backoff", f"{limiter.max_backoff_ms:g}ms")
    table.add_row("Backoff multiplier", f"{limiter.backoff_multiplier:g}")
    table.add_row("Max retries (429)", str(config.api.max_retries))
    table.add_row("Serialized admission", "✓" if config.api.serialize_admission else "✗")
    table.add_row("Tokens available", f"{status.tokens_available:g}")
    table.add_row("Recent requests (60s)", str(status.recent_request_count))
    table.add_row("Blocked", "✓" if status.is_blocked else "✗")

    console.print(table)


# ============================================================================
# Auth token
# ============================================================================


@app.command()
def login(
    token: str = typer.Argument(..., help="Bearer token issued by the backend"),
):
    """Store the bearer token used for API calls."""
    from bizdesk.api.auth import TokenStore

    config = _load_runtime_config()
    store = TokenStore(config.api.token_path)
    store.set(token)
    console.print(f"[green]✓[/green] Token saved to {store.path}")


@app.command()
def logout():
    """Remove the stored bearer token."""
    from bizdesk.api.auth import TokenStore

    config = _load_runtime_config()
    TokenStore(config.api.token_path).clear()
    console.print("[green]✓[/green] Logged out")


if __name__ == "__main__":
    app()
