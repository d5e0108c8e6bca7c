"""codegrant CLI - operator tooling for OAuth client registrations."""

from __future__ import annotations

import logging
import sys

import click
from rich.console import Console
from rich.table import Table

console = Console()


def configure_logging(log_level: str) -> None:
    import structlog

    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper())
        ),
    )


@click.group()
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    help="Log level (defaults to CODEGRANT_LOG_LEVEL or info)",
)
def main(log_level: str | None):
    """Inspect and validate OAuth2 Authorization Code Grant clients."""
    from pydantic import ValidationError

    from codegrant.config import get_settings

    try:
        settings = get_settings()
    except ValidationError as e:
        console.print("[red]Invalid CODEGRANT_* environment settings:[/red]")
        for error in e.errors():
            field = ".".join(str(loc) for loc in error["loc"])
            console.print(f"  [red]x[/red] {field}: {error['msg']}")
        sys.exit(1)

    configure_logging(log_level or settings.log_level)


@main.command()
def providers():
    """List the built-in providers and their endpoints."""
    from codegrant.providers import KNOWN_PROVIDERS

    table = Table(title="Well-known providers")
    table.add_column("Name", style="cyan")
    table.add_column("Authorization URI", style="green")
    table.add_column("Token URI", style="green")

    for name, provider in KNOWN_PROVIDERS.items():
        table.add_row(name, provider.auth_uri, provider.token_uri)

    console.print(table)


@main.command()
@click.argument("config_file", type=click.Path())
@click.option("--name", "-n", default=None, help="Check a single registration")
def check(config_file: str, name: str | None):
    """Validate the oauth registrations in CONFIG_FILE.

    Client secrets are never printed.
    """
    from codegrant.config import OAuthConfig, load_config_from_file
    from codegrant.errors import ConfigError

    try:
        data = load_config_from_file(config_file)
    except ConfigError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        sys.exit(1)

    if name is not None:
        names = [name]
    else:
        oauth = data.get("oauth")
        names = list(oauth) if isinstance(oauth, dict) else []
        if not names:
            console.print("[red]Configuration error:[/red] no registrations under 'oauth'")
            sys.exit(1)

    table = Table(title="OAuth registrations")
    table.add_column("Name", style="cyan")
    table.add_column("Client ID")
    table.add_column("Redirect URI")
    table.add_column("Authorization URI", style="dim")

    errors = []
    for entry in names:
        try:
            cfg = OAuthConfig.from_config(data, entry)
        except ConfigError as e:
            errors.append((entry, str(e)))
            continue
        table.add_row(entry, cfg.client_id, cfg.redirect_uri, cfg.provider.auth_uri)

    if table.row_count:
        console.print(table)

    if errors:
        console.print("[red bold]Configuration Errors:[/red bold]")
        for entry, message in errors:
            console.print(f"  [red]x[/red] {entry}: {message}")
        sys.exit(1)

    console.print("[green]OK - Configuration is valid[/green]")


@main.command()
def keygen():
    """Generate a key for CODEGRANT_COOKIE_SECRET."""
    from cryptography.fernet import Fernet

    click.echo(Fernet.generate_key().decode())


@main.command("authorize-url")
@click.argument("config_file", type=click.Path())
@click.option("--name", "-n", required=True, help="Registration to use")
@click.option("--scope", "-s", "scopes", multiple=True, help="Scope to request (repeatable)")
def authorize_url(config_file: str, name: str, scopes: tuple[str, ...]):
    """Print an authorization URI and its state value.

    Useful for checking a registration against the provider by hand.
    """
    from codegrant.adapter import BasicAdapter
    from codegrant.config import OAuthConfig, get_settings
    from codegrant.errors import AdapterError, ConfigError

    try:
        cfg = OAuthConfig.from_file(config_file, name)
        uri, state = BasicAdapter.from_settings(get_settings()).authorization_uri(cfg, scopes)
    except ConfigError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        sys.exit(1)
    except AdapterError as e:
        console.print(f"[red]Adapter error:[/red] {e}")
        sys.exit(1)

    click.echo(uri)
    click.echo(f"state: {state}")


@main.command()
def version():
    """Show version information."""
    from codegrant import __version__

    console.print(f"[bold]Version:[/bold] {__version__}")
    console.print(f"[bold]Python:[/bold] {sys.version}")


if __name__ == "__main__":
    main()
