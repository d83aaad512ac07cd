"""idlink CLI - operator commands for a running gateway."""

from __future__ import annotations

import json
import sys

import click
import httpx
from rich.console import Console
from rich.table import Table

from idlink.core.config import load_auth_config
from idlink.server.app import MANAGE_TOKEN_HEADER

console = Console()

DEFAULT_SERVER = "http://localhost:8080"


@click.group()
def main():
    """idlink - external identity sign-in gateway."""


@main.command()
def version():
    """Show version information."""
    from idlink import __version__

    console.print(f"[bold]Version:[/bold] {__version__}")
    console.print(f"[bold]Python:[/bold] {sys.version}")


@main.command()
@click.option(
    "--config",
    "-c",
    "config_path",
    envvar="IDLINK_CONFIG",
    type=click.Path(exists=True, dir_okay=False),
    help="YAML or TOML configuration file",
)
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
def providers(config_path: str | None, json_output: bool):
    """Show configured providers and whether they are usable.

    Reads the local configuration; does not contact the server.
    """
    config = load_auth_config(config_path)
    rows = [
        {
            "id": key,
            "enabled": settings.enabled,
            "credentials": bool(settings.client_id and settings.client_secret),
            "usable": settings.usable,
            "registration": settings.registration_enabled,
            "callback": config.callback_url(key),
        }
        for key, settings in sorted(config.providers.items())
    ]

    if json_output:
        click.echo(json.dumps(rows, indent=2))
        return

    if not rows:
        console.print("[dim]No providers configured[/dim]")
        return

    table = Table(title="Providers")
    table.add_column("Provider", style="cyan")
    table.add_column("Usable")
    table.add_column("Registration")
    table.add_column("Callback URL", style="dim")
    for row in rows:
        usable = "[green]yes[/green]" if row["usable"] else "[red]no[/red]"
        if not row["usable"] and row["enabled"] and not row["credentials"]:
            usable = "[red]no[/red] (missing credentials)"
        table.add_row(
            row["id"],
            usable,
            "open" if row["registration"] else "closed",
            row["callback"],
        )
    console.print(table)


@main.command()
@click.option("--server", default=DEFAULT_SERVER, help="Gateway base URL")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
def status(server: str, json_output: bool):
    """Show server health and the providers it offers."""
    base_url = server.rstrip("/")
    try:
        with httpx.Client(timeout=5.0) as client:
            health = client.get(f"{base_url}/health").json()
            services = client.get(f"{base_url}/auth").json().get("services", [])
    except (httpx.HTTPError, ValueError) as e:
        console.print(f"[red]Error connecting to server:[/red] {e}")
        sys.exit(1)

    if json_output:
        click.echo(json.dumps({"health": health, "services": services}, indent=2))
        return

    console.print(f"\n[bold]Server:[/bold] {base_url}")
    console.print(f"[bold]Status:[/bold] [green]{health.get('status', 'unknown')}[/green]")
    if services:
        names = ", ".join(service.get("id", "?") for service in services)
        console.print(f"[bold]Providers:[/bold] {names}")
    else:
        console.print("[dim]No usable providers[/dim]")


@main.command()
@click.option("--server", default=DEFAULT_SERVER, help="Gateway base URL")
@click.option(
    "--token",
    envvar="IDLINK_MANAGE_TOKEN",
    required=True,
    help="Management token (X-Manage-Token)",
)
def reload(server: str, token: str):
    """Re-read provider configuration on a running server."""
    base_url = server.rstrip("/")
    try:
        with httpx.Client(timeout=10.0) as client:
            response = client.post(
                f"{base_url}/admin/reload", headers={MANAGE_TOKEN_HEADER: token}
            )
    except httpx.HTTPError as e:
        console.print(f"[red]Error connecting to server:[/red] {e}")
        sys.exit(1)

    if response.status_code == 401:
        console.print("[red]Unauthorized:[/red] check the management token")
        sys.exit(1)
    if response.status_code != 200:
        console.print(f"[red]Reload failed:[/red] HTTP {response.status_code}")
        sys.exit(1)

    for key, usable in sorted(response.json().get("providers", {}).items()):
        state = "[green]usable[/green]" if usable else "[red]inert[/red]"
        console.print(f"{key}: {state}")
    console.print("[green]Provider state reloaded[/green]")


if __name__ == "__main__":
    main()
