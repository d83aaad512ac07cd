"""idlink server - main entry point."""

import asyncio
import logging

import click
import structlog
from rich.console import Console

from idlink.core.config import AuthConfig, load_auth_config
from idlink.server.app import AuthServer

console = Console()

BANNER = """
 _     _ _ _       _
(_) __| | (_)_ __ | | __
| |/ _` | | | '_ \\| |/ /
| | (_| | | | | | |   <
|_|\\__,_|_|_|_| |_|_|\\_\\
       SIGN-IN GATEWAY
"""


@click.command()
@click.option(
    "--config",
    "-c",
    "config_path",
    envvar="IDLINK_CONFIG",
    type=click.Path(exists=True, dir_okay=False),
    help="YAML or TOML configuration file (re-read on /admin/reload)",
)
@click.option("--bind", "-b", help="Listen address, e.g. 0.0.0.0:8080")
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    help="Log level (overrides configuration)",
)
def main(config_path: str | None, bind: str | None, log_level: str | None):
    """Run the idlink sign-in gateway."""
    config = load_auth_config(config_path)
    if bind:
        config.bind = bind
    if log_level:
        config.log_level = log_level

    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, config.log_level.upper(), logging.INFO)
        ),
    )

    console.print(BANNER, style="cyan")
    console.print(f"Public URL: {config.base_url}", style="yellow")
    console.print(f"Listening on: {config.bind}", style="dim")

    usable = [key for key, settings in config.providers.items() if settings.usable]
    if usable:
        console.print(f"Providers: {', '.join(sorted(usable))}", style="green")
    else:
        console.print("Providers: none usable (set client_id/client_secret and enabled)", style="red")

    if config.bridge_enabled:
        allow = ", ".join(config.bridge_allow) if config.bridge_allow else "all callers"
        console.print(f"Bridge: enabled for {config.bridge_provider} ({allow})", style="dim")
    if not config.manage_token:
        console.print("Management: disabled (set manage_token to enable /admin/reload)", style="dim")

    asyncio.run(run_server(config, config_path))


async def run_server(config: AuthConfig, config_path: str | None = None):
    """Run the auth server until interrupted."""
    server = AuthServer(config, config_path=config_path)

    try:
        await server.start()
        console.print("Server started, press Ctrl+C to stop", style="green")

        await asyncio.Event().wait()
    except KeyboardInterrupt:
        console.print("\nShutting down...", style="yellow")
    finally:
        await server.stop()


if __name__ == "__main__":
    main()
