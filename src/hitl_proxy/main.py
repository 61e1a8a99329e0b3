"""Main entry point for the HITL proxy CLI.

Starts the proxy for one downstream server (chosen by the single positional
argument) and serves MCP on stdio until the client disconnects or the
process is interrupted.
"""

import asyncio
import sys
from pathlib import Path

import click
from rich import box
from rich.console import Console
from rich.table import Table

from hitl_proxy import __version__
from hitl_proxy.config import get_settings
from hitl_proxy.exceptions import ConfigurationError, DownstreamConnectionError
from hitl_proxy.logging import get_logger, setup_logging
from hitl_proxy.servers import ServerRegistry
from hitl_proxy.server import ProxyServer

logger = get_logger("hitl_proxy.main")


@click.command()
@click.argument("server_id", required=False)
@click.option("--debug", "-d", is_flag=True, help="Enable debug logging")
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Write JSON logs to this file instead of stderr",
)
@click.option("--list-servers", is_flag=True, help="Show configured downstream servers and exit")
@click.version_option(__version__, prog_name="hitl-proxy")
def cli(server_id: str | None, debug: bool, log_file: Path | None, list_servers: bool):
    """HITL Proxy - gate risky MCP tool calls behind human approval.

    SERVER_ID selects the downstream server to front (defaults to
    HITL_DEFAULT_SERVER).
    """
    settings = get_settings()
    setup_logging(
        level="DEBUG" if debug else settings.hitl_log_level,
        log_file=log_file or settings.hitl_log_file,
    )

    try:
        registry = ServerRegistry.default(settings)
    except ConfigurationError as e:
        logger.error("Invalid server configuration", error=str(e))
        sys.exit(1)

    if list_servers:
        show_servers(registry)
        return

    server_id = server_id or settings.hitl_default_server
    logger.debug("Loaded settings", **settings.model_dump_safe())

    try:
        proxy = ProxyServer(server_id, settings=settings, registry=registry)
        asyncio.run(proxy.run())
    except ConfigurationError as e:
        logger.error("Failed to run HITL Proxy", error=str(e))
        sys.exit(1)
    except DownstreamConnectionError as e:
        logger.error("Failed to run HITL Proxy", error=str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted, exiting")


def show_servers(registry: ServerRegistry, console: Console | None = None) -> None:
    """Render the server registry as a table."""
    console = console or Console()
    table = Table(title="Downstream Servers", box=box.ROUNDED)
    table.add_column("Server", style="cyan bold")
    table.add_column("Command")
    table.add_column("High Risk", style="yellow")
    table.add_column("Blocked", style="red")

    for server_id, config in registry.items():
        table.add_row(
            server_id,
            " ".join([config.command, *config.args]),
            ", ".join(config.high_risk_tools) or "-",
            ", ".join(config.blocked_tools) or "-",
        )

    console.print(table)


if __name__ == "__main__":
    cli()
