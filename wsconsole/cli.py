from __future__ import annotations

import asyncio
import logging
import sys

import click

from . import __version__
from .config import DEFAULT_TIMEOUT, TransportConfig, build_config
from .console import ConsoleUI
from .errors import ConfigError
from .orchestrator import ConnectionOrchestrator

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def configure_logging(level: str = "WARNING") -> None:
    logging.getLogger().setLevel(level.upper())


async def run_session(config: TransportConfig, color: bool | None = None) -> int:
    orchestrator = ConnectionOrchestrator(config, ConsoleUI(color=color))
    return await orchestrator.run()


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(__version__, "-V", "--version")
@click.option("-c", "--connect", metavar="URL", help="Connect to a WebSocket server.")
@click.option("-l", "--listen", type=int, metavar="PORT", help="Listen on a local port.")
@click.option("-p", "--protocol", type=int, metavar="VERSION", help="Protocol version (8 or 13).")
@click.option("-o", "--origin", help="Origin header sent when connecting.")
@click.option("--path", help="Path the listener accepts upgrades on (--listen only).")
@click.option("--host", help="Address to bind (--listen only).")
@click.option("--cert", metavar="FILE", help="TLS certificate (requires --key).")
@click.option("--key", metavar="FILE", help="TLS private key (requires --cert).")
@click.option("--ca", metavar="FILE", help="Trusted CA bundle.")
@click.option("--cipher", metavar="LIST", help="Allowed cipher suites.")
@click.option("--honor-cipher-order", is_flag=True, help="Prefer the server's cipher order.")
@click.option(
    "--request-client-cert", is_flag=True, help="Request a client certificate (--listen only)."
)
@click.option(
    "--reject-unverified", is_flag=True, help="Reject peers whose certificate does not verify."
)
@click.option("-s", "--subprotocol", help="Sec-WebSocket-Protocol to request.")
@click.option(
    "-H", "--header", "headers", multiple=True, metavar="'NAME: VALUE'",
    help="Extra handshake header. Repeat to set several.",
)
@click.option("--auth", metavar="USER:PASS", help="Basic authentication credentials.")
@click.option(
    "--timeout", type=float, default=DEFAULT_TIMEOUT, show_default=True,
    help="Connect and handshake timeout in seconds.",
)
@click.option("--no-color", is_flag=True, help="Disable colored output.")
@click.option(
    "--log-level", type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="WARNING", show_default=True,
)
def cli(
    connect, listen, protocol, origin, path, host, cert, key, ca, cipher,
    honor_cipher_order, request_client_cert, reject_unverified, subprotocol,
    headers, auth, timeout, no_color, log_level,
):
    """Interactive WebSocket console: talk to a server, or wait for one client."""
    configure_logging(log_level)
    try:
        config = build_config(
            connect=connect,
            listen=listen,
            protocol=protocol,
            origin=origin,
            path=path,
            host=host,
            cert=cert,
            key=key,
            ca=ca,
            cipher=cipher,
            honor_cipher_order=honor_cipher_order,
            request_client_cert=request_client_cert,
            reject_unverified=reject_unverified,
            subprotocol=subprotocol,
            headers=headers,
            auth=auth,
            timeout=timeout,
        )
    except ConfigError as exc:
        click.secho(f"error: {exc}", fg="red", err=True)
        sys.exit(exc.exit_code)

    sys.exit(asyncio.run(run_session(config, color=False if no_color else None)))


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
