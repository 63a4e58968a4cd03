"""Command line entry point: run a server, a client, or write a template config."""

from __future__ import annotations

import asyncio
import ipaddress
import logging
import os
import sys
from typing import Optional, Sequence

from remotefs import client as sync_client
from remotefs import server as sync_server
from remotefs.config import (
    DEFAULT_CONFIG_FILE,
    DEFAULT_PORT,
    ClientConfig,
    Config,
    ServerConfig,
    config_from_file,
    create_client_config,
    create_server_config,
    new_client,
    new_server,
)

PROG = "remotefs"


class CliError(Exception):
    """Invalid usage or configuration; the message is meant for the user."""


def build_config(argv: Sequence[str]) -> Optional[Config]:
    """Build a configuration from arguments, or None when there is nothing to run."""
    args = list(argv)
    if not args:
        raise CliError(f"Usage: {PROG} <server <path>|client <host> <path>|init <server|client>|<config file>>")
    command = args[0]

    if command == "server":
        if len(args) != 2:
            raise CliError(f"Usage: {PROG} server <path>")
        return new_server(DEFAULT_PORT, args[1])

    if command == "client":
        if len(args) != 3:
            raise CliError(f"Usage: {PROG} client <host> <path>")
        return new_client(args[1], DEFAULT_PORT, args[2])

    if command == "init":
        if len(args) != 2:
            raise CliError(f"Usage: {PROG} init <server|client>")
        kind = args[1]
        if kind == "server":
            create_server_config(DEFAULT_CONFIG_FILE)
            print(f"Server config created: {DEFAULT_CONFIG_FILE}", file=sys.stderr)
            return None
        if kind == "client":
            create_client_config(DEFAULT_CONFIG_FILE)
            print(f"Client config created: {DEFAULT_CONFIG_FILE}", file=sys.stderr)
            return None
        raise CliError(f"Invalid config type: {kind}")

    try:
        return config_from_file(command)
    except (OSError, ValueError) as exc:
        raise CliError(f"Failed to load config file '{command}': {exc}") from exc


async def start_from_config(config: Config) -> None:
    """Validate a configuration and run the server or client it describes."""
    match config:
        case ServerConfig(port=port, location=path):
            if not os.path.exists(path):
                raise CliError(f"Path '{path}' does not exist")
            await sync_server.run(port, path)
        case ClientConfig(host=host, port=port, location=path):
            try:
                ip = ipaddress.ip_address(host)
            except ValueError:
                raise CliError(f"Invalid IP address: '{host}'") from None
            if ip.is_unspecified:
                raise CliError(f"Unspecified IP address {ip} is not allowed")
            try:
                os.makedirs(path, exist_ok=True)
            except OSError as exc:
                raise CliError(f"Failed to create directory '{path}': {exc}") from exc
            await sync_client.run(host, path, port)
        case _:
            raise CliError(f"Not a configuration: {config!r}")


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the command line; returns the exit status."""
    logging.basicConfig(level=logging.INFO, format="%(message)s", stream=sys.stderr)
    args = sys.argv[1:] if argv is None else list(argv)
    try:
        config = build_config(args)
        if config is None:
            return 0
        asyncio.run(start_from_config(config))
    except CliError as exc:
        print(exc, file=sys.stderr)
        return 1
    except OSError as exc:
        print(exc, file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())