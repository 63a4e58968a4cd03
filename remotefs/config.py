"""Server and client configuration, stored as JSON."""

from __future__ import annotations

import json
from dataclasses import dataclass
from os import PathLike
from typing import Any, Union

DEFAULT_PORT = 5343
DEFAULT_CONFIG_FILE = "config.json"


@dataclass
class ServerConfig:
    """Settings for a server that shares a directory."""

    port: int
    location: str

    DEFAULT_PORT = DEFAULT_PORT


@dataclass
class ClientConfig:
    """Settings for a client that mirrors a server's directory."""

    host: str
    port: int
    location: str


Config = Union[ServerConfig, ClientConfig]
PathArg = Union[str, "PathLike[str]"]


def new_server(port: int, location: str) -> ServerConfig:
    """Build a server configuration."""
    return ServerConfig(port=port, location=location)


def new_client(host: str, port: int, location: str) -> ClientConfig:
    """Build a client configuration."""
    return ClientConfig(host=host, port=port, location=location)


def _field(section: dict[str, Any], name: str, kind: type) -> Any:
    if name not in section:
        raise ValueError(f"missing field `{name}`")
    value = section[name]
    if kind is int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"field `{name}` must be an integer")
        if not 0 <= value <= 0xFFFF:
            raise ValueError(f"field `{name}` is out of range for a port: {value}")
    elif not isinstance(value, kind):
        raise ValueError(f"field `{name}` must be a {kind.__name__}")
    return value


def _from_json(document: Any) -> Config:
    if not isinstance(document, dict) or len(document) != 1:
        raise ValueError("expected an object with exactly one of `Server` or `Client`")
    (variant, section), = document.items()
    if not isinstance(section, dict):
        raise ValueError(f"`{variant}` must be an object")
    if variant == "Server":
        return ServerConfig(
            port=_field(section, "port", int),
            location=_field(section, "location", str),
        )
    if variant == "Client":
        return ClientConfig(
            host=_field(section, "host", str),
            port=_field(section, "port", int),
            location=_field(section, "location", str),
        )
    raise ValueError(f"unknown variant `{variant}`, expected `Server` or `Client`")


def _to_json(config: Config) -> dict[str, Any]:
    if isinstance(config, ServerConfig):
        return {"Server": {"port": config.port, "location": config.location}}
    if isinstance(config, ClientConfig):
        return {
            "Client": {
                "host": config.host,
                "port": config.port,
                "location": config.location,
            }
        }
    raise TypeError(f"not a configuration: {config!r}")


def config_from_file(file_path: PathArg) -> Config:
    """Load a configuration; raises OSError or ValueError."""
    with open(file_path, encoding="utf-8") as handle:
        document = json.load(handle)
    return _from_json(document)


def config_to_file(config: Config, file_path: PathArg) -> None:
    """Write a configuration as compact JSON."""
    text = json.dumps(_to_json(config), separators=(",", ":"))
    with open(file_path, "w", encoding="utf-8") as handle:
        handle.write(text)


def create_server_config(file_path: PathArg = DEFAULT_CONFIG_FILE) -> ServerConfig:
    """Write a template server configuration and return it."""
    config = ServerConfig(port=DEFAULT_PORT, location="/path/to/server")
    config_to_file(config, file_path)
    return config


def create_client_config(file_path: PathArg = DEFAULT_CONFIG_FILE) -> ClientConfig:
    """Write a template client configuration and return it."""
    config = ClientConfig(
        host="localhost", port=DEFAULT_PORT, location="/path/to/client"
    )
    config_to_file(config, file_path)
    return config