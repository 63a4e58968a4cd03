import json

import pytest

from remotefs.cli import CliError, build_config, main, start_from_config
from remotefs.config import (
    DEFAULT_PORT,
    ClientConfig,
    ServerConfig,
    config_from_file,
    config_to_file,
)


def test_server_arguments_build_server_config(tmp_path):
    config = build_config(["server", str(tmp_path)])
    assert config == ServerConfig(port=DEFAULT_PORT, location=str(tmp_path))


def test_client_arguments_build_client_config(tmp_path):
    config = build_config(["client", "10.1.2.3", str(tmp_path)])
    assert config == ClientConfig(host="10.1.2.3", port=DEFAULT_PORT, location=str(tmp_path))


@pytest.mark.parametrize(
    "argv",
    [[], ["server"], ["server", "a", "b"], ["client", "10.1.2.3"], ["init"], ["init", "server", "x"]],
)
def test_wrong_argument_counts_are_usage_errors(argv):
    with pytest.raises(CliError, match="Usage"):
        build_config(argv)


def test_init_server_writes_template(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert build_config(["init", "server"]) is None
    loaded = config_from_file(tmp_path / "config.json")
    assert loaded == ServerConfig(port=DEFAULT_PORT, location="/path/to/server")


def test_init_rejects_unknown_kind(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    with pytest.raises(CliError, match="Invalid config type: other"):
        build_config(["init", "other"])
    assert not (tmp_path / "config.json").exists()


def test_config_file_argument_is_loaded(tmp_path):
    path = tmp_path / "mine.json"
    expected = ClientConfig(host="127.0.0.1", port=DEFAULT_PORT, location=str(tmp_path))
    config_to_file(expected, path)
    assert build_config([str(path)]) == expected


def test_missing_config_file_is_reported(tmp_path):
    missing = tmp_path / "nope.json"
    with pytest.raises(CliError, match="Failed to load config file"):
        build_config([str(missing)])


def test_malformed_config_file_is_reported(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text(json.dumps({"Neither": {}}))
    with pytest.raises(CliError, match="Failed to load config file"):
        build_config([str(path)])


@pytest.mark.asyncio
async def test_client_with_hostname_is_rejected(tmp_path):
    config = ClientConfig(host="localhost", port=DEFAULT_PORT, location=str(tmp_path / "c"))
    with pytest.raises(CliError, match="Invalid IP address: 'localhost'"):
        await start_from_config(config)


@pytest.mark.asyncio
@pytest.mark.parametrize("host", ["0.0.0.0", "::"])
async def test_unspecified_address_is_rejected_before_creating_dir(tmp_path, host):
    location = tmp_path / "c"
    config = ClientConfig(host=host, port=DEFAULT_PORT, location=str(location))
    with pytest.raises(CliError, match="Unspecified IP address"):
        await start_from_config(config)
    assert not location.exists()


@pytest.mark.asyncio
async def test_server_with_missing_path_is_rejected(tmp_path):
    config = ServerConfig(port=DEFAULT_PORT, location=str(tmp_path / "gone"))
    with pytest.raises(CliError, match="does not exist"):
        await start_from_config(config)


def test_main_init_client_succeeds(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    assert main(["init", "client"]) == 0
    loaded = config_from_file(tmp_path / "config.json")
    assert loaded == ClientConfig(host="localhost", port=DEFAULT_PORT, location="/path/to/client")
    assert "Client config created: config.json" in capsys.readouterr().err


def test_main_without_arguments_fails(capsys):
    assert main([]) == 1
    assert "Usage" in capsys.readouterr().err


def test_main_reports_invalid_client_host(tmp_path, capsys):
    assert main(["client", "localhost", str(tmp_path)]) == 1
    assert "Invalid IP address: 'localhost'" in capsys.readouterr().err