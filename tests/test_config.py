import json

import pytest

from remotefs.config import (
    ClientConfig,
    ServerConfig,
    config_from_file,
    config_to_file,
    create_client_config,
    create_server_config,
    new_client,
    new_server,
)


def test_new_server_fields():
    config = new_server(5343, "/srv/files")
    assert config == ServerConfig(port=5343, location="/srv/files")


def test_new_client_fields():
    config = new_client("127.0.0.1", 5343, "/tmp/mirror")
    assert config == ClientConfig(host="127.0.0.1", port=5343, location="/tmp/mirror")


def test_server_json_layout(tmp_path):
    path = tmp_path / "config.json"
    config_to_file(new_server(5343, "/srv"), path)
    assert json.loads(path.read_text()) == {"Server": {"port": 5343, "location": "/srv"}}


def test_client_json_layout(tmp_path):
    path = tmp_path / "config.json"
    config_to_file(new_client("10.0.0.1", 80, "/data"), path)
    assert json.loads(path.read_text()) == {
        "Client": {"host": "10.0.0.1", "port": 80, "location": "/data"}
    }


@pytest.mark.parametrize(
    "config",
    [new_server(1, "/a"), new_client("::1", 65535, "relative/dir")],
)
def test_round_trip(tmp_path, config):
    path = tmp_path / "c.json"
    config_to_file(config, path)
    assert config_from_file(path) == config


def test_create_server_config(tmp_path):
    path = tmp_path / "config.json"
    created = create_server_config(path)
    loaded = config_from_file(path)
    assert loaded == created
    assert loaded == ServerConfig(port=5343, location="/path/to/server")


def test_create_client_config(tmp_path):
    path = tmp_path / "config.json"
    created = create_client_config(path)
    loaded = config_from_file(path)
    assert loaded == created
    assert loaded == ClientConfig(host="localhost", port=5343, location="/path/to/client")


def test_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        config_from_file(tmp_path / "absent.json")


def test_invalid_json_raises(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text("{not json")
    with pytest.raises(ValueError):
        config_from_file(path)


@pytest.mark.parametrize(
    "document",
    [
        {"Other": {"port": 1, "location": "/"}},
        {"Server": {"port": 1}},
        {"Server": {"port": "1", "location": "/"}},
        {"Server": {"port": 70000, "location": "/"}},
        {"Client": {"port": 1, "location": "/"}},
        {"Server": {"port": 1, "location": "/"}, "Client": {}},
        ["Server"],
    ],
)
def test_malformed_config_raises(tmp_path, document):
    path = tmp_path / "bad.json"
    path.write_text(json.dumps(document))
    with pytest.raises(ValueError):
        config_from_file(path)


def test_unknown_fields_are_ignored(tmp_path):
    path = tmp_path / "extra.json"
    path.write_text(json.dumps({"Server": {"port": 9, "location": "/x", "extra": True}}))
    assert config_from_file(path) == ServerConfig(port=9, location="/x")