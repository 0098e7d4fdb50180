import json
from pathlib import Path

import pytest

from filedrop.errors import ConfigurationError
from filedrop.sync.registry import client_id, load_client_config, resolve_storage_path
from filedrop.models.endpoint import EndpointConfig


def _write(path: Path, data) -> Path:
    path.write_text(json.dumps(data))
    return path


def test_nested_client_section(tmp_path):
    config = load_client_config(_write(tmp_path / "config.json", {
        "server": {"port": 3000},
        "client": {
            "downloadPath": "./dl",
            "servers": [{"name": "Office", "url": "http://office:3000/", "priority": 2, "apiKey": "k"}],
        },
        "cleanup": {"deleteAfterDownload": True, "keepFilesForDays": 3, "autoCleanupInterval": 12},
    }))

    assert config.download_path == "./dl"
    server = config.servers[0]
    assert server.base_address == "http://office:3000"
    assert server.priority == 2
    assert server.credential == "k"
    assert config.cleanup.keep_days == 3
    assert config.cleanup.sweep_interval_hours == 12


def test_legacy_flat_shape_and_defaults(tmp_path):
    config = load_client_config(_write(tmp_path / "config.json", {
        "servers": [{"url": "http://a"}],
    }))

    server = config.servers[0]
    assert config.download_path == "./downloads"
    assert server.name == "Unnamed Server"
    assert server.poll_interval_ms == 30000
    assert server.max_retries == 3
    assert server.priority == 1
    assert server.enabled is True
    assert server.credential is None


def test_missing_url_is_rejected(tmp_path):
    with pytest.raises(ConfigurationError):
        load_client_config(_write(tmp_path / "config.json", {"servers": [{"name": "no url"}]}))


def test_empty_server_list_is_rejected(tmp_path):
    with pytest.raises(ConfigurationError):
        load_client_config(_write(tmp_path / "config.json", {"client": {"servers": []}}))


def test_invalid_json_is_rejected(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{not json")
    with pytest.raises(ConfigurationError):
        load_client_config(path)


def test_missing_file_bootstraps_template(tmp_path):
    path = tmp_path / "config.json"
    with pytest.raises(ConfigurationError) as exc:
        load_client_config(path)
    assert exc.value.code == "CONFIG_CREATED"
    assert path.exists()
    # The written template is itself a valid configuration
    assert load_client_config(path).servers[0].name == "Primary Server"


def test_missing_file_without_bootstrap(tmp_path):
    with pytest.raises(ConfigurationError) as exc:
        load_client_config(tmp_path / "absent.json", bootstrap=False)
    assert exc.value.code == "CONFIG_NOT_FOUND"


def test_storage_path_resolution(tmp_path):
    root = str(tmp_path / "downloads")
    shared = EndpointConfig.model_validate({"name": 'My Server: "main"', "url": "http://a"})
    own = EndpointConfig.model_validate({"name": "x", "url": "http://b", "downloadPath": str(tmp_path / "own")})
    same_as_root = EndpointConfig.model_validate({"name": "Same Root", "url": "http://c", "downloadPath": root})

    assert resolve_storage_path(shared, root) == Path(root) / "My_Server___main_"
    assert resolve_storage_path(own, root) == tmp_path / "own"
    assert resolve_storage_path(same_as_root, root) == Path(root) / "Same_Root"


def test_registry_orders_by_priority_stably(fake_registry):
    registry = fake_registry(
        {"name": "p1", "url": "http://1", "priority": 1},
        {"name": "p3", "url": "http://3", "priority": 3},
        {"name": "p2a", "url": "http://2a", "priority": 2},
        {"name": "off", "url": "http://off", "priority": 9, "enabled": False},
        {"name": "p2b", "url": "http://2b", "priority": 2},
    )
    assert [e.name for e in registry.active_endpoints()] == ["p3", "p2a", "p2b", "p1"]
    for entry in registry.endpoints:
        assert entry.storage_path is not None and entry.storage_path.is_dir()


def test_endpoint_disabled_when_directory_cannot_be_created(fake_registry, tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("a file where a directory should be")
    registry = fake_registry(
        {"name": "broken", "url": "http://b", "downloadPath": str(blocker / "sub")},
        {"name": "fine", "url": "http://f"},
    )
    assert [e.name for e in registry.active_endpoints()] == ["fine"]
    assert registry.endpoints[0].active is False


def test_client_id_shape():
    ident = client_id()
    host, _, suffix = ident.rpartition("-")
    assert host
    assert len(suffix) == 8
