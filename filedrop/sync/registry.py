"""Consumer configuration loading and the registry of polled producers.

The registry is built once at startup. Each configured endpoint gets its own
runtime counters, a ProducerClient and a resolved local storage directory; an
endpoint whose directory cannot be created is disabled for the whole run.
"""
from __future__ import annotations

import hashlib
import json
import socket
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from pydantic import ValidationError

from filedrop.errors import ConfigurationError
from filedrop.models.endpoint import ClientConfig, EndpointConfig, EndpointRuntimeState
from filedrop.sync.producer_client import ProducerClient
from filedrop.utils import get_logger
from filedrop.utils.files import sanitize_name

logger = get_logger(__name__)

_MACHINE_ID_FILES = ("/etc/machine-id", "/var/lib/dbus/machine-id")

DEFAULT_CONFIG_TEMPLATE: dict = {
    "client": {
        "downloadPath": "./downloads",
        "servers": [
            {
                "name": "Primary Server",
                "url": "http://localhost:3000",
                "downloadPath": None,
                "pollInterval": 30000,
                "maxRetries": 3,
                "priority": 1,
                "enabled": True,
            }
        ],
    },
    "cleanup": {
        "deleteAfterDownload": True,
        "keepFilesForDays": 3,
        "autoCleanupInterval": 24,
    },
}


def _machine_id() -> str:
    for candidate in _MACHINE_ID_FILES:
        try:
            raw = Path(candidate).read_text().strip()
        except OSError:
            continue
        if raw:
            return hashlib.sha256(raw.encode()).hexdigest()
    return f"{uuid.getnode():012x}"


def client_id() -> str:
    """Stable consumer identity: '<hostname>-<first 8 chars of machine id>'."""
    return f"{socket.gethostname()}-{_machine_id()[:8]}"


def load_client_config(path: str | Path, *, bootstrap: bool = True) -> ClientConfig:
    """Load the JSON client configuration.

    Accepts ``{"client": {...}, "cleanup": {...}}`` as well as the older flat
    ``{"downloadPath": ..., "servers": [...]}`` layout. A missing file is
    replaced by a default template (when ``bootstrap``) and reported with code
    CONFIG_CREATED so the operator can edit it before restarting.
    """
    config_path = Path(path)
    if not config_path.exists():
        if not bootstrap:
            raise ConfigurationError(f"Config file not found: {config_path}", code="CONFIG_NOT_FOUND")
        config_path.parent.mkdir(parents=True, exist_ok=True)
        config_path.write_text(json.dumps(DEFAULT_CONFIG_TEMPLATE, indent=2))
        logger.warning("Config file not found; default config created", path=str(config_path.resolve()))
        raise ConfigurationError(
            f"Default config created at {config_path}; edit it and restart",
            code="CONFIG_CREATED",
        )

    try:
        data = json.loads(config_path.read_text())
    except (OSError, ValueError) as e:
        raise ConfigurationError(f"Cannot read config file {config_path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {config_path} must contain a JSON object")

    section = data.get("client") if isinstance(data.get("client"), dict) else data
    payload = {
        "downloadPath": section.get("downloadPath"),
        "servers": section.get("servers") or [],
    }
    cleanup = data.get("cleanup", section.get("cleanup"))
    if isinstance(cleanup, dict):
        payload["cleanup"] = cleanup

    try:
        return ClientConfig.model_validate(payload)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid client config in {config_path}: {e}", details={"errors": e.errors()}) from e


def resolve_storage_path(endpoint: EndpointConfig, global_root: str | Path) -> Path:
    """The endpoint's own download path, or '<global root>/<sanitized name>'."""
    global_root = str(global_root)
    if endpoint.local_storage_path and endpoint.local_storage_path != global_root:
        return Path(endpoint.local_storage_path)
    return Path(global_root) / sanitize_name(endpoint.name)


@dataclass
class RegisteredEndpoint:
    config: EndpointConfig
    client: ProducerClient
    storage_path: Optional[Path] = None
    state: EndpointRuntimeState = field(default_factory=EndpointRuntimeState)
    active: bool = True

    @property
    def name(self) -> str:
        return self.config.name


class EndpointRegistry:
    def __init__(
        self,
        config: ClientConfig,
        *,
        client_id: str,
        client_factory: Callable[..., ProducerClient] = ProducerClient,
    ) -> None:
        self.config = config
        self.client_id = client_id
        self.endpoints: list[RegisteredEndpoint] = []
        for endpoint_config in config.servers:
            client = client_factory(
                endpoint_config.base_address,
                client_id=client_id,
                credential=endpoint_config.credential,
                name=endpoint_config.name,
            )
            entry = RegisteredEndpoint(config=endpoint_config, client=client, active=endpoint_config.enabled)
            self._prepare_storage(entry)
            self.endpoints.append(entry)

    def _prepare_storage(self, entry: RegisteredEndpoint) -> None:
        path = resolve_storage_path(entry.config, self.config.download_path)
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(
                "Failed to create download path; endpoint disabled",
                endpoint=entry.name,
                path=str(path),
                error=str(e),
            )
            entry.active = False
            return
        entry.storage_path = path
        logger.info("Endpoint registered", endpoint=entry.name, url=entry.config.base_address, path=str(path.resolve()))

    def active_endpoints(self) -> list[RegisteredEndpoint]:
        """Enabled endpoints, highest priority first; ties keep config order."""
        return sorted(
            (entry for entry in self.endpoints if entry.active),
            key=lambda entry: entry.config.priority,
            reverse=True,
        )

    async def close(self) -> None:
        for entry in self.endpoints:
            await entry.client.close()


__all__ = [
    "DEFAULT_CONFIG_TEMPLATE",
    "client_id",
    "load_client_config",
    "resolve_storage_path",
    "RegisteredEndpoint",
    "EndpointRegistry",
]
