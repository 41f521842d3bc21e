"""Configuration loading for objectsync."""

import os
import platform
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

DEFAULT_SERVER_URL = "https://api.parse.com"


@dataclass
class VersionConfig:
    """Version information about the application using the SDK."""

    build_version: str | None = None
    display_version: str | None = None
    os_version: str = field(default_factory=platform.platform)


@dataclass
class ServerConfig:
    url: str = DEFAULT_SERVER_URL
    application_id: str = ""
    client_key: str | None = None
    master_key: str | None = None
    auxiliary_headers: dict[str, str] = field(default_factory=dict)
    """Extra headers sent with every request"""


@dataclass
class RetryConfig:
    """Retry policy for connection failures and 5xx responses."""

    max_attempts: int = 5
    initial_delay_seconds: float = 1.0
    backoff_factor: float = 2.0
    max_delay_seconds: float = 30.0

    def delay_for(self, attempt: int) -> float:
        """Delay after the given (1-based) failed attempt."""
        delay = self.initial_delay_seconds * (self.backoff_factor ** (attempt - 1))
        return min(delay, self.max_delay_seconds)


@dataclass
class StorageConfig:
    db_path: str = "~/.objectsync/storage.db"


@dataclass
class HttpConfig:
    timeout_seconds: float = 30.0


@dataclass
class Config:
    server: ServerConfig = field(default_factory=ServerConfig)
    version: VersionConfig = field(default_factory=VersionConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    http: HttpConfig = field(default_factory=HttpConfig)


def _get_env(key: str, default: Any = None) -> Any:
    """Get environment variable with OBJECTSYNC_ prefix."""
    return os.environ.get(f"OBJECTSYNC_{key}", default)


def _apply_env_overrides(config: Config) -> Config:
    """Apply environment variable overrides to config."""
    # Server overrides
    if url := _get_env("SERVER_URL"):
        config.server.url = url
    if application_id := _get_env("APPLICATION_ID"):
        config.server.application_id = application_id
    if client_key := _get_env("CLIENT_KEY"):
        config.server.client_key = client_key
    if master_key := _get_env("MASTER_KEY"):
        config.server.master_key = master_key

    # Retry overrides
    if attempts := _get_env("RETRY_MAX_ATTEMPTS"):
        config.retry.max_attempts = int(attempts)
    if delay := _get_env("RETRY_INITIAL_DELAY"):
        config.retry.initial_delay_seconds = float(delay)
    if max_delay := _get_env("RETRY_MAX_DELAY"):
        config.retry.max_delay_seconds = float(max_delay)

    # Storage and HTTP overrides
    if db_path := _get_env("STORAGE_DB_PATH"):
        config.storage.db_path = db_path
    if timeout := _get_env("HTTP_TIMEOUT"):
        config.http.timeout_seconds = float(timeout)

    return config


def load_config(config_path: str | Path | None = None) -> Config:
    """Load configuration from YAML file with environment variable overrides.

    Args:
        config_path: Path to YAML config file. If None, uses default config.

    Returns:
        Loaded Config object.
    """
    config = Config()

    if config_path:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                data = yaml.safe_load(f) or {}

            # Parse server config
            if "server" in data:
                server_data = data["server"]
                config.server = ServerConfig(
                    url=server_data.get("url", config.server.url),
                    application_id=server_data.get(
                        "application_id", config.server.application_id
                    ),
                    client_key=server_data.get("client_key"),
                    master_key=server_data.get("master_key"),
                    auxiliary_headers={
                        str(k): str(v)
                        for k, v in (server_data.get("auxiliary_headers") or {}).items()
                    },
                )

            # Parse version info
            if "version" in data:
                version_data = data["version"]
                config.version = VersionConfig(
                    build_version=version_data.get("build_version"),
                    display_version=version_data.get("display_version"),
                    os_version=version_data.get("os_version", config.version.os_version),
                )

            # Parse retry policy
            if "retry" in data:
                retry_data = data["retry"]
                config.retry = RetryConfig(
                    max_attempts=retry_data.get("max_attempts", config.retry.max_attempts),
                    initial_delay_seconds=retry_data.get(
                        "initial_delay_seconds", config.retry.initial_delay_seconds
                    ),
                    backoff_factor=retry_data.get(
                        "backoff_factor", config.retry.backoff_factor
                    ),
                    max_delay_seconds=retry_data.get(
                        "max_delay_seconds", config.retry.max_delay_seconds
                    ),
                )

            if "storage" in data:
                config.storage = StorageConfig(
                    db_path=data["storage"].get("db_path", config.storage.db_path)
                )

            if "http" in data:
                config.http = HttpConfig(
                    timeout_seconds=data["http"].get(
                        "timeout_seconds", config.http.timeout_seconds
                    )
                )

    # Apply environment variable overrides
    config = _apply_env_overrides(config)

    if config.retry.max_attempts < 1:
        raise ValueError("retry.max_attempts must be at least 1")

    return config
