"""Config and secret store interfaces with small reference implementations."""
from __future__ import annotations
import copy
import logging
import os
import threading
from pathlib import Path
from typing import Dict, Optional

from idp_adapter.core.errors import ConfigError

from .settings import ProviderConfig, load_provider_config

logger = logging.getLogger(__name__)


class ConfigStore:
    """Host storage for provider configuration objects."""

    def get(self, provider_name: str) -> ProviderConfig:
        raise NotImplementedError

    def update(self, provider_name: str, config: ProviderConfig) -> None:
        raise NotImplementedError


class SecretStore:
    """Host storage for secret values referenced from a config."""

    def save(self, value: str, field: str, type_tag: str) -> str:
        """Store ``value`` and return the reference to keep in the config."""
        raise NotImplementedError

    def read(self, ref: str) -> str:
        raise NotImplementedError


def secret_name(type_tag: str, field: str) -> str:
    """Reference name for a config field, e.g. ``keycloakoidcconfig-clientsecret``."""
    return f"{type_tag.lower()}-{field.lower()}"


class InMemoryConfigStore(ConfigStore):
    """Dict-backed store. Returns copies so callers never share state."""

    def __init__(self, configs: Optional[Dict[str, ProviderConfig]] = None):
        self._lock = threading.Lock()
        self._configs: Dict[str, ProviderConfig] = dict(configs or {})

    def get(self, provider_name: str) -> ProviderConfig:
        with self._lock:
            config = self._configs.get(provider_name)
            if config is None:
                raise ConfigError(f"failed to retrieve config for provider '{provider_name}'")
            return copy.deepcopy(config)

    def update(self, provider_name: str, config: ProviderConfig) -> None:
        with self._lock:
            self._configs[provider_name] = copy.deepcopy(config)


class EnvConfigStore(ConfigStore):
    """Read-only store backed by environment variables and /run/secrets."""

    def __init__(self, secrets_dir: Optional[Path] = None):
        self.secrets_dir = secrets_dir

    def get(self, provider_name: str) -> ProviderConfig:
        return load_provider_config(provider_name, self.secrets_dir)

    def update(self, provider_name: str, config: ProviderConfig) -> None:
        raise ConfigError("environment-backed configuration is read-only")


class FileSecretStore(SecretStore):
    """Secrets as files in a directory, one file per reference (Docker secrets layout)."""

    def __init__(self, directory: Path):
        self.directory = Path(directory)

    def _path(self, ref: str) -> Path:
        if not ref or "/" in ref or ref in {".", ".."}:
            raise ConfigError(f"invalid secret reference {ref!r}")
        return self.directory / ref

    def save(self, value: str, field: str, type_tag: str) -> str:
        ref = secret_name(type_tag, field)
        path = self._path(ref)
        self.directory.mkdir(parents=True, exist_ok=True)
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w") as handle:
            handle.write(value)
        logger.debug(f"[secrets] Stored {ref}")
        return ref

    def read(self, ref: str) -> str:
        path = self._path(ref)
        try:
            return path.read_text()
        except OSError as exc:
            raise ConfigError(f"failed to read secret '{ref}': {exc.strerror}") from exc
