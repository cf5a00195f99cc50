"""Configuration module for the identity provider adapter."""
from .settings import ProviderConfig, load_provider_config
from .stores import ConfigStore, SecretStore, InMemoryConfigStore, EnvConfigStore, FileSecretStore

__all__ = [
    "ProviderConfig",
    "load_provider_config",
    "ConfigStore",
    "SecretStore",
    "InMemoryConfigStore",
    "EnvConfigStore",
    "FileSecretStore",
]
