"""Provider configuration with environment variable and Docker secrets integration."""
from __future__ import annotations
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional

from idp_adapter.core.access import ACCESS_MODE_UNRESTRICTED
from idp_adapter.core.errors import ConfigError

logger = logging.getLogger(__name__)

SECRETS_DIR = Path("/run/secrets")


def _load_secret_from_file(secret_name: str, env_var: str | None = None, secrets_dir: Path | None = None) -> str | None:
    """
    Load secret from /run/secrets (Docker secrets pattern).

    Priority:
    1. /run/secrets/{secret_name} (Docker secrets mount)
    2. Environment variable (fallback)

    Args:
        secret_name: Name of the secret file in /run/secrets
        env_var: Optional environment variable name to check as fallback
        secrets_dir: Override for the secrets mount (tests)

    Returns:
        Secret value or None if not found
    """
    secret_file = (secrets_dir or SECRETS_DIR) / secret_name

    if secret_file.exists() and secret_file.is_file():
        try:
            secret_value = secret_file.read_text().strip()
            if secret_value:
                logger.debug(f"[settings] Loaded {secret_name} from {secret_file.parent}")
                return secret_value
        except OSError as e:
            logger.warning(f"[settings] Failed to read {secret_file}: {e}")

    if env_var:
        secret_value = os.getenv(env_var)
        if secret_value:
            logger.debug(f"[settings] Loaded {env_var} from environment (fallback)")
            return secret_value

    return None


_STRING_FIELDS = {
    "issuer": "issuer",
    "client_id": "clientId",
    "client_secret": "clientSecret",
    "redirect_url": "redirectUrl",
    "scopes": "scopes",
    "access_mode": "accessMode",
    "certificate": "certificate",
    "private_key": "privateKey",
    "auth_endpoint": "authEndpoint",
}


@dataclass
class ProviderConfig:
    """OIDC provider configuration as stored by the host."""
    issuer: str
    client_id: str
    client_secret: str = ""
    redirect_url: str = ""
    scopes: str = ""
    access_mode: str = ACCESS_MODE_UNRESTRICTED
    allowed_principal_ids: list[str] = field(default_factory=list)
    certificate: str = ""
    private_key: str = ""
    auth_endpoint: str = ""
    enabled: bool = True

    @property
    def scope_list(self) -> list[str]:
        """``openid`` followed by the configured scopes, blanks and repeats removed."""
        scopes = ["openid"]
        for scope in self.scopes.split(","):
            scope = scope.strip()
            if scope and scope not in scopes:
                scopes.append(scope)
        return scopes

    @classmethod
    def from_mapping(cls, data: Any) -> "ProviderConfig":
        """Decode a stored config object.

        Raises:
            ConfigError: If a required field is missing or a field has the wrong type
        """
        if not isinstance(data, Mapping):
            raise ConfigError("provider config must be a mapping")

        values: dict[str, Any] = {}
        for attr, key in _STRING_FIELDS.items():
            value = data.get(key)
            if value is None:
                continue
            if not isinstance(value, str):
                raise ConfigError(f"config field '{key}' must be a string")
            values[attr] = value

        for required in ("issuer", "client_id"):
            if not values.get(required):
                raise ConfigError(f"config field '{_STRING_FIELDS[required]}' is required")

        allowed = data.get("allowedPrincipalIds")
        if allowed is not None:
            if not isinstance(allowed, list) or not all(isinstance(item, str) for item in allowed):
                raise ConfigError("config field 'allowedPrincipalIds' must be a list of strings")
            values["allowed_principal_ids"] = list(allowed)

        enabled = data.get("enabled")
        if enabled is not None:
            if not isinstance(enabled, bool):
                raise ConfigError("config field 'enabled' must be a boolean")
            values["enabled"] = enabled

        return cls(**values)

    def to_mapping(self) -> dict[str, Any]:
        data: dict[str, Any] = {key: getattr(self, attr) for attr, key in _STRING_FIELDS.items()}
        data["allowedPrincipalIds"] = list(self.allowed_principal_ids)
        data["enabled"] = self.enabled
        return data

    def __repr__(self) -> str:
        return (
            f"ProviderConfig(issuer={self.issuer!r}, client_id={self.client_id!r}, "
            f"access_mode={self.access_mode!r}, mtls={bool(self.certificate)})"
        )


def load_provider_config(provider_name: str, secrets_dir: Optional[Path] = None) -> ProviderConfig:
    """Load a provider configuration from environment and /run/secrets.

    Variables are prefixed with the upper-cased provider name, e.g.
    ``KEYCLOAKOIDC_ISSUER``. Secrets are read from
    ``/run/secrets/<provider>_client_secret`` (and ``_certificate``,
    ``_private_key``) before falling back to ``<PREFIX>_CLIENT_SECRET`` etc.

    Raises:
        ConfigError: If issuer or client id is not set
    """
    prefix = provider_name.upper()
    name = provider_name.lower()

    def _env(suffix: str, default: str = "") -> str:
        return os.environ.get(f"{prefix}_{suffix}", default).strip()

    allowed = [item.strip() for item in _env("ALLOWED_PRINCIPAL_IDS").split(",") if item.strip()]
    data = {
        "issuer": _env("ISSUER"),
        "clientId": _env("CLIENT_ID"),
        "clientSecret": _load_secret_from_file(f"{name}_client_secret", f"{prefix}_CLIENT_SECRET", secrets_dir) or "",
        "redirectUrl": _env("REDIRECT_URL"),
        "scopes": _env("SCOPES"),
        "accessMode": _env("ACCESS_MODE", ACCESS_MODE_UNRESTRICTED),
        "allowedPrincipalIds": allowed,
        "certificate": _load_secret_from_file(f"{name}_certificate", f"{prefix}_CERTIFICATE", secrets_dir) or "",
        "privateKey": _load_secret_from_file(f"{name}_private_key", f"{prefix}_PRIVATE_KEY", secrets_dir) or "",
        "authEndpoint": _env("AUTH_ENDPOINT"),
    }
    return ProviderConfig.from_mapping(data)
