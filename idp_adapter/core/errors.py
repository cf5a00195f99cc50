"""Typed exceptions for the identity provider adapter.

Only ``AccessDenied`` is meant to reach end users verbatim. Everything else
should be logged with detail and rendered as a generic authentication
failure (see ``idp_adapter.api.errors``).
"""
from __future__ import annotations
from typing import Optional


class AuthProviderError(Exception):
    """Base exception for all provider operations."""
    pass


class ConfigError(AuthProviderError):
    """Provider configuration is missing or malformed."""
    pass


class TLSSetupError(AuthProviderError):
    """Client certificate or private key could not be loaded."""
    pass


class DiscoveryError(AuthProviderError):
    """OIDC issuer discovery failed (network, parse or issuer mismatch)."""
    pass


class TokenExchangeError(AuthProviderError):
    """Authorization code could not be exchanged for tokens."""
    pass


class MissingTokenError(AuthProviderError):
    """Token response carried neither an id_token nor an access_token."""
    pass


class TokenVerificationError(AuthProviderError):
    """Signature, audience, issuer or expiry check failed."""
    pass


class UserInfoError(AuthProviderError):
    """User-info endpoint could not be reached or returned an error."""
    pass


class ClaimDecodeError(AuthProviderError):
    """User-info payload does not have the expected claim shape."""
    pass


class URLDerivationError(AuthProviderError):
    """Directory admin URL could not be derived from the issuer."""
    pass


class DirectoryRequestError(AuthProviderError):
    """HTTP error from the directory admin API.

    Attributes:
        status_code: HTTP status code (None when no response was received)
        body: Response body or transport error text
        url: Request URL that failed
    """

    def __init__(self, status_code: Optional[int], body: str, url: str):
        self.status_code = status_code
        self.body = body
        self.url = url
        super().__init__(f"[{status_code}] {url}: {body}")


class DirectoryDecodeError(AuthProviderError):
    """Directory response is not valid JSON or has the wrong shape."""
    pass


class InvalidPrincipalID(AuthProviderError):
    """Principal identifier is not of the form provider_kind://external."""
    pass


class InvalidPrincipalType(AuthProviderError, ValueError):
    """Principal type filter names neither user nor group."""
    pass


class AccessPolicyError(AuthProviderError):
    """Access policy could not be evaluated."""
    pass


class AccessDenied(AuthProviderError):
    """Resolved identity is not allowed to use the platform.

    Attributes:
        status_code: HTTP status the host should answer with
        message: User-facing message
    """

    status_code = 401

    def __init__(self, message: str = "unauthorized"):
        self.message = message
        super().__init__(message)
