"""OIDC authorization-code flow steps.

Each step takes the per-call ``OAuth2Session`` (Authlib) opened by the
provider. Token verification uses PyJWT against the provider's JWKS.
"""
from __future__ import annotations
import logging
from typing import Any, Dict, List

import jwt
import requests
from authlib.common.errors import AuthlibBaseError
from jwt import PyJWKSet
from jwt.exceptions import InvalidKeyError, InvalidSignatureError, PyJWKError, PyJWKSetError, PyJWTError

from ..errors import (
    ClaimDecodeError,
    DiscoveryError,
    MissingTokenError,
    TokenExchangeError,
    TokenVerificationError,
    UserInfoError,
)
from ..transport import REQUEST_TIMEOUT
from .claims import Claims

logger = logging.getLogger(__name__)

DISCOVERY_PATH = "/.well-known/openid-configuration"
ASYMMETRIC_ALGORITHMS = {"RS256", "RS384", "RS512", "PS256", "PS384", "PS512", "ES256", "ES384", "ES512"}
DEFAULT_ALGORITHMS = ["RS256"]

# Allowed clock skew (seconds) when checking exp / iat
TOKEN_LEEWAY = 5


def discover(session, issuer: str) -> Dict[str, Any]:
    """Fetch and check the provider's discovery document.

    Raises:
        DiscoveryError: On network failure, non-200, bad JSON, missing
            endpoints or an issuer that differs from the configured one
    """
    url = f"{issuer.rstrip('/')}{DISCOVERY_PATH}"
    try:
        resp = session.get(url, timeout=REQUEST_TIMEOUT, withhold_token=True)
    except requests.RequestException as exc:
        logger.error(f"[generic oidc] discovery request to {url} failed: {exc}")
        raise DiscoveryError(f"discovery request to {url} failed: {exc}") from exc

    if resp.status_code != 200:
        raise DiscoveryError(f"discovery request to {url} returned {resp.status_code}")
    try:
        metadata = resp.json()
    except ValueError as exc:
        raise DiscoveryError(f"discovery document at {url} is not valid JSON") from exc
    if not isinstance(metadata, dict):
        raise DiscoveryError(f"discovery document at {url} is not a JSON object")

    discovered_issuer = metadata.get("issuer")
    if not isinstance(discovered_issuer, str) or discovered_issuer.rstrip("/") != issuer.rstrip("/"):
        raise DiscoveryError(f"issuer did not match: expected {issuer!r}, got {discovered_issuer!r}")
    for key in ("token_endpoint", "jwks_uri"):
        if not isinstance(metadata.get(key), str) or not metadata[key]:
            raise DiscoveryError(f"discovery document at {url} has no {key}")
    return metadata


def exchange_code(session, metadata: Dict[str, Any], code: str, scopes: List[str]) -> Dict[str, Any]:
    """Exchange the authorization code at the token endpoint.

    The space-joined scope list is sent as an explicit ``scope`` parameter;
    some providers reject the exchange without it.

    Raises:
        TokenExchangeError: On any failure
    """
    if not code:
        raise TokenExchangeError("authorization code is required")
    token_endpoint = metadata["token_endpoint"]
    try:
        token = session.fetch_token(
            token_endpoint,
            grant_type="authorization_code",
            code=code,
            scope=" ".join(scopes),
            timeout=REQUEST_TIMEOUT,
        )
    except (AuthlibBaseError, requests.RequestException, ValueError) as exc:
        logger.error(f"[generic oidc] token exchange at {token_endpoint} failed: {exc}")
        raise TokenExchangeError(f"token exchange at {token_endpoint} failed: {exc}") from exc

    if not isinstance(token, dict):
        raise TokenExchangeError(f"token endpoint {token_endpoint} returned an unexpected payload")
    return token


def extract_raw_token(token: Dict[str, Any]) -> str:
    """Pick the id_token, or the access_token when the provider sent no id_token.

    Raises:
        MissingTokenError: If neither is present
    """
    for key in ("id_token", "access_token"):
        value = token.get(key)
        if isinstance(value, str) and value:
            return value
    raise MissingTokenError("token response contains neither id_token nor access_token")


def _signing_algorithms(metadata: Dict[str, Any]) -> List[str]:
    supported = metadata.get("id_token_signing_alg_values_supported")
    if not isinstance(supported, list):
        return list(DEFAULT_ALGORITHMS)
    algorithms = [alg for alg in supported if alg in ASYMMETRIC_ALGORITHMS]
    return algorithms or list(DEFAULT_ALGORITHMS)


def verify_token(session, metadata: Dict[str, Any], raw_token: str, client_id: str) -> Dict[str, Any]:
    """Verify signature, issuer, audience and expiry of a JWT.

    Args:
        session: Open session used to fetch the JWKS
        metadata: Discovery document
        raw_token: Compact JWT
        client_id: Expected audience

    Returns:
        Verified claims

    Raises:
        TokenVerificationError: If the JWKS cannot be loaded or any check fails
    """
    jwks_uri = metadata["jwks_uri"]
    try:
        resp = session.get(jwks_uri, timeout=REQUEST_TIMEOUT, withhold_token=True)
        resp.raise_for_status()
        payload = resp.json()
        if not isinstance(payload, dict):
            raise ValueError("JWKS document is not a JSON object")
        jwk_set = PyJWKSet.from_dict(payload)
    except (requests.RequestException, ValueError, PyJWKSetError, PyJWKError) as exc:
        logger.error(f"[generic oidc] could not load signing keys from {jwks_uri}: {exc}")
        raise TokenVerificationError(f"could not load signing keys from {jwks_uri}") from exc

    try:
        header = jwt.get_unverified_header(raw_token)
        kid = header.get("kid")
        if kid is None:
            # Without a kid every signing key is a candidate
            candidates = [key for key in jwk_set.keys if key.public_key_use in (None, "sig")]
        else:
            candidates = [key for key in jwk_set.keys if key.key_id == kid]
        if not candidates:
            raise TokenVerificationError(f"no signing key matches kid {kid!r}")

        for index, key in enumerate(candidates):
            try:
                return jwt.decode(
                    raw_token,
                    key.key,
                    algorithms=_signing_algorithms(metadata),
                    audience=client_id,
                    issuer=metadata["issuer"],
                    options={"require": ["exp"]},
                    leeway=TOKEN_LEEWAY,
                )
            except (InvalidSignatureError, InvalidKeyError):
                if index == len(candidates) - 1:
                    raise
    except PyJWTError as exc:
        logger.warning(f"[generic oidc] token verification failed: {exc}")
        raise TokenVerificationError(f"token verification failed: {exc}") from exc


def fetch_claims(session, metadata: Dict[str, Any]) -> Claims:
    """Fetch user info with the session's access token and decode it.

    Raises:
        UserInfoError: If the endpoint is unknown, unreachable or returns an error
        ClaimDecodeError: If the payload is not valid claim JSON
    """
    userinfo_endpoint = metadata.get("userinfo_endpoint")
    if not isinstance(userinfo_endpoint, str) or not userinfo_endpoint:
        raise UserInfoError("provider does not advertise a userinfo_endpoint")

    try:
        resp = session.get(userinfo_endpoint, timeout=REQUEST_TIMEOUT)
    except (AuthlibBaseError, requests.RequestException) as exc:
        logger.error(f"[generic oidc] user info request to {userinfo_endpoint} failed: {exc}")
        raise UserInfoError(f"user info request to {userinfo_endpoint} failed: {exc}") from exc

    if resp.status_code != 200:
        raise UserInfoError(f"user info request to {userinfo_endpoint} returned {resp.status_code}")
    try:
        payload = resp.json()
    except ValueError as exc:
        raise ClaimDecodeError(f"user info from {userinfo_endpoint} is not valid JSON") from exc
    return Claims.from_userinfo(payload)
