"""Pytest shared fixtures for adapter tests."""
import json
import pathlib
import sys
import time
from typing import Optional

# Add project root to Python path
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import jwt
import pytest
import requests
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives import serialization
from jwt.algorithms import RSAAlgorithm

from idp_adapter.config.settings import ProviderConfig


ISSUER = "https://sso.example.com/auth/realms/demo"
CLIENT_ID = "control-plane"
TOKEN_ENDPOINT = f"{ISSUER}/protocol/openid-connect/token"
JWKS_URI = f"{ISSUER}/protocol/openid-connect/certs"
USERINFO_ENDPOINT = f"{ISSUER}/protocol/openid-connect/userinfo"
DISCOVERY_URL = f"{ISSUER}/.well-known/openid-configuration"
ADMIN_BASE = "https://sso.example.com/admin/realms/demo"


# ─────────────────────────────────────────────────────────────────────────────
# Stub HTTP layer
# ─────────────────────────────────────────────────────────────────────────────
class StubResponse:
    def __init__(self, payload=None, status_code: int = 200, text: Optional[str] = None):
        self._payload = payload
        self.status_code = status_code
        self.text = text if text is not None else json.dumps(payload)

    def json(self):
        if self._payload is None and self.text:
            return json.loads(self.text)
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(response=self)


class StubSession:
    """Stands in for requests.Session / OAuth2Session.

    ``routes`` maps URL to a StubResponse, an exception instance to raise, or
    a callable taking the request kwargs.
    """

    def __init__(self, routes, token_response=None, **kwargs):
        self.routes = routes
        self.token_response = token_response
        self.init_kwargs = kwargs
        self.calls = []
        self.cert = None
        self.closed = False

    def _answer(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if url not in self.routes:
            raise RuntimeError(f"Unexpected HTTP request in unit test: {url}")
        answer = self.routes[url]
        if isinstance(answer, Exception):
            raise answer
        if callable(answer):
            return answer(**kwargs)
        return answer

    def get(self, url, **kwargs):
        return self._answer(url, **kwargs)

    def fetch_token(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if isinstance(self.token_response, Exception):
            raise self.token_response
        return self.token_response

    def close(self):
        self.closed = True


class SessionFactory:
    """Callable passed as ``session_class``; remembers the sessions it built."""

    def __init__(self, routes=None, token_response=None):
        self.routes = routes if routes is not None else {}
        self.token_response = token_response
        self.sessions = []

    def __call__(self, **kwargs):
        session = StubSession(self.routes, self.token_response, **kwargs)
        self.sessions.append(session)
        return session

    @property
    def last(self) -> StubSession:
        return self.sessions[-1]


@pytest.fixture(autouse=True)
def _block_network(monkeypatch, request):
    """Fail loudly if a unit test reaches for the real network."""
    if request.node.get_closest_marker("integration"):
        return

    def _refuse(self, method, url, *args, **kwargs):
        raise RuntimeError(f"Unexpected network access in tests: {method} {url}")

    monkeypatch.setattr(requests.Session, "request", _refuse)


# ─────────────────────────────────────────────────────────────────────────────
# Provider config
# ─────────────────────────────────────────────────────────────────────────────
@pytest.fixture()
def provider_config():
    return ProviderConfig(
        issuer=ISSUER,
        client_id=CLIENT_ID,
        client_secret="s3cr3t-value",
        redirect_url="https://cp.example.com/verify-auth",
        scopes="profile,email",
        access_mode="unrestricted",
    )


# ─────────────────────────────────────────────────────────────────────────────
# RSA Key Pair for JWT Testing
# ─────────────────────────────────────────────────────────────────────────────
@pytest.fixture(scope="session")
def rsa_key_pair():
    """Generate RSA key pair for JWT signing in tests."""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)

    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    public_key = private_key.public_key()

    jwk = json.loads(RSAAlgorithm.to_jwk(public_key))
    jwk.update({"kid": "default-key-id", "use": "sig", "alg": "RS256"})

    return {
        "private_key": private_key,
        "private_pem": private_pem,
        "public_key": public_key,
        "jwks": {"keys": [jwk]},
    }


def create_valid_jwt(
    rsa_key_pair: dict,
    issuer: str = ISSUER,
    audience: str = CLIENT_ID,
    sub: str = "user-123",
    exp_offset: int = 3600,
    kid: Optional[str] = "default-key-id",
    private_pem: Optional[bytes] = None,
) -> str:
    """Create an RS256-signed JWT for testing."""
    now = int(time.time())
    payload = {
        "iss": issuer,
        "aud": audience,
        "sub": sub,
        "exp": now + exp_offset,
        "iat": now,
    }
    headers = {"kid": kid} if kid else None
    return jwt.encode(payload, private_pem or rsa_key_pair["private_pem"], algorithm="RS256", headers=headers)


def discovery_document(**overrides) -> dict:
    document = {
        "issuer": ISSUER,
        "authorization_endpoint": f"{ISSUER}/protocol/openid-connect/auth",
        "token_endpoint": TOKEN_ENDPOINT,
        "jwks_uri": JWKS_URI,
        "userinfo_endpoint": USERINFO_ENDPOINT,
        "id_token_signing_alg_values_supported": ["RS256", "HS256"],
    }
    document.update(overrides)
    return document


# ─────────────────────────────────────────────────────────────────────────────
# Pytest Configuration
# ─────────────────────────────────────────────────────────────────────────────
def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (requires running stack)"
    )
