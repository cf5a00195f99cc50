import json

import jwt
import pytest
import requests
from authlib.common.errors import AuthlibBaseError
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from jwt.algorithms import RSAAlgorithm

from idp_adapter.core.errors import (
    ClaimDecodeError,
    DiscoveryError,
    MissingTokenError,
    TokenExchangeError,
    TokenVerificationError,
    UserInfoError,
)
from idp_adapter.core.oidc.flow import (
    discover,
    exchange_code,
    extract_raw_token,
    fetch_claims,
    verify_token,
)

from tests.conftest import (
    CLIENT_ID,
    DISCOVERY_URL,
    ISSUER,
    JWKS_URI,
    TOKEN_ENDPOINT,
    USERINFO_ENDPOINT,
    StubResponse,
    StubSession,
    create_valid_jwt,
    discovery_document,
)


# ─────────────────────────────────────────────────────────────────────────────
# Discovery
# ─────────────────────────────────────────────────────────────────────────────
class TestDiscover:
    def test_returns_metadata(self):
        session = StubSession({DISCOVERY_URL: StubResponse(discovery_document())})

        metadata = discover(session, ISSUER)

        assert metadata["token_endpoint"] == TOKEN_ENDPOINT
        url, kwargs = session.calls[0]
        assert url == DISCOVERY_URL
        assert kwargs["withhold_token"] is True

    def test_trailing_slash_on_issuer(self):
        session = StubSession({DISCOVERY_URL: StubResponse(discovery_document())})
        assert discover(session, ISSUER + "/")["issuer"] == ISSUER

    def test_issuer_mismatch(self):
        session = StubSession({DISCOVERY_URL: StubResponse(discovery_document(issuer="https://evil.example.com"))})
        with pytest.raises(DiscoveryError, match="issuer did not match"):
            discover(session, ISSUER)

    @pytest.mark.parametrize("missing", ["token_endpoint", "jwks_uri"])
    def test_missing_endpoint(self, missing):
        document = discovery_document()
        del document[missing]
        session = StubSession({DISCOVERY_URL: StubResponse(document)})
        with pytest.raises(DiscoveryError, match=missing):
            discover(session, ISSUER)

    @pytest.mark.parametrize(
        "answer",
        [
            requests.ConnectionError("unreachable"),
            StubResponse({"error": "not found"}, status_code=404),
            StubResponse(None, text="<html>"),
            StubResponse(["not", "an", "object"]),
        ],
    )
    def test_failures(self, answer):
        session = StubSession({DISCOVERY_URL: answer})
        with pytest.raises(DiscoveryError):
            discover(session, ISSUER)


# ─────────────────────────────────────────────────────────────────────────────
# Code exchange
# ─────────────────────────────────────────────────────────────────────────────
class TestExchangeCode:
    def test_sends_code_and_scope(self):
        session = StubSession({}, token_response={"access_token": "at", "token_type": "Bearer"})

        token = exchange_code(session, discovery_document(), "the-code", ["openid", "profile", "email"])

        assert token["access_token"] == "at"
        url, kwargs = session.calls[0]
        assert url == TOKEN_ENDPOINT
        assert kwargs["code"] == "the-code"
        assert kwargs["grant_type"] == "authorization_code"
        assert kwargs["scope"] == "openid profile email"

    def test_empty_code(self):
        session = StubSession({}, token_response={"access_token": "at"})
        with pytest.raises(TokenExchangeError):
            exchange_code(session, discovery_document(), "", ["openid"])
        assert session.calls == []

    @pytest.mark.parametrize(
        "failure",
        [AuthlibBaseError(error="invalid_grant"), requests.Timeout("slow"), ValueError("not json")],
    )
    def test_wraps_failures(self, failure):
        session = StubSession({}, token_response=failure)
        with pytest.raises(TokenExchangeError):
            exchange_code(session, discovery_document(), "code", ["openid"])

    def test_unexpected_payload(self):
        session = StubSession({}, token_response="access_token=at")
        with pytest.raises(TokenExchangeError):
            exchange_code(session, discovery_document(), "code", ["openid"])


@pytest.mark.parametrize(
    "token, expected",
    [
        ({"id_token": "id", "access_token": "at"}, "id"),
        ({"access_token": "at"}, "at"),
        ({"id_token": "", "access_token": "at"}, "at"),
    ],
)
def test_extract_raw_token(token, expected):
    assert extract_raw_token(token) == expected


@pytest.mark.parametrize("token", [{}, {"refresh_token": "rt"}, {"id_token": "", "access_token": ""}])
def test_extract_raw_token_missing(token):
    with pytest.raises(MissingTokenError):
        extract_raw_token(token)


# ─────────────────────────────────────────────────────────────────────────────
# Token verification
# ─────────────────────────────────────────────────────────────────────────────
@pytest.fixture(scope="module")
def rotated_key():
    """A second RSA key, standing in for a key the realm has since rotated in."""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    jwk = json.loads(RSAAlgorithm.to_jwk(private_key.public_key()))
    jwk.update({"kid": "rotated-key-id", "use": "sig"})
    return {
        "private_pem": private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        ),
        "jwk": jwk,
    }


class TestVerifyToken:
    @pytest.fixture()
    def session(self, rsa_key_pair):
        return StubSession({JWKS_URI: StubResponse(rsa_key_pair["jwks"])})

    def test_valid_token(self, session, rsa_key_pair):
        raw = create_valid_jwt(rsa_key_pair, sub="user-42")

        claims = verify_token(session, discovery_document(), raw, CLIENT_ID)

        assert claims["sub"] == "user-42"
        assert session.calls[0][1]["withhold_token"] is True

    def test_wrong_audience(self, session, rsa_key_pair):
        raw = create_valid_jwt(rsa_key_pair, audience="someone-else")
        with pytest.raises(TokenVerificationError):
            verify_token(session, discovery_document(), raw, CLIENT_ID)

    def test_wrong_issuer(self, session, rsa_key_pair):
        raw = create_valid_jwt(rsa_key_pair, issuer="https://evil.example.com")
        with pytest.raises(TokenVerificationError):
            verify_token(session, discovery_document(), raw, CLIENT_ID)

    def test_expired(self, session, rsa_key_pair):
        raw = create_valid_jwt(rsa_key_pair, exp_offset=-3600)
        with pytest.raises(TokenVerificationError):
            verify_token(session, discovery_document(), raw, CLIENT_ID)

    def test_unknown_kid(self, session, rsa_key_pair):
        raw = create_valid_jwt(rsa_key_pair, kid="rotated-away")
        with pytest.raises(TokenVerificationError, match="kid"):
            verify_token(session, discovery_document(), raw, CLIENT_ID)

    def test_token_without_kid_tries_every_key(self, rsa_key_pair, rotated_key):
        jwks = {"keys": [rotated_key["jwk"]] + rsa_key_pair["jwks"]["keys"]}
        session = StubSession({JWKS_URI: StubResponse(jwks)})
        raw = create_valid_jwt(rsa_key_pair, sub="user-7", kid=None)

        claims = verify_token(session, discovery_document(), raw, CLIENT_ID)

        assert claims["sub"] == "user-7"

    def test_token_without_kid_signed_by_unknown_key(self, rsa_key_pair, rotated_key):
        session = StubSession({JWKS_URI: StubResponse(rsa_key_pair["jwks"])})
        raw = create_valid_jwt(rsa_key_pair, kid=None, private_pem=rotated_key["private_pem"])

        with pytest.raises(TokenVerificationError):
            verify_token(session, discovery_document(), raw, CLIENT_ID)

    def test_not_a_jwt(self, session):
        with pytest.raises(TokenVerificationError):
            verify_token(session, discovery_document(), "opaque-access-token", CLIENT_ID)

    def test_symmetric_algorithm_is_refused(self, session, rsa_key_pair):
        forged = jwt.encode(
            {"iss": ISSUER, "aud": CLIENT_ID, "sub": "x", "exp": 9999999999},
            "a-shared-secret-of-at-least-32-bytes!!",
            algorithm="HS256",
            headers={"kid": "default-key-id"},
        )
        with pytest.raises(TokenVerificationError):
            verify_token(session, discovery_document(), forged, CLIENT_ID)

    @pytest.mark.parametrize(
        "answer",
        [
            requests.ConnectionError("down"),
            StubResponse({"error": "boom"}, status_code=500),
            StubResponse({"keys": []}),
            StubResponse([{"kty": "RSA"}]),
            StubResponse("keys"),
        ],
    )
    def test_jwks_unavailable(self, rsa_key_pair, answer):
        session = StubSession({JWKS_URI: answer})
        with pytest.raises(TokenVerificationError, match="signing keys"):
            verify_token(session, discovery_document(), create_valid_jwt(rsa_key_pair), CLIENT_ID)


# ─────────────────────────────────────────────────────────────────────────────
# User info
# ─────────────────────────────────────────────────────────────────────────────
class TestFetchClaims:
    def test_decodes_claims(self):
        session = StubSession({USERINFO_ENDPOINT: StubResponse({
            "sub": "user-1",
            "name": "Alice",
            "email": "alice@example.com",
            "email_verified": True,
            "groups": ["admins", "", "devs"],
            "locale": "en",
        })})

        claims = fetch_claims(session, discovery_document())

        assert claims.subject == "user-1"
        assert claims.email_verified is True
        assert claims.groups == ["admins", "devs"]

    def test_no_userinfo_endpoint(self):
        document = discovery_document()
        del document["userinfo_endpoint"]
        with pytest.raises(UserInfoError):
            fetch_claims(StubSession({}), document)

    @pytest.mark.parametrize(
        "answer",
        [requests.ConnectionError("down"), StubResponse({"error": "invalid_token"}, status_code=401)],
    )
    def test_request_failures(self, answer):
        with pytest.raises(UserInfoError):
            fetch_claims(StubSession({USERINFO_ENDPOINT: answer}), discovery_document())

    @pytest.mark.parametrize(
        "answer",
        [
            StubResponse(None, text="not json"),
            StubResponse({"name": "no subject"}),
            StubResponse({"sub": "u", "groups": "admins"}),
            StubResponse({"sub": "u", "email_verified": "true"}),
            StubResponse({"sub": 123}),
        ],
    )
    def test_malformed_claims(self, answer):
        with pytest.raises(ClaimDecodeError):
            fetch_claims(StubSession({USERINFO_ENDPOINT: answer}), discovery_document())
