"""OpenID Connect login flow and generic provider."""
from .claims import Claims
from .provider import LoginResult, OIDCLogin, OIDCProvider

__all__ = ["Claims", "LoginResult", "OIDCLogin", "OIDCProvider"]
