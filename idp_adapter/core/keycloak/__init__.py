"""Keycloak directory support.

Architecture:
- client.py: admin API client (search, lookup by id, admin URL derivation)
- groups.py: bounded flattening of nested subgroups
- models.py: directory records and their decoding
- provider.py: KeycloakOIDCProvider (OIDC login + directory search)

Usage:
    from idp_adapter.core.keycloak import KeycloakOIDCProvider

    provider = KeycloakOIDCProvider(config_store, secret_store, AllowListAccessManager())
    candidates = provider.search("alice", "user", token)
"""
from .client import KeycloakDirectoryClient, get_search_url
from .groups import MAX_SUBGROUPS_PER_LEVEL, flatten_subgroups
from .models import ExternalAccount
from .provider import KeycloakOIDCProvider

__all__ = [
    "KeycloakDirectoryClient",
    "get_search_url",
    "MAX_SUBGROUPS_PER_LEVEL",
    "flatten_subgroups",
    "ExternalAccount",
    "KeycloakOIDCProvider",
]
