"""Keycloak flavour of the OIDC provider: search and lookup go to the admin API."""
from __future__ import annotations
import logging
from typing import Any, List, Optional

from ..oidc.provider import OIDCProvider
from ..principals import Principal, Token, parse_principal_id
from .client import KeycloakDirectoryClient

logger = logging.getLogger(__name__)


class KeycloakOIDCProvider(OIDCProvider):
    """OIDC provider backed by a Keycloak realm.

    Login is the generic OIDC flow. Search and principal lookup call the
    realm's admin API with the provider access token stored on the caller's
    token at login.
    """

    name = "keycloakoidc"
    config_type = "keyCloakOIDCConfig"
    # Matches the directory's ``username`` so search results can be recognised as the caller
    login_name_claim = "preferred_username"

    def __init__(self, *args, directory_client: Optional[KeycloakDirectoryClient] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.directory_client = directory_client or KeycloakDirectoryClient()

    def search(self, search_value: str, principal_type: Any = "", token: Optional[Token] = None) -> List[Principal]:
        """Search the directory for users and/or groups.

        Raises:
            ConfigError, URLDerivationError, DirectoryRequestError, DirectoryDecodeError
        """
        config = self.get_config()
        access_token = token.provider_access_token if token is not None else ""
        accounts = self.directory_client.search_principals(search_value, principal_type, access_token, config)

        principals = []
        for account in accounts:
            principal = self.resolver.account_to_principal(account)
            principals.append(self.resolver.resolve_from_token(account.kind, principal, token))
        logger.debug(f"[keycloak oidc] search for {search_value!r} returned {len(principals)} principals")
        return principals

    def get_principal(self, principal_id: str, token: Optional[Token]) -> Principal:
        """Look a principal up in the directory by its id.

        Raises:
            InvalidPrincipalID, ConfigError, URLDerivationError,
            DirectoryRequestError, DirectoryDecodeError
        """
        kind, external_id = parse_principal_id(principal_id)
        config = self.get_config()
        access_token = token.provider_access_token if token is not None else ""
        account = self.directory_client.get_by_id(external_id, access_token, f"{kind.value}s", config)
        principal = self.resolver.account_to_principal(account)
        return self.resolver.resolve_from_token(kind, principal, token)
