"""Generic OIDC auth provider.

Entry points used by the host:
- login / authenticate_user: code exchange, verification, principals, access gate
- search / get_principal: principal candidates and id reverse lookup
- can_access: access gate for an already resolved identity
- get_config / save_config: config store access with secret dereferencing
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Mapping, NamedTuple, Optional, Sequence
from urllib.parse import urlencode

from authlib.integrations.requests_client import OAuth2Session

from idp_adapter.config.settings import ProviderConfig
from idp_adapter.config.stores import ConfigStore, SecretStore

from ..access import AccessManager, TokenGroupMembership, TokenManager, authorize, check_access
from ..errors import ConfigError
from ..principals import (
    Principal,
    PrincipalKind,
    PrincipalResolver,
    Token,
    format_principal_id,
    parse_kind,
    parse_principal_id,
)
from ..transport import client_session
from .flow import discover, exchange_code, extract_raw_token, fetch_claims, verify_token

logger = logging.getLogger(__name__)

CLIENT_SECRET_FIELD = "clientsecret"
PRIVATE_KEY_FIELD = "privatekey"


@dataclass(frozen=True)
class OIDCLogin:
    """Login input posted back by the browser after the IdP redirect."""
    code: str


class LoginResult(NamedTuple):
    user_principal: Principal
    group_principals: List[Principal]
    access_token: str


class OIDCProvider:
    """OpenID Connect auth provider.

    Usage:
        provider = OIDCProvider(config_store, secret_store, AllowListAccessManager())
        user, groups, access_token = provider.login(code)
    """

    name = "oidc"
    config_type = "oidcConfig"
    # Claim the user principal's login name is taken from
    login_name_claim = "email"

    def __init__(
        self,
        config_store: ConfigStore,
        secret_store: Optional[SecretStore],
        access_manager: AccessManager,
        token_manager: Optional[TokenManager] = None,
        session_class=OAuth2Session,
    ):
        """Initialize provider.

        Args:
            config_store: Where the provider config lives
            secret_store: Dereferences stored secrets (None when the config holds them inline)
            access_manager: Access-policy evaluator
            token_manager: Group-membership oracle for get_principal/search
                (defaults to the groups recorded on the caller's token)
            session_class: OAuth2 session factory (tests inject a stub)
        """
        self.config_store = config_store
        self.secret_store = secret_store
        self.access_manager = access_manager
        self.token_manager = token_manager if token_manager is not None else TokenGroupMembership()
        self.session_class = session_class
        self.resolver = PrincipalResolver(self.name, self.token_manager)

    def get_name(self) -> str:
        return self.name

    # ─────────────────────────────────────────────────────────────────────────
    # Configuration
    # ─────────────────────────────────────────────────────────────────────────
    def get_config(self) -> ProviderConfig:
        """Load the stored config and dereference its secrets.

        Raises:
            ConfigError: If the config is absent, malformed or a secret cannot be read
        """
        try:
            stored = self.config_store.get(self.name)
        except ConfigError:
            raise
        except Exception as exc:
            raise ConfigError(f"[{self.name}] failed to retrieve config: {exc}") from exc

        config = self._coerce_config(stored)
        if self.secret_store is None:
            return config

        try:
            if config.private_key:
                config = replace(config, private_key=self.secret_store.read(config.private_key))
            if config.client_secret:
                config = replace(config, client_secret=self.secret_store.read(config.client_secret))
        except ConfigError:
            raise
        except Exception as exc:
            raise ConfigError(f"[{self.name}] failed to read config secrets: {exc}") from exc
        return config

    def save_config(self, config: ProviderConfig) -> None:
        """Persist the config, moving the client secret and private key into the secret store."""
        stored = replace(config)
        if self.secret_store is not None:
            type_tag = self.config_type.lower()
            if config.private_key:
                stored.private_key = self.secret_store.save(config.private_key, PRIVATE_KEY_FIELD, type_tag)
            stored.client_secret = self.secret_store.save(config.client_secret, CLIENT_SECRET_FIELD, type_tag)

        logger.debug(f"[{self.name}] updating config")
        self.config_store.update(self.name, stored)

    @staticmethod
    def _coerce_config(config: Any) -> ProviderConfig:
        if isinstance(config, ProviderConfig):
            return config
        return ProviderConfig.from_mapping(config)

    # ─────────────────────────────────────────────────────────────────────────
    # Login
    # ─────────────────────────────────────────────────────────────────────────
    def authenticate_user(self, login: Any) -> LoginResult:
        if not isinstance(login, OIDCLogin):
            raise TypeError("unexpected input type")
        return self.login(login.code)

    def login(self, code: str, config: Optional[ProviderConfig] = None) -> LoginResult:
        """Log a user in with an authorization code.

        Args:
            code: Authorization code from the IdP redirect
            config: Pre-fetched config (loaded from the store when omitted)

        Returns:
            ``(user_principal, group_principals, access_token)``

        Raises:
            ConfigError, TLSSetupError, DiscoveryError, TokenExchangeError,
            MissingTokenError, TokenVerificationError, UserInfoError,
            ClaimDecodeError: On protocol failures
            AccessPolicyError: If the access policy cannot be evaluated
            AccessDenied: If the user may not use the platform
        """
        config = self.get_config() if config is None else self._coerce_config(config)
        scopes = config.scope_list

        with client_session(
            config,
            self.session_class,
            client_id=config.client_id,
            client_secret=config.client_secret or None,
            scope=" ".join(scopes),
            redirect_uri=config.redirect_url or None,
        ) as session:
            metadata = discover(session, config.issuer)
            token = exchange_code(session, metadata, code, scopes)
            raw_token = extract_raw_token(token)
            # Only the signature/audience/expiry outcome matters here; the
            # principal is built from user info below.
            verify_token(session, metadata, raw_token, config.client_id)
            claims = fetch_claims(session, metadata)

        user_principal = replace(self.resolver.user_from_claims(claims, self.login_name_claim), is_self=True)
        group_principals = [
            replace(self.resolver.group_from_name(group), is_member_of=True)
            for group in claims.groups
        ]

        logger.debug(f"[{self.name}] login: checking {user_principal.id} access")
        authorize(
            self.access_manager,
            config.access_mode,
            config.allowed_principal_ids,
            user_principal.id,
            group_principals,
        )
        return LoginResult(user_principal, group_principals, token.get("access_token") or "")

    # ─────────────────────────────────────────────────────────────────────────
    # Principals
    # ─────────────────────────────────────────────────────────────────────────
    def search(self, search_value: str, principal_type: Any = "", token: Optional[Token] = None) -> List[Principal]:
        """Without a directory the only candidate is the search value itself,
        annotated against the caller's token."""
        kind = parse_kind(principal_type) or PrincipalKind.USER
        principal = Principal(
            id=format_principal_id(self.name, kind, search_value),
            kind=kind,
            provider=self.name,
            display_name=search_value,
            login_name=search_value if kind == PrincipalKind.USER else "",
        )
        return [self.resolver.resolve_from_token(kind, principal, token)]

    def get_principal(self, principal_id: str, token: Optional[Token]) -> Principal:
        """Rebuild a principal from its id.

        Raises:
            InvalidPrincipalID: If the id does not parse
        """
        kind, external_id = parse_principal_id(principal_id)
        if kind == PrincipalKind.USER:
            principal = Principal(
                id=format_principal_id(self.name, PrincipalKind.USER, external_id),
                kind=PrincipalKind.USER,
                provider=self.name,
                display_name=external_id,
                login_name=external_id,
            )
        else:
            principal = self.resolver.group_from_name(external_id)
        return self.resolver.resolve_from_token(kind, principal, token)

    def refetch_group_principals(self, principal_id: str, secret: str) -> List[Principal]:
        raise NotImplementedError(f"[{self.name}] refetching group principals is not supported")

    def can_access(self, user_principal_id: str, group_principals: Sequence[Principal]) -> bool:
        """Run the access gate for an already authenticated identity.

        Raises:
            ConfigError: If the config cannot be loaded
            AccessPolicyError: If the policy cannot be evaluated
        """
        try:
            config = self.get_config()
        except ConfigError as exc:
            logger.error(f"[{self.name}] error fetching config: {exc}")
            raise
        return check_access(
            self.access_manager,
            config.access_mode,
            config.allowed_principal_ids,
            user_principal_id,
            group_principals,
        )

    def get_user_extra_attributes(self, token: Token) -> Dict[str, List[str]]:
        return {
            "principalid": [token.user_principal.id],
            "username": [token.user_principal.login_name],
        }

    # ─────────────────────────────────────────────────────────────────────────
    # Public view
    # ─────────────────────────────────────────────────────────────────────────
    def get_redirect_url(self, auth_config: Mapping[str, Any]) -> str:
        """Authorization URL the login page sends the browser to."""
        params = {
            "client_id": auth_config.get("clientId", ""),
            "response_type": "code",
            "redirect_uri": auth_config.get("redirectUrl", ""),
        }
        return f"{auth_config.get('authEndpoint', '')}?{urlencode(params)}"

    def transform_to_auth_provider(self, auth_config: Mapping[str, Any]) -> Dict[str, Any]:
        """Public (unauthenticated) description of this provider."""
        return {
            "id": self.name,
            "type": f"{self.name}Provider",
            "redirectUrl": self.get_redirect_url(auth_config),
        }
