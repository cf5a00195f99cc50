"""Principal model and resolver.

A principal id has the shape ``<provider>_<kind>://<external id>``, for
example ``oidc_user://0b6c...`` or ``keycloakoidc_group://admins``.
"""
from __future__ import annotations
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, TYPE_CHECKING

from .errors import InvalidPrincipalID, InvalidPrincipalType

if TYPE_CHECKING:
    from .access import TokenManager
    from .keycloak.models import ExternalAccount
    from .oidc.claims import Claims


class PrincipalKind(str, Enum):
    USER = "user"
    GROUP = "group"


@dataclass(frozen=True)
class Principal:
    """A user or group identity as seen by the host platform."""
    id: str
    kind: PrincipalKind
    provider: str
    display_name: str = ""
    login_name: str = ""
    is_self: bool = False
    is_member_of: bool = False


@dataclass(frozen=True)
class Token:
    """The caller's session token as far as this adapter is concerned.

    Attributes:
        user_principal: Principal the token was issued to
        group_principals: Group principals asserted at login
        provider_access_token: Access token obtained from the IdP at login
    """
    user_principal: Principal
    group_principals: tuple[Principal, ...] = ()
    provider_access_token: str = ""


def parse_kind(value) -> Optional[PrincipalKind]:
    """Normalize a kind filter: empty means "any", otherwise user or group.

    Raises:
        InvalidPrincipalType: If the value names neither kind
    """
    if value is None or value == "":
        return None
    if isinstance(value, PrincipalKind):
        return value
    try:
        return PrincipalKind(str(value).lower())
    except ValueError:
        raise InvalidPrincipalType(f"Invalid principal type '{value}': must be 'user' or 'group'")


def format_principal_id(provider: str, kind: PrincipalKind, external_id: str) -> str:
    """Build ``<provider>_<kind>://<external_id>``.

    Raises:
        InvalidPrincipalID: If the parts could not be parsed back unchanged
    """
    if not provider or "_" in provider or ":" in provider:
        raise InvalidPrincipalID(f"invalid provider name {provider!r}")
    if not external_id:
        raise InvalidPrincipalID("external id is required")
    return f"{provider}_{PrincipalKind(kind).value}://{external_id}"


def parse_principal_id(principal_id: str) -> tuple[PrincipalKind, str]:
    """Split a principal id into its kind and external id.

    Args:
        principal_id: Id such as ``oidc_user://abc123``

    Returns:
        ``(kind, external_id)``

    Raises:
        InvalidPrincipalID: If the id is not ``provider_kind://external``
    """
    head, sep, tail = principal_id.partition(":")
    if not sep or not head or not tail.startswith("//"):
        raise InvalidPrincipalID(f"invalid id {principal_id!r}")
    external_id = tail[2:]

    provider, sep, kind = head.partition("_")
    if not sep or not provider or not kind or not external_id:
        raise InvalidPrincipalID(f"invalid id {principal_id!r}")

    try:
        return PrincipalKind(kind), external_id
    except ValueError:
        raise InvalidPrincipalID(f"invalid principal type {kind!r} in id {principal_id!r}")


def is_this_user_me(me: Principal, other: Principal) -> bool:
    """Check whether two principals denote the same user."""
    return me.id == other.id and me.login_name == other.login_name and me.kind == other.kind


class PrincipalResolver:
    """Turns claims and directory records into principals for one provider."""

    def __init__(self, provider_name: str, token_manager: Optional["TokenManager"] = None):
        """Initialize resolver.

        Args:
            provider_name: Name used as the id prefix (e.g. ``oidc``)
            token_manager: Membership oracle used for group principals
        """
        self.provider_name = provider_name
        self.token_manager = token_manager

    def user_from_claims(self, claims: "Claims", login_claim: str = "email") -> Principal:
        """Build the logged-in user's principal from user-info claims.

        Args:
            claims: Decoded user info
            login_claim: Claims attribute used as login name (falls back to email)
        """
        return Principal(
            id=format_principal_id(self.provider_name, PrincipalKind.USER, claims.subject),
            kind=PrincipalKind.USER,
            provider=self.provider_name,
            display_name=claims.name or claims.email,
            login_name=getattr(claims, login_claim) or claims.email,
        )

    def group_from_name(self, group_name: str) -> Principal:
        return Principal(
            id=format_principal_id(self.provider_name, PrincipalKind.GROUP, group_name),
            kind=PrincipalKind.GROUP,
            provider=self.provider_name,
            display_name=group_name,
        )

    def account_to_principal(self, account: "ExternalAccount") -> Principal:
        """Map a directory record to a principal.

        Users without a first/last name are displayed by email.
        """
        principal_id = format_principal_id(self.provider_name, account.kind, account.id)
        if account.kind == PrincipalKind.GROUP:
            return Principal(
                id=principal_id,
                kind=PrincipalKind.GROUP,
                provider=self.provider_name,
                display_name=account.name,
            )

        full_name = " ".join(part for part in (account.name, account.last_name) if part)
        return Principal(
            id=principal_id,
            kind=PrincipalKind.USER,
            provider=self.provider_name,
            display_name=full_name or account.email,
            login_name=account.username,
        )

    def resolve_from_token(self, kind: PrincipalKind, principal: Principal, token: Optional[Token]) -> Principal:
        """Annotate a principal relative to the caller's token.

        Users matching the caller get ``is_self`` and the session's display and
        login names, which are fresher than any search result. Groups get
        ``is_member_of`` from the token manager.
        """
        if kind == PrincipalKind.USER:
            principal = replace(principal, kind=PrincipalKind.USER)
            if token is not None and is_this_user_me(token.user_principal, principal):
                principal = replace(
                    principal,
                    is_self=True,
                    login_name=token.user_principal.login_name,
                    display_name=token.user_principal.display_name,
                )
            return principal

        principal = replace(principal, kind=PrincipalKind.GROUP)
        if token is not None and self.token_manager is not None:
            principal = replace(principal, is_member_of=self.token_manager.is_member_of(token, principal))
        return principal
