"""HTTP client for the Keycloak admin API used for principal search.

Handles admin URL derivation, bearer-token GET requests and decoding of
users and (nested) groups.
"""
from __future__ import annotations
import logging
from typing import Any, Optional, Dict
from urllib.parse import quote

import requests

from ..errors import DirectoryDecodeError, DirectoryRequestError, URLDerivationError
from ..principals import PrincipalKind, parse_kind
from ..transport import REQUEST_TIMEOUT, client_session
from .groups import expand_groups
from .models import ExternalAccount, decode_account, decode_user

logger = logging.getLogger(__name__)

REALM_PATH_MARKER = "/auth/"


def get_search_url(issuer: str) -> str:
    """Derive the admin API base from an issuer URL.

    ``https://host/auth/realms/foo`` becomes ``https://host/admin/realms/foo``.

    Raises:
        URLDerivationError: If the issuer has no ``/auth/`` marker or no realm path
    """
    origin, marker, realm_path = issuer.partition(REALM_PATH_MARKER)
    if not marker or not origin or not realm_path:
        raise URLDerivationError(f"cannot derive admin URL from issuer {issuer!r}: expected '{REALM_PATH_MARKER}'")
    return f"{origin}/admin/{realm_path.rstrip('/')}"


class _Unauthorized(Exception):
    """Directory answered 401."""


class KeycloakDirectoryClient:
    """Directory search client.

    A fresh session (with the config's client certificate, if any) is opened
    for every call; nothing is shared between requests.

    Usage:
        client = KeycloakDirectoryClient()
        accounts = client.search_principals("ali", "", access_token, config)
    """

    def __init__(self, session_class=requests.Session):
        """Initialize directory client.

        Args:
            session_class: Session factory (tests inject a stub)
        """
        self.session_class = session_class

    def search_principals(
        self,
        search_term: str,
        principal_type: Any,
        access_token: str,
        config,
    ) -> list[ExternalAccount]:
        """Search users and/or groups.

        Args:
            search_term: Free text passed as ``search``
            principal_type: ``""`` for both, or user / group
            access_token: Bearer token for the admin API
            config: ProviderConfig (issuer and mTLS material)

        Returns:
            Users tagged USER, then groups each followed by their flattened
            subgroups. Empty if the directory answers 401.

        Raises:
            URLDerivationError: If the issuer has no realm marker
            DirectoryRequestError: On any other non-2xx answer or transport failure
            DirectoryDecodeError: On malformed JSON
        """
        kind = parse_kind(principal_type)
        base_url = get_search_url(config.issuer)
        accounts: list[ExternalAccount] = []

        with client_session(config, self.session_class) as session:
            try:
                if kind in (None, PrincipalKind.USER):
                    users = self._get_list(session, f"{base_url}/users", {"search": search_term}, access_token)
                    accounts.extend(decode_user(record) for record in users)
                if kind in (None, PrincipalKind.GROUP):
                    groups = self._get_list(session, f"{base_url}/groups", {"search": search_term}, access_token)
                    accounts.extend(expand_groups(groups))
            except _Unauthorized:
                logger.warning(f"[keycloak oidc] search for {search_term!r} got 401 from {base_url}; returning no results")
                return []

        return accounts

    def get_by_id(self, principal_id: str, access_token: str, search_type: str, config) -> ExternalAccount:
        """Fetch one record from ``<base>/<search_type>/<principal_id>``.

        ``search_type`` is used as the path segment as given (``users`` or
        ``groups`` for Keycloak). The record is decoded as a group when the
        segment names groups, as a user otherwise.

        Raises:
            URLDerivationError: If the issuer has no realm marker
            DirectoryRequestError: On any non-2xx answer, 401 included
            DirectoryDecodeError: On malformed JSON
        """
        base_url = get_search_url(config.issuer)
        url = f"{base_url}/{search_type}/{quote(principal_id, safe='')}"
        kind = PrincipalKind.GROUP if search_type.rstrip("s") == PrincipalKind.GROUP.value else PrincipalKind.USER

        with client_session(config, self.session_class) as session:
            try:
                payload = self._get(session, url, None, access_token)
            except _Unauthorized:
                raise DirectoryRequestError(401, "unauthorized", url)
        return decode_account(payload, kind)

    def _get_list(self, session, url: str, params: Optional[Dict], access_token: str) -> list:
        payload = self._get(session, url, params, access_token)
        if payload is None:
            return []
        if not isinstance(payload, list):
            raise DirectoryDecodeError(f"expected a JSON list from {url}")
        return payload

    def _get(self, session, url: str, params: Optional[Dict], access_token: str) -> Any:
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
        }
        try:
            resp = session.get(url, params=params, headers=headers, timeout=REQUEST_TIMEOUT)
        except requests.RequestException as exc:
            logger.error(f"[keycloak oidc] GET {url} failed: {exc}")
            raise DirectoryRequestError(None, str(exc), url) from exc

        if resp.status_code == 401:
            raise _Unauthorized()
        self._handle_error(resp, url)

        try:
            return resp.json()
        except (ValueError, RecursionError) as exc:
            logger.error(f"[keycloak oidc] received error unmarshalling response from {url}: {exc}")
            raise DirectoryDecodeError(f"malformed JSON from {url}") from exc

    def _handle_error(self, resp, url: str) -> None:
        """Raise DirectoryRequestError for anything but 200/201."""
        if resp.status_code not in (200, 201):
            logger.error(f"[keycloak oidc] GET request failed, got status code: {resp.status_code}. url: {url}")
            raise DirectoryRequestError(resp.status_code, resp.text, url)
