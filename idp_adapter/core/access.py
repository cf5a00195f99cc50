"""Access gate.

The allow/deny decision belongs to the host's access manager. This module
owns the contract around it: policy errors abort the login, a deny becomes
``AccessDenied``.
"""
from __future__ import annotations
import logging
from typing import Iterable, Sequence

from .errors import AccessDenied, AccessPolicyError
from .principals import Principal, Token

logger = logging.getLogger(__name__)

ACCESS_MODE_UNRESTRICTED = "unrestricted"
ACCESS_MODE_RESTRICTED = "restricted"
ACCESS_MODE_REQUIRED = "required"
ACCESS_MODES = {ACCESS_MODE_UNRESTRICTED, ACCESS_MODE_RESTRICTED, ACCESS_MODE_REQUIRED}


class AccessManager:
    """Interface of the host's access-policy evaluator."""

    def check_access(
        self,
        access_mode: str,
        allowed_principal_ids: Sequence[str],
        user_principal_id: str,
        group_principals: Sequence[Principal],
    ) -> bool:
        raise NotImplementedError


class TokenManager:
    """Interface of the host's token service."""

    def is_member_of(self, token: Token, group: Principal) -> bool:
        raise NotImplementedError


class AllowListAccessManager(AccessManager):
    """Allow-list policy.

    ``unrestricted`` lets everyone in. ``restricted`` and ``required`` need the
    user id or one of the group ids in the allow-list.
    """

    def check_access(self, access_mode, allowed_principal_ids, user_principal_id, group_principals):
        if access_mode not in ACCESS_MODES:
            raise ValueError(f"Unsupported access mode '{access_mode}'")
        if access_mode == ACCESS_MODE_UNRESTRICTED:
            return True

        allowed = set(allowed_principal_ids or [])
        if user_principal_id in allowed:
            return True
        return any(group.id in allowed for group in group_principals)


class TokenGroupMembership(TokenManager):
    """Membership answered from the groups recorded on the token at login.

    Login groups are named after the ``groups`` claim while directory groups
    carry the directory id, so a group also matches when its name equals a
    login group's name (a leading ``/`` from Keycloak's full-path mapper is
    ignored).
    """

    def is_member_of(self, token: Token, group: Principal) -> bool:
        for member in token.group_principals:
            if member.id == group.id:
                return True
            if group.display_name and member.display_name.lstrip("/") == group.display_name:
                return True
        return False


def check_access(
    access_manager: AccessManager,
    access_mode: str,
    allowed_principal_ids: Iterable[str],
    user_principal_id: str,
    group_principals: Sequence[Principal],
) -> bool:
    """Evaluate the policy once.

    Raises:
        AccessPolicyError: If the evaluator fails
    """
    try:
        return bool(access_manager.check_access(
            access_mode,
            list(allowed_principal_ids or []),
            user_principal_id,
            list(group_principals),
        ))
    except AccessPolicyError:
        raise
    except Exception as exc:
        logger.error(f"Access policy evaluation failed for {user_principal_id}: {exc}")
        raise AccessPolicyError(f"access policy evaluation failed: {exc}") from exc


def authorize(
    access_manager: AccessManager,
    access_mode: str,
    allowed_principal_ids: Iterable[str],
    user_principal_id: str,
    group_principals: Sequence[Principal],
) -> None:
    """Allow or raise.

    Raises:
        AccessDenied: If the policy denies the user
        AccessPolicyError: If the evaluator fails
    """
    allowed = check_access(access_manager, access_mode, allowed_principal_ids, user_principal_id, group_principals)
    if not allowed:
        logger.info(f"Access denied for {user_principal_id} (mode={access_mode})")
        raise AccessDenied()
