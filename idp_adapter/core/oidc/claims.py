"""User-info claims."""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any

from ..errors import ClaimDecodeError

_STRING_CLAIMS = {
    "subject": "sub",
    "name": "name",
    "preferred_username": "preferred_username",
    "given_name": "given_name",
    "family_name": "family_name",
    "email": "email",
}


@dataclass(frozen=True)
class Claims:
    subject: str
    name: str = ""
    preferred_username: str = ""
    given_name: str = ""
    family_name: str = ""
    email: str = ""
    email_verified: bool = False
    groups: list[str] = field(default_factory=list)

    @classmethod
    def from_userinfo(cls, payload: Any) -> "Claims":
        """Decode a user-info response.

        Unknown claims are ignored. Known claims with the wrong type and a
        missing ``sub`` are rejected rather than defaulted.

        Raises:
            ClaimDecodeError: On shape mismatch
        """
        if not isinstance(payload, dict):
            raise ClaimDecodeError("user info must be a JSON object")

        values: dict[str, Any] = {}
        for attr, claim in _STRING_CLAIMS.items():
            value = payload.get(claim)
            if value is None:
                continue
            if not isinstance(value, str):
                raise ClaimDecodeError(f"claim '{claim}' must be a string")
            values[attr] = value

        if not values.get("subject"):
            raise ClaimDecodeError("claim 'sub' is required")

        email_verified = payload.get("email_verified")
        if email_verified is not None:
            if not isinstance(email_verified, bool):
                raise ClaimDecodeError("claim 'email_verified' must be a boolean")
            values["email_verified"] = email_verified

        groups = payload.get("groups")
        if groups is not None:
            if not isinstance(groups, list) or not all(isinstance(group, str) for group in groups):
                raise ClaimDecodeError("claim 'groups' must be a list of strings")
            values["groups"] = [group for group in groups if group]

        return cls(**values)
