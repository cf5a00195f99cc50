"""Directory records as returned by the Keycloak admin API."""
from __future__ import annotations
from dataclasses import dataclass
from typing import Any

from ..errors import DirectoryDecodeError
from ..principals import PrincipalKind


@dataclass(frozen=True)
class ExternalAccount:
    """A user or group record from the directory.

    For users ``name`` holds ``firstName``; for groups it holds the group name.
    ``kind`` is assigned by the caller, the payload does not carry it.
    """
    id: str
    kind: PrincipalKind
    name: str = ""
    last_name: str = ""
    email: str = ""
    email_verified: bool = False
    username: str = ""
    enabled: bool = False


def _field(record: dict, key: str, expected: type, default: Any) -> Any:
    value = record.get(key)
    if value is None:
        return default
    # bool is an int subclass; never accept it where a string or number is expected
    if not isinstance(value, expected) or (expected is not bool and isinstance(value, bool)):
        raise DirectoryDecodeError(f"field '{key}' has unexpected type {type(value).__name__}")
    return value


def _record_id(record: dict) -> str:
    value = _field(record, "id", (str, int), None)
    if value is None or value == "":
        raise DirectoryDecodeError("record is missing 'id'")
    return str(value)


def decode_user(record: Any) -> ExternalAccount:
    """Decode one user representation.

    Raises:
        DirectoryDecodeError: If the record is not an object or a field has the wrong type
    """
    if not isinstance(record, dict):
        raise DirectoryDecodeError("user record must be an object")
    return ExternalAccount(
        id=_record_id(record),
        kind=PrincipalKind.USER,
        name=_field(record, "firstName", str, ""),
        last_name=_field(record, "lastName", str, ""),
        email=_field(record, "email", str, ""),
        email_verified=_field(record, "emailVerified", bool, False),
        username=_field(record, "username", str, ""),
        enabled=_field(record, "enabled", bool, False),
    )


def decode_group(record: Any) -> ExternalAccount:
    """Decode one group representation (its ``subGroups`` are left to the caller)."""
    if not isinstance(record, dict):
        raise DirectoryDecodeError("group record must be an object")
    return ExternalAccount(
        id=_record_id(record),
        kind=PrincipalKind.GROUP,
        name=_field(record, "name", str, ""),
    )


def decode_account(record: Any, kind: PrincipalKind) -> ExternalAccount:
    if kind == PrincipalKind.GROUP:
        return decode_group(record)
    return decode_user(record)


def subgroups_of(record: dict) -> list:
    """Return the raw ``subGroups`` list of a group record."""
    return _field(record, "subGroups", list, [])
