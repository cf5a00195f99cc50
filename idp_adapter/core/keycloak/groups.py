"""Keycloak group hierarchy handling."""
from __future__ import annotations
from typing import Any

from .models import ExternalAccount, decode_group, subgroups_of

# Upper limit on subgroups visited per level. Larger levels are truncated.
MAX_SUBGROUPS_PER_LEVEL = 100


def flatten_subgroups(group: dict, limit: int = MAX_SUBGROUPS_PER_LEVEL) -> list[ExternalAccount]:
    """Flatten the nested ``subGroups`` of a group representation.

    Walks the tree depth-first in document order (each subgroup is followed by
    its own descendants) using an explicit stack, so nesting depth is not
    bounded by the interpreter's recursion limit. At every level only the
    first ``limit`` entries are visited and expanded; the rest are dropped.

    Args:
        group: Raw group representation (dict with optional ``subGroups``)
        limit: Entries visited per level

    Returns:
        Subgroups as group accounts, the group itself excluded

    Raises:
        DirectoryDecodeError: If a visited entry has the wrong shape
    """
    flattened: list[ExternalAccount] = []
    stack: list[Any] = list(reversed(subgroups_of(group)[:limit]))
    while stack:
        record = stack.pop()
        flattened.append(decode_group(record))
        stack.extend(reversed(subgroups_of(record)[:limit]))
    return flattened


def expand_groups(groups: list) -> list[ExternalAccount]:
    """Each top-level group followed by its flattened subgroups."""
    accounts: list[ExternalAccount] = []
    for group in groups:
        accounts.append(decode_group(group))
        accounts.extend(flatten_subgroups(group))
    return accounts
