"""
auth/permissions.py -- Effective-permission resolution across groups.

Merge rule: a user's groups are merged into one mapping in iteration order,
and a later group overwrites an earlier one for the same key. The LAST group
wins. GroupStore.groups_for_user() returns groups in membership order, so the
most recently joined group has the final say.

Match rule for a queried permission p against the merged mapping M (the
wildcard marker is "*"):

  1. p ends with "*" (and is longer than just "*"): strip it to prefix q.
     p matches iff some granted key k, other than q and other than p itself,
     starts with q. A grant on the literal key "posts.*" therefore does NOT
     satisfy a query for "posts.*" by itself: the query asks for "something
     under posts.".

  2. otherwise p matches iff a granted wildcard key k ("posts.*") has a
     stripped prefix kq != p that p starts with, or M[p] == 1 exactly.

A value of 0 is an explicit deny: it never matches, and because of
last-group-wins a later 0 revokes an earlier 1 for the same key.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from auth.models import Group

WILDCARD = "*"


def merge_permissions(groups: Iterable[Group]) -> dict[str, int]:
    """Merge group permission maps; later groups overwrite earlier ones."""
    merged: dict[str, int] = {}
    for group in groups:
        merged.update(group.permissions)
    return merged


def _is_wildcard(permission: str) -> bool:
    return len(permission) > 1 and permission.endswith(WILDCARD)


def matches(permission: str, merged: dict[str, int]) -> bool:
    """Return True if permission is satisfied by the merged mapping."""
    if _is_wildcard(permission):
        prefix = permission[:-1]
        return any(
            value == 1 and key not in (prefix, permission) and key.startswith(prefix) for key, value in merged.items()
        )

    for key, value in merged.items():
        if value != 1:
            continue
        if _is_wildcard(key):
            key_prefix = key[:-1]
            if key_prefix != permission and permission.startswith(key_prefix):
                return True
        elif key == permission:
            return True
    return False


class PermissionResolver:
    """Answers access queries for a list of groups. Stateless."""

    def has_access(self, groups: Iterable[Group], permissions: str | Iterable[str], all: bool = True) -> bool:
        """See if the groups grant the requested permission(s).

        all=True: every permission must match (stops at the first miss).
        all=False: any one permission is enough (stops at the first hit).
        """
        if isinstance(permissions, str):
            permissions = [permissions]
        merged = merge_permissions(groups)
        for permission in permissions:
            matched = matches(permission, merged)
            if all and not matched:
                return False
            if not all and matched:
                return True
        return all

    # Older callers use the longer name.
    has_permission = has_access

    def has_any_access(self, groups: Iterable[Group], permissions: str | Iterable[str]) -> bool:
        return self.has_access(groups, permissions, all=False)

    @staticmethod
    def in_group(groups: Iterable[Group], group: Group) -> bool:
        return any(g.id == group.id for g in groups)
