"""
tests/test_permissions.py -- Unit tests for auth/permissions.py.

Pure functions over in-memory Group objects; no database needed.

Covers:
  - Merge: last group wins, explicit deny revokes an earlier grant
  - Exact matches and explicit deny
  - Wildcard queries ("posts.*") and wildcard grants
  - Literal wildcard grant does not self-match a wildcard query
  - all / any aggregation, empty query, string query
  - in_group by id
"""

from __future__ import annotations

import pytest

from auth.models import Group
from auth.permissions import PermissionResolver, matches, merge_permissions


@pytest.fixture
def resolver() -> PermissionResolver:
    return PermissionResolver()


def _groups(*maps: dict[str, int]) -> list[Group]:
    return [Group(name=f"g{i}", permissions=m, id=i) for i, m in enumerate(maps, start=1)]


class TestMerge:
    def test_last_group_wins_grant(self) -> None:
        assert merge_permissions(_groups({"a": 0}, {"a": 1})) == {"a": 1}

    def test_last_group_wins_deny(self) -> None:
        assert merge_permissions(_groups({"a": 1}, {"a": 0})) == {"a": 0}

    def test_disjoint_keys_union(self) -> None:
        assert merge_permissions(_groups({"a": 1}, {"b": 1})) == {"a": 1, "b": 1}

    def test_no_groups(self) -> None:
        assert merge_permissions([]) == {}

    @pytest.mark.parametrize("first, second", [(0, 1), (1, 0), (1, 1), (0, 0)])
    def test_order_decides_access(self, resolver, first: int, second: int) -> None:
        groups = _groups({"posts.edit": first}, {"posts.edit": second})
        assert resolver.has_access(groups, "posts.edit") is (second == 1)
        assert resolver.has_access(list(reversed(groups)), "posts.edit") is (first == 1)


class TestExactMatch:
    def test_granted(self) -> None:
        assert matches("posts.edit", {"posts.edit": 1}) is True

    def test_denied(self) -> None:
        assert matches("posts.edit", {"posts.edit": 0}) is False

    def test_unset(self) -> None:
        assert matches("posts.edit", {"posts.view": 1}) is False

    def test_prefix_is_not_exact(self) -> None:
        assert matches("posts", {"posts.edit": 1}) is False


class TestWildcardQuery:
    def test_matches_granted_child(self) -> None:
        assert matches("posts.*", {"posts.edit": 1}) is True

    def test_ignores_denied_child(self) -> None:
        assert matches("posts.*", {"posts.edit": 0}) is False

    def test_literal_wildcard_grant_does_not_self_match(self) -> None:
        assert matches("posts.*", {"posts.*": 1}) is False

    def test_bare_prefix_key_does_not_match(self) -> None:
        assert matches("posts.*", {"posts.": 1}) is False

    def test_other_namespace_does_not_match(self) -> None:
        assert matches("posts.*", {"users.edit": 1}) is False

    def test_lone_marker_is_not_a_wildcard(self) -> None:
        assert matches("*", {"anything": 1}) is False
        assert matches("*", {"*": 1}) is True


class TestWildcardGrant:
    def test_grant_covers_child(self) -> None:
        assert matches("posts.edit", {"posts.*": 1}) is True

    def test_grant_covers_grandchild(self) -> None:
        assert matches("posts.comments.delete", {"posts.*": 1}) is True

    def test_denied_wildcard_grant(self) -> None:
        assert matches("posts.edit", {"posts.*": 0}) is False

    def test_grant_does_not_cover_bare_prefix(self) -> None:
        assert matches("posts.", {"posts.*": 1}) is False

    def test_exact_deny_does_not_override_wildcard_grant(self) -> None:
        """A wildcard grant still matches even if the exact key is denied."""
        assert matches("posts.delete", {"posts.*": 1, "posts.delete": 0}) is True


class TestAggregation:
    def test_all_requires_every_permission(self, resolver) -> None:
        groups = _groups({"a": 1})
        assert resolver.has_access(groups, ["a", "b"]) is False

    def test_all_succeeds_when_every_permission_matches(self, resolver) -> None:
        groups = _groups({"a": 1, "b": 1})
        assert resolver.has_access(groups, ["a", "b"]) is True

    def test_any_succeeds_with_one(self, resolver) -> None:
        groups = _groups({"a": 1})
        assert resolver.has_access(groups, ["a", "b"], all=False) is True
        assert resolver.has_any_access(groups, ["b", "a"]) is True

    def test_any_fails_with_none(self, resolver) -> None:
        assert resolver.has_any_access(_groups({"c": 1}), ["a", "b"]) is False

    def test_string_query(self, resolver) -> None:
        assert resolver.has_access(_groups({"admin": 1}), "admin") is True

    def test_empty_query(self, resolver) -> None:
        groups = _groups({"a": 1})
        assert resolver.has_access(groups, []) is True
        assert resolver.has_access(groups, [], all=False) is False

    def test_has_permission_alias(self, resolver) -> None:
        assert resolver.has_permission(_groups({"a": 1}), "a") is True


class TestInGroup:
    def test_member_by_id(self) -> None:
        groups = _groups({}, {})
        assert PermissionResolver.in_group(groups, Group(name="renamed", id=2)) is True

    def test_not_member(self) -> None:
        assert PermissionResolver.in_group(_groups({}), Group(name="g9", id=9)) is False
