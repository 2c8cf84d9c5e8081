"""Tests for scoped cache keys."""

import pytest

from fincache import GLOBAL_SCOPE, scope_prefix, scoped_key, split_key, user_scope


class TestScopedKey:
    def test_unscoped_keys_live_in_global_scope(self) -> None:
        assert scoped_key("categories") == "global:categories"
        assert split_key(scoped_key("categories")) == (*GLOBAL_SCOPE, "categories")

    def test_user_scope(self) -> None:
        assert scoped_key("profile", user_scope(42)) == "user:42:profile"

    def test_escapes_separator(self) -> None:
        key = scoped_key("a:b", ("user", "x\\y"))
        assert split_key(key) == ("user", "x\\y", "a:b")

    def test_user_and_global_never_collide(self) -> None:
        assert scoped_key("profile", ("user", "1")) != scoped_key("user:1:profile")

    def test_empty_key_rejected(self) -> None:
        with pytest.raises(ValueError):
            scoped_key("")

    def test_empty_scope_rejected(self) -> None:
        with pytest.raises(ValueError):
            scoped_key("k", ())


class TestScopePrefix:
    def test_prefix_matches_scope_members(self) -> None:
        prefix = scope_prefix(user_scope("42"))
        assert scoped_key("tx_list", user_scope("42")).startswith(prefix)
        assert scoped_key("posts", ("user", "42", "nested")).startswith(prefix)

    def test_prefix_does_not_match_other_users(self) -> None:
        prefix = scope_prefix(user_scope("4"))
        assert not scoped_key("tx_list", user_scope("42")).startswith(prefix)

    def test_prefix_does_not_match_escaped_lookalike(self) -> None:
        prefix = scope_prefix(("user", "42"))
        assert not scoped_key("k", ("user", "42:evil")).startswith(prefix)
