"""Tests for fs/utils.py — logical path helpers."""

from __future__ import annotations

import pytest

from davfs.fs.utils import (
    is_same_or_descendant,
    join_path,
    normalize_path,
    slash_clean,
    split_path,
)

# ---------------------------------------------------------------------------
# slash_clean / normalize_path
# ---------------------------------------------------------------------------


class TestSlashClean:
    @pytest.mark.parametrize(
        ("input_path", "expected"),
        [
            pytest.param("", "/", id="empty"),
            pytest.param("foo.txt", "/foo.txt", id="no-leading-slash"),
            pytest.param("/foo//bar.txt", "/foo/bar.txt", id="double-slashes"),
            pytest.param("/foo/../bar.txt", "/bar.txt", id="dotdot"),
            pytest.param("/foo/./bar", "/foo/bar", id="dot"),
            pytest.param("/foo/", "/foo", id="trailing-slash"),
            pytest.param("/", "/", id="root"),
            pytest.param("//foo", "/foo", id="posix-double-leading"),
            pytest.param("/../../etc", "/etc", id="climb-above-root"),
            pytest.param("../x", "/x", id="relative-climb"),
        ],
    )
    def test_clean(self, input_path: str, expected: str):
        assert slash_clean(input_path) == expected

    def test_alias(self):
        assert normalize_path is slash_clean

    def test_idempotent(self):
        once = slash_clean("a//b/../c/")
        assert slash_clean(once) == once


# ---------------------------------------------------------------------------
# split_path / join_path
# ---------------------------------------------------------------------------


class TestSplitJoin:
    def test_split_nested(self):
        assert split_path("/foo/bar.txt") == ("/foo", "bar.txt")

    def test_split_top_level(self):
        assert split_path("/foo.txt") == ("/", "foo.txt")

    def test_split_root(self):
        assert split_path("/") == ("/", "")

    def test_split_normalizes(self):
        assert split_path("foo//bar/") == ("/foo", "bar")

    def test_join(self):
        assert join_path("/a", "b") == "/a/b"

    def test_join_onto_root(self):
        assert join_path("/", "b") == "/b"

    def test_join_cannot_climb(self):
        assert join_path("/", "../b") == "/b"


# ---------------------------------------------------------------------------
# is_same_or_descendant
# ---------------------------------------------------------------------------


class TestIsSameOrDescendant:
    def test_same(self):
        assert is_same_or_descendant("/a", "/a")

    def test_descendant(self):
        assert is_same_or_descendant("/a/b/c", "/a")

    def test_sibling_prefix(self):
        assert not is_same_or_descendant("/ab", "/a")

    def test_everything_under_root(self):
        assert is_same_or_descendant("/x/y", "/")

    def test_ancestor_is_not_descendant(self):
        assert not is_same_or_descendant("/a", "/a/b")
