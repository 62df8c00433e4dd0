"""Unit tests for PathGuard (lexical normalization and traversal checks)."""

import pytest

from storage_sink.application.path_guard import PathGuard, require_string
from storage_sink.domain.exceptions import InvalidArgumentError, PathTraversalError


class TestNormalize:
    """Leading anchors are stripped; '..' above the root is rejected."""

    @pytest.mark.parametrize(
        "raw",
        ["dir/sensitive.data", "./dir/sensitive.data", "/dir/sensitive.data", "//dir/sensitive.data"],
    )
    def test_anchored_paths_resolve_to_bare_key(self, raw: str) -> None:
        assert PathGuard.normalize(raw) == "dir/sensitive.data"

    @pytest.mark.parametrize(
        "raw",
        [
            "../dir/sensitive.data",
            "../../dir/sensitive.data",
            "/dir/../../../foo/sensitive.data",
            "/x/../../y",
            "..",
            "./../x",
        ],
    )
    def test_traversal_raises(self, raw: str) -> None:
        with pytest.raises(PathTraversalError, match="Directory traversal"):
            PathGuard.normalize(raw)

    def test_dotdot_inside_root_is_resolved(self) -> None:
        assert PathGuard.normalize("a/../b") == "b"
        assert PathGuard.normalize("a/b/../../c") == "c"

    def test_redundant_segments_collapsed(self) -> None:
        assert PathGuard.normalize("a//b/./c/") == "a/b/c"

    def test_root_forms_are_empty(self) -> None:
        assert PathGuard.normalize("") == ""
        assert PathGuard.normalize("/") == ""
        assert PathGuard.normalize("./") == ""

    def test_dotdot_is_not_a_prefix_match(self) -> None:
        assert PathGuard.normalize("..foo/bar") == "..foo/bar"

    @pytest.mark.parametrize("raw", [300, None, b"dir/file", ["dir"]])
    def test_non_string_raises_invalid_argument(self, raw: object) -> None:
        with pytest.raises(InvalidArgumentError, match="Argument must be a String"):
            PathGuard.normalize(raw)

    def test_invalid_argument_is_a_type_error(self) -> None:
        with pytest.raises(TypeError):
            require_string(300, "path")


class TestJoin:
    """Relative keys are placed under the root prefix."""

    def test_empty_root(self) -> None:
        assert PathGuard.join("", "a/b") == "a/b"

    def test_with_root(self) -> None:
        assert PathGuard.join("eik", "a/b") == "eik/a/b"

    def test_empty_relative_is_root(self) -> None:
        assert PathGuard.join("eik", "") == "eik"


class TestIsWithin:
    """Prefix matching respects whole path segments."""

    def test_exact_key(self) -> None:
        assert PathGuard.is_within("dir/a", "dir/a")

    def test_descendant(self) -> None:
        assert PathGuard.is_within("dir/a/map.json", "dir/a")

    def test_sibling_with_shared_prefix_excluded(self) -> None:
        assert not PathGuard.is_within("dir/ab", "dir/a")
        assert not PathGuard.is_within("dir/a_sibling/x", "dir/a")

    def test_empty_prefix_contains_everything(self) -> None:
        assert PathGuard.is_within("anything/at/all", "")
