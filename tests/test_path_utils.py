import os

import pytest

from scripts.utils.exceptions import InvalidPathError, PathTraversalError
from scripts.utils.path_utils import (join_virtual, parent_segments, resolve_within_root, sanitize_parent_path,
                                      sanitize_segment, split_segments)


@pytest.mark.parametrize("segment", [".", " . ", "..", "a/b", "a\\b", "nul\0byte", "../etc", "x..y", "", "   ", "/abs"])
def test_sanitize_segment_rejects_unsafe(segment):
    with pytest.raises(InvalidPathError):
        sanitize_segment(segment)


def test_sanitize_segment_trims():
    assert sanitize_segment("  report.pdf ") == "report.pdf"
    assert sanitize_segment(".hidden") == ".hidden"


def test_sanitize_segment_rejects_non_strings():
    with pytest.raises(InvalidPathError):
        sanitize_segment(None)


@pytest.mark.parametrize("raw, expected", [
    ("/", "/"),
    ("", "/"),
    (None, "/"),
    ("/Docs", "/Docs"),
    ("Docs/", "/Docs"),
    ("/a/b/", "/a/b"),
    ("//a//b", "/a/b"),
])
def test_sanitize_parent_path_normalizes(raw, expected):
    assert sanitize_parent_path(raw) == expected


def test_sanitize_parent_path_rejects_traversal():
    with pytest.raises(InvalidPathError):
        sanitize_parent_path("/a/../../etc")


def test_split_and_join_helpers():
    assert split_segments("Docs/a.txt") == ["Docs", "a.txt"]
    assert parent_segments("/") == []
    assert parent_segments("/a/b") == ["a", "b"]
    assert join_virtual("/", "Docs") == "/Docs"
    assert join_virtual("/Docs", "a.txt") == "/Docs/a.txt"


def test_current_directory_segments_are_rejected():
    with pytest.raises(InvalidPathError):
        split_segments("Docs/./a.txt")
    with pytest.raises(InvalidPathError):
        sanitize_parent_path("/Docs/.")


def test_resolve_within_root_stays_inside(tmp_path):
    root = str(tmp_path)
    resolved = resolve_within_root(root, "Docs", "a.txt")
    real_root = os.path.realpath(root)
    assert resolved == os.path.join(real_root, "Docs", "a.txt")
    assert resolved.startswith(real_root + os.sep)


def test_resolve_within_root_rejects_traversal_segments(tmp_path):
    with pytest.raises(InvalidPathError):
        resolve_within_root(str(tmp_path), "..", "etc")


def test_resolve_within_root_rejects_root_itself(tmp_path):
    with pytest.raises(PathTraversalError):
        resolve_within_root(str(tmp_path))


def test_resolve_within_root_rejects_symlink_escape(tmp_path):
    root = tmp_path / "root"
    outside = tmp_path / "outside"
    root.mkdir()
    outside.mkdir()
    os.symlink(outside, root / "link")
    with pytest.raises(PathTraversalError):
        resolve_within_root(str(root), "link", "secret.txt")
