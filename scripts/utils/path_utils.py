"""
Sandboxing of virtual paths against the storage root.

Every operation that touches the disk goes through ``resolve_within_root``;
names and parent paths coming from callers go through ``sanitize_segment`` and
``sanitize_parent_path`` first.
"""
import os
from typing import List

from scripts.utils.exceptions import InvalidPathError, PathTraversalError

ROOT_PATH = "/"
_FORBIDDEN = ("..", "/", "\\", "\0")


def sanitize_segment(segment: str) -> str:
    """Return the trimmed segment, or raise InvalidPathError."""
    if not isinstance(segment, str):
        raise InvalidPathError("Invalid path segment")

    trimmed = segment.strip()
    if not trimmed:
        raise InvalidPathError("Path segment cannot be empty")

    if trimmed == "." or any(token in trimmed for token in _FORBIDDEN) or os.path.isabs(trimmed):
        raise InvalidPathError(f"Invalid characters in path segment: {segment!r}")

    return trimmed


def split_segments(path: str) -> List[str]:
    """Split a slash separated path into sanitized segments, ignoring empty parts."""
    if path is None:
        raise InvalidPathError("Path is required")
    return [sanitize_segment(part) for part in path.split("/") if part]


def sanitize_parent_path(parent_path: str) -> str:
    """Normalize to a single leading slash form, e.g. ``"a/b/"`` -> ``"/a/b"``."""
    if not parent_path or parent_path == ROOT_PATH:
        return ROOT_PATH

    segments = split_segments(parent_path.strip("/"))
    if not segments:
        return ROOT_PATH
    return ROOT_PATH + "/".join(segments)


def parent_segments(parent_path: str) -> List[str]:
    normalized = sanitize_parent_path(parent_path)
    if normalized == ROOT_PATH:
        return []
    return normalized[1:].split("/")


def join_virtual(parent_path: str, name: str) -> str:
    """Virtual ``/``-rooted path of ``name`` inside ``parent_path``."""
    normalized = sanitize_parent_path(parent_path)
    if normalized == ROOT_PATH:
        return ROOT_PATH + name
    return f"{normalized}/{name}"


def resolve_within_root(root: str, *segments: str) -> str:
    """
    Join the sanitized segments under root and resolve the result.

    The resolved path must lie strictly inside root; anything else, including
    root itself, raises PathTraversalError.
    """
    real_root = os.path.realpath(root)
    clean = [sanitize_segment(segment) for segment in segments]
    resolved = os.path.realpath(os.path.join(real_root, *clean))

    if os.path.commonpath([real_root, resolved]) != real_root or resolved == real_root:
        raise PathTraversalError(f"Path escapes storage root: {'/'.join(clean)}")

    return resolved
