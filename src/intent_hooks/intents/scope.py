"""Glob-based ownership checks for intent scopes."""

import posixpath
import re
from functools import lru_cache
from pathlib import Path
from typing import Optional, Union

from loguru import logger

from .store import Intent


def normalize_path(
    path: str, workspace_root: Optional[Union[str, Path]] = None
) -> Optional[str]:
    """
    Normalize a path to workspace-relative POSIX form.

    Strips a leading ``./`` or ``/``, converts backslashes, and collapses
    ``.`` and ``..`` segments. When ``workspace_root`` is given, absolute
    paths under it are made relative to it. Any other leading ``/`` path is
    read as workspace-relative, so ``/src/a.go`` and ``src/a.go`` name the
    same file. Drive-letter paths outside the root are rejected.

    Returns:
        The normalized path, or None if the path is empty or escapes the root
    """
    if not path:
        return None

    candidate = str(path).replace("\\", "/")

    if workspace_root is not None:
        root = str(Path(workspace_root).expanduser().resolve()).replace("\\", "/").rstrip("/")
        if root and (candidate == root or candidate.startswith(root + "/")):
            candidate = candidate[len(root):]
        elif re.match(r"^[A-Za-z]:/", candidate):
            return None

    candidate = re.sub(r"^(?:\./|/)+", "", candidate)
    if not candidate:
        return None

    normalized = posixpath.normpath(candidate)
    if normalized in {".", ""} or normalized == ".." or normalized.startswith("../"):
        return None
    return normalized


@lru_cache(maxsize=512)
def glob_to_regex(pattern: str) -> re.Pattern:
    """
    Compile a scope glob into an anchored regex.

    ``**`` matches across directory boundaries (``**/`` also matches zero
    directories), ``*`` matches within one segment, ``?`` matches exactly
    one non-separator character. Everything else is literal.
    """
    parts = []
    i = 0
    while i < len(pattern):
        if pattern.startswith("**/", i):
            parts.append("(?:.*/)?")
            i += 3
        elif pattern.startswith("**", i):
            parts.append(".*")
            i += 2
        elif pattern[i] == "*":
            parts.append("[^/]*")
            i += 1
        elif pattern[i] == "?":
            parts.append("[^/]")
            i += 1
        else:
            parts.append(re.escape(pattern[i]))
            i += 1
    return re.compile("^" + "".join(parts) + "$")


def matches_pattern(path: str, pattern: str) -> bool:
    """Check a normalized path against one scope pattern."""
    normalized_pattern = re.sub(r"^(?:\./|/)+", "", pattern.replace("\\", "/"))
    return glob_to_regex(normalized_pattern).match(path) is not None


def matching_pattern(
    path: str,
    intent: Intent,
    workspace_root: Optional[Union[str, Path]] = None,
) -> Optional[str]:
    """Return the first owned_scope pattern matching ``path``, if any."""
    if not intent.owned_scope:
        return None

    normalized = normalize_path(path, workspace_root)
    if normalized is None:
        return None

    for pattern in intent.owned_scope:
        if not isinstance(pattern, str) or not pattern.strip():
            logger.warning(f"Ignoring invalid scope pattern {pattern!r} in intent {intent.id}")
            continue
        if matches_pattern(normalized, pattern.strip()):
            return pattern
    return None


def validate_scope(
    path: str,
    intent: Intent,
    workspace_root: Optional[Union[str, Path]] = None,
) -> bool:
    """
    Decide whether ``path`` falls inside the intent's owned_scope.

    Args:
        path: Target file path (relative, ``./``-prefixed, or absolute)
        intent: Intent whose owned_scope is consulted
        workspace_root: Root used to relativize absolute paths

    Returns:
        True on the first matching pattern; False if the scope is empty
        or nothing matches
    """
    return matching_pattern(path, intent, workspace_root) is not None
