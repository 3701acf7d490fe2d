"""Content addressing for traced code blocks."""

import hashlib
from pathlib import Path
from typing import Optional, Union


def compute_content_hash(code: str) -> str:
    """
    SHA-256 hex digest of a code block's UTF-8 bytes.

    Depends only on the bytes: the same block hashes the same wherever it
    lives in a file.
    """
    return hashlib.sha256(code.encode("utf-8")).hexdigest()


def line_count(content: str) -> int:
    """Number of lines in ``content`` (a trailing newline does not add one)."""
    if not content:
        return 1
    return len(content.splitlines()) or 1


def extract_block(
    content: str, start_line: Optional[int] = None, end_line: Optional[int] = None
) -> str:
    """
    Slice lines ``start_line..end_line`` (1-based, inclusive) out of ``content``.

    Without a range the whole content is the block.

    Raises:
        ValueError: If the range is inverted, starts below line 1 or starts
            past the last line
    """
    if start_line is None and end_line is None:
        return content

    lines = content.splitlines()
    start = 1 if start_line is None else start_line
    end = len(lines) if end_line is None else end_line
    if start < 1 or end < start:
        raise ValueError(f"invalid line range {start}..{end}")
    if start > max(len(lines), 1):
        raise ValueError(f"line range {start}..{end} starts past line {len(lines)}")
    return "\n".join(lines[start - 1 : end])


def hash_file(path: Union[str, Path]) -> Optional[str]:
    """Hash a file's current text content, or None if it does not exist."""
    path = Path(path)
    if not path.is_file():
        return None
    return compute_content_hash(path.read_text(encoding="utf-8"))
