"""Heuristic classification of file mutations."""

from enum import Enum
from typing import Optional


class MutationType(str, Enum):
    NEW_FEATURE = "new_feature"
    BUG_FIX = "bug_fix"
    REFACTOR = "refactor"
    ENHANCEMENT = "enhancement"
    DELETION = "deletion"
    UNKNOWN = "unknown"


def _meaningful_lines(code: str) -> list[str]:
    return [line.strip() for line in code.splitlines() if line.strip()]


def classify_mutation(old_code: Optional[str], new_code: str) -> MutationType:
    """
    Guess what kind of change turned ``old_code`` into ``new_code``.

    - No previous content: new_feature
    - Empty new content: deletion
    - Small line delta (< 20% and < 10 lines): bug_fix
    - Moderate delta (< 50%): enhancement
    - Large delta keeping > 60% of the old lines: refactor
    - Otherwise: new_feature

    Returns UNKNOWN when the previous content was never captured.
    """
    if old_code is None:
        return MutationType.UNKNOWN
    if not old_code.strip():
        return MutationType.NEW_FEATURE
    if not new_code or not new_code.strip():
        return MutationType.DELETION

    old_lines = _meaningful_lines(old_code)
    new_lines = _meaningful_lines(new_code)
    delta = abs(len(new_lines) - len(old_lines))
    delta_percent = delta / len(old_lines) * 100 if old_lines else 100

    if delta_percent < 20 and delta < 10:
        return MutationType.BUG_FIX
    if delta_percent < 50:
        return MutationType.ENHANCEMENT

    old_set = set(old_lines)
    preserved = sum(1 for line in new_lines if line in old_set)
    preservation = preserved / len(old_lines) * 100 if old_lines else 0
    if preservation > 60:
        return MutationType.REFACTOR
    return MutationType.NEW_FEATURE


def parse_mutation_type(raw_value: object) -> Optional[MutationType]:
    """Parse an agent-declared mutation class; None if unrecognized."""
    if raw_value is None:
        return None
    try:
        return MutationType(str(raw_value).strip().lower())
    except ValueError:
        return None
