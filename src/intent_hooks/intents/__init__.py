"""Intent registry, scope validation, and context rendering."""

from .formatting import escape_xml, format_as_context, format_selection_summary
from .scope import glob_to_regex, matching_pattern, normalize_path, validate_scope
from .store import (
    Intent,
    IntentStatus,
    IntentStore,
    find_dependency_cycle,
    load_intents,
    parse_intents,
)

__all__ = [
    "Intent",
    "IntentStatus",
    "IntentStore",
    "load_intents",
    "parse_intents",
    "find_dependency_cycle",
    "normalize_path",
    "glob_to_regex",
    "matching_pattern",
    "validate_scope",
    "escape_xml",
    "format_as_context",
    "format_selection_summary",
]
