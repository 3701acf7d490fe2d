"""YAML-backed intent registry."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Union

import yaml
from loguru import logger


class IntentStatus(str, Enum):
    """Lifecycle status of a declared intent."""

    DRAFT = "draft"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    BLOCKED = "blocked"


_STATUS_ALIASES = {
    "draft": IntentStatus.DRAFT,
    "pending": IntentStatus.DRAFT,
    "in_progress": IntentStatus.IN_PROGRESS,
    "in-progress": IntentStatus.IN_PROGRESS,
    "active": IntentStatus.IN_PROGRESS,
    "done": IntentStatus.DONE,
    "completed": IntentStatus.DONE,
    "complete": IntentStatus.DONE,
    "blocked": IntentStatus.BLOCKED,
}


@dataclass
class Intent:
    """
    A declared, scoped unit of work.

    Loaded from the intent document. The core never mutates an intent;
    status transitions belong to whoever edits the document.
    """

    id: str
    status: IntentStatus = IntentStatus.DRAFT
    name: str = ""
    owned_scope: list[str] = field(default_factory=list)
    constraints: list[str] = field(default_factory=list)
    acceptance_criteria: list[str] = field(default_factory=list)
    dependencies: list[str] = field(default_factory=list)
    blocked_reason: Optional[str] = None
    context: str = ""
    related_files: list[str] = field(default_factory=list)
    related_specs: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def is_blocked(self) -> bool:
        return self.status == IntentStatus.BLOCKED

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data = {
            "id": self.id,
            "name": self.name,
            "status": self.status.value,
            "owned_scope": list(self.owned_scope),
            "constraints": list(self.constraints),
            "acceptance_criteria": list(self.acceptance_criteria),
            "dependencies": list(self.dependencies),
            "context": self.context,
            "related_files": list(self.related_files),
            "related_specs": list(self.related_specs),
            "metadata": dict(self.metadata),
        }
        if self.blocked_reason is not None:
            data["blocked_reason"] = self.blocked_reason
        return data


class IntentDocumentError(ValueError):
    """Raised internally when a single intent record is malformed."""


def parse_status(raw_value: Any) -> IntentStatus:
    """Parse a status value, accepting common aliases."""
    if raw_value is None:
        return IntentStatus.DRAFT
    normalized = str(raw_value).strip().lower().replace(" ", "_")
    try:
        return _STATUS_ALIASES[normalized]
    except KeyError:
        raise IntentDocumentError(f"unknown status {raw_value!r}")


def _string_list(data: dict[str, Any], key: str) -> list[str]:
    value = data.get(key)
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list):
        raise IntentDocumentError(f"'{key}' must be a list, got {type(value).__name__}")
    return [str(item) for item in value if item is not None]


def intent_from_dict(data: dict[str, Any]) -> Intent:
    """
    Build an Intent from one record of the intent document.

    Raises:
        IntentDocumentError: If the record is missing its id or has bad fields
    """
    if not isinstance(data, dict):
        raise IntentDocumentError(f"intent record must be a mapping, got {type(data).__name__}")

    intent_id = data.get("id") or data.get("intent_id")
    if not intent_id:
        raise IntentDocumentError("intent record is missing 'id'")

    status = parse_status(data.get("status"))
    blocked_reason = data.get("blocked_reason")
    if status != IntentStatus.BLOCKED:
        blocked_reason = None
    elif blocked_reason is not None:
        blocked_reason = str(blocked_reason)

    metadata = data.get("metadata") or {}
    if not isinstance(metadata, dict):
        raise IntentDocumentError("'metadata' must be a mapping")

    return Intent(
        id=str(intent_id),
        status=status,
        name=str(data.get("name") or data.get("title") or ""),
        owned_scope=_string_list(data, "owned_scope"),
        constraints=_string_list(data, "constraints"),
        acceptance_criteria=_string_list(data, "acceptance_criteria"),
        dependencies=_string_list(data, "dependencies"),
        blocked_reason=blocked_reason,
        context=str(data.get("context") or ""),
        related_files=_string_list(data, "related_files"),
        related_specs=_string_list(data, "related_specs"),
        metadata=metadata,
    )


def find_dependency_cycle(intents: list[Intent]) -> Optional[list[str]]:
    """
    Find a circular dependency chain among intents.

    Returns:
        The ids forming the first cycle found (first id repeated at the end),
        or None if the dependency graph is acyclic
    """
    graph = {intent.id: intent.dependencies for intent in intents}
    visiting: set[str] = set()
    visited: set[str] = set()
    path: list[str] = []

    def visit(node: str) -> Optional[list[str]]:
        if node in visiting:
            return path[path.index(node):] + [node]
        if node in visited or node not in graph:
            return None
        visiting.add(node)
        path.append(node)
        for dependency in graph[node]:
            cycle = visit(dependency)
            if cycle:
                return cycle
        path.pop()
        visiting.discard(node)
        visited.add(node)
        return None

    for intent_id in graph:
        cycle = visit(intent_id)
        if cycle:
            return cycle
    return None


def parse_intents(
    text: str, diagnostics: Optional[list[str]] = None
) -> list[Intent]:
    """
    Parse the intent document from YAML text.

    The root may be a list of intents, or a mapping holding the list under
    ``intents`` or ``active_intents``. Data errors never raise: a bad record
    is skipped, a bad document yields an empty list, and each problem is
    logged and appended to ``diagnostics``.
    """
    if diagnostics is None:
        diagnostics = []

    def report(message: str) -> None:
        diagnostics.append(message)
        logger.error(f"Intent document: {message}")

    try:
        parsed = yaml.safe_load(text)
    except yaml.YAMLError as e:
        report(f"failed to parse YAML: {e}")
        return []

    if parsed is None:
        logger.debug("Intent document is empty")
        return []

    if isinstance(parsed, dict):
        records = parsed.get("intents", parsed.get("active_intents"))
    else:
        records = parsed

    if records is None:
        report("root mapping has no 'intents' or 'active_intents' key")
        return []
    if not isinstance(records, list):
        report(f"intent collection must be a list, got {type(records).__name__}")
        return []

    intents: list[Intent] = []
    seen: set[str] = set()
    for index, record in enumerate(records):
        try:
            intent = intent_from_dict(record)
        except IntentDocumentError as e:
            report(f"skipping record #{index}: {e}")
            continue
        if intent.id in seen:
            report(f"duplicate intent id {intent.id!r} at record #{index}, keeping the first")
            continue
        seen.add(intent.id)
        intents.append(intent)

    for intent in intents:
        unknown = [dep for dep in intent.dependencies if dep not in seen]
        if unknown:
            message = f"intent {intent.id} depends on unknown intents: {', '.join(unknown)}"
            diagnostics.append(message)
            logger.warning(f"Intent document: {message}")

    cycle = find_dependency_cycle(intents)
    if cycle:
        report(f"circular dependency: {' -> '.join(cycle)}")
        return []

    return intents


def load_intents(
    source: Union[str, Path], diagnostics: Optional[list[str]] = None
) -> list[Intent]:
    """
    Load intents from a YAML file.

    Args:
        source: Path to the intent document
        diagnostics: Optional list collecting human-readable problems

    Returns:
        Parsed intents, or an empty list if the file is missing or invalid
    """
    if diagnostics is None:
        diagnostics = []

    path = Path(source)
    if not path.exists():
        message = f"intent document not found at {path}"
        diagnostics.append(message)
        logger.warning(message)
        return []

    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        message = f"failed to read intent document {path}: {e}"
        diagnostics.append(message)
        logger.error(message)
        return []

    return parse_intents(text, diagnostics)


class IntentStore:
    """
    Read-only access to the intent document.

    Every lookup re-reads the file so edits take effect immediately.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.diagnostics: list[str] = []

    def load(self) -> list[Intent]:
        """Load all intents, replacing the diagnostics of the previous load."""
        self.diagnostics = []
        return load_intents(self.path, self.diagnostics)

    def find_by_id(self, intent_id: str) -> Optional[Intent]:
        """Get intent by ID, or None if absent."""
        for intent in self.load():
            if intent.id == intent_id:
                return intent
        return None

    def available_ids(self) -> list[str]:
        """List the ids of all loadable intents in document order."""
        return [intent.id for intent in self.load()]
