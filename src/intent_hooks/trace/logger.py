"""Append-only agent trace log."""

import asyncio
import json
from collections import Counter
from pathlib import Path
from typing import Any, Callable, Optional, Union

from loguru import logger

from ..hooks.models import PostToolUseContext
from ..intents import Intent, IntentStore, normalize_path
from ..tools import ToolKind, target_path
from .hashing import compute_content_hash, extract_block, line_count
from .mutation import MutationType, classify_mutation, parse_mutation_type
from .records import Contributor, Conversation, FileTrace, LineRange, Related, TraceRecord
from .revision import get_revision_id

# Argument names that may carry the written content or its line range
CONTENT_ARGUMENTS = ("content", "new_content", "code", "text")
START_LINE_ARGUMENTS = ("start_line",)
END_LINE_ARGUMENTS = ("end_line",)

# Write tools whose success leaves no file behind
DELETE_TOOLS = ("delete_file",)


def _first_argument(arguments: dict[str, Any], names: tuple[str, ...]) -> Any:
    for name in names:
        if arguments.get(name) is not None:
            return arguments[name]
    return None


def _optional_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def build_record(
    relative_path: str,
    content: str,
    intent_id: str,
    model_id: Optional[str] = None,
    session_id: Optional[str] = None,
    tool_name: Optional[str] = None,
    start_line: Optional[int] = None,
    end_line: Optional[int] = None,
    related_specs: Optional[list[str]] = None,
    mutation_type: MutationType = MutationType.UNKNOWN,
    revision_id: Optional[str] = None,
    duration_ms: Optional[float] = None,
) -> TraceRecord:
    """
    Build the trace record for one successful write.

    The hashed block is lines ``start_line..end_line`` of ``content`` when a
    range is given, otherwise the whole content spanning all of its lines.
    An ``end_line`` past the last line is clamped to it.

    Raises:
        ValueError: If the range is invalid or starts past the last line
    """
    if start_line is None and end_line is None:
        block = content
        start, end = 1, line_count(content)
    else:
        block = extract_block(content, start_line, end_line)
        start = start_line if start_line is not None else 1
        end = line_count(content) if end_line is None else min(end_line, line_count(content))

    metadata = {
        "tool_name": tool_name,
        "session_id": session_id,
        "intent_id": intent_id,
        "mutation_type": mutation_type.value,
    }
    if duration_ms is not None:
        metadata["duration_ms"] = round(duration_ms, 3)

    related = [Related(type="intent", value=intent_id)]
    related.extend(Related(type="specification", value=spec) for spec in related_specs or [])

    conversation = Conversation(
        url=session_id,
        contributor=Contributor(entity_type="AI", model_identifier=model_id),
        ranges=[LineRange(start, end, compute_content_hash(block))],
        related=related,
    )
    return TraceRecord(
        files=[FileTrace(relative_path=relative_path, conversations=[conversation])],
        revision_id=revision_id,
        metadata=metadata,
    )


class TraceLogger:
    """
    Post-tool hook that appends one trace record per successful write.

    Records go to a JSON Lines file opened in append mode; existing lines
    are never rewritten. A deleted file is recorded with the removed content
    and ``mutation_type: deletion``. The session abort flag is checked before any file
    I/O, and an aborted session produces no record.
    """

    def __init__(
        self,
        path: Union[str, Path],
        workspace_root: Union[str, Path] = ".",
        model_id: Optional[str] = None,
        intent_store: Optional[IntentStore] = None,
        enabled: bool = True,
    ):
        self.path = Path(path)
        self.workspace_root = Path(workspace_root)
        self.model_id = model_id
        self.intent_store = intent_store
        self.enabled = enabled

    def append(self, record: TraceRecord) -> None:
        """Append one record as a single JSON line."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(json.dumps(record.to_dict(), ensure_ascii=False) + "\n")

    def _written_content(self, context: PostToolUseContext, relative_path: str) -> Optional[str]:
        content = _first_argument(context.arguments, CONTENT_ARGUMENTS)
        if content is not None:
            return str(content)
        # Partial edits do not carry the content; hash what landed on disk
        written = self.workspace_root / relative_path
        if written.is_file():
            return written.read_text(encoding="utf-8")
        return None

    def _intent(self, intent_id: str) -> Optional[Intent]:
        if self.intent_store is None:
            return None
        return self.intent_store.find_by_id(intent_id)

    def record_for(self, context: PostToolUseContext) -> Optional[TraceRecord]:
        """Build the record a completed call deserves, or None if it is not traced."""
        if context.kind != ToolKind.WRITE or not context.success or not context.active_intent_id:
            return None

        raw_path = target_path(context.arguments)
        relative_path = normalize_path(raw_path, self.workspace_root) if raw_path else None
        if relative_path is None:
            logger.warning(f"Not tracing {context.tool_name}: no usable target path ({raw_path!r})")
            return None

        start_line = _optional_int(_first_argument(context.arguments, START_LINE_ARGUMENTS))
        end_line = _optional_int(_first_argument(context.arguments, END_LINE_ARGUMENTS))

        if context.tool_name in DELETE_TOOLS:
            # The removed block is what gets attributed
            content = context.previous_content or ""
            mutation = MutationType.DELETION
            start_line = end_line = None
        else:
            content = self._written_content(context, relative_path)
            if content is None:
                logger.warning(f"Not tracing {context.tool_name}: no content for {relative_path}")
                return None
            mutation = parse_mutation_type(context.arguments.get("mutation_class"))
            if mutation is None:
                mutation = classify_mutation(context.previous_content, content)

        intent = self._intent(context.active_intent_id)
        try:
            return build_record(
                relative_path=relative_path,
                content=content,
                intent_id=context.active_intent_id,
                model_id=context.model_id or self.model_id,
                session_id=context.session_id,
                tool_name=context.tool_name,
                start_line=start_line,
                end_line=end_line,
                related_specs=intent.related_specs if intent else None,
                mutation_type=mutation,
                revision_id=get_revision_id(self.workspace_root),
                duration_ms=context.duration_ms,
            )
        except ValueError as e:
            logger.warning(f"Not tracing {context.tool_name} on {relative_path}: {e}")
            return None

    def log(self, context: PostToolUseContext) -> Optional[TraceRecord]:
        """Trace a completed call synchronously."""
        if not self.enabled:
            return None
        if context.aborted:
            logger.debug(f"Session {context.session_id} aborted, skipping trace")
            return None

        record = self.record_for(context)
        if record is None:
            return None

        if context.aborted:
            logger.debug(f"Session {context.session_id} aborted, skipping trace")
            return None
        self.append(record)
        logger.debug(
            f"Traced {context.tool_name} on {record.files[0].relative_path} "
            f"for intent {context.active_intent_id}"
        )
        return record

    async def __call__(self, context: PostToolUseContext) -> Optional[TraceRecord]:
        return await asyncio.to_thread(self.log, context)


def read_trace_log(
    path: Union[str, Path],
    predicate: Optional[Callable[[TraceRecord], bool]] = None,
) -> list[TraceRecord]:
    """
    Read trace records, optionally filtered by ``predicate``.

    Unparseable lines are skipped with a warning. A missing file yields an
    empty list.
    """
    path = Path(path)
    if not path.exists():
        return []

    records: list[TraceRecord] = []
    with open(path, encoding="utf-8") as f:
        for line_number, line in enumerate(f, start=1):
            if not line.strip():
                continue
            try:
                record = TraceRecord.from_dict(json.loads(line))
            except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping invalid trace line {line_number} in {path}: {e}")
                continue
            if predicate is None or predicate(record):
                records.append(record)
    return records


def summarize_traces(records: list[TraceRecord]) -> dict[str, Any]:
    """
    Aggregate trace records into simple metrics.

    Returns:
        Dict with ``total_records``, counts by intent, file, contributor
        model, tool and mutation type, and ``average_duration_ms`` over the
        records that carry a duration (None if none do)
    """
    by_intent: Counter = Counter()
    by_file: Counter = Counter()
    by_contributor: Counter = Counter()
    by_tool: Counter = Counter()
    by_mutation: Counter = Counter()
    durations: list[float] = []

    for record in records:
        for intent_id in set(record.related_values("intent")):
            by_intent[intent_id] += 1
        for file_trace in record.files:
            by_file[file_trace.relative_path] += 1
            for conversation in file_trace.conversations:
                by_contributor[conversation.contributor.model_identifier or "unknown"] += 1
        if record.metadata.get("tool_name"):
            by_tool[record.metadata["tool_name"]] += 1
        by_mutation[record.metadata.get("mutation_type", MutationType.UNKNOWN.value)] += 1
        if isinstance(record.metadata.get("duration_ms"), (int, float)):
            durations.append(record.metadata["duration_ms"])

    return {
        "total_records": len(records),
        "by_intent": dict(by_intent),
        "by_file": dict(by_file),
        "by_contributor": dict(by_contributor),
        "by_tool": dict(by_tool),
        "by_mutation_type": dict(by_mutation),
        "average_duration_ms": round(sum(durations) / len(durations), 3) if durations else None,
    }
