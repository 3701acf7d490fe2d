"""Hook system models for the intent gatekeeper."""

import json
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from ..tools import ToolKind, tool_kind


class HookStage(str, Enum):
    """Hook execution stages in the tool call lifecycle."""

    PRE_TOOL_USE = "pre_tool_use"
    POST_TOOL_USE = "post_tool_use"


class BlockedReasonCode(str, Enum):
    """Short codes the agent can pattern-match for autonomous recovery."""

    NO_INTENT = "NO_INTENT"
    SCOPE_VIOLATION = "SCOPE_VIOLATION"
    HITL_REJECTED = "HITL_REJECTED"
    INTENT_NOT_FOUND = "INTENT_NOT_FOUND"
    INTENT_BLOCKED = "INTENT_BLOCKED"
    STALE_CONTENT = "STALE_CONTENT"
    SESSION_ABORTED = "SESSION_ABORTED"
    HOOK_FAILURE = "HOOK_FAILURE"


class GatekeeperState(str, Enum):
    """Per-session gatekeeper states."""

    NO_INTENT = "no_intent"
    INTENT_ACTIVE = "intent_active"
    PRE_VALIDATING = "pre_validating"
    BLOCKED = "blocked"
    EXECUTING = "executing"
    POST_LOGGING = "post_logging"


@dataclass
class Rejection:
    """
    Structured rejection payload surfaced to the agent on any block.

    Serializes to ``{error: "BLOCKED", reason, suggestion,
    blocked_reason_code, timestamp}`` plus optional details.
    """

    reason: str
    code: BlockedReasonCode
    suggestion: str = ""
    details: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data = {
            "error": "BLOCKED",
            "reason": self.reason,
            "suggestion": self.suggestion,
            "blocked_reason_code": self.code.value,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.details:
            data["details"] = self.details
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    def __str__(self) -> str:
        return f"Rejection({self.code.value}): {self.reason}"


@dataclass
class HookResult:
    """
    Value every interceptor returns.

    ``should_continue=False`` aborts the pre-tool pipeline. ``reason`` is
    required in that case; ``blocked_reason_code`` and ``suggestion`` feed
    the structured rejection.
    """

    should_continue: bool = True
    reason: Optional[str] = None
    modified_params: Optional[dict[str, Any]] = None
    context_to_inject: Optional[str] = None
    blocked_reason_code: Optional[BlockedReasonCode] = None
    suggestion: Optional[str] = None
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def allow(
        cls,
        modified_params: Optional[dict[str, Any]] = None,
        context_to_inject: Optional[str] = None,
    ) -> "HookResult":
        return cls(
            should_continue=True,
            modified_params=modified_params,
            context_to_inject=context_to_inject,
        )

    @classmethod
    def block(
        cls,
        reason: str,
        code: BlockedReasonCode,
        suggestion: str = "",
        context_to_inject: Optional[str] = None,
        **details: Any,
    ) -> "HookResult":
        return cls(
            should_continue=False,
            reason=reason,
            blocked_reason_code=code,
            suggestion=suggestion,
            context_to_inject=context_to_inject,
            details=details,
        )

    def to_rejection(self) -> Rejection:
        """Build the structured rejection for a blocking result."""
        return Rejection(
            reason=self.reason or "Operation blocked",
            code=self.blocked_reason_code or BlockedReasonCode.HOOK_FAILURE,
            suggestion=self.suggestion or "",
            details=dict(self.details),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data: dict[str, Any] = {"continue": self.should_continue}
        if self.reason is not None:
            data["reason"] = self.reason
        if self.modified_params is not None:
            data["modified_params"] = self.modified_params
        if self.context_to_inject is not None:
            data["context_to_inject"] = self.context_to_inject
        if self.blocked_reason_code is not None:
            data["blocked_reason_code"] = self.blocked_reason_code.value
        if self.suggestion:
            data["suggestion"] = self.suggestion
        return data


@dataclass
class PreToolUseContext:
    """
    Context passed to pre-tool hooks.

    ``arguments`` reflects the overlays applied by earlier hooks. ``state``
    lets hooks hand data to later hooks in the same run (the resolved
    intent, the risk classification).
    """

    session_id: str
    tool_name: str
    arguments: dict[str, Any]
    workspace_root: str = "."
    active_intent_id: Optional[str] = None
    abort_event: Optional[threading.Event] = None
    host_context: Any = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    state: dict[str, Any] = field(default_factory=dict)

    @property
    def kind(self) -> ToolKind:
        return tool_kind(self.tool_name)

    @property
    def aborted(self) -> bool:
        return self.abort_event is not None and self.abort_event.is_set()


@dataclass
class PostToolUseContext:
    """Context passed to post-tool hooks after the external executor ran."""

    session_id: str
    tool_name: str
    arguments: dict[str, Any]
    result: Any = None
    success: bool = True
    error: Optional[BaseException] = None
    workspace_root: str = "."
    active_intent_id: Optional[str] = None
    model_id: Optional[str] = None
    previous_content: Optional[str] = None
    abort_event: Optional[threading.Event] = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def kind(self) -> ToolKind:
        return tool_kind(self.tool_name)

    @property
    def aborted(self) -> bool:
        return self.abort_event is not None and self.abort_event.is_set()

    @property
    def duration_ms(self) -> float:
        return (self.finished_at - self.started_at).total_seconds() * 1000
