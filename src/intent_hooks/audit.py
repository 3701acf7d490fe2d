"""Structured JSON audit trail for governance decisions."""

import json
import re
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Union

from loguru import logger

MAX_CONTENT_LENGTH = 1000  # Truncate large content to prevent log bloat
REDACTED = "[REDACTED]"

# Argument keys whose values never reach a log
_SECRET_KEY = re.compile(
    r"(?:password|passwd|secret|token|api[_-]?key|access[_-]?key|private[_-]?key|"
    r"credential|auth(?:orization)?$)",
    re.IGNORECASE,
)


class AuditEvent(str, Enum):
    """Audit event types for governance decisions."""

    TOOL_BLOCKED = "tool_blocked"
    APPROVAL_REQUESTED = "approval_requested"
    APPROVAL_GRANTED = "approval_granted"
    APPROVAL_DENIED = "approval_denied"
    APPROVAL_TIMEOUT = "approval_timeout"
    INTENT_SELECTED = "intent_selected"
    INTENT_CLEARED = "intent_cleared"
    SESSION_ABORTED = "session_aborted"


def truncate_content(value: Any, max_length: int = MAX_CONTENT_LENGTH) -> Any:
    """
    Truncate large string values to prevent log bloat.

    Args:
        value: Value to potentially truncate
        max_length: Maximum length for string values

    Returns:
        Truncated value if string exceeds max_length, otherwise original value
    """
    if isinstance(value, str) and len(value) > max_length:
        return value[:max_length] + f"... [truncated, {len(value)} total chars]"
    elif isinstance(value, dict):
        return {k: truncate_content(v, max_length) for k, v in value.items()}
    elif isinstance(value, list):
        return [truncate_content(item, max_length) for item in value]
    return value


def sanitize_params(value: Any, max_length: int = MAX_CONTENT_LENGTH) -> Any:
    """
    Redact secret-looking keys and truncate long strings, recursively.

    Args:
        value: Tool arguments or any JSON-like value
        max_length: Maximum length for string values

    Returns:
        A sanitized copy safe to write to a log
    """
    if isinstance(value, dict):
        return {
            k: REDACTED
            if isinstance(k, str) and _SECRET_KEY.search(k)
            else sanitize_params(v, max_length)
            for k, v in value.items()
        }
    if isinstance(value, list):
        return [sanitize_params(item, max_length) for item in value]
    return truncate_content(value, max_length)


class AuditLogger:
    """
    Structured JSON audit logger for governance decisions.

    Features:
    - JSON Lines format (one JSON object per line)
    - ISO 8601 UTC timestamps
    - Secret redaction and content truncation
    - Append-only file mode, directory created on first write

    Write failures are logged and never reach the caller: an audit problem
    must not change a governance decision.
    """

    def __init__(self, log_path: Optional[Union[str, Path]] = None):
        """
        Initialize audit logger.

        Args:
            log_path: Path to audit log file; None disables file output
        """
        self.log_path = Path(log_path) if log_path is not None else None

    def log(
        self,
        event: AuditEvent,
        session_id: Optional[str] = None,
        request_id: Optional[str] = None,
        **kwargs,
    ) -> Optional[dict[str, Any]]:
        """
        Write structured audit log entry in JSON Lines format.

        Args:
            event: Audit event type
            session_id: Session identifier for correlation
            request_id: Request identifier for correlation
            **kwargs: Additional fields to include in the audit record

        Returns:
            The record written, or None if nothing was written
        """
        audit_record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event": event.value,
            "session_id": session_id,
            "request_id": request_id,
            **sanitize_params(kwargs),
        }

        if self.log_path is None:
            return None

        try:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.log_path, "a", encoding="utf-8") as f:
                f.write(json.dumps(audit_record, ensure_ascii=False, default=str) + "\n")
        except OSError as e:
            logger.error(f"Failed to write audit event {event.value} to {self.log_path}: {e}")
            return None
        return audit_record

    def log_blocked(
        self,
        tool_name: str,
        arguments: dict[str, Any],
        session_id: str,
        code: str,
        reason: str,
    ):
        """Log a tool call rejected by the pre-tool pipeline."""
        return self.log(
            AuditEvent.TOOL_BLOCKED,
            session_id=session_id,
            tool_name=tool_name,
            arguments=arguments,
            blocked_reason_code=code,
            reason=reason,
        )

    def log_approval_requested(
        self,
        tool_name: str,
        arguments: dict[str, Any],
        session_id: str,
        request_id: str,
        tier: str,
        reason: str,
    ):
        return self.log(
            AuditEvent.APPROVAL_REQUESTED,
            session_id=session_id,
            request_id=request_id,
            tool_name=tool_name,
            arguments=arguments,
            tier=tier,
            reason=reason,
        )

    def log_approval(
        self,
        tool_name: str,
        arguments: dict[str, Any],
        session_id: str,
        approved: bool,
        request_id: Optional[str] = None,
        provider: Optional[str] = None,
        error: Optional[str] = None,
    ):
        """
        Log approval decision (granted or denied).

        Args:
            tool_name: Name of the tool
            arguments: Tool arguments (will be truncated if large)
            session_id: Session identifier
            approved: Whether approval was granted
            request_id: Unique request identifier for traceability
            provider: Name of the approval provider that answered
            error: Error message (if the provider failed)
        """
        event = AuditEvent.APPROVAL_GRANTED if approved else AuditEvent.APPROVAL_DENIED
        log_data: dict[str, Any] = {"tool_name": tool_name, "arguments": arguments}
        if provider is not None:
            log_data["provider"] = provider
        if error is not None:
            log_data["error"] = error
        return self.log(event, session_id=session_id, request_id=request_id, **log_data)

    def log_approval_timeout(
        self,
        tool_name: str,
        arguments: dict[str, Any],
        session_id: str,
        timeout_seconds: float,
        request_id: Optional[str] = None,
    ):
        return self.log(
            AuditEvent.APPROVAL_TIMEOUT,
            session_id=session_id,
            request_id=request_id,
            tool_name=tool_name,
            arguments=arguments,
            timeout_seconds=timeout_seconds,
        )

    def log_intent_selected(self, session_id: str, intent_id: str):
        return self.log(AuditEvent.INTENT_SELECTED, session_id=session_id, intent_id=intent_id)

    def log_intent_cleared(self, session_id: str, intent_id: Optional[str]):
        return self.log(AuditEvent.INTENT_CLEARED, session_id=session_id, intent_id=intent_id)

    def log_session_aborted(self, session_id: str):
        return self.log(AuditEvent.SESSION_ABORTED, session_id=session_id)
