"""
Intent Hooks - intent-aware governance for autonomous coding agents.

Agents declare an intent before mutating the workspace; every write is
checked against the intent's owned scope, risky operations wait for a
human, and each change lands in a content-addressed trace log.
"""

__version__ = "0.1.0"

from .engine import GateDecision, Gatekeeper, SelectionResult, ToolOutcome
from .hooks import BlockedReasonCode, GatekeeperState, HookRegistry, HookResult, Rejection
from .intents import Intent, IntentStatus, IntentStore, validate_scope
from .session import SessionStore
from .tools import ToolKind
from .trace import TraceLogger, TraceRecord, compute_content_hash

__all__ = [
    "__version__",
    "Gatekeeper",
    "GateDecision",
    "SelectionResult",
    "ToolOutcome",
    "HookRegistry",
    "HookResult",
    "Rejection",
    "BlockedReasonCode",
    "GatekeeperState",
    "Intent",
    "IntentStatus",
    "IntentStore",
    "validate_scope",
    "SessionStore",
    "ToolKind",
    "TraceLogger",
    "TraceRecord",
    "compute_content_hash",
]
