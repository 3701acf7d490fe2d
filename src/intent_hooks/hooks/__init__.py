"""Hook registry, interceptor models, and the default gates."""

from .dispatcher import PostHookDispatcher, PostHookFailure
from .gates import (
    ContentLockGate,
    Gate,
    IntentGate,
    ScopeGate,
    SecurityGate,
    build_default_gates,
)
from .models import (
    BlockedReasonCode,
    GatekeeperState,
    HookResult,
    HookStage,
    PostToolUseContext,
    PreToolUseContext,
    Rejection,
)
from .registry import HookRegistry

__all__ = [
    "HookRegistry",
    "PostHookDispatcher",
    "PostHookFailure",
    "HookStage",
    "HookResult",
    "Rejection",
    "BlockedReasonCode",
    "GatekeeperState",
    "PreToolUseContext",
    "PostToolUseContext",
    "Gate",
    "IntentGate",
    "ScopeGate",
    "ContentLockGate",
    "SecurityGate",
    "build_default_gates",
]
