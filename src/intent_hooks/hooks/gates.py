"""Pre-tool gates that make up the default governance pipeline."""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, Optional

from loguru import logger

from ..governance.approval import AuthorizationGate
from ..governance.classifier import Classification, classify, explain_risk
from ..intents import IntentStore, matching_pattern, normalize_path
from ..tools import SELECT_INTENT_TOOL, ToolKind, target_path
from ..trace.hashing import hash_file
from .models import BlockedReasonCode, HookResult, PreToolUseContext

# Keys gates use to hand data to later gates through ``PreToolUseContext.state``
INTENT_STATE_KEY = "intent"
CLASSIFICATION_STATE_KEY = "classification"


class Gate(ABC):
    """
    Abstract base class for pipeline gates.

    A gate is a pre-tool hook: calling it runs ``check``.
    """

    gate_type: str

    @abstractmethod
    async def check(self, ctx: PreToolUseContext) -> HookResult:
        """
        Check if the call passes the gate.

        Args:
            ctx: Pre-tool context for the call

        Returns:
            HookResult.allow() to continue, HookResult.block(...) to stop
        """

    async def __call__(self, ctx: PreToolUseContext) -> HookResult:
        return await self.check(ctx)

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class IntentGate(Gate):
    """
    Requires an active, loadable, unblocked intent for mutating tools.

    The intent document is re-read on every call so an intent blocked after
    selection stops further writes.
    """

    gate_type = "intent"

    def __init__(self, store: IntentStore):
        self.store = store

    def _selection_hint(self) -> str:
        available = self.store.available_ids()
        hint = f"Call {SELECT_INTENT_TOOL} with one of the available intent ids"
        if available:
            return f"{hint}: {', '.join(available)}."
        return f"{hint}. No intents are declared yet; ask the user to add one."

    async def check(self, ctx: PreToolUseContext) -> HookResult:
        if not ctx.kind.is_mutating:
            return HookResult.allow()

        if not ctx.active_intent_id:
            logger.info(f"Blocked {ctx.tool_name} in session {ctx.session_id}: no active intent")
            return HookResult.block(
                reason=f"'{ctx.tool_name}' modifies the workspace but no intent is active",
                code=BlockedReasonCode.NO_INTENT,
                suggestion=self._selection_hint(),
            )

        intent = self.store.find_by_id(ctx.active_intent_id)
        if intent is None:
            return HookResult.block(
                reason=f"Active intent '{ctx.active_intent_id}' no longer exists",
                code=BlockedReasonCode.INTENT_NOT_FOUND,
                suggestion=self._selection_hint(),
                available_intents=self.store.available_ids(),
            )
        if intent.is_blocked:
            return HookResult.block(
                reason=f"Intent '{intent.id}' is blocked: {intent.blocked_reason or 'no reason given'}",
                code=BlockedReasonCode.INTENT_BLOCKED,
                suggestion="Resolve the blocker or select a different intent.",
                blocked_reason=intent.blocked_reason,
            )

        ctx.state[INTENT_STATE_KEY] = intent
        return HookResult.allow()


class ScopeGate(Gate):
    """Blocks writes whose target path falls outside the intent's owned_scope."""

    gate_type = "scope"

    async def check(self, ctx: PreToolUseContext) -> HookResult:
        if ctx.kind != ToolKind.WRITE:
            return HookResult.allow()

        intent = ctx.state.get(INTENT_STATE_KEY)
        if intent is None:
            # Only reachable when the gate runs without IntentGate in front of it
            return HookResult.block(
                reason="Scope check requires a resolved intent",
                code=BlockedReasonCode.NO_INTENT,
                suggestion=f"Call {SELECT_INTENT_TOOL} before modifying files.",
            )

        path = target_path(ctx.arguments)
        scope = ", ".join(intent.owned_scope) or "(empty)"
        if not path:
            return HookResult.block(
                reason=f"'{ctx.tool_name}' call has no target path to check against the scope",
                code=BlockedReasonCode.SCOPE_VIOLATION,
                suggestion="Pass the target file as the 'path' argument.",
                allowed_scope=list(intent.owned_scope),
            )

        if matching_pattern(path, intent, ctx.workspace_root) is None:
            logger.info(
                f"Scope violation in session {ctx.session_id}: {path} not in {intent.id} ({scope})"
            )
            return HookResult.block(
                reason=f"Path '{path}' is outside the owned scope of intent {intent.id}",
                code=BlockedReasonCode.SCOPE_VIOLATION,
                suggestion=(
                    f"Only modify files matching: {scope}. If this file must change, ask "
                    "the user to widen the intent's owned_scope or select another intent."
                ),
                path=path,
                allowed_scope=list(intent.owned_scope),
            )
        return HookResult.allow()


class ContentLockGate(Gate):
    """
    Optimistic concurrency check for writes.

    A write carrying ``expected_content_hash`` proceeds only if the file on
    disk still hashes to that value. Writes without it are not checked.
    """

    gate_type = "content_lock"

    async def check(self, ctx: PreToolUseContext) -> HookResult:
        expected = ctx.arguments.get("expected_content_hash")
        if ctx.kind != ToolKind.WRITE or not expected:
            return HookResult.allow()

        path = target_path(ctx.arguments)
        relative = normalize_path(path, ctx.workspace_root) if path else None
        actual = hash_file(Path(ctx.workspace_root) / relative) if relative else None
        if actual == str(expected).strip().lower():
            return HookResult.allow()

        return HookResult.block(
            reason=(
                f"'{path}' changed since it was read"
                if actual
                else f"'{path}' does not exist, so it cannot match the expected hash"
            ),
            code=BlockedReasonCode.STALE_CONTENT,
            suggestion="Read the file again and reapply the change to its current content.",
            expected_content_hash=str(expected),
            actual_content_hash=actual,
        )


class SecurityGate(Gate):
    """
    Classifies the call and, for tiers that require it, asks a human.

    The classification is left in ``ctx.state`` for later hooks.
    """

    gate_type = "security"

    def __init__(
        self,
        authorization: Optional[AuthorizationGate],
        authorize_tiers: Iterable[str] = ("destructive",),
    ):
        self.authorization = authorization
        self.authorize_tiers = frozenset(authorize_tiers)

    @staticmethod
    def _aborted(ctx: PreToolUseContext) -> HookResult:
        return HookResult.block(
            reason=f"Session {ctx.session_id} was aborted",
            code=BlockedReasonCode.SESSION_ABORTED,
            suggestion="Stop and wait for the user before issuing further tool calls.",
        )

    def _rejected(self, classification: Classification) -> HookResult:
        return HookResult.block(
            reason=f"Authorization rejected: {explain_risk(classification)}",
            code=BlockedReasonCode.HITL_REJECTED,
            suggestion=classification.suggestion
            or "Choose a less risky approach or ask the user how to proceed.",
            tier=classification.tier.value,
            matched_rule=classification.matched_rule,
        )

    async def check(self, ctx: PreToolUseContext) -> HookResult:
        classification = classify(ctx.tool_name, ctx.arguments, ctx.workspace_root)
        ctx.state[CLASSIFICATION_STATE_KEY] = classification

        if classification.tier.value not in self.authorize_tiers:
            return HookResult.allow()

        if ctx.aborted:
            return self._aborted(ctx)

        if self.authorization is None:
            logger.warning(f"No authorization gate configured, rejecting {ctx.tool_name}")
            return self._rejected(classification)

        logger.info(
            f"Requesting authorization for {ctx.tool_name} ({classification.tier.value}): "
            f"{classification.reason}"
        )
        approved = await self.authorization.request_authorization(
            ctx.tool_name,
            ctx.arguments,
            ctx.session_id,
            classification,
            host_context=ctx.host_context,
        )
        if ctx.aborted:
            return self._aborted(ctx)
        if not approved:
            return self._rejected(classification)
        return HookResult.allow()


def build_default_gates(
    store: IntentStore,
    authorization: Optional[AuthorizationGate],
    authorize_tiers: Iterable[str] = ("destructive",),
    enable_content_lock: bool = True,
) -> list[Gate]:
    """Gates in pipeline order: intent, scope, [content lock], security."""
    gates: list[Gate] = [IntentGate(store), ScopeGate()]
    if enable_content_lock:
        gates.append(ContentLockGate())
    gates.append(SecurityGate(authorization, authorize_tiers))
    return gates
