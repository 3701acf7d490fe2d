"""The gatekeeper: intent-aware governance around every tool call."""

import inspect
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterable, Optional, Union

from loguru import logger

from .audit import AuditLogger
from .config import Config
from .governance.approval import (
    ApprovalCallback,
    ApprovalProvider,
    AuthorizationGate,
    CallbackApprovalProvider,
)
from .governance.classifier import Classification
from .hooks.gates import CLASSIFICATION_STATE_KEY, build_default_gates
from .hooks.models import (
    BlockedReasonCode,
    GatekeeperState,
    HookResult,
    PostToolUseContext,
    PreToolUseContext,
    Rejection,
)
from .hooks.registry import HookRegistry
from .intents import Intent, IntentStore, format_as_context, format_selection_summary, normalize_path
from .session import SessionStore
from .tools import SELECT_INTENT_TOOL, ToolKind, executor_arguments, target_path, tool_kind
from .trace.logger import TraceLogger

Executor = Callable[[dict[str, Any]], Union[Any, Awaitable[Any]]]


@dataclass
class GateDecision:
    """
    Verdict of the pre-tool pipeline for one call.

    ``to_dict()`` is the tool-call contract handed back to the host:
    ``{continue: true, arguments, context}`` or
    ``{continue: false, error, reason, suggestion, blocked_reason_code, timestamp}``.
    """

    allowed: bool
    tool_name: str
    arguments: dict[str, Any]
    context: Optional[str] = None
    rejection: Optional[Rejection] = None
    classification: Optional[Classification] = None
    intent_id: Optional[str] = None
    previous_content: Optional[str] = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        if not self.allowed:
            return {"continue": False, **(self.rejection.to_dict() if self.rejection else {})}
        return {"continue": True, "arguments": self.arguments, "context": self.context}


@dataclass
class SelectionResult:
    """Outcome of the select_active_intent operation."""

    success: bool
    intent: Optional[Intent] = None
    context: Optional[str] = None
    summary: Optional[str] = None
    rejection: Optional[Rejection] = None

    def to_dict(self) -> dict[str, Any]:
        if not self.success:
            return self.rejection.to_dict() if self.rejection else {"error": "BLOCKED"}
        return {
            "success": True,
            "intent_id": self.intent.id if self.intent else None,
            "summary": self.summary,
            "context": self.context,
        }


@dataclass
class ToolOutcome:
    """Result of ``Gatekeeper.invoke``: the decision plus what the executor did."""

    decision: GateDecision
    result: Any = None
    error: Optional[BaseException] = None

    @property
    def executed(self) -> bool:
        return self.decision.allowed

    @property
    def success(self) -> bool:
        return self.decision.allowed and self.error is None

    def to_dict(self) -> dict[str, Any]:
        if not self.decision.allowed:
            return self.decision.to_dict()
        if self.error is not None:
            return {"continue": True, "success": False, "error": str(self.error)}
        return {
            "continue": True,
            "success": True,
            "result": self.result,
            "context": self.decision.context,
        }


class Gatekeeper:
    """
    Runs the governance pipeline around tool calls.

    Owns its HookRegistry, SessionStore and trace logger; nothing is
    shared through module globals. With ``install_default_hooks`` the
    registry gets the intent, scope, content lock and security gates as
    pre-hooks and the trace logger as post-hook.

    Nothing raises out of ``before_tool_call``/``after_tool_call``: the worst
    outcome of a fault is a blocked call or a missing trace record.
    """

    def __init__(
        self,
        intent_store: IntentStore,
        registry: Optional[HookRegistry] = None,
        sessions: Optional[SessionStore] = None,
        authorization: Optional[AuthorizationGate] = None,
        trace_logger: Optional[TraceLogger] = None,
        audit: Optional[AuditLogger] = None,
        workspace_root: Union[str, Path] = ".",
        model_id: Optional[str] = None,
        authorize_tiers: Iterable[str] = ("destructive",),
        enable_content_lock: bool = True,
        install_default_hooks: bool = True,
    ):
        self.intent_store = intent_store
        self.registry = registry or HookRegistry()
        self.sessions = sessions or SessionStore()
        self.audit = audit or AuditLogger()
        self.authorization = authorization
        self.trace_logger = trace_logger
        self.workspace_root = Path(workspace_root)
        self.model_id = model_id

        if install_default_hooks:
            for gate in build_default_gates(
                intent_store, authorization, authorize_tiers, enable_content_lock
            ):
                self.registry.register_pre(gate)
            if trace_logger is not None:
                self.registry.register_post(trace_logger)

    @classmethod
    def from_config(
        cls,
        approval_callback: Optional[ApprovalCallback] = None,
        provider: Optional[ApprovalProvider] = None,
    ) -> "Gatekeeper":
        """
        Build a gatekeeper from ``Config``.

        Args:
            approval_callback: Host callable used as the approval provider
            provider: Explicit approval provider (takes precedence)

        Raises:
            ValueError: If the configuration is invalid
        """
        Config.validate()
        workspace_root = Path(Config.WORKSPACE_ROOT).expanduser().resolve()
        store = IntentStore(Config.intents_path())
        audit = AuditLogger(Config.audit_log_path())

        if provider is None and approval_callback is not None:
            provider = CallbackApprovalProvider(approval_callback)
        authorization = AuthorizationGate(
            provider=provider,
            timeout=Config.AUTHORIZATION_TIMEOUT,
            audit=audit,
            provider_name=Config.APPROVAL_PROVIDER,
        )
        trace_logger = TraceLogger(
            Config.trace_log_path(),
            workspace_root=workspace_root,
            model_id=Config.MODEL_ID,
            intent_store=store,
            enabled=Config.ENABLE_TRACE_LOGGING,
        )

        logger.info(
            f"Gatekeeper configured for {workspace_root} "
            f"(intents={store.path}, trace={trace_logger.path})"
        )
        return cls(
            intent_store=store,
            authorization=authorization,
            trace_logger=trace_logger,
            audit=audit,
            workspace_root=workspace_root,
            model_id=Config.MODEL_ID,
            authorize_tiers=Config.AUTHORIZE_TIERS,
            enable_content_lock=Config.ENABLE_CONTENT_LOCK,
        )

    # ------------------------------------------------------------------
    # Intent selection
    # ------------------------------------------------------------------

    def _reject_selection(
        self, session_id: str, intent_id: str, rejection: Rejection
    ) -> SelectionResult:
        logger.info(f"Intent selection rejected in session {session_id}: {rejection.reason}")
        self.audit.log_blocked(
            SELECT_INTENT_TOOL,
            {"intent_id": intent_id},
            session_id,
            rejection.code.value,
            rejection.reason,
        )
        return SelectionResult(success=False, rejection=rejection)

    def select_intent(self, session_id: str, intent_id: Optional[str]) -> SelectionResult:
        """
        Activate an intent for a session.

        Rejects absent ids (listing the available ones) and blocked intents.
        On success the id is stored in the session and the rendered
        ``<intent_context>`` block is returned.
        """
        intent_id = str(intent_id or "").strip()
        intents = self.intent_store.load()
        available = [intent.id for intent in intents]
        intent = next((i for i in intents if i.id == intent_id), None)

        if intent is None:
            listing = ", ".join(available) if available else "none"
            return self._reject_selection(
                session_id,
                intent_id,
                Rejection(
                    reason=f"Intent '{intent_id}' not found. Available intents: {listing}",
                    code=BlockedReasonCode.INTENT_NOT_FOUND,
                    suggestion=(
                        f"Call {SELECT_INTENT_TOOL} with one of: {listing}."
                        if available
                        else "No intents are declared; ask the user to add one to the intent document."
                    ),
                    details={"available_intents": available},
                ),
            )

        if intent.is_blocked:
            selectable = [i.id for i in intents if not i.is_blocked]
            return self._reject_selection(
                session_id,
                intent_id,
                Rejection(
                    reason=(
                        f"Intent '{intent.id}' is blocked: "
                        f"{intent.blocked_reason or 'no reason given'}"
                    ),
                    code=BlockedReasonCode.INTENT_BLOCKED,
                    suggestion=(
                        f"Select another intent ({', '.join(selectable)}) "
                        "or ask the user to resolve the blocker."
                        if selectable
                        else "Ask the user to resolve the blocker."
                    ),
                    details={"blocked_reason": intent.blocked_reason, "available_intents": available},
                ),
            )

        self.sessions.set_intent(session_id, intent.id)
        self.audit.log_intent_selected(session_id, intent.id)
        logger.info(f"Session {session_id} selected intent {intent.id}")
        return SelectionResult(
            success=True,
            intent=intent,
            context=format_as_context(intent),
            summary=format_selection_summary(intent),
        )

    def clear_intent(self, session_id: str) -> Optional[str]:
        """Deactivate the session's intent; returns the id that was active."""
        previous = self.sessions.clear_intent(session_id)
        if previous:
            self.audit.log_intent_cleared(session_id, previous)
            logger.info(f"Session {session_id} cleared intent {previous}")
        return previous

    # ------------------------------------------------------------------
    # Session control
    # ------------------------------------------------------------------

    def abort(self, session_id: str) -> None:
        """Abort a session: pending authorizations fail and no trace is written."""
        self.sessions.abort(session_id)
        self.audit.log_session_aborted(session_id)

    def state(self, session_id: str) -> GatekeeperState:
        return self.sessions.get(session_id).phase

    # ------------------------------------------------------------------
    # Tool-call pipeline
    # ------------------------------------------------------------------

    def _previous_content(self, tool_name: str, arguments: dict[str, Any]) -> Optional[str]:
        if tool_kind(tool_name) != ToolKind.WRITE:
            return None
        path = target_path(arguments)
        relative = normalize_path(path, self.workspace_root) if path else None
        if relative is None:
            return None
        file_path = self.workspace_root / relative
        try:
            return file_path.read_text(encoding="utf-8") if file_path.is_file() else ""
        except (OSError, UnicodeDecodeError) as e:
            logger.debug(f"Could not snapshot {file_path}: {e}")
            return None

    def _blocked(
        self, session_id: str, tool_name: str, arguments: dict[str, Any], result: HookResult
    ) -> GateDecision:
        rejection = result.to_rejection()
        session = self.sessions.get(session_id)
        self.sessions.set_phase(session_id, GatekeeperState.BLOCKED)
        logger.info(
            f"Blocked {tool_name} in session {session_id} "
            f"[{rejection.code.value}]: {rejection.reason}"
        )
        self.audit.log_blocked(tool_name, arguments, session_id, rejection.code.value, rejection.reason)
        # BLOCKED ends the call, not the session
        self.sessions.set_phase(session_id, session.resting_state)
        return GateDecision(
            allowed=False,
            tool_name=tool_name,
            arguments=arguments,
            context=result.context_to_inject,
            rejection=rejection,
            intent_id=session.active_intent_id,
        )

    async def before_tool_call(
        self,
        session_id: str,
        tool_name: str,
        arguments: Optional[dict[str, Any]] = None,
        host_context: Any = None,
    ) -> GateDecision:
        """
        Run the pre-tool pipeline for one call.

        Args:
            session_id: Session issuing the call
            tool_name: Tool being invoked
            arguments: Tool arguments
            host_context: Handle forwarded to approval providers

        Returns:
            GateDecision with the (possibly overlaid) arguments, or a rejection
        """
        arguments = dict(arguments or {})
        session = self.sessions.get(session_id)

        if session.aborted:
            return self._blocked(
                session_id,
                tool_name,
                arguments,
                HookResult.block(
                    reason=f"Session {session_id} was aborted",
                    code=BlockedReasonCode.SESSION_ABORTED,
                    suggestion="Stop and wait for the user before issuing further tool calls.",
                ),
            )

        self.sessions.set_phase(session_id, GatekeeperState.PRE_VALIDATING)
        context = PreToolUseContext(
            session_id=session_id,
            tool_name=tool_name,
            arguments=arguments,
            workspace_root=str(self.workspace_root),
            active_intent_id=session.active_intent_id,
            abort_event=session.abort_event,
            host_context=host_context,
        )

        try:
            result = await self.registry.run_pre(context)
        except Exception as e:
            logger.error(f"Pre-tool pipeline failed for {tool_name}: {e}")
            result = HookResult.block(
                reason=f"Internal governance error: {e}",
                code=BlockedReasonCode.HOOK_FAILURE,
                suggestion="Retry the call; if it keeps failing, ask the user to inspect the governance logs.",
            )

        if not result.should_continue:
            return self._blocked(session_id, tool_name, arguments, result)

        self.sessions.set_phase(session_id, GatekeeperState.EXECUTING)
        return GateDecision(
            allowed=True,
            tool_name=tool_name,
            arguments=context.arguments,
            context=result.context_to_inject,
            classification=context.state.get(CLASSIFICATION_STATE_KEY),
            intent_id=session.active_intent_id,
            previous_content=self._previous_content(tool_name, context.arguments),
            started_at=context.timestamp,
        )

    def after_tool_call(
        self,
        session_id: str,
        tool_name: str,
        arguments: dict[str, Any],
        result: Any = None,
        error: Optional[BaseException] = None,
        decision: Optional[GateDecision] = None,
    ) -> bool:
        """
        Schedule post-tool hooks for a completed call and return immediately.

        Returns:
            True if post-tool hooks were scheduled
        """
        finished_at = datetime.now(timezone.utc)
        session = self.sessions.get(session_id)
        self.sessions.set_phase(session_id, GatekeeperState.POST_LOGGING)
        try:
            context = PostToolUseContext(
                session_id=session_id,
                tool_name=tool_name,
                arguments=dict(arguments),
                result=result,
                success=error is None,
                error=error,
                workspace_root=str(self.workspace_root),
                active_intent_id=decision.intent_id if decision else session.active_intent_id,
                model_id=session.metadata.get("model_id") or self.model_id,
                previous_content=decision.previous_content if decision else None,
                abort_event=session.abort_event,
                finished_at=finished_at,
            )
            if decision is not None:
                context.started_at = decision.started_at
            return self.registry.run_post(context)
        except Exception as e:
            logger.error(f"Failed to schedule post-tool hooks for {tool_name}: {e}")
            return False
        finally:
            self.sessions.set_phase(session_id, session.resting_state)

    async def invoke(
        self,
        session_id: str,
        tool_name: str,
        arguments: Optional[dict[str, Any]],
        executor: Executor,
        host_context: Any = None,
    ) -> ToolOutcome:
        """
        Run the whole flow for one call: pre-hooks, executor, post-hooks.

        ``select_active_intent`` is handled here and never reaches the
        executor. Executor exceptions are captured in the outcome.
        """
        arguments = dict(arguments or {})

        if tool_kind(tool_name) == ToolKind.SELECT_INTENT:
            selection = self.select_intent(session_id, arguments.get("intent_id"))
            decision = GateDecision(
                allowed=selection.success,
                tool_name=tool_name,
                arguments=arguments,
                context=selection.context,
                rejection=selection.rejection,
                intent_id=selection.intent.id if selection.intent else None,
            )
            return ToolOutcome(decision=decision, result=selection.to_dict())

        decision = await self.before_tool_call(session_id, tool_name, arguments, host_context)
        if not decision.allowed:
            return ToolOutcome(decision=decision)

        result = None
        error = None
        try:
            result = executor(executor_arguments(decision.arguments))
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            logger.warning(f"Tool {tool_name} failed in session {session_id}: {e}")
            error = e

        self.after_tool_call(
            session_id, tool_name, decision.arguments, result=result, error=error, decision=decision
        )
        return ToolOutcome(decision=decision, result=result, error=error)

    async def drain(self) -> None:
        """Wait for scheduled post-tool hooks to finish."""
        await self.registry.drain()

    async def aclose(self) -> None:
        await self.registry.aclose()
