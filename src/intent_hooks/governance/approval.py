"""Approval provider system for human authorization of risky tool calls.

Supports multiple approval mechanisms:
- Host callback (the embedding agent runtime asks its own UI)
- FastMCP ctx.elicit (client-side prompts)
- systemd-ask-password (terminal fallback)
"""

import asyncio
import hashlib
import inspect
import json
import shutil
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

from loguru import logger

from ..audit import AuditLogger
from .classifier import Classification


class ApprovalDecision(str, Enum):
    """User approval decision."""

    APPROVED = "approved"
    DENIED = "denied"
    TIMEOUT = "timeout"
    ERROR = "error"


@dataclass
class ApprovalRequest:
    """Request for user approval of a tool operation.

    Attributes:
        request_id: Unique identifier for this approval request
        tool_name: Name of the tool requiring approval
        message: Human-readable description of the operation
        arguments: Tool arguments being authorized
        tier: Risk tier that triggered the request
        reason: Why the classifier flagged the call
        suggestion: Safer alternative, when one is known
        session_id: Session the call belongs to
        timeout_seconds: How long to wait for user response
        host_context: Opaque handle the provider may need (e.g. FastMCP Context)
    """

    request_id: str
    tool_name: str
    message: str
    arguments: dict[str, Any] = field(default_factory=dict)
    tier: str = "destructive"
    reason: str = ""
    suggestion: Optional[str] = None
    session_id: Optional[str] = None
    timeout_seconds: float = 300
    host_context: Any = None


@dataclass
class ApprovalResponse:
    """User response to approval request."""

    request_id: str
    decision: ApprovalDecision
    timestamp: float = field(default_factory=time.time)
    error_message: Optional[str] = None

    def is_approved(self) -> bool:
        return self.decision == ApprovalDecision.APPROVED


class ApprovalProvider(ABC):
    """Abstract base class for approval providers.

    Approval providers implement different mechanisms for obtaining
    user approval for sensitive operations. All methods are async
    to support network requests, GUI interactions, etc.
    """

    @abstractmethod
    async def request_approval(self, request: ApprovalRequest) -> ApprovalResponse:
        """Request user approval for a tool operation.

        Args:
            request: Approval request details

        Returns:
            User's approval response
        """

    @abstractmethod
    async def is_available(self) -> bool:
        """Check if this approval provider is available."""

    @abstractmethod
    def get_name(self) -> str:
        """Get human-readable name of this provider."""


ApprovalCallback = Callable[
    [ApprovalRequest], Union[bool, ApprovalDecision, Awaitable[Union[bool, ApprovalDecision]]]
]


class CallbackApprovalProvider(ApprovalProvider):
    """Approval provider delegating to a host-supplied callable.

    The callable receives the ApprovalRequest and returns a bool or an
    ApprovalDecision, synchronously or as an awaitable.
    """

    def __init__(self, callback: ApprovalCallback):
        self._callback = callback

    async def is_available(self) -> bool:
        return callable(self._callback)

    async def request_approval(self, request: ApprovalRequest) -> ApprovalResponse:
        answer = self._callback(request)
        if inspect.isawaitable(answer):
            answer = await answer
        if isinstance(answer, ApprovalDecision):
            decision = answer
        else:
            decision = ApprovalDecision.APPROVED if answer is True else ApprovalDecision.DENIED
        return ApprovalResponse(request_id=request.request_id, decision=decision)

    def get_name(self) -> str:
        return "Host Callback"


class FastMCPElicitProvider(ApprovalProvider):
    """Approval provider using FastMCP ctx.elicit() for client-side prompts.

    The context is taken from the request's ``host_context`` when present,
    otherwise from the one given at construction.
    """

    def __init__(self, context: Any = None):
        self._context = context

    def set_context(self, context: Any) -> None:
        self._context = context

    @staticmethod
    def _can_elicit(context: Any) -> bool:
        return context is not None and callable(getattr(context, "elicit", None))

    async def is_available(self) -> bool:
        return self._can_elicit(self._context)

    async def request_approval(self, request: ApprovalRequest) -> ApprovalResponse:
        """Request approval via FastMCP ctx.elicit()."""
        context = request.host_context if self._can_elicit(request.host_context) else self._context
        if not self._can_elicit(context):
            return ApprovalResponse(
                request_id=request.request_id,
                decision=ApprovalDecision.ERROR,
                error_message="FastMCP context not available",
            )

        elicit_message = (
            f"{request.message}\n\n"
            'Respond with "approve" or "deny" (JSON {"decision": "approved"} also accepted).'
        )
        response_payload = await context.elicit(elicit_message)
        return self._parse_approval_payload(request, response_payload)

    def get_name(self) -> str:
        return "FastMCP Elicit"

    @staticmethod
    def _parse_approval_payload(
        request: ApprovalRequest, response_payload: Any
    ) -> ApprovalResponse:
        # Declined or cancelled elicitations carry an action and no data
        action = getattr(response_payload, "action", None)
        if action in {"decline", "cancel"}:
            return ApprovalResponse(request_id=request.request_id, decision=ApprovalDecision.DENIED)

        payload = getattr(response_payload, "data", response_payload)
        decision = FastMCPElicitProvider._parse_decision(
            FastMCPElicitProvider._extract_decision(payload)
        )
        if decision is None:
            return ApprovalResponse(
                request_id=request.request_id,
                decision=ApprovalDecision.ERROR,
                error_message="Invalid approval response format",
            )
        return ApprovalResponse(request_id=request.request_id, decision=decision)

    @staticmethod
    def _extract_decision(payload: Any) -> Any:
        if isinstance(payload, dict):
            lowered = {str(key).lower(): value for key, value in payload.items()}
            return lowered.get("decision", lowered.get("value"))
        if isinstance(payload, str):
            stripped = payload.strip()
            if stripped.startswith("{"):
                try:
                    parsed = json.loads(stripped)
                except json.JSONDecodeError:
                    return stripped
                if isinstance(parsed, dict):
                    return FastMCPElicitProvider._extract_decision(parsed)
            if "=" in stripped:
                key, value = stripped.split("=", 1)
                if key.strip().lower() == "decision":
                    return value.strip()
            return stripped
        return payload

    @staticmethod
    def _parse_decision(raw_value: Any) -> Optional[ApprovalDecision]:
        if raw_value is None:
            return None
        if isinstance(raw_value, bool):
            return ApprovalDecision.APPROVED if raw_value else ApprovalDecision.DENIED
        normalized = str(raw_value).strip().lower()
        if normalized in {"approved", "approve", "yes", "y", "allow"}:
            return ApprovalDecision.APPROVED
        if normalized in {"denied", "deny", "no", "n", "reject"}:
            return ApprovalDecision.DENIED
        return None


class SystemdFallbackProvider(ApprovalProvider):
    """Approval provider using systemd-ask-password for terminal prompts."""

    async def is_available(self) -> bool:
        return shutil.which("systemd-ask-password") is not None

    async def request_approval(self, request: ApprovalRequest) -> ApprovalResponse:
        prompt = (
            f"Approve {request.tool_name}? ({request.reason or request.tier}) (yes/no)"
        )
        proc = await asyncio.create_subprocess_exec(
            "systemd-ask-password",
            "--echo",
            "--timeout",
            str(int(request.timeout_seconds)),
            prompt,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, _ = await proc.communicate()
        response_text = stdout.decode().strip().lower()

        decision = (
            ApprovalDecision.APPROVED
            if response_text in {"yes", "y"}
            else ApprovalDecision.DENIED
        )
        return ApprovalResponse(request_id=request.request_id, decision=decision)

    def get_name(self) -> str:
        return "systemd Fallback"


async def create_provider(
    provider_name: str = "auto",
    context: Any = None,
    callback: Optional[ApprovalCallback] = None,
) -> Optional[ApprovalProvider]:
    """Create approval provider based on configuration.

    Args:
        provider_name: Explicit provider name or "auto" for auto-selection
        context: FastMCP context (for FastMCP elicit provider)
        callback: Host callable (for the callback provider)

    Returns:
        First available approval provider, or None if none is available
    """
    providers: dict[str, ApprovalProvider] = {}
    if callback is not None:
        providers["callback"] = CallbackApprovalProvider(callback)
    providers["fastmcp_elicit"] = FastMCPElicitProvider(context)
    providers["systemd_fallback"] = SystemdFallbackProvider()

    if provider_name != "auto":
        explicit_provider = providers.get(provider_name)
        if explicit_provider is not None and await explicit_provider.is_available():
            logger.info(f"Using explicit approval provider: {explicit_provider.get_name()}")
            return explicit_provider
        logger.warning(f"Requested provider {provider_name} not available, falling back to auto")

    for provider in providers.values():
        if await provider.is_available():
            logger.info(f"Auto-selected approval provider: {provider.get_name()}")
            return provider

    logger.warning("No approval providers available; risky calls will be rejected")
    return None


def generate_request_id(session_id: str, tool_name: str, context_key: str) -> str:
    """
    Generate a readable, unique request id.

    Format: {session_id_hash}_{tool_name}_{context_hash}_{timestamp_ms}
    """
    session_hash = hashlib.sha256(session_id.encode()).hexdigest()[:8]
    context_hash = hashlib.sha256(context_key.encode()).hexdigest()[:8]
    timestamp_ms = int(time.monotonic() * 1000)
    return f"{session_hash}_{tool_name}_{context_hash}_{timestamp_ms}"


def format_approval_request(
    tool_name: str, arguments: dict[str, Any], classification: Classification
) -> str:
    """
    Format approval request in Markdown.

    Args:
        tool_name: Name of the tool
        arguments: Tool arguments
        classification: Classifier verdict that triggered the request

    Returns:
        Formatted approval request
    """
    lines = [
        "# Approval Required",
        "",
        f"**Tool:** `{tool_name}`",
        f"**Risk:** {classification.tier.value} ({classification.reason})",
        "",
        "**Arguments:**",
    ]

    for key, value in arguments.items():
        value_str = str(value)
        if len(value_str) > 200:
            value_str = value_str[:200] + "..."
        lines.append(f"- `{key}`: {value_str}")

    if classification.suggestion:
        lines.extend(["", f"**Safer alternative:** {classification.suggestion}"])

    lines.extend(
        [
            "",
            "**Actions:**",
            "- Type `approve` to execute",
            "- Type `deny` to reject",
        ]
    )
    return "\n".join(lines)


def build_approval_request(
    tool_name: str,
    arguments: dict[str, Any],
    session_id: str,
    classification: Classification,
    timeout_seconds: float,
    host_context: Any = None,
) -> ApprovalRequest:
    """Build an ApprovalRequest with generated id and message."""
    context_key = str(arguments.get("path") or arguments.get("command") or tool_name)[:50]
    return ApprovalRequest(
        request_id=generate_request_id(session_id, tool_name, context_key),
        tool_name=tool_name,
        message=format_approval_request(tool_name, arguments, classification),
        arguments=dict(arguments),
        tier=classification.tier.value,
        reason=classification.reason,
        suggestion=classification.suggestion,
        session_id=session_id,
        timeout_seconds=timeout_seconds,
        host_context=host_context,
    )


class AuthorizationGate:
    """
    Human-in-the-loop gate for risky tool calls.

    The only pipeline step allowed to wait on a human. Every path that is
    not an explicit approval (denial, timeout, provider error, no provider)
    is a rejection.
    """

    def __init__(
        self,
        provider: Optional[ApprovalProvider] = None,
        timeout: float = 300,
        audit: Optional[AuditLogger] = None,
        provider_name: str = "auto",
    ):
        self.provider = provider
        self.timeout = timeout
        self.audit = audit or AuditLogger()
        self.provider_name = provider_name

    async def _resolve_provider(self, host_context: Any) -> Optional[ApprovalProvider]:
        if self.provider is not None:
            return self.provider
        return await create_provider(self.provider_name, context=host_context)

    async def request_authorization(
        self,
        tool_name: str,
        args: dict[str, Any],
        session_id: str,
        classification: Classification,
        host_context: Any = None,
    ) -> bool:
        """
        Ask a human to authorize a tool call.

        Args:
            tool_name: Tool being invoked
            args: Tool arguments
            session_id: Session the call belongs to
            classification: Classifier verdict shown to the human
            host_context: Handle forwarded to the provider (e.g. FastMCP Context)

        Returns:
            True only if the human explicitly approved within the timeout
        """
        request = build_approval_request(
            tool_name, args, session_id, classification, self.timeout, host_context
        )
        self.audit.log_approval_requested(
            tool_name,
            args,
            session_id,
            request.request_id,
            classification.tier.value,
            classification.reason,
        )

        provider = await self._resolve_provider(host_context)
        if provider is None:
            self.audit.log_approval(
                tool_name, args, session_id, False, request.request_id,
                error="no approval provider available",
            )
            return False

        try:
            response = await asyncio.wait_for(
                provider.request_approval(request), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            logger.warning(f"Approval request {request.request_id} timed out after {self.timeout}s")
            self.audit.log_approval_timeout(
                tool_name, args, session_id, self.timeout, request.request_id
            )
            return False
        except Exception as e:
            logger.error(f"{provider.get_name()} approval failed: {e}")
            self.audit.log_approval(
                tool_name, args, session_id, False, request.request_id,
                provider=provider.get_name(), error=str(e),
            )
            return False

        if response.decision == ApprovalDecision.TIMEOUT:
            self.audit.log_approval_timeout(
                tool_name, args, session_id, self.timeout, request.request_id
            )
            return False

        approved = response.is_approved()
        logger.info(
            f"Approval {request.request_id} for {tool_name}: {response.decision.value}"
        )
        self.audit.log_approval(
            tool_name, args, session_id, approved, request.request_id,
            provider=provider.get_name(), error=response.error_message,
        )
        return approved
