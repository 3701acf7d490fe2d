"""Risk classification and human authorization."""

from .approval import (
    ApprovalDecision,
    ApprovalProvider,
    ApprovalRequest,
    ApprovalResponse,
    AuthorizationGate,
    CallbackApprovalProvider,
    FastMCPElicitProvider,
    SystemdFallbackProvider,
    build_approval_request,
    create_provider,
    format_approval_request,
)
from .classifier import (
    Classification,
    RiskTier,
    classify,
    explain_risk,
    is_dangerous_command,
    is_path_outside_workspace,
    is_sensitive_file,
    suggest_safer_alternative,
)

__all__ = [
    "ApprovalDecision",
    "ApprovalProvider",
    "ApprovalRequest",
    "ApprovalResponse",
    "AuthorizationGate",
    "CallbackApprovalProvider",
    "FastMCPElicitProvider",
    "SystemdFallbackProvider",
    "build_approval_request",
    "create_provider",
    "format_approval_request",
    "Classification",
    "RiskTier",
    "classify",
    "explain_risk",
    "is_dangerous_command",
    "is_path_outside_workspace",
    "is_sensitive_file",
    "suggest_safer_alternative",
]
