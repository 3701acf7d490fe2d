"""Pytest fixtures and test utilities for the intent_hooks test suite."""

from pathlib import Path
from typing import Any

import pytest

from intent_hooks.audit import AuditLogger
from intent_hooks.engine import Gatekeeper
from intent_hooks.governance.approval import (
    ApprovalRequest,
    AuthorizationGate,
    CallbackApprovalProvider,
)
from intent_hooks.intents import IntentStore
from intent_hooks.trace import TraceLogger

INTENTS_YAML = """\
active_intents:
  - id: INT-001
    name: JWT authentication
    status: in_progress
    owned_scope:
      - "src/auth/**"
    constraints:
      - "Must not use external auth providers"
    acceptance_criteria:
      - "Unit tests in tests/auth/ pass"
    related_specs:
      - SPEC-AUTH-1
  - id: INT-002
    name: User persistence
    status: draft
    owned_scope:
      - "src/db/*.go"
      - "migrations/**"
    dependencies:
      - INT-001
"""


# ============================================================================
# WORKSPACE FIXTURES
# ============================================================================


def write_intents(workspace: Path, text: str) -> Path:
    """Write the intent document under ``workspace`` and return its path."""
    path = workspace / ".orchestration" / "active_intents.yaml"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


@pytest.fixture
def workspace(tmp_path) -> Path:
    """
    Temporary workspace with an intent document declaring INT-001 and INT-002.

    INT-001 owns src/auth/**; INT-002 owns src/db/*.go and migrations/**.
    """
    write_intents(tmp_path, INTENTS_YAML)
    return tmp_path


@pytest.fixture
def rewrite_intents(workspace):
    """Replace the workspace's intent document with new YAML text."""

    def rewrite(text: str) -> Path:
        return write_intents(workspace, text)

    return rewrite


@pytest.fixture
def intents_path(workspace) -> Path:
    return workspace / ".orchestration" / "active_intents.yaml"


@pytest.fixture
def trace_path(workspace) -> Path:
    return workspace / ".orchestration" / "agent_trace.jsonl"


@pytest.fixture
def audit_path(workspace) -> Path:
    return workspace / ".orchestration" / "governance_audit.jsonl"


# ============================================================================
# GOVERNANCE FIXTURES
# ============================================================================


class RecordingApprover:
    """Approval callback that answers with ``answer`` and records each request."""

    def __init__(self, answer: bool = False):
        self.answer = answer
        self.requests: list[ApprovalRequest] = []

    def __call__(self, request: ApprovalRequest) -> Any:
        self.requests.append(request)
        return self.answer


@pytest.fixture
def approver() -> RecordingApprover:
    """Approver that rejects by default; set ``approver.answer = True`` to approve."""
    return RecordingApprover(answer=False)


@pytest.fixture
def audit_logger(audit_path) -> AuditLogger:
    return AuditLogger(audit_path)


@pytest.fixture
async def gatekeeper(workspace, intents_path, trace_path, audit_logger, approver):
    """
    Gatekeeper wired with the default gates, a callback approver, and a
    trace logger writing into the temporary workspace.

    Cleanup:
        Drains and stops the post-hook worker
    """
    store = IntentStore(intents_path)
    authorization = AuthorizationGate(
        provider=CallbackApprovalProvider(approver),
        timeout=2,
        audit=audit_logger,
    )
    trace_logger = TraceLogger(
        trace_path,
        workspace_root=workspace,
        model_id="test-model",
        intent_store=store,
    )
    gk = Gatekeeper(
        intent_store=store,
        authorization=authorization,
        trace_logger=trace_logger,
        audit=audit_logger,
        workspace_root=workspace,
        model_id="test-model",
    )
    yield gk
    await gk.aclose()
