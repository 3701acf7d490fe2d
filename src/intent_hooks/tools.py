"""Tool kinds recognized by the gatekeeper."""

from enum import Enum
from typing import Any, Optional


class ToolKind(str, Enum):
    """Closed set of tool capabilities the pipeline reasons about."""

    READ = "read"
    WRITE = "write"
    EXECUTE = "execute"
    SELECT_INTENT = "select_intent"
    UNKNOWN = "unknown"

    @property
    def is_mutating(self) -> bool:
        return self in (ToolKind.WRITE, ToolKind.EXECUTE)


SELECT_INTENT_TOOL = "select_active_intent"

TOOL_KINDS: dict[str, ToolKind] = {
    # Read-only
    "read_file": ToolKind.READ,
    "list_files": ToolKind.READ,
    "list_directory": ToolKind.READ,
    "search_files": ToolKind.READ,
    "codebase_search": ToolKind.READ,
    "list_code_definition_names": ToolKind.READ,
    "ask_followup_question": ToolKind.READ,
    "attempt_completion": ToolKind.READ,
    "fetch_instructions": ToolKind.READ,
    # File mutation
    "write_to_file": ToolKind.WRITE,
    "write_file": ToolKind.WRITE,
    "edit": ToolKind.WRITE,
    "edit_file": ToolKind.WRITE,
    "apply_diff": ToolKind.WRITE,
    "apply_patch": ToolKind.WRITE,
    "insert_content": ToolKind.WRITE,
    "search_and_replace": ToolKind.WRITE,
    "search_replace": ToolKind.WRITE,
    "delete_file": ToolKind.WRITE,
    # Command execution
    "execute_command": ToolKind.EXECUTE,
    "run_command": ToolKind.EXECUTE,
    # Intent protocol
    SELECT_INTENT_TOOL: ToolKind.SELECT_INTENT,
}

# Argument names that may carry the target path of a write
PATH_ARGUMENTS = ("path", "file_path", "file", "target_file")

# Argument names that may carry a shell command
COMMAND_ARGUMENTS = ("command", "cmd")

# Governance-only arguments, consumed by the hooks and never forwarded to the executor
CONTROL_ARGUMENTS = ("expected_content_hash", "mutation_class")


def tool_kind(tool_name: str) -> ToolKind:
    """Map a tool name onto its kind; unknown names map to UNKNOWN."""
    return TOOL_KINDS.get(tool_name, ToolKind.UNKNOWN)


def target_path(arguments: dict[str, Any]) -> Optional[str]:
    """Extract the file path a write targets, if any."""
    for key in PATH_ARGUMENTS:
        value = arguments.get(key)
        if value:
            return str(value)
    return None


def command_text(arguments: dict[str, Any]) -> str:
    """Extract the command string an execute call carries."""
    for key in COMMAND_ARGUMENTS:
        value = arguments.get(key)
        if value:
            return str(value)
    return ""


def executor_arguments(arguments: dict[str, Any]) -> dict[str, Any]:
    """Copy of ``arguments`` without the governance-only keys."""
    return {k: v for k, v in arguments.items() if k not in CONTROL_ARGUMENTS}
