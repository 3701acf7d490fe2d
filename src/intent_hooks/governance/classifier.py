"""Risk classification for tool calls."""

import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Union

from ..tools import ToolKind, command_text, target_path, tool_kind


class RiskTier(str, Enum):
    """Risk tier assigned to a tool call."""

    SAFE = "safe"
    REVIEW = "review"
    DESTRUCTIVE = "destructive"


@dataclass(frozen=True)
class DangerousPattern:
    """A curated shell pattern that marks a command destructive."""

    name: str
    pattern: re.Pattern
    reason: str
    suggestion: str


def _rule(name: str, regex: str, reason: str, suggestion: str) -> DangerousPattern:
    return DangerousPattern(name, re.compile(regex, re.IGNORECASE), reason, suggestion)


# A command word counts wherever it starts a word, so wrappers such as
# `bash -c "..."`, `find -exec`, `nohup` and `/bin/rm` are still caught.
# "git rm" only touches tracked files and is excluded.
_RM = r"(?<!git\s)(?<![\w.-])rm\s+"
_ELEVATE = r"(?<![\w.-])(?:sudo|doas|pkexec|runas)\b"

DANGEROUS_PATTERNS: tuple[DangerousPattern, ...] = (
    _rule(
        "recursive_delete",
        _RM + r"(?:-[a-z]*\s+)*-[a-z]*[rR][a-z]*\b|" + _RM + r"--recursive\b",
        "Recursive delete",
        "Delete specific files by name instead of recursively removing directories.",
    ),
    _rule(
        "recursive_delete_windows",
        r"\bRemove-Item\b[^;|&]*-Recurse\b|\brmdir\s+/s\b|\bdel\s+/s\b|\brd\s+/s\b",
        "Recursive delete",
        "Delete specific files by name instead of recursively removing directories.",
    ),
    _rule(
        "interpreter_delete",
        r"(?:shutil\.rmtree|os\.remove|os\.unlink|fs\.rmSync|rmdirSync|FileUtils\.rm_r)",
        "Scripted file deletion",
        "Delete specific files through the file tools so the change is traced.",
    ),
    _rule(
        "force_push",
        r"\bgit\s+push\b[^;|&\n]*(?:--force(?!-with-lease)\b|\s-f\b|\s\+\S+)",
        "Forced history rewrite (force push)",
        "Use `git push --force-with-lease` or push to a new branch.",
    ),
    _rule(
        "hard_reset",
        r"\bgit\s+reset\b[^;|&\n]*--hard\b",
        "Forced history rewrite (hard reset)",
        "Use `git stash` or `git reset --soft` to keep local changes recoverable.",
    ),
    _rule(
        "history_rewrite",
        r"\bgit\s+(?:filter-branch|filter-repo)\b|\bgit\s+clean\b[^;|&\n]*-[a-z]*f|"
        r"\bgit\s+branch\b[^;|&\n]*\s-D\b",
        "Forced history rewrite",
        "Create a backup branch before rewriting history.",
    ),
    _rule(
        "permission_escalation",
        r"\bchmod\b[^;|&\n]*(?:\b0?777\b|\ba\+rwx\b|\+s\b)|\bchmod\s+-R\b|\bchown\s+-R\b",
        "Permission escalation",
        "Grant the narrowest permissions needed, e.g. `chmod 755` or `chmod 644` on a single file.",
    ),
    _rule(
        "remote_pipe_to_shell",
        r"\b(?:curl|wget|iwr|Invoke-WebRequest)\b[^;&\n]*\|\s*(?:sudo\s+)?(?:ba|z|da|k)?sh\b|"
        r"\b(?:curl|wget)\b[^;&\n]*\|\s*(?:python[0-9.]*|perl|ruby|node|iex)\b|"
        r"(?:ba|z)?sh\s+<\(\s*(?:curl|wget)\b",
        "Piping remote content into a shell",
        "Download the script first, review it, then run it explicitly.",
    ),
    _rule(
        "privilege_elevation",
        _ELEVATE + r"|(?:^|[;&|(`'\x22]\s*)su(?:\s+-|\s+root\b|\s*$)",
        "Privilege elevation",
        "Run the command without elevated privileges or ask the user to run it.",
    ),
    _rule(
        "destructive_sql",
        r"\bdrop\s+(?:table|database|schema|index|view)\b|\btruncate\s+(?:table\s+)?\w+|"
        r"\bdelete\s+from\s+[\w.\"`\[\]]+\s*(?:;|$|\"|')",
        "Destructive database statement",
        "Back up the data first and use a scoped `DELETE ... WHERE` statement.",
    ),
    _rule(
        "disk_overwrite",
        r"\bdd\s+[^;|&\n]*\bif=/dev/(?:zero|random|urandom)\b|\bmkfs(?:\.\w+)?\b|>\s*/dev/sd[a-z]\b",
        "Raw disk overwrite",
        "Write to a regular file instead of a device.",
    ),
    _rule(
        "fork_bomb",
        r":\(\)\s*\{\s*:\s*\|\s*:\s*&\s*\}\s*;\s*:",
        "Fork bomb",
        "Do not run this command.",
    ),
)

SENSITIVE_FILE_PATTERNS: tuple[re.Pattern, ...] = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"(?:^|/)\.env(?:\.[^/]*)?$",
        r"(?:^|/)\.ssh/",
        r"(?:^|/)id_(?:rsa|dsa|ecdsa|ed25519)(?:\.pub)?$",
        r"(?:^|/)\.aws/credentials$",
        r"(?:^|/)\.git/",
        r"(?:^|/)\.npmrc$",
        r"(?:^|/)\.netrc$",
        r"\.(?:pem|key|p12|pfx)$",
    )
)

SAFE_TOOL_REASONS = {
    ToolKind.READ: "Read-only tool",
    ToolKind.SELECT_INTENT: "Intent selection does not mutate the workspace",
}


@dataclass(frozen=True)
class Classification:
    """Risk verdict for one tool call."""

    tier: RiskTier
    reason: str
    kind: ToolKind
    matched_rule: Optional[str] = None
    suggestion: Optional[str] = None

    @property
    def is_destructive(self) -> bool:
        return self.tier == RiskTier.DESTRUCTIVE

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "tier": self.tier.value,
            "reason": self.reason,
            "kind": self.kind.value,
            "matched_rule": self.matched_rule,
            "suggestion": self.suggestion,
        }


def match_dangerous_pattern(command: str) -> Optional[DangerousPattern]:
    """Return the first dangerous pattern the command matches."""
    for rule in DANGEROUS_PATTERNS:
        if rule.pattern.search(command):
            return rule
    return None


def is_dangerous_command(command: str) -> bool:
    return match_dangerous_pattern(command) is not None


def suggest_safer_alternative(command: str) -> Optional[str]:
    """Suggest a safer alternative for a risky command, if one is known."""
    rule = match_dangerous_pattern(command)
    return rule.suggestion if rule else None


def is_sensitive_file(path: str) -> bool:
    """Check whether a path names credentials, keys, or VCS internals."""
    normalized = path.replace("\\", "/")
    return any(pattern.search(normalized) for pattern in SENSITIVE_FILE_PATTERNS)


def is_path_outside_workspace(path: str, workspace_root: Union[str, Path]) -> bool:
    """Check whether ``path`` resolves outside ``workspace_root``."""
    root = Path(workspace_root).expanduser().resolve()
    target = (root / Path(path).expanduser()).resolve()
    try:
        target.relative_to(root)
    except ValueError:
        return True
    return False


def classify(
    tool_name: str,
    args: Optional[dict[str, Any]] = None,
    workspace_root: Optional[Union[str, Path]] = None,
) -> Classification:
    """
    Assign a risk tier to a tool call.

    Rules:
    - READ and SELECT_INTENT tools are always safe
    - EXECUTE: destructive on a dangerous pattern match, otherwise review
    - WRITE: destructive for sensitive files or paths escaping the
      workspace, otherwise review
    - Unknown tools: review

    Args:
        tool_name: Name of the tool being invoked
        args: Tool arguments
        workspace_root: Root used to detect paths escaping the workspace

    Returns:
        Classification with tier, reason, and a suggestion when destructive
    """
    args = args or {}
    kind = tool_kind(tool_name)

    if kind in SAFE_TOOL_REASONS:
        return Classification(RiskTier.SAFE, SAFE_TOOL_REASONS[kind], kind)

    if kind == ToolKind.EXECUTE:
        command = command_text(args)
        rule = match_dangerous_pattern(command)
        if rule:
            return Classification(
                RiskTier.DESTRUCTIVE,
                f"{rule.reason}: {command[:200]}",
                kind,
                matched_rule=rule.name,
                suggestion=rule.suggestion,
            )
        return Classification(RiskTier.REVIEW, "Shell command execution", kind)

    if kind == ToolKind.WRITE:
        path = target_path(args) or ""
        if path and is_sensitive_file(path):
            return Classification(
                RiskTier.DESTRUCTIVE,
                f"Write to sensitive file: {path}",
                kind,
                matched_rule="sensitive_file",
                suggestion="Ask the user to edit credentials and VCS internals by hand.",
            )
        if path and workspace_root is not None and is_path_outside_workspace(path, workspace_root):
            return Classification(
                RiskTier.DESTRUCTIVE,
                f"Write outside the workspace: {path}",
                kind,
                matched_rule="outside_workspace",
                suggestion="Write only to files inside the workspace.",
            )
        return Classification(RiskTier.REVIEW, "File modification", kind)

    return Classification(RiskTier.REVIEW, f"Unrecognized tool '{tool_name}'", kind)


def explain_risk(classification: Classification) -> str:
    """Human-readable explanation of a classification."""
    if classification.tier == RiskTier.DESTRUCTIVE:
        text = f"DESTRUCTIVE: {classification.reason}. This could cause data loss or system damage."
        if classification.suggestion:
            text += f" Safer alternative: {classification.suggestion}"
        return text
    if classification.tier == RiskTier.REVIEW:
        return f"REVIEW: {classification.reason}. Review before executing."
    return f"SAFE: {classification.reason}"
