"""Centralized configuration for intent governance."""

import os
from pathlib import Path


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _parse_tiers(value: str) -> frozenset[str]:
    return frozenset(
        tier.strip().lower() for tier in value.split(",") if tier.strip()
    )


class Config:
    """
    Intent governance configuration with environment variable overrides.

    All configuration values are centralized here with sensible defaults.
    Relative paths are resolved against WORKSPACE_ROOT.
    """

    @staticmethod
    def _parse_port(port_str: str) -> int:
        """Parse and validate port number from string."""
        try:
            port = int(port_str)
            if not (1 <= port <= 65535):
                raise ValueError(f"Port must be 1-65535, got {port}")
            return port
        except ValueError as e:
            raise ValueError(f"Invalid PORT environment variable: {e}")

    # ========================================================================
    # Workspace & Files
    # ========================================================================
    WORKSPACE_ROOT: str = os.getenv("WORKSPACE_ROOT", ".")
    INTENTS_PATH: str = os.getenv("INTENTS_PATH", ".orchestration/active_intents.yaml")
    TRACE_LOG_PATH: str = os.getenv("TRACE_LOG_PATH", ".orchestration/agent_trace.jsonl")
    AUDIT_LOG_PATH: str = os.getenv(
        "AUDIT_LOG_PATH", ".orchestration/governance_audit.jsonl"
    )
    LESSONS_PATH: str = os.getenv("LESSONS_PATH", "CLAUDE.md")

    # ========================================================================
    # Governance
    # ========================================================================
    AUTHORIZATION_TIMEOUT: int = int(os.getenv("AUTHORIZATION_TIMEOUT", "300"))
    APPROVAL_PROVIDER: str = os.getenv("APPROVAL_PROVIDER", "auto")
    AUTHORIZE_TIERS: frozenset[str] = _parse_tiers(
        os.getenv("AUTHORIZE_TIERS", "destructive")
    )
    ENABLE_CONTENT_LOCK: bool = _parse_bool(os.getenv("ENABLE_CONTENT_LOCK", "true"))

    # ========================================================================
    # Tracing
    # ========================================================================
    ENABLE_TRACE_LOGGING: bool = _parse_bool(os.getenv("ENABLE_TRACE_LOGGING", "true"))
    MODEL_ID: str = os.getenv("MODEL_ID", "unknown")

    # ========================================================================
    # MCP Server
    # ========================================================================
    SERVER_NAME: str = os.getenv("SERVER_NAME", "IntentGovernance")
    HOST: str = os.getenv("HOST", "127.0.0.1")
    PORT: int = _parse_port.__func__(os.getenv("PORT", "8011"))

    @classmethod
    def resolve(cls, path: str) -> Path:
        """Resolve a configured path against the workspace root."""
        candidate = Path(path).expanduser()
        if candidate.is_absolute():
            return candidate
        return Path(cls.WORKSPACE_ROOT).expanduser().resolve() / candidate

    @classmethod
    def intents_path(cls) -> Path:
        return cls.resolve(cls.INTENTS_PATH)

    @classmethod
    def trace_log_path(cls) -> Path:
        return cls.resolve(cls.TRACE_LOG_PATH)

    @classmethod
    def audit_log_path(cls) -> Path:
        return cls.resolve(cls.AUDIT_LOG_PATH)

    @classmethod
    def lessons_path(cls) -> Path:
        return cls.resolve(cls.LESSONS_PATH)

    @classmethod
    def validate(cls) -> bool:
        """
        Validate configuration consistency.

        Checks:
        - AUTHORIZATION_TIMEOUT is > 0
        - AUTHORIZE_TIERS only names known risk tiers
        - APPROVAL_PROVIDER is a known provider name

        Returns:
            True if validation passes

        Raises:
            ValueError: If validation fails
        """
        errors = []

        if cls.AUTHORIZATION_TIMEOUT <= 0:
            errors.append(
                f"AUTHORIZATION_TIMEOUT must be > 0, got {cls.AUTHORIZATION_TIMEOUT}"
            )

        unknown_tiers = set(cls.AUTHORIZE_TIERS) - {"safe", "review", "destructive"}
        if unknown_tiers:
            errors.append(f"AUTHORIZE_TIERS has unknown tiers: {sorted(unknown_tiers)}")

        known_providers = {"auto", "callback", "fastmcp_elicit", "systemd_fallback"}
        if cls.APPROVAL_PROVIDER not in known_providers:
            errors.append(
                f"APPROVAL_PROVIDER must be one of {sorted(known_providers)}, "
                f"got {cls.APPROVAL_PROVIDER!r}"
            )

        if not cls.INTENTS_PATH:
            errors.append("INTENTS_PATH must not be empty")
        if not cls.TRACE_LOG_PATH:
            errors.append("TRACE_LOG_PATH must not be empty")

        if errors:
            raise ValueError(f"Config validation failed: {'; '.join(errors)}")

        return True
