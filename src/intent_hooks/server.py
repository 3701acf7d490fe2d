"""FastMCP server exposing intent selection and gating every tool call."""

import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, Optional

from fastmcp import Context, FastMCP
from fastmcp.exceptions import ToolError
from fastmcp.server.middleware import Middleware
from loguru import logger

from .config import Config
from .engine import Gatekeeper
from .lessons import append_lesson, read_lessons
from .tools import SELECT_INTENT_TOOL, executor_arguments

DEFAULT_SESSION_ID = "default"
CLEAR_INTENT_TOOL = "clear_active_intent"
RECORD_LESSON_TOOL = "record_lesson"
READ_LESSONS_TOOL = "read_lessons"

# Tools the server answers itself; they are not gated
SERVER_TOOLS = {SELECT_INTENT_TOOL, CLEAR_INTENT_TOOL, RECORD_LESSON_TOOL, READ_LESSONS_TOOL}


def session_id_of(ctx: Optional[Context]) -> str:
    """Stable session id for a FastMCP request context."""
    if ctx is None:
        return DEFAULT_SESSION_ID
    try:
        session_id = ctx.session_id
    except (AttributeError, RuntimeError):
        return DEFAULT_SESSION_ID
    return str(session_id) if session_id else DEFAULT_SESSION_ID


class GovernanceMiddleware(Middleware):
    """
    FastMCP middleware running the gatekeeper around every tool call.

    Enforcement paths:
    - Server tools (intent selection): pass through
    - Blocked: audit (inside the gatekeeper), raise ToolError carrying the
      JSON rejection payload
    - Allowed: forward the overlaid arguments, then schedule post-tool hooks
    """

    def __init__(self, gatekeeper: Gatekeeper):
        self.gatekeeper = gatekeeper

    async def on_call_tool(self, context, call_next):
        """
        Intercept tool calls and enforce intent governance.

        Args:
            context: FastMCP middleware context
            call_next: Next middleware in chain

        Returns:
            Tool result if allowed

        Raises:
            ToolError: If the call is blocked
        """
        tool_name = context.message.name
        arguments = dict(context.message.arguments or {})
        fastmcp_ctx = getattr(context, "fastmcp_context", None)
        session_id = session_id_of(fastmcp_ctx)

        if tool_name in SERVER_TOOLS:
            return await call_next(context)

        decision = await self.gatekeeper.before_tool_call(
            session_id, tool_name, arguments, host_context=fastmcp_ctx
        )
        if not decision.allowed:
            raise ToolError(decision.rejection.to_json())

        forwarded = executor_arguments(decision.arguments)
        if forwarded != arguments:
            context = context.copy(
                message=context.message.model_copy(update={"arguments": forwarded})
            )

        try:
            result = await call_next(context)
        except Exception as e:
            self.gatekeeper.after_tool_call(
                session_id, tool_name, decision.arguments, error=e, decision=decision
            )
            raise

        self.gatekeeper.after_tool_call(
            session_id, tool_name, decision.arguments, result=result, decision=decision
        )
        return result


def create_server(
    gatekeeper: Gatekeeper,
    name: Optional[str] = None,
    lessons_path: Optional[Path] = None,
) -> FastMCP:
    """
    Build the FastMCP server.

    Tools registered on (or mounted into) the returned server are gated by
    ``GovernanceMiddleware``.
    """
    lessons_path = lessons_path or Config.lessons_path()
    mcp = FastMCP(name or Config.SERVER_NAME)
    mcp.add_middleware(GovernanceMiddleware(gatekeeper))

    @mcp.tool(name=SELECT_INTENT_TOOL)
    async def select_active_intent(intent_id: str, ctx: Context = None) -> str:
        """
        Select the intent you are working on. Required before modifying files
        or running commands.

        Args:
            intent_id: Id of an intent from the intent document (e.g. INT-001)

        Returns:
            The intent's scope, constraints and acceptance criteria
        """
        selection = gatekeeper.select_intent(session_id_of(ctx), intent_id)
        if not selection.success:
            raise ToolError(selection.rejection.to_json())
        return f"{selection.summary}\n\n{selection.context}"

    @mcp.tool(name=CLEAR_INTENT_TOOL)
    async def clear_active_intent(ctx: Context = None) -> dict[str, Any]:
        """Deactivate the current intent for this session."""
        previous = gatekeeper.clear_intent(session_id_of(ctx))
        return {"cleared": previous}

    @mcp.tool(name=RECORD_LESSON_TOOL)
    async def record_lesson(intent_id: str, failure: str, resolution: str) -> str:
        """
        Record a lesson learned so future sessions avoid the same failure.

        Args:
            intent_id: Intent the failure happened under
            failure: What went wrong
            resolution: How it was resolved
        """
        lesson = append_lesson(lessons_path, intent_id, failure, resolution)
        return f"Recorded lesson for {lesson.intent_id} at {lesson.timestamp}"

    @mcp.tool(name=READ_LESSONS_TOOL)
    async def read_recorded_lessons() -> list[dict[str, str]]:
        """List lessons recorded by earlier sessions."""
        return [asdict(lesson) for lesson in read_lessons(lessons_path)]

    return mcp


def main():
    """
    Main entry point for the governance server.

    Configures:
    - Loguru for structured logging
    - HTTP/SSE transport
    """
    logger.remove()

    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan> | <level>{message}</level>",
        level="INFO",
    )
    logger.add(
        "intent_hooks.log",
        rotation="10 MB",
        retention="7 days",
        compression="zip",
        level="DEBUG",
    )

    try:
        gatekeeper = Gatekeeper.from_config()
    except ValueError as e:
        logger.error(str(e))
        sys.exit(1)

    logger.info(f"Starting {Config.SERVER_NAME}...")
    mcp = create_server(gatekeeper)
    try:
        mcp.run(transport="sse", host=Config.HOST, port=Config.PORT)
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    except Exception as e:
        logger.error(f"Server error: {e}")
        sys.exit(1)
