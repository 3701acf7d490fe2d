"""Ordered pre/post interceptor registry and execution engine."""

import inspect
from typing import Any, Awaitable, Callable, Optional, Union

from loguru import logger

from .dispatcher import PostHookDispatcher, hook_name
from .models import (
    BlockedReasonCode,
    HookResult,
    HookStage,
    PostToolUseContext,
    PreToolUseContext,
)

PreToolUseHook = Callable[[PreToolUseContext], Union[HookResult, Awaitable[HookResult]]]
PostToolUseHook = Callable[[PostToolUseContext], Any]


class HookRegistry:
    """
    Ordered interceptors around each tool invocation.

    Pre-hooks run strictly in registration order and fail fast: the first
    result with ``should_continue=False`` is returned and later hooks never
    run. A pre-hook that raises blocks the call (fail-secure). Post-hooks
    are handed to a ``PostHookDispatcher`` and never block or fail the
    caller (fail-open).
    """

    def __init__(self, dispatcher: Optional[PostHookDispatcher] = None):
        self._hooks: dict[HookStage, list[Callable]] = {
            HookStage.PRE_TOOL_USE: [],
            HookStage.POST_TOOL_USE: [],
        }
        self.dispatcher = dispatcher or PostHookDispatcher()

    def _register(self, stage: HookStage, hook: Callable) -> Callable[[], bool]:
        self._hooks[stage].append(hook)
        logger.debug(f"Registered {stage.value} hook {hook_name(hook)}")

        def unregister() -> bool:
            return self.unregister(stage, hook)

        return unregister

    def register_pre(self, hook: PreToolUseHook) -> Callable[[], bool]:
        """Register a pre-tool hook; returns a handle that unregisters it."""
        return self._register(HookStage.PRE_TOOL_USE, hook)

    def register_post(self, hook: PostToolUseHook) -> Callable[[], bool]:
        """Register a post-tool hook; returns a handle that unregisters it."""
        return self._register(HookStage.POST_TOOL_USE, hook)

    def unregister(self, stage: HookStage, hook: Callable) -> bool:
        """Unregister a hook callback."""
        try:
            self._hooks[stage].remove(hook)
            return True
        except ValueError:
            return False

    def hooks(self, stage: HookStage) -> list[Callable]:
        """Snapshot of the hooks registered for a stage."""
        return list(self._hooks[stage])

    def clear(self) -> None:
        """Remove every registered hook."""
        for hooks in self._hooks.values():
            hooks.clear()

    async def run_pre(self, context: PreToolUseContext) -> HookResult:
        """
        Run pre-tool hooks against ``context``.

        Overlays from ``modified_params`` are merged key by key (last hook
        wins) and applied to ``context.arguments`` before the next hook
        runs. ``context_to_inject`` accumulates across continuing hooks.

        Returns:
            The blocking result, or an aggregated allow result
        """
        overlay: dict[str, Any] = {}
        injected: list[str] = []

        for hook in self.hooks(HookStage.PRE_TOOL_USE):
            name = hook_name(hook)
            try:
                result = hook(context)
                if inspect.isawaitable(result):
                    result = await result
            except Exception as e:
                logger.error(f"Pre-tool hook {name} failed for {context.tool_name}: {e}")
                return HookResult.block(
                    reason=f"Internal governance error in {name}: {e}",
                    code=BlockedReasonCode.HOOK_FAILURE,
                    suggestion=(
                        "The operation was denied because a safety check failed. "
                        "Retry the call; if it keeps failing, ask the user to inspect "
                        "the governance logs."
                    ),
                    hook=name,
                )

            if result is None:
                result = HookResult.allow()
            elif not isinstance(result, HookResult):
                logger.error(f"Pre-tool hook {name} returned {type(result).__name__}")
                return HookResult.block(
                    reason=f"Internal governance error in {name}: invalid hook result",
                    code=BlockedReasonCode.HOOK_FAILURE,
                    suggestion="Ask the user to inspect the governance hook configuration.",
                    hook=name,
                )

            if not result.should_continue:
                if not result.reason:
                    result.reason = f"Blocked by {name}"
                logger.debug(f"Pre-tool hook {name} blocked {context.tool_name}: {result.reason}")
                return result

            if result.modified_params:
                overlay.update(result.modified_params)
                context.arguments = {**context.arguments, **result.modified_params}
            if result.context_to_inject:
                injected.append(result.context_to_inject)

        return HookResult.allow(
            modified_params=overlay or None,
            context_to_inject="\n".join(injected) if injected else None,
        )

    def run_post(self, context: PostToolUseContext) -> bool:
        """
        Schedule post-tool hooks and return immediately.

        Returns:
            True if hooks were scheduled
        """
        return self.dispatcher.submit(self.hooks(HookStage.POST_TOOL_USE), context)

    async def drain(self) -> None:
        """Wait for scheduled post-tool hooks to finish."""
        await self.dispatcher.drain()

    async def aclose(self) -> None:
        await self.dispatcher.aclose()
