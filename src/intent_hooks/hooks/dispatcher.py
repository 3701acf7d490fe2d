"""Background dispatch of post-tool hooks."""

import asyncio
import inspect
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Sequence

from loguru import logger

from .models import PostToolUseContext


@dataclass
class PostHookFailure:
    """Entry on the dispatcher's error channel."""

    hook_name: str
    tool_name: str
    session_id: str
    error: BaseException
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def hook_name(hook: Callable) -> str:
    return getattr(hook, "__qualname__", None) or type(hook).__name__


class PostHookDispatcher:
    """
    FIFO worker queue for post-tool hooks.

    ``submit()`` never waits for the hooks: it enqueues the batch and
    returns. A single worker task drains the queue, so batches run in
    submission order. Hook failures are logged and pushed onto ``errors``;
    they never reach the submitter.
    """

    def __init__(self, max_errors: int = 100):
        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._max_errors = max_errors
        self.errors: list[PostHookFailure] = []

    def _ensure_worker(self) -> asyncio.Queue:
        loop = asyncio.get_running_loop()
        if self._loop is not loop or self._queue is None:
            # Queues are bound to the loop they are first used on
            self._loop = loop
            self._queue = asyncio.Queue()
            self._worker = None
        if self._worker is None or self._worker.done():
            self._worker = loop.create_task(self._run(self._queue))
        return self._queue

    def submit(
        self, hooks: Sequence[Callable[[PostToolUseContext], Any]], context: PostToolUseContext
    ) -> bool:
        """
        Schedule ``hooks`` to run against ``context``.

        Returns:
            True if the batch was queued, False if there was nothing to run
            or no running event loop
        """
        if not hooks:
            return False
        try:
            queue = self._ensure_worker()
        except RuntimeError:
            logger.error(
                f"No running event loop, dropping post hooks for {context.tool_name}"
            )
            return False
        queue.put_nowait((list(hooks), context))
        return True

    async def _run(self, queue: asyncio.Queue) -> None:
        while True:
            hooks, context = await queue.get()
            try:
                for hook in hooks:
                    await self._invoke(hook, context)
            finally:
                queue.task_done()

    async def _invoke(self, hook: Callable, context: PostToolUseContext) -> None:
        try:
            result = hook(context)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            name = hook_name(hook)
            logger.error(f"Post-tool hook {name} failed for {context.tool_name}: {e}")
            self.errors.append(
                PostHookFailure(
                    hook_name=name,
                    tool_name=context.tool_name,
                    session_id=context.session_id,
                    error=e,
                )
            )
            if len(self.errors) > self._max_errors:
                del self.errors[: len(self.errors) - self._max_errors]

    async def drain(self) -> None:
        """Wait until every queued batch has run."""
        if self._queue is not None and self._loop is asyncio.get_running_loop():
            await self._queue.join()

    async def aclose(self) -> None:
        """Drain the queue and stop the worker."""
        await self.drain()
        if self._worker is not None and not self._worker.done():
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
        self._worker = None
