# =============================================================================
# site_core/realtime/scope.py
# View-Scoped Task and Subscription Ownership
# =============================================================================
"""
ViewScope - ties background work and channel subscriptions to one view.

Leaving the scope cancels every task it spawned and runs each registered
disposer exactly once, in reverse registration order. Work is cancelled
rather than merely having its result ignored.

    async with ViewScope("project-dashboard") as scope:
        sub = await listener.subscribe(topic, handler)
        scope.add_disposer(sub.unsubscribe)
        scope.spawn(weather.auto_refresh_loop("p1", address))
"""

from __future__ import annotations
import asyncio
import inspect
from typing import Any, Callable, Coroutine, List, Optional, Set
import logging

logger = logging.getLogger(__name__)

Disposer = Callable[[], Any]


class ViewScope:

    def __init__(self, name: str = "view"):
        self.name = name
        self._tasks: Set[asyncio.Task] = set()
        self._disposers: List[Disposer] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def active_tasks(self) -> int:
        return sum(1 for t in self._tasks if not t.done())

    def spawn(self, coro: Coroutine[Any, Any, Any], name: Optional[str] = None) -> asyncio.Task:
        """Run ``coro`` as a task owned by this scope."""
        if self._closed:
            coro.close()
            raise RuntimeError(f"Scope '{self.name}' is closed")
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def add_disposer(self, disposer: Disposer) -> None:
        """Register a cleanup callable (sync or async) run on close."""
        if self._closed:
            raise RuntimeError(f"Scope '{self.name}' is closed")
        self._disposers.append(disposer)

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        while self._disposers:
            disposer = self._disposers.pop()
            try:
                result = disposer()
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Disposer failed while closing scope '{self.name}': {e}")

        logger.debug(f"Scope '{self.name}' closed ({len(tasks)} tasks cancelled)")

    async def __aenter__(self) -> ViewScope:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> bool:
        await self.aclose()
        return False
