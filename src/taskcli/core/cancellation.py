"""Cooperative cancellation.

One :class:`CancellationToken` is shared by the process runner, every
model call and the execution engine. Work checks the token at its
resumption points and races in-flight awaits against it; cancelling
never rolls back effects that already happened.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

from taskcli.errors import CancellationError

T = TypeVar("T")


@dataclass
class CancellationToken:
    """A token that can be checked, awaited and raced against.

    Uses asyncio.Event internally; cancel() should be called from the
    event loop thread (use ``loop.call_soon_threadsafe`` otherwise).
    """

    _event: asyncio.Event = field(default_factory=asyncio.Event, repr=False)
    _reason: str = ""
    _callbacks: list[Callable[[str], None]] = field(default_factory=list, repr=False)

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    def cancel(self, reason: str = "cancelled") -> None:
        """Signal cancellation. Only the first call has an effect."""
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()
        for callback in list(self._callbacks):
            callback(reason)

    def on_cancel(self, callback: Callable[[str], None]) -> None:
        """Run ``callback(reason)`` when cancelled (immediately if already)."""
        if self.is_cancelled:
            callback(self._reason)
        else:
            self._callbacks.append(callback)

    def check(self) -> None:
        """Raise CancellationError if cancelled."""
        if self.is_cancelled:
            raise CancellationError(self._reason or "Operation cancelled")

    async def wait(self) -> None:
        """Wait until cancellation is signalled."""
        await self._event.wait()

    async def race(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless cancellation fires first.

        Whichever finishes first wins; the loser is cancelled. If both
        are ready at once the completed result is kept.
        """
        if self.is_cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            self.check()
        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            work.cancel()
            raise
        finally:
            waiter.cancel()
        if work.done():
            return work.result()
        work.cancel()
        try:
            await work
        except (asyncio.CancelledError, Exception):
            pass
        raise CancellationError(self._reason or "Operation cancelled")


@dataclass
class CancellationTokenSource:
    """Creates and manages a cancellation token.

    Supports linked sources that cancel when any parent cancels, so a
    single run can be stopped without stopping the whole shell.
    """

    _token: CancellationToken = field(default_factory=CancellationToken)
    _children: list[CancellationTokenSource] = field(default_factory=list, repr=False)

    @property
    def token(self) -> CancellationToken:
        return self._token

    def cancel(self, reason: str = "cancelled") -> None:
        """Cancel this source and all children."""
        self._token.cancel(reason)
        for child in self._children:
            child.cancel(reason)

    def create_linked(self) -> CancellationTokenSource:
        """Create a child source that is cancelled together with this one."""
        child = CancellationTokenSource()
        self._children.append(child)
        if self._token.is_cancelled:
            child.cancel(self._token.reason)
        return child

    def dispose(self) -> None:
        """Release all child references."""
        self._children.clear()
