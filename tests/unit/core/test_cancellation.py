"""Tests for cancellation tokens."""

from __future__ import annotations

import asyncio

import pytest

from taskcli.core.cancellation import CancellationToken, CancellationTokenSource
from taskcli.errors import CancellationError


class TestCancellationToken:
    def test_starts_uncancelled(self) -> None:
        token = CancellationToken()
        assert token.is_cancelled is False
        assert token.reason == ""
        token.check()

    def test_cancel_sets_reason_once(self) -> None:
        token = CancellationToken()
        token.cancel("first")
        token.cancel("second")
        assert token.is_cancelled
        assert token.reason == "first"

    def test_check_raises_after_cancel(self) -> None:
        token = CancellationToken()
        token.cancel("stop")
        with pytest.raises(CancellationError, match="stop"):
            token.check()

    def test_on_cancel_callbacks(self) -> None:
        token = CancellationToken()
        seen: list[str] = []
        token.on_cancel(seen.append)
        token.cancel("bye")
        token.on_cancel(seen.append)
        assert seen == ["bye", "bye"]


class TestRace:
    @pytest.mark.asyncio
    async def test_returns_result_when_work_wins(self) -> None:
        token = CancellationToken()

        async def work() -> int:
            return 42

        assert await token.race(work()) == 42

    @pytest.mark.asyncio
    async def test_raises_when_cancelled_first(self) -> None:
        token = CancellationToken()
        finished = False

        async def slow() -> None:
            nonlocal finished
            await asyncio.sleep(10)
            finished = True

        asyncio.get_running_loop().call_later(0.05, token.cancel, "user")
        with pytest.raises(CancellationError, match="user"):
            await token.race(slow())
        assert finished is False

    @pytest.mark.asyncio
    async def test_already_cancelled_does_not_start_work(self) -> None:
        token = CancellationToken()
        token.cancel()
        started = False

        async def work() -> None:
            nonlocal started
            started = True

        with pytest.raises(CancellationError):
            await token.race(work())
        assert started is False

    @pytest.mark.asyncio
    async def test_work_errors_propagate(self) -> None:
        token = CancellationToken()

        async def broken() -> None:
            raise ValueError("boom")

        with pytest.raises(ValueError, match="boom"):
            await token.race(broken())


class TestCancellationTokenSource:
    def test_cancel_propagates_to_children(self) -> None:
        source = CancellationTokenSource()
        child = source.create_linked()
        source.cancel("parent")
        assert child.token.is_cancelled
        assert child.token.reason == "parent"

    def test_child_cancel_does_not_reach_parent(self) -> None:
        source = CancellationTokenSource()
        child = source.create_linked()
        child.cancel()
        assert not source.token.is_cancelled

    def test_linked_after_cancel_is_cancelled(self) -> None:
        source = CancellationTokenSource()
        source.cancel("early")
        assert source.create_linked().token.is_cancelled
