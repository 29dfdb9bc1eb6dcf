import asyncio

import pytest

from docreview.review.errors import RunInProgressError
from docreview.review.registry import SessionRunRegistry

from .conftest import run


async def _sleeper():
    await asyncio.sleep(3600)


async def _finished():
    return None


def test_tokens_increase_and_stale_handles_do_not_unregister_newer_runs():
    async def scenario():
        registry = SessionRunRegistry()
        first = registry.register("s1", asyncio.ensure_future(_finished()))
        await first.task
        second = registry.register("s1", asyncio.ensure_future(_sleeper()))

        assert second.token > first.token
        assert registry.unregister(first) is False
        assert registry.get("s1") is second
        assert registry.unregister(second) is True
        assert "s1" not in registry

        second.task.cancel()
        await asyncio.gather(second.task, return_exceptions=True)

    run(scenario())


def test_second_live_run_of_a_session_is_rejected():
    async def scenario():
        registry = SessionRunRegistry()
        first = registry.register("s1", asyncio.ensure_future(_sleeper()))
        intruder = asyncio.ensure_future(_sleeper())

        with pytest.raises(RunInProgressError, match="a run is already in progress for this session"):
            registry.register("s1", intruder)

        assert registry.get("s1") is first
        assert registry.is_running("s1") is True
        assert registry.is_running("s2") is False
        other = registry.register("s2", intruder)
        assert registry.is_running("s2") is True

        for handle in (first, other):
            handle.task.cancel()
        await asyncio.gather(first.task, other.task, return_exceptions=True)

    run(scenario())


def test_cancel_signals_the_task_and_forgets_the_run():
    async def scenario():
        registry = SessionRunRegistry()
        handle = registry.register("s1", asyncio.ensure_future(_sleeper()))

        assert registry.cancel("s1") is True
        assert handle.cancel_requested is True
        assert len(registry) == 0
        assert registry.is_running("s1") is False
        await asyncio.gather(handle.task, return_exceptions=True)
        assert handle.task.cancelled()
        assert registry.cancel("s1") is False

    run(scenario())


def test_cancel_pinned_to_a_token_ignores_other_runs():
    async def scenario():
        registry = SessionRunRegistry()
        old = registry.register("s1", asyncio.ensure_future(_finished()))
        await old.task
        current = registry.register("s1", asyncio.ensure_future(_sleeper()))

        assert registry.cancel("s1", token=old.token) is False
        assert current.cancel_requested is False
        assert registry.cancel("s1", token=current.token) is True

        await asyncio.gather(current.task, return_exceptions=True)
        assert current.task.cancelled()

    run(scenario())
