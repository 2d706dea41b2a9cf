"""Tests for the timing and timeout helpers."""

import asyncio
import inspect

import pytest

from ragcore.utils.decorators import timing_decorator, with_timeout
from ragcore.utils.exceptions import EmbeddingTimeout


@timing_decorator
async def double(value):
    await asyncio.sleep(0)
    return value * 2


@timing_decorator
def triple(value):
    return value * 3


async def test_timing_decorator_keeps_coroutine_functions_async():
    assert inspect.iscoroutinefunction(double)
    assert not inspect.iscoroutinefunction(triple)
    assert await double(2) == 4
    assert triple(2) == 6


async def test_with_timeout_raises_the_given_error():
    with pytest.raises(EmbeddingTimeout, match="embedding timed out after 0.01s"):
        await with_timeout(asyncio.sleep(1), 0.01, EmbeddingTimeout, "embedding")


async def test_with_timeout_returns_result():
    assert await with_timeout(double(5), 1.0, EmbeddingTimeout, "double") == 10
