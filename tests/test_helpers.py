import asyncio

import pytest

from slackcoder.utils.helpers import acquire_with_timeout, format_duration, split_message


@pytest.mark.asyncio
async def test_acquire_free_lock_does_not_yield():
    lock = asyncio.Lock()
    ran = []

    async def other():
        ran.append(lock.locked())

    task = asyncio.create_task(other())
    assert await acquire_with_timeout(lock, 1.0)
    assert ran == []

    await task
    assert ran == [True]
    lock.release()


@pytest.mark.asyncio
async def test_acquire_with_zero_timeout():
    lock = asyncio.Lock()
    assert await acquire_with_timeout(lock, 0)
    assert not await acquire_with_timeout(lock, 0)
    lock.release()


@pytest.mark.asyncio
async def test_acquire_times_out_on_held_lock():
    lock = asyncio.Lock()
    await lock.acquire()

    assert not await acquire_with_timeout(lock, 0.05)

    lock.release()
    assert not lock.locked()


def test_split_message_prefers_newlines():
    assert split_message("abc", 10) == ["abc"]
    assert split_message("aaaa\nbbbb", 6) == ["aaaa", "bbbb"]
    assert split_message("abcdefgh", 3) == ["abc", "def", "gh"]


def test_format_duration():
    assert format_duration(2.34) == "2.3s"
    assert format_duration(42) == "42s"
