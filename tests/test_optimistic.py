# =============================================
# File: tests/test_optimistic.py
# Purpose: Optimistic toggle applies immediately, converges on the server answer, reverts on failure
# =============================================
import sys, os
sys.path.append(os.path.dirname(os.path.dirname(__file__)))

import asyncio
import pytest

from companion.utils.optimistic import (
    ToggleState,
    corrected_state,
    dict_accessors,
    optimistic_guess,
    optimistic_toggle,
)


def test_guess_never_goes_negative():
    assert optimistic_guess(ToggleState(False, 5)) == ToggleState(True, 6)
    assert optimistic_guess(ToggleState(True, 0)) == ToggleState(False, 0)


def test_corrected_state_pairs_flag_and_count_consistently():
    assert corrected_state(ToggleState(False, 5), authoritative=False) == ToggleState(False, 5)
    assert corrected_state(ToggleState(False, 5), authoritative=True) == ToggleState(True, 6)
    assert corrected_state(ToggleState(True, 0), authoritative=False) == ToggleState(False, 0)


@pytest.mark.asyncio
async def test_confirmed_like_keeps_optimistic_state():
    item = {"is_liked": False, "likes_count": 5}
    read, write = dict_accessors(item)

    async def remote():
        return True

    final = await optimistic_toggle(read, write, remote)
    assert final == ToggleState(True, 6)
    assert item == {"is_liked": True, "likes_count": 6}


@pytest.mark.asyncio
async def test_mismatch_corrects_to_authoritative_pairing():
    item = {"is_liked": False, "likes_count": 5}
    read, write = dict_accessors(item)

    async def remote():
        return False  # another client already liked; the server toggled it off

    final = await optimistic_toggle(read, write, remote)
    assert final == ToggleState(False, 5)
    assert item == {"is_liked": False, "likes_count": 5}


@pytest.mark.asyncio
async def test_state_is_optimistic_before_remote_resolves_and_reverts_on_failure():
    post = {"id": "p1", "likes_count": 3, "is_liked": False}
    read, write = dict_accessors(post)
    gate = asyncio.Event()
    seen_while_pending = {}

    async def remote():
        seen_while_pending.update(post)
        await gate.wait()
        raise ConnectionError("could not like post")

    task = asyncio.create_task(optimistic_toggle(read, write, remote))
    await asyncio.sleep(0)
    assert post["likes_count"] == 4 and post["is_liked"] is True
    assert seen_while_pending["likes_count"] == 4

    gate.set()
    with pytest.raises(ConnectionError):
        await task
    assert post["likes_count"] == 3 and post["is_liked"] is False


@pytest.mark.asyncio
async def test_invalidate_runs_on_success_and_failure():
    calls = []
    item = {"is_liked": True, "likes_count": 2}
    read, write = dict_accessors(item)

    async def ok():
        return False

    async def fail():
        raise RuntimeError("boom")

    await optimistic_toggle(read, write, ok, invalidate=lambda: calls.append("ok"))
    with pytest.raises(RuntimeError):
        await optimistic_toggle(read, write, fail, invalidate=lambda: calls.append("fail"))
    assert calls == ["ok", "fail"]
    assert item == {"is_liked": False, "likes_count": 1}


def test_dict_accessors_custom_fields_and_missing_count():
    item = {"saved": True}
    read, write = dict_accessors(item, flag_field="saved", count_field="saves")
    assert read() == ToggleState(True, 0)
    write(ToggleState(False, 0))
    assert item == {"saved": False, "saves": 0}


@pytest.mark.asyncio
async def test_cancelled_remote_reverts_to_original():
    post = {"is_liked": False, "likes_count": 3}
    read, write = dict_accessors(post)
    invalidated = []

    async def never_answers():
        await asyncio.Event().wait()

    task = asyncio.create_task(
        optimistic_toggle(read, write, never_answers, invalidate=lambda: invalidated.append(True))
    )
    await asyncio.sleep(0)
    assert post == {"is_liked": True, "likes_count": 4}

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert post == {"is_liked": False, "likes_count": 3}
    assert invalidated == [True]


@pytest.mark.asyncio
async def test_failing_invalidation_does_not_mask_remote_error():
    item = {"is_liked": False, "likes_count": 1}
    read, write = dict_accessors(item)

    async def offline():
        raise ConnectionError("could not like post")

    def broken_invalidate():
        raise RuntimeError("cache unavailable")

    with pytest.raises(ConnectionError):
        await optimistic_toggle(read, write, offline, invalidate=broken_invalidate)
    assert item == {"is_liked": False, "likes_count": 1}
