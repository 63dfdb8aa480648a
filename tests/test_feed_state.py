# =============================================
# File: tests/test_feed_state.py
# Purpose: Client feed like actions: optimistic flip, reconciliation with the forum service, revert on failure
# =============================================
import sys, os
sys.path.append(os.path.dirname(os.path.dirname(__file__)))

import pytest

from companion.services.errors import NotFoundError
from companion.services.feed_state import LocalFeed
from companion.utils.cache_keys import detail_key


async def _post_with_thread(forum):
    post = await forum.create_post("author", "A", "Morning walk", "Ten minutes outside")
    comment = await forum.create_comment(post["id"], "c", "C", "Love it")
    reply = await forum.create_reply(post["id"], comment["id"], "r", "R", "Same here")
    return post["id"], comment["id"], reply["id"]


@pytest.mark.asyncio
async def test_like_post_confirmed_by_server(services):
    forum = services.forum
    pid, _, _ = await _post_with_thread(forum)
    feed = LocalFeed(forum, "viewer")
    feed.load((await forum.fetch_posts())["posts"])

    state = await feed.like_post(pid)

    assert (state.flag, state.count) == (True, 1)
    assert feed.post(pid)["is_liked"] is True
    assert feed.post(pid)["likes_count"] == 1
    assert (await forum.fetch_post(pid))["likes_count"] == 1


@pytest.mark.asyncio
async def test_stale_local_flag_is_corrected_to_server_truth(services):
    forum = services.forum
    pid, _, _ = await _post_with_thread(forum)
    # The viewer liked from another device; this screen still shows "not liked"
    await forum.toggle_like("post", pid, "viewer")
    feed = LocalFeed(forum, "viewer")
    feed.load([{"id": pid, "likes_count": 5}], liked=[])

    state = await feed.like_post(pid)

    # Server toggled the existing like off -> flag False paired with the pre-toggle count
    assert (state.flag, state.count) == (False, 5)
    assert feed.post(pid)["is_liked"] is False
    assert feed.post(pid)["likes_count"] == 5


@pytest.mark.asyncio
async def test_failed_like_reverts_and_surfaces_error(services, monkeypatch):
    forum = services.forum
    feed = LocalFeed(forum, "viewer")
    feed.load([{"id": "p1", "likes_count": 3}], liked=[])

    async def offline(*args, **kwargs):
        raise ConnectionError("could not like post, try again")

    monkeypatch.setattr(forum, "toggle_like", offline)
    with pytest.raises(ConnectionError):
        await feed.like_post("p1")

    assert feed.post("p1")["likes_count"] == 3
    assert feed.post("p1")["is_liked"] is False


@pytest.mark.asyncio
async def test_like_failure_still_invalidates_detail(services, monkeypatch):
    forum = services.forum
    pid, _, _ = await _post_with_thread(forum)
    await forum.fetch_post(pid)
    feed = LocalFeed(forum, "viewer")
    feed.load([{"id": pid, "likes_count": 0}])

    async def offline(*args, **kwargs):
        raise ConnectionError("offline")

    monkeypatch.setattr(forum, "toggle_like", offline)
    with pytest.raises(ConnectionError):
        await feed.like_post(pid)
    assert services.registry.posts.get(detail_key("posts", pid)) is None


@pytest.mark.asyncio
async def test_like_comment_and_reply_inside_opened_post(services):
    forum = services.forum
    pid, cid, rid = await _post_with_thread(forum)
    feed = LocalFeed(forum, "viewer")
    await feed.open_post(pid)

    c_state = await feed.like_comment(pid, cid)
    r_state = await feed.like_reply(pid, cid, rid)

    local = feed.post(pid)
    assert (c_state.flag, c_state.count) == (True, 1)
    assert (r_state.flag, r_state.count) == (True, 1)
    assert local["comments"][0]["is_liked"] is True
    assert local["comments"][0]["replies"][0]["likes_count"] == 1
    assert local["likes_count"] == 0  # parent counter untouched

    fresh = await forum.fetch_post(pid)
    assert fresh["comments"][0]["likes_count"] == 1
    assert fresh["comments"][0]["replies"][0]["likes_count"] == 1

    # Re-opening picks up the viewer's like flags from the server
    reopened = await feed.open_post(pid)
    assert reopened["comments"][0]["is_liked"] is True
    assert reopened["comments"][0]["replies"][0]["is_liked"] is True


@pytest.mark.asyncio
async def test_unknown_items_raise_not_found(services):
    feed = LocalFeed(services.forum, "viewer")
    feed.load([{"id": "p1", "likes_count": 0, "comments": []}])
    with pytest.raises(NotFoundError):
        await feed.like_post("missing")
    with pytest.raises(NotFoundError):
        await feed.like_comment("p1", "c-missing")
