# =============================================
# File: tests/test_forum_service.py
# Purpose: Forum data access reads through the caches and invalidates per mutation policy
# =============================================
import sys, os
sys.path.append(os.path.dirname(os.path.dirname(__file__)))

import pytest

from companion.services.errors import ForbiddenError, NotFoundError
from companion.utils.cache_keys import detail_key


async def _seed(forum, n=3, user="author"):
    return [
        await forum.create_post(user, "Author", f"Post {i}", f"Body about mindfulness {i}")
        for i in range(n)
    ]


def _spy(monkeypatch, forum):
    calls = {"n": 0}
    real = forum._query_posts

    def counting(*args, **kwargs):
        calls["n"] += 1
        return real(*args, **kwargs)

    monkeypatch.setattr(forum, "_query_posts", counting)
    return calls


@pytest.mark.asyncio
async def test_listing_is_served_from_cache_until_a_post_is_created(services, monkeypatch):
    forum = services.forum
    await _seed(forum, 2)
    calls = _spy(monkeypatch, forum)

    first = await forum.fetch_posts()
    second = await forum.fetch_posts()
    assert calls["n"] == 1
    assert first == second
    assert len(first["posts"]) == 2

    await forum.create_post("someone", "S", "New", "Fresh content")
    third = await forum.fetch_posts()
    assert calls["n"] == 2
    assert len(third["posts"]) == 3


@pytest.mark.asyncio
async def test_listing_expires_after_forum_ttl(services, clock, monkeypatch):
    forum = services.forum
    await _seed(forum, 1)
    calls = _spy(monkeypatch, forum)

    await forum.fetch_posts()
    clock.advance(services.registry.forum.default_ttl)
    await forum.fetch_posts()
    assert calls["n"] == 2


@pytest.mark.asyncio
async def test_cursor_pagination_walks_all_posts_without_overlap(services):
    forum = services.forum
    created = await _seed(forum, 5)

    page1 = await forum.fetch_posts(page_size=2)
    assert page1["has_more"] is True
    page2 = await forum.fetch_posts(page_size=2, last_visible_id=page1["last_visible_id"])
    page3 = await forum.fetch_posts(page_size=2, last_visible_id=page2["last_visible_id"])

    ids = [p["id"] for page in (page1, page2, page3) for p in page["posts"]]
    assert sorted(ids) == sorted(p["id"] for p in created)
    assert page3["has_more"] is False
    assert page2["page"] is None


@pytest.mark.asyncio
async def test_search_results_are_cached_per_normalized_query(services, monkeypatch):
    forum = services.forum
    await forum.create_post("u", "U", "Gratitude journal", "Three things a day")
    await forum.create_post("u", "U", "Sleep", "Wind-down routine")
    calls = _spy(monkeypatch, forum)

    hits = await forum.search_posts("  GRATITUDE ")
    again = await forum.search_posts("gratitude")
    assert [p["title"] for p in hits["posts"]] == ["Gratitude journal"]
    assert again == hits
    assert calls["n"] == 1


@pytest.mark.asyncio
async def test_unknown_sort_field_is_rejected(services):
    with pytest.raises(ValueError):
        await services.forum.fetch_posts(sort_by="title; drop table")


@pytest.mark.asyncio
async def test_missing_post_is_not_negatively_cached(services):
    forum = services.forum
    with pytest.raises(NotFoundError):
        await forum.fetch_post("nope")
    assert services.registry.posts.keys() == []


@pytest.mark.asyncio
async def test_comment_invalidates_detail_and_listing_reply_only_detail(services):
    forum = services.forum
    registry = services.registry
    (post,) = await _seed(forum, 1)
    pid = post["id"]

    await forum.fetch_posts()
    await forum.fetch_post(pid)
    comment = await forum.create_comment(pid, "c1", "Commenter", "Nice")
    assert len(registry.forum) == 0
    assert registry.posts.get(detail_key("posts", pid)) is None

    listing = await forum.fetch_posts()
    assert listing["posts"][0]["comments_count"] == 1
    await forum.fetch_post(pid)

    await forum.create_reply(pid, comment["id"], "r1", "Replier", "Agreed")
    assert len(registry.forum) == 1  # listings do not embed replies
    assert registry.posts.get(detail_key("posts", pid)) is None

    detail = await forum.fetch_post(pid)
    assert detail["comments"][0]["replies"][0]["content"] == "Agreed"


@pytest.mark.asyncio
async def test_toggle_like_round_trip_and_cache_freshness(services):
    forum = services.forum
    (post,) = await _seed(forum, 1)
    pid = post["id"]
    await forum.fetch_post(pid)
    await forum.fetch_posts()

    assert await forum.toggle_like("post", pid, "fan") is True
    detail = await forum.fetch_post(pid)
    assert detail["likes_count"] == 1
    assert (await forum.fetch_posts())["posts"][0]["likes_count"] == 1
    assert forum.liked_ids("fan", pid) == {pid}

    assert await forum.toggle_like("post", pid, "fan") is False
    assert (await forum.fetch_post(pid))["likes_count"] == 0


@pytest.mark.asyncio
async def test_nested_like_keeps_listing_cache(services):
    forum = services.forum
    registry = services.registry
    (post,) = await _seed(forum, 1)
    pid = post["id"]
    comment = await forum.create_comment(pid, "c1", "C", "hello")
    await forum.fetch_posts()
    await forum.fetch_post(pid)

    assert await forum.toggle_like("comment", comment["id"], "fan", post_id=pid) is True
    assert len(registry.forum) == 1
    assert registry.posts.get(detail_key("posts", pid)) is None
    assert (await forum.fetch_post(pid))["comments"][0]["likes_count"] == 1


@pytest.mark.asyncio
async def test_nested_like_requires_parent_post(services):
    with pytest.raises(ValueError):
        await services.forum.toggle_like("reply", "r1", "fan")
    with pytest.raises(ValueError):
        await services.forum.toggle_like("emoji", "x", "fan")


@pytest.mark.asyncio
async def test_only_the_author_can_edit_or_delete(services):
    forum = services.forum
    (post,) = await _seed(forum, 1, user="owner")
    with pytest.raises(ForbiddenError):
        await forum.update_post(post["id"], "intruder", title="Hacked")
    with pytest.raises(ForbiddenError):
        await forum.delete_post(post["id"], "intruder")

    updated = await forum.update_post(post["id"], "owner", title="Edited")
    assert updated["title"] == "Edited"
    assert (await forum.fetch_post(post["id"]))["title"] == "Edited"


@pytest.mark.asyncio
async def test_delete_post_removes_children_and_caches(services):
    forum = services.forum
    (post,) = await _seed(forum, 1)
    pid = post["id"]
    comment = await forum.create_comment(pid, "c", "C", "x")
    await forum.create_reply(pid, comment["id"], "r", "R", "y")
    await forum.toggle_like("post", pid, "fan")
    await forum.fetch_post(pid)

    await forum.delete_post(pid, "author")

    with pytest.raises(NotFoundError):
        await forum.fetch_post(pid)
    assert (await forum.fetch_posts())["posts"] == []
    assert forum.liked_ids("fan", pid) == set()


@pytest.mark.asyncio
async def test_delete_comment_decrements_count(services):
    forum = services.forum
    (post,) = await _seed(forum, 1)
    pid = post["id"]
    comment = await forum.create_comment(pid, "c", "C", "x")
    await forum.update_comment(pid, comment["id"], "c", "x (edited)")
    assert (await forum.fetch_post(pid))["comments"][0]["content"] == "x (edited)"

    await forum.delete_comment(pid, comment["id"], "c")
    detail = await forum.fetch_post(pid)
    assert detail["comments_count"] == 0
    assert detail["comments"] == []
