# =============================================
# File: tests/test_cache_keys.py
# =============================================
import sys, os
sys.path.append(os.path.dirname(os.path.dirname(__file__)))

import pytest

from companion.utils.cache_keys import (
    detail_key,
    listing_key,
    listing_prefix,
    normalize_search,
    response_key,
    user_key,
    user_prefix,
)

BASE = dict(kind="posts", sort_field="likes_count", sort_direction="desc", page=1, search="calm", page_size=10)


def test_same_inputs_same_key():
    assert listing_key(**BASE) == listing_key(**BASE)
    assert user_key("u1", "sessions") == user_key("u1", "sessions")


@pytest.mark.parametrize(
    "field,value",
    [
        ("kind", "tutorials"),
        ("sort_field", "created_at"),
        ("sort_direction", "asc"),
        ("page", 2),
        ("search", "anxiety"),
        ("page_size", 20),
    ],
)
def test_any_differing_input_changes_the_key(field, value):
    other = dict(BASE, **{field: value})
    assert listing_key(**other) != listing_key(**BASE)


def test_search_is_whitespace_and_case_normalized():
    assert normalize_search("  Deep   BREATHING \n") == "deep breathing"
    a = listing_key("posts", "created_at", search="Deep  Breathing")
    b = listing_key("posts", "created_at", search=" deep breathing ")
    assert a == b


def test_empty_search_equals_no_search():
    assert listing_key("posts", "created_at", search="   ") == listing_key("posts", "created_at")


def test_hyphenated_search_cannot_impersonate_a_page_number():
    # "sleep-page2" at page 1 vs "sleep" at page 2 collided with plain hyphen joins
    a = listing_key("posts", "created_at", page=1, search="sleep-page2")
    b = listing_key("posts", "created_at", page=2, search="sleep")
    assert a != b


def test_delimiters_inside_components_do_not_collide():
    assert detail_key("posts", "a:item:b") != detail_key("posts:item:a", "b")
    assert user_key("u:1", "x") != user_key("u", "1:x")


def test_page_and_cursor_are_exclusive():
    with pytest.raises(ValueError):
        listing_key("posts", "created_at", page=2, cursor="abc")
    assert listing_key("posts", "created_at") == listing_key("posts", "created_at", page=1)
    assert listing_key("posts", "created_at", cursor="abc") != listing_key("posts", "created_at", page=1)


def test_filters_are_order_insensitive_and_distinct_from_absent():
    a = listing_key("tutorials", "created_at", filters={"category": ["sleep", "focus"]})
    b = listing_key("tutorials", "created_at", filters={"category": ["focus", "sleep"]})
    c = listing_key("tutorials", "created_at", filters={"category": []})
    d = listing_key("tutorials", "created_at", filters={"category": ["focus,sleep"]})
    assert a == b
    assert a != c
    assert a != d


def test_listing_keys_share_family_prefix_detail_keys_do_not():
    prefix = listing_prefix("posts")
    assert listing_key("posts", "created_at", page=3).startswith(prefix)
    assert listing_key("posts", "likes_count", search="x").startswith(prefix)
    assert not detail_key("posts", "p1").startswith(prefix)
    assert not listing_key("tutorials", "created_at").startswith(prefix)


def test_user_prefix_scopes_one_user_only():
    assert user_key("u1", "sessions").startswith(user_prefix("u1"))
    assert not user_key("u10", "sessions").startswith(user_prefix("u1"))


def test_per_user_views_do_not_collide():
    assert user_key("u1", "sessions") != user_key("u1", "content-recommendations")
    assert user_key("u1", "sessions") != user_key("u2", "sessions")


def test_response_key_normalizes_prompt_and_context():
    assert response_key("How do I sleep better?") == response_key("  how do i   SLEEP better? ")
    assert response_key("hi") != response_key("hi", context="mood:low")
