"""Tests for feed assembly."""

import pytest

from fitconnect.config import settings
from fitconnect.connections import ConnectionService
from fitconnect.errors import NotFoundError, ValidationError
from fitconnect.feed import FeedService, comment_previews
from fitconnect.posts import PostService


@pytest.fixture
def feed(session):
    return FeedService(session)


@pytest.fixture
def viewer(make_account):
    return make_account("Viewer")


def test_feed_contains_only_self_and_accepted_connections(
    session, feed, viewer, make_account, connect, make_post
):
    """Test connected and own posts appear; pending, rejected, blocked and strangers do not."""
    friend_one = make_account("Friend One")
    friend_two = make_account("Friend Two")
    pending = make_account("Pending")
    rejected = make_account("Rejected")
    blocked = make_account("Blocked")
    stranger = make_account("Stranger")
    connect(viewer.id, friend_one.id)
    connect(friend_two.id, viewer.id)
    connections = ConnectionService(session)
    connections.send_request(viewer.id, pending.id)
    refused = connections.send_request(rejected.id, viewer.id)
    connections.reject(refused.id, viewer.id)
    shut_out = connections.send_request(viewer.id, blocked.id)
    connections.block(shut_out.id, blocked.id)

    everyone = (viewer, friend_one, friend_two, pending, rejected, blocked, stranger)
    for minute, account in enumerate(everyone):
        make_post(account.id, f"post by {account.display_name}", minute=minute)

    authors = {post.author_id for post in feed.get_feed(viewer.id)}

    assert authors == {viewer.id, friend_one.id, friend_two.id}
    for outsider in (pending, rejected, blocked):
        assert {post.author_id for post in feed.get_feed(outsider.id)} == {outsider.id}


def test_feed_like_state(session, feed, make_account, connect):
    """Test like counts and the viewer's like flag follow likes."""
    one = make_account("One")
    two = make_account("Two")
    connect(one.id, two.id)
    posts = PostService(session)
    created = posts.create_post(one.id, "Hello")

    [before] = feed.get_feed(two.id)
    assert (before.id, before.like_count, before.is_liked) == (created.id, 0, False)

    posts.like(created.id, two.id)

    [after] = feed.get_feed(two.id)
    assert (after.like_count, after.is_liked) == (1, True)
    [author_view] = feed.get_feed(one.id)
    assert (author_view.like_count, author_view.is_liked) == (1, False)


def test_feed_order_and_pagination(feed, viewer, make_post):
    """Test newest-first ordering with ties broken by id, and paging."""
    first = make_post(viewer.id, "a", minute=1)
    second = make_post(viewer.id, "b", minute=2)
    tie_low = make_post(viewer.id, "c", minute=3)
    tie_high = make_post(viewer.id, "d", minute=3)

    ids = [post.id for post in feed.get_feed(viewer.id)]
    assert ids == [tie_high.id, tie_low.id, second.id, first.id]

    page_one = [post.id for post in feed.get_feed(viewer.id, limit=2)]
    page_two = [post.id for post in feed.get_feed(viewer.id, limit=2, offset=2)]
    assert page_one + page_two == ids
    assert feed.get_feed(viewer.id, limit=2, offset=4) == []


def test_feed_limit_is_capped(feed, viewer, make_post):
    """Test the page size never exceeds the configured cap."""
    cap = settings.feed_max_limit
    for minute in range(cap + 5):
        make_post(viewer.id, f"post {minute}", minute=minute)

    assert len(feed.get_feed(viewer.id, limit=cap * 2)) == cap
    assert len(feed.get_feed(viewer.id)) == settings.feed_default_limit
    assert len(feed.get_feed(viewer.id, limit=0)) == 0


def test_feed_comment_previews(feed, viewer, make_account, connect, make_post, make_comment):
    """Test previews hold the newest comments only, with their authors."""
    friend = make_account("Friend")
    connect(viewer.id, friend.id)
    post = make_post(friend.id)
    for minute in range(7):
        make_comment(post.id, viewer.id, f"comment {minute}", minute=minute)

    [view] = feed.get_feed(viewer.id)

    assert view.comment_count == 7
    assert len(view.comments) == settings.feed_comment_preview
    assert [c.content for c in view.comments] == [f"comment {m}" for m in (6, 5, 4, 3, 2)]
    assert view.comments[0].author.display_name == "Viewer"
    assert view.author.display_name == "Friend"


def test_comment_previews_per_post(session, viewer, make_post, make_comment):
    """Test ranking restarts for every post."""
    busy = make_post(viewer.id, "busy")
    quiet = make_post(viewer.id, "quiet")
    for minute in range(4):
        make_comment(busy.id, viewer.id, f"busy {minute}", minute=minute)
    make_comment(quiet.id, viewer.id, "only one")

    previews = comment_previews(session, [busy.id, quiet.id], per_post=2)

    assert [c.content for c in previews[busy.id]] == ["busy 3", "busy 2"]
    assert [c.content for c in previews[quiet.id]] == ["only one"]
    assert comment_previews(session, [], per_post=2) == {}


def test_feed_without_connections(feed, viewer, make_post):
    """Test an unconnected account sees only its own posts."""
    assert feed.get_feed(viewer.id) == []
    make_post(viewer.id)
    assert len(feed.get_feed(viewer.id)) == 1


def test_feed_unknown_viewer(feed):
    """Test a missing viewer raises NotFoundError."""
    with pytest.raises(NotFoundError, match="Account not found"):
        feed.get_feed(999)


@pytest.mark.parametrize(("limit", "offset"), [(-1, 0), (10, -1), ("ten", 0)])
def test_feed_invalid_page(feed, viewer, limit, offset):
    """Test malformed pagination is a validation error."""
    with pytest.raises(ValidationError):
        feed.get_feed(viewer.id, limit=limit, offset=offset)
