"""Feed assembly.

The feed of a viewer is every post authored by the viewer or by an account
holding an *accepted* connection with the viewer, newest first. Each post is
enriched with like/comment counts, whether the viewer liked it, its author's
public projection and a preview of its most recent comments.

Enrichment is done in a fixed number of queries per page (counts and likes
grouped by post, comment previews ranked with ``ROW_NUMBER``), independent of
page size.

Example:
    >>> feed = FeedService(session)
    >>> page = feed.get_feed(viewer_id=7, limit=20)
    >>> [(p.author.display_name, p.like_count) for p in page]
"""

from collections import defaultdict
from collections.abc import Sequence

from sqlalchemy import func
from sqlmodel import Session, col, select

from fitconnect.config import settings
from fitconnect.errors import NotFoundError
from fitconnect.logging import logger
from fitconnect.metrics import track_operation
from fitconnect.models import (
    AccountPublic,
    AccountRow,
    CommentPreview,
    CommentRow,
    LikeRow,
    PostRow,
    PostView,
)
from fitconnect.utils import resolve_page
from fitconnect.visibility import connected_account_ids

# =============================================================================
# Post Enrichment
# =============================================================================


def comment_previews(
    session: Session, post_ids: Sequence[int], per_post: int
) -> dict[int, list[CommentRow]]:
    """Most recent ``per_post`` comments of each post, newest first."""
    if not post_ids or per_post <= 0:
        return {}

    rank = (
        func.row_number()
        .over(
            partition_by=CommentRow.post_id,
            order_by=[col(CommentRow.created_at).desc(), col(CommentRow.id).desc()],
        )
        .label("rank")
    )
    ranked = (
        select(col(CommentRow.id).label("comment_id"), rank)
        .where(col(CommentRow.post_id).in_(post_ids))
        .subquery()
    )
    stmt = (
        select(CommentRow)
        .join(ranked, ranked.c.comment_id == CommentRow.id)
        .where(ranked.c.rank <= per_post)
        .order_by(
            col(CommentRow.post_id),
            col(CommentRow.created_at).desc(),
            col(CommentRow.id).desc(),
        )
    )

    previews: dict[int, list[CommentRow]] = defaultdict(list)
    for comment in session.exec(stmt).all():
        previews[comment.post_id].append(comment)
    return previews


def public_accounts(session: Session, account_ids: set[int]) -> dict[int, AccountPublic]:
    """Public projections keyed by account id."""
    if not account_ids:
        return {}
    rows = session.exec(select(AccountRow).where(col(AccountRow.id).in_(account_ids))).all()
    return {row.id: AccountPublic.model_validate(row) for row in rows}


def assemble_post_views(
    session: Session,
    posts: Sequence[PostRow],
    viewer_id: int,
    preview: int | None = None,
) -> list[PostView]:
    """Enrich post rows into views, preserving the input order.

    Args:
        session: Active session
        posts: Post rows, already ordered and paginated
        viewer_id: Account whose likes determine ``is_liked``
        preview: Comments per post (defaults to settings.feed_comment_preview)

    Returns:
        One PostView per input post
    """
    if not posts:
        return []
    if preview is None:
        preview = settings.feed_comment_preview

    post_ids = [post.id for post in posts]

    like_counts = dict(
        session.exec(
            select(LikeRow.post_id, func.count())
            .where(col(LikeRow.post_id).in_(post_ids))
            .group_by(LikeRow.post_id)
        ).all()
    )
    comment_counts = dict(
        session.exec(
            select(CommentRow.post_id, func.count())
            .where(col(CommentRow.post_id).in_(post_ids))
            .group_by(CommentRow.post_id)
        ).all()
    )
    liked = set(
        session.exec(
            select(LikeRow.post_id).where(
                LikeRow.account_id == viewer_id, col(LikeRow.post_id).in_(post_ids)
            )
        ).all()
    )
    previews = comment_previews(session, post_ids, preview)

    author_ids = {post.author_id for post in posts}
    author_ids.update(c.author_id for comments in previews.values() for c in comments)
    authors = public_accounts(session, author_ids)

    views = []
    for post in posts:
        view = PostView.model_validate(post)
        view.like_count = like_counts.get(post.id, 0)
        view.comment_count = comment_counts.get(post.id, 0)
        view.is_liked = post.id in liked
        view.author = authors.get(post.author_id)
        view.comments = [
            CommentPreview(
                id=c.id,
                author_id=c.author_id,
                content=c.content,
                created_at=c.created_at,
                author=authors.get(c.author_id),
            )
            for c in previews.get(post.id, [])
        ]
        views.append(view)
    return views


# =============================================================================
# Feed Service
# =============================================================================


class FeedService:
    """Builds the social feed of a viewer."""

    def __init__(self, session: Session):
        self.session = session

    @track_operation("get_feed")
    def get_feed(
        self,
        viewer_id: int,
        limit: int | None = None,
        offset: int | None = 0,
    ) -> list[PostView]:
        """Posts by the viewer and their accepted connections, newest first.

        Args:
            viewer_id: Account requesting the feed
            limit: Page size; defaults to and is capped at settings.feed_max_limit
            offset: Number of posts to skip

        Returns:
            Up to ``limit`` enriched posts ordered by (created_at, id) descending

        Raises:
            NotFoundError: If the viewer does not exist
            ValidationError: If limit or offset is negative or not an integer
        """
        limit, offset = resolve_page(
            limit, offset, settings.feed_default_limit, settings.feed_max_limit
        )
        if self.session.get(AccountRow, viewer_id) is None:
            raise NotFoundError("Account not found")

        authors = connected_account_ids(self.session, viewer_id) | {viewer_id}
        stmt = (
            select(PostRow)
            .where(col(PostRow.author_id).in_(authors))
            .order_by(col(PostRow.created_at).desc(), col(PostRow.id).desc())
            .limit(limit)
            .offset(offset)
        )
        posts = self.session.exec(stmt).all()
        logger.debug(
            f"Feed for account {viewer_id}: {len(posts)} posts from {len(authors)} authors"
        )
        return assemble_post_views(self.session, posts, viewer_id)


__all__ = [
    "FeedService",
    "assemble_post_views",
    "comment_previews",
    "public_accounts",
]
