"""Posts, likes and comments."""

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from fitconnect.config import settings
from fitconnect.errors import (
    ConflictError,
    InvalidOperationError,
    NotFoundError,
    ValidationError,
)
from fitconnect.feed import assemble_post_views, public_accounts
from fitconnect.interfaces import INotificationSink
from fitconnect.logging import logger
from fitconnect.metrics import track_operation
from fitconnect.models import (
    AccountRow,
    CommentRow,
    CommentView,
    LikeRow,
    NotificationType,
    PostRow,
    PostView,
)
from fitconnect.notifications import NotificationService
from fitconnect.repository import Repository
from fitconnect.utils import blank_to_none, is_valid_image_ref, resolve_page, truncate, utc_now

POST_MAX_LENGTH = 5000
COMMENT_MAX_LENGTH = 1000


def _clean_content(content: object, maximum: int, label: str) -> str:
    if not isinstance(content, str) or not content.strip():
        raise ValidationError(f"{label} content is required")
    if len(content) > maximum:
        raise ValidationError(f"{label} content must be at most {maximum} characters")
    return content.strip()


def _clean_image(image_ref: object) -> str | None:
    if image_ref is not None and not isinstance(image_ref, str):
        raise ValidationError("Image must be a string")
    if not is_valid_image_ref(image_ref):
        raise ValidationError("Image must be an http(s) URL or a data:image URL")
    return blank_to_none(image_ref)


class PostService:
    """Create and engage with posts.

    Args:
        session: Request-scoped SQLModel session
        notifications: Sink for like/comment notifications to post authors
    """

    def __init__(self, session: Session, notifications: INotificationSink | None = None):
        self.session = session
        self.posts = Repository[PostRow](session, PostRow)
        self.likes = Repository[LikeRow](session, LikeRow)
        self.comments = Repository[CommentRow](session, CommentRow)
        self.notifications = notifications or NotificationService(session)

    def _post(self, post_id: int) -> PostRow:
        post = self.posts.get(post_id)
        if post is None:
            raise NotFoundError("Post not found")
        return post

    def _authored(self, post_id: int, author_id: int) -> PostRow:
        post = self.posts.get(post_id)
        if post is None or post.author_id != author_id:
            raise NotFoundError("Post not found")
        return post

    def _view(self, post: PostRow, viewer_id: int) -> PostView:
        return assemble_post_views(self.session, [post], viewer_id)[0]

    def _notify_author(self, post: PostRow, actor_id: int, type: NotificationType, message: str) -> None:
        if post.author_id == actor_id:
            return
        self.notifications.notify_quietly(
            post.author_id,
            type,
            message,
            actor_id=actor_id,
            entity_type="post",
            entity_id=post.id,
        )

    # =========================================================================
    # Posts
    # =========================================================================

    @track_operation("create_post")
    def create_post(self, author_id: int, content: str, image_ref: str | None = None) -> PostView:
        """Publish a post.

        Raises:
            ValidationError: If content is empty or too long, or the image
                reference is malformed
            NotFoundError: If the author does not exist
        """
        content = _clean_content(content, POST_MAX_LENGTH, "Post")
        image_ref = _clean_image(image_ref)
        if self.session.get(AccountRow, author_id) is None:
            raise NotFoundError("Account not found")

        post = self.posts.add(PostRow(author_id=author_id, content=content, image_ref=image_ref))
        self.session.commit()
        self.session.refresh(post)
        logger.info(f"📝 Post {post.id} created by account {author_id}")
        return self._view(post, author_id)

    def get_post(self, post_id: int, viewer_id: int) -> PostView:
        return self._view(self._post(post_id), viewer_id)

    @track_operation("list_account_posts")
    def list_account_posts(
        self,
        account_id: int,
        viewer_id: int,
        limit: int | None = None,
        offset: int | None = 0,
    ) -> list[PostView]:
        """Posts by one account, newest first."""
        limit, offset = resolve_page(
            limit, offset, settings.feed_default_limit, settings.feed_max_limit
        )
        if self.session.get(AccountRow, account_id) is None:
            raise NotFoundError("Account not found")
        stmt = (
            select(PostRow)
            .where(PostRow.author_id == account_id)
            .order_by(col(PostRow.created_at).desc(), col(PostRow.id).desc())
            .limit(limit)
            .offset(offset)
        )
        return assemble_post_views(self.session, self.session.exec(stmt).all(), viewer_id)

    @track_operation("update_post")
    def update_post(
        self,
        post_id: int,
        author_id: int,
        content: str | None = None,
        image_ref: str | None = None,
    ) -> PostView:
        """Edit a post. ``image_ref=""`` removes the image; None leaves it.

        Raises:
            NotFoundError: If the post does not exist or was written by someone else
            ValidationError: If nothing is given or a value is malformed
        """
        if content is None and image_ref is None:
            raise ValidationError("Nothing to update")
        post = self._authored(post_id, author_id)
        if content is not None:
            post.content = _clean_content(content, POST_MAX_LENGTH, "Post")
        if image_ref is not None:
            post.image_ref = _clean_image(image_ref)
        post.updated_at = utc_now()

        self.session.add(post)
        self.session.commit()
        self.session.refresh(post)
        return self._view(post, author_id)

    @track_operation("delete_post")
    def delete_post(self, post_id: int, author_id: int) -> None:
        """Delete a post together with its likes and comments."""
        post = self._authored(post_id, author_id)
        self.posts.delete(post)
        self.session.commit()
        logger.info(f"🗑️  Post {post_id} deleted")

    # =========================================================================
    # Likes
    # =========================================================================

    @track_operation("like_post")
    def like(self, post_id: int, account_id: int) -> None:
        """Like a post once.

        Raises:
            NotFoundError: If the post does not exist
            ConflictError: If the account already likes the post
        """
        post = self._post(post_id)
        actor = self.session.get(AccountRow, account_id)
        if actor is None:
            raise NotFoundError("Account not found")
        if self.likes.exists((post_id, account_id)):
            raise ConflictError("Post already liked")
        try:
            self.likes.add(LikeRow(post_id=post_id, account_id=account_id))
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise ConflictError("Post already liked") from exc

        self._notify_author(
            post, account_id, NotificationType.POST_LIKE, f"{actor.display_name} liked your post"
        )

    @track_operation("unlike_post")
    def unlike(self, post_id: int, account_id: int) -> None:
        """Remove a like.

        Raises:
            NotFoundError: If the post does not exist
            InvalidOperationError: If the account does not like the post
        """
        self._post(post_id)
        like = self.likes.get((post_id, account_id))
        if like is None:
            raise InvalidOperationError("Post has not been liked")
        self.likes.delete(like)
        self.session.commit()

    # =========================================================================
    # Comments
    # =========================================================================

    @track_operation("comment_on_post")
    def comment(self, post_id: int, author_id: int, content: str) -> CommentView:
        """Add a comment.

        Raises:
            ValidationError: If content is empty or over 1000 characters
            NotFoundError: If the post does not exist
        """
        content = _clean_content(content, COMMENT_MAX_LENGTH, "Comment")
        post = self._post(post_id)
        if self.session.get(AccountRow, author_id) is None:
            raise NotFoundError("Account not found")

        comment = self.comments.add(CommentRow(post_id=post_id, author_id=author_id, content=content))
        self.session.commit()
        self.session.refresh(comment)

        author = public_accounts(self.session, {author_id}).get(author_id)
        view = CommentView.model_validate(comment)
        view.author = author

        name = author.display_name if author else "Someone"
        self._notify_author(
            post,
            author_id,
            NotificationType.POST_COMMENT,
            f'{name} commented on your post: "{truncate(content, 60)}"',
        )
        return view

    def list_comments(
        self, post_id: int, limit: int | None = None, offset: int | None = 0
    ) -> list[CommentView]:
        """Comments of a post, oldest first."""
        limit, offset = resolve_page(
            limit, offset, settings.page_default_limit, settings.page_max_limit
        )
        self._post(post_id)
        rows = self.session.exec(
            select(CommentRow)
            .where(CommentRow.post_id == post_id)
            .order_by(col(CommentRow.created_at), col(CommentRow.id))
            .limit(limit)
            .offset(offset)
        ).all()
        authors = public_accounts(self.session, {row.author_id for row in rows})
        views = []
        for row in rows:
            view = CommentView.model_validate(row)
            view.author = authors.get(row.author_id)
            views.append(view)
        return views

    @track_operation("delete_comment")
    def delete_comment(self, comment_id: int, author_id: int) -> None:
        comment = self.comments.get(comment_id)
        if comment is None or comment.author_id != author_id:
            raise NotFoundError("Comment not found")
        self.comments.delete(comment)
        self.session.commit()


__all__ = ["PostService", "POST_MAX_LENGTH", "COMMENT_MAX_LENGTH"]
