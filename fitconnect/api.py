"""REST API for FitConnect.

A thin FastAPI layer: each route resolves the caller, calls one service
method and wraps the result in the response envelope::

    {"success": true,  "message": "...", "data": {...} | null}
    {"success": false, "message": "..."}

Caller identity comes from the ``X-Account-Id`` header, which the
authentication proxy in front of the service sets after verifying the
session.

Example:
    >>> from fitconnect.api import create_app
    >>> app = create_app()
    >>> # or: uvicorn --factory fitconnect.api:create_app --port 3000
"""

import time
import uuid
from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager
from typing import Any, Literal, Optional

from fastapi import APIRouter, Depends, FastAPI, Header, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST
from pydantic import BaseModel, ConfigDict
from sqlalchemy import text
from sqlmodel import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from fitconnect import __version__
from fitconnect.accounts import AccountService
from fitconnect.activity import ActivityService
from fitconnect.connections import ConnectionService
from fitconnect.database import DatabaseManager
from fitconnect.errors import FitConnectError, UnauthorizedError
from fitconnect.feed import FeedService
from fitconnect.goals import GoalService
from fitconnect.logging import clear_request_context, logger, set_request_context
from fitconnect.metrics import (
    errors_total,
    generate_metrics_output,
    http_request_duration_seconds,
    http_requests_total,
)
from fitconnect.models import AccountRow, GoalCreate, GoalUpdate, ProfileUpdate
from fitconnect.notifications import NotificationService
from fitconnect.posts import PostService
from fitconnect.profiles import ProfileService

# =============================================================================
# Section 1: Request Bodies
# =============================================================================


class _Body(BaseModel):
    model_config = ConfigDict(extra="ignore")


class RegisterBody(_Body):
    email: str
    display_name: str
    credential_hash: str
    avatar_url: Optional[str] = None


class AccountPatchBody(_Body):
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None


class PostBody(_Body):
    content: str
    image_ref: Optional[str] = None


class PostPatchBody(_Body):
    content: Optional[str] = None
    image_ref: Optional[str] = None


class CommentBody(_Body):
    content: str


class ProgressBody(_Body):
    # Validated by GoalService so booleans and strings are rejected uniformly
    current_value: Any
    notes: Optional[str] = None


class ConnectionRequestBody(_Body):
    receiver_id: int


# =============================================================================
# Section 2: Envelope and Dependencies
# =============================================================================


def envelope(message: str, data: Any = None, status_code: int = 200) -> JSONResponse:
    """Successful response in the standard envelope."""
    return JSONResponse(
        status_code=status_code,
        content={"success": True, "message": message, "data": jsonable_encoder(data)},
    )


def failure(message: str, status_code: int) -> JSONResponse:
    """Error response in the standard envelope."""
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message},
    )


def get_session(request: Request) -> Iterator[Session]:
    """Request-scoped session from the app's DatabaseManager."""
    db: DatabaseManager = request.app.state.db
    yield from db.session_scope()


async def current_account(
    session: Session = Depends(get_session),
    x_account_id: Optional[int] = Header(default=None),
) -> int:
    """Resolve the calling account from the ``X-Account-Id`` header.

    Runs on the event loop so the account id it binds to the logging context
    is inherited by the route body.

    Raises:
        UnauthorizedError: If the header is missing or names no account
    """
    if x_account_id is None:
        raise UnauthorizedError("Missing X-Account-Id header")
    if session.get(AccountRow, x_account_id) is None:
        raise UnauthorizedError("Unknown account")
    set_request_context(account_id=x_account_id)
    return x_account_id


async def bind_operation(request: Request) -> None:
    """Label the logging context with the matched route template."""
    set_request_context(operation=f"{request.method} {_route_path(request)}")


# =============================================================================
# Section 3: Routes
# =============================================================================

accounts_router = APIRouter(prefix="/accounts", tags=["accounts"])
profiles_router = APIRouter(prefix="/profiles", tags=["profiles"])
goals_router = APIRouter(prefix="/goals", tags=["goals"])
connections_router = APIRouter(prefix="/connections", tags=["connections"])
posts_router = APIRouter(prefix="/posts", tags=["posts"])
activities_router = APIRouter(prefix="/activities", tags=["activities"])
notifications_router = APIRouter(prefix="/notifications", tags=["notifications"])
system_router = APIRouter(tags=["system"])


# ---- Accounts ---------------------------------------------------------------


@accounts_router.post("")
def register(body: RegisterBody, session: Session = Depends(get_session)):
    account = AccountService(session).register(
        body.email, body.display_name, body.credential_hash, body.avatar_url
    )
    return envelope("Account created", {"account": account}, status_code=201)


@accounts_router.get("/me")
def get_me(me: int = Depends(current_account), session: Session = Depends(get_session)):
    return envelope("Account retrieved", {"account": AccountService(session).get_account(me)})


@accounts_router.patch("/me")
def patch_me(
    body: AccountPatchBody,
    me: int = Depends(current_account),
    session: Session = Depends(get_session),
):
    changes: dict[str, Any] = {}
    if body.display_name is not None:
        changes["display_name"] = body.display_name
    if "avatar_url" in body.model_fields_set:
        changes["avatar_url"] = body.avatar_url
    account = AccountService(session).update_account(me, **changes)
    return envelope("Account updated", {"account": account})


@accounts_router.delete("/me")
def delete_me(me: int = Depends(current_account), session: Session = Depends(get_session)):
    AccountService(session).delete_account(me)
    return envelope("Account deleted")


@accounts_router.get("/{account_id}/posts")
def account_posts(
    account_id: int,
    limit: Optional[int] = Query(None),
    offset: int = Query(0),
    me: int = Depends(current_account),
    session: Session = Depends(get_session),
):
    posts = PostService(session).list_account_posts(account_id, me, limit=limit, offset=offset)
    return envelope("Posts retrieved", {"posts": posts})


# ---- Profiles ---------------------------------------------------------------


@profiles_router.get("/me")
def get_my_profile(me: int = Depends(current_account), session: Session = Depends(get_session)):
    return envelope("Profile retrieved", {"profile": ProfileService(session).get_own_profile(me)})


@profiles_router.put("/me")
def put_my_profile(
    body: ProfileUpdate,
    me: int = Depends(current_account),
    session: Session = Depends(get_session),
):
    profile = ProfileService(session).update_profile(me, body)
    return envelope("Profile updated", {"profile": profile})


@profiles_router.get("/{account_id}")
def get_profile(
    account_id: int,
    me: int = Depends(current_account),
    session: Session = Depends(get_session),
):
    profile = ProfileService(session).get_profile(me, account_id)
    return envelope("Profile retrieved", {"profile": profile})


# ---- Goals ------------------------------------------------------------------


@goals_router.get("")
def list_goals(
    status: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    limit: Optional[int] = Query(None),
    offset: int = Query(0),
    me: int = Depends(current_account),
    session: Session = Depends(get_session),
):
    goals = GoalService(session).list_goals(
        me, status=status, category=category, limit=limit, offset=offset
    )
    return envelope("Goals retrieved", {"goals": goals})


@goals_router.post("")
def create_goal(
    body: GoalCreate,
    me: int = Depends(current_account),
    session: Session = Depends(get_session),
):
    goal = GoalService(session).create_goal(me, body)
    return envelope("Goal created", {"goal": goal}, status_code=201)


@goals_router.get("/{goal_id}")
def get_goal(goal_id: int, me: int = Depends(current_account), session: Session = Depends(get_session)):
    return envelope("Goal retrieved", {"goal": GoalService(session).get_goal(goal_id, me)})


@goals_router.put("/{goal_id}")
def update_goal(
    goal_id: int,
    body: GoalUpdate,
    me: int = Depends(current_account),
    session: Session = Depends(get_session),
):
    goal = GoalService(session).update_goal(goal_id, me, body)
    return envelope("Goal updated", {"goal": goal})


@goals_router.delete("/{goal_id}")
def delete_goal(goal_id: int, me: int = Depends(current_account), session: Session = Depends(get_session)):
    GoalService(session).delete_goal(goal_id, me)
    return envelope("Goal deleted")


@goals_router.patch("/{goal_id}/progress")
def update_progress(
    goal_id: int,
    body: ProgressBody,
    me: int = Depends(current_account),
    session: Session = Depends(get_session),
):
    goal = GoalService(session).apply_progress(goal_id, me, body.current_value, body.notes)
    return envelope("Progress updated", {"goal": goal})


# ---- Connections ------------------------------------------------------------


@connections_router.get("")
def list_connections(
    limit: Optional[int] = Query(None),
    offset: int = Query(0),
    me: int = Depends(current_account),
    session: Session = Depends(get_session),
):
    connections = ConnectionService(session).list_connections(me, limit=limit, offset=offset)
    return envelope("Connections retrieved", {"connections": connections})


@connections_router.post("")
def send_request(
    body: ConnectionRequestBody,
    me: int = Depends(current_account),
    session: Session = Depends(get_session),
):
    connection = ConnectionService(session).send_request(me, body.receiver_id)
    return envelope("Connection request sent", {"connection": connection}, status_code=201)


@connections_router.get("/requests")
def pending_requests(
    direction: Literal["incoming", "outgoing"] = Query("incoming"),
    me: int = Depends(current_account),
    session: Session = Depends(get_session),
):
    connections = ConnectionService(session).pending_requests(me, direction)
    return envelope("Connection requests retrieved", {"connections": connections})


@connections_router.post("/{connection_id}/accept")
def accept(connection_id: int, me: int = Depends(current_account), session: Session = Depends(get_session)):
    connection = ConnectionService(session).accept(connection_id, me)
    return envelope("Connection accepted", {"connection": connection})


@connections_router.post("/{connection_id}/reject")
def reject(connection_id: int, me: int = Depends(current_account), session: Session = Depends(get_session)):
    connection = ConnectionService(session).reject(connection_id, me)
    return envelope("Connection rejected", {"connection": connection})


@connections_router.post("/{connection_id}/block")
def block(connection_id: int, me: int = Depends(current_account), session: Session = Depends(get_session)):
    connection = ConnectionService(session).block(connection_id, me)
    return envelope("Connection blocked", {"connection": connection})


# ---- Posts ------------------------------------------------------------------


@posts_router.get("/feed")
def get_feed(
    limit: Optional[int] = Query(None),
    offset: int = Query(0),
    me: int = Depends(current_account),
    session: Session = Depends(get_session),
):
    posts = FeedService(session).get_feed(me, limit=limit, offset=offset)
    return envelope("Feed retrieved", {"posts": posts})


@posts_router.post("")
def create_post(body: PostBody, me: int = Depends(current_account), session: Session = Depends(get_session)):
    post = PostService(session).create_post(me, body.content, body.image_ref)
    return envelope("Post created", {"post": post}, status_code=201)


@posts_router.delete("/comments/{comment_id}")
def delete_comment(
    comment_id: int,
    me: int = Depends(current_account),
    session: Session = Depends(get_session),
):
    PostService(session).delete_comment(comment_id, me)
    return envelope("Comment deleted")


@posts_router.get("/{post_id}")
def get_post(post_id: int, me: int = Depends(current_account), session: Session = Depends(get_session)):
    return envelope("Post retrieved", {"post": PostService(session).get_post(post_id, me)})


@posts_router.put("/{post_id}")
def update_post(
    post_id: int,
    body: PostPatchBody,
    me: int = Depends(current_account),
    session: Session = Depends(get_session),
):
    post = PostService(session).update_post(post_id, me, body.content, body.image_ref)
    return envelope("Post updated", {"post": post})


@posts_router.delete("/{post_id}")
def delete_post(post_id: int, me: int = Depends(current_account), session: Session = Depends(get_session)):
    PostService(session).delete_post(post_id, me)
    return envelope("Post deleted")


@posts_router.post("/{post_id}/like")
def like_post(post_id: int, me: int = Depends(current_account), session: Session = Depends(get_session)):
    PostService(session).like(post_id, me)
    return envelope("Post liked")


@posts_router.delete("/{post_id}/like")
def unlike_post(post_id: int, me: int = Depends(current_account), session: Session = Depends(get_session)):
    PostService(session).unlike(post_id, me)
    return envelope("Post unliked")


@posts_router.get("/{post_id}/comments")
def list_comments(
    post_id: int,
    limit: Optional[int] = Query(None),
    offset: int = Query(0),
    me: int = Depends(current_account),
    session: Session = Depends(get_session),
):
    comments = PostService(session).list_comments(post_id, limit=limit, offset=offset)
    return envelope("Comments retrieved", {"comments": comments})


@posts_router.post("/{post_id}/comments")
def add_comment(
    post_id: int,
    body: CommentBody,
    me: int = Depends(current_account),
    session: Session = Depends(get_session),
):
    comment = PostService(session).comment(post_id, me, body.content)
    return envelope("Comment added", {"comment": comment}, status_code=201)


# ---- Activities -------------------------------------------------------------


@activities_router.get("")
def my_activities(
    type: Optional[str] = Query(None),
    limit: Optional[int] = Query(None),
    offset: int = Query(0),
    me: int = Depends(current_account),
    session: Session = Depends(get_session),
):
    activities = ActivityService(session).list_for(me, type=type, limit=limit, offset=offset)
    return envelope("Activities retrieved", {"activities": activities})


@activities_router.get("/{account_id}")
def account_activities(
    account_id: int,
    limit: Optional[int] = Query(None),
    offset: int = Query(0),
    me: int = Depends(current_account),
    session: Session = Depends(get_session),
):
    activities = ActivityService(session).list_visible(me, account_id, limit=limit, offset=offset)
    return envelope("Activities retrieved", {"activities": activities})


# ---- Notifications ----------------------------------------------------------


@notifications_router.get("")
def list_notifications(
    unread_only: bool = Query(False),
    limit: Optional[int] = Query(None),
    offset: int = Query(0),
    me: int = Depends(current_account),
    session: Session = Depends(get_session),
):
    notifications = NotificationService(session).list_for(
        me, unread_only=unread_only, limit=limit, offset=offset
    )
    return envelope("Notifications retrieved", {"notifications": notifications})


@notifications_router.get("/unread-count")
def unread_count(me: int = Depends(current_account), session: Session = Depends(get_session)):
    return envelope("Unread count retrieved", {"count": NotificationService(session).unread_count(me)})


@notifications_router.post("/read-all")
def read_all(me: int = Depends(current_account), session: Session = Depends(get_session)):
    updated = NotificationService(session).mark_all_read(me)
    return envelope("Notifications marked as read", {"updated": updated})


@notifications_router.post("/{notification_id}/read")
def read_one(
    notification_id: int,
    me: int = Depends(current_account),
    session: Session = Depends(get_session),
):
    notification = NotificationService(session).mark_read(notification_id, me)
    return envelope("Notification marked as read", {"notification": notification})


# ---- System -----------------------------------------------------------------


@system_router.get("/api/health")
def health(session: Session = Depends(get_session)):
    session.connection().execute(text("SELECT 1"))
    return envelope("OK", {"status": "ok", "version": __version__, "database": "ok"})


@system_router.get("/metrics")
def metrics():
    return Response(generate_metrics_output(), media_type=CONTENT_TYPE_LATEST)


# =============================================================================
# Section 4: Application Factory
# =============================================================================


def _route_path(request: Request) -> str:
    route = request.scope.get("route")
    return getattr(route, "path", request.url.path)


def create_app(db: DatabaseManager | None = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        db: Database manager to serve from. When omitted, one is created from
            settings and disposed of on shutdown.

    Returns:
        Configured FastAPI app
    """
    owns_db = db is None
    db = db or DatabaseManager()
    db.initialize()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info(f"🚀 FitConnect API {__version__} starting")
        yield
        if owns_db:
            db.close()
        logger.info("👋 FitConnect API stopped")

    app = FastAPI(
        title="FitConnect API",
        version=__version__,
        lifespan=lifespan,
        dependencies=[Depends(bind_operation)],
    )
    app.state.db = db

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]
        set_request_context(request_id=request_id, operation=f"{request.method} {request.url.path}")
        start = time.perf_counter()
        status = 500
        try:
            response = await call_next(request)
            status = response.status_code
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            path = _route_path(request)
            http_requests_total.labels(status=str(status), path=path, method=request.method).inc()
            http_request_duration_seconds.labels(
                status=str(status), path=path, method=request.method
            ).observe(time.perf_counter() - start)
            clear_request_context()

    @app.exception_handler(FitConnectError)
    async def service_error_handler(request: Request, exc: FitConnectError):
        if exc.status_code >= 500:
            errors_total.labels(error_type=type(exc).__name__, component="api").inc()
            logger.opt(exception=exc).error(f"❌ {request.method} {request.url.path}: {exc.message}")
        else:
            logger.info(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
        return failure(exc.message, exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        messages = []
        for error in exc.errors():
            loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path", "header")]
            field = ".".join(loc) or "request"
            messages.append(f"{field}: {error.get('msg', 'Invalid value')}")
        return failure("; ".join(messages) or "Validation failed", 400)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return failure(str(exc.detail), exc.status_code)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        errors_total.labels(error_type=type(exc).__name__, component="api").inc()
        logger.opt(exception=exc).error(f"🔥 Unhandled error on {request.method} {request.url.path}")
        return failure("An internal server error occurred", 500)

    api = APIRouter(prefix="/api")
    for router in (
        accounts_router,
        profiles_router,
        goals_router,
        connections_router,
        posts_router,
        activities_router,
        notifications_router,
    ):
        api.include_router(router)
    app.include_router(api)
    app.include_router(system_router)

    return app


__all__ = ["create_app", "envelope", "failure", "get_session", "current_account"]
