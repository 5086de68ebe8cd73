import logging
from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from .auth import ANONYMOUS, Authenticated, InactiveUserError, SessionUser, enrich_token, session_from_token
from .cache import ViewCache, views
from .database import get_db
from .repositories import (
    SqlAlchemyTodoRepository,
    SqlAlchemyUserRepository,
    TodoRepository,
    UserRepository,
)

logger = logging.getLogger(__name__)

SESSION_TOKEN_KEY = "token"


class LoginRequired(Exception):
    """Raised by page handlers when the visitor has no session."""

    def __init__(self, next_path: str):
        self.next_path = next_path


def get_user_repository(db: Session = Depends(get_db)) -> UserRepository:
    return SqlAlchemyUserRepository(db)


def get_todo_repository(db: Session = Depends(get_db)) -> TodoRepository:
    return SqlAlchemyTodoRepository(db)


def get_view_cache() -> ViewCache:
    return views


def get_session(
    request: Request, users: UserRepository = Depends(get_user_repository)
) -> SessionUser:
    """Refresh the session token and expose it as a SessionUser."""
    token = request.session.get(SESSION_TOKEN_KEY)
    if not token:
        return ANONYMOUS
    try:
        token = enrich_token(users, dict(token))
    except InactiveUserError:
        logger.warning("Ending session of inactive user %s", token.get("email"))
        request.session.clear()
        return ANONYMOUS
    request.session[SESSION_TOKEN_KEY] = token
    return session_from_token(token)


def require_session(session: SessionUser = Depends(get_session)) -> Authenticated:
    if not isinstance(session, Authenticated):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Please log in to continue.",
        )
    return session


def require_page_session(
    request: Request, session: SessionUser = Depends(get_session)
) -> Authenticated:
    if not isinstance(session, Authenticated):
        raise LoginRequired(request.url.path)
    return session


@dataclass
class RequestContext:
    session: SessionUser
    users: UserRepository
    todos: TodoRepository
    views: ViewCache


def get_context(
    session: SessionUser = Depends(get_session),
    users: UserRepository = Depends(get_user_repository),
    todos: TodoRepository = Depends(get_todo_repository),
    cache: ViewCache = Depends(get_view_cache),
) -> RequestContext:
    return RequestContext(session=session, users=users, todos=todos, views=cache)


def get_page_context(
    session: Authenticated = Depends(require_page_session),
    users: UserRepository = Depends(get_user_repository),
    todos: TodoRepository = Depends(get_todo_repository),
    cache: ViewCache = Depends(get_view_cache),
) -> RequestContext:
    return RequestContext(session=session, users=users, todos=todos, views=cache)
