"""
Session authentication for HTTP routes and WebSocket upgrades.

Both surfaces read the user id that login stored in the signed session
cookie (Starlette ``SessionMiddleware`` populates ``scope["session"]`` for
``http`` and ``websocket`` scopes alike).
"""

from typing import Optional

from fastapi import Depends
from starlette.requests import HTTPConnection

from ..api.dependencies import get_user_store
from ..db.models import User
from ..db.users import UserStore
from ..errors import AuthenticationRequired
from .models import SESSION_USER_KEY


def session_user_id(conn: HTTPConnection) -> Optional[int]:
    """Return the authenticated user id carried by the session, if any."""
    if "session" not in conn.scope:
        return None
    raw = conn.session.get(SESSION_USER_KEY)
    if raw is None:
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def login_session(conn: HTTPConnection, user: User) -> None:
    conn.session.clear()
    conn.session[SESSION_USER_KEY] = user.id


def logout_session(conn: HTTPConnection) -> None:
    conn.session.clear()


async def optional_user(
    conn: HTTPConnection,
    users: UserStore = Depends(get_user_store),
) -> Optional[User]:
    """Current user or None; use for endpoints that work either way."""
    user_id = session_user_id(conn)
    if user_id is None:
        return None
    return await users.get_user(user_id)


async def require_user(
    conn: HTTPConnection,
    users: UserStore = Depends(get_user_store),
) -> User:
    """
    Require an authenticated session.

    Raises AuthenticationRequired (401) when there is no session user or the
    user no longer exists.
    """
    user = await optional_user(conn, users)
    if user is None:
        raise AuthenticationRequired("Not authenticated")
    return user
