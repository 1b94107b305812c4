"""Authentication endpoints.

Endpoints:
- GET /auth/github, GET /auth - Start the OAuth flow (302 to GitHub)
- GET /auth/github/callback - Complete the OAuth flow
- GET /logout - Revoke the session
- GET /api/auth/verify - Session check for an upstream reverse proxy
- GET /api/user - Current user projection
"""

import logging
from urllib.parse import urlencode

from fastapi import APIRouter, Query, Request
from fastapi.responses import PlainTextResponse, RedirectResponse, Response
from pydantic import BaseModel

from devspaces.app.api.dependencies import (
    Ctx,
    DbSession,
    Gateway,
    clear_session_cookie,
    get_session_id,
    load_session,
    set_session_cookie,
)
from devspaces.app.config import get_settings
from devspaces.core.errors import (
    AuthError,
    AuthRejectedError,
    NotAMemberError,
    SessionLostError,
    SessionPersistError,
    StateMismatchError,
)
from devspaces.core.logging_schema import LogEvent
from devspaces.services.session_service import SessionService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])

AUTH_USER_HEADER = "X-Auth-User"
AUTH_USER_ID_HEADER = "X-Auth-User-Id"


class UserResponse(BaseModel):
    """Response schema for the current user. Never carries the access token."""

    id: str
    username: str
    display_name: str | None
    email: str | None
    avatar: str | None

    model_config = {"from_attributes": True}


def _failure_redirect(message: str) -> RedirectResponse:
    target = get_settings().auth.oauth.failure_redirect
    return RedirectResponse(
        f"{target}?{urlencode({'error': message})}", status_code=302
    )


@router.get("/auth/github")
@router.get("/auth")
async def login(
    request: Request,
    db: DbSession,
    gateway: Gateway,
    return_to: str | None = Query(default=None, alias="returnTo"),
) -> Response:
    """Issue a nonce and redirect to the identity provider."""
    session = await load_session(request, db)
    try:
        session, url = await gateway.initiate(db, session, return_to)
    except SessionPersistError:
        return PlainTextResponse("Session error", status_code=500)

    response = RedirectResponse(url, status_code=302)
    set_session_cookie(response, session.id)
    return response


@router.get("/auth/github/callback")
async def callback(
    request: Request,
    db: DbSession,
    gateway: Gateway,
    state: str | None = None,
    code: str | None = None,
) -> Response:
    """Complete the OAuth flow and redirect to the saved returnTo."""
    session = await load_session(request, db)
    try:
        result = await gateway.callback(db, session, state, code)
    except (SessionLostError, StateMismatchError) as exc:
        return PlainTextResponse(exc.message, status_code=403)
    except SessionPersistError:
        return PlainTextResponse("Session error", status_code=500)
    except NotAMemberError as exc:
        return _failure_redirect(
            f"Access is restricted to members of the {exc.organization} organization"
        )
    except AuthRejectedError:
        return _failure_redirect("Authentication failed")
    except AuthError:
        return _failure_redirect("An error occurred during authentication")

    response = RedirectResponse(result.redirect_to, status_code=302)
    set_session_cookie(response, result.session.id)
    return response


@router.get("/logout")
async def logout(request: Request, db: DbSession) -> Response:
    """Revoke the session and clear the cookie."""
    session_id = get_session_id(request)
    if session_id:
        await SessionService.revoke(db, session_id)
        logger.info(
            "Logged out",
            extra={"event": LogEvent.LOGOUT, "session_id": session_id[:8]},
        )

    response = RedirectResponse("/", status_code=302)
    clear_session_cookie(response)
    return response


@router.get("/api/auth/verify")
async def verify(ctx: Ctx) -> Response:
    """Boundary check for an upstream reverse proxy.

    200 with identity headers for an authenticated session, 401 otherwise.
    The session cookie is re-issued so the browser expiry keeps sliding.
    """
    response = PlainTextResponse(
        "OK",
        headers={
            AUTH_USER_HEADER: ctx.user.username,
            AUTH_USER_ID_HEADER: ctx.user.id,
        },
    )
    set_session_cookie(response, ctx.session.id)
    return response


@router.get("/api/user", response_model=UserResponse)
async def current_user(ctx: Ctx) -> UserResponse:
    return UserResponse.model_validate(ctx.user)
