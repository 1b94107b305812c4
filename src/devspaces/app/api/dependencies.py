"""API dependencies for devspaces.

Builds the explicit per-request context (db session, server-side session,
authenticated user, request-scoped logger) and wires services.
"""

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from devspaces.adapters.identity import GitHubIdentityProvider
from devspaces.adapters.runtime import DockerContainerRuntime
from devspaces.app.config import get_settings
from devspaces.app.logging import ContextLogger
from devspaces.core.errors import UnauthorizedError
from devspaces.core.interfaces import ContainerRuntime, IdentityProvider
from devspaces.core.models import Session, User
from devspaces.infra import get_session
from devspaces.services.auth_gateway import AuthGateway
from devspaces.services.session_service import SessionService
from devspaces.services.user_service import upsert_user
from devspaces.services.workspace_service import WorkspaceService

logger = logging.getLogger("devspaces.request")

DbSession = Annotated[AsyncSession, Depends(get_session)]


@dataclass
class RequestContext:
    """Everything a handler needs about the caller, passed explicitly."""

    db: AsyncSession
    session: Session
    user: User
    log: ContextLogger


# =============================================================================
# Session cookie
# =============================================================================


def set_session_cookie(response: Response, session_id: str) -> None:
    config = get_settings().auth.session
    response.set_cookie(
        key=config.cookie_name,
        value=session_id,
        max_age=config.ttl_seconds(),
        path="/",
        httponly=True,
        secure=config.secure,
        samesite="lax",
    )


def clear_session_cookie(response: Response) -> None:
    config = get_settings().auth.session
    response.delete_cookie(
        key=config.cookie_name,
        path="/",
        httponly=True,
        secure=config.secure,
        samesite="lax",
    )


def get_session_id(request: Request) -> str | None:
    return request.cookies.get(get_settings().auth.session.cookie_name)


async def load_session(request: Request, db: AsyncSession) -> Session | None:
    """Load the caller's valid session (anonymous or authenticated), if any."""
    session_id = get_session_id(request)
    if not session_id:
        return None
    return await SessionService.get_valid(db, session_id)


async def get_request_context(
    request: Request, response: Response, db: DbSession
) -> RequestContext:
    """Resolve the authenticated caller.

    Re-issues the session cookie so the browser expiry slides with the
    server-side one.

    Raises:
        UnauthorizedError: No session cookie, invalid/expired session, or
            session not yet authenticated
    """
    session_id = get_session_id(request)
    if not session_id:
        raise UnauthorizedError()

    result = await SessionService.get_valid_with_user(db, session_id)
    if result is None or result[1] is None:
        raise UnauthorizedError()

    session, user = result
    set_session_cookie(response, session.id)

    log = ContextLogger(
        logger,
        {
            "session_id": session.id[:8],
            "user_id": user.id,
        },
    )
    return RequestContext(db=db, session=session, user=user, log=log)


# =============================================================================
# Services
# =============================================================================


@lru_cache
def get_container_runtime() -> ContainerRuntime:
    """Get container runtime singleton."""
    settings = get_settings()
    return DockerContainerRuntime(
        docker_host=settings.runtime.docker_host,
        image=settings.runtime.default_image,
        container_prefix=settings.runtime.container_prefix,
        network_name=settings.runtime.network_name,
    )


@lru_cache
def get_identity_provider() -> IdentityProvider:
    """Get identity provider singleton."""
    oauth = get_settings().auth.oauth
    return GitHubIdentityProvider(
        client_id=oauth.client_id,
        client_secret=oauth.client_secret,
        callback_url=oauth.callback_url,
        authorize_url=oauth.authorize_url,
        token_url=oauth.token_url,
        api_base_url=oauth.api_base_url,
        timeout=oauth.timeout_seconds(),
    )


def get_workspace_service(
    runtime: Annotated[ContainerRuntime, Depends(get_container_runtime)],
) -> WorkspaceService:
    return WorkspaceService(
        runtime, call_timeout=get_settings().runtime.call_timeout_seconds()
    )


def get_auth_gateway(
    identity: Annotated[IdentityProvider, Depends(get_identity_provider)],
) -> AuthGateway:
    return AuthGateway(identity, get_settings().auth.oauth, upsert_user)


Ctx = Annotated[RequestContext, Depends(get_request_context)]
WsService = Annotated[WorkspaceService, Depends(get_workspace_service)]
Gateway = Annotated[AuthGateway, Depends(get_auth_gateway)]
