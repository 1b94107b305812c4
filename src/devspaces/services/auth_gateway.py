"""Auth Gateway: the OAuth authorization-code flow.

initiate():
    issue a single-use nonce, persist it in the session, then redirect to
    the identity provider.

callback():
    1. no session / no nonce            -> SessionLostError
    2. state != nonce                   -> StateMismatchError (nonce consumed)
    3. code exchange fails              -> AuthError
    4. not in the target organization   -> NotAMemberError
    5. success hook rejects the login   -> AuthRejectedError
    6. regenerate the session id, attach the user, return to returnTo
"""

import logging
import secrets
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from devspaces.app.config import OAuthConfig
from devspaces.core.errors import (
    AuthError,
    AuthRejectedError,
    NotAMemberError,
    SessionLostError,
    StateMismatchError,
)
from devspaces.core.interfaces import IdentityProfile, IdentityProvider
from devspaces.core.logging_schema import LogEvent
from devspaces.core.models import Session, User
from devspaces.services.session_service import SessionService

logger = logging.getLogger(__name__)

AuthSuccessHook = Callable[[AsyncSession, str, IdentityProfile], Awaitable[User | None]]

NONCE_BYTES = 32


def generate_nonce() -> str:
    return secrets.token_hex(NONCE_BYTES)


def sanitize_return_to(value: str | None) -> str | None:
    """Accept only same-origin relative paths."""
    if not value or not value.startswith("/") or value.startswith("//"):
        return None
    if "\\" in value or any(ord(ch) < 0x20 for ch in value):
        return None
    return value


@dataclass(frozen=True)
class LoginResult:
    """Outcome of a successful callback."""

    session: Session
    user: User
    redirect_to: str


class AuthGateway:
    """Drives the three-legged OAuth flow against an IdentityProvider."""

    def __init__(
        self,
        identity: IdentityProvider,
        config: OAuthConfig,
        on_auth_success: AuthSuccessHook,
    ) -> None:
        self._identity = identity
        self._config = config
        self._on_auth_success = on_auth_success

    async def initiate(
        self,
        db: AsyncSession,
        session: Session | None,
        requested_return_to: str | None = None,
    ) -> tuple[Session, str]:
        """Store a fresh nonce in the session and build the provider URL.

        The session is persisted before the URL is returned; the callback may
        be served by a different process.

        Returns:
            (persisted session, provider authorization URL)

        Raises:
            SessionPersistError: If the session could not be saved
        """
        if session is None:
            session = SessionService.new_session()

        session.oauth_state = generate_nonce()
        session.return_to = sanitize_return_to(requested_return_to)
        session = await SessionService.save(db, session)

        logger.info(
            "OAuth flow initiated",
            extra={"event": LogEvent.OAUTH_INITIATED, "session_id": session.id[:8]},
        )
        return session, self._identity.authorization_url(
            session.oauth_state, self._config.scopes
        )

    async def callback(
        self,
        db: AsyncSession,
        session: Session | None,
        state: str | None,
        code: str | None,
    ) -> LoginResult:
        """Complete the flow.

        Raises:
            SessionLostError: No session or no pending nonce
            StateMismatchError: state differs from the stored nonce
            AuthError: Missing code or provider handshake failure
            NotAMemberError: Organization gate failed
            AuthRejectedError: Success hook rejected the login
            SessionPersistError: Session could not be saved
        """
        if session is None or not session.oauth_state:
            logger.warning(
                "OAuth callback without pending state",
                extra={"event": LogEvent.OAUTH_SESSION_LOST},
            )
            raise SessionLostError()

        # Single use: consumed before it is compared
        expected_state = session.oauth_state
        session.oauth_state = None
        await SessionService.save(db, session)

        if not state or not secrets.compare_digest(state, expected_state):
            logger.warning(
                "OAuth state mismatch",
                extra={
                    "event": LogEvent.OAUTH_STATE_MISMATCH,
                    "session_id": session.id[:8],
                },
            )
            raise StateMismatchError()

        if not code:
            raise AuthError("Missing authorization code")

        try:
            access_token = await self._identity.exchange_code(code)
            profile = await self._identity.fetch_profile(access_token)
        except AuthError as exc:
            logger.warning(
                "OAuth code exchange failed",
                extra={"event": LogEvent.OAUTH_EXCHANGE_FAILED, "error": exc.message},
            )
            raise

        await self._check_membership(access_token, profile)

        user = await self._on_auth_success(db, access_token, profile)
        if user is None:
            logger.warning(
                "Login rejected by success hook",
                extra={"event": LogEvent.AUTH_REJECTED, "username": profile.username},
            )
            raise AuthRejectedError()

        redirect_to = session.return_to or self._config.default_return_to
        new_session = await SessionService.regenerate(db, session, user_id=user.id)

        logger.info(
            "Login succeeded",
            extra={
                "event": LogEvent.LOGIN_SUCCESS,
                "user_id": user.id,
                "username": user.username,
            },
        )
        return LoginResult(session=new_session, user=user, redirect_to=redirect_to)

    async def _check_membership(
        self, access_token: str, profile: IdentityProfile
    ) -> None:
        organization = self._config.target_organization
        if not organization:
            return

        organizations = await self._identity.list_organizations(access_token)
        wanted = organization.casefold()
        if any(login.casefold() == wanted for login in organizations):
            return

        logger.warning(
            "User is not a member of the target organization",
            extra={
                "event": LogEvent.ORG_MEMBERSHIP_DENIED,
                "username": profile.username,
                "organization": organization,
            },
        )
        raise NotAMemberError(profile.username, organization)
