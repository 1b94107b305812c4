"""Session management service for devspaces.

Provides server-side session lifecycle management:
- Create: Issue a new (anonymous) session with TTL
- Get valid: Retrieve, validate and slide a session
- Save: Persist pending changes (hard failure, never best-effort)
- Regenerate: Re-key a session on login (session-fixation mitigation)
- Revoke: Invalidate session
"""

import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from devspaces.app.config import get_settings
from devspaces.core.errors import SessionPersistError
from devspaces.core.logging_schema import LogEvent
from devspaces.core.models import Session, User

logger = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    # SQLite returns naive datetimes; everything is stored in UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _ttl() -> timedelta:
    return timedelta(seconds=get_settings().auth.session.ttl_seconds())


class SessionService:
    """Service for managing server-side sessions."""

    @staticmethod
    def new_session(user_id: str | None = None) -> Session:
        """Build an unsaved session expiring one TTL from now."""
        return Session(user_id=user_id, expires_at=datetime.now(UTC) + _ttl())

    @staticmethod
    async def create(db: AsyncSession, user_id: str | None = None) -> Session:
        """Create and persist a new session."""
        return await SessionService.save(db, SessionService.new_session(user_id))

    @staticmethod
    async def save(db: AsyncSession, session: Session) -> Session:
        """Persist the session.

        Raises:
            SessionPersistError: If the write fails
        """
        db.add(session)
        try:
            await db.commit()
        except SQLAlchemyError as exc:
            await db.rollback()
            logger.error(
                "Failed to persist session",
                extra={
                    "event": LogEvent.SESSION_PERSIST_FAILED,
                    "error_type": type(exc).__name__,
                },
            )
            raise SessionPersistError() from exc
        return session

    @staticmethod
    async def get_valid(db: AsyncSession, session_id: str) -> Session | None:
        """Get a valid session by ID, sliding its expiry.

        Returns None if session doesn't exist, is revoked, or is expired.
        """
        result = await db.execute(
            select(Session).where(Session.id == session_id)  # type: ignore[arg-type]
        )
        session = result.scalar_one_or_none()

        if session is None or not SessionService.is_valid(session):
            return None

        await SessionService.touch(db, session)
        return session

    @staticmethod
    async def get_valid_with_user(
        db: AsyncSession, session_id: str
    ) -> tuple[Session, User | None] | None:
        """Get a valid session with its (optional) authenticated user."""
        session = await SessionService.get_valid(db, session_id)
        if session is None:
            return None
        if session.user_id is None:
            return session, None

        user = await db.get(User, session.user_id)
        return session, user

    @staticmethod
    async def touch(db: AsyncSession, session: Session) -> bool:
        """Slide expires_at forward once refresh_after has elapsed.

        Returns:
            True if the expiry was moved
        """
        config = get_settings().auth.session
        ttl = timedelta(seconds=config.ttl_seconds())
        now = datetime.now(UTC)
        last_slide = _as_utc(session.expires_at) - ttl

        if now - last_slide < timedelta(seconds=config.refresh_after_seconds()):
            return False

        session.expires_at = now + ttl
        await SessionService.save(db, session)
        return True

    @staticmethod
    async def regenerate(
        db: AsyncSession, session: Session, *, user_id: str | None
    ) -> Session:
        """Replace the session with a freshly keyed one in one transaction.

        The returned session carries user_id and no pending OAuth state.
        The old identifier stops resolving once this returns.

        Raises:
            SessionPersistError: If the write fails
        """
        replacement = SessionService.new_session(user_id)
        db.add(replacement)
        await db.delete(session)
        return await SessionService.save(db, replacement)

    @staticmethod
    async def revoke(db: AsyncSession, session_id: str) -> bool:
        """Revoke a session by setting revoked_at.

        Returns:
            True if session was revoked, False if not found
        """
        result = await db.execute(
            select(Session).where(Session.id == session_id)  # type: ignore[arg-type]
        )
        session = result.scalar_one_or_none()

        if session is None:
            return False

        session.revoked_at = datetime.now(UTC)
        await db.commit()
        return True

    @staticmethod
    def is_valid(session: Session) -> bool:
        """Check if a session is valid (not expired and not revoked)."""
        if session.revoked_at is not None:
            return False
        return _as_utc(session.expires_at) > datetime.now(UTC)
