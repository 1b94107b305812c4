"""User upsert, used as the login success hook."""

import logging

from sqlalchemy import update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import col

from devspaces.core.interfaces import IdentityProfile
from devspaces.core.models import User, utc_now

logger = logging.getLogger(__name__)


def _insert_for(db: AsyncSession):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise RuntimeError(f"Unsupported database dialect: {dialect}")


async def _release_username(db: AsyncSession, username: str, user_id: str) -> None:
    """Move a username held by another account out of the way.

    Provider usernames can be renamed and reclaimed; the stable id wins.
    The stale row becomes ``<username>-<id>`` until its owner logs in again.
    """
    result = await db.execute(
        update(User)
        .where(col(User.username) == username, col(User.id) != user_id)
        .values(
            username=col(User.username) + "-" + col(User.id),
            updated_at=utc_now(),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount:  # type: ignore[attr-defined]
        logger.info(
            "Username %s reclaimed by user %s",
            username,
            user_id,
            extra={"user_id": user_id},
        )


async def upsert_user(
    db: AsyncSession, access_token: str, profile: IdentityProfile
) -> User | None:
    """Create or refresh the user keyed by the provider's stable id.

    Returns None (login rejected) when the profile lacks an id or username.
    """
    if not profile.id or not profile.username:
        logger.warning("Provider profile is missing id or username")
        return None

    now = utc_now()
    values = {
        "username": profile.username,
        "display_name": profile.display_name,
        "email": profile.email,
        "avatar": profile.avatar,
        "access_token": access_token,
        "updated_at": now,
    }

    await _release_username(db, profile.username, profile.id)

    insert = _insert_for(db)
    stmt = insert(User).values(id=profile.id, created_at=now, **values)
    stmt = stmt.on_conflict_do_update(index_elements=["id"], set_=values)
    await db.execute(stmt)
    await db.commit()

    return await db.get(User, profile.id, populate_existing=True)
