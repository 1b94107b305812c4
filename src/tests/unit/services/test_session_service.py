"""Tests for SessionService."""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import OperationalError

from devspaces.core.errors import SessionPersistError
from devspaces.core.models import Session
from devspaces.services.session_service import SessionService


def _naive(value: datetime) -> datetime:
    # SQLite returns naive datetimes
    return value.replace(tzinfo=None) if value.tzinfo else value


async def test_create_anonymous_session(db_session):
    """Anonymous sessions carry no user and expire one TTL from now."""
    session = await SessionService.create(db_session)

    assert session.id
    assert session.user_id is None
    assert session.oauth_state is None
    assert _naive(session.expires_at) > datetime.now(UTC).replace(tzinfo=None)
    assert session.revoked_at is None


async def test_session_ids_are_unique(db_session):
    first = await SessionService.create(db_session)
    second = await SessionService.create(db_session)

    assert first.id != second.id
    assert len(first.id) >= 32


async def test_get_valid_with_user(db_session, test_user):
    created = await SessionService.create(db_session, test_user.id)

    result = await SessionService.get_valid_with_user(db_session, created.id)

    assert result is not None
    session, user = result
    assert session.id == created.id
    assert user.id == test_user.id


async def test_get_valid_with_user_anonymous(db_session):
    created = await SessionService.create(db_session)

    result = await SessionService.get_valid_with_user(db_session, created.id)

    assert result is not None
    assert result[1] is None


async def test_get_valid_not_found(db_session):
    assert await SessionService.get_valid(db_session, "nonexistent") is None


async def test_expired_session_is_invalid(db_session, test_user):
    session = Session(
        user_id=test_user.id,
        expires_at=datetime.now(UTC) - timedelta(hours=1),
    )
    db_session.add(session)
    await db_session.commit()

    assert await SessionService.get_valid(db_session, session.id) is None


async def test_revoke_session(db_session, test_user):
    created = await SessionService.create(db_session, test_user.id)

    assert await SessionService.revoke(db_session, created.id) is True
    assert await SessionService.get_valid(db_session, created.id) is None
    assert await SessionService.revoke(db_session, "nonexistent") is False


async def test_sliding_expiry(db_session, test_user):
    """A session older than refresh_after gets its expiry pushed forward."""
    old_expiry = datetime.now(UTC) + timedelta(hours=1)
    session = Session(user_id=test_user.id, expires_at=old_expiry)
    db_session.add(session)
    await db_session.commit()

    loaded = await SessionService.get_valid(db_session, session.id)

    assert _naive(loaded.expires_at) > _naive(old_expiry) + timedelta(hours=22)


async def test_fresh_session_is_not_rewritten(db_session, test_user):
    created = await SessionService.create(db_session, test_user.id)

    assert await SessionService.touch(db_session, created) is False


async def test_regenerate_issues_new_id(db_session, test_user):
    """Regenerate re-keys the session; the old id stops resolving."""
    old = await SessionService.create(db_session)
    old.oauth_state = "nonce"
    old.return_to = "/somewhere"
    await SessionService.save(db_session, old)
    old_id = old.id

    new = await SessionService.regenerate(db_session, old, user_id=test_user.id)

    assert new.id != old_id
    assert new.user_id == test_user.id
    assert new.oauth_state is None
    assert await SessionService.get_valid(db_session, old_id) is None
    assert (await SessionService.get_valid(db_session, new.id)).id == new.id


async def test_save_failure_is_hard_error():
    db = AsyncMock()
    db.add = lambda _obj: None
    db.commit.side_effect = OperationalError("UPDATE", {}, Exception("disk I/O"))

    with pytest.raises(SessionPersistError):
        await SessionService.save(db, SessionService.new_session())

    db.rollback.assert_awaited_once()


def test_is_valid_handles_naive_datetimes():
    session = Session(expires_at=datetime.now(UTC).replace(tzinfo=None) + timedelta(1))
    assert SessionService.is_valid(session)

    session.revoked_at = datetime.now(UTC)
    assert not SessionService.is_valid(session)
