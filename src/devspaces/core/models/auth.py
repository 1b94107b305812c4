"""Authentication models (User, Session).

Models are defined using SQLModel (SQLAlchemy + Pydantic).
"""

import secrets
from datetime import UTC, datetime

from sqlalchemy import Column, DateTime, Text
from sqlmodel import Field, SQLModel


def generate_session_id() -> str:
    """Generate an opaque, unguessable session identifier."""
    return secrets.token_urlsafe(32)


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(UTC)


class User(SQLModel, table=True):
    """User account, keyed by the identity provider's stable user id."""

    __tablename__ = "users"

    id: str = Field(primary_key=True)
    username: str = Field(unique=True, index=True)
    display_name: str | None = Field(default=None)
    email: str | None = Field(default=None)
    avatar: str | None = Field(default=None)
    # Provider token for calls on behalf of the user; never serialized to clients
    access_token: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(
        default_factory=utc_now, sa_column=Column(DateTime(timezone=True))
    )
    updated_at: datetime = Field(
        default_factory=utc_now, sa_column=Column(DateTime(timezone=True))
    )


class Session(SQLModel, table=True):
    """Server-side session, keyed by the cookie value.

    Anonymous until user_id is attached on a successful OAuth callback.
    """

    __tablename__ = "sessions"

    id: str = Field(default_factory=generate_session_id, primary_key=True)
    user_id: str | None = Field(default=None, foreign_key="users.id", index=True)
    oauth_state: str | None = Field(default=None)
    return_to: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(
        default_factory=utc_now, sa_column=Column(DateTime(timezone=True))
    )
    expires_at: datetime = Field(sa_column=Column(DateTime(timezone=True)))
    revoked_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True))
    )
