"""Workspace model."""

from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, String, Text
from sqlmodel import Field, SQLModel
from ulid import ULID

from devspaces.core.domain.workspace import WorkspaceStatus
from devspaces.core.models.auth import utc_now


def generate_ulid() -> str:
    """Generate a new ULID string."""
    return str(ULID())


class Workspace(SQLModel, table=True):
    """Workspace record.

    owner_id is None while the workspace is released to the shared pool.
    container_id is only meaningful while status is starting/running/stopping;
    an ERROR record may keep a stale handle for diagnostics.
    """

    __tablename__ = "workspaces"

    id: str = Field(default_factory=generate_ulid, primary_key=True)
    name: str = Field(max_length=255, unique=True, index=True)
    repo_url: str = Field(sa_column=Column(Text, nullable=False))
    owner_id: str | None = Field(default=None, foreign_key="users.id", index=True)
    created_by: str | None = Field(default=None, foreign_key="users.id")
    status: WorkspaceStatus = Field(default=WorkspaceStatus.STOPPED, sa_type=String)
    container_id: str | None = Field(default=None, max_length=128)
    build_status: str | None = Field(default=None, max_length=64)
    env_vars: dict[str, str] = Field(
        default_factory=dict, sa_column=Column(JSON, nullable=False, default=dict)
    )
    created_at: datetime = Field(
        default_factory=utc_now, sa_column=Column(DateTime(timezone=True), nullable=False)
    )
    updated_at: datetime = Field(
        default_factory=utc_now, sa_column=Column(DateTime(timezone=True), nullable=False)
    )
