"""Database models for devspaces.

Models are defined using SQLModel (SQLAlchemy + Pydantic).
"""

from devspaces.core.models.auth import Session, User, generate_session_id, utc_now
from devspaces.core.models.workspace import Workspace, generate_ulid

__all__ = [
    "User",
    "Session",
    "Workspace",
    "generate_session_id",
    "generate_ulid",
    "utc_now",
]
