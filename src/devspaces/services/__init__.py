"""Application services.

- SessionService: server-side session store
- AuthGateway: OAuth authorization-code flow
- WorkspaceRegistry: conditional (compare-and-swap) workspace writes
- WorkspaceService: workspace lifecycle orchestration
"""

from devspaces.services.auth_gateway import AuthGateway, LoginResult
from devspaces.services.session_service import SessionService
from devspaces.services.user_service import upsert_user
from devspaces.services.workspace_registry import WorkspaceRegistry
from devspaces.services.workspace_service import WorkspaceService

__all__ = [
    "AuthGateway",
    "LoginResult",
    "SessionService",
    "WorkspaceRegistry",
    "WorkspaceService",
    "upsert_user",
]
