"""Domain models and enums."""

from devspaces.core.domain.workspace import (
    DELETABLE_STATES,
    LIVE_STATES,
    STARTABLE_STATES,
    STOPPABLE_STATES,
    WORKSPACE_NAME_PATTERN,
    CasResult,
    WorkspaceStatus,
    is_valid_workspace_name,
)

__all__ = [
    "CasResult",
    "WorkspaceStatus",
    "DELETABLE_STATES",
    "LIVE_STATES",
    "STARTABLE_STATES",
    "STOPPABLE_STATES",
    "WORKSPACE_NAME_PATTERN",
    "is_valid_workspace_name",
]
