"""Workspace domain enums and transition tables.

State machine:
- STOPPED -> STARTING (start)
- STARTING -> RUNNING (runtime ok) | ERROR (runtime failure)
- RUNNING -> STOPPING (stop)
- STOPPING -> STOPPED (runtime ok) | ERROR (runtime failure)
- ERROR -> STARTING (start retry) | STOPPING (stop retry)
- STOPPED / ERROR -> record removed (delete)
"""

import re
from enum import StrEnum


class WorkspaceStatus(StrEnum):
    """Durable lifecycle status of a workspace."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    ERROR = "error"


class CasResult(StrEnum):
    """Outcome of a conditional registry write."""

    APPLIED = "applied"
    PRECONDITION_FAILED = "precondition_failed"
    NOT_FOUND = "not_found"

    @property
    def applied(self) -> bool:
        return self is CasResult.APPLIED


# Workspace names are globally unique and used in container/volume names
WORKSPACE_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")

STARTABLE_STATES = frozenset({WorkspaceStatus.STOPPED, WorkspaceStatus.ERROR})
STOPPABLE_STATES = frozenset({WorkspaceStatus.RUNNING, WorkspaceStatus.ERROR})
DELETABLE_STATES = frozenset({WorkspaceStatus.STOPPED, WorkspaceStatus.ERROR})

# Statuses in which a non-null container_id refers to a live unit
LIVE_STATES = frozenset(
    {WorkspaceStatus.STARTING, WorkspaceStatus.RUNNING, WorkspaceStatus.STOPPING}
)


def is_valid_workspace_name(name: str) -> bool:
    return bool(WORKSPACE_NAME_PATTERN.fullmatch(name))
