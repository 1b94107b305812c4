"""Workspace Lifecycle Service.

Orchestrates Registry transitions with Runtime calls. Every transition
follows the same protocol:

1. CAS stable -> transitional. A failed CAS is a Conflict; the Runtime is
   not touched.
2. Call the Runtime (bounded by call_timeout).
3. Success: CAS transitional -> stable (expected = transitional).
4. Failure: CAS transitional -> error, raise RuntimeFailureError. The
   previous container_id is kept; the true Runtime state is unknown.

There is no background reconciler; recovery from ``error`` is a caller
initiated start/stop/delete.
"""

import asyncio
import logging
import re
from collections.abc import Awaitable
from typing import TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from devspaces.core.domain import (
    DELETABLE_STATES,
    STARTABLE_STATES,
    STOPPABLE_STATES,
    CasResult,
    WorkspaceStatus,
    is_valid_workspace_name,
)
from devspaces.core.errors import (
    ConflictError,
    DuplicateNameError,
    ForbiddenError,
    RuntimeFailureError,
    ValidationError,
    WorkspaceNotFoundError,
)
from devspaces.core.interfaces import ContainerRuntime
from devspaces.core.logging_schema import LogEvent
from devspaces.core.models import User, Workspace
from devspaces.services.workspace_registry import WorkspaceRegistry

logger = logging.getLogger(__name__)

T = TypeVar("T")

ENV_KEY_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
MAX_REPO_URL_LENGTH = 2048


def _status(workspace: Workspace) -> WorkspaceStatus:
    # Rows loaded from the database carry plain strings
    return WorkspaceStatus(workspace.status)


def _is_visible(workspace: Workspace, user_id: str) -> bool:
    return workspace.owner_id is None or workspace.owner_id == user_id


def _raise_unless_applied(result: CasResult, message: str) -> None:
    if result is CasResult.NOT_FOUND:
        raise WorkspaceNotFoundError()
    if result is CasResult.PRECONDITION_FAILED:
        raise ConflictError(message)


def validate_env_vars(env_vars: dict[str, str] | None) -> dict[str, str]:
    if not env_vars:
        return {}
    invalid = [key for key in env_vars if not ENV_KEY_PATTERN.match(key)]
    if invalid:
        raise ValidationError(
            f"Invalid environment variable name(s): {', '.join(sorted(invalid))}"
        )
    return {key: str(value) for key, value in env_vars.items()}


class WorkspaceService:
    """Service for workspace CRUD, ownership and lifecycle operations."""

    def __init__(
        self, runtime: ContainerRuntime, call_timeout: float | None = None
    ) -> None:
        self._runtime = runtime
        self._call_timeout = call_timeout

    # =========================================================================
    # Reads
    # =========================================================================

    async def list_workspaces(self, db: AsyncSession, user: User) -> list[Workspace]:
        """Workspaces owned by the user plus the released pool."""
        return await WorkspaceRegistry(db).list_for(user.id)

    async def get_workspace(
        self, db: AsyncSession, user: User, workspace_id: str
    ) -> Workspace:
        """Get a workspace visible to the user (owned or released).

        Raises:
            WorkspaceNotFoundError: Unknown id or owned by another user
        """
        workspace = await WorkspaceRegistry(db).get(workspace_id)
        if workspace is None or not _is_visible(workspace, user.id):
            raise WorkspaceNotFoundError()
        return workspace

    # =========================================================================
    # Create
    # =========================================================================

    async def create_workspace(
        self,
        db: AsyncSession,
        user: User,
        name: str,
        repo_url: str,
        env_vars: dict[str, str] | None = None,
    ) -> Workspace:
        """Create a stopped workspace owned by the user.

        Raises:
            ValidationError: Bad name format, missing repo_url, bad env names
            DuplicateNameError: Name already taken
        """
        name = (name or "").strip()
        repo_url = (repo_url or "").strip()

        if not name or not repo_url:
            raise ValidationError("Name and repository URL are required")
        if not is_valid_workspace_name(name):
            raise ValidationError(
                "Workspace name can only contain letters, numbers, hyphens, "
                "and underscores"
            )
        if len(repo_url) > MAX_REPO_URL_LENGTH:
            raise ValidationError("Repository URL is too long")
        env = validate_env_vars(env_vars)

        registry = WorkspaceRegistry(db)
        if await registry.get_by_name(name) is not None:
            raise DuplicateNameError(name)

        workspace = await registry.create(
            name, repo_url, user.id, created_by=user.id, env_vars=env
        )
        logger.info(
            "Workspace created",
            extra={
                "event": LogEvent.WORKSPACE_CREATED,
                "ws_id": workspace.id,
                "user_id": user.id,
            },
        )
        return workspace

    # =========================================================================
    # Ownership
    # =========================================================================

    async def acquire_workspace(
        self, db: AsyncSession, user: User, workspace_id: str
    ) -> Workspace:
        """Claim a released, stopped workspace.

        Raises:
            WorkspaceNotFoundError: Unknown id
            ConflictError: Owned by someone else, not stopped, or lost a race
        """
        registry = WorkspaceRegistry(db)
        workspace = await registry.get(workspace_id)
        if workspace is None:
            raise WorkspaceNotFoundError()
        if workspace.owner_id == user.id:
            return workspace

        result = await registry.acquire(workspace_id, user.id, WorkspaceStatus.STOPPED)
        _raise_unless_applied(
            result, "Workspace is not available (already owned or not stopped)"
        )
        self._log_ownership(workspace_id, user.id, "acquired")
        return await self._reload(registry, workspace_id)

    async def release_workspace(
        self, db: AsyncSession, user: User, workspace_id: str
    ) -> Workspace:
        """Return a stopped workspace to the shared pool.

        Raises:
            WorkspaceNotFoundError: Unknown id or owned by another user
            ConflictError: Not owned by the caller or not stopped
        """
        registry = WorkspaceRegistry(db)
        workspace = await self.get_workspace(db, user, workspace_id)
        if workspace.owner_id is None:
            raise ConflictError("Workspace is already released")

        result = await registry.release(workspace_id, user.id, WorkspaceStatus.STOPPED)
        _raise_unless_applied(result, "Workspace must be stopped before release")
        self._log_ownership(workspace_id, user.id, "released")
        return await self._reload(registry, workspace_id)

    async def set_build_status(
        self,
        db: AsyncSession,
        user: User,
        workspace_id: str,
        build_status: str | None,
    ) -> Workspace:
        """Write the build-status side channel (owner only)."""
        registry = WorkspaceRegistry(db)
        workspace = await self.get_workspace(db, user, workspace_id)
        if workspace.owner_id != user.id:
            raise ForbiddenError("Only the owner can update build status")

        result = await registry.set_build_status(
            workspace_id, build_status, expected_owner_id=user.id
        )
        _raise_unless_applied(result, "Workspace ownership changed")
        return await self._reload(registry, workspace_id)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start_workspace(
        self, db: AsyncSession, user: User, workspace_id: str
    ) -> Workspace:
        """Transition stopped/error -> starting -> running.

        Every start builds a fresh container for the caller; a handle left
        over from a failed attempt is destroyed first.

        Raises:
            WorkspaceNotFoundError: Unknown id or owned by another user
            ConflictError: Not startable or a concurrent transition won
            RuntimeFailureError: Runtime call failed; workspace left in error
        """
        registry = WorkspaceRegistry(db)
        workspace = await self.get_workspace(db, user, workspace_id)
        current = _status(workspace)

        if current not in STARTABLE_STATES:
            raise ConflictError(f"Cannot start workspace in {current.value} state")

        result = await registry.cas_status(
            workspace_id,
            WorkspaceStatus.STARTING,
            expected=current,
            expected_owner_id=workspace.owner_id,
        )
        _raise_unless_applied(result, "Workspace state changed, retry the operation")
        self._log_transition(workspace_id, current, WorkspaceStatus.STARTING)

        stale = workspace.container_id
        created: str | None = None
        try:
            # A leftover handle carries the env (and token) of whoever built it
            if stale is not None and (
                await self._call(self._runtime.status(stale))
            ).exists:
                await self._call(self._runtime.destroy(stale))
            handle = created = await self._call(
                self._runtime.create(
                    workspace.repo_url,
                    self._build_env(workspace, user),
                    name=workspace.name,
                )
            )
            await self._call(self._runtime.start(handle))
        except asyncio.CancelledError:
            await self._fail(registry, workspace_id, WorkspaceStatus.STARTING, "start")
            raise
        except Exception as exc:
            if created is not None:
                await self._discard(created)
            await self._fail(
                registry, workspace_id, WorkspaceStatus.STARTING, "start", exc
            )
            raise RuntimeFailureError(f"Failed to start workspace: {exc}") from exc

        result = await registry.cas_container(
            workspace_id,
            handle,
            WorkspaceStatus.RUNNING,
            expected=WorkspaceStatus.STARTING,
        )
        _raise_unless_applied(result, "Workspace state changed during start")
        self._log_transition(
            workspace_id, WorkspaceStatus.STARTING, WorkspaceStatus.RUNNING
        )
        return await self._reload(registry, workspace_id)

    async def stop_workspace(
        self, db: AsyncSession, user: User, workspace_id: str
    ) -> Workspace:
        """Transition running/error -> stopping -> stopped.

        The container is stopped and destroyed; container_id is cleared.

        Raises:
            WorkspaceNotFoundError: Unknown id or owned by another user
            ConflictError: Not stoppable or a concurrent transition won
            RuntimeFailureError: Runtime call failed; workspace left in error
        """
        registry = WorkspaceRegistry(db)
        workspace = await self.get_workspace(db, user, workspace_id)
        current = _status(workspace)

        if current not in STOPPABLE_STATES:
            raise ConflictError(f"Cannot stop workspace in {current.value} state")

        result = await registry.cas_status(
            workspace_id,
            WorkspaceStatus.STOPPING,
            expected=current,
            expected_owner_id=workspace.owner_id,
        )
        _raise_unless_applied(result, "Workspace state changed, retry the operation")
        self._log_transition(workspace_id, current, WorkspaceStatus.STOPPING)

        await self._teardown(registry, workspace, "stop")

        result = await registry.cas_container(
            workspace_id,
            None,
            WorkspaceStatus.STOPPED,
            expected=WorkspaceStatus.STOPPING,
        )
        _raise_unless_applied(result, "Workspace state changed during stop")
        self._log_transition(
            workspace_id, WorkspaceStatus.STOPPING, WorkspaceStatus.STOPPED
        )
        return await self._reload(registry, workspace_id)

    async def delete_workspace(
        self, db: AsyncSession, user: User, workspace_id: str
    ) -> None:
        """Remove a stopped/error workspace after tearing down any container.

        Permitted to the owner, or to the creator while released.

        Raises:
            WorkspaceNotFoundError: Unknown id or owned by another user
            ForbiddenError: Released workspace and caller is not its creator
            ConflictError: Not deletable or a concurrent transition won
            RuntimeFailureError: Container teardown failed; workspace left in error
        """
        registry = WorkspaceRegistry(db)
        workspace = await self.get_workspace(db, user, workspace_id)
        if workspace.owner_id is None and workspace.created_by != user.id:
            raise ForbiddenError("Only the creator can delete a released workspace")

        current = _status(workspace)
        if current not in DELETABLE_STATES:
            raise ConflictError(
                f"Cannot delete workspace in {current.value} state, stop it first"
            )

        # STOPPING doubles as the delete lock
        result = await registry.cas_status(
            workspace_id,
            WorkspaceStatus.STOPPING,
            expected=current,
            expected_owner_id=workspace.owner_id,
        )
        _raise_unless_applied(result, "Workspace state changed, retry the operation")

        await self._teardown(registry, workspace, "delete")
        await registry.delete(workspace_id)

        logger.info(
            "Workspace deleted",
            extra={
                "event": LogEvent.WORKSPACE_DELETED,
                "ws_id": workspace_id,
                "user_id": user.id,
            },
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _call(self, awaitable: Awaitable[T]) -> T:
        if self._call_timeout is None:
            return await awaitable
        return await asyncio.wait_for(awaitable, timeout=self._call_timeout)

    async def _teardown(
        self, registry: WorkspaceRegistry, workspace: Workspace, operation: str
    ) -> None:
        """Stop and destroy the workspace's container, parking in error on failure."""
        handle = workspace.container_id
        if handle is None:
            return
        try:
            await self._call(self._runtime.stop(handle))
            await self._call(self._runtime.destroy(handle))
        except asyncio.CancelledError:
            await self._fail(
                registry, workspace.id, WorkspaceStatus.STOPPING, operation
            )
            raise
        except Exception as exc:
            await self._fail(
                registry, workspace.id, WorkspaceStatus.STOPPING, operation, exc
            )
            raise RuntimeFailureError(
                f"Failed to {operation} workspace: {exc}"
            ) from exc

    async def _fail(
        self,
        registry: WorkspaceRegistry,
        workspace_id: str,
        transitional: WorkspaceStatus,
        operation: str,
        exc: BaseException | None = None,
    ) -> None:
        logger.error(
            "Runtime call failed",
            extra={
                "event": LogEvent.OPERATION_FAILED,
                "ws_id": workspace_id,
                "operation": operation,
                "error_type": type(exc).__name__ if exc else "CancelledError",
                "error": str(exc) if exc else "cancelled",
            },
        )
        result = await registry.cas_status(
            workspace_id, WorkspaceStatus.ERROR, expected=transitional
        )
        if result.applied:
            self._log_transition(workspace_id, transitional, WorkspaceStatus.ERROR)

    async def _discard(self, handle: str) -> None:
        """Best-effort removal of a container created by a failed start."""
        try:
            await self._call(self._runtime.destroy(handle))
        except Exception as exc:
            logger.warning(
                "Failed to discard container %s: %s",
                handle,
                exc,
                extra={"event": LogEvent.OPERATION_FAILED},
            )

    @staticmethod
    async def _reload(registry: WorkspaceRegistry, workspace_id: str) -> Workspace:
        workspace = await registry.get(workspace_id)
        if workspace is None:
            raise WorkspaceNotFoundError()
        return workspace

    @staticmethod
    def _build_env(workspace: Workspace, user: User) -> dict[str, str]:
        env = dict(workspace.env_vars or {})
        env["WORKSPACE_NAME"] = workspace.name
        env["REPO_URL"] = workspace.repo_url
        env["GIT_USER"] = user.username
        if user.access_token:
            env["GITHUB_TOKEN"] = user.access_token
        return env

    @staticmethod
    def _log_transition(
        workspace_id: str, old: WorkspaceStatus, new: WorkspaceStatus
    ) -> None:
        logger.info(
            "Workspace %s: %s -> %s",
            workspace_id,
            old.value,
            new.value,
            extra={
                "event": LogEvent.STATE_CHANGED,
                "ws_id": workspace_id,
                "old_status": old.value,
                "new_status": new.value,
            },
        )

    @staticmethod
    def _log_ownership(workspace_id: str, user_id: str, action: str) -> None:
        logger.info(
            "Workspace %s %s",
            workspace_id,
            action,
            extra={
                "event": LogEvent.OWNERSHIP_CHANGED,
                "ws_id": workspace_id,
                "user_id": user_id,
                "action": action,
            },
        )
