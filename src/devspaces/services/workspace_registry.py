"""Workspace Registry.

Every mutation except plain creation is a conditional UPDATE carrying the
expected prior state in its WHERE clause. The affected row count decides the
outcome; a precondition failure is a returned value, never an exception.

Usage:
    registry = WorkspaceRegistry(db)
    result = await registry.cas_status(
        ws_id, WorkspaceStatus.STARTING, expected=WorkspaceStatus.STOPPED
    )
    if not result.applied:
        ...
"""

import logging
from typing import Any, Final

from sqlalchemy import ColumnElement, delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import col

from devspaces.core.domain import CasResult, WorkspaceStatus
from devspaces.core.errors import DuplicateNameError
from devspaces.core.logging_schema import LogEvent
from devspaces.core.models import Workspace, utc_now

logger = logging.getLogger(__name__)

# Marker for "do not constrain owner_id"; None means "owner_id IS NULL"
ANY_OWNER: Final = object()


def _owner_is(owner_id: str | None) -> ColumnElement[bool]:
    if owner_id is None:
        return col(Workspace.owner_id).is_(None)
    return col(Workspace.owner_id) == owner_id


class WorkspaceRegistry:
    """Storage-layer contract over workspace records."""

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    # =========================================================================
    # Reads
    # =========================================================================

    async def get(self, workspace_id: str) -> Workspace | None:
        result = await self._db.execute(
            select(Workspace)
            .where(col(Workspace.id) == workspace_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_by_name(self, name: str) -> Workspace | None:
        result = await self._db.execute(
            select(Workspace)
            .where(col(Workspace.name) == name)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_for(self, user_id: str) -> list[Workspace]:
        """Workspaces owned by user_id or currently released."""
        result = await self._db.execute(
            select(Workspace)
            .where(
                or_(
                    col(Workspace.owner_id) == user_id,
                    col(Workspace.owner_id).is_(None),
                )
            )
            .order_by(col(Workspace.created_at).desc(), col(Workspace.id).desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    # =========================================================================
    # Writes
    # =========================================================================

    async def create(
        self,
        name: str,
        repo_url: str,
        owner_id: str | None,
        *,
        created_by: str | None = None,
        env_vars: dict[str, str] | None = None,
    ) -> Workspace:
        """Insert a new stopped workspace.

        Raises:
            DuplicateNameError: name is already taken (unique constraint)
        """
        workspace = Workspace(
            name=name,
            repo_url=repo_url,
            owner_id=owner_id,
            created_by=created_by,
            status=WorkspaceStatus.STOPPED,
            container_id=None,
            env_vars=dict(env_vars or {}),
        )
        self._db.add(workspace)
        try:
            await self._db.commit()
        except IntegrityError as exc:
            await self._db.rollback()
            raise DuplicateNameError(name) from exc
        return workspace

    async def cas_status(
        self,
        workspace_id: str,
        new_status: WorkspaceStatus,
        expected: WorkspaceStatus,
        *,
        expected_owner_id: Any = ANY_OWNER,
    ) -> CasResult:
        """Set status iff the stored status equals expected."""
        return await self._conditional_update(
            workspace_id,
            expected,
            expected_owner_id,
            status=new_status.value,
        )

    async def cas_container(
        self,
        workspace_id: str,
        container_id: str | None,
        new_status: WorkspaceStatus,
        expected: WorkspaceStatus,
        *,
        expected_owner_id: Any = ANY_OWNER,
    ) -> CasResult:
        """Set status and container_id iff the stored status equals expected."""
        return await self._conditional_update(
            workspace_id,
            expected,
            expected_owner_id,
            status=new_status.value,
            container_id=container_id,
        )

    async def acquire(
        self, workspace_id: str, user_id: str, expected: WorkspaceStatus
    ) -> CasResult:
        """Claim a released workspace (owner_id IS NULL) for user_id."""
        return await self._conditional_update(
            workspace_id, expected, None, owner_id=user_id
        )

    async def release(
        self,
        workspace_id: str,
        expected_owner_id: str,
        expected: WorkspaceStatus,
    ) -> CasResult:
        """Return a workspace to the shared pool."""
        return await self._conditional_update(
            workspace_id, expected, expected_owner_id, owner_id=None
        )

    async def set_build_status(
        self,
        workspace_id: str,
        build_status: str | None,
        *,
        expected_owner_id: Any = ANY_OWNER,
    ) -> CasResult:
        """Write the build-status side channel. Lifecycle status is untouched."""
        return await self._conditional_update(
            workspace_id, None, expected_owner_id, build_status=build_status
        )

    async def delete(self, workspace_id: str) -> bool:
        """Remove the record unconditionally.

        Callers must have ensured that no live container handle remains.
        """
        result = await self._db.execute(
            delete(Workspace).where(col(Workspace.id) == workspace_id)
        )
        await self._db.commit()
        return result.rowcount > 0  # type: ignore[attr-defined]

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _conditional_update(
        self,
        workspace_id: str,
        expected: WorkspaceStatus | None,
        expected_owner_id: Any,
        **values: Any,
    ) -> CasResult:
        conditions: list[ColumnElement[bool]] = [col(Workspace.id) == workspace_id]
        if expected is not None:
            conditions.append(col(Workspace.status) == expected.value)
        if expected_owner_id is not ANY_OWNER:
            conditions.append(_owner_is(expected_owner_id))

        result = await self._db.execute(
            update(Workspace)
            .where(*conditions)
            .values(**values, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 1:  # type: ignore[attr-defined]
            await self._db.commit()
            return CasResult.APPLIED

        exists = await self._db.scalar(
            select(func.count())
            .select_from(Workspace)
            .where(col(Workspace.id) == workspace_id)
        )
        await self._db.commit()

        outcome = CasResult.PRECONDITION_FAILED if exists else CasResult.NOT_FOUND
        logger.info(
            "Conditional update not applied",
            extra={
                "event": LogEvent.CAS_CONFLICT,
                "ws_id": workspace_id,
                "expected_status": expected.value if expected else None,
                "outcome": outcome.value,
            },
        )
        return outcome
