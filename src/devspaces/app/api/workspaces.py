"""Workspace API endpoints.

Endpoints:
- GET /api/workspaces - List owned and released workspaces
- POST /api/workspaces - Create workspace
- GET /api/workspaces/{id} - Get workspace (owner or released)
- DELETE /api/workspaces/{id} - Delete workspace (STOPPED/ERROR only)
- POST /api/workspaces/{id}/start - Start workspace
- POST /api/workspaces/{id}/stop - Stop workspace
- POST /api/workspaces/{id}/acquire - Claim a released workspace
- POST /api/workspaces/{id}/release - Return a workspace to the shared pool
- PUT /api/workspaces/{id}/build-status - Update build status (owner only)
"""

from datetime import datetime

from fastapi import APIRouter
from pydantic import AliasChoices, BaseModel, Field

from devspaces.app.api.dependencies import Ctx, WsService
from devspaces.core.domain import WorkspaceStatus
from devspaces.core.models import Workspace

router = APIRouter(prefix="/api/workspaces", tags=["workspaces"])


class WorkspaceCreate(BaseModel):
    """Request schema for creating a workspace."""

    name: str = Field(..., max_length=255)
    repo_url: str = Field(
        ..., validation_alias=AliasChoices("repo_url", "repoUrl")
    )
    env_vars: dict[str, str] = Field(
        default_factory=dict, validation_alias=AliasChoices("env_vars", "envVars")
    )


class BuildStatusUpdate(BaseModel):
    """Request schema for the build-status side channel."""

    build_status: str | None = Field(
        default=None,
        max_length=64,
        validation_alias=AliasChoices("build_status", "buildStatus"),
    )


class WorkspaceResponse(BaseModel):
    """Response schema for workspace."""

    id: str
    name: str
    repo_url: str
    owner_id: str | None
    created_by: str | None
    status: WorkspaceStatus
    container_id: str | None
    build_status: str | None
    env_var_names: list[str]
    created_at: datetime
    updated_at: datetime


class DeleteResponse(BaseModel):
    success: bool


def _workspace_to_response(workspace: Workspace) -> WorkspaceResponse:
    """Convert Workspace model to response schema. Env values are not echoed."""
    return WorkspaceResponse(
        id=workspace.id,
        name=workspace.name,
        repo_url=workspace.repo_url,
        owner_id=workspace.owner_id,
        created_by=workspace.created_by,
        status=WorkspaceStatus(workspace.status),
        container_id=workspace.container_id,
        build_status=workspace.build_status,
        env_var_names=sorted(workspace.env_vars or {}),
        created_at=workspace.created_at,
        updated_at=workspace.updated_at,
    )


@router.get("", response_model=list[WorkspaceResponse])
async def list_workspaces(ctx: Ctx, ws_service: WsService) -> list[WorkspaceResponse]:
    """List workspaces owned by the caller plus released ones."""
    workspaces = await ws_service.list_workspaces(ctx.db, ctx.user)
    return [_workspace_to_response(ws) for ws in workspaces]


@router.post("", response_model=WorkspaceResponse)
async def create_workspace(
    body: WorkspaceCreate, ctx: Ctx, ws_service: WsService
) -> WorkspaceResponse:
    """Create a new stopped workspace owned by the caller."""
    workspace = await ws_service.create_workspace(
        ctx.db, ctx.user, body.name, body.repo_url, body.env_vars
    )
    ctx.log.info("Workspace %s created", workspace.name, extra={"ws_id": workspace.id})
    return _workspace_to_response(workspace)


@router.get("/{workspace_id}", response_model=WorkspaceResponse)
async def get_workspace(
    workspace_id: str, ctx: Ctx, ws_service: WsService
) -> WorkspaceResponse:
    workspace = await ws_service.get_workspace(ctx.db, ctx.user, workspace_id)
    return _workspace_to_response(workspace)


@router.delete("/{workspace_id}", response_model=DeleteResponse)
async def delete_workspace(
    workspace_id: str, ctx: Ctx, ws_service: WsService
) -> DeleteResponse:
    await ws_service.delete_workspace(ctx.db, ctx.user, workspace_id)
    ctx.log.info("Workspace deleted", extra={"ws_id": workspace_id})
    return DeleteResponse(success=True)


@router.post("/{workspace_id}/start", response_model=WorkspaceResponse)
async def start_workspace(
    workspace_id: str, ctx: Ctx, ws_service: WsService
) -> WorkspaceResponse:
    """Start workspace. Returns once the container is running."""
    ctx.log.info("Start requested", extra={"ws_id": workspace_id})
    workspace = await ws_service.start_workspace(ctx.db, ctx.user, workspace_id)
    return _workspace_to_response(workspace)


@router.post("/{workspace_id}/stop", response_model=WorkspaceResponse)
async def stop_workspace(
    workspace_id: str, ctx: Ctx, ws_service: WsService
) -> WorkspaceResponse:
    """Stop workspace. Returns once the container is removed."""
    ctx.log.info("Stop requested", extra={"ws_id": workspace_id})
    workspace = await ws_service.stop_workspace(ctx.db, ctx.user, workspace_id)
    return _workspace_to_response(workspace)


@router.post("/{workspace_id}/acquire", response_model=WorkspaceResponse)
async def acquire_workspace(
    workspace_id: str, ctx: Ctx, ws_service: WsService
) -> WorkspaceResponse:
    workspace = await ws_service.acquire_workspace(ctx.db, ctx.user, workspace_id)
    return _workspace_to_response(workspace)


@router.post("/{workspace_id}/release", response_model=WorkspaceResponse)
async def release_workspace(
    workspace_id: str, ctx: Ctx, ws_service: WsService
) -> WorkspaceResponse:
    workspace = await ws_service.release_workspace(ctx.db, ctx.user, workspace_id)
    return _workspace_to_response(workspace)


@router.put("/{workspace_id}/build-status", response_model=WorkspaceResponse)
async def update_build_status(
    workspace_id: str, body: BuildStatusUpdate, ctx: Ctx, ws_service: WsService
) -> WorkspaceResponse:
    workspace = await ws_service.set_build_status(
        ctx.db, ctx.user, workspace_id, body.build_status
    )
    return _workspace_to_response(workspace)
