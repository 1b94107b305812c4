"""Container runtime interface for workspace execution units."""

from abc import ABC, abstractmethod

from pydantic import BaseModel


class ContainerStatus(BaseModel):
    """Coarse status of an execution unit."""

    exists: bool
    running: bool


class ContainerRuntime(ABC):
    """Interface for the external execution-unit manager.

    Implementations: DockerContainerRuntime

    Every call either completes or raises. The lifecycle service never issues
    two concurrent calls for the same handle.
    """

    @abstractmethod
    async def create(
        self, repo_url: str, env: dict[str, str], name: str | None = None
    ) -> str:
        """Create (but do not start) a unit for repo_url.

        Args:
            repo_url: Source repository reference
            env: Environment variables for the unit
            name: Optional stable name hint (the workspace name)

        Returns:
            Opaque container handle
        """
        ...

    @abstractmethod
    async def start(self, handle: str) -> None:
        """Start the unit. Idempotent for an already running unit."""
        ...

    @abstractmethod
    async def stop(self, handle: str) -> None:
        """Stop the unit. Idempotent for an already stopped unit."""
        ...

    @abstractmethod
    async def destroy(self, handle: str) -> None:
        """Remove the unit. Idempotent for a missing unit."""
        ...

    @abstractmethod
    async def status(self, handle: str) -> ContainerStatus:
        """Query coarse status of the unit."""
        ...
