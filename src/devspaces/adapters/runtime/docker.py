"""Docker container runtime.

Manages workspace containers using the Docker Engine API. docker-py is
synchronous; every call runs in a worker thread.
"""

import asyncio
import logging

import docker
from docker.errors import NotFound
from docker.models.containers import Container

from devspaces.core.interfaces import ContainerRuntime, ContainerStatus

logger = logging.getLogger(__name__)

# Default values (can be overridden via config)
DEFAULT_IMAGE = "mcr.microsoft.com/devcontainers/universal:2"
DEFAULT_CONTAINER_PREFIX = "devspaces-ws-"
DEFAULT_NETWORK_NAME = "devspaces-net"
WORKSPACE_MOUNT_PATH = "/workspaces"
LABEL_WORKSPACE = "devspaces.workspace"
LABEL_REPO = "devspaces.repo"


class DockerContainerRuntime(ContainerRuntime):
    """Container runtime using a Docker engine."""

    def __init__(
        self,
        docker_host: str | None = None,
        image: str | None = None,
        container_prefix: str | None = None,
        network_name: str | None = None,
    ) -> None:
        """Initialize with optional Docker host and naming configuration.

        Args:
            docker_host: Docker host URL (e.g., 'tcp://docker-proxy:2375').
                        If None, uses DOCKER_HOST env var or default socket.
            image: Image for workspace containers.
            container_prefix: Prefix for container and volume names.
            network_name: Docker network workspaces are attached to.
        """
        if docker_host:
            self._client = docker.DockerClient(base_url=docker_host)
        else:
            self._client = docker.from_env()

        self._image = image or DEFAULT_IMAGE
        self._container_prefix = container_prefix or DEFAULT_CONTAINER_PREFIX
        self._network_name = network_name or DEFAULT_NETWORK_NAME

    def _container_name(self, name: str) -> str:
        return f"{self._container_prefix}{name}"

    def _volume_name(self, name: str) -> str:
        return f"{self._container_prefix}{name}-home"

    def _get_container(self, handle: str) -> Container | None:
        """Get container by handle, or None if not found."""
        try:
            return self._client.containers.get(handle)
        except NotFound:
            return None

    def _ensure_network_sync(self) -> None:
        try:
            self._client.networks.get(self._network_name)
        except NotFound:
            logger.info("Creating network: %s", self._network_name)
            self._client.networks.create(self._network_name, driver="bridge")

    def _create_sync(self, repo_url: str, env: dict[str, str], name: str | None) -> str:
        self._ensure_network_sync()

        kwargs: dict = {
            "command": ["sleep", "infinity"],
            "detach": True,
            "network": self._network_name,
            "environment": env,
            "labels": {LABEL_REPO: repo_url},
            "working_dir": WORKSPACE_MOUNT_PATH,
        }

        if name:
            container_name = self._container_name(name)
            # A leftover container from an earlier failed attempt blocks the name
            stale = self._get_container(container_name)
            if stale is not None:
                logger.info("Removing stale container: %s", container_name)
                stale.remove(force=True)
            kwargs["name"] = container_name
            kwargs["labels"][LABEL_WORKSPACE] = name
            kwargs["volumes"] = {
                self._volume_name(name): {"bind": WORKSPACE_MOUNT_PATH, "mode": "rw"}
            }

        logger.info("Creating container (image=%s, name=%s)", self._image, name)
        container = self._client.containers.create(self._image, **kwargs)
        return container.id

    async def create(
        self, repo_url: str, env: dict[str, str], name: str | None = None
    ) -> str:
        return await asyncio.to_thread(self._create_sync, repo_url, env, name)

    def _start_sync(self, handle: str) -> None:
        container = self._get_container(handle)
        if container is None:
            raise NotFound(f"Container not found: {handle}")

        if container.status == "running":
            logger.info("Container already running: %s", handle[:12])
            return

        logger.info("Starting container: %s", handle[:12])
        container.start()

    async def start(self, handle: str) -> None:
        """Start the container. Idempotent for a running container."""
        await asyncio.to_thread(self._start_sync, handle)

    def _stop_sync(self, handle: str) -> None:
        container = self._get_container(handle)
        if container is None:
            logger.info("Container not found (no-op): %s", handle[:12])
            return

        if container.status == "running":
            logger.info("Stopping container: %s", handle[:12])
            container.stop()
        else:
            logger.info("Container already stopped: %s", handle[:12])

    async def stop(self, handle: str) -> None:
        """Stop the container. Idempotent."""
        await asyncio.to_thread(self._stop_sync, handle)

    def _destroy_sync(self, handle: str) -> None:
        container = self._get_container(handle)
        if container is None:
            logger.info("Container not found (no-op): %s", handle[:12])
            return

        logger.info("Removing container: %s", handle[:12])
        container.remove(force=True)

    async def destroy(self, handle: str) -> None:
        """Remove the container. The home volume is kept. Idempotent."""
        await asyncio.to_thread(self._destroy_sync, handle)

    def _status_sync(self, handle: str) -> ContainerStatus:
        container = self._get_container(handle)
        if container is None:
            return ContainerStatus(exists=False, running=False)
        return ContainerStatus(exists=True, running=container.status == "running")

    async def status(self, handle: str) -> ContainerStatus:
        return await asyncio.to_thread(self._status_sync, handle)
