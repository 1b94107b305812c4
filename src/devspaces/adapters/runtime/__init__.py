"""Container runtime adapters."""

from devspaces.adapters.runtime.docker import DockerContainerRuntime

__all__ = ["DockerContainerRuntime"]
