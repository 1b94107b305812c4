"""Interfaces to external collaborators."""

from devspaces.core.interfaces.identity import IdentityProfile, IdentityProvider
from devspaces.core.interfaces.runtime import ContainerRuntime, ContainerStatus

__all__ = [
    "ContainerRuntime",
    "ContainerStatus",
    "IdentityProfile",
    "IdentityProvider",
]
