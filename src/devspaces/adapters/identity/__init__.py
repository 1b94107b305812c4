"""Identity provider adapters."""

from devspaces.adapters.identity.github import GitHubIdentityProvider

__all__ = ["GitHubIdentityProvider"]
