"""Identity provider interface for the OAuth authorization-code flow."""

from abc import ABC, abstractmethod

from pydantic import BaseModel


class IdentityProfile(BaseModel):
    """Authenticated user's profile as reported by the provider."""

    id: str
    username: str
    display_name: str | None = None
    email: str | None = None
    avatar: str | None = None


class IdentityProvider(ABC):
    """Interface for an OAuth identity provider.

    Implementations: GitHubIdentityProvider
    """

    @abstractmethod
    def authorization_url(self, state: str, scopes: list[str]) -> str:
        """Build the provider URL the browser is redirected to."""
        ...

    @abstractmethod
    async def exchange_code(self, code: str) -> str:
        """Exchange an authorization code for an access token."""
        ...

    @abstractmethod
    async def fetch_profile(self, access_token: str) -> IdentityProfile:
        """Fetch the authenticated user's profile."""
        ...

    @abstractmethod
    async def list_organizations(self, access_token: str) -> list[str]:
        """List organization logins the authenticated user belongs to."""
        ...
