"""GitHub OAuth identity provider.

Every provider failure (transport error, non-2xx status, error payload,
malformed body) is raised as AuthError with a non-sensitive message.
"""

import logging
from typing import Any
from urllib.parse import urlencode

import httpx

from devspaces.core.errors import AuthError
from devspaces.core.interfaces import IdentityProfile, IdentityProvider

logger = logging.getLogger(__name__)

# Connection pool limits
GITHUB_MAX_CONNECTIONS = 20
GITHUB_MAX_KEEPALIVE = 5
ORGS_PAGE_SIZE = 100
ORGS_MAX_PAGES = 10


class GitHubIdentityProvider(IdentityProvider):
    """IdentityProvider backed by the GitHub OAuth app and REST API."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        callback_url: str,
        *,
        authorize_url: str = "https://github.com/login/oauth/authorize",
        token_url: str = "https://github.com/login/oauth/access_token",
        api_base_url: str = "https://api.github.com",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client_id = client_id
        self._client_secret = client_secret
        self._callback_url = callback_url
        self._authorize_url = authorize_url
        self._token_url = token_url
        self._api_base_url = api_base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            limits=httpx.Limits(
                max_connections=GITHUB_MAX_CONNECTIONS,
                max_keepalive_connections=GITHUB_MAX_KEEPALIVE,
            ),
            headers={"Accept": "application/json", "User-Agent": "devspaces"},
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    def authorization_url(self, state: str, scopes: list[str]) -> str:
        query = urlencode(
            {
                "client_id": self._client_id,
                "redirect_uri": self._callback_url,
                "scope": " ".join(scopes),
                "state": state,
            }
        )
        return f"{self._authorize_url}?{query}"

    async def exchange_code(self, code: str) -> str:
        payload = await self._request(
            "POST",
            self._token_url,
            data={
                "client_id": self._client_id,
                "client_secret": self._client_secret,
                "code": code,
                "redirect_uri": self._callback_url,
            },
        )
        if not isinstance(payload, dict):
            raise AuthError("Unexpected response from GitHub")
        if "error" in payload:
            # e.g. bad_verification_code for an expired or reused code
            logger.warning("GitHub token exchange rejected: %s", payload["error"])
            raise AuthError("GitHub rejected the authorization code")

        token = payload.get("access_token")
        if not token:
            raise AuthError("GitHub did not return an access token")
        return token

    async def fetch_profile(self, access_token: str) -> IdentityProfile:
        user = await self._api("GET", "/user", access_token)
        if not isinstance(user, dict) or "id" not in user:
            raise AuthError("Unexpected profile response from GitHub")

        email = user.get("email") or await self._primary_email(access_token)
        return IdentityProfile(
            id=str(user["id"]),
            username=user.get("login") or "",
            display_name=user.get("name"),
            email=email,
            avatar=user.get("avatar_url"),
        )

    async def list_organizations(self, access_token: str) -> list[str]:
        logins: list[str] = []
        for page in range(1, ORGS_MAX_PAGES + 1):
            orgs = await self._api(
                "GET",
                "/user/orgs",
                access_token,
                params={"per_page": ORGS_PAGE_SIZE, "page": page},
            )
            if not isinstance(orgs, list):
                raise AuthError("Unexpected organizations response from GitHub")
            logins.extend(org["login"] for org in orgs if "login" in org)
            if len(orgs) < ORGS_PAGE_SIZE:
                break
        return logins

    async def _primary_email(self, access_token: str) -> str | None:
        # Needs the user:email scope; a private email is not an auth failure
        try:
            emails = await self._api("GET", "/user/emails", access_token)
        except AuthError:
            return None
        if not isinstance(emails, list):
            return None
        for entry in emails:
            if entry.get("primary") and entry.get("verified"):
                return entry.get("email")
        return None

    async def _api(
        self,
        method: str,
        path: str,
        access_token: str,
        params: dict[str, Any] | None = None,
    ) -> Any:
        return await self._request(
            method,
            f"{self._api_base_url}{path}",
            params=params,
            headers={
                "Authorization": f"Bearer {access_token}",
                "Accept": "application/vnd.github+json",
            },
        )

    async def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, url, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "GitHub request failed: %s %s -> %s",
                method,
                exc.request.url.path,
                exc.response.status_code,
            )
            raise AuthError("GitHub request failed") from exc
        except httpx.HTTPError as exc:
            logger.warning("GitHub request error: %s %s: %s", method, url, exc)
            raise AuthError("Could not reach GitHub") from exc
        except ValueError as exc:
            raise AuthError("Unexpected response from GitHub") from exc
