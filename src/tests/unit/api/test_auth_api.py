"""Tests for authentication endpoints."""

from unittest.mock import AsyncMock, patch
from urllib.parse import parse_qs, urlparse

import pytest

from devspaces.core.errors import AuthError, SessionPersistError
from devspaces.core.interfaces import IdentityProfile

COOKIE_NAME = "devspaces.sid"


def _state_from(location: str) -> str:
    return parse_qs(urlparse(location).query)["state"][0]


class TestLogin:
    """GET /auth/github and GET /auth."""

    @pytest.mark.parametrize("path", ["/auth/github", "/auth"])
    async def test_redirects_to_provider(self, client, path: str) -> None:
        response = await client.get(path, params={"returnTo": "/projects"})

        assert response.status_code == 302
        assert response.headers["location"].startswith("https://github.test/")
        assert _state_from(response.headers["location"])

        set_cookie = response.headers["set-cookie"]
        assert f"{COOKIE_NAME}=" in set_cookie
        assert "HttpOnly" in set_cookie
        assert "Secure" in set_cookie
        assert "samesite=lax" in set_cookie.lower()

    async def test_session_save_failure_is_500(self, client) -> None:
        with patch(
            "devspaces.services.auth_gateway.SessionService.save",
            AsyncMock(side_effect=SessionPersistError()),
        ):
            response = await client.get("/auth/github")

        assert response.status_code == 500
        assert "location" not in response.headers


class TestCallback:
    """GET /auth/github/callback."""

    async def test_full_login(self, client, fake_identity) -> None:
        login = await client.get("/auth/github", params={"returnTo": "/projects"})
        pre_login_sid = login.cookies[COOKIE_NAME]
        state = _state_from(login.headers["location"])

        response = await client.get(
            "/auth/github/callback", params={"state": state, "code": "abc"}
        )

        assert response.status_code == 302
        assert response.headers["location"] == "/projects"
        new_sid = response.cookies[COOKIE_NAME]
        assert new_sid != pre_login_sid
        fake_identity.exchange_code.assert_awaited_once_with("abc")

        me = await client.get("/api/user")
        assert me.status_code == 200
        assert me.json() == {
            "id": "1001",
            "username": "alice",
            "display_name": "Alice",
            "email": "alice@example.com",
            "avatar": "https://avatars.test/alice",
        }

    async def test_login_with_reclaimed_username(
        self, client, fake_identity, other_user
    ) -> None:
        fake_identity.fetch_profile.return_value = IdentityProfile(
            id="2002", username=other_user.username
        )
        login = await client.get("/auth/github", params={"returnTo": "/projects"})

        response = await client.get(
            "/auth/github/callback",
            params={"state": _state_from(login.headers["location"]), "code": "abc"},
        )

        assert response.status_code == 302
        assert response.headers["location"] == "/projects"
        me = (await client.get("/api/user")).json()
        assert me["id"] == "2002"
        assert me["username"] == "bob"

    async def test_without_session_is_403(self, client) -> None:
        response = await client.get(
            "/auth/github/callback", params={"state": "x", "code": "abc"}
        )

        assert response.status_code == 403
        assert "Session lost" in response.text

    async def test_state_mismatch_is_403(self, client, fake_identity) -> None:
        await client.get("/auth/github")

        response = await client.get(
            "/auth/github/callback",
            params={"state": "attacker-value", "code": "abc"},
        )

        assert response.status_code == 403
        fake_identity.exchange_code.assert_not_awaited()
        assert (await client.get("/api/user")).status_code == 401

    async def test_replayed_state_is_rejected(self, client) -> None:
        login = await client.get("/auth/github")
        state = _state_from(login.headers["location"])
        await client.get("/auth/github/callback", params={"state": "bad", "code": "x"})

        response = await client.get(
            "/auth/github/callback", params={"state": state, "code": "x"}
        )

        assert response.status_code == 403

    async def test_not_a_member_redirects_with_error(
        self, client, fake_identity
    ) -> None:
        fake_identity.list_organizations.return_value = ["someone-else"]
        login = await client.get("/auth/github")

        response = await client.get(
            "/auth/github/callback",
            params={"state": _state_from(login.headers["location"]), "code": "abc"},
        )

        assert response.status_code == 302
        location = response.headers["location"]
        assert location.startswith("/?error=")
        assert "acme" in parse_qs(urlparse(location).query)["error"][0]

    async def test_exchange_failure_redirects_with_error(
        self, client, fake_identity
    ) -> None:
        fake_identity.exchange_code.side_effect = AuthError("token endpoint down")
        login = await client.get("/auth/github")

        response = await client.get(
            "/auth/github/callback",
            params={"state": _state_from(login.headers["location"]), "code": "abc"},
        )

        assert response.status_code == 302
        error = parse_qs(urlparse(response.headers["location"]).query)["error"][0]
        assert error == "An error occurred during authentication"


class TestLogout:
    """GET /logout."""

    async def test_logout_revokes_session(self, make_client, test_user) -> None:
        async with make_client(test_user) as client:
            assert (await client.get("/api/user")).status_code == 200

            response = await client.get("/logout")

            assert response.status_code == 302
            assert response.headers["location"] == "/"
            assert (await client.get("/api/user")).status_code == 401


class TestVerify:
    """GET /api/auth/verify."""

    async def test_authenticated(self, auth_client) -> None:
        response = await auth_client.get("/api/auth/verify")

        assert response.status_code == 200
        assert response.headers["X-Auth-User"] == "alice"
        assert response.headers["X-Auth-User-Id"] == "1001"

    async def test_reissues_session_cookie(self, auth_client) -> None:
        sid = auth_client.cookies[COOKIE_NAME]

        response = await auth_client.get("/api/auth/verify")

        assert response.cookies[COOKIE_NAME] == sid
        assert "Max-Age=86400" in response.headers["set-cookie"]

    async def test_anonymous(self, client) -> None:
        response = await client.get("/api/auth/verify")

        assert response.status_code == 401

    async def test_unauthenticated_session(self, client) -> None:
        """A session mid-OAuth (no user yet) is not authenticated."""
        await client.get("/auth/github")

        response = await client.get("/api/auth/verify")

        assert response.status_code == 401


class TestCurrentUser:
    """GET /api/user."""

    async def test_never_returns_token(self, auth_client) -> None:
        body = (await auth_client.get("/api/user")).json()

        assert body["username"] == "alice"
        assert "access_token" not in body
        assert "gho_alice" not in str(body)
