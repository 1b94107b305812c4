"""Unit tests for DockerContainerRuntime."""

from unittest.mock import MagicMock, patch

import pytest
from docker.errors import NotFound

from devspaces.adapters.runtime.docker import (
    LABEL_REPO,
    LABEL_WORKSPACE,
    WORKSPACE_MOUNT_PATH,
    DockerContainerRuntime,
)


def _container(status: str = "exited", container_id: str = "abc123def456") -> MagicMock:
    container = MagicMock()
    container.id = container_id
    container.status = status
    return container


class TestDockerContainerRuntime:
    """DockerContainerRuntime against a mocked docker client."""

    @pytest.fixture
    def client(self) -> MagicMock:
        client = MagicMock()
        client.containers.get.side_effect = NotFound("missing")
        client.containers.create.return_value = _container(container_id="new-id")
        return client

    @pytest.fixture
    def runtime(self, client: MagicMock) -> DockerContainerRuntime:
        with patch("devspaces.adapters.runtime.docker.docker") as mock_docker:
            mock_docker.from_env.return_value = client
            return DockerContainerRuntime(
                image="img:1", container_prefix="t-", network_name="t-net"
            )

    def test_uses_explicit_docker_host(self):
        with patch("devspaces.adapters.runtime.docker.docker") as mock_docker:
            DockerContainerRuntime(docker_host="tcp://proxy:2375")

        mock_docker.DockerClient.assert_called_once_with(base_url="tcp://proxy:2375")
        mock_docker.from_env.assert_not_called()

    async def test_create_named(self, runtime, client: MagicMock):
        handle = await runtime.create("https://git/x", {"A": "1"}, name="proj")

        assert handle == "new-id"
        image, kwargs = client.containers.create.call_args
        assert image == ("img:1",)
        assert kwargs["name"] == "t-proj"
        assert kwargs["network"] == "t-net"
        assert kwargs["environment"] == {"A": "1"}
        assert kwargs["labels"] == {LABEL_REPO: "https://git/x", LABEL_WORKSPACE: "proj"}
        assert kwargs["volumes"] == {
            "t-proj-home": {"bind": WORKSPACE_MOUNT_PATH, "mode": "rw"}
        }

    async def test_create_creates_missing_network(self, runtime, client: MagicMock):
        client.networks.get.side_effect = NotFound("no network")

        await runtime.create("https://git/x", {})

        client.networks.create.assert_called_once_with("t-net", driver="bridge")

    async def test_create_unnamed_has_no_volume(self, runtime, client: MagicMock):
        await runtime.create("https://git/x", {})

        _, kwargs = client.containers.create.call_args
        assert "name" not in kwargs
        assert "volumes" not in kwargs

    async def test_create_removes_stale_container(self, runtime, client: MagicMock):
        """A leftover container with the same name is removed first."""
        stale = _container()
        client.containers.get.side_effect = None
        client.containers.get.return_value = stale

        await runtime.create("https://git/x", {}, name="proj")

        client.containers.get.assert_called_once_with("t-proj")
        stale.remove.assert_called_once_with(force=True)
        client.containers.create.assert_called_once()

    async def test_start_missing_raises(self, runtime):
        with pytest.raises(NotFound):
            await runtime.start("gone")

    async def test_start_is_idempotent(self, runtime, client: MagicMock):
        running = _container(status="running")
        client.containers.get.side_effect = None
        client.containers.get.return_value = running

        await runtime.start("abc")

        running.start.assert_not_called()

    async def test_start_stopped_container(self, runtime, client: MagicMock):
        stopped = _container()
        client.containers.get.side_effect = None
        client.containers.get.return_value = stopped

        await runtime.start("abc")

        stopped.start.assert_called_once()

    async def test_stop_and_destroy_missing_are_noops(self, runtime, client):
        await runtime.stop("gone")
        await runtime.destroy("gone")

        assert client.containers.get.call_count == 2

    async def test_stop_running(self, runtime, client: MagicMock):
        running = _container(status="running")
        client.containers.get.side_effect = None
        client.containers.get.return_value = running

        await runtime.stop("abc")

        running.stop.assert_called_once()

    async def test_destroy_forces_removal(self, runtime, client: MagicMock):
        container = _container(status="running")
        client.containers.get.side_effect = None
        client.containers.get.return_value = container

        await runtime.destroy("abc")

        container.remove.assert_called_once_with(force=True)

    async def test_status(self, runtime, client: MagicMock):
        assert (await runtime.status("gone")).exists is False

        client.containers.get.side_effect = None
        client.containers.get.return_value = _container(status="running")
        status = await runtime.status("abc")

        assert status.exists is True
        assert status.running is True
