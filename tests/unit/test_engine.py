"""Tests for RemoteContainerEngine command sequences."""
import pytest

from dockship.engine import RemoteContainerEngine
from dockship.errors import RemoteCommandError
from dockship.models import BuildDescriptor, DeploymentIdentity, DeploymentRequest

DOCKERFILE = BuildDescriptor(kind="dockerfile", filename="Dockerfile")
COMPOSE = BuildDescriptor(kind="compose", filename="docker-compose.yml")


@pytest.fixture
def identity():
    return DeploymentIdentity(app_name="widget", repo_name="widget", remote_dir="/home/deploy/widget")


@pytest.fixture
def engine(fake_transport, identity):
    return RemoteContainerEngine(fake_transport, identity, compose_command="docker compose")


def _cmds(commands):
    return [c.render() for c in commands]


class TestDockerfileDeploy:
    """Test the build-and-run path."""

    def test_removes_existing_container_before_run(self, engine):
        cmds = _cmds(engine.dockerfile_commands(DOCKERFILE, 8080))
        stop = cmds.index("docker stop widget || true")
        rm = cmds.index("docker rm widget || true")
        run = next(i for i, c in enumerate(cmds) if c.startswith("docker run"))
        assert stop < rm < run

    def test_build_and_run_arguments(self, engine):
        cmds = _cmds(engine.dockerfile_commands(DOCKERFILE, 8080))
        assert cmds[0] == "cd /home/deploy/widget"
        assert "docker build -t widget:latest -f Dockerfile ." in cmds
        assert (
            "docker run -d -p 8080:8080 --name widget --label dockship.app=widget widget:latest"
            in cmds
        )

    def test_sudo_prefix(self, fake_transport, identity):
        engine = RemoteContainerEngine(fake_transport, identity, use_sudo=True)
        cmds = _cmds(engine.dockerfile_commands(DOCKERFILE, 3000))
        assert "sudo docker stop widget || true" in cmds
        assert any(c.startswith("sudo docker run") for c in cmds)


class TestComposeDeploy:
    """Test the compose path."""

    def test_compose_up_with_build(self, engine):
        cmds = _cmds(engine.compose_commands(COMPOSE))
        assert "docker compose -p widget -f docker-compose.yml down || true" in cmds
        assert cmds[-1] == "docker compose -p widget -f docker-compose.yml up -d --build"

    def test_legacy_compose_binary(self, fake_transport, identity):
        engine = RemoteContainerEngine(fake_transport, identity, compose_command="docker-compose")
        cmds = _cmds(engine.compose_commands(COMPOSE))
        assert cmds[-1].startswith("docker-compose -p widget")

    def test_dotted_repository_gets_valid_project_name(self, fake_transport):
        identity = DeploymentRequest(
            repo_url="https://github.com/acme/example.com.git", ssh_user="deploy"
        ).identity()
        engine = RemoteContainerEngine(fake_transport, identity, compose_command="docker compose")

        cmds = _cmds(engine.compose_commands(COMPOSE))

        assert cmds[0] == "cd /home/deploy/example.com"
        assert cmds[-1] == "docker compose -p example-com -f docker-compose.yml up -d --build"
        fake_transport.ps_output = "example-com-web-1 exited\n"
        assert engine.stale_containers(COMPOSE) == ["example-com-web-1"]

    def test_deploy_dispatches_on_descriptor(self, engine, fake_transport):
        engine.deploy(COMPOSE, 8080)
        assert "up -d --build" in fake_transport.scripts[0]
        assert "docker build" not in fake_transport.scripts[0]

    def test_deploy_failure(self, engine, fake_transport):
        fake_transport.fail_on = "docker build"
        with pytest.raises(RemoteCommandError) as exc_info:
            engine.deploy(DOCKERFILE, 8080)
        assert exc_info.value.stage == "build"


class TestIdempotency:
    """Test the stale-container re-assertion."""

    def test_list_containers_parses_output(self, engine, fake_transport):
        fake_transport.ps_output = "widget running\nother exited\n\n"
        assert engine.list_containers() == [("widget", "running"), ("other", "exited")]

    def test_running_container_is_kept(self, engine, fake_transport):
        fake_transport.ps_output = "widget running\n"
        removed = engine.ensure_idempotency(DOCKERFILE)
        assert removed == []
        assert "docker rm widget" not in fake_transport.scripts[-1]
        assert "docker image prune -af || true" in fake_transport.scripts[-1]
        assert "docker network prune -f || true" in fake_transport.scripts[-1]

    def test_stopped_container_is_removed(self, engine, fake_transport):
        fake_transport.ps_output = "widget exited\nwidgetry exited\n"
        removed = engine.ensure_idempotency(DOCKERFILE)
        assert removed == ["widget"]
        assert "docker rm widget || true" in fake_transport.scripts[-1]

    def test_compose_containers_matched_by_project_prefix(self, engine, fake_transport):
        fake_transport.ps_output = "widget-web-1 running\nwidget-db-1 exited\nwidgetry exited\n"
        assert engine.stale_containers(COMPOSE) == ["widget-db-1"]


class TestCleanup:
    def test_cleanup_removes_container_and_prunes(self, engine):
        cmds = _cmds(engine.cleanup_commands())
        assert cmds[:2] == ["docker stop widget || true", "docker rm widget || true"]
        assert "docker volume prune -f || true" in cmds
        assert "(cd /home/deploy/widget && docker compose -p widget down) || true" in cmds
        assert not any("docker build" in c or "docker run" in c for c in cmds)

    def test_cleanup_sweeps_compose_project_label(self, fake_transport, identity):
        # stack was started with docker compose, cleanup runs with docker-compose
        engine = RemoteContainerEngine(fake_transport, identity, compose_command="docker-compose")
        cmds = _cmds(engine.cleanup_commands())
        down = cmds.index("(cd /home/deploy/widget && docker-compose -p widget down) || true")
        sweep = cmds.index(
            "docker ps -aq --filter label=com.docker.compose.project=widget "
            "| xargs -r docker rm -f || true"
        )
        prune = cmds.index("docker network prune -f || true")
        assert down < sweep < prune

    def test_cleanup_sweep_uses_sudo(self, fake_transport, identity):
        engine = RemoteContainerEngine(fake_transport, identity, use_sudo=True)
        cmds = _cmds(engine.cleanup_commands())
        assert (
            "sudo docker ps -aq --filter label=com.docker.compose.project=widget "
            "| xargs -r sudo docker rm -f || true"
        ) in cmds

    def test_verify_upload(self, engine, fake_transport):
        assert engine.verify_upload(DOCKERFILE) is True
        assert "test -f /home/deploy/widget/Dockerfile" in fake_transport.scripts[-1]
