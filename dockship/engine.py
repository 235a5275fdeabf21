# dockship/engine.py
import shlex
from typing import List, Optional, Tuple

from loguru import logger

from dockship.errors import RemoteCommandError
from dockship.models import BuildDescriptor, DeploymentIdentity
from dockship.transport import RemoteCommand, RemoteTransport, tolerant


class RemoteContainerEngine:
    """Builds, runs and tears down one application's containers on the host.

    Every command goes through the transport; nothing here talks to a local
    Docker daemon.
    """

    def __init__(
        self,
        transport: RemoteTransport,
        identity: DeploymentIdentity,
        compose_command: str = "docker compose",
        use_sudo: bool = False,
    ):
        self.transport = transport
        self.identity = identity
        self.use_sudo = use_sudo
        self._compose_command = compose_command

    @property
    def docker(self) -> str:
        return "sudo docker" if self.use_sudo else "docker"

    @property
    def compose(self) -> str:
        base = f"{self._compose_command} -p {self.identity.app_name}"
        return f"sudo {base}" if self.use_sudo else base

    @property
    def compose_project_label(self) -> str:
        return f"com.docker.compose.project={self.identity.app_name}"

    def _cd(self) -> RemoteCommand:
        return RemoteCommand(f"cd {shlex.quote(self.identity.remote_dir)}")

    def remove_container_commands(self) -> List[RemoteCommand]:
        name = self.identity.container_name
        return [
            tolerant(f"{self.docker} stop {name}"),
            tolerant(f"{self.docker} rm {name}"),
        ]

    def compose_commands(self, descriptor: BuildDescriptor) -> List[RemoteCommand]:
        compose = f"{self.compose} -f {shlex.quote(descriptor.filename)}"
        return [
            self._cd(),
            *self.remove_container_commands(),
            tolerant(f"{compose} down"),
            RemoteCommand(f"{compose} up -d --build"),
        ]

    def dockerfile_commands(self, descriptor: BuildDescriptor, port: int) -> List[RemoteCommand]:
        ident = self.identity
        return [
            self._cd(),
            *self.remove_container_commands(),
            RemoteCommand(
                f"{self.docker} build -t {ident.image_tag} -f {shlex.quote(descriptor.filename)} ."
            ),
            RemoteCommand(
                f"{self.docker} run -d -p {port}:{port} --name {ident.container_name} "
                f"--label {ident.label} {ident.image_tag}"
            ),
        ]

    def deploy(self, descriptor: BuildDescriptor, port: int) -> None:
        if descriptor.is_compose:
            logger.info(f"🧱 {descriptor.filename} detected, using Docker Compose...")
            commands = self.compose_commands(descriptor)
        else:
            logger.info("🐳 No compose file found, using Dockerfile build...")
            commands = self.dockerfile_commands(descriptor, port)
        try:
            self.transport.run(commands)
        except RemoteCommandError as e:
            raise RemoteCommandError(
                f"Container build/run failed: {e.message}", result=e.result, stage="build"
            ) from e

    def verify_upload(self, descriptor: BuildDescriptor) -> bool:
        path = f"{self.identity.remote_dir.rstrip('/')}/{descriptor.filename}"
        result = self.transport.run([f"test -f {shlex.quote(path)}"], check=False)
        return result.ok

    def list_containers(self) -> List[Tuple[str, str]]:
        """Return ``(name, state)`` for every container on the host."""
        result = self.transport.run(
            [f"{self.docker} ps -a --format '{{{{.Names}}}} {{{{.State}}}}'"]
        )
        containers = []
        for line in result.output.splitlines():
            parts = line.strip().split()
            if len(parts) == 2:
                containers.append((parts[0], parts[1]))
        return containers

    def _owns(self, name: str, compose: bool) -> bool:
        app = self.identity.app_name
        if name == app:
            return True
        return compose and (name.startswith(f"{app}-") or name.startswith(f"{app}_"))

    def stale_containers(self, descriptor: Optional[BuildDescriptor] = None) -> List[str]:
        compose = bool(descriptor and descriptor.is_compose)
        return [
            name
            for name, state in self.list_containers()
            if self._owns(name, compose) and state != "running"
        ]

    def prune_commands(self) -> List[RemoteCommand]:
        return [
            tolerant(f"{self.docker} image prune -af"),
            tolerant(f"{self.docker} network prune -f"),
        ]

    def ensure_idempotency(self, descriptor: Optional[BuildDescriptor] = None) -> List[str]:
        """Remove stopped leftovers of this app and prune unused resources.

        The running container is left alone.
        """
        stale = self.stale_containers(descriptor)
        commands: List[RemoteCommand] = []
        for name in stale:
            logger.info(f"Found old container {name}, removing it...")
            commands.append(tolerant(f"{self.docker} stop {name}"))
            commands.append(tolerant(f"{self.docker} rm {name}"))
        commands.extend(self.prune_commands())
        self.transport.run(commands)
        return stale

    def cleanup_commands(self) -> List[RemoteCommand]:
        remote_dir = shlex.quote(self.identity.remote_dir)
        return [
            *self.remove_container_commands(),
            tolerant(f"(cd {remote_dir} && {self.compose} down)"),
            # catches stacks brought up by the other compose binary
            tolerant(
                f"{self.docker} ps -aq --filter label={self.compose_project_label} "
                f"| xargs -r {self.docker} rm -f"
            ),
            tolerant(f"{self.docker} image prune -af"),
            tolerant(f"{self.docker} volume prune -f"),
            tolerant(f"{self.docker} network prune -f"),
        ]

    def status_commands(self) -> List[RemoteCommand]:
        return [
            RemoteCommand('echo "Checking Docker containers..."'),
            tolerant(f"{self.docker} ps"),
        ]
