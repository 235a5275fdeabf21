"""Remote host provisioning strategies.

Both install Docker, a compose tool and Nginx through apt and enable the
services. They differ in where Docker comes from:

- OsPackagesProvisioner: the distribution's own ``docker.io`` packages
- VendorRepoProvisioner: Docker's apt repository and signing key
"""
from __future__ import annotations

from typing import List

from loguru import logger

from dockship.errors import ProvisioningError, RemoteCommandError
from dockship.transport import RemoteCommand, RemoteTransport, tolerant

APT_ENV = "sudo DEBIAN_FRONTEND=noninteractive"
DOCKER_KEYRING = "/etc/apt/keyrings/docker.asc"
DOCKER_APT_SOURCE = "/etc/apt/sources.list.d/docker.list"
DOCKER_APT_URL = "https://download.docker.com/linux/ubuntu"


class Provisioner:
    name = "base"
    compose_command = "docker compose"

    def install_commands(self) -> List[RemoteCommand]:
        raise NotImplementedError

    def service_commands(self) -> List[RemoteCommand]:
        return [
            tolerant('sudo usermod -aG docker "$USER"'),
            RemoteCommand("sudo systemctl enable docker nginx"),
            RemoteCommand("sudo systemctl start docker nginx"),
            RemoteCommand("docker --version"),
            RemoteCommand(f"{self.compose_command} version"),
            RemoteCommand("nginx -v"),
        ]

    def commands(self) -> List[RemoteCommand]:
        return self.install_commands() + self.service_commands()

    def provision(self, transport: RemoteTransport) -> None:
        logger.info(f"🧰 Preparing remote environment ({self.name} packages)...")
        try:
            transport.run(self.commands())
        except RemoteCommandError as e:
            raise ProvisioningError(
                f"Remote provisioning failed: {e.message}", result=e.result
            ) from e
        logger.success("Remote environment prepared.")


class OsPackagesProvisioner(Provisioner):
    name = "os"
    compose_command = "docker-compose"

    def install_commands(self) -> List[RemoteCommand]:
        return [
            RemoteCommand("sudo apt-get update -y"),
            RemoteCommand(f"{APT_ENV} apt-get install -y docker.io docker-compose nginx"),
        ]


class VendorRepoProvisioner(Provisioner):
    name = "vendor"
    compose_command = "docker compose"

    def install_commands(self) -> List[RemoteCommand]:
        repo_line = (
            'echo "deb [arch=$(dpkg --print-architecture) '
            f'signed-by={DOCKER_KEYRING}] {DOCKER_APT_URL} '
            '$(. /etc/os-release && echo "$VERSION_CODENAME") stable"'
        )
        return [
            RemoteCommand("sudo apt-get update -y"),
            RemoteCommand(f"{APT_ENV} apt-get install -y ca-certificates curl gnupg nginx"),
            RemoteCommand("sudo install -m 0755 -d /etc/apt/keyrings"),
            RemoteCommand(f"sudo curl -fsSL {DOCKER_APT_URL}/gpg -o {DOCKER_KEYRING}"),
            RemoteCommand(f"sudo chmod a+r {DOCKER_KEYRING}"),
            RemoteCommand(f"{repo_line} | sudo tee {DOCKER_APT_SOURCE} > /dev/null"),
            RemoteCommand("sudo apt-get update -y"),
            RemoteCommand(
                f"{APT_ENV} apt-get install -y docker-ce docker-ce-cli containerd.io "
                "docker-buildx-plugin docker-compose-plugin"
            ),
        ]


PROVISIONERS = {
    OsPackagesProvisioner.name: OsPackagesProvisioner,
    VendorRepoProvisioner.name: VendorRepoProvisioner,
}


def get_provisioner(name: str) -> Provisioner:
    try:
        return PROVISIONERS[name]()
    except KeyError:
        raise ValueError(f"Unknown provisioner: {name}") from None
