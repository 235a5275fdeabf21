"""The deployment workflow.

Deployer runs the stages strictly in order and lets the first DeploymentError
propagate. Nothing is retried and nothing is rolled back; every remote step
is idempotent, so re-running the whole deployment is the recovery path.
"""
from __future__ import annotations

from pathlib import Path
from typing import Optional
from urllib.parse import quote

import requests
from loguru import logger

from dockship.audit_log import register_secret
from dockship.config import Settings
from dockship.engine import RemoteContainerEngine
from dockship.errors import (
    DeploymentError,
    DescriptorError,
    InputError,
    PreconditionError,
)
from dockship.git_manager import GitManager, git_available
from dockship.models import (
    BuildDescriptor,
    DeploymentIdentity,
    DeploymentRequest,
    DeploymentResult,
    find_build_descriptor,
)
from dockship.network import is_port_open, validate_port
from dockship.provisioner import Provisioner, get_provisioner
from dockship.proxy_manager import ProxyManager
from dockship.transport import RemoteCommand, RemoteTransport, create_transport, tolerant


def check_inputs(request: DeploymentRequest, cleanup: bool = False) -> None:
    """Fail on the first missing or unusable parameter."""
    if not request.repo_url and not (cleanup and request.app_name):
        raise InputError("Repository URL cannot be empty.")
    if not cleanup and not request.token.get_secret_value():
        raise InputError("Personal Access Token is required.")
    if not request.ssh_user:
        raise InputError("SSH username cannot be empty.")
    if not request.host:
        raise InputError("Server IP address cannot be empty.")
    if not cleanup:
        if not request.app_port:
            raise InputError("Application port is required.")
        if validate_port(request.app_port) is None:
            raise InputError(f"Invalid application port: {request.app_port}")


def check_preconditions(request: DeploymentRequest, cleanup: bool = False) -> None:
    if not request.ssh_key or not request.ssh_key_path.is_file():
        raise PreconditionError(f"SSH key file not found at: {request.ssh_key}")
    if not cleanup and not git_available():
        raise PreconditionError("Git is not installed on this system.")


class Deployer:
    def __init__(
        self,
        request: DeploymentRequest,
        settings: Optional[Settings] = None,
        transport: Optional[RemoteTransport] = None,
        git_manager: Optional[GitManager] = None,
        provisioner: Optional[Provisioner] = None,
    ):
        self.request = request
        self.settings = settings or Settings()
        self._transport = transport
        self._git_manager = git_manager
        self.provisioner = provisioner or get_provisioner(self.settings.provisioner)
        self._identity: Optional[DeploymentIdentity] = None

        token = request.token.get_secret_value()
        register_secret(token)
        register_secret(quote(token, safe=""))

    # --- lazily built collaborators ---

    @property
    def identity(self) -> DeploymentIdentity:
        if self._identity is None:
            try:
                self._identity = self.request.identity()
            except ValueError as e:
                raise InputError(str(e)) from e
        return self._identity

    @property
    def transport(self) -> RemoteTransport:
        if self._transport is None:
            self._transport = create_transport(
                self.request.ssh_user,
                self.request.host,
                self.request.ssh_key_path,
                kind=self.settings.transport,
                transfer=self.settings.transfer,
                connect_timeout=self.settings.connect_timeout,
            )
        return self._transport

    @property
    def git_manager(self) -> GitManager:
        if self._git_manager is None:
            self._git_manager = GitManager(base_path=str(self.settings.workdir))
        return self._git_manager

    @property
    def engine(self) -> RemoteContainerEngine:
        return RemoteContainerEngine(
            self.transport,
            self.identity,
            compose_command=self.provisioner.compose_command,
            use_sudo=self.settings.docker_sudo,
        )

    @property
    def proxy(self) -> ProxyManager:
        return ProxyManager(
            self.transport, self.identity, keep_default_site=self.settings.keep_default_site
        )

    # --- stages ---

    def check_preconditions(self, cleanup: bool = False) -> None:
        check_inputs(self.request, cleanup=cleanup)
        check_preconditions(self.request, cleanup=cleanup)
        # resolve names early so a bad app name fails before any remote work
        self.identity
        logger.success("All local prerequisites verified successfully.")

    def acquire_source(self) -> Path:
        path = self.git_manager.sync_repository(
            self.request.repo_url,
            token=self.request.token.get_secret_value(),
            branch=self.request.branch,
        )
        logger.success(f"Repository ready: {self.request.repo_name}")
        return Path(path)

    def detect_descriptor(self, repo_path: Path) -> BuildDescriptor:
        descriptor = find_build_descriptor(repo_path)
        if descriptor is None:
            raise DescriptorError("No Dockerfile or docker-compose.yml found in the repository.")
        logger.info(f"🧩 Docker configuration found: {descriptor.filename}")
        return descriptor

    def check_connectivity(self) -> None:
        logger.info("🔐 Testing SSH connection...")
        self.transport.probe()
        logger.success(f"SSH connection to {self.request.host} established.")

    def provision(self) -> None:
        self.provisioner.provision(self.transport)

    def transfer(self, repo_path: Path, descriptor: BuildDescriptor) -> None:
        remote_dir = self.identity.remote_dir
        logger.info(f"🚚 Copying project files to {self.request.host}:{remote_dir}...")
        self.transport.upload(repo_path, remote_dir)
        if self.engine.verify_upload(descriptor):
            logger.info(f"{descriptor.filename} present on remote host.")
        else:
            logger.warning(f"{descriptor.filename} not found in {remote_dir} after transfer.")

    def build_and_run(self, descriptor: BuildDescriptor) -> None:
        logger.info("⚙️ Building and running the application remotely...")
        self.engine.deploy(descriptor, self.request.port)
        logger.success("Application deployed successfully.")

    def configure_proxy(self) -> str:
        return self.proxy.configure(self.request.port)

    def validate(self) -> None:
        """Best-effort diagnostics; never fails the run."""
        logger.info("🩺 Validating deployment...")
        commands = [
            *self.engine.status_commands(),
            *self.proxy.status_commands(),
            RemoteCommand('echo "Testing application endpoint..."'),
            tolerant("curl -sSI http://localhost"),
        ]
        try:
            self.transport.run(commands, check=False)
        except DeploymentError as e:
            logger.warning(f"Remote validation could not run: {e}")

        host = self.request.host
        if is_port_open(host, 80, timeout=3):
            try:
                response = requests.get(f"http://{host}/", timeout=5)
                logger.info(f"GET http://{host}/ -> HTTP {response.status_code}")
            except requests.RequestException as e:
                logger.warning(f"HTTP check against {host} failed: {e}")
        else:
            logger.warning(f"Port 80 on {host} is not reachable from here.")
        logger.success("Validation complete.")

    def ensure_idempotency(self, descriptor: BuildDescriptor) -> None:
        logger.info("🧠 Ensuring idempotency...")
        removed = self.engine.ensure_idempotency(descriptor)
        if removed:
            logger.info(f"Removed stale containers: {', '.join(removed)}")
        logger.success("Idempotency checks complete. Safe to re-run anytime.")

    # --- entry points ---

    def run(self) -> DeploymentResult:
        self.check_preconditions()
        try:
            repo_path = self.acquire_source()
            descriptor = self.detect_descriptor(repo_path)
            commit = self.git_manager.get_commit_hash(self.request.repo_name, short=True)
            self.check_connectivity()
            self.provision()
            self.transfer(repo_path, descriptor)
            self.build_and_run(descriptor)
            self.configure_proxy()
            self.validate()
            self.ensure_idempotency(descriptor)
        finally:
            self.close()
        logger.success("🎉 Deployment completed successfully!")
        return DeploymentResult(
            app_name=self.identity.app_name,
            status="deployed",
            descriptor=descriptor,
            commit_hash=commit,
        )

    def cleanup(self) -> DeploymentResult:
        self.check_preconditions(cleanup=True)
        try:
            self.check_connectivity()
            logger.info(f"🧹 Performing full cleanup of {self.identity.app_name} on remote server...")
            self.transport.run(self.engine.cleanup_commands() + self.proxy.remove_commands())
        finally:
            self.close()
        logger.success("Cleanup completed successfully.")
        return DeploymentResult(app_name=self.identity.app_name, status="cleaned")

    def close(self) -> None:
        if self._transport is not None:
            self._transport.close()
