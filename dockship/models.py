"""Per-run data: the deployment request and the names derived from it."""
from __future__ import annotations

import re
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, SecretStr

from dockship.config import (
    COMPOSE_FILES,
    DEFAULT_BRANCH,
    DOCKERFILE,
    NGINX_SITES_AVAILABLE,
    NGINX_SITES_ENABLED,
)

# no dots: compose v2 rejects them in project names and v1 strips them
_INVALID_NAME_CHARS = re.compile(r"[^a-z0-9_-]+")


def derive_repo_name(repo_url: str) -> str:
    """Return the last path segment of ``repo_url`` without a ``.git`` suffix.

    >>> derive_repo_name("https://github.com/acme/widget.git")
    'widget'
    >>> derive_repo_name("git@github.com:acme/widget.git")
    'widget'
    """
    path = repo_url.strip().rstrip("/")
    # scp-style "git@host:owner/name.git" has no slash before the owner
    segment = re.split(r"[/:]", path)[-1]
    if segment.endswith(".git"):
        segment = segment[: -len(".git")]
    return segment


def normalize_app_name(name: str) -> str:
    """Lowercase ``name`` and squash anything Docker would reject into '-'."""
    normalized = _INVALID_NAME_CHARS.sub("-", name.strip().lower())
    normalized = normalized.lstrip("-_")
    if not normalized:
        raise ValueError(f"Cannot derive an application name from {name!r}")
    return normalized


class DeploymentIdentity(BaseModel):
    """Every remote resource name owned by one application."""

    app_name: str
    repo_name: str
    remote_dir: str

    @property
    def container_name(self) -> str:
        return self.app_name

    @property
    def image_tag(self) -> str:
        return f"{self.app_name}:latest"

    @property
    def label(self) -> str:
        return f"dockship.app={self.app_name}"

    @property
    def nginx_conf(self) -> str:
        return f"{NGINX_SITES_AVAILABLE}/{self.app_name}.conf"

    @property
    def nginx_link(self) -> str:
        return f"{NGINX_SITES_ENABLED}/{self.app_name}.conf"


class DeploymentRequest(BaseModel):
    """Parameters gathered once per invocation. Never persisted."""

    repo_url: str = ""
    token: SecretStr = SecretStr("")
    ssh_user: str = ""
    host: str = ""
    ssh_key: str = ""
    app_port: str = ""
    branch: str = DEFAULT_BRANCH
    app_name: Optional[str] = None
    remote_dir: Optional[str] = None

    @property
    def repo_name(self) -> str:
        return derive_repo_name(self.repo_url)

    @property
    def port(self) -> int:
        return int(self.app_port)

    @property
    def ssh_key_path(self) -> Path:
        return Path(self.ssh_key).expanduser()

    def default_remote_dir(self, dirname: str) -> str:
        home = "/root" if self.ssh_user == "root" else f"/home/{self.ssh_user}"
        return f"{home}/{dirname}"

    def identity(self) -> DeploymentIdentity:
        repo_name = self.repo_name if self.repo_url else ""
        app_name = normalize_app_name(self.app_name or repo_name)
        repo_name = repo_name or app_name
        return DeploymentIdentity(
            app_name=app_name,
            repo_name=repo_name,
            remote_dir=self.remote_dir or self.default_remote_dir(repo_name),
        )


class BuildDescriptor(BaseModel):
    kind: Literal["compose", "dockerfile"]
    filename: str

    @property
    def is_compose(self) -> bool:
        return self.kind == "compose"


def find_build_descriptor(repo_path: Path) -> Optional[BuildDescriptor]:
    """Look for a compose file, then a Dockerfile, at the repository root."""
    repo_path = Path(repo_path)
    for name in COMPOSE_FILES:
        if (repo_path / name).is_file():
            return BuildDescriptor(kind="compose", filename=name)
    if (repo_path / DOCKERFILE).is_file():
        return BuildDescriptor(kind="dockerfile", filename=DOCKERFILE)
    return None


class CommandResult(BaseModel):
    returncode: int
    output: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class DeploymentResult(BaseModel):
    app_name: str
    status: str
    descriptor: Optional[BuildDescriptor] = None
    commit_hash: Optional[str] = None
    log_file: Optional[str] = None
    error: Optional[str] = None
