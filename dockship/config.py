"""Runtime configuration.

Settings come from command-line flags, ``DOCKSHIP_*`` environment variables
and an optional ``.env`` file, in that order of precedence.
"""
from __future__ import annotations

from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv
from loguru import logger
from pydantic import BaseModel, Field

ENV_PREFIX = "DOCKSHIP_"
TOKEN_ENV_VAR = "DOCKSHIP_GIT_TOKEN"

DEFAULT_BRANCH = "main"
DEFAULT_CONNECT_TIMEOUT = 10

NGINX_SITES_AVAILABLE = "/etc/nginx/sites-available"
NGINX_SITES_ENABLED = "/etc/nginx/sites-enabled"

COMPOSE_FILES = (
    "docker-compose.yml",
    "docker-compose.yaml",
    "compose.yml",
    "compose.yaml",
)
DOCKERFILE = "Dockerfile"

LOG_FILE_PATTERN = "deploy_%Y%m%d_%H%M%S.log"


class Settings(BaseModel):
    """Operational knobs that are not part of the deployment request."""

    provisioner: Literal["os", "vendor"] = "os"
    transport: Literal["ssh", "paramiko"] = "ssh"
    transfer: Literal["rsync", "scp"] = "rsync"
    secrets_mode: Literal["env", "file", "aws"] = "env"
    token_file: Optional[Path] = None
    workdir: Path = Field(default_factory=Path.cwd)
    log_dir: Path = Field(default_factory=Path.cwd)
    connect_timeout: int = DEFAULT_CONNECT_TIMEOUT
    docker_sudo: bool = False
    keep_default_site: bool = False
    interactive: bool = True
    verbose: bool = False


def load_env_file(path: Optional[Path] = None) -> bool:
    """Load a ``.env`` file into the process environment if one exists."""
    env_path = Path(path) if path else Path(".env")
    if not env_path.exists():
        return False
    try:
        return load_dotenv(env_path)
    except Exception as e:  # pragma: no cover
        logger.warning(f"Failed to load {env_path}: {e}")
        return False
