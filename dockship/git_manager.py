# dockship/git_manager.py
import shutil
from pathlib import Path
from typing import Optional
from urllib.parse import quote, urlsplit, urlunsplit

import git
from git.exc import GitCommandError, InvalidGitRepositoryError, NoSuchPathError
from loguru import logger

from dockship.audit_log import redact
from dockship.config import DEFAULT_BRANCH
from dockship.errors import SourceError
from dockship.models import derive_repo_name


def git_available() -> bool:
    return shutil.which("git") is not None


def _is_scp_style(repo_url: str) -> bool:
    # git@github.com:acme/widget.git
    return "://" not in repo_url and "@" in repo_url.split("/", 1)[0]


def authenticated_url(repo_url: str, token: Optional[str]) -> str:
    """Return ``repo_url`` with ``token`` placed in its authority component.

    Bare ``host/path`` URLs are treated as https. ssh and scp-style URLs are
    returned unchanged because they authenticate with keys.
    """
    url = repo_url.strip()
    if _is_scp_style(url):
        return url
    if "://" not in url:
        url = f"https://{url}"
    parts = urlsplit(url)
    if not token or parts.scheme not in ("http", "https"):
        return url
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    netloc = f"{quote(token, safe='')}@{host}"
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))


class GitManager:
    def __init__(self, base_path: str = "."):
        self.base_path = str(base_path).rstrip("/") or "."
        Path(self.base_path).mkdir(parents=True, exist_ok=True)

    def get_repository_path(self, repo_name: str) -> str:
        return f"{self.base_path}/{repo_name}"

    def repository_exists(self, repo_name: str) -> bool:
        return Path(self.get_repository_path(repo_name)).exists()

    def sync_repository(
        self, repo_url: str, token: Optional[str] = None, branch: str = DEFAULT_BRANCH
    ) -> str:
        """Pull ``branch`` into an existing checkout, or clone it fresh.

        Returns the local checkout path. Uncommitted local changes are not
        protected.
        """
        repo_name = derive_repo_name(repo_url)
        if self.repository_exists(repo_name):
            logger.info("📂 Repo already exists. Pulling latest changes...")
            self.pull_repository(repo_name, repo_url, token=token, branch=branch)
        else:
            logger.info("⬇️ Cloning repository...")
            self.clone_repository(repo_url, repo_name, token=token, branch=branch)
        return self.get_repository_path(repo_name)

    def clone_repository(
        self,
        repo_url: str,
        repo_name: str,
        token: Optional[str] = None,
        branch: str = DEFAULT_BRANCH,
    ) -> str:
        dest = self.get_repository_path(repo_name)
        try:
            repo = git.Repo.clone_from(
                authenticated_url(repo_url, token),
                dest,
                branch=branch,
                single_branch=True,
            )
            # keep the token out of .git/config; it would otherwise be shipped
            repo.remotes.origin.set_url(authenticated_url(repo_url, None))
        except GitCommandError as e:
            raise SourceError(f"git clone failed: {redact(str(e))}") from e
        return dest

    def pull_repository(
        self,
        repo_name: str,
        repo_url: str,
        token: Optional[str] = None,
        branch: str = DEFAULT_BRANCH,
    ) -> None:
        dest = self.get_repository_path(repo_name)
        try:
            repo = git.Repo(dest)
            repo.git.pull(authenticated_url(repo_url, token), branch)
        except (InvalidGitRepositoryError, NoSuchPathError) as e:
            raise SourceError(f"{dest} exists but is not a git repository") from e
        except GitCommandError as e:
            raise SourceError(f"git pull failed: {redact(str(e))}") from e

    def get_commit_hash(self, repo_name: str, short: bool = False) -> str:
        dest = self.get_repository_path(repo_name)
        repo = git.Repo(dest)
        hexsha = repo.head.commit.hexsha
        return hexsha[:7] if short else hexsha
