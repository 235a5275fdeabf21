"""dockship command line.

Every parameter can come from a flag, a ``DOCKSHIP_*`` environment variable
(``.env`` is loaded first) or an interactive prompt.
"""
import sys
from pathlib import Path
from typing import Optional

import click
from loguru import logger
from pydantic import SecretStr

from dockship import __version__
from dockship.audit_log import setup_logging, shutdown_logging
from dockship.config import (
    DEFAULT_BRANCH,
    DEFAULT_CONNECT_TIMEOUT,
    TOKEN_ENV_VAR,
    Settings,
    load_env_file,
)
from dockship.errors import DeploymentError
from dockship.models import DeploymentRequest
from dockship.pipeline import Deployer
from dockship.secrets_manager import SecretsManager


def _ask(value: Optional[str], text: str, interactive: bool, hide_input: bool = False) -> str:
    if value:
        return value.strip()
    if not interactive:
        return ""
    answer = click.prompt(text, default="", show_default=False, hide_input=hide_input)
    return answer.strip()


def resolve_token(settings: Settings) -> str:
    """Token from the configured secret backend, else a hidden prompt."""
    token = None
    try:
        manager = SecretsManager(settings.secrets_mode, secret_file=settings.token_file)
        token = manager.get_secret(TOKEN_ENV_VAR)
    except (ValueError, FileNotFoundError, RuntimeError) as e:
        logger.warning(f"Could not load token from {settings.secrets_mode} secrets: {e}")
    if token:
        return token
    return _ask(None, "🔑 Enter your Personal Access Token (PAT)", settings.interactive, hide_input=True)


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=__version__)
@click.option("--repo-url", envvar="DOCKSHIP_REPO_URL", help="Git repository URL.")
@click.option("--ssh-user", envvar="DOCKSHIP_SSH_USER", help="Remote SSH username.")
@click.option("--host", envvar="DOCKSHIP_HOST", help="Remote server address.")
@click.option("--ssh-key", envvar="DOCKSHIP_SSH_KEY", help="Path to the SSH private key.")
@click.option("--app-port", envvar="DOCKSHIP_APP_PORT", help="Port the application listens on.")
@click.option("--branch", envvar="DOCKSHIP_BRANCH", default=DEFAULT_BRANCH, show_default=True)
@click.option("--app-name", envvar="DOCKSHIP_APP_NAME", help="Deployment name (default: repository name).")
@click.option("--remote-dir", envvar="DOCKSHIP_REMOTE_DIR", help="Remote directory for the application files.")
@click.option(
    "--provisioner",
    envvar="DOCKSHIP_PROVISIONER",
    type=click.Choice(["os", "vendor"]),
    default="os",
    show_default=True,
    help="Install Docker from the distribution (os) or Docker's apt repository (vendor).",
)
@click.option(
    "--transport",
    envvar="DOCKSHIP_TRANSPORT",
    type=click.Choice(["ssh", "paramiko"]),
    default="ssh",
    show_default=True,
)
@click.option(
    "--transfer",
    envvar="DOCKSHIP_TRANSFER",
    type=click.Choice(["rsync", "scp"]),
    default="rsync",
    show_default=True,
)
@click.option(
    "--secrets-mode",
    envvar="DOCKSHIP_SECRETS_MODE",
    type=click.Choice(["env", "file", "aws"]),
    default="env",
    show_default=True,
)
@click.option("--token-file", envvar="DOCKSHIP_TOKEN_FILE", type=click.Path(path_type=Path))
@click.option("--workdir", envvar="DOCKSHIP_WORKDIR", type=click.Path(path_type=Path), default=".")
@click.option("--log-dir", envvar="DOCKSHIP_LOG_DIR", type=click.Path(path_type=Path), default=".")
@click.option(
    "--connect-timeout",
    envvar="DOCKSHIP_CONNECT_TIMEOUT",
    type=int,
    default=DEFAULT_CONNECT_TIMEOUT,
    show_default=True,
)
@click.option("--docker-sudo", envvar="DOCKSHIP_DOCKER_SUDO", is_flag=True, help="Run docker through sudo.")
@click.option("--keep-default-site", envvar="DOCKSHIP_KEEP_DEFAULT_SITE", is_flag=True)
@click.option("--no-input", is_flag=True, help="Never prompt; missing values are errors.")
@click.option("--cleanup", is_flag=True, help="Tear down the deployment instead of deploying.")
@click.option("-v", "--verbose", is_flag=True)
def cli(
    repo_url,
    ssh_user,
    host,
    ssh_key,
    app_port,
    branch,
    app_name,
    remote_dir,
    provisioner,
    transport,
    transfer,
    secrets_mode,
    token_file,
    workdir,
    log_dir,
    connect_timeout,
    docker_sudo,
    keep_default_site,
    no_input,
    cleanup,
    verbose,
):
    """Deploy a Dockerized git repository to a remote host behind Nginx."""
    log_path = setup_logging(log_dir, verbose=verbose)
    settings = Settings(
        provisioner=provisioner,
        transport=transport,
        transfer=transfer,
        secrets_mode=secrets_mode,
        token_file=token_file,
        workdir=workdir,
        log_dir=log_dir,
        connect_timeout=connect_timeout,
        docker_sudo=docker_sudo,
        keep_default_site=keep_default_site,
        interactive=not no_input,
        verbose=verbose,
    )
    interactive = settings.interactive

    try:
        repo_url = _ask(repo_url, "👉 Enter your Git repository URL", interactive and not (cleanup and app_name))
        token = "" if cleanup else resolve_token(settings)
        ssh_user = _ask(ssh_user, "👤 Enter remote SSH username", interactive)
        host = _ask(host, "🌍 Enter remote server IP address", interactive)
        ssh_key = _ask(ssh_key, "🗝️ Enter SSH key path (e.g., ~/.ssh/id_rsa)", interactive)
        if not cleanup:
            app_port = _ask(app_port, "⚙️ Enter application port (internal container port)", interactive)

        request = DeploymentRequest(
            repo_url=repo_url,
            token=SecretStr(token),
            ssh_user=ssh_user,
            host=host,
            ssh_key=ssh_key,
            app_port=app_port or "",
            branch=branch,
            app_name=app_name,
            remote_dir=remote_dir,
        )
        logger.info(f"Inputs collected. Branch: {request.branch}")

        deployer = Deployer(request, settings)
        if cleanup:
            deployer.cleanup()
            logger.success("Cleanup mode completed.")
        else:
            deployer.run()
        logger.info(f"📜 All actions logged in {log_path}")
    except DeploymentError as e:
        logger.error(f"❌ Error: {e.message}")
        if e.recoverable:
            logger.error("Remote steps are idempotent; re-running dockship is safe.")
        logger.error(f"Check {log_path} for details.")
        shutdown_logging()
        sys.exit(1)
    except (click.Abort, KeyboardInterrupt):
        logger.error("❌ Aborted by user.")
        shutdown_logging()
        sys.exit(1)
    except Exception as e:
        logger.exception(f"❌ Unexpected error ({type(e).__name__}). Check {log_path} for details.")
        shutdown_logging()
        sys.exit(1)

    shutdown_logging()


def main():
    load_env_file()
    cli()


if __name__ == "__main__":
    main()
