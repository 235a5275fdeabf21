# dockship/proxy_manager.py
import shlex
from typing import Dict, List, Optional

from loguru import logger

from dockship.config import NGINX_SITES_ENABLED
from dockship.errors import ProxyConfigError, RemoteCommandError
from dockship.models import DeploymentIdentity
from dockship.transport import RemoteCommand, RemoteTransport, tolerant

DEFAULT_PROXY_HEADERS = {
    "Host": "$host",
    "X-Real-IP": "$remote_addr",
    "X-Forwarded-For": "$proxy_add_x_forwarded_for",
    "X-Forwarded-Proto": "$scheme",
}

HEREDOC_MARKER = "DOCKSHIP_NGINX_EOF"


class ProxyManager:
    """Writes, enables and removes one Nginx site on the remote host."""

    def __init__(
        self,
        transport: RemoteTransport,
        identity: DeploymentIdentity,
        keep_default_site: bool = False,
    ):
        self.transport = transport
        self.identity = identity
        self.keep_default_site = keep_default_site

    def generate_config(
        self,
        port: int,
        domain: str = "_",
        custom_headers: Optional[Dict[str, str]] = None,
    ) -> str:
        headers = dict(DEFAULT_PROXY_HEADERS)
        if custom_headers:
            headers.update(custom_headers)
        lines = [
            "server {",
            "    listen 80;",
            f"    server_name {domain};",
            "",
            "    location / {",
            f"        proxy_pass http://localhost:{port};",
        ]
        for k, v in headers.items():
            lines.append(f"        proxy_set_header {k} {v};")
        lines.append("    }")
        lines.append("}")
        return "\n".join(lines) + "\n"

    def install_commands(self, content: str) -> List[RemoteCommand]:
        """Stage, install, link and validate the site; roll back if nginx -t fails."""
        conf = shlex.quote(self.identity.nginx_conf)
        link = shlex.quote(self.identity.nginx_link)
        backup = shlex.quote(f"{self.identity.nginx_conf}.bak")
        commands = [
            RemoteCommand("staging=$(mktemp)"),
            RemoteCommand(f"cat > \"$staging\" <<'{HEREDOC_MARKER}'\n{content}{HEREDOC_MARKER}"),
            RemoteCommand(f"sudo rm -f {backup}"),
            RemoteCommand(f"if [ -f {conf} ]; then sudo cp -p {conf} {backup}; fi"),
            RemoteCommand(f"sudo install -m 644 \"$staging\" {conf}"),
            RemoteCommand('rm -f "$staging"'),
            RemoteCommand(f"sudo ln -sfn {conf} {link}"),
        ]
        if not self.keep_default_site:
            commands.append(RemoteCommand(f"sudo rm -f {NGINX_SITES_ENABLED}/default"))
        commands.extend(
            [
                RemoteCommand(
                    "if ! sudo nginx -t; then "
                    f"if [ -f {backup} ]; then sudo mv -f {backup} {conf}; "
                    f"else sudo rm -f {conf} {link}; fi; "
                    'echo "nginx configuration test failed, previous site restored" >&2; '
                    "exit 1; fi"
                ),
                RemoteCommand(f"sudo rm -f {backup}"),
                RemoteCommand("sudo systemctl reload nginx"),
            ]
        )
        return commands

    def configure(self, port: int) -> str:
        logger.info("🌐 Configuring Nginx reverse proxy...")
        content = self.generate_config(port)
        try:
            self.transport.run(self.install_commands(content))
        except RemoteCommandError as e:
            raise ProxyConfigError(
                f"Nginx configuration failed: {e.message}", result=e.result
            ) from e
        logger.success(f"Nginx forwards HTTP port 80 to localhost:{port}.")
        return content

    def remove_commands(self) -> List[RemoteCommand]:
        return [
            RemoteCommand(f"sudo rm -f {shlex.quote(self.identity.nginx_conf)}"),
            RemoteCommand(f"sudo rm -f {shlex.quote(self.identity.nginx_link)}"),
            RemoteCommand("sudo systemctl reload nginx"),
        ]

    def status_commands(self) -> List[RemoteCommand]:
        return [
            RemoteCommand('echo "Checking Nginx status..."'),
            tolerant("sudo systemctl status nginx --no-pager"),
        ]
