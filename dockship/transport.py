# dockship/transport.py
"""Remote command execution over SSH.

A transport can probe the host, run a list of shell commands as one
``bash -s`` script under ``set -e``, and upload a directory tree. Stages only
talk to this interface, so the session model can vary underneath:

- SSHTransport opens one ``ssh`` subprocess per call (uploads via rsync/scp)
- ParamikoTransport keeps one connection for the whole run (uploads via SFTP)
"""
from __future__ import annotations

import os
import posixpath
import shlex
import stat
import subprocess
from pathlib import Path
from typing import Iterable, List, Optional, Protocol, Union

import paramiko
from loguru import logger

from dockship.config import DEFAULT_CONNECT_TIMEOUT
from dockship.errors import ConnectivityError, RemoteCommandError, TransferError
from dockship.models import CommandResult


class RemoteCommand:
    """One shell command; ``tolerant`` commands may fail without aborting."""

    def __init__(self, cmd: str, tolerant: bool = False):
        self.cmd = cmd
        self.tolerant = tolerant

    def render(self) -> str:
        return f"{self.cmd} || true" if self.tolerant else self.cmd

    def __repr__(self) -> str:
        return f"RemoteCommand({self.cmd!r}, tolerant={self.tolerant})"

    def __eq__(self, other) -> bool:
        if not isinstance(other, RemoteCommand):
            return NotImplemented
        return (self.cmd, self.tolerant) == (other.cmd, other.tolerant)


def tolerant(cmd: str) -> RemoteCommand:
    return RemoteCommand(cmd, tolerant=True)


CommandList = Iterable[Union[str, RemoteCommand]]


def as_commands(commands: CommandList) -> List[RemoteCommand]:
    return [c if isinstance(c, RemoteCommand) else RemoteCommand(c) for c in commands]


def build_script(commands: CommandList) -> str:
    lines = ["set -e"]
    lines.extend(c.render() for c in as_commands(commands))
    return "\n".join(lines) + "\n"


def _log_output(output: str) -> None:
    for line in output.splitlines():
        if line.strip():
            logger.debug(f"  | {line}")


class RemoteTransport(Protocol):
    def probe(self) -> None: ...

    def run(self, commands: CommandList, check: bool = True) -> CommandResult: ...

    def upload(self, local_dir: Path, remote_dir: str) -> None: ...

    def close(self) -> None: ...


class SSHTransport:
    """Shells out to ``ssh``, ``rsync`` and ``scp``; one session per call."""

    def __init__(
        self,
        user: str,
        host: str,
        key_path: Union[str, Path],
        connect_timeout: int = DEFAULT_CONNECT_TIMEOUT,
        transfer: str = "rsync",
    ):
        if transfer not in ("rsync", "scp"):
            raise ValueError(f"Unknown transfer method: {transfer}")
        self.user = user
        self.host = host
        self.key_path = str(Path(key_path).expanduser())
        self.connect_timeout = connect_timeout
        self.transfer = transfer

    @property
    def target(self) -> str:
        return f"{self.user}@{self.host}"

    def ssh_options(self) -> List[str]:
        return [
            "-i",
            self.key_path,
            "-o",
            "BatchMode=yes",
            "-o",
            f"ConnectTimeout={self.connect_timeout}",
            "-o",
            "StrictHostKeyChecking=accept-new",
        ]

    def build_ssh_cmd(self, remote_command: str) -> List[str]:
        return ["ssh", *self.ssh_options(), self.target, remote_command]

    def build_rsync_cmd(self, local_dir: Path, remote_dir: str) -> List[str]:
        # Trailing slashes copy the directory contents, dot-files included.
        src = f"{str(local_dir).rstrip('/')}/"
        dest = f"{self.target}:{remote_dir.rstrip('/')}/"
        rsh = shlex.join(["ssh", *self.ssh_options()])
        return ["rsync", "-az", "-e", rsh, src, dest]

    def build_scp_cmd(self, local_dir: Path, remote_dir: str) -> List[str]:
        src = f"{str(local_dir).rstrip('/')}/."
        return ["scp", "-r", "-q", *self.ssh_options(), src, f"{self.target}:{remote_dir}"]

    def probe(self) -> None:
        cmd = self.build_ssh_cmd('echo "SSH connected"')
        try:
            proc = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.connect_timeout + 5,
            )
        except (subprocess.TimeoutExpired, FileNotFoundError) as e:
            logger.debug(f"SSH probe error: {e}")
            raise ConnectivityError("SSH connection failed.") from e
        if proc.returncode != 0:
            _log_output(proc.stderr or "")
            raise ConnectivityError("SSH connection failed.")
        logger.debug(proc.stdout.strip())

    def run(self, commands: CommandList, check: bool = True) -> CommandResult:
        script = build_script(commands)
        try:
            proc = subprocess.run(
                self.build_ssh_cmd("bash -s"),
                input=script,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
            )
        except FileNotFoundError as e:
            raise ConnectivityError("ssh client not found on this system.") from e

        result = CommandResult(returncode=proc.returncode, output=proc.stdout or "")
        _log_output(result.output)
        if check and not result.ok:
            raise RemoteCommandError(
                f"Remote command failed on {self.host} (exit code {result.returncode})",
                result=result,
            )
        return result

    def upload(self, local_dir: Path, remote_dir: str) -> None:
        self.run([f"mkdir -p {shlex.quote(remote_dir)}"])
        if self.transfer == "rsync":
            cmd = self.build_rsync_cmd(local_dir, remote_dir)
        else:
            cmd = self.build_scp_cmd(local_dir, remote_dir)
        try:
            proc = subprocess.run(
                cmd, stdout=subprocess.PIPE, stderr=subprocess.STDOUT, text=True
            )
        except FileNotFoundError as e:
            raise TransferError(f"{cmd[0]} is not installed on this system.") from e
        result = CommandResult(returncode=proc.returncode, output=proc.stdout or "")
        _log_output(result.output)
        if not result.ok:
            raise TransferError(
                f"{cmd[0]} to {self.target}:{remote_dir} failed (exit code {result.returncode})",
                result=result,
            )

    def close(self) -> None:
        pass


class ParamikoTransport:
    """Keeps a single paramiko connection open for the whole run."""

    def __init__(
        self,
        user: str,
        host: str,
        key_path: Union[str, Path],
        connect_timeout: int = DEFAULT_CONNECT_TIMEOUT,
        port: int = 22,
    ):
        self.user = user
        self.host = host
        self.key_path = str(Path(key_path).expanduser())
        self.connect_timeout = connect_timeout
        self.port = port
        self._client: Optional[paramiko.SSHClient] = None

    def _connect(self) -> paramiko.SSHClient:
        if self._client is None:
            client = paramiko.SSHClient()
            client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
            client.connect(
                self.host,
                port=self.port,
                username=self.user,
                key_filename=self.key_path,
                timeout=self.connect_timeout,
                banner_timeout=self.connect_timeout,
                allow_agent=False,
                look_for_keys=False,
            )
            logger.debug(f"Connected to {self.host}")
            self._client = client
        return self._client

    def probe(self) -> None:
        try:
            self._connect()
            self.run(['echo "SSH connected"'])
        except (paramiko.SSHException, OSError, RemoteCommandError) as e:
            logger.debug(f"SSH probe error: {e}")
            self.close()
            raise ConnectivityError("SSH connection failed.") from e

    def run(self, commands: CommandList, check: bool = True) -> CommandResult:
        script = build_script(commands)
        try:
            client = self._connect()
            stdin, stdout, _ = client.exec_command("bash -s")
            stdout.channel.set_combine_stderr(True)
            stdin.write(script)
            stdin.channel.shutdown_write()
            output = stdout.read().decode("utf-8", errors="replace")
            returncode = stdout.channel.recv_exit_status()
        except (paramiko.SSHException, OSError) as e:
            raise RemoteCommandError(f"SSH session to {self.host} failed: {e}") from e

        result = CommandResult(returncode=returncode, output=output)
        _log_output(result.output)
        if check and not result.ok:
            raise RemoteCommandError(
                f"Remote command failed on {self.host} (exit code {result.returncode})",
                result=result,
            )
        return result

    def upload(self, local_dir: Path, remote_dir: str) -> None:
        self.run([f"mkdir -p {shlex.quote(remote_dir)}"])
        local_dir = Path(local_dir)
        try:
            sftp = self._connect().open_sftp()
            try:
                for root, dirs, files in os.walk(local_dir):
                    rel = Path(root).relative_to(local_dir)
                    target = posixpath.join(remote_dir, *rel.parts)
                    for name in dirs:
                        remote_path = posixpath.join(target, name)
                        try:
                            sftp.stat(remote_path)
                        except IOError:
                            sftp.mkdir(remote_path)
                    for name in files:
                        local_path = os.path.join(root, name)
                        remote_path = posixpath.join(target, name)
                        sftp.put(local_path, remote_path)
                        sftp.chmod(remote_path, stat.S_IMODE(os.stat(local_path).st_mode))
            finally:
                sftp.close()
        except (paramiko.SSHException, OSError) as e:
            raise TransferError(f"SFTP upload to {self.host}:{remote_dir} failed: {e}") from e

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None


def create_transport(
    user: str,
    host: str,
    key_path: Union[str, Path],
    kind: str = "ssh",
    transfer: str = "rsync",
    connect_timeout: int = DEFAULT_CONNECT_TIMEOUT,
) -> RemoteTransport:
    if kind == "ssh":
        return SSHTransport(user, host, key_path, connect_timeout=connect_timeout, transfer=transfer)
    if kind == "paramiko":
        return ParamikoTransport(user, host, key_path, connect_timeout=connect_timeout)
    raise ValueError(f"Unknown transport: {kind}")
