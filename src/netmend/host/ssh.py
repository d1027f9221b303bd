"""Executor for a remote host reached over SSH.

Commands run through an exec channel and files move over SFTP, both on a
single paramiko connection opened lazily and kept for the whole run.
"""
import logging
import posixpath
import shlex
import socket
from typing import Optional

import paramiko

from .base import HostExecutor, CommandResult, DEFAULT_COMMAND_TIMEOUT
from ..errors import PreconditionError
from ..utils.connection import with_retry, RETRYABLE_EXCEPTIONS

logger = logging.getLogger(__name__)


class SSHExecutor(HostExecutor):
    """Run commands on a remote host via paramiko."""

    def __init__(
        self,
        host: str,
        username: str = "root",
        port: int = 22,
        password: Optional[str] = None,
        key_filename: Optional[str] = None,
        connect_timeout: int = 30,
        timeout: int = DEFAULT_COMMAND_TIMEOUT,
    ):
        super().__init__(host, timeout)
        self.host = host
        self.username = username
        self.port = port
        self.password = password
        self.key_filename = key_filename
        self.connect_timeout = connect_timeout
        self._ssh: Optional[paramiko.SSHClient] = None
        self._sftp: Optional[paramiko.SFTPClient] = None

    def connect(self) -> paramiko.SSHClient:
        """Open the SSH connection if it is not open yet.

        Raises:
            PreconditionError: If the host cannot be reached after retries
        """
        if self._ssh is None:
            try:
                self._ssh = self._open()
            except (paramiko.SSHException, OSError) as e:
                raise PreconditionError(f"Cannot connect to {self.host}: {e}") from e
        return self._ssh

    @with_retry(
        max_attempts=3,
        min_wait=1,
        max_wait=10,
        exceptions=RETRYABLE_EXCEPTIONS + (paramiko.SSHException, socket.timeout),
    )
    def _open(self) -> paramiko.SSHClient:
        logger.info(f"Connecting to {self.username}@{self.host}:{self.port}")
        ssh = paramiko.SSHClient()
        ssh.load_system_host_keys()
        ssh.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        ssh.connect(
            hostname=self.host,
            port=self.port,
            username=self.username,
            password=self.password,
            key_filename=self.key_filename,
            timeout=self.connect_timeout,
            allow_agent=self.password is None,
            look_for_keys=self.password is None,
        )
        return ssh

    def _sftp_client(self) -> paramiko.SFTPClient:
        if self._sftp is None:
            self._sftp = self.connect().open_sftp()
        return self._sftp

    def _run(self, argv: list[str], env: dict[str, str], timeout: int) -> CommandResult:
        command = shlex.join(argv)
        if env:
            assignments = " ".join(f"{k}={shlex.quote(v)}" for k, v in env.items())
            command = f"env {assignments} {command}"

        ssh = self.connect()
        try:
            _, stdout, stderr = ssh.exec_command(command, timeout=timeout)
            out = stdout.read().decode("utf-8", errors="replace")
            err = stderr.read().decode("utf-8", errors="replace")
            code = stdout.channel.recv_exit_status()
        except socket.timeout:
            return CommandResult(argv, 124, "", f"timed out after {timeout}s")
        return CommandResult(argv, code, out, err)

    def read_file(self, path: str) -> Optional[str]:
        sftp = self._sftp_client()
        try:
            with sftp.open(path, "r") as f:
                return f.read().decode("utf-8")
        except FileNotFoundError:
            return None

    def write_file(self, path: str, content: str, mode: int = 0o644) -> None:
        sftp = self._sftp_client()
        self._makedirs(posixpath.dirname(path))
        tmp = posixpath.join(posixpath.dirname(path), f".{posixpath.basename(path)}.netmend")
        with sftp.open(tmp, "w") as f:
            f.write(content.encode("utf-8"))
        sftp.chmod(tmp, mode)
        sftp.posix_rename(tmp, path)
        logger.debug(f"[{self.host_id}] wrote {path}")

    def _makedirs(self, path: str) -> None:
        if not path or path == "/":
            return
        sftp = self._sftp_client()
        try:
            sftp.stat(path)
            return
        except FileNotFoundError:
            pass
        self._makedirs(posixpath.dirname(path))
        sftp.mkdir(path)

    def list_dir(self, path: str) -> list[str]:
        try:
            return sorted(self._sftp_client().listdir(path))
        except FileNotFoundError:
            return []

    def close(self) -> None:
        if self._sftp:
            self._sftp.close()
            self._sftp = None
        if self._ssh:
            self._ssh.close()
            self._ssh = None
            logger.info(f"Disconnected from {self.host}")
