"""
SSH command execution against the hosts that front the instruments.

Each call opens its own session, runs one command and closes the session on
every exit path. The command timeout is enforced here, independently of
paramiko's own socket timeouts, so a hung read can never block a worker.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

import paramiko

logger = logging.getLogger(__name__)


class RemoteExecutionError(RuntimeError):
    """Raised when the SSH session cannot be established or the command cannot run."""


@dataclass
class CommandResult:
    command: str
    exit_status: Optional[int]
    output: str = ""
    error: str = ""
    timed_out: bool = False
    duration_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return not self.timed_out and self.exit_status == 0 and bool(self.output.strip())


class RemoteExecutor(Protocol):
    def run_command(
        self,
        host: str,
        port: int,
        user: str,
        password: str,
        command: str,
        timeout: float,
    ) -> CommandResult:
        ...


class SshCommandExecutor:
    """Run single commands over short-lived paramiko sessions."""

    def __init__(
        self,
        connect_timeout: float = 15.0,
        client_factory: Callable[[], paramiko.SSHClient] = paramiko.SSHClient,
    ) -> None:
        self.connect_timeout = connect_timeout
        self._client_factory = client_factory

    def run_command(
        self,
        host: str,
        port: int,
        user: str,
        password: str,
        command: str,
        timeout: float,
    ) -> CommandResult:
        """
        Execute *command* on *host* and capture its output.

        Returns:
            CommandResult; ``timed_out`` is set when the command did not finish
            within *timeout* seconds

        Raises:
            RemoteExecutionError: On connection, authentication or channel errors
        """
        client = self._client_factory()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"ssh-{host}")
        started = time.monotonic()
        future = pool.submit(self._execute, client, host, port, user, password, command, timeout)

        try:
            result = future.result(timeout=timeout)
            result.duration_seconds = round(time.monotonic() - started, 3)
            return result
        except FutureTimeout:
            logger.debug("Command on %s:%s exceeded %.1fs: %s", host, port, timeout, command)
            return CommandResult(
                command=command,
                exit_status=None,
                error=f"the operation timed out within {timeout:g} seconds",
                timed_out=True,
                duration_seconds=round(time.monotonic() - started, 3),
            )
        finally:
            # Closing the client also unblocks a worker still stuck in a read
            self._close(client)
            pool.shutdown(wait=False)

    def _execute(
        self,
        client: paramiko.SSHClient,
        host: str,
        port: int,
        user: str,
        password: str,
        command: str,
        timeout: float,
    ) -> CommandResult:
        try:
            client.connect(
                hostname=host,
                port=port,
                username=user,
                password=password,
                timeout=self.connect_timeout,
                banner_timeout=self.connect_timeout,
                auth_timeout=self.connect_timeout,
                look_for_keys=False,
                allow_agent=False,
            )
        except (paramiko.SSHException, OSError) as exc:
            raise RemoteExecutionError(f"connect to {host}:{port} failed: {exc}") from exc

        logger.debug("Connected to %s:%s", host, port)
        try:
            stdin, stdout, stderr = client.exec_command(command, timeout=timeout)
            stdin.close()
            output = stdout.read().decode("utf-8", errors="replace")
            error = stderr.read().decode("utf-8", errors="replace")
            exit_status = stdout.channel.recv_exit_status()
        except (paramiko.SSHException, OSError) as exc:
            raise RemoteExecutionError(f"command failed on {host}:{port}: {exc}") from exc

        return CommandResult(command=command, exit_status=exit_status, output=output, error=error.strip())

    @staticmethod
    def _close(client: paramiko.SSHClient) -> None:
        try:
            client.close()
        except Exception as exc:  # pragma: no cover - close is best effort
            logger.debug("Error while closing SSH client: %s", exc)
