"""
Privileged Remote Execution Channel

Runs shell scripts on the WireGuard endpoint over a transient ``ssh``
connection. Each call opens its own connection, pipes an optional payload
to the script's stdin, and returns the captured exit code and output.

Payloads travel over stdin so secrets never appear in a process argument
list on either host.
"""

import asyncio
import logging
import shlex
from dataclasses import dataclass
from typing import List, Optional

from sovereign_vpn.config import RemoteSettings

logger = logging.getLogger(__name__)

# ssh reserves exit status 255 for its own failures
SSH_CONNECTION_FAILURE = 255


class RemoteExecutionError(Exception):
    """Base exception for remote execution failures"""

    def __init__(self, message: str, stderr: str = ""):
        self.stderr = stderr
        super().__init__(message)


class RemoteConnectionError(RemoteExecutionError):
    """Raised when the ssh connection cannot be established"""
    pass


class RemoteCommandError(RemoteExecutionError):
    """Raised when the remote script exits non-zero"""

    def __init__(self, message: str, returncode: int, stderr: str = ""):
        self.returncode = returncode
        super().__init__(message, stderr)


class RemoteTransportError(RemoteExecutionError):
    """Raised when the local ssh process cannot be run or times out"""
    pass


@dataclass
class RemoteResult:
    returncode: int
    stdout: str
    stderr: str


class RemoteExecutor:
    """
    Runs scripts on the endpoint with ``ssh`` in batch mode

    Attributes:
        settings: Host, user, port, identity file and timeout
    """

    def __init__(self, settings: RemoteSettings):
        self.settings = settings

    def command_base(self) -> List[str]:
        cmd = [
            "ssh",
            "-p", str(self.settings.port),
            "-o", "BatchMode=yes",
            "-o", "StrictHostKeyChecking=accept-new",
            "-o", f"ConnectTimeout={int(self.settings.timeout)}",
        ]
        if self.settings.key_path:
            cmd += ["-i", self.settings.key_path]
        return cmd

    def build_command(self, script: str) -> List[str]:
        """
        Build the full ssh argv for a script.

        The script is run by ``bash -c`` on the remote side, under
        ``sudo -n`` when configured.
        """
        remote_cmd = f"bash -c {shlex.quote(script)}"
        if self.settings.use_sudo:
            remote_cmd = f"sudo -n {remote_cmd}"
        target = f"{self.settings.user}@{self.settings.host}"
        return self.command_base() + [target, remote_cmd]

    async def run(self, script: str, stdin: Optional[str] = None) -> RemoteResult:
        """
        Execute a script on the endpoint.

        Args:
            script: Shell script for the remote bash
            stdin: Optional payload piped to the script

        Returns:
            RemoteResult on exit status 0

        Raises:
            RemoteConnectionError: ssh could not connect (exit 255)
            RemoteCommandError: The script exited non-zero
            RemoteTransportError: ssh is missing, or the call timed out
        """
        cmd = self.build_command(script)
        logger.debug(f"Executing remote script on {self.settings.host}")

        returncode, stdout, stderr = await self._execute(cmd, stdin)

        if returncode == SSH_CONNECTION_FAILURE:
            raise RemoteConnectionError(
                f"Cannot reach {self.settings.host}: {stderr or 'ssh exited 255'}",
                stderr=stderr
            )
        if returncode != 0:
            raise RemoteCommandError(
                f"Remote command failed with exit code {returncode}: {stderr}",
                returncode=returncode,
                stderr=stderr
            )

        return RemoteResult(returncode=returncode, stdout=stdout, stderr=stderr)

    async def _execute(self, cmd: List[str], stdin: Optional[str]) -> tuple:
        """
        Run the local ssh process.

        Returns:
            Tuple of (returncode, stdout, stderr)
        """
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except (FileNotFoundError, PermissionError) as e:
            raise RemoteTransportError(f"Cannot start ssh: {e}")

        payload = stdin.encode() if stdin is not None else b""
        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(payload),
                timeout=self.settings.timeout * 2
            )
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise RemoteTransportError(
                f"Remote call to {self.settings.host} timed out"
            )

        return (
            process.returncode,
            stdout.decode().strip(),
            stderr.decode().strip(),
        )
