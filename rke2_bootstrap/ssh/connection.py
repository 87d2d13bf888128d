"""SSH connection with ordered credential fallback.

Usage:
    credentials = default_credentials("~/.ssh/id_rsa")
    async with SSHConnection(host, 22, "root", credentials) as ssh:
        result = await ssh.execute("uname -a")
        print(result.stdout_text)
"""

import logging
import os
from typing import List, Optional, Sequence

import asyncssh

from rke2_bootstrap.ssh.credentials import Credential
from rke2_bootstrap.ssh.executor import CommandResult, execute
from rke2_bootstrap.utils.errors import (
    CredentialError,
    FileTransferError,
    SSHConnectionError,
)

logger = logging.getLogger(__name__)


class SSHConnection:
    """SSH connection to one host, authenticated by the first working credential.

    Credentials are tried in list order. A credential that is unavailable on
    this platform or fails to load or authenticate is skipped; once one
    succeeds, the rest are never touched. Host keys are not verified.
    """

    def __init__(
        self,
        host: str,
        port: int,
        user: str,
        credentials: Sequence[Credential],
        connect_timeout: Optional[float] = None,
    ):
        """Initialize SSH connection parameters.

        Args:
            host: SSH hostname or IP
            port: SSH port
            user: SSH username
            credentials: Credentials in priority order
            connect_timeout: Per-attempt connect timeout in seconds, or None
        """
        self.host = host
        self.port = port
        self.user = user
        self.credentials = list(credentials)
        self.connect_timeout = connect_timeout
        self._conn: Optional[asyncssh.SSHClientConnection] = None
        self._credential: Optional[Credential] = None

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    @property
    def credential(self) -> Optional[Credential]:
        """The credential that authenticated this connection."""
        return self._credential

    @property
    def connected(self) -> bool:
        return self._conn is not None

    async def __aenter__(self) -> "SSHConnection":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def connect(self) -> None:
        """Open the connection, trying each credential in order.

        Raises:
            SSHConnectionError: If every credential failed
        """
        failures: List[str] = []
        last_error: Optional[BaseException] = None

        for credential in self.credentials:
            reason = credential.unavailable_reason()
            if reason:
                logger.debug(f"Skipping {credential.name}: {reason}")
                failures.append(f"{credential.name}: {reason}")
                continue

            try:
                client_keys = await credential.load()
            except CredentialError as e:
                logger.debug(f"{credential.name} unusable: {e}")
                failures.append(f"{credential.name}: {e}")
                last_error = e
                continue

            options = {}
            if self.connect_timeout is not None:
                options["connect_timeout"] = self.connect_timeout

            try:
                self._conn = await asyncssh.connect(
                    self.host,
                    port=self.port,
                    username=self.user,
                    client_keys=client_keys,
                    agent_path=None,
                    known_hosts=None,  # Host key checking is disabled
                    **options,
                )
            except (OSError, asyncssh.Error) as e:
                await credential.release()
                logger.debug(f"{credential.name} failed for {self.address}: {e}")
                failures.append(f"{credential.name}: {e}")
                last_error = e
                continue

            self._credential = credential
            logger.info(
                f"SSH connected to {self.user}@{self.address} using {credential.name}"
            )
            return

        raise SSHConnectionError(
            f"unable to connect to {self.address} over ssh as {self.user}: "
            + "; ".join(failures or ["no credentials configured"]),
            host=self.host,
            port=self.port,
            failures=failures,
        ) from last_error

    async def close(self) -> None:
        """Close the connection and release the credential. Idempotent."""
        if self._conn is not None:
            conn, self._conn = self._conn, None
            conn.close()
            await conn.wait_closed()
            logger.debug(f"SSH connection to {self.address} closed")

        if self._credential is not None:
            credential, self._credential = self._credential, None
            await credential.release()

    def _require_connection(self) -> asyncssh.SSHClientConnection:
        if self._conn is None:
            raise SSHConnectionError("Not connected", host=self.host, port=self.port)
        return self._conn

    async def execute(self, command: str, stream: bool = False) -> CommandResult:
        """Execute a command over SSH.

        Args:
            command: Command to execute
            stream: Echo output to the local terminal while capturing it

        Returns:
            CommandResult with stdout and stderr bytes

        Raises:
            CommandExecutionError: On start failure or non-zero exit
        """
        return await execute(self._require_connection(), command, stream=stream)

    async def copy_file(self, local_path: str, remote_path: str) -> None:
        """Upload a local file to remote_path.

        Raises:
            FileTransferError: If the file can't be read or the copy fails
        """
        conn = self._require_connection()

        try:
            with open(local_path, "rb"):
                pass
        except OSError as e:
            raise FileTransferError(
                f"unable to open specified file {local_path!r}: {e}",
                local_path=local_path,
                remote_path=remote_path,
            ) from e

        logger.info(f"Copying {local_path} to {self.host}:{remote_path}")
        try:
            await asyncssh.scp(os.fspath(local_path), (conn, remote_path))
        except (OSError, asyncssh.Error) as e:
            raise FileTransferError(
                f"unable to copy {local_path!r} to {self.host}:{remote_path}: {e}",
                local_path=local_path,
                remote_path=remote_path,
            ) from e
