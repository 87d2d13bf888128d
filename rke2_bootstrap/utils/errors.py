"""Error hierarchy for rke2-bootstrap.

Two layers:
- Transport errors raised by the SSH layer (connect, command, file transfer)
- Join errors raised by the orchestrator, one per step, wrapping the
  transport error as ``__cause__``
"""

from typing import List, Optional


class BootstrapError(Exception):
    """Base exception for all rke2-bootstrap errors."""

    pass


class CredentialError(BootstrapError):
    """Raised when a credential cannot be loaded or is not usable here."""

    def __init__(self, message: str, credential: Optional[str] = None):
        super().__init__(message)
        self.credential = credential


class SSHConnectionError(BootstrapError):
    """Raised when no credential could open an SSH connection."""

    def __init__(
        self,
        message: str,
        host: Optional[str] = None,
        port: Optional[int] = None,
        failures: Optional[List[str]] = None,
    ):
        super().__init__(message)
        self.host = host
        self.port = port
        self.failures = failures or []


class CommandExecutionError(BootstrapError):
    """Raised when a remote command cannot start or exits unsuccessfully."""

    def __init__(
        self,
        message: str,
        command: str,
        exit_status: Optional[int] = None,
        stdout: bytes = b"",
        stderr: bytes = b"",
    ):
        super().__init__(message)
        self.command = command
        self.exit_status = exit_status
        self.stdout = stdout
        self.stderr = stderr


class FileTransferError(BootstrapError):
    """Raised when a local file cannot be uploaded to the remote host."""

    def __init__(
        self,
        message: str,
        local_path: Optional[str] = None,
        remote_path: Optional[str] = None,
    ):
        super().__init__(message)
        self.local_path = local_path
        self.remote_path = remote_path


class JoinError(BootstrapError):
    """Raised when a join step fails.

    Carries the step that failed and the host it was talking to so the CLI
    can print which part of the join broke.
    """

    def __init__(
        self,
        message: str,
        step: Optional[str] = None,
        host: Optional[str] = None,
    ):
        super().__init__(message)
        self.step = step
        self.host = host


class ConnectError(JoinError):
    """Raised when the source or target host cannot be reached."""

    pass


class TokenFetchError(JoinError):
    """Raised when the join token cannot be read from the server."""

    pass


class UploadError(JoinError):
    """Raised when preparing the remote config directory or files fails.

    The config directory may already exist on the target.
    """

    pass


class ConfigWriteError(JoinError):
    """Raised when the join config cannot be written on the target."""

    pass


class InstallError(JoinError):
    """Raised when the RKE2 installer fails on the target."""

    pass


class ActivationError(JoinError):
    """Raised when the RKE2 systemd unit cannot be enabled."""

    pass
