"""Utility modules for rke2-bootstrap."""

from .errors import (
    BootstrapError,
    CredentialError,
    SSHConnectionError,
    CommandExecutionError,
    FileTransferError,
    JoinError,
    ConnectError,
    TokenFetchError,
    UploadError,
    ConfigWriteError,
    InstallError,
    ActivationError,
)

__all__ = [
    "BootstrapError",
    "CredentialError",
    "SSHConnectionError",
    "CommandExecutionError",
    "FileTransferError",
    "JoinError",
    "ConnectError",
    "TokenFetchError",
    "UploadError",
    "ConfigWriteError",
    "InstallError",
    "ActivationError",
]
