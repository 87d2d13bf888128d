"""SSH connection, credentials and command execution."""

from .connection import SSHConnection
from .credentials import (
    AgentCredential,
    Credential,
    KeyFileCredential,
    agent_supported,
    default_credentials,
)
from .executor import CommandResult, execute

__all__ = [
    "SSHConnection",
    "Credential",
    "AgentCredential",
    "KeyFileCredential",
    "agent_supported",
    "default_credentials",
    "CommandResult",
    "execute",
]
