"""SSH credential sources, tried in priority order by SSHConnection.

Default order:
1. ssh-agent (covers smartcards and hardware tokens held by the agent)
2. Private key file on disk, decrypted with a passphrase if needed
"""

import logging
import os
import sys
from typing import Callable, List, Optional, Sequence

import asyncssh

from rke2_bootstrap.utils.errors import CredentialError

logger = logging.getLogger(__name__)

DEFAULT_KEY_PATH = "~/.ssh/id_rsa"

# asyncssh's KeyImportError message for an encrypted key read without a passphrase
PASSPHRASE_REQUIRED = "Passphrase must be specified"

PassphrasePrompt = Callable[[str], str]


def agent_supported() -> bool:
    """Check whether the agent strategy can be used on this platform."""
    return sys.platform != "win32"


class Credential:
    """One way of authenticating an SSH connection."""

    name = "credential"

    def unavailable_reason(self) -> Optional[str]:
        """Return why this credential can't be used here, or None."""
        return None

    async def load(self) -> Sequence:
        """Return the client keys to offer to the server."""
        raise NotImplementedError

    async def release(self) -> None:
        """Free anything held by load(). Safe to call more than once."""
        return None


class AgentCredential(Credential):
    """Identities held by a running ssh-agent.

    The agent connection stays open while the SSH connection is in use and
    is closed by release().
    """

    name = "ssh-agent"

    def __init__(self, agent_path: Optional[str] = None):
        self.agent_path = agent_path
        self._agent: Optional[asyncssh.SSHAgentClient] = None

    def unavailable_reason(self) -> Optional[str]:
        if not agent_supported():
            return f"ssh-agent unsupported on {sys.platform}"
        return None

    async def load(self) -> Sequence:
        path = self.agent_path or os.environ.get("SSH_AUTH_SOCK")
        if not path:
            raise CredentialError("SSH_AUTH_SOCK is not set", credential=self.name)

        try:
            agent = await asyncssh.connect_agent(path)
        except (OSError, asyncssh.Error) as e:
            raise CredentialError(
                f"unable to reach ssh-agent at {path}: {e}", credential=self.name
            ) from e
        if agent is None:
            raise CredentialError(
                f"unable to reach ssh-agent at {path}", credential=self.name
            )
        self._agent = agent

        try:
            keys = await agent.get_keys()
        except (OSError, asyncssh.Error) as e:
            await self.release()
            raise CredentialError(
                f"unable to list ssh-agent identities: {e}", credential=self.name
            ) from e

        if not keys:
            await self.release()
            raise CredentialError("ssh-agent has no identities", credential=self.name)

        logger.debug(f"ssh-agent offered {len(keys)} identities")
        return keys

    async def release(self) -> None:
        if self._agent is not None:
            agent, self._agent = self._agent, None
            agent.close()
            await agent.wait_closed()


class KeyFileCredential(Credential):
    """Private key loaded from a file on disk."""

    name = "private-key"

    def __init__(
        self,
        path: str,
        passphrase: Optional[str] = None,
        passphrase_prompt: Optional[PassphrasePrompt] = None,
    ):
        self.path = path
        self.passphrase = passphrase
        self.passphrase_prompt = passphrase_prompt

    def _should_prompt(self, error: asyncssh.KeyImportError) -> bool:
        return (
            self.passphrase is None
            and self.passphrase_prompt is not None
            and str(error).startswith(PASSPHRASE_REQUIRED)
        )

    async def load(self) -> Sequence:
        try:
            key = asyncssh.read_private_key(self.path, self.passphrase)
        except asyncssh.KeyImportError as e:
            # Encrypted key without a passphrase: ask once and retry
            if not self._should_prompt(e):
                raise CredentialError(
                    f"unable to load the ssh key with path {self.path!r}: {e}",
                    credential=self.name,
                ) from e
            self.passphrase = self.passphrase_prompt(self.path)
            return await self.load()
        except asyncssh.KeyEncryptionError as e:
            raise CredentialError(
                f"unable to decrypt the ssh key with path {self.path!r}: {e}",
                credential=self.name,
            ) from e
        except OSError as e:
            raise CredentialError(
                f"unable to load the ssh key with path {self.path!r}: {e}",
                credential=self.name,
            ) from e

        return [key]


def default_credentials(
    key_path: str = DEFAULT_KEY_PATH,
    passphrase: Optional[str] = None,
    passphrase_prompt: Optional[PassphrasePrompt] = None,
) -> List[Credential]:
    """Build the default credential list: agent first, then the key file.

    Args:
        key_path: Private key path, ``~`` is expanded
        passphrase: Passphrase for an encrypted key
        passphrase_prompt: Called with the key path when the key is
            encrypted and no passphrase was given
    """
    return [
        AgentCredential(),
        KeyFileCredential(
            os.path.expanduser(key_path),
            passphrase=passphrase,
            passphrase_prompt=passphrase_prompt,
        ),
    ]
