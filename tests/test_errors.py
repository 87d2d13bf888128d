"""Tests for error hierarchy."""

import pytest
from rke2_bootstrap.utils.errors import (
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


class TestErrorHierarchy:
    """Tests for error class hierarchy."""

    def test_all_errors_inherit_from_base(self):
        """All errors should inherit from BootstrapError."""
        errors = [
            CredentialError("test"),
            SSHConnectionError("test"),
            CommandExecutionError("test", command="true"),
            FileTransferError("test"),
            JoinError("test"),
            ConnectError("test"),
            TokenFetchError("test"),
            UploadError("test"),
            ConfigWriteError("test"),
            InstallError("test"),
            ActivationError("test"),
        ]
        for error in errors:
            assert isinstance(error, BootstrapError)

    def test_step_errors_inherit_from_join_error(self):
        """Step errors should inherit from JoinError."""
        errors = [
            ConnectError("test"),
            TokenFetchError("test"),
            UploadError("test"),
            ConfigWriteError("test"),
            InstallError("test"),
            ActivationError("test"),
        ]
        for error in errors:
            assert isinstance(error, JoinError)

    def test_transport_errors_are_not_join_errors(self):
        """Transport errors should stay separate from step errors."""
        assert not isinstance(SSHConnectionError("test"), JoinError)
        assert not isinstance(CommandExecutionError("test", command="ls"), JoinError)


class TestSSHConnectionError:
    """Tests for SSHConnectionError."""

    def test_captures_connection_details(self):
        """Should capture host, port and failures."""
        error = SSHConnectionError(
            "Connection refused",
            host="192.168.1.100",
            port=22,
            failures=["ssh-agent: no identities"],
        )
        assert error.host == "192.168.1.100"
        assert error.port == 22
        assert error.failures == ["ssh-agent: no identities"]

    def test_failures_default_empty(self):
        """Should default to no failures."""
        assert SSHConnectionError("test").failures == []


class TestCommandExecutionError:
    """Tests for CommandExecutionError."""

    def test_captures_command_and_output(self):
        """Should carry the command and whatever it printed."""
        error = CommandExecutionError(
            "failed",
            command="sudo cat /var/lib/rancher/rke2/server/node-token",
            exit_status=1,
            stderr=b"No such file or directory",
        )
        assert error.command.endswith("node-token")
        assert error.exit_status == 1
        assert error.stdout == b""
        assert error.stderr == b"No such file or directory"


class TestJoinError:
    """Tests for JoinError."""

    def test_captures_step_and_host(self):
        """Should capture the failed step and host."""
        error = InstallError("unable to set up agent", step="install", host="10.0.0.2")
        assert error.step == "install"
        assert error.host == "10.0.0.2"
        assert "unable to set up agent" in str(error)

    def test_preserves_cause(self):
        """Wrapped transport errors should stay reachable as __cause__."""
        cause = CommandExecutionError("exit 1", command="cat token")
        with pytest.raises(TokenFetchError) as exc_info:
            try:
                raise cause
            except CommandExecutionError as e:
                raise TokenFetchError("unable to get join-token from server") from e
        assert exc_info.value.__cause__ is cause
