"""Join a node to an existing RKE2 cluster over SSH.

Steps, strictly in order, stopping at the first failure:

    connect_source -> fetch_token -> disconnect_source -> connect_target
    -> prepare -> write_config -> install -> activate -> report

The same sequence serves both roles; the role only changes the installer's
INSTALL_RKE2_TYPE marker and the systemd unit that gets enabled. Nothing is
rolled back on failure: the target keeps whatever was already written.

Usage:
    orchestrator = JoinOrchestrator(source, target, plan)
    result = await orchestrator.run()
    print(result.install_output.stdout_text)
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional

from rke2_bootstrap.join import commands
from rke2_bootstrap.join.plan import BootstrapPlan, SSHTarget
from rke2_bootstrap.ssh.connection import SSHConnection
from rke2_bootstrap.ssh.credentials import PassphrasePrompt, default_credentials
from rke2_bootstrap.ssh.executor import CommandResult
from rke2_bootstrap.utils.errors import (
    ActivationError,
    CommandExecutionError,
    ConfigWriteError,
    ConnectError,
    FileTransferError,
    InstallError,
    SSHConnectionError,
    TokenFetchError,
    UploadError,
)

logger = logging.getLogger(__name__)


class JoinStep(str, Enum):
    """Join steps, in execution order."""

    CONNECT_SOURCE = "connect_source"
    FETCH_TOKEN = "fetch_token"
    DISCONNECT_SOURCE = "disconnect_source"
    CONNECT_TARGET = "connect_target"
    PREPARE = "prepare"
    WRITE_CONFIG = "write_config"
    INSTALL = "install"
    ACTIVATE = "activate"
    REPORT = "report"


@dataclass
class JoinResult:
    """Outcome of a successful join."""

    steps: List[JoinStep] = field(default_factory=list)
    install_output: Optional[CommandResult] = None
    install_skipped: bool = False
    token_stderr: str = ""


ConnectionFactory = Callable[[SSHTarget], SSHConnection]


def ssh_connection_factory(
    passphrase_prompt: Optional[PassphrasePrompt] = None,
) -> ConnectionFactory:
    """Build SSHConnections using the default agent-then-key credential order.

    A passphrase is prompted for at most once per key path, so a key shared
    by the server and the node is only unlocked once per run.
    """
    passphrases: Dict[str, str] = {}

    def remembered_prompt(path: str) -> str:
        if path not in passphrases:
            passphrases[path] = passphrase_prompt(path)
        return passphrases[path]

    def factory(target: SSHTarget) -> SSHConnection:
        return SSHConnection(
            target.host,
            target.port,
            target.user,
            default_credentials(
                target.key_path,
                passphrase_prompt=remembered_prompt if passphrase_prompt else None,
            ),
        )

    return factory


class JoinOrchestrator:
    """Joins one node to a cluster as an agent or an additional server."""

    def __init__(
        self,
        source: SSHTarget,
        target: SSHTarget,
        plan: BootstrapPlan,
        connection_factory: Optional[ConnectionFactory] = None,
        on_step: Optional[Callable[[JoinStep, str], None]] = None,
        echo_command: Optional[Callable[[str], None]] = None,
        stream: bool = True,
    ):
        """Initialize the orchestrator.

        Args:
            source: Existing server to read the join token from
            target: Node being joined
            plan: What to install on the target
            connection_factory: Opens an unconnected SSHConnection for a target
            on_step: Called with (step, host) as each step starts
            echo_command: Called with commands the operator asked to see
            stream: Echo installer and systemctl output live
        """
        self.source = source
        self.target = target
        self.plan = plan
        self.connection_factory = connection_factory or ssh_connection_factory()
        self.on_step = on_step
        self.echo_command = echo_command
        self.stream = stream

    def _enter(self, result: JoinResult, step: JoinStep, host: str) -> None:
        logger.debug(f"Join step {step.value} on {host}")
        result.steps.append(step)
        if self.on_step:
            self.on_step(step, host)

    def _echo(self, command: str) -> None:
        if self.echo_command:
            self.echo_command(command)

    async def run(self) -> JoinResult:
        """Run the join.

        Returns:
            JoinResult with the steps taken and the installer output

        Raises:
            ValueError: If the plan selects no version or channel
            JoinError: Subclass naming the step that failed
        """
        plan = self.plan
        sudo = plan.sudo_prefix

        # Render up front so an empty version selector fails before any SSH
        install_cmd = commands.install_command(
            plan.role, plan.version, plan.channel, sudo, plan.extra_args
        )

        result = JoinResult()
        token = await self._fetch_token(result)

        target_host = self.target.host
        self._enter(result, JoinStep.CONNECT_TARGET, target_host)
        ssh = self.connection_factory(self.target)
        try:
            await ssh.connect()
        except SSHConnectionError as e:
            raise ConnectError(
                f"unable to connect to {self.target.address} over ssh",
                step=JoinStep.CONNECT_TARGET.value,
                host=target_host,
            ) from e

        try:
            await self._prepare(ssh, result)

            self._enter(result, JoinStep.WRITE_CONFIG, target_host)
            payload = commands.render_join_config(self.source.host, token)
            try:
                await ssh.execute(commands.write_config_command(payload, sudo))
            except CommandExecutionError as e:
                raise ConfigWriteError(
                    f"unable to write {commands.RKE2_CONFIG_FILE}",
                    step=JoinStep.WRITE_CONFIG.value,
                    host=target_host,
                ) from e

            self._enter(result, JoinStep.INSTALL, target_host)
            if plan.skip_install:
                logger.info("Skipping RKE2 installer")
                result.install_skipped = True
            else:
                logger.info(f"Installing RKE2 {plan.role.value} on {target_host}")
                self._echo(install_cmd)
                try:
                    result.install_output = await ssh.execute(
                        install_cmd, stream=self.stream
                    )
                except CommandExecutionError as e:
                    raise InstallError(
                        f"unable to set up {plan.role.value}",
                        step=JoinStep.INSTALL.value,
                        host=target_host,
                    ) from e

            self._enter(result, JoinStep.ACTIVATE, target_host)
            logger.info(
                f"Joining {plan.role.value} node to cluster, "
                "please wait while services start..."
            )
            try:
                await ssh.execute(
                    commands.enable_service_command(plan.role, sudo),
                    stream=self.stream,
                )
            except CommandExecutionError as e:
                raise ActivationError(
                    f"unable to enable {plan.role.unit}",
                    step=JoinStep.ACTIVATE.value,
                    host=target_host,
                ) from e

            self._enter(result, JoinStep.REPORT, target_host)
            if result.install_output is not None:
                if result.install_output.stderr:
                    logger.debug(f"Install logs: {result.install_output.stderr_text}")
                logger.debug(f"Install output: {result.install_output.stdout_text}")
        finally:
            await ssh.close()

        return result

    async def _fetch_token(self, result: JoinResult) -> str:
        """Read the join token from the source server, then disconnect."""
        source_host = self.source.host
        sudo = self.plan.sudo_prefix

        self._enter(result, JoinStep.CONNECT_SOURCE, source_host)
        ssh = self.connection_factory(self.source)
        try:
            await ssh.connect()
        except SSHConnectionError as e:
            raise ConnectError(
                f"unable to connect to (server) {self.source.address} over ssh",
                step=JoinStep.CONNECT_SOURCE.value,
                host=source_host,
            ) from e

        try:
            self._enter(result, JoinStep.FETCH_TOKEN, source_host)
            command = commands.token_command(sudo)
            self._echo(command)
            try:
                res = await ssh.execute(command)
            except CommandExecutionError as e:
                raise TokenFetchError(
                    "unable to get join-token from server",
                    step=JoinStep.FETCH_TOKEN.value,
                    host=source_host,
                ) from e
        finally:
            await ssh.close()

        self._enter(result, JoinStep.DISCONNECT_SOURCE, source_host)

        if res.stderr:
            result.token_stderr = res.stderr_text
            logger.info(f"Logs: {result.token_stderr}")

        token = res.stdout_text.strip()
        if not token:
            raise TokenFetchError(
                "unable to get join-token from server: token is empty",
                step=JoinStep.FETCH_TOKEN.value,
                host=source_host,
            )
        return token

    async def _prepare(self, ssh: SSHConnection, result: JoinResult) -> None:
        """Create the config directory and upload optional files."""
        host = self.target.host
        self._enter(result, JoinStep.PREPARE, host)

        try:
            await ssh.execute(
                commands.mkdir_command(self.plan.sudo_prefix), stream=self.stream
            )
        except CommandExecutionError as e:
            raise UploadError(
                f"unable to create {commands.RKE2_CONFIG_DIR}",
                step=JoinStep.PREPARE.value,
                host=host,
            ) from e

        uploads = [
            (self.plan.config_file, commands.RKE2_CONFIG_FILE),
            (self.plan.registries_file, commands.CONTAINERD_REGISTRIES_FILE),
        ]
        for local_path, remote_path in uploads:
            if not local_path:
                continue
            try:
                await ssh.copy_file(local_path, remote_path)
            except FileTransferError as e:
                raise UploadError(
                    f"unable to upload {local_path!r} to {remote_path}",
                    step=JoinStep.PREPARE.value,
                    host=host,
                ) from e
