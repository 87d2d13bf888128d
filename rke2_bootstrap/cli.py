"""Click CLI for rke2-bootstrap.

Commands:
- join: Install RKE2 on a remote host and join it to an existing server
"""

import asyncio
import ipaddress
import logging
from typing import Optional

import click
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from rke2_bootstrap import __version__
from rke2_bootstrap.diagnostics.logger import setup_logging
from rke2_bootstrap.join import (
    DEFAULT_CHANNEL,
    BootstrapPlan,
    JoinOrchestrator,
    JoinStep,
    Role,
    SSHTarget,
    ssh_connection_factory,
)
from rke2_bootstrap.ssh.credentials import DEFAULT_KEY_PATH
from rke2_bootstrap.utils.errors import BootstrapError

console = Console()
logger = logging.getLogger(__name__)

STEP_LABELS = {
    JoinStep.CONNECT_SOURCE: "Connecting to server",
    JoinStep.FETCH_TOKEN: "Reading join token",
    JoinStep.DISCONNECT_SOURCE: "Disconnected from server",
    JoinStep.CONNECT_TARGET: "Connecting to node",
    JoinStep.PREPARE: "Preparing config directory",
    JoinStep.WRITE_CONFIG: "Writing join config",
    JoinStep.INSTALL: "Installing RKE2",
    JoinStep.ACTIVATE: "Starting RKE2 service",
    JoinStep.REPORT: "Done",
}


def run_async(coro):
    """Run async function in sync context."""
    return asyncio.run(coro)


def _validate_ip(ctx, param, value: str) -> str:
    try:
        return str(ipaddress.ip_address(value))
    except ValueError:
        raise click.BadParameter(f"{value!r} is not a valid IP address")


def _prompt_passphrase(path: str) -> str:
    return click.prompt(
        f"Enter passphrase for {path}",
        hide_input=True,
        default="",
        show_default=False,
    )


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--debug",
    is_flag=True,
    help="Enable debug logging",
)
@click.option(
    "--debug-ssh",
    is_flag=True,
    help="Enable verbose asyncssh logging",
)
@click.pass_context
def cli(ctx, debug: bool, debug_ssh: bool):
    """rke2-bootstrap - join nodes to an RKE2 cluster over SSH."""
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug

    level = "DEBUG" if debug else "INFO"
    setup_logging(level=level, debug_ssh=debug_ssh)


@cli.command()
@click.option("--ip", default="127.0.0.1", callback=_validate_ip, help="Public IP of node on which to install RKE2")
@click.option("--host", default="", help="Public hostname of node on which to install RKE2")
@click.option("--server-ip", default="127.0.0.1", callback=_validate_ip, help="Public IP of an existing RKE2 server")
@click.option("--server-host", default="", help="Public hostname of an existing RKE2 server")
@click.option("--user", default="root", help="Username for SSH login")
@click.option("--server-user", help="Server username for SSH login (default: --user)")
@click.option(
    "--ssh-key",
    envvar="RKE2_BOOTSTRAP_SSH_KEY",
    default=DEFAULT_KEY_PATH,
    help="The ssh key to use for remote login",
)
@click.option("--server-ssh-key", help="The ssh key to use for the server (default: --ssh-key)")
@click.option("--ssh-port", type=int, default=22, help="The port on which to connect for ssh")
@click.option("--server-ssh-port", type=int, help="The port on which to connect to the server (default: --ssh-port)")
@click.option("--server", "as_server", is_flag=True, help="Join the cluster as a server rather than as an agent")
@click.option(
    "--sudo/--no-sudo",
    default=True,
    help="Use sudo for installation, e.g. --no-sudo when logging in as root without sudo",
)
@click.option("--skip-install", is_flag=True, help="Skip the RKE2 installer")
@click.option("--print-command", is_flag=True, help="Print commands that you can use with SSH to recover from an error")
@click.option("--version", "rke2_version", default="", help="Set a version to install, overrides --channel")
@click.option("--channel", default=DEFAULT_CHANNEL, show_default=True, help="Release channel: stable, latest, or e.g. v1.28")
@click.option("--extra-args", default="", help="Additional arguments passed to the RKE2 installer")
@click.option("--config", "config_file", type=click.Path(dir_okay=False), help="RKE2 configuration file to upload")
@click.option("--registries", "registries_file", type=click.Path(dir_okay=False), help="containerd registry configuration file to upload")
@click.pass_context
def join(
    ctx,
    ip: str,
    host: str,
    server_ip: str,
    server_host: str,
    user: str,
    server_user: Optional[str],
    ssh_key: str,
    server_ssh_key: Optional[str],
    ssh_port: int,
    server_ssh_port: Optional[int],
    as_server: bool,
    sudo: bool,
    skip_install: bool,
    print_command: bool,
    rke2_version: str,
    channel: str,
    extra_args: str,
    config_file: Optional[str],
    registries_file: Optional[str],
):
    """Install RKE2 on a remote host and join it to an existing server.

    \b
    Examples:
      rke2-bootstrap join --user root --server-ip IP --ip IP
      rke2-bootstrap join --user pi --server-host HOST --host HOST --channel latest
    """
    console.print("Running: rke2-bootstrap join")

    host = host or ip
    server_host = server_host or server_ip
    console.print(f"Server IP: {server_host}")

    try:
        source = SSHTarget(
            host=server_host,
            port=server_ssh_port or ssh_port,
            user=server_user or user,
            key_path=server_ssh_key or ssh_key,
        )
        target = SSHTarget(host=host, port=ssh_port, user=user, key_path=ssh_key)
        plan = BootstrapPlan(
            role=Role.SERVER if as_server else Role.AGENT,
            version=rke2_version,
            channel=channel,
            extra_args=extra_args,
            config_file=config_file,
            registries_file=registries_file,
            use_sudo=sudo,
            skip_install=skip_install,
        )
    except ValidationError as e:
        console.print("[red]Invalid options:[/]")
        console.print(str(e), markup=False, highlight=False)
        ctx.exit(1)

    def on_step(step: JoinStep, step_host: str) -> None:
        console.print(f"  [dim]{escape(step_host)}[/] {STEP_LABELS[step]}")

    def echo_command(command: str) -> None:
        console.print(f"ssh: {command}", markup=False, highlight=False)

    orchestrator = JoinOrchestrator(
        source,
        target,
        plan,
        connection_factory=ssh_connection_factory(passphrase_prompt=_prompt_passphrase),
        on_step=on_step,
        echo_command=echo_command if print_command else None,
    )

    try:
        result = run_async(orchestrator.run())
    except BootstrapError as e:
        console.print(f"[red]Error: {escape(str(e))}[/]", highlight=False)
        if e.__cause__ is not None:
            console.print(f"  caused by: {e.__cause__}", markup=False, highlight=False)
        ctx.exit(1)

    if result.install_output is not None:
        if result.install_output.stderr:
            console.print(f"Logs: {result.install_output.stderr_text}", markup=False, highlight=False)
        console.print(f"Output: {result.install_output.stdout_text}", markup=False, highlight=False)

    console.print()
    console.print(
        Panel(
            f"""[bold green]Join Complete[/]

[bold]Node:[/] {escape(target.host)}
[bold]Role:[/] {plan.role.value}
[bold]Server:[/] {escape(source.host)}
[bold]Service:[/] {plan.role.unit}""",
            title="Join Summary",
        )
    )


def main():
    """Main entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
