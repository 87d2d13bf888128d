"""Remote commands run during a join, and the join config payload."""

import shlex
from typing import Tuple
from urllib.parse import urlsplit

from rke2_bootstrap.join.plan import Role

RKE2_CONFIG_DIR = "/etc/rancher/rke2"
RKE2_CONFIG_FILE = f"{RKE2_CONFIG_DIR}/config.yaml"
CONTAINERD_REGISTRIES_FILE = f"{RKE2_CONFIG_DIR}/registries.yaml"
NODE_TOKEN_FILE = "/var/lib/rancher/rke2/server/node-token"

INSTALL_SCRIPT_URL = "https://get.rke2.io"
GET_SCRIPT = f"curl -sfL {INSTALL_SCRIPT_URL}"

# Supervisor port new nodes register against
SUPERVISOR_PORT = 9345


def _single_quote(value: str) -> str:
    """Always single-quote, escaping embedded quotes the way shlex.quote does."""
    return "'" + value.replace("'", "'\"'\"'") + "'"


def version_env(version: str, channel: str) -> str:
    """Installer environment selecting the release. Version wins over channel.

    Raises:
        ValueError: If both are empty
    """
    version = version.strip()
    channel = channel.strip()
    if version:
        return f"INSTALL_RKE2_VERSION={_single_quote(version)}"
    if channel:
        return f"INSTALL_RKE2_CHANNEL={_single_quote(channel)}"
    raise ValueError("give a value for version or channel")


def token_command(sudo_prefix: str) -> str:
    return f"{sudo_prefix}cat {NODE_TOKEN_FILE}"


def mkdir_command(sudo_prefix: str) -> str:
    return f"{sudo_prefix}mkdir -p {RKE2_CONFIG_DIR}"


def render_join_config(server_host: str, token: str) -> str:
    """Config payload pointing a new node at an existing server."""
    if ":" in server_host and not server_host.startswith("["):
        server_host = f"[{server_host}]"
    return f"server: https://{server_host}:{SUPERVISOR_PORT}\ntoken: {token.strip()}\n"


def parse_join_config(payload: str) -> Tuple[str, str]:
    """Read the server host and token back out of a join config payload.

    Raises:
        ValueError: If either line is missing
    """
    values = {}
    for line in payload.splitlines():
        key, sep, value = line.partition(":")
        if sep:
            values[key.strip()] = value.strip()

    if "server" not in values or "token" not in values:
        raise ValueError("join config must contain server and token")

    host = urlsplit(values["server"]).hostname
    if not host:
        raise ValueError(f"invalid server url: {values['server']!r}")
    return host, values["token"]


def write_config_command(payload: str, sudo_prefix: str) -> str:
    return f"echo {shlex.quote(payload)} | {sudo_prefix}tee -a {RKE2_CONFIG_FILE}"


def install_command(
    role: Role,
    version: str,
    channel: str,
    sudo_prefix: str,
    extra_args: str = "",
) -> str:
    """Pipe the RKE2 install script into a shell on the node."""
    env = version_env(version, channel)
    if role == Role.SERVER:
        env += " INSTALL_RKE2_TYPE='server'"

    command = f"{GET_SCRIPT} | {sudo_prefix}{env} sh -s -"
    if extra_args.strip():
        command += f" {extra_args.strip()}"
    return command


def enable_service_command(role: Role, sudo_prefix: str) -> str:
    return f"{sudo_prefix}systemctl enable --no-block --now {role.unit}"
