"""Join targets and plan.

The CLI builds these from flags; the orchestrator only reads them.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from rke2_bootstrap.ssh.credentials import DEFAULT_KEY_PATH

# Release channel used when neither --version nor --channel is given
DEFAULT_CHANNEL = "stable"


class Role(str, Enum):
    """Role the joining node takes in the cluster."""

    AGENT = "agent"
    SERVER = "server"

    @property
    def unit(self) -> str:
        """systemd unit installed for this role."""
        return f"rke2-{self.value}"


class SSHTarget(BaseModel):
    """SSH endpoint of a cluster node."""

    host: str = Field(..., description="Hostname or IP")
    port: int = Field(22, description="SSH port")
    user: str = Field("root", description="SSH username")
    key_path: str = Field(DEFAULT_KEY_PATH, description="Private key path")

    @field_validator("host", "user")
    @classmethod
    def validate_not_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be empty")
        return v

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        if not 1 <= v <= 65535:
            raise ValueError("port must be between 1 and 65535")
        return v

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"


class BootstrapPlan(BaseModel):
    """What to install on the joining node.

    Exactly one of version or channel selects the RKE2 release; version
    wins when both are set.
    """

    role: Role = Role.AGENT
    version: str = ""
    channel: str = ""
    extra_args: str = ""
    config_file: Optional[str] = None
    registries_file: Optional[str] = None
    use_sudo: bool = True
    skip_install: bool = False

    @model_validator(mode="after")
    def validate_selector(self) -> "BootstrapPlan":
        if not self.version.strip() and not self.channel.strip():
            raise ValueError("give a value for version or channel")
        return self

    @property
    def sudo_prefix(self) -> str:
        return "sudo " if self.use_sudo else ""
