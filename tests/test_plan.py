"""Tests for join plan and target models."""

import pytest
from pydantic import ValidationError

from rke2_bootstrap.join.plan import BootstrapPlan, Role, SSHTarget, DEFAULT_CHANNEL


class TestRole:
    """Tests for Role."""

    def test_units(self):
        """Each role should map to its systemd unit."""
        assert Role.AGENT.unit == "rke2-agent"
        assert Role.SERVER.unit == "rke2-server"


class TestSSHTarget:
    """Tests for SSHTarget."""

    def test_defaults(self):
        """Should default to root on port 22 with the usual key."""
        target = SSHTarget(host="10.0.0.2")
        assert target.port == 22
        assert target.user == "root"
        assert target.key_path == "~/.ssh/id_rsa"
        assert target.address == "10.0.0.2:22"

    def test_rejects_empty_host(self):
        """Should reject a blank host."""
        with pytest.raises(ValidationError):
            SSHTarget(host="  ")

    def test_rejects_bad_port(self):
        """Should reject ports out of range."""
        with pytest.raises(ValidationError):
            SSHTarget(host="h", port=0)
        with pytest.raises(ValidationError):
            SSHTarget(host="h", port=70000)


class TestBootstrapPlan:
    """Tests for BootstrapPlan."""

    def test_defaults(self):
        """Should default to an agent join with sudo."""
        plan = BootstrapPlan(channel=DEFAULT_CHANNEL)
        assert plan.role == Role.AGENT
        assert plan.use_sudo is True
        assert plan.sudo_prefix == "sudo "
        assert plan.config_file is None
        assert plan.skip_install is False

    def test_no_sudo(self):
        """Should drop the elevation prefix."""
        plan = BootstrapPlan(channel="stable", use_sudo=False)
        assert plan.sudo_prefix == ""

    def test_version_only(self):
        """A version alone is a valid selector."""
        plan = BootstrapPlan(version="v1.28.2+rke2r1")
        assert plan.channel == ""

    def test_requires_selector(self):
        """Should reject a plan with neither version nor channel."""
        with pytest.raises(ValidationError) as exc_info:
            BootstrapPlan(version="", channel="")
        assert "version or channel" in str(exc_info.value)
