"""Joining nodes to an existing RKE2 cluster.

A join reads the node token from an existing server, then configures,
installs and starts RKE2 on the new node, as an agent or as an additional
server.
"""

from .plan import BootstrapPlan, Role, SSHTarget, DEFAULT_CHANNEL
from .orchestrator import (
    JoinOrchestrator,
    JoinResult,
    JoinStep,
    ssh_connection_factory,
)

__all__ = [
    "BootstrapPlan",
    "Role",
    "SSHTarget",
    "DEFAULT_CHANNEL",
    "JoinOrchestrator",
    "JoinResult",
    "JoinStep",
    "ssh_connection_factory",
]
