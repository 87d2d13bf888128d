"""rke2-bootstrap - join nodes to an RKE2 cluster over SSH."""

__version__ = "0.1.0"
