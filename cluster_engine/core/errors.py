# cluster_engine/core/errors.py

# -----------------------------
# Base Errors
# -----------------------------

class ClusterError(Exception):
    """Base class for all cluster engine errors."""
    pass


# -----------------------------
# Lookup Errors
# -----------------------------

class NodeNotFound(ClusterError):
    """Node id is not present in the registry."""

    def __init__(self, node_id: str):
        super().__init__(f"Node {node_id} not found")
        self.node_id = node_id


class PodNotFound(ClusterError):
    """Pod id is not present in the registry."""

    def __init__(self, pod_id: str):
        super().__init__(f"Pod {pod_id} not found")
        self.pod_id = pod_id


# -----------------------------
# Validation Errors
# -----------------------------

class DuplicateNodeId(ClusterError):
    pass


class InvalidCapacity(ClusterError):
    """Core count is missing, non-integer or not positive."""
    pass


# -----------------------------
# Placement / State Errors
# -----------------------------

class InsufficientCapacity(ClusterError):
    """Target node does not have enough free cores."""
    pass


class NodeNotSchedulable(ClusterError):
    """Node is not healthy and cannot take new placements."""
    pass


class PodNotOnExpectedNode(ClusterError):
    """Pod moved away between the caller's read and its move request."""
    pass


class NodeNotEmpty(ClusterError):
    pass


class ResourceExhausted(ClusterError):
    """No node in the cluster can satisfy a placement request."""
    pass


# -----------------------------
# Collaborator Errors
# -----------------------------

class ProvisioningError(ClusterError):
    """Node sandbox could not be created."""
    pass
