"""Cluster domain models."""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional, Set


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NodeStatus(Enum):
    """Node status."""
    PROVISIONING = "provisioning"
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    DRAINING = "draining"
    FAILED = "failed"


class PodStatus(Enum):
    """Pod status."""
    PENDING = "pending"
    RUNNING = "running"
    FAILED = "failed"


class RecoveryStatus(Enum):
    """Outcome of one pod relocation attempt."""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class Node:
    """Capacity-bearing worker node."""
    node_id: str
    total_cores: int
    available_cores: int

    status: NodeStatus = NodeStatus.HEALTHY
    last_heartbeat: datetime = field(default_factory=utcnow)

    pods: Set[str] = field(default_factory=set)

    registered_at: datetime = field(default_factory=utcnow)

    @property
    def used_cores(self) -> int:
        return self.total_cores - self.available_cores

    def is_schedulable(self) -> bool:
        """Check if node accepts new placements."""
        return self.status == NodeStatus.HEALTHY

    def can_fit(self, cpu_required: int) -> bool:
        """Check if node has enough free cores for a request."""
        return self.available_cores >= cpu_required

    def copy(self) -> "Node":
        return replace(self, pods=set(self.pods))


@dataclass
class Pod:
    """Workload holding a fixed core allotment on one node."""
    pod_id: str
    node_id: str
    cpu_required: int

    status: PodStatus = PodStatus.PENDING

    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def copy(self) -> "Pod":
        return replace(self)


@dataclass(frozen=True)
class RecoveryOperation:
    """Immutable record of one relocation attempt."""
    pod_id: str
    from_node: str
    status: RecoveryStatus
    timestamp: datetime
    to_node: Optional[str] = None
    reason: Optional[str] = None


@dataclass(frozen=True)
class ClusterSummary:
    """Point-in-time view of cluster health and capacity."""
    status: str
    total_nodes: int
    nodes_by_status: Dict[str, int]
    total_cores: int
    allocated_cores: int
    available_cores: int
    pods_by_status: Dict[str, int]

    @property
    def healthy_nodes(self) -> int:
        return self.nodes_by_status.get(NodeStatus.HEALTHY.value, 0)

    @property
    def failed_nodes(self) -> int:
        return self.nodes_by_status.get(NodeStatus.FAILED.value, 0)
