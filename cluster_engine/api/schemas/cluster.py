from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from cluster_engine.core.models import (
    ClusterSummary,
    Node,
    Pod,
    PodStatus,
    RecoveryOperation,
    utcnow,
)


# ============================================
# NODES
# ============================================

class RegisterNodeRequest(BaseModel):
    """Register node request (provisions a sandbox)."""
    cpu_cores: int = Field(..., gt=0)


class AgentRegisterRequest(BaseModel):
    """Node agent self-registration. No sandbox is provisioned."""
    node_id: str = Field(..., min_length=1, max_length=255)
    cpu_cores: int = Field(..., gt=0)


class NodeResponse(BaseModel):
    """Node summary."""
    node_id: str
    cpu_cores: int
    available_cores: int
    status: str
    last_heartbeat: datetime
    pod_count: int

    @classmethod
    def from_node(cls, node: Node) -> "NodeResponse":
        return cls(
            node_id=node.node_id,
            cpu_cores=node.total_cores,
            available_cores=node.available_cores,
            status=node.status.value,
            last_heartbeat=node.last_heartbeat,
            pod_count=len(node.pods),
        )


class HeartbeatRequest(BaseModel):
    pod_statuses: Dict[str, PodStatus] = Field(default_factory=dict)


class PodCounts(BaseModel):
    total: int
    running: int


class NodeHealthResponse(BaseModel):
    """Per-node liveness, graded by heartbeat age."""
    node_id: str
    status: str
    last_heartbeat: datetime
    seconds_since_heartbeat: float
    health_status: str
    pods: PodCounts


class HeartbeatResponse(BaseModel):
    message: str = "Heartbeat recorded"
    node_id: str
    next_heartbeat_due: datetime
    recommended_interval_seconds: float


# ============================================
# PODS
# ============================================

class SchedulePodRequest(BaseModel):
    cpu_required: int = Field(..., gt=0)


class PodResponse(BaseModel):
    """Pod summary."""
    pod_id: str
    node_id: str
    cpu_required: int
    status: str
    created_at: datetime
    uptime_seconds: int

    @classmethod
    def from_pod(cls, pod: Pod, now: Optional[datetime] = None) -> "PodResponse":
        now = now or utcnow()
        return cls(
            pod_id=pod.pod_id,
            node_id=pod.node_id,
            cpu_required=pod.cpu_required,
            status=pod.status.value,
            created_at=pod.created_at,
            uptime_seconds=max(0, int((now - pod.created_at).total_seconds())),
        )


class NodeDetailResponse(NodeResponse):
    """Node detail with assigned pods."""
    used_cores: int
    pods: List[PodResponse]


class DeletePodResponse(BaseModel):
    message: str = "Pod deleted"
    pod_id: str
    node_id: str
    released_cores: int


# ============================================
# RECOVERY
# ============================================

class RecoveryOperationResponse(BaseModel):
    pod_id: str
    from_node: str
    to_node: Optional[str]
    status: str
    timestamp: datetime
    reason: Optional[str] = None

    @classmethod
    def from_operation(cls, op: RecoveryOperation) -> "RecoveryOperationResponse":
        return cls(
            pod_id=op.pod_id,
            from_node=op.from_node,
            to_node=op.to_node,
            status=op.status.value,
            timestamp=op.timestamp,
            reason=op.reason,
        )


class ClusterSummaryResponse(BaseModel):
    status: str
    total_nodes: int
    healthy_nodes: int
    failed_nodes: int
    nodes_by_status: Dict[str, int]
    total_cores: int
    allocated_cores: int
    available_cores: int
    pods_by_status: Dict[str, int]

    @classmethod
    def from_summary(cls, summary: ClusterSummary) -> "ClusterSummaryResponse":
        return cls(
            status=summary.status,
            total_nodes=summary.total_nodes,
            healthy_nodes=summary.healthy_nodes,
            failed_nodes=summary.failed_nodes,
            nodes_by_status=summary.nodes_by_status,
            total_cores=summary.total_cores,
            allocated_cores=summary.allocated_cores,
            available_cores=summary.available_cores,
            pods_by_status=summary.pods_by_status,
        )


class FailureResponse(BaseModel):
    message: str = "Node failure simulated"
    node_id: str
    status: str
    recovery_operations: List[RecoveryOperationResponse]
    cluster: ClusterSummaryResponse


class EvacuatedPod(BaseModel):
    pod_id: str
    new_node_id: str


class DrainResponse(BaseModel):
    message: str = "Node draining initiated"
    node_id: str
    status: str
    evacuated_pods: List[EvacuatedPod]
    remaining_pods: int


class RepairResponse(BaseModel):
    message: str = "Node repair completed"
    node_id: str
    available_cores: int
    cluster_status: str
    cluster: ClusterSummaryResponse


class RecoverResponse(BaseModel):
    node_id: str
    recovery_operations: List[RecoveryOperationResponse]


class RecoveryStatusResponse(BaseModel):
    operations: List[RecoveryOperationResponse]
    active: List[RecoveryOperationResponse]
    estimated_completion_seconds: int
