# cluster_engine/api/routes/nodes.py
"""Node management API routes."""

from datetime import timedelta
from typing import List

from fastapi import APIRouter, Depends, status

from cluster_engine.api.container import get_cluster_service, get_container
from cluster_engine.api.schemas.cluster import (
    AgentRegisterRequest,
    ClusterSummaryResponse,
    DrainResponse,
    EvacuatedPod,
    FailureResponse,
    HeartbeatRequest,
    HeartbeatResponse,
    NodeDetailResponse,
    NodeHealthResponse,
    NodeResponse,
    PodCounts,
    PodResponse,
    RecoverResponse,
    RecoveryOperationResponse,
    RegisterNodeRequest,
    RepairResponse,
)
from cluster_engine.container import Container
from cluster_engine.core.service import ClusterService

router = APIRouter(prefix="/v1/nodes", tags=["nodes"])


@router.post("", response_model=NodeResponse, status_code=status.HTTP_201_CREATED)
def register_node(
    request: RegisterNodeRequest,
    service: ClusterService = Depends(get_cluster_service),
):
    """
    Register a new node and provision its sandbox.

    A failed provisioning step leaves no registry entry behind.
    """
    node = service.register_node(request.cpu_cores)
    return NodeResponse.from_node(node)


@router.post("/register", response_model=NodeResponse, status_code=status.HTTP_201_CREATED)
def agent_register(
    request: AgentRegisterRequest,
    service: ClusterService = Depends(get_cluster_service),
):
    """Self-registration from a node agent that is already running."""
    node = service.register_node(
        request.cpu_cores,
        node_id=request.node_id,
        provision=False,
    )
    return NodeResponse.from_node(node)


@router.get("", response_model=List[NodeResponse])
def list_nodes(service: ClusterService = Depends(get_cluster_service)):
    """List all registered nodes."""
    return [NodeResponse.from_node(node) for node in service.list_nodes()]


@router.get("/{node_id}", response_model=NodeDetailResponse)
def get_node(node_id: str, service: ClusterService = Depends(get_cluster_service)):
    """Get node details with its pods."""
    node, pods = service.get_node(node_id)
    summary = NodeResponse.from_node(node)

    return NodeDetailResponse(
        **summary.model_dump(),
        used_cores=node.used_cores,
        pods=[PodResponse.from_pod(pod) for pod in pods],
    )


@router.get("/{node_id}/health", response_model=NodeHealthResponse)
def node_health(node_id: str, service: ClusterService = Depends(get_cluster_service)):
    """Heartbeat age and pod counts for one node."""
    report = service.node_health(node_id)

    return NodeHealthResponse(
        node_id=report.node.node_id,
        status=report.node.status.value,
        last_heartbeat=report.node.last_heartbeat,
        seconds_since_heartbeat=report.seconds_since_heartbeat,
        health_status=report.health,
        pods=PodCounts(total=report.total_pods, running=report.running_pods),
    )


@router.delete("/{node_id}", response_model=NodeResponse)
def remove_node(node_id: str, service: ClusterService = Depends(get_cluster_service)):
    """Remove an empty node."""
    return NodeResponse.from_node(service.remove_node(node_id))


@router.post("/{node_id}/heartbeat", response_model=HeartbeatResponse)
def heartbeat(
    node_id: str,
    request: HeartbeatRequest,
    container: Container = Depends(get_container),
):
    node = container.cluster_service.heartbeat(node_id, request.pod_statuses)
    interval = container.settings.heartbeat_interval_seconds

    return HeartbeatResponse(
        node_id=node.node_id,
        next_heartbeat_due=node.last_heartbeat + timedelta(seconds=interval),
        recommended_interval_seconds=interval,
    )


# ============================================
# FAULT TOLERANCE
# ============================================

@router.post("/{node_id}/simulate-failure", response_model=FailureResponse)
def simulate_failure(node_id: str, service: ClusterService = Depends(get_cluster_service)):
    report = service.simulate_failure(node_id)

    return FailureResponse(
        node_id=report.node.node_id,
        status=report.node.status.value,
        recovery_operations=[
            RecoveryOperationResponse.from_operation(op) for op in report.operations
        ],
        cluster=ClusterSummaryResponse.from_summary(report.summary),
    )


@router.post("/{node_id}/drain", response_model=DrainResponse)
def drain(node_id: str, service: ClusterService = Depends(get_cluster_service)):
    return _drain_response(service.drain(node_id))


@router.post("/{node_id}/shutdown", response_model=DrainResponse)
def shutdown(node_id: str, service: ClusterService = Depends(get_cluster_service)):
    """Graceful deregistration from a node agent. Evacuates like drain."""
    return _drain_response(service.shutdown_node(node_id))


@router.post("/{node_id}/repair", response_model=RepairResponse)
def repair(node_id: str, service: ClusterService = Depends(get_cluster_service)):
    report = service.repair(node_id)

    return RepairResponse(
        node_id=report.node.node_id,
        available_cores=report.node.available_cores,
        cluster_status=report.summary.status,
        cluster=ClusterSummaryResponse.from_summary(report.summary),
    )


@router.post("/{node_id}/recover", response_model=RecoverResponse)
def recover(node_id: str, service: ClusterService = Depends(get_cluster_service)):
    """Retry relocation of pods stranded on a non-schedulable node."""
    operations = service.recover(node_id)

    return RecoverResponse(
        node_id=node_id,
        recovery_operations=[
            RecoveryOperationResponse.from_operation(op) for op in operations
        ],
    )


def _drain_response(report) -> DrainResponse:
    return DrainResponse(
        node_id=report.node.node_id,
        status=report.node.status.value,
        evacuated_pods=[
            EvacuatedPod(pod_id=op.pod_id, new_node_id=op.to_node)
            for op in report.evacuated
        ],
        remaining_pods=report.remaining_pods,
    )
