from typing import Optional

from fastapi import APIRouter, Depends

from cluster_engine.api.container import get_cluster_service
from cluster_engine.api.schemas.cluster import (
    ClusterSummaryResponse,
    RecoveryOperationResponse,
    RecoveryStatusResponse,
)
from cluster_engine.core.service import ClusterService

router = APIRouter(tags=["recovery"])


@router.get("/v1/recovery-status", response_model=RecoveryStatusResponse)
def recovery_status(
    node_id: Optional[str] = None,
    pod_id: Optional[str] = None,
    service: ClusterService = Depends(get_cluster_service),
):
    """Recent recovery operations. Filter with ?node_id= (source node) or ?pod_id=."""
    report = service.recovery_status(node_id=node_id, pod_id=pod_id)

    return RecoveryStatusResponse(
        operations=[RecoveryOperationResponse.from_operation(op) for op in report.operations],
        active=[RecoveryOperationResponse.from_operation(op) for op in report.active],
        estimated_completion_seconds=report.estimated_remaining_seconds,
    )


@router.get("/health", response_model=ClusterSummaryResponse)
def health(service: ClusterService = Depends(get_cluster_service)):
    return ClusterSummaryResponse.from_summary(service.cluster_summary())
