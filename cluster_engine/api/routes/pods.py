# cluster_engine/api/routes/pods.py
"""Pod API routes."""

from typing import List

from fastapi import APIRouter, Depends, status

from cluster_engine.api.container import get_cluster_service
from cluster_engine.api.schemas.cluster import (
    DeletePodResponse,
    PodResponse,
    SchedulePodRequest,
)
from cluster_engine.core.service import ClusterService

router = APIRouter(prefix="/v1/pods", tags=["pods"])


@router.post("", response_model=PodResponse, status_code=status.HTTP_201_CREATED)
def schedule_pod(
    request: SchedulePodRequest,
    service: ClusterService = Depends(get_cluster_service),
):
    pod = service.schedule_pod(request.cpu_required)
    return PodResponse.from_pod(pod)


@router.get("", response_model=List[PodResponse])
def list_pods(service: ClusterService = Depends(get_cluster_service)):
    return [PodResponse.from_pod(pod) for pod in service.list_pods()]


@router.get("/{pod_id}", response_model=PodResponse)
def get_pod(pod_id: str, service: ClusterService = Depends(get_cluster_service)):
    return PodResponse.from_pod(service.get_pod(pod_id))


@router.delete("/{pod_id}", response_model=DeletePodResponse)
def delete_pod(pod_id: str, service: ClusterService = Depends(get_cluster_service)):
    pod = service.delete_pod(pod_id)

    return DeletePodResponse(
        pod_id=pod.pod_id,
        node_id=pod.node_id,
        released_cores=pod.cpu_required,
    )
