#cluster_engine\api\container.py
from fastapi import Request

from cluster_engine.container import Container
from cluster_engine.core.service import ClusterService


def get_container(request: Request) -> Container:
    return request.app.state.container


def get_cluster_service(request: Request) -> ClusterService:
    return get_container(request).cluster_service
