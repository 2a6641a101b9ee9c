import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from cluster_engine.api.routes.nodes import router as nodes_router
from cluster_engine.api.routes.pods import router as pods_router
from cluster_engine.api.routes.recovery import router as recovery_router
from cluster_engine.container import Container, build_container
from cluster_engine.core.errors import (
    ClusterError,
    DuplicateNodeId,
    InsufficientCapacity,
    InvalidCapacity,
    NodeNotEmpty,
    NodeNotFound,
    NodeNotSchedulable,
    PodNotFound,
    PodNotOnExpectedNode,
    ProvisioningError,
    ResourceExhausted,
)

logger = logging.getLogger(__name__)


ERROR_STATUS_CODES = {
    NodeNotFound: 404,
    PodNotFound: 404,
    DuplicateNodeId: 409,
    NodeNotEmpty: 409,
    NodeNotSchedulable: 409,
    PodNotOnExpectedNode: 409,
    InsufficientCapacity: 409,
    ResourceExhausted: 409,
    InvalidCapacity: 422,
    ProvisioningError: 502,
}


def create_app(
    container: Optional[Container] = None,
    start_monitor: bool = True,
) -> FastAPI:
    container = container or build_container()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if start_monitor:
            container.health_monitor.start()
        yield
        container.close()

    app = FastAPI(title="Cluster Engine API", version="1.0.0", lifespan=lifespan)
    app.state.container = container

    @app.exception_handler(ClusterError)
    async def cluster_error_handler(request: Request, exc: ClusterError):
        status_code = 400
        for error_type, code in ERROR_STATUS_CODES.items():
            if isinstance(exc, error_type):
                status_code = code
                break

        return JSONResponse(
            status_code=status_code,
            content={
                "error": type(exc).__name__,
                "detail": str(exc),
            },
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.url.path}: {exc}", exc_info=True)

        return JSONResponse(
            status_code=500,
            content={
                "error": "InternalError",
                "detail": "Internal server error",
            },
        )

    app.include_router(nodes_router)
    app.include_router(pods_router)
    app.include_router(recovery_router)

    return app
