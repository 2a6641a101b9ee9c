# cluster_engine/run_api.py
"""Run the control plane API with its health monitor."""

import logging
import sys

import uvicorn

from cluster_engine.api.main import create_app
from cluster_engine.container import build_container
from cluster_engine.core.config import ClusterSettings

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


def main():
    """Main entry point."""
    settings = ClusterSettings()
    container = build_container(settings)
    app = create_app(container)

    logger.info(f"🚀 Starting Cluster Engine on {settings.host}:{settings.port}")
    logger.info(f"Scheduler policy: {settings.scheduler_policy}")
    logger.info(f"Provisioner: {settings.provisioner}")

    try:
        uvicorn.run(app, host=settings.host, port=settings.port, log_level="info")
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
