# cluster_engine/provisioning/provisioner.py
"""Node provisioners - create the sandbox a registered node runs in."""

import logging
from abc import ABC, abstractmethod
from typing import Optional

import docker

from cluster_engine.core.errors import ProvisioningError
from cluster_engine.core.models import Node

logger = logging.getLogger(__name__)


class NodeProvisioner(ABC):
    """Provisioning contract."""

    @abstractmethod
    def provision(self, node: Node) -> None:
        """
        Create the execution sandbox for a node.
        Must raise on failure so the registration can be rolled back.
        """
        raise NotImplementedError

    @abstractmethod
    def deprovision(self, node_id: str) -> None:
        """Tear the sandbox down. Best effort."""
        raise NotImplementedError


class NullProvisioner(NodeProvisioner):
    """No-op provisioner (nodes are simulated in-process)."""

    def provision(self, node: Node) -> None:
        pass

    def deprovision(self, node_id: str) -> None:
        pass


class DockerProvisioner(NodeProvisioner):
    """Starts one node agent container per registered node."""

    def __init__(
        self,
        image: str,
        network: str,
        api_server_url: str,
        docker_client=None,
    ):
        """
        Initialize provisioner.

        Args:
            image: Node agent image (e.g. "node-agent")
            network: Docker network shared with the control plane
            api_server_url: URL the agent reports heartbeats to
            docker_client: Pre-built client; defaults to docker.from_env()
        """
        self.image = image
        self.network = network
        self.api_server_url = api_server_url
        self._client = docker_client

    def _docker(self):
        if self._client is None:
            self._client = docker.from_env()
        return self._client

    @staticmethod
    def container_name(node_id: str) -> str:
        return f"node-{node_id}"

    def provision(self, node: Node) -> None:
        container = None
        try:
            container = self._docker().containers.create(
                image=self.image,
                name=self.container_name(node.node_id),
                detach=True,
                environment={
                    "NODE_ID": node.node_id,
                    "CPU_CORES": str(node.total_cores),
                    "API_SERVER_URL": self.api_server_url,
                },
                network=self.network,
                labels={
                    "managed_by": "cluster_engine",
                    "node_id": node.node_id,
                },
            )
            container.start()
        except docker.errors.DockerException as e:
            logger.error(f"[provisioner] node {node.node_id}: docker error: {e}")
            if container is not None:
                self._discard(container)
            raise ProvisioningError(f"Docker error: {e}") from e

        logger.info(
            f"[provisioner] ✅ node {node.node_id} container started: {container.id[:12]}"
        )

    def _discard(self, container) -> None:
        """Remove a container that was created but never started."""
        try:
            container.remove(force=True)
        except docker.errors.DockerException as e:
            logger.error(f"[provisioner] failed to remove container {container.id[:12]}: {e}")

    def deprovision(self, node_id: str) -> None:
        try:
            container = self._docker().containers.get(self.container_name(node_id))
            container.remove(force=True)
        except docker.errors.NotFound:
            logger.debug(f"[provisioner] no container for node {node_id}")
        except docker.errors.DockerException as e:
            logger.error(f"[provisioner] failed to remove node {node_id}: {e}")


def build_provisioner(
    kind: str,
    image: str = "node-agent",
    network: str = "cluster-network",
    api_server_url: Optional[str] = None,
) -> NodeProvisioner:
    if kind == "none":
        return NullProvisioner()
    if kind == "docker":
        return DockerProvisioner(
            image=image,
            network=network,
            api_server_url=api_server_url or "http://api-server:5000",
        )
    raise ValueError(f"Unknown provisioner {kind!r}")
