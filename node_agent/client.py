# node_agent/client.py
"""Control plane client used by the node agent."""

import requests
from typing import Dict, Any, Optional
import logging

logger = logging.getLogger(__name__)


class ControlPlaneError(Exception):
    """Request to the control plane failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ControlPlaneClient:
    """Client for communicating with the cluster control plane."""

    def __init__(self, api_url: str, timeout: float = 8.0, session=None):
        """
        Initialize client.

        Args:
            api_url: Base URL of the control plane (e.g., "http://api-server:5000")
            timeout: Request timeout in seconds
            session: Optional requests.Session
        """
        self.base_url = api_url.rstrip('/')
        self.timeout = timeout
        self._session = session or requests.Session()

    def register(self, node_id: str, cpu_cores: int) -> bool:
        """
        Register this node.

        Returns:
            True if registered now, False if the node was already known

        Raises:
            ControlPlaneError: If the request fails
        """
        try:
            self._post(
                "/v1/nodes/register",
                json={"node_id": node_id, "cpu_cores": cpu_cores},
            )
            return True
        except ControlPlaneError as e:
            if e.status_code == 409:
                logger.info(f"Node {node_id} already registered")
                return False
            raise

    def heartbeat(self, node_id: str, pod_statuses: Dict[str, str]) -> Dict[str, Any]:
        """
        Send a heartbeat.

        Returns:
            Acknowledgement body

        Raises:
            ControlPlaneError: If the request fails
        """
        return self._post(
            f"/v1/nodes/{node_id}/heartbeat",
            json={"pod_statuses": pod_statuses},
        )

    def deregister(self, node_id: str, timeout: Optional[float] = None) -> bool:
        """
        Tell the control plane this node is going away. Best effort.

        Returns:
            True if acknowledged, False otherwise
        """
        try:
            self._post(f"/v1/nodes/{node_id}/shutdown", json={}, timeout=timeout)
            return True
        except ControlPlaneError as e:
            logger.error(f"Graceful shutdown failed: {e}")
            return False

    def _post(
        self,
        path: str,
        json: Dict[str, Any],
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        timeout = timeout if timeout is not None else self.timeout

        try:
            response = self._session.post(url, json=json, timeout=timeout)
        except requests.exceptions.Timeout:
            raise ControlPlaneError(f"Timeout after {timeout}s: {url}")
        except requests.exceptions.ConnectionError:
            raise ControlPlaneError(f"Cannot connect to control plane at {self.base_url}")

        if response.status_code >= 400:
            try:
                detail = response.json().get('detail', response.text)
            except ValueError:
                detail = response.text
            raise ControlPlaneError(
                f"{url} returned {response.status_code}: {detail}",
                status_code=response.status_code,
            )

        return response.json()
