# node_agent/agent.py
"""
Node Agent - runs on every simulated node.

Registers the node and reports heartbeats on its own timer. The control
plane never waits on the agent; a silent agent is noticed only by the
control plane's health monitor.
"""

import logging
import signal
import sys
from threading import Event, Lock, Thread
from typing import Dict, List, Optional
from uuid import uuid4

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from node_agent.client import ControlPlaneClient, ControlPlaneError

logger = logging.getLogger(__name__)

MIN_INTERVAL = 5.0
MAX_INTERVAL = 60.0


class AgentSettings(BaseSettings):
    """Agent configuration from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    api_server_url: str = "http://api-server:5000"
    node_id: str = Field(default_factory=lambda: str(uuid4()))
    cpu_cores: int = 2

    heartbeat_interval: float = 10.0
    request_timeout: float = 8.0

    max_retry_attempts: int = 5
    retry_base_delay: float = 2.0
    retry_max_delay: float = 60.0

    shutdown_timeout: float = 5.0


class HeartbeatAgent:
    """
    Periodic heartbeat sender.

    A failed heartbeat is retried with doubling delays (base, 2x base, ...
    capped at ``max_delay``). After ``max_retries`` failed retries the agent
    gives up until the next regular tick.

    The agent does not start workloads itself. Whatever runs pods on this
    node reports them through ``track_pod``/``forget_pod``, and each
    heartbeat carries that report. Until something is tracked the report
    is empty and the control plane keeps its own pod statuses.
    """

    def __init__(
        self,
        client: ControlPlaneClient,
        node_id: str,
        cpu_cores: int,
        interval: float = 10.0,
        max_retries: int = 5,
        base_delay: float = 2.0,
        max_delay: float = 60.0,
        shutdown_timeout: float = 5.0,
    ):
        self._client = client
        self.node_id = node_id
        self.cpu_cores = cpu_cores
        self.interval = interval
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.shutdown_timeout = shutdown_timeout

        self.registered = False
        self._pods: Dict[str, str] = {}
        self._pods_lock = Lock()
        self._stop_requested = Event()
        self._thread: Optional[Thread] = None

    # ============================================
    # LIFECYCLE
    # ============================================

    def start(self) -> None:
        """Start heartbeating in a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return

        logger.info(f"Starting node {self.node_id} with {self.cpu_cores} CPU cores")
        self._stop_requested.clear()
        self._thread = Thread(target=self._run, name="heartbeat-agent", daemon=True)
        self._thread.start()

    def stop(self, deregister: bool = True) -> None:
        """Stop heartbeating, then deregister (bounded by shutdown_timeout)."""
        logger.info(f"Shutting down node {self.node_id}")
        self._stop_requested.set()

        if self._thread is not None:
            self._thread.join(self.shutdown_timeout)
            self._thread = None

        if deregister and self.registered:
            self._client.deregister(self.node_id, timeout=self.shutdown_timeout)
            self.registered = False

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self) -> None:
        while not self._stop_requested.is_set():
            if not self.registered:
                self.register()

            if self.registered:
                self.send_with_retry()

            if self._stop_requested.wait(self.interval):
                break

    # ============================================
    # PODS
    # ============================================

    def track_pod(self, pod_id: str, status: str = "running") -> None:
        with self._pods_lock:
            self._pods[pod_id] = status

    def forget_pod(self, pod_id: str) -> None:
        with self._pods_lock:
            self._pods.pop(pod_id, None)

    def pod_report(self) -> Dict[str, str]:
        with self._pods_lock:
            return dict(self._pods)

    # ============================================
    # REGISTRATION / HEARTBEAT
    # ============================================

    def register(self) -> bool:
        try:
            self._client.register(self.node_id, self.cpu_cores)
            self.registered = True
            logger.info(f"Node {self.node_id} registered successfully")
        except ControlPlaneError as e:
            logger.error(f"Node registration failed: {e}")
        return self.registered

    def backoff_delays(self) -> List[float]:
        """Delay before each retry."""
        return [
            min(self.max_delay, self.base_delay * (2 ** attempt))
            for attempt in range(self.max_retries)
        ]

    def send_heartbeat(self) -> bool:
        """Single heartbeat attempt."""
        try:
            ack = self._client.heartbeat(self.node_id, self.pod_report())
        except ControlPlaneError as e:
            if e.status_code == 404:
                # Control plane forgot us; register again next tick
                self.registered = False
            logger.warning(f"Heartbeat failed: {e}")
            return False

        recommended = ack.get("recommended_interval_seconds")
        if recommended:
            self.interval = max(MIN_INTERVAL, min(float(recommended), MAX_INTERVAL))

        logger.debug(
            f"Heartbeat acknowledged for {self.node_id} "
            f"(next in {self.interval}s)"
        )
        return True

    def send_with_retry(self) -> bool:
        """
        Heartbeat with bounded retries.

        Returns:
            True if a heartbeat got through
        """
        if self.send_heartbeat():
            return True

        for attempt, delay in enumerate(self.backoff_delays(), start=1):
            if not self.registered:
                return False

            logger.info(f"Retrying heartbeat in {delay}s (attempt {attempt}/{self.max_retries})")
            if self._stop_requested.wait(delay):
                return False
            if self.send_heartbeat():
                return True

        logger.error("Max heartbeat retries reached. Node may be marked as unhealthy.")
        return False


def main():
    """Main entry point."""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    settings = AgentSettings()
    client = ControlPlaneClient(settings.api_server_url, timeout=settings.request_timeout)
    agent = HeartbeatAgent(
        client=client,
        node_id=settings.node_id,
        cpu_cores=settings.cpu_cores,
        interval=settings.heartbeat_interval,
        max_retries=settings.max_retry_attempts,
        base_delay=settings.retry_base_delay,
        max_delay=settings.retry_max_delay,
        shutdown_timeout=settings.shutdown_timeout,
    )

    stop = Event()

    def _signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, stopping...")
        stop.set()

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    try:
        agent.start()
        stop.wait()
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)
    finally:
        agent.stop()


if __name__ == "__main__":
    main()
