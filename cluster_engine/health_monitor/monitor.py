# cluster_engine/health_monitor/monitor.py
"""
Health Monitor - marks nodes with stale heartbeats UNHEALTHY and
relocates their pods.

Runs as a background thread inside the control plane process and sweeps
every 30 seconds by default.
"""

import logging
from datetime import datetime, timedelta
from threading import Event, Lock, Thread
from typing import List, Optional

from cluster_engine.core.models import NodeStatus
from cluster_engine.recovery.reconciler import RecoveryReconciler
from cluster_engine.registry.registry import ClusterRegistry

logger = logging.getLogger(__name__)


class HealthMonitor:
    """
    Background service that detects stale nodes.

    Architecture:
    - Runs as a daemon thread (start/stop)
    - Sweeps every ``check_interval`` seconds
    - Only HEALTHY nodes are checked; a node leaves UNHEALTHY only by
      heartbeat or repair, so recovery is not re-triggered every tick
    - A sweep holds the registry lock, so it never interleaves with a move
    """

    def __init__(
        self,
        registry: ClusterRegistry,
        reconciler: RecoveryReconciler,
        check_interval: float = 30.0,
        staleness_threshold: float = 90.0,
    ):
        """
        Initialize health monitor.

        Args:
            registry: Cluster registry to scan
            reconciler: Relocates pods off stale nodes
            check_interval: How often to sweep (seconds)
            staleness_threshold: Max heartbeat age before a node is
                considered dead (seconds)
        """
        self._registry = registry
        self._reconciler = reconciler
        self.check_interval = check_interval
        self.staleness_threshold = staleness_threshold

        self._sweep_lock = Lock()
        self._stop_requested = Event()
        self._thread: Optional[Thread] = None

        logger.info(
            f"Health Monitor initialized (interval {check_interval}s, "
            f"staleness threshold {staleness_threshold}s)"
        )

    # ============================================
    # LIFECYCLE
    # ============================================

    def start(self) -> None:
        """Start the sweep loop in a background thread."""
        if self.is_running():
            return

        self._stop_requested.clear()
        self._thread = Thread(target=self._run, name="health-monitor", daemon=True)
        self._thread.start()
        logger.info("Health Monitor started")

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """Stop the loop and wait for an in-flight sweep to finish."""
        self._stop_requested.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Health Monitor stopped")

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self) -> None:
        while not self._stop_requested.wait(self.check_interval):
            try:
                self.sweep()
            except Exception as e:
                logger.error(f"Error in sweep: {e}", exc_info=True)

    # ============================================
    # SWEEP
    # ============================================

    def sweep(self, now: Optional[datetime] = None) -> List[str]:
        """
        Single health sweep.

        1. Find HEALTHY nodes whose last heartbeat is older than the threshold
        2. Mark all of them UNHEALTHY
        3. Relocate their pods, so no pod lands on another stale node

        Returns:
            Ids of nodes marked UNHEALTHY by this sweep
        """
        if not self._sweep_lock.acquire(blocking=False):
            logger.warning("[health] previous sweep still running, skipping tick")
            return []

        try:
            return self._sweep(now)
        finally:
            self._sweep_lock.release()

    def _sweep(self, now: Optional[datetime]) -> List[str]:
        threshold = timedelta(seconds=self.staleness_threshold)
        marked = []

        with self._registry.exclusive():
            now = now or self._registry.now()

            # Mark every stale node first so none is picked as a relocation target
            for node in self._registry.snapshot():
                if node.status != NodeStatus.HEALTHY:
                    continue

                age = now - node.last_heartbeat
                if age <= threshold:
                    continue

                try:
                    logger.warning(
                        f"[health] node {node.node_id} silent for "
                        f"{int(age.total_seconds())}s, marking unhealthy"
                    )
                    self._registry.set_node_status(node.node_id, NodeStatus.UNHEALTHY)
                    marked.append(node.node_id)
                except Exception as e:
                    logger.error(
                        f"[health] error marking stale node {node.node_id}: {e}",
                        exc_info=True
                    )

            for node_id in marked:
                try:
                    self._reconciler.reconcile(node_id)
                except Exception as e:
                    logger.error(
                        f"[health] error relocating pods off {node_id}: {e}",
                        exc_info=True
                    )

        if marked:
            logger.info(f"[health] {len(marked)} node(s) marked unhealthy")
        else:
            logger.debug("[health] all nodes reporting")

        return marked
