# cluster_engine/registry/registry.py
"""
Cluster registry - the single source of truth for node and pod state.

All mutations run under one re-entrant lock, so every call is linearizable
and a move debits the target and credits the source in one step. Callers
that need several operations to be observed as one (select a target, then
move) hold the same lock through ``exclusive()``.

Reads return copies taken under the lock.
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from threading import RLock, Timer
from typing import Callable, Dict, Iterator, List, Mapping, Optional, Union
from uuid import uuid4

from cluster_engine.core.errors import (
    DuplicateNodeId,
    InsufficientCapacity,
    InvalidCapacity,
    NodeNotEmpty,
    NodeNotFound,
    NodeNotSchedulable,
    PodNotFound,
    PodNotOnExpectedNode,
)
from cluster_engine.core.models import Node, NodeStatus, Pod, PodStatus, utcnow

logger = logging.getLogger(__name__)


def _validate_cores(value, what: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidCapacity(f"{what} must be an integer, got {value!r}")
    if value <= 0:
        raise InvalidCapacity(f"{what} must be positive, got {value}")
    return value


class ClusterRegistry:
    """In-memory node and pod registry."""

    def __init__(
        self,
        pod_startup_delay: float = 5.0,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Initialize registry.

        Args:
            pod_startup_delay: Seconds a new pod stays PENDING before it
                turns RUNNING. Zero transitions immediately.
            clock: Source of "now" (UTC datetimes)
        """
        self._nodes: Dict[str, Node] = {}
        self._pods: Dict[str, Pod] = {}
        self._lock = RLock()
        self._clock = clock
        self._startup_delay = pod_startup_delay
        self._timers: Dict[str, Timer] = {}

    # ============================================
    # LOCKING
    # ============================================

    @contextmanager
    def exclusive(self) -> Iterator["ClusterRegistry"]:
        """Hold the mutation lock across several registry calls."""
        with self._lock:
            yield self

    def now(self) -> datetime:
        return self._clock()

    # ============================================
    # NODES
    # ============================================

    def register_node(
        self,
        total_cores: int,
        node_id: Optional[str] = None,
        status: NodeStatus = NodeStatus.HEALTHY,
    ) -> Node:
        """
        Register a new node with all of its cores free.

        Args:
            total_cores: CPU cores the node offers
            node_id: Id to use; generated when omitted
            status: Initial status. PROVISIONING keeps the node out of
                scheduling until its sandbox is up.
        """
        total_cores = _validate_cores(total_cores, "total_cores")
        node_id = node_id or str(uuid4())

        with self._lock:
            if node_id in self._nodes:
                raise DuplicateNodeId(f"Node {node_id} already registered")

            now = self._clock()
            node = Node(
                node_id=node_id,
                total_cores=total_cores,
                available_cores=total_cores,
                status=status,
                last_heartbeat=now,
                registered_at=now,
            )
            self._nodes[node_id] = node

            logger.info(
                f"[registry] registered node {node_id} "
                f"({total_cores} cores, {status.value})"
            )
            return node.copy()

    def remove_node(self, node_id: str) -> Node:
        """Remove an empty node."""
        with self._lock:
            node = self._require_node(node_id)
            if node.pods:
                raise NodeNotEmpty(
                    f"Node {node_id} still hosts {len(node.pods)} pod(s)"
                )
            del self._nodes[node_id]

            logger.info(f"[registry] removed node {node_id}")
            return node.copy()

    def record_heartbeat(
        self,
        node_id: str,
        pod_statuses: Optional[Mapping[str, Union[PodStatus, str]]] = None,
    ) -> Node:
        """
        Record a node heartbeat.

        Marks the node healthy and applies reported statuses to pods that
        still belong to it. Pods that are unknown, or that were moved to
        another node, are ignored. A PROVISIONING node only has its
        heartbeat refreshed; it turns healthy when provisioning finishes.
        """
        updates = {
            pod_id: PodStatus(status)
            for pod_id, status in (pod_statuses or {}).items()
        }

        with self._lock:
            node = self._require_node(node_id)
            now = self._clock()
            node.last_heartbeat = now

            if node.status not in (NodeStatus.HEALTHY, NodeStatus.PROVISIONING):
                logger.info(
                    f"[registry] node {node_id} back to healthy "
                    f"(was {node.status.value})"
                )
                node.status = NodeStatus.HEALTHY

            for pod_id, status in updates.items():
                pod = self._pods.get(pod_id)
                if pod is None or pod.node_id != node_id:
                    continue
                if pod.status != status:
                    pod.status = status
                    pod.updated_at = now

            return node.copy()

    def set_node_status(
        self,
        node_id: str,
        status: NodeStatus,
        refresh_heartbeat: bool = False,
    ) -> Node:
        """Set node status (drain, repair, failure, staleness)."""
        with self._lock:
            node = self._require_node(node_id)
            previous = node.status
            node.status = status
            if refresh_heartbeat:
                node.last_heartbeat = self._clock()

            if previous != status:
                logger.info(
                    f"[registry] node {node_id}: {previous.value} -> {status.value}"
                )
            return node.copy()

    def get_node(self, node_id: str) -> Node:
        with self._lock:
            return self._require_node(node_id).copy()

    def list_nodes(self) -> List[Node]:
        """List nodes in registration order."""
        with self._lock:
            return [node.copy() for node in self._nodes.values()]

    snapshot = list_nodes

    # ============================================
    # PODS
    # ============================================

    def add_pod(self, node_id: str, pod_id: str, cpu_required: int) -> Pod:
        """Place a new pod on a node, reserving its cores."""
        cpu_required = _validate_cores(cpu_required, "cpu_required")

        with self._lock:
            node = self._require_node(node_id)

            if not node.is_schedulable():
                raise NodeNotSchedulable(
                    f"Node {node_id} is {node.status.value}"
                )
            if not node.can_fit(cpu_required):
                raise InsufficientCapacity(
                    f"Node {node_id} has {node.available_cores} free core(s), "
                    f"{cpu_required} required"
                )
            if pod_id in self._pods:
                raise ValueError(f"Pod {pod_id} already exists")

            now = self._clock()
            pod = Pod(
                pod_id=pod_id,
                node_id=node_id,
                cpu_required=cpu_required,
                status=PodStatus.PENDING,
                created_at=now,
                updated_at=now,
            )
            node.available_cores -= cpu_required
            node.pods.add(pod_id)
            self._pods[pod_id] = pod

            logger.info(
                f"[registry] pod {pod_id} placed on {node_id} "
                f"({cpu_required} cores, {node.available_cores} left)"
            )

            self._schedule_startup(pod_id)
            return pod.copy()

    def move_pod(self, pod_id: str, from_node_id: str, to_node_id: str) -> Pod:
        """
        Move a pod between nodes.

        Every check runs before anything is written, so a failed move leaves
        both nodes and the pod untouched.
        """
        with self._lock:
            pod = self._require_pod(pod_id)
            if pod.node_id != from_node_id:
                raise PodNotOnExpectedNode(
                    f"Pod {pod_id} is on {pod.node_id}, not {from_node_id}"
                )

            source = self._require_node(from_node_id)
            target = self._require_node(to_node_id)

            if source is target:
                return pod.copy()

            if not target.can_fit(pod.cpu_required):
                raise InsufficientCapacity(
                    f"Node {to_node_id} has {target.available_cores} free core(s), "
                    f"{pod.cpu_required} required"
                )

            target.available_cores -= pod.cpu_required
            source.available_cores += pod.cpu_required
            source.pods.discard(pod_id)
            target.pods.add(pod_id)
            pod.node_id = to_node_id
            pod.status = PodStatus.RUNNING
            pod.updated_at = self._clock()

            logger.info(f"[registry] pod {pod_id} moved {from_node_id} -> {to_node_id}")
            return pod.copy()

    def remove_pod(self, pod_id: str) -> Pod:
        """Delete a pod and release its cores."""
        with self._lock:
            pod = self._require_pod(pod_id)

            node = self._nodes.get(pod.node_id)
            if node is not None:
                node.available_cores += pod.cpu_required
                node.pods.discard(pod_id)

            del self._pods[pod_id]
            self._cancel_startup(pod_id)

            logger.info(f"[registry] pod {pod_id} removed from {pod.node_id}")
            return pod.copy()

    def mark_pod_running(self, pod_id: str) -> bool:
        """Finish start-up. Only a PENDING pod transitions."""
        with self._lock:
            self._cancel_startup(pod_id)
            pod = self._pods.get(pod_id)
            if pod is None or pod.status != PodStatus.PENDING:
                return False

            pod.status = PodStatus.RUNNING
            pod.updated_at = self._clock()
            logger.debug(f"[registry] pod {pod_id} is now running on {pod.node_id}")
            return True

    def mark_pod_failed(self, pod_id: str) -> Pod:
        with self._lock:
            pod = self._require_pod(pod_id)
            pod.status = PodStatus.FAILED
            pod.updated_at = self._clock()
            self._cancel_startup(pod_id)
            return pod.copy()

    def get_pod(self, pod_id: str) -> Pod:
        with self._lock:
            return self._require_pod(pod_id).copy()

    def get_pods_on_node(self, node_id: str) -> List[Pod]:
        """List pods on a node in creation order."""
        with self._lock:
            self._require_node(node_id)
            return [
                pod.copy() for pod in self._pods.values()
                if pod.node_id == node_id
            ]

    def list_pods(self) -> List[Pod]:
        """List all pods in creation order."""
        with self._lock:
            return [pod.copy() for pod in self._pods.values()]

    # ============================================
    # LIFECYCLE
    # ============================================

    def close(self) -> None:
        """Cancel outstanding pod start-up timers."""
        with self._lock:
            for timer in self._timers.values():
                timer.cancel()
            self._timers.clear()

    # ============================================
    # INTERNAL HELPERS
    # ============================================

    def _require_node(self, node_id: str) -> Node:
        node = self._nodes.get(node_id)
        if node is None:
            raise NodeNotFound(node_id)
        return node

    def _require_pod(self, pod_id: str) -> Pod:
        pod = self._pods.get(pod_id)
        if pod is None:
            raise PodNotFound(pod_id)
        return pod

    def _schedule_startup(self, pod_id: str) -> None:
        if self._startup_delay <= 0:
            self.mark_pod_running(pod_id)
            return

        timer = Timer(self._startup_delay, self.mark_pod_running, args=(pod_id,))
        timer.daemon = True
        self._timers[pod_id] = timer
        timer.start()

    def _cancel_startup(self, pod_id: str) -> None:
        timer = self._timers.pop(pod_id, None)
        if timer is not None:
            timer.cancel()
