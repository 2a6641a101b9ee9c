"""Cluster service - operations exposed to the API layer."""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Tuple, Union
from uuid import uuid4

from cluster_engine.core.errors import ClusterError, ProvisioningError, ResourceExhausted
from cluster_engine.core.models import (
    ClusterSummary,
    Node,
    NodeStatus,
    Pod,
    PodStatus,
    RecoveryOperation,
    RecoveryStatus,
)
from cluster_engine.provisioning.provisioner import NodeProvisioner, NullProvisioner
from cluster_engine.recovery.log import RecoveryLog
from cluster_engine.recovery.reconciler import RecoveryReconciler
from cluster_engine.registry.registry import ClusterRegistry
from cluster_engine.scheduler.policy import SchedulerPolicy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FailureReport:
    node: Node
    operations: List[RecoveryOperation]
    summary: ClusterSummary


@dataclass(frozen=True)
class DrainReport:
    node: Node
    evacuated: List[RecoveryOperation]
    remaining_pods: int


@dataclass(frozen=True)
class RepairReport:
    node: Node
    summary: ClusterSummary


@dataclass(frozen=True)
class NodeHealthReport:
    node: Node
    seconds_since_heartbeat: float
    health: str
    total_pods: int
    running_pods: int


@dataclass(frozen=True)
class RecoveryStatusReport:
    operations: List[RecoveryOperation]
    active: List[RecoveryOperation] = field(default_factory=list)
    estimated_remaining_seconds: int = 0


class ClusterService:
    """Cluster service wiring registry, scheduler and recovery together."""

    def __init__(
        self,
        registry: ClusterRegistry,
        policy: SchedulerPolicy,
        reconciler: RecoveryReconciler,
        recovery_log: RecoveryLog,
        provisioner: Optional[NodeProvisioner] = None,
        heartbeat_warning_seconds: float = 30.0,
        heartbeat_critical_seconds: float = 60.0,
    ):
        self._registry = registry
        self._policy = policy
        self._reconciler = reconciler
        self._log = recovery_log
        self._provisioner = provisioner or NullProvisioner()
        self.heartbeat_warning_seconds = heartbeat_warning_seconds
        self.heartbeat_critical_seconds = heartbeat_critical_seconds

    # -------------------------
    # NODES
    # -------------------------

    def register_node(
        self,
        total_cores: int,
        node_id: Optional[str] = None,
        provision: bool = True,
    ) -> Node:
        """
        Register a node and provision its sandbox.

        The node is held in PROVISIONING, out of scheduling, until the
        provisioner returns. If provisioning fails the sandbox and the
        registry entry are removed again before the error is raised.
        """
        if not provision:
            return self._registry.register_node(total_cores, node_id=node_id)

        node = self._registry.register_node(
            total_cores, node_id=node_id, status=NodeStatus.PROVISIONING
        )

        try:
            self._provisioner.provision(node)
        except Exception as e:
            logger.error(
                f"[cluster] provisioning node {node.node_id} failed, rolling back: {e}"
            )
            self._rollback_registration(node.node_id)
            if isinstance(e, ProvisioningError):
                raise
            raise ProvisioningError(f"Provisioning failed: {e}") from e

        with self._registry.exclusive():
            node = self._registry.get_node(node.node_id)
            if node.status == NodeStatus.PROVISIONING:
                node = self._registry.set_node_status(
                    node.node_id, NodeStatus.HEALTHY, refresh_heartbeat=True
                )

        return node

    def _rollback_registration(self, node_id: str) -> None:
        try:
            self._provisioner.deprovision(node_id)
        except Exception as e:
            logger.error(f"[cluster] deprovisioning node {node_id} failed: {e}")

        try:
            self._registry.remove_node(node_id)
        except ClusterError as e:
            logger.error(f"[cluster] could not remove node {node_id}: {e}")

    def remove_node(self, node_id: str) -> Node:
        node = self._registry.remove_node(node_id)
        self._provisioner.deprovision(node_id)
        return node

    def list_nodes(self) -> List[Node]:
        return self._registry.list_nodes()

    def get_node(self, node_id: str) -> Tuple[Node, List[Pod]]:
        """Node detail and its assigned pods, read together."""
        with self._registry.exclusive():
            return (
                self._registry.get_node(node_id),
                self._registry.get_pods_on_node(node_id),
            )

    def heartbeat(
        self,
        node_id: str,
        pod_statuses: Optional[Mapping[str, Union[PodStatus, str]]] = None,
    ) -> Node:
        return self._registry.record_heartbeat(node_id, pod_statuses)

    def node_health(self, node_id: str) -> NodeHealthReport:
        """
        Liveness view of one node.

        ``health`` grades the heartbeat age: "healthy", then "warning" past
        ``heartbeat_warning_seconds``, then "critical" past
        ``heartbeat_critical_seconds``.
        """
        with self._registry.exclusive():
            node = self._registry.get_node(node_id)
            pods = self._registry.get_pods_on_node(node_id)
            now = self._registry.now()

        age = max(0.0, (now - node.last_heartbeat).total_seconds())
        if age > self.heartbeat_critical_seconds:
            health = "critical"
        elif age > self.heartbeat_warning_seconds:
            health = "warning"
        else:
            health = "healthy"

        return NodeHealthReport(
            node=node,
            seconds_since_heartbeat=age,
            health=health,
            total_pods=len(pods),
            running_pods=sum(1 for p in pods if p.status == PodStatus.RUNNING),
        )

    # -------------------------
    # PODS
    # -------------------------

    def schedule_pod(self, cpu_required: int) -> Pod:
        """
        Place a new pod with the configured policy.

        Raises:
            ResourceExhausted: No node can fit the request
        """
        with self._registry.exclusive():
            node_id = self._policy.select(cpu_required, self._registry.snapshot())
            if node_id is None:
                raise ResourceExhausted(
                    f"No node has {cpu_required} free core(s)"
                )

            pod_id = f"pod-{uuid4()}"
            return self._registry.add_pod(node_id, pod_id, cpu_required)

    def list_pods(self) -> List[Pod]:
        return self._registry.list_pods()

    def get_pod(self, pod_id: str) -> Pod:
        return self._registry.get_pod(pod_id)

    def delete_pod(self, pod_id: str) -> Pod:
        """Delete a pod. Returns the removed pod (its released cores)."""
        return self._registry.remove_pod(pod_id)

    # -------------------------
    # FAULT TOLERANCE
    # -------------------------

    def simulate_failure(self, node_id: str) -> FailureReport:
        """Mark a node FAILED and relocate its pods."""
        with self._registry.exclusive():
            self._registry.set_node_status(node_id, NodeStatus.FAILED)
            operations = self._reconciler.reconcile(node_id)
            node = self._registry.get_node(node_id)

        return FailureReport(
            node=node,
            operations=operations,
            summary=self.cluster_summary(),
        )

    def drain(self, node_id: str) -> DrainReport:
        """Take a node out of scheduling and evacuate it."""
        with self._registry.exclusive():
            self._registry.set_node_status(node_id, NodeStatus.DRAINING)
            operations = self._reconciler.reconcile(node_id)
            node = self._registry.get_node(node_id)

        return DrainReport(
            node=node,
            evacuated=[op for op in operations if op.status == RecoveryStatus.COMPLETED],
            remaining_pods=len(node.pods),
        )

    shutdown_node = drain

    def repair(self, node_id: str) -> RepairReport:
        """Return a node to the scheduling pool. Pods are not pulled back."""
        node = self._registry.set_node_status(
            node_id, NodeStatus.HEALTHY, refresh_heartbeat=True
        )
        return RepairReport(node=node, summary=self.cluster_summary())

    def recover(self, node_id: str) -> List[RecoveryOperation]:
        """Retry relocation of pods stranded on a non-schedulable node."""
        return self._reconciler.reconcile(node_id)

    def recovery_status(
        self,
        node_id: Optional[str] = None,
        pod_id: Optional[str] = None,
    ) -> RecoveryStatusReport:
        """
        Recent recovery operations, optionally for one source node and/or pod.

        The time estimate always covers every pending operation.
        """
        if node_id is not None:
            operations = self._log.for_node(node_id)
            if pod_id is not None:
                operations = [op for op in operations if op.pod_id == pod_id]
        elif pod_id is not None:
            operations = self._log.for_pod(pod_id)
        else:
            operations = self._log.recent()

        return RecoveryStatusReport(
            operations=operations,
            active=[op for op in operations if op.status == RecoveryStatus.PENDING],
            estimated_remaining_seconds=self._log.estimated_remaining_seconds(),
        )

    # -------------------------
    # SUMMARY
    # -------------------------

    def cluster_summary(self) -> ClusterSummary:
        with self._registry.exclusive():
            nodes = self._registry.list_nodes()
            pods = self._registry.list_pods()

        nodes_by_status: Dict[str, int] = {s.value: 0 for s in NodeStatus}
        nodes_by_status.update(Counter(n.status.value for n in nodes))
        pods_by_status: Dict[str, int] = {s.value: 0 for s in PodStatus}
        pods_by_status.update(Counter(p.status.value for p in pods))

        total = len(nodes)
        healthy = nodes_by_status[NodeStatus.HEALTHY.value]
        if healthy == total:
            status = "healthy"
        elif healthy >= total / 2:
            status = "degraded"
        else:
            status = "critical"

        total_cores = sum(n.total_cores for n in nodes)
        available_cores = sum(n.available_cores for n in nodes)

        return ClusterSummary(
            status=status,
            total_nodes=total,
            nodes_by_status=nodes_by_status,
            total_cores=total_cores,
            allocated_cores=total_cores - available_cores,
            available_cores=available_cores,
            pods_by_status=pods_by_status,
        )
