# cluster_engine/recovery/reconciler.py
"""Relocates pods off nodes that can no longer take placements."""

import logging
from typing import List

from cluster_engine.core.errors import ClusterError, NodeNotSchedulable
from cluster_engine.core.models import (
    Node,
    NodeStatus,
    Pod,
    RecoveryOperation,
    RecoveryStatus,
)
from cluster_engine.recovery.log import RecoveryLog
from cluster_engine.registry.registry import ClusterRegistry
from cluster_engine.scheduler.policy import SchedulerPolicy

logger = logging.getLogger(__name__)


class RecoveryReconciler:
    """
    Moves every pod off a non-schedulable node, one pod at a time.

    Pods that cannot be placed stay on the node with their cores still
    reserved. They are only marked FAILED when the node itself is FAILED;
    an UNHEALTHY node may still come back with a heartbeat. Calling
    ``reconcile`` again later retries whatever is left.
    """

    def __init__(
        self,
        registry: ClusterRegistry,
        policy: SchedulerPolicy,
        recovery_log: RecoveryLog,
    ):
        self._registry = registry
        self._policy = policy
        self._log = recovery_log

    def reconcile(self, node_id: str) -> List[RecoveryOperation]:
        """
        Relocate all pods currently on ``node_id``.

        Returns:
            One RecoveryOperation per pod, in pod creation order

        Raises:
            NodeNotFound: Unknown node
            NodeNotSchedulable: Node is healthy (nothing to recover from)
        """
        with self._registry.exclusive():
            node = self._registry.get_node(node_id)
            if node.is_schedulable():
                raise NodeNotSchedulable(
                    f"Node {node_id} is healthy, refusing to evacuate it"
                )

            pods = self._registry.get_pods_on_node(node_id)
            if not pods:
                logger.debug(f"[recovery] node {node_id} has no pods to relocate")
                return []

            logger.info(
                f"[recovery] relocating {len(pods)} pod(s) from "
                f"{node.status.value} node {node_id}"
            )

            operations = [self._relocate(pod, node) for pod in pods]

        completed = sum(1 for op in operations if op.status == RecoveryStatus.COMPLETED)
        logger.info(
            f"[recovery] node {node_id}: {completed}/{len(operations)} pod(s) relocated"
        )
        return operations

    def _relocate(self, pod: Pod, node: Node) -> RecoveryOperation:
        candidates = [
            n for n in self._registry.snapshot()
            if n.node_id != node.node_id
        ]
        target = self._policy.select(pod.cpu_required, candidates)

        if target is not None:
            try:
                self._registry.move_pod(pod.pod_id, node.node_id, target)
            except ClusterError as e:
                logger.error(f"[recovery] move of pod {pod.pod_id} to {target} failed: {e}")
                target = None

        if target is None:
            logger.warning(
                f"[recovery] no node can take pod {pod.pod_id} "
                f"({pod.cpu_required} cores), leaving it on {node.node_id}"
            )
            if node.status == NodeStatus.FAILED:
                self._registry.mark_pod_failed(pod.pod_id)
            status = RecoveryStatus.FAILED
        else:
            status = RecoveryStatus.COMPLETED

        operation = RecoveryOperation(
            pod_id=pod.pod_id,
            from_node=node.node_id,
            to_node=target,
            status=status,
            timestamp=self._registry.now(),
            reason=node.status.value,
        )
        self._log.append(operation)
        return operation
