# cluster_engine/scheduler/policy.py
"""Placement policies. Pure functions of a request and a node snapshot."""

from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

from cluster_engine.core.models import Node


class SchedulerPolicy(ABC):
    """Placement decision contract."""

    name = "abstract"

    @abstractmethod
    def select(self, cpu_required: int, nodes: Iterable[Node]) -> Optional[str]:
        """
        Pick a node for a pod.

        Args:
            cpu_required: Cores the pod needs
            nodes: Node snapshot in registration order

        Returns:
            Node id, or None if no node qualifies
        """
        raise NotImplementedError

    @staticmethod
    def eligible(nodes: Iterable[Node]) -> List[Node]:
        """Healthy nodes with at least one free core."""
        return [
            node for node in nodes
            if node.is_schedulable() and node.available_cores > 0
        ]


class FirstFitPolicy(SchedulerPolicy):
    """First eligible node, in registration order, with enough free cores."""

    name = "first_fit"

    def select(self, cpu_required: int, nodes: Iterable[Node]) -> Optional[str]:
        for node in self.eligible(nodes):
            if node.can_fit(cpu_required):
                return node.node_id
        return None


class LeastLoadedPolicy(SchedulerPolicy):
    """Node with the most free cores. Ties go to the earlier registration."""

    name = "least_loaded"

    def select(self, cpu_required: int, nodes: Iterable[Node]) -> Optional[str]:
        suitable = [n for n in self.eligible(nodes) if n.can_fit(cpu_required)]
        if not suitable:
            return None

        # max() keeps the first of equal keys
        selected = max(suitable, key=lambda n: n.available_cores)
        return selected.node_id


POLICIES = {
    FirstFitPolicy.name: FirstFitPolicy,
    LeastLoadedPolicy.name: LeastLoadedPolicy,
}


def get_policy(name: str) -> SchedulerPolicy:
    try:
        return POLICIES[name]()
    except KeyError:
        raise ValueError(
            f"Unknown scheduler policy {name!r} (choose from {sorted(POLICIES)})"
        ) from None
