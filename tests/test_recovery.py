#tests\test_recovery.py

"""Test recovery log and reconciler."""

import pytest
from datetime import timedelta

from cluster_engine.core.errors import NodeNotFound, NodeNotSchedulable
from cluster_engine.core.models import (
    NodeStatus,
    PodStatus,
    RecoveryOperation,
    RecoveryStatus,
)
from cluster_engine.recovery.log import RecoveryLog

from conftest import assert_capacity_invariant


def make_op(clock, pod_id="pod-1", status=RecoveryStatus.COMPLETED, from_node="node-a"):
    return RecoveryOperation(
        pod_id=pod_id,
        from_node=from_node,
        to_node="node-b" if status == RecoveryStatus.COMPLETED else None,
        status=status,
        timestamp=clock(),
    )


class TestRecoveryLog:
    """Test bounded, time-pruned log."""

    def test_append_and_read(self, recovery_log, clock):
        op = make_op(clock)
        recovery_log.append(op)

        assert recovery_log.recent() == [op]
        assert recovery_log.for_pod("pod-1") == [op]
        assert recovery_log.for_node("node-a") == [op]
        assert recovery_log.for_node("node-b") == []

    def test_operations_are_immutable(self, clock):
        op = make_op(clock)

        with pytest.raises(AttributeError):
            op.status = RecoveryStatus.FAILED

    def test_prunes_past_retention(self, recovery_log, clock):
        recovery_log.append(make_op(clock, pod_id="old"))
        clock.advance(200)
        recovery_log.append(make_op(clock, pod_id="new"))
        clock.advance(150)

        assert [op.pod_id for op in recovery_log.recent()] == ["new"]
        assert len(recovery_log) == 1

    def test_bounded(self, clock):
        log = RecoveryLog(retention_seconds=300, max_entries=3, clock=clock)
        for i in range(5):
            log.append(make_op(clock, pod_id=f"pod-{i}"))

        assert [op.pod_id for op in log.recent()] == ["pod-2", "pod-3", "pod-4"]

    def test_estimated_remaining(self, clock):
        log = RecoveryLog(seconds_per_operation=5, clock=clock)
        log.append(make_op(clock, pod_id="a", status=RecoveryStatus.PENDING))
        log.append(make_op(clock, pod_id="b", status=RecoveryStatus.PENDING))
        log.append(make_op(clock, pod_id="c", status=RecoveryStatus.COMPLETED))

        assert len(log.pending()) == 2
        assert log.estimated_remaining_seconds() == 10

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            RecoveryLog(max_entries=0)


class TestReconciler:
    """Test pod relocation off non-schedulable nodes."""

    def test_relocates_all_pods(self, registry, reconciler, recovery_log):
        """N hosts two 1-core pods, M is empty: both move to M."""
        registry.register_node(4, node_id="N")
        registry.register_node(4, node_id="M")
        registry.add_pod("N", "pod-1", 1)
        registry.add_pod("N", "pod-2", 1)
        registry.set_node_status("N", NodeStatus.FAILED)

        operations = reconciler.reconcile("N")

        assert [op.pod_id for op in operations] == ["pod-1", "pod-2"]
        for op in operations:
            assert op.status == RecoveryStatus.COMPLETED
            assert op.from_node == "N"
            assert op.to_node == "M"
            assert op.reason == "failed"
        assert {p.node_id for p in registry.list_pods()} == {"M"}
        assert all(p.status == PodStatus.RUNNING for p in registry.list_pods())
        assert registry.get_node("N").available_cores == 4
        assert registry.get_node("M").available_cores == 2
        assert recovery_log.recent() == operations
        assert_capacity_invariant(registry)

    def test_never_targets_source_node(self, registry, reconciler):
        registry.register_node(4, node_id="N")
        registry.add_pod("N", "pod-1", 1)
        registry.set_node_status("N", NodeStatus.DRAINING)

        [op] = reconciler.reconcile("N")

        assert op.status == RecoveryStatus.FAILED
        assert op.to_node is None

    def test_no_target_on_failed_node(self, registry, reconciler):
        """Pod needing 5 cores has nowhere to go; it stays and is marked failed."""
        registry.register_node(8, node_id="N")
        registry.register_node(4, node_id="M")
        registry.add_pod("N", "pod-big", 5)
        registry.set_node_status("N", NodeStatus.FAILED)

        [op] = reconciler.reconcile("N")

        assert op.status == RecoveryStatus.FAILED
        assert op.to_node is None
        pod = registry.get_pod("pod-big")
        assert pod.node_id == "N"
        assert pod.status == PodStatus.FAILED
        assert registry.get_node("N").available_cores == 3
        assert_capacity_invariant(registry)

    def test_no_target_on_unhealthy_node_keeps_pod_status(self, registry, reconciler):
        registry.register_node(8, node_id="N")
        registry.add_pod("N", "pod-big", 5)
        registry.mark_pod_running("pod-big")
        registry.set_node_status("N", NodeStatus.UNHEALTHY)

        [op] = reconciler.reconcile("N")

        assert op.status == RecoveryStatus.FAILED
        assert registry.get_pod("pod-big").status == PodStatus.RUNNING

    def test_partial_relocation_in_creation_order(self, registry, reconciler):
        registry.register_node(4, node_id="N")
        registry.register_node(2, node_id="M")
        registry.add_pod("N", "pod-1", 2)
        registry.add_pod("N", "pod-2", 1)
        registry.set_node_status("N", NodeStatus.FAILED)

        first, second = reconciler.reconcile("N")

        assert first.status == RecoveryStatus.COMPLETED
        assert second.status == RecoveryStatus.FAILED
        assert registry.get_pod("pod-2").node_id == "N"

    def test_retrigger_after_new_capacity(self, registry, reconciler):
        registry.register_node(8, node_id="N")
        registry.add_pod("N", "pod-big", 5)
        registry.set_node_status("N", NodeStatus.FAILED)
        [failed] = reconciler.reconcile("N")
        assert failed.status == RecoveryStatus.FAILED

        registry.register_node(6, node_id="M")
        [retry] = reconciler.reconcile("N")

        assert retry.status == RecoveryStatus.COMPLETED
        assert retry.to_node == "M"
        pod = registry.get_pod("pod-big")
        assert pod.node_id == "M"
        assert pod.status == PodStatus.RUNNING

    def test_empty_node(self, registry, reconciler, recovery_log):
        registry.register_node(4, node_id="N")
        registry.set_node_status("N", NodeStatus.FAILED)

        assert reconciler.reconcile("N") == []
        assert recovery_log.recent() == []

    def test_refuses_healthy_node(self, registry, reconciler):
        registry.register_node(4, node_id="N")
        registry.register_node(4, node_id="M")
        registry.add_pod("N", "pod-1", 1)

        with pytest.raises(NodeNotSchedulable):
            reconciler.reconcile("N")

        assert registry.get_pod("pod-1").node_id == "N"

    def test_unknown_node(self, reconciler):
        with pytest.raises(NodeNotFound):
            reconciler.reconcile("missing")

    def test_operation_timestamps_use_registry_clock(self, registry, reconciler, clock):
        registry.register_node(4, node_id="N")
        registry.register_node(4, node_id="M")
        registry.add_pod("N", "pod-1", 1)
        registry.set_node_status("N", NodeStatus.FAILED)
        clock.advance(42)

        [op] = reconciler.reconcile("N")

        assert op.timestamp == clock()
        assert op.timestamp - registry.get_pod("pod-1").created_at == timedelta(seconds=42)
