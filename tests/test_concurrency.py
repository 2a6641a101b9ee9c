#tests\test_concurrency.py

"""Test capacity accounting under concurrent operations."""

import random
import threading

from cluster_engine.core.errors import ClusterError
from cluster_engine.core.models import NodeStatus

from conftest import assert_capacity_invariant


def run_threads(workers):
    threads = [threading.Thread(target=w) for w in workers]
    for t in threads:
        t.start()
    for t in threads:
        t.join(10)
    assert not any(t.is_alive() for t in threads)


class TestConcurrentOperations:
    """Capacity must balance whatever the interleaving."""

    def test_parallel_scheduling_never_overbooks(self, service, registry):
        service.register_node(8, node_id="A")
        service.register_node(8, node_id="B")
        placed = []
        exhausted = []

        def schedule():
            for _ in range(10):
                try:
                    placed.append(service.schedule_pod(1))
                except ClusterError:
                    exhausted.append(1)

        run_threads([schedule for _ in range(4)])

        assert len(placed) == 16
        assert len(exhausted) == 24
        assert len({p.pod_id for p in placed}) == 16
        assert_capacity_invariant(registry)

    def test_mixed_workload(self, service, registry, monitor, clock):
        for name in ("A", "B", "C", "D"):
            service.register_node(6, node_id=name)
        errors = []

        def scheduler():
            rng = random.Random(1)
            for _ in range(50):
                try:
                    service.schedule_pod(rng.randint(1, 3))
                except ClusterError:
                    pass

        def deleter():
            for _ in range(50):
                pods = service.list_pods()
                if pods:
                    try:
                        service.delete_pod(pods[0].pod_id)
                    except ClusterError:
                        pass

        def mover():
            rng = random.Random(2)
            for _ in range(50):
                pods = service.list_pods()
                if not pods:
                    continue
                pod = rng.choice(pods)
                try:
                    registry.move_pod(pod.pod_id, pod.node_id, rng.choice("ABCD"))
                except ClusterError:
                    pass

        def chaos():
            rng = random.Random(3)
            for _ in range(20):
                node_id = rng.choice("ABCD")
                try:
                    service.simulate_failure(node_id)
                    service.heartbeat(node_id, {})
                    monitor.sweep()
                except Exception as e:
                    errors.append(e)

        run_threads([scheduler, scheduler, deleter, mover, chaos])

        assert errors == []
        assert_capacity_invariant(registry)
        for node in registry.list_nodes():
            assert node.status in (NodeStatus.HEALTHY, NodeStatus.FAILED)
