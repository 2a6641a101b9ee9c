#tests\conftest.py

"""Pytest configuration and fixtures."""

import pytest
from datetime import datetime, timedelta, timezone

from cluster_engine.container import build_container
from cluster_engine.core.config import ClusterSettings
from cluster_engine.core.service import ClusterService
from cluster_engine.health_monitor.monitor import HealthMonitor
from cluster_engine.provisioning.provisioner import NullProvisioner
from cluster_engine.recovery.log import RecoveryLog
from cluster_engine.recovery.reconciler import RecoveryReconciler
from cluster_engine.registry.registry import ClusterRegistry
from cluster_engine.scheduler.policy import FirstFitPolicy


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, tzinfo=timezone.utc)):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> datetime:
        self.current += timedelta(seconds=seconds)
        return self.current


def assert_capacity_invariant(registry: ClusterRegistry) -> None:
    """available + sum(pod cpu) == total, for every node."""
    with registry.exclusive():
        pods = registry.list_pods()
        for node in registry.list_nodes():
            on_node = [p for p in pods if p.node_id == node.node_id]
            assert node.available_cores + sum(p.cpu_required for p in on_node) == node.total_cores
            assert 0 <= node.available_cores <= node.total_cores
            assert node.pods == {p.pod_id for p in on_node}


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry(clock):
    """Registry whose pods stay PENDING until a test starts them."""
    registry = ClusterRegistry(pod_startup_delay=3600, clock=clock)
    yield registry
    registry.close()


@pytest.fixture
def policy():
    return FirstFitPolicy()


@pytest.fixture
def recovery_log(clock):
    return RecoveryLog(retention_seconds=300, max_entries=100, clock=clock)


@pytest.fixture
def reconciler(registry, policy, recovery_log):
    return RecoveryReconciler(registry=registry, policy=policy, recovery_log=recovery_log)


@pytest.fixture
def monitor(registry, reconciler):
    return HealthMonitor(
        registry=registry,
        reconciler=reconciler,
        check_interval=30,
        staleness_threshold=90,
    )


@pytest.fixture
def service(registry, policy, reconciler, recovery_log):
    return ClusterService(
        registry=registry,
        policy=policy,
        reconciler=reconciler,
        recovery_log=recovery_log,
        provisioner=NullProvisioner(),
    )


@pytest.fixture
def container(registry):
    """Fully wired container sharing the fake-clock registry."""
    settings = ClusterSettings(
        _env_file=None,
        pod_startup_delay_seconds=3600,
        provisioner="none",
    )
    container = build_container(settings, registry=registry)
    yield container
    container.close()
