#cluster_engine\container.py

"""Dependency injection container - wires all services together."""

from dataclasses import dataclass
from typing import Optional

from cluster_engine.core.config import ClusterSettings
from cluster_engine.core.service import ClusterService
from cluster_engine.health_monitor.monitor import HealthMonitor
from cluster_engine.provisioning.provisioner import NodeProvisioner, build_provisioner
from cluster_engine.recovery.log import RecoveryLog
from cluster_engine.recovery.reconciler import RecoveryReconciler
from cluster_engine.registry.registry import ClusterRegistry
from cluster_engine.scheduler.policy import SchedulerPolicy, get_policy


@dataclass
class Container:
    """One control plane: every component shares this registry."""
    settings: ClusterSettings
    registry: ClusterRegistry
    policy: SchedulerPolicy
    recovery_log: RecoveryLog
    reconciler: RecoveryReconciler
    health_monitor: HealthMonitor
    provisioner: NodeProvisioner
    cluster_service: ClusterService

    def close(self) -> None:
        self.health_monitor.stop()
        self.registry.close()


def build_container(
    settings: Optional[ClusterSettings] = None,
    provisioner: Optional[NodeProvisioner] = None,
    registry: Optional[ClusterRegistry] = None,
) -> Container:
    settings = settings or ClusterSettings()

    # ============================================
    # STATE
    # ============================================

    registry = registry or ClusterRegistry(
        pod_startup_delay=settings.pod_startup_delay_seconds,
    )

    recovery_log = RecoveryLog(
        retention_seconds=settings.recovery_retention_seconds,
        max_entries=settings.recovery_log_max_entries,
        seconds_per_operation=settings.recovery_seconds_per_operation,
        clock=registry.now,
    )

    # ============================================
    # SERVICES
    # ============================================

    policy = get_policy(settings.scheduler_policy)

    reconciler = RecoveryReconciler(
        registry=registry,
        policy=policy,
        recovery_log=recovery_log,
    )

    health_monitor = HealthMonitor(
        registry=registry,
        reconciler=reconciler,
        check_interval=settings.health_check_interval_seconds,
        staleness_threshold=settings.staleness_threshold_seconds,
    )

    provisioner = provisioner or build_provisioner(
        settings.provisioner,
        image=settings.node_image,
        network=settings.node_network,
        api_server_url=settings.api_server_url,
    )

    cluster_service = ClusterService(
        registry=registry,
        policy=policy,
        reconciler=reconciler,
        recovery_log=recovery_log,
        provisioner=provisioner,
        heartbeat_warning_seconds=settings.heartbeat_warning_seconds,
        heartbeat_critical_seconds=settings.heartbeat_critical_seconds,
    )

    return Container(
        settings=settings,
        registry=registry,
        policy=policy,
        recovery_log=recovery_log,
        reconciler=reconciler,
        health_monitor=health_monitor,
        provisioner=provisioner,
        cluster_service=cluster_service,
    )
