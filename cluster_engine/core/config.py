#cluster_engine\core\config.py

from pydantic_settings import BaseSettings, SettingsConfigDict


class ClusterSettings(BaseSettings):
    """Control plane configuration from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="CLUSTER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Health monitor
    health_check_interval_seconds: float = 30.0
    staleness_threshold_seconds: float = 90.0

    # Per-node health grading by heartbeat age
    heartbeat_warning_seconds: float = 30.0
    heartbeat_critical_seconds: float = 60.0

    # Pods
    pod_startup_delay_seconds: float = 5.0
    scheduler_policy: str = "first_fit"

    # Recovery log
    recovery_retention_seconds: float = 300.0
    recovery_log_max_entries: int = 1000
    recovery_seconds_per_operation: int = 5

    # Node provisioning ("none" or "docker")
    provisioner: str = "none"
    node_image: str = "node-agent"
    node_network: str = "cluster-network"
    api_server_url: str = "http://api-server:5000"

    # Advertised to agents in heartbeat acks
    heartbeat_interval_seconds: float = 10.0

    # HTTP
    host: str = "0.0.0.0"
    port: int = 5000
