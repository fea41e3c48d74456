"""
Configuration module — all settings from env vars with sensible defaults.
Follows 12-factor app methodology.

Intervals are in seconds. Every component takes a ``Settings`` instance so
tests can build one explicitly instead of patching the environment.
"""
import json
import os
from dataclasses import dataclass

from store_operator.constants import ENGINE_WOO
from store_operator.errors import ConfigurationError


def _env_bool(key: str, default: str) -> bool:
    return os.environ.get(key, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    # Kubernetes
    KUBECONFIG: str = os.environ.get("KUBECONFIG", "")
    IN_CLUSTER: bool = _env_bool("IN_CLUSTER", "false")

    # Workload templates and routing
    WORDPRESS_CHART_PATH: str = os.environ.get("WORDPRESS_CHART_PATH", "/charts/engine-woo")
    BASE_DOMAIN: str = os.environ.get("BASE_DOMAIN", "127.0.0.1.nip.io")
    INGRESS_CLASS: str = os.environ.get("INGRESS_CLASS", "nginx")
    INGRESS_NAMESPACE: str = os.environ.get("INGRESS_NAMESPACE", "ingress-nginx")

    # Helm
    HELM_BINARY: str = os.environ.get("HELM_BINARY", "helm")
    HELM_TIMEOUT: int = int(os.environ.get("HELM_TIMEOUT", "300"))

    # Reconciliation timing
    FINALIZER_REQUEUE_INTERVAL: float = float(os.environ.get("FINALIZER_REQUEUE_INTERVAL", "1"))
    NAMESPACE_REQUEUE_INTERVAL: float = float(os.environ.get("NAMESPACE_REQUEUE_INTERVAL", "1"))
    HELM_RETRY_INTERVAL: float = float(os.environ.get("HELM_RETRY_INTERVAL", "20"))
    POD_CHECK_INTERVAL: float = float(os.environ.get("POD_CHECK_INTERVAL", "5"))
    DELETION_REQUEUE_INTERVAL: float = float(os.environ.get("DELETION_REQUEUE_INTERVAL", "5"))
    CONFLICT_RETRY_INTERVAL: float = float(os.environ.get("CONFLICT_RETRY_INTERVAL", "1"))
    ERROR_RETRY_INTERVAL: float = float(os.environ.get("ERROR_RETRY_INTERVAL", "10"))

    # Helm values defaults
    PERSISTENCE_ENABLED: bool = _env_bool("PERSISTENCE_ENABLED", "false")
    LIVENESS_INITIAL_DELAY: int = int(os.environ.get("LIVENESS_INITIAL_DELAY", "120"))
    LIVENESS_PERIOD: int = int(os.environ.get("LIVENESS_PERIOD", "20"))
    READINESS_INITIAL_DELAY: int = int(os.environ.get("READINESS_INITIAL_DELAY", "60"))
    READINESS_PERIOD: int = int(os.environ.get("READINESS_PERIOD", "10"))

    # Plans: JSON object, e.g. {"small": {"limits_memory": "2Gi"}}
    PLAN_OVERRIDES: str = os.environ.get("PLAN_OVERRIDES", "")

    # Process
    MAX_PARALLEL_RECONCILES: int = int(os.environ.get("MAX_PARALLEL_RECONCILES", "3"))
    METRICS_PORT: int = int(os.environ.get("METRICS_PORT", "8080"))
    REDIS_URL: str = os.environ.get("REDIS_URL", "")
    LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO")

    def chart_path_for(self, engine: str) -> str:
        """Template path for an engine. Raises ConfigurationError if unmapped."""
        paths = {ENGINE_WOO: self.WORDPRESS_CHART_PATH}
        if engine not in paths:
            raise ConfigurationError(f"No workload template configured for engine '{engine}'")
        path = paths[engine]
        if not path:
            raise ConfigurationError(f"Workload template path for engine '{engine}' is empty")
        return path

    def require_base_domain(self) -> str:
        if not self.BASE_DOMAIN:
            raise ConfigurationError("BASE_DOMAIN must be set")
        return self.BASE_DOMAIN

    def plan_overrides(self) -> dict[str, dict[str, str]]:
        """Decode PLAN_OVERRIDES. Raises ConfigurationError on malformed JSON."""
        if not self.PLAN_OVERRIDES:
            return {}
        try:
            data = json.loads(self.PLAN_OVERRIDES)
        except ValueError as e:
            raise ConfigurationError(f"PLAN_OVERRIDES is not valid JSON: {e}") from e
        if not isinstance(data, dict) or not all(isinstance(v, dict) for v in data.values()):
            raise ConfigurationError("PLAN_OVERRIDES must map plan names to objects")
        return data


settings = Settings()
