"""
Kubernetes client helpers.

Config is loaded lazily, exactly once: in-cluster when IN_CLUSTER is set or a
service account is mounted, kubeconfig otherwise.
"""
import logging
from typing import Optional

from kubernetes import client, config
from kubernetes.client import ApiException

from store_operator.config import settings

logger = logging.getLogger("store-operator.k8s")

_k8s_loaded = False


def _ensure_k8s():
    """Load kubeconfig exactly once."""
    global _k8s_loaded
    if _k8s_loaded:
        return
    if settings.IN_CLUSTER:
        config.load_incluster_config()
    else:
        try:
            config.load_incluster_config()
        except config.ConfigException:
            config.load_kube_config(config_file=settings.KUBECONFIG or None)
    _k8s_loaded = True


def core_api() -> client.CoreV1Api:
    _ensure_k8s()
    return client.CoreV1Api()


def networking_api() -> client.NetworkingV1Api:
    _ensure_k8s()
    return client.NetworkingV1Api()


def custom_api() -> client.CustomObjectsApi:
    _ensure_k8s()
    return client.CustomObjectsApi()


def is_not_found(e: Exception) -> bool:
    return isinstance(e, ApiException) and e.status == 404


def is_conflict(e: Exception) -> bool:
    return isinstance(e, ApiException) and e.status == 409


def read_or_none(read, *args, **kwargs) -> Optional[object]:
    """Call a ``read_*`` API method, mapping 404 to None."""
    try:
        return read(*args, **kwargs)
    except ApiException as e:
        if is_not_found(e):
            return None
        raise
