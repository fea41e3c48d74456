"""
Readiness prober — is at least one workload pod Running and Ready?

Never raises: an empty pod list or a failed list call both mean
"not ready yet", and the reconciler simply polls again later.
"""
import logging
from typing import Optional

from kubernetes import client

from store_operator import k8s
from store_operator.constants import WORKLOAD_LABEL_KEY, WORKLOAD_LABEL_VALUE

logger = logging.getLogger("store-operator.readiness")


def pod_is_ready(pod) -> bool:
    status = pod.status
    if status is None or status.phase != "Running":
        return False
    return any(
        c.type == "Ready" and c.status == "True" for c in (status.conditions or [])
    )


class ReadinessProber:
    def __init__(
        self,
        core_v1: Optional[client.CoreV1Api] = None,
        label_selector: str = f"{WORKLOAD_LABEL_KEY}={WORKLOAD_LABEL_VALUE}",
    ):
        self.core_v1 = core_v1 or k8s.core_api()
        self.label_selector = label_selector

    def is_ready(self, namespace: str) -> bool:
        try:
            pods = self.core_v1.list_namespaced_pod(
                namespace=namespace, label_selector=self.label_selector
            )
        except Exception as e:
            logger.warning(f"Pod list failed in {namespace} (treating as not ready): {e}")
            return False
        ready = any(pod_is_ready(pod) for pod in pods.items)
        logger.debug(f"{namespace}: {len(pods.items)} pods, ready={ready}")
        return ready
