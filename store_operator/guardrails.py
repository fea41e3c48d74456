"""
Guardrail provisioner — ResourceQuota, LimitRange and NetworkPolicy per store
namespace.

Each object has a fixed name and is re-applied on every pass: read it, and
either overwrite its spec wholesale or create it. Nothing here deletes a
guardrail; namespace deletion removes them. API errors propagate and fail the
reconciliation pass.
"""
import logging
from typing import Optional

from kubernetes import client

from store_operator import k8s
from store_operator.config import Settings, settings as default_settings
from store_operator.constants import (
    LABEL_MANAGED_BY,
    LIMIT_RANGE_NAME,
    MANAGED_BY,
    NETWORK_POLICY_NAME,
    RESOURCE_QUOTA_NAME,
)
from store_operator.plans import PlanCatalog, PlanSpec, ResolvedPlan

logger = logging.getLogger("store-operator.guardrails")


def build_resource_quota(namespace: str, plan: PlanSpec) -> client.V1ResourceQuota:
    return client.V1ResourceQuota(
        metadata=client.V1ObjectMeta(
            name=RESOURCE_QUOTA_NAME,
            namespace=namespace,
            labels={LABEL_MANAGED_BY: MANAGED_BY},
        ),
        spec=client.V1ResourceQuotaSpec(hard=plan.quota_hard()),
    )


def build_limit_range(namespace: str, plan: PlanSpec) -> client.V1LimitRange:
    return client.V1LimitRange(
        metadata=client.V1ObjectMeta(
            name=LIMIT_RANGE_NAME,
            namespace=namespace,
            labels={LABEL_MANAGED_BY: MANAGED_BY},
        ),
        spec=client.V1LimitRangeSpec(
            limits=[
                client.V1LimitRangeItem(
                    type="Container",
                    default={"cpu": plan.default_cpu, "memory": plan.default_memory},
                    default_request={
                        "cpu": plan.default_request_cpu,
                        "memory": plan.default_request_memory,
                    },
                )
            ]
        ),
    )


def build_network_policy(namespace: str, ingress_namespace: str) -> client.V1NetworkPolicy:
    """Default-deny ingress, except from the ingress controller and the namespace itself."""
    return client.V1NetworkPolicy(
        metadata=client.V1ObjectMeta(
            name=NETWORK_POLICY_NAME,
            namespace=namespace,
            labels={LABEL_MANAGED_BY: MANAGED_BY},
        ),
        spec=client.V1NetworkPolicySpec(
            pod_selector=client.V1LabelSelector(),
            policy_types=["Ingress", "Egress"],
            ingress=[
                client.V1NetworkPolicyIngressRule(
                    _from=[
                        client.V1NetworkPolicyPeer(
                            namespace_selector=client.V1LabelSelector(
                                match_labels={"kubernetes.io/metadata.name": ingress_namespace}
                            )
                        ),
                        client.V1NetworkPolicyPeer(pod_selector=client.V1LabelSelector()),
                    ]
                )
            ],
            # Egress open (DNS, payment gateways, plugin updates)
            egress=[client.V1NetworkPolicyEgressRule()],
        ),
    )


class GuardrailProvisioner:
    def __init__(
        self,
        core_v1: Optional[client.CoreV1Api] = None,
        networking_v1: Optional[client.NetworkingV1Api] = None,
        catalog: Optional[PlanCatalog] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or default_settings
        self.core_v1 = core_v1 or k8s.core_api()
        self.networking_v1 = networking_v1 or k8s.networking_api()
        self.catalog = catalog or PlanCatalog(self.settings)

    def apply(self, namespace: str, plan: str) -> ResolvedPlan:
        """Create or overwrite all three guardrails for ``plan``."""
        resolved = self.catalog.resolve(plan)
        self.ensure_quota(namespace, resolved.spec)
        self.ensure_limit_range(namespace, resolved.spec)
        self.ensure_network_policy(namespace)
        logger.info(f"Guardrails applied in {namespace} (plan={resolved.name})")
        return resolved

    def ensure_quota(self, namespace: str, plan: PlanSpec):
        desired = build_resource_quota(namespace, plan)
        existing = k8s.read_or_none(
            self.core_v1.read_namespaced_resource_quota, RESOURCE_QUOTA_NAME, namespace
        )
        if existing is not None:
            existing.spec = desired.spec
            self.core_v1.replace_namespaced_resource_quota(RESOURCE_QUOTA_NAME, namespace, existing)
            logger.debug(f"ResourceQuota {namespace}/{RESOURCE_QUOTA_NAME} updated")
            return
        self.core_v1.create_namespaced_resource_quota(namespace, desired)
        logger.info(f"ResourceQuota {namespace}/{RESOURCE_QUOTA_NAME} created")

    def ensure_limit_range(self, namespace: str, plan: PlanSpec):
        desired = build_limit_range(namespace, plan)
        existing = k8s.read_or_none(
            self.core_v1.read_namespaced_limit_range, LIMIT_RANGE_NAME, namespace
        )
        if existing is not None:
            existing.spec = desired.spec
            self.core_v1.replace_namespaced_limit_range(LIMIT_RANGE_NAME, namespace, existing)
            logger.debug(f"LimitRange {namespace}/{LIMIT_RANGE_NAME} updated")
            return
        self.core_v1.create_namespaced_limit_range(namespace, desired)
        logger.info(f"LimitRange {namespace}/{LIMIT_RANGE_NAME} created")

    def ensure_network_policy(self, namespace: str):
        desired = build_network_policy(namespace, self.settings.INGRESS_NAMESPACE)
        existing = k8s.read_or_none(
            self.networking_v1.read_namespaced_network_policy, NETWORK_POLICY_NAME, namespace
        )
        if existing is not None:
            existing.spec = desired.spec
            self.networking_v1.replace_namespaced_network_policy(
                NETWORK_POLICY_NAME, namespace, existing
            )
            logger.debug(f"NetworkPolicy {namespace}/{NETWORK_POLICY_NAME} updated")
            return
        self.networking_v1.create_namespaced_network_policy(namespace, desired)
        logger.info(f"NetworkPolicy {namespace}/{NETWORK_POLICY_NAME} created")
