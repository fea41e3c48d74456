"""
Plan catalog — maps a plan name to the resource envelope applied to a store's
namespace (ResourceQuota hard limits and LimitRange container defaults).

Pure lookup. Unknown plan names resolve to the smallest plan; callers get a
``defaulted`` flag so the substitution can be surfaced to operators.
"""
import dataclasses
import logging
from dataclasses import dataclass
from typing import NamedTuple, Optional

from store_operator.config import Settings, settings as default_settings
from store_operator.errors import ConfigurationError

logger = logging.getLogger("store-operator.plans")

DEFAULT_PLAN = "small"


@dataclass(frozen=True)
class PlanSpec:
    # ResourceQuota
    requests_cpu: str
    requests_memory: str
    limits_cpu: str
    limits_memory: str
    max_pods: str

    # LimitRange defaults
    default_cpu: str
    default_memory: str
    default_request_cpu: str
    default_request_memory: str

    def quota_hard(self) -> dict[str, str]:
        return {
            "requests.cpu": self.requests_cpu,
            "requests.memory": self.requests_memory,
            "limits.cpu": self.limits_cpu,
            "limits.memory": self.limits_memory,
            "pods": self.max_pods,
        }


SUPPORTED_PLANS: dict[str, PlanSpec] = {
    "small": PlanSpec(
        requests_cpu="500m",
        requests_memory="512Mi",
        limits_cpu="1",
        limits_memory="1Gi",
        max_pods="10",
        default_cpu="200m",
        default_memory="256Mi",
        default_request_cpu="50m",
        default_request_memory="128Mi",
    ),
    "medium": PlanSpec(
        requests_cpu="1",
        requests_memory="1Gi",
        limits_cpu="2",
        limits_memory="2Gi",
        max_pods="15",
        default_cpu="500m",
        default_memory="512Mi",
        default_request_cpu="100m",
        default_request_memory="256Mi",
    ),
    "large": PlanSpec(
        requests_cpu="2",
        requests_memory="2Gi",
        limits_cpu="4",
        limits_memory="4Gi",
        max_pods="20",
        default_cpu="1",
        default_memory="1Gi",
        default_request_cpu="200m",
        default_request_memory="512Mi",
    ),
}


class ResolvedPlan(NamedTuple):
    name: str
    spec: PlanSpec
    defaulted: bool


class PlanCatalog:
    """Plan lookup with per-plan overrides from configuration."""

    def __init__(self, settings: Optional[Settings] = None):
        settings = settings or default_settings
        self._plans = dict(SUPPORTED_PLANS)
        for name, fields in settings.plan_overrides().items():
            if name not in self._plans:
                raise ConfigurationError(f"PLAN_OVERRIDES names unknown plan '{name}'")
            try:
                self._plans[name] = dataclasses.replace(self._plans[name], **fields)
            except TypeError as e:
                raise ConfigurationError(f"Invalid override for plan '{name}': {e}") from e

    def names(self) -> list[str]:
        return sorted(self._plans)

    def is_valid(self, plan: str) -> bool:
        return plan in self._plans

    def resolve(self, plan: str) -> ResolvedPlan:
        if plan in self._plans:
            return ResolvedPlan(plan, self._plans[plan], False)
        logger.warning(
            f"Unknown plan '{plan}' (known: {', '.join(self.names())}) — "
            f"falling back to '{DEFAULT_PLAN}'"
        )
        return ResolvedPlan(DEFAULT_PLAN, self._plans[DEFAULT_PLAN], True)
