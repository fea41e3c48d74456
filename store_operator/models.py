"""
Pydantic models for the Store resource and the workload's Helm values.

The reconciler works on a typed view of the raw CRD dict; the dict itself is
kept alongside so writes are full-object overwrites carrying the
resourceVersion the view was read at.
"""
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def now() -> str:
    return datetime.now(timezone.utc).strftime(_TIMESTAMP_FORMAT)


def parse_timestamp(value: str) -> datetime:
    return datetime.strptime(value, _TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)


class StoreSpec(BaseModel):
    engine: str = ""
    plan: str = ""


class StoreStatus(BaseModel):
    """Persisted progress record, read back at the start of every pass."""
    model_config = ConfigDict(populate_by_name=True)

    phase: str = ""
    observed_generation: int = Field(default=0, alias="observedGeneration")
    url: str = ""
    message: str = ""
    reason: str = ""

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True, exclude_defaults=True)


class Store(BaseModel):
    name: str
    namespace: str
    uid: str = ""
    generation: int = 0
    creation_timestamp: Optional[str] = None
    deletion_timestamp: Optional[str] = None
    finalizers: list[str] = []
    spec: StoreSpec = StoreSpec()
    status: StoreStatus = StoreStatus()

    @classmethod
    def from_object(cls, obj: dict) -> "Store":
        meta = obj.get("metadata", {})
        return cls(
            name=meta["name"],
            namespace=meta.get("namespace", "default"),
            uid=meta.get("uid", ""),
            generation=meta.get("generation", 0),
            creation_timestamp=meta.get("creationTimestamp"),
            deletion_timestamp=meta.get("deletionTimestamp"),
            finalizers=list(meta.get("finalizers") or []),
            spec=StoreSpec(**(obj.get("spec") or {})),
            status=StoreStatus(**(obj.get("status") or {})),
        )

    @property
    def is_deleting(self) -> bool:
        return bool(self.deletion_timestamp)

    def age_seconds(self) -> Optional[float]:
        if not self.creation_timestamp:
            return None
        created = parse_timestamp(self.creation_timestamp)
        return (datetime.now(timezone.utc) - created).total_seconds()


# ---------------------------------------------------------------------------
# Helm values for the WordPress/WooCommerce chart
# ---------------------------------------------------------------------------

class _Values(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ServiceValues(_Values):
    type: str = "ClusterIP"


class VolumePermissionsValues(_Values):
    enabled: bool = False


class IngressValues(_Values):
    enabled: bool = True
    hostname: str
    ingress_class_name: str = Field(default="nginx", alias="ingressClassName")


class PersistenceValues(_Values):
    enabled: bool = False


class MariaDBAuthValues(_Values):
    root_password: str = Field(alias="rootPassword")
    password: str


class MariaDBPrimaryValues(_Values):
    persistence: PersistenceValues = PersistenceValues()


class MariaDBValues(_Values):
    auth: MariaDBAuthValues
    primary: MariaDBPrimaryValues = MariaDBPrimaryValues()


class ProbeValues(_Values):
    initial_delay_seconds: int = Field(alias="initialDelaySeconds")
    period_seconds: int = Field(alias="periodSeconds")


class WordPressValues(_Values):
    """Values for the ``woo`` engine chart."""

    wordpress_blog_name: str = Field(alias="wordpressBlogName")
    wordpress_username: str = Field(default="admin", alias="wordpressUsername")
    wordpress_password: str = Field(alias="wordpressPassword")
    service: ServiceValues = ServiceValues()
    volume_permissions: VolumePermissionsValues = Field(
        default=VolumePermissionsValues(), alias="volumePermissions"
    )
    ingress: IngressValues
    mariadb: MariaDBValues
    persistence: PersistenceValues = PersistenceValues()
    liveness_probe: ProbeValues = Field(alias="livenessProbe")
    readiness_probe: ProbeValues = Field(alias="readinessProbe")

    def to_tree(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)
