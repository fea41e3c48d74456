"""
Shared constants for the Store operator.

Anything that crosses a process boundary (CRD coordinates, finalizer token,
object names, secret keys, label keys) lives here so the operator and the
tests agree on it.
"""

# ---------------------------------------------------------------------------
# CRD coordinates
# ---------------------------------------------------------------------------
CRD_GROUP = "infra.store.io"
CRD_VERSION = "v1alpha1"
CRD_PLURAL = "stores"
CRD_KIND = "Store"
CRD_API_VERSION = f"{CRD_GROUP}/{CRD_VERSION}"

FINALIZER = "infra.store.io/finalizer"

# ---------------------------------------------------------------------------
# Phases and reasons (status.phase / status.reason)
# ---------------------------------------------------------------------------
PHASE_PROVISIONING = "Provisioning"
PHASE_READY = "Ready"
PHASE_FAILED = "Failed"

REASON_PROVISIONING = "Provisioning"
REASON_HELM_ERROR = "HelmError"
REASON_WAITING_FOR_PODS = "WaitingForPods"

# Event reasons
EVENT_PROVISIONING = "Provisioning"
EVENT_READY = "Ready"
EVENT_FAILED = "Failed"
EVENT_DELETE_FAILED = "DeleteFailed"
EVENT_PLAN_DEFAULTED = "PlanDefaulted"

# ---------------------------------------------------------------------------
# Target namespace and guardrail objects
# ---------------------------------------------------------------------------
STORE_NAMESPACE_PREFIX = "store-"

RESOURCE_QUOTA_NAME = "store-resource-quota"
LIMIT_RANGE_NAME = "store-limit-range"
NETWORK_POLICY_NAME = "store-default-deny"

LABEL_MANAGED_BY = "app.kubernetes.io/managed-by"
LABEL_STORE = "infra.store.io/store"
LABEL_ENGINE = "infra.store.io/engine"
MANAGED_BY = "store-operator"

# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------
SECRET_SUFFIX = "-creds"
SECRET_KEY_MARIADB_ROOT = "mariadb-root-password"
SECRET_KEY_MARIADB_USER = "mariadb-user-password"
SECRET_KEY_WORDPRESS = "wordpress-password"

MARIADB_ROOT_PASSWORD_LENGTH = 20
MARIADB_USER_PASSWORD_LENGTH = 20
WORDPRESS_PASSWORD_LENGTH = 16

# ---------------------------------------------------------------------------
# Workload
# ---------------------------------------------------------------------------
ENGINE_WOO = "woo"

WORKLOAD_LABEL_KEY = "app.kubernetes.io/name"
WORKLOAD_LABEL_VALUE = "wordpress"

RELEASE_PREFIX = "store-"


def target_namespace(store_name: str) -> str:
    """Namespace hosting a store's workload: ``store-<name>``."""
    return f"{STORE_NAMESPACE_PREFIX}{store_name}"


def release_name(store_name: str) -> str:
    return f"{RELEASE_PREFIX}{store_name}"


def secret_name(store_name: str) -> str:
    return f"{store_name}{SECRET_SUFFIX}"
