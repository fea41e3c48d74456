"""
In-memory stand-ins for the Kubernetes APIs the operator touches.

Missing objects raise ``ApiException(status=404)`` and duplicate creates raise
409, like the real API server. The custom-objects fake enforces
resourceVersion on replace and deletes a Store once it is marked for deletion
and carries no finalizers.
"""
import copy
from collections import Counter
from datetime import datetime, timezone

import pytest
from kubernetes import client
from kubernetes.client import ApiException

from store_operator.config import Settings
from store_operator.constants import WORKLOAD_LABEL_KEY, WORKLOAD_LABEL_VALUE
from store_operator.credentials import CredentialManager
from store_operator.guardrails import GuardrailProvisioner
from store_operator.models import now
from store_operator.readiness import ReadinessProber
from store_operator.reconciler import StoreReconciler


def _not_found():
    return ApiException(status=404, reason="Not Found")


def _conflict():
    return ApiException(status=409, reason="Conflict")


class FakeCoreV1Api:
    def __init__(self):
        self.calls = Counter()
        self.namespaces = {}
        self.quotas = {}
        self.limit_ranges = {}
        self.secrets = {}
        self.pods = {}
        self.pvcs = {}
        # Exceptions raised (in order) by read_namespace before normal behaviour.
        self.read_namespace_errors = []
        self.list_pods_error = None

    # --- namespaces ---
    def read_namespace(self, name):
        self.calls["read_namespace"] += 1
        if self.read_namespace_errors:
            raise self.read_namespace_errors.pop(0)
        if name not in self.namespaces:
            raise _not_found()
        return self.namespaces[name]

    def create_namespace(self, body):
        self.calls["create_namespace"] += 1
        name = body.metadata.name
        if name in self.namespaces:
            raise _conflict()
        body.status = client.V1NamespaceStatus(phase="Active")
        self.namespaces[name] = body
        return body

    def delete_namespace(self, name):
        self.calls["delete_namespace"] += 1
        if name not in self.namespaces:
            raise _not_found()
        ns = self.namespaces[name]
        ns.metadata.deletion_timestamp = datetime.now(timezone.utc)
        ns.status = client.V1NamespaceStatus(phase="Terminating")

    def finish_namespace_deletion(self, name):
        self.namespaces.pop(name, None)
        for store in (self.quotas, self.limit_ranges, self.pvcs):
            for key in [k for k in store if k[0] == name]:
                del store[key]
        self.pods.pop(name, None)

    # --- namespaced objects ---
    def _read(self, store, kind, name, namespace):
        self.calls[f"read_{kind}"] += 1
        if (namespace, name) not in store:
            raise _not_found()
        return store[(namespace, name)]

    def _create(self, store, kind, namespace, body):
        self.calls[f"create_{kind}"] += 1
        key = (namespace, body.metadata.name)
        if key in store:
            raise _conflict()
        store[key] = body
        return body

    def _replace(self, store, kind, name, namespace, body):
        self.calls[f"replace_{kind}"] += 1
        if (namespace, name) not in store:
            raise _not_found()
        store[(namespace, name)] = body
        return body

    def read_namespaced_resource_quota(self, name, namespace):
        return self._read(self.quotas, "quota", name, namespace)

    def create_namespaced_resource_quota(self, namespace, body):
        return self._create(self.quotas, "quota", namespace, body)

    def replace_namespaced_resource_quota(self, name, namespace, body):
        return self._replace(self.quotas, "quota", name, namespace, body)

    def read_namespaced_limit_range(self, name, namespace):
        return self._read(self.limit_ranges, "limit_range", name, namespace)

    def create_namespaced_limit_range(self, namespace, body):
        return self._create(self.limit_ranges, "limit_range", namespace, body)

    def replace_namespaced_limit_range(self, name, namespace, body):
        return self._replace(self.limit_ranges, "limit_range", name, namespace, body)

    def read_namespaced_secret(self, name, namespace):
        return self._read(self.secrets, "secret", name, namespace)

    def create_namespaced_secret(self, namespace, body):
        return self._create(self.secrets, "secret", namespace, body)

    # --- pods / pvcs ---
    def add_pod(self, namespace, name="wordpress-0", phase="Running", ready=True):
        pod = client.V1Pod(
            metadata=client.V1ObjectMeta(
                name=name, namespace=namespace,
                labels={WORKLOAD_LABEL_KEY: WORKLOAD_LABEL_VALUE},
            ),
            status=client.V1PodStatus(
                phase=phase,
                conditions=[client.V1PodCondition(type="Ready", status="True" if ready else "False")],
            ),
        )
        self.pods.setdefault(namespace, []).append(pod)
        return pod

    def list_namespaced_pod(self, namespace, label_selector=None):
        self.calls["list_pods"] += 1
        if self.list_pods_error is not None:
            raise self.list_pods_error
        items = list(self.pods.get(namespace, []))
        if label_selector:
            key, _, value = label_selector.partition("=")
            items = [p for p in items if (p.metadata.labels or {}).get(key) == value]
        return client.V1PodList(items=items)

    def add_pvc(self, namespace, name):
        self.pvcs[(namespace, name)] = client.V1PersistentVolumeClaim(
            metadata=client.V1ObjectMeta(name=name, namespace=namespace)
        )

    def list_namespaced_persistent_volume_claim(self, namespace):
        self.calls["list_pvcs"] += 1
        items = [pvc for (ns, _), pvc in self.pvcs.items() if ns == namespace]
        return client.V1PersistentVolumeClaimList(items=items)

    def delete_namespaced_persistent_volume_claim(self, name, namespace):
        self.calls["delete_pvc"] += 1
        if (namespace, name) not in self.pvcs:
            raise _not_found()
        del self.pvcs[(namespace, name)]


class FakeNetworkingV1Api:
    def __init__(self):
        self.calls = Counter()
        self.policies = {}

    def read_namespaced_network_policy(self, name, namespace):
        self.calls["read_network_policy"] += 1
        if (namespace, name) not in self.policies:
            raise _not_found()
        return self.policies[(namespace, name)]

    def create_namespaced_network_policy(self, namespace, body):
        self.calls["create_network_policy"] += 1
        key = (namespace, body.metadata.name)
        if key in self.policies:
            raise _conflict()
        self.policies[key] = body
        return body

    def replace_namespaced_network_policy(self, name, namespace, body):
        self.calls["replace_network_policy"] += 1
        self.policies[(namespace, name)] = body
        return body


class FakeCustomObjectsApi:
    def __init__(self):
        self.objects = {}
        self.status_history = []
        self.conflict_next_write = False
        self._rv = 0

    def _next_rv(self):
        self._rv += 1
        return str(self._rv)

    def add_store(self, name, namespace="default", plan="small", engine="woo"):
        obj = {
            "apiVersion": "infra.store.io/v1alpha1",
            "kind": "Store",
            "metadata": {
                "name": name,
                "namespace": namespace,
                "uid": f"uid-{name}",
                "generation": 1,
                "resourceVersion": self._next_rv(),
                "creationTimestamp": now(),
            },
            "spec": {"engine": engine, "plan": plan},
        }
        self.objects[(namespace, name)] = obj
        return obj

    def get(self, name, namespace="default"):
        return self.objects.get((namespace, name))

    def bump_generation(self, name, namespace="default", **spec):
        obj = self.objects[(namespace, name)]
        obj["spec"].update(spec)
        obj["metadata"]["generation"] += 1
        obj["metadata"]["resourceVersion"] = self._next_rv()

    def request_delete(self, name, namespace="default"):
        obj = self.objects[(namespace, name)]
        if not obj["metadata"].get("finalizers"):
            del self.objects[(namespace, name)]
            return
        obj["metadata"]["deletionTimestamp"] = now()
        obj["metadata"]["resourceVersion"] = self._next_rv()

    def _check_write(self, namespace, name, body):
        if self.conflict_next_write:
            self.conflict_next_write = False
            raise _conflict()
        current = self.objects.get((namespace, name))
        if current is None:
            raise _not_found()
        if body["metadata"].get("resourceVersion") != current["metadata"]["resourceVersion"]:
            raise _conflict()
        return current

    def get_namespaced_custom_object(self, group, version, namespace, plural, name):
        obj = self.objects.get((namespace, name))
        if obj is None:
            raise _not_found()
        return copy.deepcopy(obj)

    def replace_namespaced_custom_object(self, group, version, namespace, plural, name, body):
        current = self._check_write(namespace, name, body)
        current["metadata"]["finalizers"] = list(body["metadata"].get("finalizers") or [])
        current["spec"] = copy.deepcopy(body.get("spec", {}))
        current["metadata"]["resourceVersion"] = self._next_rv()
        if current["metadata"].get("deletionTimestamp") and not current["metadata"]["finalizers"]:
            del self.objects[(namespace, name)]
        return copy.deepcopy(current)

    def replace_namespaced_custom_object_status(self, group, version, namespace, plural, name, body):
        current = self._check_write(namespace, name, body)
        current["status"] = copy.deepcopy(body.get("status", {}))
        current["metadata"]["resourceVersion"] = self._next_rv()
        self.status_history.append(copy.deepcopy(current["status"]))
        return copy.deepcopy(current)


class FakeDeployer:
    """Records calls; on success optionally brings up a ready pod, like ``--wait``."""

    def __init__(self, core=None):
        self.core = core
        self.installs = []
        self.uninstalls = []
        self.install_error = None
        self.uninstall_error = None

    def install_or_upgrade(self, release, namespace, chart_path, values):
        self.installs.append((release, namespace, chart_path, values))
        if self.install_error is not None:
            raise self.install_error
        if self.core is not None and not self.core.pods.get(namespace):
            self.core.add_pod(namespace)

    def uninstall(self, release, namespace):
        self.uninstalls.append((release, namespace))
        if self.uninstall_error is not None:
            raise self.uninstall_error

    def get_revision(self, release, namespace):
        return len(self.installs) or -1


class FakeRecorder:
    def __init__(self):
        self.events = []
        self.forgotten = []

    def normal(self, body, reason, message):
        self.events.append(("Normal", reason, message))

    def warning(self, body, reason, message):
        self.events.append(("Warning", reason, message))

    def forget(self, store_name):
        self.forgotten.append(store_name)

    def reasons(self):
        return [reason for _, reason, _ in self.events]


@pytest.fixture
def test_settings():
    return Settings(
        WORDPRESS_CHART_PATH="/charts/engine-woo",
        BASE_DOMAIN="example.test",
        METRICS_PORT=0,
        REDIS_URL="",
        PLAN_OVERRIDES="",
        FINALIZER_REQUEUE_INTERVAL=1,
        NAMESPACE_REQUEUE_INTERVAL=1,
        HELM_RETRY_INTERVAL=20,
        POD_CHECK_INTERVAL=5,
        DELETION_REQUEUE_INTERVAL=5,
        CONFLICT_RETRY_INTERVAL=1,
    )


@pytest.fixture
def core():
    return FakeCoreV1Api()


@pytest.fixture
def networking():
    return FakeNetworkingV1Api()


@pytest.fixture
def custom():
    return FakeCustomObjectsApi()


@pytest.fixture
def deployer(core):
    return FakeDeployer(core)


@pytest.fixture
def recorder():
    return FakeRecorder()


@pytest.fixture
def guardrails(core, networking, test_settings):
    return GuardrailProvisioner(core_v1=core, networking_v1=networking, settings=test_settings)


@pytest.fixture
def reconciler(custom, core, deployer, guardrails, recorder, test_settings):
    return StoreReconciler(
        custom_api=custom,
        core_v1=core,
        deployer=deployer,
        guardrails=guardrails,
        credentials=CredentialManager(core),
        prober=ReadinessProber(core),
        recorder=recorder,
        settings=test_settings,
    )
