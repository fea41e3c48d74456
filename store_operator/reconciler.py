"""
Store reconciler — the level-triggered state machine behind the operator.

One pass, given a (name, namespace) key:

  Store gone                → nothing to do
  deletionTimestamp set     → teardown:
      1. Helm uninstall            (already absent = success)
      2. Delete PVCs               (best-effort)
      3. Delete target namespace   (requeue until it reads 404)
      4. Remove finalizer
  otherwise                 → create/update:
      1. Ensure finalizer          (end of pass if added)
      2. Ensure namespace          (end of pass if created)
      3. Credentials Secret        (generated once)
      4. Guardrails                (quota, limits, network policy)
      5. Helm install/upgrade      (only if generation moved or not Ready)
      6. Pod readiness             (requeue until ready) → Ready

Nothing is remembered between passes except what is persisted on the Store
itself (finalizers, status, generation). Waiting is never done in-process: a
pass ends with a ReconcileResult telling the dispatcher when to call again.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from kubernetes import client
from kubernetes.client import ApiException

from store_operator import k8s, metrics
from store_operator.config import Settings, settings as default_settings
from store_operator.constants import (
    CRD_GROUP,
    CRD_PLURAL,
    CRD_VERSION,
    EVENT_DELETE_FAILED,
    EVENT_FAILED,
    EVENT_PLAN_DEFAULTED,
    EVENT_PROVISIONING,
    EVENT_READY,
    FINALIZER,
    LABEL_ENGINE,
    LABEL_MANAGED_BY,
    LABEL_STORE,
    MANAGED_BY,
    PHASE_FAILED,
    PHASE_PROVISIONING,
    PHASE_READY,
    REASON_HELM_ERROR,
    REASON_PROVISIONING,
    REASON_WAITING_FOR_PODS,
    release_name,
    target_namespace,
)
from store_operator.credentials import CredentialManager, StoreCredentials
from store_operator.errors import DeployError
from store_operator.events import EventRecorder
from store_operator.guardrails import GuardrailProvisioner
from store_operator.helm import HelmDeployer
from store_operator.models import (
    IngressValues,
    MariaDBAuthValues,
    MariaDBPrimaryValues,
    MariaDBValues,
    PersistenceValues,
    ProbeValues,
    Store,
    StoreStatus,
    WordPressValues,
)
from store_operator.readiness import ReadinessProber

logger = logging.getLogger("store-operator.reconciler")


@dataclass(frozen=True)
class ReconcileResult:
    """Outcome of one pass. ``requeue_after`` is None when no follow-up is due."""
    requeue_after: Optional[float] = None
    reason: str = ""

    @property
    def requeue(self) -> bool:
        return self.requeue_after is not None

    @classmethod
    def done(cls) -> "ReconcileResult":
        return cls()

    @classmethod
    def after(cls, seconds: float, reason: str = "") -> "ReconcileResult":
        return cls(requeue_after=seconds, reason=reason)


def store_url(store_name: str, base_domain: str) -> str:
    return f"https://{store_name}.{base_domain}"


def build_values(store: Store, creds: StoreCredentials, settings: Settings) -> WordPressValues:
    persistence = PersistenceValues(enabled=settings.PERSISTENCE_ENABLED)
    return WordPressValues(
        wordpress_blog_name=store.name,
        wordpress_password=creds.wordpress_password,
        ingress=IngressValues(
            hostname=f"{store.name}.{settings.require_base_domain()}",
            ingress_class_name=settings.INGRESS_CLASS,
        ),
        mariadb=MariaDBValues(
            auth=MariaDBAuthValues(
                root_password=creds.mariadb_root_password,
                password=creds.mariadb_user_password,
            ),
            primary=MariaDBPrimaryValues(persistence=persistence),
        ),
        persistence=persistence,
        liveness_probe=ProbeValues(
            initial_delay_seconds=settings.LIVENESS_INITIAL_DELAY,
            period_seconds=settings.LIVENESS_PERIOD,
        ),
        readiness_probe=ProbeValues(
            initial_delay_seconds=settings.READINESS_INITIAL_DELAY,
            period_seconds=settings.READINESS_PERIOD,
        ),
    )


class StoreReconciler:
    def __init__(
        self,
        custom_api: Optional[client.CustomObjectsApi] = None,
        core_v1: Optional[client.CoreV1Api] = None,
        deployer: Optional[HelmDeployer] = None,
        guardrails: Optional[GuardrailProvisioner] = None,
        credentials: Optional[CredentialManager] = None,
        prober: Optional[ReadinessProber] = None,
        recorder: Optional[EventRecorder] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or default_settings
        self.custom_api = custom_api or k8s.custom_api()
        self.core_v1 = core_v1 or k8s.core_api()
        self.deployer = deployer or HelmDeployer(self.settings)
        self.guardrails = guardrails or GuardrailProvisioner(core_v1=self.core_v1, settings=self.settings)
        self.credentials = credentials or CredentialManager(self.core_v1)
        self.prober = prober or ReadinessProber(self.core_v1)
        self.recorder = recorder or EventRecorder(self.settings)

    # -----------------------------------------------------------------------
    # Entry point
    # -----------------------------------------------------------------------

    def reconcile(self, name: str, namespace: str) -> ReconcileResult:
        """Run one pass for the Store ``namespace/name``.

        A version conflict on our own writes ends the pass with a short
        requeue; the next pass re-fetches. Every other API error propagates.
        """
        try:
            obj = self._fetch(name, namespace)
            if obj is None:
                logger.debug(f"Store {namespace}/{name} not found — already removed")
                return ReconcileResult.done()
            store = Store.from_object(obj)
            if store.is_deleting:
                return self._finalize(obj, store)
            return self._provision(obj, store)
        except ApiException as e:
            if k8s.is_conflict(e):
                logger.info(f"[{name}] Conflict writing Store — retrying with a fresh copy")
                return ReconcileResult.after(self.settings.CONFLICT_RETRY_INTERVAL, "Conflict")
            raise

    # -----------------------------------------------------------------------
    # Deletion branch
    # -----------------------------------------------------------------------

    def _finalize(self, obj: dict, store: Store) -> ReconcileResult:
        if FINALIZER not in store.finalizers:
            return ReconcileResult.done()

        store_ns = target_namespace(store.name)
        logger.info(f"[{store.name}] Tearing down (namespace {store_ns})")

        try:
            self.deployer.uninstall(release_name(store.name), store_ns)
        except DeployError as e:
            logger.error(f"[{store.name}] Helm uninstall failed: {e}")
            self.recorder.warning(obj, EVENT_DELETE_FAILED, f"Helm uninstall failed: {e}")
            return ReconcileResult.after(self.settings.HELM_RETRY_INTERVAL, EVENT_DELETE_FAILED)

        self._delete_volume_claims(store.name, store_ns)

        # A non-404 error here propagates: the finalizer stays until a read
        # positively reports the namespace gone.
        ns = k8s.read_or_none(self.core_v1.read_namespace, store_ns)
        if ns is not None:
            if not _is_terminating(ns):
                self._delete_namespace(store_ns)
            logger.info(f"[{store.name}] Waiting for namespace {store_ns} to disappear")
            return ReconcileResult.after(self.settings.DELETION_REQUEUE_INTERVAL, "NamespaceTerminating")

        obj["metadata"]["finalizers"] = [f for f in store.finalizers if f != FINALIZER]
        self._replace(obj)
        metrics.record_deleted()
        self.recorder.forget(store.name)
        logger.info(f"[{store.name}] Cleanup complete — finalizer removed")
        return ReconcileResult.done()

    def _delete_volume_claims(self, store_name: str, namespace: str):
        """Best-effort: namespace deletion reclaims storage regardless."""
        try:
            pvcs = self.core_v1.list_namespaced_persistent_volume_claim(namespace=namespace)
            for pvc in pvcs.items:
                self.core_v1.delete_namespaced_persistent_volume_claim(pvc.metadata.name, namespace)
                logger.info(f"[{store_name}] Deleted PVC {pvc.metadata.name} in {namespace}")
        except ApiException as e:
            if e.status != 404:
                logger.warning(f"[{store_name}] PVC cleanup error (non-fatal): {e}")
        except Exception as e:
            logger.warning(f"[{store_name}] PVC cleanup error (non-fatal): {e}")

    def _delete_namespace(self, name: str):
        try:
            self.core_v1.delete_namespace(name=name)
            logger.info(f"Namespace {name} deletion initiated")
        except ApiException as e:
            if e.status != 404:
                raise
            logger.info(f"Namespace {name} already gone")

    # -----------------------------------------------------------------------
    # Create / update branch
    # -----------------------------------------------------------------------

    def _provision(self, obj: dict, store: Store) -> ReconcileResult:
        if FINALIZER not in store.finalizers:
            obj["metadata"]["finalizers"] = store.finalizers + [FINALIZER]
            self._replace(obj)
            logger.info(f"[{store.name}] Finalizer added")
            return ReconcileResult.after(self.settings.FINALIZER_REQUEUE_INTERVAL, "FinalizerAdded")

        store_ns = target_namespace(store.name)
        if self._ensure_namespace(store, store_ns):
            return ReconcileResult.after(self.settings.NAMESPACE_REQUEUE_INTERVAL, "NamespaceCreated")

        creds = self.credentials.reconcile(store)
        plan = self.guardrails.apply(store_ns, store.spec.plan)

        chart_path = self.settings.chart_path_for(store.spec.engine)
        base_domain = self.settings.require_base_domain()
        values = build_values(store, creds, self.settings)

        status = store.status.model_copy()

        if not status.phase:
            status.phase = PHASE_PROVISIONING
            status.reason = REASON_PROVISIONING
            status.message = "Store provisioning started"
            obj = self._write_status(obj, status)
            metrics.record_created()
            self.recorder.normal(obj, EVENT_PROVISIONING, "Store provisioning started")
            if plan.defaulted:
                self.recorder.warning(
                    obj, EVENT_PLAN_DEFAULTED,
                    f"Unknown plan '{store.spec.plan}' — using '{plan.name}'",
                )

        if store.generation != status.observed_generation or status.phase != PHASE_READY:
            logger.info(
                f"[{store.name}] Deploying generation {store.generation} "
                f"(observed={status.observed_generation}, phase={status.phase})"
            )
            try:
                self.deployer.install_or_upgrade(
                    release_name(store.name), store_ns, chart_path, values.to_tree()
                )
            except DeployError as e:
                logger.error(f"[{store.name}] Helm install/upgrade failed: {e}")
                status.phase = PHASE_FAILED
                status.reason = REASON_HELM_ERROR
                status.message = f"Helm install/upgrade failed: {str(e)[:200]}"
                obj = self._write_status(obj, status)
                self.recorder.warning(obj, EVENT_FAILED, status.message)
                return ReconcileResult.after(self.settings.HELM_RETRY_INTERVAL, REASON_HELM_ERROR)
            status.observed_generation = store.generation

        if not self.prober.is_ready(store_ns):
            status.phase = PHASE_PROVISIONING
            status.reason = REASON_WAITING_FOR_PODS
            status.message = "Waiting for store pods to become ready"
            self._write_status(obj, status)
            return ReconcileResult.after(self.settings.POD_CHECK_INTERVAL, REASON_WAITING_FOR_PODS)

        if status.phase != PHASE_READY:
            status.phase = PHASE_READY
            status.url = store_url(store.name, base_domain)
            status.message = ""
            status.reason = ""
            obj = self._write_status(obj, status)
            self.recorder.normal(obj, EVENT_READY, f"Store ready at {status.url}")
            elapsed = store.age_seconds()
            if elapsed is not None:
                metrics.observe_provisioning(elapsed)
            logger.info(f"[{store.name}] Store Ready at {status.url}")
        else:
            self._write_status(obj, status)
        return ReconcileResult.done()

    def _ensure_namespace(self, store: Store, name: str) -> bool:
        """Create the target namespace if missing. Returns True if created."""
        if k8s.read_or_none(self.core_v1.read_namespace, name) is not None:
            return False
        self.core_v1.create_namespace(
            client.V1Namespace(
                metadata=client.V1ObjectMeta(
                    name=name,
                    labels={
                        LABEL_MANAGED_BY: MANAGED_BY,
                        LABEL_STORE: store.name,
                        LABEL_ENGINE: store.spec.engine,
                    },
                )
            )
        )
        logger.info(f"[{store.name}] Namespace {name} created")
        return True

    # -----------------------------------------------------------------------
    # Store persistence
    # -----------------------------------------------------------------------

    def _fetch(self, name: str, namespace: str) -> Optional[dict]:
        return k8s.read_or_none(
            self.custom_api.get_namespaced_custom_object,
            CRD_GROUP, CRD_VERSION, namespace, CRD_PLURAL, name,
        )

    def _replace(self, obj: dict) -> dict:
        meta = obj["metadata"]
        return self.custom_api.replace_namespaced_custom_object(
            CRD_GROUP, CRD_VERSION, meta["namespace"], CRD_PLURAL, meta["name"], obj
        )

    def _write_status(self, obj: dict, status: StoreStatus) -> dict:
        """Persist ``status`` if it differs from what ``obj`` carries."""
        desired = status.to_dict()
        if StoreStatus(**(obj.get("status") or {})).to_dict() == desired:
            return obj
        body = dict(obj)
        body["status"] = desired
        meta = obj["metadata"]
        return self.custom_api.replace_namespaced_custom_object_status(
            CRD_GROUP, CRD_VERSION, meta["namespace"], CRD_PLURAL, meta["name"], body
        )


def _is_terminating(ns: client.V1Namespace) -> bool:
    if ns.metadata is not None and ns.metadata.deletion_timestamp is not None:
        return True
    return ns.status is not None and ns.status.phase == "Terminating"
