"""
Store Operator — kopf wiring for the Store reconciler.

  Store CRD → kopf watch → StoreReconciler.reconcile(name, namespace)
    requeue_after set → kopf.TemporaryError(delay=requeue_after)
    API error         → kopf.TemporaryError(delay=ERROR_RETRY_INTERVAL)

Create, update, resume and delete all run the same level-triggered pass; the
reconciler decides what to do from the Store's current state. kopf is told to
use ``infra.store.io/finalizer`` as its own finalizer and the delete handler is
mandatory, so a Store marked for deletion is routed to ``finalize_store``
while the token is present. The reconciler removes the token itself once
teardown completes; kopf's own removal afterwards is a no-op.

Run with ``kopf run -m store_operator.operator --all-namespaces`` or
``python -m store_operator``.
"""
import logging
from typing import Optional

import kopf
from kubernetes.client import ApiException

from store_operator import metrics
from store_operator.config import settings as config
from store_operator.constants import CRD_GROUP, CRD_PLURAL, CRD_VERSION, FINALIZER
from store_operator.reconciler import ReconcileResult, StoreReconciler

logger = logging.getLogger("store-operator")

_reconciler: Optional[StoreReconciler] = None


def get_reconciler() -> StoreReconciler:
    global _reconciler
    if _reconciler is None:
        _reconciler = StoreReconciler(settings=config)
    return _reconciler


def run_pass(name: str, namespace: str) -> ReconcileResult:
    """Run one reconciliation pass, translating requeues into kopf retries."""
    try:
        result = get_reconciler().reconcile(name, namespace)
    except ApiException as e:
        raise kopf.TemporaryError(
            f"Kubernetes API error ({e.status}): {e.reason}",
            delay=config.ERROR_RETRY_INTERVAL,
        ) from e
    if result.requeue:
        raise kopf.TemporaryError(
            f"Requeue in {result.requeue_after}s ({result.reason or 'pending'})",
            delay=result.requeue_after,
        )
    return result


# ---------------------------------------------------------------------------
# Kopf operator settings
# ---------------------------------------------------------------------------

@kopf.on.startup()
def configure(settings: kopf.OperatorSettings, **kwargs):
    settings.posting.enabled = True
    settings.persistence.finalizer = FINALIZER
    settings.persistence.progress_storage = kopf.AnnotationsProgressStorage(prefix=CRD_GROUP)
    settings.persistence.diffbase_storage = kopf.AnnotationsDiffBaseStorage(prefix=CRD_GROUP)
    settings.execution.max_workers = config.MAX_PARALLEL_RECONCILES
    metrics.start_metrics_server(config.METRICS_PORT)
    logger.info(
        f"Store Operator started (max_workers={config.MAX_PARALLEL_RECONCILES}, "
        f"domain={config.BASE_DOMAIN}, finalizer={FINALIZER})"
    )


# ---------------------------------------------------------------------------
# Handlers: every cause runs the same pass
# ---------------------------------------------------------------------------

@kopf.on.resume(CRD_GROUP, CRD_VERSION, CRD_PLURAL)
@kopf.on.create(CRD_GROUP, CRD_VERSION, CRD_PLURAL)
@kopf.on.update(CRD_GROUP, CRD_VERSION, CRD_PLURAL)
def reconcile_store(name, namespace, **kwargs):
    run_pass(name, namespace)


@kopf.on.delete(CRD_GROUP, CRD_VERSION, CRD_PLURAL)
def finalize_store(name, namespace, **kwargs):
    run_pass(name, namespace)
