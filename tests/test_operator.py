import logging
from unittest.mock import MagicMock

import kopf
import pytest
from kopf._core.intents import causes
from kubernetes.client import ApiException

from store_operator import operator
from store_operator.constants import CRD_GROUP, CRD_PLURAL, CRD_VERSION, FINALIZER
from store_operator.reconciler import ReconcileResult


@pytest.fixture
def fake_reconciler(monkeypatch):
    reconciler = MagicMock()
    monkeypatch.setattr(operator, "_reconciler", reconciler)
    return reconciler


def test_finished_pass_returns_quietly(fake_reconciler):
    fake_reconciler.reconcile.return_value = ReconcileResult.done()
    assert operator.run_pass("shop1", "default") == ReconcileResult.done()
    fake_reconciler.reconcile.assert_called_once_with("shop1", "default")


def test_requeue_becomes_temporary_error(fake_reconciler):
    fake_reconciler.reconcile.return_value = ReconcileResult.after(5, "WaitingForPods")
    with pytest.raises(kopf.TemporaryError) as exc:
        operator.run_pass("shop1", "default")
    assert exc.value.delay == 5


def test_api_errors_are_retried(fake_reconciler):
    fake_reconciler.reconcile.side_effect = ApiException(status=503, reason="Service Unavailable")
    with pytest.raises(kopf.TemporaryError) as exc:
        operator.run_pass("shop1", "default")
    assert exc.value.delay == operator.config.ERROR_RETRY_INTERVAL


def test_delete_handler_runs_the_same_pass(fake_reconciler):
    fake_reconciler.reconcile.return_value = ReconcileResult.after(5, "NamespaceTerminating")
    with pytest.raises(kopf.TemporaryError):
        operator.finalize_store(name="shop1", namespace="default")


# ---------------------------------------------------------------------------
# Cause routing through kopf's own detection and handler registry
# ---------------------------------------------------------------------------

@pytest.fixture
def kopf_settings(monkeypatch):
    monkeypatch.setattr(operator.metrics, "start_metrics_server", lambda port: None)
    settings = kopf.OperatorSettings()
    operator.configure(settings=settings)
    return settings


def _changing_cause(settings, finalizers, deleting):
    metadata = {"name": "shop1", "namespace": "default", "uid": "uid-shop1", "finalizers": finalizers}
    if deleting:
        metadata["deletionTimestamp"] = "2026-01-01T00:00:00Z"
    body = kopf.Body({
        "apiVersion": f"{CRD_GROUP}/{CRD_VERSION}",
        "kind": "Store",
        "metadata": metadata,
        "spec": {"plan": "small", "engine": "woo"},
    })
    return causes.detect_changing_cause(
        finalizer=settings.persistence.finalizer,
        raw_event={"type": "MODIFIED", "object": dict(body)},
        body=body,
        old={"spec": {"plan": "small", "engine": "woo"}},
        new={"spec": {"plan": "small", "engine": "woo"}},
        diff=(),
        initial=False,
        logger=logging.getLogger("test"),
        indices=None,
        memo=kopf.Memo(),
        patch=kopf.Patch(),
        resource=kopf.Resource(CRD_GROUP, CRD_VERSION, CRD_PLURAL),
    )


def test_store_finalizer_is_the_kopf_finalizer(kopf_settings):
    assert kopf_settings.persistence.finalizer == FINALIZER


def test_deleting_store_is_routed_to_finalize_handler(kopf_settings):
    cause = _changing_cause(kopf_settings, [FINALIZER], deleting=True)

    assert cause.reason == causes.Reason.DELETE
    registry = kopf.get_default_registry()
    handlers = list(registry._changing.iter_handlers(cause=cause))
    assert [h.fn for h in handlers] == [operator.finalize_store]
    assert registry._changing.requires_finalizer(cause=cause)


def test_live_store_keeps_its_finalizer(kopf_settings):
    cause = _changing_cause(kopf_settings, [FINALIZER], deleting=False)

    # Without a mandatory deletion handler kopf would strip the token here.
    assert kopf.get_default_registry()._changing.requires_finalizer(cause=cause)


def test_released_store_needs_no_further_handling(kopf_settings):
    cause = _changing_cause(kopf_settings, [], deleting=True)
    assert cause.reason == causes.Reason.FREE
