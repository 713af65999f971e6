"""
controller.py
-------------
Kopf handlers that feed ``Network`` custom resource events into the reconciler.

Key responsibilities
~~~~~~~~~~~~~~~~~~~~
* Bootstrap the operator: load configuration, build the Kubernetes and
  OpenStack clients, optionally register the Network CRD.
* Translate kopf callbacks into typed ``NetworkEvent`` objects. ``resume``
  (an existing object seen after an operator restart) counts as ADDED.
* Map reconciler/store failures onto ``kopf.TemporaryError`` /
  ``kopf.PermanentError``.

This file keeps a clear top-down structure:
    1. Standard-library / third-party imports
    2. Bootstrap helpers
    3. Kopf event-handlers (startup, create/resume, update, delete)

Clients live on the kopf ``memo`` set up by the startup handler; nothing is
created at import time.
"""
from __future__ import annotations

import logging
from typing import Dict, Optional

import kopf
import kubernetes
from kopf import OperatorSettings
from kubernetes.client import (
    ApiException,
    ApiextensionsV1Api,
    CustomObjectsApi,
)

from network_operator.config import OperatorConfig
from network_operator.crd import ensure_network_crd
from network_operator.errors import ConfigError, NetworkProviderError
from network_operator.models import (
    NETWORK_GROUP,
    NETWORK_PLURAL,
    NETWORK_VERSION,
    EventType,
    Network,
    NetworkEvent,
)
from network_operator.network_store import NetworkStore
from network_operator.openstack_driver import OpenStackDriver
from network_operator.reconciler import NetworkReconciler

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Bootstrap helpers ----------------------------------------------------------
# ---------------------------------------------------------------------------


def _load_kubernetes_config() -> None:
    """Load local kube-config, falling back to in-cluster config."""
    try:
        kubernetes.config.load_kube_config()
        logger.info("Loaded kube-config from local file")
    except kubernetes.config.config_exception.ConfigException:
        try:
            kubernetes.config.load_incluster_config()
            logger.info("Loaded in-cluster kube-config")
        except kubernetes.config.config_exception.ConfigException as exc:
            logger.critical("Failed to load Kubernetes configuration: %s", exc)
            raise kopf.PermanentError("Cannot load Kubernetes config") from exc


def build_reconciler(config: OperatorConfig, custom_api: CustomObjectsApi) -> NetworkReconciler:
    """Wire the driver and store into a reconciler or raise ``kopf.PermanentError``."""
    try:
        driver = OpenStackDriver.from_config(config.cloud, config.ext_net_id)
    except NetworkProviderError as exc:
        logger.critical("Failed to initialise OpenStack: %s", exc)
        raise kopf.PermanentError("OpenStack init failed") from exc
    return NetworkReconciler(driver, NetworkStore(custom_api), config.tenant_id)


def _register_crd(apiext: ApiextensionsV1Api) -> None:
    try:
        ensure_network_crd(apiext)
    except ApiException as exc:
        if exc.status == 429:
            raise kopf.TemporaryError("API busy, retrying", delay=10) from exc
        raise kopf.PermanentError(f"CRD creation failed: {exc.status} {exc.reason}") from exc
    except TimeoutError as exc:
        raise kopf.PermanentError(f"Network CRD was not established: {exc}") from exc


# ---------------------------------------------------------------------------
# Kopf handlers --------------------------------------------------------------
# ---------------------------------------------------------------------------


@kopf.on.startup()
def configure_operator(settings: OperatorSettings, memo: kopf.Memo, **_: Dict[str, object]) -> None:
    """Tune kopf, build clients and stash the reconciler on *memo*."""
    try:
        config = OperatorConfig.from_env()
    except ConfigError as exc:
        logger.critical("%s", exc)
        raise kopf.PermanentError(str(exc)) from exc

    settings.watching.server_timeout = config.watch_server_timeout
    # One reconciliation in flight at a time, in delivery order.
    settings.execution.max_workers = 1
    logger.info("Kopf watch server_timeout set to %s", settings.watching.server_timeout)

    _load_kubernetes_config()
    if config.create_crd:
        _register_crd(ApiextensionsV1Api())

    memo.config = config
    memo.reconciler = build_reconciler(config, CustomObjectsApi())


def _reconciler(memo: kopf.Memo) -> NetworkReconciler:
    reconciler: Optional[NetworkReconciler] = getattr(memo, "reconciler", None)
    if reconciler is None:
        raise kopf.TemporaryError("Operator not initialised yet", delay=5)
    return reconciler


@kopf.on.resume(NETWORK_GROUP, NETWORK_VERSION, NETWORK_PLURAL)
@kopf.on.create(NETWORK_GROUP, NETWORK_VERSION, NETWORK_PLURAL)
def network_added(body: dict, memo: kopf.Memo, logger: kopf.Logger, **_: Dict[str, object]) -> None:
    """Create or adopt the OpenStack network for a new (or resumed) Network."""
    network = Network.from_body(body)
    logger.info(f"Reconciling Network '{network.namespace}/{network.name}'")

    try:
        status = _reconciler(memo).handle(NetworkEvent(type=EventType.ADDED, network=network))
    except ApiException as e:
        logger.error(f"Failed to write status for Network '{network.name}': {e.status} {e.reason}")
        raise kopf.TemporaryError(f"Status update failed for {network.name}", delay=10) from e

    logger.info(f"Network '{network.name}' reconciled: {status.state.value} ({status.message})")


@kopf.on.update(NETWORK_GROUP, NETWORK_VERSION, NETWORK_PLURAL)
def network_updated(body: dict, old: Optional[dict], memo: kopf.Memo, **_: Dict[str, object]) -> None:
    """Update reconciliation is not implemented; the event is only logged."""
    # kopf's ``old`` is the essence of the previous body and lacks name/namespace.
    previous = Network.from_body({**old, "metadata": body.get("metadata", {})}) if old else None
    event = NetworkEvent(type=EventType.UPDATED, network=Network.from_body(body), old=previous)
    _reconciler(memo).handle(event)


@kopf.on.delete(NETWORK_GROUP, NETWORK_VERSION, NETWORK_PLURAL, optional=True)
def network_deleted(body: dict, memo: kopf.Memo, **_: Dict[str, object]) -> None:
    """Delete reconciliation is not implemented; backend objects are left in place."""
    _reconciler(memo).handle(NetworkEvent(type=EventType.DELETED, network=Network.from_body(body)))
