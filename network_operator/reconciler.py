"""
reconciler.py
-------------
Drives the OpenStack backend toward the state described by ``Network`` resources.

Key responsibilities
~~~~~~~~~~~~~~~~~~~~
* Validate the owning tenant before touching the backend.
* Adopt an existing backend network (by explicit id, or by derived name) instead
  of creating a duplicate, so replaying an ADDED event is harmless.
* Otherwise create network, router, subnet and router interface; the driver
  rolls back on partial failure.
* Write exactly one terminal status (``Active`` or ``Failed``) per ADDED event.

UPDATED and DELETED events are logged and otherwise ignored: update and delete
reconciliation are not implemented.
"""
from __future__ import annotations

import logging
from typing import Optional

from network_operator.errors import NetworkProviderError, NotFoundError
from network_operator.models import (
    EventType,
    Network,
    NetworkEvent,
    NetworkState,
    NetworkStatus,
    ProviderNetwork,
    to_provider_network,
)
from network_operator.network_store import NetworkStore
from network_operator.openstack_driver import OpenStackDriver
from network_operator.utils import network_name_for

logger = logging.getLogger(__name__)

LOG_TAG = "[NetworkOperator]"


class NetworkReconciler:
    """Reconciles one ``Network`` event at a time; not safe for concurrent use."""

    def __init__(self, driver: OpenStackDriver, store: NetworkStore, default_tenant_id: str) -> None:
        self.driver = driver
        self.store = store
        self.default_tenant_id = default_tenant_id

    # ---------------------------------------------------------------------------
    # Event dispatch
    # ---------------------------------------------------------------------------

    def handle(self, event: NetworkEvent) -> Optional[NetworkStatus]:
        """Dispatch *event*; returns the written status for ADDED, None otherwise."""
        if event.type is EventType.ADDED:
            return self.on_add(event.network)
        if event.type is EventType.UPDATED:
            self.on_update(event.old, event.network)
        else:
            self.on_delete(event.network)
        return None

    def on_add(self, network: Network) -> NetworkStatus:
        logger.info("%s OnAdd %s/%s", LOG_TAG, network.namespace, network.name)
        return self.add_network(network)

    def on_update(self, old: Optional[Network], new: Network) -> None:
        # TODO: propagate CIDR/gateway changes once the driver implements update_network.
        logger.info(
            "%s OnUpdate %s/%s (old state: %s)",
            LOG_TAG,
            new.namespace,
            new.name,
            old.status.state.value if old and old.status.state else None,
        )

    def on_delete(self, network: Network) -> None:
        logger.info("%s OnDelete %s/%s", LOG_TAG, network.namespace, network.name)

    # ---------------------------------------------------------------------------
    # Create / adopt
    # ---------------------------------------------------------------------------

    def tenant_for(self, network: Network) -> str:
        return network.spec.tenant_id or self.default_tenant_id

    def resolve_tenant_id(self, tenant: str) -> str:
        """Translate a project name to its id; on lookup errors keep *tenant* as given."""
        try:
            return self.driver.to_tenant_id(tenant)
        except NetworkProviderError as exc:
            logger.error("%s resolve tenantID %s failed: %s", LOG_TAG, tenant, exc)
            return tenant

    def add_network(self, network: Network) -> NetworkStatus:
        """Create or adopt the backend network for *network* and record the outcome."""
        tenant_id = self.tenant_for(network)

        # A failing lookup is not proof of absence: carry on and let the
        # backend calls below decide.
        try:
            tenant_exists = self.driver.check_tenant_id(tenant_id)
        except NetworkProviderError as exc:
            logger.error("%s check tenantID failed: %s", LOG_TAG, exc)
            tenant_exists = True
        if not tenant_exists:
            logger.warning("%s tenantID %s doesn't exist in network provider", LOG_TAG, tenant_id)
            return self._finish(network, NetworkState.FAILED, f"Tenant {tenant_id} does not exist in network provider")

        # Backend objects are owned by project id, whichever form the resource used.
        tenant_id = self.resolve_tenant_id(tenant_id)
        desired = to_provider_network(network, tenant_id)
        logger.debug("%s add network %s for tenant %s", LOG_TAG, desired.name, tenant_id)

        if network.spec.network_id:
            return self._adopt_by_id(network)

        if len(desired.subnets) != 1:
            logger.warning("%s subnets of %s is null", LOG_TAG, desired.name)
            return self._finish(
                network,
                NetworkState.FAILED,
                f"Network {desired.name} must have exactly one subnet, got {len(desired.subnets)}",
            )

        try:
            provider = self.driver.get_network(desired.name, tenant_id)
        except NotFoundError:
            return self._create(network, desired)
        except NetworkProviderError as exc:
            logger.warning("%s get network failed: %s", LOG_TAG, exc)
            return self._finish(network, NetworkState.FAILED, f"Looking up network {desired.name} failed: {exc}")

        logger.info("%s network %s has already been created", LOG_TAG, desired.name)
        return self._finish(network, provider.status, f"Adopted existing network {desired.name} ({provider.uid})")

    def _adopt_by_id(self, network: Network) -> NetworkStatus:
        network_id = network.spec.network_id
        try:
            provider = self.driver.get_network_by_id(network_id)
        except NotFoundError:
            logger.warning("%s network %s doesn't exist in network provider", LOG_TAG, network_id)
            return self._finish(network, NetworkState.FAILED, f"Network {network_id} not found in network provider")
        except NetworkProviderError as exc:
            logger.warning("%s get network %s failed: %s", LOG_TAG, network_id, exc)
            return self._finish(network, NetworkState.FAILED, f"Looking up network {network_id} failed: {exc}")
        return self._finish(network, provider.status, f"Using existing network {provider.name} ({network_id})")

    def _create(self, network: Network, desired: ProviderNetwork) -> NetworkStatus:
        try:
            created = self.driver.create_network(desired)
        except NetworkProviderError as exc:
            logger.warning("%s create network %s failed: %s", LOG_TAG, desired.name, exc)
            return self._finish(network, NetworkState.FAILED, f"Creating network {desired.name} failed: {exc}")
        return self._finish(network, created.status, f"Created network {created.name} ({created.uid})")

    def _finish(self, network: Network, state: NetworkState, message: str) -> NetworkStatus:
        """Write the terminal status. Store errors propagate to the caller."""
        status = NetworkStatus(state=state, message=message)
        self.store.update_status(network.namespace, network.name, status)
        network.status = status
        return status

    # ---------------------------------------------------------------------------
    # Teardown
    # ---------------------------------------------------------------------------

    def delete_network(self, network: Network) -> None:
        """Remove every backend object created for *network*. Errors propagate."""
        name = network_name_for(network.name)
        tenant_id = self.resolve_tenant_id(self.tenant_for(network))
        logger.info("%s delete network %s for tenant %s", LOG_TAG, name, tenant_id)
        self.driver.delete_network(name, tenant_id)
