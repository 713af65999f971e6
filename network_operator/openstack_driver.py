"""
openstack_driver.py
-------------------
Thin facade over the OpenStack networking (Neutron) and identity (Keystone)
APIs, built on ``openstacksdk``.

The driver is stateless apart from the injected connection: every call goes
straight to the backend, nothing is cached. Name lookups are scoped to the owning project and strict: zero
matches raise ``NotFoundError``, more than one raises ``MultipleResultsError``.
Reconciliation relies on name lookups for idempotency, so an ambiguous name is
never resolved by picking one of the matches.

``openstack.exceptions.SDKException`` never leaves this module; it is wrapped
into ``NetworkProviderError`` (or one of its subclasses).
"""
from __future__ import annotations

import logging
from typing import Iterable, List, Optional

import openstack
from openstack.connection import Connection
from openstack.exceptions import ResourceNotFound, SDKException

from network_operator.errors import MultipleResultsError, NetworkProviderError, NotFoundError
from network_operator.models import NetworkState, ProviderNetwork, ProviderRoute, ProviderSubnet

logger = logging.getLogger(__name__)

ROUTER_INTERFACE_OWNER = "network:router_interface"
IP_VERSION_4 = 4

# Backend status -> NetworkState. Anything not listed maps to FAILED.
_STATUS_MAP = {
    "ACTIVE": NetworkState.ACTIVE,
    "BUILD": NetworkState.INITIALIZING,
}


def to_provider_status(status: Optional[str]) -> NetworkState:
    """Map a Neutron network status onto the three-valued resource status."""
    return _STATUS_MAP.get(status or "", NetworkState.FAILED)


def _single(items: Iterable[object], kind: str, key: str) -> object:
    """Return the only element of *items*; raise on zero or several."""
    found = list(items)
    if len(found) > 1:
        raise MultipleResultsError(f"{len(found)} {kind}s match {key!r}")
    if not found:
        raise NotFoundError(f"{kind} {key!r} not found")
    return found[0]


class OpenStackDriver:
    """Network, subnet, router and port operations for one OpenStack cloud."""

    def __init__(self, conn: Connection, ext_net_id: str) -> None:
        self.conn = conn
        self.ext_net_id = ext_net_id

    @classmethod
    def from_config(cls, cloud: str, ext_net_id: str) -> "OpenStackDriver":
        """Connect to *cloud* (a ``clouds.yaml`` entry) and return a driver."""
        try:
            conn = openstack.connect(cloud=cloud)
        except SDKException as exc:
            raise NetworkProviderError(f"cannot connect to OpenStack cloud {cloud!r}: {exc}") from exc
        logger.info("Connected to OpenStack cloud %s", cloud)
        return cls(conn, ext_net_id)

    # -------------------------------------------------------------------------
    # Tenant operations
    # -------------------------------------------------------------------------

    def _list_projects(self) -> list:
        try:
            return list(self.conn.identity.projects())
        except SDKException as exc:
            raise NetworkProviderError(f"listing projects failed: {exc}") from exc

    def check_tenant_id(self, tenant: str) -> bool:
        """Return True if a project with id *or* name *tenant* exists."""
        projects = self._list_projects()
        if not projects:
            logger.warning("Identity service returned no projects")
            return False
        return any(p.id == tenant or p.name == tenant for p in projects)

    def to_tenant_name(self, tenant: str) -> str:
        """Translate a project id to its name; unknown ids are returned unchanged."""
        for project in self._list_projects():
            if project.id == tenant:
                return project.name
        return tenant

    def to_tenant_id(self, tenant: str) -> str:
        """Translate a project name to its id; unknown names are returned unchanged."""
        for project in self._list_projects():
            if project.name == tenant:
                return project.id
        return tenant

    # -------------------------------------------------------------------------
    # Network lookups
    # -------------------------------------------------------------------------

    def _find_os_network(self, name: str, tenant_id: str):
        try:
            return _single(self.conn.network.networks(name=name, project_id=tenant_id), "network", name)
        except SDKException as exc:
            raise NetworkProviderError(f"listing networks named {name!r} failed: {exc}") from exc

    def _get_os_network(self, network_id: str):
        try:
            return self.conn.network.get_network(network_id)
        except ResourceNotFound as exc:
            raise NotFoundError(f"network {network_id!r} not found") from exc
        except SDKException as exc:
            raise NetworkProviderError(f"getting network {network_id!r} failed: {exc}") from exc

    def _find_router(self, name: str, tenant_id: str):
        """Return the router called *name* in *tenant_id*, or None if there is none."""
        try:
            return _single(self.conn.network.routers(name=name, project_id=tenant_id), "router", name)
        except NotFoundError:
            return None
        except SDKException as exc:
            raise NetworkProviderError(f"listing routers named {name!r} failed: {exc}") from exc

    def _get_provider_subnet(self, subnet_id: str) -> ProviderSubnet:
        try:
            subnet = self.conn.network.get_subnet(subnet_id)
        except ResourceNotFound as exc:
            raise NotFoundError(f"subnet {subnet_id!r} not found") from exc
        except SDKException as exc:
            logger.error("Get openstack subnet %s failed: %s", subnet_id, exc)
            raise NetworkProviderError(f"getting subnet {subnet_id!r} failed: {exc}") from exc

        routes = [
            ProviderRoute(destination_cidr=r.get("destination", ""), nexthop=r.get("nexthop", ""))
            for r in subnet.host_routes or []
        ]
        return ProviderSubnet(
            name=subnet.name,
            uid=subnet.id,
            cidr=subnet.cidr,
            gateway=subnet.gateway_ip or "",
            dns_servers=list(subnet.dns_nameservers or []),
            routes=routes,
        )

    def _to_provider_network(self, os_network) -> ProviderNetwork:
        return ProviderNetwork(
            name=os_network.name,
            uid=os_network.id,
            tenant_id=os_network.project_id or "",
            status=to_provider_status(os_network.status),
            subnets=[self._get_provider_subnet(sid) for sid in os_network.subnet_ids or []],
        )

    def get_network_by_id(self, network_id: str) -> ProviderNetwork:
        try:
            os_network = self._get_os_network(network_id)
        except NetworkProviderError as exc:
            logger.error("Get openstack network failed: %s", exc)
            raise
        return self._to_provider_network(os_network)

    def get_network(self, name: str, tenant_id: str) -> ProviderNetwork:
        """Look up the network called *name* owned by project *tenant_id*."""
        try:
            os_network = self._find_os_network(name, tenant_id)
        except NetworkProviderError as exc:
            logger.error("Get openstack network failed: %s", exc)
            raise
        return self._to_provider_network(os_network)

    # -------------------------------------------------------------------------
    # Create / update
    # -------------------------------------------------------------------------

    def _rollback(self, name: str, tenant_id: str) -> None:
        """Best-effort removal of a half-created network; errors are only logged."""
        try:
            self.delete_network(name, tenant_id)
        except NetworkProviderError as exc:
            logger.error("Delete openstack network %s failed: %s", name, exc)

    def create_network(self, network: ProviderNetwork) -> ProviderNetwork:
        """Create network, router, subnet and router interface, in that order.

        Any failure after the network exists triggers a best-effort delete of
        everything created so far and is then re-raised. On success *network*
        is returned with backend ids and status filled in.
        """
        if not network.subnets:
            raise NetworkProviderError(f"network {network.name!r} has no subnets")

        try:
            os_network = self.conn.network.create_network(
                name=network.name,
                project_id=network.tenant_id,
                is_admin_state_up=True,
            )
        except SDKException as exc:
            logger.error("Create openstack network %s failed: %s", network.name, exc)
            raise NetworkProviderError(f"creating network {network.name!r} failed: {exc}") from exc

        try:
            router = self.conn.network.create_router(
                name=network.name,
                project_id=network.tenant_id,
                external_gateway_info={"network_id": self.ext_net_id},
            )
        except SDKException as exc:
            logger.error("Create openstack router %s failed: %s", network.name, exc)
            self._rollback(network.name, network.tenant_id)
            raise NetworkProviderError(f"creating router {network.name!r} failed: {exc}") from exc

        network.uid = os_network.id
        network.status = to_provider_status(os_network.status)

        for sub in network.subnets:
            try:
                os_subnet = self.conn.network.create_subnet(
                    network_id=os_network.id,
                    name=sub.name,
                    cidr=sub.cidr,
                    ip_version=IP_VERSION_4,
                    project_id=network.tenant_id,
                    gateway_ip=sub.gateway or None,
                    dns_nameservers=sub.dns_servers,
                )
            except SDKException as exc:
                logger.error("Create openstack subnet %s failed: %s", sub.name, exc)
                self._rollback(network.name, network.tenant_id)
                raise NetworkProviderError(f"creating subnet {sub.name!r} failed: {exc}") from exc

            try:
                self.conn.network.add_interface_to_router(router, subnet_id=os_subnet.id)
            except SDKException as exc:
                logger.error("Attach subnet %s to router %s failed: %s", sub.name, network.name, exc)
                self._rollback(network.name, network.tenant_id)
                raise NetworkProviderError(f"attaching subnet {sub.name!r} to router failed: {exc}") from exc

            sub.uid = os_subnet.id

        logger.info("Created openstack network %s (%s)", network.name, network.uid)
        return network

    def update_network(self, network: ProviderNetwork) -> None:
        """Placeholder: subnet changes are not propagated to the backend."""
        logger.debug("update_network(%s) is not implemented, ignoring", network.name)

    # -------------------------------------------------------------------------
    # Delete
    # -------------------------------------------------------------------------

    def _delete_ports(self, network_id: str) -> None:
        """Delete every non router-interface port on the network, best effort."""
        try:
            ports: List = list(self.conn.network.ports(network_id=network_id))
        except SDKException as exc:
            logger.error("Get openstack ports error: %s", exc)
            return

        for port in ports:
            if port.device_owner == ROUTER_INTERFACE_OWNER:
                continue
            try:
                self.conn.network.delete_port(port.id)
            except SDKException as exc:
                logger.warning("Delete port %s failed: %s", port.id, exc)

    def delete_network(self, name: str, tenant_id: str) -> None:
        """Tear down the network called *name* in project *tenant_id* and everything hanging off it.

        Order: ports, router interfaces, subnets, router, network. A network
        that does not exist counts as deleted. Failures after the port phase
        abort the teardown and may leave it partially done.
        """
        try:
            os_network = self._find_os_network(name, tenant_id)
        except NotFoundError:
            logger.info("Openstack network %s already absent", name)
            return
        except NetworkProviderError as exc:
            logger.error("Get openstack network failed: %s", exc)
            raise

        self._delete_ports(os_network.id)

        try:
            router = self._find_router(name, tenant_id)
        except NetworkProviderError as exc:
            logger.error("Get openstack router %s error: %s", name, exc)
            raise

        for subnet_id in os_network.subnet_ids or []:
            if router is not None:
                try:
                    self.conn.network.remove_interface_from_router(router, subnet_id=subnet_id)
                except ResourceNotFound:
                    logger.debug("Interface for subnet %s not on router %s", subnet_id, router.id)
                except SDKException as exc:
                    logger.error("Remove subnet %s from router %s error: %s", subnet_id, router.id, exc)
                    raise NetworkProviderError(f"removing router interface for {subnet_id!r} failed: {exc}") from exc

            try:
                self.conn.network.delete_subnet(subnet_id, ignore_missing=True)
            except SDKException as exc:
                logger.error("Delete openstack subnet %s error: %s", subnet_id, exc)
                raise NetworkProviderError(f"deleting subnet {subnet_id!r} failed: {exc}") from exc

        if router is not None:
            try:
                self.conn.network.delete_router(router, ignore_missing=True)
            except SDKException as exc:
                logger.error("Delete openstack router %s error: %s", router.id, exc)
                raise NetworkProviderError(f"deleting router {router.id!r} failed: {exc}") from exc

        try:
            self.conn.network.delete_network(os_network.id, ignore_missing=True)
        except SDKException as exc:
            logger.error("Delete openstack network %s error: %s", os_network.id, exc)
            raise NetworkProviderError(f"deleting network {os_network.id!r} failed: {exc}") from exc

        logger.info("Deleted openstack network %s", name)
