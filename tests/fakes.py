"""In-memory stand-ins for the openstacksdk connection and the Kubernetes custom objects API.

``FakeNetworkProxy`` behaves like a small Neutron: it refuses to delete a subnet
that is still attached to a router, a router that still has interfaces, or a
network that still has subnets or ports. Every call is appended to ``calls``
so tests can assert on ordering.
"""
from __future__ import annotations

import itertools
from types import SimpleNamespace
from typing import Dict, List, Optional, Set

from kubernetes.client import ApiException
from openstack.exceptions import ConflictException, ResourceNotFound, SDKException

ROUTER_INTERFACE = "network:router_interface"

MUTATING_CALLS = {
    "create_network",
    "create_router",
    "create_subnet",
    "add_interface_to_router",
    "remove_interface_from_router",
    "delete_port",
    "delete_subnet",
    "delete_router",
    "delete_network",
}


class FakeNetworkProxy:
    def __init__(self) -> None:
        self.networks_by_id: Dict[str, SimpleNamespace] = {}
        self.subnets_by_id: Dict[str, SimpleNamespace] = {}
        self.routers_by_id: Dict[str, SimpleNamespace] = {}
        self.ports_by_id: Dict[str, SimpleNamespace] = {}
        self.interfaces: Dict[str, Set[str]] = {}
        self.calls: List[tuple] = []
        self.fail_on: Dict[str, Exception] = {}
        self.new_network_status = "ACTIVE"
        self._ids = itertools.count(1)

    # -- helpers -------------------------------------------------------------

    def _next_id(self, kind: str) -> str:
        return f"{kind}-{next(self._ids)}"

    def _record(self, method: str, *args) -> None:
        self.calls.append((method, *args))
        exc = self.fail_on.get(method)
        if exc is not None:
            raise exc

    def mutating_calls(self) -> List[tuple]:
        return [c for c in self.calls if c[0] in MUTATING_CALLS]

    def call_names(self) -> List[str]:
        return [c[0] for c in self.calls]

    def add_network(self, name: str, status: str = "ACTIVE", project_id: str = "T1") -> SimpleNamespace:
        net = SimpleNamespace(
            id=self._next_id("net"), name=name, status=status, project_id=project_id, subnet_ids=[]
        )
        self.networks_by_id[net.id] = net
        return net

    def add_subnet(self, network: SimpleNamespace, name: str, cidr: str = "10.0.0.0/24") -> SimpleNamespace:
        subnet = SimpleNamespace(
            id=self._next_id("subnet"),
            name=name,
            network_id=network.id,
            cidr=cidr,
            gateway_ip="10.0.0.1",
            dns_nameservers=[],
            host_routes=[],
        )
        self.subnets_by_id[subnet.id] = subnet
        network.subnet_ids.append(subnet.id)
        return subnet

    def add_router(self, name: str, project_id: str = "T1") -> SimpleNamespace:
        router = SimpleNamespace(
            id=self._next_id("router"), name=name, project_id=project_id, external_gateway_info=None
        )
        self.routers_by_id[router.id] = router
        self.interfaces[router.id] = set()
        return router

    def add_port(self, network: SimpleNamespace, device_owner: str = "compute:nova") -> SimpleNamespace:
        port = SimpleNamespace(id=self._next_id("port"), network_id=network.id, device_owner=device_owner, subnet_id=None)
        self.ports_by_id[port.id] = port
        return port

    def attach(self, router: SimpleNamespace, subnet: SimpleNamespace) -> None:
        self.interfaces[router.id].add(subnet.id)
        port = self.add_port(self.networks_by_id[subnet.network_id], device_owner=ROUTER_INTERFACE)
        port.subnet_id = subnet.id

    def networks_named(self, name: str) -> List[SimpleNamespace]:
        return [n for n in self.networks_by_id.values() if n.name == name]

    @staticmethod
    def _id(obj) -> str:
        return obj if isinstance(obj, str) else obj.id

    # -- networks ------------------------------------------------------------

    def networks(self, **query):
        self._record("networks", query)
        for net in list(self.networks_by_id.values()):
            if all(getattr(net, k) == v for k, v in query.items()):
                yield net

    def get_network(self, network_id: str) -> SimpleNamespace:
        self._record("get_network", network_id)
        try:
            return self.networks_by_id[network_id]
        except KeyError:
            raise ResourceNotFound(f"No Network found for {network_id}") from None

    def create_network(self, name: str, project_id: str, is_admin_state_up: bool = True) -> SimpleNamespace:
        self._record("create_network", name)
        return self.add_network(name, status=self.new_network_status, project_id=project_id)

    def delete_network(self, network, ignore_missing: bool = True) -> None:
        network_id = self._id(network)
        self._record("delete_network", network_id)
        net = self.networks_by_id.get(network_id)
        if net is None:
            if ignore_missing:
                return
            raise ResourceNotFound(network_id)
        if net.subnet_ids or any(p.network_id == network_id for p in self.ports_by_id.values()):
            raise ConflictException(f"network {network_id} still in use")
        del self.networks_by_id[network_id]

    # -- subnets -------------------------------------------------------------

    def get_subnet(self, subnet_id: str) -> SimpleNamespace:
        self._record("get_subnet", subnet_id)
        try:
            return self.subnets_by_id[subnet_id]
        except KeyError:
            raise ResourceNotFound(f"No Subnet found for {subnet_id}") from None

    def create_subnet(self, network_id: str, name: str, cidr: str, ip_version: int, project_id: str,
                      gateway_ip: Optional[str] = None, dns_nameservers=None) -> SimpleNamespace:
        self._record("create_subnet", name)
        subnet = self.add_subnet(self.networks_by_id[network_id], name, cidr)
        subnet.gateway_ip = gateway_ip
        subnet.dns_nameservers = list(dns_nameservers or [])
        return subnet

    def delete_subnet(self, subnet, ignore_missing: bool = True) -> None:
        subnet_id = self._id(subnet)
        self._record("delete_subnet", subnet_id)
        subnet_obj = self.subnets_by_id.get(subnet_id)
        if subnet_obj is None:
            return
        if any(subnet_id in attached for attached in self.interfaces.values()):
            raise ConflictException(f"subnet {subnet_id} still attached to a router")
        del self.subnets_by_id[subnet_id]
        self.networks_by_id[subnet_obj.network_id].subnet_ids.remove(subnet_id)

    # -- routers -------------------------------------------------------------

    def routers(self, **query):
        self._record("routers", query)
        for router in list(self.routers_by_id.values()):
            if all(getattr(router, k) == v for k, v in query.items()):
                yield router

    def create_router(self, name: str, project_id: str, external_gateway_info=None) -> SimpleNamespace:
        self._record("create_router", name)
        router = self.add_router(name, project_id=project_id)
        router.external_gateway_info = external_gateway_info
        return router

    def add_interface_to_router(self, router, subnet_id: str) -> None:
        self._record("add_interface_to_router", self._id(router), subnet_id)
        self.attach(self.routers_by_id[self._id(router)], self.subnets_by_id[subnet_id])

    def remove_interface_from_router(self, router, subnet_id: str) -> None:
        router_id = self._id(router)
        self._record("remove_interface_from_router", router_id, subnet_id)
        attached = self.interfaces.get(router_id, set())
        if subnet_id not in attached:
            raise ResourceNotFound(f"subnet {subnet_id} not on router {router_id}")
        attached.discard(subnet_id)
        for port_id, port in list(self.ports_by_id.items()):
            if port.device_owner == ROUTER_INTERFACE and port.subnet_id == subnet_id:
                del self.ports_by_id[port_id]

    def delete_router(self, router, ignore_missing: bool = True) -> None:
        router_id = self._id(router)
        self._record("delete_router", router_id)
        if router_id not in self.routers_by_id:
            return
        if self.interfaces.get(router_id):
            raise ConflictException(f"router {router_id} still has interfaces")
        del self.routers_by_id[router_id]
        self.interfaces.pop(router_id, None)

    # -- ports ---------------------------------------------------------------

    def ports(self, **query):
        self._record("ports", query)
        for port in list(self.ports_by_id.values()):
            if all(getattr(port, k) == v for k, v in query.items()):
                yield port

    def delete_port(self, port_id: str) -> None:
        self._record("delete_port", port_id)
        self.ports_by_id.pop(port_id, None)


class FakeIdentityProxy:
    def __init__(self, projects=None) -> None:
        self.project_list = list(projects or [])
        self.error: Optional[Exception] = None

    def projects(self):
        if self.error is not None:
            raise self.error
        return iter(self.project_list)


class FakeConnection:
    def __init__(self, projects=None) -> None:
        self.network = FakeNetworkProxy()
        self.identity = FakeIdentityProxy(projects)


def project(project_id: str, name: str) -> SimpleNamespace:
    return SimpleNamespace(id=project_id, name=name)


def sdk_error(message: str = "boom") -> SDKException:
    return SDKException(message)


class FakeCustomObjectsApi:
    """Records status patches and serves objects from a dict keyed by (namespace, name)."""

    def __init__(self) -> None:
        self.objects: Dict[tuple, dict] = {}
        self.status_patches: List[tuple] = []
        self.status_error: Optional[ApiException] = None

    def get_namespaced_custom_object(self, group, version, namespace, plural, name):
        try:
            return self.objects[(namespace, name)]
        except KeyError:
            raise ApiException(status=404, reason="Not Found") from None

    def create_namespaced_custom_object(self, group, version, namespace, plural, body):
        key = (namespace, body["metadata"]["name"])
        if key in self.objects:
            raise ApiException(status=409, reason="AlreadyExists")
        stored = {**body, "metadata": {**body["metadata"], "uid": f"uid-{len(self.objects) + 1}"}}
        self.objects[key] = stored
        return stored

    def patch_namespaced_custom_object_status(self, group, version, namespace, plural, name, body):
        if self.status_error is not None:
            raise self.status_error
        self.status_patches.append((namespace, name, body))
        obj = self.objects.get((namespace, name))
        if obj is not None:
            obj["status"] = body["status"]
        return obj

    def list_namespaced_custom_object(self, group, version, namespace, plural, **kwargs):
        return {"items": [o for (ns, _), o in self.objects.items() if ns == namespace]}

    def list_cluster_custom_object(self, group, version, plural, **kwargs):
        return {"items": list(self.objects.values())}
