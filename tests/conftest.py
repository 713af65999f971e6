from __future__ import annotations

import pytest

from network_operator.models import Network, NetworkSpec
from network_operator.network_store import NetworkStore
from network_operator.openstack_driver import OpenStackDriver
from network_operator.reconciler import NetworkReconciler

from fakes import FakeConnection, FakeCustomObjectsApi, project

EXT_NET_ID = "ext-net"
TENANT_ID = "T1"


@pytest.fixture
def conn() -> FakeConnection:
    return FakeConnection(projects=[project(TENANT_ID, "tenant-one"), project("T2", "tenant-two")])


@pytest.fixture
def neutron(conn):
    return conn.network


@pytest.fixture
def driver(conn) -> OpenStackDriver:
    return OpenStackDriver(conn, EXT_NET_ID)


@pytest.fixture
def custom_api() -> FakeCustomObjectsApi:
    return FakeCustomObjectsApi()


@pytest.fixture
def store(custom_api) -> NetworkStore:
    return NetworkStore(custom_api)


@pytest.fixture
def reconciler(driver, store) -> NetworkReconciler:
    return NetworkReconciler(driver, store, default_tenant_id=TENANT_ID)


@pytest.fixture
def net1() -> Network:
    return Network(
        spec=NetworkSpec(
            name="net1",
            namespace="default",
            uid="uid-net1",
            cidr="10.0.0.1/16",
            gateway="10.0.0.1",
            tenant_id=TENANT_ID,
        )
    )
