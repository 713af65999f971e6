"""
models.py
---------
Typed views of the ``Network`` custom resource and of its OpenStack projection.

The Kubernetes side (``Network``) is parsed from and rendered back to the plain
dicts the Kubernetes API hands out. The provider side (``ProviderNetwork``) is
recomputed from the backend on demand and never persisted.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from network_operator.utils import network_name_for, subnet_name_for

# ---------------------------------------------------------------------------
# CRD coordinates ------------------------------------------------------------
# ---------------------------------------------------------------------------
NETWORK_GROUP = "kubestack.io"
NETWORK_VERSION = "v1"
NETWORK_PLURAL = "networks"
NETWORK_KIND = "Network"

# ---------------------------------------------------------------------------
# Enums ----------------------------------------------------------------------
# ---------------------------------------------------------------------------


class NetworkState(str, Enum):
    """States persisted in ``status.state``. Renaming any value is a breaking change."""

    INITIALIZING = "Initializing"
    ACTIVE = "Active"
    FAILED = "Failed"
    PROCESSED = "Processed"


class EventType(str, Enum):
    """Kinds of change notification delivered to the reconciler."""

    ADDED = "ADDED"
    UPDATED = "UPDATED"
    DELETED = "DELETED"


TERMINAL_STATES = (NetworkState.ACTIVE, NetworkState.FAILED)

# ---------------------------------------------------------------------------
# Kubernetes side ------------------------------------------------------------
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NetworkSpec:
    name: str
    namespace: str = "default"
    uid: str = ""
    cidr: str = ""
    gateway: str = ""
    network_id: str = ""
    tenant_id: str = ""


@dataclass
class NetworkStatus:
    state: Optional[NetworkState] = None
    message: str = ""

    @classmethod
    def from_dict(cls, raw: Optional[dict]) -> "NetworkStatus":
        raw = raw or {}
        try:
            state = NetworkState(raw.get("state"))
        except ValueError:
            state = None
        return cls(state=state, message=raw.get("message") or "")

    def to_dict(self) -> dict:
        return {
            "state": self.state.value if self.state else None,
            "message": self.message,
        }


@dataclass
class Network:
    """A ``Network`` resource snapshot: desired spec plus last written status."""

    spec: NetworkSpec
    status: NetworkStatus = field(default_factory=NetworkStatus)

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def namespace(self) -> str:
        return self.spec.namespace

    @classmethod
    def from_body(cls, body: dict) -> "Network":
        meta = body.get("metadata", {}) or {}
        spec = body.get("spec", {}) or {}
        return cls(
            spec=NetworkSpec(
                name=meta.get("name", ""),
                namespace=meta.get("namespace") or "default",
                uid=meta.get("uid") or "",
                cidr=spec.get("cidr") or "",
                gateway=spec.get("gateway") or "",
                network_id=spec.get("networkID") or "",
                tenant_id=spec.get("tenantID") or "",
            ),
            status=NetworkStatus.from_dict(body.get("status")),
        )

    def to_body(self) -> dict:
        spec: dict = {"cidr": self.spec.cidr, "gateway": self.spec.gateway}
        if self.spec.network_id:
            spec["networkID"] = self.spec.network_id
        if self.spec.tenant_id:
            spec["tenantID"] = self.spec.tenant_id
        body = {
            "apiVersion": f"{NETWORK_GROUP}/{NETWORK_VERSION}",
            "kind": NETWORK_KIND,
            "metadata": {"name": self.spec.name, "namespace": self.spec.namespace},
            "spec": spec,
        }
        if self.status.state is not None:
            body["status"] = self.status.to_dict()
        return body


@dataclass(frozen=True)
class NetworkEvent:
    """A typed change notification for one ``Network`` object."""

    type: EventType
    network: Network
    old: Optional[Network] = None


# ---------------------------------------------------------------------------
# Provider side --------------------------------------------------------------
# ---------------------------------------------------------------------------


@dataclass
class ProviderRoute:
    destination_cidr: str
    nexthop: str


@dataclass
class ProviderSubnet:
    name: str
    cidr: str
    gateway: str
    uid: str = ""
    dns_servers: List[str] = field(default_factory=list)
    routes: List[ProviderRoute] = field(default_factory=list)


@dataclass
class ProviderNetwork:
    name: str
    tenant_id: str
    uid: str = ""
    subnets: List[ProviderSubnet] = field(default_factory=list)
    status: NetworkState = NetworkState.INITIALIZING


def to_provider_network(network: Network, tenant_id: str) -> ProviderNetwork:
    """Translate a ``Network`` resource into the backend object it should produce.

    Network and subnet are 1:1. A resource without a CIDR has nothing to
    provision and translates to a network with no subnets.
    """
    subnets: List[ProviderSubnet] = []
    if network.spec.cidr:
        subnets.append(
            ProviderSubnet(
                name=subnet_name_for(network.name),
                uid=str(uuid.uuid4()),
                cidr=network.spec.cidr,
                gateway=network.spec.gateway,
            )
        )
    return ProviderNetwork(
        name=network_name_for(network.name),
        uid=network.spec.uid,
        tenant_id=tenant_id,
        subnets=subnets,
        status=NetworkState.INITIALIZING,
    )
