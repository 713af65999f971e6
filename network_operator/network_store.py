"""
network_store.py
----------------
Read/write access to ``Network`` custom resources through the Kubernetes API.

Only ``status`` is ever written by the operator, via the status subresource.
"""
from __future__ import annotations

import logging
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from kubernetes import watch
from kubernetes.client import ApiException, CustomObjectsApi

from network_operator.errors import NotFoundError
from network_operator.models import (
    NETWORK_GROUP,
    NETWORK_PLURAL,
    NETWORK_VERSION,
    EventType,
    Network,
    NetworkEvent,
    NetworkState,
    NetworkStatus,
)
from network_operator.utils import poll

logger = logging.getLogger(__name__)

_WATCH_EVENT_TYPES = {
    "ADDED": EventType.ADDED,
    "MODIFIED": EventType.UPDATED,
    "DELETED": EventType.DELETED,
}


class NetworkStore:
    """CRUD (minus delete) and watch for ``Network`` objects."""

    def __init__(self, api: CustomObjectsApi) -> None:
        self.api = api

    def get(self, namespace: str, name: str) -> Network:
        try:
            body = self.api.get_namespaced_custom_object(
                group=NETWORK_GROUP,
                version=NETWORK_VERSION,
                namespace=namespace,
                plural=NETWORK_PLURAL,
                name=name,
            )
        except ApiException as e:
            if e.status == 404:
                raise NotFoundError(f"Network {namespace}/{name} not found") from e
            raise
        return Network.from_body(body)

    def create(self, network: Network) -> Network:
        body = self.api.create_namespaced_custom_object(
            group=NETWORK_GROUP,
            version=NETWORK_VERSION,
            namespace=network.namespace,
            plural=NETWORK_PLURAL,
            body=network.to_body(),
        )
        logger.info("Created Network %s/%s", network.namespace, network.name)
        return Network.from_body(body)

    def update_status(self, namespace: str, name: str, status: NetworkStatus) -> None:
        try:
            self.api.patch_namespaced_custom_object_status(
                group=NETWORK_GROUP,
                version=NETWORK_VERSION,
                namespace=namespace,
                plural=NETWORK_PLURAL,
                name=name,
                body={"status": status.to_dict()},
            )
        except ApiException as e:
            logger.error(f"ERROR updating network status for {namespace}/{name}: {e.status} {e.reason}")
            raise
        logger.info("UPDATED network status %s/%s: %s", namespace, name, status.to_dict())

    def list(self, namespace: Optional[str] = None) -> List[Network]:
        """List Networks in *namespace*, or across all namespaces when None."""
        if namespace:
            resp = self.api.list_namespaced_custom_object(
                NETWORK_GROUP, NETWORK_VERSION, namespace, NETWORK_PLURAL
            )
        else:
            resp = self.api.list_cluster_custom_object(NETWORK_GROUP, NETWORK_VERSION, NETWORK_PLURAL)
        return [Network.from_body(item) for item in resp.get("items", [])]

    def watch(self, namespace: Optional[str] = None, timeout_seconds: Optional[int] = None) -> Iterator[NetworkEvent]:
        """Yield typed events for Network changes, in the order the API server sends them.

        UPDATED events carry the previous snapshot seen on this stream, if any.
        """
        if namespace:
            func = self.api.list_namespaced_custom_object
            args: Tuple = (NETWORK_GROUP, NETWORK_VERSION, namespace, NETWORK_PLURAL)
        else:
            func = self.api.list_cluster_custom_object
            args = (NETWORK_GROUP, NETWORK_VERSION, NETWORK_PLURAL)

        kwargs = {}
        if timeout_seconds is not None:
            kwargs["timeout_seconds"] = timeout_seconds

        last_seen: Dict[Tuple[str, str], Network] = {}
        for raw in watch.Watch().stream(func, *args, **kwargs):
            event_type = _WATCH_EVENT_TYPES.get(raw.get("type"))
            if event_type is None:
                logger.debug("Skipping watch event of type %s", raw.get("type"))
                continue

            network = Network.from_body(raw["object"])
            key = (network.namespace, network.name)
            old = last_seen.get(key) if event_type is EventType.UPDATED else None
            if event_type is EventType.DELETED:
                last_seen.pop(key, None)
            else:
                last_seen[key] = network
            yield NetworkEvent(type=event_type, network=network, old=old)

    def wait_for_state(
        self,
        namespace: str,
        name: str,
        states: Sequence[NetworkState] = (NetworkState.ACTIVE, NetworkState.PROCESSED),
        interval: float = 0.1,
        timeout: float = 10.0,
    ) -> Network:
        """Block until the Network reaches one of *states*; raise ``TimeoutError`` otherwise."""
        seen: Dict[str, Network] = {}

        def _reached() -> bool:
            try:
                network = self.get(namespace, name)
            except NotFoundError:
                return False
            seen["network"] = network
            return network.status.state in states

        poll(interval, timeout, _reached)
        return seen["network"]
