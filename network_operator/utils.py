"""Naming helpers and the bounded poll primitive."""
from __future__ import annotations

import logging
import time
from typing import Callable

logger = logging.getLogger(__name__)

NAME_PREFIX = "kube"
NETWORK_SUFFIX = "network"
SUBNET_SUFFIX = "subnet"


def network_name_for(resource_name: str) -> str:
    """Backend network (and router) name for a ``Network`` resource."""
    return f"{resource_name}_{NETWORK_SUFFIX}"


def subnet_name_for(resource_name: str) -> str:
    return f"{resource_name}_{SUBNET_SUFFIX}"


def build_network_name(name: str, tenant_or_namespace: str) -> str:
    return f"{NAME_PREFIX}_{name}_{tenant_or_namespace}"


def build_port_name(pod_name: str, namespace: str, network_id: str) -> str:
    return f"{NAME_PREFIX}_{pod_name}_{namespace}_{network_id}"


def poll(interval: float, timeout: float, predicate: Callable[[], bool]) -> None:
    """Call *predicate* every *interval* seconds until it returns True.

    Raises ``TimeoutError`` once *timeout* seconds have passed without success.
    Exceptions raised by *predicate* stop the poll and propagate.
    """
    deadline = time.monotonic() + timeout
    while True:
        if predicate():
            return
        if time.monotonic() + interval > deadline:
            raise TimeoutError(f"condition not met within {timeout}s")
        time.sleep(interval)
