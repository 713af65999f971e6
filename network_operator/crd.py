"""Network CRD manifest and bootstrap."""
from __future__ import annotations

import logging

from kubernetes.client import ApiException, ApiextensionsV1Api

from network_operator.models import NETWORK_GROUP, NETWORK_KIND, NETWORK_PLURAL, NETWORK_VERSION, NetworkState
from network_operator.utils import poll

logger = logging.getLogger(__name__)

NETWORK_CRD_NAME = f"{NETWORK_PLURAL}.{NETWORK_GROUP}"
CRD_POLL_INTERVAL = 0.5
CRD_POLL_TIMEOUT = 60.0

# ---------------------------------------------------------------------------
# CRD definition -------------------------------------------------------------
# ---------------------------------------------------------------------------
NETWORK_CRD_MANIFEST: dict = {
    "apiVersion": "apiextensions.k8s.io/v1",
    "kind": "CustomResourceDefinition",
    "metadata": {"name": NETWORK_CRD_NAME},
    "spec": {
        "group": NETWORK_GROUP,
        "scope": "Namespaced",
        "names": {
            "plural": NETWORK_PLURAL,
            "singular": "network",
            "kind": NETWORK_KIND,
            "shortNames": ["knet"],
        },
        "versions": [
            {
                "name": NETWORK_VERSION,
                "served": True,
                "storage": True,
                "schema": {
                    "openAPIV3Schema": {
                        "type": "object",
                        "properties": {
                            "spec": {
                                "type": "object",
                                "properties": {
                                    "cidr": {"type": "string", "description": "IPv4 prefix of the subnet."},
                                    "gateway": {"type": "string", "description": "Gateway address of the subnet."},
                                    "networkID": {
                                        "type": "string",
                                        "description": "Existing OpenStack network to use instead of creating one.",
                                    },
                                    "tenantID": {"type": "string", "description": "Owning OpenStack project."},
                                },
                            },
                            "status": {
                                "type": "object",
                                "properties": {
                                    "state": {"type": "string", "enum": [s.value for s in NetworkState]},
                                    "message": {"type": "string"},
                                },
                                "x-kubernetes-preserve-unknown-fields": True,
                            },
                        },
                    }
                },
                "subresources": {"status": {}},
                "additionalPrinterColumns": [
                    {"name": "CIDR", "type": "string", "jsonPath": ".spec.cidr"},
                    {"name": "State", "type": "string", "jsonPath": ".status.state"},
                ],
            }
        ],
    },
}


def _crd_established(apiext: ApiextensionsV1Api) -> bool:
    crd = apiext.read_custom_resource_definition(NETWORK_CRD_NAME)
    for cond in (crd.status.conditions if crd.status else None) or []:
        if cond.type == "Established" and cond.status == "True":
            return True
        if cond.type == "NamesAccepted" and cond.status == "False":
            logger.error("CRD name conflict: %s", cond.reason)
    return False


def ensure_network_crd(
    apiext: ApiextensionsV1Api,
    interval: float = CRD_POLL_INTERVAL,
    timeout: float = CRD_POLL_TIMEOUT,
) -> bool:
    """Create the Network CRD and wait until it is established.

    Returns False if the CRD already existed. If it never becomes established
    the freshly created CRD is deleted again and ``TimeoutError`` is raised.
    Other API errors propagate as ``ApiException``.
    """
    try:
        apiext.create_custom_resource_definition(body=NETWORK_CRD_MANIFEST)
    except ApiException as exc:
        if exc.status == 409:
            logger.debug("Network CRD already present")
            return False
        raise
    logger.info("Network CRD applied, waiting for it to be established")

    try:
        poll(interval, timeout, lambda: _crd_established(apiext))
    except TimeoutError:
        logger.error("Network CRD not established within %ss, deleting it", timeout)
        try:
            apiext.delete_custom_resource_definition(NETWORK_CRD_NAME)
        except ApiException as del_exc:
            logger.warning("Failed to delete Network CRD: %s %s", del_exc.status, del_exc.reason)
        raise
    logger.info("Network CRD established")
    return True
