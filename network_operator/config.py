"""
config.py
---------
Operator configuration, read from the environment.

A ``.env`` file in the working directory is honoured for local development.
OpenStack credentials are not read here: ``openstacksdk`` resolves them itself
from ``clouds.yaml`` or the ``OS_*`` variables, selected by ``OS_CLOUD``.
"""
from __future__ import annotations

import logging
import os
import socket
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv

from network_operator.errors import ConfigError

logger = logging.getLogger(__name__)

# Ensure ENV is loaded *early* so everything that relies on os.getenv works.
load_dotenv()

DEFAULT_CLOUD = "openstack"
DEFAULT_PEERING = "network-operator"
DEFAULT_WATCH_SERVER_TIMEOUT = 210


@dataclass(frozen=True)
class OperatorConfig:
    cloud: str
    ext_net_id: str
    tenant_id: str
    namespace: str = ""
    peering_name: str = DEFAULT_PEERING
    identity: str = ""
    log_level: str = "INFO"
    watch_server_timeout: int = DEFAULT_WATCH_SERVER_TIMEOUT
    create_crd: bool = False

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "OperatorConfig":
        """Build the config from *env* (defaults to ``os.environ``) or raise ``ConfigError``."""
        env = os.environ if env is None else env

        ext_net_id = env.get("OPENSTACK_EXT_NET_ID", "")
        tenant_id = env.get("OPENSTACK_TENANT_ID", "")
        missing = [
            var
            for var, value in (("OPENSTACK_EXT_NET_ID", ext_net_id), ("OPENSTACK_TENANT_ID", tenant_id))
            if not value
        ]
        if missing:
            raise ConfigError(f"{' / '.join(missing)} env vars must be set")

        raw_timeout = env.get("WATCH_SERVER_TIMEOUT", str(DEFAULT_WATCH_SERVER_TIMEOUT))
        try:
            watch_server_timeout = int(raw_timeout)
        except ValueError as exc:
            raise ConfigError(f"WATCH_SERVER_TIMEOUT must be an integer, got {raw_timeout!r}") from exc

        return cls(
            cloud=env.get("OS_CLOUD", DEFAULT_CLOUD),
            ext_net_id=ext_net_id,
            tenant_id=tenant_id,
            namespace=env.get("NETWORK_NAMESPACE", ""),
            peering_name=env.get("KOPF_PEERING", DEFAULT_PEERING),
            identity=env.get("POD_NAME") or socket.gethostname(),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
            watch_server_timeout=watch_server_timeout,
            create_crd=env.get("CREATE_CRD", "0") == "1",
        )
