#!/usr/bin/env python3
"""Entry point: configure logging and run the kopf operator."""

import logging
import os
import socket
import sys

import kopf

from network_operator.config import OperatorConfig
from network_operator.errors import ConfigError

# Import our handlers
from network_operator.handlers import controller  # noqa: F401


# Configure logging with more details
def configure_logging(log_level: str = "INFO") -> None:
    """Configure logging with hostname and pod name for better traceability"""
    log_format = '%(asctime)s [%(levelname)s] [%(name)s] [%(hostname)s] [%(pod_name)s] %(message)s'

    # Add hostname to log format
    hostname = socket.gethostname()
    pod_name = os.environ.get("POD_NAME", "unknown")

    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format=log_format,
        stream=sys.stdout,
    )

    # Add custom fields to the log record
    old_factory = logging.getLogRecordFactory()
    def record_factory(*args, **kwargs):
        record = old_factory(*args, **kwargs)
        record.hostname = hostname
        record.pod_name = pod_name
        return record
    logging.setLogRecordFactory(record_factory)

    logging.info(f"Logging configured at {log_level} level")


def main() -> None:
    try:
        config = OperatorConfig.from_env()
    except ConfigError as exc:
        configure_logging()
        logging.critical(f"Invalid configuration: {exc}")
        sys.exit(1)

    configure_logging(config.log_level)

    if config.namespace:
        logging.info(f"Network Operator watching namespace {config.namespace}")
    else:
        logging.info("Network Operator watching Network resources across all namespaces")
    logging.info(f"Configuring peering {config.peering_name} with identity {config.identity}")

    # Single replica: run standalone, the peering name only labels this instance
    kopf.run(
        standalone=True,
        clusterwide=not config.namespace,
        namespaces=[config.namespace] if config.namespace else [],
        peering_name=config.peering_name,
        identity=config.identity,
        priority=0,
    )


if __name__ == "__main__":
    main()
