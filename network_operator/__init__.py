"""Kopf-based operator reconciling ``Network`` custom resources into OpenStack networks."""

__version__ = "0.1.0"
