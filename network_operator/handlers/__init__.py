"""Kopf handlers. Importing :mod:`network_operator.handlers.controller` registers them."""
