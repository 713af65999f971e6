"""Error taxonomy shared by the driver, the store and the reconciler."""
from __future__ import annotations


class NetworkProviderError(Exception):
    """A call to the networking backend failed."""


class NotFoundError(NetworkProviderError):
    """The requested object does not exist."""


class MultipleResultsError(NetworkProviderError):
    """A name-based lookup matched more than one object."""


class ConfigError(Exception):
    """Operator configuration is missing or invalid."""
