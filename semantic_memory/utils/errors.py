"""
Shared error types for external providers.
"""


class ProviderError(Exception):
    """Base exception for embedding, chat model and vector index failures.

    Each client raises its own subclass so callers can either handle a single
    provider or treat every outage the same way.
    """
    pass


class NotInitializedError(Exception):
    """Raised when an operation is invoked before initialize() completed."""
    pass
