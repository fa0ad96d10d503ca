"""Custom exception hierarchy for modweave."""

from __future__ import annotations


class ModweaveError(Exception):
    """Base exception for all modweave errors."""


class ConfigurationError(ModweaveError):
    """Invalid or missing module options (e.g. no module name)."""


class CompositionError(ModweaveError):
    """A composition step produced something the builder cannot register."""

    def __init__(
        self,
        message: str,
        *,
        name: str = "",
        module: str = "",
    ) -> None:
        self.name = name
        self.module = module
        super().__init__(message)


class StateError(ModweaveError):
    """A flush could not produce a valid state snapshot.

    Raised when queued patches name unknown fields of, or fail validation
    against, a model-backed snapshot.  The store keeps its previous snapshot and drops the
    offending batch.
    """

    def __init__(self, message: str, *, module: str = "") -> None:
        self.module = module
        super().__init__(message)
