"""Exception hierarchy shared by the detection and synchronization domains."""


class SentinelError(Exception):
    """Base class for all domain errors."""


class ConfigurationError(SentinelError, ValueError):
    """Invalid configuration detected before a run starts."""


class UnsupportedDatabaseError(ConfigurationError):
    """The requested database dialect is unknown or its driver is not installed."""


class ConnectivityError(SentinelError):
    """A remote database could not be reached or a query against it failed."""


class RunConflictError(SentinelError):
    """A run of the same kind is already in progress."""

    def __init__(self, run_kind: str) -> None:
        self.run_kind = run_kind
        super().__init__(f"A {run_kind} run is already in progress")
