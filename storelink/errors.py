"""Error taxonomy for the reconciliation subsystem.

Only ConfigurationError ever reaches a caller of the sync entry points.
Provider and per-record errors are caught by the orchestrator / reconciler
and turned into integration log rows.
"""


class StorelinkError(Exception):
    """Base class for errors raised by this package."""


class ConfigurationError(StorelinkError):
    """Integration missing, inactive, or without a usable credential."""


class ProviderError(StorelinkError):
    """A page fetch against the fulfillment provider failed."""

    def __init__(self, message: str, status_code: int | None = None, resource: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.resource = resource


class RecordUpsertError(StorelinkError):
    """A single provider record could not be merged into local storage."""

    def __init__(self, external_id: str | None, cause: Exception):
        super().__init__(f"{external_id or '<unknown>'}: {cause}")
        self.external_id = external_id
        self.cause = cause
