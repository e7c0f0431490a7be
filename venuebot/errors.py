"""
Pipeline Exceptions

Exceptions are reserved for conditions the caller cannot express as a
result value. Expected Bot API failures travel as CallFailure instead.
"""


class PipelineError(Exception):
    """Base class for messaging pipeline errors."""


class StorageUnavailableError(PipelineError):
    """The backing store rejected or could not complete an operation."""

    def __init__(self, operation: str, message: str = "storage unavailable"):
        super().__init__(f"{operation}: {message}")
        self.operation = operation


class MalformedUpdateError(PipelineError):
    """A raw inbound update could not be decoded."""


class PermanentProcessingError(PipelineError):
    """
    Raised by an update router when an update can never succeed.

    The inbound worker marks the update FAILED without scheduling a retry.
    Any other exception from the router is treated as transient.
    """
