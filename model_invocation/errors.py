"""
Invocation error taxonomy.

All of these are converted into InvocationResult.error at the session
boundary. Staleness is not an error and has no exception type.
"""

from typing import Optional


class InvocationError(Exception):
    """Base class. str(exc) is the caller-facing message."""
    pass


class ConfigurationError(InvocationError):
    """Empty prompt or unusable endpoint. Detected before any network I/O."""
    pass


class TemplateError(InvocationError):
    """The model's input schema did not render to a JSON object."""

    def __init__(self, message: str, model_name: str = ""):
        super().__init__(message)
        self.model_name = model_name


class TransportError(InvocationError):
    """Network failure or non-success HTTP status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class DecodeError(InvocationError):
    """A single streamed event could not be decoded. Non-fatal."""

    def __init__(self, message: str, line: str = ""):
        super().__init__(message)
        self.line = line
