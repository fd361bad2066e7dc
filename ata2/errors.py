"""Structured error types for ata2."""

from enum import Enum


class ErrorKind(str, Enum):
    """Why a streamed request failed. Carried by ``StreamError`` events."""

    TRANSPORT_FAILURE = "transport_failure"
    MALFORMED_FRAME = "malformed_frame"
    UNRECOGNIZED_PAYLOAD = "unrecognized_payload"
    PROVIDER_ERROR = "provider_error"


class AtaError(Exception):
    """Base error for all ata2 operations."""
    pass


class ConfigError(AtaError):
    """Configuration could not be found, parsed or validated."""
    pass


class ConfigNotFoundError(ConfigError):
    """No configuration file exists at the resolved location."""

    def __init__(self, path):
        self.path = path
        super().__init__(f"Configuration file not found: {path}")


class ConversationLoadError(AtaError):
    """A persisted conversation file is unreadable or malformed."""

    def __init__(self, path, message: str):
        self.path = str(path)
        super().__init__(f"Cannot load conversation from {self.path}: {message}")


class StreamFailure(AtaError):
    """Base for failures of a single streamed request."""

    kind: ErrorKind


class TransportFailure(StreamFailure):
    """The connection failed or dropped."""

    kind = ErrorKind.TRANSPORT_FAILURE


class MalformedFrame(StreamFailure):
    """A server-sent-event frame could not be parsed."""

    kind = ErrorKind.MALFORMED_FRAME


class UnrecognizedPayload(StreamFailure):
    """A frame held valid JSON of an unknown shape."""

    kind = ErrorKind.UNRECOGNIZED_PAYLOAD


class ProviderError(StreamFailure):
    """The service answered with an explicit error payload."""

    kind = ErrorKind.PROVIDER_ERROR

    def __init__(self, error_type: str, message: str):
        self.error_type = error_type
        super().__init__(f"{error_type}: {message}" if error_type else message)


_FAILURE_BY_KIND = {
    cls.kind: cls for cls in (TransportFailure, MalformedFrame, UnrecognizedPayload)
}


def failure_for(kind: ErrorKind, message: str, error_type: str = "") -> StreamFailure:
    """Build the exception matching a stream error kind."""
    if kind is ErrorKind.PROVIDER_ERROR:
        return ProviderError(error_type, message)
    return _FAILURE_BY_KIND[kind](message)
