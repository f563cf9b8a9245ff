"""Error taxonomy for the chat relay.

Every server-side error carries the HTTP status it maps to, so the API layer
can render it without a lookup table. Client-side errors (raised by the
accumulator) share the same base class.
"""

from typing import Any


class ZetoError(Exception):
    """Base class for all relay errors."""

    status_code: int = 500

    def __init__(self, message: str, details: Any = None, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.details = details
        if status_code is not None:
            self.status_code = status_code

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.message}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class ConfigError(ZetoError):
    """A required credential or setting is missing."""

    status_code = 500


class EmptyQuery(ZetoError):
    """The chat message is empty after trimming."""

    status_code = 400

    def __init__(self, message: str = "The 'message' field is required."):
        super().__init__(message)


class NoUsableContext(ZetoError):
    """Documents were requested but none of them has usable text."""

    status_code = 400

    def __init__(self, missing: list[dict[str, str]]):
        super().__init__(
            "None of the selected documents has usable extracted text.",
            details=missing,
        )
        self.missing = missing


class AuthError(ZetoError):
    """The hosted completion API rejected the configured credential (HTTP 401)."""

    status_code = 401


class UpstreamError(ZetoError):
    """The hosted completion API answered with a non-2xx status."""

    status_code = 502

    def __init__(self, message: str, upstream_status: int | None = None, body: Any = None):
        super().__init__(message, details={"statusCode": upstream_status, "body": body})
        self.upstream_status = upstream_status
        self.body = body


class StreamInterrupted(ZetoError):
    """The connection to the upstream dropped before the stream finished."""

    status_code = 502


class ExtractionError(ZetoError):
    """No text could be extracted from an uploaded document."""

    status_code = 422


class TransportError(ZetoError):
    """The event stream never produced a single well-formed event."""


class StreamError(ZetoError):
    """The server reported an error event on the stream."""


class ChatCancelled(ZetoError):
    """The consumer aborted the stream before completion."""

    def __init__(self, partial_text: str = ""):
        super().__init__("Chat stream cancelled by the client.")
        self.partial_text = partial_text
