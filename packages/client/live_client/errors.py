"""Client exception types."""

from __future__ import annotations


class RealtimeError(Exception):
    """Base class for real-time client errors."""


class SubscribeError(RealtimeError):
    """Subscribe input that can never produce a working connection."""


class TransportError(RealtimeError):
    """The stream dropped or the handshake failed. The connection retries."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class HandshakeRejected(TransportError):
    """The hub rejected the subscribe request in a way retrying cannot fix."""


class ApiError(RealtimeError):
    """An API layer call failed after retries."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
