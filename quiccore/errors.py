"""Exception hierarchy for transport and stream state errors."""

from __future__ import annotations

__all__ = [
    "QuicError",
    "TransportError",
    "FinalSizeError",
    "ProtocolViolationError",
    "StateExhaustionError",
]


class QuicError(Exception):
    """Base error carrying a numeric error code and a human-readable message."""

    default_code: int | None = None
    default_message: str = "QUIC error"

    def __init__(self, code: int | None = None, message: str | None = None) -> None:
        if code is None:
            code = self.default_code
        if code is None:
            raise TypeError(f"{type(self).__name__} requires an error code")
        self.code = code
        self.message = message if message is not None else self.default_message
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code:#x}, message={self.message!r})"


class TransportError(QuicError):
    """An error that is reported to the peer as a transport error code."""

    default_message = "transport error"


class FinalSizeError(TransportError):
    """Data was received beyond, or in conflict with, the final size of a stream."""

    default_code = 0x06
    default_message = "final size error"


class ProtocolViolationError(TransportError):
    """The peer violated the protocol."""

    default_code = 0x0A
    default_message = "protocol violation"


class StateExhaustionError(QuicError):
    """Tracking the peer's behaviour would require more state than allowed."""

    default_code = 0xFF07
    default_message = "state exhaustion"