"""This module stores the exception classes raised by the ataraxis-firmata library.

All library errors derive from FirmataError, so callers can catch every protocol, state, and transport failure with a
single except clause. Each class can be constructed from a single message string, which allows raising them through
the console.error() method of the ataraxis-base-utilities library.
"""


class FirmataError(Exception):
    """The base class for all errors raised by this library."""


class TransportIOError(FirmataError, OSError):
    """Raised when the underlying byte-stream (serial port or socket) fails to read or write data.

    This error is fatal to the current operation and is never retried automatically.
    """


class FirmataTimeoutError(FirmataError, TimeoutError):
    """Raised when a bounded wait expires before a complete frame is received.

    Timeouts are recoverable, and the caller may safely retry the operation that raised this error.
    """


class ParseError(FirmataError):
    """Raised when a delimited frame payload cannot be parsed into a known message.

    Args:
        message: The human-readable description of the error.
        raw: The bytes that could not be parsed.

    Attributes:
        raw: Stores the offending bytes.
    """

    def __init__(self, message: str, raw: bytes = b"") -> None:
        super().__init__(message)
        self.raw = bytes(raw)


class Utf8Error(FirmataError):
    """Raised when a text payload (for example, the firmware name) is not valid UTF-8."""


class UninitializedError(FirmataError):
    """Raised when a received message references board state that has not been bootstrapped yet."""


class NotFoundError(FirmataError):
    """Raised when an expected channel or resource is missing."""


class ConversionFailure(FirmataError):
    """Raised when a fixed-shape payload is malformed, for example when it contains an odd number of bytes."""


class WrongTypeError(FirmataError):
    """Raised when a command is applied to the wrong class of pin (analog vs. digital)."""


class StateError(FirmataError):
    """Raised when the bootstrap handshake produces a state that violates the board state invariants."""


class OutOfRangeError(FirmataError):
    """Raised when a value does not fit into its wire slot or an index falls outside the valid range."""


class ChannelClosedError(FirmataError):
    """Raised when a command queue or state channel is used after all its producers or consumers are gone."""
